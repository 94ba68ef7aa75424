"""
debupgrader - Debian release upgrade workflow (bookworm to trixie)
"""

__version__ = "0.1.0"

from .core import DebianUpgrader, UpgraderError

__all__ = ["DebianUpgrader", "UpgraderError"]
