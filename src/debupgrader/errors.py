"""Domain errors for debupgrader."""


class UpgraderError(RuntimeError):
    """Raised when the upgrade cannot continue safely."""


class UpgradeCancelled(UpgraderError):
    """Raised when the operator chooses to stop the run."""
