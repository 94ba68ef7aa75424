"""Configuration loader for debupgrader."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from debupgrader.errors import UpgraderError


class ConfigLoader:
    """Loads YAML configuration files holding pre-answered run options."""

    DEFAULT_LOCATIONS = (".debupgrader.yml", "/etc/debupgrader.yml")

    SUPPORTED_KEYS = {
        "mode",
        "auto_confirm",
        "skip_disk_check",
        "source_release",
        "target_release",
        "backup_root",
        "min_free_space_gb",
        "network_timeout",
        "reboot",
        "reboot_delay_minutes",
        "dry_run",
        "verbose",
        "log_file",
    }

    def find_default(self, cwd: str) -> Optional[str]:
        for location in self.DEFAULT_LOCATIONS:
            path = Path(cwd, location)
            if path.is_file():
                return str(path)
        return None

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise UpgraderError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise UpgraderError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise UpgraderError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise UpgraderError(f"Unknown configuration keys: {unknown_list}")

        return parsed
