"""Actionable error catalog for debupgrader."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "not_root": {
        "what": "debupgrader must run as root.",
        "next": "Re-run the command with `sudo` or from a root shell.",
    },
    "unsupported_release": {
        "what": "This system runs Debian '{current}', but the upgrade starts from '{expected}'.",
        "next": "Only run the {expected} -> {target} upgrade on a {expected} system.",
    },
    "os_release_unreadable": {
        "what": "Could not determine the installed Debian release from {path}.",
        "next": "Check that {path} exists and defines VERSION_CODENAME.",
    },
    "network_unreachable": {
        "what": "The Debian mirror {url} is not reachable.",
        "next": "Fix network connectivity before changing repository configuration.",
    },
    "low_disk_space": {
        "what": "Only {free} GiB free on {path}; at least {required} GiB is recommended.",
        "next": "Free space with `apt-get clean` or pass `--skip-disk-check` if you accept the risk.",
    },
    "held_packages": {
        "what": "Held packages block the upgrade: {packages}.",
        "next": "Release them with `apt-mark unhold <package>` or confirm to keep them held.",
    },
    "invalid_mode": {
        "what": "Invalid upgrade mode selection: {value}.",
        "next": "Choose a mode between 0 and 5.",
    },
    "upgrade_interrupted": {
        "what": "The upgrade stopped during '{step}'.",
        "next": "Inspect {log_path} and restore configuration from {backup_dir} if needed.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
