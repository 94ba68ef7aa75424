"""Shared domain models for debupgrader."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import List, Tuple

from .constants import (
    APT_CACHE_DIR,
    BACKUP_CONFIG_PATHS,
    DEFAULT_BACKUP_ROOT,
    DEFAULT_SOURCE_RELEASE,
    DEFAULT_TARGET_RELEASE,
    FIRST_PARTY_DOMAIN,
    OS_RELEASE_FILE,
    SOURCES_LIST,
    SOURCES_LIST_D,
)


class UpgradeMode(IntEnum):
    """Upgrade strategies offered by the mode menu."""

    EXIT = 0
    AUTO = 1
    FULL = 2
    SAFE = 3
    MINIMAL = 4
    CUSTOM = 5

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]


_MODE_LABELS = {
    UpgradeMode.EXIT: "Exit without changes",
    UpgradeMode.AUTO: "Automatic (non-interactive, keep existing config files)",
    UpgradeMode.FULL: "Full upgrade (simulate, confirm, then apply)",
    UpgradeMode.SAFE: "Safe (minimal upgrade first, then full upgrade)",
    UpgradeMode.MINIMAL: "Minimal (upgrade without new or removed packages)",
    UpgradeMode.CUSTOM: "Custom (interactive, answer every prompt)",
}


@dataclass(frozen=True)
class RunContext:
    """Release identifiers and system paths for one execution."""

    run_id: str
    source_release: str = DEFAULT_SOURCE_RELEASE
    target_release: str = DEFAULT_TARGET_RELEASE
    first_party_domain: str = FIRST_PARTY_DOMAIN
    sources_list: str = SOURCES_LIST
    sources_list_d: str = SOURCES_LIST_D
    os_release_file: str = OS_RELEASE_FILE
    apt_cache_dir: str = APT_CACHE_DIR
    backup_root: str = DEFAULT_BACKUP_ROOT
    backup_paths: Tuple[Tuple[str, str], ...] = BACKUP_CONFIG_PATHS


@dataclass(frozen=True)
class BackupSet:
    """Timestamped directory holding the pre-upgrade snapshot."""

    path: str
    created_at: datetime
    artifacts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RepositoryEntry:
    """One package source definition read from apt configuration."""

    path: str
    format: str
    uris: Tuple[str, ...]
    suites: Tuple[str, ...]
    first_party: bool


@dataclass
class RewriteReport:
    """Files touched or skipped by the release rewrite."""

    rewritten: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
