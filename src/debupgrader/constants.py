"""Static defaults for debupgrader."""

DEFAULT_SOURCE_RELEASE = "bookworm"
DEFAULT_TARGET_RELEASE = "trixie"
FIRST_PARTY_DOMAIN = "debian.org"
REACHABILITY_URL = "https://deb.debian.org/debian/"

SOURCES_LIST = "/etc/apt/sources.list"
SOURCES_LIST_D = "/etc/apt/sources.list.d"
OS_RELEASE_FILE = "/etc/os-release"
APT_CACHE_DIR = "/var/cache/apt/archives"
DEFAULT_BACKUP_ROOT = "/var/backups/debupgrader"

BACKUP_CONFIG_PATHS = (
    ("sources.list", SOURCES_LIST),
    ("sources.list.d", SOURCES_LIST_D),
    ("fstab", "/etc/fstab"),
    ("network", "/etc/network"),
    ("default", "/etc/default"),
)

FRAGMENT_BACKUP_SUFFIX = ".bak"
LIST_FRAGMENT_EXTENSION = ".list"
DEB822_FRAGMENT_EXTENSION = ".sources"

MIN_FREE_SPACE_GB = 5
NETWORK_TIMEOUT_SECONDS = 30.0
REBOOT_DELAY_MINUTES = 1

RUN_LOG_NAME = "upgrade.log"
MANIFEST_NAME = "run-manifest.json"
DIR_MODE = 0o700
