"""Package manager command surface for debupgrader."""

import re
from typing import Dict, List, Optional, Tuple

from debupgrader.errors import UpgraderError

NONINTERACTIVE_ENV: Dict[str, str] = {"DEBIAN_FRONTEND": "noninteractive"}
KEEP_OLD_CONFIG_OPTIONS = [
    "-o",
    "Dpkg::Options::=--force-confdef",
    "-o",
    "Dpkg::Options::=--force-confold",
]
BROKEN_STATUSES = set("HUFWt")
KERNEL_PACKAGE_RE = re.compile(r"^linux-image-(\d\S*?)(?:-unsigned|-dbg)?$")


def parse_status_abbrev(output: str) -> List[Tuple[str, str]]:
    """Parse ``dpkg-query -f '${db:Status-Abbrev}\\t${Package}\\n'`` output.

    Returns ``(abbrev, package)`` pairs with the abbreviation padded to the
    three dpkg columns: desired action, package status and error flag.
    """
    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        abbrev, sep, package = line.partition("\t")
        package = package.strip()
        if not sep or not package or len(abbrev.strip()) < 2:
            raise UpgraderError(f"Unexpected dpkg-query status line: {line!r}")
        entries.append((abbrev.ljust(3)[:3], package))
    return entries


def kernel_release(package: str) -> Optional[str]:
    """Return the kernel release a linux-image package ships, e.g. ``6.1.0-18-amd64``.

    Signed, ``-unsigned`` and ``-dbg`` builds of one kernel map to the same
    release; meta-packages such as ``linux-image-amd64`` return ``None``.
    """
    match = KERNEL_PACKAGE_RE.match(package)
    return match.group(1) if match else None


def parse_upgradable(output: str) -> List[str]:
    """Extract package names from ``apt list --upgradable`` output."""
    packages = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("Listing") or line.startswith("WARNING"):
            continue
        name, sep, _rest = line.partition("/")
        if not sep or not name:
            raise UpgraderError(f"Unexpected apt list line: {line!r}")
        packages.append(name)
    return packages


class AptService:
    """Wraps apt-get, apt-mark and dpkg invocations."""

    def __init__(self, runner, logger, console):
        self.runner = runner
        self.logger = logger
        self.console = console

    def update(self):
        self.runner.stream(["apt-get", "update"])

    def upgrade(self, without_new_pkgs: bool = False):
        cmd = ["apt-get", "upgrade", "-y"]
        if without_new_pkgs:
            cmd.append("--without-new-pkgs")
        self.runner.run(cmd)

    def dist_upgrade(self):
        self.runner.run(["apt-get", "dist-upgrade", "-y"])

    def full_upgrade(self, assume_yes: bool = True):
        cmd = ["apt-get", "full-upgrade"]
        if assume_yes:
            cmd.append("-y")
        self.runner.run(cmd)

    def full_upgrade_noninteractive(self):
        self.runner.stream(
            ["apt-get", "-y", *KEEP_OLD_CONFIG_OPTIONS, "full-upgrade"],
            env=NONINTERACTIVE_ENV,
        )

    def simulate_full_upgrade(self) -> str:
        result = self.runner.run(["apt-get", "-s", "full-upgrade"], capture_output=True)
        return result.stdout or ""

    def autoremove(self):
        self.runner.stream(["apt-get", "autoremove", "-y"])

    def autoclean(self):
        self.runner.stream(["apt-get", "autoclean"])

    def fix_broken(self) -> bool:
        result = self.runner.run(["apt-get", "-f", "install", "-y"], check=False)
        return result.returncode == 0

    def purge(self, packages: List[str]):
        if not packages:
            return
        self.runner.run(["apt-get", "purge", "-y", *packages])

    def held_packages(self) -> List[str]:
        result = self.runner.run(["apt-mark", "showhold"], capture_output=True)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def package_selections(self) -> str:
        result = self.runner.run(["dpkg", "--get-selections"], capture_output=True)
        return result.stdout or ""

    def installed_packages(self) -> str:
        result = self.runner.run(
            ["dpkg-query", "-W", "-f=${Package}\t${Version}\t${Architecture}\n"],
            capture_output=True,
        )
        return result.stdout or ""

    def broken_packages(self) -> List[str]:
        result = self.runner.run(
            ["dpkg-query", "-W", "-f=${db:Status-Abbrev}\t${Package}\n"],
            capture_output=True,
        )
        broken = []
        for abbrev, package in parse_status_abbrev(result.stdout or ""):
            if abbrev[2] != " " or abbrev[1] in BROKEN_STATUSES:
                broken.append(package)
        return broken

    def upgradable_packages(self) -> List[str]:
        result = self.runner.run(["apt", "list", "--upgradable"], capture_output=True)
        return parse_upgradable(result.stdout or "")

    def installed_kernels(self) -> List[str]:
        # dpkg-query exits 1 when no package matches the pattern.
        result = self.runner.run(
            ["dpkg-query", "-W", "-f=${db:Status-Abbrev}\t${Package}\n", "linux-image-*"],
            check=False,
            capture_output=True,
        )
        if result.returncode not in (0, 1):
            raise UpgraderError(f"Could not list installed kernels (exit {result.returncode}).")

        kernels = []
        for abbrev, package in parse_status_abbrev(result.stdout or ""):
            if abbrev[1] == "i" and kernel_release(package):
                kernels.append(package)
        return kernels

    def version_lt(self, version: str, other: str) -> bool:
        """Compare two versions with dpkg's ordering rules."""
        result = self.runner.run(
            ["dpkg", "--compare-versions", version, "lt", other],
            check=False,
            capture_output=True,
        )
        if result.returncode not in (0, 1):
            raise UpgraderError(f"Could not compare versions {version!r} and {other!r}.")
        return result.returncode == 0
