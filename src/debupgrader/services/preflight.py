"""Pre-flight validation for debupgrader."""

import os
import re
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional

import requests
from rich.table import Table

from debupgrader.constants import MIN_FREE_SPACE_GB, NETWORK_TIMEOUT_SECONDS, REACHABILITY_URL
from debupgrader.errors import UpgraderError
from debupgrader.errors_catalog import actionable_error
from debupgrader.models import RunContext

GIB = 1024**3
VERSION_CODENAME_RE = re.compile(r"\(([a-z]+)\)")


def parse_os_release(content: str) -> Dict[str, str]:
    """Parse the shell-style ``KEY=value`` assignments of os-release."""
    values: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def read_release_codename(os_release_file: str) -> str:
    try:
        content = Path(os_release_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise UpgraderError(actionable_error("os_release_unreadable", path=os_release_file)) from exc

    values = parse_os_release(content)
    codename = values.get("VERSION_CODENAME", "").strip()
    if not codename:
        match = VERSION_CODENAME_RE.search(values.get("VERSION", ""))
        if match:
            codename = match.group(1)
    if not codename:
        raise UpgraderError(actionable_error("os_release_unreadable", path=os_release_file))
    return codename


class PreflightService:
    """Checks privileges, release, network, disk space, holds and repositories."""

    def __init__(
        self,
        apt_service,
        sources_service,
        prompt_service,
        logger,
        console,
        requests_module=requests,
        geteuid: Optional[Callable[[], int]] = None,
        disk_usage=shutil.disk_usage,
        reachability_url: str = REACHABILITY_URL,
        network_timeout: float = NETWORK_TIMEOUT_SECONDS,
        min_free_space_gb: float = MIN_FREE_SPACE_GB,
        skip_disk_check: bool = False,
    ):
        self.apt = apt_service
        self.sources = sources_service
        self.prompt = prompt_service
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.geteuid = geteuid or os.geteuid
        self.disk_usage = disk_usage
        self.reachability_url = reachability_url
        self.network_timeout = network_timeout
        self.min_free_space_gb = min_free_space_gb
        self.skip_disk_check = skip_disk_check

    def run(self, context: RunContext):
        self.check_root()
        self.check_release(context)
        self.check_network()
        self.check_disk_space(context)
        self.check_held_packages()
        self.report_third_party_repositories(context)
        self.console.print("[green]Pre-flight checks passed.[/green]")

    def check_root(self):
        if self.geteuid() != 0:
            raise UpgraderError(actionable_error("not_root"))
        self.logger.info("Running with root privileges.")

    def check_release(self, context: RunContext):
        codename = read_release_codename(context.os_release_file)
        if codename != context.source_release:
            raise UpgraderError(
                actionable_error(
                    "unsupported_release",
                    current=codename,
                    expected=context.source_release,
                    target=context.target_release,
                )
            )
        self.logger.info("Detected Debian release: %s", codename)

    def check_network(self):
        self.console.print(f"[blue]Checking connectivity to {self.reachability_url}...[/blue]")
        try:
            response = self.requests.head(
                self.reachability_url,
                allow_redirects=True,
                timeout=self.network_timeout,
            )
            response.raise_for_status()
            response.close()
        except self.requests.RequestException as exc:
            self.logger.debug("Reachability probe failed: %s", exc)
            raise UpgraderError(actionable_error("network_unreachable", url=self.reachability_url)) from exc
        self.logger.info("Network connectivity confirmed.")

    def _existing_ancestor(self, path: str) -> str:
        candidate = Path(path)
        while not candidate.exists() and candidate != candidate.parent:
            candidate = candidate.parent
        return str(candidate)

    def check_disk_space(self, context: RunContext):
        if self.skip_disk_check:
            self.logger.warning("Disk space check skipped by configuration.")
            return

        mount_path = self._existing_ancestor(context.apt_cache_dir)
        free_gb = self.disk_usage(mount_path).free / GIB
        self.logger.info("Free space on %s: %.1f GiB", mount_path, free_gb)
        if free_gb >= self.min_free_space_gb:
            return

        message = actionable_error(
            "low_disk_space",
            free=f"{free_gb:.1f}",
            path=mount_path,
            required=f"{self.min_free_space_gb:g}",
        )
        self.logger.warning(message)
        self.console.print(f"[yellow]Warning:[/yellow] {message}")
        if not self.prompt.confirm("Continue with low disk space?"):
            raise UpgraderError("Aborted: insufficient disk space.")

    def check_held_packages(self):
        held = self.apt.held_packages()
        if not held:
            self.logger.info("No held packages.")
            return

        table = Table(title="Held packages", show_header=False)
        table.add_column("Package")
        for package in held:
            table.add_row(package)
        self.console.print(table)

        message = actionable_error("held_packages", packages=", ".join(held))
        self.logger.warning(message)
        if not self.prompt.confirm("Held packages will not be upgraded. Continue?"):
            raise UpgraderError("Aborted: held packages were not accepted.")

    def report_third_party_repositories(self, context: RunContext):
        entries = self.sources.third_party_entries(context)
        if not entries:
            return

        table = Table(title="Third-party repositories (not rewritten)")
        table.add_column("File")
        table.add_column("URI")
        table.add_column("Suite")
        for entry in entries:
            table.add_row(entry.path, " ".join(entry.uris), " ".join(entry.suites))
        self.console.print(table)
        self.logger.warning(
            "%s third-party repository entries need manual follow-up after the upgrade.",
            len(entries),
        )
