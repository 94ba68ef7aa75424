"""Post-upgrade audit, kernel cleanup and reboot for debupgrader."""

import os
from typing import Any, Callable, Dict, List, Optional

from rich.table import Table

from debupgrader.constants import REBOOT_DELAY_MINUTES
from debupgrader.errors import UpgraderError
from debupgrader.models import BackupSet, RunContext
from debupgrader.services.apt import kernel_release
from debupgrader.services.preflight import read_release_codename

POST_UPGRADE_SNAPSHOT = "installed-packages-post-upgrade.txt"


def _running_kernel_release() -> str:
    return os.uname().release


class AuditService:
    """Inspects the upgraded system and offers the final cleanup steps."""

    def __init__(
        self,
        apt_service,
        backup_service,
        prompt_service,
        runner,
        logger,
        console,
        running_kernel: Callable[[], str] = _running_kernel_release,
    ):
        self.apt = apt_service
        self.backup = backup_service
        self.prompt = prompt_service
        self.runner = runner
        self.logger = logger
        self.console = console
        self.running_kernel = running_kernel

    def run(self, context: RunContext, backup_set: Optional[BackupSet]) -> Dict[str, Any]:
        report: Dict[str, Any] = {
            "release": self.report_release(context),
            "broken_packages": [],
            "broken_repaired": None,
            "pending_upgrades": [],
            "snapshot": None,
        }

        broken = self.apt.broken_packages()
        report["broken_packages"] = broken
        if broken:
            self.logger.warning("Broken packages detected: %s", ", ".join(broken))
            self.console.print(
                f"[yellow]Broken packages detected ({len(broken)}). Attempting repair...[/yellow]"
            )
            repaired = self.apt.fix_broken()
            report["broken_repaired"] = repaired
            if repaired:
                self.console.print("[green]Dependency repair completed.[/green]")
            else:
                self.console.print(
                    "[yellow]Dependency repair failed. Run `apt-get -f install` manually.[/yellow]"
                )
        else:
            self.console.print("[green]No broken packages found.[/green]")

        pending = self.apt.upgradable_packages()
        report["pending_upgrades"] = pending
        if pending:
            self.logger.info("Packages still pending upgrade: %s", ", ".join(pending))
            self.console.print(f"[yellow]{len(pending)} packages are still upgradable.[/yellow]")

        if backup_set is not None:
            report["snapshot"] = self.backup.snapshot_installed(backup_set, POST_UPGRADE_SNAPSHOT)

        return report

    def report_release(self, context: RunContext) -> Optional[str]:
        try:
            codename = read_release_codename(context.os_release_file)
        except UpgraderError as exc:
            self.logger.warning(str(exc))
            return None

        if codename == context.target_release:
            self.console.print(f"[bold green]System now reports Debian {codename}.[/bold green]")
        else:
            self.console.print(
                f"[yellow]System reports '{codename}', expected '{context.target_release}'.[/yellow]"
            )
        self.logger.info("Release after upgrade: %s", codename)
        return codename

    def old_kernels(self) -> List[str]:
        """Installed kernels older than the running one.

        Kernels newer than the running one (typically the one the upgrade
        just installed) are kept until a reboot makes them current.
        """
        running = self.running_kernel()
        old = []
        for package in self.apt.installed_kernels():
            release = kernel_release(package)
            if release is None or release == running:
                continue
            if self.apt.version_lt(release, running):
                old.append(package)
        return old

    def clean_old_kernels(self) -> List[str]:
        old = self.old_kernels()
        if not old:
            self.logger.info("No old kernels to remove.")
            return []

        table = Table(title="Old kernels", show_header=False)
        table.add_column("Package")
        for package in old:
            table.add_row(package)
        self.console.print(table)

        if not self.prompt.confirm("Remove these old kernels?"):
            self.logger.info("Keeping old kernels.")
            return []

        self.apt.purge(old)
        self.console.print(f"[green]Removed {len(old)} old kernels.[/green]")
        return old

    def offer_reboot(self, reboot: Optional[bool] = None, delay_minutes: int = REBOOT_DELAY_MINUTES) -> bool:
        if reboot is None:
            if self.prompt.auto_confirm:
                self.logger.info("Reboot not requested; pass --reboot to reboot unattended.")
                reboot = False
            else:
                reboot = self.prompt.confirm("Reboot now to finish the upgrade?")

        if not reboot:
            self.console.print("[yellow]Reboot skipped. Reboot soon to load the new kernel.[/yellow]")
            return False

        when = "now" if delay_minutes <= 0 else f"+{delay_minutes}"
        self.runner.run(["shutdown", "-r", when])
        self.console.print(f"[bold]Reboot scheduled ({when}).[/bold]")
        return True
