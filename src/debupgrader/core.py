import logging
import os
import re
import uuid
from typing import Any, Dict, Optional, TextIO, Union

import requests
from rich.console import Console
from rich.table import Table

from .constants import (
    DEFAULT_BACKUP_ROOT,
    DEFAULT_SOURCE_RELEASE,
    DEFAULT_TARGET_RELEASE,
    MANIFEST_NAME,
    MIN_FREE_SPACE_GB,
    NETWORK_TIMEOUT_SECONDS,
    REBOOT_DELAY_MINUTES,
    RUN_LOG_NAME,
)
from .errors import UpgradeCancelled, UpgraderError
from .errors_catalog import actionable_error
from .models import BackupSet, RunContext, UpgradeMode
from .services.apt import AptService
from .services.audit import AuditService
from .services.backup import BackupService, RunConsole
from .services.command_runner import CommandRunner, PlanningRunner
from .services.manifest import ManifestService
from .services.preflight import PreflightService, read_release_codename
from .services.prompt import PromptService
from .services.sources import SourcesService
from .services.upgrade_executor import UpgradeExecutorService, parse_mode

console = Console()
logger = logging.getLogger("debupgrader")

RELEASE_NAME_RE = re.compile(r"^[a-z][a-z0-9-]*$")


class DebianUpgrader:
    def __init__(
        self,
        mode: Union[str, int, UpgradeMode, None] = None,
        auto_confirm: bool = False,
        skip_disk_check: bool = False,
        source_release: str = DEFAULT_SOURCE_RELEASE,
        target_release: str = DEFAULT_TARGET_RELEASE,
        backup_root: str = DEFAULT_BACKUP_ROOT,
        min_free_space_gb: float = MIN_FREE_SPACE_GB,
        network_timeout: float = NETWORK_TIMEOUT_SECONDS,
        reboot: Optional[bool] = None,
        reboot_delay_minutes: int = REBOOT_DELAY_MINUTES,
        dry_run: bool = False,
        context: Optional[RunContext] = None,
        input_stream: Optional[TextIO] = None,
    ):
        self.context = context or RunContext(
            run_id=uuid.uuid4().hex[:10],
            source_release=self._normalize_release(source_release, "--source-release"),
            target_release=self._normalize_release(target_release, "--target-release"),
            backup_root=backup_root,
        )
        if self.context.source_release == self.context.target_release:
            raise UpgraderError("Source and target releases must differ.")
        if min_free_space_gb < 0:
            raise UpgraderError("--min-free-space-gb must not be negative.")

        self.requested_mode = mode
        self.auto_confirm = auto_confirm
        self.skip_disk_check = skip_disk_check
        self.reboot = reboot
        self.reboot_delay_minutes = reboot_delay_minutes
        self.dry_run = dry_run

        self.mode: Optional[UpgradeMode] = None
        self.backup_set: Optional[BackupSet] = None
        self.current_step_name: Optional[str] = None

        self.console = RunConsole(console)

        self.command_runner = CommandRunner(logger=logger)
        self.manifest_service = ManifestService(logger=logger)
        self.prompt_service = PromptService(
            console=console,
            logger=logger,
            auto_confirm=auto_confirm,
            stream=input_stream,
        )
        self.apt_service = AptService(runner=self.command_runner, logger=logger, console=self.console)
        self.sources_service = SourcesService(logger=logger, console=self.console)
        self.preflight_service = PreflightService(
            apt_service=self.apt_service,
            sources_service=self.sources_service,
            prompt_service=self.prompt_service,
            logger=logger,
            console=self.console,
            requests_module=requests,
            network_timeout=network_timeout,
            min_free_space_gb=min_free_space_gb,
            skip_disk_check=skip_disk_check,
        )
        self.backup_service = BackupService(
            apt_service=self.apt_service,
            runner=self.command_runner,
            logger=logger,
            console=self.console,
        )
        self.upgrade_executor = UpgradeExecutorService(
            apt_service=self.apt_service,
            prompt_service=self.prompt_service,
            logger=logger,
            console=self.console,
        )
        self.audit_service = AuditService(
            apt_service=self.apt_service,
            backup_service=self.backup_service,
            prompt_service=self.prompt_service,
            runner=self.command_runner,
            logger=logger,
            console=self.console,
        )

    @staticmethod
    def _normalize_release(value: str, option_name: str) -> str:
        clean_value = (value or "").strip().lower()
        if not RELEASE_NAME_RE.match(clean_value):
            raise UpgraderError(f"{option_name} must be a Debian codename such as 'bookworm'.")
        return clean_value

    def _build_manifest_metadata(self) -> Dict[str, Any]:
        return {
            "requested_mode": None if self.requested_mode is None else str(self.requested_mode),
            "auto_confirm": self.auto_confirm,
            "skip_disk_check": self.skip_disk_check,
            "dry_run": self.dry_run,
            "backup_root": self.context.backup_root,
        }

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.step_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except UpgradeCancelled as exc:
            self.manifest_service.step_finished(name, "cancelled", error=str(exc))
            raise
        except BaseException as exc:
            self.manifest_service.step_finished(name, "failed", error=str(exc) or type(exc).__name__)
            raise

        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def confirm_backups_taken(self):
        self.console.print(
            f"[bold]This will upgrade Debian {self.context.source_release} to "
            f"{self.context.target_release}.[/bold] Make sure important data is backed up."
        )
        if not self.prompt_service.confirm("Have you backed up your important data?"):
            raise UpgradeCancelled("Upgrade cancelled. Back up your data and run again.")

    def run_preflight(self):
        self.preflight_service.run(self.context)
        self.manifest_service.set_releases(
            source=self.context.source_release,
            target=self.context.target_release,
            detected=self.context.source_release,
        )

    def select_mode(self) -> UpgradeMode:
        answer = self.requested_mode
        if answer is None:
            answer = self.prompt_service.ask_mode()
        mode = parse_mode(answer)
        self.manifest_service.set_mode(mode.name.lower())
        logger.info("Selected upgrade mode: %s (%s)", int(mode), mode.label)
        return mode

    def create_backup(self) -> BackupSet:
        backup_set = self.backup_service.create(self.context)
        self.command_runner.attach_transcript(os.path.join(backup_set.path, RUN_LOG_NAME))
        self.manifest_service.attach(os.path.join(backup_set.path, MANIFEST_NAME))
        self.manifest_service.add_artifact("backup_dir", backup_set.path)
        self.manifest_service.add_artifact("captured", list(backup_set.artifacts))
        self.manifest_service.add_artifact("run_log", os.path.join(backup_set.path, RUN_LOG_NAME))
        return backup_set

    def pre_upgrade_update(self, apt: Optional[AptService] = None):
        apt = apt or self.apt_service
        self.console.print(f"[blue]Updating the current {self.context.source_release} system...[/blue]")
        apt.update()
        apt.upgrade()
        apt.dist_upgrade()
        apt.autoremove()
        self.console.print("[green]Current system is up to date.[/green]")

    def rewrite_sources(self):
        report = self.sources_service.rewrite(self.context)
        self.manifest_service.add_artifact(
            "repository_rewrite",
            {"rewritten": report.rewritten, "skipped": report.skipped},
        )
        return report

    def execute_upgrade(self, mode: UpgradeMode):
        self.upgrade_executor.execute(mode)

    def post_upgrade_cleanup(self, apt: Optional[AptService] = None):
        apt = apt or self.apt_service
        self.console.print("[blue]Cleaning up obsolete packages...[/blue]")
        apt.autoremove()
        apt.autoclean()

    def audit(self):
        report = self.audit_service.run(self.context, self.backup_set)
        if report.get("snapshot"):
            self.manifest_service.add_artifact("post_upgrade_packages", report["snapshot"])
        self.manifest_service.set_releases(
            source=self.context.source_release,
            target=self.context.target_release,
            detected=report.get("release"),
        )
        return report

    def clean_old_kernels(self):
        return self.audit_service.clean_old_kernels()

    def offer_reboot(self):
        return self.audit_service.offer_reboot(self.reboot, self.reboot_delay_minutes)

    def show_plan(self):
        try:
            detected = read_release_codename(self.context.os_release_file)
        except UpgraderError:
            detected = "unknown"

        mode = self.select_mode()
        if mode is UpgradeMode.EXIT:
            raise UpgradeCancelled("No upgrade mode selected; nothing to plan.")

        planner = PlanningRunner(logger=logger)
        quiet = Console(quiet=True)
        plan_apt = AptService(runner=planner, logger=logger, console=quiet)
        plan_executor = UpgradeExecutorService(
            apt_service=plan_apt,
            prompt_service=PromptService(console=quiet, logger=logger, auto_confirm=True),
            logger=logger,
            console=quiet,
        )

        plan: Dict[str, Any] = {}
        for step, callback in (
            ("pre_upgrade_update", lambda: self.pre_upgrade_update(plan_apt)),
            ("upgrade", lambda: plan_executor.execute(mode)),
            ("post_upgrade_cleanup", lambda: self.post_upgrade_cleanup(plan_apt)),
        ):
            start = len(planner.commands)
            callback()
            plan[step] = planner.commands[start:]

        rewrite = self.sources_service.plan_rewrite(self.context)

        self.console.print(
            f"[bold]Dry run:[/bold] {detected} detected, upgrading "
            f"{self.context.source_release} -> {self.context.target_release} in mode {mode.label}."
        )
        table = Table(title="Planned package manager commands")
        table.add_column("Stage")
        table.add_column("Command")
        for step, commands in plan.items():
            for command in commands:
                table.add_row(step, command)
        self.console.print(table)

        files = Table(title="Repository files")
        files.add_column("File")
        files.add_column("Action")
        for path in rewrite.rewritten:
            files.add_row(path, "rewrite")
        for path in rewrite.skipped:
            files.add_row(path, "skip (third-party)")
        self.console.print(files)

        return {"mode": mode, "commands": plan, "rewrite": rewrite}

    def run(self) -> int:
        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None

        try:
            logger.info("Starting debupgrader...")
            self.manifest_service.start_run(
                run_id=self.context.run_id,
                metadata=self._build_manifest_metadata(),
            )
            self.manifest_service.set_releases(
                source=self.context.source_release,
                target=self.context.target_release,
                detected=None,
            )

            if self.dry_run:
                self._run_step("plan", self.show_plan)
                manifest_status = "planned"
                exit_code = 0
                return exit_code

            self._run_step("confirm_backups", self.confirm_backups_taken)
            self._run_step("preflight", self.run_preflight)
            self.mode = self._run_step("select_mode", self.select_mode)
            if self.mode is UpgradeMode.EXIT:
                raise UpgradeCancelled("Exiting without changes.")

            self.backup_set = self._run_step("backup", self.create_backup)
            self._run_step("pre_upgrade_update", self.pre_upgrade_update)
            self._run_step("rewrite_sources", self.rewrite_sources)
            self._run_step("upgrade", self.execute_upgrade, self.mode)
            self._run_step("post_upgrade_cleanup", self.post_upgrade_cleanup)
            self._run_step("audit", self.audit)
            self._run_step("clean_old_kernels", self.clean_old_kernels)

            self.console.print(
                f"[bold green]Upgrade to {self.context.target_release} finished.[/bold green] "
                f"Backups and log: {self.backup_set.path}"
            )
            self._run_step("reboot", self.offer_reboot)
            manifest_status = "success"
            exit_code = 0
            return exit_code

        except UpgradeCancelled as exc:
            self.console.print(f"[yellow]{exc}[/yellow]")
            logger.info(str(exc))
            manifest_status = "cancelled"
            manifest_error = str(exc)
            exit_code = 0
            return exit_code
        except KeyboardInterrupt:
            self.console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_status = "aborted"
            manifest_error = "Operation cancelled by user."
            exit_code = 1
            return exit_code
        except UpgraderError as exc:
            self.console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            self._print_recovery_hint()
            manifest_status = "failed"
            manifest_error = str(exc)
            exit_code = 1
            return exit_code
        except Exception as exc:
            self.console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            self._print_recovery_hint()
            manifest_status = "failed"
            manifest_error = str(exc)
            exit_code = 1
            return exit_code
        finally:
            self.manifest_service.finalize(manifest_status, error=manifest_error)
            self.backup_service.close_run_log()
            self.command_runner.attach_transcript(None)

    def _print_recovery_hint(self):
        if self.backup_set is None:
            return
        message = actionable_error(
            "upgrade_interrupted",
            step=self.current_step_name or "run",
            log_path=os.path.join(self.backup_set.path, RUN_LOG_NAME),
            backup_dir=self.backup_set.path,
        )
        self.console.print(f"[yellow]{message}[/yellow]")
        logger.error(message)
