"""Upgrade strategies for debupgrader."""

from typing import Union

from debupgrader.errors import UpgradeCancelled, UpgraderError
from debupgrader.errors_catalog import actionable_error
from debupgrader.models import UpgradeMode


def parse_mode(value: Union[str, int, UpgradeMode, None]) -> UpgradeMode:
    """Turn a menu answer or configured value into an :class:`UpgradeMode`."""
    if isinstance(value, UpgradeMode):
        return value

    text = "" if value is None else str(value).strip()
    if not text.isdigit():
        raise UpgraderError(actionable_error("invalid_mode", value=repr(text)))
    try:
        return UpgradeMode(int(text))
    except ValueError as exc:
        raise UpgraderError(actionable_error("invalid_mode", value=text)) from exc


class UpgradeExecutorService:
    """Runs the selected upgrade mode against the rewritten repositories."""

    def __init__(self, apt_service, prompt_service, logger, console):
        self.apt = apt_service
        self.prompt = prompt_service
        self.logger = logger
        self.console = console

    def execute(self, mode: UpgradeMode):
        handlers = {
            UpgradeMode.AUTO: self.run_auto,
            UpgradeMode.FULL: self.run_full,
            UpgradeMode.SAFE: self.run_safe,
            UpgradeMode.MINIMAL: self.run_minimal,
            UpgradeMode.CUSTOM: self.run_custom,
        }
        if mode not in handlers:
            raise UpgraderError(f"Upgrade mode {mode.name} does not run an upgrade.")

        self.logger.info("Running upgrade mode %s: %s", int(mode), mode.label)
        self.console.print(f"[bold blue]Upgrade mode: {mode.label}[/bold blue]")
        handlers[mode]()

    def run_minimal(self):
        self.console.print("[blue]Minimal upgrade: existing packages only...[/blue]")
        self.apt.update()
        self.apt.upgrade(without_new_pkgs=True)
        self.console.print("[green]Minimal upgrade completed.[/green]")

    def run_full(self):
        self.console.print("[blue]Full upgrade: simulating first...[/blue]")
        self.apt.update()
        simulation = self.apt.simulate_full_upgrade()
        self.logger.debug("Full upgrade simulation:\n%s", simulation)
        self.console.print(simulation, markup=False, highlight=False)

        if not self.prompt.confirm("Apply the full upgrade shown above?"):
            raise UpgradeCancelled("Full upgrade cancelled by operator.")

        self.apt.full_upgrade(assume_yes=True)
        self.console.print("[green]Full upgrade completed.[/green]")

    def run_safe(self):
        self.run_minimal()
        self.run_full()

    def run_auto(self):
        self.console.print(
            "[blue]Automatic upgrade: non-interactive, keeping existing configuration files...[/blue]"
        )
        self.apt.update()
        self.apt.full_upgrade_noninteractive()
        self.console.print("[green]Automatic upgrade completed.[/green]")

    def run_custom(self):
        self.console.print("[blue]Custom upgrade: answer each package manager prompt...[/blue]")
        self.apt.update()
        self.apt.full_upgrade(assume_yes=False)
        self.console.print("[green]Custom upgrade completed.[/green]")
