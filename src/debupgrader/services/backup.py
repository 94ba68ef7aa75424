"""Backup set creation and run log handling for debupgrader."""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from rich.console import Console

from debupgrader.constants import DIR_MODE, RUN_LOG_NAME
from debupgrader.errors import UpgraderError
from debupgrader.models import BackupSet, RunContext

MIRROR_PRINT_OPTIONS = {"markup", "highlight", "style", "justify", "emoji", "sep", "end"}


class RunConsole:
    """Terminal console whose status output is mirrored into the run log.

    Everything else (prompts, sizing) is delegated to the wrapped console.
    """

    def __init__(self, console: Console):
        self.console = console
        self.mirror: Optional[Console] = None
        self._mirror_file: Optional[TextIO] = None

    def attach(self, path: str):
        self.detach()
        self._mirror_file = open(path, "a", encoding="utf-8")
        self.mirror = Console(file=self._mirror_file, width=200, soft_wrap=True, log_path=False)

    def detach(self):
        if self._mirror_file is None:
            return
        self._mirror_file.close()
        self._mirror_file = None
        self.mirror = None

    def print(self, *objects, **kwargs):
        self.console.print(*objects, **kwargs)
        if self.mirror is not None:
            options = {key: value for key, value in kwargs.items() if key in MIRROR_PRINT_OPTIONS}
            self.mirror.log(*objects, **options)

    def __getattr__(self, name):
        return getattr(self.console, name)


class RunLog:
    """Append-only log file for one run.

    Attaches a handler to the package logger and, when given a
    :class:`RunConsole`, mirrors its status lines into the same file.
    """

    def __init__(self, path: str, logger: logging.Logger, console: Optional[RunConsole] = None):
        self.path = path
        self.logger = logger
        self.console = console
        self.handler: Optional[logging.FileHandler] = None

    def open(self) -> "RunLog":
        if self.handler is not None:
            return self
        handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(handler)
        self.handler = handler
        if self.console is not None:
            self.console.attach(self.path)
        return self

    def close(self):
        if self.handler is None:
            return
        if self.console is not None:
            self.console.detach()
        self.logger.removeHandler(self.handler)
        self.handler.close()
        self.handler = None


class BackupService:
    """Creates the timestamped backup set before the system is touched."""

    def __init__(
        self,
        apt_service,
        runner,
        logger,
        console,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.apt = apt_service
        self.runner = runner
        self.logger = logger
        self.console = console
        self.clock = clock
        self.run_log: Optional[RunLog] = None

    def create(self, context: RunContext) -> BackupSet:
        created_at = self.clock()
        path = self._make_directory(context.backup_root, created_at)

        mirror = self.console if isinstance(self.console, RunConsole) else None
        self.run_log = RunLog(os.path.join(path, RUN_LOG_NAME), self.logger, console=mirror).open()
        self.logger.info("Backup directory created: %s", path)
        self.console.print(f"[blue]Backing up system state to {path}...[/blue]")

        artifacts: List[str] = []
        for name, source in context.backup_paths:
            if self._copy(source, os.path.join(path, name)):
                artifacts.append(name)

        dumps = (
            ("package-selections.txt", self.apt.package_selections),
            ("installed-packages.txt", self.apt.installed_packages),
            ("system-info.txt", lambda: self._system_info(context)),
            ("disk-usage.txt", self._disk_usage),
        )
        for name, producer in dumps:
            if self._dump(os.path.join(path, name), producer):
                artifacts.append(name)

        self.console.print(f"[green]Backed up {len(artifacts)} items to {path}.[/green]")
        return BackupSet(path=path, created_at=created_at, artifacts=tuple(artifacts))

    def snapshot_installed(self, backup_set: BackupSet, name: str) -> Optional[str]:
        target = os.path.join(backup_set.path, name)
        if self._dump(target, self.apt.installed_packages):
            return target
        return None

    def close_run_log(self):
        if self.run_log is not None:
            self.run_log.close()

    def _make_directory(self, backup_root: str, created_at: datetime) -> str:
        base = os.path.join(backup_root, f"system_backup_{created_at:%Y%m%d_%H%M%S}")
        candidate = base
        suffix = 1
        while True:
            try:
                os.makedirs(candidate, mode=DIR_MODE, exist_ok=False)
                return candidate
            except FileExistsError:
                candidate = f"{base}_{suffix}"
                suffix += 1
            except OSError as exc:
                raise UpgraderError(f"Could not create backup directory {candidate}: {exc}") from exc

    def _copy(self, source: str, destination: str) -> bool:
        try:
            if os.path.isdir(source):
                shutil.copytree(source, destination, symlinks=True)
            elif os.path.isfile(source):
                shutil.copy2(source, destination)
            else:
                self._warn_skip(source, "not found")
                return False
        except (OSError, shutil.Error) as exc:
            self._warn_skip(source, str(exc))
            return False
        self.logger.debug("Copied %s", source)
        return True

    def _dump(self, destination: str, producer) -> bool:
        try:
            content = producer()
            Path(destination).write_text(content, encoding="utf-8")
        except (UpgraderError, OSError) as exc:
            self._warn_skip(os.path.basename(destination), str(exc))
            return False
        self.logger.debug("Wrote %s", destination)
        return True

    def _warn_skip(self, item: str, reason: str):
        message = f"Skipping backup of {item}: {reason}"
        self.logger.warning(message)
        self.console.print(f"[yellow]{message}[/yellow]")

    def _system_info(self, context: RunContext) -> str:
        uname = self.runner.run(["uname", "-a"], capture_output=True).stdout or ""
        try:
            os_release = Path(context.os_release_file).read_text(encoding="utf-8")
        except OSError as exc:
            os_release = f"unavailable: {exc}\n"
        return f"{uname.rstrip()}\n\n{os_release}"

    def _disk_usage(self) -> str:
        return self.runner.run(["df", "-h"], capture_output=True).stdout or ""
