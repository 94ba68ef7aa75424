"""Subprocess execution service for debupgrader."""

import os
import shlex
import subprocess
from typing import Dict, List, Optional

from debupgrader.errors import UpgraderError


class CommandRunner:
    """Runs external commands with consistent error handling.

    Every command is attempted exactly once. ``run`` either captures output
    for parsing or leaves the terminal attached so package-manager prompts
    reach the operator; ``stream`` relays output line by line to the logger
    so it also lands in the run log.

    Once a transcript file is attached, terminal-attached commands run under
    ``script(1)`` so their full output is appended to that file as well.
    """

    def __init__(self, logger, subprocess_module=subprocess):
        self.logger = logger
        self.subprocess = subprocess_module
        self.transcript_path: Optional[str] = None

    def attach_transcript(self, path: Optional[str]):
        self.transcript_path = path

    def _attached_command(self, cmd: List[str]) -> List[str]:
        if not self.transcript_path:
            return cmd
        # -e keeps the child's exit status, -f flushes after every write.
        return ["script", "-q", "-a", "-e", "-f", "-c", shlex.join(cmd), self.transcript_path]

    @staticmethod
    def _build_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        executed = cmd if capture_output else self._attached_command(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = self.subprocess.run(
                executed,
                text=True,
                capture_output=capture_output,
                env=self._build_env(env),
            )
        except FileNotFoundError as exc:
            raise UpgraderError(
                f"Required command not found: {executed[0]}. Please install it and try again."
            ) from exc
        except OSError as exc:
            raise UpgraderError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise UpgraderError(message)

        self.logger.warning(message)
        return result

    def stream(
        self,
        cmd: List[str],
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            process = self.subprocess.Popen(
                cmd,
                stdout=self.subprocess.PIPE,
                stderr=self.subprocess.STDOUT,
                stdin=self.subprocess.DEVNULL,
                text=True,
                bufsize=1,
                env=self._build_env(env),
            )
        except FileNotFoundError as exc:
            raise UpgraderError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except OSError as exc:
            raise UpgraderError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if not process.stdout:
            raise UpgraderError(f"Command did not expose its output: {cmd_str}")

        try:
            for line in process.stdout:
                cleaned = line.rstrip()
                if not cleaned:
                    continue
                self.logger.info(cleaned)
            returncode = process.wait()
        finally:
            if process.poll() is None:
                self.logger.warning("Stopping interrupted command: %s", cmd_str)
                process.terminate()
                process.wait()
            process.stdout.close()

        if returncode != 0:
            message = f"Command failed ({returncode}): {cmd_str}"
            if check:
                raise UpgraderError(message)
            self.logger.warning(message)
        return returncode


class PlanningRunner:
    """Records commands instead of executing them, for ``--dry-run`` plans."""

    def __init__(self, logger):
        self.logger = logger
        self.commands: List[str] = []

    def _record(self, cmd: List[str], env: Optional[Dict[str, str]]) -> str:
        prefix = " ".join(f"{key}={value}" for key, value in sorted((env or {}).items()))
        cmd_str = f"{prefix} {' '.join(cmd)}".strip()
        self.commands.append(cmd_str)
        self.logger.debug("Planned: %s", cmd_str)
        return cmd_str

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        self._record(cmd, env)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def stream(self, cmd: List[str], check: bool = True, env: Optional[Dict[str, str]] = None) -> int:
        self._record(cmd, env)
        return 0
