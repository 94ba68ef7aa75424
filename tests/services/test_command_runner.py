import subprocess
import sys

import pytest

from debupgrader.errors import UpgraderError
from debupgrader.services.command_runner import CommandRunner, PlanningRunner


class RecordingLogger:
    def __init__(self):
        self.lines = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, message, *args, **_kwargs):
        self.lines.append(message % args if args else message)

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(UpgraderError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=RecordingLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_reports_missing_command():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(UpgraderError, match="Required command not found"):
        runner.run(["debupgrader-no-such-command"], capture_output=True)


def test_command_runner_merges_environment_overrides():
    runner = CommandRunner(logger=RecordingLogger())

    result = runner.run(
        [sys.executable, "-c", "import os; print(os.environ['DEBIAN_FRONTEND'])"],
        capture_output=True,
        env={"DEBIAN_FRONTEND": "noninteractive"},
    )

    assert result.stdout.strip() == "noninteractive"


def test_stream_relays_output_lines_to_logger():
    logger = RecordingLogger()
    runner = CommandRunner(logger=logger)

    returncode = runner.stream([sys.executable, "-c", "print('first'); print(); print('second')"])

    assert returncode == 0
    assert logger.lines == ["first", "second"]


def test_stream_raises_on_failure():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(UpgraderError, match=r"Command failed \(3\)"):
        runner.stream([sys.executable, "-c", "import sys; sys.exit(3)"])


def test_planning_runner_records_without_executing():
    runner = PlanningRunner(logger=RecordingLogger())

    result = runner.run(["apt-get", "full-upgrade", "-y"])
    runner.stream(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})

    assert result.returncode == 0
    assert runner.commands == [
        "apt-get full-upgrade -y",
        "DEBIAN_FRONTEND=noninteractive apt-get update",
    ]


class RecordingSubprocess:
    PIPE = -1
    STDOUT = -2
    DEVNULL = -3

    def __init__(self, process=None):
        self.calls = []
        self.process = process

    def run(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def Popen(self, cmd, **_kwargs):
        self.calls.append((cmd, _kwargs))
        return self.process


class InterruptedOutput:
    def __iter__(self):
        yield "Unpacking base-files (13.8) ...\n"
        raise KeyboardInterrupt

    def close(self):
        self.closed = True


class RunningProcess:
    def __init__(self):
        self.stdout = InterruptedOutput()
        self.terminated = False
        self.waited = False

    def poll(self):
        return 0 if self.terminated else None

    def terminate(self):
        self.terminated = True

    def wait(self):
        self.waited = True
        return -15


def test_attached_commands_are_recorded_in_transcript(tmp_path):
    fake = RecordingSubprocess()
    runner = CommandRunner(logger=RecordingLogger(), subprocess_module=fake)
    runner.attach_transcript(str(tmp_path / "upgrade.log"))

    runner.run(["apt-get", "full-upgrade", "-y"])
    runner.run(["apt-mark", "showhold"], capture_output=True)

    attached, captured = fake.calls
    assert attached[0] == [
        "script",
        "-q",
        "-a",
        "-e",
        "-f",
        "-c",
        "apt-get full-upgrade -y",
        str(tmp_path / "upgrade.log"),
    ]
    assert captured[0] == ["apt-mark", "showhold"]


def test_attached_commands_run_directly_without_transcript():
    fake = RecordingSubprocess()
    runner = CommandRunner(logger=RecordingLogger(), subprocess_module=fake)

    runner.run(["apt-get", "dist-upgrade", "-y"])

    assert fake.calls[0][0] == ["apt-get", "dist-upgrade", "-y"]


def test_stream_stops_child_when_interrupted():
    process = RunningProcess()
    logger = RecordingLogger()
    runner = CommandRunner(logger=logger, subprocess_module=RecordingSubprocess(process))

    with pytest.raises(KeyboardInterrupt):
        runner.stream(["apt-get", "update"])

    assert process.terminated is True
    assert process.waited is True
    assert process.stdout.closed is True
    assert logger.lines == ["Unpacking base-files (13.8) ..."]
