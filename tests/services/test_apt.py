import subprocess

import pytest

from debupgrader.errors import UpgraderError
from debupgrader.services.apt import (
    AptService,
    kernel_release,
    parse_status_abbrev,
    parse_upgradable,
)


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeRunner:
    def __init__(self, outputs=None, returncode=0):
        self.outputs = outputs or {}
        self.returncode = returncode
        self.calls = []

    def run(self, cmd, check=True, capture_output=False, env=None):
        self.calls.append(("run", cmd, env))
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.outputs.get(cmd[0], ""), stderr="")

    def stream(self, cmd, check=True, env=None):
        self.calls.append(("stream", cmd, env))
        return 0


def _service(runner):
    return AptService(runner=runner, logger=DummyLogger(), console=DummyConsole())


def test_parse_status_abbrev_pads_stripped_error_flag():
    entries = parse_status_abbrev("ii \tbash\nrc\told-lib\niHR\tbroken-pkg\n")

    assert entries == [("ii ", "bash"), ("rc ", "old-lib"), ("iHR", "broken-pkg")]


def test_parse_status_abbrev_rejects_malformed_lines():
    with pytest.raises(UpgraderError, match="Unexpected dpkg-query status line"):
        parse_status_abbrev("garbage without tab\n")


def test_parse_upgradable_skips_header_and_warnings():
    output = (
        "Listing... Done\n"
        "WARNING: apt does not have a stable CLI interface.\n"
        "base-files/trixie 13.8 amd64 [upgradable from: 12.4]\n"
        "libc6/trixie 2.41-12 amd64 [upgradable from: 2.36-9]\n"
    )

    assert parse_upgradable(output) == ["base-files", "libc6"]


def test_broken_packages_detects_error_and_partial_states():
    runner = FakeRunner(
        outputs={
            "dpkg-query": "ii \tbash\niU \thalf-unpacked\niF \thalf-configured\nrc \tremoved\niiR\treinst\n"
        }
    )

    assert _service(runner).broken_packages() == ["half-unpacked", "half-configured", "reinst"]


def test_installed_kernels_excludes_meta_packages_and_removed_kernels():
    runner = FakeRunner(
        outputs={
            "dpkg-query": (
                "ii \tlinux-image-6.1.0-18-amd64\n"
                "ii \tlinux-image-6.12.38+deb13-amd64\n"
                "ii \tlinux-image-amd64\n"
                "rc \tlinux-image-5.10.0-20-amd64\n"
            )
        },
        returncode=0,
    )

    assert _service(runner).installed_kernels() == [
        "linux-image-6.1.0-18-amd64",
        "linux-image-6.12.38+deb13-amd64",
    ]


def test_installed_kernels_tolerates_no_match_exit_code():
    runner = FakeRunner(returncode=1)

    assert _service(runner).installed_kernels() == []


def test_noninteractive_full_upgrade_keeps_old_config_files():
    runner = FakeRunner()

    _service(runner).full_upgrade_noninteractive()

    kind, cmd, env = runner.calls[0]
    assert kind == "stream"
    assert env == {"DEBIAN_FRONTEND": "noninteractive"}
    assert "Dpkg::Options::=--force-confold" in cmd
    assert "Dpkg::Options::=--force-confdef" in cmd
    assert cmd[-1] == "full-upgrade"


def test_minimal_upgrade_forbids_new_packages():
    runner = FakeRunner()

    _service(runner).upgrade(without_new_pkgs=True)

    assert runner.calls == [("run", ["apt-get", "upgrade", "-y", "--without-new-pkgs"], None)]


def test_purge_without_packages_runs_nothing():
    runner = FakeRunner()

    _service(runner).purge([])

    assert runner.calls == []


@pytest.mark.parametrize(
    "package, expected",
    [
        ("linux-image-6.1.0-18-amd64", "6.1.0-18-amd64"),
        ("linux-image-6.1.0-18-amd64-unsigned", "6.1.0-18-amd64"),
        ("linux-image-6.12.38+deb13-amd64-dbg", "6.12.38+deb13-amd64"),
        ("linux-image-amd64", None),
    ],
)
def test_kernel_release_strips_build_variants(package, expected):
    assert kernel_release(package) == expected


def test_version_lt_uses_dpkg_ordering():
    runner = FakeRunner(returncode=0)

    assert _service(runner).version_lt("6.1.0-18-amd64", "6.12.38+deb13-amd64") is True
    assert runner.calls == [
        ("run", ["dpkg", "--compare-versions", "6.1.0-18-amd64", "lt", "6.12.38+deb13-amd64"], None)
    ]


def test_version_lt_is_false_when_dpkg_disagrees():
    assert _service(FakeRunner(returncode=1)).version_lt("6.12.38+deb13-amd64", "6.1.0-18-amd64") is False


def test_version_lt_rejects_invalid_versions():
    with pytest.raises(UpgraderError, match="Could not compare versions"):
        _service(FakeRunner(returncode=2)).version_lt("not a version", "6.1.0-18-amd64")
