from pathlib import Path

from debupgrader.models import RunContext
from debupgrader.services.sources import (
    SourcesService,
    is_first_party_uri,
    parse_deb822,
    parse_one_line,
)


class RecordingLogger:
    def __init__(self):
        self.warnings = []

    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


DEBIAN_SOURCES = """Types: deb
URIs: http://deb.debian.org/debian
Suites: bookworm bookworm-updates
Components: main contrib
Signed-By: /usr/share/keyrings/debian-archive-keyring.gpg

# security
Types: deb
URIs: http://security.debian.org/debian-security
Suites: bookworm-security
Components: main
"""

VSCODE_SOURCES = """Types: deb
URIs: https://packages.microsoft.com/repos/code
Suites: stable
Components: main
"""


def _context(tmp_path: Path) -> RunContext:
    apt_dir = tmp_path / "etc" / "apt"
    (apt_dir / "sources.list.d").mkdir(parents=True)
    return RunContext(
        run_id="test",
        sources_list=str(apt_dir / "sources.list"),
        sources_list_d=str(apt_dir / "sources.list.d"),
    )


def _service(logger=None):
    return SourcesService(logger=logger or RecordingLogger(), console=DummyConsole())


def test_first_party_uri_matches_domain_and_subdomains():
    assert is_first_party_uri("http://deb.debian.org/debian", "debian.org")
    assert is_first_party_uri("https://security.debian.org/", "debian.org")
    assert not is_first_party_uri("http://example.com/debian.org/", "debian.org")
    assert not is_first_party_uri("http://notdebian.org/debian", "debian.org")


def test_parse_one_line_skips_comments_and_options():
    content = (
        "# deb http://deb.debian.org/debian bookworm main\n"
        "deb [arch=amd64 signed-by=/usr/share/keyrings/k.gpg] http://example.com/ppa stable main\n"
        "deb-src http://deb.debian.org/debian bookworm main\n"
    )

    assert parse_one_line(content) == [
        ("http://example.com/ppa", "stable"),
        ("http://deb.debian.org/debian", "bookworm"),
    ]


def test_parse_deb822_returns_each_stanza():
    stanzas = parse_deb822(DEBIAN_SOURCES)

    assert stanzas == [
        (("http://deb.debian.org/debian",), ("bookworm", "bookworm-updates")),
        (("http://security.debian.org/debian-security",), ("bookworm-security",)),
    ]


def test_rewrite_main_sources_list_and_keeps_backup(tmp_path):
    context = _context(tmp_path)
    original = (
        "deb http://deb.debian.org/debian bookworm main\n"
        "deb http://security.debian.org/debian-security bookworm-security main\n"
    )
    Path(context.sources_list).write_text(original, encoding="utf-8")

    report = _service().rewrite(context)

    assert Path(context.sources_list).read_text(encoding="utf-8") == (
        "deb http://deb.debian.org/debian trixie main\n"
        "deb http://security.debian.org/debian-security trixie-security main\n"
    )
    backup = Path(f"{context.sources_list}.bookworm_backup")
    assert backup.read_text(encoding="utf-8") == original
    assert context.sources_list in report.rewritten


def test_third_party_fragment_is_untouched_and_reported(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "ppa.list"
    original = b"deb http://example.com/ppa stable main\n"
    fragment.write_bytes(original)
    logger = RecordingLogger()

    report = _service(logger).rewrite(context)

    assert fragment.read_bytes() == original
    assert report.skipped == [str(fragment)]
    assert any(str(fragment) in warning for warning in logger.warnings)


def test_first_party_fragment_is_fully_rewritten(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "debian-extra.list"
    original = b"deb http://deb.debian.org/debian bookworm-backports main\n"
    fragment.write_bytes(original)

    report = _service().rewrite(context)

    assert b"bookworm" not in fragment.read_bytes()
    assert Path(f"{fragment}.bak").read_bytes() == original
    assert str(fragment) in report.rewritten


def test_deb822_rewrite_only_touches_suites(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "debian.sources"
    content = DEBIAN_SOURCES.replace(
        "Components: main contrib",
        "Components: main contrib\nX-Note: keep bookworm here",
    )
    fragment.write_text(content, encoding="utf-8")

    _service().rewrite(context)

    rewritten = fragment.read_text(encoding="utf-8")
    assert "Suites: trixie trixie-updates" in rewritten
    assert "Suites: trixie-security" in rewritten
    assert "X-Note: keep bookworm here" in rewritten
    assert Path(f"{fragment}.bak").read_text(encoding="utf-8") == content


def test_third_party_deb822_fragment_is_untouched(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "vscode.sources"
    fragment.write_text(VSCODE_SOURCES, encoding="utf-8")

    report = _service().rewrite(context)

    assert fragment.read_text(encoding="utf-8") == VSCODE_SOURCES
    assert report.skipped == [str(fragment)]


def test_backup_files_are_not_treated_as_fragments(tmp_path):
    context = _context(tmp_path)
    directory = Path(context.sources_list_d)
    (directory / "debian.list").write_text("deb http://deb.debian.org/debian bookworm main\n", encoding="utf-8")
    (directory / "debian.list.bak").write_text("deb http://deb.debian.org/debian bookworm main\n", encoding="utf-8")

    assert _service().fragment_files(context) == [directory / "debian.list"]


def test_third_party_entries_lists_only_foreign_repositories(tmp_path):
    context = _context(tmp_path)
    Path(context.sources_list).write_text(
        "deb http://deb.debian.org/debian bookworm main\n"
        "deb http://example.com/ppa stable main\n",
        encoding="utf-8",
    )
    (Path(context.sources_list_d) / "vscode.sources").write_text(VSCODE_SOURCES, encoding="utf-8")

    entries = _service().third_party_entries(context)

    assert [entry.uris for entry in entries] == [
        ("http://example.com/ppa",),
        ("https://packages.microsoft.com/repos/code",),
    ]
    assert [entry.format for entry in entries] == ["one-line", "deb822"]


def test_plan_rewrite_does_not_modify_files(tmp_path):
    context = _context(tmp_path)
    Path(context.sources_list).write_text("deb http://deb.debian.org/debian bookworm main\n", encoding="utf-8")
    third_party = Path(context.sources_list_d) / "ppa.list"
    third_party.write_text("deb http://example.com/ppa stable main\n", encoding="utf-8")

    report = _service().plan_rewrite(context)

    assert report.rewritten == [context.sources_list]
    assert report.skipped == [str(third_party)]
    assert "bookworm" in Path(context.sources_list).read_text(encoding="utf-8")
    assert not Path(f"{context.sources_list}.bookworm_backup").exists()


def test_fragment_mentioning_debian_only_in_comments_is_third_party(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "mirror.list"
    original = (
        "# mirrors packages from deb.debian.org bookworm\n"
        "deb http://mirror.example.com/bookworm stable main\n"
    )
    fragment.write_text(original, encoding="utf-8")
    service = _service()

    planned = service.plan_rewrite(context)
    third_party = service.third_party_entries(context)
    report = service.rewrite(context)

    assert planned.skipped == [str(fragment)]
    assert [entry.path for entry in third_party] == [str(fragment)]
    assert report.skipped == [str(fragment)]
    assert fragment.read_text(encoding="utf-8") == original


def test_fragment_with_debian_hostname_in_path_only_is_third_party(tmp_path):
    context = _context(tmp_path)
    fragment = Path(context.sources_list_d) / "proxy.list"
    fragment.write_text("deb http://proxy.example.com/deb.debian.org/debian bookworm main\n", encoding="utf-8")

    report = _service().rewrite(context)

    assert report.skipped == [str(fragment)]
    assert "bookworm" in fragment.read_text(encoding="utf-8")
