"""Repository configuration parsing and release rewriting for debupgrader."""

import os
import re
import shutil
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from debupgrader.constants import (
    DEB822_FRAGMENT_EXTENSION,
    FRAGMENT_BACKUP_SUFFIX,
    LIST_FRAGMENT_EXTENSION,
)
from debupgrader.errors import UpgraderError
from debupgrader.models import RepositoryEntry, RewriteReport, RunContext

ONE_LINE_RE = re.compile(r"^\s*(deb|deb-src)\s+(?:\[[^\]]*\]\s+)?(\S+)\s+(\S+)")
SUITES_FIELD_RE = re.compile(r"^(Suites\s*:)(.*)$", re.IGNORECASE | re.MULTILINE)

ONE_LINE_FORMAT = "one-line"
DEB822_FORMAT = "deb822"


def is_first_party_uri(uri: str, domain: str) -> bool:
    host = (urlparse(uri).hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


def parse_one_line(content: str) -> List[Tuple[str, str]]:
    """Return ``(uri, suite)`` pairs from a one-line style sources file."""
    pairs = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = ONE_LINE_RE.match(stripped)
        if match:
            pairs.append((match.group(2), match.group(3)))
    return pairs


def parse_deb822(content: str) -> List[Tuple[Tuple[str, ...], Tuple[str, ...]]]:
    """Return ``(uris, suites)`` per stanza of a deb822 ``.sources`` file."""
    stanzas = []
    fields: dict = {}
    last_key: Optional[str] = None

    def flush():
        if fields:
            stanzas.append(
                (
                    tuple(fields.get("uris", "").split()),
                    tuple(fields.get("suites", "").split()),
                )
            )
            fields.clear()

    for line in content.splitlines():
        if not line.strip():
            flush()
            last_key = None
            continue
        if line.startswith("#"):
            continue
        if line[0] in " \t":
            if last_key is not None:
                fields[last_key] = f"{fields[last_key]} {line.strip()}"
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        last_key = key.strip().lower()
        fields[last_key] = value.strip()
    flush()
    return stanzas


class SourcesService:
    """Reads apt repository definitions and rewrites release tokens."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def fragment_files(self, context: RunContext) -> List[Path]:
        directory = Path(context.sources_list_d)
        if not directory.is_dir():
            return []
        extensions = (LIST_FRAGMENT_EXTENSION, DEB822_FRAGMENT_EXTENSION)
        return sorted(
            path for path in directory.iterdir() if path.is_file() and path.suffix in extensions
        )

    def read_entries(self, context: RunContext) -> List[RepositoryEntry]:
        paths = []
        if Path(context.sources_list).is_file():
            paths.append(Path(context.sources_list))
        paths.extend(self.fragment_files(context))

        entries: List[RepositoryEntry] = []
        for path in paths:
            entries.extend(self._file_entries(path, self._read(path), context))
        return entries

    def third_party_entries(self, context: RunContext) -> List[RepositoryEntry]:
        return [entry for entry in self.read_entries(context) if not entry.first_party]

    def is_first_party_file(self, path: Path, content: str, context: RunContext) -> bool:
        """A file is rewritten only if one of its repository URIs is first-party."""
        return any(entry.first_party for entry in self._file_entries(path, content, context))

    @staticmethod
    def _file_entries(path: Path, content: str, context: RunContext) -> List[RepositoryEntry]:
        domain = context.first_party_domain
        if path.suffix == DEB822_FRAGMENT_EXTENSION:
            return [
                RepositoryEntry(
                    path=str(path),
                    format=DEB822_FORMAT,
                    uris=uris,
                    suites=suites,
                    first_party=any(is_first_party_uri(uri, domain) for uri in uris),
                )
                for uris, suites in parse_deb822(content)
            ]
        return [
            RepositoryEntry(
                path=str(path),
                format=ONE_LINE_FORMAT,
                uris=(uri,),
                suites=(suite,),
                first_party=is_first_party_uri(uri, domain),
            )
            for uri, suite in parse_one_line(content)
        ]

    def plan_rewrite(self, context: RunContext) -> RewriteReport:
        report = RewriteReport()
        if Path(context.sources_list).is_file():
            report.rewritten.append(context.sources_list)
        for path in self.fragment_files(context):
            if self.is_first_party_file(path, self._read(path), context):
                report.rewritten.append(str(path))
            else:
                report.skipped.append(str(path))
        return report

    def rewrite(self, context: RunContext) -> RewriteReport:
        report = RewriteReport()
        source, target = context.source_release, context.target_release

        sources_list = Path(context.sources_list)
        if sources_list.is_file():
            self._backup(sources_list, f"{sources_list}.{source}_backup")
            content = self._read(sources_list)
            self._write(sources_list, content.replace(source, target))
            report.rewritten.append(str(sources_list))
            self.logger.info("Rewrote %s: %s -> %s", sources_list, source, target)
        else:
            self.logger.warning("%s not found; relying on sources.list.d only.", sources_list)

        for path in self.fragment_files(context):
            self._backup(path, f"{path}{FRAGMENT_BACKUP_SUFFIX}")
            content = self._read(path)

            if not self.is_first_party_file(path, content, context):
                message = f"Skipping third-party repository file: {path}"
                self.logger.warning(message)
                self.console.print(f"[yellow]{message}[/yellow]")
                report.skipped.append(str(path))
                continue

            if path.suffix == DEB822_FRAGMENT_EXTENSION:
                updated = SUITES_FIELD_RE.sub(
                    lambda match: match.group(1) + match.group(2).replace(source, target),
                    content,
                )
            else:
                updated = content.replace(source, target)

            self._write(path, updated)
            report.rewritten.append(str(path))
            self.logger.info("Rewrote %s: %s -> %s", path, source, target)

        self.console.print(
            f"[green]Repository configuration now points at {target} "
            f"({len(report.rewritten)} rewritten, {len(report.skipped)} skipped).[/green]"
        )
        return report

    def _backup(self, path: Path, backup_path: str):
        try:
            shutil.copy2(path, backup_path)
        except OSError as exc:
            raise UpgraderError(f"Could not back up {path} before rewriting: {exc}") from exc
        self.logger.debug("Backed up %s to %s", path, backup_path)

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise UpgraderError(f"Could not read repository file '{path}': {exc}") from exc

    @staticmethod
    def _write(path: Path, content: str):
        temp_path = f"{path}.debupgrader-tmp"
        try:
            with open(temp_path, "w", encoding="utf-8", newline="") as file_obj:
                file_obj.write(content)
            shutil.copymode(path, temp_path)
            os.replace(temp_path, path)
        except OSError as exc:
            raise UpgraderError(f"Could not write repository file '{path}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
