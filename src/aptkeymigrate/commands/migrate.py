# This file is part of apt-key-migrate, a tool for moving APT sources off apt-key.
#
# Copyright 2025 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# apt-key-migrate is free software: you can redistribute it and/or modify it
# under the terms of the GNU General Public License version 3, as published by
# the Free Software Foundation.
#
# apt-key-migrate is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# apt-key-migrate. If not, see <http://www.gnu.org/licenses/>.

"""Implementation of the `apt-key-migrate` command.

Walks the APT repository files, adds `[signed-by=...]` to every deb/deb-src
line that lacks it, and stores the signing keys in one keyring file per
repository file.
"""

from __future__ import annotations

import signal
import sys
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NoReturn

import typer

from aptkeymigrate.context import (
    FileResult,
    FileStatus,
    MigrationContext,
    MigrationSettings,
    MigrationSummary,
)
from aptkeymigrate.exceptions import (
    EXIT_UNREADABLE_FILE,
    ConfigError,
    KeyDownloadFailedError,
    KeyExpiredError,
    KeyIdNotFoundError,
    MetadataUnavailableError,
    MigrationError,
    SourceParseError,
    UnreadableFileError,
)
from aptkeymigrate.fetch import MetadataFetcher
from aptkeymigrate.gpg import GpgKeyTool, KeyTool
from aptkeymigrate.keys import KeyResolver
from aptkeymigrate.paths import ensure_keyring_dir, keyring_path_for, source_stem
from aptkeymigrate.run import RunContext, activity
from aptkeymigrate.sources import commit_source_file, enumerate_source_files, read_source_file
from aptkeymigrate.sourceline import LineKind, add_signed_by, classify_line, metadata_url
from aptkeymigrate.spinner import set_disabled

EXIT_INTERRUPTED = 130

KEY_FAILURES = (MetadataUnavailableError, KeyIdNotFoundError, KeyDownloadFailedError)


def migrate_file(
    path: Path,
    resolver: KeyResolver,
    settings: MigrationSettings,
    run: RunContext | None = None,
) -> FileResult:
    """Migrate one repository file.

    The file is rewritten only if every line needing a key could be resolved.
    An expired key abandons the whole file; a download failure fails it. In
    both cases the original file is left untouched.
    """
    label = source_stem(path)

    def log(event: dict[str, Any]) -> None:
        if run:
            run.log_event({"path": str(path), **event})

    try:
        original = read_source_file(path)
    except UnreadableFileError as e:
        activity(label, f"WARNING: {e.message} - skipping")
        log({"event": "file.unreadable", "error": e.message})
        return FileResult(path=path, status=FileStatus.UNREADABLE, error=e)

    keyring = keyring_path_for(path, settings.keyring_dir, settings.keyring_suffix)
    text = original.decode("utf-8", errors="surrogateescape")
    result = FileResult(path=path, status=FileStatus.UNCHANGED)
    new_lines: list[str] = []

    try:
        for line in text.splitlines(keepends=True):
            if classify_line(line) is not LineKind.NEEDS_MIGRATION:
                new_lines.append(line)
                continue

            activity(label, f">> {line.strip()}")
            try:
                url = metadata_url(line)
            except SourceParseError as e:
                warning = f"{e.message}: {e.line}"
                activity(label, f"WARNING: {warning} - line left unchanged")
                log({"event": "line.parse_error", "line": e.line, "error": e.message})
                result.warnings.append(warning)
                new_lines.append(line)
                continue

            key_id = resolver.resolve(url, keyring, phase=label)
            new_lines.append(add_signed_by(line, keyring))
            result.migrated_lines += 1
            log({"event": "line.migrated", "url": url, "key_id": key_id, "keyring": str(keyring)})
    except KeyExpiredError as e:
        activity(label, f"SKIPPING migration - {e.message}")
        log({"event": "file.abandoned", "key_id": e.key_id, "expiry": e.expiry})
        result.status, result.error, result.migrated_lines = FileStatus.ABANDONED, e, 0
        return result
    except KEY_FAILURES as e:
        activity(label, f"ERROR: {e.message}")
        log({"event": "file.failed", "error": e.message})
        result.status, result.error, result.migrated_lines = FileStatus.FAILED, e, 0
        return result
    except OSError as e:
        error = MigrationError(message=f"Cannot write keyring {keyring}: {e}", exit_code=EXIT_UNREADABLE_FILE)
        activity(label, f"ERROR: {error.message}")
        log({"event": "file.failed", "error": error.message})
        result.status, result.error, result.migrated_lines = FileStatus.FAILED, error, 0
        return result

    new = "".join(new_lines).encode("utf-8", errors="surrogateescape")
    try:
        changed = commit_source_file(path, original, new, settings.backup_suffix)
    except OSError as e:
        error = MigrationError(message=f"Cannot replace {path}: {e}", exit_code=EXIT_UNREADABLE_FILE)
        activity(label, f"ERROR: {error.message}")
        log({"event": "file.failed", "error": error.message})
        result.status, result.error, result.migrated_lines = FileStatus.FAILED, error, 0
        return result

    if changed:
        result.status = FileStatus.MIGRATED
        activity(label, f"migration done ({result.migrated_lines} line(s), backup {path}{settings.backup_suffix})")
    else:
        activity(label, "unchanged")
    log({"event": f"file.{result.status.value}", "migrated_lines": result.migrated_lines})
    return result


def migrate_sources(
    files: Sequence[Path],
    settings: MigrationSettings,
    run: RunContext | None = None,
    key_tool: KeyTool | None = None,
    fetcher: MetadataFetcher | None = None,
) -> MigrationSummary:
    """Migrate every file in order, sharing key lookups across them.

    A private working directory holds scratch keyrings and the gpg home; it is
    removed when this returns, including on errors and interrupts.
    """
    ensure_keyring_dir(settings.keyring_dir)
    summary = MigrationSummary()

    with tempfile.TemporaryDirectory(prefix="apt-key-migrate-") as tmp:
        workdir = Path(tmp)
        ctx = MigrationContext(workdir=workdir)

        gpg_tool: GpgKeyTool | None = None
        if key_tool is None:
            gpg_tool = GpgKeyTool(homedir=workdir / "gnupg", keyserver=settings.keyserver, timeout=settings.timeout)
            key_tool = gpg_tool
        own_fetcher = fetcher is None
        if fetcher is None:
            fetcher = MetadataFetcher(timeout=settings.timeout)

        resolver = KeyResolver(ctx, fetcher, key_tool)
        try:
            for path in files:
                summary.results.append(migrate_file(path, resolver, settings, run=run))
        finally:
            if own_fetcher:
                fetcher.close()
            if gpg_tool is not None:
                gpg_tool.close()

    return summary


def _terminate(signum: int, frame: object) -> NoReturn:
    # Route SIGTERM through the same cleanup path as Ctrl-C.
    raise KeyboardInterrupt(f"signal {signum}")


def migrate(
    keyring_dir: str = typer.Argument("", help="Directory for the per-repository keyring files (default from config: /usr/share/keyrings)"),
    repo_files: list[Path] | None = typer.Argument(None, help="Repository files to migrate (default: sources.list and sources.list.d/*.list)"),
    keyserver: str = typer.Option("", "--keyserver", help="Keyserver to receive keys from (default from config)"),
    timeout: int = typer.Option(0, "--timeout", help="Network timeout in seconds (0 = use config)"),
    no_spinner: bool = typer.Option(False, "--no-spinner", help="Disable spinner output"),
) -> None:
    """Add [signed-by=...] to APT repository lines that rely on apt-key.

    For every deb/deb-src line without a signed-by option, the repository's
    InRelease (or Release.gpg) is downloaded, the signing key id is read from
    its signature, the key is received from the keyserver into
    KEYRING_DIRECTORY/<name>-archive-keyring.gpg, and the line is rewritten to
    reference that keyring. Changed files are backed up as <file>.apt-key.bak.

    Exit codes:
      0 - Success (including nothing to migrate)
      1 - Configuration/usage error
      2 - A repository file could not be read or written
      3 - Signature metadata or a key could not be downloaded
      4 - A signing key has expired
    """
    set_disabled(no_spinner)
    previous_handler = signal.signal(signal.SIGTERM, _terminate)
    exit_code = 0
    try:
        with RunContext("migrate") as run:
            settings = MigrationSettings.from_config(
                run.cfg,
                keyring_dir=Path(keyring_dir) if keyring_dir else None,
                keyserver=keyserver or None,
                timeout=timeout or None,
            )
            files = enumerate_source_files(
                repo_files,
                sources_list=run.paths["sources_list"],
                sources_dir=run.paths["sources_dir"],
            )
            run.log_event({
                "event": "migrate.start",
                "keyring_dir": str(settings.keyring_dir),
                "files": [str(f) for f in files],
                "keyserver": settings.keyserver,
            })
            if not files:
                activity("migrate", "No repository files found")

            try:
                summary = migrate_sources(files, settings, run=run)
            except ConfigError as e:
                activity("error", e.message)
                run.log_event({"event": "config.error", "error": e.message})
                run.write_summary(status="failed", exit_code=e.exit_code, error=e.message)
                exit_code = e.exit_code
            else:
                exit_code = summary.exit_code
                activity(
                    "migrate",
                    ", ".join(f"{summary.count(s)} {s.value}" for s in FileStatus if summary.count(s)) or "nothing to do",
                )
                run.write_summary(
                    status="success" if exit_code == 0 else "partial_failure",
                    exit_code=exit_code,
                    keyring_dir=str(settings.keyring_dir),
                    files=[r.to_dict() for r in summary.results],
                )
    except KeyboardInterrupt:
        activity("migrate", "Interrupted; files already migrated are kept")
        exit_code = EXIT_INTERRUPTED
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    sys.exit(exit_code)
