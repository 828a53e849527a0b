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

"""Per-invocation run directory for apt-key-migrate.

Each run gets `<runs_root>/<UTC timestamp>-<command>-<id>/` with:

    logs/stdout.log     anything printed while the run is active
    logs/stderr.log
    logs/debug.log      the aptkeymigrate.* loggers at DEBUG level
    logs/events.jsonl   one timestamped JSON object per event
    summary.json        command, times, status, exit code, file results

Operator-facing progress bypasses the capture through `activity()`, which
writes to sys.__stdout__.
"""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import IO, Any

from aptkeymigrate.config import load_config
from aptkeymigrate.paths import resolve_paths

PACKAGE_LOGGER = "aptkeymigrate"
DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class RunContext:
    """Capture the output and events of one command invocation.

    Usage:
        with RunContext("migrate") as run:
            run.log_event({"event": "file.migrated", "path": "/etc/apt/sources.list"})
            run.write_summary(exit_code=0)
    """

    def __init__(self, command: str) -> None:
        self.command = command
        self.cfg = load_config()
        self.paths = resolve_paths(self.cfg)
        started = _utc_now()
        self.run_id = f"{started:%Y%m%dT%H%M%SZ}-{command}-{uuid.uuid4().hex[:8]}"
        runs_root = self.paths.get("runs_root") or Path.home() / ".cache" / "apt-key-migrate" / "runs"
        self.run_path = runs_root / self.run_id
        self.logs_path = self.run_path / "logs"
        self.summary: dict[str, Any] = {"command": command, "start_utc": started.isoformat()}
        self._events: IO[str] | None = None
        self._stack = contextlib.ExitStack()

    def __enter__(self) -> RunContext:
        self.logs_path.mkdir(parents=True, exist_ok=True)
        stack = self._stack

        stdout_log = stack.enter_context((self.logs_path / "stdout.log").open("w", encoding="utf-8"))
        stderr_log = stack.enter_context((self.logs_path / "stderr.log").open("w", encoding="utf-8"))
        self._events = stack.enter_context((self.logs_path / "events.jsonl").open("a", encoding="utf-8"))

        handler = logging.FileHandler(self.logs_path / "debug.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        pkg_logger = logging.getLogger(PACKAGE_LOGGER)
        pkg_logger.setLevel(logging.DEBUG)
        pkg_logger.addHandler(handler)
        stack.callback(handler.close)
        stack.callback(pkg_logger.removeHandler, handler)

        # Redirects unwind first, before the log files close
        stack.enter_context(contextlib.redirect_stdout(stdout_log))
        stack.enter_context(contextlib.redirect_stderr(stderr_log))

        self.log_event({"event": "run.start", "run_id": self.run_id})
        return self

    def log_event(self, event: dict[str, Any]) -> None:
        """Append a timestamped event to events.jsonl."""
        if self._events is None:  # pragma: no cover
            return
        record = {"timestamp": _utc_now().isoformat(), **event}
        self._events.write(json.dumps(record, default=str) + "\n")
        self._events.flush()

    def write_summary(self, **fields: Any) -> None:
        """Merge fields into summary.json and rewrite it."""
        self.summary.update(fields)
        self.run_path.mkdir(parents=True, exist_ok=True)
        (self.run_path / "summary.json").write_text(json.dumps(self.summary, indent=2, default=str))

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object,
    ) -> None:
        status = self.summary.get("status", "success")
        if isinstance(exc, KeyboardInterrupt):
            status = "interrupted"
        elif exc is not None and not isinstance(exc, SystemExit):
            status = "failed"
        if exc is not None and not isinstance(exc, SystemExit):
            self.summary["error"] = str(exc) or exc.__class__.__name__

        try:
            with contextlib.suppress(Exception):
                self.log_event({"event": "run.end", "status": status})
            self.write_summary(status=status, end_utc=_utc_now().isoformat())
        finally:
            self._events = None
            self._stack.close()

        if status != "success":
            activity("report", f"Logs: {self.run_path}")


def activity(phase: str, description: str) -> None:
    """Print a progress line to the real terminal, even while output is captured."""
    with contextlib.suppress(Exception):
        print(f"[{phase}] {description}", file=sys.__stdout__, flush=True)
