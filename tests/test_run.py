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

"""Tests for aptkeymigrate.run module."""

from __future__ import annotations

import json
import logging
import re
import sys
from pathlib import Path

import pytest

from aptkeymigrate import run


class TestRunContext:
    """Tests for RunContext class."""

    def test_creates_run_directory(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            assert ctx.run_path.is_dir()
            assert ctx.run_path.parent == temp_home / ".cache" / "apt-key-migrate" / "runs"

    def test_run_id_format(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("migrate") as ctx:
            # Format: YYYYMMDDTHHMMSSZ-<command>-<shortid>
            assert re.match(r"^\d{8}T\d{6}Z-migrate-[a-f0-9]{8}$", ctx.run_id)

    def test_captures_stdout_and_stderr(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            print("test output")
            print("error output", file=sys.stderr)

        assert "test output" in (ctx.logs_path / "stdout.log").read_text()
        assert "error output" in (ctx.logs_path / "stderr.log").read_text()

    def test_module_loggers_written_to_debug_log(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            logging.getLogger("aptkeymigrate.keys").debug("key id cached")

        assert "key id cached" in (ctx.logs_path / "debug.log").read_text()
        assert not logging.getLogger("aptkeymigrate").handlers

    def test_events_jsonl(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            ctx.log_event({"event": "file.migrated", "path": Path("/etc/apt/sources.list")})

        events = [json.loads(line) for line in (ctx.logs_path / "events.jsonl").read_text().splitlines()]
        assert [e["event"] for e in events] == ["run.start", "file.migrated", "run.end"]
        assert events[1]["path"] == "/etc/apt/sources.list"
        assert all("timestamp" in e for e in events)

    def test_summary_json(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            ctx.write_summary(exit_code=0, files=[])

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["command"] == "test"
        assert summary["status"] == "success"
        assert summary["files"] == []
        assert "start_utc" in summary
        assert "end_utc" in summary

    def test_explicit_status_kept(self, temp_home: Path, mock_config: Path) -> None:
        with run.RunContext("test") as ctx:
            ctx.write_summary(status="partial_failure")

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "partial_failure"

    def test_summary_records_failure_on_exception(self, temp_home: Path, mock_config: Path) -> None:
        with pytest.raises(ValueError):
            with run.RunContext("test") as ctx:
                raise ValueError("test error")

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "failed"
        assert "test error" in summary["error"]

    def test_summary_records_interrupt(self, temp_home: Path, mock_config: Path) -> None:
        with pytest.raises(KeyboardInterrupt):
            with run.RunContext("test") as ctx:
                raise KeyboardInterrupt

        summary = json.loads((ctx.run_path / "summary.json").read_text())
        assert summary["status"] == "interrupted"

    def test_restores_stdout_stderr(self, temp_home: Path, mock_config: Path) -> None:
        original_stdout = sys.stdout
        original_stderr = sys.stderr

        with run.RunContext("test"):
            pass

        assert sys.stdout is original_stdout
        assert sys.stderr is original_stderr


class TestActivity:
    """Tests for activity function."""

    def test_writes_to_real_stdout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        output: list[str] = []

        class Sink:
            def write(self, text: str) -> None:
                output.append(text)

            def flush(self) -> None:
                pass

        monkeypatch.setattr("sys.__stdout__", Sink())
        run.activity("docker", "migration done")

        assert "".join(output) == "[docker] migration done\n"
