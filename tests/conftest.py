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

"""Pytest fixtures and configuration for apt-key-migrate tests."""

from __future__ import annotations

import datetime
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest import mock

import pytest
import responses

from aptkeymigrate.context import MigrationContext
from aptkeymigrate.exceptions import KeyDownloadFailedError

# Clock used for key expiry checks in tests
FIXED_NOW = datetime.datetime(2025, 6, 1, tzinfo=datetime.UTC)


class FakeKeyTool:
    """In-memory stand-in for GpgKeyTool.

    Signature payloads map to key ids through `signatures`. Exported keys are
    written as `KEY:<id>` lines so `list_key_ids` can read real keyring files
    back, which keeps repeated runs realistic.
    """

    def __init__(self) -> None:
        self.signatures: dict[bytes, str] = {
            b"inrelease-a": "AAAA1111BBBB2222",
            b"inrelease-b": "CCCC3333DDDD4444",
        }
        self.expiries: dict[str, int | None] = {}
        self.unavailable: set[str] = set()
        self.resolved: list[bytes] = []
        self.imported: list[str] = []
        self.closed = False

    def resolve_key_id(self, data: bytes) -> str | None:
        self.resolved.append(data)
        return self.signatures.get(data)

    def import_key(self, key_id: str, keyring: Path) -> int | None:
        self.imported.append(key_id)
        if key_id in self.unavailable:
            raise KeyDownloadFailedError(message=f"Could not receive key {key_id}", key_id=key_id)
        keyring.write_text(f"KEY:{key_id}\n")
        return self.expiries.get(key_id)

    def export_key(self, key_id: str, keyring: Path) -> bytes:
        return f"KEY:{key_id}\n".encode()

    def list_key_ids(self, keyring: Path) -> set[str]:
        if not keyring.exists():
            return set()
        return {line[4:] for line in keyring.read_text().splitlines() if line.startswith("KEY:")}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and set HOME/XDG paths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir)
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
        monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
        # Also patch Path.home() to return our temp home
        monkeypatch.setattr(Path, "home", lambda: home)
        yield home


@pytest.fixture
def apt_root(temp_home: Path) -> Path:
    """An empty /etc/apt lookalike with a keyrings directory beside it."""
    root = temp_home / "root"
    (root / "etc" / "apt" / "sources.list.d").mkdir(parents=True)
    (root / "usr" / "share" / "keyrings").mkdir(parents=True)
    return root


@pytest.fixture
def mock_config(temp_home: Path, apt_root: Path) -> Path:
    """Create a config file pointing every path into the temp home."""
    config_dir = temp_home / ".config" / "apt-key-migrate"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "config.yaml"
    config_file.write_text(f"""
paths:
  keyring_dir: "{apt_root}/usr/share/keyrings"
  sources_list: "{apt_root}/etc/apt/sources.list"
  sources_dir: "{apt_root}/etc/apt/sources.list.d"
  runs_root: "~/.cache/apt-key-migrate/runs"

keys:
  keyserver: "hkp://keyserver.example.com:80"

network:
  timeout: 5
""")
    return config_file


@pytest.fixture
def fake_key_tool() -> FakeKeyTool:
    return FakeKeyTool()


@pytest.fixture
def mock_responses() -> Generator[responses.RequestsMock, None, None]:
    """Activate responses mock for HTTP requests."""
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def non_tty_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock sys.__stdout__.isatty() to return False."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = False
    monkeypatch.setattr("sys.__stdout__", mock_stdout)


@pytest.fixture
def tty_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock sys.__stdout__.isatty() to return True."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = True
    mock_stdout.write = lambda x: None
    mock_stdout.flush = lambda: None
    monkeypatch.setattr("sys.__stdout__", mock_stdout)


@pytest.fixture
def migration_ctx(tmp_path: Path) -> MigrationContext:
    """A MigrationContext with a scratch workdir and a fixed clock."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    return MigrationContext(workdir=workdir, now=lambda: FIXED_NOW)
