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

"""Context objects for a migration run.

Immutable settings (frozen=True):
- MigrationSettings: resolved CLI/config inputs

Mutable context:
- MigrationContext: caches shared by every file processed in one run
- FileResult / MigrationSummary: per-file outcomes and the run's exit status
"""

from __future__ import annotations

import datetime
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from aptkeymigrate.exceptions import EXIT_SUCCESS, MigrationError


@dataclass(frozen=True)
class MigrationSettings:
    """Immutable inputs of a migration run.

    Attributes:
        keyring_dir: Directory receiving the per-repository keyring files.
        keyring_suffix: Appended to the repository file stem to name its keyring.
        backup_suffix: Appended to a repository file path to name its backup.
        keyserver: Keyserver URL handed to the key tool.
        timeout: Timeout in seconds for every network operation.
    """

    keyring_dir: Path
    keyring_suffix: str = "-archive-keyring.gpg"
    backup_suffix: str = ".apt-key.bak"
    keyserver: str = "hkp://keyserver.ubuntu.com:80"
    timeout: int = 30

    def __post_init__(self) -> None:
        """Make keyring_dir absolute; apt only accepts absolute signed-by paths."""
        object.__setattr__(self, "keyring_dir", Path(self.keyring_dir).expanduser().resolve())

    @classmethod
    def from_config(cls, cfg: dict[str, Any], **overrides: Any) -> MigrationSettings:
        """Build settings from a loaded config, applying non-None overrides."""
        keys = cfg.get("keys", {})
        values: dict[str, Any] = {
            "keyring_dir": Path(cfg.get("paths", {}).get("keyring_dir", "/usr/share/keyrings")),
            "keyring_suffix": keys.get("keyring_suffix", cls.keyring_suffix),
            "backup_suffix": keys.get("backup_suffix", cls.backup_suffix),
            "keyserver": keys.get("keyserver", cls.keyserver),
            "timeout": int(cfg.get("network", {}).get("timeout", cls.timeout)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass
class MigrationContext:
    """Run-scoped state shared across lines and files.

    Attributes:
        workdir: Private scratch directory, removed when the run ends.
        key_ids: Metadata root URL -> signing key id, first lookup wins.
        imported: Keyring path -> key ids known to be present in it.
        now: Clock used for key expiry checks.
    """

    workdir: Path
    key_ids: dict[str, str] = field(default_factory=dict)
    imported: dict[Path, set[str]] = field(default_factory=dict)
    now: Callable[[], datetime.datetime] = _utcnow


class FileStatus(Enum):
    """Outcome of migrating one repository file."""

    MIGRATED = "migrated"
    UNCHANGED = "unchanged"
    ABANDONED = "abandoned"
    FAILED = "failed"
    UNREADABLE = "unreadable"


@dataclass
class FileResult:
    """Outcome of migrating one repository file."""

    path: Path
    status: FileStatus
    migrated_lines: int = 0
    warnings: list[str] = field(default_factory=list)
    error: MigrationError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error is not None else EXIT_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "status": self.status.value,
            "migrated_lines": self.migrated_lines,
            "warnings": self.warnings,
            "error": self.error.message if self.error is not None else None,
        }


@dataclass
class MigrationSummary:
    """All file results of a run."""

    results: list[FileResult] = field(default_factory=list)

    def count(self, status: FileStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def exit_code(self) -> int:
        """Highest exit code of any file, 0 when everything succeeded."""
        return max((r.exit_code for r in self.results), default=EXIT_SUCCESS)
