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

"""apt-key-migrate exception types with associated exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_UNREADABLE_FILE = 2
EXIT_KEY_FAILURE = 3
EXIT_KEY_EXPIRED = 4


@dataclass
class MigrationError(Exception):
    """Base class for apt-key-migrate errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=EXIT_CONFIG_ERROR)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} (exit {self.exit_code})"


@dataclass
class ConfigError(MigrationError):
    exit_code: int = field(default=EXIT_CONFIG_ERROR)


@dataclass
class UnreadableFileError(MigrationError):
    """A repository file is missing or cannot be read."""

    exit_code: int = field(default=EXIT_UNREADABLE_FILE)
    path: str = ""


@dataclass
class SourceParseError(MigrationError):
    """A deb line does not have the expected `URL SUITE ...` shape.

    Only ever reported as a warning; the offending line is kept as-is.
    """

    exit_code: int = field(default=EXIT_SUCCESS)
    line: str = ""


@dataclass
class MetadataUnavailableError(MigrationError):
    """Neither InRelease nor Release.gpg could be fetched."""

    exit_code: int = field(default=EXIT_KEY_FAILURE)
    url: str = ""


@dataclass
class KeyIdNotFoundError(MigrationError):
    """The signature data did not name a signing key."""

    exit_code: int = field(default=EXIT_KEY_FAILURE)
    url: str = ""


@dataclass
class KeyDownloadFailedError(MigrationError):
    """The keyserver did not deliver the requested key."""

    exit_code: int = field(default=EXIT_KEY_FAILURE)
    key_id: str = ""


@dataclass
class KeyExpiredError(MigrationError):
    """The signing key was retrieved but has already expired."""

    exit_code: int = field(default=EXIT_KEY_EXPIRED)
    key_id: str = ""
    expiry: str = ""
