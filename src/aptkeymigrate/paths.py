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

"""Path helpers and directory creation for apt-key-migrate."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any


def resolve_paths(cfg: Mapping[str, Any]) -> dict[str, Path]:
    """Map every `paths` entry of a loaded config to an absolute Path."""
    return {key: Path(str(val)).expanduser().resolve() for key, val in cfg.get("paths", {}).items()}


def ensure_keyring_dir(keyring_dir: Path) -> Path:
    """Create the keyring directory (world-readable) if it is missing."""
    keyring_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
    return keyring_dir


def source_stem(source: Path) -> str:
    """Base name of a repository file without its `.list` extension."""
    name = source.name
    return name[: -len(".list")] if name.endswith(".list") else name


def keyring_path_for(source: Path, keyring_dir: Path, suffix: str = "-archive-keyring.gpg") -> Path:
    """Return the keyring file that belongs to a repository file.

    The name is the source file's base name without its `.list` extension
    followed by `suffix`, so `docker.list` maps to
    `<keyring_dir>/docker-archive-keyring.gpg`.
    """
    return keyring_dir / f"{source_stem(source)}{suffix}"
