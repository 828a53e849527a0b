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

"""Finding, reading and atomically replacing APT repository files."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path

from aptkeymigrate.exceptions import UnreadableFileError

logger = logging.getLogger(__name__)

SOURCES_GLOB = "*.list"


def enumerate_source_files(
    explicit: Sequence[Path] | None,
    sources_list: Path,
    sources_dir: Path,
) -> list[Path]:
    """Return the repository files to migrate.

    Explicit paths are returned exactly as given. Otherwise the primary
    sources.list (when present) is followed by every `*.list` file of the
    sources.list.d directory in lexicographic order.
    """
    if explicit:
        return list(explicit)

    files: list[Path] = []
    if sources_list.is_file():
        files.append(sources_list)
    if sources_dir.is_dir():
        files.extend(sorted(p for p in sources_dir.glob(SOURCES_GLOB) if p.is_file()))
    return files


def read_source_file(path: Path) -> bytes:
    """Read a repository file.

    Raises:
        UnreadableFileError: If the file is missing or cannot be read.
    """
    try:
        return path.read_bytes()
    except OSError as e:
        raise UnreadableFileError(message=f"Cannot read {path}: {e.strerror or e}", path=str(path)) from None


def backup_path_for(path: Path, suffix: str = ".apt-key.bak") -> Path:
    return path.with_name(path.name + suffix)


def commit_source_file(path: Path, original: bytes, new: bytes, backup_suffix: str = ".apt-key.bak") -> bool:
    """Replace a repository file with new content, keeping a backup.

    Nothing is written when the content did not change. Otherwise the original
    is copied to the backup path (permission bits preserved) and the new
    content is written to a temporary file next to the original, given the
    original's mode and owner, and renamed over it. A symlinked file is
    replaced at its target so the link itself survives; the backup sits next
    to the link.

    Returns:
        True if the file was replaced, False if it was unchanged.
    """
    if new == original:
        return False

    target = path.resolve()
    st = target.stat()
    shutil.copy2(target, backup_path_for(path, backup_suffix))

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(new)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, st.st_mode & 0o7777)
        if (st.st_uid, st.st_gid) != (os.getuid(), os.getgid()):
            os.chown(tmp, st.st_uid, st.st_gid)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("replaced %s (%d -> %d bytes)", path, len(original), len(new))
    return True
