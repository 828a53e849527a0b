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

"""Progress indicator for slow network steps (metadata and keyserver).

On a terminal a Rich ``dots`` status animates while the block runs and the
line is printed once it finishes. Elsewhere, or with ``--no-spinner``, the
line is printed up front so logs show what the tool was waiting on.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterator

from rich.console import Console
from rich.markup import escape

from aptkeymigrate.run import activity

_disabled = False


def set_disabled(disabled: bool) -> None:
    global _disabled
    _disabled = disabled


def is_tty() -> bool:
    """True when the real stdout (not a captured stream) is a terminal."""
    stream = sys.__stdout__
    if stream is None:
        return False  # pragma: no cover
    try:
        return bool(stream.isatty())
    except Exception:
        return False


@contextlib.contextmanager
def activity_spinner(phase: str, description: str, disable: bool = False) -> Iterator[None]:
    """Animate ``[phase] description`` for the duration of the block.

    Args:
        phase: Label in front of the line, usually the repository file stem.
        description: What is being waited on.
        disable: Print the plain line even on a terminal.
    """
    if disable or _disabled or not is_tty():
        activity(phase, description)
        yield
        return

    console = Console(file=sys.__stdout__, force_terminal=True)
    with console.status(escape(f"[{phase}] {description}"), spinner="dots"):
        yield
    activity(phase, description)
