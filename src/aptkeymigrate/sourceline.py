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

"""Parsing and rewriting of one-line-style APT source entries.

A source line is tokenized into its parts instead of being matched by one
large pattern:

    <indent><verb><separator>[<options>]<rest><eol>

where ``verb`` is ``deb`` or ``deb-src`` and the bracketed option block is
optional. Anything that does not start with a valid verb is opaque and is
never touched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from aptkeymigrate.exceptions import SourceParseError

VALID_SOURCE_TYPES = ("deb", "deb-src")
SIGNED_BY_OPTION = "signed-by"

_LEADING = re.compile(r"^(\s*)(\S+)(\s*)")


class LineKind(Enum):
    """How a line must be treated by the migration."""

    PASSTHROUGH = "passthrough"
    ALREADY_SIGNED = "already-signed"
    NEEDS_MIGRATION = "needs-migration"


@dataclass(frozen=True)
class SourceLine:
    """A tokenized `deb`/`deb-src` line.

    Attributes:
        indent: Whitespace before the verb.
        verb: Either "deb" or "deb-src".
        separator: Whitespace between the verb and what follows.
        options: Inner text of the bracketed option block, or None if absent.
        rest: Everything after the option block (or after the separator when
            there is no block), without the line terminator.
        eol: The original line terminator ("", "\\n" or "\\r\\n").
    """

    indent: str
    verb: str
    separator: str
    options: str | None
    rest: str
    eol: str

    @property
    def fields(self) -> list[str]:
        """Whitespace-separated fields after the options, comments removed."""
        fields: list[str] = []
        for token in self.rest.split():
            if token.startswith("#"):
                break
            fields.append(token)
        return fields

    @property
    def signed(self) -> bool:
        return self.options is not None and SIGNED_BY_OPTION in self.options.lower()


def parse_line(text: str) -> SourceLine | None:
    """Tokenize a line, returning None when it is not a deb/deb-src entry."""
    body = text.rstrip("\r\n")
    eol = text[len(body):]

    match = _LEADING.match(body)
    if match is None or match.group(2) not in VALID_SOURCE_TYPES:
        return None

    indent, verb, separator = match.groups()
    remainder = body[match.end():]

    options: str | None = None
    if remainder.startswith("["):
        close = remainder.find("]")
        if close != -1:
            options = remainder[1:close]
            remainder = remainder[close + 1:]
        # An unterminated block stays in `rest`; metadata_url() rejects it.

    return SourceLine(
        indent=indent,
        verb=verb,
        separator=separator,
        options=options,
        rest=remainder,
        eol=eol,
    )


def classify_line(text: str) -> LineKind:
    """Decide whether a line is passed through, already signed or migrated."""
    line = parse_line(text)
    if line is None:
        return LineKind.PASSTHROUGH
    if line.signed:
        return LineKind.ALREADY_SIGNED
    return LineKind.NEEDS_MIGRATION


def metadata_url(text: str) -> str:
    """Return the URL under which a repository publishes InRelease/Release.gpg.

    For ``deb [opts] BASE SUITE ...`` this is ``BASE/dists/SUITE/``, or
    ``BASE/SUITE`` when SUITE ends with a slash (flat repository layout).
    The result always ends with a slash.

    Raises:
        SourceParseError: If the line lacks a URL and suite.
    """
    line = parse_line(text)
    if line is None:
        raise SourceParseError(message="Not a deb/deb-src line", line=text.rstrip("\r\n"))
    if line.options is None and line.rest.lstrip().startswith("["):
        raise SourceParseError(message="Unterminated option block", line=text.rstrip("\r\n"))

    fields = line.fields
    if len(fields) < 2:
        raise SourceParseError(message="Expected a URL and a suite", line=text.rstrip("\r\n"))

    base, suite = fields[0], fields[1]
    if base.endswith("/"):
        base = base[:-1]
    if suite.endswith("/"):
        return f"{base}/{suite}"
    return f"{base}/dists/{suite}/"


def add_signed_by(text: str, keyring: Path | str) -> str:
    """Insert ``signed-by=<keyring>`` into the option block of a line.

    Existing options are kept and the new option is appended; a block is
    created when the line had none. Everything else is preserved verbatim.

    Raises:
        ValueError: If the line is not a deb/deb-src entry.
    """
    line = parse_line(text)
    if line is None:
        raise ValueError(f"Not a deb/deb-src line: {text!r}")

    option = f"{SIGNED_BY_OPTION}={keyring}"
    head = f"{line.indent}{line.verb}{line.separator}"
    if line.options is None:
        return f"{head}[{option}] {line.rest}{line.eol}"

    joiner = "" if not line.options or line.options[-1].isspace() else " "
    return f"{head}[{line.options}{joiner}{option}]{line.rest}{line.eol}"
