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

"""GnuPG access for signing key discovery and keyring management.

The migration only needs four operations from a signature tool, captured by
the `KeyTool` protocol. `GpgKeyTool` implements them by running `gpg` with an
isolated home directory so the caller's own keyrings are never consulted or
modified.
"""

from __future__ import annotations

import contextlib
import logging
import re
import subprocess
from pathlib import Path
from typing import Protocol

from aptkeymigrate.exceptions import ConfigError, KeyDownloadFailedError

logger = logging.getLogger(__name__)

DEFAULT_KEYSERVER = "hkp://keyserver.ubuntu.com:80"

# `gpg --verify -vv` prints ":signature packet: algo 1, keyid 871920D1991BC93C".
# The last key id following a signature mention wins.
_KEYID_PATTERN = re.compile(r".*signature.*keyid ([0-9A-F]+)", re.IGNORECASE | re.DOTALL)


class KeyTool(Protocol):
    """Capabilities the key resolver needs from a signature tool."""

    def resolve_key_id(self, data: bytes) -> str | None:
        """Return the id of the key that signed `data`, if one can be found."""
        ...

    def import_key(self, key_id: str, keyring: Path) -> int | None:
        """Fetch `key_id` from a keyserver into `keyring`; return its expiry."""
        ...

    def export_key(self, key_id: str, keyring: Path) -> bytes:
        """Return the binary public key material for `key_id` from `keyring`."""
        ...

    def list_key_ids(self, keyring: Path) -> set[str]:
        """Return the key ids and fingerprints present in `keyring`."""
        ...


def parse_key_id(verify_output: str) -> str | None:
    """Extract the signing key id from verbose `gpg --verify` diagnostics."""
    match = _KEYID_PATTERN.match(verify_output)
    if match is None:
        return None
    return match.group(1).upper()


def parse_expiry(colons_output: str) -> int | None:
    """Return the expiry timestamp of the first `pub` record, None if unset.

    From the gnupg DETAILS document: field 7 of a `pub` record holds the
    expiration date in seconds since the epoch, empty when the key never
    expires.
    """
    for line in colons_output.splitlines():
        fields = line.split(":")
        if fields[0] != "pub" or len(fields) < 7:
            continue
        expiry = fields[6].strip()
        return int(expiry) if expiry.isdigit() and int(expiry) > 0 else None
    return None


def parse_key_ids(colons_output: str) -> set[str]:
    """Collect long key ids (pub/sub field 5) and fingerprints (fpr field 10)."""
    ids: set[str] = set()
    for line in colons_output.splitlines():
        fields = line.split(":")
        if fields[0] in ("pub", "sub") and len(fields) > 4 and fields[4]:
            ids.add(fields[4].upper())
        elif fields[0] == "fpr" and len(fields) > 9 and fields[9]:
            ids.add(fields[9].upper())
    return ids


class GpgKeyTool:
    """`KeyTool` implementation backed by the gpg command line."""

    def __init__(self, homedir: Path, keyserver: str = DEFAULT_KEYSERVER, timeout: int = 30) -> None:
        self.homedir = homedir
        self.keyserver = keyserver
        self.timeout = timeout

    def _command(self, keyring: Path | None, *args: str) -> list[str]:
        cmd = ["gpg", "--homedir", str(self.homedir), "--batch", "--no-tty"]
        if keyring is not None:
            cmd.extend(["--no-default-keyring", "--keyring", str(keyring)])
        cmd.extend(args)
        return cmd

    def _run(self, cmd: list[str], data: bytes | None = None) -> subprocess.CompletedProcess[bytes]:
        self.homedir.mkdir(mode=0o700, parents=True, exist_ok=True)
        logger.debug("running %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                input=data,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError:
            raise ConfigError(message="gpg not found; install the gnupg package") from None

    def resolve_key_id(self, data: bytes) -> str | None:
        # An empty keyring makes gpg fail verification after it has dumped
        # the signature packets, which is all we need.
        cmd = self._command(self.homedir / "empty.gpg", "--verify", "-vv")
        try:
            result = self._run(cmd, data=data)
        except subprocess.TimeoutExpired:
            logger.warning("gpg --verify timed out after %ss", self.timeout)
            return None
        return parse_key_id(result.stderr.decode(errors="replace"))

    def import_key(self, key_id: str, keyring: Path) -> int | None:
        cmd = self._command(keyring, "--quiet", "--keyserver", self.keyserver, "--recv-keys", key_id)
        try:
            result = self._run(cmd)
        except subprocess.TimeoutExpired:
            raise KeyDownloadFailedError(
                message=f"Timed out receiving key {key_id} from {self.keyserver}", key_id=key_id
            ) from None
        if result.returncode != 0:
            raise KeyDownloadFailedError(
                message=f"Could not receive key {key_id} from {self.keyserver}: "
                f"{result.stderr.decode(errors='replace').strip()}",
                key_id=key_id,
            )

        listing = self._list(keyring, key_id)
        if key_id.upper() not in parse_key_ids(listing):
            raise KeyDownloadFailedError(
                message=f"Keyserver {self.keyserver} returned no key {key_id}", key_id=key_id
            )
        return parse_expiry(listing)

    def export_key(self, key_id: str, keyring: Path) -> bytes:
        try:
            result = self._run(self._command(keyring, "--export", key_id))
        except subprocess.TimeoutExpired:
            result = None
        if result is None or result.returncode != 0 or not result.stdout:
            raise KeyDownloadFailedError(message=f"Could not export key {key_id}", key_id=key_id)
        return result.stdout

    def list_key_ids(self, keyring: Path) -> set[str]:
        if not keyring.exists():
            return set()
        return parse_key_ids(self._list(keyring))

    def _list(self, keyring: Path, *key_ids: str) -> str:
        cmd = self._command(keyring, "--list-keys", "--with-colons", "--fixed-list-mode", "--with-fingerprint", *key_ids)
        try:
            result = self._run(cmd)
        except subprocess.TimeoutExpired:
            logger.warning("gpg --list-keys timed out for %s", keyring)
            return ""
        return result.stdout.decode(errors="replace")

    def close(self) -> None:
        """Stop any agent or dirmngr started for the private home directory."""
        if not self.homedir.exists():
            return
        with contextlib.suppress(FileNotFoundError, subprocess.TimeoutExpired):
            subprocess.run(
                ["gpgconf", "--homedir", str(self.homedir), "--kill", "all"],
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
