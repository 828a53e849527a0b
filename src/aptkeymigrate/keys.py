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

"""Signing key resolution for repository metadata roots.

Given a metadata root URL and the keyring file of the repository file being
migrated, `KeyResolver` finds the key that signs the repository and makes
sure that key is present (and not expired) in the keyring.
"""

from __future__ import annotations

import datetime
import logging
import os
from pathlib import Path

from aptkeymigrate.context import MigrationContext
from aptkeymigrate.exceptions import KeyExpiredError, KeyIdNotFoundError
from aptkeymigrate.fetch import MetadataFetcher
from aptkeymigrate.gpg import KeyTool
from aptkeymigrate.paths import ensure_keyring_dir
from aptkeymigrate.run import activity
from aptkeymigrate.spinner import activity_spinner

logger = logging.getLogger(__name__)

KEYRING_MODE = 0o644
EXPIRY_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def format_expiry(timestamp: int) -> str:
    """Render an epoch timestamp the way the expiry diagnostics show it."""
    return datetime.datetime.fromtimestamp(timestamp, datetime.UTC).strftime(EXPIRY_FORMAT)


class KeyResolver:
    """Resolve and install the signing key of a repository.

    The URL -> key id mapping and the per-keyring set of present key ids live
    in the shared `MigrationContext`, so a metadata root is downloaded at most
    once per run and a key is imported at most once per keyring.
    """

    def __init__(self, ctx: MigrationContext, fetcher: MetadataFetcher, key_tool: KeyTool) -> None:
        self.ctx = ctx
        self.fetcher = fetcher
        self.key_tool = key_tool

    def resolve(self, url: str, keyring: Path, phase: str = "keys") -> str:
        """Return the signing key id for `url`, ensuring it is in `keyring`.

        Raises:
            MetadataUnavailableError: InRelease and Release.gpg both failed.
            KeyIdNotFoundError: The signature named no key.
            KeyDownloadFailedError: The keyserver did not deliver the key.
            KeyExpiredError: The key has expired; nothing was added to `keyring`.
        """
        key_id = self.ctx.key_ids.get(url)
        if key_id is None:
            key_id = self._discover(url, phase)
            self.ctx.key_ids[url] = key_id
        else:
            logger.debug("key id for %s cached: %s", url, key_id)

        if key_id in self.known_keys(keyring):
            activity(phase, f"key {key_id} already in {keyring} - skipping download")
            return key_id

        self._install(key_id, keyring, phase)
        return key_id

    def known_keys(self, keyring: Path) -> set[str]:
        """Key ids present in `keyring`, read from disk once per run."""
        known = self.ctx.imported.get(keyring)
        if known is None:
            known = self.key_tool.list_key_ids(keyring)
            if known:
                logger.debug("%s already holds %s", keyring, ", ".join(sorted(known)))
            self.ctx.imported[keyring] = known
        return known

    def _discover(self, url: str, phase: str) -> str:
        with activity_spinner(phase, f"downloading {url}"):
            result = self.fetcher.fetch_signature(url)

        key_id = self.key_tool.resolve_key_id(result.content)
        if not key_id:
            raise KeyIdNotFoundError(message=f"Could not find key id in signature {result.url}", url=url)
        activity(phase, f"key id = {key_id}")
        return key_id

    def _install(self, key_id: str, keyring: Path, phase: str) -> None:
        # Receive into a scratch keyring first so an expired key never
        # reaches the real keyring file.
        scratch = self.ctx.workdir / f"{key_id}.gpg"
        scratch.unlink(missing_ok=True)

        with activity_spinner(phase, f"receiving key {key_id}"):
            expiry = self.key_tool.import_key(key_id, scratch)

        if expiry is not None and expiry < self.ctx.now().timestamp():
            raise KeyExpiredError(
                message=f"key {key_id} expired on {format_expiry(expiry)}",
                key_id=key_id,
                expiry=format_expiry(expiry),
            )

        material = self.key_tool.export_key(key_id, scratch)
        ensure_keyring_dir(keyring.parent)
        # Binary OpenPGP keyrings are plain concatenations of exported keys.
        with keyring.open("ab") as f:
            f.write(material)
        os.chmod(keyring, KEYRING_MODE)

        self.known_keys(keyring).add(key_id)
        logger.info("added key %s to %s", key_id, keyring)
