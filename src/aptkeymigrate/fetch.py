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

"""Fetching of signed repository metadata (InRelease / Release.gpg)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from aptkeymigrate.exceptions import MetadataUnavailableError

logger = logging.getLogger(__name__)

# Tried in order; InRelease carries an inline signature, Release.gpg a detached one.
SIGNATURE_FILES = ("InRelease", "Release.gpg")


@dataclass
class FetchResult:
    """Result of a single metadata GET."""

    url: str
    content: bytes = b""
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MetadataFetcher:
    """Fetcher for repository signature files, following redirects."""

    def __init__(self, session: requests.Session | None = None, timeout: int = 30) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str) -> FetchResult:
        """GET a URL; connection errors, timeouts and non-2xx are failures."""
        result = FetchResult(url=url)
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            result.error = str(e)
            return result

        result.status_code = resp.status_code
        if not 200 <= resp.status_code < 300:
            result.error = f"HTTP {resp.status_code}"
            return result

        result.content = resp.content
        return result

    def fetch_signature(self, root: str) -> FetchResult:
        """Fetch the first available signature file below a metadata root.

        Args:
            root: Metadata root URL, ending with a slash.

        Returns:
            The successful FetchResult.

        Raises:
            MetadataUnavailableError: If none of SIGNATURE_FILES can be fetched.
        """
        errors: list[str] = []
        for name in SIGNATURE_FILES:
            result = self.fetch(root + name)
            if result.ok:
                logger.debug("fetched %s (%d bytes)", result.url, len(result.content))
                return result
            logger.debug("fetching %s failed: %s", result.url, result.error)
            errors.append(f"{name}: {result.error}")

        raise MetadataUnavailableError(
            message=f"URL {root}[{'|'.join(SIGNATURE_FILES)}] not found ({'; '.join(errors)})",
            url=root,
        )

    def close(self) -> None:
        self.session.close()
