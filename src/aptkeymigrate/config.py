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

"""Configuration for apt-key-migrate.

Settings live in ``~/.config/apt-key-migrate/config.yaml``. The file is
created with the defaults below on first use; each section found on disk is
merged key by key over the matching default section.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "keyring_dir": "/usr/share/keyrings",
        "sources_list": "/etc/apt/sources.list",
        "sources_dir": "/etc/apt/sources.list.d",
        "runs_root": "~/.cache/apt-key-migrate/runs",
    },
    "keys": {
        "keyserver": "hkp://keyserver.ubuntu.com:80",
        "keyring_suffix": "-archive-keyring.gpg",
        "backup_suffix": ".apt-key.bak",
    },
    "network": {"timeout": 30},
}


def get_config_path() -> Path:
    return Path.home() / ".config" / "apt-key-migrate" / "config.yaml"


def ensure_config_exists() -> Path:
    """Write the default config file unless one is already there."""
    cfg_path = get_config_path()
    if not cfg_path.exists():
        write_config(DEFAULT_CONFIG)
    return cfg_path


def _read_raw(cfg_path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(cfg_path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable config %s: %s", cfg_path, e)
        return {}
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning("ignoring config %s: top level is not a mapping", cfg_path)
        return {}
    return raw


def load_config() -> dict[str, Any]:
    """Return DEFAULT_CONFIG with the on-disk sections merged over it.

    Values under ``paths`` have ``~`` expanded. An unreadable or malformed
    file yields the defaults.
    """
    raw = _read_raw(ensure_config_exists())

    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, defaults in merged.items():
        override = raw.get(section)
        if isinstance(override, dict):
            defaults.update(override)

    merged["paths"] = {key: str(Path(str(val)).expanduser()) for key, val in merged["paths"].items()}
    return merged


def write_config(data: dict[str, Any]) -> None:
    """Serialize a complete configuration mapping to the config path."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(yaml.safe_dump(data, sort_keys=False))
