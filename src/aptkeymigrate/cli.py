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

"""CLI application definition for apt-key-migrate."""

from __future__ import annotations

from typer import Typer

from aptkeymigrate.commands.migrate import migrate

app: Typer = Typer(
    name="apt-key-migrate",
    help="Move APT repositories from the apt-key trust store to signed-by keyrings.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

# A single registered command runs without a subcommand name
app.command(name="migrate")(migrate)
