# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later
"""Extract sender, date, subject and hyperlink metadata from batches of .eml files."""

__version__ = "0.1.0"
