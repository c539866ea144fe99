# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later
"""Shared fixtures: small .eml files written on demand."""

from pathlib import Path
from typing import Callable, Optional

import pytest


def build_message(
    subject: str = "Quarterly report",
    date: Optional[str] = "Tue, 26 Mar 2024 15:30:15 +0900",
    html: Optional[str] = '<p><a href="http://a.com/x">x</a></p>',
    sender: str = '"Alice Kim" <alice@example.com>',
    recipient: str = "Bob <bob@example.org>",
    extra_headers: str = "",
) -> bytes:
    """Return a multipart/alternative message with a plain and an optional HTML part."""
    lines = [
        f"From: {sender}",
        f"To: {recipient}",
        f"Subject: {subject}",
    ]
    if date is not None:
        lines.append(f"Date: {date}")
    if extra_headers:
        lines.append(extra_headers)
    lines += [
        "MIME-Version: 1.0",
        'Content-Type: multipart/alternative; boundary="b1"',
        "",
        "--b1",
        "Content-Type: text/plain; charset=utf-8",
        "",
        "plain body",
    ]
    if html is not None:
        lines += [
            "--b1",
            "Content-Type: text/html; charset=utf-8",
            "",
            html,
        ]
    lines += ["--b1--", ""]
    return "\n".join(lines).encode("utf-8")


@pytest.fixture
def write_eml(tmp_path: Path) -> Callable[..., Path]:
    """Write a message below ``tmp_path / 'inbox'`` and return its path."""

    def _write(relative: str = "message.eml", data: Optional[bytes] = None, **kwargs) -> Path:
        path = tmp_path / "inbox" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data if data is not None else build_message(**kwargs))
        return path

    return _write


@pytest.fixture
def make_message() -> Callable[..., bytes]:
    """Expose :func:`build_message` to tests."""
    return build_message
