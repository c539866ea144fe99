# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Per-message record and the canonical "timestamp subject.eml" file name."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .envelope import Envelope

UNKNOWN_TIMESTAMP = "unknown"

# Characters that are not allowed in file names on common file systems.
INVALID_FILENAME_CHARS = ("/", "\\", ":", "*", "?", '"', "<", ">", "|")


@dataclass(frozen=True)
class EmailRecord:
    """Metadata extracted from one message file."""

    folder: str = ""
    subject: str = ""
    from_name: str = ""
    from_email: str = ""
    to_name: str = ""
    to_email: str = ""
    sent_date: str = ""
    originating_ip: str = ""
    urls: tuple[str, ...] = ()
    url_domains: tuple[str, ...] = ()
    original_file: str = ""


def build_record(
    path: Path, envelope: Envelope, urls: Sequence[str], domains: Sequence[str]
) -> EmailRecord:
    """Combine decoded headers and extracted links for the file at ``path``."""
    return EmailRecord(
        folder=path.parent.name,
        subject=envelope.subject,
        from_name=envelope.from_name,
        from_email=envelope.from_email,
        to_name=envelope.to_name,
        to_email=envelope.to_email,
        sent_date=envelope.sent_date,
        originating_ip=envelope.originating_ip,
        urls=tuple(urls),
        url_domains=tuple(domains),
        original_file=path.name,
    )


def format_timestamp(sent_date: str) -> str:
    """Turn ``2024-03-26 15:30:15`` into ``2024-03-26_153015``.

    An empty date gives ``unknown``; a value without a space is returned as-is.
    """
    if not sent_date:
        return UNKNOWN_TIMESTAMP
    date_part, sep, time_part = sent_date.partition(" ")
    if not sep:
        return sent_date
    return f"{date_part}_{time_part.replace(':', '')}"


def sanitize_filename(name: str) -> str:
    for char in INVALID_FILENAME_CHARS:
        name = name.replace(char, "_")
    return name


def rename_target(record: EmailRecord) -> str:
    """Canonical file name for ``record``; same record, same name."""
    return sanitize_filename(f"{format_timestamp(record.sent_date)} {record.subject}.eml")
