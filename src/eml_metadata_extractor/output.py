# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""CSV and JSON rendering of extracted records."""

from __future__ import annotations

import csv
import dataclasses
import enum
import json
from collections.abc import Sequence
from typing import TextIO

from .record import EmailRecord

CSV_HEADERS = (
    "Folder",
    "Subject",
    "From Name",
    "From Email",
    "To Name",
    "To Email",
    "Sent Date",
    "X-Originating-IP",
    "URLs",
    "URL Domains",
    "Original File",
)

# Separator for multi-valued fields inside one CSV cell.
MULTI_VALUE_SEPARATOR = "\n"


class OutputFormat(str, enum.Enum):
    CSV = "csv"
    JSON = "json"


def _csv_row(record: EmailRecord) -> list[str]:
    return [
        record.folder,
        record.subject,
        record.from_name,
        record.from_email,
        record.to_name,
        record.to_email,
        record.sent_date,
        record.originating_ip,
        MULTI_VALUE_SEPARATOR.join(record.urls),
        MULTI_VALUE_SEPARATOR.join(record.url_domains),
        record.original_file,
    ]


def write_csv(records: Sequence[EmailRecord], stream: TextIO) -> None:
    """Write a header row and one row per record."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(_csv_row(record))


def write_json(records: Sequence[EmailRecord], stream: TextIO) -> None:
    """Write records as a pretty-printed JSON array, one object per record."""
    payload = [dataclasses.asdict(record) for record in records]
    json.dump(payload, stream, indent=2, ensure_ascii=False)
    stream.write("\n")


def write_records(
    records: Sequence[EmailRecord], stream: TextIO, fmt: OutputFormat = OutputFormat.CSV
) -> None:
    if fmt is OutputFormat.JSON:
        write_json(records, stream)
    else:
        write_csv(records, stream)
