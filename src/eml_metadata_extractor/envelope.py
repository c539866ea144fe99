# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Decode a raw RFC 5322 message into normalized header fields and its HTML body."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from email import policy
from email.errors import HeaderParseError, MessageError
from email.header import Header, decode_header
from email.message import Message
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import BinaryIO

from .charsets import UnknownCharsetError, decode_bytes

LOGGER = logging.getLogger(__name__)

SENT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Permissive "Name <addr>" / "addr" matcher for headers the strict parser rejects.
_LOOSE_ADDRESS_RE = re.compile(
    r'^(?:"?([^"]*)"?\s*)?<?([a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,})>?$',
    re.IGNORECASE,
)

# Header continuation: a line break followed by whitespace.
_FOLDING_RE = re.compile(r"\r?\n(?=[ \t])")

# Charset the email package assigns to undeclared 8-bit header bytes.
_UNKNOWN_8BIT = "unknown-8bit"


class EnvelopeError(ValueError):
    """Raised when a file cannot be decoded as a message."""


@dataclass(frozen=True)
class Envelope:
    """Header fields and HTML body of one message; every field defaults to ``""``."""

    subject: str = ""
    from_name: str = ""
    from_email: str = ""
    to_name: str = ""
    to_email: str = ""
    sent_date: str = ""
    originating_ip: str = ""
    html: str = ""


# --------------------------------------------------------------------------- #
# Header decoding                                                              #
# --------------------------------------------------------------------------- #


def decode_header_value(value: str | Header | None) -> str:
    """Decode RFC 2047 encoded words using the charset registry.

    Raw 8-bit header bytes without a declared charset are read as UTF-8.

    Raises:
        UnknownCharsetError: If an encoded word names a charset nobody knows.
    """
    if value is None:
        return ""

    parts: list[str] = []
    for chunk, charset in decode_header(value):
        if isinstance(chunk, str):
            parts.append(chunk)
        elif charset is None or charset == _UNKNOWN_8BIT:
            parts.append(decode_bytes(chunk, None))
        else:
            parts.append(decode_bytes(chunk, charset))
    return "".join(parts)


def _raw_header(msg: Message, name: str) -> str:
    """Return a header as text without decoding encoded words."""
    value = msg.get(name)
    if value is None:
        return ""
    if isinstance(value, Header):
        # compat32 wraps headers carrying undeclared 8-bit bytes
        return _FOLDING_RE.sub("", decode_header_value(value))
    return _FOLDING_RE.sub("", str(value))


def _decoded_header(msg: Message, name: str) -> str:
    try:
        return _FOLDING_RE.sub("", decode_header_value(msg.get(name)))
    except (HeaderParseError, UnknownCharsetError, UnicodeError) as exc:
        LOGGER.debug("Cannot decode %s header, leaving it empty: %s", name, exc)
        return ""


# --------------------------------------------------------------------------- #
# Addresses & dates                                                            #
# --------------------------------------------------------------------------- #


def parse_address(value: str) -> tuple[str, str]:
    """Split the first mailbox of an address header into (display name, address).

    A standards-compliant parse is tried first; if it does not produce an
    address, a permissive ``"Name" <addr>`` pattern is used. When both fail
    the name is empty and the trimmed input is returned as the address.
    """
    if not value or not value.strip():
        return "", ""

    try:
        mailboxes = getaddresses([value])
    except (HeaderParseError, ValueError, IndexError) as exc:
        LOGGER.debug("Strict address parse failed for %r: %s", value, exc)
        mailboxes = []

    if mailboxes:
        name, address = mailboxes[0]
        if address and "@" in address:
            return _decode_display_name(name), address

    match = _LOOSE_ADDRESS_RE.match(value.strip())
    if match:
        LOGGER.debug("Address %r matched by permissive pattern", value)
        return _decode_display_name((match.group(1) or "").strip()), match.group(2).strip()

    return "", value.strip(' "')


def _decode_display_name(name: str) -> str:
    try:
        return decode_header_value(name)
    except (HeaderParseError, UnknownCharsetError, UnicodeError):
        return name


def parse_sent_date(value: str) -> str:
    """Format an RFC 5322 date as ``YYYY-MM-DD HH:MM:SS``; ``""`` if unparseable.

    The time is kept in the offset the header was written in.
    """
    if not value or not value.strip():
        return ""
    try:
        return parsedate_to_datetime(value.strip()).strftime(SENT_DATE_FORMAT)
    except (TypeError, ValueError, IndexError, OverflowError) as exc:
        LOGGER.debug("Unparseable Date header %r: %s", value, exc)
        return ""


def normalize_originating_ip(value: str) -> str:
    """Strip brackets from each comma-separated entry and put one per line."""
    entries = [entry.strip().strip("[]").strip() for entry in value.split(",")]
    return "\n".join(entry for entry in entries if entry)


# --------------------------------------------------------------------------- #
# Body                                                                         #
# --------------------------------------------------------------------------- #


def find_html_part(msg: Message) -> Message | None:
    """Return the first inline body part whose type starts with ``text/html``."""
    for index, part in enumerate(msg.walk()):
        if part.is_multipart():
            continue
        ctype = part.get_content_type()
        if not ctype.startswith("text/html"):
            continue
        if part.get_content_disposition() == "attachment":
            LOGGER.debug("Skipping HTML attachment at part %d", index)
            continue
        LOGGER.debug("HTML body found at part %d", index)
        return part
    return None


def _decode_html(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset()
    try:
        return decode_bytes(payload, charset)
    except UnknownCharsetError as exc:
        raise EnvelopeError(f"HTML body uses unsupported charset '{charset}'") from exc


# --------------------------------------------------------------------------- #
# Entry point                                                                  #
# --------------------------------------------------------------------------- #


def read_envelope(stream: BinaryIO) -> Envelope:
    """Parse a message from ``stream`` (positioned at its first byte).

    Raises:
        EnvelopeError: If the bytes do not form a message or the HTML body
            cannot be decoded.
    """
    try:
        msg = BytesParser(policy=policy.compat32).parse(stream)
    except (OSError, MessageError) as exc:
        raise EnvelopeError(f"Cannot parse message: {exc}") from exc

    if not msg.keys():
        raise EnvelopeError("Not a message: no header fields found")

    from_name, from_email = parse_address(_raw_header(msg, "From"))
    to_name, to_email = parse_address(_raw_header(msg, "To"))

    html_part = find_html_part(msg)
    html = _decode_html(html_part) if html_part is not None else ""

    envelope = Envelope(
        subject=_decoded_header(msg, "Subject"),
        from_name=from_name,
        from_email=from_email,
        to_name=to_name,
        to_email=to_email,
        sent_date=parse_sent_date(_raw_header(msg, "Date")),
        originating_ip=normalize_originating_ip(_raw_header(msg, "X-Originating-IP")),
        html=html,
    )
    LOGGER.debug(
        "Envelope decoded: subject=%r, from=%s, date=%s, html=%d chars",
        envelope.subject,
        envelope.from_email,
        envelope.sent_date or "-",
        len(envelope.html),
    )
    return envelope
