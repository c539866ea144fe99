# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Charset label to byte-decoder registry used for message headers and bodies."""

from __future__ import annotations

import codecs
import logging
from types import MappingProxyType
from typing import BinaryIO

LOGGER = logging.getLogger(__name__)

# Marker for labels whose bytes are handed through untouched.
PASS_THROUGH = "passthrough"

# Codec used to turn pass-through bytes into text; ASCII is a strict subset.
_PASS_THROUGH_CODEC = "utf-8"

# --------------------------------------------------------------------------- #
# Label -> codec table                                                         #
# --------------------------------------------------------------------------- #

CHARSET_CODECS = MappingProxyType(
    {
        # Korean legacy; cp949 is the superset mail clients actually emit.
        "euc-kr": "cp949",
        "ks_c_5601-1987": "cp949",
        # Single-byte
        "iso-8859-1": "latin-1",
        "iso-8859-2": "iso8859_2",
        "windows-1252": "cp1252",
        "windows-1251": "cp1251",
        # Japanese
        "iso-2022-jp": "iso2022_jp",
        # Chinese; GB2312 is read with its GB18030 superset
        "gb2312": "gb18030",
        "big5": "big5",
        # No transform
        "ascii": PASS_THROUGH,
        "us-ascii": PASS_THROUGH,
    }
)


class UnknownCharsetError(LookupError):
    """Raised when neither the registry nor the codec machinery knows a label."""

    def __init__(self, label: str) -> None:
        super().__init__(f"Unsupported charset '{label}'")
        self.label = label


def _normalize(label: str) -> str:
    return label.strip().strip('"').lower()


def resolve_codec(label: str) -> str:
    """Return the Python codec name used to decode bytes labelled ``label``.

    Registered labels are looked up case-insensitively in ``CHARSET_CODECS``.
    Anything else is delegated to :func:`codecs.lookup`, which knows the IANA
    aliases of every codec shipped with Python.

    Raises:
        UnknownCharsetError: If no decoder exists for the label.
    """
    key = _normalize(label)
    codec = CHARSET_CODECS.get(key)
    if codec == PASS_THROUGH:
        return _PASS_THROUGH_CODEC
    if codec is not None:
        return codec

    LOGGER.debug("Charset '%s' not registered, delegating to codec lookup", key)
    try:
        return codecs.lookup(key).name
    except LookupError as exc:
        raise UnknownCharsetError(label) from exc


def charset_reader(label: str, stream: BinaryIO, errors: str = "replace") -> codecs.StreamReader:
    """Wrap a byte stream in a character-decoding stream for ``label``."""
    codec = resolve_codec(label)
    return codecs.getreader(codec)(stream, errors=errors)


def decode_bytes(data: bytes, label: str | None, errors: str = "replace") -> str:
    """Decode ``data`` according to ``label``; no label means pass-through."""
    if not label:
        return data.decode(_PASS_THROUGH_CODEC, errors=errors)
    return data.decode(resolve_codec(label), errors=errors)
