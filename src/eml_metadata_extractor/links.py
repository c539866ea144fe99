# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Hyperlink extraction from HTML message bodies."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

LOGGER = logging.getLogger(__name__)

# Used only when the document cannot be parsed into a tree.
URL_FALLBACK_RE = re.compile(r"""https?://[^\s"']+""")


def _scan_urls(html: str) -> list[str]:
    """Regex scan of raw text.

    Unlike the tree walk this does not deduplicate: every occurrence is
    returned, including ones outside anchors.
    """
    return URL_FALLBACK_RE.findall(html)


def _anchor_hrefs(soup: BeautifulSoup) -> list[str]:
    hrefs: list[str] = []
    # find_all walks the tree depth-first, children left to right
    for anchor in soup.find_all("a"):
        if not isinstance(anchor, Tag):
            continue
        href = anchor.get("href")
        if href is None:
            continue
        if isinstance(href, list):
            href = " ".join(str(h) for h in href)
        if href.startswith("http"):
            hrefs.append(href)
    return hrefs


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    uniq: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            uniq.append(item)
    return uniq


def extract_urls(html: str) -> list[str]:
    """Return absolute anchor targets in document order, first occurrence kept.

    Only ``href`` values beginning with ``http`` count. If the markup cannot be
    parsed at all, every ``http(s)://`` run in the raw text is returned as-is
    (duplicates included).
    """
    if not html or not html.strip():
        return []

    try:
        soup = BeautifulSoup(html, "lxml")
        hrefs = _anchor_hrefs(soup)
    except (ParserRejectedMarkup, ValueError, RecursionError) as exc:
        LOGGER.warning("HTML parsing failed (%s), scanning raw text for URLs", exc)
        return _scan_urls(html)

    urls = _dedupe(hrefs)
    LOGGER.debug("Found %d anchor URLs (%d unique)", len(hrefs), len(urls))
    return urls


def url_host(url: str) -> str:
    """Return the host component (``host[:port]``, no userinfo) of ``url``.

    Raises:
        ValueError: If ``url`` is not a parseable URI.
    """
    netloc = urlsplit(url).netloc
    return netloc.rpartition("@")[2]


def url_domains(urls: Iterable[str]) -> list[str]:
    """Map URLs to their hosts; unparseable URLs are left out of the result."""
    domains: list[str] = []
    for url in urls:
        try:
            domains.append(url_host(url))
        except ValueError as exc:
            LOGGER.debug("Skipping domain of unparseable URL %r: %s", url, exc)
    return domains


def extract_links(html: str) -> tuple[list[str], list[str]]:
    """Return ``(urls, domains)`` for an HTML body."""
    urls = extract_urls(html)
    return urls, url_domains(urls)
