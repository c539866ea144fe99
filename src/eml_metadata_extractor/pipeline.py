# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Candidate collection, the per-file pipeline and the concurrent batch driver."""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from .dispatch import SideEffectOptions, dispatch
from .envelope import read_envelope
from .links import extract_links
from .record import EmailRecord, build_record

LOGGER = logging.getLogger(__name__)

CANDIDATE_PATTERN = "*.eml"

# Below either threshold the batch runs on threads, above both on processes.
_SMALL_BATCH_FILES = 8
_SMALL_BATCH_BYTES = 8 * 1024 * 1024


@dataclass
class BatchResult:
    """Records of successful files, ``(path, error)`` pairs of failed ones and
    side-effect warnings of files whose records were kept."""

    records: list[EmailRecord] = field(default_factory=list)
    failures: list[tuple[Path, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --------------------------------------------------------------------------- #
# Candidate collection                                                         #
# --------------------------------------------------------------------------- #


def collect_candidates(root: Path, recursive: bool = False) -> list[Path]:
    """List ``*.eml`` files directly in ``root`` or, if ``recursive``, below it.

    Raises:
        FileNotFoundError: If ``root`` does not exist.
        NotADirectoryError: If ``root`` is not a directory.
        PermissionError: If ``root`` cannot be listed.
    """
    if not root.exists():
        raise FileNotFoundError(f"Input directory not found: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Input path is not a directory: {root}")
    # Fail here rather than in the middle of globbing.
    os.scandir(root).close()

    matches = root.rglob(CANDIDATE_PATTERN) if recursive else root.glob(CANDIDATE_PATTERN)
    candidates = sorted(p for p in matches if p.is_file())
    LOGGER.debug(
        "Collected %d candidate(s) under %s (recursive=%s)", len(candidates), root, recursive
    )
    return candidates


# --------------------------------------------------------------------------- #
# Per-file worker                                                              #
# --------------------------------------------------------------------------- #


def _run_file(
    path: Path, input_root: Path | None, options: SideEffectOptions | None
) -> tuple[EmailRecord, list[str]]:
    LOGGER.debug("Processing %s", path)
    with path.open("rb") as stream:
        envelope = read_envelope(stream)

    urls, domains = extract_links(envelope.html)
    record = build_record(path, envelope, urls, domains)

    warnings: list[str] = []
    if options is not None and options.active:
        warnings = dispatch(path, input_root or path.parent, record, envelope.html, options)

    LOGGER.debug("Processed %s: %d URL(s)", path, len(record.urls))
    return record, warnings


def process_file(
    path: Path, input_root: Path | None = None, options: SideEffectOptions | None = None
) -> EmailRecord:
    """Decode one message, extract its links, build its record and run side effects.

    Side-effect failures are logged as warnings and do not affect the returned
    record.

    Raises:
        OSError: If the file cannot be opened.
        EnvelopeError: If the file is not a decodable message.
    """
    record, warnings = _run_file(path, input_root, options)
    for msg in warnings:
        LOGGER.warning("%s", msg)
    return record


def _process_indexed(
    index: int, path: Path, input_root: Path | None, options: SideEffectOptions | None
) -> tuple[int, EmailRecord, list[str]]:
    return (index, *_run_file(path, input_root, options))


# --------------------------------------------------------------------------- #
# Batch processing                                                             #
# --------------------------------------------------------------------------- #


def _choose_executor(paths: Sequence[Path]) -> type[ThreadPoolExecutor] | type[ProcessPoolExecutor]:
    total_size = 0
    for p in paths:
        with contextlib.suppress(OSError):
            total_size += p.stat().st_size
    small_batch = len(paths) < _SMALL_BATCH_FILES or total_size < _SMALL_BATCH_BYTES
    LOGGER.debug("Batch size: %d files, %d bytes, small=%s", len(paths), total_size, small_batch)
    return ThreadPoolExecutor if small_batch else ProcessPoolExecutor


def process_many(
    paths: Sequence[Path],
    input_root: Path | None = None,
    options: SideEffectOptions | None = None,
    jobs: int = 0,
    ordered: bool = False,
    executor: type[ThreadPoolExecutor] | type[ProcessPoolExecutor] | None = None,
) -> BatchResult:
    """Run the per-file pipeline over ``paths`` on a fixed pool of workers.

    Every path is submitted up front; at most ``jobs`` pipelines run at once
    (``0`` means one per CPU). Results are collected in completion order unless
    ``ordered`` is set, in which case they are sorted back into input order.
    A failing file is logged as a warning and skipped; the batch never aborts.
    Side-effect warnings travel back with each record and are logged here, in
    the calling process.
    """
    result = BatchResult()
    if not paths:
        LOGGER.warning("No candidate files to process")
        return result

    max_workers = max(1, jobs or os.cpu_count() or 4)
    executor = executor or _choose_executor(paths)
    LOGGER.info(
        "Dispatching %d file(s): executor=%s, workers=%d",
        len(paths),
        executor.__name__,
        max_workers,
    )

    indexed: list[tuple[int, EmailRecord]] = []
    with executor(max_workers=max_workers) as ex:
        futs = {
            ex.submit(_process_indexed, i, p, input_root, options): p for i, p in enumerate(paths)
        }
        LOGGER.debug("Submitted %d task(s), draining results", len(futs))

        completed = 0
        for fut in as_completed(futs):
            src = futs[fut]
            completed += 1
            try:
                index, record, warnings = fut.result()
            except Exception as exc:
                result.failures.append((src, str(exc)))
                LOGGER.warning("%s: processing failed: %s", src, exc)
                LOGGER.debug("Failure details for %s", src, exc_info=exc)
                continue
            indexed.append((index, record))
            for msg in warnings:
                LOGGER.warning("%s", msg)
            result.warnings.extend(warnings)
            LOGGER.debug("Completed (%d/%d): %s", completed, len(paths), src)

    if ordered:
        indexed.sort(key=lambda item: item[0])
    result.records = [record for _, record in indexed]

    LOGGER.info(
        "Batch done: %d record(s), %d failure(s), %d side-effect warning(s) out of %d file(s)",
        len(result.records),
        len(result.failures),
        len(result.warnings),
        len(paths),
    )
    return result
