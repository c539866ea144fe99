# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later
"""Tests for candidate collection and batch processing."""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from pathlib import Path

import pytest

from eml_metadata_extractor.dispatch import SideEffectOptions
from eml_metadata_extractor.pipeline import collect_candidates, process_file, process_many


def _failure_warnings(caplog) -> list:
    return [
        r
        for r in caplog.records
        if r.name == "eml_metadata_extractor.pipeline"
        and r.levelno == logging.WARNING
        and "processing failed" in r.getMessage()
    ]


def test_collect_single_level(write_eml, tmp_path: Path) -> None:
    """Only .eml files directly in the root are listed."""
    top = write_eml("a.eml")
    write_eml("nested/b.eml")
    (tmp_path / "inbox" / "notes.txt").write_text("x")
    assert collect_candidates(tmp_path / "inbox") == [top]


def test_collect_recursive(write_eml, tmp_path: Path) -> None:
    """Recursive mode lists the whole subtree."""
    paths = [write_eml("a.eml"), write_eml("nested/b.eml"), write_eml("nested/deeper/c.eml")]
    assert collect_candidates(tmp_path / "inbox", recursive=True) == sorted(paths)


def test_collect_missing_root(tmp_path: Path) -> None:
    """A missing input root is fatal."""
    with pytest.raises(FileNotFoundError):
        collect_candidates(tmp_path / "missing")


def test_collect_file_root(tmp_path: Path) -> None:
    """A file is not an input root."""
    file_root = tmp_path / "file.eml"
    file_root.write_text("x")
    with pytest.raises(NotADirectoryError):
        collect_candidates(file_root)


def test_process_file(write_eml) -> None:
    """One file runs through decode, extract and build."""
    path = write_eml(
        "m.eml",
        html='<a href="http://a.com/x">x</a><a href="http://a.com/x">dup</a><a href="mailto:y@z.com">s</a>',
    )
    record = process_file(path)
    assert record.folder == "inbox"
    assert record.original_file == "m.eml"
    assert record.subject == "Quarterly report"
    assert record.urls == ("http://a.com/x",)
    assert record.url_domains == ("a.com",)


def test_malformed_file_is_skipped(write_eml, tmp_path: Path, caplog) -> None:
    """One bad file among good ones yields one warning and N records."""
    good = [write_eml(f"good{i}.eml", subject=f"Message {i}") for i in range(3)]
    bad = write_eml("bad.eml", data=b"")

    with caplog.at_level(logging.WARNING):
        result = process_many([*good, bad], tmp_path / "inbox", jobs=2)

    assert len(result.records) == 3
    assert [p for p, _ in result.failures] == [bad]
    assert len(_failure_warnings(caplog)) == 1
    assert str(bad) in _failure_warnings(caplog)[0].getMessage()


@pytest.mark.parametrize("jobs", [1, 2, 8])
def test_worker_count_does_not_change_cardinality(write_eml, tmp_path: Path, jobs: int) -> None:
    """Concurrency level does not affect how many records come back."""
    paths = [write_eml(f"m{i}.eml", subject=f"Message {i}") for i in range(10)]
    paths.append(write_eml("broken.eml", data=b"no headers here at all\n"))
    result = process_many(paths, tmp_path / "inbox", jobs=jobs)
    assert len(result.records) == 10
    assert len(result.failures) == 1
    assert sorted(r.subject for r in result.records) == sorted(f"Message {i}" for i in range(10))


def test_process_pool(write_eml, tmp_path: Path) -> None:
    """Records survive the trip back from worker processes."""
    paths = [write_eml(f"m{i}.eml", subject=f"Message {i}") for i in range(4)]
    result = process_many(
        paths, tmp_path / "inbox", jobs=2, ordered=True, executor=ProcessPoolExecutor
    )
    assert [r.subject for r in result.records] == [f"Message {i}" for i in range(4)]


def test_ordered_results_follow_input(write_eml, tmp_path: Path) -> None:
    """With ordered=True records come back in input order."""
    paths = [write_eml(f"m{i:02d}.eml", subject=f"Message {i}") for i in range(12)]
    result = process_many(
        paths, tmp_path / "inbox", jobs=4, ordered=True, executor=ThreadPoolExecutor
    )
    assert [r.original_file for r in result.records] == [p.name for p in paths]


def test_empty_batch(caplog) -> None:
    """No candidates gives an empty result."""
    with caplog.at_level(logging.WARNING):
        result = process_many([])
    assert result.records == []
    assert result.failures == []


def test_side_effects_in_batch(write_eml, tmp_path: Path) -> None:
    """Side effects run per file and leave the records intact."""
    write_eml("sub/a.eml", subject="Re: Q1", date="Tue, 26 Mar 2024 15:30:15 +0900")
    write_eml("b.eml", subject="Status", date=None, html=None)
    root = tmp_path / "inbox"
    options = SideEffectOptions(html_out_dir=tmp_path / "html", rename_to_dir=tmp_path / "out")

    result = process_many(collect_candidates(root, recursive=True), root, options, jobs=2)

    assert len(result.records) == 2
    assert (tmp_path / "html" / "sub" / "a.html").read_text(encoding="utf-8").strip().startswith("<p>")
    assert (tmp_path / "html" / "b.html").read_text(encoding="utf-8") == ""
    assert (tmp_path / "out" / "sub" / "2024-03-26_153015 Re_ Q1.eml").exists()
    assert (tmp_path / "out" / "unknown Status.eml").exists()
    assert (root / "sub" / "a.eml").exists()


def test_failed_side_effect_keeps_record(write_eml, tmp_path: Path, caplog) -> None:
    """A subject that cannot become a file name still yields its record."""
    src = write_eml("a.eml", subject="=?utf-8?q?a=00b?=")
    root = tmp_path / "inbox"

    with caplog.at_level(logging.WARNING):
        result = process_many([src], root, SideEffectOptions(rename_in_place=True))

    assert len(result.records) == 1
    assert result.records[0].original_file == "a.eml"
    assert result.failures == []
    assert len(result.warnings) == 1
    assert "rename failed" in result.warnings[0]
    assert src.exists()
    assert not _failure_warnings(caplog)
    assert any(
        r.name == "eml_metadata_extractor.pipeline" and "rename failed" in r.getMessage()
        for r in caplog.records
    )


def test_side_effect_warnings_return_from_worker_processes(write_eml, tmp_path: Path) -> None:
    """Warnings raised inside worker processes reach the batch result."""
    paths = [write_eml(f"m{i}.eml", subject=f"Message {i}") for i in range(3)]
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    options = SideEffectOptions(html_out_dir=blocker / "html")

    result = process_many(
        paths, tmp_path / "inbox", options, jobs=2, executor=ProcessPoolExecutor
    )

    assert len(result.records) == 3
    assert len(result.warnings) == 3
    assert all("HTML dump failed" in msg for msg in result.warnings)


def test_process_file_logs_side_effect_warnings(write_eml, tmp_path: Path, caplog) -> None:
    """Outside a batch the single-file pipeline logs its own warnings."""
    src = write_eml("a.eml")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with caplog.at_level(logging.WARNING):
        record = process_file(src, tmp_path / "inbox", SideEffectOptions(html_out_dir=blocker))

    assert record.original_file == "a.eml"
    assert any("HTML dump failed" in r.getMessage() for r in caplog.records)


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlink support")
def test_symlinked_message_in_batch(make_message, tmp_path: Path) -> None:
    """A symlinked message inside the root is dumped at the link's path."""
    real = tmp_path / "elsewhere" / "real.eml"
    real.parent.mkdir()
    real.write_bytes(make_message(subject="Linked"))
    root = tmp_path / "inbox"
    root.mkdir()
    link = root / "a.eml"
    link.symlink_to(real)

    result = process_many(
        collect_candidates(root), root, SideEffectOptions(html_out_dir=tmp_path / "html")
    )

    assert [r.subject for r in result.records] == ["Linked"]
    assert result.warnings == []
    assert (tmp_path / "html" / "a.html").exists()
