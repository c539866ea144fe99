# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later

"""Optional file-system side effects run for each processed message.

Three operations exist: dumping the HTML body into a mirrored tree, renaming
the source file in place, and copying it into a mirrored tree under its
canonical name. Copying takes precedence over renaming in place. Failures are
reported back as messages, never raised, so the record stays in the results.

Canonical names can collide (same timestamp and subject). A taken name gets a
`` (1)``, `` (2)``, ... suffix; names are claimed with exclusive creation so
concurrent workers never overwrite each other's files.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .record import EmailRecord, rename_target

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectOptions:
    """Which side effects to run; everything is off by default."""

    html_out_dir: Path | None = None
    rename_in_place: bool = False
    rename_to_dir: Path | None = None

    @property
    def active(self) -> bool:
        return self.html_out_dir is not None or self.rename_in_place or self.rename_to_dir is not None


def _relative_to_root(path: Path, input_root: Path) -> Path:
    # Lexical, so a symlinked message keeps its own place in the tree.
    relative = Path(os.path.relpath(path, input_root))
    if relative.parts[:1] == ("..",):
        raise ValueError(f"{path} is not below {input_root}")
    return relative


# Highest " (n)" suffix tried before a rename or copy gives up.
MAX_NAME_SUFFIX = 999


def _candidate_names(name: str) -> list[str]:
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        stem, suffix = name, ""
    names = [name]
    for n in range(1, MAX_NAME_SUFFIX + 1):
        names.append(f"{stem} ({n}){dot}{suffix}")
    return names


# --------------------------------------------------------------------------- #
# Operations                                                                   #
# --------------------------------------------------------------------------- #


def write_html_dump(path: Path, input_root: Path, html_out_dir: Path, html: str) -> Path:
    """Write ``html`` to ``<html_out_dir>/<path relative to root>.html``."""
    out = html_out_dir / _relative_to_root(path, input_root).with_suffix(".html")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(html, encoding="utf-8")
    LOGGER.debug("HTML body of %s written to %s (%d chars)", path, out, len(html))
    return out


def rename_in_place(path: Path, record: EmailRecord) -> Path:
    """Rename ``path`` within its directory to the record's canonical name."""
    directory = path.parent
    for name in _candidate_names(rename_target(record)):
        target = directory / name
        if target == path:
            LOGGER.debug("%s already carries its canonical name", path)
            return path
        try:
            # Reserve the name; os.replace then swaps the source in atomically.
            with open(target, "xb"):
                pass
        except FileExistsError:
            LOGGER.debug("Name %s taken, trying next suffix", target.name)
            continue
        try:
            os.replace(path, target)
        except OSError:
            target.unlink(missing_ok=True)
            raise
        LOGGER.info("Renamed %s -> %s", path, target.name)
        return target
    raise FileExistsError(f"No free name for {rename_target(record)} in {directory}")


def copy_and_rename(path: Path, input_root: Path, target_root: Path, record: EmailRecord) -> Path:
    """Copy ``path`` under ``target_root``, mirroring its directory, with its canonical name."""
    target_dir = target_root / _relative_to_root(path, input_root).parent
    target_dir.mkdir(parents=True, exist_ok=True)
    for name in _candidate_names(rename_target(record)):
        target = target_dir / name
        try:
            dst = open(target, "xb")
        except FileExistsError:
            LOGGER.debug("Name %s taken, trying next suffix", target.name)
            continue
        try:
            with dst, path.open("rb") as src:
                shutil.copyfileobj(src, dst)
        except OSError:
            target.unlink(missing_ok=True)
            raise
        LOGGER.info("Copied %s -> %s", path, target)
        return target
    raise FileExistsError(f"No free name for {rename_target(record)} in {target_dir}")


def dispatch(
    path: Path,
    input_root: Path,
    record: EmailRecord,
    html: str,
    options: SideEffectOptions,
) -> list[str]:
    """Run the requested side effects for one file and return warning messages.

    Nothing is logged above DEBUG here; the caller owns the warnings, since this
    may run in a worker process outside the configured logging.
    """
    warnings: list[str] = []

    if options.html_out_dir is not None:
        try:
            write_html_dump(path, input_root, options.html_out_dir, html)
        except (OSError, ValueError) as exc:
            warnings.append(f"{path}: HTML dump failed: {exc}")
            LOGGER.debug("HTML dump of %s failed", path, exc_info=exc)

    if options.rename_to_dir is not None:
        try:
            copy_and_rename(path, input_root, options.rename_to_dir, record)
        except (OSError, ValueError) as exc:
            warnings.append(f"{path}: copy-and-rename failed: {exc}")
            LOGGER.debug("Copy of %s failed", path, exc_info=exc)
    elif options.rename_in_place:
        try:
            rename_in_place(path, record)
        except (OSError, ValueError) as exc:
            warnings.append(f"{path}: rename failed: {exc}")
            LOGGER.debug("Rename of %s failed", path, exc_info=exc)

    return warnings
