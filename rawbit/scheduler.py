# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Input discovery and bounded-parallel batch execution.

Jobs are submitted to a fixed-size thread pool in enumeration order and
joined with ``as_completed``; the scheduler returns only once every job has
produced a result. A failing job never cancels its siblings.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from rawbit.codec import SUPPORTED_RAW_EXTENSIONS
from rawbit.errors import ConfigurationError, FailureKind
from rawbit.worker import ConversionJob, Failure, JobResult, Success

__all__: Final[list[str]] = [
    "InputItem",
    "enumerate_inputs",
    "BatchSummary",
    "BatchScheduler",
]

logger = logging.getLogger(__name__)


# =============================================================================
# File Discovery
# =============================================================================


@dataclass(frozen=True, slots=True)
class InputItem:
    """An input file and its directory relative to the input root."""

    path: Path
    relative_dir: Path = field(default_factory=Path)

    def to_job(self) -> ConversionJob:
        return ConversionJob(self.path, self.relative_dir)


def _is_raw(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_RAW_EXTENSIONS


def _walk(directory: Path, recurse: bool) -> list[Path]:
    found: list[Path] = []
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        raise ConfigurationError(f"couldn't stat directory: {directory}: {e}") from e

    for entry in entries:
        if entry.name.startswith("."):
            continue
        # Linked directories are never followed; they could loop or repeat inputs
        if entry.is_symlink() and entry.is_dir():
            logger.debug("Skipping linked directory %s", entry)
            continue
        if entry.is_dir():
            if recurse:
                found.extend(_walk(entry, recurse))
        elif entry.is_file() and _is_raw(entry):
            found.append(entry)
    return found


def enumerate_inputs(
    files: Sequence[Path] | None,
    input_dir: Path | None,
    recurse: bool = False,
) -> list[InputItem]:
    """
    Collect the RAW files to convert, in a deterministic order.

    Exactly one of ``files`` and ``input_dir`` must be given. Directory
    inputs keep their location relative to ``input_dir`` so recursive runs
    can mirror the source tree.

    Raises:
        ConfigurationError: If both or neither source is given, or the input
            directory does not exist.
    """
    if files and input_dir is not None:
        raise ConfigurationError("expected an input directory or a list of files, got both")
    if not files and input_dir is None:
        raise ConfigurationError("expected an input directory or a list of files, got neither")

    if input_dir is not None:
        if not input_dir.is_dir():
            raise ConfigurationError(f"source directory doesn't exist: {input_dir}")
        root = input_dir.resolve()
        return [
            InputItem(path, path.parent.relative_to(root))
            for path in _walk(root, recurse)
        ]

    items: list[InputItem] = []
    seen: set[Path] = set()
    for path in files or ():
        resolved = path.resolve()
        if not resolved.is_file():
            logger.warning("Ignoring %s: not a file", path)
            continue
        if not _is_raw(resolved):
            logger.warning("Ignoring %s: unsupported file type", path)
            continue
        if resolved in seen:
            continue
        seen.add(resolved)
        items.append(InputItem(resolved))
    return sorted(items, key=lambda item: item.path)


# =============================================================================
# Batch Execution
# =============================================================================


@dataclass(frozen=True, slots=True)
class BatchSummary:
    """All job results of a run, in enumeration order."""

    results: tuple[JobResult, ...]

    @property
    def successes(self) -> list[Success]:
        return [r for r in self.results if isinstance(r, Success)]

    @property
    def failures(self) -> list[Failure]:
        return [r for r in self.results if isinstance(r, Failure)]

    @property
    def ok(self) -> bool:
        return not self.failures

    def collisions(self) -> dict[Path, list[Path]]:
        """Output paths planned by more than one successful job."""
        counts = Counter(r.output_path for r in self.successes)
        return {
            out: [r.input_path for r in self.successes if r.output_path == out]
            for out, n in counts.items()
            if n > 1
        }


@dataclass(slots=True)
class BatchScheduler:
    """Fixed-size worker pool that runs every job to a terminal result."""

    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)
    console: Console | None = None
    show_progress: bool = True

    def __post_init__(self) -> None:
        if self.jobs < 1:
            msg = f"jobs must be >= 1, got {self.jobs}"
            raise ValueError(msg)

    def run(
        self,
        items: Sequence[InputItem],
        process: Callable[[ConversionJob], JobResult],
    ) -> BatchSummary:
        """
        Process all items with parallel execution and progress display.

        Blocks until every submitted job has produced a result.
        """
        results: dict[int, JobResult] = {}

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            disable=not self.show_progress,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Converting RAW files...", total=len(items))

            with ThreadPoolExecutor(
                max_workers=self.jobs,
                thread_name_prefix="rawbit-worker",
            ) as executor:
                futures: dict[Future[JobResult], int] = {
                    executor.submit(process, item.to_job()): index
                    for index, item in enumerate(items)
                }

                for future in as_completed(futures):
                    index = futures[future]
                    results[index] = self._collect(future, items[index])
                    progress.advance(task)

        return BatchSummary(tuple(results[i] for i in range(len(items))))

    @staticmethod
    def _collect(future: Future[JobResult], item: InputItem) -> JobResult:
        try:
            return future.result()
        except Exception as e:
            logger.exception("Unexpected error while processing \"%s\"", item.path)
            return Failure(item.path, f"Unexpected error: {e}", FailureKind.UNEXPECTED)
