# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Per-file conversion pipeline.

decode -> resolve metadata -> plan output path -> encode -> atomic write.
Every failure is caught at the job boundary and reported as a ``Failure``
result so that one bad input never aborts the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, TypeAlias

from rawbit.codec import Codec
from rawbit.config import ConversionOptions
from rawbit.errors import FailureKind, JobError
from rawbit.metadata import resolve
from rawbit.output import OutputClaims, write_atomic
from rawbit.planner import plan
from rawbit.template import FormatTemplate

__all__: Final[list[str]] = [
    "ConversionJob",
    "Success",
    "Failure",
    "JobResult",
    "ConversionWorker",
]

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class ConversionJob:
    """One RAW file to convert."""

    input_path: Path
    relative_dir: Path = field(default_factory=Path)


@dataclass(frozen=True, slots=True)
class Success:
    """Job outcome: the DNG was written (or would be, in a dry run)."""

    input_path: Path
    output_path: Path
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return True

    @property
    def message(self) -> str:
        verb = "would write" if self.dry_run else "wrote"
        return f"{verb} {self.output_path}"


@dataclass(frozen=True, slots=True)
class Failure:
    """Job outcome: the input could not be converted."""

    input_path: Path
    reason: str
    kind: FailureKind = FailureKind.UNEXPECTED

    @property
    def ok(self) -> bool:
        return False


JobResult: TypeAlias = Success | Failure


# =============================================================================
# Worker
# =============================================================================


@dataclass(frozen=True, slots=True, kw_only=True)
class ConversionWorker:
    """Runs the conversion pipeline for single jobs.

    All collaborators are injected and shared read-only across jobs, except
    ``claims`` which is internally synchronized.
    """

    template: FormatTemplate
    options: ConversionOptions
    codec: Codec
    output_root: Path
    claims: OutputClaims = field(default_factory=OutputClaims)

    def process(self, job: ConversionJob) -> JobResult:
        """Convert one input; never raises for per-job errors."""
        try:
            output_path = self._run(job)
        except JobError as e:
            logger.warning("while processing \"%s\": %s", job.input_path, e)
            if e.__cause__ is not None:
                logger.debug("Cause of last error: %r", e.__cause__)
            return Failure(job.input_path, str(e), e.kind)

        if self.options.dry_run:
            logger.info("dry run: would've written DNG: %s", output_path)
            return Success(job.input_path, output_path, dry_run=True)
        return Success(job.input_path, output_path)

    def _run(self, job: ConversionJob) -> Path:
        opts = self.options

        decoded = self.codec.decode(job.input_path)
        metadata = resolve(decoded)

        output_path = plan(
            self.template,
            metadata,
            metadata.capture_time,
            self.output_root,
            job.relative_dir,
            recurse=opts.recurse,
            force=opts.force,
        )

        if opts.dry_run:
            return output_path

        data = self.codec.encode(decoded, metadata, opts.encode_params)

        self.claims.claim(output_path, job.input_path, force=opts.force)
        logger.info("Writing DNG: \"%s\"", output_path)
        try:
            write_atomic(output_path, data, overwrite=opts.force)
        except JobError:
            self.claims.release(output_path, job.input_path)
            raise

        return output_path
