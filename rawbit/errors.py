# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Exception hierarchy for rawbit.

``ConfigurationError`` and ``CompileError`` are fatal and raised before any
job is dispatched. ``JobError`` subclasses are raised inside a single job and
are turned into a ``Failure`` result at the worker boundary.
"""

from __future__ import annotations

from enum import StrEnum, auto
from typing import Final

__all__: Final[list[str]] = [
    "RawbitError",
    "ConfigurationError",
    "CompileErrorKind",
    "CompileError",
    "FailureKind",
    "JobError",
    "DecodeError",
    "PlanError",
    "EncodeError",
    "WriteError",
]


class RawbitError(Exception):
    """Base exception for rawbit errors."""


class ConfigurationError(RawbitError):
    """Invalid run configuration (input selection, output root, tools)."""


# =============================================================================
# Template compilation
# =============================================================================


class CompileErrorKind(StrEnum):
    """Reasons a filename format can fail to compile."""

    EMPTY = auto()
    UNKNOWN_FIELD = auto()
    INVALID_TIME_DIRECTIVE = auto()
    UNTERMINATED_FIELD = auto()


class CompileError(RawbitError):
    """Raised when a filename format string is malformed."""

    __slots__ = ("kind", "position", "length", "template", "detail")

    def __init__(
        self,
        kind: CompileErrorKind,
        detail: str,
        *,
        template: str,
        position: int = 0,
        length: int = 1,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.template = template
        self.position = position
        self.length = max(length, 1)
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.template.strip():
            return self.detail
        marker = " " * self.position + "^" * self.length
        return f"{self.detail}\n  {self.template}\n  {marker}"


# =============================================================================
# Per-job errors
# =============================================================================


class FailureKind(StrEnum):
    """Classification carried by every failed job result."""

    DECODE = auto()
    WOULD_OVERWRITE = auto()
    OUTPUT_ESCAPES_ROOT = auto()
    TARGET_IS_DIRECTORY = auto()
    EMPTY_NAME = auto()
    INVALID_PATH = auto()
    ENCODE = auto()
    WRITE = auto()
    UNEXPECTED = auto()


class JobError(RawbitError):
    """Base class for errors scoped to a single conversion job."""

    kind: FailureKind = FailureKind.UNEXPECTED

    def __init__(self, message: str, *, kind: FailureKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class DecodeError(JobError):
    """The source file could not be read or is not a supported RAW image."""

    kind = FailureKind.DECODE


class PlanError(JobError):
    """The output path could not be planned or claimed.

    Every raise site names its ``FailureKind``.
    """


class EncodeError(JobError):
    """The codec failed to produce DNG bytes."""

    kind = FailureKind.ENCODE


class WriteError(JobError):
    """The converted DNG could not be written to disk."""

    kind = FailureKind.WRITE
