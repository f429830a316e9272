# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Run configuration with environment variable fallbacks."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Self

from rawbit.codec import EncodeParams
from rawbit.template import DEFAULT_FORMAT

__all__: Final[list[str]] = [
    "ConversionOptions",
    "RunConfig",
]


def _get_cpu_count() -> int:
    """Get CPU count with fallback."""
    return os.cpu_count() or 1


def _get_env_int(var_name: str, /) -> int | None:
    """Get a positive int from environment variable, or None if invalid."""
    value = os.environ.get(var_name, "").strip()
    if not value:
        return None
    try:
        result = int(value)
        return result if result > 0 else None
    except ValueError:
        return None


def _get_env_str(var_name: str, /) -> str | None:
    value = os.environ.get(var_name, "").strip()
    return value or None


@dataclass(frozen=True, slots=True, kw_only=True)
class ConversionOptions:
    """Global, read-only options shared by every job in a run."""

    embed_raw: bool = False
    no_preview: bool = False
    no_thumbnail: bool = False
    artist: str | None = None
    force: bool = False
    dry_run: bool = False
    recurse: bool = False

    @property
    def encode_params(self) -> EncodeParams:
        return EncodeParams(
            embed_original_bytes=self.embed_raw,
            include_preview=not self.no_preview,
            include_thumbnail=not self.no_thumbnail,
            artist=self.artist,
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class RunConfig:
    """Everything needed to start a batch."""

    output_dir: Path
    files: tuple[Path, ...] = ()
    input_dir: Path | None = None
    format: str = DEFAULT_FORMAT
    exact_format: bool = False
    jobs: int = field(default_factory=_get_cpu_count)
    options: ConversionOptions = field(default_factory=ConversionOptions)
    dnglab: str = "dnglab"
    exiftool: str = "exiftool"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.jobs < 1:
            msg = f"jobs must be >= 1, got {self.jobs}"
            raise ValueError(msg)
        if not self.output_dir.is_absolute():
            object.__setattr__(self, "output_dir", self.output_dir.resolve())

    @classmethod
    def create(
        cls,
        *,
        output_dir: Path,
        files: Sequence[Path] | None = None,
        input_dir: Path | None = None,
        format: str | None = None,
        exact_format: bool = False,
        jobs: int | None = None,
        options: ConversionOptions | None = None,
    ) -> Self:
        """Create config from arguments with environment variable fallbacks."""
        return cls(
            output_dir=output_dir,
            files=tuple(files or ()),
            input_dir=input_dir,
            format=format or DEFAULT_FORMAT,
            exact_format=exact_format,
            jobs=jobs if jobs is not None else (_get_env_int("RAWBIT_JOBS") or _get_cpu_count()),
            options=options or ConversionOptions(),
            dnglab=_get_env_str("RAWBIT_DNGLAB") or "dnglab",
            exiftool=_get_env_str("RAWBIT_EXIFTOOL") or "exiftool",
        )
