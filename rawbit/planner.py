# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Render compiled templates into concrete output paths."""

from __future__ import annotations

import re
import stat
from datetime import datetime
from pathlib import Path
from typing import Final

from rawbit.errors import FailureKind, PlanError
from rawbit.metadata import ImageMetadata
from rawbit.template import FieldRef, FormatTemplate, Literal, TimeField

__all__: Final[list[str]] = [
    "DNG_EXTENSION",
    "render_name",
    "plan",
    "target_mode",
]

DNG_EXTENSION: Final[str] = ".dng"

_SEPARATORS_RE: Final[re.Pattern[str]] = re.compile(r"[\\/]")


def render_name(
    template: FormatTemplate,
    metadata: ImageMetadata,
    capture_time: datetime | None,
) -> str:
    """
    Render ``template`` into a (possibly multi-component) relative name.

    Time directives use ``capture_time`` exactly as recorded, in the camera's
    own timezone; with no capture time they render as empty text.
    """
    parts: list[str] = []
    for segment in template:
        match segment:
            case Literal(text=text):
                parts.append(text)
            case TimeField():
                parts.append(capture_time.strftime(segment.directive) if capture_time else "")
            case FieldRef(field=md_field):
                parts.append(metadata.value(md_field))
    return "".join(parts)


def _components(name: str) -> list[str]:
    """Split a rendered name into path components, rejecting traversal."""
    if not name.strip():
        raise PlanError(
            "format rendered an empty filename",
            kind=FailureKind.EMPTY_NAME,
        )
    if name.startswith(("/", "\\")) or Path(name).is_absolute():
        raise PlanError(
            f"rendered filename is an absolute path: {name!r}",
            kind=FailureKind.OUTPUT_ESCAPES_ROOT,
        )

    components = [c for c in _SEPARATORS_RE.split(name) if c not in ("", ".")]
    if ".." in components:
        raise PlanError(
            f"rendered filename escapes the output directory: {name!r}",
            kind=FailureKind.OUTPUT_ESCAPES_ROOT,
        )
    if not components:
        raise PlanError(
            f"format rendered no usable filename: {name!r}",
            kind=FailureKind.EMPTY_NAME,
        )
    return components


def target_mode(target: Path) -> int | None:
    """``st_mode`` of ``target``, or None when nothing is there yet.

    Raises:
        OSError: If the path can't be checked at all (name too long, a
            parent is a regular file, permission denied).
    """
    try:
        return target.stat().st_mode
    except FileNotFoundError:
        return None


def _unusable(target: Path, error: OSError) -> PlanError:
    return PlanError(
        f"can't use output path {target}: {error.strerror or error}",
        kind=FailureKind.INVALID_PATH,
    )


def plan(
    template: FormatTemplate,
    metadata: ImageMetadata,
    capture_time: datetime | None,
    output_root: Path,
    relative_dir: Path,
    *,
    recurse: bool,
    force: bool,
    extension: str = DNG_EXTENSION,
) -> Path:
    """
    Plan the output path for one image.

    Returns ``output_root / [relative_dir /] rendered_name + extension``.

    This early existence check only saves wasted encodes; the authoritative
    check happens again when the output is claimed and written.

    Raises:
        PlanError: If the name escapes ``output_root``, the target is a
            directory, it exists and ``force`` is not set, or the
            filesystem refuses the path (for example a name too long).
    """
    components = _components(render_name(template, metadata, capture_time))
    components[-1] += extension

    base = output_root
    if recurse:
        if relative_dir.is_absolute() or ".." in relative_dir.parts:
            raise PlanError(
                f"input directory escapes the output directory: {relative_dir}",
                kind=FailureKind.OUTPUT_ESCAPES_ROOT,
            )
        base = output_root / relative_dir

    target = base.joinpath(*components)

    try:
        root = output_root.resolve()
        resolved = target.resolve()
    except OSError as e:
        raise _unusable(target, e) from e

    if not resolved.is_relative_to(root):
        raise PlanError(
            f"output path {target} resolves outside {root}",
            kind=FailureKind.OUTPUT_ESCAPES_ROOT,
        )

    try:
        mode = target_mode(target)
    except OSError as e:
        raise _unusable(target, e) from e

    if mode is not None and stat.S_ISDIR(mode):
        raise PlanError(
            f"computed filepath already exists as a directory: {target}",
            kind=FailureKind.TARGET_IS_DIRECTORY,
        )
    if mode is not None and not force:
        raise PlanError(
            f"won't overwrite existing file: {target}",
            kind=FailureKind.WOULD_OVERWRITE,
        )

    return target
