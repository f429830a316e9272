# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Image metadata schema and resolver.

Maps the loosely-keyed tag dictionary produced by the codec (exiftool tag
names) onto a closed, fixed record. Missing tags resolve to a sentinel so
that resolution never fails and never aborts a job.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Self

if TYPE_CHECKING:
    from rawbit.codec import DecodedImage

__all__: Final[list[str]] = [
    "MISSING",
    "MetadataField",
    "ImageMetadata",
    "resolve",
    "parse_capture_time",
]

# Rendered in place of any metadata value the source image does not carry
MISSING: Final[str] = "unknown"

# EXIF date layout, e.g. "2024:03:02 10:15:00"
EXIF_DATETIME_FORMAT: Final[str] = "%Y:%m:%d %H:%M:%S"

_OFFSET_RE: Final[re.Pattern[str]] = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


class MetadataField(StrEnum):
    """Named fields available to ``{namespace.field}`` placeholders."""

    CAMERA_MAKE = "camera.make"
    CAMERA_MODEL = "camera.model"
    CAMERA_SHUTTER_SPEED = "camera.shutter_speed"
    CAMERA_ISO = "camera.iso"
    CAMERA_EXPOSURE_COMPENSATION = "camera.exposure_compensation"
    CAMERA_FLASH = "camera.flash"
    LENS_MAKE = "lens.make"
    LENS_MODEL = "lens.model"
    LENS_FOCAL_LENGTH = "lens.focal_length"
    LENS_FOCUS_DISTANCE = "lens.focus_distance"
    LENS_FSTOP = "lens.fstop"
    IMAGE_WIDTH = "image.width"
    IMAGE_HEIGHT = "image.height"
    IMAGE_BIT_DEPTH = "image.bit_depth"
    IMAGE_COLOR_SPACE = "image.color_space"
    IMAGE_SEQUENCE_NUMBER = "image.sequence_number"
    IMAGE_ORIGINAL_FILENAME = "image.original_filename"

    @property
    def attribute(self) -> str:
        """Attribute name on ``ImageMetadata`` holding this field's value."""
        return self.name.lower()


# Source tags per field, in order of preference
_TAG_SOURCES: Final[dict[MetadataField, tuple[str, ...]]] = {
    MetadataField.CAMERA_MAKE: ("Make",),
    MetadataField.CAMERA_MODEL: ("Model", "UniqueCameraModel"),
    MetadataField.CAMERA_SHUTTER_SPEED: ("ExposureTime", "ShutterSpeed", "ShutterSpeedValue"),
    MetadataField.CAMERA_ISO: ("ISO", "RecommendedExposureIndex"),
    MetadataField.CAMERA_EXPOSURE_COMPENSATION: ("ExposureCompensation",),
    MetadataField.CAMERA_FLASH: ("Flash",),
    MetadataField.LENS_MAKE: ("LensMake",),
    MetadataField.LENS_MODEL: ("LensModel", "LensID", "Lens"),
    MetadataField.LENS_FOCAL_LENGTH: ("FocalLength",),
    MetadataField.LENS_FOCUS_DISTANCE: ("FocusDistance", "SubjectDistance"),
    MetadataField.LENS_FSTOP: ("FNumber", "Aperture", "ApertureValue"),
    MetadataField.IMAGE_WIDTH: ("ImageWidth", "ExifImageWidth"),
    MetadataField.IMAGE_HEIGHT: ("ImageHeight", "ExifImageHeight"),
    MetadataField.IMAGE_BIT_DEPTH: ("BitsPerSample",),
    MetadataField.IMAGE_COLOR_SPACE: ("ColorSpace",),
    MetadataField.IMAGE_SEQUENCE_NUMBER: ("ImageNumber", "SequenceNumber", "FileNumber"),
}

_CAPTURE_TIME_TAGS: Final[tuple[str, ...]] = ("DateTimeOriginal", "CreateDate")
_CAPTURE_OFFSET_TAGS: Final[tuple[str, ...]] = ("OffsetTimeOriginal", "OffsetTime")

# Tags consumed by the resolver itself; never forwarded to ``extra``
_CONSUMED_TAGS: Final[frozenset[str]] = frozenset(
    {tag for tags in _TAG_SOURCES.values() for tag in tags}
    | set(_CAPTURE_TIME_TAGS)
    | set(_CAPTURE_OFFSET_TAGS)
    | {"SourceFile"}
)


@dataclass(frozen=True, slots=True, kw_only=True)
class ImageMetadata:
    """Immutable per-image metadata record.

    Every field attribute holds rendered text; absent values hold ``MISSING``.
    ``capture_time`` is the wall-clock capture time in the camera's own
    timezone (timezone-aware when the source records an offset), or None.
    ``extra`` carries every source tag the schema does not name.
    """

    original_filename: str
    camera_make: str = MISSING
    camera_model: str = MISSING
    camera_shutter_speed: str = MISSING
    camera_iso: str = MISSING
    camera_exposure_compensation: str = MISSING
    camera_flash: str = MISSING
    lens_make: str = MISSING
    lens_model: str = MISSING
    lens_focal_length: str = MISSING
    lens_focus_distance: str = MISSING
    lens_fstop: str = MISSING
    image_width: str = MISSING
    image_height: str = MISSING
    image_bit_depth: str = MISSING
    image_color_space: str = MISSING
    image_sequence_number: str = MISSING
    capture_time: datetime | None = None
    extra: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def image_original_filename(self) -> str:
        return self.original_filename

    def value(self, md_field: MetadataField) -> str:
        """Rendered value of ``md_field``, or the sentinel."""
        return getattr(self, md_field.attribute)

    @classmethod
    def from_tags(cls, source: Path, tags: Mapping[str, object]) -> Self:
        """Factory method to build the record from exiftool-style tags."""
        values: dict[str, str] = {}
        for md_field, sources in _TAG_SOURCES.items():
            values[md_field.attribute] = _first_rendered(tags, sources)

        extra = {key: val for key, val in tags.items() if key not in _CONSUMED_TAGS}

        return cls(
            original_filename=source.stem,
            capture_time=parse_capture_time(tags),
            extra=MappingProxyType(extra),
            **values,
        )


def resolve(decoded: DecodedImage) -> ImageMetadata:
    """Resolve codec-supplied metadata into the fixed record.

    Never raises on missing data: absent tags take the ``MISSING`` sentinel.
    """
    return ImageMetadata.from_tags(decoded.source, decoded.metadata)


def parse_capture_time(tags: Mapping[str, object]) -> datetime | None:
    """Capture time from EXIF date tags, in the camera's own timezone.

    The naive EXIF wall-clock time is kept as-is; when an offset tag is
    present it is attached as a fixed timezone, never converted.
    """
    for tag in _CAPTURE_TIME_TAGS:
        raw = tags.get(tag)
        if not isinstance(raw, str):
            continue
        text = raw.strip()
        try:
            captured = datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
        except ValueError:
            continue

        # exiftool may append the offset directly: "2024:03:02 10:15:00+01:00"
        tz = _parse_offset(text[19:]) if len(text) > 19 else None
        if tz is None:
            for offset_tag in _CAPTURE_OFFSET_TAGS:
                offset = tags.get(offset_tag)
                if isinstance(offset, str) and (tz := _parse_offset(offset)):
                    break
        return captured.replace(tzinfo=tz) if tz else captured

    return None


def _parse_offset(text: str) -> timezone | None:
    match = _OFFSET_RE.match(text.strip())
    if not match:
        return None
    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    return timezone(-delta if sign == "-" else delta)


def _first_rendered(tags: Mapping[str, object], sources: tuple[str, ...]) -> str:
    for tag in sources:
        rendered = _render_value(tags.get(tag))
        if rendered:
            return rendered
    return MISSING


def _render_value(value: object) -> str:
    """Render a tag value as filename-safe text ('' when unusable)."""
    match value:
        case None | bool():
            return ""
        case float() if value.is_integer():
            text = str(int(value))
        case float():
            text = f"{value:g}"
        case list() | tuple():
            text = " ".join(_render_value(v) for v in value).strip()
        case _:
            text = str(value).strip()

    # A field always renders as one path component, whatever the tag holds
    # ("1/250", "RF24-70mm F2.8/L", "../x"). Directories come only from
    # template text, whose traversal the planner rejects.
    return text.replace("/", "_").replace("\\", "_").replace("\x00", "")
