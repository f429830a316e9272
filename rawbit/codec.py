# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
RAW codec collaborator.

rawbit does not decode sensor data or lay out DNG files itself. A ``Codec``
exposes ``decode`` (read a RAW file and its embedded metadata) and
``encode`` (produce DNG bytes). ``DnglabCodec`` implements it on top of
exiftool (via pyexiftool) for metadata and dnglab for conversion.

Prerequisites:
    - exiftool   (https://exiftool.org)
    - dnglab     (https://github.com/dnglab/dnglab)
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Protocol

import exiftool
from exiftool.exceptions import ExifToolException

from rawbit.errors import ConfigurationError, DecodeError, EncodeError

if TYPE_CHECKING:
    from rawbit.metadata import ImageMetadata

__all__: Final[list[str]] = [
    "SUPPORTED_RAW_EXTENSIONS",
    "DecodedImage",
    "EncodeParams",
    "Codec",
    "DnglabCodec",
]

# Camera RAW formats handed to the codec (compared lower-cased)
SUPPORTED_RAW_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {
        ".3fr", ".ari", ".arw", ".cr2", ".cr3", ".crm", ".crw", ".dcr",
        ".dcs", ".dng", ".erf", ".fff", ".iiq", ".kdc", ".mef", ".mos",
        ".mrw", ".nef", ".nrw", ".orf", ".ori", ".pef", ".raf", ".raw",
        ".rw2", ".rwl", ".srw", ".x3f",
    }
)

SOFTWARE_NAME: Final[str] = "rawbit"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True, kw_only=True)
class DecodedImage:
    """A decoded RAW image as seen by the rest of the pipeline.

    Attributes:
        source: Path of the RAW file; pixel data stays in the source and is
            streamed by the encoder.
        metadata: Tag name to value mapping embedded in the source.
        preview: Embedded preview image bytes, if the codec extracted one.
        thumbnail: Embedded thumbnail bytes, if the codec extracted one.
    """

    source: Path
    metadata: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    preview: bytes | None = None
    thumbnail: bytes | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class EncodeParams:
    """Per-run DNG encoding options."""

    embed_original_bytes: bool = False
    include_preview: bool = True
    include_thumbnail: bool = True
    artist: str | None = None


class Codec(Protocol):
    """External RAW decoder / DNG encoder."""

    def validate(self) -> None:
        """Check the codec can run at all; raise ConfigurationError if not."""
        ...

    def decode(self, path: Path) -> DecodedImage:
        """Decode ``path``; raise DecodeError if it is corrupt or unsupported."""
        ...

    def encode(
        self,
        image: DecodedImage,
        metadata: ImageMetadata,
        params: EncodeParams,
    ) -> bytes:
        """Encode ``image`` as DNG; raise EncodeError on failure."""
        ...


# =============================================================================
# dnglab + exiftool
# =============================================================================


def _bool_flag(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True, slots=True, kw_only=True)
class DnglabCodec:
    """Codec backed by the ``exiftool`` and ``dnglab`` executables."""

    dnglab: str = "dnglab"
    exiftool_path: str = "exiftool"
    timeout: float | None = None

    def validate(self) -> None:
        """
        Verify both tools are on PATH and runnable.

        Raises:
            ConfigurationError: If either tool is missing.
        """
        for tool in (self.exiftool_path, self.dnglab):
            if not shutil.which(tool):
                raise ConfigurationError(f"{tool} not found in PATH")

        try:
            subprocess.run(
                [self.dnglab, "--version"],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            raise ConfigurationError(f"{self.dnglab} failed to run: {e}") from e

    def decode(self, path: Path) -> DecodedImage:
        """
        Read embedded metadata with exiftool.

        Raises:
            DecodeError: If the file cannot be opened or exiftool rejects it.
        """
        if not path.is_file():
            raise DecodeError(f"can't open file: {path}")

        try:
            # No -G/-n: plain tag names with print-converted values ("1/250")
            with exiftool.ExifToolHelper(executable=self.exiftool_path, common_args=[]) as et:
                tags = et.get_metadata(str(path))[0]
        except (ExifToolException, IndexError, OSError) as e:
            raise DecodeError(f"couldn't extract image metadata: {e}") from e

        if error := tags.get("Error"):
            raise DecodeError(f"no compatible RAW image decoder available: {error}")

        return DecodedImage(source=path, metadata=MappingProxyType(dict(tags)))

    def _command(self, image: DecodedImage, metadata: ImageMetadata, params: EncodeParams, output: Path) -> list[str]:
        cmd = [
            self.dnglab,
            "convert",
            "--embed-raw", _bool_flag(params.embed_original_bytes),
            "--dng-preview", _bool_flag(params.include_preview),
            "--dng-thumbnail", _bool_flag(params.include_thumbnail),
        ]

        artist = params.artist or metadata.extra.get("Artist")
        if artist:
            cmd += ["--artist", str(artist)]

        cmd += [str(image.source), str(output)]
        return cmd

    def encode(
        self,
        image: DecodedImage,
        metadata: ImageMetadata,
        params: EncodeParams,
    ) -> bytes:
        """
        Convert the source RAW to DNG with dnglab and return the bytes.

        Raises:
            EncodeError: If dnglab fails or produces no output.
        """
        with tempfile.TemporaryDirectory(prefix=f"{SOFTWARE_NAME}-") as tmp:
            output = Path(tmp) / f"{image.source.stem}.dng"
            cmd = self._command(image, metadata, params, output)

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    check=False,
                    timeout=self.timeout,
                )
            except (OSError, subprocess.SubprocessError) as e:
                raise EncodeError(f"Failed to run {self.dnglab}: {e}") from e

            if result.returncode != 0:
                error_msg = result.stderr or result.stdout or "Unknown error"
                raise EncodeError(f"couldn't convert image to DNG: {error_msg.strip()}")

            try:
                return output.read_bytes()
            except OSError as e:
                raise EncodeError(f"{self.dnglab} produced no output for {image.source.name}") from e
