"""Shared test fixtures for rawbit."""

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import pytest

from rawbit.codec import DecodedImage, EncodeParams
from rawbit.config import ConversionOptions
from rawbit.errors import DecodeError, EncodeError
from rawbit.metadata import ImageMetadata
from rawbit.output import OutputClaims
from rawbit.template import compile_template
from rawbit.worker import ConversionWorker

# Tags exiftool reports for a typical mirrorless RAW
SAMPLE_TAGS: dict[str, object] = {
    "SourceFile": "IMG_0001.ARW",
    "Make": "Canon",
    "Model": "EOS R5",
    "ExposureTime": "1/250",
    "ISO": 100,
    "FNumber": 2.8,
    "FocalLength": "50.0 mm",
    "LensModel": "RF50mm F1.2 L USM",
    "DateTimeOriginal": "2024:03:02 10:15:00",
    "Artist": "Jane Doe",
}


@dataclass
class FakeCodec:
    """In-memory codec: tags come from a per-filename table, bytes are fake."""

    tags: Mapping[str, Mapping[str, object]] = field(default_factory=dict)
    default_tags: Mapping[str, object] = field(default_factory=lambda: dict(SAMPLE_TAGS))
    corrupt: set[str] = field(default_factory=set)
    failing_encode: set[str] = field(default_factory=set)
    encoded: list[tuple[Path, EncodeParams]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def validate(self) -> None:
        pass

    def decode(self, path: Path) -> DecodedImage:
        if path.name in self.corrupt:
            raise DecodeError(f"no compatible RAW image decoder available: {path.name}")
        tags = self.tags.get(path.name, self.default_tags)
        return DecodedImage(source=path, metadata=MappingProxyType(dict(tags)))

    def encode(self, image: DecodedImage, metadata: ImageMetadata, params: EncodeParams) -> bytes:
        if image.source.name in self.failing_encode:
            raise EncodeError(f"couldn't convert image to DNG: {image.source.name}")
        with self._lock:
            self.encoded.append((image.source, params))
        return b"DNG:" + image.source.name.encode()


@pytest.fixture
def codec() -> FakeCodec:
    return FakeCodec()


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    """Directory with a few RAW files, a nested folder and some noise."""
    src = tmp_path / "in"
    src.mkdir()
    (src / "IMG_0001.ARW").write_bytes(b"raw-1")
    (src / "IMG_0002.CR3").write_bytes(b"raw-2")
    (src / "notes.txt").write_text("not an image")
    (src / ".hidden.NEF").write_bytes(b"hidden")

    nested = src / "day2"
    nested.mkdir()
    (nested / "IMG_0003.nef").write_bytes(b"raw-3")

    return src


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def make_worker(codec: FakeCodec, output_dir: Path):
    """Build a worker around the fake codec with overridable options."""

    def _make(fmt: str = "{image.original_filename}", **options) -> ConversionWorker:
        return ConversionWorker(
            template=compile_template(fmt),
            options=ConversionOptions(**options),
            codec=codec,
            output_root=output_dir,
            claims=OutputClaims(),
        )

    return _make


def snapshot(root: Path) -> dict[Path, bytes]:
    """Every file under ``root`` with its contents."""
    return {p: p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}
