"""Unit tests for output path planning.

Tests cover:
- Rendering of literals, time directives and fields
- Capture timezone handling
- Recursive mirroring
- Root escape rejection
- Overwrite checks
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from rawbit.errors import FailureKind, PlanError
from rawbit.metadata import MISSING, ImageMetadata
from rawbit.planner import plan, render_name
from rawbit.template import compile_template

CAPTURED = datetime(2024, 3, 2, 10, 15, 0)


@pytest.fixture
def metadata() -> ImageMetadata:
    return ImageMetadata(
        original_filename="IMG_0001",
        camera_make="Canon",
        camera_model="EOS R5",
        capture_time=CAPTURED,
    )


def _plan(template, metadata, root, relative_dir=Path(), *, recurse=False, force=False):
    return plan(
        template,
        metadata,
        metadata.capture_time,
        root,
        relative_dir,
        recurse=recurse,
        force=force,
    )


class TestRenderName:
    """Tests for render_name()."""

    def test_documented_example(self, metadata):
        template = compile_template("%Y-%m-%d_{camera.model}_{image.original_filename}")
        assert render_name(template, metadata, CAPTURED) == "2024-03-02_EOS R5_IMG_0001"

    def test_deterministic(self, metadata):
        template = compile_template("%Y%m%d-%H%M%S_{camera.make}")
        names = {render_name(template, metadata, CAPTURED) for _ in range(20)}
        assert names == {"20240302-101500_Canon_IMG_0001"}

    def test_missing_lens_renders_sentinel(self, metadata):
        template = compile_template("{lens.model}_{image.original_filename}")
        assert render_name(template, metadata, CAPTURED) == f"{MISSING}_IMG_0001"

    def test_capture_timezone_is_kept(self, metadata):
        """Time renders in the camera's own offset, not the host clock."""
        tokyo = CAPTURED.replace(tzinfo=timezone(timedelta(hours=9)))
        template = compile_template("%H%M%z", append_original_filename=False)
        assert render_name(template, metadata, tokyo) == "1015+0900"

    def test_no_capture_time_renders_empty(self, metadata):
        template = compile_template("%Y{camera.make}", append_original_filename=False)
        assert render_name(template, metadata, None) == "Canon"


class TestPlan:
    """Tests for plan()."""

    def test_flat_output(self, metadata, tmp_path):
        template = compile_template("%Y-%m-%d_{camera.model}_{image.original_filename}")
        target = _plan(template, metadata, tmp_path, Path("a/b"))
        assert target == tmp_path / "2024-03-02_EOS R5_IMG_0001.dng"

    def test_recursive_mirrors_input_tree(self, metadata, tmp_path):
        template = compile_template("{image.original_filename}")
        target = _plan(template, metadata, tmp_path, Path("2024/day2"), recurse=True)
        assert target == tmp_path / "2024" / "day2" / "IMG_0001.dng"

    def test_slash_in_literal_creates_subdirectory(self, metadata, tmp_path):
        template = compile_template("%Y/%m/{image.original_filename}")
        target = _plan(template, metadata, tmp_path)
        assert target == tmp_path / "2024" / "03" / "IMG_0001.dng"

    @pytest.mark.parametrize("fmt", ["../{image.original_filename}", "a/../../{image.original_filename}"])
    def test_traversal_rejected(self, metadata, tmp_path, fmt):
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template(fmt), metadata, tmp_path)
        assert exc_info.value.kind is FailureKind.OUTPUT_ESCAPES_ROOT

    def test_absolute_rejected(self, metadata, tmp_path):
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("/etc/{image.original_filename}"), metadata, tmp_path)
        assert exc_info.value.kind is FailureKind.OUTPUT_ESCAPES_ROOT

    def test_traversal_in_relative_dir_rejected(self, metadata, tmp_path):
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("x"), metadata, tmp_path, Path("../elsewhere"), recurse=True)
        assert exc_info.value.kind is FailureKind.OUTPUT_ESCAPES_ROOT

    def test_symlink_escape_rejected(self, metadata, tmp_path):
        root = tmp_path / "out"
        root.mkdir()
        outside = tmp_path / "outside"
        outside.mkdir()
        (root / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("link/{image.original_filename}"), metadata, root)
        assert exc_info.value.kind is FailureKind.OUTPUT_ESCAPES_ROOT

    def test_empty_name_rejected(self, metadata, tmp_path):
        template = compile_template("%Y", append_original_filename=False)
        with pytest.raises(PlanError) as exc_info:
            plan(template, metadata, None, tmp_path, Path(), recurse=False, force=False)
        assert exc_info.value.kind is FailureKind.EMPTY_NAME

    def test_existing_target_without_force(self, metadata, tmp_path):
        (tmp_path / "IMG_0001.dng").write_bytes(b"old")
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("{image.original_filename}"), metadata, tmp_path)

        assert exc_info.value.kind is FailureKind.WOULD_OVERWRITE
        assert (tmp_path / "IMG_0001.dng").read_bytes() == b"old"

    def test_existing_target_with_force(self, metadata, tmp_path):
        (tmp_path / "IMG_0001.dng").write_bytes(b"old")
        target = _plan(compile_template("{image.original_filename}"), metadata, tmp_path, force=True)
        assert target == tmp_path / "IMG_0001.dng"

    def test_directory_target_rejected_even_with_force(self, metadata, tmp_path):
        (tmp_path / "IMG_0001.dng").mkdir()
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("{image.original_filename}"), metadata, tmp_path, force=True)
        assert exc_info.value.kind is FailureKind.TARGET_IS_DIRECTORY

    def test_parent_is_a_file(self, metadata, tmp_path):
        (tmp_path / "2024").write_bytes(b"not a directory")

        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("%Y/{image.original_filename}"), metadata, tmp_path)
        assert exc_info.value.kind is FailureKind.INVALID_PATH

    def test_name_too_long(self, metadata, tmp_path):
        with pytest.raises(PlanError) as exc_info:
            _plan(compile_template("y" * 300), metadata, tmp_path)
        assert exc_info.value.kind is FailureKind.INVALID_PATH
