"""Unit tests for the filename format compiler.

Tests cover:
- Literal, time directive and metadata placeholder parsing
- Escapes for %, { and }
- Error kinds and positions
- Implicit {image.original_filename} appending
"""

import pytest

from rawbit.errors import CompileError, CompileErrorKind
from rawbit.metadata import MetadataField
from rawbit.template import (
    TIME_DIRECTIVES,
    FieldRef,
    Literal,
    TimeField,
    compile_template,
)

ORIGINAL = FieldRef(MetadataField.IMAGE_ORIGINAL_FILENAME)


class TestCompileSegments:
    """Tests for the segments produced by compile_template."""

    def test_mixed_format(self):
        """Time directives, fields and literals are split in order."""
        template = compile_template("%Y-%m-%d_{camera.model}_{image.original_filename}")

        assert template.segments == (
            TimeField("Y"),
            Literal("-"),
            TimeField("m"),
            Literal("-"),
            TimeField("d"),
            Literal("_"),
            FieldRef(MetadataField.CAMERA_MODEL),
            Literal("_"),
            ORIGINAL,
        )

    def test_plain_literal(self):
        """Text without placeholders is one literal plus the appended filename."""
        template = compile_template("holiday", append_original_filename=False)
        assert template.segments == (Literal("holiday"),)

    def test_escaped_percent(self):
        """%% renders a single percent sign merged into surrounding text."""
        template = compile_template("100%%{image.original_filename}")
        assert template.segments == (Literal("100%"), ORIGINAL)

    def test_escaped_braces(self):
        """{{ and }} render literal braces."""
        template = compile_template("{{%Y}}{image.original_filename}")
        assert template.segments == (
            Literal("{"),
            TimeField("Y"),
            Literal("}"),
            ORIGINAL,
        )

    def test_lone_closing_brace_is_literal(self):
        template = compile_template("a}b", append_original_filename=False)
        assert template.segments == (Literal("a}b"),)

    def test_every_schema_field_compiles(self):
        """Every member of the fixed schema is accepted."""
        for md_field in MetadataField:
            template = compile_template(f"{{{md_field.value}}}")
            assert FieldRef(md_field) in template.segments

    def test_every_time_directive_compiles(self):
        for code in TIME_DIRECTIVES:
            template = compile_template(f"%{code}", append_original_filename=False)
            assert template.segments == (TimeField(code),)

    def test_fields_property(self):
        template = compile_template("{camera.make}_{lens.model}")
        assert template.fields == frozenset(
            {MetadataField.CAMERA_MAKE, MetadataField.LENS_MODEL, MetadataField.IMAGE_ORIGINAL_FILENAME}
        )

    def test_compiled_template_is_hashable_and_equal(self):
        """Compilation is deterministic and the result immutable."""
        a = compile_template("%Y_{camera.model}")
        b = compile_template("%Y_{camera.model}")
        assert a == b
        assert hash(a) == hash(b)

    def test_iterates_segments(self):
        template = compile_template("%Y_{camera.model}")
        assert list(template) == list(template.segments)
        assert len(template) == 5


class TestAutoAppendOriginalFilename:
    """Tests for the implicit original filename policy."""

    def test_appended_when_missing(self):
        template = compile_template("%Y")
        assert template.segments == (TimeField("Y"), Literal("_"), ORIGINAL)

    def test_separator_merges_into_trailing_literal(self):
        template = compile_template("{camera.make}-x")
        assert template.segments == (
            FieldRef(MetadataField.CAMERA_MAKE),
            Literal("-x_"),
            ORIGINAL,
        )

    def test_not_duplicated_when_present(self):
        template = compile_template("{image.original_filename}_%Y")
        assert template.segments.count(ORIGINAL) == 1
        assert template.segments[0] == ORIGINAL

    def test_disabled(self):
        """--exact-format keeps the template exactly as written."""
        template = compile_template("%Y", append_original_filename=False)
        assert template.segments == (TimeField("Y"),)


class TestCompileErrors:
    """Tests for CompileError kinds and diagnostics."""

    @pytest.mark.parametrize("source", ["", "   ", "\t"])
    def test_empty(self, source):
        with pytest.raises(CompileError) as exc_info:
            compile_template(source)
        assert exc_info.value.kind is CompileErrorKind.EMPTY

    def test_unknown_field_lists_valid_names(self):
        with pytest.raises(CompileError) as exc_info:
            compile_template("%Y_{camera.colour}")

        err = exc_info.value
        assert err.kind is CompileErrorKind.UNKNOWN_FIELD
        assert err.position == 3
        for md_field in MetadataField:
            assert md_field.value in str(err)

    @pytest.mark.parametrize("name", ["camera", "camea.flash", "CAMERA.MAKE", " camera.make", ""])
    def test_non_schema_names_rejected(self, name):
        with pytest.raises(CompileError) as exc_info:
            compile_template(f"{{{name}}}")
        assert exc_info.value.kind is CompileErrorKind.UNKNOWN_FIELD

    def test_unterminated_field(self):
        with pytest.raises(CompileError) as exc_info:
            compile_template("x_{camera.make")

        err = exc_info.value
        assert err.kind is CompileErrorKind.UNTERMINATED_FIELD
        assert err.position == 2

    def test_dangling_escape(self):
        with pytest.raises(CompileError) as exc_info:
            compile_template("IMG_%")

        err = exc_info.value
        assert err.kind is CompileErrorKind.INVALID_TIME_DIRECTIVE
        assert err.position == 4

    @pytest.mark.parametrize("code", ["Q", "k", "1", "-", "{"])
    def test_unknown_time_directive(self, code):
        with pytest.raises(CompileError) as exc_info:
            compile_template(f"%{code}_x")
        assert exc_info.value.kind is CompileErrorKind.INVALID_TIME_DIRECTIVE

    def test_message_points_at_error(self):
        with pytest.raises(CompileError) as exc_info:
            compile_template("%Y_{nope}")

        lines = str(exc_info.value).splitlines()
        assert lines[1] == "  %Y_{nope}"
        assert lines[2] == "     ^^^^^^"
