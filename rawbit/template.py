# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Filename format compiler.

A format string mixes two placeholder grammars inside running text:

    %Y-%m-%d_{camera.model}_{image.original_filename}

``%`` followed by a single strftime code renders the capture time, and
``{namespace.field}`` renders a named metadata field. ``%%``, ``{{`` and
``}}`` produce the literal characters. The compiled ``FormatTemplate`` is
immutable and shared by every job in a run.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Final, TypeAlias

from rawbit.errors import CompileError, CompileErrorKind
from rawbit.metadata import MetadataField

__all__: Final[list[str]] = [
    "TIME_DIRECTIVES",
    "DEFAULT_FORMAT",
    "Literal",
    "TimeField",
    "FieldRef",
    "Segment",
    "FormatTemplate",
    "compile_template",
]

TIME_ESCAPE: Final[str] = "%"
OPEN_FIELD: Final[str] = "{"
CLOSE_FIELD: Final[str] = "}"

# Portable strftime codes accepted after the escape character
TIME_DIRECTIVES: Final[frozenset[str]] = frozenset("aAbBcdfGHIjmMpSuUVwWxXyYzZ")

DEFAULT_FORMAT: Final[str] = "{image.original_filename}"

# Joins the implicitly appended original filename onto the rendered name
AUTO_APPEND_SEPARATOR: Final[str] = "_"


@dataclass(frozen=True, slots=True)
class Literal:
    """Text copied verbatim into the filename."""

    text: str


@dataclass(frozen=True, slots=True)
class TimeField:
    """A strftime directive rendered against the capture time."""

    code: str

    @property
    def directive(self) -> str:
        return f"{TIME_ESCAPE}{self.code}"


@dataclass(frozen=True, slots=True)
class FieldRef:
    """A named metadata placeholder."""

    field: MetadataField


Segment: TypeAlias = Literal | TimeField | FieldRef


@dataclass(frozen=True, slots=True)
class FormatTemplate:
    """Compiled, immutable filename format."""

    source: str
    segments: tuple[Segment, ...]

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def fields(self) -> frozenset[MetadataField]:
        """Metadata fields referenced by this template."""
        return frozenset(s.field for s in self.segments if isinstance(s, FieldRef))


def _valid_field_names() -> str:
    return ", ".join(f.value for f in MetadataField)


class _Compiler:
    """Single-pass scanner over a format string."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self.segments: list[Segment] = []
        self._literal: list[str] = []

    def error(self, kind: CompileErrorKind, detail: str, start: int, length: int = 1) -> CompileError:
        return CompileError(kind, detail, template=self.source, position=start, length=length)

    def push_literal(self, text: str) -> None:
        self._literal.append(text)

    def push(self, segment: Segment) -> None:
        self.flush()
        self.segments.append(segment)

    def flush(self) -> None:
        if self._literal:
            self.segments.append(Literal("".join(self._literal)))
            self._literal.clear()

    def run(self) -> list[Segment]:
        src = self.source
        while self.pos < len(src):
            char = src[self.pos]
            nxt = src[self.pos + 1] if self.pos + 1 < len(src) else ""

            if char == TIME_ESCAPE:
                self.scan_time(nxt)
            elif char == OPEN_FIELD and nxt == OPEN_FIELD:
                self.push_literal(OPEN_FIELD)
                self.pos += 2
            elif char == OPEN_FIELD:
                self.scan_field()
            elif char == CLOSE_FIELD and nxt == CLOSE_FIELD:
                self.push_literal(CLOSE_FIELD)
                self.pos += 2
            else:
                self.push_literal(char)
                self.pos += 1

        self.flush()
        return self.segments

    def scan_time(self, code: str) -> None:
        if not code:
            raise self.error(
                CompileErrorKind.INVALID_TIME_DIRECTIVE,
                f"dangling '{TIME_ESCAPE}' at end of format",
                self.pos,
            )
        if code == TIME_ESCAPE:
            self.push_literal(TIME_ESCAPE)
        elif code in TIME_DIRECTIVES:
            self.push(TimeField(code))
        else:
            raise self.error(
                CompileErrorKind.INVALID_TIME_DIRECTIVE,
                f"unrecognized time directive '{TIME_ESCAPE}{code}'",
                self.pos,
                2,
            )
        self.pos += 2

    def scan_field(self) -> None:
        start = self.pos
        end = self.source.find(CLOSE_FIELD, start + 1)
        if end == -1:
            raise self.error(
                CompileErrorKind.UNTERMINATED_FIELD,
                f"unterminated '{OPEN_FIELD}' placeholder",
                start,
                len(self.source) - start,
            )

        name = self.source[start + 1 : end]
        try:
            md_field = MetadataField(name)
        except ValueError:
            raise self.error(
                CompileErrorKind.UNKNOWN_FIELD,
                f"unknown field '{name}'; valid fields are: {_valid_field_names()}",
                start,
                end - start + 1,
            ) from None

        self.push(FieldRef(md_field))
        self.pos = end + 1


def compile_template(
    template: str,
    *,
    append_original_filename: bool = True,
) -> FormatTemplate:
    """
    Compile a filename format string into a ``FormatTemplate``.

    When ``append_original_filename`` is set and the format never references
    ``{image.original_filename}``, that field is appended (after ``_``) so
    distinct inputs are less likely to render the same name.

    Raises:
        CompileError: If the format is blank, names an unknown field, has an
            unterminated placeholder, or contains an invalid time directive.
    """
    if not template or not template.strip():
        raise CompileError(CompileErrorKind.EMPTY, "filename format is empty", template=template)

    segments = _Compiler(template).run()

    original = FieldRef(MetadataField.IMAGE_ORIGINAL_FILENAME)
    if append_original_filename and original not in segments:
        if segments and isinstance(segments[-1], Literal):
            segments[-1] = Literal(segments[-1].text + AUTO_APPEND_SEPARATOR)
        else:
            segments.append(Literal(AUTO_APPEND_SEPARATOR))
        segments.append(original)

    return FormatTemplate(source=template, segments=tuple(segments))
