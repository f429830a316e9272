# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
rawbit command line interface.

Converts camera RAW files to DNG, naming each output from a format string:

    rawbit -i ~/card/DCIM -o ~/Pictures/dng -F "%Y-%m-%d_{camera.model}"
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from enum import IntEnum
from pathlib import Path
from typing import Final

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from rawbit import __version__
from rawbit.codec import Codec, DnglabCodec
from rawbit.config import ConversionOptions, RunConfig
from rawbit.errors import CompileError, ConfigurationError
from rawbit.metadata import MetadataField
from rawbit.output import OutputClaims
from rawbit.scheduler import BatchScheduler, BatchSummary, enumerate_inputs
from rawbit.template import DEFAULT_FORMAT, compile_template
from rawbit.worker import ConversionWorker

__all__: Final[list[str]] = [
    "ExitCode",
    "configure_logging",
    "parse_args",
    "run",
    "main",
]

# Console for rich output
console = Console()


class ExitCode(IntEnum):
    """Process exit status."""

    SUCCESS = 0
    JOB_FAILURES = 1
    USAGE = 2
    FORMAT_ERROR = 3
    CONFIGURATION_ERROR = 4
    INTERRUPTED = 130


# =============================================================================
# Logging
# =============================================================================


def configure_logging(verbosity: int = 0, *, quiet: bool = False, target: Console | None = None) -> None:
    """Route log records through rich on the shared console.

    -q shows errors only, -v enables debug output, and -vv also lets the
    exiftool library log its own chatter.
    """
    if quiet:
        level = logging.ERROR
    elif verbosity >= 1:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = RichHandler(
        console=target or console,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("rawbit")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    logging.getLogger("exiftool").setLevel(logging.DEBUG if verbosity >= 2 else logging.WARNING)


# =============================================================================
# CLI
# =============================================================================


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    fields = "\n".join(f"  {{{f.value}}}" for f in MetadataField)
    parser = argparse.ArgumentParser(
        prog="rawbit",
        description="A camera RAW image preprocessor and importer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Format strings mix strftime time directives (%%Y, %%m, %%d, %%H, ...) taken from
the capture time with metadata placeholders. Use %%%%, {{{{ and }}}} for literal
characters. {{image.original_filename}} is appended unless the format already
uses it (disable with --exact-format).

Metadata placeholders:
{fields}

Environment variables:
  RAWBIT_JOBS      Worker threads (default: CPU count)
  RAWBIT_DNGLAB    dnglab executable (default: dnglab)
  RAWBIT_EXIFTOOL  exiftool executable (default: exiftool)

Examples:
  %(prog)s -i DCIM -o out                    Convert every RAW in DCIM
  %(prog)s -o out IMG_0001.CR3 IMG_0002.CR3  Convert individual files
  %(prog)s -i DCIM -o out -r -n -v           Verbose recursive dry run
""",
    )

    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="individual files to convert",
    )
    parser.add_argument(
        "-i",
        "--in-dir",
        type=Path,
        default=None,
        metavar="DIR",
        help="directory containing raw files to convert",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        required=True,
        metavar="DIR",
        help="directory to write converted DNGs",
    )
    parser.add_argument(
        "-F",
        "--format",
        default=DEFAULT_FORMAT,
        metavar="FORMAT",
        help=f"filename format of converted DNGs (default: {DEFAULT_FORMAT})",
    )
    parser.add_argument(
        "--exact-format",
        action="store_true",
        help="don't append {image.original_filename} when the format omits it",
    )
    parser.add_argument(
        "-a",
        "--artist",
        default=None,
        metavar="ARTIST",
        help='value of the "artist" field in converted DNGs',
    )
    parser.add_argument(
        "--embed-original",
        action="store_true",
        help="embed the original raw image in the converted DNG (slower)",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="overwrite existing files, if they exist",
    )
    parser.add_argument(
        "-r",
        "--recurse",
        action="store_true",
        help="descend into sub-directories of --in-dir and mirror them in --out-dir",
    )
    parser.add_argument(
        "--no-preview",
        action="store_true",
        help="don't embed a preview image in converted DNGs",
    )
    parser.add_argument(
        "--no-thumbnail",
        action="store_true",
        help="don't embed a thumbnail in converted DNGs",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="plan output paths without writing anything",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        metavar="N",
        help="number of threads to use while processing input images (default: CPU count)",
    )

    log_group = parser.add_mutually_exclusive_group()
    log_group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="quiet output, only emit critical errors",
    )
    log_group.add_argument(
        "-v",
        dest="verbose",
        action="count",
        default=0,
        help="increase log verbosity; specify multiple times to increase verbosity",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_intermixed_args(argv)


def _config_from_args(args: argparse.Namespace) -> RunConfig:
    options = ConversionOptions(
        embed_raw=args.embed_original,
        no_preview=args.no_preview,
        no_thumbnail=args.no_thumbnail,
        artist=args.artist,
        force=args.force,
        dry_run=args.dry_run,
        recurse=args.recurse,
    )
    return RunConfig.create(
        output_dir=args.out_dir,
        files=args.files,
        input_dir=args.in_dir,
        format=args.format,
        exact_format=args.exact_format,
        jobs=args.jobs,
        options=options,
    )


def _prepare_output_dir(config: RunConfig) -> None:
    out = config.output_dir
    if out.exists():
        if not out.is_dir():
            raise ConfigurationError(f"destination path exists and isn't a directory: {out}")
    elif not config.options.dry_run:
        try:
            out.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"couldn't create destination directory: {out}: {e}") from e
        console.print(f"[green]Created destination directory:[/] {escape(str(out))}")


def _print_summary(summary: BatchSummary, dry_run: bool) -> None:
    successes = summary.successes
    failures = summary.failures

    if dry_run:
        for out, inputs in summary.collisions().items():
            names = ", ".join(p.name for p in inputs)
            console.print(f"[yellow]Warning:[/] {len(inputs)} inputs would write {escape(str(out))}: {escape(names)}")

    if failures:
        table = Table(title="Failed Conversions")
        table.add_column("File", style="cyan")
        table.add_column("Kind", style="red")
        table.add_column("Reason")
        for failure in failures:
            table.add_row(escape(str(failure.input_path)), failure.kind.value, escape(failure.reason))
        console.print(table)

    console.print()
    verb = "planned" if dry_run else "converted"
    if not failures:
        console.print(f"[green]Complete:[/green] {len(successes)} file(s) {verb} successfully")
    else:
        console.print(
            f"[yellow]Complete:[/yellow] {len(successes)} succeeded, "
            f"[red]{len(failures)} failed[/red]"
        )


def run(config: RunConfig, codec: Codec | None = None, *, show_progress: bool = True) -> BatchSummary:
    """
    Execute a full batch described by ``config``.

    Raises:
        CompileError: If the filename format is malformed.
        ConfigurationError: If the input selection, output directory or
            codec tools are unusable.
    """
    template = compile_template(config.format, append_original_filename=not config.exact_format)
    items = enumerate_inputs(config.files, config.input_dir, config.options.recurse)

    codec = codec or DnglabCodec(dnglab=config.dnglab, exiftool_path=config.exiftool)
    codec.validate()
    _prepare_output_dir(config)

    worker = ConversionWorker(
        template=template,
        options=config.options,
        codec=codec,
        output_root=config.output_dir,
        claims=OutputClaims(),
    )
    scheduler = BatchScheduler(jobs=config.jobs, console=console, show_progress=show_progress)

    logging.getLogger(__name__).debug(
        "Converting %d file(s) with %d worker(s), format %r",
        len(items),
        config.jobs,
        config.format,
    )
    return scheduler.run(items, worker.process)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose, quiet=args.quiet)

    try:
        config = _config_from_args(args)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] Invalid configuration: {exc}")
        return ExitCode.CONFIGURATION_ERROR

    if config.options.dry_run:
        console.print("[yellow][DRY RUN MODE][/yellow]")

    try:
        summary = run(config, show_progress=not args.quiet)
    except CompileError as exc:
        console.print("[red]Invalid format:[/red]")
        console.print(str(exc), markup=False, highlight=False)
        return ExitCode.FORMAT_ERROR
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        return ExitCode.CONFIGURATION_ERROR
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        return ExitCode.INTERRUPTED

    if not args.quiet or not summary.ok:
        _print_summary(summary, config.options.dry_run)

    return ExitCode.SUCCESS if summary.ok else ExitCode.JOB_FAILURES


if __name__ == "__main__":
    sys.exit(main())
