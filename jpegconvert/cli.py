from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import argparse
import sys
from typing import NoReturn

from .convert import (
    check_tools,
    convert_tree,
    ensure_input_dir,
    ensure_output_dir,
    validate_quality,
)
from .errors import ConfigError, MissingToolError, ToolFailedError
from .models import DEFAULT_QUALITY, ConvertOptions, ConvertResult

try:
    __version__ = version("jpegconvert")
except PackageNotFoundError:
    __version__ = "0+unknown"

DESCRIPTION = "Convert images to JPEG format and save them in output folder."
EPILOG = "Example: %(prog)s -q 90 /path/to/input /path/to/output"


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def parse_args(args: list[str]) -> argparse.Namespace:
    parser = ArgumentParser(prog="jpeg-convert", description=DESCRIPTION, epilog=EPILOG)
    parser.add_argument("input_folder", help="folder to convert, subfolders included")
    parser.add_argument("output_folder", help="destination folder, created if missing")
    parser.add_argument(
        "-q",
        "--quality",
        type=quality_arg,
        default=DEFAULT_QUALITY,
        metavar="QUALITY",
        help=f"quality of the output images (1-100). Default is {DEFAULT_QUALITY}.",
    )
    parser.add_argument(
        "--abort-on-error",
        action="store_true",
        help="stop at the first file that fails to convert",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(args)


def quality_arg(value: str) -> int:
    try:
        return validate_quality(value)
    except ConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def run(args: list[str]) -> int:
    parsed = parse_args(args)
    try:
        runner = check_tools()
    except MissingToolError as exc:
        print(str(exc), file=sys.stderr)
        for line in exc.guidance:
            print(line, file=sys.stderr)
        return 1
    options = ConvertOptions(
        input_dir=Path(parsed.input_folder),
        output_dir=Path(parsed.output_folder),
        quality=parsed.quality,
        abort_on_error=parsed.abort_on_error,
    )
    print(
        f"Converting images from {options.input_dir} to JPEG format and saving them "
        f"in {options.output_dir} with quality {options.quality}"
    )
    try:
        ensure_input_dir(options.input_dir)
        ensure_output_dir(options.output_dir, on_create=print_creating)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    converted = 0
    failed = 0

    def on_result(result: ConvertResult) -> None:
        nonlocal converted, failed
        if result.success:
            converted += 1
        else:
            failed += 1
            print(f"Warning: {result.message}", file=sys.stderr)

    try:
        convert_tree(options, runner, on_start=print_progress, on_result=on_result)
    except ToolFailedError:
        print(f"Error: aborted after {converted} converted, {failed} failed", file=sys.stderr)
        return 1
    print(f"Done: {converted} converted, {failed} failed")
    return 0


def print_progress(source: Path) -> None:
    print(f"Converting {source}", flush=True)


def print_creating(output_dir: Path) -> None:
    print(f"Output folder {output_dir} does not exist. Creating it...")


def main(argv: list[str] | None = None) -> None:
    try:
        code = run(sys.argv[1:] if argv is None else argv)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        code = 130
    raise SystemExit(code)
