from __future__ import annotations

from pathlib import Path
import os
import platform
import re
import shutil
import subprocess
import sys
from typing import Callable, Iterable

from .errors import ConfigError, MissingToolError, ToolFailedError
from .models import ConvertOptions, ConvertResult, ToolResult, iter_source_files

WINDOWS_CREATIONFLAGS = (
    getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform.startswith("win") else 0
)
ENCODER = "cjpegli"
METADATA_TOOL = "exiftool"
CHROMA_SUBSAMPLING = "422"
TOOL_ENV_VARS = {
    ENCODER: "JPEGCONVERT_CJPEGLI",
    METADATA_TOOL: "JPEGCONVERT_EXIFTOOL",
}
TOOL_GUIDANCE = {
    ENCODER: [
        "You can build it from sources https://github.com/google/jpegli",
        "Or install it using your package manager, for example:",
        "  apt install libjpegli-tools (Ubuntu 24.10)",
    ],
    METADATA_TOOL: [
        "You can install it using your package manager, for example:",
        "  apt install libimage-exiftool-perl",
        "Or download it from git",
        "  git clone https://github.com/exiftool/exiftool.git",
    ],
}
_TOOL_CACHE: dict[str, str | None] = {}


class ToolRunner:
    def __init__(self, encoder: str, metadata_tool: str) -> None:
        self.encoder = encoder
        self.metadata_tool = metadata_tool

    def encode(self, source: Path, output: Path, quality: int) -> ToolResult:
        command = [
            self.encoder,
            "--chroma_subsampling",
            CHROMA_SUBSAMPLING,
            "-q",
            str(quality),
            str(source),
            str(output),
        ]
        return run_command(command)

    def copy_metadata(self, source: Path, output: Path) -> ToolResult:
        # cjpegli drops the embedded ICC profile, so it is copied back explicitly
        command = [
            self.metadata_tool,
            "-overwrite_original",
            "-TagsFromFile",
            str(source),
            "-preserve",
            "-all",
            "-icc_profile",
            str(output),
        ]
        return run_command(command)


def run_command(command: list[str]) -> ToolResult:
    try:
        completed = subprocess.run(
            command, capture_output=True, creationflags=WINDOWS_CREATIONFLAGS
        )
    except OSError as exc:
        return ToolResult(command, 127, str(exc))
    stderr = completed.stderr.decode("utf-8", errors="replace") if completed.stderr else ""
    return ToolResult(command, completed.returncode, stderr.strip())


def check_tools() -> ToolRunner:
    encoder = get_tool_executable(ENCODER)
    if encoder is None:
        raise missing_tool_error(ENCODER)
    metadata_tool = get_tool_executable(METADATA_TOOL)
    if metadata_tool is None:
        raise missing_tool_error(METADATA_TOOL)
    return ToolRunner(encoder, metadata_tool)


def missing_tool_error(name: str) -> MissingToolError:
    env_var = TOOL_ENV_VARS[name]
    override = os.environ.get(env_var, "").strip()
    if override:
        return MissingToolError(
            name,
            [f"Point {env_var} at an executable {name}, or unset it to search PATH"],
            f"{env_var} is set to {override}, which is not an executable {name}",
        )
    return MissingToolError(name, TOOL_GUIDANCE[name])


def get_tool_executable(name: str) -> str | None:
    if name in _TOOL_CACHE:
        return _TOOL_CACHE[name]
    resolved = _find_tool(name)
    _TOOL_CACHE[name] = resolved
    return resolved


def clear_tool_cache() -> None:
    _TOOL_CACHE.clear()


def _find_tool(name: str) -> str | None:
    override = os.environ.get(TOOL_ENV_VARS.get(name, ""), "").strip()
    if override:
        return shutil.which(override)
    for base in _get_tool_search_dirs():
        for path in (base / name, base / f"{name}.exe"):
            if path.is_file():
                return str(path)
    return shutil.which(name)


def _get_tool_search_dirs() -> list[Path]:
    vendor_root = Path(__file__).resolve().parent.parent / "vendor"
    platform_key = detect_platform()
    arch_key = detect_arch()
    return [
        vendor_root / platform_key / arch_key,
        vendor_root / platform_key,
        vendor_root,
    ]


def detect_platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def detect_arch() -> str:
    if hasattr(os, "uname"):
        machine = os.uname().machine.lower()
    else:
        machine = platform.machine().lower()
    if machine in {"arm64", "aarch64"}:
        return "arm64"
    if machine in {"x86_64", "amd64"}:
        return "x64"
    return machine


def validate_quality(value: str | int) -> int:
    text = str(value)
    if not re.fullmatch(r"[0-9]+", text) or not 1 <= int(text) <= 100:
        raise ConfigError(
            f"Invalid quality value: {text}. It must be a number between 1 and 100"
        )
    return int(text)


def ensure_input_dir(input_dir: Path) -> None:
    if not input_dir.is_dir():
        raise ConfigError(f"Input folder {input_dir} does not exist")


def ensure_output_dir(
    output_dir: Path, on_create: Callable[[Path], None] | None = None
) -> None:
    if output_dir.is_dir():
        return
    if output_dir.exists():
        raise ConfigError(f"Output folder {output_dir} is not a directory")
    if on_create is not None:
        on_create(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Cannot create output folder {output_dir}: {exc}") from exc


def build_output_path(source: Path, options: ConvertOptions) -> Path:
    relative = source.relative_to(options.input_dir)
    return options.output_dir / relative


def convert_file(source: Path, options: ConvertOptions, runner: ToolRunner) -> ConvertResult:
    output = build_output_path(source, options)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return ConvertResult(
            source, output, None, None, False, f"Cannot create {output.parent}: {exc}"
        )
    encoded = runner.encode(source, output, options.quality)
    if not encoded.ok:
        return ConvertResult(
            source, output, encoded, None, False, _failure_message(ENCODER, source, encoded)
        )
    copied = runner.copy_metadata(source, output)
    if not copied.ok:
        return ConvertResult(
            source, output, encoded, copied, False, _failure_message(METADATA_TOOL, source, copied)
        )
    return ConvertResult(source, output, encoded, copied, True, "ok")


def _failure_message(tool: str, source: Path, result: ToolResult) -> str:
    message = f"{tool} failed on {source} (exit code {result.returncode})"
    if result.stderr:
        message = f"{message}: {result.stderr.splitlines()[-1]}"
    return message


def convert_files(
    files: Iterable[Path],
    options: ConvertOptions,
    runner: ToolRunner,
    on_start: Callable[[Path], None] | None = None,
    on_result: Callable[[ConvertResult], None] | None = None,
) -> list[ConvertResult]:
    results = []
    for source in files:
        if on_start is not None:
            on_start(source)
        result = convert_file(source, options, runner)
        results.append(result)
        if on_result is not None:
            on_result(result)
        if not result.success and options.abort_on_error:
            raise ToolFailedError(result)
    return results


def convert_tree(
    options: ConvertOptions,
    runner: ToolRunner,
    on_start: Callable[[Path], None] | None = None,
    on_result: Callable[[ConvertResult], None] | None = None,
) -> list[ConvertResult]:
    return convert_files(
        iter_source_files(options.input_dir), options, runner, on_start, on_result
    )
