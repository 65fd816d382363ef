from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
import os

DEFAULT_QUALITY = 78


@dataclass(frozen=True)
class ConvertOptions:
    input_dir: Path
    output_dir: Path
    quality: int = DEFAULT_QUALITY
    abort_on_error: bool = False


@dataclass(frozen=True)
class ToolResult:
    command: list[str]
    returncode: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True)
class ConvertResult:
    source: Path
    output: Path
    encode: ToolResult | None
    metadata: ToolResult | None
    success: bool
    message: str


def iter_source_files(root: Path) -> Iterator[Path]:
    # symlinked files and directories are skipped
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            name for name in dirnames if not os.path.islink(os.path.join(current, name))
        )
        base = Path(current)
        for name in sorted(filenames):
            path = base / name
            if path.is_symlink() or not path.is_file():
                continue
            yield path
