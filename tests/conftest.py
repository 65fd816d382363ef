from __future__ import annotations

from pathlib import Path

import pytest

from jpegconvert import convert
from jpegconvert.models import ToolResult


class FakeRunner:
    def __init__(self, fail_encode: set[str] | None = None, fail_metadata: set[str] | None = None) -> None:
        self.fail_encode = fail_encode or set()
        self.fail_metadata = fail_metadata or set()
        self.calls: list[tuple] = []

    def encode(self, source: Path, output: Path, quality: int) -> ToolResult:
        self.calls.append(("encode", source, output, quality))
        if source.name in self.fail_encode:
            return ToolResult(["cjpegli"], 1, "bad input")
        output.write_bytes(b"\xff\xd8\xff" + source.read_bytes())
        return ToolResult(["cjpegli"], 0)

    def copy_metadata(self, source: Path, output: Path) -> ToolResult:
        self.calls.append(("metadata", source, output))
        if source.name in self.fail_metadata:
            return ToolResult(["exiftool"], 2, "Warning: nothing to write\nError: bad tags")
        return ToolResult(["exiftool"], 0)


@pytest.fixture(autouse=True)
def clean_tool_cache(monkeypatch):
    monkeypatch.delenv("JPEGCONVERT_CJPEGLI", raising=False)
    monkeypatch.delenv("JPEGCONVERT_EXIFTOOL", raising=False)
    convert.clear_tool_cache()
    yield
    convert.clear_tool_cache()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    root = tmp_path / "input"
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "a.png").write_bytes(b"a")
    (root / "sub" / "b.tiff").write_bytes(b"b")
    (root / "sub" / "deep" / "c.gif").write_bytes(b"c")
    return root
