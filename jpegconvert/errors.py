from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ConvertResult


class ConvertError(RuntimeError):
    pass


class ConfigError(ConvertError):
    pass


class MissingToolError(ConvertError):
    def __init__(self, name: str, guidance: list[str], message: str | None = None) -> None:
        super().__init__(message or f"{name} is not installed or not in PATH")
        self.name = name
        self.guidance = guidance


class ToolFailedError(ConvertError):
    def __init__(self, result: ConvertResult) -> None:
        super().__init__(result.message)
        self.result = result
