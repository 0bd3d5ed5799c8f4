"""Errors raised by the generator and by generated code."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model import Position


class GenerationError(RuntimeError):
    def __init__(self, message: str, pos: "Position | None" = None) -> None:
        super().__init__(message)
        self.pos = pos

    def describe(self) -> str:
        if self.pos is None:
            return f"error: {self}"
        return f"{self.pos}: error: {self}"


class DecodeError(ValueError):
    pass


class MissingFieldError(DecodeError):
    def __init__(self, field: str, context: str) -> None:
        super().__init__(f"missing required field '{field}' in {context}")
        self.field = field
        self.context = context
