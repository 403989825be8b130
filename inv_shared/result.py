"""
Return type for catalog and pipeline operations.

Adapters and services hand back a `Result` instead of raising, so a failing
file or query is recorded and the run continues.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from .types import ErrorCode

T = TypeVar("T")
U = TypeVar("U")

OK_CODE = "OK"


def _code_text(code: ErrorCode | Enum | str) -> str:
    return str(code.value) if isinstance(code, Enum) else str(code)


@dataclass
class Result(Generic[T]):
    """
    Outcome of an operation: `data` when `ok`, otherwise `code` + `error`.

    `code` is always the plain string value, so it compares equal to both
    `"BUSY"` and `ErrorCode.BUSY`.

        res = await store.get_file(file_id)
        if not res.ok:
            return Result.Err(res.code, res.error or "lookup failed")
    """

    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: str = OK_CODE

    @classmethod
    def Ok(cls, data: T) -> "Result[T]":
        return cls(ok=True, data=data)

    @classmethod
    def Err(cls, code: ErrorCode | Enum | str, error: str) -> "Result[T]":
        return cls(ok=False, error=error, code=_code_text(code))

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        """Transform `data` of a successful result; errors pass through unchanged."""
        if not self.ok:
            return Result(ok=False, error=self.error, code=self.code)
        return Result.Ok(fn(self.data))

    def unwrap(self) -> T:
        """`data`, or ValueError carrying the error code and message."""
        if not self.ok:
            raise ValueError(f"[{self.code}] {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.ok and self.data is not None else default
