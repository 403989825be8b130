"""
Statement helpers for the SQLite adapter: IN-clause expansion and write detection.
"""
import re
from typing import Any

from ...shared import ErrorCode, Result

IN_PLACEHOLDER = "{IN_CLAUSE}"

_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)?$")
_UNSAFE_IN_TEMPLATE = re.compile(
    r"--|/\*|\*/|;|\b(?:pragma|attach|detach|vacuum|alter|drop|insert|update|delete)\b",
    re.IGNORECASE,
)
_READ_HEADS = frozenset({"SELECT", "WITH", "PRAGMA", "EXPLAIN"})
_LOCK_MESSAGES = ("database is locked", "database table is locked", "busy")


def statement_head(query: str) -> str:
    parts = str(query or "").split(None, 1)
    return parts[0].upper() if parts else ""


def is_write_statement(query: str) -> bool:
    head = statement_head(query)
    return bool(head) and head not in _READ_HEADS


def is_locked_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(token in message for token in _LOCK_MESSAGES)


def write_outcome(cursor: Any, query: str) -> Result[int]:
    """The new rowid for inserts, otherwise the number of touched rows."""
    if statement_head(query) in ("INSERT", "REPLACE") and cursor.lastrowid:
        return Result.Ok(int(cursor.lastrowid))
    return Result.Ok(max(0, cursor.rowcount or 0))


def expand_in_clause(base_query: str, column: str, count: int) -> Result[str]:
    """
    Replace the single `{IN_CLAUSE}` of a SELECT template with `column IN (?,...)`.

    Only plain or table-qualified column names are accepted, and the template
    may not carry statement separators, comments or write keywords.
    """
    column = str(column or "").strip()
    if not _IDENTIFIER.match(column):
        return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid column name: {column or '<empty>'}")
    template = str(base_query or "").strip()
    if template.count(IN_PLACEHOLDER) != 1:
        return Result.Err(ErrorCode.INVALID_INPUT, f"Query template needs exactly one {IN_PLACEHOLDER}")
    if statement_head(template) not in ("SELECT", "WITH"):
        return Result.Err(ErrorCode.INVALID_INPUT, "Query template must be a SELECT")
    if _UNSAFE_IN_TEMPLATE.search(template):
        return Result.Err(ErrorCode.INVALID_INPUT, "Query template contains forbidden SQL")
    placeholders = ",".join("?" * max(0, int(count)))
    return Result.Ok(template.replace(IN_PLACEHOLDER, f"{column} IN ({placeholders})"))
