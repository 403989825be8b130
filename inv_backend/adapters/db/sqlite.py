"""
SQLite catalog adapter (aiosqlite-backed).

Critical guarantee:
- The adapter never raises to callers; it returns `Result(...)`.

A single connection is opened on first use and shared on the event loop.
Writes go through one asyncio lock and are retried with jittered backoff
while SQLite reports the database as locked.
"""

from __future__ import annotations

import asyncio
import random
import sqlite3
from pathlib import Path
from typing import Any, Awaitable, Callable

import aiosqlite

from ...config import DB_QUERY_TIMEOUT, DB_TIMEOUT
from ...shared import ErrorCode, Result, get_logger
from .sql_helpers import expand_in_clause, is_locked_error, is_write_statement, write_outcome

logger = get_logger(__name__)

# Negative cache_size is in KiB (~32 MiB).
SQLITE_CACHE_SIZE_KIB = -32000
LOCK_RETRIES = 5
LOCK_BACKOFF_SECONDS = 0.05
LOCK_BACKOFF_MAX_SECONDS = 1.0

Operation = Callable[[aiosqlite.Connection], Awaitable[Result[Any]]]


def _error_result(exc: Exception) -> Result[Any]:
    if isinstance(exc, sqlite3.IntegrityError):
        logger.warning("Integrity error: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Integrity error: {exc}")
    if isinstance(exc, sqlite3.OperationalError) and "interrupted" in str(exc).lower():
        return Result.Err(ErrorCode.TIMEOUT, "Database operation interrupted")
    logger.error("Database error (%s): %s", type(exc).__name__, exc)
    return Result.Err(ErrorCode.DB_ERROR, str(exc) or type(exc).__name__)


class Sqlite:
    """
    Async SQLite adapter returning `Result` objects.
    """

    def __init__(self, db_path: str, timeout: float = DB_TIMEOUT, query_timeout: float | None = None):
        self.db_path = Path(db_path)
        self.timeout = float(timeout)
        self.query_timeout = float(DB_QUERY_TIMEOUT if query_timeout is None else query_timeout)
        self._conn: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._closed = False
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def _connection(self) -> aiosqlite.Connection:
        if self._closed:
            raise sqlite3.ProgrammingError("Database adapter is closed")
        async with self._open_lock:
            if self._conn is None:
                # isolation_level=None: autocommit, explicit BEGIN where batching
                conn = await aiosqlite.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
                conn.row_factory = sqlite3.Row
                for pragma in (
                    "journal_mode=WAL",
                    "synchronous=NORMAL",
                    f"cache_size={SQLITE_CACHE_SIZE_KIB}",
                    f"busy_timeout={int(self.timeout * 1000)}",
                    "foreign_keys=ON",
                ):
                    await conn.execute(f"PRAGMA {pragma}")
                self._conn = conn
            return self._conn

    async def _retrying(self, operation: Operation) -> Result[Any]:
        attempt = 0
        while True:
            conn = await self._connection()
            try:
                return await operation(conn)
            except sqlite3.OperationalError as exc:
                if not is_locked_error(exc) or attempt >= LOCK_RETRIES:
                    raise
            delay = min(LOCK_BACKOFF_MAX_SECONDS, LOCK_BACKOFF_SECONDS * (2 ** attempt))
            attempt += 1
            logger.debug("Database locked, retry %d in %.2fs", attempt, delay)
            await asyncio.sleep(delay + random.uniform(0.0, delay / 2))

    async def _run(self, query: str, operation: Operation) -> Result[Any]:
        async def _attempt() -> Result[Any]:
            if is_write_statement(query):
                async with self._write_lock:
                    return await self._retrying(operation)
            return await self._retrying(operation)

        try:
            if self.query_timeout > 0:
                return await asyncio.wait_for(_attempt(), timeout=self.query_timeout)
            return await _attempt()
        except asyncio.TimeoutError:
            return Result.Err(ErrorCode.TIMEOUT, "Database operation timed out")
        except Exception as exc:
            return _error_result(exc)

    async def aexecute(self, query: str, params: tuple | None = None, fetch: bool = False) -> Result[Any]:
        """Execute one statement; returns rows when `fetch`, else the rowid/rowcount."""
        async def _execute(conn: aiosqlite.Connection) -> Result[Any]:
            async with conn.execute(query, params or ()) as cursor:
                if fetch:
                    return Result.Ok([dict(row) for row in await cursor.fetchall()])
                return write_outcome(cursor, query)
        return await self._run(query, _execute)

    async def aquery(self, sql: str, params: tuple | None = None) -> Result[list[dict[str, Any]]]:
        """Execute a SELECT query and return rows as dicts."""
        return await self.aexecute(sql, params, fetch=True)

    async def aquery_in(
        self,
        base_query: str,
        column: str,
        values: list[Any] | tuple[Any, ...],
        additional_params: tuple | None = None,
    ) -> Result[list[dict[str, Any]]]:
        """Run `base_query` with its `{IN_CLAUSE}` placeholder expanded to `column IN (?, ...)`."""
        if not isinstance(values, (list, tuple)):
            return Result.Err(ErrorCode.INVALID_INPUT, "values must be a list or tuple")
        query = expand_in_clause(base_query, column, len(values))
        if not query.ok:
            return query
        if not values:
            return Result.Ok([])
        return await self.aquery(query.data, tuple(values) + tuple(additional_params or ()))

    async def aexecutemany(self, query: str, params_list: list[tuple]) -> Result[int]:
        """Execute the same statement for many parameter tuples inside one transaction."""
        if not params_list:
            return Result.Ok(0)

        async def _execute_many(conn: aiosqlite.Connection) -> Result[int]:
            if conn.in_transaction:
                logger.warning("Rolling back a transaction left open by an interrupted batch")
                await conn.execute("ROLLBACK")
            await conn.execute("BEGIN")
            try:
                await conn.executemany(query, params_list)
                await conn.execute("COMMIT")
            except BaseException:
                # also on cancellation, otherwise the shared connection stays inside BEGIN
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
            return Result.Ok(len(params_list))
        return await self._run(query, _execute_many)

    async def aexecutescript(self, script: str) -> Result[bool]:
        """Execute a multi-statement SQL script (always treated as a write)."""
        async def _execute_script(conn: aiosqlite.Connection) -> Result[bool]:
            await conn.executescript(script)
            return Result.Ok(True)
        return await self._run("SCRIPT", _execute_script)

    async def ahas_table(self, table_name: str) -> bool:
        res = await self.aquery("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,))
        return bool(res.ok and res.data)

    async def aget_schema_version(self) -> int:
        if not await self.ahas_table("metadata"):
            return 0
        res = await self.aquery("SELECT value FROM metadata WHERE key = 'schema_version'")
        try:
            return int(res.data[0]["value"]) if res.ok and res.data else 0
        except (TypeError, ValueError):
            return 0

    async def aset_schema_version(self, version: int) -> Result[bool]:
        res = await self.aexecute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(int(version)),),
        )
        return Result.Ok(True) if res.ok else Result.Err(res.code, res.error or "Failed to set schema version")

    async def aclose(self) -> None:
        """Close the shared connection; later calls return DB_ERROR results."""
        self._closed = True
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as exc:
            logger.debug("Error closing database connection: %s", exc)
