"""libsql access for the conversation store.

The ``libsql`` driver is synchronous; every call is pushed onto a worker
thread with ``asyncio.to_thread()`` so the webhook loop never blocks.

Where the data lives is decided by :func:`resolve_target`:

- an explicit path (tests) always wins
- ``TURSO_DATABASE_URL`` selects a hosted Turso database
- otherwise a local file at ``database_path``
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import libsql

from wulang.config import settings

# Local files only; Turso manages its own journaling.
_LOCAL_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


@dataclass(frozen=True)
class DatabaseTarget:
    location: str
    auth_token: str | None = None

    @property
    def remote(self) -> bool:
        return self.auth_token is not None


def resolve_target(db_path: Path | None = None) -> DatabaseTarget:
    if db_path is not None:
        return DatabaseTarget(str(db_path))
    if settings.turso_database_url:
        return DatabaseTarget(settings.turso_database_url, settings.turso_auth_token)
    return DatabaseTarget(str(settings.database_path))


class ResultSet:
    """Rows produced by one statement."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)


class Connection:
    """One open libsql connection.

    Used as an async context manager it is a unit of work: leaving the block
    with an exception rolls back whatever was not committed, and the
    connection is always closed.
    """

    def __init__(self, raw: Any) -> None:
        self._raw = raw

    async def execute(self, sql: str, params: tuple = ()) -> ResultSet:
        return ResultSet(await asyncio.to_thread(self._raw.execute, sql, params))

    async def execute_all(self, statements: Iterable[str]) -> None:
        """Run parameterless statements in order and commit once."""
        for statement in statements:
            await asyncio.to_thread(self._raw.execute, statement)
        await self.commit()

    async def commit(self) -> None:
        await asyncio.to_thread(self._raw.commit)

    async def rollback(self) -> None:
        await asyncio.to_thread(self._raw.rollback)

    async def close(self) -> None:
        await asyncio.to_thread(self._raw.close)

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            await self.close()


def _open(target: DatabaseTarget) -> Any:
    if target.remote:
        return libsql.connect(database=target.location, auth_token=target.auth_token)

    Path(target.location).parent.mkdir(parents=True, exist_ok=True)
    raw = libsql.connect(target.location)
    for pragma in _LOCAL_PRAGMAS:
        raw.execute(pragma)
    return raw


async def get_connection(db_path: Path | None = None) -> Connection:
    """Open a connection to the configured database (or *db_path*)."""
    target = resolve_target(db_path)
    return Connection(await asyncio.to_thread(_open, target))
