"""
Data-access layer over an aiosqlite connection.

`Database` wraps a single shared connection; `Model` is a thin table
gateway; `ModelSet` groups the gateways attached to the service context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite


class DatabaseConnectionError(ConnectionError):
    """Raised when the backing store cannot be opened or validated."""


class Database:
    """
    Async access to one SQLite database.

    Usage:
        database = await Database.connect(":memory:")
        await database.ping()
        rows = await database.fetch_all("SELECT * FROM users")
        await database.close()
    """

    def __init__(self, connection: aiosqlite.Connection, path: str) -> None:
        self._conn = connection
        self.path = path

    @classmethod
    async def connect(cls, path: str) -> "Database":
        """Open and validate a connection, raising DatabaseConnectionError."""
        try:
            connection = await aiosqlite.connect(path)
        except (aiosqlite.Error, OSError) as exc:
            raise DatabaseConnectionError(f"Cannot open database {path}: {exc}") from exc
        connection.row_factory = aiosqlite.Row
        database = cls(connection, path)
        try:
            await database.ping()
        except aiosqlite.Error as exc:
            await connection.close()
            raise DatabaseConnectionError(f"Database {path} failed validation: {exc}") from exc
        return database

    async def ping(self) -> bool:
        async with self._conn.execute("SELECT 1") as cursor:
            row = await cursor.fetchone()
        return row is not None and row[0] == 1

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute a statement, commit, and return the last row id."""
        async with self._conn.execute(sql, tuple(params)) as cursor:
            last_row_id = cursor.lastrowid
        await self._conn.commit()
        return last_row_id or 0

    async def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        async with self._conn.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        async with self._conn.execute(sql, tuple(params)) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def close(self) -> None:
        await self._conn.close()


@dataclass
class Model:
    """Table gateway for one table. The table name is validated by config."""

    table: str
    database: Database

    async def all(self) -> List[Dict[str, Any]]:
        return await self.database.fetch_all(f'SELECT * FROM "{self.table}"')

    async def get(self, row_id: Any) -> Optional[Dict[str, Any]]:
        return await self.database.fetch_one(
            f'SELECT * FROM "{self.table}" WHERE id = ?', (row_id,)
        )

    async def count(self) -> int:
        row = await self.database.fetch_one(f'SELECT COUNT(*) AS n FROM "{self.table}"')
        return int(row["n"]) if row else 0

    async def insert(self, **values: Any) -> int:
        if not values:
            raise ValueError("insert() requires at least one column")
        columns = ", ".join(f'"{name}"' for name in values)
        placeholders = ", ".join("?" for _ in values)
        return await self.database.execute(
            f'INSERT INTO "{self.table}" ({columns}) VALUES ({placeholders})',
            values.values(),
        )


@dataclass
class ModelSet:
    """Data-access layer attached to the service context after stage 2."""

    database: Database
    models: Dict[str, Model] = field(default_factory=dict)

    @property
    def tables(self) -> List[str]:
        return list(self.models)

    def __getitem__(self, name: str) -> Model:
        return self.models[name]

    def __contains__(self, name: object) -> bool:
        return name in self.models

    async def close(self) -> None:
        await self.database.close()
