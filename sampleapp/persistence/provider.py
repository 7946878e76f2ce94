"""
Persistence collaborators consumed by the Persistence Binder.

A provider opens the backing store (`create_connection`) and then builds
the data-access layer over it (`build_models`). Retrying a failed
connection is the provider's business; the bring-up makes one call.
`close` releases the store if building the models fails.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

from sampleapp.observability.logging import get_logger
from sampleapp.persistence.database import Database, DatabaseConnectionError, Model, ModelSet

if TYPE_CHECKING:
    from sampleapp.bootstrap.context import ServiceContext

logger = get_logger(__name__)

MEMORY_DATABASE = ":memory:"


class PersistenceProvider(Protocol):
    """Interface the Persistence Binder relies on."""

    async def create_connection(self, context: "ServiceContext") -> None:
        ...

    def build_models(self, context: "ServiceContext") -> ModelSet:
        ...

    async def close(self) -> None:
        ...


class SQLitePersistence:
    """Default provider backed by aiosqlite, configured from `context.config.database`."""

    def __init__(self) -> None:
        self.database: Optional[Database] = None

    async def create_connection(self, context: "ServiceContext") -> None:
        path = context.config.database.path
        if path != MEMORY_DATABASE:
            try:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DatabaseConnectionError(f"Cannot create directory for {path}: {exc}") from exc
        self.database = await Database.connect(path)
        logger.info("database_connected", path=path)

    def build_models(self, context: "ServiceContext") -> ModelSet:
        if self.database is None:
            raise DatabaseConnectionError("build_models() called before create_connection()")
        models = {
            table: Model(table=table, database=self.database)
            for table in context.config.database.tables
        }
        return ModelSet(database=self.database, models=models)

    async def close(self) -> None:
        if self.database is not None:
            await self.database.close()
            self.database = None
            logger.info("database_closed")
