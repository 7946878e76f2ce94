"""Backing-store connection and data-access layer."""

from sampleapp.persistence.database import (
    Database,
    DatabaseConnectionError,
    Model,
    ModelSet,
)
from sampleapp.persistence.provider import PersistenceProvider, SQLitePersistence

__all__ = [
    "Database",
    "DatabaseConnectionError",
    "Model",
    "ModelSet",
    "PersistenceProvider",
    "SQLitePersistence",
]
