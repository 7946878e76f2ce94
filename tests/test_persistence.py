"""
SQLite persistence provider and data-access layer.
"""

import pytest

from sampleapp.bootstrap import Bootstrapper, Ok
from sampleapp.persistence import DatabaseConnectionError, SQLitePersistence
from stubs import RecordingRouteTable


@pytest.mark.asyncio
async def test_bring_up_attaches_sqlite_models(config):
    config = config.model_copy(
        update={"database": config.database.model_copy(update={"tables": ["widgets"]})}
    )
    bootstrapper = Bootstrapper(config, route_table=RecordingRouteTable())

    result = await bootstrapper.bring_up()

    assert isinstance(result, Ok)
    models = result.value.models
    try:
        assert models.tables == ["widgets"]
        assert await models.database.ping()

        await models.database.execute(
            "CREATE TABLE widgets (id INTEGER PRIMARY KEY, name TEXT NOT NULL)"
        )
        row_id = await models["widgets"].insert(name="sprocket")
        assert await models["widgets"].get(row_id) == {"id": row_id, "name": "sprocket"}
        assert await models["widgets"].count() == 1
        assert await models["widgets"].all() == [{"id": row_id, "name": "sprocket"}]
    finally:
        await models.close()


@pytest.mark.asyncio
async def test_file_database_creates_parent_directory(config, tmp_path):
    db_path = tmp_path / "nested" / "app.db"
    config = config.model_copy(
        update={"database": config.database.model_copy(update={"path": str(db_path)})}
    )
    bootstrapper = Bootstrapper(config, route_table=RecordingRouteTable())

    result = await bootstrapper.bring_up()

    assert isinstance(result, Ok)
    await result.value.models.close()
    assert db_path.exists()


@pytest.mark.asyncio
async def test_unopenable_database_fails_persistence_stage(config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = config.model_copy(
        update={
            "database": config.database.model_copy(update={"path": str(blocker / "app.db")})
        }
    )
    route_table = RecordingRouteTable()
    bootstrapper = Bootstrapper(config, route_table=route_table)

    result = await bootstrapper.bring_up()

    assert result.error.stage == "persistence"
    assert isinstance(result.error.__cause__, DatabaseConnectionError)
    assert not route_table.called


@pytest.mark.unit
def test_build_models_requires_connection(config):
    from fastapi import FastAPI

    from sampleapp.bootstrap import ServiceContext

    with pytest.raises(DatabaseConnectionError):
        SQLitePersistence().build_models(ServiceContext(app=FastAPI(), config=config))


@pytest.mark.asyncio
async def test_model_build_failure_closes_connection(config):
    class BrokenModels(SQLitePersistence):
        def build_models(self, context):
            self.opened = self.database
            raise RuntimeError("schema mismatch")

    persistence = BrokenModels()
    bootstrapper = Bootstrapper(
        config, persistence=persistence, route_table=RecordingRouteTable()
    )

    result = await bootstrapper.bring_up()

    assert result.error.stage == "persistence"
    assert persistence.opened is not None
    assert persistence.database is None
