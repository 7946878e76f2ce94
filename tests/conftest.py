"""
Global pytest configuration for the SampleApp API tests.

Provides shared fixtures for configuration, stub collaborators and a
fully brought-up app, and enforces the Python version requirement.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from sampleapp.bootstrap import Bootstrapper, Ok, ServiceContext
from sampleapp.config import ServerConfig
from sampleapp.observability.logging import configure_logging

# Add tests directory to sys.path to support imports from test stubs
_tests_dir = Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

from stubs import RecordingRouteTable, StubPersistence  # noqa: E402

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


@pytest.fixture(scope="session", autouse=True)
def register_markers(pytestconfig: pytest.Config) -> None:
    """Register project markers to prevent unknown marker warnings."""
    markers = {
        "unit": "Unit tests that should execute quickly.",
        "integration": "Integration tests hitting multiple components.",
    }
    for name, description in markers.items():
        pytestconfig.addinivalue_line("markers", f"{name}: {description}")


@pytest.fixture(scope="session", autouse=True)
def _logging() -> None:
    configure_logging(level="DEBUG", format="console")


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(port=8123, host="127.0.0.1", database={"path": ":memory:"})


@pytest.fixture
def persistence() -> StubPersistence:
    return StubPersistence()


@pytest.fixture
def route_table() -> RecordingRouteTable:
    return RecordingRouteTable()


@pytest.fixture
def context(
    config: ServerConfig, persistence: StubPersistence, route_table: RecordingRouteTable
) -> ServiceContext:
    bootstrapper = Bootstrapper(config, persistence=persistence, route_table=route_table)
    result = asyncio.run(bootstrapper.bring_up())
    assert isinstance(result, Ok)
    return result.value


@pytest.fixture
def client(context: ServiceContext) -> Iterator[TestClient]:
    with TestClient(context.freeze()) as test_client:
        yield test_client
