"""
Request-time behaviour of a fully brought-up app.
"""

import asyncio

import httpx
import pytest
import structlog
from fastapi.testclient import TestClient

from sampleapp.bootstrap import Bootstrapper
from sampleapp.routes import register_routes
from sampleapp.server.middleware import SECURITY_HEADERS
from stubs import RecordingRouteTable, StubPersistence


@pytest.mark.integration
def test_root_identifies_service(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "SampleApp API"
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.integration
def test_security_headers_applied(client):
    response = client.get("/")

    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value
    assert "server" not in response.headers


@pytest.mark.integration
def test_request_id_generated_and_echoed(client):
    generated = client.get("/")
    supplied = client.get("/", headers={"X-Request-ID": "trace-42"})

    assert generated.headers["X-Request-ID"].startswith("req-")
    assert supplied.headers["X-Request-ID"] == "trace-42"


@pytest.mark.integration
def test_malformed_request_id_is_replaced(client):
    response = client.get("/", headers={"X-Request-ID": "bad id with spaces"})

    assert response.headers["X-Request-ID"].startswith("req-")


@pytest.mark.integration
def test_route_error_becomes_json_500_and_service_survives(client):
    response = client.get("/boom", headers={"X-Request-ID": "boom-1"})

    assert response.status_code == 500
    body = response.json()["error"]
    assert body["type"] == "internal_error"
    assert body["request_id"] == "boom-1"
    assert "kaboom" not in response.text
    # Error responses still pass back through the outer pipeline
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Request-ID"] == "boom-1"

    assert client.get("/widgets").status_code == 200


@pytest.mark.integration
def test_unknown_route_goes_through_fault_boundary(client):
    response = client.get("/missing")

    assert response.status_code == 404
    assert response.json()["error"]["type"] == "http_error"
    assert client.post("/missing", json={}).status_code == 404


@pytest.mark.integration
def test_validation_error_is_422(client):
    response = client.post(
        "/echo", content=b"[1, 2", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 422
    assert response.json()["error"]["type"] == "validation_error"


@pytest.mark.integration
def test_body_within_limit_is_accepted(client):
    response = client.post("/echo", json={"name": "widget"})

    assert response.status_code == 200
    assert response.json() == {"name": "widget"}


@pytest.mark.integration
def test_declared_body_over_limit_is_rejected(client):
    payload = b"x" * (5 * 1024 * 1024 + 1)
    response = client.post(
        "/echo", content=payload, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 413
    assert response.json()["error"]["type"] == "payload_too_large"


@pytest.mark.integration
def test_invalid_content_length_is_rejected(client):
    response = client.post(
        "/echo", content=b"{}", headers={"Content-Length": "abc", "Content-Type": "application/json"}
    )

    assert response.status_code == 400


@pytest.mark.integration
def test_streamed_body_over_limit_is_rejected(config):
    small = config.model_copy(update={"max_body_bytes": 16})
    app = _booted_app(small)

    def chunks():
        yield b'{"a": "'
        yield b"y" * 64
        yield b'"}'

    with TestClient(app) as test_client:
        response = test_client.post(
            "/echo", content=chunks(), headers={"Content-Type": "application/json"}
        )

    assert response.status_code == 413


@pytest.mark.integration
def test_request_context_is_scoped_to_request(config):
    seen = {}

    def table(context, router_cls):
        router = router_cls()

        @router.get("/whoami")
        async def whoami() -> dict:
            seen.update(structlog.contextvars.get_contextvars())
            return {"request_id": seen.get("request_id")}

        context.app.include_router(router)

    app = _booted_app(config, route_table=table)
    with TestClient(app) as test_client:
        first = test_client.get("/whoami", headers={"X-Request-ID": "one"}).json()
        second = test_client.get("/whoami", headers={"X-Request-ID": "two"}).json()

    assert first == {"request_id": "one"}
    assert second == {"request_id": "two"}
    assert seen["method"] == "GET"
    assert seen["path"] == "/whoami"
    assert "request_id" not in structlog.contextvars.get_contextvars()


def _booted_app(config, route_table=None):
    bootstrapper = Bootstrapper(
        config,
        persistence=StubPersistence(),
        route_table=route_table or RecordingRouteTable(),
    )
    return asyncio.run(bootstrapper.bring_up()).value.freeze()


@pytest.mark.integration
def test_default_route_table_serves_health_and_metrics(config):
    app = _booted_app(config, route_table=register_routes)
    with TestClient(app) as test_client:
        health = test_client.get("/health")
        metrics = test_client.get("/metrics")

    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert metrics.status_code == 200
    assert "sampleapp_bootstrap_stage_duration_seconds" in metrics.text
    assert "sampleapp_http_requests_total" in metrics.text


@pytest.mark.integration
def test_health_reports_unhealthy_database(config):
    persistence = StubPersistence()
    persistence.database.healthy = False
    bootstrapper = Bootstrapper(config, persistence=persistence, route_table=register_routes)
    app = asyncio.run(bootstrapper.bring_up()).value.freeze()

    with TestClient(app) as test_client:
        response = test_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_request_context_isolated_between_concurrent_requests(config):
    arrived = []
    both_in_flight = asyncio.Event()

    def table(context, router_cls):
        router = router_cls()

        @router.get("/whoami")
        async def whoami() -> dict:
            arrived.append(True)
            if len(arrived) == 2:
                both_in_flight.set()
            await both_in_flight.wait()
            return {"request_id": structlog.contextvars.get_contextvars().get("request_id")}

        context.app.include_router(router)

    bootstrapper = Bootstrapper(config, persistence=StubPersistence(), route_table=table)
    app = (await bootstrapper.bring_up()).value.freeze()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        first, second = await asyncio.wait_for(
            asyncio.gather(
                client.get("/whoami", headers={"X-Request-ID": "alpha"}),
                client.get("/whoami", headers={"X-Request-ID": "beta"}),
            ),
            timeout=5,
        )

    assert first.json() == {"request_id": "alpha"}
    assert second.json() == {"request_id": "beta"}
    assert first.headers["X-Request-ID"] == "alpha"
    assert second.headers["X-Request-ID"] == "beta"
