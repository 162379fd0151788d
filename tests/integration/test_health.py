"""Integration tests for GET /health."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from errors import register_error_handlers
from routes.health_routes import router as health_router


def _build_test_app(
    mongo_ok: bool = True,
    scheduler_running: bool = True,
    scheduler_configured: bool = True,
) -> FastAPI:
    """
    Build a minimal FastAPI app with a mocked DB and scheduler injected via
    lifespan. No real network connections are made.
    """
    mock_db = MagicMock()
    if mongo_ok:
        mock_db.client.admin.command = AsyncMock(return_value={"ok": 1})
    else:
        mock_db.client.admin.command = AsyncMock(
            side_effect=Exception("connection refused")
        )

    mock_scheduler = MagicMock(running=scheduler_running) if scheduler_configured else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db = mock_db
        app.state.cleanup_scheduler = mock_scheduler
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(health_router)
    return app


class TestHealthEndpoint:
    def test_healthy_when_both_ok(self):
        app = _build_test_app()
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"]["mongodb"] == "ok"
        assert body["checks"]["cleanup_scheduler"] == "running"

    def test_unhealthy_when_mongo_fails(self):
        app = _build_test_app(mongo_ok=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["mongodb"] == "error"

    def test_degraded_when_scheduler_stopped(self):
        app = _build_test_app(scheduler_running=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["cleanup_scheduler"] == "stopped"

    def test_degraded_when_scheduler_missing(self):
        app = _build_test_app(scheduler_configured=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.json()["status"] == "degraded"

    def test_mongo_failure_outranks_scheduler(self):
        app = _build_test_app(mongo_ok=False, scheduler_running=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"
