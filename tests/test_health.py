"""Tests for /health and /ready observability endpoints.

Uses FastAPI TestClient with file-backed SQLite databases to verify
liveness and readiness probes without external dependencies.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient

from haggle.external.catalog import StaticCatalog
from haggle.health import register_health_routes
from haggle.state.schema import connect_db

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(services: dict[str, Any] | None = None) -> FastAPI:
    """Create a minimal FastAPI app with health routes and given services."""
    app = FastAPI()
    app.state.services = services or {}
    register_health_routes(app)
    return app


# ---------------------------------------------------------------------------
# /health (liveness)
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    """GET /health liveness probe."""

    def test_health_returns_200(self) -> None:
        client = TestClient(_make_app())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# /ready (readiness)
# ---------------------------------------------------------------------------


class TestReadyEndpoint:
    """GET /ready readiness probe."""

    def test_ready_when_database_and_catalog_ok(
        self, db_path: Path, catalog: StaticCatalog
    ) -> None:
        app = _make_app(
            {"connect": partial(connect_db, db_path, ensure_schema=False), "catalog": catalog}
        )

        response = TestClient(app).get("/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "checks": {"database": "ok", "catalog": "ok"},
        }

    def test_not_ready_without_schema(self, tmp_path: Path, catalog: StaticCatalog) -> None:
        """A database file with no tables fails the probe query."""
        app = _make_app(
            {
                "connect": partial(connect_db, tmp_path / "empty.db", ensure_schema=False),
                "catalog": catalog,
            }
        )

        response = TestClient(app).get("/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        assert body["checks"]["database"] == "fail"
        assert body["checks"]["catalog"] == "ok"

    def test_not_ready_with_empty_catalog(self, db_path: Path) -> None:
        app = _make_app(
            {"connect": partial(connect_db, db_path, ensure_schema=False), "catalog": StaticCatalog()}
        )

        response = TestClient(app).get("/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"database": "ok", "catalog": "fail"}

    def test_not_ready_without_services(self) -> None:
        response = TestClient(_make_app()).get("/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"database": "fail", "catalog": "fail"}
