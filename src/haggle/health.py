"""Health and readiness endpoints for container orchestration.

Provides two top-level routes:

- ``GET /health`` -- Liveness probe.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness probe.  Returns 200 only when the database
  answers a query **and** the catalog has items.  Returns 503 with per-check
  details otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from haggle.state.schema import close_db


def _probe_database(services: dict[str, Any]) -> None:
    conn: sqlite3.Connection = services["connect"]()
    try:
        conn.execute("SELECT 1 FROM negotiations LIMIT 1")
    finally:
        close_db(conn)


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe -- checks the database and the catalog."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        # Check 1: database reachable with schema in place
        if "connect" in services:
            try:
                await asyncio.to_thread(_probe_database, services)
                checks["database"] = "ok"
            except sqlite3.Error:
                checks["database"] = "fail"
        else:
            checks["database"] = "fail"

        # Check 2: catalog loaded
        catalog = services.get("catalog")
        checks["catalog"] = "ok" if catalog is not None and len(catalog) > 0 else "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
