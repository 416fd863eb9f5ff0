"""
Pytest fixtures for Chainpulse tests. Uses a temporary SQLite DB and mocked upstream HTTP.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from chainpulse.chains import AdapterContext
from chainpulse.config import Settings
from chainpulse.pricing import PriceResolver, TTLCache

USER_ID = "user-0001-aaaa-bbbb"
USER_HEADERS = {"x-user-id": USER_ID, "x-user-email": "alice@example.com"}


class Upstream:
    """
    httpx.MockTransport handler that records requests and dispatches to a
    route function. Tests build one per scenario.
    """

    def __init__(self, route: Callable[[httpx.Request], httpx.Response]) -> None:
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content or b"null")


def rpc_result(request: httpx.Request, result: Any) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": json_body(request).get("id"), "result": result})


@pytest.fixture
def db(tmp_path, monkeypatch):
    """
    Point the database at a temporary SQLite file and create tables.
    Resets the engine cache so each test gets a fresh DB. Unset DATABASE_URL so we use SQLite.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "chainpulse.db"))

    from chainpulse.database import init_db, repositories, reset_engine_for_test

    reset_engine_for_test()
    init_db()
    yield repositories
    reset_engine_for_test()


@pytest.fixture
def prices():
    """Fresh resolver with its own cache."""
    return PriceResolver(TTLCache(30))


@pytest.fixture
def make_ctx(prices):
    def _make(upstream: Upstream, settings: Settings | None = None) -> AdapterContext:
        return AdapterContext(client=upstream.client(), prices=prices, settings=settings or Settings())

    return _make


@pytest.fixture
def app_settings():
    return Settings(cron_secret="s3cret")


@pytest.fixture
def client(db, app_settings):
    """FastAPI TestClient. Depends on db so the temp DB is set before the app runs."""
    from fastapi.testclient import TestClient

    from chainpulse.api_server import deps
    from chainpulse.api_server.server import app

    app.dependency_overrides[deps.get_settings] = lambda: app_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
