"""
pytest configuration and shared fixtures for the RegionWatch API tests.

Key concern: tests must not require the live region service, activity
service or message broker. We achieve this by:
  1. Building Dashboards from in-memory fakes (see fakes.py) and injecting
     them with app.dependency_overrides[get_dashboard], so FastAPI's
     lifespan never constructs the real one.
  2. Giving the RealtimeChannel a FakeBroker transport factory instead of
     a websocket connection.
  3. Pointing the REST adapters at httpx.MockTransport handlers.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("SUBJECT_ID", None)

from fakes import build_dashboard  # noqa: E402

from regionwatch.core.diagnostics import DiagnosticSink  # noqa: E402


@pytest.fixture()
def diagnostics():
    return DiagnosticSink()


@pytest.fixture()
async def dashboard():
    """A Dashboard wired to fakes; the channel is disposed after the test."""
    dash = build_dashboard()
    yield dash
    await dash.close()


@pytest.fixture()
async def client(dashboard):
    """
    HTTPX async test client wired to the FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from regionwatch.core.dashboard import get_dashboard
    from regionwatch.main import app

    app.dependency_overrides[get_dashboard] = lambda: dashboard
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
