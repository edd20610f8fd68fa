"""Minimal smoke tests: the app boots and its routes are mounted."""

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from orgpulse.main import app


@pytest.fixture
def client():
    return TestClient(app)


def test_app_is_fastapi():
    assert isinstance(app, FastAPI)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["app"] == "orgpulse"
    assert data["status"] == "running"


def test_routes_mounted():
    paths = {route.path for route in app.routes}
    assert "/api/analytics/activity" in paths
    assert "/api/stripe/sync" in paths
    assert "/api/stripe/export/{kind}" in paths
    assert "/api/connect" in paths
    assert "/api/disconnect" in paths


def test_openapi_tags(client):
    schema = client.get("/openapi.json").json()
    assert [tag["name"] for tag in schema["tags"]] == ["Analytics", "Billing", "Connections"]


def test_init_db_is_idempotent():
    from sqlalchemy import inspect

    from orgpulse.core import database as db_module
    from orgpulse.core.database import init_db

    init_db()
    tables = set(inspect(db_module.engine).get_table_names())
    assert {"user_connections", "stripe_subscriptions", "stripe_sync_metadata"} <= tables
