"""
Shared test fixtures for the forgery-guard test suite.

Provides:
- A clean ``FORGERY_GUARD_*`` environment for every test
- A Flask application protecting the ``articles`` blueprint through ``create_app``

Usage:
    def test_example(client):
        token = fetch_token(client)
        assert client.post("/articles/", data={"authenticity_token": token}).status_code == 200
"""

from __future__ import annotations

import logging

import pytest

from forgery_guard import create_app
from tests.helpers import make_articles_blueprint

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("forgery_guard").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def _forgery_guard_env(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_SECRET_KEY", "test-secret")
    monkeypatch.setenv("FORGERY_GUARD_ENV", "development")
    for name in (
        "FORGERY_GUARD_ALLOW_FORGERY_PROTECTION",
        "FORGERY_GUARD_DIGEST",
        "FORGERY_GUARD_TOKEN_PARAM",
        "FORGERY_GUARD_CHECKABLE_TYPES",
        "FORGERY_GUARD_AUDIT_LOG_PATH",
        "FORGERY_GUARD_LOG_FILE",
        "FORGERY_GUARD_TOKEN_SECRET",
        "FORGERY_GUARD_LOG_MAX_BYTES",
        "FORGERY_GUARD_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def app():
    """Application protecting the ``articles`` blueprint with the cookie digest store."""
    flask_app = create_app(blueprints=[make_articles_blueprint(except_=["preview"])])
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture()
def client(app):
    return app.test_client()
