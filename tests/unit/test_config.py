import pytest

from forgery_guard.config import AppConfig, load_config


def test_defaults_enable_protection(monkeypatch):
    config = AppConfig()

    assert config.environment == "development"
    assert config.allow_forgery_protection is True
    assert config.default_digest == "SHA1"
    assert config.token_param == "authenticity_token"
    assert "application/x-www-form-urlencoded" in config.checkable_types
    assert "application/json" not in config.checkable_types


def test_test_environment_disables_protection(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_ENV", "test")
    assert AppConfig().allow_forgery_protection is False


def test_explicit_switch_wins_over_environment(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_ENV", "test")
    monkeypatch.setenv("FORGERY_GUARD_ALLOW_FORGERY_PROTECTION", "true")
    assert AppConfig().allow_forgery_protection is True


def test_checkable_types_from_env(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_CHECKABLE_TYPES", "text/html, application/json ,")
    assert AppConfig().checkable_types == ["text/html", "application/json"]


@pytest.mark.parametrize("digest", ["NOT-A-DIGEST", "shake_128"])
def test_unknown_digest_rejected(monkeypatch, digest):
    monkeypatch.setenv("FORGERY_GUARD_DIGEST", digest)
    with pytest.raises(ValueError):
        load_config()


def test_integer_env_must_parse(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_LOG_MAX_BYTES", "lots")
    with pytest.raises(ValueError, match="must be an integer"):
        AppConfig()


def test_as_flask_config(monkeypatch):
    monkeypatch.setenv("FORGERY_GUARD_TOKEN_PARAM", "_csrf")
    flask_config = AppConfig().as_flask_config()

    assert flask_config["SECRET_KEY"] == "test-secret"
    assert flask_config["ALLOW_FORGERY_PROTECTION"] is True
    assert flask_config["FORGERY_GUARD_TOKEN_PARAM"] == "_csrf"
    assert flask_config["SESSION_COOKIE_HTTPONLY"] is True


def test_missing_secret_key_rejected():
    config = AppConfig()
    config.secret_key = ""
    with pytest.raises(RuntimeError):
        config.as_flask_config()
