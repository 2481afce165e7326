"""
Configuration for forgery-guard
===============================
Runtime settings for the request forgery protection layer, loaded from
environment variables. Sets up the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from forgery_guard.security.options import DEFAULT_DIGEST, DEFAULT_TOKEN_PARAM, is_hmac_digest
from forgery_guard.security.verifier import DEFAULT_CHECKABLE_TYPES


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_SECRET_KEY", "ForgeryGuardDevSecretKey"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("FORGERY_GUARD_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_LOG_FILE", ""))
    log_max_bytes: int = field(default_factory=lambda: _env_int("FORGERY_GUARD_LOG_MAX_BYTES", 10 * 1024 * 1024))
    audit_log_path: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_AUDIT_LOG_PATH", ""))

    # Request forgery protection
    allow_forgery_protection: bool = field(
        default_factory=lambda: _env_bool(
            "FORGERY_GUARD_ALLOW_FORGERY_PROTECTION",
            os.getenv("FORGERY_GUARD_ENV", "development") != "test",
        )
    )
    default_digest: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_DIGEST", DEFAULT_DIGEST))
    token_param: str = field(default_factory=lambda: os.getenv("FORGERY_GUARD_TOKEN_PARAM", DEFAULT_TOKEN_PARAM))
    checkable_types: list[str] = field(
        default_factory=lambda: _env_list("FORGERY_GUARD_CHECKABLE_TYPES", sorted(DEFAULT_CHECKABLE_TYPES))
    )

    # Session cookie
    session_cookie_secure: bool = field(
        default_factory=lambda: _env_bool(
            "FORGERY_GUARD_SESSION_COOKIE_SECURE",
            os.getenv("FORGERY_GUARD_ENV", "development") == "production",
        )
    )

    def __post_init__(self) -> None:
        if not is_hmac_digest(self.default_digest):
            raise ValueError(f"FORGERY_GUARD_DIGEST names an unknown digest algorithm: {self.default_digest}")
        if not self.token_param:
            raise ValueError("FORGERY_GUARD_TOKEN_PARAM must not be empty.")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        if not self.secret_key:
            raise RuntimeError(
                "Missing FORGERY_GUARD_SECRET_KEY environment variable. "
                "Production systems must set an explicit secret key."
            )

        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DEBUG": self.DEBUG,
            "AUDIT_LOG_PATH": self.audit_log_path,
            "AUDIT_LOG_MAX_BYTES": self.log_max_bytes,
            "ALLOW_FORGERY_PROTECTION": self.allow_forgery_protection,
            "FORGERY_GUARD_DIGEST": self.default_digest,
            "FORGERY_GUARD_TOKEN_PARAM": self.token_param,
            "FORGERY_GUARD_CHECKABLE_TYPES": list(self.checkable_types),
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
            "SESSION_COOKIE_SECURE": self.session_cookie_secure,
        }


def setup_logging(debug: bool = False, *, level: str = "INFO", log_file: str = "", max_bytes: int = 10485760) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "forgery_guard_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "forgery_guard_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "forgery_guard_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if log_file and not has_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=5, encoding="utf-8")
        file_handler.name = "forgery_guard_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"forgery_guard_console", "forgery_guard_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("FORGERY_GUARD_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    if config.environment == "production" and not config.allow_forgery_protection:
        import logging

        logging.getLogger("config_loader").warning(
            "Forgery protection is disabled in production (FORGERY_GUARD_ALLOW_FORGERY_PROTECTION=false)"
        )
    return config
