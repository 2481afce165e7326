from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import fields
from typing import Any

from flask import Blueprint, Flask

from forgery_guard.config import AppConfig, load_config, setup_logging
from forgery_guard.security.forgery import (
    ForgeryProtection,
    authenticity_token_field,
    form_authenticity_token,
    protect_against_forgery,
    protect_from_forgery,
    request_forgery_protection_token,
)

__all__ = [
    "ForgeryProtection",
    "authenticity_token_field",
    "create_app",
    "form_authenticity_token",
    "protect_against_forgery",
    "protect_from_forgery",
    "request_forgery_protection_token",
]


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    blueprints: Iterable[Blueprint] = (),
    protect_app: Mapping[str, Any] | None = None,
    **guard_options: Any,
) -> Flask:
    """Application factory wiring forgery protection into a Flask app.

    ``config_overrides`` keys naming an :class:`AppConfig` field (in either
    case) replace that setting; any other key is set on ``app.config`` as is.

    ``protect_app`` holds ``protect_from_forgery`` options for the whole
    application; leave it ``None`` to protect blueprints individually.
    Extra keyword arguments go to :class:`ForgeryProtection`.
    """
    config = load_config()
    field_names = {f.name for f in fields(AppConfig)}
    flask_overrides: dict[str, Any] = {}
    for key, value in (config_overrides or {}).items():
        if key in field_names:
            setattr(config, key, value)
        elif key.lower() in field_names:
            setattr(config, key.lower(), value)
        else:
            flask_overrides[key] = value

    setup_logging(
        debug=config.DEBUG,
        level=config.log_level,
        log_file=config.log_file,
        max_bytes=config.log_max_bytes,
    )

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())
    flask_app.config.update(flask_overrides)

    ForgeryProtection(flask_app, **guard_options)
    if protect_app is not None:
        protect_from_forgery(flask_app, **protect_app)

    for blueprint in blueprints:
        flask_app.register_blueprint(blueprint)

    logging.getLogger(__name__).info(
        "Application created (env=%s, blueprints=%d, forgery protection=%s)",
        config.environment,
        len(flask_app.blueprints),
        "on" if config.allow_forgery_protection else "off",
    )
    return flask_app
