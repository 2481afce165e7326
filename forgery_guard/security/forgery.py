"""
Request Forgery Protection
==========================

Protects Flask views from Cross-Site Request Forgery by embedding a token
derived from the session (which an attacker cannot know) into every form
and script-originated request, then verifying that token before the view
runs.

Only non-GET requests with an HTML form or JavaScript content type are
checked. XML and JSON APIs are out of scope and presumably use their own
authentication. GET requests are never checked; keep them safe and
idempotent.

Usage::

    guard = ForgeryProtection(app)

    articles = Blueprint("articles", __name__)
    protect_from_forgery(articles, secret="my-little-pony", except_=["index"])
    app.register_blueprint(articles)

Templates embed the token with ``{{ authenticity_token_field() }}`` or,
for script globals, ``window._token = '{{ form_authenticity_token() }}'``.

The process-wide ``ALLOW_FORGERY_PROTECTION`` switch turns every check
off. It defaults to on; test environments usually set it to ``False``.

Options given to ``protect_from_forgery`` are frozen into a
:class:`ProtectionConfig` when the blueprint is registered on an app.
The set of checked actions is fixed from then on.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from flask import Blueprint, Flask, current_app, request
from markupsafe import Markup
from pydantic import ValidationError

from forgery_guard.domain.exceptions import (
    ConfigurationError,
    InvalidAuthenticityTokenError,
    MissingSessionError,
)
from forgery_guard.infrastructure.logging.audit import AuditLogger
from forgery_guard.security.options import (
    DEFAULT_DIGEST,
    DEFAULT_TOKEN_PARAM,
    ProtectionConfig,
    ProtectionOptions,
    SecretSource,
)
from forgery_guard.security.session import SessionAdapter, flask_session_adapter
from forgery_guard.security.tokens import compute_token
from forgery_guard.security.verifier import (
    DEFAULT_CHECKABLE_TYPES,
    RequestContext,
    is_verified,
)
from forgery_guard.utils.http import GENERIC_MESSAGES, REJECTION_PAGE, error_response, html_error_response

logger = logging.getLogger(__name__)

EXTENSION_KEY = "forgery_guard"
TOKEN_CACHE_KEY = "forgery_guard.tokens"

# Key for app-level protection in the per-app config table
APP_GROUP = ""

SessionAdapterFactory = Callable[[], SessionAdapter | None]


class _GroupRegistration:
    """Options collected for one blueprint until it is registered."""

    def __init__(self, blueprint: Blueprint) -> None:
        self.name = blueprint.name
        self.options = ProtectionOptions()
        self.frozen = False

    def on_register(self, state: Any) -> None:
        guard_state = state.app.extensions.get(EXTENSION_KEY)
        if guard_state is None:
            raise ConfigurationError(
                f"Blueprint {self.name!r} uses protect_from_forgery but ForgeryProtection "
                "was not initialised on the application"
            )
        config = guard_state.freeze(self.options, group=state.name)
        guard_state.configs[state.name] = config
        self.frozen = True
        logger.info("Forgery protection enabled for blueprint %s", state.name)


_registrations: weakref.WeakKeyDictionary[Blueprint, _GroupRegistration] = weakref.WeakKeyDictionary()


class _GuardState:
    """Per-application protection state stored in ``app.extensions``."""

    def __init__(self, guard: ForgeryProtection, app: Flask) -> None:
        self.guard = guard
        self.app = app
        self.configs: dict[str, ProtectionConfig] = {}
        self.app_options = ProtectionOptions()
        self.audit: AuditLogger | None = None
        audit_path = app.config.get("AUDIT_LOG_PATH")
        if audit_path:
            self.audit = AuditLogger(audit_path, max_bytes=app.config.get("AUDIT_LOG_MAX_BYTES", 10 * 1024 * 1024))

    def freeze(self, options: ProtectionOptions, *, group: str) -> ProtectionConfig:
        try:
            return options.freeze(
                digest=self.app.config.get("FORGERY_GUARD_DIGEST", DEFAULT_DIGEST),
                token_param=self.app.config.get("FORGERY_GUARD_TOKEN_PARAM", DEFAULT_TOKEN_PARAM),
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid forgery protection options for {group or 'application'}: {exc}",
                detail={"group": group},
            ) from exc

    def resolve(self, blueprints: Sequence[str]) -> tuple[str | None, ProtectionConfig | None]:
        """Return the nearest protected group for a request and its config."""
        for name in blueprints:
            if name in self.configs:
                return name, self.configs[name]
        if APP_GROUP in self.configs:
            return APP_GROUP, self.configs[APP_GROUP]
        return None, None

    def default_config(self) -> ProtectionConfig:
        return self.freeze(ProtectionOptions(), group=APP_GROUP)


class ForgeryProtection:
    """Flask extension installing the authenticity token gate."""

    def __init__(
        self,
        app: Flask | None = None,
        *,
        session_adapter_factory: SessionAdapterFactory = flask_session_adapter,
        register_error_handler: bool = True,
    ) -> None:
        self.session_adapter_factory = session_adapter_factory
        self.register_error_handler = register_error_handler
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.config.setdefault("ALLOW_FORGERY_PROTECTION", True)
        app.config.setdefault("FORGERY_GUARD_DIGEST", DEFAULT_DIGEST)
        app.config.setdefault("FORGERY_GUARD_TOKEN_PARAM", DEFAULT_TOKEN_PARAM)
        app.config.setdefault("FORGERY_GUARD_CHECKABLE_TYPES", sorted(DEFAULT_CHECKABLE_TYPES))

        app.extensions[EXTENSION_KEY] = _GuardState(self, app)
        app.before_request(verify_authenticity_token)
        app.context_processor(_template_helpers)
        if self.register_error_handler:
            app.register_error_handler(InvalidAuthenticityTokenError, handle_invalid_authenticity_token)

        logger.info(
            "Forgery protection initialised (allow=%s, digest=%s)",
            app.config["ALLOW_FORGERY_PROTECTION"],
            app.config["FORGERY_GUARD_DIGEST"],
        )

    def protect(self, group: Flask | Blueprint, **options: Any) -> None:
        protect_from_forgery(group, **options)


def protect_from_forgery(
    group: Flask | Blueprint,
    *,
    only: str | Iterable[str] | None = None,
    except_: str | Iterable[str] | None = None,
    secret: SecretSource | None = None,
    digest: str | None = None,
    token_param: str | None = None,
) -> None:
    """Turn on request forgery protection for an app or blueprint.

    Args:
        group: The Flask application or a blueprint.
        only: Actions to verify; all actions when omitted.
        except_: Actions never verified.
        secret: Salt for the token HMAC, or a callable receiving the
                :class:`SessionAdapter`. Leave it off when the session
                store generates its own digests (the signed cookie session).
        digest: HMAC digest name. Defaults to ``"SHA1"``.
        token_param: Request parameter carrying the token.

    Repeated calls merge into the group's options.
    """
    options = {"only": only, "except_": except_, "secret": secret, "digest": digest, "token_param": token_param}

    if isinstance(group, Flask):
        guard_state = group.extensions.get(EXTENSION_KEY)
        if guard_state is None:
            raise ConfigurationError("ForgeryProtection must be initialised before protecting the application")
        merged = guard_state.app_options.copy()
        merged.update(**options)
        guard_state.configs[APP_GROUP] = guard_state.freeze(merged, group=APP_GROUP)
        guard_state.app_options = merged
        logger.info("Forgery protection enabled for application %s", group.name)
        return

    registration = _registrations.get(group)
    if registration is None:
        registration = _GroupRegistration(group)
        _registrations[group] = registration
        group.record(registration.on_register)
    elif registration.frozen:
        raise ConfigurationError(
            f"Blueprint {group.name!r} is already registered; forgery protection options are frozen",
            detail={"group": group.name},
        )
    registration.options.update(**options)


# ---------------------------------------------------------------------------
# Request-time gate
# ---------------------------------------------------------------------------


def _state() -> _GuardState:
    guard_state = current_app.extensions.get(EXTENSION_KEY)
    if guard_state is None:
        raise ConfigurationError("ForgeryProtection is not initialised on the current application")
    return guard_state


def _current_group() -> tuple[str | None, ProtectionConfig | None]:
    return _state().resolve(request.blueprints)


def verify_authenticity_token() -> None:
    """``before_request`` gate. Raises when the request is not verified."""
    group, config = _current_group()
    if config is None or not config.covers(request.endpoint):
        return None

    context = RequestContext.from_flask()
    enabled = bool(current_app.config.get("ALLOW_FORGERY_PROTECTION", True))
    checkable = current_app.config.get("FORGERY_GUARD_CHECKABLE_TYPES", DEFAULT_CHECKABLE_TYPES)
    try:
        verified = is_verified(
            context,
            None,
            config,
            enabled=enabled,
            checkable_types=checkable,
            expected_token=form_authenticity_token,
        )
    except MissingSessionError as exc:
        logger.error("Rejected %s %s: %s", request.method, request.path, exc)
        _audit(group, "missing_session")
        raise
    except ConfigurationError as exc:
        logger.error("Rejected %s %s: forgery protection misconfigured: %s", request.method, request.path, exc)
        _audit(group, "configuration")
        raise

    if verified:
        return None

    submitted = context.params.get(config.token_param)
    reason = "missing_token" if not submitted else "token_mismatch"
    logger.warning(
        "Invalid authenticity token for %s %s (endpoint=%s, reason=%s, remote=%s)",
        request.method,
        request.path,
        request.endpoint,
        reason,
        request.remote_addr,
    )
    _audit(group, reason)
    raise InvalidAuthenticityTokenError(
        "Authenticity token missing or invalid",
        detail={"endpoint": request.endpoint, "reason": reason},
    )


def _audit(group: str | None, reason: str) -> None:
    audit = _state().audit
    if audit is None:
        return
    audit.log_rejection(
        request.remote_addr,
        request.endpoint,
        reason,
        method=request.method,
        path=request.path,
        group=group or "application",
    )


# ---------------------------------------------------------------------------
# Accessors for views and templates
# ---------------------------------------------------------------------------


def current_session_adapter() -> SessionAdapter | None:
    return _state().guard.session_adapter_factory()


def form_authenticity_token() -> str:
    """Return the expected token for the current request.

    Computed once per request and cached in the WSGI environ. Pages outside any
    protected group get a token under the application's defaults so forms
    posting into a protected group still validate.
    """
    group, config = _current_group()
    if config is None:
        config = _state().default_config()
    cache: dict[str | None, str] = request.environ.setdefault(TOKEN_CACHE_KEY, {})
    if group not in cache:
        cache[group] = compute_token(current_session_adapter(), config)
    return cache[group]


def protect_against_forgery() -> bool:
    """True when forgery protection is active for the current request."""
    if not current_app.config.get("ALLOW_FORGERY_PROTECTION", True):
        return False
    _, config = _current_group()
    return config is not None


def request_forgery_protection_token() -> str:
    """Name of the request parameter that carries the token."""
    _, config = _current_group()
    if config is None:
        return current_app.config.get("FORGERY_GUARD_TOKEN_PARAM", DEFAULT_TOKEN_PARAM)
    return config.token_param


def authenticity_token_field() -> Markup:
    """Hidden form input carrying the token, or empty markup when unprotected."""
    if not protect_against_forgery():
        return Markup("")
    return Markup('<input type="hidden" name="{}" value="{}">').format(
        request_forgery_protection_token(),
        form_authenticity_token(),
    )


def _template_helpers() -> dict[str, Callable[..., Any]]:
    return {
        "form_authenticity_token": form_authenticity_token,
        "protect_against_forgery": protect_against_forgery,
        "request_forgery_protection_token": request_forgery_protection_token,
        "authenticity_token_field": authenticity_token_field,
    }


# ---------------------------------------------------------------------------
# Error handler
# ---------------------------------------------------------------------------


def handle_invalid_authenticity_token(exc: InvalidAuthenticityTokenError):
    """Map a rejection to a fixed 422 page (HTML) or JSON envelope."""
    status = exc.http_status
    best = request.accept_mimetypes.best_match(["application/json", "text/html"])
    if best == "text/html" and not request.is_json:
        return html_error_response(REJECTION_PAGE, status)
    return error_response(
        GENERIC_MESSAGES.get(status, GENERIC_MESSAGES[500]),
        status,
        details={"code": "INVALID_AUTHENTICITY_TOKEN"},
    )
