"""
Authenticity Token Generation
=============================

Derives the session-bound token embedded in forms and checked on
submission. Two strategies, chosen in order:

1. **secret-HMAC**: a secret is configured: ``HMAC(secret, session_id)``.
2. **session-delegated-digest**: the session store implements
   :class:`~forgery_guard.security.session.DigestGenerator`: the store
   digests a random ``csrf_id`` kept in the session.

Both are deterministic for a fixed session and configuration, so a token
rendered into an old page stays valid for the life of the session.
"""

from __future__ import annotations

import hmac
import logging

from forgery_guard.domain.exceptions import ConfigurationError, MissingSessionError
from forgery_guard.security.options import ProtectionConfig
from forgery_guard.security.session import SessionAdapter

logger = logging.getLogger(__name__)

STRATEGY_SECRET_HMAC = "secret-hmac"
STRATEGY_SESSION_DIGEST = "session-delegated-digest"


def select_strategy(session: SessionAdapter, config: ProtectionConfig) -> str:
    if config.has_secret:
        return STRATEGY_SECRET_HMAC
    if session.can_generate_digest:
        return STRATEGY_SESSION_DIGEST
    raise ConfigurationError(
        "No secret given to protect_from_forgery and the session store cannot generate its own digests",
        detail={"reason": "no_secret_no_digest_store"},
    )


def compute_token(session: SessionAdapter | None, config: ProtectionConfig) -> str:
    """Return the expected authenticity token for *session* under *config*.

    Raises:
        MissingSessionError: the request has no session identifier.
        ConfigurationError: neither strategy is available.
    """
    if session is None or not session.session_id:
        raise MissingSessionError(
            "Request forgery protection requires a valid session",
            detail={"reason": "missing_session"},
        )

    strategy = select_strategy(session, config)
    if strategy == STRATEGY_SECRET_HMAC:
        return token_from_session_id(session, config)
    return token_from_session_digest(session)


def token_from_session_id(session: SessionAdapter, config: ProtectionConfig) -> str:
    """HMAC the session identifier with the configured secret."""
    secret = config.secret
    key = secret(session) if callable(secret) else secret
    if key is None:
        raise ConfigurationError(
            "Secret callable passed to protect_from_forgery returned no value",
            detail={"reason": "empty_secret"},
        )
    return hexdigest(key, str(session.session_id), config.digest)


def token_from_session_digest(session: SessionAdapter) -> str:
    """Delegate to the session store's digest over the session's CSRF id."""
    return session.generate_digest(session.ensure_csrf_id())


def hexdigest(key: str | bytes | object, message: str, digest: str) -> str:
    if not isinstance(key, bytes):
        key = str(key).encode("utf-8")
    return hmac.new(key, message.encode("utf-8"), digest.lower()).hexdigest()
