"""
Session Adapter
===============

The forgery protection layer never owns session storage. It only asks two
questions of the session that belongs to the current request:

* does it carry an identifier (``session_id``)?
* does its store implement :class:`DigestGenerator`?

Stores opt into digest generation by subclassing :class:`DigestGenerator`;
the token generator checks the capability with ``isinstance`` rather than by
probing attributes.

Usage::

    adapter = SessionAdapter(session, session_id="abc123", store=CookieDigestStore(key))
    adapter.ensure_csrf_id()
"""

from __future__ import annotations

import hmac
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from typing import Any

from flask import current_app, session
from flask.sessions import NullSession

logger = logging.getLogger(__name__)

# Session keys written by this package
SESSION_ID_KEY = "_session_id"
CSRF_ID_KEY = "_csrf_id"


class DigestGenerator(ABC):
    """Capability interface for session stores that derive their own digests."""

    @abstractmethod
    def generate_digest(self, data: str) -> str:
        """Return a stable hex digest for *data*."""


class CookieDigestStore(DigestGenerator):
    """Digest generator for signed-cookie sessions.

    Derives digests as ``HMAC(secret_key, data)``, the same construction a
    signed cookie store uses for its integrity check, so no extra secret has
    to be configured.
    """

    def __init__(self, secret_key: str | bytes, digest: str = "sha1") -> None:
        if not secret_key:
            raise ValueError("CookieDigestStore requires a non-empty secret key")
        self._key = secret_key.encode("utf-8") if isinstance(secret_key, str) else secret_key
        self._digest = digest.lower()

    def generate_digest(self, data: str) -> str:
        return hmac.new(self._key, data.encode("utf-8"), self._digest).hexdigest()


class SessionAdapter:
    """View of one request's session as seen by the token generator."""

    def __init__(
        self,
        data: MutableMapping[str, Any],
        *,
        session_id: str | None = None,
        store: object | None = None,
    ) -> None:
        self.data = data
        self._session_id = session_id
        self.store = store

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def csrf_id(self) -> str | None:
        return self.data.get(CSRF_ID_KEY)

    @property
    def can_generate_digest(self) -> bool:
        return isinstance(self.store, DigestGenerator)

    def ensure_csrf_id(self) -> str:
        """Return the session's CSRF id, assigning a random one if absent.

        The id is written back into the session so it lives as long as the
        session does.
        """
        csrf_id = self.data.get(CSRF_ID_KEY)
        if not csrf_id:
            csrf_id = secrets.token_hex(16)
            self.data[CSRF_ID_KEY] = csrf_id
            logger.debug("Assigned new CSRF id to session")
        return csrf_id

    def generate_digest(self, data: str) -> str:
        if not isinstance(self.store, DigestGenerator):
            raise TypeError("Session store does not implement DigestGenerator")
        return self.store.generate_digest(data)


def flask_session_adapter() -> SessionAdapter | None:
    """Build a :class:`SessionAdapter` for ``flask.session``.

    Flask's default cookie session has no identifier of its own, so one is
    assigned on first use and kept in the cookie. Returns ``None`` when the
    application has no usable session (``SECRET_KEY`` unset).
    """
    if isinstance(session._get_current_object(), NullSession):
        return None

    session_id = session.get(SESSION_ID_KEY)
    if not session_id:
        session_id = secrets.token_hex(16)
        session[SESSION_ID_KEY] = session_id

    secret_key = current_app.config.get("SECRET_KEY")
    store = CookieDigestStore(secret_key) if secret_key else None
    return SessionAdapter(session, session_id=session_id, store=store)

