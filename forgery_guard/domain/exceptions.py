"""Centralized exception hierarchy for forgery-guard.

Every error raised by the request forgery protection layer inherits from
:class:`ForgeryGuardError`. The three request-time failures share a single
externally observable kind, :class:`InvalidAuthenticityTokenError`, so that
the framework boundary only has to map one exception to a rejection page.
The subclasses exist so operators can tell a client error apart from a
deployment defect in the logs.

Hierarchy
---------
::

    ForgeryGuardError (base, maps to 500)
    └── InvalidAuthenticityTokenError (422: token missing or mismatched)
        ├── MissingSessionError       (422: no session identifier at all)
        └── ConfigurationError        (422: no secret and no digest store)
"""

from __future__ import annotations


class ForgeryGuardError(Exception):
    """Base exception for all forgery-guard errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class InvalidAuthenticityTokenError(ForgeryGuardError):
    """Submitted authenticity token is absent or does not match (HTTP 422)."""

    http_status: int = 422


class MissingSessionError(InvalidAuthenticityTokenError):
    """The request has no session able to supply an identifier."""


class ConfigurationError(InvalidAuthenticityTokenError):
    """Protection is misconfigured for the current action group.

    Raised when no secret is configured and the session store cannot
    generate its own digests, when a digest algorithm is unknown, or when
    options are added to a group whose configuration is already frozen.
    """
