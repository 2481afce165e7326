"""
Request Verification
====================

Pure decision whether an inbound request passes forgery protection.

A request is verified when any of these hold, checked in order:

* protection is off (process switch disabled, or no config for the group)
* the method is GET (HEAD is a GET without a body)
* the content type is not one browsers or scripts submit forms with
* the submitted token equals the expected token
"""

from __future__ import annotations

import hmac
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flask import request as flask_request

from forgery_guard.security.options import ProtectionConfig
from forgery_guard.security.session import SessionAdapter
from forgery_guard.security.tokens import compute_token

SAFE_METHODS = frozenset({"GET", "HEAD"})

# Content types produced by HTML forms and script-originated submissions.
# XML/JSON API payloads are out of scope and use their own authentication.
DEFAULT_CHECKABLE_TYPES: frozenset[str] = frozenset(
    {
        "text/html",
        "application/xhtml+xml",
        "application/x-www-form-urlencoded",
        "multipart/form-data",
        "text/javascript",
        "application/javascript",
        "application/x-javascript",
    }
)


@dataclass(frozen=True)
class RequestContext:
    """The parts of an inbound request the verifier reads."""

    method: str
    content_type: str | None = None
    params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_flask(cls) -> RequestContext:
        return cls(
            method=flask_request.method,
            content_type=flask_request.mimetype or None,
            params=flask_request.values,
        )


def normalize_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower() or None


def is_checkable_content_type(
    content_type: str | None,
    checkable_types: Iterable[str] = DEFAULT_CHECKABLE_TYPES,
) -> bool:
    mimetype = normalize_content_type(content_type)
    if mimetype is None:
        return False
    return mimetype in {t.lower() for t in checkable_types}


def tokens_match(expected: str, submitted: Any) -> bool:
    if not isinstance(submitted, str) or not submitted:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8"))


def requires_verification(
    request: RequestContext,
    config: ProtectionConfig | None,
    *,
    enabled: bool = True,
    checkable_types: Iterable[str] = DEFAULT_CHECKABLE_TYPES,
) -> bool:
    """Return True if *request* must carry a matching token."""
    if not enabled or config is None:
        return False
    if request.method.upper() in SAFE_METHODS:
        return False
    return is_checkable_content_type(request.content_type, checkable_types)


def is_verified(
    request: RequestContext,
    session: SessionAdapter | None,
    config: ProtectionConfig | None,
    *,
    enabled: bool = True,
    checkable_types: Iterable[str] = DEFAULT_CHECKABLE_TYPES,
    expected_token: Callable[[], str] | None = None,
) -> bool:
    """Return True if *request* may proceed.

    *expected_token* supplies an already memoised token; without it the token
    is computed from *session* and *config*. It is only consulted when the
    request needs checking. Token computation errors (missing session,
    misconfiguration) propagate.
    """
    if not requires_verification(request, config, enabled=enabled, checkable_types=checkable_types):
        return True
    expected = expected_token() if expected_token is not None else compute_token(session, config)
    return tokens_match(expected, request.params.get(config.token_param))
