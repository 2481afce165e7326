"""
Protection Options
==================

Immutable per-group settings for request forgery protection.

``ProtectionOptions`` is the mutable accumulator a group builds while its
``protect_from_forgery`` calls run; ``ProtectionConfig`` is the frozen value
it resolves into once the group is registered. Request handling only ever
sees ``ProtectionConfig``.
"""

from __future__ import annotations

import hmac
from collections.abc import Iterable
from typing import Any, Callable, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DIGEST = "SHA1"
DEFAULT_TOKEN_PARAM = "authenticity_token"

SecretSource = Union[str, bytes, Callable[..., Any]]


def is_hmac_digest(name: str) -> bool:
    """True if *name* is a digest HMAC can key (excludes XOFs such as shake_128)."""
    try:
        hmac.new(b"", b"", name.lower()).hexdigest()
    except (ValueError, TypeError):
        return False
    return True


def _action_names(value: str | Iterable[str] | None) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset({value})
    return frozenset(str(item) for item in value)


def _matches(actions: frozenset[str], endpoint: str) -> bool:
    # Accept both "create" and "articles.create"
    return endpoint in actions or endpoint.rsplit(".", 1)[-1] in actions


class ProtectionConfig(BaseModel):
    """Resolved forgery protection settings for one action group."""

    secret: Any | None = Field(default=None, description="Literal secret or callable of the session")
    digest: str = Field(default=DEFAULT_DIGEST, description="HMAC digest algorithm name")
    only: frozenset[str] | None = Field(default=None, description="Actions to check (None means all)")
    except_: frozenset[str] = Field(default_factory=frozenset, description="Actions never checked")
    token_param: str = Field(default=DEFAULT_TOKEN_PARAM, min_length=1)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @field_validator("digest")
    @classmethod
    def _known_digest(cls, value: str) -> str:
        if not is_hmac_digest(value):
            raise ValueError(f"Unknown digest algorithm: {value}")
        return value

    @property
    def has_secret(self) -> bool:
        return self.secret is not None

    def covers(self, endpoint: str | None) -> bool:
        """Return True if the verification gate applies to *endpoint*."""
        if endpoint is None:
            return False
        if self.only is not None and not _matches(self.only, endpoint):
            return False
        return not _matches(self.except_, endpoint)


class ProtectionOptions:
    """Accumulates ``protect_from_forgery`` calls for one group.

    Later calls add to the option set: ``secret``, ``digest`` and
    ``token_param`` overwrite when given, ``only`` and ``except_`` grow.
    """

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.only: frozenset[str] | None = None
        self.except_: frozenset[str] = frozenset()

    def update(
        self,
        *,
        only: str | Iterable[str] | None = None,
        except_: str | Iterable[str] | None = None,
        secret: SecretSource | None = None,
        digest: str | None = None,
        token_param: str | None = None,
    ) -> None:
        if only is not None:
            self.only = (self.only or frozenset()) | _action_names(only)
        if except_ is not None:
            self.except_ = self.except_ | _action_names(except_)
        for key, value in (("secret", secret), ("digest", digest), ("token_param", token_param)):
            if value is not None:
                self.values[key] = value

    def copy(self) -> ProtectionOptions:
        clone = ProtectionOptions()
        clone.values = dict(self.values)
        clone.only = self.only
        clone.except_ = self.except_
        return clone

    def freeze(self, *, digest: str = DEFAULT_DIGEST, token_param: str = DEFAULT_TOKEN_PARAM) -> ProtectionConfig:
        """Resolve into a frozen config, falling back to the given defaults."""
        values = {"digest": digest, "token_param": token_param, **self.values}
        return ProtectionConfig(only=self.only, except_=self.except_, **values)
