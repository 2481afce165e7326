from __future__ import annotations

import argparse
import logging
import os

from forgery_guard.config import load_config, setup_logging
from forgery_guard.domain.exceptions import ForgeryGuardError
from forgery_guard.security.options import ProtectionConfig
from forgery_guard.security.session import SessionAdapter
from forgery_guard.security.tokens import compute_token
from forgery_guard.security.verifier import tokens_match

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Compute (and optionally check) the secret-HMAC token for a session id."""
    parser = argparse.ArgumentParser(prog="forgery-guard-token")
    parser.add_argument("session_id", help="Session identifier the token is bound to")
    parser.add_argument(
        "--secret",
        default=os.getenv("FORGERY_GUARD_TOKEN_SECRET"),
        help="Secret passed to protect_from_forgery (default: $FORGERY_GUARD_TOKEN_SECRET)",
    )
    parser.add_argument("--digest", default=None, help="Digest algorithm (default: $FORGERY_GUARD_DIGEST or SHA1)")
    parser.add_argument("--check", metavar="TOKEN", help="Submitted token to compare against the expected one")
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(debug=config.DEBUG, level="WARNING")

    if not args.secret:
        print("A secret is required (--secret or FORGERY_GUARD_TOKEN_SECRET)")
        return 2

    try:
        protection = ProtectionConfig(secret=args.secret, digest=args.digest or config.default_digest)
        token = compute_token(SessionAdapter({}, session_id=args.session_id), protection)
    except (ForgeryGuardError, ValueError) as exc:
        logger.error("Could not compute token: %s", exc)
        print(f"Error: {exc}")
        return 2

    print(token)
    if args.check is None:
        return 0
    if tokens_match(token, args.check):
        print("match")
        return 0
    print("mismatch")
    return 1
