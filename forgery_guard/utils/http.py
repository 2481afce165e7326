from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from flask import Response, jsonify


# ---------------------------------------------------------------------------
# Generic user-facing messages, never leak internals
# ---------------------------------------------------------------------------
GENERIC_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    403: "Access denied",
    422: "Unprocessable entity",
    500: "An internal error occurred",
}

REJECTION_PAGE = """<!DOCTYPE html>
<html>
<head><title>The change you wanted was rejected (422)</title></head>
<body>
  <h1>The change you wanted was rejected.</h1>
  <p>Maybe you tried to change something you didn't have access to.
  Reload the page and try again.</p>
</body>
</html>
"""


def error_response(
    message: str,
    status: int = 500,
    *,
    details: dict | None = None,
) -> Response:
    payload: dict[str, Any] = {"message": message, "timestamp": datetime.now(timezone.utc).isoformat()}
    if details:
        payload.update(details)
    response_body: dict[str, Any] = {
        "ok": False,
        "data": None,
        "error": payload,
        "message": message,
    }
    if details:
        response_body["details"] = details
    response = jsonify(response_body)
    response.status_code = status
    return response


def html_error_response(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/html")
