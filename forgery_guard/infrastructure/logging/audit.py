import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

AUDIT_LOGGER_NAME = "forgery_guard.audit"
REJECTED = "rejected"


class AuditLogger:
    """Append-only trail of requests refused by forgery protection.

    Each rejection becomes one JSON object on its own line, prefixed with
    the UTC time and level, so the file can be tailed or fed to a log shipper.
    """

    def __init__(self, log_path: str, *, max_bytes: int = 10 * 1024 * 1024, backup_count: int = 30) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        # Child per file: two apps auditing to different paths must not share handlers
        suffix = str(self.log_path.resolve()).replace(".", "_")
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME).getChild(suffix)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

        if not self.logger.handlers:
            handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(
                logging.Formatter(fmt="%(asctime)sZ | %(levelname)s | %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
            )
            self.logger.addHandler(handler)

    def log_rejection(
        self,
        remote_addr: Optional[str],
        endpoint: Optional[str],
        reason: str,
        **context: Any,
    ) -> None:
        """Record that *endpoint* refused a request from *remote_addr*."""
        record: Dict[str, Any] = {
            "actor": remote_addr or "unknown",
            "action": "verify_authenticity_token",
            "resource": endpoint or "unknown",
            "outcome": REJECTED,
            "meta": {"reason": reason, **context},
        }
        self.logger.warning(json.dumps(record, default=str))
