"""
Logging configuration for AgentProof.

Library modules only emit records: module loggers via
``logging.getLogger(__name__)`` and chain lifecycle events via the shared
``audit_log``. Handlers are installed by the application, normally the CLI,
through ``configure_logging``.

Audit records carry their structured payload in ``record.extra_fields`` so
``StructuredFormatter`` can emit one JSON object per line.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import List, Optional

from .util import format_timestamp, mask_sensitive

ROOT_LOGGER = "agentproof"
AUDIT_LOGGER = "agentproof.audit"

# Ties together the records of one CLI invocation or host-side operation
correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": format_timestamp(created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class AuditLogger:
    """
    Chain lifecycle events: identities, appends, persistence, verdicts.

    Private keys are never passed in; public keys are masked before logging.
    """

    def __init__(self, name: str = AUDIT_LOGGER):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event_type: str, message: str, **fields) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            "%s: %s",
            event_type,
            message,
            extra={"extra_fields": {"event_type": event_type, **fields}},
        )

    def identity_created(self, agent_id: str, public_key: str, path: Optional[str] = None) -> None:
        self._emit(
            logging.INFO, "IDENTITY_CREATED", f"Identity created for {agent_id}",
            agent_id=agent_id, public_key=mask_sensitive(public_key), path=path,
        )

    def proof_appended(self, agent_id: str, index: int, action: str, proof_hash: str) -> None:
        self._emit(
            logging.INFO, "PROOF_APPENDED", f"Proof #{index} ({action}) appended",
            agent_id=agent_id, index=index, action=action, proof_hash=proof_hash,
        )

    def chain_loaded(self, agent_id: str, path: str, proof_count: int) -> None:
        self._emit(
            logging.DEBUG, "CHAIN_LOADED", f"Loaded {proof_count} proofs from {path}",
            agent_id=agent_id, path=path, proof_count=proof_count,
        )

    def chain_saved(self, agent_id: str, path: str, proof_count: int) -> None:
        self._emit(
            logging.DEBUG, "CHAIN_SAVED", f"Saved {proof_count} proofs to {path}",
            agent_id=agent_id, path=path, proof_count=proof_count,
        )

    def chain_verified(
        self,
        agent_id: Optional[str],
        valid: bool,
        proof_count: int,
        errors: Optional[List[str]] = None,
        warning_count: int = 0
    ) -> None:
        """Verdicts on invalid chains are logged at WARNING."""
        verdict = "VALID" if valid else "INVALID"
        self._emit(
            logging.INFO if valid else logging.WARNING,
            "CHAIN_VERIFIED",
            f"{verdict} chain of {proof_count} proofs",
            agent_id=agent_id,
            valid=valid,
            proof_count=proof_count,
            errors=errors or [],
            warning_count=warning_count,
        )

    def security_event(self, event: str, severity: str = "medium", **details) -> None:
        """Log a security-relevant event; severity maps onto the log level."""
        level = _SEVERITY_LEVELS.get(severity, logging.WARNING)
        self._emit(
            level, "SECURITY_EVENT", event,
            security_event=event, severity=severity, **details,
        )


_SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure_logging(
    level: str = "WARNING",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Install handlers on the ``agentproof`` logger.

    Output goes to stderr so command output on stdout stays parseable.
    Calling again replaces the handlers installed by the previous call.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines instead of plain text
        log_file: Also append to this file
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())

    for handler in [h for h in logger.handlers if getattr(h, "_agentproof", False)]:
        logger.removeHandler(handler)
        handler.close()

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s')

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler._agentproof = True
        logger.addHandler(handler)
    return logger


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation ID for the current context and return it."""
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex
    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> str:
    return correlation_id_var.get()


audit_log = AuditLogger()
