"""
Audit Logger

DESIGN DECISION: Every significant action in the data layer is logged.
This provides:
1. Traceability of every write sent to the backend
2. Debugging capability when reads fail silently
3. A recent-activity feed the user can see

The audit logger:
- Never raises (logging must not break a user action)
- Keeps a bounded in-memory buffer of recent events
- Supports correlation IDs to trace related events
"""

import logging
from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the standard library at the given level.

    filter_by_level consults the stdlib logger, so its level is what
    decides which events are emitted.
    """
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("finance_tracker").setLevel(level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An in-memory buffer (for the recent-activity feed)
    """

    def __init__(self, buffer_size: int = 500):
        """
        Initialize audit logger.

        Args:
            buffer_size: How many recent events to keep in memory.
        """
        self._events: deque[AuditEvent] = deque(maxlen=buffer_size)
        self._logger = structlog.get_logger("finance_tracker.audit")

    def log(self, event: AuditEvent) -> None:
        """
        Log an audit event.

        Always logs locally and appends to the buffer.
        """
        self._events.append(event)

        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # A broken log handler must not fail the action being audited
            logging.getLogger(__name__).warning("Failed to emit audit event: %s", e)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    def recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events))[:limit]

    def events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """All buffered events for one correlation ID, in chronological order."""
        return [e for e in self._events if e.correlation_id == correlation_id]

    def events_for_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        """All buffered events for one record, in chronological order."""
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., adding a transaction).
    Pass it through the mutation and the refresh that follows it.
    """
    return uuid4()
