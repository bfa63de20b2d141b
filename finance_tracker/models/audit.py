"""
Audit Models for Finance Tracker

Every significant action in the data layer is recorded as an audit event.
This provides:
1. Traceability of every mutation sent to the backend
2. Debugging information when fetches or refreshes fail
3. A recent-activity feed for the profile page

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each store operation and session transition has its own event type.
    """
    # Record mutations
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    MUTATION_FAILED = "mutation_failed"

    # Reads
    FETCH_FAILED = "fetch_failed"
    REFRESH_COMPLETED = "refresh_completed"
    REFRESH_FAILED = "refresh_failed"

    # Goal funding
    GOAL_FUNDED = "goal_funded"
    GOAL_WITHDRAWN = "goal_withdrawn"

    # Session
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    SESSION_RESTORED = "session_restored"
    SESSION_RESTORE_FAILED = "session_restore_failed"

    # Input
    VALIDATION_FAILED = "validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection or entity kind (e.g., 'transactions', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Backend id of the record this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a mutation and its refresh)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("accounts", account.id)
        event = AuditEventBuilder.refresh_failed(["budgets"], correlation_id)
    """

    @staticmethod
    def record_created(
        collection: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Created record in {collection}",
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        collection: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Updated record in {collection}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        collection: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Deleted record from {collection}",
            is_user_action=True,
        )

    @staticmethod
    def mutation_failed(
        collection: str,
        operation: str,
        error_code: Optional[str],
        error_message: str,
        record_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Failed to {operation} record in {collection}",
            details={"operation": operation},
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def fetch_failed(
        collection: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            correlation_id=correlation_id,
            description=f"Fetching {collection} failed; keeping cached data",
            error_message=error_message,
        )

    @staticmethod
    def refresh_completed(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_COMPLETED,
            severity=AuditSeverity.DEBUG,
            entity_type="store",
            correlation_id=correlation_id,
            description="Refreshed all collections",
            details={"counts": counts},
        )

    @staticmethod
    def refresh_failed(
        failed_collections: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="store",
            correlation_id=correlation_id,
            description=f"Refresh failed for {len(failed_collections)} collection(s); cache left unchanged",
            details={"failed": failed_collections},
        )

    @staticmethod
    def goal_funding(
        goal_id: str,
        amount: str,
        new_amount: str,
        withdrawal: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.GOAL_WITHDRAWN if withdrawal else AuditEventType.GOAL_FUNDED
            ),
            entity_type="goals",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=(
                f"Withdrew {amount} from goal" if withdrawal else f"Added {amount} to goal"
            ),
            details={"amount": amount, "current_amount": new_amount},
            is_user_action=True,
        )

    @staticmethod
    def signed_in(user_id: str, method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_IN,
            entity_type="session",
            entity_id=user_id,
            description=f"Signed in with {method}",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def signed_out(user_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            entity_type="session",
            entity_id=user_id,
            description="Signed out",
            is_user_action=True,
        )

    @staticmethod
    def session_restored(user_id: str, refreshed: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_RESTORED,
            entity_type="session",
            entity_id=user_id,
            description="Restored existing session",
            details={"token_refreshed": refreshed},
        )

    @staticmethod
    def session_restore_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_RESTORE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description="Could not restore session; continuing signed out",
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(
        form: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.INFO,
            entity_type=form,
            description=f"{form.capitalize()} form rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
