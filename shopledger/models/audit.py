"""
Audit Models for Shop Ledger

Every migration, validation, remediation and rollback run is logged for
audit purposes. This provides:
1. Complete traceability of bulk writes to the shop's data
2. Debugging information when a run partially fails
3. A record of which bills were created or deleted, and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Rollback deletes bills; it does not delete the audit trail of their creation.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each orchestrated workflow has its own start/finish events.
    """
    # Migration
    MIGRATION_STARTED = "migration_started"
    MIGRATION_PHASE_COMPLETED = "migration_phase_completed"
    MIGRATION_COMPLETED = "migration_completed"

    # Integrity
    VALIDATION_COMPLETED = "validation_completed"
    REMEDIATION_COMPLETED = "remediation_completed"

    # Rollback
    ROLLBACK_STARTED = "rollback_started"
    ROLLBACK_COMPLETED = "rollback_completed"

    # Failures
    ITEM_FAILED = "item_failed"
    RUN_FAILED = "run_failed"
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
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
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
        description="Type of entity (e.g., 'product', 'bill', 'run')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id of the entity this event relates to"
    )

    # Correlation - all events of one run share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one workflow run"
    )

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
    error_message: Optional[str] = None

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
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.migration_started(correlation_id)
        event = AuditEventBuilder.item_failed("product", product_id, "update", error, correlation_id)
    """

    @staticmethod
    def migration_started(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_STARTED,
            entity_type="run",
            correlation_id=correlation_id,
            description="Product-to-bill migration started",
            is_user_action=True,
        )

    @staticmethod
    def migration_phase_completed(
        phase: str,
        success_count: int,
        error_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_PHASE_COMPLETED,
            severity=AuditSeverity.WARNING if error_count else AuditSeverity.INFO,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                f"Phase '{phase}' finished: {success_count} succeeded, "
                f"{error_count} failed"
            ),
            details={
                "phase": phase,
                "success_count": success_count,
                "error_count": error_count,
            },
        )

    @staticmethod
    def migration_completed(
        bills_created: int,
        products_updated: int,
        total_errors: int,
        integrity_valid: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            severity=AuditSeverity.WARNING if total_errors else AuditSeverity.INFO,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                f"Migration completed: {bills_created} bills created, "
                f"{products_updated} products updated, {total_errors} errors"
            ),
            details={
                "bills_created": bills_created,
                "products_updated": products_updated,
                "total_errors": total_errors,
                "data_integrity_valid": integrity_valid,
            },
        )

    @staticmethod
    def validation_completed(
        is_valid: bool,
        issue_types: list[str],
        warning_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_COMPLETED,
            severity=AuditSeverity.INFO if is_valid else AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                "Data integrity valid" if is_valid
                else f"Data integrity check found {len(issue_types)} issues"
            ),
            details={
                "is_valid": is_valid,
                "issue_types": issue_types,
                "warning_count": warning_count,
            },
        )

    @staticmethod
    def remediation_completed(
        fixed: list[str],
        unfixed: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMEDIATION_COMPLETED,
            severity=AuditSeverity.WARNING if unfixed else AuditSeverity.INFO,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Fixed {len(fixed)} issues, {len(unfixed)} left unfixed",
            details={
                "fixed": fixed,
                "unfixed": unfixed,
            },
            is_user_action=True,
        )

    @staticmethod
    def rollback_started(
        bills_to_delete: int,
        products_to_update: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROLLBACK_STARTED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                f"Rollback confirmed: {bills_to_delete} bills to delete, "
                f"{products_to_update} products to detach"
            ),
            details={
                "bills_to_delete": bills_to_delete,
                "products_to_update": products_to_update,
            },
            is_user_action=True,
        )

    @staticmethod
    def rollback_completed(
        products_updated: int,
        bills_deleted: int,
        total_errors: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROLLBACK_COMPLETED,
            severity=AuditSeverity.WARNING if total_errors else AuditSeverity.INFO,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                f"Rollback completed: {products_updated} products detached, "
                f"{bills_deleted} bills deleted"
            ),
            details={
                "products_updated": products_updated,
                "bills_deleted": bills_deleted,
                "total_errors": total_errors,
            },
        )

    @staticmethod
    def item_failed(
        entity_type: str,
        entity_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Failed to {operation} {entity_type} {entity_id}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def run_failed(
        workflow: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"{workflow.capitalize()} failed",
            error_message=error_message,
            details={"workflow": workflow},
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
