"""
Audit Logger

DESIGN DECISION: Every bulk operation on the shop's data is logged.
This provides:
1. Complete traceability of what a migration or rollback touched
2. Debugging capability for partially failed runs
3. A history the shopkeeper can review in the AuditLog sheet

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't crash a run if logging fails)
- Supports correlation IDs to tie together the events of one run
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from shopledger.models.audit import AuditEvent, AuditEventBuilder
from shopledger.services.storage import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_migration_started(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.migration_started(correlation_id))

    async def log_phase_completed(
        self,
        phase: str,
        success_count: int,
        error_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log the end of one migration phase."""
        event = AuditEventBuilder.migration_phase_completed(
            phase=phase,
            success_count=success_count,
            error_count=error_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_migration_completed(
        self,
        bills_created: int,
        products_updated: int,
        total_errors: int,
        integrity_valid: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.migration_completed(
            bills_created=bills_created,
            products_updated=products_updated,
            total_errors=total_errors,
            integrity_valid=integrity_valid,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_completed(
        self,
        is_valid: bool,
        issue_types: list[str],
        warning_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.validation_completed(
            is_valid=is_valid,
            issue_types=issue_types,
            warning_count=warning_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_remediation_completed(
        self,
        fixed: list[str],
        unfixed: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.remediation_completed(
            fixed=fixed,
            unfixed=unfixed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rollback_started(
        self,
        bills_to_delete: int,
        products_to_update: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rollback_started(
            bills_to_delete=bills_to_delete,
            products_to_update=products_to_update,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rollback_completed(
        self,
        products_updated: int,
        bills_deleted: int,
        total_errors: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rollback_completed(
            products_updated=products_updated,
            bills_deleted=bills_deleted,
            total_errors=total_errors,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_item_failed(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a per-item failure (the run itself carries on)."""
        event = AuditEventBuilder.item_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_failed(
        self,
        workflow: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.run_failed(
            workflow=workflow,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a workflow run (migration, validation, rollback).
    Pass it through all subsequent operations.
    """
    return uuid4()
