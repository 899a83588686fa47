"""
Main Orchestrator for Shop Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Migration (group → create bills → link products → orphans → validate)
2. Validation (validate → optionally fix → re-validate)
3. Rollback (preview → confirm → detach products → delete bills)

DESIGN DECISION: Each flow owns its own RunTracker. There is no shared
module-level run state; the dashboard subscribes to a flow's tracker and
re-renders from the RunState copies it receives.

The orchestrator enforces the boundaries the engines don't:
- A flow can't be started twice while it is running
- Migration phases run strictly in order, each after the previous
  phase's writes completed
- Rollback is only offered once a bill exists
- Every run is audited under one correlation ID
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog

from shopledger.audit import AuditLogger, create_correlation_id
from shopledger.config import get_settings
from shopledger.migration import MigrationService, ProgressCallback, RollbackEngine
from shopledger.models.migration import (
    MigrationDetails,
    MigrationRunResult,
    RollbackPreview,
    RollbackResult,
    RunState,
    RunStatus,
)
from shopledger.models.validation import RemediationResult, ValidationReport
from shopledger.services.storage import (
    DocumentStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)
from shopledger.validation import IntegrityValidator, IssueRemediator


logger = structlog.get_logger(__name__)

StateObserver = Callable[[RunState], None]


class RunInProgressError(Exception):
    """Raised when a flow is started while its previous run is still running."""
    pass


class RunTracker:
    """
    Finite-state run tracker: idle → running → completed | failed → idle.

    Observers receive a copy of the state after every change, so nothing
    they do to it can leak back into the tracker.
    """

    def __init__(self):
        self._state = RunState()
        self._observers: list[StateObserver] = []

    @property
    def state(self) -> RunState:
        return self._state.model_copy()

    @property
    def is_running(self) -> bool:
        return self._state.status == RunStatus.RUNNING

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """Register an observer; returns a function that removes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self.state)
            except Exception as e:
                logger.warning("run_observer_failed", error=str(e))

    def start(self, step: str) -> None:
        if self.is_running:
            raise RunInProgressError("A run is already in progress")

        self._state = RunState(
            status=RunStatus.RUNNING,
            progress=0,
            current_step=step,
            start_time=datetime.utcnow(),
        )
        self._notify()

    def update_progress(self, progress: int, step: Optional[str] = None) -> None:
        """
        Move progress forward.

        Values are clamped to 0-100 and never go backwards within a run.
        Ignored unless running.
        """
        if not self.is_running:
            return

        clamped = max(0, min(100, int(progress)))
        self._state.progress = max(self._state.progress, clamped)
        if step is not None:
            self._state.current_step = step
        self._notify()

    def complete(self, result, step: str) -> None:
        self._state.status = RunStatus.COMPLETED
        self._state.progress = 100
        self._state.current_step = step
        self._state.result = result
        self._state.end_time = datetime.utcnow()
        self._notify()

    def fail(self, error: str) -> None:
        self._state.status = RunStatus.FAILED
        self._state.error = error
        self._state.end_time = datetime.utcnow()
        self._notify()

    def reset(self) -> None:
        """Return a finished run to idle. Resetting a running run is refused."""
        if self.is_running:
            raise RunInProgressError("Cannot reset while a run is in progress")

        self._state = RunState()
        self._notify()


def _scaled_progress(tracker: RunTracker, start: int, end: int) -> ProgressCallback:
    """Map a phase's (done, total) onto the start..end slice of the run."""
    def on_progress(done: int, total: int) -> None:
        if total:
            tracker.update_progress(start + (end - start) * done // total)

    return on_progress


class MigrationFlow:
    """
    Orchestrates the full product-to-bill migration.

    Flow:
    1. Group → bucket products by normalized bill number        (10%)
    2. Create → one bill per group                              (30-50%)
    3. Link → set bill_id on grouped products                   (50-70%)
    4. Orphans → one placeholder bill per ungrouped product     (70-90%)
    5. Validate → integrity pass over the result                (90%)

    Per-item failures are counted in the result and the run still
    completes. Anything that escapes a phase fails the run.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        service: Optional[MigrationService] = None,
        validator: Optional[IntegrityValidator] = None,
    ):
        self._audit_logger = audit_logger
        self._service = service or MigrationService(store, audit_logger)
        self._validator = validator or IntegrityValidator(store)
        self.tracker = RunTracker()

    @property
    def state(self) -> RunState:
        return self.tracker.state

    async def _phase_completed(
        self,
        phase: str,
        success_count: int,
        error_count: int,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_phase_completed(
                phase=phase,
                success_count=success_count,
                error_count=error_count,
                correlation_id=correlation_id,
            )

    async def run(self) -> MigrationRunResult:
        """
        Execute the migration end to end.

        Raises:
            RunInProgressError: if a migration is already running
            Exception: whatever aborted a phase, after the run is marked failed
        """
        tracker = self.tracker
        tracker.start("Initializing migration...")
        correlation_id = create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_migration_started(correlation_id)

        try:
            tracker.update_progress(10, "Grouping products by bill number...")
            grouping = await self._service.group_products_by_bill_number()
            await self._phase_completed("grouping", grouping.total_products, 0, correlation_id)

            tracker.update_progress(30, "Creating bills from product groups...")
            bill_creation = await self._service.create_bills_from_groups(
                grouping.grouped_products,
                correlation_id=correlation_id,
                on_progress=_scaled_progress(tracker, 30, 50),
            )
            await self._phase_completed(
                "bill_creation",
                bill_creation.success_count,
                bill_creation.error_count,
                correlation_id,
            )

            tracker.update_progress(50, "Updating products with bill references...")
            product_update = await self._service.update_products_with_bill_references(
                bill_creation.created_bills,
                grouping.grouped_products,
                correlation_id=correlation_id,
                on_progress=_scaled_progress(tracker, 50, 70),
            )
            await self._phase_completed(
                "product_update",
                product_update.success_count,
                product_update.error_count,
                correlation_id,
            )

            tracker.update_progress(70, "Handling orphaned products...")
            orphan_handling = await self._service.handle_orphaned_products(
                grouping.orphaned_products,
                correlation_id=correlation_id,
                on_progress=_scaled_progress(tracker, 70, 90),
            )
            await self._phase_completed(
                "orphan_handling",
                orphan_handling.success_count,
                orphan_handling.error_count,
                correlation_id,
            )

            tracker.update_progress(90, "Validating data integrity...")
            validation = await self._validator.validate()
        except Exception as e:
            tracker.fail(str(e))
            logger.error("migration_failed", error=str(e), correlation_id=str(correlation_id))
            if self._audit_logger:
                await self._audit_logger.log_run_failed(
                    workflow="migration",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        started = tracker.state.start_time
        result = MigrationRunResult(
            duration_seconds=round((datetime.utcnow() - started).total_seconds(), 3),
            total_products_processed=grouping.total_products,
            bill_groups_found=grouping.group_count,
            orphaned_products_found=len(grouping.orphaned_products),
            bills_created_from_groups=bill_creation.success_count,
            bills_created_for_orphans=len(orphan_handling.created_bills),
            products_updated_from_groups=product_update.success_count,
            products_updated_from_orphans=orphan_handling.success_count,
            bill_creation_errors=bill_creation.error_count,
            product_update_errors=product_update.error_count,
            orphan_handling_errors=orphan_handling.error_count,
            data_integrity_valid=validation.is_valid,
            validation_issues=validation.issues,
            details=MigrationDetails(
                grouping=grouping,
                bill_creation=bill_creation,
                product_update=product_update,
                orphan_handling=orphan_handling,
                validation=validation,
            ),
        )

        tracker.complete(result, "Migration completed successfully")

        if self._audit_logger:
            await self._audit_logger.log_migration_completed(
                bills_created=result.total_bills_created,
                products_updated=result.total_products_updated,
                total_errors=result.total_errors,
                integrity_valid=result.data_integrity_valid,
                correlation_id=correlation_id,
            )

        return result


class ValidationFlow:
    """
    Runs the integrity validator on its own, and the remediator on demand.

    After a fix the collections are validated again, so last_report always
    describes the store as it is now.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[IntegrityValidator] = None,
        remediator: Optional[IssueRemediator] = None,
    ):
        self._audit_logger = audit_logger
        self._validator = validator or IntegrityValidator(store)
        self._remediator = remediator or IssueRemediator(store)
        self.tracker = RunTracker()
        self.last_report: Optional[ValidationReport] = None

    @property
    def state(self) -> RunState:
        return self.tracker.state

    def summarize(self, report: ValidationReport) -> str:
        return self._validator.get_user_friendly_summary(report)

    async def _audit_report(self, report: ValidationReport, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_completed(
                is_valid=report.is_valid,
                issue_types=[issue.type for issue in report.issues],
                warning_count=len(report.warnings),
                correlation_id=correlation_id,
            )

    async def _run_failed(self, workflow: str, error: Exception, correlation_id: UUID) -> None:
        self.tracker.fail(str(error))
        logger.error(f"{workflow}_failed", error=str(error), correlation_id=str(correlation_id))
        if self._audit_logger:
            await self._audit_logger.log_run_failed(
                workflow=workflow,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    async def validate(self) -> ValidationReport:
        self.tracker.start("Validating data integrity...")
        correlation_id = create_correlation_id()

        try:
            report = await self._validator.validate()
        except Exception as e:
            await self._run_failed("validation", e, correlation_id)
            raise

        self.last_report = report
        self.tracker.complete(report, "Validation completed")
        await self._audit_report(report, correlation_id)
        return report

    async def fix_issues(self, report: Optional[ValidationReport] = None) -> RemediationResult:
        """
        Apply the automated fixes for a report, then re-validate.

        Defaults to the most recent report of this flow.
        """
        report = report or self.last_report
        if report is None:
            raise ValueError("Run validation before fixing issues")

        self.tracker.start("Fixing issues...")
        correlation_id = create_correlation_id()

        try:
            remediation = await self._remediator.fix_issues(report)
            self.tracker.update_progress(50, "Re-validating data integrity...")
            self.last_report = await self._validator.validate()
        except Exception as e:
            await self._run_failed("remediation", e, correlation_id)
            raise

        self.tracker.complete(remediation, "Issue fixing completed")

        if self._audit_logger:
            await self._audit_logger.log_remediation_completed(
                fixed=[fixed.type.value for fixed in remediation.fixed_issues],
                unfixed=[issue.type for issue in remediation.unfixed_issues],
                correlation_id=correlation_id,
            )
        await self._audit_report(self.last_report, correlation_id)

        return remediation


class RollbackFlow:
    """
    Orchestrates a rollback of the migration.

    Flow:
    1. Availability → at least one bill must exist
    2. Preview → counts and risks shown to the user
    3. Confirm → handled by the dashboard (two explicit confirmations)
    4. Execute → detach products (0-50%), delete bills (50-100%)
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        engine: Optional[RollbackEngine] = None,
    ):
        self._audit_logger = audit_logger
        self._engine = engine or RollbackEngine(store, audit_logger)
        self.tracker = RunTracker()
        self._available = False

    @property
    def state(self) -> RunState:
        return self.tracker.state

    @property
    def available(self) -> bool:
        """Result of the last availability check."""
        return self._available

    async def check_availability(self) -> bool:
        self._available = await self._engine.has_bills()
        return self._available

    async def preview(self) -> RollbackPreview:
        return await self._engine.preview()

    async def execute(self) -> Optional[RollbackResult]:
        """
        Roll the migration back.

        Returns None, without touching the run state, when there is nothing
        to roll back.
        """
        if not await self.check_availability():
            logger.info("rollback_unavailable")
            return None

        tracker = self.tracker
        tracker.start("Starting rollback...")
        correlation_id = create_correlation_id()

        try:
            if self._audit_logger:
                preview = await self._engine.preview()
                await self._audit_logger.log_rollback_started(
                    bills_to_delete=preview.bills_to_delete,
                    products_to_update=preview.products_to_update,
                    correlation_id=correlation_id,
                )

            result = await self._engine.execute(
                on_progress=tracker.update_progress,
                correlation_id=correlation_id,
            )
        except Exception as e:
            tracker.fail(str(e))
            logger.error("rollback_failed", error=str(e), correlation_id=str(correlation_id))
            if self._audit_logger:
                await self._audit_logger.log_run_failed(
                    workflow="rollback",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        tracker.complete(result, "Rollback completed")
        await self.check_availability()

        if self._audit_logger:
            await self._audit_logger.log_rollback_completed(
                products_updated=result.products_updated,
                bills_deleted=result.bills_deleted,
                total_errors=result.total_errors,
                correlation_id=correlation_id,
            )

        return result


def create_app_components(
    use_storage: bool = True,
) -> tuple[MigrationFlow, ValidationFlow, RollbackFlow, DocumentStoreInterface]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured Google Sheets backend.
                    Set to False to run against an in-memory store.

    Returns:
        (migration_flow, validation_flow, rollback_flow, store)
    """
    store: DocumentStoreInterface
    audit_logger: AuditLogger

    if use_storage and get_settings().app.uses_google_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.get_spreadsheet()
            store = GoogleSheetsDocumentStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            store = InMemoryDocumentStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        store = InMemoryDocumentStore()
        audit_logger = AuditLogger()  # Local-only logging

    migration_flow = MigrationFlow(store, audit_logger=audit_logger)
    validation_flow = ValidationFlow(store, audit_logger=audit_logger)
    rollback_flow = RollbackFlow(store, audit_logger=audit_logger)

    return migration_flow, validation_flow, rollback_flow, store
