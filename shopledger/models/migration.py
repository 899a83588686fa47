"""
Migration, Rollback and Run-State Models

Every phase of the migration returns one of these result objects. They are
transient: they live for the duration of a dashboard session and are never
written to the store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from shopledger.models.shop import Product
from shopledger.models.validation import Issue, ValidationReport


# =============================================================================
# PHASE RESULTS
# =============================================================================

class GroupingResult(BaseModel):
    """
    Products partitioned by normalized bill number.

    Every product lands in exactly one of grouped_products or
    orphaned_products.
    """

    grouped_products: dict[str, list[Product]] = Field(default_factory=dict)
    orphaned_products: list[Product] = Field(default_factory=list)
    total_products: int = Field(default=0, ge=0)

    @property
    def group_count(self) -> int:
        return len(self.grouped_products)

    @property
    def grouped_product_count(self) -> int:
        return sum(len(group) for group in self.grouped_products.values())


class BillCreationError(BaseModel):
    group_key: str
    product_count: int
    error: str


class BillCreationResult(BaseModel):
    """Bills synthesized from product groups, keyed by group key."""

    created_bills: dict[str, str] = Field(
        default_factory=dict,
        description="group key -> new bill id"
    )
    errors: list[BillCreationError] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.created_bills)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class ProductUpdate(BaseModel):
    product_id: str
    bill_id: str


class ProductUpdateError(BaseModel):
    product_id: str
    group_key: Optional[str] = None
    error: str


class ReferenceUpdateResult(BaseModel):
    """Products rewritten to point at their synthesized bill."""

    update_results: list[ProductUpdate] = Field(default_factory=list)
    errors: list[ProductUpdateError] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.update_results)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class OrphanHandlingResult(BaseModel):
    """
    Placeholder bills created for products without a usable bill number.

    created_bills maps product id to its placeholder bill id. A placeholder
    can exist without a matching entry in update_results when the product
    update failed after the bill was created.
    """

    created_bills: dict[str, str] = Field(default_factory=dict)
    update_results: list[ProductUpdate] = Field(default_factory=list)
    errors: list[ProductUpdateError] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.update_results)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class MigrationDetails(BaseModel):
    grouping: GroupingResult
    bill_creation: BillCreationResult
    product_update: ReferenceUpdateResult
    orphan_handling: OrphanHandlingResult
    validation: ValidationReport


class MigrationRunResult(BaseModel):
    """
    Summary of one full migration pass.

    A run with per-item errors is still a completed run; needs_review
    flags it for a human to look at.
    """

    success: bool = True
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    duration_seconds: float = Field(default=0.0, ge=0)

    # Input
    total_products_processed: int = 0
    bill_groups_found: int = 0
    orphaned_products_found: int = 0

    # Bills created
    bills_created_from_groups: int = 0
    bills_created_for_orphans: int = 0

    # Products updated
    products_updated_from_groups: int = 0
    products_updated_from_orphans: int = 0

    # Errors
    bill_creation_errors: int = 0
    product_update_errors: int = 0
    orphan_handling_errors: int = 0

    # Validation
    data_integrity_valid: bool = False
    validation_issues: list[Issue] = Field(default_factory=list)

    details: Optional[MigrationDetails] = None

    @property
    def total_bills_created(self) -> int:
        return self.bills_created_from_groups + self.bills_created_for_orphans

    @property
    def total_products_updated(self) -> int:
        return self.products_updated_from_groups + self.products_updated_from_orphans

    @property
    def total_errors(self) -> int:
        return (
            self.bill_creation_errors
            + self.product_update_errors
            + self.orphan_handling_errors
        )

    @property
    def needs_review(self) -> bool:
        return self.total_errors > 0


# =============================================================================
# ROLLBACK
# =============================================================================

class RollbackPreview(BaseModel):
    """What a rollback would touch, computed before the user confirms."""

    bills_to_delete: int = 0
    products_to_update: int = 0
    products_already_orphaned: int = 0
    total_products: int = 0
    estimated_duration_seconds: int = 0
    risks: list[str] = Field(default_factory=list)


class RollbackResult(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    duration_seconds: float = Field(default=0.0, ge=0)
    products_updated: int = 0
    product_update_errors: int = 0
    bills_deleted: int = 0
    bill_delete_errors: int = 0

    @property
    def total_errors(self) -> int:
        return self.product_update_errors + self.bill_delete_errors


# =============================================================================
# RUN STATE
# =============================================================================

class RunStatus(str, Enum):
    """
    Orchestration states shared by migration, validation and rollback.

    idle -> running -> completed | failed, and back to idle via reset.
    """
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunState(BaseModel):
    """The only surface the dashboard reads while a workflow runs."""

    status: RunStatus = RunStatus.IDLE
    progress: int = Field(default=0, ge=0, le=100)
    current_step: str = ""
    result: Optional[Any] = None
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None
