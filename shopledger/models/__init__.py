"""
Data Models Package

This package contains all Pydantic models used in Shop Ledger.
Everything read from or written to the document store passes through these schemas.
"""

from shopledger.models.shop import (
    UNNAMED_PRODUCT,
    Bill,
    BillStatus,
    BillTotals,
    Collection,
    Product,
    calculate_totals,
    totals_to_document,
)
from shopledger.models.validation import (
    AUTO_FIXABLE_ISSUES,
    BillsWithoutProductsWarning,
    BillTotalMismatchIssue,
    DuplicateBillGroup,
    DuplicateBillNumbersIssue,
    FixedIssue,
    InvalidBillIdIssue,
    Issue,
    IssueSeverity,
    IssueType,
    MissingBillIdIssue,
    RemediationError,
    RemediationResult,
    TotalMismatch,
    ValidationReport,
    ValidationSummary,
    issue_severity,
)
from shopledger.models.migration import (
    BillCreationError,
    BillCreationResult,
    GroupingResult,
    MigrationDetails,
    MigrationRunResult,
    OrphanHandlingResult,
    ProductUpdate,
    ProductUpdateError,
    ReferenceUpdateResult,
    RollbackPreview,
    RollbackResult,
    RunState,
    RunStatus,
)
from shopledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Shop models
    "UNNAMED_PRODUCT",
    "Bill",
    "BillStatus",
    "BillTotals",
    "Collection",
    "Product",
    "calculate_totals",
    "totals_to_document",
    # Validation models
    "AUTO_FIXABLE_ISSUES",
    "BillsWithoutProductsWarning",
    "BillTotalMismatchIssue",
    "DuplicateBillGroup",
    "DuplicateBillNumbersIssue",
    "FixedIssue",
    "InvalidBillIdIssue",
    "Issue",
    "IssueSeverity",
    "IssueType",
    "MissingBillIdIssue",
    "RemediationError",
    "RemediationResult",
    "TotalMismatch",
    "ValidationReport",
    "ValidationSummary",
    "issue_severity",
    # Migration models
    "BillCreationError",
    "BillCreationResult",
    "GroupingResult",
    "MigrationDetails",
    "MigrationRunResult",
    "OrphanHandlingResult",
    "ProductUpdate",
    "ProductUpdateError",
    "ReferenceUpdateResult",
    "RollbackPreview",
    "RollbackResult",
    "RunState",
    "RunStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
