"""
Integrity Report Models

The validator never raises on a finding: every violation it detects is
returned as data. Each issue kind carries its own payload, so issues are a
tagged union discriminated by `type` rather than one loose dictionary.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class IssueType(str, Enum):
    """Integrity issues the validator can report."""
    MISSING_BILL_ID = "missing_bill_id"
    INVALID_BILL_ID = "invalid_bill_id"
    BILL_TOTAL_MISMATCH = "bill_total_mismatch"
    DUPLICATE_BILL_NUMBERS = "duplicate_bill_numbers"


class IssueSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


AUTO_FIXABLE_ISSUES = frozenset({
    IssueType.BILL_TOTAL_MISMATCH,
    IssueType.INVALID_BILL_ID,
})


def issue_severity(issue_type: IssueType) -> IssueSeverity:
    """Severity is a function of the issue type alone."""
    if issue_type in (IssueType.MISSING_BILL_ID, IssueType.INVALID_BILL_ID):
        return IssueSeverity.HIGH
    return IssueSeverity.MEDIUM


# =============================================================================
# ISSUES
# =============================================================================

class _IssueBase(BaseModel):
    message: str
    count: int = Field(ge=0)

    @property
    def severity(self) -> IssueSeverity:
        return issue_severity(IssueType(self.type))

    @property
    def auto_fixable(self) -> bool:
        return IssueType(self.type) in AUTO_FIXABLE_ISSUES


class MissingBillIdIssue(_IssueBase):
    """Products that were never assigned a bill."""
    type: Literal["missing_bill_id"] = "missing_bill_id"
    product_ids: list[str] = Field(default_factory=list)


class InvalidBillIdIssue(_IssueBase):
    """Products whose bill_id points at a bill that does not exist."""
    type: Literal["invalid_bill_id"] = "invalid_bill_id"
    product_ids: list[str] = Field(default_factory=list)


class TotalMismatch(BaseModel):
    """One stored bill figure that disagrees with its products."""
    bill_id: str
    bill_number: str
    field: Literal["total_amount", "total_quantity", "total_profit", "product_count"]
    expected: Decimal
    actual: Decimal


class BillTotalMismatchIssue(_IssueBase):
    """Bills whose stored totals disagree with their current products."""
    type: Literal["bill_total_mismatch"] = "bill_total_mismatch"
    mismatches: list[TotalMismatch] = Field(default_factory=list)

    @property
    def bill_ids(self) -> list[str]:
        # Preserve first-seen order, one entry per bill
        return list(dict.fromkeys(m.bill_id for m in self.mismatches))


class DuplicateBillGroup(BaseModel):
    bill_number: str = Field(..., description="Bill number as written on the first bill")
    bill_ids: list[str]


class DuplicateBillNumbersIssue(_IssueBase):
    """Several bills share the same normalized bill number."""
    type: Literal["duplicate_bill_numbers"] = "duplicate_bill_numbers"
    duplicates: list[DuplicateBillGroup] = Field(default_factory=list)


Issue = Annotated[
    Union[
        MissingBillIdIssue,
        InvalidBillIdIssue,
        BillTotalMismatchIssue,
        DuplicateBillNumbersIssue,
    ],
    Field(discriminator="type"),
]


class BillsWithoutProductsWarning(BaseModel):
    """Bills no product references. Does not affect validity."""
    type: Literal["bills_without_products"] = "bills_without_products"
    message: str
    count: int = Field(ge=0)
    bill_ids: list[str] = Field(default_factory=list)


# =============================================================================
# REPORT
# =============================================================================

class ValidationSummary(BaseModel):
    total_products: int = 0
    total_bills: int = 0
    products_with_bill_id: int = 0
    products_without_bill_id: int = 0
    issue_count: int = 0
    warning_count: int = 0


class ValidationReport(BaseModel):
    """
    Result of one integrity pass over the products and bills collections.

    Warnings are informational: is_valid only looks at issues.
    """

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    is_valid: bool
    issues: list[Issue] = Field(default_factory=list)
    warnings: list[BillsWithoutProductsWarning] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)

    def get_issue(self, issue_type: IssueType) -> Optional[Issue]:
        for issue in self.issues:
            if issue.type == issue_type.value:
                return issue
        return None

    @property
    def fixable_issues(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.auto_fixable]


# =============================================================================
# REMEDIATION
# =============================================================================

class FixedIssue(BaseModel):
    type: IssueType
    message: str
    fixed_count: int = Field(ge=0)


class RemediationError(BaseModel):
    issue_type: IssueType
    entity_id: str
    error: str


class RemediationResult(BaseModel):
    """Outcome of applying automated repairs to a validation report."""

    success: bool
    fixed_issues: list[FixedIssue] = Field(default_factory=list)
    unfixed_issues: list[Issue] = Field(default_factory=list)
    errors: list[RemediationError] = Field(default_factory=list)
