"""
Post-Migration Integrity Validation

Re-reads both collections and checks, in order:

1. MISSING BILL ID     - products that never got a bill
2. INVALID BILL ID     - products pointing at a bill that doesn't exist
3. BILL TOTAL MISMATCH - bills whose stored totals disagree with their products
4. DUPLICATE NUMBERS   - bills sharing a normalized bill number

plus one informational check: bills no product references.

IMPORTANT: Validation NEVER writes to the store. It reports findings as
data; repairing them is the remediator's job. Only a failure to read the
store is raised.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

import structlog

from shopledger.config import get_settings
from shopledger.migration.grouping import normalize_bill_number
from shopledger.migration.records import load_bills, load_products
from shopledger.models.shop import Bill, Product, calculate_totals
from shopledger.models.validation import (
    BillsWithoutProductsWarning,
    BillTotalMismatchIssue,
    DuplicateBillGroup,
    DuplicateBillNumbersIssue,
    InvalidBillIdIssue,
    Issue,
    MissingBillIdIssue,
    TotalMismatch,
    ValidationReport,
    ValidationSummary,
)
from shopledger.services.storage import DocumentStoreInterface


_DECIMAL_FIELDS = ("total_amount", "total_quantity", "total_profit")


def find_total_mismatches(
    bill: Bill,
    products: list[Product],
    tolerance: Decimal,
) -> list[TotalMismatch]:
    """Compare a bill's stored figures with the figures of its products."""
    expected = calculate_totals(products)
    mismatches = []

    for field in _DECIMAL_FIELDS:
        want = getattr(expected, field)
        have = getattr(bill, field)
        if abs(have - want) > tolerance:
            mismatches.append(TotalMismatch(
                bill_id=bill.id,
                bill_number=bill.bill_number,
                field=field,
                expected=want,
                actual=have,
            ))

    if bill.product_count != expected.product_count:
        mismatches.append(TotalMismatch(
            bill_id=bill.id,
            bill_number=bill.bill_number,
            field="product_count",
            expected=Decimal(expected.product_count),
            actual=Decimal(bill.product_count),
        ))

    return mismatches


def check_integrity(
    products: list[Product],
    bills: list[Bill],
    tolerance: Decimal,
) -> ValidationReport:
    """Run every check over one snapshot of products and bills."""
    issues: list[Issue] = []
    warnings: list[BillsWithoutProductsWarning] = []

    bill_ids = {bill.id for bill in bills}
    products_by_bill: dict[str, list[Product]] = defaultdict(list)
    for product in products:
        if product.bill_id:
            products_by_bill[product.bill_id].append(product)

    # Check 1: every product has a bill_id
    missing = [p.id for p in products if not p.bill_id]
    if missing:
        issues.append(MissingBillIdIssue(
            count=len(missing),
            message=f"{len(missing)} products missing bill_id",
            product_ids=missing,
        ))

    # Check 2: every bill_id resolves
    dangling = [p.id for p in products if p.bill_id and p.bill_id not in bill_ids]
    if dangling:
        issues.append(InvalidBillIdIssue(
            count=len(dangling),
            message=f"{len(dangling)} products have invalid bill_id references",
            product_ids=dangling,
        ))

    # Check 3: stored totals match the products
    mismatches: list[TotalMismatch] = []
    for bill in bills:
        mismatches.extend(
            find_total_mismatches(bill, products_by_bill.get(bill.id, []), tolerance)
        )
    if mismatches:
        issues.append(BillTotalMismatchIssue(
            count=len(mismatches),
            message=f"{len(mismatches)} bill total mismatches found",
            mismatches=mismatches,
        ))

    # Check 4: bill numbers are unique
    by_number: dict[str, list[Bill]] = defaultdict(list)
    for bill in bills:
        key = normalize_bill_number(bill.bill_number)
        if key:
            by_number[key].append(bill)
    duplicates = [
        DuplicateBillGroup(
            bill_number=group[0].bill_number,
            bill_ids=[b.id for b in group],
        )
        for group in by_number.values()
        if len(group) > 1
    ]
    if duplicates:
        issues.append(DuplicateBillNumbersIssue(
            count=sum(len(d.bill_ids) - 1 for d in duplicates),
            message=(
                "Duplicate bill numbers found: "
                + ", ".join(d.bill_number for d in duplicates)
            ),
            duplicates=duplicates,
        ))

    # Bills without products (warning only)
    empty_bills = [bill.id for bill in bills if not products_by_bill.get(bill.id)]
    if empty_bills:
        warnings.append(BillsWithoutProductsWarning(
            count=len(empty_bills),
            message=f"{len(empty_bills)} bills have no associated products",
            bill_ids=empty_bills,
        ))

    with_bill_id = len(products) - len(missing)
    return ValidationReport(
        is_valid=not issues,
        issues=issues,
        warnings=warnings,
        summary=ValidationSummary(
            total_products=len(products),
            total_bills=len(bills),
            products_with_bill_id=with_bill_id,
            products_without_bill_id=len(missing),
            issue_count=len(issues),
            warning_count=len(warnings),
        ),
    )


class IntegrityValidator:
    """
    Validates the products/bills collections after (or between) migrations.

    Each validate() call reads a fresh snapshot; nothing is cached.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        tolerance: Optional[Decimal] = None,
    ):
        """
        Initialize validator.

        Args:
            store: Document store to read from.
            tolerance: Allowed drift on money/quantity totals.
                      Defaults to MIGRATION_TOTAL_TOLERANCE.
        """
        self._store = store
        self._tolerance = (
            tolerance if tolerance is not None
            else get_settings().migration.total_tolerance
        )
        self._logger = structlog.get_logger(__name__)

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    async def validate(self) -> ValidationReport:
        products = await load_products(self._store)
        bills = await load_bills(self._store)

        report = check_integrity(products, bills, self._tolerance)

        self._logger.info(
            "integrity_validated",
            is_valid=report.is_valid,
            issue_count=report.summary.issue_count,
            warning_count=report.summary.warning_count,
            total_products=report.summary.total_products,
            total_bills=report.summary.total_bills,
        )
        return report

    def get_user_friendly_summary(self, report: ValidationReport) -> str:
        """
        Plain-language summary of a report, for the dashboard.
        """
        if report.is_valid and not report.warnings:
            return "✅ All integrity checks passed."

        lines = []

        if report.issues:
            lines.append("❌ Data integrity issues found:")
            for issue in report.issues:
                lines.append(f"   • [{issue.severity.value}] {issue.message}")
                if issue.auto_fixable:
                    lines.append("     💡 Can be fixed automatically")

        if report.warnings:
            lines.append("")
            lines.append("⚠️ Please review the following:")
            for warning in report.warnings:
                lines.append(f"   • {warning.message}")

        return "\n".join(lines)
