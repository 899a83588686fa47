"""
Automated Issue Remediation

Only two issue types are repaired automatically:

- bill_total_mismatch: recompute the bill's totals from its current
  products and overwrite the stored figures
- invalid_bill_id: clear the dangling reference so the product becomes an
  orphan again (bill_number is kept, the next migration picks it up)

Missing bill ids and duplicate bill numbers need a human decision and are
passed through unfixed.

DESIGN DECISION: Every fix re-reads the store before writing and skips
items that are already consistent. Applying the same report twice is
therefore harmless: the second pass finds nothing to write.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

import structlog

from shopledger.config import get_settings
from shopledger.migration.records import load_bills, load_products
from shopledger.models.shop import Collection, Product, calculate_totals, totals_to_document
from shopledger.models.validation import (
    BillTotalMismatchIssue,
    FixedIssue,
    InvalidBillIdIssue,
    IssueType,
    RemediationError,
    RemediationResult,
    ValidationReport,
)
from shopledger.services.storage import DocumentStoreInterface
from shopledger.validation.integrity import find_total_mismatches


class IssueRemediator:
    """Applies the automated fixes for a ValidationReport's issues."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        tolerance: Optional[Decimal] = None,
    ):
        self._store = store
        self._tolerance = (
            tolerance if tolerance is not None
            else get_settings().migration.total_tolerance
        )
        self._logger = structlog.get_logger(__name__)

    async def fix_issues(self, report: ValidationReport) -> RemediationResult:
        """
        Attempt to fix each issue of a report in turn.

        An issue lands in fixed_issues only if at least one write happened
        and none failed. Failed writes put the issue in unfixed_issues and
        are listed in errors. A failure to read the store propagates.
        """
        result = RemediationResult(success=True)

        for issue in report.issues:
            if isinstance(issue, BillTotalMismatchIssue):
                fixed_count, errors = await self._fix_bill_totals(issue)
            elif isinstance(issue, InvalidBillIdIssue):
                fixed_count, errors = await self._fix_invalid_references(issue)
            else:
                result.unfixed_issues.append(issue)
                continue

            if errors:
                result.errors.extend(errors)
                result.unfixed_issues.append(issue)
            elif fixed_count:
                result.fixed_issues.append(FixedIssue(
                    type=IssueType(issue.type),
                    message=f"Fixed {fixed_count} of {issue.count}: {issue.message}",
                    fixed_count=fixed_count,
                ))

        result.success = not result.unfixed_issues

        self._logger.info(
            "issues_remediated",
            fixed=len(result.fixed_issues),
            unfixed=len(result.unfixed_issues),
            error_count=len(result.errors),
        )
        return result

    async def _fix_bill_totals(
        self,
        issue: BillTotalMismatchIssue,
    ) -> tuple[int, list[RemediationError]]:
        target_ids = set(issue.bill_ids)
        bills = [bill for bill in await load_bills(self._store) if bill.id in target_ids]

        products_by_bill: dict[str, list[Product]] = defaultdict(list)
        for product in await load_products(self._store):
            if product.bill_id in target_ids:
                products_by_bill[product.bill_id].append(product)

        fixed = 0
        errors: list[RemediationError] = []

        for bill in bills:
            products = products_by_bill.get(bill.id, [])
            if not find_total_mismatches(bill, products, self._tolerance):
                continue

            try:
                await self._store.update(
                    Collection.BILLS.value,
                    bill.id,
                    totals_to_document(calculate_totals(products)),
                )
                fixed += 1
            except Exception as e:
                self._logger.warning("bill_totals_fix_failed", bill_id=bill.id, error=str(e))
                errors.append(RemediationError(
                    issue_type=IssueType.BILL_TOTAL_MISMATCH,
                    entity_id=bill.id,
                    error=str(e),
                ))

        return fixed, errors

    async def _fix_invalid_references(
        self,
        issue: InvalidBillIdIssue,
    ) -> tuple[int, list[RemediationError]]:
        target_ids = set(issue.product_ids)
        bill_ids = {bill.id for bill in await load_bills(self._store)}

        fixed = 0
        errors: list[RemediationError] = []

        for product in await load_products(self._store):
            # Only products that still dangle; a repaired or re-linked one is left alone
            if product.id not in target_ids:
                continue
            if not product.bill_id or product.bill_id in bill_ids:
                continue

            try:
                await self._store.update(
                    Collection.PRODUCTS.value,
                    product.id,
                    {"bill_id": None},
                )
                fixed += 1
            except Exception as e:
                self._logger.warning("reference_fix_failed", product_id=product.id, error=str(e))
                errors.append(RemediationError(
                    issue_type=IssueType.INVALID_BILL_ID,
                    entity_id=product.id,
                    error=str(e),
                ))

        return fixed, errors
