"""
Migration Rollback

Reverses the product-to-bill migration:

(a) detach every product from its bill (bill_id -> None), keeping the
    original bill_number text so the products can be regrouped later
(b) delete every bill

Progress runs 0-50% over phase (a) and 50-100% over phase (b).

Rows are read raw and only ids and bill_id are used, so a row the
Product or Bill models would reject still rolls back.

Rollback is not atomic. If it stops halfway, running it again is safe:
products already detached are skipped and bills already deleted are no
longer listed.
"""

import math
import time
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog

from shopledger.audit import AuditLogger
from shopledger.config import get_settings
from shopledger.models.migration import RollbackPreview, RollbackResult
from shopledger.models.shop import Collection
from shopledger.services.storage import DocumentStoreInterface


# Called with (percent, step description)
RollbackProgressCallback = Callable[[int, str], None]


class RollbackEngine:
    """Previews and executes a full migration rollback."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = get_settings().migration
        self._logger = structlog.get_logger(__name__)

    async def has_bills(self) -> bool:
        """Rollback only makes sense once the migration produced a bill."""
        return bool(await self._store.get_all(Collection.BILLS.value))

    async def preview(self) -> RollbackPreview:
        """Count what a rollback would touch and flag the risky cases."""
        products = await self._store.get_all(Collection.PRODUCTS.value)
        bills = await self._store.get_all(Collection.BILLS.value)

        linked = [record for record in products if record.get("bill_id")]
        already_orphaned = len(products) - len(linked)

        preview = RollbackPreview(
            bills_to_delete=len(bills),
            products_to_update=len(linked),
            products_already_orphaned=already_orphaned,
            total_products=len(products),
            estimated_duration_seconds=math.ceil(
                (len(bills) + len(linked)) / self._settings.rollback_items_per_second
            ),
        )

        if len(bills) > self._settings.rollback_bill_risk_threshold:
            preview.risks.append(
                "Large number of bills to delete - operation may take several minutes"
            )
        if len(linked) > self._settings.rollback_product_risk_threshold:
            preview.risks.append(
                "Large number of products to update - consider running during low usage"
            )
        if already_orphaned:
            preview.risks.append(
                f"{already_orphaned} products are already orphaned and will remain unchanged"
            )

        return preview

    async def _item_failed(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        self._logger.warning(
            "rollback_item_failed",
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_item_failed(
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    async def execute(
        self,
        on_progress: Optional[RollbackProgressCallback] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RollbackResult:
        """
        Detach all products, then delete all bills.

        Per-item failures are counted and skipped. A failure to read either
        collection propagates.
        """
        def report(percent: int, step: str) -> None:
            if on_progress:
                on_progress(percent, step)

        started = time.monotonic()
        result = RollbackResult()

        # Phase (a): remove bill references, keep bill_number for history
        report(0, "Removing bill references from products...")
        products = await self._store.get_all(Collection.PRODUCTS.value)
        linked = [record["id"] for record in products if record.get("bill_id")]

        for index, product_id in enumerate(linked, start=1):
            try:
                await self._store.update(
                    Collection.PRODUCTS.value,
                    product_id,
                    {"bill_id": None},
                )
                result.products_updated += 1
            except Exception as e:
                result.product_update_errors += 1
                await self._item_failed("product", product_id, "detach", e, correlation_id)

            report(
                index * 50 // len(linked),
                f"Updating product {index} of {len(linked)}...",
            )

        # Phase (b): delete bills
        report(50, "Deleting bills...")
        bills = [record["id"] for record in await self._store.get_all(Collection.BILLS.value)]

        for index, bill_id in enumerate(bills, start=1):
            try:
                await self._store.delete(Collection.BILLS.value, bill_id)
                result.bills_deleted += 1
            except Exception as e:
                result.bill_delete_errors += 1
                await self._item_failed("bill", bill_id, "delete", e, correlation_id)

            report(
                50 + index * 50 // len(bills),
                f"Deleting bill {index} of {len(bills)}...",
            )

        report(100, "Rollback completed")

        result.duration_seconds = round(time.monotonic() - started, 3)
        result.timestamp = datetime.utcnow()

        self._logger.info(
            "rollback_executed",
            products_updated=result.products_updated,
            bills_deleted=result.bills_deleted,
            total_errors=result.total_errors,
        )
        return result
