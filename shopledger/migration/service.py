"""
Product-to-Bill Migration Service

The migration regroups flat product records into bill aggregates:

1. GROUP   - bucket products by normalized bill number
2. CREATE  - persist one bill per bucket
3. REWRITE - point each grouped product at its new bill
4. ORPHANS - give every product without a bill number its own placeholder bill

DESIGN DECISION: Nothing here is atomic. Each create/update is its own store
call and a failure on one item is recorded and skipped, never allowed to
abort the rest of the phase. Only a failure to read the store (or a setup
error) escapes a phase. The integrity validator is what finds the damage a
partial run leaves behind.

Bill creation is at-least-once: re-running after a partial failure creates
the already-succeeded bills again. The duplicate-bill-number check exists
to catch exactly that.
"""

from typing import Callable, Optional
from uuid import UUID

import structlog

from shopledger.audit import AuditLogger
from shopledger.migration.bills import (
    calculate_bill_data_from_products,
    generate_bill_number,
)
from shopledger.migration.grouping import group_products_by_bill_number
from shopledger.migration.records import load_bills, load_products
from shopledger.models.migration import (
    BillCreationError,
    BillCreationResult,
    GroupingResult,
    OrphanHandlingResult,
    ProductUpdate,
    ProductUpdateError,
    ReferenceUpdateResult,
)
from shopledger.models.shop import Collection, Product
from shopledger.services.storage import DocumentStoreInterface


# Called with (items_done, items_total) after every item of a phase
ProgressCallback = Callable[[int, int], None]


class MigrationService:
    """
    Runs the individual migration phases against a document store.

    The phases are exposed separately so the orchestrator can report
    progress between them; MigrationFlow is what sequences them.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

    async def _item_failed(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        self._logger.warning(
            "migration_item_failed",
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

    async def group_products_by_bill_number(self) -> GroupingResult:
        """Read every product and partition them by bill number."""
        products = await load_products(self._store)
        result = group_products_by_bill_number(products)

        self._logger.info(
            "products_grouped",
            total_products=result.total_products,
            group_count=result.group_count,
            orphan_count=len(result.orphaned_products),
        )
        return result

    async def create_bills_from_groups(
        self,
        grouped_products: dict[str, list[Product]],
        correlation_id: Optional[UUID] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BillCreationResult:
        """
        Create one bill per product group.

        The bill number is the trimmed original text of the group's first
        product, so the bill reads the way the shopkeeper typed it.
        """
        result = BillCreationResult()
        total = len(grouped_products)

        for index, (group_key, products) in enumerate(grouped_products.items(), start=1):
            try:
                bill = calculate_bill_data_from_products(
                    products[0].bill_number or group_key,
                    products,
                )
                bill_id = await self._store.create(
                    Collection.BILLS.value,
                    bill.to_document(),
                )
                result.created_bills[group_key] = bill_id
            except Exception as e:
                result.errors.append(BillCreationError(
                    group_key=group_key,
                    product_count=len(products),
                    error=str(e),
                ))
                await self._item_failed("bill", group_key, "create", e, correlation_id)

            if on_progress:
                on_progress(index, total)

        self._logger.info(
            "bills_created_from_groups",
            success_count=result.success_count,
            error_count=result.error_count,
        )
        return result

    async def update_products_with_bill_references(
        self,
        created_bills: dict[str, str],
        grouped_products: dict[str, list[Product]],
        correlation_id: Optional[UUID] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ReferenceUpdateResult:
        """
        Set bill_id on every product of every successfully created group.

        Products of groups whose bill creation failed are left untouched.
        The original bill_number text is kept as entered.
        """
        result = ReferenceUpdateResult()
        work = [
            (group_key, bill_id, product)
            for group_key, bill_id in created_bills.items()
            for product in grouped_products.get(group_key, [])
        ]
        total = len(work)

        for index, (group_key, bill_id, product) in enumerate(work, start=1):
            try:
                await self._store.update(
                    Collection.PRODUCTS.value,
                    product.id,
                    {"bill_id": bill_id},
                )
                result.update_results.append(ProductUpdate(
                    product_id=product.id,
                    bill_id=bill_id,
                ))
            except Exception as e:
                result.errors.append(ProductUpdateError(
                    product_id=product.id,
                    group_key=group_key,
                    error=str(e),
                ))
                await self._item_failed("product", product.id, "update", e, correlation_id)

            if on_progress:
                on_progress(index, total)

        self._logger.info(
            "products_linked_to_bills",
            success_count=result.success_count,
            error_count=result.error_count,
        )
        return result

    async def handle_orphaned_products(
        self,
        orphaned_products: list[Product],
        correlation_id: Optional[UUID] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OrphanHandlingResult:
        """
        Give each orphaned product a placeholder bill of its own.

        There is no shared key to group orphans by, so one bill per product
        is the only assignment that cannot merge unrelated purchases.
        """
        result = OrphanHandlingResult()
        if not orphaned_products:
            return result

        # Bill numbers already taken, including ones this pass creates
        taken_numbers = [bill.bill_number for bill in await load_bills(self._store)]
        total = len(orphaned_products)

        for index, product in enumerate(orphaned_products, start=1):
            try:
                bill_number = generate_bill_number(taken_numbers)
                bill = calculate_bill_data_from_products(
                    bill_number,
                    [product],
                    notes=f"Auto-generated for orphaned product: {product.display_name}",
                )
                bill_id = await self._store.create(
                    Collection.BILLS.value,
                    bill.to_document(),
                )
                taken_numbers.append(bill_number)
                result.created_bills[product.id] = bill_id

                await self._store.update(
                    Collection.PRODUCTS.value,
                    product.id,
                    {"bill_id": bill_id},
                )
                result.update_results.append(ProductUpdate(
                    product_id=product.id,
                    bill_id=bill_id,
                ))
            except Exception as e:
                result.errors.append(ProductUpdateError(
                    product_id=product.id,
                    error=str(e),
                ))
                await self._item_failed("product", product.id, "assign placeholder bill", e, correlation_id)

            if on_progress:
                on_progress(index, total)

        self._logger.info(
            "orphaned_products_handled",
            success_count=result.success_count,
            bills_created=len(result.created_bills),
            error_count=result.error_count,
        )
        return result
