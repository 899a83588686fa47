"""Tests for the rollback engine."""

import asyncio

from shopledger.migration import MigrationService, RollbackEngine, group_products_by_bill_number
from shopledger.models.shop import Product
from shopledger.services.storage import InMemoryDocumentStore


async def _migrate(store):
    service = MigrationService(store)
    grouping = await service.group_products_by_bill_number()
    creation = await service.create_bills_from_groups(grouping.grouped_products)
    await service.update_products_with_bill_references(
        creation.created_bills, grouping.grouped_products
    )
    await service.handle_orphaned_products(grouping.orphaned_products)


def _products(store):
    return [Product.model_validate(r) for r in asyncio.run(store.get_all("products"))]


def _grouping_signature(products):
    result = group_products_by_bill_number(products)
    return (
        {key: [p.id for p in group] for key, group in result.grouped_products.items()},
        [p.id for p in result.orphaned_products],
    )


class TestAvailability:
    """Tests for has_bills."""

    def test_no_bills(self, store):
        """Test rollback is unavailable before any migration."""
        assert asyncio.run(RollbackEngine(store).has_bills()) is False

    def test_after_migration(self, store):
        """Test rollback becomes available once a bill exists."""
        asyncio.run(_migrate(store))
        assert asyncio.run(RollbackEngine(store).has_bills()) is True


class TestPreview:
    """Tests for the rollback preview."""

    def test_counts(self, store):
        """Test preview counts bills and linked products."""
        asyncio.run(_migrate(store))
        preview = asyncio.run(RollbackEngine(store).preview())

        assert preview.bills_to_delete == 2
        assert preview.products_to_update == 3
        assert preview.products_already_orphaned == 0
        assert preview.total_products == 3
        assert preview.estimated_duration_seconds == 1
        assert preview.risks == []

    def test_orphaned_products_flagged(self):
        """Test already unlinked products show up as a risk."""
        store = InMemoryDocumentStore({
            "bills": [{"id": "x", "bill_number": "B1", "vendor": "Acme", "bill_date": "2024-03-01"}],
            "products": [{"id": "a", "bill_id": "x"}, {"id": "b"}],
        })
        preview = asyncio.run(RollbackEngine(store).preview())

        assert preview.products_already_orphaned == 1
        assert preview.risks == ["1 products are already orphaned and will remain unchanged"]

    def test_large_rollback_flagged(self, monkeypatch):
        """Test thresholds come from settings."""
        monkeypatch.setenv("MIGRATION_ROLLBACK_BILL_RISK_THRESHOLD", "0")
        monkeypatch.setenv("MIGRATION_ROLLBACK_PRODUCT_RISK_THRESHOLD", "0")
        store = InMemoryDocumentStore({
            "bills": [{"id": "x", "bill_number": "B1", "vendor": "Acme", "bill_date": "2024-03-01"}],
            "products": [{"id": "a", "bill_id": "x"}],
        })
        preview = asyncio.run(RollbackEngine(store).preview())

        assert len(preview.risks) == 2
        assert "bills to delete" in preview.risks[0]
        assert "products to update" in preview.risks[1]


class TestExecute:
    """Tests for executing a rollback."""

    def test_restores_pre_migration_grouping(self, store):
        """Test rollback removes every bill and regrouping matches the original."""
        original = _grouping_signature(_products(store))
        asyncio.run(_migrate(store))

        result = asyncio.run(RollbackEngine(store).execute())

        assert result.products_updated == 3
        assert result.bills_deleted == 2
        assert result.total_errors == 0
        assert store.count("bills") == 0

        products = _products(store)
        assert all(p.bill_id is None for p in products)
        assert _grouping_signature(products) == original

    def test_progress_is_monotonic(self, store):
        """Test progress runs 0 to 100, with bills starting at 50."""
        asyncio.run(_migrate(store))
        updates = []
        asyncio.run(RollbackEngine(store).execute(
            on_progress=lambda percent, step: updates.append((percent, step)),
        ))

        percents = [percent for percent, _ in updates]
        assert percents == sorted(percents)
        assert percents[0] == 0
        assert percents[-1] == 100
        assert (50, "Deleting bills...") in updates
        assert all(0 <= p <= 100 for p in percents)

    def test_item_failures_counted(self, flaky_store_class, product_records):
        """Test failed items are counted and the rest still roll back."""
        store = flaky_store_class({"products": product_records})
        asyncio.run(_migrate(store))
        bill_ids = [r["id"] for r in asyncio.run(store.get_all("bills"))]
        store.fail_update_ids = {"p1"}
        store.fail_delete_ids = {bill_ids[0]}

        result = asyncio.run(RollbackEngine(store).execute())

        assert result.products_updated == 2
        assert result.product_update_errors == 1
        assert result.bills_deleted == 1
        assert result.bill_delete_errors == 1
        assert result.total_errors == 2

    def test_rerun_is_safe(self, flaky_store_class, product_records):
        """Test a second rollback finishes what a partial one left."""
        store = flaky_store_class({"products": product_records})
        asyncio.run(_migrate(store))
        store.fail_update_ids = {"p1"}
        asyncio.run(RollbackEngine(store).execute())

        store.fail_update_ids = set()
        result = asyncio.run(RollbackEngine(store).execute())

        # p1 still pointed at a deleted bill, nothing else was left
        assert result.products_updated == 1
        assert result.bills_deleted == 0
        assert result.total_errors == 0
        assert all(p.bill_id is None for p in _products(store))

    def test_empty_store(self):
        """Test rolling back nothing reports nothing."""
        updates = []
        result = asyncio.run(RollbackEngine(InMemoryDocumentStore()).execute(
            on_progress=lambda percent, step: updates.append(percent),
        ))

        assert result.products_updated == 0
        assert result.bills_deleted == 0
        assert updates == [0, 50, 100]

    def test_malformed_rows_still_rolled_back(self):
        """Test rows the models reject are still detached and deleted."""
        store = InMemoryDocumentStore({
            "bills": [
                {"id": "x", "bill_number": "B1", "vendor": "", "bill_date": "2024-03-01"},
                {"id": "y", "bill_number": "B2", "vendor": "Acme", "bill_date": "not a date"},
            ],
            "products": [
                {"id": "a", "bill_id": "x", "total_amount": "twelve"},
                {"id": "b", "bill_id": "y"},
                {"id": "c", "bill_id": ""},
            ],
        })
        engine = RollbackEngine(store)

        preview = asyncio.run(engine.preview())
        assert preview.bills_to_delete == 2
        assert preview.products_to_update == 2
        assert preview.products_already_orphaned == 1

        result = asyncio.run(engine.execute())

        assert result.products_updated == 2
        assert result.bills_deleted == 2
        assert result.total_errors == 0
        assert store.count("bills") == 0
        assert store.get("products", "a")["bill_id"] is None
        assert store.get("products", "a")["total_amount"] == "twelve"
