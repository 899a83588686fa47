"""Tests for the migration phases of MigrationService."""

import asyncio
from decimal import Decimal

from shopledger.audit import AuditLogger
from shopledger.migration import MigrationService
from shopledger.models.audit import AuditEventType
from shopledger.models.shop import Bill, Product
from shopledger.services.storage import InMemoryAuditStorage, InMemoryDocumentStore
from shopledger.validation import IntegrityValidator


def _bills(store):
    return [Bill.model_validate(r) for r in asyncio.run(store.get_all("bills"))]


def _products(store):
    return {r["id"]: Product.model_validate(r) for r in asyncio.run(store.get_all("products"))}


async def _migrate(service):
    grouping = await service.group_products_by_bill_number()
    creation = await service.create_bills_from_groups(grouping.grouped_products)
    updates = await service.update_products_with_bill_references(
        creation.created_bills, grouping.grouped_products
    )
    orphans = await service.handle_orphaned_products(grouping.orphaned_products)
    return grouping, creation, updates, orphans


class TestGroupingPhase:
    """Tests for reading and grouping the product snapshot."""

    def test_groups_from_store(self, store):
        """Test the service groups what the store holds."""
        result = asyncio.run(MigrationService(store).group_products_by_bill_number())
        assert result.total_products == 3
        assert list(result.grouped_products) == ["b1"]
        assert [p.id for p in result.orphaned_products] == ["p3"]


class TestBillCreation:
    """Tests for create_bills_from_groups."""

    def test_one_bill_per_group(self, store):
        """Test a group becomes one bill with the group's figures."""
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        result = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))

        assert result.success_count == 1
        assert result.error_count == 0

        bills = _bills(store)
        assert len(bills) == 1
        bill = bills[0]
        assert result.created_bills == {"b1": bill.id}
        assert bill.bill_number == "B1"
        assert bill.vendor == "Acme"
        assert bill.total_amount == Decimal("300")
        assert bill.total_profit == Decimal("40")
        assert bill.product_count == 2

    def test_failed_group_does_not_stop_others(self, flaky_store_class):
        """Test a rejected create is recorded and the loop carries on."""
        store = flaky_store_class(
            {"products": [
                {"id": "a", "bill_number": "B1", "total_amount": "10"},
                {"id": "b", "bill_number": "B2", "total_amount": "20"},
                {"id": "c", "bill_number": "B3", "total_amount": "30"},
            ]},
            fail_create=lambda collection, data: data.get("bill_number") == "B2",
        )
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        result = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))

        assert set(result.created_bills) == {"b1", "b3"}
        assert result.error_count == 1
        assert result.errors[0].group_key == "b2"
        assert result.errors[0].product_count == 1
        assert "create rejected" in result.errors[0].error
        assert store.count("bills") == 2

    def test_progress_per_group(self, store):
        """Test progress is reported after every group."""
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        calls = []
        asyncio.run(service.create_bills_from_groups(
            grouping.grouped_products,
            on_progress=lambda done, total: calls.append((done, total)),
        ))
        assert calls == [(1, 1)]


class TestReferenceRewrite:
    """Tests for update_products_with_bill_references."""

    def test_products_point_at_their_bill(self, store):
        """Test grouped products get bill_id and keep bill_number text."""
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        creation = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))
        result = asyncio.run(service.update_products_with_bill_references(
            creation.created_bills, grouping.grouped_products
        ))

        bill_id = creation.created_bills["b1"]
        products = _products(store)
        assert result.success_count == 2
        assert products["p1"].bill_id == bill_id
        assert products["p2"].bill_id == bill_id
        assert products["p2"].bill_number == "b1"  # stripped by the model, case kept
        assert products["p3"].bill_id is None

    def test_failed_group_products_untouched(self, flaky_store_class):
        """Test products of a group whose bill failed are skipped."""
        store = flaky_store_class(
            {"products": [
                {"id": "a", "bill_number": "B1"},
                {"id": "b", "bill_number": "B2"},
            ]},
            fail_create=lambda collection, data: data.get("bill_number") == "B2",
        )
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        creation = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))
        result = asyncio.run(service.update_products_with_bill_references(
            creation.created_bills, grouping.grouped_products
        ))

        assert result.success_count == 1
        assert _products(store)["b"].bill_id is None

    def test_failed_update_recorded(self, flaky_store_class, product_records):
        """Test a rejected product update is isolated."""
        store = flaky_store_class({"products": product_records}, fail_update_ids={"p2"})
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        creation = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))
        result = asyncio.run(service.update_products_with_bill_references(
            creation.created_bills, grouping.grouped_products
        ))

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.errors[0].product_id == "p2"
        assert result.errors[0].group_key == "b1"
        assert _products(store)["p1"].bill_id == creation.created_bills["b1"]

    def test_progress_per_product(self, store):
        """Test progress counts products, not groups."""
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        creation = asyncio.run(service.create_bills_from_groups(grouping.grouped_products))
        calls = []
        asyncio.run(service.update_products_with_bill_references(
            creation.created_bills,
            grouping.grouped_products,
            on_progress=lambda done, total: calls.append((done, total)),
        ))
        assert calls == [(1, 2), (2, 2)]


class TestOrphanHandling:
    """Tests for handle_orphaned_products."""

    def test_each_orphan_gets_its_own_bill(self):
        """Test orphans get unique generated numbers and their own bill."""
        store = InMemoryDocumentStore({"products": [
            {"id": "a", "product_name": "Soap", "quantity": "2", "total_amount": "40"},
            {"id": "b", "quantity": "1", "total_amount": "15"},
        ]})
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        result = asyncio.run(service.handle_orphaned_products(grouping.orphaned_products))

        assert result.success_count == 2
        assert result.error_count == 0

        bills = {bill.id: bill for bill in _bills(store)}
        assert sorted(b.bill_number for b in bills.values()) == ["B001", "B002"]

        products = _products(store)
        soap_bill = bills[products["a"].bill_id]
        assert soap_bill.id == result.created_bills["a"]
        assert soap_bill.notes == "Auto-generated for orphaned product: Soap"
        assert soap_bill.total_amount == Decimal("40")
        assert soap_bill.product_count == 1
        assert bills[products["b"].bill_id].notes == "Auto-generated for orphaned product: Unnamed Product"

    def test_numbers_continue_after_existing_bills(self, store):
        """Test generated numbers skip numbers already in the store."""
        service = MigrationService(store)
        asyncio.run(_migrate(service))

        numbers = sorted(bill.bill_number for bill in _bills(store))
        assert numbers == ["B002", "B1"]

    def test_failed_orphan_isolated(self, flaky_store_class):
        """Test one orphan failing doesn't stop the next."""
        store = flaky_store_class(
            {"products": [{"id": "a"}, {"id": "b"}]},
            fail_update_ids={"a"},
        )
        service = MigrationService(store)
        grouping = asyncio.run(service.group_products_by_bill_number())
        result = asyncio.run(service.handle_orphaned_products(grouping.orphaned_products))

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.errors[0].product_id == "a"
        assert _products(store)["b"].bill_id is not None

    def test_no_orphans(self, store):
        """Test an empty orphan list does nothing."""
        result = asyncio.run(MigrationService(store).handle_orphaned_products([]))
        assert result.success_count == 0
        assert store.count("bills") == 0


class TestFullMigration:
    """Tests for the phases run back to back."""

    def test_every_product_linked(self, store):
        """Test after all phases every product resolves to a bill."""
        asyncio.run(_migrate(MigrationService(store)))

        bill_ids = {bill.id for bill in _bills(store)}
        products = _products(store)
        assert len(bill_ids) == 2
        assert all(p.bill_id in bill_ids for p in products.values())

    def test_item_failures_are_audited(self, flaky_store_class, product_records):
        """Test per-item failures reach the audit trail."""
        audit_storage = InMemoryAuditStorage()
        store = flaky_store_class({"products": product_records}, fail_update_ids={"p1"})
        asyncio.run(_migrate(MigrationService(store, AuditLogger(audit_storage))))

        events = asyncio.run(audit_storage.get_recent_events())
        failed = [e for e in events if e.event_type == AuditEventType.ITEM_FAILED]
        assert len(failed) == 1
        assert failed[0].entity_id == "p1"

    def test_long_bill_number_and_vendor(self):
        """Test free-text bill numbers and vendors of any length migrate."""
        bill_number = "INV-" + "7" * 120
        vendor = "Wholesale " * 30
        store = InMemoryDocumentStore({"products": [
            {"id": "a", "bill_number": bill_number, "vendor": vendor, "total_amount": "10"},
            {"id": "b", "product_name": "Tea " * 300, "total_amount": "5"},
        ]})
        _, creation, updates, orphans = asyncio.run(_migrate(MigrationService(store)))

        assert creation.error_count == 0
        assert updates.error_count == 0
        assert orphans.error_count == 0
        assert {bill.bill_number for bill in _bills(store)} == {bill_number, "B001"}

        report = asyncio.run(IntegrityValidator(store).validate())
        assert report.is_valid is True
