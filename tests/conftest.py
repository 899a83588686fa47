"""
Shared fixtures for the Shop Ledger tests.

No test touches Google Sheets: everything runs against the in-memory store.
Failures are injected by FlakyStore, a subclass that raises on chosen
documents.
"""

import pytest

from shopledger.config import get_settings
from shopledger.services.storage import InMemoryDocumentStore, StorageError


class FlakyStore(InMemoryDocumentStore):
    """
    In-memory store that fails on demand.

    Args:
        fail_create: predicate (collection, data) -> bool; matching creates raise
        fail_update_ids: document ids whose updates raise
        fail_delete_ids: document ids whose deletes raise
        fail_reads: collections whose get_all raises
    """

    def __init__(
        self,
        initial=None,
        fail_create=None,
        fail_update_ids=(),
        fail_delete_ids=(),
        fail_reads=(),
    ):
        super().__init__(initial)
        self.fail_create = fail_create
        self.fail_update_ids = set(fail_update_ids)
        self.fail_delete_ids = set(fail_delete_ids)
        self.fail_reads = set(fail_reads)

    async def get_all(self, collection):
        if collection in self.fail_reads:
            raise StorageError(f"{collection} unavailable")
        return await super().get_all(collection)

    async def create(self, collection, data):
        if self.fail_create and self.fail_create(collection, data):
            raise StorageError("create rejected")
        return await super().create(collection, data)

    async def update(self, collection, document_id, partial):
        if document_id in self.fail_update_ids:
            raise StorageError(f"update rejected for {document_id}")
        await super().update(collection, document_id, partial)

    async def delete(self, collection, document_id):
        if document_id in self.fail_delete_ids:
            raise StorageError(f"delete rejected for {document_id}")
        await super().delete(collection, document_id)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; start every test from the defaults."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def flaky_store_class():
    return FlakyStore


@pytest.fixture
def product_records():
    """
    Three products: two share bill "B1" (written differently), one has no
    bill number at all.
    """
    return [
        {
            "id": "p1",
            "product_name": "Rice 5kg",
            "vendor": "Acme",
            "bill_number": "B1",
            "purchase_date": "2024-03-02",
            "total_quantity": "2",
            "profit_per_piece": "10",
            "total_amount": "100",
        },
        {
            "id": "p2",
            "product_name": "Dal 1kg",
            "vendor": "Acme",
            "bill_number": " b1 ",
            "purchase_date": "2024-03-01",
            "quantity": "4",
            "profit_per_piece": "5",
            "total_amount": "200",
        },
        {
            "id": "p3",
            "product_name": "Loose Item",
            "bill_number": "",
            "quantity": "1",
            "profit_per_piece": "3",
            "total_amount": "50",
        },
    ]


@pytest.fixture
def store(product_records):
    return InMemoryDocumentStore({"products": product_records})
