"""
In-Memory Storage Implementation

Backs the test-suite and the dashboard's offline mode. Documents are kept
as deep copies so callers can never mutate stored state by accident.
"""

import copy
from typing import Optional
from uuid import UUID, uuid4

from shopledger.models.audit import AuditEvent
from shopledger.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    DocumentStoreInterface,
    NotFoundError,
    Record,
    SubscriptionRegistry,
    Unsubscribe,
)


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dictionary-backed document store.

    Insertion order is preserved, so get_all() returns documents in the
    order they were created.
    """

    def __init__(self, initial: Optional[dict[str, list[Record]]] = None):
        self._collections: dict[str, dict[str, Record]] = {}
        self._subscriptions = SubscriptionRegistry()

        for collection, records in (initial or {}).items():
            for record in records:
                data = {k: v for k, v in record.items() if k != "id"}
                document_id = record.get("id") or uuid4().hex
                self._bucket(collection)[document_id] = copy.deepcopy(data)

    def _bucket(self, collection: str) -> dict[str, Record]:
        return self._collections.setdefault(collection, {})

    def _snapshot(self, collection: str) -> list[Record]:
        return [
            {"id": document_id, **copy.deepcopy(data)}
            for document_id, data in self._bucket(collection).items()
        ]

    def _changed(self, collection: str) -> None:
        if self._subscriptions.has_subscribers(collection):
            self._subscriptions.notify(collection, self._snapshot(collection))

    async def get_all(self, collection: str) -> list[Record]:
        return self._snapshot(collection)

    async def create(self, collection: str, data: Record) -> str:
        document_id = uuid4().hex
        self._bucket(collection)[document_id] = copy.deepcopy(
            {k: v for k, v in data.items() if k != "id"}
        )
        self._changed(collection)
        return document_id

    async def update(self, collection: str, document_id: str, partial: Record) -> None:
        bucket = self._bucket(collection)
        if document_id not in bucket:
            raise NotFoundError(f"{collection} document not found: {document_id}")
        bucket[document_id].update(
            copy.deepcopy({k: v for k, v in partial.items() if k != "id"})
        )
        self._changed(collection)

    async def delete(self, collection: str, document_id: str) -> None:
        bucket = self._bucket(collection)
        if document_id not in bucket:
            raise NotFoundError(f"{collection} document not found: {document_id}")
        del bucket[document_id]
        self._changed(collection)

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        return self._subscriptions.add(collection, callback)

    def get(self, collection: str, document_id: str) -> Optional[Record]:
        """Synchronous single-document lookup, handy for inspection."""
        data = self._bucket(collection).get(document_id)
        if data is None:
            return None
        return {"id": document_id, **copy.deepcopy(data)}

    def count(self, collection: str) -> int:
        return len(self._bucket(collection))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
