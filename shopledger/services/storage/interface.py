"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep the migration engine decoupled from storage implementation

The document store is deliberately schema-less: it moves dictionaries in
and out of named collections. Turning those dictionaries into Products and
Bills is the engine's job, not the store's.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable
from uuid import UUID

import structlog

from shopledger.models.audit import AuditEvent


Record = dict[str, Any]
ChangeCallback = Callable[[list[Record]], None]
Unsubscribe = Callable[[], None]


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the products/bills document store.

    Any storage implementation (Google Sheets, Firestore, etc.)
    must implement these methods. No transactions are offered: every
    call stands alone.
    """

    @abstractmethod
    async def get_all(self, collection: str) -> list[Record]:
        """
        Read every document of a collection.

        Args:
            collection: Logical collection name ('products' or 'bills')

        Returns:
            Documents as dictionaries, each including its 'id'

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def create(self, collection: str, data: Record) -> str:
        """
        Insert a new document.

        Args:
            collection: Logical collection name
            data: Document fields (any 'id' key is ignored)

        Returns:
            The store-assigned id

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(self, collection: str, document_id: str, partial: Record) -> None:
        """
        Merge fields into an existing document.

        Keys present in `partial` overwrite, including explicit None values.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        """
        Delete a document.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        """
        Register for change notifications on a collection.

        The callback receives the collection's full contents after each
        change. Returns a function that cancels the subscription.
        """
        pass


class SubscriptionRegistry:
    """
    Callback fan-out shared by the store implementations.

    A failing subscriber is logged and skipped so it can't break the
    write that triggered the notification.
    """

    def __init__(self):
        self._callbacks: dict[str, list[ChangeCallback]] = {}
        self._logger = structlog.get_logger(__name__)

    def add(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        self._callbacks.setdefault(collection, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._callbacks.get(collection, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def has_subscribers(self, collection: str) -> bool:
        return bool(self._callbacks.get(collection))

    def notify(self, collection: str, records: list[Record]) -> None:
        for callback in list(self._callbacks.get(collection, [])):
            try:
                callback(records)
            except Exception as e:
                self._logger.error(
                    "subscriber_failed",
                    collection=collection,
                    error=str(e),
                )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events of one workflow run, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
