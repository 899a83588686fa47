"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory store backs tests
and offline use.
"""

from shopledger.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    ConnectionError,
    DocumentStoreInterface,
    NotFoundError,
    Record,
    StorageError,
    SubscriptionRegistry,
    Unsubscribe,
)
from shopledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from shopledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeCallback",
    "DocumentStoreInterface",
    "Record",
    "SubscriptionRegistry",
    "Unsubscribe",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
