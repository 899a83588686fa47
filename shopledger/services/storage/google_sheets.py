"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the document store because:
1. The shopkeeper can view products and bills directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a single shop is fine)
- No transactions (the migration is explicitly non-atomic anyway)
- Limited query capabilities (we read whole sheets and filter in Python)
- Change notifications only cover writes made through this adapter

Each collection is one worksheet. Row 1 holds the column names; every
value is stored as text and blank cells come back as None.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shopledger.config import get_settings
from shopledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from shopledger.models.shop import Collection
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


# Column mappings for the Products sheet
PRODUCT_COLUMNS = [
    "id",
    "product_name",
    "category",
    "vendor",
    "purchase_date",
    "bill_number",
    "bill_id",
    "total_quantity",
    "quantity",
    "price_per_piece",
    "mrp",
    "profit_per_piece",
    "total_amount",
]

# Column mappings for the Bills sheet
BILL_COLUMNS = [
    "id",
    "bill_number",
    "vendor",
    "bill_date",
    "status",
    "total_quantity",
    "total_amount",
    "total_profit",
    "product_count",
    "notes",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

COLLECTION_COLUMNS = {
    Collection.PRODUCTS.value: PRODUCT_COLUMNS,
    Collection.BILLS.value: BILL_COLUMNS,
}

logger = structlog.get_logger(__name__)

# Missing documents are a definite answer, not a transient failure
_retry_transient = retry(
    retry=retry_if_not_exception_type(NotFoundError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection == Collection.PRODUCTS.value:
            title = self._settings.products_sheet_name
        elif collection == Collection.BILLS.value:
            title = self._settings.bills_sheet_name
        else:
            raise StorageError(f"Unknown collection: {collection}")
        return self._get_or_create_sheet(title, COLLECTION_COLUMNS[collection])

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Documents are rows; fields outside the collection's column list are
    not persisted.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._subscriptions = SubscriptionRegistry()

    def _read_rows(self, collection: str) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._client.get_collection_sheet(collection)
        values = sheet.get_all_values()
        header = values[0] if values else COLLECTION_COLUMNS[collection]
        return sheet, header, values[1:]

    @staticmethod
    def _row_to_record(header: list[str], row: list[str]) -> Record:
        """Convert a spreadsheet row to a document. Blank cells become None."""
        record: Record = {}
        for idx, column in enumerate(header):
            value = row[idx] if idx < len(row) else ""
            record[column] = value if value != "" else None
        return record

    @staticmethod
    def _record_to_row(header: list[str], record: Record) -> list[str]:
        return [_to_cell(record.get(column)) for column in header]

    @staticmethod
    def _find_row(rows: list[list[str]], document_id: str) -> Optional[int]:
        """1-based sheet row number of a document (row 1 is the header)."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == document_id:
                return idx
        return None

    def _records(self, collection: str) -> list[Record]:
        _, header, rows = self._read_rows(collection)
        return [
            self._row_to_record(header, row)
            for row in rows
            if row and row[0]  # Skip empty rows
        ]

    # Only the sheet I/O is retried. Notifying subscribers re-reads the
    # sheet and must never repeat a write that already went through.

    @_retry_transient
    def _read_records(self, collection: str) -> list[Record]:
        return self._records(collection)

    @_retry_transient
    def _append(self, collection: str, data: Record) -> str:
        sheet, header, _ = self._read_rows(collection)
        document_id = uuid4().hex
        row = self._record_to_row(header, {**data, "id": document_id})
        sheet.append_row(row, value_input_option="RAW")
        return document_id

    @_retry_transient
    def _write(self, collection: str, document_id: str, partial: Record) -> None:
        sheet, header, rows = self._read_rows(collection)
        row_number = self._find_row(rows, document_id)
        if row_number is None:
            raise NotFoundError(f"{collection} document not found: {document_id}")

        current = self._row_to_record(header, rows[row_number - 2])
        merged = {**current, **partial, "id": document_id}
        sheet.update(
            range_name=f"A{row_number}",
            values=[self._record_to_row(header, merged)],
            value_input_option="RAW",
        )

    @_retry_transient
    def _remove(self, collection: str, document_id: str) -> None:
        sheet, _, rows = self._read_rows(collection)
        row_number = self._find_row(rows, document_id)
        if row_number is None:
            raise NotFoundError(f"{collection} document not found: {document_id}")
        sheet.delete_rows(row_number)

    def _changed(self, collection: str) -> None:
        if not self._subscriptions.has_subscribers(collection):
            return
        try:
            records = self._records(collection)
        except Exception as e:
            logger.warning(
                "change_notification_failed",
                collection=collection,
                error=str(e),
            )
            return
        self._subscriptions.notify(collection, records)

    async def get_all(self, collection: str) -> list[Record]:
        try:
            return self._read_records(collection)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")

    async def create(self, collection: str, data: Record) -> str:
        try:
            document_id = self._append(collection, data)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create {collection} document: {e}")

        self._changed(collection)
        return document_id

    async def update(self, collection: str, document_id: str, partial: Record) -> None:
        try:
            self._write(collection, document_id, partial)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection} document: {e}")

        self._changed(collection)

    async def delete(self, collection: str, document_id: str) -> None:
        try:
            self._remove(collection, document_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection} document: {e}")

        self._changed(collection)

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        return self._subscriptions.add(collection, callback)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError):
                continue  # Skip malformed rows
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
