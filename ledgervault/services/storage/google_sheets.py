"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted store because:
1. Users can see their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

And because it is hosted by a third party, sensitive columns only ever
arrive here as ciphertext (or in clear if the user turned encryption off).

Layout:
- One worksheet per table, first row is the header
- Every cell holds the JSON encoding of its value; an empty cell is None

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions; a failed bulk rewrite leaves earlier rows rewritten
- Rows are located by scanning the id column
"""

import json
from typing import Any, Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledgervault.config import GoogleSheetsSettings, get_settings
from ledgervault.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledgervault.models.records import ALL_SHAPES
from ledgervault.models.storage import ENVELOPE_COLUMNS
from ledgervault.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    RecordStoreInterface,
    Row,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column layout per table. Record tables: clear columns, then the
# sensitive columns, then the envelope pair.
TABLE_COLUMNS: dict[str, list[str]] = {
    shape.table: [
        *shape.non_sensitive_fields,
        *shape.sensitive_fields,
        *ENVELOPE_COLUMNS,
    ]
    for shape in ALL_SHAPES
}
TABLE_COLUMNS["user_settings"] = ["id", "default_currency", "updated_at"]

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


def encode_cell(value: Any) -> str:
    """JSON-encode one cell. None becomes an empty cell."""
    if value is None:
        return ""
    return json.dumps(value, default=str)


def decode_cell(cell: str) -> Any:
    if cell == "":
        return None
    try:
        return json.loads(cell)
    except json.JSONDecodeError:
        # Typed in by hand in the Sheets UI
        return cell


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet for a table."""
        if table not in TABLE_COLUMNS:
            raise StorageError(f"Unknown table: {table}")

        title = self._settings.sheet_names.get(table, table)
        return self._get_or_create(title, TABLE_COLUMNS[table], rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
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


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of record storage.

    The header row decides where each column lives, so a sheet with its
    columns reordered (or extra columns added by hand) keeps working.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def read_all(self, table: str) -> list[Row]:
        """Read every non-empty row of a table."""
        try:
            sheet = self._client.get_table_sheet(table)
            values = sheet.get_all_values()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

        if not values:
            return []

        header = values[0]
        rows = []
        for raw in values[1:]:
            if not raw or not any(raw):  # Skip empty rows
                continue
            rows.append(self._row_from_cells(header, raw))
        return rows

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert(self, table: str, row: Row) -> Row:
        """Append a row, ordered by the sheet's header."""
        try:
            sheet = self._client.get_table_sheet(table)
            header = sheet.row_values(1)
            sheet.append_row(
                [encode_cell(row.get(column)) for column in header],
                value_input_option="RAW",
            )
            return dict(row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    async def update(self, table: str, row_id: str, patch: Row) -> Row:
        """
        Apply a patch to one row with a single range write.

        CRITICAL: ciphertext and iv must land together. Writing cell by
        cell could leave a new ciphertext beside the old nonce, which
        nothing can decrypt, so the whole row goes in one API call.
        """
        try:
            sheet = self._client.get_table_sheet(table)
            values = sheet.get_all_values()
            header = values[0] if values else []
            sheet_row = self._find_row(header, values, row_id)
            if sheet_row is None:
                raise NotFoundError(f"{table} row not found: {row_id}")

            missing = [column for column in patch if column not in header]
            if missing:
                raise StorageError(f"Columns {missing} missing from {table} sheet")

            # Untouched cells are written back as they were read
            cells = list(values[sheet_row - 1]) + [""] * len(header)
            cells = cells[:len(header)]
            for column, value in patch.items():
                cells[header.index(column)] = encode_cell(value)

            end = rowcol_to_a1(sheet_row, len(header))
            sheet.update(
                range_name=f"A{sheet_row}:{end}",
                values=[cells],
                value_input_option="RAW",
            )

            return self._row_from_cells(header, cells)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table} row: {e}")

    async def delete(self, table: str, row_id: str) -> None:
        try:
            sheet = self._client.get_table_sheet(table)
            values = sheet.get_all_values()
            header = values[0] if values else []
            sheet_row = self._find_row(header, values, row_id)
            if sheet_row is None:
                raise NotFoundError(f"{table} row not found: {row_id}")
            sheet.delete_rows(sheet_row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {table} row: {e}")

    @staticmethod
    def _row_from_cells(header: list[str], cells: list[str]) -> Row:
        # Trailing empty cells are dropped by the Sheets API
        padded = list(cells) + [""] * (len(header) - len(cells))
        return {column: decode_cell(cell) for column, cell in zip(header, padded)}

    @staticmethod
    def _find_row(header: list[str], values: list[list[str]], row_id: str) -> Optional[int]:
        """1-based sheet row number of the row with this id, or None."""
        if "id" not in header:
            return None
        id_index = header.index("id")
        wanted = encode_cell(row_id)
        for idx, raw in enumerate(values[1:], start=2):  # Row 1 is the header
            if len(raw) > id_index and raw[id_index] == wanted:
                return idx
        return None


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
            timestamp=safe_get(1),
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

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and len(row) > 6 and row[6] == str(correlation_id):
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    logger.warning("audit_row_unreadable", row_id=row[0])

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
