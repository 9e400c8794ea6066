"""
Tests for the Google Sheets store.

The gspread worksheet is a MagicMock; no Google API is called.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from ledgervault.models.audit import AuditEventBuilder, AuditEventType
from ledgervault.models.records import TRANSACTION_SHAPE
from ledgervault.models.storage import ENVELOPE_COLUMNS
from ledgervault.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStore,
    NotFoundError,
    StorageError,
)
from ledgervault.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    TABLE_COLUMNS,
    decode_cell,
    encode_cell,
)


SETTINGS_HEADER = ["id", "default_currency", "updated_at"]


@pytest.fixture
def sheet():
    return MagicMock()


@pytest.fixture
def client(sheet):
    client = MagicMock()
    client.get_table_sheet.return_value = sheet
    client.get_audit_sheet.return_value = sheet
    return client


@pytest.fixture
def record_store(client):
    return GoogleSheetsRecordStore(client=client)


class TestCells:

    @pytest.mark.parametrize("value,cell", [
        (None, ""),
        ("abc", '"abc"'),
        (19.99, "19.99"),
        (True, "true"),
    ])
    def test_encode(self, value, cell):
        assert encode_cell(value) == cell

    def test_decode_inverts_encode(self):
        for value in ("abc", 19.99, 0, False, None, "123"):
            assert decode_cell(encode_cell(value)) == value

    def test_decode_hand_typed_text(self):
        assert decode_cell("typed by hand") == "typed by hand"


def test_record_table_layout():
    columns = TABLE_COLUMNS["transactions"]

    assert columns[0] == "id"
    assert columns[-2:] == list(ENVELOPE_COLUMNS)
    assert set(TRANSACTION_SHAPE.sensitive_fields) <= set(columns)
    assert TABLE_COLUMNS["user_settings"] == SETTINGS_HEADER


class TestRecordStore:

    @pytest.mark.asyncio
    async def test_read_all_pads_and_skips_empty_rows(self, record_store, sheet):
        sheet.get_all_values.return_value = [
            SETTINGS_HEADER,
            ['"s-1"', '"EUR"'],
            ["", "", ""],
            [],
        ]

        rows = await record_store.read_all("user_settings")

        assert rows == [{"id": "s-1", "default_currency": "EUR", "updated_at": None}]

    @pytest.mark.asyncio
    async def test_read_all_empty_sheet(self, record_store, sheet):
        sheet.get_all_values.return_value = []
        assert await record_store.read_all("user_settings") == []

    @pytest.mark.asyncio
    async def test_insert_follows_header_order(self, record_store, sheet):
        sheet.row_values.return_value = ["default_currency", "id", "updated_at"]

        await record_store.insert("user_settings", {"id": "s-1", "default_currency": "USD"})

        sheet.append_row.assert_called_once_with(
            ['"USD"', '"s-1"', ""],
            value_input_option="RAW",
        )

    @pytest.mark.asyncio
    async def test_update_writes_whole_row_once(self, record_store, sheet):
        sheet.get_all_values.return_value = [
            SETTINGS_HEADER,
            ['"s-0"', '"USD"', ""],
            ['"s-1"', '"USD"', '"2024-06-01"'],
        ]

        updated = await record_store.update("user_settings", "s-1", {"default_currency": "GBP"})

        sheet.update.assert_called_once_with(
            range_name="A3:C3",
            values=[['"s-1"', '"GBP"', '"2024-06-01"']],
            value_input_option="RAW",
        )
        sheet.update_cell.assert_not_called()
        assert updated["default_currency"] == "GBP"
        assert updated["id"] == "s-1"
        assert updated["updated_at"] == "2024-06-01"

    @pytest.mark.asyncio
    async def test_update_writes_ciphertext_and_iv_together(self, record_store, sheet):
        header = TABLE_COLUMNS["transactions"]
        raw = [encode_cell(f"old-{column}") for column in header]
        # Trailing empty cells come back trimmed from the API
        sheet.get_all_values.return_value = [header, raw[:-1]]
        patch = {"ciphertext": "new-ct", "iv": "new-iv"}

        await record_store.update("transactions", "old-id", patch)

        sheet.update.assert_called_once()
        kwargs = sheet.update.call_args.kwargs
        (cells,) = kwargs["values"]
        assert len(cells) == len(header)
        assert cells[header.index("ciphertext")] == '"new-ct"'
        assert cells[header.index("iv")] == '"new-iv"'
        untouched = [c for c in header if c not in patch]
        for column in untouched:
            assert cells[header.index(column)] == raw[header.index(column)]
        assert kwargs["range_name"].startswith("A2:")
        sheet.update_cell.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_api_error_is_wrapped(self, record_store, sheet):
        sheet.get_all_values.return_value = [SETTINGS_HEADER, ['"s-0"', '"USD"', ""]]
        sheet.update.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(StorageError, match="quota exceeded"):
            await record_store.update("user_settings", "s-0", {"default_currency": "GBP"})
        sheet.update_cell.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_missing_row(self, record_store, sheet):
        sheet.get_all_values.return_value = [SETTINGS_HEADER, ['"s-0"', '"USD"', ""]]

        with pytest.raises(NotFoundError):
            await record_store.update("user_settings", "nope", {"default_currency": "GBP"})
        sheet.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_unknown_column_writes_nothing(self, record_store, sheet):
        sheet.get_all_values.return_value = [SETTINGS_HEADER, ['"s-0"', '"USD"', ""]]

        with pytest.raises(StorageError):
            await record_store.update(
                "user_settings", "s-0", {"default_currency": "GBP", "colour": "red"},
            )
        sheet.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete(self, record_store, sheet):
        sheet.get_all_values.return_value = [
            SETTINGS_HEADER,
            ['"s-0"', '"USD"', ""],
            ['"s-1"', '"USD"', ""],
        ]

        await record_store.delete("user_settings", "s-1")

        sheet.delete_rows.assert_called_once_with(3)

    @pytest.mark.asyncio
    async def test_api_errors_are_wrapped(self, record_store, sheet):
        sheet.get_all_values.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(StorageError, match="quota exceeded"):
            await record_store.read_all("user_settings")


class TestAuditStorage:

    @pytest.mark.asyncio
    async def test_append_event(self, client, sheet):
        storage = GoogleSheetsAuditStorage(client=client)
        event = AuditEventBuilder.session_locked()

        assert await storage.append_event(event) is True

        row = sheet.append_row.call_args.args[0]
        assert len(row) == len(AUDIT_COLUMNS)
        assert row[2] == AuditEventType.SESSION_LOCKED.value

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self, client, sheet):
        sheet.append_row.side_effect = RuntimeError("offline")
        storage = GoogleSheetsAuditStorage(client=client)

        assert await storage.append_event(AuditEventBuilder.session_locked()) is False

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self, client, sheet):
        correlation_id = uuid4()
        wanted = AuditEventBuilder.record_saved("goals", "g-1", True, correlation_id)
        other = AuditEventBuilder.record_saved("goals", "g-2", True, uuid4())
        sheet.get_all_values.return_value = [
            AUDIT_COLUMNS,
            wanted.to_sheets_row(),
            other.to_sheets_row(),
        ]
        storage = GoogleSheetsAuditStorage(client=client)

        [event] = await storage.get_events_by_correlation_id(correlation_id)

        assert event.event_id == wanted.event_id
        assert event.entity_id == "g-1"
        assert event.details == {"encrypted": True}
