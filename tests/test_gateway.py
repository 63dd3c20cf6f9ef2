"""Tests for the JSON export/import gateway."""

import json
from datetime import datetime, timezone

import pytest

from expense_ledger.models.audit import AuditEventType
from expense_ledger.services.storage import DataImportError
from expense_ledger.transfer import ExportImportGateway, export_filename, is_json_upload

from factories import expense, income


@pytest.fixture
def gateway(storage, audit):
    return ExportImportGateway(storage, audit_logger=audit)


class TestExport:
    """Tests for exporting the ledger."""

    async def test_export_bytes(self, storage, gateway):
        """Test pretty-printed UTF-8 JSON with all three sections."""
        await storage.add_transaction(expense(description="Café"))

        payload = await gateway.export_bytes()
        document = json.loads(payload.decode("utf-8"))

        assert set(document) == {"transactions", "settings", "exportDate"}
        assert document["transactions"][0]["description"] == "Café"
        assert b'\n  "transactions"' in payload

    async def test_export_to_file(self, storage, gateway, tmp_path):
        """Test the dated backup file name and contents."""
        await storage.add_transaction(expense())
        now = datetime(2024, 1, 5, 23, 30, tzinfo=timezone.utc)

        path = await gateway.export_to_file(tmp_path / "backups", now=now)

        assert path.name == "financial_data_2024-01-05.json"
        document = json.loads(path.read_text(encoding="utf-8"))
        assert len(document["transactions"]) == 1

    def test_export_filename(self):
        """Test the file name uses the UTC day."""
        now = datetime(2024, 2, 29, 8, 0, tzinfo=timezone.utc)
        assert export_filename(now) == "financial_data_2024-02-29.json"


class TestImport:
    """Tests for importing a backup."""

    async def test_round_trip(self, storage, gateway, make_storage):
        """Test that export then import reproduces the ledger."""
        await storage.add_transaction(expense())
        await storage.add_transaction(income())
        payload = await gateway.export_bytes()

        target = make_storage()
        result = await ExportImportGateway(target).import_text(payload)

        assert result.success is True
        assert result.message == "Data imported successfully"
        assert result.transaction_count == 2
        assert result.settings_replaced is True
        assert await target.list_transactions() == await storage.list_transactions()

    async def test_invalid_json(self, storage, gateway, audit):
        """Test that non-JSON input fails and leaves the ledger alone."""
        added = await storage.add_transaction(expense())

        with pytest.raises(DataImportError, match="invalid JSON"):
            await gateway.import_text("{not json")

        assert await storage.list_transactions() == [added]
        assert AuditEventType.IMPORT_FAILED in audit.event_types

    async def test_wrong_shape(self, storage, gateway):
        """Test that a JSON document without a transactions array fails."""
        with pytest.raises(DataImportError):
            await gateway.import_text('{"transactions": "not-an-array"}')

    async def test_import_file(self, storage, gateway, tmp_path):
        """Test importing a backup file from disk."""
        await storage.add_transaction(expense())
        path = await gateway.export_to_file(tmp_path)
        await storage.clear_data()

        result = await gateway.import_file(path)

        assert result.transaction_count == 1
        assert len(await storage.list_transactions()) == 1

    async def test_import_file_requires_json_extension(self, gateway, tmp_path):
        """Test that other file types are rejected."""
        path = tmp_path / "export.csv"
        path.write_text("id,amount\n", encoding="utf-8")
        with pytest.raises(DataImportError, match="JSON file"):
            await gateway.import_file(path)

    async def test_import_missing_file(self, gateway, tmp_path):
        """Test that an unreadable file raises DataImportError."""
        with pytest.raises(DataImportError):
            await gateway.import_file(tmp_path / "missing.json")

    async def test_import_upload_by_mime_type(self, storage, gateway):
        """Test that a JSON mime type is enough."""
        payload = json.dumps({"transactions": []}).encode("utf-8")
        result = await gateway.import_upload(payload, filename="backup.txt", mime_type="application/json")
        assert result.transaction_count == 0

    async def test_import_upload_rejects_other_types(self, gateway):
        """Test that a non-JSON upload is refused."""
        with pytest.raises(DataImportError):
            await gateway.import_upload(b"a,b", filename="data.csv", mime_type="text/csv")


class TestUploadGate:
    """Tests for the JSON upload check."""

    @pytest.mark.parametrize("filename,mime_type,expected", [
        ("backup.json", None, True),
        ("BACKUP.JSON", None, True),
        ("backup.txt", "application/json; charset=utf-8", True),
        (None, "application/json", True),
        ("backup.txt", "text/plain", False),
        (None, None, False),
    ])
    def test_is_json_upload(self, filename, mime_type, expected):
        """Test extension and mime type rules."""
        assert is_json_upload(filename, mime_type) is expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
