"""
Tests for LocalTransactionStorage over the memory and JSON file backends.

No network and no real user data: every test builds its own backend.
"""

import asyncio
import json

import pytest

from expense_ledger.models.audit import AuditEventType
from expense_ledger.models.transaction import LedgerDocument, Theme
from expense_ledger.services.storage import (
    DataImportError,
    DuplicateError,
    JsonFileBackend,
    MemoryBackend,
    NotFoundError,
    PersistenceError,
    TransactionValidationError,
    UnauthorizedError,
    ValidationFailedError,
)
from expense_ledger.validation import AMOUNT_ERROR

from factories import FailingBackend, expense, income


class TestAddAndList:
    """Tests for adding and listing transactions."""

    async def test_add_then_list_returns_record(self, storage):
        """Test that an added record comes back with generated id and timestamp."""
        record = expense(description="Groceries")

        added = await storage.add_transaction(record)
        listed = await storage.list_transactions()

        assert listed == [added]
        stored = listed[0].to_record()
        assert stored["id"]
        assert stored["timestamp"]
        assert stored["userId"] == "tester"
        for key, value in record.items():
            assert stored[key] == value

    async def test_list_keeps_insertion_order(self, storage):
        """Test that transactions are listed in the order they were added."""
        first = await storage.add_transaction(expense(category="Food"))
        second = await storage.add_transaction(income())
        third = await storage.add_transaction(expense(category="Housing"))

        ids = [t.id for t in await storage.list_transactions()]
        assert ids == [first.id, second.id, third.id]

    async def test_list_filters_by_user(self, storage):
        """Test filtering the collection by owner."""
        await storage.add_transaction(expense(userId="alice"))
        await storage.add_transaction(expense(userId="bob"))

        owned = await storage.list_transactions("alice")
        assert [t.user_id for t in owned] == ["alice"]

    @pytest.mark.parametrize("amount", [0, -10, "abc"])
    async def test_invalid_amount_is_rejected(self, storage, audit, amount):
        """Test that invalid amounts raise and leave the store empty."""
        with pytest.raises(TransactionValidationError) as exc_info:
            await storage.add_transaction(expense(amount=amount))

        assert exc_info.value.errors["amount"] == AMOUNT_ERROR
        assert await storage.list_transactions() == []
        assert AuditEventType.VALIDATION_FAILED in audit.event_types

    async def test_explicit_duplicate_id(self, storage):
        """Test that re-using an id is rejected."""
        await storage.add_transaction(expense(id="fixed-id"))
        with pytest.raises(DuplicateError):
            await storage.add_transaction(expense(id="fixed-id"))
        assert len(await storage.list_transactions()) == 1

    async def test_get_transaction(self, storage):
        """Test lookup by id."""
        added = await storage.add_transaction(expense())
        assert await storage.get_transaction(added.id) == added
        assert await storage.get_transaction("missing") is None

    async def test_concurrent_adds_are_not_lost(self, storage):
        """Test that parallel adds all land in the collection."""
        await asyncio.gather(*(
            storage.add_transaction(expense(amount=i + 1)) for i in range(20)
        ))
        assert len(await storage.list_transactions()) == 20

    async def test_audit_event_on_add(self, storage, audit):
        """Test that a successful add is audited."""
        added = await storage.add_transaction(expense())
        event = audit.events[-1]
        assert event.event_type == AuditEventType.TRANSACTION_ADDED
        assert event.entity_id == added.id


class TestUpdateAndDelete:
    """Tests for updating and deleting transactions."""

    async def test_update_merges_patch(self, storage):
        """Test a shallow merge that keeps the id and sets lastModified."""
        added = await storage.add_transaction(expense(description="Lunch"))

        updated = await storage.update_transaction(added.id, {"amount": 250, "id": "other"})

        assert updated.id == added.id
        assert updated.amount == 250
        assert updated.description == "Lunch"
        assert updated.last_modified is not None
        assert await storage.get_transaction(added.id) == updated

    async def test_update_missing(self, storage):
        """Test that updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await storage.update_transaction("missing", {"amount": 5})

    async def test_invalid_update_leaves_record(self, storage):
        """Test that a patch failing validation changes nothing."""
        added = await storage.add_transaction(expense())
        with pytest.raises(TransactionValidationError):
            await storage.update_transaction(added.id, {"type": "gift"})
        assert await storage.get_transaction(added.id) == added

    async def test_delete(self, storage, audit):
        """Test removing a transaction."""
        added = await storage.add_transaction(expense())
        await storage.delete_transaction(added.id)
        assert await storage.list_transactions() == []
        assert audit.event_types[-1] == AuditEventType.TRANSACTION_DELETED

    async def test_delete_missing(self, storage):
        """Test that deleting an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await storage.delete_transaction("missing")

    async def test_ownership_enforced_in_multi_user_mode(self, make_storage, audit):
        """Test that another user cannot modify a transaction."""
        storage = make_storage(username="alice", multi_user=True)
        added = await storage.add_transaction(expense())

        with pytest.raises(UnauthorizedError):
            await storage.update_transaction(added.id, {"amount": 1}, acting_user_id="bob")
        with pytest.raises(UnauthorizedError):
            await storage.delete_transaction(added.id, acting_user_id="bob")

        assert AuditEventType.UNAUTHORIZED_ACCESS in audit.event_types
        assert await storage.get_transaction(added.id) == added

    async def test_ownership_ignored_in_single_user_mode(self, storage):
        """Test that ownership is not checked by default."""
        added = await storage.add_transaction(expense(userId="alice"))
        updated = await storage.update_transaction(added.id, {"amount": 1}, acting_user_id="bob")
        assert updated.user_id == "alice"


class TestSettings:
    """Tests for user settings."""

    async def test_defaults_on_first_access(self, storage, backend):
        """Test that settings are created with defaults and persisted."""
        settings = await storage.get_settings()
        assert settings.monthly_budget == 0
        assert settings.theme == Theme.LIGHT
        assert settings.currency == "ALL"
        assert settings.notifications is True
        assert "settings" in backend.keys()

    async def test_update_is_shallow_merge(self, storage):
        """Test that an update keeps the keys it does not mention."""
        await storage.update_settings({"theme": "dark"})
        settings = await storage.update_settings({"monthlyBudget": 50000})
        assert settings.theme == Theme.DARK
        assert settings.monthly_budget == 50000

    async def test_invalid_settings(self, storage):
        """Test that invalid settings are rejected."""
        with pytest.raises(ValidationFailedError):
            await storage.update_settings({"theme": "neon"})
        assert (await storage.get_settings()).theme == Theme.LIGHT


class TestImportExport:
    """Tests for export_all, import_all and clear_data."""

    async def test_round_trip(self, storage, make_storage):
        """Test that export then import reproduces the state."""
        await storage.add_transaction(expense())
        await storage.add_transaction(income())
        await storage.update_settings({"currency": "EUR"})

        document = await storage.export_all()
        target = make_storage()
        await target.import_all(json.loads(document.to_json()))

        assert await target.list_transactions() == await storage.list_transactions()
        assert await target.get_settings() == await storage.get_settings()

    async def test_import_replaces_collection(self, storage):
        """Test that an import replaces, not merges."""
        await storage.add_transaction(expense())
        imported = await storage.export_all()

        await storage.add_transaction(expense(amount=5))
        await storage.import_all(imported)

        assert len(await storage.list_transactions()) == 1

    async def test_transactions_not_an_array(self, storage, audit):
        """Test that a non-array transactions field fails and changes nothing."""
        await storage.add_transaction(expense())
        before = await storage.export_all()

        with pytest.raises(DataImportError):
            await storage.import_all({"transactions": "not-an-array"})

        assert await storage.list_transactions() == before.transactions
        assert AuditEventType.IMPORT_FAILED in audit.event_types

    async def test_invalid_entry_rejects_whole_import(self, storage):
        """Test that one bad transaction rejects the whole document."""
        good = (await storage.add_transaction(expense())).to_record()
        bad = dict(good, id="bad", amount=-1)

        with pytest.raises(DataImportError, match="index 1"):
            await storage.import_all({"transactions": [dict(good, id="new"), bad]})

        assert [t.id for t in await storage.list_transactions()] == [good["id"]]

    async def test_duplicate_ids_in_import(self, storage):
        """Test that a document with repeated ids is rejected."""
        record = (await storage.add_transaction(expense())).to_record()
        with pytest.raises(DataImportError, match="Duplicate"):
            await storage.import_all({"transactions": [record, record]})

    async def test_import_rejects_impossible_date(self, storage):
        """Test that a well-formed but non-existent date fails the import."""
        record = (await storage.add_transaction(expense())).to_record()
        bad = dict(record, id="feb30", date="2024-02-30T10:00:00.000Z")

        with pytest.raises(DataImportError, match="index 0"):
            await storage.import_all({"transactions": [bad]})

        assert [t.id for t in await storage.list_transactions()] == [record["id"]]

    async def test_import_requires_owner(self, storage):
        """Test that entries must carry every required field, userId included."""
        record = (await storage.add_transaction(expense())).to_record()
        orphan = {k: v for k, v in record.items() if k != "userId"}

        with pytest.raises(DataImportError, match="userId"):
            await storage.import_all({"transactions": [dict(orphan, id="orphan")]})

        assert [t.id for t in await storage.list_transactions()] == [record["id"]]

    async def test_imported_records_stay_editable(self, storage):
        """Test that an imported record can be updated and aggregated."""
        record = (await storage.add_transaction(expense())).to_record()
        await storage.import_all({"transactions": [dict(record, id="copy")]})

        updated = await storage.update_transaction("copy", {"description": "edited"})

        assert updated.description == "edited"
        assert updated.occurred_at.year == 2024

    async def test_import_without_settings_keeps_settings(self, storage):
        """Test that settings are only replaced when present."""
        await storage.update_settings({"currency": "USD"})
        await storage.import_all({"transactions": []})
        assert (await storage.get_settings()).currency == "USD"

    async def test_clear_data(self, storage, audit):
        """Test that clearing empties the ledger and resets settings."""
        await storage.add_transaction(expense())
        await storage.update_settings({"theme": "dark"})

        await storage.clear_data()

        assert await storage.list_transactions() == []
        assert (await storage.get_settings()).theme == Theme.LIGHT
        assert audit.event_types[-1] == AuditEventType.DATA_CLEARED

    async def test_export_document(self, storage):
        """Test the exported document shape."""
        await storage.add_transaction(expense())
        document = await storage.export_all()
        assert isinstance(document, LedgerDocument)
        data = document.to_dict()
        assert set(data) == {"transactions", "settings", "exportDate"}


class TestPersistence:
    """Tests for backends, namespacing, rollback and backups."""

    async def test_state_survives_new_instance(self, make_storage, backend):
        """Test that a second store over the same backend sees the data."""
        added = await make_storage(backend).add_transaction(expense())
        assert await make_storage(backend).list_transactions() == [added]

    async def test_username_namespaces_keys(self, make_storage, backend):
        """Test that collections are stored per user."""
        alice = make_storage(backend, username="alice")
        await alice.add_transaction(expense())

        assert "alice_transactions" in backend.keys()
        assert await make_storage(backend, username="bob").list_transactions() == []

    async def test_switch_user(self, make_storage, backend):
        """Test that switching user reloads the other namespace."""
        storage = make_storage(backend, username="alice")
        await storage.add_transaction(expense())

        await storage.set_current_user("bob")

        assert storage.current_user_id == "bob"
        assert await storage.list_transactions() == []

    async def test_quota_exceeded_rolls_back(self, make_storage):
        """Test that a failed flush raises and restores the previous state."""
        storage = make_storage(MemoryBackend(quota_bytes=400))
        await storage.add_transaction(expense(description="short"))

        with pytest.raises(PersistenceError, match="quota"):
            await storage.add_transaction(expense(description="x" * 900))

        assert len(await storage.list_transactions()) == 1

    async def test_backup_failure_is_not_raised(self, make_storage, audit):
        """Test that a failing backup only logs."""
        storage = make_storage(MemoryBackend(), backup=FailingBackend())

        added = await storage.add_transaction(expense())

        assert await storage.list_transactions() == [added]
        assert AuditEventType.BACKUP_FAILED in audit.event_types

    async def test_backup_receives_writes(self, make_storage):
        """Test that the backup mirrors the primary."""
        backup = MemoryBackend()
        storage = make_storage(MemoryBackend(), backup=backup)
        added = await storage.add_transaction(expense())

        assert await backup.load("transactions") == [added.to_record()]

    async def test_restore_from_backup(self, make_storage):
        """Test that an empty primary falls back to the backup copy."""
        backup = MemoryBackend()
        added = await make_storage(MemoryBackend(), backup=backup).add_transaction(expense())

        restored = make_storage(MemoryBackend(), backup=backup)
        assert await restored.list_transactions() == [added]

    async def test_primary_failure_raises(self, make_storage):
        """Test that a failing primary surfaces as PersistenceError."""
        primary = FailingBackend(failing=False)
        storage = make_storage(primary)
        await storage.list_transactions()

        primary.failing = True
        with pytest.raises(PersistenceError):
            await storage.add_transaction(expense())

        primary.failing = False
        assert await storage.list_transactions() == []


class TestJsonFileBackend:
    """Tests for the JSON file backend."""

    async def test_writes_one_file_per_collection(self, make_storage, tmp_path):
        """Test the on-disk layout."""
        storage = make_storage(JsonFileBackend(tmp_path))
        added = await storage.add_transaction(expense())

        stored = json.loads((tmp_path / "transactions.json").read_text(encoding="utf-8"))
        assert stored == [added.to_record()]
        assert (tmp_path / "settings.json").exists()

    async def test_reload_from_disk(self, make_storage, tmp_path):
        """Test that a new store reads what the previous one wrote."""
        added = await make_storage(JsonFileBackend(tmp_path)).add_transaction(expense())
        assert await make_storage(JsonFileBackend(tmp_path)).list_transactions() == [added]

    async def test_corrupt_file(self, make_storage, tmp_path):
        """Test that unreadable JSON raises PersistenceError."""
        (tmp_path / "transactions.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await make_storage(JsonFileBackend(tmp_path)).list_transactions()

    async def test_corrupt_collection(self, make_storage, tmp_path):
        """Test that a well-formed but invalid collection raises PersistenceError."""
        (tmp_path / "transactions.json").write_text('{"a": 1}', encoding="utf-8")
        with pytest.raises(PersistenceError, match="corrupt"):
            await make_storage(JsonFileBackend(tmp_path)).list_transactions()

    def test_key_is_sanitized(self, tmp_path):
        """Test that keys cannot escape the directory."""
        path = JsonFileBackend(tmp_path).path_for("../evil/key")
        assert path.parent == tmp_path


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
