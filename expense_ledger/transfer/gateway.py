"""
Export/Import Gateway

Bridges a transaction store and the outside world: JSON bytes, backup
files on disk and uploaded files.

DESIGN DECISION: Every import path (text, file, upload) converges on
import_text, which parses the JSON and hands the document to the store's
import_all. The store owns the all-or-nothing guarantee; the gateway only
rejects input that is not JSON in the first place.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import structlog

from expense_ledger.audit import AuditLogger, default_audit_logger
from expense_ledger.models.analytics import ImportResult
from expense_ledger.services.storage.interface import (
    DataImportError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

JSON_MIME_TYPE = "application/json"
EXPORT_FILENAME_TEMPLATE = "financial_data_{date}.json"


def export_filename(now: Optional[datetime] = None) -> str:
    """financial_data_YYYY-MM-DD.json for the given (UTC) day."""
    now = now or datetime.now(timezone.utc)
    return EXPORT_FILENAME_TEMPLATE.format(date=now.astimezone(timezone.utc).strftime("%Y-%m-%d"))


def is_json_upload(filename: Optional[str], mime_type: Optional[str]) -> bool:
    """Accept a file if its extension is .json or its type is application/json."""
    if filename and Path(filename).suffix.lower() == ".json":
        return True
    if mime_type and mime_type.split(";")[0].strip().lower() == JSON_MIME_TYPE:
        return True
    return False


class ExportImportGateway:
    """Serializes a store to a JSON document and restores it."""

    def __init__(
        self,
        storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or default_audit_logger

    async def export_bytes(self) -> bytes:
        """The whole ledger as pretty-printed (indent 2) UTF-8 JSON."""
        document = await self._storage.export_all()
        return document.to_json(indent=2).encode("utf-8")

    async def export_to_file(
        self,
        directory: Union[str, Path],
        now: Optional[datetime] = None,
    ) -> Path:
        """
        Write a dated backup file into `directory`.

        Returns:
            Path of the written financial_data_YYYY-MM-DD.json file
        """
        payload = await self.export_bytes()
        path = Path(directory) / export_filename(now)
        await asyncio.to_thread(_write_bytes, path, payload)
        logger.info("export_written", path=str(path), size=len(payload))
        return path

    async def import_text(self, content: Union[str, bytes]) -> ImportResult:
        """
        Parse a JSON document and import it into the store.

        Raises:
            DataImportError: If the content is not JSON or not a valid ledger document
        """
        try:
            if isinstance(content, bytes):
                content = content.decode("utf-8")
            data = json.loads(content)
        except (UnicodeDecodeError, ValueError) as e:
            self._audit.log_import_failed(f"Invalid JSON: {e}")
            raise DataImportError(f"Failed to import data: invalid JSON ({e})") from e

        document = await self._storage.import_all(data)
        return ImportResult(
            success=True,
            message="Data imported successfully",
            transaction_count=len(document.transactions),
            settings_replaced=document.settings is not None,
        )

    async def import_file(self, path: Union[str, Path]) -> ImportResult:
        """
        Import a backup file from disk.

        Raises:
            DataImportError: If the file is not a .json file or cannot be read
        """
        path = Path(path)
        if not is_json_upload(path.name, None):
            raise DataImportError(f"Please select a JSON file (got {path.name})")
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            self._audit.log_import_failed(str(e))
            raise DataImportError(f"Failed to read {path}: {e}") from e
        return await self.import_text(content)

    async def import_upload(
        self,
        data: bytes,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ImportResult:
        """
        Import an uploaded (or dropped) file.

        Raises:
            DataImportError: If the upload is not JSON by name or type
        """
        if not is_json_upload(filename, mime_type):
            raise DataImportError("Please select a JSON file")
        return await self.import_text(data)


def _write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
