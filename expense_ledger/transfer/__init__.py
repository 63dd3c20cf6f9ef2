"""JSON export and import of the whole ledger."""

from expense_ledger.transfer.gateway import (
    ExportImportGateway,
    export_filename,
    is_json_upload,
)

__all__ = [
    "ExportImportGateway",
    "export_filename",
    "is_json_upload",
]
