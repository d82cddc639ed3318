"""Importer package housing the catalog CSV import pipeline."""

from .catalog_importer import CatalogImporter, RollbackOp
from ._csv_parser import parse_upload
from ._undo import record_import, undo_import
from ._validation import ValidationIssue, ValidationReport, validate

__all__ = [
    "CatalogImporter",
    "RollbackOp",
    "ValidationIssue",
    "ValidationReport",
    "parse_upload",
    "record_import",
    "undo_import",
    "validate",
]
