"""Exceptions raised by the catalog import pipeline."""


class CatalogImportError(Exception):
    """Base class for catalog import failures."""


class ImportFileError(CatalogImportError):
    """The upload itself is unusable: missing buffer, ZIP archive, bad CSV or JSON cell."""


class ImportValidationError(CatalogImportError):
    """
    The batch cannot be saved: rows failed validation, or a row references a
    parent that is neither in this import nor already persisted.

    `issues` holds the row-level ValidationIssue list when the pre-save
    validation pass rejected the batch.
    """

    def __init__(self, message, issues=None):
        super().__init__(message)
        self.issues = list(issues or [])
