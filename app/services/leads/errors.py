"""Shared error classes for lead ingestion, matching and reporting."""

from __future__ import annotations


class LeadServiceError(RuntimeError):
    """Base exception raised by the lead services.

    ``detail`` carries the raw underlying error text; API handlers only expose
    it outside production.
    """

    def __init__(
        self, message: str, code: str = "500_INTERNAL", *, detail: str | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail


class UploadValidationError(LeadServiceError):
    """Raised when an upload request does not carry exactly one spreadsheet."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message, code="400_INVALID_UPLOAD", detail=detail)


class WorkbookReadError(LeadServiceError):
    """Raised when the uploaded workbook is unreadable or has no data rows."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message, code="400_UNREADABLE_WORKBOOK", detail=detail)


class UploadBatchNotFoundError(LeadServiceError):
    """Raised when an upload history record does not exist."""

    def __init__(self, batch_id: object) -> None:
        super().__init__("Upload history not found", code="404_BATCH_NOT_FOUND")
        self.batch_id = batch_id


class LeadPersistenceError(LeadServiceError):
    """Raised when the lead store fails to save or retrieve records."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message, code="500_LEAD_STORE", detail=detail)


class CustomerStoreError(LeadServiceError):
    """Raised when the read-only customer database cannot be queried."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message, code="503_CUSTOMER_STORE", detail=detail)
