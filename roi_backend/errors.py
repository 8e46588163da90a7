"""Error taxonomy shared by the record services and the HTTP layer."""

from typing import Optional


class RoiBackendError(Exception):
    """Base class for errors raised by the ROI backend services."""


class RecordValidationError(RoiBackendError, ValueError):
    """An input field is missing or outside its domain. Raised before any write."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class RecordNotFoundError(RoiBackendError, LookupError):
    """An operation referenced an agent or study id that does not exist."""

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id} not found")


class StorageError(RoiBackendError):
    """The record store failed. Never retried by the services."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
