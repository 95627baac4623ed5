"""Common exceptions for all client modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.models.work_item import Attachment


class ClientError(Exception):
    """Base exception for all client errors."""


class ClientConnectionError(ClientError):
    """Error when connection to a service fails."""


class AuthenticationError(ClientError):
    """Error when authentication fails."""


class RecordNotFoundError(ClientError):
    """Error when a record is not found."""


class ApiError(ClientError):
    """General API error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize an API error with the HTTP status code when known."""
        super().__init__(message)
        self.status_code = status_code


class FieldNotFoundError(ClientError):
    """Error when a field reference name does not exist on the work item type."""


class FileAttachmentError(ClientError):
    """The destination rejected a single attachment (size, type, upload failure).

    The rejected attachment is kept on the exception so the caller can strip it
    from the work item and save again.
    """

    def __init__(self, message: str, source_attachment: Attachment) -> None:
        """Initialize the error with the attachment that was rejected."""
        super().__init__(message)
        self.source_attachment = source_attachment
