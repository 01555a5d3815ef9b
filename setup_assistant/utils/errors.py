"""
Custom Exception Classes
========================

Exception hierarchy for the intake pipeline.

File-fatal conditions (unsupported type, undecodable container, oversize
upload, vision failure, deadline) are raised and stop processing of the
current file only. Table-, row- and entity-scoped problems are collected
as error records by the stages instead of being raised.
"""

from typing import Any


class SetupAssistantError(Exception):
    """Base exception for the setup assistant service."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnsupportedFileTypeError(SetupAssistantError):
    """Raised when an upload is not a spreadsheet, CSV, PDF or image."""

    DEFAULT_MESSAGE = "Unsupported file type. Please upload XLSX, CSV, PDF, or image files."

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE, details)


class ParsingError(SetupAssistantError):
    """Raised when file parsing fails."""

    pass


class FileDecodeError(ParsingError):
    """Raised when a spreadsheet or CSV container cannot be decoded."""

    pass


class FileSizeError(SetupAssistantError):
    """Raised when a file exceeds the maximum allowed size."""

    pass


class AIServiceError(SetupAssistantError):
    """Raised when the AI document-understanding service call fails."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class RateLimitError(AIServiceError):
    """Raised when the AI service rejects a call for rate or capacity reasons."""

    pass


class AIResponseError(AIServiceError):
    """Raised when the AI service answered but no JSON object could be recovered."""

    pass


class ClassificationError(SetupAssistantError):
    """Raised when a table cannot be classified."""

    pass


class VisionExtractionError(SetupAssistantError):
    """Raised when a PDF or image cannot be turned into entities."""

    pass


class DatabaseError(SetupAssistantError):
    """Raised when database operations fail."""

    pass


class DeadlineExceededError(SetupAssistantError):
    """Raised when the request deadline elapses before a file finishes."""

    pass


class ConfigurationError(SetupAssistantError):
    """Raised when configuration is invalid."""

    pass


class ValidationError(SetupAssistantError):
    """Raised when input validation fails."""

    pass
