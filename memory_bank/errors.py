"""Error kinds surfaced by memory-bank operations."""

from __future__ import annotations

from enum import Enum


class MemoryBankError(Exception):
    """Base class for all memory-bank errors."""


class ValidationError(MemoryBankError):
    """Unrecognized kind, direction or malformed batch input. Never retried."""


class StoreUnavailableError(MemoryBankError):
    """The vector store could not be reached or rejected the operation."""


class ErrorCategory(str, Enum):
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    QUOTA_ERROR = "QUOTA_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ThirdPartyCallError(MemoryBankError):
    """A call to an embedding or completion service failed.

    The message is what `retry.categorize_error` inspects, so wrappers should
    keep the upstream wording (status text, "timeout", "quota", ...) in it.
    """

    def __init__(self, message: str, category: ErrorCategory | None = None) -> None:
        super().__init__(message)
        self.category = category
