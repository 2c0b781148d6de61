"""
RedZone Custom Exceptions
=========================

Custom exception hierarchy for the RedZone ingestion core with error codes,
context information, and operator-friendly error messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Feed fetch errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_ERROR = "F005"

    # Item processing errors (P001-P099)
    ITEM_REJECTED = "P001"

    # Tagging errors (T001-T099)
    TAG_DICTIONARY_NOT_LOADED = "T001"
    TAG_PATTERN_INVALID = "T002"

    # Resource management errors (R001-R099)
    DUPLICATE_RESOURCE = "R001"
    RESOURCE_NOT_FOUND = "R002"


class RedZoneError(Exception):
    """Base exception for all RedZone errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize RedZone error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Operator-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.message,
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(RedZoneError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class DatabaseError(RedZoneError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.pop("user_message", "Database operation failed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class FeedFetchError(RedZoneError):
    """A feed could not be retrieved or parsed.

    Covers network failures, timeouts, non-2xx responses and malformed
    documents alike. Whether to retry is decided by the caller.
    """

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url
        self.feed_url = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", f"Feed fetch failed: {message}"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class ItemRejectedError(RedZoneError):
    """A single feed item cannot be turned into content."""

    def __init__(self, message: str, source_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if source_id:
            context["source_id"] = source_id

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.ITEM_REJECTED),
            context=context,
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class TagDictionaryNotLoadedError(RedZoneError):
    """Tag matching was requested before the dictionary was loaded."""

    def __init__(self, message: str = "Tag dictionary not loaded. Call load_dictionary() first.", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.TAG_DICTIONARY_NOT_LOADED,
            recoverable=False,
            **kwargs,
        )


class SourceNotFoundError(RedZoneError):
    """Requested source does not exist."""

    def __init__(self, source_id: str, **kwargs):
        self.source_id = source_id
        super().__init__(
            message=f"Source {source_id} not found",
            error_code=ErrorCode.RESOURCE_NOT_FOUND,
            context={"source_id": source_id},
            recoverable=False,
            **kwargs,
        )


def truncate_error_message(error: BaseException, max_length: int = 1000) -> str:
    """Render an exception as text bounded to ``max_length`` characters."""
    message = error.message if isinstance(error, RedZoneError) else str(error)
    if not message:
        message = error.__class__.__name__
    return message[:max_length]
