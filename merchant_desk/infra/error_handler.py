"""Error classification and user-facing apologies."""

import re
from typing import Optional, Tuple
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    NETWORK = "network"  # Connection issues, timeouts
    API_ERROR = "api_error"  # API returned error response
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    DATA_STORE = "data_store"  # Ledger or config store unavailable
    CONFIGURATION = "configuration"  # Unknown model, missing settings
    VALIDATION = "validation"  # Input validation errors
    UNKNOWN = "unknown"  # Unknown errors


class DeskError(Exception):
    """Base exception carrying an explicit category."""
    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        self.message = message
        self.category = category
        super().__init__(message)


class DataStoreError(DeskError):
    """A backing store could not be reached or rejected the query."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.DATA_STORE)


class ConfigurationError(DeskError):
    """Required configuration is missing or invalid."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.CONFIGURATION)


def classify_error(error: Exception) -> Tuple[ErrorCategory, Optional[float]]:
    """
    Classify an error into a category.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retry_after_seconds)
    """
    if isinstance(error, DeskError):
        return error.category, None

    error_str = str(error).lower()
    error_type = type(error).__name__

    # Rate limit errors
    if error_type == "RateLimitError" or "rate limit" in error_str or "rate_limit" in error_str or "429" in error_str:
        retry_after = None
        match = re.search(r'retry[_-]after[:\s]+(\d+)', error_str, re.IGNORECASE)
        if match:
            retry_after = float(match.group(1))
        return ErrorCategory.RATE_LIMIT, retry_after

    # Auth errors
    if error_type in ("AuthenticationError", "PermissionDeniedError") or any(
        keyword in error_str for keyword in ["unauthorized", "401", "authentication", "api_key", "api key"]
    ):
        return ErrorCategory.AUTH_ERROR, None

    # Document store errors (pymongo raises PyMongoError subclasses)
    if error_type in ("ServerSelectionTimeoutError", "PyMongoError", "OperationFailure") or "mongo" in error_str:
        return ErrorCategory.DATA_STORE, None

    # Network errors
    if error_type in ("ConnectionError", "TimeoutError", "APIConnectionError", "APITimeoutError"):
        return ErrorCategory.NETWORK, None
    if any(keyword in error_str for keyword in ["connection", "timeout", "timed out", "network", "refused"]):
        return ErrorCategory.NETWORK, None

    # Unknown model and similar configuration problems
    if error_type == "NotFoundError" or "model" in error_str or "not_found" in error_str:
        return ErrorCategory.CONFIGURATION, None

    if error_type == "ValidationError":
        return ErrorCategory.VALIDATION, None

    if error_type == "APIStatusError" or "api" in error_str or "http" in error_str:
        return ErrorCategory.API_ERROR, None

    return ErrorCategory.UNKNOWN, None


GENERIC_APOLOGY = (
    "I'm sorry, I ran into a problem while processing your request. "
    "Please try again or contact support."
)

_APOLOGIES = {
    ErrorCategory.RATE_LIMIT: "I'm receiving too many requests right now. Please try again in a moment.",
    ErrorCategory.AUTH_ERROR: "I'm experiencing an authentication issue. Please contact support.",
    ErrorCategory.CONFIGURATION: "I'm experiencing a configuration issue. Please contact support.",
    ErrorCategory.DATA_STORE: "I'm having trouble accessing the payment data. Please try again in a moment.",
    ErrorCategory.NETWORK: "I couldn't reach one of my data sources. Please try again in a moment.",
}


def user_facing_apology(category: ErrorCategory) -> str:
    """Fixed apology for a category. Never includes the raw error text."""
    return _APOLOGIES.get(category, GENERIC_APOLOGY)
