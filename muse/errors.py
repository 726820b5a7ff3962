"""Error taxonomy and categorized error logging."""

from enum import Enum

from loguru import logger


class ErrorCategory(Enum):
    """Categories of errors for tracking and analysis."""

    # Cache-related errors (always degrade to a miss)
    CACHE_READ = "cache_read"
    CACHE_WRITE = "cache_write"

    # Upstream dependencies on the critical path
    EMBEDDING_ERROR = "embedding_error"
    SIMILARITY_ERROR = "similarity_error"
    DOCUMENT_STORE = "document_store"
    LLM_API_ERROR = "llm_api_error"
    LLM_TIMEOUT = "llm_timeout"

    # Budget / format errors
    TOOL_VALIDATION = "tool_validation"
    TOOL_NOT_FOUND = "tool_not_found"

    # Other
    UNKNOWN = "unknown"


class MuseError(Exception):
    """Base class for all muse errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN


class UpstreamError(MuseError):
    """An external dependency failed on the critical path.

    Surfaced to the caller as a terminal error; never silently swallowed.
    """

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.category = category


class ExternalTimeoutError(UpstreamError):
    """An external call did not complete within its bounded wait."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:.1f}s", ErrorCategory.LLM_TIMEOUT)
        self.operation = operation
        self.timeout = timeout


class ToolInputError(MuseError):
    """A tool invocation carried malformed or incomplete input."""

    category = ErrorCategory.TOOL_VALIDATION


def log_error(
    category: ErrorCategory,
    error_message: str,
    severity: str = "error",
) -> None:
    """
    Log an error tagged with its category.

    Args:
        category: The error category for grouping.
        error_message: Human-readable error message.
        severity: "critical", "error", "warning", "info".
    """
    if severity == "critical":
        logger.critical(f"[{category.value}] {error_message}")
    elif severity == "error":
        logger.error(f"[{category.value}] {error_message}")
    elif severity == "warning":
        logger.warning(f"[{category.value}] {error_message}")
    else:
        logger.info(f"[{category.value}] {error_message}")
