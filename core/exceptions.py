"""
Custom exceptions for the ingestion engine with structured error context.

Every fatal error carries the source name and the actionable detail
(collaborator name, bind variable, HTTP status, SQL file) in its context
so the host can log it or persist it as-is.

Exception Hierarchy:
    IngestionException (base)
    ├── ConfigurationError
    │   ├── SqlFileError
    │   └── CollaboratorNotFoundError
    ├── MissingVariableError
    ├── ExtractionError
    │   ├── FileReadError
    │   ├── QueryError
    │   └── ProtocolError
    │       ├── TransientProtocolError
    │       └── ProtocolFaultError
    │           └── SoapFaultError
    ├── LoadError
    │   ├── RowWriteError
    │   ├── SkipLimitExceededError
    │   └── RecordValidationError
    ├── TaskError
    └── RetryableError / NonRetryableError (mixins)

ConversionWarning is a UserWarning, not an exception: a value that cannot
be converted is kept raw and the run continues.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone


class IngestionException(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, file, status, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    @property
    def source_name(self) -> Optional[str]:
        return self.context.get("source_name")

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionException):
    """
    Mixin for errors caused by a transient condition.

    Use this for:
    - Network timeouts and connection resets
    - Rate limiting (HTTP 429)
    - Service unavailable / gateway timeout (HTTP 503, 504)
    """
    pass


class NonRetryableError(IngestionException):
    """
    Mixin for errors that will not go away by retrying.

    Use this for:
    - Authentication failures (HTTP 401, 403)
    - SOAP faults
    - Malformed response bodies
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Raised when a source descriptor or its wiring is invalid.

    Always raised before any I/O happens against the source.

    Context should include:
        - source_name: Name of the source being configured
        - fields: Failing field paths (for descriptor validation)
    """
    pass


class SqlFileError(ConfigurationError):
    """
    Raised when a SQL statement file is missing, unreadable or empty.

    Context should include:
        - sql_directory: Directory searched
        - sql_file: File name requested
    """
    pass


class CollaboratorNotFoundError(ConfigurationError):
    """
    Raised when a mandatory named collaborator is absent from the registry.

    Context should include:
        - collaborator: The name that was looked up
        - capability: processor, writer, task or engine
    """
    pass


# ============================================================================
# Variable Resolution
# ============================================================================

class MissingVariableError(IngestionException):
    """
    Raised when a `:bind` or `${ENV}` placeholder has no value.

    Attributes:
        name: The identifier that could not be resolved
        kind: "bind" or "env"
        available: Names that were available for bind placeholders
    """

    def __init__(
        self,
        message: str,
        name: str,
        kind: str,
        available: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.name = name
        self.kind = kind
        self.available = sorted(available or [])
        self.context.setdefault("variable", name)
        self.context.setdefault("kind", kind)


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(IngestionException):
    """Base exception for reader failures."""
    pass


class FileReadError(ExtractionError):
    """
    Raised when a delimited file cannot be opened or parsed.

    Context should include:
        - file_path: Path to the file
    """
    pass


class QueryError(ExtractionError):
    """
    Raised when a query cannot be executed or streamed.

    Context should include:
        - sql_file: Statement file that was executed
    """
    pass


class ProtocolError(ExtractionError):
    """Base exception for HTTP and SOAP call failures."""
    pass


class TransientProtocolError(RetryableError, ProtocolError):
    """
    Raised when a retryable failure outlived the retry budget.

    Context should include:
        - url: Endpoint that failed
        - status_code: Last HTTP status (absent for transport failures)
        - attempts: Number of calls made
    """
    pass


class ProtocolFaultError(NonRetryableError, ProtocolError):
    """
    Raised for non-retryable protocol failures.

    Covers non-2xx responses outside the retryable set, malformed
    JSON/XML bodies and empty responses.
    """
    pass


class SoapFaultError(ProtocolFaultError):
    """
    Raised when a SOAP response carries a Fault element.

    Context should include:
        - endpoint: SOAP endpoint
        - fault_string: Text of faultstring (1.1) or Reason/Text (1.2)
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(IngestionException):
    """Base exception for writer failures."""
    pass


class RowWriteError(LoadError):
    """
    Raised when one or more records of a chunk could not be written.

    Context should include:
        - source_name: Source being written
        - chunk_size: Number of records in the failed write
    """
    pass


class SkipLimitExceededError(LoadError):
    """
    Raised when a SKIP policy sees more row failures than allowed.

    Context should include:
        - skip_limit: Configured limit
        - skipped: Number of records skipped so far
    """
    pass


class RecordValidationError(LoadError):
    """
    Raised when a record misses a value for a required column.

    Context should include:
        - column: Name of the required column
    """
    pass


# ============================================================================
# Tasks
# ============================================================================

class TaskError(IngestionException):
    """
    Raised when a pre/post processing task fails.

    Context should include:
        - phase: preprocessing or postprocessing
        - statement_index: Index of the failing statement (SQL mode)
    """
    pass


# ============================================================================
# Warnings
# ============================================================================

class ConversionWarning(UserWarning):
    """Emitted when a raw value cannot be converted to its declared type."""
    pass
