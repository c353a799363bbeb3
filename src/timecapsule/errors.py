"""
Exception hierarchy for Time Capsule.

All Time Capsule exceptions inherit from TimeCapsuleError, allowing callers to
catch every library error with a single except clause.

Exception Categories:
    - LedgerError: Store lifecycle, authorization and time-lock failures
    - CodecError: Hex decoding and encryption/decryption failures
    - BlobStoreError: Attachment storage failures
    - ConfigError: Invalid configuration files
    - StorageError: Database operation failed

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (capsule id, caller, times where applicable)
    - All errors provide actionable suggestions where possible
    - Errors are designed to be both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Ledger errors: 1xxx
ERROR_LEDGER_NOT_INITIALIZED = 1001
ERROR_LEDGER_ALREADY_INITIALIZED = 1002
ERROR_LEDGER_UNAUTHORIZED = 1003
ERROR_LEDGER_UNLOCK_NOT_FUTURE = 1004
ERROR_LEDGER_NOT_FOUND = 1005
ERROR_LEDGER_LOCKED = 1006

# Codec errors: 2xxx
ERROR_CODEC_INVALID_ENCODING = 2001
ERROR_CODEC_DECRYPTION_FAILED = 2002
ERROR_CODEC_ENCRYPTION_FAILED = 2003

# Blob store errors: 3xxx
ERROR_BLOB_NOT_FOUND = 3001
ERROR_BLOB_STORE = 3002

# Config errors: 4xxx
ERROR_CONFIG_INVALID = 4001

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003
ERROR_STORAGE_INTEGRITY = 5004


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class TimeCapsuleError(Exception):
    """
    Base exception for all Time Capsule errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Ledger Errors
# =============================================================================


@dataclass
class LedgerError(TimeCapsuleError):
    """
    Base class for capsule ledger errors.

    Attributes:
        operation: The ledger operation that failed (e.g., "create_capsule")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class NotInitializedError(LedgerError):
    """Raised when a ledger operation runs before init_storage."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Capsule storage has not been initialized"
        if self.code == 0:
            self.code = ERROR_LEDGER_NOT_INITIALIZED
        if not self.suggestion:
            self.suggestion = "Run init_storage as the ledger owner first"
        super().__post_init__()


@dataclass
class AlreadyInitializedError(LedgerError):
    """Raised when init_storage is called a second time."""

    owner: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Capsule storage already initialized for {self.owner}"
        if self.code == 0:
            self.code = ERROR_LEDGER_ALREADY_INITIALIZED
        super().__post_init__()
        self.context["owner"] = self.owner


@dataclass
class UnauthorizedError(LedgerError):
    """Raised when the caller lacks rights for an operation."""

    caller: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Caller {self.caller} is not authorized: {self.reason}"
        if self.code == 0:
            self.code = ERROR_LEDGER_UNAUTHORIZED
        super().__post_init__()
        self.context.update({
            "caller": self.caller,
            "reason": self.reason,
        })


@dataclass
class UnlockTimeNotFutureError(LedgerError):
    """Raised when create_capsule receives an unlock time that is not in the future."""

    unlock_time: int = 0
    now: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Unlock time {self.unlock_time} is not after ledger time {self.now}"
            )
        if self.code == 0:
            self.code = ERROR_LEDGER_UNLOCK_NOT_FUTURE
        if not self.suggestion:
            self.suggestion = "Choose an unlock time at least one second in the future"
        super().__post_init__()
        self.context.update({
            "unlock_time": self.unlock_time,
            "now": self.now,
        })


@dataclass
class CapsuleNotFoundError(LedgerError):
    """Raised when a capsule id is out of range."""

    capsule_id: int = 0
    count: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Capsule not found: {self.capsule_id}"
        if self.code == 0:
            self.code = ERROR_LEDGER_NOT_FOUND
        if not self.suggestion and self.count:
            self.suggestion = f"Valid capsule ids are 0..{self.count - 1}"
        super().__post_init__()
        self.context.update({
            "capsule_id": self.capsule_id,
            "count": self.count,
        })


@dataclass
class CapsuleLockedError(LedgerError):
    """Raised by the application layer when a capsule is still time-locked."""

    capsule_id: int = 0
    unlock_time: int = 0
    seconds_remaining: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Capsule {self.capsule_id} is locked for another "
                f"{self.seconds_remaining}s"
            )
        if self.code == 0:
            self.code = ERROR_LEDGER_LOCKED
        super().__post_init__()
        self.context.update({
            "capsule_id": self.capsule_id,
            "unlock_time": self.unlock_time,
            "seconds_remaining": self.seconds_remaining,
        })


# =============================================================================
# Codec Errors
# =============================================================================


@dataclass
class CodecError(TimeCapsuleError):
    """Base class for content codec errors."""


@dataclass
class InvalidEncodingError(CodecError):
    """Raised when a hex string is malformed."""

    position: int | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid hex encoding: {self.reason}"
        if self.code == 0:
            self.code = ERROR_CODEC_INVALID_ENCODING
        self.context.update({
            "position": self.position,
            "reason": self.reason,
        })


@dataclass
class DecryptionFailedError(CodecError):
    """Raised when ciphertext cannot be decrypted."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Decryption failed: {self.reason}"
        if self.code == 0:
            self.code = ERROR_CODEC_DECRYPTION_FAILED
        if not self.suggestion:
            self.suggestion = "Check the passphrase; it cannot be recovered if lost"
        self.context["reason"] = self.reason


@dataclass
class EncryptionFailedError(CodecError):
    """Raised when plaintext cannot be encrypted."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Encryption failed: {self.reason}"
        if self.code == 0:
            self.code = ERROR_CODEC_ENCRYPTION_FAILED
        self.context["reason"] = self.reason


# =============================================================================
# Blob Store Errors
# =============================================================================


@dataclass
class BlobStoreError(TimeCapsuleError):
    """
    Raised when an attachment blob cannot be stored or fetched.

    Attributes:
        locator: The blob locator involved, if known
        underlying_error: The transport or filesystem error text
    """

    locator: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blob store failure: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BLOB_STORE
        self.context.update({
            "locator": self.locator,
            "underlying_error": self.underlying_error,
        })


@dataclass
class BlobNotFoundError(BlobStoreError):
    """Raised when no blob exists for a locator."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blob not found: {self.locator}"
        if self.code == 0:
            self.code = ERROR_BLOB_NOT_FOUND
        super().__post_init__()


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(TimeCapsuleError):
    """Raised when a settings file is missing or invalid."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration: {self.path}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["path"] = self.path


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(TimeCapsuleError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "insert", "query")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageIntegrityError(StorageError):
    """Raised when persisted capsule rows violate a ledger invariant."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Database integrity check failed"
        if self.code == 0:
            self.code = ERROR_STORAGE_INTEGRITY
        if not self.suggestion:
            self.suggestion = "The database may be corrupted. Try using a backup."
        super().__post_init__()
