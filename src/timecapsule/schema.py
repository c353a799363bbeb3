"""
Schema definitions for Time Capsule.

This module defines the Pydantic models used throughout Time Capsule:
- Capsule/CapsuleMeta: Ledger records and their public metadata
- RevealResult: Typed outcome of a gated reveal
- FileRef/DecryptedPayload: The client-side plaintext payload
- TransactionReceipt: Result of a submitted entry call
- Settings: YAML configuration

Design Decisions:
    - Ledger records are immutable (frozen=True)
    - Unknown fields are rejected (extra="forbid")
    - Hex and time invariants are validated on construction
"""

import re
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from timecapsule.errors import ConfigError

# Lowercase, even-length hex as persisted by the ledger
HEX_PATTERN = re.compile(r"^(?:[0-9a-f]{2})*$")

# PBKDF2 work factor bounds
MIN_KDF_ITERATIONS = 10_000
DEFAULT_KDF_ITERATIONS = 100_000
MAX_KDF_ITERATIONS = 10_000_000

# Public IPFS gateways for attachments stored by CID
DEFAULT_IPFS_GATEWAYS = [
    "https://ipfs.io/ipfs",
    "https://dweb.link/ipfs",
    "https://gateway.pinata.cloud/ipfs",
]


# =============================================================================
# Enums
# =============================================================================


class ContentType(str, Enum):
    """
    What a capsule carries.

    Informational only: the ledger stores whatever string the caller passes.
    """

    TEXT = "text"
    FILE = "file"
    MIXED = "mixed"


class StoreState(str, Enum):
    """Lifecycle of the capsule store."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


class RevealOutcome(str, Enum):
    """Why a reveal did or did not disclose ciphertext."""

    REVEALED = "revealed"
    LOCKED = "locked"
    UNAUTHORIZED = "unauthorized"


# =============================================================================
# Ledger Models
# =============================================================================


class Capsule(BaseModel):
    """
    A capsule record as stored on the ledger.

    Attributes:
        id: Position in the ledger (0-based, gapless)
        sender: Address of the creator
        receiver: Address of the intended reader
        unlock_time: Seconds since epoch after which the content is revealed
        encrypted_hex: Lowercase hex of the ciphertext
        content_type: "text", "file" or "mixed" (not validated)
        created_at: Ledger time at insertion
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(..., ge=0, description="Ledger-assigned capsule id")
    sender: str = Field(..., description="Address of the creator")
    receiver: str = Field(..., description="Address of the intended reader")
    unlock_time: int = Field(..., ge=0, description="Unlock time in epoch seconds")
    encrypted_hex: str = Field(..., description="Lowercase hex ciphertext")
    content_type: str = Field(..., description="Informational content kind")
    created_at: int = Field(default=0, ge=0, description="Ledger time at insertion")

    @field_validator("encrypted_hex")
    @classmethod
    def validate_hex(cls, v: str) -> str:
        """Persisted ciphertext is always even-length lowercase hex."""
        if not HEX_PATTERN.match(v):
            msg = "encrypted_hex must be even-length lowercase hex"
            raise ValueError(msg)
        return v

    def meta(self) -> "CapsuleMeta":
        """Project the public metadata of this capsule."""
        return CapsuleMeta(
            id=self.id,
            sender=self.sender,
            receiver=self.receiver,
            unlock_time=self.unlock_time,
            content_type=self.content_type,
        )

    def is_party(self, address: str) -> bool:
        """Whether address is the sender or the receiver."""
        return address in (self.sender, self.receiver)


class CapsuleMeta(BaseModel):
    """
    Public metadata of a capsule.

    Metadata is never gated: anyone can see who sent what to whom and when
    it unlocks, but not the ciphertext.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(..., ge=0)
    sender: str
    receiver: str
    unlock_time: int = Field(..., ge=0)
    content_type: str

    def as_tuple(self) -> tuple[str, str, int, str]:
        """Wire form: (sender, receiver, unlock_time, content_type)."""
        return (self.sender, self.receiver, self.unlock_time, self.content_type)


class RevealResult(BaseModel):
    """
    Typed outcome of a reveal.

    The wire operations collapse every outcome except REVEALED to an empty
    value; this model keeps the reason for the application layer.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    capsule_id: int = Field(..., ge=0)
    outcome: RevealOutcome
    encrypted_hex: str = Field(default="")
    unlock_time: int = Field(..., ge=0)
    checked_at: int = Field(..., ge=0)

    @property
    def revealed(self) -> bool:
        """Whether ciphertext was disclosed."""
        return self.outcome == RevealOutcome.REVEALED


class TransactionReceipt(BaseModel):
    """
    Finalized effect of an entry call submitted through a ledger client.

    Attributes:
        hash: SHA256 over the signer, function, arguments and sequence number
        sequence: Per-client submission counter
        sender: The signing account
        function: Fully qualified entry function name
        success: Whether the call committed
        result: Return value of the entry function, if any
        timestamp: Ledger time when the call was applied
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    hash: str
    sequence: int = Field(..., ge=0)
    sender: str
    function: str
    success: bool = True
    result: Any = None
    timestamp: int = Field(..., ge=0)


# =============================================================================
# Payload Models
# =============================================================================


class FileRef(BaseModel):
    """
    A file attachment referenced from a capsule payload.

    The bytes live in a blob store; only the locator travels inside the
    encrypted payload.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str
    type: str = Field(default="application/octet-stream")
    size: int = Field(default=0, ge=0)
    # Older payloads call the locator "ipfsHash"
    locator: str = Field(..., alias="ipfsHash")


class DecryptedPayload(BaseModel):
    """
    Plaintext content of a capsule, reconstructed after decryption.

    Attributes:
        text: Message body (may be empty for file-only capsules)
        files: Attachment references
        timestamp: Creation time in epoch milliseconds, None for legacy text
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str = Field(default="")
    files: list[FileRef] = Field(default_factory=list)
    timestamp: int | None = Field(default=None)


# =============================================================================
# Settings
# =============================================================================


class Settings(BaseModel):
    """
    Runtime configuration for a Time Capsule deployment.

    Attributes:
        owner: Address allowed to initialize the capsule store
        db_path: SQLite database holding the store
        blob_dir: Directory for the local attachment store
        blob_gateways: Base URLs of HTTP blob gateways, tried in order
        ipfs_gateways: IPFS gateway bases for attachments stored by CID
        kdf_iterations: PBKDF2 iterations used when sealing new capsules
        http_timeout_seconds: Timeout for each gateway request
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    owner: str = Field(default="0x1", min_length=1, description="Ledger owner address")
    db_path: Path = Field(default=Path("timecapsule.db"))
    blob_dir: Path = Field(default=Path(".timecapsule/blobs"))
    blob_gateways: list[str] = Field(default_factory=list)
    ipfs_gateways: list[str] = Field(default_factory=lambda: list(DEFAULT_IPFS_GATEWAYS))
    kdf_iterations: int = Field(
        default=DEFAULT_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS, le=MAX_KDF_ITERATIONS
    )
    http_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    @field_validator("blob_gateways", "ipfs_gateways")
    @classmethod
    def validate_gateways(cls, v: list[str]) -> list[str]:
        """Gateways must be http(s) base URLs."""
        for url in v:
            if not url.startswith(("http://", "https://")):
                msg = f"Gateway must be an http(s) URL: {url}"
                raise ValueError(msg)
        return [url.rstrip("/") for url in v]


def _settings_from_data(data: Any, source: str) -> Settings:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(path=source, message=f"Settings must be a mapping: {source}")
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(path=source, message=f"Invalid settings in {source}: {e}") from e


def load_settings(path: Path | str) -> Settings:
    """
    Load settings from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(path=str(path), message=f"Cannot read settings: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(path=str(path), message=f"Malformed YAML: {e}") from e

    return _settings_from_data(data, str(path))


def load_settings_from_string(content: str) -> Settings:
    """Load settings from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(path="<string>", message=f"Malformed YAML: {e}") from e
    return _settings_from_data(data, "<string>")
