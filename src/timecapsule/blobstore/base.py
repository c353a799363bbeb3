"""
Base class for attachment blob stores.

Capsule payloads reference attachments by locator; the bytes themselves live
in a blob store. The ledger and the codec never call a blob store; only the
application layer does, when building or opening a payload.

Locators are content addresses: the lowercase SHA-256 hex of the blob. A
store must return exactly the bytes whose hash is the locator. Payloads
sealed by the original browser client carry IPFS CIDs instead; those are
read through IPFS gateways (see ipfs.py).
"""

import hashlib
import re
from abc import ABC, abstractmethod

from timecapsule.errors import BlobNotFoundError, BlobStoreError

LOCATOR_PATTERN = re.compile(r"^[0-9a-f]{64}$")

# CIDv0 (base58btc multihash) or CIDv1 (base32, multibase prefix "b")
CID_PATTERN = re.compile(r"^(?:Qm[1-9A-HJ-NP-Za-km-z]{44}|b[a-z2-7]{58,})$")

# Default upper bound on a single attachment
DEFAULT_MAX_BLOB_BYTES = 50 * 1024 * 1024


def locator_for(data: bytes) -> str:
    """Content address of a blob."""
    return hashlib.sha256(data).hexdigest()


def validate_locator(locator: str) -> str:
    """
    Check that a locator is a SHA-256 hex digest.

    Raises:
        BlobNotFoundError: If the locator cannot name a blob in this store
    """
    if not LOCATOR_PATTERN.match(locator):
        raise BlobNotFoundError(
            locator=locator,
            message=f"Malformed blob locator: {locator!r}",
        )
    return locator


def is_cid(locator: str) -> bool:
    """Whether a locator is an IPFS content identifier."""
    return bool(CID_PATTERN.match(locator))


def validate_cid(locator: str) -> str:
    """
    Check that a locator is an IPFS CID.

    Raises:
        BlobNotFoundError: If the locator is not a CID
    """
    if not is_cid(locator):
        raise BlobNotFoundError(
            locator=locator,
            message=f"Malformed IPFS CID: {locator!r}",
        )
    return locator


def verify_blob(locator: str, data: bytes) -> bytes:
    """
    Check fetched bytes against their locator.

    Raises:
        BlobStoreError: If the content hash does not match
    """
    actual = locator_for(data)
    if actual != locator:
        raise BlobStoreError(
            locator=locator,
            underlying_error=f"content hash mismatch (got {actual[:12]}...)",
        )
    return data


class BlobStore(ABC):
    """
    Abstract blob store.

    Implementations:
        - FileBlobStore: Local directory
        - HttpBlobStore: HTTP gateways tried in order
        - IpfsGatewayStore: Read-only IPFS gateways for CIDs
    """

    max_blob_bytes: int = DEFAULT_MAX_BLOB_BYTES

    @abstractmethod
    def put(self, data: bytes) -> str:
        """
        Store a blob and return its locator.

        Raises:
            BlobStoreError: If the blob could not be stored
        """
        ...

    @abstractmethod
    def get(self, locator: str) -> bytes:
        """
        Fetch a blob by locator.

        Raises:
            BlobNotFoundError: If no blob exists for the locator
            BlobStoreError: On transport failure or integrity mismatch
        """
        ...

    def _check_size(self, size: int, locator: str = "") -> None:
        if size > self.max_blob_bytes:
            raise BlobStoreError(
                locator=locator,
                underlying_error=f"blob too large: {size} bytes (max: {self.max_blob_bytes})",
            )

    def close(self) -> None:
        """Release any held resources."""
