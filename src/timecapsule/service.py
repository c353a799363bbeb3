"""
Capsule Service for Time Capsule.

The service is the application layer over the ledger client, the content
codec and a blob store. It runs the two user flows end to end:

Create Flow:
    1. Upload each attachment to the blob store
    2. Build the JSON payload (text + file refs + timestamp)
    3. Infer the content type (text, file, mixed)
    4. Encrypt the payload with the passphrase
    5. Submit create_capsule signed by the client's account

Open Flow:
    1. Read public metadata and compute the status for this account
    2. Refuse early with CapsuleLockedError or UnauthorizedError, so the
       user sees "locked" and "not yours" distinctly from "wrong passphrase"
    3. Reveal the ciphertext and decrypt it into a DecryptedPayload

The ledger never sees plaintext or passphrases; neither does the log.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from timecapsule.blobstore.base import LOCATOR_PATTERN, BlobStore, is_cid
from timecapsule.codec.payload import build_payload, infer_content_type, open_payload, seal_payload
from timecapsule.errors import BlobNotFoundError, CapsuleLockedError, UnauthorizedError
from timecapsule.ledger.client import LedgerClient
from timecapsule.ledger.clock import Clock, SystemClock
from timecapsule.schema import DEFAULT_KDF_ITERATIONS, CapsuleMeta, ContentType, DecryptedPayload, FileRef

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """
    A file to attach to a new capsule.

    Attributes:
        name: File name shown to the receiver
        data: Raw file bytes
        type: MIME type
    """

    name: str
    data: bytes
    type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str = "application/octet-stream") -> "Attachment":
        """Read an attachment from disk."""
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes(), type=mime_type)


@dataclass
class CapsuleStatus:
    """
    A capsule's metadata as seen by one account at one moment.

    Attributes:
        meta: Public capsule metadata
        now: Time the status was computed
        is_unlocked: Whether unlock_time has been reached
        is_authorized: Whether the account is sender or receiver
    """

    meta: CapsuleMeta
    now: int
    is_unlocked: bool
    is_authorized: bool

    @property
    def seconds_remaining(self) -> int:
        """Seconds until unlock (0 once unlocked)."""
        return max(0, self.meta.unlock_time - self.now)

    @property
    def can_open(self) -> bool:
        """Whether a reveal would disclose the ciphertext."""
        return self.is_unlocked and self.is_authorized


@dataclass
class CreatedCapsule:
    """Result of creating a capsule."""

    capsule_id: int
    unlock_time: int
    content_type: ContentType
    files: list[FileRef] = field(default_factory=list)


class CapsuleService:
    """
    Application-level capsule operations for one account.

    Usage:
        with CapsuleService(client, blobs) as service:
            created = service.create("0xb0b", "pw", text="hello", unlock_in=60)
            payload = service.open(created.capsule_id, "pw")
    """

    def __init__(
        self,
        client: LedgerClient,
        blobs: BlobStore | None = None,
        clock: Clock | None = None,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        ipfs: BlobStore | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            client: Account-bound ledger client
            blobs: Blob store for attachments (required only for files)
            clock: Time source for unlock arithmetic and status
            kdf_iterations: PBKDF2 iterations used when sealing new capsules
            ipfs: Read-only store for attachments referenced by IPFS CID
        """
        self.client = client
        self.blobs = blobs
        self.clock = clock or SystemClock()
        self.kdf_iterations = kdf_iterations
        self.ipfs = ipfs

    def close(self) -> None:
        """Close the blob stores."""
        for store in (self.blobs, self.ipfs):
            if store is not None:
                store.close()

    def __enter__(self) -> "CapsuleService":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def account(self) -> str:
        """The account this service acts as."""
        return self.client.account

    def create(
        self,
        receiver: str,
        passphrase: str,
        text: str = "",
        attachments: list[Attachment] | None = None,
        unlock_in: int | None = None,
        unlock_time: int | None = None,
    ) -> CreatedCapsule:
        """
        Encrypt and submit a new capsule.

        Exactly one of unlock_in (seconds from now) or unlock_time (epoch
        seconds) must be given.

        Raises:
            ValueError: On missing content or an ambiguous unlock time
            BlobStoreError: If an attachment cannot be uploaded
            LedgerError: If the ledger rejects the capsule
        """
        if (unlock_in is None) == (unlock_time is None):
            raise ValueError("Pass exactly one of unlock_in or unlock_time")
        if unlock_time is None:
            unlock_time = self.clock.now() + unlock_in

        attachments = attachments or []
        if attachments and self.blobs is None:
            raise ValueError("A blob store is required to attach files")

        files = []
        for attachment in attachments:
            locator = self.blobs.put(attachment.data)
            files.append(
                FileRef(
                    name=attachment.name,
                    type=attachment.type,
                    size=len(attachment.data),
                    locator=locator,
                )
            )
            logger.info("Uploaded %s (%d bytes)", attachment.name, len(attachment.data))

        payload = build_payload(text=text, files=files)
        content_type = infer_content_type(payload)
        sealed = seal_payload(payload, passphrase, self.kdf_iterations)

        capsule_id = self.client.create_capsule(receiver, unlock_time, sealed, content_type)
        logger.info(
            "Capsule %d submitted by %s for %s (%s)",
            capsule_id,
            self.account,
            receiver,
            content_type.value,
        )
        return CreatedCapsule(
            capsule_id=capsule_id,
            unlock_time=unlock_time,
            content_type=content_type,
            files=files,
        )

    def status(self, capsule_id: int) -> CapsuleStatus:
        """Compute the status of a capsule for this account."""
        meta = self.client.capsule_meta(capsule_id)
        now = self.clock.now()
        return CapsuleStatus(
            meta=meta,
            now=now,
            is_unlocked=now >= meta.unlock_time,
            is_authorized=self.account in (meta.sender, meta.receiver),
        )

    def open(self, capsule_id: int, passphrase: str) -> DecryptedPayload:
        """
        Reveal and decrypt a capsule.

        Raises:
            CapsuleLockedError: If the unlock time has not been reached
            UnauthorizedError: If the account is neither sender nor receiver
            DecryptionFailedError: If the passphrase is wrong
        """
        status = self.status(capsule_id)
        if not status.is_unlocked:
            raise CapsuleLockedError(
                operation="open",
                capsule_id=capsule_id,
                unlock_time=status.meta.unlock_time,
                seconds_remaining=status.seconds_remaining,
            )
        if not status.is_authorized:
            raise UnauthorizedError(
                operation="open",
                caller=self.account,
                reason=f"not a party to capsule {capsule_id}",
            )

        cipher_bytes = self.client.reveal_encrypted_bytes(capsule_id)
        if not cipher_bytes:
            # Ledger clock disagrees with ours; trust the ledger
            raise CapsuleLockedError(
                operation="open",
                capsule_id=capsule_id,
                unlock_time=status.meta.unlock_time,
            )
        return open_payload(cipher_bytes, passphrase)

    def fetch_file(self, file_ref: FileRef) -> bytes:
        """
        Download an attachment referenced by an opened payload.

        SHA-256 locators are read from the blob store; IPFS CIDs from the
        IPFS gateways.

        Raises:
            BlobNotFoundError: If the blob is gone or the locator is malformed
            BlobStoreError: On transport or integrity failure
        """
        locator = file_ref.locator
        if is_cid(locator) and not LOCATOR_PATTERN.match(locator):
            if self.ipfs is None:
                raise BlobNotFoundError(
                    locator=locator,
                    message=f"No IPFS gateway configured for {locator}",
                )
            return self.ipfs.get(locator)
        if self.blobs is None:
            raise ValueError("No blob store configured")
        return self.blobs.get(locator)

    def list_mine(self) -> list[CapsuleStatus]:
        """Status of every capsule sent by or addressed to this account."""
        count = self.client.get_capsules_len()
        statuses = []
        for capsule_id in range(count):
            status = self.status(capsule_id)
            if status.is_authorized:
                statuses.append(status)
        return statuses
