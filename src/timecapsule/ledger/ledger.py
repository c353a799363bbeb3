"""
Capsule Ledger.

The ledger is the authority on which capsules exist and the gatekeeper for
their ciphertext. Every append and every reveal passes through here.

Rules:
    - The store is created once, by the owner, and never torn down
    - Capsule ids are assigned 0, 1, 2, ... in commit order
    - unlock_time must be strictly after ledger time when a capsule is created
    - Metadata is public; ciphertext is disclosed only to the sender or
      receiver, and only once ledger time has reached unlock_time

Reveal results:
    The wire operations (reveal_encrypted, reveal_encrypted_bytes) return an
    empty value for every refusal so a prober cannot tell "too early" from
    "not yours". reveal() returns the typed outcome for application code;
    the reason is also logged at DEBUG level.

Security Note:
    `caller` and `sender` are trusted as authenticated identities. Code that
    exposes the ledger must bind them to a signed session (see
    LocalLedgerClient), never to a string supplied by the remote party.
"""

import logging
from enum import Enum

from timecapsule.codec.hexcodec import hex_decode, hex_encode
from timecapsule.errors import (
    CapsuleNotFoundError,
    NotInitializedError,
    UnauthorizedError,
    UnlockTimeNotFutureError,
)
from timecapsule.ledger.clock import Clock, SystemClock
from timecapsule.ledger.store import CapsuleStore
from timecapsule.schema import (
    Capsule,
    CapsuleMeta,
    RevealOutcome,
    RevealResult,
    StoreState,
)

logger = logging.getLogger(__name__)

MAX_U64 = 2**64 - 1


class CapsuleLedger:
    """
    Append-only capsule ledger over an injected store.

    Usage:
        ledger = CapsuleLedger(CapsuleStore(":memory:"), owner="0x1")
        ledger.init_storage("0x1")
        capsule_id = ledger.create_capsule(alice, bob, now + 60, blob, "text")
        ledger.reveal_encrypted(bob, capsule_id)  # "" until now + 60

    Attributes:
        store: Persistence for the capsule records
        owner: The only identity allowed to initialize the store
        clock: Trusted time source for unlock checks
    """

    def __init__(
        self,
        store: CapsuleStore,
        owner: str,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            store: Capsule store (one per test case, one per deployment)
            owner: Address that owns the store record
            clock: Time source (defaults to the system clock)
        """
        self.store = store
        self.owner = owner
        self.clock = clock or SystemClock()

    @property
    def state(self) -> StoreState:
        """Current lifecycle state of the store."""
        return self.store.state(self.owner)

    # =========================================================================
    # Entry Operations
    # =========================================================================

    def init_storage(self, caller: str) -> None:
        """
        Create the empty store.

        Raises:
            UnauthorizedError: If caller is not the owner
            AlreadyInitializedError: If the store already exists
        """
        if caller != self.owner:
            raise UnauthorizedError(
                operation="init_storage",
                caller=caller,
                reason="only the ledger owner can initialize storage",
            )
        self.store.initialize(self.owner)

    def create_capsule(
        self,
        sender: str,
        receiver: str,
        unlock_time: int,
        encrypted_bytes: bytes,
        content_type: str | Enum,
    ) -> int:
        """
        Append a new capsule.

        content_type and address formats are stored as given.

        Args:
            sender: Authenticated creator
            receiver: Intended reader (may equal sender)
            unlock_time: Epoch seconds, strictly in the future
            encrypted_bytes: Ciphertext from the content codec
            content_type: "text", "file" or "mixed"

        Returns:
            The assigned capsule id

        Raises:
            NotInitializedError: If the store does not exist
            UnlockTimeNotFutureError: If unlock_time <= ledger time
        """
        if self.state != StoreState.INITIALIZED:
            raise NotInitializedError(operation="create_capsule")

        now = self.clock.now()
        if unlock_time <= now:
            raise UnlockTimeNotFutureError(
                operation="create_capsule",
                unlock_time=unlock_time,
                now=now,
            )
        if unlock_time > MAX_U64:
            raise ValueError(f"unlock_time exceeds u64: {unlock_time}")

        if isinstance(content_type, Enum):
            content_type = content_type.value

        capsule = self.store.append(
            owner=self.owner,
            sender=sender,
            receiver=receiver,
            unlock_time=unlock_time,
            encrypted_hex=hex_encode(bytes(encrypted_bytes)),
            content_type=content_type,
            created_at=now,
        )
        logger.info(
            "Created capsule %d from %s to %s unlocking at %d (%s, %d bytes)",
            capsule.id,
            sender,
            receiver,
            unlock_time,
            content_type,
            len(encrypted_bytes),
        )
        return capsule.id

    # =========================================================================
    # Query Operations
    # =========================================================================

    def get_capsules_len(self) -> int:
        """
        Number of capsules stored.

        Raises:
            NotInitializedError: If the store does not exist
        """
        count = self.store.count(self.owner)
        if count is None:
            raise NotInitializedError(operation="get_capsules_len")
        return count

    def capsule_meta(self, capsule_id: int) -> CapsuleMeta:
        """
        Public metadata of a capsule. No authorization required.

        Raises:
            NotInitializedError: If the store does not exist
            CapsuleNotFoundError: If capsule_id is out of range
        """
        return self._get(capsule_id, "capsule_meta").meta()

    def reveal(self, caller: str, capsule_id: int) -> RevealResult:
        """
        Typed reveal: the ciphertext plus why it was or was not disclosed.

        The time-lock is checked before authorization, so a locked capsule
        reports LOCKED to everyone.

        Raises:
            NotInitializedError: If the store does not exist
            CapsuleNotFoundError: If capsule_id is out of range
        """
        capsule = self._get(capsule_id, "reveal_encrypted")
        now = self.clock.now()

        if now < capsule.unlock_time:
            outcome = RevealOutcome.LOCKED
        elif not capsule.is_party(caller):
            outcome = RevealOutcome.UNAUTHORIZED
        else:
            outcome = RevealOutcome.REVEALED

        logger.debug("Reveal of capsule %d by %s: %s", capsule_id, caller, outcome.value)
        return RevealResult(
            capsule_id=capsule_id,
            outcome=outcome,
            encrypted_hex=capsule.encrypted_hex if outcome == RevealOutcome.REVEALED else "",
            unlock_time=capsule.unlock_time,
            checked_at=now,
        )

    def reveal_encrypted(self, caller: str, capsule_id: int) -> str:
        """Hex ciphertext if unlocked and caller is a party, else ""."""
        return self.reveal(caller, capsule_id).encrypted_hex

    def reveal_encrypted_bytes(self, caller: str, capsule_id: int) -> bytes:
        """Raw ciphertext if unlocked and caller is a party, else b""."""
        return hex_decode(self.reveal_encrypted(caller, capsule_id))

    def list_capsules(self, offset: int = 0, limit: int = 100) -> list[CapsuleMeta]:
        """Public metadata of capsules in id order."""
        self._require_initialized("list_capsules")
        return self.store.list_meta(self.owner, offset=offset, limit=limit)

    def capsules_for(self, address: str) -> list[CapsuleMeta]:
        """Public metadata of capsules sent by or addressed to address."""
        self._require_initialized("capsules_for")
        return self.store.list_meta_for(self.owner, address)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_initialized(self, operation: str) -> None:
        if self.state != StoreState.INITIALIZED:
            raise NotInitializedError(operation=operation)

    def _get(self, capsule_id: int, operation: str) -> Capsule:
        self._require_initialized(operation)
        capsule = self.store.get(self.owner, capsule_id) if capsule_id >= 0 else None
        if capsule is None:
            raise CapsuleNotFoundError(
                operation=operation,
                capsule_id=capsule_id,
                count=self.store.count(self.owner) or 0,
            )
        return capsule
