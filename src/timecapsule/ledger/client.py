"""
Ledger clients.

A ledger client is how application code talks to the capsule ledger. It is
bound to one account: entry calls are signed by that account and view calls
that take a caller use it. This is the seam where the caller identity
becomes an authenticated session rather than a free-form argument.

Functions are addressed by name, optionally qualified with the module
("time_capsule::create_capsule") and a deployment address
("0x1::time_capsule::create_capsule").

Entry functions (mutate state, return a TransactionReceipt):
    init_storage()
    create_capsule(receiver, unlock_time, encrypted_bytes, content_type)

View functions (read-only, return a list of values):
    get_capsules_len() -> [count]
    capsule_meta(id) -> [sender, receiver, unlock_time, content_type]
    reveal_encrypted(caller, id) -> [hex]
    reveal_encrypted_bytes(caller, id) -> [bytes]
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from timecapsule.codec.hexcodec import hex_encode
from timecapsule.errors import UnauthorizedError
from timecapsule.ledger.ledger import CapsuleLedger
from timecapsule.ledger.store import compute_hash
from timecapsule.schema import CapsuleMeta, ContentType, TransactionReceipt

logger = logging.getLogger(__name__)

MODULE_NAME = "time_capsule"

ENTRY_FUNCTIONS = frozenset({"init_storage", "create_capsule"})
VIEW_FUNCTIONS = frozenset({
    "get_capsules_len",
    "capsule_meta",
    "reveal_encrypted",
    "reveal_encrypted_bytes",
})


def resolve_function(function: str) -> str:
    """
    Strip the address and module qualifiers from a function name.

    Raises:
        ValueError: If the module is not time_capsule or the name is unknown
    """
    parts = function.split("::")
    if len(parts) > 3 or (len(parts) >= 2 and parts[-2] != MODULE_NAME):
        raise ValueError(f"Unknown module in function: {function}")
    name = parts[-1]
    if name not in ENTRY_FUNCTIONS | VIEW_FUNCTIONS:
        raise ValueError(f"Unknown function: {function}")
    return name


class LedgerClient(ABC):
    """
    Abstract client for the capsule ledger.

    Implementations provide submit() and view(); the typed helpers below
    are built on those two calls.

    Implementations:
        - LocalLedgerClient: In-process ledger backed by SQLite
        - (Future) RPC clients for a remote node

    Attributes:
        account: Address that signs entry calls and reads as the caller
    """

    def __init__(self, account: str) -> None:
        if not account:
            raise ValueError("account cannot be empty")
        self.account = account

    @abstractmethod
    def submit(self, function: str, args: list[Any]) -> TransactionReceipt:
        """
        Submit an entry call and wait for its finalized effect.

        Raises:
            LedgerError: If the ledger rejects the call
        """
        ...

    @abstractmethod
    def view(self, function: str, args: list[Any]) -> list[Any]:
        """Run a read-only call and return its values."""
        ...

    # =========================================================================
    # Typed Helpers
    # =========================================================================

    def init_storage(self) -> TransactionReceipt:
        """Initialize the store (the account must be the ledger owner)."""
        return self.submit("init_storage", [])

    def create_capsule(
        self,
        receiver: str,
        unlock_time: int,
        encrypted_bytes: bytes,
        content_type: str | ContentType,
    ) -> int:
        """Create a capsule signed by this account and return its id."""
        if isinstance(content_type, ContentType):
            content_type = content_type.value
        receipt = self.submit(
            "create_capsule",
            [receiver, unlock_time, encrypted_bytes, content_type],
        )
        return int(receipt.result)

    def get_capsules_len(self) -> int:
        """Number of capsules on the ledger."""
        return int(self.view("get_capsules_len", [])[0])

    def capsule_meta(self, capsule_id: int) -> CapsuleMeta:
        """Public metadata of a capsule."""
        sender, receiver, unlock_time, content_type = self.view("capsule_meta", [capsule_id])
        return CapsuleMeta(
            id=capsule_id,
            sender=sender,
            receiver=receiver,
            unlock_time=int(unlock_time),
            content_type=content_type,
        )

    def reveal_encrypted(self, capsule_id: int) -> str:
        """Hex ciphertext for this account, or "" if not disclosed."""
        return self.view("reveal_encrypted", [self.account, capsule_id])[0]

    def reveal_encrypted_bytes(self, capsule_id: int) -> bytes:
        """Raw ciphertext for this account, or b"" if not disclosed."""
        return self.view("reveal_encrypted_bytes", [self.account, capsule_id])[0]


class LocalLedgerClient(LedgerClient):
    """
    Ledger client for an in-process CapsuleLedger.

    Calls apply synchronously, so a returned receipt is already final.
    Whoever constructs the client vouches for the account; the client then
    refuses calls that name a different sender or caller.

    Usage:
        client = LocalLedgerClient(ledger, account="0xa11ce")
        capsule_id = client.create_capsule("0xb0b", now + 60, blob, "text")
    """

    def __init__(self, ledger: CapsuleLedger, account: str) -> None:
        super().__init__(account)
        self.ledger = ledger
        self._sequence = 0
        self._lock = threading.Lock()

    def submit(self, function: str, args: list[Any]) -> TransactionReceipt:
        name = resolve_function(function)
        if name not in ENTRY_FUNCTIONS:
            raise ValueError(f"Not an entry function: {function}")

        if name == "init_storage":
            if args:
                raise ValueError("init_storage takes no arguments")
            self.ledger.init_storage(self.account)
            result = None
        else:
            if len(args) == 5:
                # Explicit sender form: must match the signer
                sender, *args = args
                self._require_self(sender, "create_capsule", "sender must be the signing account")
            if len(args) != 4:
                raise ValueError("create_capsule expects receiver, unlock_time, bytes, content_type")
            receiver, unlock_time, encrypted_bytes, content_type = args
            result = self.ledger.create_capsule(
                sender=self.account,
                receiver=receiver,
                unlock_time=int(unlock_time),
                encrypted_bytes=bytes(encrypted_bytes),
                content_type=content_type,
            )

        with self._lock:
            sequence = self._sequence
            self._sequence += 1

        receipt = TransactionReceipt(
            hash=compute_hash({
                "sender": self.account,
                "function": f"{MODULE_NAME}::{name}",
                "args": [_wire_value(a) for a in args],
                "sequence": sequence,
            }),
            sequence=sequence,
            sender=self.account,
            function=f"{MODULE_NAME}::{name}",
            result=result,
            timestamp=self.ledger.clock.now(),
        )
        logger.debug("Applied %s from %s (%s)", receipt.function, self.account, receipt.hash[:12])
        return receipt

    def view(self, function: str, args: list[Any]) -> list[Any]:
        name = resolve_function(function)
        if name not in VIEW_FUNCTIONS:
            raise ValueError(f"Not a view function: {function}")

        if name == "get_capsules_len":
            return [self.ledger.get_capsules_len()]
        if name == "capsule_meta":
            (capsule_id,) = args
            return list(self.ledger.capsule_meta(int(capsule_id)).as_tuple())

        caller, capsule_id = args
        self._require_self(caller, name, "caller must be the session account")
        if name == "reveal_encrypted":
            return [self.ledger.reveal_encrypted(self.account, int(capsule_id))]
        return [self.ledger.reveal_encrypted_bytes(self.account, int(capsule_id))]

    def _require_self(self, address: str, operation: str, reason: str) -> None:
        if address != self.account:
            raise UnauthorizedError(operation=operation, caller=address, reason=reason)


def _wire_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return hex_encode(bytes(value))
    return value
