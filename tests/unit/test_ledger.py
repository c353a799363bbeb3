"""
Unit tests for the capsule ledger.

Tests cover:
- Store initialization (owner only, once)
- Capsule creation and id assignment
- Public metadata queries
- Reveal gating on time and party membership
- The typed reveal outcome
- Concurrent creation
"""

import threading

import pytest

from timecapsule.errors import (
    AlreadyInitializedError,
    CapsuleNotFoundError,
    NotInitializedError,
    UnauthorizedError,
    UnlockTimeNotFutureError,
)
from timecapsule.ledger import CapsuleLedger, ManualClock
from timecapsule.schema import ContentType, RevealOutcome, StoreState

OWNER = "0x1"
ALICE = "0xa11ce"
BOB = "0xb0b"
EVE = "0xeve"

BLOB = b"\x00\x01\xfe\xff ciphertext"


# =============================================================================
# Initialization Tests
# =============================================================================


class TestInitStorage:
    """Tests for init_storage."""

    def test_owner_initializes(self, ledger: CapsuleLedger) -> None:
        """The owner can initialize an empty store."""
        assert ledger.state == StoreState.UNINITIALIZED
        ledger.init_storage(OWNER)
        assert ledger.state == StoreState.INITIALIZED
        assert ledger.get_capsules_len() == 0

    def test_non_owner_rejected(self, ledger: CapsuleLedger) -> None:
        """Anyone else is refused and nothing changes."""
        with pytest.raises(UnauthorizedError):
            ledger.init_storage(ALICE)
        assert ledger.state == StoreState.UNINITIALIZED

    def test_twice_rejected(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """A second init fails and leaves capsules intact."""
        ready_ledger.create_capsule(ALICE, BOB, clock.now() + 10, BLOB, "text")
        with pytest.raises(AlreadyInitializedError):
            ready_ledger.init_storage(OWNER)
        assert ready_ledger.get_capsules_len() == 1

    def test_operations_before_init(self, ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Every operation requires an initialized store."""
        with pytest.raises(NotInitializedError):
            ledger.create_capsule(ALICE, BOB, clock.now() + 10, BLOB, "text")
        with pytest.raises(NotInitializedError):
            ledger.get_capsules_len()
        with pytest.raises(NotInitializedError):
            ledger.capsule_meta(0)
        with pytest.raises(NotInitializedError):
            ledger.reveal_encrypted(ALICE, 0)


# =============================================================================
# Creation Tests
# =============================================================================


class TestCreateCapsule:
    """Tests for create_capsule."""

    def test_ids_are_sequential(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Ids start at 0 and count up; the length follows."""
        for expected in range(3):
            capsule_id = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 10, BLOB, "text")
            assert capsule_id == expected
            assert ready_ledger.get_capsules_len() == expected + 1

    def test_unlock_time_must_be_future(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Unlock times at or before now are rejected."""
        now = clock.now()
        for unlock_time in (now, now - 1, 0):
            with pytest.raises(UnlockTimeNotFutureError):
                ready_ledger.create_capsule(ALICE, BOB, unlock_time, BLOB, "text")
        assert ready_ledger.get_capsules_len() == 0

    def test_one_second_ahead_accepted(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """now + 1 is far enough."""
        assert ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, "text") == 0

    def test_unlock_time_over_u64(self, ready_ledger: CapsuleLedger) -> None:
        """Unlock times beyond u64 are refused."""
        with pytest.raises(ValueError):
            ready_ledger.create_capsule(ALICE, BOB, 2**64, BLOB, "text")

    def test_self_addressed(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """A sender may address a capsule to themselves."""
        capsule_id = ready_ledger.create_capsule(ALICE, ALICE, clock.now() + 5, BLOB, "text")
        clock.advance(5)
        assert ready_ledger.reveal_encrypted_bytes(ALICE, capsule_id) == BLOB

    def test_stored_as_lowercase_hex(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Ciphertext is persisted as lowercase hex."""
        capsule_id = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, "text")
        stored = ready_ledger.store.get(OWNER, capsule_id)
        assert stored.encrypted_hex == BLOB.hex()
        assert stored.created_at == clock.now()

    def test_content_type_enum_and_free_text(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Enum content types store their value; other strings are kept."""
        a = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, ContentType.MIXED)
        b = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, "hologram")
        assert ready_ledger.capsule_meta(a).content_type == "mixed"
        assert ready_ledger.capsule_meta(b).content_type == "hologram"

    def test_empty_ciphertext(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """An empty blob is stored and revealed as empty."""
        capsule_id = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, b"", "text")
        clock.advance(1)
        result = ready_ledger.reveal(BOB, capsule_id)
        assert result.outcome == RevealOutcome.REVEALED
        assert result.encrypted_hex == ""


# =============================================================================
# Metadata Tests
# =============================================================================


class TestCapsuleMeta:
    """Tests for public metadata."""

    def test_meta_fields(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Metadata reports the creation arguments."""
        unlock = clock.now() + 60
        capsule_id = ready_ledger.create_capsule(ALICE, BOB, unlock, BLOB, "file")
        meta = ready_ledger.capsule_meta(capsule_id)
        assert meta.as_tuple() == (ALICE, BOB, unlock, "file")

    def test_meta_is_stable_over_time(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Metadata does not change before or after unlock."""
        capsule_id = ready_ledger.create_capsule(ALICE, BOB, clock.now() + 60, BLOB, "text")
        before = ready_ledger.capsule_meta(capsule_id)
        clock.advance(3600)
        assert ready_ledger.capsule_meta(capsule_id) == before

    def test_not_found(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Ids at or past the length, and negative ids, are not found."""
        ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, "text")
        for capsule_id in (1, 99, -1):
            with pytest.raises(CapsuleNotFoundError):
                ready_ledger.capsule_meta(capsule_id)
            with pytest.raises(CapsuleNotFoundError):
                ready_ledger.reveal_encrypted(ALICE, capsule_id)

    def test_listing(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """list_capsules and capsules_for expose metadata only."""
        ready_ledger.create_capsule(ALICE, BOB, clock.now() + 1, BLOB, "text")
        ready_ledger.create_capsule(BOB, EVE, clock.now() + 1, BLOB, "text")
        assert [m.id for m in ready_ledger.list_capsules()] == [0, 1]
        assert [m.id for m in ready_ledger.capsules_for(ALICE)] == [0]
        assert [m.id for m in ready_ledger.capsules_for(BOB)] == [0, 1]


# =============================================================================
# Reveal Tests
# =============================================================================


class TestReveal:
    """Tests for reveal gating."""

    @pytest.fixture
    def capsule_id(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> int:
        """A capsule from ALICE to BOB unlocking in 100 seconds."""
        return ready_ledger.create_capsule(ALICE, BOB, clock.now() + 100, BLOB, "text")

    def test_locked_party(self, ready_ledger: CapsuleLedger, capsule_id: int) -> None:
        """Locked and party: empty."""
        assert ready_ledger.reveal_encrypted(BOB, capsule_id) == ""
        assert ready_ledger.reveal_encrypted(ALICE, capsule_id) == ""
        assert ready_ledger.reveal_encrypted_bytes(BOB, capsule_id) == b""

    def test_locked_stranger(self, ready_ledger: CapsuleLedger, capsule_id: int) -> None:
        """Locked and stranger: empty."""
        assert ready_ledger.reveal_encrypted(EVE, capsule_id) == ""

    def test_unlocked_stranger(
        self, ready_ledger: CapsuleLedger, clock: ManualClock, capsule_id: int
    ) -> None:
        """Unlocked and stranger: empty."""
        clock.advance(100)
        assert ready_ledger.reveal_encrypted(EVE, capsule_id) == ""
        assert ready_ledger.reveal_encrypted(OWNER, capsule_id) == ""

    def test_unlocked_party(
        self, ready_ledger: CapsuleLedger, clock: ManualClock, capsule_id: int
    ) -> None:
        """Unlocked and party: the exact bytes, for sender and receiver alike."""
        clock.advance(100)
        assert ready_ledger.reveal_encrypted(BOB, capsule_id) == BLOB.hex()
        assert ready_ledger.reveal_encrypted_bytes(BOB, capsule_id) == BLOB
        assert ready_ledger.reveal_encrypted_bytes(ALICE, capsule_id) == BLOB

    def test_boundary(self, ready_ledger: CapsuleLedger, clock: ManualClock, capsule_id: int) -> None:
        """One second before unlock is locked; unlock_time itself is open."""
        clock.advance(99)
        assert ready_ledger.reveal_encrypted(BOB, capsule_id) == ""
        clock.advance(1)
        assert ready_ledger.reveal_encrypted(BOB, capsule_id) == BLOB.hex()

    def test_stays_unlocked(self, ready_ledger: CapsuleLedger, clock: ManualClock, capsule_id: int) -> None:
        """Once revealable, a capsule stays revealable."""
        clock.advance(100)
        first = ready_ledger.reveal_encrypted(BOB, capsule_id)
        clock.advance(10 * 365 * 86400)
        assert ready_ledger.reveal_encrypted(BOB, capsule_id) == first

    def test_typed_outcomes(self, ready_ledger: CapsuleLedger, clock: ManualClock, capsule_id: int) -> None:
        """reveal() reports why nothing was disclosed."""
        locked = ready_ledger.reveal(EVE, capsule_id)
        assert locked.outcome == RevealOutcome.LOCKED
        assert locked.unlock_time == clock.now() + 100
        assert not locked.revealed

        clock.advance(100)
        foreign = ready_ledger.reveal(EVE, capsule_id)
        assert foreign.outcome == RevealOutcome.UNAUTHORIZED
        assert foreign.encrypted_hex == ""

        ok = ready_ledger.reveal(BOB, capsule_id)
        assert ok.revealed
        assert ok.checked_at == clock.now()


# =============================================================================
# Scenario Tests
# =============================================================================


class TestScenario:
    """End-to-end ledger scenario."""

    def test_alice_bob_eve(self, ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Alice seals for Bob; Eve never sees it; Bob does after unlock."""
        ledger.init_storage(OWNER)
        unlock = clock.now() + 3600
        capsule_id = ledger.create_capsule(ALICE, BOB, unlock, BLOB, "text")
        assert capsule_id == 0

        # Anyone can read metadata
        assert ledger.capsule_meta(0).receiver == BOB

        for caller in (ALICE, BOB, EVE):
            assert ledger.reveal_encrypted(caller, 0) == ""

        clock.set(unlock)
        assert ledger.reveal_encrypted_bytes(BOB, 0) == BLOB
        assert ledger.reveal_encrypted_bytes(ALICE, 0) == BLOB
        assert ledger.reveal_encrypted_bytes(EVE, 0) == b""

        second = ledger.create_capsule(BOB, ALICE, clock.now() + 1, b"reply", "text")
        assert second == 1
        assert ledger.get_capsules_len() == 2


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrency:
    """Tests for concurrent creation."""

    def test_concurrent_creates_are_gapless(self, ready_ledger: CapsuleLedger, clock: ManualClock) -> None:
        """Parallel creates get distinct ids covering 0..n-1."""
        ids: list[int] = []
        ids_lock = threading.Lock()
        unlock = clock.now() + 60

        def worker(sender: str) -> None:
            for _ in range(10):
                capsule_id = ready_ledger.create_capsule(sender, BOB, unlock, BLOB, "text")
                with ids_lock:
                    ids.append(capsule_id)

        threads = [threading.Thread(target=worker, args=(f"0x{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(ids) == list(range(80))
        assert ready_ledger.get_capsules_len() == 80
        assert ready_ledger.store.verify(OWNER)["valid"]
