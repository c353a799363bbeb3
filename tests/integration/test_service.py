"""
Integration tests for CapsuleService.

Runs the create and open flows end to end over an in-memory ledger, the real
codec and a local blob store. Capsules sealed by the old browser client are
opened from their CBC ciphertext and IPFS attachments.
"""

import json
from pathlib import Path

import httpx
import pytest

from timecapsule.blobstore import FileBlobStore, HttpBlobStore, IpfsGatewayStore
from timecapsule.errors import (
    BlobNotFoundError,
    CapsuleLockedError,
    DecryptionFailedError,
    UnauthorizedError,
)
from timecapsule.ledger import LocalLedgerClient, ManualClock
from timecapsule.schema import DEFAULT_KDF_ITERATIONS, ContentType, FileRef
from timecapsule.service import Attachment, CapsuleService

BOB = "0xb0b"
ITERATIONS = 10_000
CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
IPFS_GATEWAY = "https://ipfs.example/ipfs"


@pytest.fixture
def alice_service(alice: LocalLedgerClient, blobs: FileBlobStore, clock: ManualClock) -> CapsuleService:
    """Service acting as ALICE."""
    return CapsuleService(alice, blobs=blobs, clock=clock, kdf_iterations=ITERATIONS)


@pytest.fixture
def bob_service(bob: LocalLedgerClient, blobs: FileBlobStore, clock: ManualClock) -> CapsuleService:
    """Service acting as BOB."""
    return CapsuleService(bob, blobs=blobs, clock=clock, kdf_iterations=ITERATIONS)


@pytest.fixture
def eve_service(eve: LocalLedgerClient, blobs: FileBlobStore, clock: ManualClock) -> CapsuleService:
    """Service acting as EVE."""
    return CapsuleService(eve, blobs=blobs, clock=clock, kdf_iterations=ITERATIONS)


class TestCreate:
    """Tests for the create flow."""

    def test_text_capsule(self, alice_service: CapsuleService, clock: ManualClock) -> None:
        """A text capsule gets id 0 and unlocks relative to the clock."""
        created = alice_service.create(BOB, "pw-Strong-1", text="hello", unlock_in=60)
        assert created.capsule_id == 0
        assert created.unlock_time == clock.now() + 60
        assert created.content_type == ContentType.TEXT

    def test_absolute_unlock(self, alice_service: CapsuleService, clock: ManualClock) -> None:
        """An absolute unlock time is used as given."""
        created = alice_service.create(BOB, "pw", text="hi", unlock_time=clock.now() + 5)
        assert created.unlock_time == clock.now() + 5

    def test_unlock_arguments_exclusive(self, alice_service: CapsuleService) -> None:
        """Exactly one unlock argument is required."""
        with pytest.raises(ValueError):
            alice_service.create(BOB, "pw", text="hi")
        with pytest.raises(ValueError):
            alice_service.create(BOB, "pw", text="hi", unlock_in=1, unlock_time=10**10)

    def test_attachments_uploaded(self, alice_service: CapsuleService, blobs: FileBlobStore) -> None:
        """Attachments land in the blob store and in the payload."""
        created = alice_service.create(
            BOB,
            "pw",
            text="photos",
            attachments=[Attachment(name="a.jpg", data=b"jpeg bytes", type="image/jpeg")],
            unlock_in=60,
        )
        assert created.content_type == ContentType.MIXED
        ref = created.files[0]
        assert ref.size == len(b"jpeg bytes")
        assert blobs.get(ref.locator) == b"jpeg bytes"

    def test_file_only(self, alice_service: CapsuleService) -> None:
        """A capsule with only files is FILE."""
        created = alice_service.create(
            BOB, "pw", attachments=[Attachment(name="a.bin", data=b"\x00")], unlock_in=60
        )
        assert created.content_type == ContentType.FILE

    def test_attachments_need_blob_store(self, alice: LocalLedgerClient, clock: ManualClock) -> None:
        """Attachments without a blob store are refused."""
        service = CapsuleService(alice, clock=clock, kdf_iterations=ITERATIONS)
        with pytest.raises(ValueError, match="blob store"):
            service.create(BOB, "pw", attachments=[Attachment(name="a", data=b"x")], unlock_in=60)

    def test_attachment_from_path(self, temp_dir: Path) -> None:
        """Attachments can be read from disk."""
        path = temp_dir / "note.txt"
        path.write_bytes(b"on disk")
        attachment = Attachment.from_path(path, "text/plain")
        assert attachment.name == "note.txt"
        assert attachment.data == b"on disk"
        assert attachment.type == "text/plain"


class TestOpen:
    """Tests for the open flow."""

    def test_full_flow(
        self,
        alice_service: CapsuleService,
        bob_service: CapsuleService,
        clock: ManualClock,
    ) -> None:
        """Bob opens Alice's capsule after unlock and fetches the file."""
        created = alice_service.create(
            BOB,
            "shared secret",
            text="happy birthday",
            attachments=[Attachment(name="card.txt", data=b"card")],
            unlock_in=3600,
        )
        clock.advance(3600)

        payload = bob_service.open(created.capsule_id, "shared secret")
        assert payload.text == "happy birthday"
        assert payload.timestamp is not None
        assert bob_service.fetch_file(payload.files[0]) == b"card"

        # The sender can open it too
        assert alice_service.open(created.capsule_id, "shared secret").text == "happy birthday"

    def test_locked(self, alice_service: CapsuleService, bob_service: CapsuleService) -> None:
        """Opening early raises CapsuleLockedError with the time left."""
        created = alice_service.create(BOB, "pw", text="later", unlock_in=100)
        with pytest.raises(CapsuleLockedError) as exc_info:
            bob_service.open(created.capsule_id, "pw")
        assert exc_info.value.seconds_remaining == 100

    def test_locked_before_unauthorized(
        self, alice_service: CapsuleService, eve_service: CapsuleService
    ) -> None:
        """A stranger sees "locked" while the capsule is locked."""
        created = alice_service.create(BOB, "pw", text="x", unlock_in=100)
        with pytest.raises(CapsuleLockedError):
            eve_service.open(created.capsule_id, "pw")

    def test_stranger(
        self,
        alice_service: CapsuleService,
        eve_service: CapsuleService,
        clock: ManualClock,
    ) -> None:
        """A stranger cannot open even with the passphrase."""
        created = alice_service.create(BOB, "pw", text="x", unlock_in=100)
        clock.advance(100)
        with pytest.raises(UnauthorizedError):
            eve_service.open(created.capsule_id, "pw")

    def test_wrong_passphrase(
        self,
        alice_service: CapsuleService,
        bob_service: CapsuleService,
        clock: ManualClock,
    ) -> None:
        """A wrong passphrase is a decryption failure."""
        created = alice_service.create(BOB, "pw", text="x", unlock_in=1)
        clock.advance(1)
        with pytest.raises(DecryptionFailedError):
            bob_service.open(created.capsule_id, "not it")

    def test_missing_blob(self, bob_service: CapsuleService) -> None:
        """Fetching a blob that was never stored raises."""
        ref = FileRef(name="gone", locator="0" * 64)
        with pytest.raises(BlobNotFoundError):
            bob_service.fetch_file(ref)

    def test_opens_with_stored_iterations(
        self,
        alice_service: CapsuleService,
        bob: LocalLedgerClient,
        clock: ManualClock,
    ) -> None:
        """A capsule sealed at one work factor opens under a service set to another."""
        created = alice_service.create(BOB, "pw", text="portable", unlock_in=1)
        clock.advance(1)
        receiver = CapsuleService(bob, clock=clock, kdf_iterations=DEFAULT_KDF_ITERATIONS)
        assert receiver.kdf_iterations != ITERATIONS
        assert receiver.open(created.capsule_id, "pw").text == "portable"


class TestLegacyCapsules:
    """Tests for capsules written by the old browser client."""

    def test_opens_cbc_capsule(
        self,
        alice: LocalLedgerClient,
        bob_service: CapsuleService,
        clock: ManualClock,
        legacy_seal,
    ) -> None:
        """A CBC ciphertext with an ipfsHash file ref opens end to end."""
        document = {
            "text": "from the old client",
            "files": [{"name": "photo.jpg", "type": "image/jpeg", "size": 4, "ipfsHash": CID}],
            "timestamp": 1_690_000_000_000,
        }
        sealed = legacy_seal(json.dumps(document).encode(), "old secret")
        capsule_id = alice.create_capsule(BOB, clock.now() + 1, sealed, "mixed")
        clock.advance(1)

        payload = bob_service.open(capsule_id, "old secret")
        assert payload.text == "from the old client"
        assert payload.files[0].locator == CID
        assert payload.timestamp == 1_690_000_000_000

    def test_wrong_passphrase(
        self,
        alice: LocalLedgerClient,
        bob_service: CapsuleService,
        clock: ManualClock,
        legacy_seal,
    ) -> None:
        """A wrong passphrase on a CBC capsule is a decryption failure."""
        sealed = legacy_seal(b'{"text": "a longer message body", "files": []}', "right")
        capsule_id = alice.create_capsule(BOB, clock.now() + 1, sealed, "text")
        clock.advance(1)
        with pytest.raises(DecryptionFailedError):
            bob_service.open(capsule_id, "wrong")

    def test_fetches_cid_from_ipfs(self, bob: LocalLedgerClient, blobs: FileBlobStore) -> None:
        """CID locators are read through the IPFS gateways."""
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"jpeg")

        ipfs = IpfsGatewayStore([IPFS_GATEWAY], transport=httpx.MockTransport(handler))
        with CapsuleService(bob, blobs=blobs, ipfs=ipfs) as service:
            data = service.fetch_file(FileRef(name="photo.jpg", ipfsHash=CID))
        assert data == b"jpeg"
        assert requested == [f"{IPFS_GATEWAY}/{CID}"]

    def test_cid_without_gateway(self, bob_service: CapsuleService) -> None:
        """Without IPFS gateways a CID cannot be fetched."""
        with pytest.raises(BlobNotFoundError, match="No IPFS gateway"):
            bob_service.fetch_file(FileRef(name="photo.jpg", locator=CID))


class TestClose:
    """Tests for releasing blob store resources."""

    def test_closes_http_clients(self, bob: LocalLedgerClient) -> None:
        """Leaving the service context closes both HTTP clients."""
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        blobs = HttpBlobStore(["https://blobs.example"], transport=transport)
        ipfs = IpfsGatewayStore([IPFS_GATEWAY], transport=transport)
        with CapsuleService(bob, blobs=blobs, ipfs=ipfs):
            assert not blobs._client.is_closed
        assert blobs._client.is_closed
        assert ipfs._client.is_closed

    def test_close_without_stores(self, bob: LocalLedgerClient) -> None:
        """A service with no blob stores closes cleanly."""
        CapsuleService(bob).close()


class TestStatus:
    """Tests for status and list_mine."""

    def test_status(
        self,
        alice_service: CapsuleService,
        eve_service: CapsuleService,
        clock: ManualClock,
    ) -> None:
        """Status reflects time and party membership."""
        created = alice_service.create(BOB, "pw", text="x", unlock_in=100)
        status = alice_service.status(created.capsule_id)
        assert status.is_authorized
        assert not status.is_unlocked
        assert status.seconds_remaining == 100
        assert not status.can_open

        clock.advance(100)
        assert alice_service.status(created.capsule_id).can_open
        eve_status = eve_service.status(created.capsule_id)
        assert eve_status.is_unlocked
        assert not eve_status.can_open
        assert eve_status.seconds_remaining == 0

    def test_list_mine(
        self,
        alice_service: CapsuleService,
        bob_service: CapsuleService,
        eve_service: CapsuleService,
    ) -> None:
        """list_mine returns capsules the account is party to."""
        alice_service.create(BOB, "pw", text="one", unlock_in=10)
        alice_service.create("0xcarol", "pw", text="two", unlock_in=10)
        assert [s.meta.id for s in alice_service.list_mine()] == [0, 1]
        assert [s.meta.id for s in bob_service.list_mine()] == [0]
        assert eve_service.list_mine() == []
