"""
Pytest configuration and fixtures for Time Capsule tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import os
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from timecapsule.blobstore import FileBlobStore
from timecapsule.codec import derive_key
from timecapsule.codec.cipher import LEGACY_ITERATIONS
from timecapsule.ledger import CapsuleLedger, CapsuleStore, LocalLedgerClient, ManualClock

# Addresses used throughout the suite
OWNER = "0x1"
ALICE = "0xa11ce"
BOB = "0xb0b"
EVE = "0xeve"

# Fast KDF for tests (the enforced minimum)
TEST_KDF_ITERATIONS = 10_000

START_TIME = 1_700_000_000


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> ManualClock:
    """A manual clock starting at a fixed time."""
    return ManualClock(START_TIME)


@pytest.fixture
def store() -> Generator[CapsuleStore, None, None]:
    """An in-memory capsule store."""
    capsule_store = CapsuleStore(":memory:")
    yield capsule_store
    capsule_store.close()


@pytest.fixture
def ledger(store: CapsuleStore, clock: ManualClock) -> CapsuleLedger:
    """An uninitialized ledger owned by OWNER."""
    return CapsuleLedger(store, owner=OWNER, clock=clock)


@pytest.fixture
def ready_ledger(ledger: CapsuleLedger) -> CapsuleLedger:
    """A ledger whose store has been initialized."""
    ledger.init_storage(OWNER)
    return ledger


@pytest.fixture
def alice(ready_ledger: CapsuleLedger) -> LocalLedgerClient:
    """Client signing as ALICE."""
    return LocalLedgerClient(ready_ledger, ALICE)


@pytest.fixture
def bob(ready_ledger: CapsuleLedger) -> LocalLedgerClient:
    """Client signing as BOB."""
    return LocalLedgerClient(ready_ledger, BOB)


@pytest.fixture
def eve(ready_ledger: CapsuleLedger) -> LocalLedgerClient:
    """Client signing as EVE."""
    return LocalLedgerClient(ready_ledger, EVE)


@pytest.fixture
def blobs(temp_dir: Path) -> FileBlobStore:
    """A local blob store in a temporary directory."""
    return FileBlobStore(temp_dir / "blobs")


@pytest.fixture
def sample_settings_yaml(temp_dir: Path) -> str:
    """Return settings YAML pointing into the temporary directory."""
    return f"""
owner: "{OWNER}"
db_path: "{temp_dir / 'capsules.db'}"
blob_dir: "{temp_dir / 'blobs'}"
kdf_iterations: {TEST_KDF_ITERATIONS}
"""


@pytest.fixture
def legacy_seal() -> Callable[[bytes, str], bytes]:
    """Return a function that encrypts the way the old browser client did."""

    def _seal(plaintext: bytes, passphrase: str) -> bytes:
        salt = os.urandom(16)
        iv = os.urandom(16)
        key = derive_key(passphrase, salt, LEGACY_ITERATIONS, hashes.SHA1())
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return salt + iv + encryptor.update(padded) + encryptor.finalize()

    return _seal
