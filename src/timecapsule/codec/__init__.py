"""
Content codec for Time Capsule.

Turns a passphrase and a plaintext payload into the opaque bytes stored on
the ledger, and back. Nothing here touches the ledger or performs I/O.

Components:
    - hexcodec: bytes <-> lowercase hex wire form
    - cipher: PBKDF2 + AES-256-GCM encrypt/decrypt (plus legacy CBC reader)
    - payload: JSON payload assembly and parsing
    - passphrase: generation and strength scoring
"""

from timecapsule.codec.cipher import (
    decrypt,
    decrypt_legacy,
    derive_key,
    encrypt,
    is_legacy_layout,
    read_iterations,
)
from timecapsule.codec.hexcodec import hex_decode, hex_encode, is_hex
from timecapsule.codec.passphrase import (
    PassphraseStrength,
    check_passphrase_strength,
    generate_passphrase,
)
from timecapsule.codec.payload import (
    build_payload,
    infer_content_type,
    open_payload,
    parse_payload,
    seal_payload,
    serialize_payload,
)

__all__ = [
    "encrypt",
    "decrypt",
    "decrypt_legacy",
    "is_legacy_layout",
    "read_iterations",
    "derive_key",
    "hex_encode",
    "hex_decode",
    "is_hex",
    "PassphraseStrength",
    "check_passphrase_strength",
    "generate_passphrase",
    "build_payload",
    "infer_content_type",
    "open_payload",
    "parse_payload",
    "seal_payload",
    "serialize_payload",
]
