"""
Passphrase-based content encryption.

Layout of a sealed blob:

    version (1) || iterations (4, big-endian) || salt (16) || nonce (12)
        || AES-256-GCM ciphertext with 16-byte tag

The key is derived with PBKDF2-HMAC-SHA256 from the passphrase and the salt,
using the iteration count recorded in the blob. The version and iteration
bytes are bound to the ciphertext as associated data. Salt and nonce are
drawn fresh from os.urandom on every call, so encrypting the same plaintext
twice never yields the same bytes.

Blobs written by the original browser client use a different layout and an
unauthenticated mode; decrypt_legacy reads those:

    salt (16) || iv (16) || AES-256-CBC ciphertext, PKCS7 padded

with PBKDF2-HMAC-SHA1 at 10,000 iterations. CBC has no tag, so a wrong
passphrase is only caught when the padding or UTF-8 check fails.
"""

import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from timecapsule.errors import DecryptionFailedError, EncryptionFailedError
from timecapsule.schema import DEFAULT_KDF_ITERATIONS, MAX_KDF_ITERATIONS, MIN_KDF_ITERATIONS

FORMAT_VERSION = 1

PREFIX = struct.Struct(">BI")
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
HEADER_SIZE = PREFIX.size + SALT_SIZE + NONCE_SIZE

LEGACY_IV_SIZE = 16
LEGACY_ITERATIONS = 10_000
LEGACY_HEADER_SIZE = SALT_SIZE + LEGACY_IV_SIZE
LEGACY_BLOCK_SIZE = 16


def derive_key(
    passphrase: str,
    salt: bytes,
    iterations: int = DEFAULT_KDF_ITERATIONS,
    algorithm: hashes.HashAlgorithm | None = None,
) -> bytes:
    """Derive a 256-bit key from a passphrase with PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=algorithm or hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def read_iterations(cipher_bytes: bytes) -> int:
    """
    Read the KDF iteration count recorded in a sealed blob.

    Raises:
        DecryptionFailedError: Truncated header, unknown version or an
            iteration count outside the accepted range
    """
    if len(cipher_bytes) < PREFIX.size:
        raise DecryptionFailedError(reason=f"ciphertext too short ({len(cipher_bytes)} bytes)")
    version, iterations = PREFIX.unpack_from(cipher_bytes)
    if version != FORMAT_VERSION:
        raise DecryptionFailedError(reason=f"unsupported format version {version}")
    if not MIN_KDF_ITERATIONS <= iterations <= MAX_KDF_ITERATIONS:
        raise DecryptionFailedError(reason=f"KDF iterations out of range ({iterations})")
    return iterations


def encrypt(
    plaintext: bytes,
    passphrase: str,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> bytes:
    """
    Encrypt plaintext under a passphrase.

    Args:
        plaintext: Bytes to protect
        passphrase: Secret shared between sender and receiver out of band
        iterations: PBKDF2 iterations; recorded in the blob header

    Returns:
        version || iterations || salt || nonce || ciphertext

    Raises:
        EncryptionFailedError: If the passphrase is empty or iterations out of range
    """
    if not passphrase:
        raise EncryptionFailedError(reason="passphrase is required")
    if not MIN_KDF_ITERATIONS <= iterations <= MAX_KDF_ITERATIONS:
        raise EncryptionFailedError(
            reason=(
                f"KDF iterations must be between {MIN_KDF_ITERATIONS} and "
                f"{MAX_KDF_ITERATIONS}, got {iterations}"
            )
        )

    prefix = PREFIX.pack(FORMAT_VERSION, iterations)
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(passphrase, salt, iterations)
    return prefix + salt + nonce + AESGCM(key).encrypt(nonce, plaintext, prefix)


def decrypt(cipher_bytes: bytes, passphrase: str) -> bytes:
    """
    Decrypt a blob produced by encrypt.

    The iteration count comes from the blob itself, so blobs sealed under
    any supported setting open the same way.

    Args:
        cipher_bytes: version || iterations || salt || nonce || ciphertext
        passphrase: The passphrase used to encrypt

    Returns:
        The original plaintext

    Raises:
        DecryptionFailedError: Wrong passphrase, unknown format, truncated
            or corrupted input
    """
    if not passphrase:
        raise DecryptionFailedError(reason="passphrase is required")
    if len(cipher_bytes) < HEADER_SIZE + TAG_SIZE:
        raise DecryptionFailedError(
            reason=f"ciphertext too short ({len(cipher_bytes)} bytes)"
        )
    iterations = read_iterations(cipher_bytes)

    prefix = cipher_bytes[: PREFIX.size]
    salt = cipher_bytes[PREFIX.size : PREFIX.size + SALT_SIZE]
    nonce = cipher_bytes[PREFIX.size + SALT_SIZE : HEADER_SIZE]
    body = cipher_bytes[HEADER_SIZE:]
    key = derive_key(passphrase, salt, iterations)
    try:
        return AESGCM(key).decrypt(nonce, body, prefix)
    except InvalidTag as e:
        raise DecryptionFailedError(
            reason="authentication failed (wrong passphrase or corrupted data)"
        ) from e


def is_legacy_layout(cipher_bytes: bytes) -> bool:
    """Whether a blob has the shape of an original-client CBC blob."""
    body = len(cipher_bytes) - LEGACY_HEADER_SIZE
    return body > 0 and body % LEGACY_BLOCK_SIZE == 0


def decrypt_legacy(cipher_bytes: bytes, passphrase: str) -> bytes:
    """
    Decrypt a CBC blob written by the original browser client.

    The plaintext must be valid UTF-8; the old client encrypted text only.

    Raises:
        DecryptionFailedError: Bad padding, bad UTF-8 or truncated input
    """
    if not passphrase:
        raise DecryptionFailedError(reason="passphrase is required")
    if not is_legacy_layout(cipher_bytes):
        raise DecryptionFailedError(
            reason=f"legacy ciphertext has invalid length ({len(cipher_bytes)} bytes)"
        )

    salt = cipher_bytes[:SALT_SIZE]
    iv = cipher_bytes[SALT_SIZE:LEGACY_HEADER_SIZE]
    body = cipher_bytes[LEGACY_HEADER_SIZE:]
    key = derive_key(passphrase, salt, LEGACY_ITERATIONS, hashes.SHA1())

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        plaintext.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionFailedError(
            reason="invalid padding or text (wrong passphrase or corrupted data)"
        ) from e
    if not plaintext:
        raise DecryptionFailedError(reason="empty plaintext")
    return plaintext
