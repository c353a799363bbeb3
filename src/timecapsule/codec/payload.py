"""
Capsule payload helpers.

A payload is the JSON document that gets encrypted into a capsule:

    {"text": "...", "files": [{"name", "type", "size", "locator"}], "timestamp": ms}

Capsules created before attachments existed hold bare text; open_payload
wraps such plaintext as a text-only payload with no timestamp. Blobs sealed
by the original browser client are read with the legacy CBC decoder.
"""

import json
import logging
import time

from pydantic import ValidationError

from timecapsule.codec.cipher import decrypt, decrypt_legacy, encrypt, is_legacy_layout
from timecapsule.errors import DecryptionFailedError
from timecapsule.schema import DEFAULT_KDF_ITERATIONS, ContentType, DecryptedPayload, FileRef

logger = logging.getLogger(__name__)


def build_payload(
    text: str = "",
    files: list[FileRef] | None = None,
    timestamp: int | None = None,
) -> DecryptedPayload:
    """
    Assemble a payload.

    Args:
        text: Message body; surrounding whitespace is stripped
        files: Attachment references already uploaded to a blob store
        timestamp: Creation time in epoch ms (defaults to now)

    Raises:
        ValueError: If both text and files are empty
    """
    text = text.strip()
    files = list(files or [])
    if not text and not files:
        raise ValueError("A capsule needs a message or at least one file")
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return DecryptedPayload(text=text, files=files, timestamp=timestamp)


def infer_content_type(payload: DecryptedPayload) -> ContentType:
    """Classify a payload as text, file or mixed."""
    if payload.files and payload.text:
        return ContentType.MIXED
    if payload.files:
        return ContentType.FILE
    return ContentType.TEXT


def serialize_payload(payload: DecryptedPayload) -> bytes:
    """Serialize a payload to compact UTF-8 JSON."""
    return payload.model_dump_json().encode("utf-8")


def parse_payload(plaintext: bytes) -> DecryptedPayload:
    """
    Parse decrypted plaintext into a payload.

    Raises:
        DecryptionFailedError: If the plaintext is not UTF-8
    """
    try:
        text = plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionFailedError(reason="plaintext is not UTF-8") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return DecryptedPayload(text=text)
    if not isinstance(data, dict) or not ({"text", "files"} & data.keys()):
        return DecryptedPayload(text=text)

    try:
        return DecryptedPayload.model_validate(data)
    except ValidationError:
        return DecryptedPayload(text=text)


def seal_payload(
    payload: DecryptedPayload,
    passphrase: str,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> bytes:
    """Serialize and encrypt a payload."""
    return encrypt(serialize_payload(payload), passphrase, iterations)


def open_payload(cipher_bytes: bytes, passphrase: str) -> DecryptedPayload:
    """
    Decrypt and parse a payload.

    Blobs that fail to open as the current format but have the legacy CBC
    shape get a second attempt with decrypt_legacy.

    Raises:
        DecryptionFailedError: If neither format opens the blob
    """
    try:
        plaintext = decrypt(cipher_bytes, passphrase)
    except DecryptionFailedError as e:
        if not passphrase or not is_legacy_layout(cipher_bytes):
            raise
        logger.debug("Current format rejected blob, trying legacy CBC: %s", e.reason)
        try:
            plaintext = decrypt_legacy(cipher_bytes, passphrase)
        except DecryptionFailedError:
            raise e from None
    return parse_payload(plaintext)
