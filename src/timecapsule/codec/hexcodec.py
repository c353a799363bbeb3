"""
Hex wire codec.

The ledger persists ciphertext as lowercase hex, two digits per byte, high
nibble first. Decoding is strict: odd lengths and non-hex characters raise
InvalidEncodingError rather than being read as zero, so a corrupted string
can never reach the authenticated decrypt as silently altered bytes.
"""

from timecapsule.errors import InvalidEncodingError

HEX_DIGITS = "0123456789abcdef"
_NIBBLES = {c: i for i, c in enumerate(HEX_DIGITS)}
_NIBBLES.update({c.upper(): i for c, i in list(_NIBBLES.items()) if c.isalpha()})


def hex_encode(data: bytes) -> str:
    """Encode bytes as lowercase hex."""
    return "".join(HEX_DIGITS[b >> 4] + HEX_DIGITS[b & 0x0F] for b in data)


def hex_decode(text: str) -> bytes:
    """
    Decode a hex string back to bytes.

    An optional "0x" prefix and uppercase digits are accepted.

    Args:
        text: Hex string

    Returns:
        Decoded bytes

    Raises:
        InvalidEncodingError: On odd length or a non-hex character
    """
    if text.startswith(("0x", "0X")):
        text = text[2:]

    if len(text) % 2 != 0:
        raise InvalidEncodingError(reason=f"odd length {len(text)}")

    out = bytearray(len(text) // 2)
    for i in range(0, len(text), 2):
        high = _NIBBLES.get(text[i])
        low = _NIBBLES.get(text[i + 1])
        if high is None or low is None:
            bad = i if high is None else i + 1
            raise InvalidEncodingError(
                position=bad,
                reason=f"non-hex character {text[bad]!r} at position {bad}",
            )
        out[i // 2] = (high << 4) | low
    return bytes(out)


def is_hex(text: str) -> bool:
    """Whether text is even-length lowercase hex as stored on the ledger."""
    return len(text) % 2 == 0 and all(c in _NIBBLES and not c.isupper() for c in text)
