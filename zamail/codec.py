# zamail/codec.py
"""
ZaMail: Message Codec

Message text travels as one euint64: up to 8 UTF-8 bytes packed
big-endian, zero padded on the right. Decoding strips the padding.

    "hi"  -> 0x6869000000000000
"""

from __future__ import annotations

from .errors import MessageValidationError


MAX_MESSAGE_LENGTH = 8
PACKED_BYTES = 8


def validate_text(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> bytes:
    """
    Check message text and return its UTF-8 bytes.

    Raises:
        MessageValidationError: Empty, too many characters, or too many bytes
    """
    if not isinstance(text, str) or not text:
        raise MessageValidationError("Message text must not be empty")
    if len(text) > max_length:
        raise MessageValidationError(
            f"Message text is {len(text)} characters, max {max_length}"
        )
    data = text.encode("utf-8")
    if len(data) > PACKED_BYTES:
        raise MessageValidationError(
            f"Message text is {len(data)} UTF-8 bytes, max {PACKED_BYTES}"
        )
    return data


def encode_text(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> int:
    """Pack message text into a 64-bit integer."""
    data = validate_text(text, max_length)
    return int.from_bytes(data.ljust(PACKED_BYTES, b"\x00"), "big")


def decode_text(value: int) -> str:
    """
    Unpack a 64-bit integer into message text.

    Invalid UTF-8 (never produced by encode_text) is replaced, not raised.
    """
    if not 0 <= value < 2 ** (8 * PACKED_BYTES):
        raise ValueError(f"Value out of euint64 range: {value}")
    data = value.to_bytes(PACKED_BYTES, "big").rstrip(b"\x00")
    return data.decode("utf-8", errors="replace")
