"""
Field codecs shared by the wire format and the signing payload.

Every field is rendered as text and joined with FIELD_DELIMITER. Byte fields
are lowercase hex; integers are plain decimal. The concatenated string travels
as unpadded base64url so it fits in a single HTTP header value.
"""

import base64
import binascii
import re

from powgate.exceptions import FieldLengthError, FieldParseError, HeaderDecodingError

FIELD_DELIMITER = "|"

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1
U64_MAX = 2**64 - 1

_SIGNED_PATTERN = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_PATTERN = re.compile(r"\+?[0-9]+")
_HEX_PATTERN = re.compile(r"(?:[0-9a-fA-F]{2})*")
_BASE64URL_PATTERN = re.compile(r"[A-Za-z0-9_-]*")


def join_fields(*fields) -> str:
    """Join already-rendered fields with the delimiter."""
    return FIELD_DELIMITER.join(str(field) for field in fields)


def encode_hex(data: bytes) -> str:
    return data.hex()


def decode_hex_field(value: str, field: str, length: int) -> bytes:
    """Decode a hex field that must hold exactly `length` bytes."""
    if not _HEX_PATTERN.fullmatch(value):
        raise FieldParseError(field, f"Failed to decode {field} hex string")

    decoded = bytes.fromhex(value)
    if len(decoded) != length:
        raise FieldLengthError(
            field, f"{field} must be exactly {length} bytes, got {len(decoded)}"
        )
    return decoded


def parse_i64(value: str, field: str) -> int:
    if not _SIGNED_PATTERN.fullmatch(value):
        raise FieldParseError(field, f"Failed to parse {field} as i64")

    number = int(value)
    if not I64_MIN <= number <= I64_MAX:
        raise FieldParseError(field, f"Failed to parse {field} as i64: out of range")
    return number


def parse_u64(value: str, field: str) -> int:
    if not _UNSIGNED_PATTERN.fullmatch(value):
        raise FieldParseError(field, f"Failed to parse {field} as u64")

    number = int(value)
    if number > U64_MAX:
        raise FieldParseError(field, f"Failed to parse {field} as u64: out of range")
    return number


def encode_header(concat_str: str) -> str:
    """Encode a concatenated challenge as unpadded base64url."""
    encoded = base64.urlsafe_b64encode(concat_str.encode("utf-8"))
    return encoded.rstrip(b"=").decode("ascii")


def decode_header(encoded: str) -> str:
    """
    Reverse encode_header.

    Raises HeaderDecodingError for anything that is not unpadded base64url
    or does not decode to UTF-8 text.
    """
    if not _BASE64URL_PATTERN.fullmatch(encoded) or len(encoded) % 4 == 1:
        raise HeaderDecodingError(
            "Base64 decode error: input is not unpadded base64url"
        )

    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except binascii.Error as exc:
        raise HeaderDecodingError(f"Base64 decode error: {exc}") from exc

    # Unused trailing bits must be zero, so every payload has one spelling.
    if base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") != encoded:
        raise HeaderDecodingError("Base64 decode error: non-canonical encoding")

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HeaderDecodingError(f"UTF-8 decode error: {exc}") from exc
