"""
Ed25519 key material loading.

Keys arrive as base64 text, either the raw 32-byte key or a larger blob such
as an unarmored PGP key export. For blobs there is no reliable structure to
lean on, so a small list of scanning strategies is tried in order and the
first structurally valid 32-byte window wins.

This is best-effort recovery, not format validation. It is acceptable only
because the input is operator-supplied configuration, never client data.
"""

import base64
import binascii
import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from nacl.bindings import crypto_core_ed25519_is_valid_point
from nacl.signing import SigningKey, VerifyKey

from powgate.config import Settings, settings
from powgate.exceptions import (
    Base64DecodingError,
    InvalidKeyFormatError,
    MissingConfigurationError,
    PgpParsingError,
)

logger = structlog.get_logger()

KEY_LENGTH = 32

# OpenPGP public-key algorithm id for EdDSA (22)
ED25519_ALGORITHM_TAG = 0x16

PRIVATE_KEY_OFFSET_RANGE = range(20, 201)
PUBLIC_KEY_OFFSET_RANGE = range(10, 101)
COMMON_PGP_OFFSETS = tuple(range(32, 161, 4))

_ZERO_WINDOW = bytes(KEY_LENGTH)
_FF_WINDOW = b"\xff" * KEY_LENGTH
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/=]")


def is_valid_public_key(key_bytes: bytes) -> bool:
    """True if the bytes encode a canonical, prime-order Ed25519 point."""
    if len(key_bytes) != KEY_LENGTH:
        return False
    return crypto_core_ed25519_is_valid_point(key_bytes)


def verify_key_from_bytes(key_bytes: bytes) -> VerifyKey:
    if len(key_bytes) != KEY_LENGTH:
        raise InvalidKeyFormatError(
            f"Public key must be {KEY_LENGTH} bytes, got {len(key_bytes)} bytes"
        )
    if not is_valid_public_key(key_bytes):
        raise InvalidKeyFormatError("Public key is not a valid Ed25519 point")
    return VerifyKey(key_bytes)


def _is_degenerate(window: bytes) -> bool:
    return window == _ZERO_WINDOW or window == _FF_WINDOW


def _is_structurally_valid(window: bytes, is_private: bool) -> bool:
    # Every 32-byte string is a usable Ed25519 seed.
    if is_private:
        return True
    return is_valid_public_key(window)


def _b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


def decode_key_data(key_data: str) -> bytes:
    """
    Decode base64 key text, tolerating mild corruption.

    Whitespace is always removed. Characters outside the base64 alphabet are
    dropped for one decode attempt; failing that, trailing characters are
    trimmed until a prefix decodes.
    """
    cleaned = "".join(key_data.split())
    logger.debug("key_material_cleaned", raw_chars=len(key_data), cleaned_chars=len(cleaned))

    if _NON_BASE64.search(cleaned):
        fixed = _NON_BASE64.sub("", cleaned)
        logger.debug("key_material_invalid_chars_removed", removed=len(cleaned) - len(fixed))
        try:
            return _b64decode(fixed)
        except binascii.Error as exc:
            logger.debug("key_material_fixed_decode_failed", error=str(exc))

    try:
        return _b64decode(cleaned)
    except binascii.Error as exc:
        first_error = exc

    trimmed = cleaned[:-1]
    while trimmed:
        try:
            decoded = _b64decode(trimmed)
        except binascii.Error:
            trimmed = trimmed[:-1]
            continue
        logger.debug("key_material_decoded_after_trim", chars=len(trimmed), size=len(decoded))
        return decoded

    raise Base64DecodingError(f"Failed to decode cleaned key data: {first_error}")


def find_key_by_algorithm_tag(blob: bytes, is_private: bool) -> bytes | None:
    """Take the 32 bytes following an Ed25519 algorithm tag."""
    for index, byte in enumerate(blob):
        if byte != ED25519_ALGORITHM_TAG:
            continue
        start = index + 1
        window = blob[start : start + KEY_LENGTH]
        if len(window) < KEY_LENGTH:
            break
        if _is_structurally_valid(window, is_private):
            logger.debug("key_found_via_algorithm_tag", offset=start)
            return window
    return None


def find_key_by_sliding_window(blob: bytes, is_private: bool) -> bytes | None:
    """
    Check every 32-byte window.

    A private key whose derived public key shows up later in the blob is the
    strongest match; otherwise the window offset must look like it sits after
    a typical packet header.
    """
    for offset in range(len(blob) - KEY_LENGTH + 1):
        window = blob[offset : offset + KEY_LENGTH]
        if _is_degenerate(window):
            continue

        if is_private:
            derived_public = bytes(SigningKey(window).verify_key)
            if derived_public in blob[offset + KEY_LENGTH :]:
                logger.debug("private_key_found_with_public_key", offset=offset)
                return window
            if offset in PRIVATE_KEY_OFFSET_RANGE:
                logger.debug("private_key_found_at_offset", offset=offset)
                return window
        elif offset in PUBLIC_KEY_OFFSET_RANGE and is_valid_public_key(window):
            logger.debug("public_key_found_at_offset", offset=offset)
            return window
    return None


def find_key_at_common_offsets(blob: bytes, is_private: bool) -> bytes | None:
    """Probe offsets typical of PGP key packet headers."""
    for offset in COMMON_PGP_OFFSETS:
        window = blob[offset : offset + KEY_LENGTH]
        if len(window) < KEY_LENGTH:
            break
        if _is_degenerate(window):
            continue
        if _is_structurally_valid(window, is_private):
            logger.debug("key_found_at_common_offset", offset=offset)
            return window
    return None


KEY_SCAN_STRATEGIES: tuple[Callable[[bytes, bool], bytes | None], ...] = (
    find_key_by_algorithm_tag,
    find_key_by_sliding_window,
    find_key_at_common_offsets,
)


def extract_ed25519_key(key_bytes: bytes, is_private: bool) -> bytes:
    """Pull a 32-byte Ed25519 key out of decoded key bytes."""
    if len(key_bytes) == KEY_LENGTH:
        if not _is_structurally_valid(key_bytes, is_private):
            raise InvalidKeyFormatError("Invalid raw public key: not a valid Ed25519 point")
        return key_bytes

    if len(key_bytes) > KEY_LENGTH:
        for strategy in KEY_SCAN_STRATEGIES:
            found = strategy(key_bytes, is_private)
            if found is not None:
                return found

    raise PgpParsingError(
        f"Could not find valid Ed25519 key material in {len(key_bytes)} bytes "
        "of PGP data using multiple strategies"
    )


def parse_key_material(key_data: str, is_private: bool) -> bytes:
    """Decode base64 key text (raw or PGP-wrapped) into a 32-byte key."""
    key_bytes = decode_key_data(key_data)
    logger.debug("key_material_decoded", size=len(key_bytes), is_private=is_private)
    return extract_ed25519_key(key_bytes, is_private)


def _decode_raw_key(key_data: str, label: str) -> bytes:
    cleaned = "".join(key_data.split())
    try:
        key_bytes = _b64decode(cleaned)
    except binascii.Error as exc:
        raise Base64DecodingError(f"{label} (raw fallback): {exc}") from exc

    if len(key_bytes) != KEY_LENGTH:
        raise InvalidKeyFormatError(
            f"{label} must be {KEY_LENGTH} bytes (raw Ed25519) or valid PGP format, "
            f"got {len(key_bytes)} bytes"
        )
    return key_bytes


def load_private_key_from_data(key_data: str) -> SigningKey:
    """Load a signing key from base64 text (PGP blob or raw 32-byte seed)."""
    try:
        return SigningKey(parse_key_material(key_data, is_private=True))
    except (PgpParsingError, Base64DecodingError) as exc:
        logger.debug("private_key_raw_fallback", reason=str(exc))

    return SigningKey(_decode_raw_key(key_data, "Private key"))


def load_public_key_from_data(key_data: str) -> VerifyKey:
    """Load a verifying key from base64 text (PGP blob or raw 32-byte key)."""
    try:
        return verify_key_from_bytes(parse_key_material(key_data, is_private=False))
    except (PgpParsingError, Base64DecodingError) as exc:
        logger.debug("public_key_raw_fallback", reason=str(exc))

    return verify_key_from_bytes(_decode_raw_key(key_data, "Public key"))


def load_private_key_from_settings(config: Settings | None = None) -> SigningKey:
    config = config or settings
    if config.challenge_private_key is None:
        raise MissingConfigurationError("CHALLENGE_PRIVATE_KEY")
    return load_private_key_from_data(config.challenge_private_key)


def load_public_key_from_settings(config: Settings | None = None) -> VerifyKey:
    config = config or settings
    if config.challenge_public_key is None:
        raise MissingConfigurationError("CHALLENGE_PUBLIC_KEY")
    return load_public_key_from_data(config.challenge_public_key)


@dataclass(frozen=True)
class TrustedKeys:
    """
    Key material for issuing and verifying challenges.

    Build it once at startup with from_settings() and pass it to every
    signing / verification call. signing_key is None on verify-only hosts.
    """

    verify_key: VerifyKey
    signing_key: SigningKey | None = None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TrustedKeys":
        config = config or settings
        verify_key = load_public_key_from_settings(config)

        signing_key = None
        if config.challenge_private_key is not None:
            signing_key = load_private_key_from_settings(config)

        logger.info(
            "trusted_keys_loaded",
            can_sign=signing_key is not None,
            public_key=bytes(verify_key).hex(),
        )
        return cls(verify_key=verify_key, signing_key=signing_key)

    @classmethod
    def from_signing_key(cls, signing_key: SigningKey) -> "TrustedKeys":
        return cls(verify_key=signing_key.verify_key, signing_key=signing_key)

    @property
    def public_key_bytes(self) -> bytes:
        return bytes(self.verify_key)
