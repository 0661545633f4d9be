"""
Ed25519 signing and verification of challenges.

The signed payload is the canonical join of

    random_nonce|created_time|expiration_time|website_id|hex(challenge_param)|hex(public_key)

recommended_attempts is advisory only and is deliberately left out, as is the
signature itself. A client can therefore trust the threshold and timestamps
of a verified challenge, but not its recommended_attempts hint.
"""

import base64
from typing import TYPE_CHECKING

from nacl.exceptions import BadSignatureError
from nacl.exceptions import CryptoError as NaclCryptoError
from nacl.signing import SigningKey

from powgate.exceptions import (
    InvalidKeyFormatError,
    MissingConfigurationError,
    SigningError,
    VerificationError,
)
from powgate.services.encoding import encode_hex, join_fields
from powgate.services.key_loader import TrustedKeys, verify_key_from_bytes

if TYPE_CHECKING:
    from powgate.models.challenge import Challenge


def create_signing_message(
    random_nonce: str,
    created_time: int,
    expiration_time: int,
    website_id: str,
    challenge_param: bytes,
    public_key: bytes,
) -> str:
    """Build the canonical signing payload from individual challenge fields."""
    return join_fields(
        random_nonce,
        created_time,
        expiration_time,
        website_id,
        encode_hex(challenge_param),
        encode_hex(public_key),
    )


def challenge_signing_message(challenge: "Challenge") -> str:
    return create_signing_message(
        challenge.random_nonce,
        challenge.created_time,
        challenge.expiration_time,
        challenge.website_id,
        challenge.challenge_param,
        challenge.public_key,
    )


def generate_signature(signing_key: SigningKey, message: str) -> bytes:
    """Sign the UTF-8 bytes of message. Ed25519 signatures are deterministic."""
    if not isinstance(signing_key, SigningKey):
        raise SigningError(f"expected a SigningKey, got {type(signing_key).__name__}")
    try:
        return signing_key.sign(message.encode("utf-8")).signature
    except (NaclCryptoError, TypeError) as exc:
        raise SigningError(str(exc)) from exc


def sign_challenge(challenge: "Challenge", keys: TrustedKeys) -> bytes:
    """Sign a challenge's current fields with the configured private key."""
    if keys.signing_key is None:
        raise MissingConfigurationError("CHALLENGE_PRIVATE_KEY")
    return generate_signature(keys.signing_key, challenge_signing_message(challenge))


def _verify(challenge: "Challenge", verify_key) -> None:
    message = challenge_signing_message(challenge).encode("utf-8")
    try:
        verify_key.verify(message, challenge.challenge_signature)
    except BadSignatureError as exc:
        raise VerificationError(f"Signature verification failed: {exc}") from exc
    except NaclCryptoError as exc:
        raise InvalidKeyFormatError(f"Invalid signature format: {exc}") from exc


def verify_challenge_signature(challenge: "Challenge", keys: TrustedKeys) -> None:
    """
    Verify a challenge against the trusted public key.

    The key embedded in the challenge is ignored here; only the configured
    key authenticates the issuer.

    Raises:
        VerificationError: the signature does not match the challenge fields
    """
    _verify(challenge, keys.verify_key)


def verify_challenge_signature_with_key(challenge: "Challenge", public_key: bytes) -> None:
    """
    Verify a challenge against an explicitly supplied 32-byte public key.

    Typically used client-side with challenge.public_key. That only proves the
    challenge was not modified after signing; anyone can self-sign a challenge
    that embeds their own key.

    Keys outside the prime-order subgroup (small-order or mixed-order points)
    are rejected up front with InvalidKeyFormatError, not reported as a
    signature mismatch.
    """
    _verify(challenge, verify_key_from_bytes(public_key))


def validate_challenge(challenge: "Challenge", keys: TrustedKeys) -> None:
    """
    Full server-side check: signature, then expiry, then website_id.

    Raises on the first failing check.
    """
    verify_challenge_signature(challenge, keys)

    if challenge.is_expired():
        raise VerificationError("Challenge has expired")

    if not challenge.website_id:
        raise VerificationError("Empty website_id")


def generate_test_keypair() -> tuple[str, str]:
    """Generate a fresh keypair as (private_b64, public_b64) raw base64 strings."""
    signing_key = SigningKey.generate()
    private_b64 = base64.b64encode(bytes(signing_key)).decode("ascii")
    public_b64 = base64.b64encode(bytes(signing_key.verify_key)).decode("ascii")
    return private_b64, public_b64
