import math
import secrets
from datetime import UTC, datetime
from typing import Annotated

from nacl.signing import SigningKey
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from powgate.exceptions import FieldCountError
from powgate.services.encoding import (
    FIELD_DELIMITER,
    I64_MAX,
    I64_MIN,
    U64_MAX,
    decode_hex_field,
    decode_header,
    encode_header,
    encode_hex,
    join_fields,
    parse_i64,
    parse_u64,
)
from powgate.services.signing import create_signing_message, generate_signature

CHALLENGE_TTL_MS = 30_000
CONCAT_FIELD_COUNT = 8

HASH_BITS = 256
THRESHOLD_SIZE = HASH_BITS // 8
MAX_THRESHOLD = b"\xff" * THRESHOLD_SIZE
MIN_THRESHOLD = (1).to_bytes(THRESHOLD_SIZE, "big")

Bytes32 = Annotated[bytes, Field(min_length=32, max_length=32)]
Bytes64 = Annotated[bytes, Field(min_length=64, max_length=64)]


def current_time_millis() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def generate_random_nonce() -> str:
    """16 random bytes as hex."""
    return secrets.token_hex(16)


def difficulty_to_challenge_param(difficulty: int) -> bytes:
    """
    Convert a difficulty (expected number of attempts) to a 32-byte threshold.

    Hash outputs are uniform over 256 bits, so the exact threshold would be
    2^256 / difficulty. We approximate it with a single power of two: the bit
    at round(256 - log2(difficulty)) is set and everything else is zero. Two
    difficulties that round to the same bit give the same threshold.

    Examples:
        difficulty = 1         -> ff..ff (always accept)
        difficulty = 2         -> 80 00 .. 00 (2^255)
        difficulty = 10_000    -> 2^243
        difficulty = 1_000_000 -> 2^236

    Raises:
        ValueError: if difficulty is zero (or otherwise outside 1..2^64-1)
    """
    if difficulty == 0:
        raise ValueError("Difficulty cannot be zero.")
    if difficulty < 0 or difficulty > U64_MAX:
        raise ValueError(f"Difficulty must be between 1 and {U64_MAX}, got {difficulty}")

    if difficulty == 1:
        return MAX_THRESHOLD

    target_exponent = HASH_BITS - math.log2(float(difficulty))

    if target_exponent <= 0:
        return MIN_THRESHOLD
    if target_exponent >= HASH_BITS:
        return MAX_THRESHOLD

    # Round half away from zero; target_exponent is positive here.
    bit_position = math.floor(target_exponent + 0.5)
    if bit_position >= HASH_BITS:
        return MAX_THRESHOLD

    return (1 << bit_position).to_bytes(THRESHOLD_SIZE, "big")


def recommended_attempts(difficulty: int) -> int:
    """
    Upper-bound hint for how many attempts a client should budget.

    The expected count equals the difficulty; twice that, saturated at the
    u64 maximum, is what clients are told.
    """
    return min(difficulty * 2, U64_MAX)


class Challenge(BaseModel):
    """
    A signed proof-of-work challenge.

    * `random_nonce`:         hex of 16 random bytes.
    * `created_time`:         unix milliseconds.
    * `expiration_time`:      unix milliseconds, created_time + 30s.
    * `website_id`:           identifier of the protected site.
    * `challenge_param`:      32-byte big-endian threshold; a hash is accepted if it is below it.
    * `recommended_attempts`: advisory attempt budget, not covered by the signature.
    * `public_key`:           Ed25519 public key of the issuer.
    * `challenge_signature`:  Ed25519 signature over the signed fields.
    """

    model_config = ConfigDict(validate_assignment=True)

    random_nonce: str
    created_time: int = Field(ge=I64_MIN, le=I64_MAX)
    expiration_time: int = Field(ge=I64_MIN, le=I64_MAX)
    website_id: str
    challenge_param: Bytes32
    recommended_attempts: int = Field(ge=0, le=U64_MAX)
    public_key: Bytes32
    challenge_signature: Bytes64

    @field_validator("random_nonce", "website_id")
    @classmethod
    def reject_delimiter(cls, v):
        if FIELD_DELIMITER in v:
            raise ValueError(f"must not contain the field delimiter {FIELD_DELIMITER!r}")
        return v

    @field_validator("challenge_param", "public_key", "challenge_signature", mode="before")
    @classmethod
    def decode_hex_input(cls, v):
        """Accept lowercase/uppercase hex strings for byte fields (JSON input)."""
        if isinstance(v, str):
            try:
                return bytes.fromhex(v)
            except ValueError as exc:
                raise ValueError(f"invalid hex string: {exc}") from exc
        return v

    @field_serializer("challenge_param", "public_key", "challenge_signature", when_used="json")
    def encode_hex_output(self, v: bytes) -> str:
        return encode_hex(v)

    @classmethod
    def new(
        cls,
        website_id: str,
        difficulty: int,
        private_key: SigningKey,
        public_key: bytes,
    ) -> "Challenge":
        """
        Create and sign a new challenge valid for 30 seconds.

        Raises:
            ValueError: invalid difficulty, or a website_id containing the delimiter
            SigningError: the signature could not be produced
        """
        challenge_param = difficulty_to_challenge_param(difficulty)
        random_nonce = generate_random_nonce()
        created_time = current_time_millis()
        expiration_time = created_time + CHALLENGE_TTL_MS

        message = create_signing_message(
            random_nonce,
            created_time,
            expiration_time,
            website_id,
            challenge_param,
            public_key,
        )
        challenge_signature = generate_signature(private_key, message)

        return cls(
            random_nonce=random_nonce,
            created_time=created_time,
            expiration_time=expiration_time,
            website_id=website_id,
            challenge_param=challenge_param,
            recommended_attempts=recommended_attempts(difficulty),
            public_key=public_key,
            challenge_signature=challenge_signature,
        )

    def is_expired(self) -> bool:
        return current_time_millis() > self.expiration_time

    def time_until_expiration(self) -> int:
        """Milliseconds left before expiry; negative once expired."""
        return self.expiration_time - current_time_millis()

    def is_below_threshold(self, digest: bytes) -> bool:
        """Whether a candidate hash satisfies this challenge."""
        return int.from_bytes(digest, "big") < int.from_bytes(self.challenge_param, "big")

    def concat_struct(self) -> str:
        """
        All fields joined with '|', byte fields as lowercase hex:

        nonce|created|expiration|website_id|param|attempts|public_key|signature
        """
        return join_fields(
            self.random_nonce,
            self.created_time,
            self.expiration_time,
            self.website_id,
            encode_hex(self.challenge_param),
            self.recommended_attempts,
            encode_hex(self.public_key),
            encode_hex(self.challenge_signature),
        )

    @classmethod
    def from_concat_struct(cls, concat_str: str) -> "Challenge":
        """
        Parse the output of concat_struct().

        Raises:
            FieldCountError: not exactly 8 fields
            FieldParseError: a field is not a valid integer / hex string
            FieldLengthError: a hex field decodes to the wrong number of bytes
        """
        parts = concat_str.split(FIELD_DELIMITER)
        if len(parts) != CONCAT_FIELD_COUNT:
            raise FieldCountError(f"Expected {CONCAT_FIELD_COUNT} parts, got {len(parts)}")

        return cls(
            random_nonce=parts[0],
            created_time=parse_i64(parts[1], "created_time"),
            expiration_time=parse_i64(parts[2], "expiration_time"),
            website_id=parts[3],
            challenge_param=decode_hex_field(parts[4], "challenge_param", 32),
            recommended_attempts=parse_u64(parts[5], "recommended_attempts"),
            public_key=decode_hex_field(parts[6], "public_key", 32),
            challenge_signature=decode_hex_field(parts[7], "challenge_signature", 64),
        )

    def to_base64url_header(self) -> str:
        """Encode for transport in a single HTTP header value."""
        return encode_header(self.concat_struct())

    @classmethod
    def from_base64url_header(cls, encoded_header: str) -> "Challenge":
        """
        Reverse to_base64url_header().

        Raises:
            HeaderDecodingError: not base64url or not UTF-8
            ChallengeFormatError: the decoded string is not a valid challenge
        """
        return cls.from_concat_struct(decode_header(encoded_header))
