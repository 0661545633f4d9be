from powgate.exceptions import (
    Base64DecodingError,
    ChallengeFormatError,
    CryptoError,
    FieldCountError,
    FieldLengthError,
    FieldParseError,
    HeaderDecodingError,
    InvalidKeyFormatError,
    MissingConfigurationError,
    PgpParsingError,
    SigningError,
    VerificationError,
)
from powgate.logging_config import get_logger, setup_logging
from powgate.models.challenge import (
    Challenge,
    difficulty_to_challenge_param,
    recommended_attempts,
)
from powgate.services.key_loader import (
    TrustedKeys,
    load_private_key_from_data,
    load_public_key_from_data,
)
from powgate.services.signing import (
    generate_signature,
    generate_test_keypair,
    sign_challenge,
    validate_challenge,
    verify_challenge_signature,
    verify_challenge_signature_with_key,
)

__version__ = "0.1.0"

__all__ = [
    "Base64DecodingError",
    "Challenge",
    "ChallengeFormatError",
    "CryptoError",
    "FieldCountError",
    "FieldLengthError",
    "FieldParseError",
    "HeaderDecodingError",
    "InvalidKeyFormatError",
    "MissingConfigurationError",
    "PgpParsingError",
    "SigningError",
    "TrustedKeys",
    "VerificationError",
    "difficulty_to_challenge_param",
    "generate_signature",
    "generate_test_keypair",
    "get_logger",
    "load_private_key_from_data",
    "load_public_key_from_data",
    "recommended_attempts",
    "setup_logging",
    "sign_challenge",
    "validate_challenge",
    "verify_challenge_signature",
    "verify_challenge_signature_with_key",
]
