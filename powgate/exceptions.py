"""
Error types raised by powgate.

Key handling and signature problems derive from CryptoError; problems with
the textual challenge representation derive from ChallengeFormatError. Both
are ValueError subclasses so callers that only care about "bad input" can
catch ValueError.
"""


class CryptoError(ValueError):
    """Base class for key loading, signing and verification failures."""

    prefix = "Crypto error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}")


class MissingConfigurationError(CryptoError):
    prefix = "Missing configuration"


class InvalidKeyFormatError(CryptoError):
    prefix = "Invalid key format"


class Base64DecodingError(CryptoError):
    prefix = "Base64 decoding failed"


class PgpParsingError(CryptoError):
    prefix = "PGP parsing failed"


class SigningError(CryptoError):
    prefix = "Signing failed"


class VerificationError(CryptoError):
    prefix = "Verification failed"


class ChallengeFormatError(ValueError):
    """Base class for concatenated / header decoding failures."""


class FieldCountError(ChallengeFormatError):
    pass


class FieldParseError(ChallengeFormatError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class FieldLengthError(ChallengeFormatError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class HeaderDecodingError(ChallengeFormatError):
    pass
