import structlog

from powgate.config import settings
from powgate.exceptions import ChallengeFormatError, CryptoError, MissingConfigurationError
from powgate.models.challenge import Challenge
from powgate.services.key_loader import TrustedKeys
from powgate.services.signing import validate_challenge

logger = structlog.get_logger()


def issue_challenge(
    website_id: str, keys: TrustedKeys, difficulty: int | None = None
) -> Challenge:
    """
    Issue a new signed challenge for a protected website.

    Uses the configured default difficulty unless one is given.
    """
    if keys.signing_key is None:
        raise MissingConfigurationError("CHALLENGE_PRIVATE_KEY")

    if difficulty is None:
        difficulty = settings.challenge_difficulty
    challenge = Challenge.new(
        website_id=website_id,
        difficulty=difficulty,
        private_key=keys.signing_key,
        public_key=keys.public_key_bytes,
    )

    logger.info(
        "challenge_created",
        website_id=website_id,
        difficulty=difficulty,
        recommended_attempts=challenge.recommended_attempts,
        expires_at=challenge.expiration_time,
    )

    return challenge


def issue_challenge_header(
    website_id: str, keys: TrustedKeys, difficulty: int | None = None
) -> str:
    """Issue a challenge and return it in wire (header) form."""
    return issue_challenge(website_id, keys, difficulty).to_base64url_header()


def accept_challenge_header(header_value: str, keys: TrustedKeys) -> Challenge:
    """
    Decode a challenge returned by a client and check it against the trusted key.

    Raises ChallengeFormatError if the header cannot be decoded and
    CryptoError if the challenge is forged, tampered with or expired.
    """
    try:
        challenge = Challenge.from_base64url_header(header_value)
    except ChallengeFormatError as exc:
        logger.warning("challenge_rejected", stage="decode", error=str(exc))
        raise

    try:
        validate_challenge(challenge, keys)
    except CryptoError as exc:
        logger.warning(
            "challenge_rejected",
            stage="validate",
            website_id=challenge.website_id,
            error=str(exc),
        )
        raise

    logger.info("challenge_accepted", website_id=challenge.website_id)
    return challenge
