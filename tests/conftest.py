import pytest
from nacl.signing import SigningKey

from powgate.config import Settings
from powgate.models.challenge import Challenge
from powgate.services.key_loader import TrustedKeys
from tests.test_utils import b64


@pytest.fixture
def signing_key():
    """Generate a fresh Ed25519 signing key for each test."""
    return SigningKey.generate()


@pytest.fixture
def trusted_keys(signing_key):
    """Keys that can both issue and verify, built from signing_key."""
    return TrustedKeys.from_signing_key(signing_key)


@pytest.fixture
def key_settings(signing_key):
    """Settings holding the test keypair as raw base64, isolated from .env and the environment."""
    return Settings(
        _env_file=None,
        challenge_private_key=b64(bytes(signing_key)),
        challenge_public_key=b64(bytes(signing_key.verify_key)),
    )


@pytest.fixture
def challenge(signing_key):
    """A freshly issued challenge signed by signing_key."""
    return Challenge.new(
        website_id="test-site",
        difficulty=100_000,
        private_key=signing_key,
        public_key=bytes(signing_key.verify_key),
    )
