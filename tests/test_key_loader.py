"""Tests for Ed25519 key material loading."""

import pytest
from nacl.signing import SigningKey
from structlog.testing import capture_logs

from powgate.config import Settings
from powgate.exceptions import (
    Base64DecodingError,
    InvalidKeyFormatError,
    MissingConfigurationError,
    PgpParsingError,
)
from powgate.services.key_loader import (
    TrustedKeys,
    decode_key_data,
    extract_ed25519_key,
    find_key_at_common_offsets,
    find_key_by_algorithm_tag,
    find_key_by_sliding_window,
    load_private_key_from_data,
    load_private_key_from_settings,
    load_public_key_from_data,
    load_public_key_from_settings,
    parse_key_material,
)
from tests.test_utils import ALGORITHM_TAG, b64, untagged_signing_key

HEADER = bytes([0x99, 0x00, 0x33, 0x04, 0x65, 0x10, 0x20, 0x30])


@pytest.fixture
def keypair():
    key = untagged_signing_key()
    return bytes(key), bytes(key.verify_key)


class TestDecodeKeyData:
    """Tests for decode_key_data."""

    def test_plain_base64(self):
        """Test decoding clean base64."""
        assert decode_key_data(b64(b"\x01" * 32)) == b"\x01" * 32

    def test_whitespace_removed(self):
        """Test that line breaks and indentation are ignored."""
        encoded = b64(b"\x02" * 48)
        wrapped = "  " + encoded[:20] + "\n" + encoded[20:40] + "\r\n\t" + encoded[40:] + "\n"
        assert decode_key_data(wrapped) == b"\x02" * 48

    def test_invalid_characters_dropped(self):
        """Test that stray non-base64 characters are removed."""
        encoded = b64(b"\x03" * 32)
        corrupted = encoded[:10] + "!*" + encoded[10:] + "#"
        assert decode_key_data(corrupted) == b"\x03" * 32

    def test_trailing_garbage_trimmed(self):
        """Test that a trailing extra character is trimmed off."""
        encoded = b64(b"\x04" * 32)
        assert decode_key_data(encoded + "A") == b"\x04" * 32

    def test_undecodable(self):
        """Test that hopeless input raises Base64DecodingError."""
        with pytest.raises(Base64DecodingError):
            decode_key_data("ab!c")


class TestRawKeys:
    """Tests for raw 32-byte keys."""

    def test_raw_private_key(self, signing_key):
        """Test loading a raw 32-byte seed."""
        loaded = load_private_key_from_data(b64(bytes(signing_key)))
        assert bytes(loaded) == bytes(signing_key)

    def test_raw_public_key(self, signing_key):
        """Test loading a raw 32-byte public key."""
        loaded = load_public_key_from_data(b64(bytes(signing_key.verify_key)))
        assert bytes(loaded) == bytes(signing_key.verify_key)

    def test_raw_public_key_must_be_valid_point(self):
        """Test that a raw public key must be a valid Ed25519 point."""
        with pytest.raises(InvalidKeyFormatError, match="Invalid raw public key"):
            load_public_key_from_data(b64(bytes(32)))

    def test_any_32_bytes_is_a_private_key(self):
        """Test that any 32 bytes are accepted as a seed."""
        assert parse_key_material(b64(bytes(32)), is_private=True) == bytes(32)

    def test_short_key_reports_length(self):
        """Test that a short key reports its decoded length."""
        with pytest.raises(InvalidKeyFormatError, match="got 16 bytes"):
            load_private_key_from_data(b64(b"\x05" * 16))

    def test_garbage_input(self):
        """Test that non-base64 input raises Base64DecodingError."""
        with pytest.raises(Base64DecodingError):
            load_public_key_from_data("!!!!")


class TestAlgorithmTagStrategy:
    """Tests for the algorithm-tag scan."""

    def test_private_key_after_tag(self, keypair):
        """Test finding a seed right after the algorithm tag."""
        seed, _ = keypair
        blob = HEADER + bytes([ALGORITHM_TAG]) + seed + b"\x01\x02\x03"

        assert find_key_by_algorithm_tag(blob, is_private=True) == seed
        assert bytes(load_private_key_from_data(b64(blob))) == seed

    def test_public_key_after_tag(self, keypair):
        """Test finding a public key right after the algorithm tag."""
        _, public = keypair
        blob = HEADER + bytes([ALGORITHM_TAG]) + public + b"\x01\x02\x03"

        assert find_key_by_algorithm_tag(blob, is_private=False) == public
        assert bytes(load_public_key_from_data(b64(blob))) == public

    def test_invalid_public_window_skipped(self, keypair):
        """Test that an invalid point after a tag is skipped."""
        _, public = keypair
        blob = b"\x01\x02" + bytes([ALGORITHM_TAG]) + bytes(32) + bytes([ALGORITHM_TAG]) + public

        assert find_key_by_algorithm_tag(blob, is_private=False) == public

    def test_tag_without_enough_following_bytes(self):
        """Test that a tag too close to the end finds nothing."""
        blob = b"\x01" * 40 + bytes([ALGORITHM_TAG]) + b"\x02" * 10
        assert find_key_by_algorithm_tag(blob, is_private=True) is None

    def test_logs_match_offset(self, keypair):
        """Test that the match offset is logged."""
        seed, _ = keypair
        blob = HEADER + bytes([ALGORITHM_TAG]) + seed

        with capture_logs() as logs:
            parse_key_material(b64(blob), is_private=True)

        events = [entry for entry in logs if entry["event"] == "key_found_via_algorithm_tag"]
        assert events == [
            {"event": "key_found_via_algorithm_tag", "offset": len(HEADER) + 1, "log_level": "debug"}
        ]


class TestSlidingWindowStrategy:
    """Tests for the sliding-window scan."""

    def test_private_key_confirmed_by_public_key(self, keypair):
        """Test that a seed followed by its public key is found."""
        seed, public = keypair
        blob = b"\x07" * 5 + seed + b"\x08" * 7 + public

        assert find_key_by_sliding_window(blob, is_private=True) == seed
        assert parse_key_material(b64(blob), is_private=True) == seed

    def test_private_key_at_plausible_offset(self, keypair):
        """Test that a seed at a typical header offset is found."""
        seed, _ = keypair
        blob = bytes(20) + seed + bytes(20)

        assert parse_key_material(b64(blob), is_private=True) == seed

    def test_public_key_at_plausible_offset(self, keypair):
        """Test that a public key at offset 10 is found."""
        _, public = keypair
        blob = b"\x09" * 10 + public

        assert find_key_by_sliding_window(blob, is_private=False) == public
        assert bytes(load_public_key_from_data(b64(blob))) == public

    def test_public_key_too_early(self, keypair):
        """Test that a public key before offset 10 is not found."""
        _, public = keypair
        blob = b"\x09" * 9 + public

        assert find_key_by_sliding_window(blob, is_private=False) is None

    @pytest.mark.parametrize("filler", [b"\x00", b"\xff"])
    def test_degenerate_windows_skipped(self, filler):
        """Test that all-zero and all-ones windows are skipped."""
        assert find_key_by_sliding_window(filler * 64, is_private=True) is None


class TestCommonOffsetStrategy:
    """Tests for the common-offset scan."""

    def test_public_key_at_first_offset(self, keypair):
        """Test finding a public key at offset 32."""
        _, public = keypair
        assert find_key_at_common_offsets(bytes(32) + public, is_private=False) == public

    def test_private_key_skips_zero_window(self, keypair):
        """Test that a zero window is skipped for the next offset."""
        seed, _ = keypair
        blob = bytes(64) + seed

        assert find_key_at_common_offsets(blob, is_private=True) == blob[36:68]

    def test_blob_too_short(self):
        """Test that a blob shorter than any offset window finds nothing."""
        assert find_key_at_common_offsets(b"\x01" * 40, is_private=True) is None


class TestScanFailures:
    """Tests for blobs with no usable key."""

    @pytest.mark.parametrize("is_private", [True, False])
    def test_no_valid_window(self, is_private):
        """Test that a blob without key material raises PgpParsingError."""
        with pytest.raises(PgpParsingError, match="96 bytes"):
            extract_ed25519_key(bytes(96), is_private=is_private)

    def test_too_short_for_any_key(self):
        """Test that a blob under 32 bytes raises PgpParsingError."""
        with pytest.raises(PgpParsingError, match="16 bytes"):
            extract_ed25519_key(b"\x01" * 16, is_private=True)

    def test_loader_falls_back_to_raw_length_check(self):
        """Test that the private loader falls back to the raw length check."""
        with pytest.raises(InvalidKeyFormatError, match="got 96 bytes"):
            load_private_key_from_data(b64(bytes(96)))

    def test_public_loader_falls_back_to_raw_length_check(self):
        """Test that the public loader falls back to the raw length check."""
        with pytest.raises(InvalidKeyFormatError, match="Public key must be 32 bytes"):
            load_public_key_from_data(b64(bytes(96)))


class TestSettingsLoading:
    """Tests for loading keys from Settings."""

    def test_missing_private_key(self, monkeypatch):
        """Test that an unset private key is a configuration error."""
        monkeypatch.delenv("CHALLENGE_PRIVATE_KEY", raising=False)

        with pytest.raises(MissingConfigurationError, match="CHALLENGE_PRIVATE_KEY"):
            load_private_key_from_settings(Settings(_env_file=None))

    def test_missing_public_key(self, monkeypatch):
        """Test that an unset public key is a configuration error."""
        monkeypatch.delenv("CHALLENGE_PUBLIC_KEY", raising=False)

        with pytest.raises(MissingConfigurationError, match="CHALLENGE_PUBLIC_KEY"):
            load_public_key_from_settings(Settings(_env_file=None))

    def test_keys_from_environment(self, monkeypatch, signing_key):
        """Test loading both keys from environment variables."""
        monkeypatch.setenv("CHALLENGE_PRIVATE_KEY", b64(bytes(signing_key)))
        monkeypatch.setenv("CHALLENGE_PUBLIC_KEY", b64(bytes(signing_key.verify_key)))
        config = Settings(_env_file=None)

        assert bytes(load_private_key_from_settings(config)) == bytes(signing_key)
        assert bytes(load_public_key_from_settings(config)) == bytes(signing_key.verify_key)


class TestTrustedKeys:
    """Tests for TrustedKeys."""

    def test_from_settings(self, key_settings, signing_key):
        """Test building signing and verifying keys from settings."""
        keys = TrustedKeys.from_settings(key_settings)

        assert bytes(keys.signing_key) == bytes(signing_key)
        assert keys.public_key_bytes == bytes(signing_key.verify_key)

    def test_verify_only(self, signing_key, monkeypatch):
        """Test that a missing private key gives verify-only keys."""
        monkeypatch.delenv("CHALLENGE_PRIVATE_KEY", raising=False)
        config = Settings(_env_file=None, challenge_public_key=b64(bytes(signing_key.verify_key)))

        keys = TrustedKeys.from_settings(config)

        assert keys.signing_key is None
        assert keys.public_key_bytes == bytes(signing_key.verify_key)

    def test_public_key_required(self, signing_key, monkeypatch):
        """Test that the public key is always required."""
        monkeypatch.delenv("CHALLENGE_PUBLIC_KEY", raising=False)
        config = Settings(_env_file=None, challenge_private_key=b64(bytes(signing_key)))

        with pytest.raises(MissingConfigurationError):
            TrustedKeys.from_settings(config)

    def test_from_signing_key(self):
        """Test deriving the verify key from a signing key."""
        key = SigningKey.generate()
        keys = TrustedKeys.from_signing_key(key)

        assert keys.signing_key is key
        assert keys.public_key_bytes == bytes(key.verify_key)
