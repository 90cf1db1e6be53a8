"""Tests for secret generation."""

from unittest.mock import patch

import pytest

from secretrotator.secrets.generator import ALPHABET, SecretGenerator, generate_secret
from secretrotator.utils.errors import EntropyError, ValidationError


class TestSecretGenerator:
    """Test secret generator functionality."""

    def setup_method(self):
        """Setup test environment."""
        self.generator = SecretGenerator()

    def test_alphabet(self):
        """Test the alphabet is letters, digits and !@#$%^&*."""
        assert len(ALPHABET) == 70
        assert set("!@#$%^&*") <= set(ALPHABET)

    @pytest.mark.parametrize("length", [1, 16, 32, 128])
    def test_length_and_alphabet(self, length):
        """Test generated secrets have the requested length and only alphabet characters."""
        secret = self.generator.generate(length)

        assert len(secret) == length
        assert set(secret) <= set(ALPHABET)

    def test_default_length(self):
        assert len(generate_secret()) == 32

    def test_alphabet_coverage(self):
        """Test every character class shows up over many draws."""
        seen = set("".join(self.generator.generate(64) for _ in range(200)))

        assert seen & set("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
        assert seen & set("abcdefghijklmnopqrstuvwxyz")
        assert seen & set("0123456789")
        assert seen & set("!@#$%^&*")

    def test_secrets_differ(self):
        assert self.generator.generate() != self.generator.generate()

    @pytest.mark.parametrize("length", [0, -1, 1.5, "32", True])
    def test_invalid_length(self, length):
        """Test non-positive or non-integer lengths are rejected."""
        with pytest.raises(ValidationError):
            self.generator.generate(length)

    def test_entropy_failure(self):
        """Test an unavailable random source surfaces as EntropyError."""
        with patch("secretrotator.secrets.generator.secrets.choice", side_effect=OSError("no urandom")):
            with pytest.raises(EntropyError) as exc_info:
                self.generator.generate(8)

        assert "no urandom" in exc_info.value.details
