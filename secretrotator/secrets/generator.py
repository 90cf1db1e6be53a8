"""Secure secret generation for rotated credentials."""

import secrets
import string

from ..utils.errors import EntropyError, ValidationError

SPECIAL_CHARACTERS = "!@#$%^&*"
ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + SPECIAL_CHARACTERS

DEFAULT_SECRET_LENGTH = 32


class SecretGenerator:
    """Generates cryptographically secure random secrets."""

    def __init__(self, alphabet: str = ALPHABET):
        """
        Initialize secret generator.

        Args:
            alphabet: Characters to sample from, uniformly per position
        """
        if not alphabet:
            raise ValidationError("Secret alphabet cannot be empty")
        self.alphabet = alphabet

    def generate(self, length: int = DEFAULT_SECRET_LENGTH) -> str:
        """
        Generate a random secret.

        Every position is drawn independently from the alphabet using the
        operating system's CSPRNG. There is no requirement that each character
        class appears at least once.

        Args:
            length: Number of characters

        Returns:
            str: Secret of exactly ``length`` characters

        Raises:
            ValidationError: If length is not a positive integer
            EntropyError: If the secure random source is unavailable
        """
        if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
            raise ValidationError(
                f"Secret length must be a positive integer, got {length!r}",
            )

        try:
            return "".join(secrets.choice(self.alphabet) for _ in range(length))
        except (NotImplementedError, OSError) as e:
            raise EntropyError(
                "Secure random source is unavailable",
                details=str(e),
                suggestions=["Check that the operating system provides /dev/urandom or getrandom()"],
            ) from e


def generate_secret(length: int = DEFAULT_SECRET_LENGTH) -> str:
    """Generate a secret from the default alphabet."""
    return SecretGenerator().generate(length)
