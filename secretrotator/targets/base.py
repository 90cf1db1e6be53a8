"""Contract for systems whose password follows a rotated secret."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from ..utils.errors import ConfigurationError


class TargetKind(Enum):
    """Supported rotation targets."""

    POSTGRES = "postgres"
    API = "api"

    @classmethod
    def parse(cls, value: str) -> "TargetKind":
        """
        Parse a target type name case-insensitively.

        ``postgresql`` is accepted as an alias for ``postgres``.

        Raises:
            ConfigurationError: If the name is not a supported target type
        """
        name = str(value).strip().lower()
        if name == "postgresql":
            name = "postgres"
        try:
            return cls(name)
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Unknown target type: {value}",
                suggestions=[f"Supported target types: {supported}"],
            ) from None


class Target(ABC):
    """
    A consuming system that must learn a rotated password.

    Implementations raise ``TargetError`` on failure and never include the
    password in messages or logs.
    """

    kind: TargetKind

    @property
    def target_type(self) -> str:
        return self.kind.value

    @abstractmethod
    def update_password(self, username: str, new_password: str) -> None:
        """Set the password of ``username`` in the target system."""

    @abstractmethod
    def verify_connection(self, username: str, password: str, database: Optional[str] = None) -> None:
        """Check that ``password`` works for ``username``; a no-op where unsupported."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"
