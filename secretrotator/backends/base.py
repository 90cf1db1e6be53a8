"""Backend adapter contract shared by every secret store."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator

from ..secrets.metadata import RotationMetadata
from ..utils.errors import ConfigurationError

SecretPayload = Dict[str, str]


def stringify_value(value: Any) -> str:
    """Render a stored field for callers; non-string values become JSON text."""
    return value if isinstance(value, str) else json.dumps(value)


class BackendKind(Enum):
    """Supported secret backends."""

    VAULT = "vault"
    AWS = "aws"
    FILE = "file"

    @classmethod
    def parse(cls, value: str) -> "BackendKind":
        """
        Parse a backend name case-insensitively.

        Raises:
            ConfigurationError: If the name is not a supported backend
        """
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Unknown backend type: {value}",
                suggestions=[f"Supported backends: {supported}"],
            ) from None


@dataclass(frozen=True)
class SecretRef:
    """Identifies a secret by backend-relative path and backend kind."""

    path: str
    kind: BackendKind

    def __str__(self) -> str:
        return self.path


def join_path(prefix: str, name: str) -> str:
    """Join path segments with a single slash."""
    prefix = prefix.strip("/")
    name = name.strip("/")
    if not prefix:
        return name
    if not name:
        return prefix
    return f"{prefix}/{name}"


def matches_prefix(path: str, prefix: str) -> bool:
    """Whether ``path`` lives under ``prefix`` on a path-segment boundary."""
    prefix = prefix.strip("/")
    if not prefix:
        return True
    path = path.strip("/")
    return path == prefix or path.startswith(prefix + "/")


class SecretBackend(ABC):
    """
    Uniform contract over a secret store.

    Implementations translate their native errors into
    ``SecretNotFoundError``, ``AuthenticationError`` and
    ``BackendConnectionError`` so callers never see transport exceptions.
    """

    kind: BackendKind
    display_name: str = "secret backend"

    def ref(self, path: str) -> SecretRef:
        return SecretRef(path=path, kind=self.kind)

    @abstractmethod
    def read_payload(self, path: str) -> SecretPayload:
        """
        Read the current payload of a secret.

        Raises:
            SecretNotFoundError: If the secret does not exist
            AuthenticationError: If credentials are invalid or expired
            BackendConnectionError: On transport failure
        """

    @abstractmethod
    def write_payload(self, path: str, payload: SecretPayload, merge: bool = True) -> None:
        """
        Write a payload, creating the secret when absent.

        With ``merge`` the stored fields not present in ``payload`` are kept.
        """

    @abstractmethod
    def read_metadata(self, path: str) -> RotationMetadata:
        """Read rotation metadata; a default record when none exists yet."""

    @abstractmethod
    def write_metadata(self, path: str, metadata: RotationMetadata) -> None:
        """Persist rotation metadata (last writer wins)."""

    @abstractmethod
    def list(self, prefix: str = "") -> Iterator[SecretRef]:
        """Lazily enumerate secrets under ``prefix`` in backend order."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.display_name}>"
