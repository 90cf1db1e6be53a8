"""Local file store backend.

Each secret is a plaintext file at ``<directory>/<path>`` holding one
``key:value`` line per field. Rotation metadata lives next to it in
``<path>.meta`` using the same line format and the canonical metadata keys.
"""

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator

from ..secrets.metadata import RotationMetadata
from ..utils.errors import (
    AuthenticationError,
    BackendConnectionError,
    SecretNotFoundError,
    ValidationError,
)
from .base import BackendKind, SecretBackend, SecretPayload, SecretRef, join_path

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta"


def parse_key_value_lines(text: str) -> Dict[str, str]:
    """Parse ``key:value`` lines; the value is everything after the first colon."""
    data = {}
    for line in text.splitlines():
        if not line.strip() or ":" not in line:
            continue
        key, value = line.split(":", 1)
        data[key.strip()] = value
    return data


def format_key_value_lines(data: Dict[str, str]) -> str:
    """Render a mapping as ``key:value`` lines."""
    lines = []
    for key, value in data.items():
        if ":" in key or "\n" in key or not key.strip():
            raise ValidationError(f"Invalid field name for file backend: {key!r}")
        if "\n" in str(value) or "\r" in str(value):
            raise ValidationError(f"Value of field '{key}' spans multiple lines, which the file backend cannot store")
        lines.append(f"{key}:{value}")
    return "\n".join(lines) + "\n" if lines else ""


def _reraise(error: OSError) -> None:
    raise error


class FileBackend(SecretBackend):
    """Stores secrets as plaintext files under a base directory."""

    kind = BackendKind.FILE

    def __init__(self, directory: str):
        """
        Initialize file backend.

        Args:
            directory: Base directory for secret files (created on first write)
        """
        self.directory = Path(os.path.expanduser(directory))
        self.display_name = f"File Storage ({self.directory})"

    def _secret_file(self, path: str) -> Path:
        """Resolve a secret path, refusing anything that escapes the base directory."""
        relative = PurePosixPath(path.strip("/"))
        if not relative.parts or relative.is_absolute() or ".." in relative.parts:
            raise ValidationError(f"Invalid secret path: {path!r}")
        if relative.name.endswith(META_SUFFIX):
            raise ValidationError(f"Secret paths may not end with {META_SUFFIX}: {path!r}")
        return self.directory.joinpath(*relative.parts)

    def _meta_file(self, path: str) -> Path:
        secret_file = self._secret_file(path)
        return secret_file.with_name(secret_file.name + META_SUFFIX)

    def _read_lines(self, file_path: Path, path: str, operation: str) -> Dict[str, str]:
        try:
            return parse_key_value_lines(file_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise SecretNotFoundError(
                f"Secret not found: {path}", path=path, operation=operation
            ) from None
        except IsADirectoryError:
            raise SecretNotFoundError(
                f"Secret not found: {path} is a folder", path=path, operation=operation
            ) from None
        except PermissionError as e:
            raise AuthenticationError(
                f"Permission denied reading {file_path}", path=path, operation=operation, details=str(e)
            ) from e
        except OSError as e:
            raise BackendConnectionError(
                f"Failed to read {file_path}", path=path, operation=operation, details=str(e)
            ) from e

    def _write_lines(self, file_path: Path, data: Dict[str, str], path: str, operation: str) -> None:
        """Replace ``file_path`` atomically; the new file is owner-only from creation."""
        content = format_key_value_lines(data)
        tmp_path = None
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            # mkstemp creates the file with mode 0600; the dot prefix keeps it out of listings
            fd, tmp_path = tempfile.mkstemp(dir=str(file_path.parent), prefix=f".{file_path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, str(file_path))
            tmp_path = None
        except PermissionError as e:
            raise AuthenticationError(
                f"Permission denied writing {file_path}", path=path, operation=operation, details=str(e)
            ) from e
        except OSError as e:
            raise BackendConnectionError(
                f"Failed to write {file_path}", path=path, operation=operation, details=str(e)
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def read_payload(self, path: str) -> SecretPayload:
        return self._read_lines(self._secret_file(path), path, "read")

    def write_payload(self, path: str, payload: SecretPayload, merge: bool = True) -> None:
        secret_file = self._secret_file(path)
        data = {}
        if merge:
            try:
                data = self._read_lines(secret_file, path, "write")
            except SecretNotFoundError:
                data = {}
        data.update({key: str(value) for key, value in payload.items()})

        self._write_lines(secret_file, data, path, "write")
        logger.info("Wrote secret %s to %s", path, self.display_name)

    def read_metadata(self, path: str) -> RotationMetadata:
        try:
            raw = self._read_lines(self._meta_file(path), path, "read-metadata")
        except SecretNotFoundError:
            return RotationMetadata()
        return RotationMetadata.from_native(raw)

    def write_metadata(self, path: str, metadata: RotationMetadata) -> None:
        meta_file = self._meta_file(path)
        try:
            existing = self._read_lines(meta_file, path, "write-metadata")
        except SecretNotFoundError:
            existing = {}
        existing.update(metadata.to_native())

        self._write_lines(meta_file, existing, path, "write-metadata")
        logger.info("Updated rotation metadata for %s", path)

    def list(self, prefix: str = "") -> Iterator[SecretRef]:
        """
        Walk the prefix directory depth-first in sorted order.

        A prefix naming a single secret file yields just that secret.
        """
        prefix = prefix.strip("/")
        root = self._secret_file(prefix) if prefix else self.directory

        if root.is_file():
            yield self.ref(prefix)
            return
        if not root.is_dir():
            logger.info("No secrets found under %s in %s", prefix or "/", self.display_name)
            return

        try:
            for current, dirnames, filenames in os.walk(root, onerror=_reraise):
                dirnames.sort()
                relative_dir = Path(current).relative_to(self.directory).as_posix()
                if relative_dir == ".":
                    relative_dir = ""
                for filename in sorted(filenames):
                    if filename.endswith(META_SUFFIX) or filename.startswith("."):
                        continue
                    yield self.ref(join_path(relative_dir, filename))
        except PermissionError as e:
            raise AuthenticationError(
                f"Permission denied listing {root}", path=prefix, operation="list", details=str(e)
            ) from e
