"""HashiCorp Vault KV v2 backend.

Payload fields are stored as the secret data; rotation bookkeeping is stored in
the secret's ``custom_metadata`` on the metadata endpoint, so it survives new
versions of the data.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import hvac
import requests
from hvac import exceptions as vault_exceptions

from ..secrets.metadata import RotationMetadata
from ..utils.errors import (
    AuthenticationError,
    BackendConnectionError,
    SecretNotFoundError,
    create_error_suggestions,
)
from .base import BackendKind, SecretBackend, SecretPayload, SecretRef, join_path, stringify_value

logger = logging.getLogger(__name__)


class VaultBackend(SecretBackend):
    """Secret backend for the Vault KV version 2 engine."""

    kind = BackendKind.VAULT
    display_name = "HashiCorp Vault"

    def __init__(
        self,
        address: str,
        token: str,
        mount: str = "secret",
        timeout: Optional[float] = 30,
        verify: bool = True,
        client: Optional[hvac.Client] = None,
    ):
        """
        Initialize Vault backend.

        Args:
            address: Vault server URL (e.g. http://127.0.0.1:8200)
            token: Vault token
            mount: KV v2 mount point
            timeout: Per-request timeout in seconds
            verify: Verify TLS certificates
            client: Pre-built hvac client (mostly for tests)
        """
        self.address = address
        self.mount = mount.strip("/")
        self.client = client or hvac.Client(url=address, token=token, timeout=timeout, verify=verify)

    @property
    def kv(self):
        return self.client.secrets.kv.v2

    @contextmanager
    def _translate_errors(self, path: str, operation: str):
        """Map hvac/requests exceptions onto the backend error taxonomy."""
        try:
            yield
        except vault_exceptions.InvalidPath as e:
            raise SecretNotFoundError(
                f"Secret not found: {self.mount}/{path}",
                path=path,
                operation=operation,
                suggestions=create_error_suggestions("secret_not_found"),
            ) from e
        except (vault_exceptions.Forbidden, vault_exceptions.Unauthorized) as e:
            raise AuthenticationError(
                f"Vault denied {operation} on {self.mount}/{path}",
                path=path,
                operation=operation,
                details=str(e),
                suggestions=create_error_suggestions("auth_failed", backend=self.display_name),
            ) from e
        except (vault_exceptions.VaultError, requests.exceptions.RequestException) as e:
            raise BackendConnectionError(
                f"Vault {operation} failed for {self.mount}/{path}",
                path=path,
                operation=operation,
                details=str(e),
                suggestions=create_error_suggestions("connection_failed", backend=f"Vault at {self.address}"),
            ) from e

    def _read_data(self, path: str) -> Dict[str, Any]:
        """Stored data exactly as Vault returns it, values untouched."""
        logger.debug("Reading secret %s/%s", self.mount, path)
        with self._translate_errors(path, "read"):
            response = self.kv.read_secret_version(
                path=path, mount_point=self.mount, raise_on_deleted_version=True
            )
        return dict(response.get("data", {}).get("data") or {})

    def read_payload(self, path: str) -> SecretPayload:
        return {key: stringify_value(value) for key, value in self._read_data(path).items()}

    def write_payload(self, path: str, payload: SecretPayload, merge: bool = True) -> None:
        data: Dict[str, Any] = {}
        if merge:
            # Merge over the raw stored values, not the stringified view
            try:
                data = self._read_data(path)
            except SecretNotFoundError:
                data = {}
        data.update({key: str(value) for key, value in payload.items()})

        logger.debug("Writing secret %s/%s", self.mount, path)
        with self._translate_errors(path, "write"):
            self.kv.create_or_update_secret(path=path, secret=data, mount_point=self.mount)
        logger.info("Successfully wrote secret to %s/%s", self.mount, path)

    def _read_custom_metadata(self, path: str) -> Dict[str, str]:
        with self._translate_errors(path, "read-metadata"):
            try:
                response = self.kv.read_secret_metadata(path=path, mount_point=self.mount)
            except vault_exceptions.InvalidPath:
                return {}
        return dict(response.get("data", {}).get("custom_metadata") or {})

    def read_metadata(self, path: str) -> RotationMetadata:
        logger.debug("Reading metadata for %s/%s", self.mount, path)
        return RotationMetadata.from_native(self._read_custom_metadata(path))

    def write_metadata(self, path: str, metadata: RotationMetadata) -> None:
        # The metadata endpoint replaces custom_metadata wholesale, so keep
        # keys owned by other tools
        custom_metadata = self._read_custom_metadata(path)
        custom_metadata.update(metadata.to_native())

        logger.debug("Updating metadata at %s/%s", self.mount, path)
        with self._translate_errors(path, "write-metadata"):
            self.kv.update_metadata(path=path, custom_metadata=custom_metadata, mount_point=self.mount)
        logger.info("Successfully updated metadata for %s/%s", self.mount, path)

    def list(self, prefix: str = "") -> Iterator[SecretRef]:
        """
        List secrets under a folder, descending into sub-folders.

        Vault returns folder entries with a trailing slash; those are expanded
        lazily. A prefix that names a secret rather than a folder yields that
        secret alone.
        """
        prefix = prefix.strip("/")
        with self._translate_errors(prefix, "list"):
            try:
                response = self.kv.list_secrets(path=prefix, mount_point=self.mount)
            except vault_exceptions.InvalidPath:
                response = None

        if response is None:
            if prefix and self._exists(prefix):
                yield self.ref(prefix)
            else:
                logger.info("No secrets found at %s/%s", self.mount, prefix)
            return

        for key in response.get("data", {}).get("keys", []):
            if key.endswith("/"):
                yield from self.list(join_path(prefix, key))
            else:
                yield self.ref(join_path(prefix, key))

    def _exists(self, path: str) -> bool:
        with self._translate_errors(path, "list"):
            try:
                self.kv.read_secret_metadata(path=path, mount_point=self.mount)
            except vault_exceptions.InvalidPath:
                return False
        return True
