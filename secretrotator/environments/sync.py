"""Bridge from stored secrets to shell environment variables."""

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from ..utils.errors import SecretNotFoundError, ValidationError
from .profile import ProfileWriter

if TYPE_CHECKING:
    from ..backends.base import SecretBackend

logger = logging.getLogger(__name__)

ENV_VAR_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NON_IDENTIFIER_RE = re.compile(r"[^A-Za-z0-9]+")


def default_env_var_name(path: str) -> str:
    """
    Derive an environment variable name from a secret path.

    ``myapp/database`` becomes ``MYAPP_DATABASE``.
    """
    name = _NON_IDENTIFIER_RE.sub("_", path).strip("_").upper()
    if not name:
        raise ValidationError(f"Cannot derive an environment variable name from '{path}'")
    if name[0].isdigit():
        name = f"_{name}"
    return name


def validate_env_var_name(name: str) -> str:
    if not ENV_VAR_NAME_RE.match(name or ""):
        raise ValidationError(
            f"Invalid environment variable name: {name!r}",
            suggestions=["Use letters, digits and underscores, not starting with a digit"],
        )
    return name


@dataclass
class SyncResult:
    path: str
    var_name: str
    profiles: List[str] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return bool(self.profiles)


class EnvSyncBridge:
    """Copies one secret field into one environment variable."""

    def __init__(self, backend: "SecretBackend", writer: ProfileWriter, field: str = "password"):
        self.backend = backend
        self.writer = writer
        self.field = field

    def sync(
        self,
        path: str,
        field: Optional[str] = None,
        var_name: Optional[str] = None,
        value: Optional[str] = None,
    ) -> SyncResult:
        """
        Export a secret field as an environment variable.

        Args:
            path: Secret path
            field: Payload field to export (bridge default when omitted)
            var_name: Variable name (derived from ``path`` when omitted)
            value: Value already in hand, e.g. just rotated; skips the read

        Returns:
            SyncResult: Variable name and the profiles written

        Raises:
            SecretNotFoundError: If the secret or the field does not exist
        """
        field = field or self.field
        var_name = validate_env_var_name(var_name) if var_name else default_env_var_name(path)

        if value is None:
            payload = self.backend.read_payload(path)
            if field not in payload:
                raise SecretNotFoundError(
                    f"Field '{field}' not found in secret {path}",
                    path=path,
                    operation="update-env",
                    suggestions=[f"Available fields: {', '.join(sorted(payload)) or 'none'}"],
                )
            value = payload[field]

        profiles = self.writer.set_variable(var_name, value)
        logger.info("Synced %s:%s to %s (%d profiles)", path, field, var_name, len(profiles))
        return SyncResult(path=path, var_name=var_name, profiles=profiles)
