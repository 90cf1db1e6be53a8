"""Rotation targets: systems whose password follows a rotated secret."""

from typing import TYPE_CHECKING, Optional

from ..utils.errors import ConfigurationError
from .base import Target, TargetKind

if TYPE_CHECKING:
    from ..backends.base import SecretBackend


def _admin_password(settings, backend: "SecretBackend") -> str:
    """Admin password from the secret backend, or inline from configuration."""
    if not settings.password_path:
        return settings.password

    payload = backend.read_payload(settings.password_path)
    password = payload.get("password") or next(iter(payload.values()), None)
    if not password:
        raise ConfigurationError(
            f"No admin password found in secret {settings.password_path}",
            suggestions=["Store the admin password under a 'password' field"],
        )
    return password


def create_target(config, backend: "SecretBackend", target_type: Optional[str] = None) -> Target:
    """
    Build the rotation target named by ``target_type``.

    Without a type the first configured target is used, PostgreSQL before API.

    Args:
        config: Validated ``RotatorConfig``
        backend: Backend used to read the PostgreSQL admin password
        target_type: ``postgres`` or ``api``

    Returns:
        Target: Concrete target

    Raises:
        ConfigurationError: If the requested target is not configured
    """
    targets = config.targets
    if target_type is not None:
        kind = TargetKind.parse(target_type)
    elif targets.configured:
        kind = TargetKind(targets.configured[0])
    else:
        raise ConfigurationError(
            "No rotation target configured",
            suggestions=["Add a targets.postgres or targets.api section to the configuration file"],
        )

    if kind is TargetKind.POSTGRES:
        settings = targets.postgres
        if settings is None:
            raise ConfigurationError(
                "PostgreSQL target is not configured",
                suggestions=["Add a targets.postgres section to the configuration file"],
            )
        from .postgres import PostgresTarget

        return PostgresTarget(
            host=settings.host,
            database=settings.database,
            admin_username=settings.username,
            admin_password=_admin_password(settings, backend),
            port=settings.port,
            ssl_mode=settings.ssl_mode,
            connect_timeout=settings.timeout_seconds or config.rotation.timeout_seconds,
        )

    settings = targets.api
    if settings is None:
        raise ConfigurationError(
            "API target is not configured",
            suggestions=["Add a targets.api section to the configuration file"],
        )
    from .api import ApiTarget

    return ApiTarget(
        base_url=settings.base_url,
        endpoint=settings.endpoint,
        method=settings.method,
        password_field=settings.password_field,
        username_field=settings.username_field,
        additional_fields=settings.additional_fields,
        auth_header=settings.auth_header,
        headers=settings.headers,
        timeout_seconds=settings.timeout_seconds,
    )


__all__ = ["Target", "TargetKind", "create_target"]
