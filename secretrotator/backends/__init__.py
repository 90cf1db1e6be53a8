"""Secret backend adapters."""

from .base import BackendKind, SecretBackend, SecretPayload, SecretRef


def create_backend(config) -> SecretBackend:
    """
    Build the adapter selected by configuration.

    The backend is chosen once per process; nothing downstream branches on
    the backend kind.

    Args:
        config: Validated ``RotatorConfig``

    Returns:
        SecretBackend: Concrete adapter
    """
    kind = BackendKind.parse(config.backend)

    if kind is BackendKind.VAULT:
        from .vault import VaultBackend

        timeout = config.vault.timeout_seconds
        if config.rotation.timeout_seconds:
            # Requests must not outlive the batch timeout of the secret they serve
            timeout = min(timeout, config.rotation.timeout_seconds)

        return VaultBackend(
            address=config.vault.address,
            token=config.vault.token,
            mount=config.vault.mount,
            timeout=timeout,
            verify=config.vault.verify_tls,
        )

    if kind is BackendKind.AWS:
        from .aws import AwsSecretsBackend

        return AwsSecretsBackend(
            region=config.aws.region,
            profile=config.aws.profile,
            timeout=config.rotation.timeout_seconds,
        )

    from .file import FileBackend

    return FileBackend(directory=config.file.directory)


__all__ = [
    "BackendKind",
    "SecretBackend",
    "SecretPayload",
    "SecretRef",
    "create_backend",
]
