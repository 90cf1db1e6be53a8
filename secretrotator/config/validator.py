"""Configuration validation for secret-rotator."""

from typing import Any, Dict, List

import jsonschema

from .schemas import CONFIG_SCHEMA


class ConfigValidator:
    """Validates secret-rotator configuration."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate a configuration mapping.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: [str(part) for part in e.path]):
            location = ".".join(str(part) for part in error.path)
            if location:
                errors.append(f"{location}: {error.message}")
            else:
                errors.append(error.message)

        if errors:
            return errors

        # Backend-specific requirements the schema cannot express
        backend = config.get("backend", "vault")
        if backend == "vault":
            vault = config.get("vault") or {}
            if not vault.get("address"):
                errors.append("vault.address is required when backend is 'vault' (or set VAULT_ADDR)")
            if not vault.get("token"):
                errors.append("vault.token is required when backend is 'vault' (or set VAULT_TOKEN)")

        postgres = (config.get("targets") or {}).get("postgres")
        if postgres and not (postgres.get("password_path") or postgres.get("password")):
            errors.append("targets.postgres needs password_path (recommended) or password for the admin role")

        return errors
