"""Configuration management for secret-rotator."""

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml
from jinja2 import Environment, FileSystemLoader

from ..environments.profile import DEFAULT_PROFILES
from ..utils.errors import ConfigurationError, create_error_suggestions, format_validation_errors
from .validator import ConfigValidator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "rotator.yml"


def default_file_directory() -> str:
    return os.path.join(os.path.expanduser("~"), ".secret-rotator", "secrets")


@dataclass
class VaultSettings:
    address: str = ""
    token: str = ""
    mount: str = "secret"
    timeout_seconds: float = 30
    verify_tls: bool = True


@dataclass
class AwsSettings:
    region: str = "us-east-1"
    profile: Optional[str] = None


@dataclass
class FileSettings:
    directory: str = field(default_factory=default_file_directory)


@dataclass
class RotationSettings:
    period_months: int = 6
    secret_length: int = 32
    field: str = "password"
    workers: int = 1
    timeout_seconds: Optional[float] = None


@dataclass
class EnvSyncSettings:
    profiles: List[str] = field(default_factory=lambda: list(DEFAULT_PROFILES))


@dataclass
class PostgresTargetSettings:
    host: str = ""
    database: str = ""
    username: str = ""
    port: int = 5432
    password_path: Optional[str] = None
    password: Optional[str] = None
    ssl_mode: str = "prefer"
    timeout_seconds: Optional[float] = None


@dataclass
class ApiTargetSettings:
    base_url: str = ""
    endpoint: str = ""
    method: str = "POST"
    password_field: str = "password"
    username_field: Optional[str] = None
    additional_fields: Dict[str, str] = field(default_factory=dict)
    auth_header: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 30


@dataclass
class TargetSettings:
    postgres: Optional[PostgresTargetSettings] = None
    api: Optional[ApiTargetSettings] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TargetSettings":
        postgres = raw.get("postgres")
        api = raw.get("api")
        return cls(
            postgres=PostgresTargetSettings(**postgres) if postgres else None,
            api=ApiTargetSettings(**api) if api else None,
        )

    @property
    def configured(self) -> List[str]:
        return [name for name in ("postgres", "api") if getattr(self, name) is not None]


@dataclass
class RotatorConfig:
    """Validated configuration for one invocation."""

    backend: str = "vault"
    vault: VaultSettings = field(default_factory=VaultSettings)
    aws: AwsSettings = field(default_factory=AwsSettings)
    file: FileSettings = field(default_factory=FileSettings)
    rotation: RotationSettings = field(default_factory=RotationSettings)
    env_sync: EnvSyncSettings = field(default_factory=EnvSyncSettings)
    targets: TargetSettings = field(default_factory=TargetSettings)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RotatorConfig":
        """Build from an already validated mapping; absent sections take defaults."""
        return cls(
            backend=raw.get("backend", "vault"),
            vault=VaultSettings(**(raw.get("vault") or {})),
            aws=AwsSettings(**(raw.get("aws") or {})),
            file=FileSettings(**(raw.get("file") or {})),
            rotation=RotationSettings(**(raw.get("rotation") or {})),
            env_sync=EnvSyncSettings(**(raw.get("env_sync") or {})),
            targets=TargetSettings.from_dict(raw.get("targets") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _env_number(value: str) -> Any:
    """Parse numeric environment values, leaving bad input for the validator to report."""
    try:
        return int(value)
    except ValueError:
        return value


class ConfigManager:
    """Loads, validates and scaffolds secret-rotator configuration."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            environ: Environment mapping (defaults to ``os.environ``)
        """
        self.environ = os.environ if environ is None else environ
        self.validator = ConfigValidator()

        templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
        self.jinja_env = Environment(loader=FileSystemLoader(templates_dir), trim_blocks=True, lstrip_blocks=True)

    def load(
        self,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> RotatorConfig:
        """
        Load configuration for this invocation.

        The YAML file is used when a path is given, otherwise the process
        environment. Overrides (from command-line options) are applied last.

        Args:
            config_path: Optional path to a YAML configuration file
            overrides: Dotted keys to override, e.g. ``{"vault.address": ...}``;
                None values are ignored

        Returns:
            RotatorConfig: Validated configuration

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        if config_path:
            raw = self.load_file(config_path)
        else:
            raw = self.from_environment()

        for dotted_key, value in (overrides or {}).items():
            if value is None:
                continue
            self._set_dotted(raw, dotted_key, value)

        if isinstance(raw.get("backend"), str):
            raw["backend"] = raw["backend"].strip().lower()

        errors = self.validator.validate_config(raw)
        if errors:
            raise ConfigurationError(
                "Invalid configuration",
                details=format_validation_errors(errors),
                suggestions=create_error_suggestions("configuration_invalid"),
            )

        return RotatorConfig.from_dict(raw)

    def load_file(self, config_path: str) -> Dict[str, Any]:
        """
        Read a YAML configuration file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or not a mapping
        """
        if not os.path.exists(config_path):
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                suggestions=["Run 'secret-rotator init' to generate a sample configuration"],
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}",
                details=str(e),
                suggestions=create_error_suggestions("configuration_invalid"),
            ) from e
        except OSError as e:
            raise ConfigurationError(f"Error reading configuration file {config_path}", details=str(e)) from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

        logger.debug("Loaded configuration from %s", config_path)
        return config

    def from_environment(self) -> Dict[str, Any]:
        """Build a raw configuration mapping from environment variables."""
        env = self.environ
        raw: Dict[str, Any] = {"backend": env.get("SECRET_BACKEND", "vault")}

        vault = {}
        for key, var in (("address", "VAULT_ADDR"), ("token", "VAULT_TOKEN"), ("mount", "VAULT_MOUNT")):
            if env.get(var):
                vault[key] = env[var]
        if vault:
            raw["vault"] = vault

        aws = {}
        if env.get("AWS_REGION"):
            aws["region"] = env["AWS_REGION"]
        if env.get("AWS_PROFILE"):
            aws["profile"] = env["AWS_PROFILE"]
        if aws:
            raw["aws"] = aws

        if env.get("SECRET_ROTATOR_FILE_DIR"):
            raw["file"] = {"directory": env["SECRET_ROTATOR_FILE_DIR"]}

        rotation = {}
        if env.get("ROTATION_PERIOD_MONTHS"):
            rotation["period_months"] = _env_number(env["ROTATION_PERIOD_MONTHS"])
        if env.get("SECRET_LENGTH"):
            rotation["secret_length"] = _env_number(env["SECRET_LENGTH"])
        if rotation:
            raw["rotation"] = rotation

        return raw

    def create_sample(self, output_path: str, overwrite: bool = False) -> str:
        """
        Write a sample configuration file rendered from the bundled template.

        Args:
            output_path: Destination path
            overwrite: Replace an existing file

        Returns:
            str: Path of the written file
        """
        if os.path.exists(output_path) and not overwrite:
            raise ConfigurationError(
                f"Configuration file already exists: {output_path}",
                suggestions=["Choose another path with --output or remove the existing file"],
            )

        template = self.jinja_env.get_template("rotator.yml.j2")
        content = template.render(
            defaults=RotatorConfig(),
            profiles=list(DEFAULT_PROFILES),
        )

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
        # The sample holds a token placeholder; keep it private from the start
        os.chmod(output_path, 0o600)

        return output_path

    @staticmethod
    def _set_dotted(raw: Dict[str, Any], dotted_key: str, value: Any) -> None:
        section = raw
        *parents, leaf = dotted_key.split(".")
        for part in parents:
            if not isinstance(section.get(part), dict):
                section[part] = {}
            section = section[part]
        section[leaf] = value
