"""AWS Secrets Manager backend.

Payloads are JSON objects in ``SecretString``; rotation bookkeeping is kept in
resource tags using the canonical metadata keys.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from ..secrets.metadata import RotationMetadata
from ..utils.errors import (
    AuthenticationError,
    BackendConnectionError,
    SecretNotFoundError,
    ValidationError,
    create_error_suggestions,
)
from .base import (
    BackendKind,
    SecretBackend,
    SecretPayload,
    SecretRef,
    matches_prefix,
    stringify_value,
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"ResourceNotFoundException"}
AUTH_ERROR_CODES = {
    "AccessDeniedException",
    "AccessDenied",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredTokenException",
    "ExpiredToken",
    "InvalidSignatureException",
    "SignatureDoesNotMatch",
}


def tags_to_dict(tags: List[Dict[str, str]]) -> Dict[str, str]:
    """Convert the AWS tag list shape into a plain mapping."""
    return {tag["Key"]: tag.get("Value", "") for tag in tags or [] if "Key" in tag}


def dict_to_tags(data: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a plain mapping into the AWS tag list shape."""
    return [{"Key": key, "Value": value} for key, value in data.items()]


class AwsSecretsBackend(SecretBackend):
    """Secret backend for AWS Secrets Manager."""

    kind = BackendKind.AWS
    display_name = "AWS Secrets Manager"

    def __init__(
        self,
        region: str = "us-east-1",
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Any = None,
    ):
        """
        Initialize AWS Secrets Manager backend.

        Args:
            region: AWS region name
            profile: Optional named profile from the shared credentials file
            timeout: Connect/read timeout in seconds (botocore default when None)
            client: Pre-built secretsmanager client (mostly for tests)
        """
        self.region = region
        if client is None:
            session = boto3.session.Session(profile_name=profile, region_name=region)
            config = None
            if timeout:
                config = Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 1})
            client = session.client("secretsmanager", config=config)
        self.client = client

    @contextmanager
    def _translate_errors(self, path: str, operation: str):
        """Map botocore exceptions onto the backend error taxonomy."""
        try:
            yield
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in NOT_FOUND_CODES:
                raise SecretNotFoundError(
                    f"Secret not found: {path}",
                    path=path,
                    operation=operation,
                    suggestions=create_error_suggestions("secret_not_found"),
                ) from e
            if code in AUTH_ERROR_CODES:
                raise AuthenticationError(
                    f"AWS denied {operation} on secret '{path}' ({code})",
                    path=path,
                    operation=operation,
                    details=str(e),
                    suggestions=create_error_suggestions("auth_failed", backend=self.display_name),
                ) from e
            raise BackendConnectionError(
                f"AWS Secrets Manager {operation} failed for '{path}' ({code or 'unknown error'})",
                path=path,
                operation=operation,
                details=str(e),
            ) from e
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise AuthenticationError(
                "No usable AWS credentials found",
                path=path,
                operation=operation,
                details=str(e),
                suggestions=create_error_suggestions("auth_failed", backend=self.display_name),
            ) from e
        except BotoCoreError as e:
            raise BackendConnectionError(
                f"Could not reach AWS Secrets Manager in {self.region}",
                path=path,
                operation=operation,
                details=str(e),
                suggestions=create_error_suggestions("connection_failed", backend=self.display_name),
            ) from e

    def _read_document(self, path: str) -> Dict[str, Any]:
        """Parsed JSON object of a secret, values untouched."""
        logger.debug("Reading secret from AWS Secrets Manager: %s", path)
        with self._translate_errors(path, "read"):
            response = self.client.get_secret_value(SecretId=path)

        secret_string = response.get("SecretString")
        if secret_string is None:
            raise ValidationError(f"Secret '{path}' has no string value")
        try:
            data = json.loads(secret_string)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            # The value itself must never reach the error text
            raise ValidationError(
                f"Secret '{path}' is not a JSON object",
                suggestions=["Store the secret as a JSON object of field names to values"],
            )
        return data

    def read_payload(self, path: str) -> SecretPayload:
        return {key: stringify_value(value) for key, value in self._read_document(path).items()}

    def write_payload(self, path: str, payload: SecretPayload, merge: bool = True) -> None:
        data: Dict[str, Any] = {}
        exists = True
        if merge:
            # Merge over the raw stored values, not the stringified view
            try:
                data = self._read_document(path)
            except SecretNotFoundError:
                exists = False
        data.update({key: str(value) for key, value in payload.items()})
        secret_string = json.dumps(data)

        with self._translate_errors(path, "write"):
            if exists:
                try:
                    self.client.update_secret(SecretId=path, SecretString=secret_string)
                    logger.info("Successfully updated secret '%s' in AWS Secrets Manager", path)
                    return
                except ClientError as e:
                    if e.response.get("Error", {}).get("Code") not in NOT_FOUND_CODES:
                        raise
            self.client.create_secret(Name=path, SecretString=secret_string)
            logger.info("Successfully created secret '%s' in AWS Secrets Manager", path)

    def read_metadata(self, path: str) -> RotationMetadata:
        logger.debug("Reading metadata for secret: %s", path)
        try:
            with self._translate_errors(path, "read-metadata"):
                response = self.client.describe_secret(SecretId=path)
        except SecretNotFoundError:
            return RotationMetadata()
        return RotationMetadata.from_native(tags_to_dict(response.get("Tags", [])))

    def write_metadata(self, path: str, metadata: RotationMetadata) -> None:
        # TagResource adds or overwrites the given keys and leaves other tags alone
        logger.debug("Updating metadata for secret: %s", path)
        with self._translate_errors(path, "write-metadata"):
            self.client.tag_resource(SecretId=path, Tags=dict_to_tags(metadata.to_native()))
        logger.info("Successfully updated metadata for secret '%s'", path)

    def list(self, prefix: str = "") -> Iterator[SecretRef]:
        """Page through ``ListSecrets`` lazily, keeping names under ``prefix``."""
        logger.debug("Listing secrets in AWS Secrets Manager with prefix: %s", prefix)
        with self._translate_errors(prefix, "list"):
            paginator = self.client.get_paginator("list_secrets")
            for page in paginator.paginate():
                for secret in page.get("SecretList", []):
                    name = secret.get("Name")
                    if name and matches_prefix(name, prefix):
                        yield self.ref(name)
