"""REST API target: send the new password to an HTTP endpoint."""

import logging
from typing import Dict, Optional
from urllib.parse import quote

import requests

from ..utils.errors import TargetError, create_error_suggestions
from .base import Target, TargetKind

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class ApiTarget(Target):
    """Updates passwords through an HTTP API."""

    kind = TargetKind.API

    def __init__(
        self,
        base_url: str,
        endpoint: str,
        method: str = "POST",
        password_field: str = "password",
        username_field: Optional[str] = None,
        additional_fields: Optional[Dict[str, str]] = None,
        auth_header: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize API target.

        Args:
            base_url: API root, e.g. https://api.example.com
            endpoint: Path or absolute URL; ``{username}`` is substituted
            method: HTTP method (unknown methods fall back to POST)
            password_field: Body field carrying the new password
            username_field: Body field carrying the username, if any
            additional_fields: Extra static body fields
            auth_header: Value of the ``Authorization`` header
            headers: Extra request headers
            timeout_seconds: Request timeout
            session: Pre-built requests session
        """
        self.base_url = base_url
        self.endpoint = endpoint
        self.method = method.upper() if method.upper() in ALLOWED_METHODS else "POST"
        self.password_field = password_field
        self.username_field = username_field
        self.additional_fields = dict(additional_fields or {})
        self.auth_header = auth_header
        self.headers = dict(headers or {})
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def build_url(self, username: str) -> str:
        url = self.endpoint.replace("{username}", quote(username, safe=""))
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    def build_body(self, username: str, new_password: str) -> Dict[str, str]:
        body = {}
        if self.username_field:
            body[self.username_field] = username
        body[self.password_field] = new_password
        body.update(self.additional_fields)
        return body

    def update_password(self, username: str, new_password: str) -> None:
        url = self.build_url(username)
        logger.info("Updating password via API for %s", username)
        logger.debug("Calling %s %s", self.method, url)

        headers = dict(self.headers)
        if self.auth_header:
            headers["Authorization"] = self.auth_header

        try:
            response = self.session.request(
                self.method,
                url,
                json=self.build_body(username, new_password),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise TargetError(
                f"API password update for '{username}' could not be sent",
                target_type=self.target_type,
                username=username,
                details=type(e).__name__,
                suggestions=create_error_suggestions("target_failed"),
            ) from e

        # Only the status is reported; response bodies may echo the password
        if not response.ok:
            raise TargetError(
                f"API password update for '{username}' failed with status {response.status_code}",
                target_type=self.target_type,
                username=username,
                details=response.reason,
                suggestions=create_error_suggestions("target_failed"),
            )

        logger.info("Successfully updated password via API for %s", username)

    def verify_connection(self, username: str, password: str, database: Optional[str] = None) -> None:
        logger.info("Verification is not supported for API targets; skipping for %s", username)

    def __repr__(self) -> str:
        return f"<ApiTarget {self.method} {self.base_url} {self.endpoint}>"
