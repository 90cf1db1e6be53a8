"""Error handling utilities for secret-rotator."""

import sys
import traceback
from typing import List, Optional, Tuple

import click


class RotatorError(Exception):
    """Base exception for secret-rotator errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(RotatorError):
    """Raised when backend configuration is invalid or missing."""

    pass


class ValidationError(RotatorError):
    """Raised when an argument or stored value fails validation."""

    pass


class EntropyError(RotatorError):
    """Raised when the secure random source is unavailable."""

    pass


class EnvSyncError(RotatorError):
    """Raised when a shell profile cannot be updated."""

    pass


class TargetError(RotatorError):
    """Raised when a consuming system rejects a password update or the new credential."""

    def __init__(
        self,
        message: str,
        target_type: Optional[str] = None,
        username: Optional[str] = None,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.target_type = target_type
        self.username = username
        super().__init__(message, details=details, suggestions=suggestions)


class BackendError(RotatorError):
    """Raised when a secret backend operation fails."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.path = path
        self.operation = operation
        super().__init__(message, details=details, suggestions=suggestions)


class SecretNotFoundError(BackendError):
    """Raised when a secret, or a field inside it, does not exist."""

    pass


class AuthenticationError(BackendError):
    """Raised when backend credentials are invalid, expired or lack permission."""

    pass


class BackendConnectionError(BackendError):
    """Raised when the backend cannot be reached or the call times out."""

    pass


class ErrorHandler:
    """Prints errors for the terminal and exits with a status code."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Display an error on stderr.

        Backend errors also show the secret path and the operation that
        failed. The traceback is only printed in verbose mode.

        Args:
            error: Exception to display
            context: Optional description of what was being attempted
        """
        if isinstance(error, RotatorError):
            lines = []
            if isinstance(error, BackendError) and error.path:
                operation = f" ({error.operation})" if error.operation else ""
                lines.append(f"Secret: {error.path}{operation}")
            if error.details:
                lines.append(f"Details: {error.details}")
            self._echo(error.message, context, lines, error.suggestions)
        else:
            message, suggestions = self._describe_unexpected(error)
            self._echo(message, context, [], suggestions)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    @staticmethod
    def _describe_unexpected(error: Exception) -> Tuple[str, List[str]]:
        if isinstance(error, FileNotFoundError):
            return f"File not found: {error}", ["Check that the path exists and is readable"]
        if isinstance(error, PermissionError):
            return f"Permission denied: {error}", ["Check file and directory permissions"]
        return f"{type(error).__name__}: {error}", ["Re-run with --verbose for the full traceback"]

    @staticmethod
    def _echo(message: str, context: Optional[str], lines: List[str], suggestions: List[str]) -> None:
        click.echo(f"✗ {message}", err=True)
        if context:
            click.echo(f"Context: {context}", err=True)
        for line in lines:
            click.echo(line, err=True)
        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Display the error, then exit with ``exit_code``."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (``backend`` is used when present)

    Returns:
        list: List of suggestion strings
    """
    backend = kwargs.get("backend", "the backend")

    suggestions = {
        "auth_failed": [
            f"Check the credentials configured for {backend}",
            "Renew the token or session if it has expired",
            "Verify the policy grants read/write access to this path",
        ],
        "connection_failed": [
            f"Verify that {backend} is running and reachable",
            "Check the configured address or region",
            "Check proxy and firewall settings",
        ],
        "secret_not_found": [
            "Check the secret path for typos",
            "Run 'secret-rotator list' to see available secrets",
        ],
        "target_failed": [
            "The secret backend already holds the new value; the target still has the old one",
            "Check the target connection settings and the admin credentials",
            "Re-run the rotation once the target is reachable",
        ],
        "configuration_invalid": [
            "Check YAML syntax in the configuration file",
            "Run 'secret-rotator init' to generate a sample configuration",
            "Verify all required fields for the selected backend are present",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: List[str]) -> str:
    """Render validation messages for the ``Details:`` line of an error."""
    if not errors:
        return "No validation errors"
    if len(errors) == 1:
        return errors[0]
    numbered = [f"  {index}. {error}" for index, error in enumerate(errors, 1)]
    return "\n".join([f"{len(errors)} problems found:"] + numbered)
