"""Tests for error handling system."""

from unittest.mock import patch

import click
from click.testing import CliRunner

from secretrotator.utils.errors import (
    AuthenticationError,
    BackendConnectionError,
    BackendError,
    ConfigurationError,
    EntropyError,
    EnvSyncError,
    ErrorHandler,
    RotatorError,
    SecretNotFoundError,
    ValidationError,
    create_error_suggestions,
    format_validation_errors,
)


class TestRotatorError:
    """Test custom error classes."""

    def test_rotator_error_basic(self):
        """Test basic RotatorError functionality."""
        error = RotatorError("Test error message")

        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.details is None
        assert error.suggestions == []

    def test_rotator_error_with_details(self):
        """Test RotatorError with details and suggestions."""
        suggestions = ["Try this", "Or try that"]
        error = RotatorError("Test error", details="Detailed explanation", suggestions=suggestions)

        assert error.message == "Test error"
        assert error.details == "Detailed explanation"
        assert error.suggestions == suggestions

    def test_backend_error_carries_path_and_operation(self):
        error = SecretNotFoundError("Secret not found: app/db", path="app/db", operation="read")

        assert error.path == "app/db"
        assert error.operation == "read"
        assert isinstance(error, BackendError)

    def test_specific_error_types(self):
        """Test specific error type inheritance."""
        for error_class in (ConfigurationError, ValidationError, EntropyError, EnvSyncError):
            assert issubclass(error_class, RotatorError)
        for error_class in (SecretNotFoundError, AuthenticationError, BackendConnectionError):
            assert issubclass(error_class, BackendError)
            assert issubclass(error_class, RotatorError)


class TestErrorHandler:
    """Test error handler functionality."""

    def setup_method(self):
        """Setup test environment."""
        self.handler = ErrorHandler(verbose=False)
        self.verbose_handler = ErrorHandler(verbose=True)

    def test_handle_rotator_error(self):
        """Test handling secret-rotator specific errors."""
        error = RotatorError(
            "Test error message",
            details="Error details",
            suggestions=["Suggestion 1", "Suggestion 2"],
        )

        with patch("click.echo") as mock_echo:
            self.handler.handle_error(error, "Test context")

            # Error, context, details, suggestions header and two suggestions
            assert mock_echo.call_count >= 6

            error_calls = [call for call in mock_echo.call_args_list if "✗" in str(call)]
            assert len(error_calls) > 0
            assert any("Context: Test context" in str(call) for call in mock_echo.call_args_list)

    def test_handle_generic_error_file_not_found(self):
        """Test handling FileNotFoundError."""
        error = FileNotFoundError("rotator.yml not found")

        with patch("click.echo") as mock_echo:
            self.handler.handle_error(error)

            assert mock_echo.called
            error_message = str(mock_echo.call_args_list[0])
            assert "File not found" in error_message

    def test_handle_generic_error_permission_denied(self):
        """Test handling PermissionError."""
        error = PermissionError("Permission denied for file")

        with patch("click.echo") as mock_echo:
            self.handler.handle_error(error)

            assert mock_echo.called
            error_message = str(mock_echo.call_args_list[0])
            assert "Permission denied" in error_message

    def test_handle_error_with_verbose(self):
        """Test error handling with verbose output."""
        error = RotatorError("Test error")

        with patch("click.echo"):
            with patch("traceback.print_exc") as mock_traceback:
                self.verbose_handler.handle_error(error)

                mock_traceback.assert_called_once()

    def test_exit_with_error(self):
        """Test exit_with_error functionality."""
        error = RotatorError("Fatal error")

        with patch("click.echo"):
            with patch("sys.exit") as mock_exit:
                self.handler.exit_with_error(error, exit_code=2)

                mock_exit.assert_called_once_with(2)

    def test_backend_error_shows_path(self):
        """Test backend errors name the secret and operation."""
        error = AuthenticationError("Vault denied read", path="app/db", operation="read")

        with patch("click.echo") as mock_echo:
            self.handler.handle_error(error)

        output = " ".join(str(call) for call in mock_echo.call_args_list)
        assert "Secret: app/db (read)" in output


class TestErrorUtilities:
    """Test error utility functions."""

    def test_create_error_suggestions_auth(self):
        """Test credential error suggestions name the backend."""
        suggestions = create_error_suggestions("auth_failed", backend="HashiCorp Vault")

        assert len(suggestions) > 0
        assert any("HashiCorp Vault" in suggestion for suggestion in suggestions)

    def test_create_error_suggestions_not_found(self):
        suggestions = create_error_suggestions("secret_not_found")

        assert any("secret-rotator list" in suggestion for suggestion in suggestions)

    def test_create_error_suggestions_unknown(self):
        """Test suggestions for unknown error type."""
        assert create_error_suggestions("unknown_error_type") == []

    def test_format_validation_errors_single(self):
        """Test formatting single validation error."""
        result = format_validation_errors(["vault.token is required"])

        assert result == "vault.token is required"

    def test_format_validation_errors_multiple(self):
        """Test formatting multiple validation errors."""
        errors = [
            "vault.address is required",
            "vault.token is required",
            "rotation.workers: 0 is less than the minimum of 1",
        ]

        result = format_validation_errors(errors)

        assert result.startswith("3 problems found:")
        assert "1." in result
        assert "2." in result
        assert "3." in result

    def test_format_validation_errors_empty(self):
        """Test formatting empty validation errors."""
        assert format_validation_errors([]) == "No validation errors"


class TestClickIntegration:
    """Test error handling integration with Click commands."""

    def test_cli_error_handling(self):
        """Test error handling in Click command context."""

        @click.command()
        def test_command():
            ErrorHandler().exit_with_error(ConfigurationError("Test config error"), "Loading configuration")

        runner = CliRunner()
        result = runner.invoke(test_command)

        assert result.exit_code == 1
        assert "✗ Test config error" in result.output

