"""Pytest configuration and shared fixtures."""

import tempfile
from datetime import datetime, timezone

import pytest

from secretrotator.backends.base import BackendKind, SecretBackend, matches_prefix
from secretrotator.secrets.metadata import RotationMetadata
from secretrotator.targets.base import Target, TargetKind
from secretrotator.utils.errors import SecretNotFoundError


class InMemoryBackend(SecretBackend):
    """Dict-backed adapter that counts writes and can fail on chosen paths."""

    kind = BackendKind.VAULT
    display_name = "In-memory"

    def __init__(self):
        self.payloads = {}
        self.metadata = {}
        self.failures = {}
        self.payload_writes = 0
        self.metadata_writes = 0

    def _maybe_fail(self, path):
        if path in self.failures:
            raise self.failures[path]

    def read_payload(self, path):
        self._maybe_fail(path)
        if path not in self.payloads:
            raise SecretNotFoundError(f"Secret not found: {path}", path=path, operation="read")
        return dict(self.payloads[path])

    def write_payload(self, path, payload, merge=True):
        self._maybe_fail(path)
        current = self.payloads.get(path, {}) if merge else {}
        self.payloads[path] = {**current, **payload}
        self.payload_writes += 1

    def read_metadata(self, path):
        self._maybe_fail(path)
        return RotationMetadata.from_native(self.metadata.get(path))

    def write_metadata(self, path, metadata):
        self._maybe_fail(path)
        self.metadata[path] = {**self.metadata.get(path, {}), **metadata.to_native()}
        self.metadata_writes += 1

    def list(self, prefix=""):
        for path in sorted(self.payloads):
            if matches_prefix(path, prefix):
                yield self.ref(path)

    @property
    def writes(self):
        return self.payload_writes + self.metadata_writes


class RecordingTarget(Target):
    """Target that records password updates, or fails with ``error`` when set."""

    kind = TargetKind.POSTGRES

    def __init__(self):
        self.updates = []
        self.verified = []
        self.error = None

    def update_password(self, username, new_password):
        if self.error is not None:
            raise self.error
        self.updates.append((username, new_password))

    def verify_connection(self, username, password, database=None):
        self.verified.append((username, password))


class FixedClock:
    """Settable clock for deterministic due-checks."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    import shutil
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def memory_backend():
    """Empty in-memory backend."""
    return InMemoryBackend()


@pytest.fixture
def recording_target():
    """Target that records the passwords it was given."""
    return RecordingTarget()


@pytest.fixture
def clock():
    """Clock fixed at 2024-06-15T12:00:00Z."""
    return FixedClock(datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def sample_config():
    """Sample file-backend configuration for testing."""
    return {
        'backend': 'file',
        'file': {
            'directory': '/tmp/secret-rotator-test'
        },
        'rotation': {
            'period_months': 3,
            'secret_length': 24,
            'field': 'password',
            'workers': 1
        },
        'env_sync': {
            'profiles': ['.bashrc', '.zshrc']
        }
    }


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove configuration variables that would leak into tests."""
    for var in (
        'ROTATOR_CONFIG',
        'SECRET_BACKEND',
        'VAULT_ADDR',
        'VAULT_TOKEN',
        'VAULT_MOUNT',
        'AWS_REGION',
        'AWS_PROFILE',
        'SECRET_ROTATOR_FILE_DIR',
        'ROTATION_PERIOD_MONTHS',
        'SECRET_LENGTH',
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations to temporary directory."""
    monkeypatch.chdir(temp_directory)
    monkeypatch.setenv('HOME', temp_directory)
    return temp_directory
