"""Tests for the rotation engine."""

import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from secretrotator.secrets import RotationEngine
from secretrotator.secrets.metadata import DecisionStatus, RotationMetadata
from secretrotator.utils.errors import (
    AuthenticationError,
    BackendConnectionError,
    EnvSyncError,
    SecretNotFoundError,
    TargetError,
    ValidationError,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestFlagging:
    """Test flag and unflag."""

    @pytest.fixture(autouse=True)
    def setup_engine(self, memory_backend, clock):
        self.backend = memory_backend
        self.clock = clock
        self.engine = RotationEngine(memory_backend, clock=clock)
        self.backend.payloads["app/db"] = {"password": "old", "username": "admin"}

    def test_flag_new_secret(self):
        """Test first flagging starts the clock now with the default period."""
        metadata = self.engine.flag("app/db")

        assert metadata == RotationMetadata(enabled=True, last_rotated=self.clock.now, period_months=6)
        assert self.backend.metadata["app/db"] == {
            "rotation_enabled": "true",
            "last_rotated": "2024-06-15T12:00:00Z",
            "rotation_period_months": "6",
        }

    def test_flag_round_trip(self):
        """Test a flagged secret reads back with the period it was given."""
        self.engine.flag("app/db", period_months=3)

        metadata = self.backend.read_metadata("app/db")
        decision = self.engine.check("app/db")

        assert metadata.enabled is True
        assert metadata.period_months == 3
        assert metadata.last_rotated == self.clock.now
        assert decision.status is DecisionStatus.NOT_DUE
        assert decision.due_at == utc(2024, 9, 15, 12, 0, 0)

    def test_reflag_keeps_last_rotated(self):
        """Test re-flagging an already flagged secret only changes the period."""
        self.backend.metadata["app/db"] = RotationMetadata(True, utc(2024, 1, 1), 6).to_native()

        metadata = self.engine.flag("app/db", period_months=2)

        assert metadata.last_rotated == utc(2024, 1, 1)
        assert metadata.period_months == 2

    def test_reenabling_restarts_clock(self):
        self.backend.metadata["app/db"] = RotationMetadata(False, utc(2020, 1, 1), 6).to_native()

        metadata = self.engine.flag("app/db")

        assert metadata.last_rotated == self.clock.now

    @pytest.mark.parametrize("period", [0, -3])
    def test_flag_rejects_non_positive_period(self, period):
        """Test invalid periods fail before anything is written."""
        with pytest.raises(ValidationError):
            self.engine.flag("app/db", period_months=period)

        assert self.backend.writes == 0

    def test_flag_preserves_unrelated_metadata(self):
        self.backend.metadata["app/db"] = {"owner": "team-a"}

        self.engine.flag("app/db")

        assert self.backend.metadata["app/db"]["owner"] == "team-a"

    def test_flag_records_target_username(self):
        self.engine.flag("app/db", target_username="app_user")
        self.engine.flag("app/db", period_months=2)

        assert self.backend.metadata["app/db"]["target_username"] == "app_user"
        assert self.backend.read_metadata("app/db").target_username == "app_user"

    def test_unflag_keeps_history(self):
        """Test unflag disables rotation without dropping the record."""
        self.backend.metadata["app/db"] = RotationMetadata(True, utc(2024, 1, 1), 3).to_native()

        metadata = self.engine.unflag("app/db")

        assert metadata == RotationMetadata(False, utc(2024, 1, 1), 3)
        assert self.engine.check("app/db").status is DecisionStatus.NOT_FLAGGED


class TestRotate:
    """Test manual and automatic rotation of a single secret."""

    @pytest.fixture(autouse=True)
    def setup_engine(self, memory_backend, clock):
        self.backend = memory_backend
        self.clock = clock
        self.engine = RotationEngine(memory_backend, secret_length=24, clock=clock)
        self.backend.payloads["app/db"] = {"password": "old", "username": "admin", "host": "db.local"}

    def test_rotate_preserves_other_fields(self):
        """Test rotation merge-writes only the rotated field."""
        value = self.engine.rotate("app/db")

        payload = self.backend.payloads["app/db"]
        assert payload["password"] == value
        assert payload["username"] == "admin"
        assert payload["host"] == "db.local"
        assert len(value) == 24
        assert value != "old"

    def test_rotate_custom_field(self):
        value = self.engine.rotate("app/db", field="api_key")

        assert self.backend.payloads["app/db"]["api_key"] == value
        assert self.backend.payloads["app/db"]["password"] == "old"

    def test_rotate_stamps_metadata(self):
        """Test rotation records now and marks the secret flagged."""
        self.backend.metadata["app/db"] = RotationMetadata(False, utc(2023, 1, 1), 4).to_native()

        self.engine.rotate("app/db")

        metadata = self.backend.read_metadata("app/db")
        assert metadata == RotationMetadata(True, self.clock.now, 4)

    def test_rotate_can_change_period(self):
        self.engine.rotate("app/db", period_months=12)

        assert self.backend.read_metadata("app/db").period_months == 12

    def test_rotate_missing_secret(self):
        """Test rotation never creates a secret."""
        with pytest.raises(SecretNotFoundError):
            self.engine.rotate("app/missing")

        assert self.backend.writes == 0
        assert "app/missing" not in self.backend.payloads

    def test_rotate_updates_target(self, recording_target):
        """Test the target receives the new password and verifies it before the rotation is recorded."""
        value = self.engine.rotate("app/db", target=recording_target, target_username="app_user")

        assert recording_target.updates == [("app_user", value)]
        assert recording_target.verified == [("app_user", value)]
        assert self.backend.read_metadata("app/db").last_rotated == self.clock.now

    def test_rotate_uses_recorded_target_username(self, recording_target):
        self.backend.metadata["app/db"] = RotationMetadata(True, utc(2024, 1, 1), 6, "svc_user").to_native()

        value = self.engine.rotate("app/db", target=recording_target)

        assert recording_target.updates == [("svc_user", value)]

    def test_rotate_target_needs_username(self, recording_target):
        with pytest.raises(ValidationError):
            self.engine.rotate("app/db", target=recording_target)

        assert self.backend.writes == 0
        assert recording_target.updates == []

    def test_target_failure_leaves_rotation_unrecorded(self, recording_target):
        """Test a rejected target update keeps the old timestamp so the next pass retries."""
        self.backend.metadata["app/db"] = RotationMetadata(True, utc(2023, 1, 1), 6).to_native()
        recording_target.error = TargetError("role does not exist", target_type="postgres", username="app_user")

        with pytest.raises(TargetError):
            self.engine.rotate("app/db", target=recording_target, target_username="app_user")

        assert self.backend.payloads["app/db"]["password"] != "old"
        assert self.backend.metadata_writes == 0
        assert self.engine.check("app/db").is_due

    def test_value_hidden_from_outcome_repr(self):
        self.backend.metadata["app/db"] = RotationMetadata(enabled=True).to_native()

        outcome = self.engine.auto_rotate("app/db")

        assert outcome.rotated
        assert outcome.value not in repr(outcome)

    def test_app_db_scenario(self):
        """Test a monthly secret flagged on Jan 1 is skipped mid-month and rotated in February."""
        self.clock.now = utc(2024, 1, 1)
        self.engine.flag("app/db", period_months=1)

        self.clock.now = utc(2024, 1, 15)
        skipped = self.engine.auto_rotate("app/db")

        assert skipped.rotated is False
        assert skipped.decision.status is DecisionStatus.NOT_DUE
        assert self.backend.payloads["app/db"]["password"] == "old"

        self.clock.now = utc(2024, 2, 2)
        rotated = self.engine.auto_rotate("app/db")

        assert rotated.rotated is True
        assert self.backend.payloads["app/db"]["password"] == rotated.value
        assert self.backend.read_metadata("app/db").last_rotated == utc(2024, 2, 2)
        assert self.engine.check("app/db").status is DecisionStatus.NOT_DUE

    def test_auto_rotate_unflagged(self):
        outcome = self.engine.auto_rotate("app/db")

        assert outcome.decision.status is DecisionStatus.NOT_FLAGGED
        assert outcome.rotated is False
        assert self.backend.writes == 0

    def test_auto_rotate_dry_run_writes_nothing(self):
        """Test dry-run performs the check and nothing else."""
        self.backend.metadata["app/db"] = RotationMetadata(True, utc(2020, 1, 1), 1).to_native()
        self.engine.generator = MagicMock()

        outcome = self.engine.auto_rotate("app/db", dry_run=True)

        assert outcome.due
        assert outcome.rotated is False
        assert self.backend.writes == 0
        self.engine.generator.generate.assert_not_called()

    def test_auto_rotate_propagates_errors(self):
        self.backend.failures["app/db"] = AuthenticationError("denied", path="app/db")

        with pytest.raises(AuthenticationError):
            self.engine.auto_rotate("app/db")


class TestRotateDue:
    """Test batch rotation across many secrets."""

    @pytest.fixture(autouse=True)
    def setup_engine(self, memory_backend, clock):
        self.backend = memory_backend
        self.clock = clock
        self.engine = RotationEngine(memory_backend, clock=clock)
        for index in range(5):
            path = f"svc/app{index}"
            self.backend.payloads[path] = {"password": f"old{index}"}
            self.backend.metadata[path] = RotationMetadata(True, utc(2023, 1, 1), 6).to_native()

    def test_rotates_all_due(self):
        report = self.engine.rotate_due("svc")

        assert len(report.outcomes) == 5
        assert len(report.rotated) == 5
        assert report.exit_code == 0

    def test_dry_run_zero_writes(self):
        """Test a dry run reports due secrets without writing anything."""
        report = self.engine.rotate_due("svc", dry_run=True)

        assert len(report.due) == 5
        assert report.rotated == []
        assert self.backend.writes == 0

    @pytest.mark.parametrize("workers", [1, 3])
    def test_connection_failure_is_isolated(self, workers):
        """Test one unreachable secret does not stop the other four."""
        self.backend.failures["svc/app2"] = BackendConnectionError("connection refused", path="svc/app2")

        report = self.engine.rotate_due("svc", workers=workers)

        assert [outcome.ref.path for outcome in report.outcomes] == [f"svc/app{i}" for i in range(5)]
        assert len([outcome for outcome in report.outcomes if outcome.decision is not None]) == 4
        assert len(report.failed) == 1
        assert report.failed[0].ref.path == "svc/app2"
        assert len(report.rotated) == 4
        assert report.exit_code == 1

    def test_not_found_failure_keeps_zero_exit(self):
        self.backend.failures["svc/app1"] = SecretNotFoundError("gone", path="svc/app1")

        report = self.engine.rotate_due("svc")

        assert len(report.failed) == 1
        assert report.exit_code == 0

    def test_only_due_secrets_rotate(self):
        self.backend.metadata["svc/app0"] = RotationMetadata(True, self.clock.now, 6).to_native()
        self.backend.metadata["svc/app1"] = RotationMetadata(False).to_native()

        report = self.engine.rotate_due("svc")

        assert [outcome.ref.path for outcome in report.rotated] == ["svc/app2", "svc/app3", "svc/app4"]
        assert self.backend.payloads["svc/app0"]["password"] == "old0"

    def test_prefix_is_segment_bounded(self):
        self.backend.payloads["svcx/other"] = {"password": "x"}
        self.backend.metadata["svcx/other"] = RotationMetadata(enabled=True).to_native()

        report = self.engine.rotate_due("svc")

        assert "svcx/other" not in [outcome.ref.path for outcome in report.outcomes]

    def test_on_rotated_hook(self):
        """Test the hook receives each rotated ref and its new value."""
        calls = []

        report = self.engine.rotate_due("svc", on_rotated=lambda ref, value: calls.append((ref.path, value)))

        assert [path for path, _ in calls] == [f"svc/app{i}" for i in range(5)]
        assert all(value == self.backend.payloads[path]["password"] for path, value in calls)
        assert len(report.rotated) == 5

    def test_hook_failure_recorded_on_outcome(self):
        """Test a failing hook leaves the rotation in place and marks only that outcome."""

        def hook(ref, value):
            if ref.path == "svc/app3":
                raise EnvSyncError("profile not writable")

        report = self.engine.rotate_due("svc", on_rotated=hook)

        assert len(report.rotated) == 5
        assert [outcome.ref.path for outcome in report.failed] == ["svc/app3"]
        assert report.exit_code == 0

    def test_target_updated_for_recorded_usernames(self, recording_target):
        """Test only secrets that record a target username update the target."""
        self.backend.metadata["svc/app0"] = RotationMetadata(True, utc(2023, 1, 1), 6, "app0_user").to_native()

        report = self.engine.rotate_due("svc", target=recording_target)

        assert len(report.rotated) == 5
        assert recording_target.updates == [("app0_user", report.outcomes[0].value)]
        assert [outcome.target_updated for outcome in report.outcomes] == [True, False, False, False, False]

    def test_timed_out_rotation_writes_nothing(self):
        """Test a secret reported as timed out is not rotated behind the report's back."""
        read_payload = self.backend.read_payload

        def slow_read(path):
            if path == "svc/app1":
                time.sleep(0.5)
            return read_payload(path)

        self.backend.read_payload = slow_read

        report = self.engine.rotate_due("svc", workers=2, timeout=0.1)
        time.sleep(0.8)

        assert [outcome.ref.path for outcome in report.failed] == ["svc/app1"]
        assert isinstance(report.failed[0].error, BackendConnectionError)
        assert report.exit_code == 1
        assert len(report.rotated) == 4
        assert self.backend.payloads["svc/app1"]["password"] == "old1"
        assert self.backend.read_metadata("svc/app1").last_rotated == utc(2023, 1, 1)
