"""Secret rotation engine.

The engine is stateless: every decision is recomputed from what the backend
returns, so running the same flag/scan/rotate twice is safe.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional

from ..utils.errors import BackendConnectionError, RotatorError, ValidationError
from .generator import DEFAULT_SECRET_LENGTH, SecretGenerator
from .metadata import (
    DEFAULT_PERIOD_MONTHS,
    RotationDecision,
    RotationMetadata,
    evaluate_rotation,
    utc_now,
)
from .scanner import ScanResult, Scanner, batch_exit_code, process_in_order

if TYPE_CHECKING:
    from ..backends.base import SecretBackend, SecretRef
    from ..targets.base import Target

logger = logging.getLogger(__name__)

DEFAULT_FIELD = "password"


@dataclass
class RotationOutcome:
    """Result of auto-rotating one secret."""

    ref: "SecretRef"
    decision: Optional[RotationDecision] = None
    rotated: bool = False
    target_updated: bool = False
    value: Optional[str] = field(default=None, repr=False)
    error: Optional[RotatorError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def due(self) -> bool:
        return self.decision is not None and self.decision.is_due


@dataclass
class BatchReport:
    """Per-secret outcomes of a batch auto-rotation."""

    outcomes: List[RotationOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def due(self) -> List[RotationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.due]

    @property
    def rotated(self) -> List[RotationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.rotated]

    @property
    def failed(self) -> List[RotationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]

    @property
    def exit_code(self) -> int:
        return batch_exit_code(outcome.error for outcome in self.outcomes)


def _validate_period(period_months) -> int:
    if isinstance(period_months, bool) or not isinstance(period_months, int) or period_months <= 0:
        raise ValidationError(f"Rotation period must be a positive number of months, got {period_months!r}")
    return period_months


def _ensure_wanted(path: str, abandoned: Optional[threading.Event], step: str) -> None:
    """Stop a rotation whose batch has already reported it as timed out."""
    if abandoned is not None and abandoned.is_set():
        raise BackendConnectionError(
            f"Rotation of {path} abandoned after the batch timeout",
            path=path,
            operation=step,
        )


class RotationEngine:
    """Flags, checks and rotates secrets through an opaque backend handle."""

    def __init__(
        self,
        backend: "SecretBackend",
        default_period_months: int = DEFAULT_PERIOD_MONTHS,
        secret_length: int = DEFAULT_SECRET_LENGTH,
        field: str = DEFAULT_FIELD,
        generator: Optional[SecretGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize rotation engine.

        Args:
            backend: Secret backend selected at startup
            default_period_months: Period applied when flagging without one
                and when a record carries none
            secret_length: Length of generated secrets
            field: Payload field replaced on rotation
            generator: Secret generator (default alphabet when omitted)
            clock: Source of "now" as an aware UTC datetime
        """
        self.backend = backend
        self.default_period_months = _validate_period(default_period_months)
        self.secret_length = secret_length
        self.field = field
        self.generator = generator or SecretGenerator()
        self.clock = clock

    def evaluate(self, metadata: RotationMetadata, now: Optional[datetime] = None) -> RotationDecision:
        """Pure due-check of a metadata record."""
        return evaluate_rotation(metadata, now or self.clock(), self.default_period_months)

    def check(self, path: str) -> RotationDecision:
        """Read a secret's metadata and classify it."""
        return self.evaluate(self.backend.read_metadata(path))

    def flag(
        self,
        path: str,
        period_months: Optional[int] = None,
        target_username: Optional[str] = None,
    ) -> RotationMetadata:
        """
        Flag a secret for automatic rotation.

        The rotation clock starts now when the secret is flagged for the
        first time (or re-enabled); re-flagging an already flagged secret only
        changes its period.

        Args:
            path: Secret path
            period_months: Rotation period (engine default when omitted)
            target_username: Role or account updated at the rotation target

        Returns:
            RotationMetadata: The record that was written
        """
        period = _validate_period(period_months if period_months is not None else self.default_period_months)

        logger.info(
            "Flagging secret at %s (%s) for rotation every %d months",
            path,
            self.backend.display_name,
            period,
        )

        current = self.backend.read_metadata(path)
        if current.enabled and current.last_rotated is not None:
            last_rotated = current.last_rotated
        else:
            last_rotated = self.clock()

        metadata = RotationMetadata(
            enabled=True,
            last_rotated=last_rotated,
            period_months=period,
            target_username=target_username or current.target_username,
        )
        self.backend.write_metadata(path, metadata)

        logger.info("Successfully flagged secret at %s for rotation", path)
        return metadata

    def unflag(self, path: str) -> RotationMetadata:
        """Disable automatic rotation, keeping the recorded history."""
        current = self.backend.read_metadata(path)
        metadata = current.with_changes(enabled=False)
        self.backend.write_metadata(path, metadata)

        logger.info("Disabled rotation for secret at %s", path)
        return metadata

    def rotate(
        self,
        path: str,
        field: Optional[str] = None,
        period_months: Optional[int] = None,
        target: Optional["Target"] = None,
        target_username: Optional[str] = None,
        abandoned: Optional[threading.Event] = None,
    ) -> str:
        """
        Rotate a secret now, whether or not it is due.

        A new value is merge-written under ``field`` (other payload fields
        are preserved) and the metadata is stamped with the rotation time.
        The secret is marked as flagged; its period only changes when
        ``period_months`` is given.

        With a ``target`` the new password is also set for
        ``target_username`` in the consuming system and verified there,
        before the metadata is stamped. If that fails the backend already
        holds the new value but the rotation is not recorded, so the next
        pass rotates the secret again.

        Once ``abandoned`` is set nothing more is written.

        Args:
            path: Secret path; the secret must already exist
            field: Payload field to replace (engine default when omitted)
            period_months: Optional new rotation period
            target: Consuming system to update
            target_username: Role or account at the target (falls back to
                the secret's ``target_username`` metadata)
            abandoned: Set by a batch that no longer waits for this secret

        Returns:
            str: The new secret value

        Raises:
            SecretNotFoundError: If the secret does not exist
            TargetError: If the target rejected the update or the new password
        """
        field = field or self.field
        if period_months is not None:
            _validate_period(period_months)

        logger.info("Rotating secret at %s (%s)", path, self.backend.display_name)

        # Rotation replaces a credential; it never creates one
        self.backend.read_payload(path)
        current = self.backend.read_metadata(path)

        username = None
        if target is not None:
            username = target_username or current.target_username
            if not username:
                raise ValidationError(
                    f"No target username for {path}",
                    suggestions=[
                        "Pass --target-username",
                        f"Or record it with 'secret-rotator flag {path} --target-username NAME'",
                    ],
                )

        new_value = self.generator.generate(self.secret_length)

        _ensure_wanted(path, abandoned, "write")
        self.backend.write_payload(path, {field: new_value}, merge=True)

        if target is not None:
            _ensure_wanted(path, abandoned, "update-target")
            logger.info("Updating %s password for %s", target.target_type, username)
            target.update_password(username, new_value)
            target.verify_connection(username, new_value)

        _ensure_wanted(path, abandoned, "write-metadata")
        metadata = current.with_changes(
            enabled=True,
            last_rotated=self.clock(),
            period_months=period_months if period_months is not None else current.period_months,
        )
        self.backend.write_metadata(path, metadata)

        logger.info("Successfully rotated secret at %s", path)
        return new_value

    def auto_rotate(self, path: str, dry_run: bool = False, field: Optional[str] = None) -> RotationOutcome:
        """
        Rotate a secret only if it is due.

        In dry-run mode only the due-check runs; nothing is generated or
        written. Errors propagate to the caller.
        """
        ref = self.backend.ref(path)
        decision = self.check(path)
        if not decision.is_due:
            logger.debug("Skipping %s: %s", path, decision.reason)
            return RotationOutcome(ref=ref, decision=decision)
        if dry_run:
            logger.info("[DRY RUN] Would rotate %s (%s)", path, decision.reason)
            return RotationOutcome(ref=ref, decision=decision)

        value = self.rotate(path, field=field)
        return RotationOutcome(ref=ref, decision=decision, rotated=True, value=value)

    def scanner(self, workers: int = 1, timeout: Optional[float] = None) -> Scanner:
        return Scanner(
            self.backend,
            default_period_months=self.default_period_months,
            clock=self.clock,
            workers=workers,
            timeout=timeout,
        )

    def scan(self, prefix: str = "", workers: int = 1, timeout: Optional[float] = None) -> Iterator[ScanResult]:
        """Classify every secret under ``prefix``; see ``Scanner.scan``."""
        return self.scanner(workers=workers, timeout=timeout).scan(prefix)

    def rotate_due(
        self,
        prefix: str = "",
        dry_run: bool = False,
        field: Optional[str] = None,
        workers: int = 1,
        timeout: Optional[float] = None,
        on_rotated: Optional[Callable[["SecretRef", str], None]] = None,
        target: Optional["Target"] = None,
    ) -> BatchReport:
        """
        Auto-rotate every due secret under ``prefix``.

        A failure on one secret is recorded on its outcome and does not stop
        the others. ``on_rotated`` runs after each successful rotation; if it
        fails, the error is recorded on that outcome (the rotation itself
        stands). A secret that exceeds ``timeout`` is reported as a
        ``BackendConnectionError`` and its worker stops before the next write.

        With a ``target``, secrets whose metadata records a
        ``target_username`` also have their password updated there; the
        others are rotated in the backend only.

        Args:
            prefix: Path prefix to scan
            dry_run: Only report what would be rotated
            field: Payload field to replace
            workers: Secrets processed concurrently
            timeout: Per-secret timeout when ``workers > 1``
            on_rotated: Callback receiving the ref and new value
            target: Consuming system to update

        Returns:
            BatchReport: Outcomes in listing order
        """
        now = self.clock()

        def process(ref: "SecretRef", abandoned: threading.Event) -> RotationOutcome:
            outcome = RotationOutcome(ref=ref)
            try:
                metadata = self.backend.read_metadata(ref.path)
                outcome.decision = self.evaluate(metadata, now)
                if not outcome.decision.is_due or dry_run:
                    return outcome

                use_target = target
                if target is not None and not metadata.target_username:
                    logger.warning("No target username recorded for %s; rotating the secret only", ref.path)
                    use_target = None

                outcome.value = self.rotate(ref.path, field=field, target=use_target, abandoned=abandoned)
                outcome.rotated = True
                outcome.target_updated = use_target is not None
                if on_rotated is not None:
                    _ensure_wanted(ref.path, abandoned, "on-rotated")
                    on_rotated(ref, outcome.value)
            except RotatorError as e:
                logger.error("Failed to rotate %s: %s", ref.path, e.message)
                outcome.error = e
            return outcome

        report = BatchReport(dry_run=dry_run)
        report.outcomes.extend(
            process_in_order(
                self.backend.list(prefix),
                process,
                workers=workers,
                timeout=timeout,
                on_timeout=lambda ref, error: RotationOutcome(ref=ref, error=error),
            )
        )

        logger.info(
            "Rotation pass complete: %d due, %d rotated, %d failed",
            len(report.due),
            len(report.rotated),
            len(report.failed),
        )
        return report
