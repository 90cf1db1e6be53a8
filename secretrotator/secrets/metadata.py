"""Rotation bookkeeping stored in backend-native metadata."""

import calendar
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Canonical keys shared with every tool that has flagged secrets before
ROTATION_ENABLED_KEY = "rotation_enabled"
LAST_ROTATED_KEY = "last_rotated"
ROTATION_PERIOD_KEY = "rotation_period_months"
TARGET_USERNAME_KEY = "target_username"
# Older records name the target role under this key
LEGACY_TARGET_USERNAME_KEY = "database_username"

METADATA_KEYS = (ROTATION_ENABLED_KEY, LAST_ROTATED_KEY, ROTATION_PERIOD_KEY, TARGET_USERNAME_KEY)

DEFAULT_PERIOD_MONTHS = 6

_FRACTION_RE = re.compile(r"([Tt ]\d{2}:\d{2}:\d{2})\.\d+")


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Encode a timestamp as an RFC3339 UTC string with second precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    """
    Decode an RFC3339 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z`` as well as numeric offsets and fractional
    seconds; the result is truncated to whole seconds.

    Raises:
        ValueError: If the string is not a valid RFC3339 timestamp
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 rejects fractions that are not 3 or 6 digits
    text = _FRACTION_RE.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {value!r}")
    return parsed.astimezone(timezone.utc).replace(microsecond=0)


def add_months(value: datetime, months: int) -> datetime:
    """
    Add whole calendar months to a timestamp.

    The day of month is clamped to the last valid day of the resulting month,
    so Jan 31 + 1 month is Feb 28 (or 29). Time of day is preserved.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class RotationMetadata:
    """Per-secret rotation record."""

    enabled: bool = False
    last_rotated: Optional[datetime] = None
    period_months: Optional[int] = None
    target_username: Optional[str] = None

    @classmethod
    def from_native(cls, raw: Optional[Mapping[str, str]]) -> "RotationMetadata":
        """
        Decode canonical metadata keys read from a backend.

        Missing or empty input yields the default "not flagged" record. Keys
        other than the canonical ones are ignored.
        """
        if not raw:
            return cls()

        enabled = str(raw.get(ROTATION_ENABLED_KEY, "")).strip().lower() == "true"

        last_rotated = None
        raw_timestamp = raw.get(LAST_ROTATED_KEY)
        if raw_timestamp:
            try:
                last_rotated = parse_timestamp(str(raw_timestamp))
            except ValueError:
                logger.warning("Failed to parse last_rotated timestamp %r, treating as never rotated", raw_timestamp)

        period_months = None
        raw_period = raw.get(ROTATION_PERIOD_KEY)
        if raw_period not in (None, ""):
            try:
                period_months = int(str(raw_period).strip())
            except ValueError:
                logger.warning("Ignoring invalid rotation period %r", raw_period)
            else:
                if period_months <= 0:
                    logger.warning("Ignoring non-positive rotation period %r", raw_period)
                    period_months = None

        target_username = raw.get(TARGET_USERNAME_KEY) or raw.get(LEGACY_TARGET_USERNAME_KEY) or None

        return cls(
            enabled=enabled,
            last_rotated=last_rotated,
            period_months=period_months,
            target_username=target_username,
        )

    def to_native(self) -> Dict[str, str]:
        """Encode into canonical string key/value pairs."""
        native = {ROTATION_ENABLED_KEY: "true" if self.enabled else "false"}
        if self.last_rotated is not None:
            native[LAST_ROTATED_KEY] = format_timestamp(self.last_rotated)
        if self.period_months is not None:
            native[ROTATION_PERIOD_KEY] = str(self.period_months)
        if self.target_username:
            native[TARGET_USERNAME_KEY] = self.target_username
        return native

    def effective_period(self, default_period_months: int = DEFAULT_PERIOD_MONTHS) -> int:
        """Rotation period, falling back to the configured default."""
        return self.period_months if self.period_months is not None else default_period_months

    def with_changes(self, **changes) -> "RotationMetadata":
        return replace(self, **changes)


def next_rotation_due(
    metadata: RotationMetadata,
    default_period_months: int = DEFAULT_PERIOD_MONTHS,
) -> Optional[datetime]:
    """
    Instant at which a flagged secret becomes due.

    Returns:
        Optional[datetime]: None for unflagged secrets and for flagged secrets
        that have never been rotated (those are due immediately)
    """
    if not metadata.enabled or metadata.last_rotated is None:
        return None
    return add_months(metadata.last_rotated, metadata.effective_period(default_period_months))


def is_rotation_due(
    metadata: RotationMetadata,
    now: datetime,
    default_period_months: int = DEFAULT_PERIOD_MONTHS,
) -> bool:
    """
    Pure due-check.

    Args:
        metadata: Decoded rotation record
        now: Reference instant (aware UTC)
        default_period_months: Period used when the record carries none

    Returns:
        bool: True when ``now >= last_rotated + period`` for a flagged secret
    """
    if not metadata.enabled:
        return False
    due_at = next_rotation_due(metadata, default_period_months)
    if due_at is None:
        return True
    return now >= due_at


class DecisionStatus(Enum):
    """Classification of a secret at scan time."""

    NOT_FLAGGED = "not-flagged"
    NOT_DUE = "flagged-not-due"
    DUE = "flagged-due"


@dataclass(frozen=True)
class RotationDecision:
    """Transient due-check result; never persisted."""

    status: DecisionStatus
    reason: str = ""
    due_at: Optional[datetime] = None

    @property
    def is_due(self) -> bool:
        return self.status is DecisionStatus.DUE

    @property
    def is_flagged(self) -> bool:
        return self.status is not DecisionStatus.NOT_FLAGGED


def evaluate_rotation(
    metadata: RotationMetadata,
    now: datetime,
    default_period_months: int = DEFAULT_PERIOD_MONTHS,
) -> RotationDecision:
    """Classify a metadata record against ``now`` without side effects."""
    if not metadata.enabled:
        return RotationDecision(DecisionStatus.NOT_FLAGGED, "rotation not enabled")

    due_at = next_rotation_due(metadata, default_period_months)
    if due_at is None:
        return RotationDecision(DecisionStatus.DUE, "no recorded rotation")

    if is_rotation_due(metadata, now, default_period_months):
        return RotationDecision(DecisionStatus.DUE, f"due since {format_timestamp(due_at)}", due_at)
    return RotationDecision(DecisionStatus.NOT_DUE, f"due at {format_timestamp(due_at)}", due_at)
