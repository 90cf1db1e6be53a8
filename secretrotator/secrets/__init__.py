"""Rotation metadata, secret generation, scanning and the rotation engine."""

from .generator import SecretGenerator, generate_secret
from .metadata import DecisionStatus, RotationDecision, RotationMetadata
from .rotation import BatchReport, RotationEngine, RotationOutcome
from .scanner import ScanResult, Scanner, summarize

# Backend adapters import metadata from here; keep backends out of this
# package's import graph.

__all__ = [
    "SecretGenerator",
    "generate_secret",
    "DecisionStatus",
    "RotationDecision",
    "RotationMetadata",
    "RotationEngine",
    "RotationOutcome",
    "BatchReport",
    "Scanner",
    "ScanResult",
    "summarize",
]
