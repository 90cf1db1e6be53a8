"""Secret rotator - automatic credential rotation for pluggable secret backends."""

__version__ = "0.1.0"
__author__ = "Secret Rotator Team"
