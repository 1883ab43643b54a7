"""
Test fixtures for tiercache tests.
Provides a fake clock and sample payloads.
"""

from .fake_clock import FakeClock
from .sample_payloads import (
    SAMPLE_CREDENTIALS,
    SAMPLE_PREFERENCES,
    SAMPLE_SUGGESTIONS,
    make_blob,
    make_dashboard,
    serialized_size,
)

__all__ = [
    "FakeClock",
    "SAMPLE_CREDENTIALS",
    "SAMPLE_PREFERENCES",
    "SAMPLE_SUGGESTIONS",
    "make_blob",
    "make_dashboard",
    "serialized_size",
]
