"""Shared fake/mock objects for testing.

Centralized location for fake clients and mock objects used across test suites.

Modules:
    whatsapp - FakeWhatsAppAPI backend and FakeClock for sync testing
"""

from __future__ import annotations

from tests.fakes.whatsapp import T0, FakeClock, FakeWhatsAppAPI, iso

__all__ = [
    "T0",
    "FakeClock",
    "FakeWhatsAppAPI",
    "iso",
]
