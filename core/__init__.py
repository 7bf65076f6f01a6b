"""
Core Module Package.

This package contains the core infrastructure components
that the archiving and analytics packages depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- constants: System-wide constants
"""

from .clock import ClockFactory, ClockProtocol, MockClock, SystemClock
from .exceptions import SchoolOpsException

__all__ = [
    "ClockFactory",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "SchoolOpsException",
]
