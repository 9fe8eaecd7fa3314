"""
Core Module Package.

This package contains the core infrastructure components
that all other packages depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- identifiers: Content-addressed record keys
- batching: Bounded batch iteration
- types: Shared severity tiers
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory, ensure_utc
from .exceptions import (
    FraudEngineError,
    ConfigurationError,
    InvalidConfigError,
    DataSourceError,
    DataSourceUnavailableError,
    PersistenceError,
    AuthorizationError,
    UnauthenticatedError,
    PermissionDeniedError,
)
from .batching import MAX_BATCH_SIZE, chunked
from .types import SeverityTier


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "ensure_utc",
    "FraudEngineError",
    "ConfigurationError",
    "InvalidConfigError",
    "DataSourceError",
    "DataSourceUnavailableError",
    "PersistenceError",
    "AuthorizationError",
    "UnauthenticatedError",
    "PermissionDeniedError",
    "MAX_BATCH_SIZE",
    "chunked",
    "SeverityTier",
]
