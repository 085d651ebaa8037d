"""
Error classification for the signal engine.

Exceptions are grouped by how the caller is expected to react: data quality
problems are skipped, upstream failures skip the current cycle, and system
failures leave stored state untouched and surface to the caller.
"""

from .data_quality import (
    DataQualityError,
    TemporalDataError,
    MissingDataError,
    MalformedDataError,
    InsufficientDataError,
)
from .system_failures import (
    SystemFailureError,
    StateTransitionError,
    PersistenceError,
    ConcurrentConflictError,
)
from .recovery import (
    RecoverableError,
    UpstreamUnavailableError,
    GracefulDegradationError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "TemporalDataError",
    "MissingDataError",
    "MalformedDataError",
    "InsufficientDataError",
    # System Failures
    "SystemFailureError",
    "StateTransitionError",
    "PersistenceError",
    "ConcurrentConflictError",
    # Recovery Categories
    "RecoverableError",
    "UpstreamUnavailableError",
    "GracefulDegradationError",
]
