"""
System failure error classifications.

These exceptions represent failures where the core refuses to continue the
current operation and leaves stored state unchanged.
"""

from typing import Optional, Dict, Any


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class StateTransitionError(SystemFailureError):
    """Signal or trade transition not allowed from the current status."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


class PersistenceError(SystemFailureError):
    """Database persistence failures."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class ConcurrentConflictError(SystemFailureError):
    """Two operations raced on the same owner or signal."""

    def __init__(self, message: str, resource: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.resource = resource
