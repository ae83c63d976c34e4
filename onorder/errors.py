"""
Error taxonomy for the match core.

- ValidationError: bad secret/guess input; user fixes it and resubmits.
- IllegalTransition: operation not allowed in the current phase (ex. guessing out of turn).
- PersistenceFailure: storage problem; callers log it and keep playing in memory.
- TransportFailure: online relay problem; local state is never touched by it.
"""

from .types import ValidationReason


class OnOrderError(Exception):
    pass


class ValidationError(OnOrderError, ValueError):
    def __init__(self, reason: ValidationReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class IllegalTransition(OnOrderError):
    pass


class PersistenceFailure(OnOrderError):
    pass


class TransportFailure(OnOrderError):
    pass
