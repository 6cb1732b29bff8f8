from __future__ import annotations


class DriftwatchError(Exception):
    """Base class for errors raised by the drift engine."""


class BackendError(DriftwatchError):
    """The backend answered with a non-2xx status, or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, timeout: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.timeout = timeout


class TransientFetchError(DriftwatchError):
    """A read failed; whatever was cached before stays visible."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AllocationValidationError(DriftwatchError, ValueError):
    """Target allocations do not sum to 100 within tolerance. Never sent to the backend."""

    def __init__(self, message: str, total: float):
        super().__init__(message)
        self.message = message
        self.total = total


class OptimisticMutationFailure(DriftwatchError):
    """A create/update/delete was rejected and its local effect was rolled back."""

    def __init__(self, message: str, intent: str, rule_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.intent = intent
        self.rule_id = rule_id


class AlertRuleValidationError(DriftwatchError, ValueError):
    """An alert rule input breaks the form limits. Never sent to the backend."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
