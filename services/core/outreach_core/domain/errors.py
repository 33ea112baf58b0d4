"""Typed task failures.

Every failure carries the target it was acting on, a human-readable
message and two flags used downstream: ``retryable`` decides whether the
ledger may reschedule the job, ``client_error`` marks failures caused by
the job's own input, which job-status reports so callers can tell a
request to fix from a run to retry.
"""

from typing import Optional


class TaskError(Exception):
    """Base exception for task executor failures."""

    retryable: bool = True
    client_error: bool = False

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        retryable: Optional[bool] = None,
        partial_result: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.target = target
        self.partial_result = partial_result
        if retryable is not None:
            self.retryable = retryable


class AuthError(TaskError):
    """Authentication could not be established for the account."""

    pass


class LoginFailed(AuthError):
    """Credentials were rejected and no recognisable challenge was shown."""

    retryable = False


class SessionUnconfirmed(AuthError):
    """Navigation succeeded but the post-login landmark never appeared."""

    retryable = True


class NavigationTimeout(TaskError):
    """A page or element did not load within its bound."""

    retryable = True


class ElementNotFound(TaskError):
    """An expected control is absent and no known page state explains it."""

    retryable = False


class ActionRejected(TaskError):
    """A control is present but disabled, e.g. an empty required input."""

    retryable = False
    client_error = True


class ValidationError(TaskError):
    """A job payload failed validation before any browser work."""

    retryable = False
    client_error = True


# Warning code attached to otherwise successful results whose post-action
# verification was inconclusive.
AMBIGUOUS_OUTCOME = "ambiguous_outcome"
