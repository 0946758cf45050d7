"""
Gong Notifier - Error Taxonomy
==============================

Every failure is scoped to a single event or a single listener call.
Nothing here is meant to terminate the process.
"""


class NotifierError(Exception):
    """Base error for the notifier."""


class ClassificationError(NotifierError):
    """Raw stage state outside the known vocabulary. Non-fatal, the event is skipped."""

    def __init__(self, state: object):
        super().__init__(f"Unknown stage state: {state!r}")
        self.state = state


class HistorySourceError(NotifierError):
    """The CI server could not provide pipeline history."""


class HistoryAuthError(HistorySourceError):
    """The CI server rejected our credentials."""


class HistoryUnavailable(NotifierError):
    """The history cache could not refresh. Dispatch for the event is aborted."""

    def __init__(self, pipeline_name: str, reason: str):
        super().__init__(f"History for pipeline {pipeline_name!r} unavailable: {reason}")
        self.pipeline_name = pipeline_name
        self.reason = reason


class ListenerError(NotifierError):
    """One listener failed for one event. Other listeners still run."""

    def __init__(self, listener: str, transition: str, cause: BaseException):
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Listener {listener} failed on {transition}: {detail}")
        self.listener = listener
        self.transition = transition
        self.cause = cause


class ConfigurationError(NotifierError):
    """Plugin settings missing, unreadable or invalid."""


class EmailTransportError(NotifierError):
    """SMTP delivery failed (connection refused, auth failure, timeout)."""
