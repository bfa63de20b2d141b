"""Authentication package."""

from finance_tracker.auth.session import AuthListener, SessionContext

__all__ = ["AuthListener", "SessionContext"]
