"""Services package."""

from finance_tracker.services.backend import (
    AuthBackend,
    AuthError,
    BackendConnectionError,
    BackendError,
    BackendGateway,
    ConflictError,
    ForeignKeyViolationError,
    InMemoryAuth,
    InMemoryBackend,
    NotFoundError,
    SupabaseAuth,
    SupabaseClient,
    SupabaseGateway,
)

__all__ = [
    # Backend interfaces
    "AuthBackend",
    "BackendGateway",
    # Backend errors
    "AuthError",
    "BackendConnectionError",
    "BackendError",
    "ConflictError",
    "ForeignKeyViolationError",
    "NotFoundError",
    # Backend implementations
    "InMemoryAuth",
    "InMemoryBackend",
    "SupabaseAuth",
    "SupabaseClient",
    "SupabaseGateway",
]
