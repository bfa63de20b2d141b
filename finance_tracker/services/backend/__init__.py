"""
Backend Services Package

Provides abstract interfaces and concrete implementations for the hosted backend.
Implements the Supabase REST surface, plus an in-memory backend for tests and demos.
"""

from finance_tracker.services.backend.interface import (
    AuthBackend,
    AuthError,
    BackendConnectionError,
    BackendError,
    BackendGateway,
    ConflictError,
    ForeignKeyViolationError,
    NotFoundError,
    classify_backend_error,
)
from finance_tracker.services.backend.memory import InMemoryAuth, InMemoryBackend
from finance_tracker.services.backend.supabase_rest import (
    SupabaseAuth,
    SupabaseClient,
    SupabaseGateway,
)

__all__ = [
    # Interfaces
    "AuthBackend",
    "BackendGateway",
    # Exceptions
    "AuthError",
    "BackendConnectionError",
    "BackendError",
    "ConflictError",
    "ForeignKeyViolationError",
    "NotFoundError",
    "classify_backend_error",
    # Supabase implementation
    "SupabaseAuth",
    "SupabaseClient",
    "SupabaseGateway",
    # In-memory implementation
    "InMemoryAuth",
    "InMemoryBackend",
]
