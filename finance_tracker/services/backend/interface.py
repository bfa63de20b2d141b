"""
Abstract Backend Interfaces

DESIGN DECISION: We define abstract interfaces for the hosted backend.
This allows us to:
1. Talk to the hosted service in production
2. Use an in-memory backend for tests and the offline demo
3. Keep the store decoupled from HTTP details

The data interface is intentionally small - the same four operations
for every collection, one attempt per call, no retries. The backend
already guarantees consistency; this layer only translates.

Failures are typed. Callers branch on the exception class, never on
the text of a backend message.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from finance_tracker.models.auth import AuthSession, Identity, OAuthRequest
from finance_tracker.models.finance import Collection, FinanceRecord


# Postgres SQLSTATE codes surfaced by the data API
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
# Data API code for "single row requested, none found"
NO_ROWS_RETURNED = "PGRST116"


class BackendGateway(ABC):
    """
    Abstract interface for record CRUD against the backend.

    Every implementation returns the typed record model for the
    collection and raises BackendError subclasses on failure.
    """

    @abstractmethod
    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> list[FinanceRecord]:
        """
        List records of a collection.

        Args:
            collection: Which collection to read
            filters: Equality filters, field name -> value
            order_by: Field to sort on
            ascending: Sort direction

        Returns:
            Matching records

        Raises:
            BackendError: If the request fails
        """
        pass

    @abstractmethod
    async def insert_record(
        self,
        collection: Collection,
        values: dict[str, Any],
    ) -> FinanceRecord:
        """
        Insert a record. The backend assigns id and timestamps.

        Raises:
            ConflictError: On a uniqueness violation
            ForeignKeyViolationError: If a referenced record is missing
            BackendError: For any other failure
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> FinanceRecord:
        """
        Apply a partial update and return the updated record.

        Raises:
            NotFoundError: If no record has this id
            ConflictError: On a uniqueness violation
            BackendError: For any other failure
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        """
        Hard-delete a record.

        Raises:
            ForeignKeyViolationError: If other records still reference it
            BackendError: For any other failure
        """
        pass


class AuthBackend(ABC):
    """
    Abstract interface for the hosted authentication service.
    """

    @abstractmethod
    def authorization_request(
        self,
        provider: str,
        redirect_to: Optional[str] = None,
    ) -> OAuthRequest:
        """Build the provider redirect for an OAuth (PKCE) sign-in."""
        pass

    @abstractmethod
    async def exchange_code(self, auth_code: str, code_verifier: str) -> AuthSession:
        """Exchange the code returned by the OAuth redirect for a session."""
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuthSession]:
        """
        Register a new user.

        Returns None when the service requires email confirmation
        before issuing a session.
        """
        pass

    @abstractmethod
    async def get_user(self, access_token: str) -> Identity:
        """Resolve the identity behind an access token."""
        pass

    @abstractmethod
    async def refresh_session(self, refresh_token: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_out(self, access_token: str) -> None:
        """Invalidate the session on the server."""
        pass


class BackendError(Exception):
    """Base exception for backend operations. Also used for unrecognized failures."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.status_code = status_code


class NotFoundError(BackendError):
    """Record not found in the backend."""
    pass


class ConflictError(BackendError):
    """Attempted to write a record that violates a uniqueness constraint."""
    pass


class ForeignKeyViolationError(BackendError):
    """Write or delete rejected because of a reference between records."""
    pass


class BackendConnectionError(BackendError):
    """The request could not reach the backend or did not complete."""
    pass


class AuthError(BackendError):
    """The authentication service rejected the request."""
    pass


def classify_backend_error(
    message: str,
    code: Optional[str] = None,
    details: Optional[str] = None,
    status_code: Optional[int] = None,
) -> BackendError:
    """
    Map a backend failure to a typed error.

    Structured codes decide first. Message text is only consulted when the
    backend sent no code at all, since its wording is not a stable contract.
    """
    error_class: type[BackendError] = BackendError

    if code == UNIQUE_VIOLATION:
        error_class = ConflictError
    elif code == FOREIGN_KEY_VIOLATION:
        error_class = ForeignKeyViolationError
    elif code == NO_ROWS_RETURNED:
        error_class = NotFoundError
    elif status_code in (401, 403):
        error_class = AuthError
    elif status_code == 404:
        error_class = NotFoundError
    elif code is None:
        lowered = message.lower()
        if "duplicate key" in lowered:
            error_class = ConflictError
        elif "foreign key constraint" in lowered:
            error_class = ForeignKeyViolationError
        elif status_code == 409:
            error_class = ConflictError

    return error_class(message, code=code, details=details, status_code=status_code)
