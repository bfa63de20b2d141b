"""
In-Memory Backend Implementation

DESIGN DECISION: A local stand-in for the hosted service, used by the
test suite and by the offline demo mode (BACKEND=memory).

It reproduces the server-side behavior the store depends on:
1. Backend-assigned ids and timestamps
2. The (user, category, month) uniqueness constraint on budgets
3. Foreign keys between transactions, budgets, goals, accounts and categories
4. The balance trigger: transaction writes move account balances

Rows are kept in JSON form, exactly as the REST surface would return
them, and parsed into record models on the way out.

Tests can queue failures per collection and operation, and can move a
balance behind the store's back the way a concurrent session would.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from finance_tracker.models.auth import AuthSession, Identity, OAuthRequest
from finance_tracker.models.finance import (
    RECORD_MODELS,
    Collection,
    FinanceRecord,
    TransactionType,
    to_cents,
)
from finance_tracker.services.backend.interface import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    NO_ROWS_RETURNED,
    UNIQUE_VIOLATION,
    AuthBackend,
    AuthError,
    BackendConnectionError,
    BackendError,
    BackendGateway,
    ConflictError,
    ForeignKeyViolationError,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

Row = dict[str, Any]

# (child collection, column) pairs that reference a parent collection
REFERENCES: dict[Collection, list[tuple[Collection, str]]] = {
    Collection.ACCOUNTS: [(Collection.TRANSACTIONS, "account_id")],
    Collection.CATEGORIES: [
        (Collection.TRANSACTIONS, "category_id"),
        (Collection.BUDGETS, "category_id"),
        (Collection.GOALS, "category_id"),
    ],
}

# Shared categories every user sees
DEFAULT_CATEGORIES = [
    ("Salary", "income", "briefcase", "#10B981"),
    ("Freelance", "income", "laptop", "#3B82F6"),
    ("Investments", "income", "trending-up", "#8B5CF6"),
    ("Food & Dining", "expense", "utensils", "#EF4444"),
    ("Transportation", "expense", "car", "#F97316"),
    ("Shopping", "expense", "shopping-bag", "#EC4899"),
    ("Bills & Utilities", "expense", "file-text", "#EAB308"),
    ("Entertainment", "expense", "film", "#6366F1"),
    ("Healthcare", "expense", "heart", "#14B8A6"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _matches(row: Row, filters: dict[str, Any]) -> bool:
    for field, expected in filters.items():
        actual = row.get(field)
        if expected is None or actual is None:
            if actual is not expected:
                return False
            continue
        if hasattr(expected, "value"):
            expected = expected.value
        if isinstance(expected, bool):
            expected = str(expected).lower()
            actual = str(actual).lower()
        if str(actual) != str(expected):
            return False
    return True


def _balance_effect(row: Row) -> Decimal:
    """Signed change a transaction row applies to its account."""
    amount = Decimal(str(row["amount"]))
    if row["type"] == TransactionType.INCOME.value:
        return amount
    # Expenses and transfers both debit the source account
    return -amount


class InMemoryBackend(BackendGateway):
    """
    Gateway over in-process tables.

    Usage:
        backend = InMemoryBackend()
        backend.fail_next(Collection.BUDGETS, "list")
        await backend.list_records(Collection.BUDGETS)  # raises
    """

    def __init__(
        self,
        seed_default_categories: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._tables: dict[Collection, dict[str, Row]] = {c: {} for c in Collection}
        self._failures: dict[tuple[Collection, str], list[Exception]] = defaultdict(list)
        self._clock = clock or _utcnow
        self._last_timestamp: Optional[datetime] = None

        # Every request, as (operation, collection); lets tests assert none was made
        self.calls: list[tuple[str, Collection]] = []

        if seed_default_categories:
            self.seed_default_categories()

    # -------------------------------------------------------------------------
    # Test and demo helpers
    # -------------------------------------------------------------------------

    def seed_default_categories(self) -> list[str]:
        """Insert the shared default categories. Returns their ids."""
        ids = []
        for name, kind, icon, color in DEFAULT_CATEGORIES:
            row = self._stamp(Collection.CATEGORIES, {
                "user_id": None,
                "name": name,
                "type": kind,
                "icon": icon,
                "color": color,
                "is_default": True,
            })
            self._tables[Collection.CATEGORIES][row["id"]] = row
            ids.append(row["id"])
        return ids

    def fail_next(
        self,
        collection: Collection,
        operation: str,
        error: Optional[Exception] = None,
        times: int = 1,
    ) -> None:
        """
        Make the next call(s) of an operation on a collection fail.

        Args:
            collection: Collection to fail on
            operation: One of "list", "insert", "update", "delete"
            error: Error to raise; a connection error by default
            times: How many consecutive calls fail
        """
        error = error or BackendConnectionError(
            f"Simulated outage on {operation} {collection.value}"
        )
        self._failures[(collection, operation)].extend([error] * times)

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        """Overwrite a balance server-side, as another session's write would."""
        self._tables[Collection.ACCOUNTS][account_id]["balance"] = str(to_cents(balance))

    def get_row(self, collection: Collection, record_id: str) -> Optional[FinanceRecord]:
        row = self._tables[collection].get(record_id)
        return RECORD_MODELS[collection].model_validate(row) if row else None

    def count(self, collection: Collection) -> int:
        return len(self._tables[collection])

    def requests_for(self, collection: Collection, operation: Optional[str] = None) -> int:
        return sum(
            1 for op, c in self.calls
            if c == collection and (operation is None or op == operation)
        )

    # -------------------------------------------------------------------------
    # Gateway
    # -------------------------------------------------------------------------

    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> list[FinanceRecord]:
        self._begin("list", collection)

        rows = [r for r in self._tables[collection].values() if _matches(r, filters or {})]
        if order_by:
            rows.sort(
                key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")),
                reverse=not ascending,
            )

        model = RECORD_MODELS[collection]
        return [model.model_validate(r) for r in rows]

    async def insert_record(
        self,
        collection: Collection,
        values: dict[str, Any],
    ) -> FinanceRecord:
        self._begin("insert", collection)

        row = dict(values)
        self._check_references(collection, row)
        self._check_unique(collection, row)

        row = self._stamp(collection, row)
        record = self._check_row(collection, row)

        if collection == Collection.TRANSACTIONS:
            self._apply_balance(row, sign=1)
        self._tables[collection][row["id"]] = row

        logger.debug("memory_insert", collection=collection.value, record_id=row["id"])
        return record

    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> FinanceRecord:
        self._begin("update", collection)

        table = self._tables[collection]
        if record_id not in table:
            raise NotFoundError(
                "JSON object requested, multiple (or no) rows returned",
                code=NO_ROWS_RETURNED,
                status_code=406,
            )

        current = table[record_id]
        updated = {**current, **patch, "id": record_id}
        self._check_references(collection, updated)
        self._check_unique(collection, updated, exclude_id=record_id)

        if collection != Collection.CATEGORIES:
            updated["updated_at"] = self._now().isoformat()
        record = self._check_row(collection, updated)

        if collection == Collection.TRANSACTIONS:
            # Reverse the old effect and apply the new one
            self._apply_balance(current, sign=-1)
            self._apply_balance(updated, sign=1)

        table[record_id] = updated
        return record

    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        self._begin("delete", collection)

        row = self._tables[collection].get(record_id)
        if row is None:
            # Deleting nothing is not an error on the REST surface
            return

        for child, column in REFERENCES.get(collection, []):
            if any(r.get(column) == record_id for r in self._tables[child].values()):
                raise ForeignKeyViolationError(
                    f'update or delete on table "{collection.value}" violates foreign key '
                    f'constraint on table "{child.value}"',
                    code=FOREIGN_KEY_VIOLATION,
                    details=f"Key (id)=({record_id}) is still referenced from table \"{child.value}\".",
                    status_code=409,
                )

        if collection == Collection.TRANSACTIONS:
            self._apply_balance(row, sign=-1)

        del self._tables[collection][record_id]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _begin(self, operation: str, collection: Collection) -> None:
        self.calls.append((operation, collection))
        queued = self._failures.get((collection, operation))
        if queued:
            raise queued.pop(0)

    def _now(self) -> datetime:
        # Strictly increasing, so created_at ordering is deterministic
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _stamp(self, collection: Collection, row: Row) -> Row:
        now = self._now().isoformat()
        row = {**row, "id": str(uuid4()), "created_at": now}
        if collection != Collection.CATEGORIES:
            row["updated_at"] = now
        if collection == Collection.ACCOUNTS:
            row.setdefault("balance", "0.00")
        return row

    def _check_row(self, collection: Collection, row: Row) -> FinanceRecord:
        # Stands in for the table's CHECK and NOT NULL constraints
        try:
            return RECORD_MODELS[collection].model_validate(row)
        except ValidationError as e:
            raise BackendError(
                f'new row for relation "{collection.value}" violates check constraint',
                code=CHECK_VIOLATION,
                details=str(e),
                status_code=400,
            ) from e

    def _check_references(self, collection: Collection, row: Row) -> None:
        for parent, children in REFERENCES.items():
            for child, column in children:
                if child != collection:
                    continue
                value = row.get(column)
                if value is not None and value not in self._tables[parent]:
                    raise ForeignKeyViolationError(
                        f'insert or update on table "{collection.value}" violates foreign key '
                        f'constraint "{collection.value}_{column}_fkey"',
                        code=FOREIGN_KEY_VIOLATION,
                        details=f'Key ({column})=({value}) is not present in table "{parent.value}".',
                        status_code=409,
                    )

    def _check_unique(
        self,
        collection: Collection,
        row: Row,
        exclude_id: Optional[str] = None,
    ) -> None:
        if collection == Collection.BUDGETS:
            key = ("user_id", "category_id", "month")
        elif collection == Collection.USER_PREFERENCES:
            key = ("user_id",)
        else:
            return

        for other in self._tables[collection].values():
            if other["id"] == exclude_id:
                continue
            if all(str(other.get(k)) == str(row.get(k)) for k in key):
                raise ConflictError(
                    f'duplicate key value violates unique constraint "{collection.value}_'
                    f'{"_".join(key)}_key"',
                    code=UNIQUE_VIOLATION,
                    status_code=409,
                )

    def _apply_balance(self, row: Row, sign: int) -> None:
        account = self._tables[Collection.ACCOUNTS].get(row.get("account_id"))
        if account is None:
            return
        balance = Decimal(str(account.get("balance", "0"))) + sign * _balance_effect(row)
        account["balance"] = str(to_cents(balance))
        account["updated_at"] = self._now().isoformat()


class InMemoryAuth(AuthBackend):
    """
    Auth service stand-in.

    Users are registered with passwords; OAuth sign-in is simulated by
    registering an authorization code for an identity beforehand.
    """

    def __init__(self, require_email_confirmation: bool = False, token_ttl_seconds: int = 3600):
        self._require_confirmation = require_email_confirmation
        self._ttl = token_ttl_seconds
        self._users: dict[str, tuple[str, Identity]] = {}
        self._access_tokens: dict[str, Identity] = {}
        self._refresh_tokens: dict[str, Identity] = {}
        self._oauth_codes: dict[str, Identity] = {}
        self._pending_verifiers: set[str] = set()
        self._failures: dict[str, list[BackendError]] = defaultdict(list)

    # -------------------------------------------------------------------------
    # Test and demo helpers
    # -------------------------------------------------------------------------

    def register_user(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
    ) -> Identity:
        identity = Identity(
            id=str(uuid4()),
            email=email,
            full_name=full_name,
            created_at=_utcnow(),
            email_confirmed_at=None if self._require_confirmation else _utcnow(),
        )
        self._users[email.lower()] = (password, identity)
        return identity

    def register_oauth_code(self, auth_code: str, identity: Identity) -> None:
        """Make auth_code exchangeable for a session of identity."""
        self._oauth_codes[auth_code] = identity

    def fail_next(self, operation: str, error: Optional[BackendError] = None) -> None:
        """Make the next call of an operation (e.g. "sign_out") fail."""
        self._failures[operation].append(
            error or AuthError(f"Simulated auth failure on {operation}", status_code=500)
        )

    def expire_access_tokens(self) -> None:
        """Invalidate every access token; refresh tokens stay valid."""
        self._access_tokens.clear()

    def _check_failure(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _issue(self, identity: Identity) -> AuthSession:
        session = AuthSession(
            access_token=f"access-{uuid4()}",
            refresh_token=f"refresh-{uuid4()}",
            expires_at=_utcnow() + timedelta(seconds=self._ttl),
            user=identity.model_copy(update={"last_sign_in_at": _utcnow()}),
        )
        self._access_tokens[session.access_token] = session.user
        self._refresh_tokens[session.refresh_token] = session.user
        return session

    # -------------------------------------------------------------------------
    # AuthBackend
    # -------------------------------------------------------------------------

    def authorization_request(
        self,
        provider: str,
        redirect_to: Optional[str] = None,
    ) -> OAuthRequest:
        code_verifier = uuid4().hex
        self._pending_verifiers.add(code_verifier)
        return OAuthRequest(
            provider=provider,
            url=f"memory://authorize?provider={provider}",
            code_verifier=code_verifier,
            redirect_to=redirect_to,
        )

    async def exchange_code(self, auth_code: str, code_verifier: str) -> AuthSession:
        self._check_failure("exchange_code")
        identity = self._oauth_codes.pop(auth_code, None)
        if identity is None or code_verifier not in self._pending_verifiers:
            raise AuthError("invalid flow state, no valid flow state found", status_code=400)
        self._pending_verifiers.discard(code_verifier)
        return self._issue(identity)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        self._check_failure("sign_in_with_password")
        entry = self._users.get(email.lower())
        if entry is None or entry[0] != password:
            raise AuthError("Invalid login credentials", code="invalid_credentials", status_code=400)
        return self._issue(entry[1])

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuthSession]:
        self._check_failure("sign_up")
        if email.lower() in self._users:
            raise AuthError("User already registered", code="user_already_exists", status_code=422)
        identity = self.register_user(email, password, (metadata or {}).get("full_name"))
        if self._require_confirmation:
            return None
        return self._issue(identity)

    async def get_user(self, access_token: str) -> Identity:
        self._check_failure("get_user")
        identity = self._access_tokens.get(access_token)
        if identity is None:
            raise AuthError("invalid JWT: token is expired", status_code=401)
        return identity

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        self._check_failure("refresh_session")
        identity = self._refresh_tokens.pop(refresh_token, None)
        if identity is None:
            raise AuthError("Invalid Refresh Token: Refresh Token Not Found", status_code=400)
        return self._issue(identity)

    async def sign_out(self, access_token: str) -> None:
        self._check_failure("sign_out")
        identity = self._access_tokens.pop(access_token, None)
        if identity is not None:
            self._refresh_tokens = {
                token: user for token, user in self._refresh_tokens.items()
                if user.id != identity.id
            }
