"""
Finance Aggregate Store

DESIGN DECISION: The store is an explicit state container, injected into
the UI, holding an immutable snapshot of the current user's records.
Every change replaces the snapshot and notifies subscribers.

CRITICAL RULES:
1. The backend is the single source of truth. The cache is a volatile
   projection, cleared on every identity change.
2. Account balances are never computed here. After any transaction
   write the whole cache is refetched, since a backend trigger moved
   balances the client cannot see.
3. Reads never raise: a failed fetch keeps the previous data and
   records the error. Writes always raise: the caller tells the user.
4. A full refresh is all-or-nothing. If any collection fails to load,
   nothing is replaced.

Constraint violations arrive as typed backend errors and are mapped to
the store errors the UI knows how to explain.
"""

import asyncio
from decimal import Decimal
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.auth.session import SessionContext
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.auth import AuthChangeEvent, Identity
from finance_tracker.models.finance import (
    FINANCE_COLLECTIONS,
    Account,
    AccountDraft,
    AccountPatch,
    Budget,
    BudgetDraft,
    BudgetPatch,
    Category,
    CategoryDraft,
    CategoryPatch,
    Collection,
    FinanceRecord,
    FinanceSnapshot,
    Goal,
    GoalDraft,
    GoalPatch,
    PreferencesPatch,
    RecordDraft,
    RecordPatch,
    Theme,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    UserPreferences,
    to_cents,
)
from finance_tracker.services.backend.interface import (
    BackendError,
    BackendGateway,
    ConflictError,
    ForeignKeyViolationError,
)


logger = structlog.get_logger(__name__)

SnapshotListener = Callable[[FinanceSnapshot], None]

# Snapshot attribute holding each collection
SNAPSHOT_FIELDS: dict[Collection, str] = {
    Collection.ACCOUNTS: "accounts",
    Collection.CATEGORIES: "categories",
    Collection.TRANSACTIONS: "transactions",
    Collection.BUDGETS: "budgets",
    Collection.GOALS: "goals",
}

# Server-side sort order per collection: (field, ascending)
ORDERING: dict[Collection, tuple[str, bool]] = {
    Collection.ACCOUNTS: ("created_at", False),
    Collection.CATEGORIES: ("type", True),
    Collection.TRANSACTIONS: ("transaction_date", False),
    Collection.BUDGETS: ("month", False),
    Collection.GOALS: ("created_at", False),
}

# Newly created records go to the front of these lists, and to the back of the rest
PREPEND_NEW = {
    Collection.ACCOUNTS,
    Collection.TRANSACTIONS,
    Collection.BUDGETS,
    Collection.GOALS,
}


def _failure_message(error: Exception) -> str:
    if isinstance(error, BackendError):
        return error.message
    return f"{type(error).__name__}: {error}"


class FinanceStore:
    """
    In-memory cache of the current user's finance records.

    Usage:
        store = FinanceStore(gateway, session, audit_logger)
        await session.restore_session()   # store loads on the auth event
        await store.add_transaction(draft)
        summary = monthly_summary(store.snapshot, now)
    """

    def __init__(
        self,
        gateway: BackendGateway,
        session: SessionContext,
        audit_logger: Optional[AuditLogger] = None,
        default_currency: str = "₹",
        default_theme: Theme = Theme.LIGHT,
    ):
        self._gateway = gateway
        self._session = session
        self._audit = audit_logger or AuditLogger()
        self._default_currency = default_currency
        self._default_theme = default_theme

        self._snapshot = FinanceSnapshot()
        self._listeners: list[SnapshotListener] = []

        # Identity the cached data belongs to
        self._loaded_for: Optional[str] = None

        self._unsubscribe_session = session.subscribe(self.handle_auth_change)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def snapshot(self) -> FinanceSnapshot:
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a listener called with the new snapshot after every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, **changes: Any) -> None:
        self._snapshot = self._snapshot.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as e:
                logger.error("snapshot_listener_failed", error=str(e), exc_info=True)

    def clear(self) -> None:
        """Drop all cached data."""
        self._snapshot = FinanceSnapshot()
        self._replace()

    def close(self) -> None:
        """Stop following the session."""
        self._unsubscribe_session()

    def _current_user_id(self) -> Optional[str]:
        identity = self._session.identity
        return identity.id if identity else None

    def _require_user_id(self) -> str:
        user_id = self._current_user_id()
        if user_id is None:
            raise NotAuthenticatedError("You must be signed in to change your data")
        return user_id

    def _record_error(self, collection: Collection, message: str) -> None:
        self._replace(errors={**self._snapshot.errors, collection: message})

    # =========================================================================
    # SESSION
    # =========================================================================

    async def handle_auth_change(
        self,
        event: AuthChangeEvent,
        identity: Optional[Identity],
    ) -> None:
        """
        React to identity changes from the session.

        A new identity gets a fresh cache: cleared, preferences ensured,
        then fully loaded. Signing out clears the cache.
        """
        if identity is None:
            if self._loaded_for is not None or self._snapshot.loaded:
                logger.info("store_cleared", auth_event=event.value)
            self._loaded_for = None
            self.clear()
            return

        if identity.id == self._loaded_for:
            # Same user (e.g. a token refresh); the cache is still theirs
            return

        logger.info("store_loading_for_identity", auth_event=event.value, user_id=identity.id)
        self._loaded_for = identity.id
        self.clear()
        await self.ensure_preferences()
        await self.refresh_all()

    # =========================================================================
    # READS
    # =========================================================================

    async def _load(self, collection: Collection, user_id: str) -> list[FinanceRecord]:
        order_by, ascending = ORDERING[collection]

        if collection == Collection.CATEGORIES:
            # Shared defaults have no owner, so categories are listed unfiltered
            records = await self._gateway.list_records(
                collection, order_by=order_by, ascending=ascending
            )
            return [
                c for c in records
                if c.is_default or c.user_id == user_id
            ]

        return await self._gateway.list_records(
            collection,
            filters={"user_id": user_id},
            order_by=order_by,
            ascending=ascending,
        )

    async def fetch(self, collection: Collection) -> bool:
        """
        Reload one collection.

        Failures are logged and recorded in snapshot.errors; the cached
        list is left as it was. Skipped when signed out.

        Returns:
            True if the collection was replaced
        """
        user_id = self._current_user_id()
        if user_id is None:
            logger.debug("fetch_skipped_signed_out", collection=collection.value)
            return False

        try:
            records = await self._load(collection, user_id)
        except Exception as e:
            message = _failure_message(e)
            logger.warning(
                "fetch_failed",
                collection=collection.value,
                error=message,
                error_type=type(e).__name__,
            )
            self._audit.log(AuditEventBuilder.fetch_failed(collection.value, message))
            self._record_error(collection, message)
            return False

        if self._current_user_id() != user_id:
            logger.info("fetch_discarded_identity_changed", collection=collection.value)
            return False

        errors = {k: v for k, v in self._snapshot.errors.items() if k != collection}
        self._replace(**{SNAPSHOT_FIELDS[collection]: records, "errors": errors})
        return True

    async def fetch_accounts(self) -> bool:
        return await self.fetch(Collection.ACCOUNTS)

    async def fetch_categories(self) -> bool:
        return await self.fetch(Collection.CATEGORIES)

    async def fetch_transactions(self) -> bool:
        return await self.fetch(Collection.TRANSACTIONS)

    async def fetch_budgets(self) -> bool:
        return await self.fetch(Collection.BUDGETS)

    async def fetch_goals(self) -> bool:
        return await self.fetch(Collection.GOALS)

    async def refresh_all(self, correlation_id: Optional[UUID] = None) -> bool:
        """
        Reload all five collections concurrently.

        All-or-nothing: the cache is replaced only if every fetch succeeds.
        Otherwise every collection keeps its previous value and the
        failures are recorded in snapshot.errors.

        Returns:
            True if the cache was replaced
        """
        user_id = self._current_user_id()
        if user_id is None:
            logger.debug("refresh_skipped_signed_out")
            return False

        try:
            await self._session.ensure_fresh()
        except BackendError as e:
            logger.warning("token_refresh_failed", error=e.message)

        results = await asyncio.gather(
            *(self._load(c, user_id) for c in FINANCE_COLLECTIONS),
            return_exceptions=True,
        )

        failures: dict[Collection, str] = {}
        for collection, result in zip(FINANCE_COLLECTIONS, results):
            if isinstance(result, Exception):
                failures[collection] = _failure_message(result)
            elif isinstance(result, BaseException):
                # Cancellation is not a fetch failure
                raise result

        if self._current_user_id() != user_id:
            logger.info("refresh_discarded_identity_changed")
            return False

        if failures:
            for collection, message in failures.items():
                logger.warning("fetch_failed", collection=collection.value, error=message)
                self._audit.log(AuditEventBuilder.fetch_failed(
                    collection.value, message, correlation_id
                ))
            self._audit.log(AuditEventBuilder.refresh_failed(
                [c.value for c in failures], correlation_id
            ))
            self._replace(errors={
                **self._snapshot.errors,
                **failures,
            })
            return False

        loaded = dict(zip(FINANCE_COLLECTIONS, results))
        errors = {k: v for k, v in self._snapshot.errors.items() if k not in loaded}
        self._replace(
            **{SNAPSHOT_FIELDS[c]: records for c, records in loaded.items()},
            loaded=True,
            errors=errors,
        )

        self._audit.log(AuditEventBuilder.refresh_completed(
            {c.value: len(records) for c, records in loaded.items()},
            correlation_id,
        ))
        return True

    async def resync_after_transaction_change(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Refetch everything after a transaction write.

        Account.balance is moved by a backend trigger, so the cached
        balances are stale until the next fetch. The write already
        succeeded; a failed refetch is logged, not raised.
        """
        refreshed = await self.refresh_all(correlation_id)
        if not refreshed:
            logger.warning(
                "resync_after_transaction_change_failed",
                correlation_id=str(correlation_id) if correlation_id else None,
            )
        return refreshed

    # =========================================================================
    # WRITE PRIMITIVES
    # =========================================================================

    async def _insert(
        self,
        collection: Collection,
        draft: RecordDraft,
        correlation_id: Optional[UUID] = None,
    ) -> FinanceRecord:
        user_id = self._require_user_id()
        try:
            record = await self._gateway.insert_record(collection, draft.to_payload(user_id))
        except BackendError as e:
            self._audit.log(AuditEventBuilder.mutation_failed(
                collection.value, "create", e.code, e.message,
                correlation_id=correlation_id,
            ))
            raise

        self._audit.log(AuditEventBuilder.record_created(collection.value, record.id, correlation_id))
        self._merge_new(collection, record)
        return record

    async def _update(
        self,
        collection: Collection,
        record_id: str,
        patch: RecordPatch,
        correlation_id: Optional[UUID] = None,
    ) -> FinanceRecord:
        self._require_user_id()
        payload = patch.to_payload()
        try:
            record = await self._gateway.update_record(collection, record_id, payload)
        except BackendError as e:
            self._audit.log(AuditEventBuilder.mutation_failed(
                collection.value, "update", e.code, e.message,
                record_id=record_id, correlation_id=correlation_id,
            ))
            raise

        self._audit.log(AuditEventBuilder.record_updated(
            collection.value, record_id, sorted(payload), correlation_id
        ))
        self._merge_updated(collection, record)
        return record

    async def _delete(
        self,
        collection: Collection,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._require_user_id()
        try:
            await self._gateway.delete_record(collection, record_id)
        except BackendError as e:
            self._audit.log(AuditEventBuilder.mutation_failed(
                collection.value, "delete", e.code, e.message,
                record_id=record_id, correlation_id=correlation_id,
            ))
            raise

        self._audit.log(AuditEventBuilder.record_deleted(collection.value, record_id, correlation_id))
        self._remove(collection, record_id)

    def _merge_new(self, collection: Collection, record: FinanceRecord) -> None:
        field = SNAPSHOT_FIELDS[collection]
        current = getattr(self._snapshot, field)
        if collection in PREPEND_NEW:
            self._replace(**{field: [record, *current]})
        else:
            self._replace(**{field: [*current, record]})

    def _merge_updated(self, collection: Collection, record: FinanceRecord) -> None:
        field = SNAPSHOT_FIELDS[collection]
        current = getattr(self._snapshot, field)
        if not any(r.id == record.id for r in current):
            self._merge_new(collection, record)
            return
        self._replace(**{field: [record if r.id == record.id else r for r in current]})

    def _remove(self, collection: Collection, record_id: str) -> None:
        field = SNAPSHOT_FIELDS[collection]
        current = getattr(self._snapshot, field)
        self._replace(**{field: [r for r in current if r.id != record_id]})

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(self, draft: AccountDraft) -> Account:
        return await self._insert(Collection.ACCOUNTS, draft)

    async def update_account(self, account_id: str, patch: AccountPatch) -> Account:
        return await self._update(Collection.ACCOUNTS, account_id, patch)

    async def delete_account(self, account_id: str) -> None:
        await self._delete(Collection.ACCOUNTS, account_id)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def _guard_default_category(self, category_id: str, action: str) -> None:
        category = self._snapshot.find_category(category_id)
        if category is not None and category.is_protected:
            raise DefaultCategoryError(f"Default categories cannot be {action}")

    async def add_category(self, draft: CategoryDraft) -> Category:
        return await self._insert(Collection.CATEGORIES, draft)

    async def update_category(self, category_id: str, patch: CategoryPatch) -> Category:
        """
        Raises:
            DefaultCategoryError: For a shared default category (no request is made)
        """
        self._guard_default_category(category_id, "edited")
        return await self._update(Collection.CATEGORIES, category_id, patch)

    async def delete_category(self, category_id: str) -> None:
        """
        Raises:
            DefaultCategoryError: For a shared default category (no request is made)
            CategoryInUseError: If transactions, budgets or goals still use it
        """
        self._guard_default_category(category_id, "deleted")
        try:
            await self._delete(Collection.CATEGORIES, category_id)
        except ForeignKeyViolationError as e:
            raise CategoryInUseError(
                "This category is in use and cannot be deleted"
            ) from e

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(self, draft: TransactionDraft) -> Transaction:
        correlation_id = create_correlation_id()
        record = await self._insert(Collection.TRANSACTIONS, draft, correlation_id)
        await self.resync_after_transaction_change(correlation_id)
        return record

    async def update_transaction(self, transaction_id: str, patch: TransactionPatch) -> Transaction:
        correlation_id = create_correlation_id()
        record = await self._update(Collection.TRANSACTIONS, transaction_id, patch, correlation_id)
        await self.resync_after_transaction_change(correlation_id)
        return record

    async def delete_transaction(self, transaction_id: str) -> None:
        correlation_id = create_correlation_id()
        await self._delete(Collection.TRANSACTIONS, transaction_id, correlation_id)
        await self.resync_after_transaction_change(correlation_id)

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def add_budget(self, draft: BudgetDraft) -> Budget:
        """
        Raises:
            DuplicateBudgetError: If the category already has a budget that month
        """
        try:
            return await self._insert(Collection.BUDGETS, draft)
        except ConflictError as e:
            raise DuplicateBudgetError(
                "A budget already exists for this category and month"
            ) from e

    async def update_budget(self, budget_id: str, patch: BudgetPatch) -> Budget:
        try:
            return await self._update(Collection.BUDGETS, budget_id, patch)
        except ConflictError as e:
            raise DuplicateBudgetError(
                "A budget already exists for this category and month"
            ) from e

    async def delete_budget(self, budget_id: str) -> None:
        await self._delete(Collection.BUDGETS, budget_id)

    # =========================================================================
    # GOALS
    # =========================================================================

    async def add_goal(self, draft: GoalDraft) -> Goal:
        return await self._insert(Collection.GOALS, draft)

    async def update_goal(self, goal_id: str, patch: GoalPatch) -> Goal:
        return await self._update(Collection.GOALS, goal_id, patch)

    async def delete_goal(self, goal_id: str) -> None:
        await self._delete(Collection.GOALS, goal_id)

    async def fund_goal(self, goal_id: str, amount: Union[Decimal, str, int]) -> Goal:
        """
        Add money to a goal.

        Only current_amount changes. No transaction is recorded, no
        account balance moves, and the status is left as it is even
        when the target is reached.

        Raises:
            GoalFundingError: For a non-positive amount or unknown goal
        """
        return await self._move_goal_funds(goal_id, amount, withdrawal=False)

    async def withdraw_from_goal(self, goal_id: str, amount: Union[Decimal, str, int]) -> Goal:
        """
        Take money back out of a goal.

        Raises:
            GoalFundingError: For a non-positive amount, an unknown goal,
                or more than the goal currently holds
        """
        return await self._move_goal_funds(goal_id, amount, withdrawal=True)

    async def _move_goal_funds(
        self,
        goal_id: str,
        amount: Union[Decimal, str, int],
        withdrawal: bool,
    ) -> Goal:
        self._require_user_id()

        amount = to_cents(Decimal(str(amount)))
        if amount <= 0:
            raise GoalFundingError("Amount must be greater than zero")

        goal = self._snapshot.find_goal(goal_id)
        if goal is None:
            raise GoalFundingError("Goal not found")

        if withdrawal:
            if amount > goal.current_amount:
                raise GoalFundingError("Cannot withdraw more than the goal's saved amount")
            new_amount = goal.current_amount - amount
        else:
            new_amount = goal.current_amount + amount

        correlation_id = create_correlation_id()
        updated = await self._update(
            Collection.GOALS,
            goal_id,
            GoalPatch(current_amount=new_amount),
            correlation_id,
        )
        self._audit.log(AuditEventBuilder.goal_funding(
            goal_id, str(amount), str(updated.current_amount),
            withdrawal=withdrawal, correlation_id=correlation_id,
        ))
        return updated

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    async def ensure_preferences(self) -> Optional[UserPreferences]:
        """
        Load the user's preferences, creating them with defaults on first sign-in.

        Failures are logged and recorded like any other fetch.
        """
        user_id = self._current_user_id()
        if user_id is None:
            return None

        collection = Collection.USER_PREFERENCES
        try:
            rows = await self._gateway.list_records(collection, filters={"user_id": user_id})
            if rows:
                preferences = rows[0]
            else:
                try:
                    preferences = await self._gateway.insert_record(collection, {
                        "user_id": user_id,
                        "theme": self._default_theme.value,
                        "currency": self._default_currency,
                    })
                except ConflictError:
                    # Created concurrently by another session
                    rows = await self._gateway.list_records(collection, filters={"user_id": user_id})
                    preferences = rows[0]
        except BackendError as e:
            logger.warning("preferences_load_failed", error=e.message)
            self._audit.log(AuditEventBuilder.fetch_failed(collection.value, e.message))
            self._record_error(collection, e.message)
            return None

        errors = {k: v for k, v in self._snapshot.errors.items() if k != collection}
        self._replace(preferences=preferences, errors=errors)
        return preferences

    async def update_preferences(self, patch: PreferencesPatch) -> UserPreferences:
        self._require_user_id()

        preferences = self._snapshot.preferences or await self.ensure_preferences()
        if preferences is None:
            raise FinanceStoreError("Preferences are not available right now")

        payload = patch.to_payload()
        try:
            updated = await self._gateway.update_record(
                Collection.USER_PREFERENCES, preferences.id, payload
            )
        except BackendError as e:
            self._audit.log(AuditEventBuilder.mutation_failed(
                Collection.USER_PREFERENCES.value, "update", e.code, e.message,
                record_id=preferences.id,
            ))
            raise

        self._audit.log(AuditEventBuilder.record_updated(
            Collection.USER_PREFERENCES.value, preferences.id, sorted(payload)
        ))
        self._replace(preferences=updated)
        return updated


# =============================================================================
# EXCEPTIONS
# =============================================================================

class FinanceStoreError(Exception):
    """Base exception for store operations."""
    pass


class NotAuthenticatedError(FinanceStoreError):
    """A write was attempted with no signed-in identity."""
    pass


class DefaultCategoryError(FinanceStoreError):
    """Attempted to edit or delete a shared default category."""
    pass


class CategoryInUseError(FinanceStoreError):
    """The category is still referenced and cannot be deleted."""
    pass


class DuplicateBudgetError(FinanceStoreError):
    """A budget already exists for this category and month."""
    pass


class GoalFundingError(FinanceStoreError, ValueError):
    """Invalid goal funding or withdrawal request."""
    pass
