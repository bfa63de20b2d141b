"""
Shared fixtures.

Every test runs against the in-memory backend; no network calls.
"""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio

from finance_tracker.audit import AuditLogger
from finance_tracker.auth import SessionContext
from finance_tracker.models.finance import (
    AccountDraft,
    AccountType,
    CategoryType,
    TransactionDraft,
    TransactionType,
)
from finance_tracker.services.backend import InMemoryAuth, InMemoryBackend
from finance_tracker.store import FinanceStore


EMAIL = "asha@example.com"
PASSWORD = "correct-horse"
OTHER_EMAIL = "ravi@example.com"
OTHER_PASSWORD = "battery-staple"

# Reference time used by tests that compute month views
NOW = datetime(2026, 10, 15, 12, 0, 0)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def auth():
    auth = InMemoryAuth()
    auth.register_user(EMAIL, PASSWORD, full_name="Asha Rao")
    auth.register_user(OTHER_EMAIL, OTHER_PASSWORD, full_name="Ravi Kumar")
    return auth


@pytest.fixture
def audit_logger():
    return AuditLogger(buffer_size=200)


@pytest.fixture
def session(auth, audit_logger):
    return SessionContext(auth, audit_logger=audit_logger)


@pytest.fixture
def store(backend, session, audit_logger):
    return FinanceStore(backend, session, audit_logger)


@pytest_asyncio.fixture
async def signed_in_store(store, session):
    await session.sign_in_with_password(EMAIL, PASSWORD)
    return store


@pytest_asyncio.fixture
async def seeded(signed_in_store, backend, session):
    """A signed-in store with one wallet account."""
    store = signed_in_store
    wallet = await store.add_account(AccountDraft(name="Wallet", type=AccountType.WALLET))

    def category(name):
        return next(c for c in store.snapshot.categories if c.name == name)

    return SimpleNamespace(
        store=store,
        backend=backend,
        session=session,
        wallet=wallet,
        food=category("Food & Dining"),
        transport=category("Transportation"),
        salary=category("Salary"),
    )


def transaction_draft(
    account_id: str,
    category_id: str,
    amount: str,
    kind: TransactionType = TransactionType.EXPENSE,
    when: datetime = NOW,
    description: str = None,
) -> TransactionDraft:
    return TransactionDraft(
        account_id=account_id,
        category_id=category_id,
        amount=Decimal(amount),
        type=kind,
        transaction_date=when,
        description=description,
    )


def category_of(store, kind: CategoryType):
    return store.snapshot.categories_of_type(kind)[0]
