"""
Tests for application assembly and the dashboard.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from finance_tracker.config import Settings, get_settings, validate_all_settings
from finance_tracker.models.finance import (
    AccountDraft,
    BudgetDraft,
    GoalDraft,
    GoalStatus,
    TransactionDraft,
    TransactionType,
)
from finance_tracker.orchestrator import DEMO_EMAIL, DEMO_PASSWORD, create_app_components
from finance_tracker.services.backend import (
    InMemoryBackend,
    SupabaseAuth,
    SupabaseGateway,
)


NOW = datetime(2026, 10, 15, 12, 0)


@pytest_asyncio.fixture
async def demo_app(monkeypatch):
    monkeypatch.setenv("BACKEND", "memory")
    monkeypatch.setenv("DASHBOARD_GOAL_LIMIT", "2")
    app = create_app_components(Settings())
    yield app
    await app.close()


class TestAssembly:
    """Tests for create_app_components."""

    @pytest.mark.asyncio
    async def test_memory_backend(self, demo_app):
        """Test that the demo wiring uses the in-memory backend."""
        assert demo_app.is_demo
        assert isinstance(demo_app.gateway, InMemoryBackend)
        assert demo_app.settings.dashboard_goal_limit == 2

    @pytest.mark.asyncio
    async def test_supabase_backend(self, monkeypatch):
        """Test that the hosted wiring passes the session token to the gateway."""
        monkeypatch.setenv("BACKEND", "supabase")
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

        app = create_app_components(Settings())
        try:
            assert not app.is_demo
            assert isinstance(app.gateway, SupabaseGateway)
            assert isinstance(app.auth_backend, SupabaseAuth)
            assert app.gateway._token_provider() is None
        finally:
            await app.close()

    @pytest.mark.asyncio
    async def test_debug_mode_forces_debug_logging(self, monkeypatch):
        """Test that debug mode overrides the configured log level."""
        monkeypatch.setenv("BACKEND", "memory")
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("DEBUG_MODE", "true")

        settings = Settings()
        assert settings.app.log_level == "WARNING"
        assert settings.app.effective_log_level == "DEBUG"

        app = create_app_components(settings)
        try:
            assert logging.getLogger("finance_tracker").level == logging.DEBUG
        finally:
            await app.close()
            logging.getLogger("finance_tracker").setLevel(logging.INFO)

    def test_log_level_without_debug_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        monkeypatch.delenv("DEBUG_MODE", raising=False)
        assert Settings().app.effective_log_level == "ERROR"

    def test_settings_check_reports_missing_supabase(self, monkeypatch, tmp_path):
        """Test the startup check when the hosted backend is not configured."""
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()
        try:
            status = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert status["app"] is True
        assert status["supabase"] is False
        assert "supabase_error" in status

    @pytest.mark.asyncio
    async def test_start_without_session(self, demo_app):
        """Test that startup with nothing saved stays signed out."""
        assert await demo_app.start() is None
        assert not demo_app.session.is_authenticated
        assert not demo_app.store.snapshot.loaded


class TestDemoFlow:
    """End-to-end flow against the demo backend."""

    @pytest.mark.asyncio
    async def test_sign_in_and_dashboard(self, demo_app):
        """Test a user session from sign-in to dashboard."""
        await demo_app.start()
        await demo_app.session.sign_in_with_password(DEMO_EMAIL, DEMO_PASSWORD)

        store = demo_app.store
        assert store.snapshot.loaded
        categories = {c.name: c for c in store.snapshot.categories}

        wallet = await store.add_account(AccountDraft(name="Wallet"))
        await store.add_transaction(TransactionDraft(
            account_id=wallet.id,
            category_id=categories["Salary"].id,
            amount=Decimal("50000"),
            type=TransactionType.INCOME,
            transaction_date=datetime(2026, 10, 1, 9, 0),
        ))
        await store.add_transaction(TransactionDraft(
            account_id=wallet.id,
            category_id=categories["Food & Dining"].id,
            amount=Decimal("1200"),
            transaction_date=datetime(2026, 10, 10, 13, 0),
        ))
        await store.add_budget(BudgetDraft(
            category_id=categories["Food & Dining"].id,
            limit_amount=Decimal("1000"),
            month=date(2026, 10, 1),
        ))
        for name in ("Trip", "Laptop", "Bike"):
            await store.add_goal(GoalDraft(
                name=name, target_amount=Decimal("10000"), target_date=date(2027, 3, 1),
            ))
        await store.add_goal(GoalDraft(
            name="Old", target_amount=Decimal("10"), target_date=date(2026, 1, 1),
            status=GoalStatus.COMPLETED,
        ))

        view = demo_app.dashboard(NOW)

        assert view.summary.total_balance == Decimal("48800.00")
        assert view.summary.net_income == Decimal("48800.00")
        assert view.budgets[0].is_over_budget
        assert len(view.goals) == 2
        assert all(g.goal.status == GoalStatus.ACTIVE for g in view.goals)
        assert view.expense_series.labels == ["Food & Dining"]
        assert view.income_series.labels == ["Salary"]
        assert view.recent_transactions[0].amount == Decimal("1200.00")

    @pytest.mark.asyncio
    async def test_validator_is_wired(self, demo_app):
        """Test that the validator shares the audit trail."""
        demo_app.validator.validate_account(name="", account_type="wallet")
        assert demo_app.audit_logger.recent_events(1)[0].entity_type == "account"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
