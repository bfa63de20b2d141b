"""
Main Orchestrator for Finance Tracker

This module ties the components together:
1. Backend (hosted service, or in-memory for the demo)
2. Session context, with the store subscribed to it
3. Form validator
4. Dashboard assembly from the store snapshot

DESIGN DECISION: The orchestrator is the only place that knows which
backend is in use. Everything above it talks to the abstract gateway
and auth interfaces.

Startup flow:
    app = create_app_components()
    await app.start()         # restores a session; the store loads on the event
    view = app.dashboard()
    await app.close()
"""

from datetime import datetime
from typing import Optional

import structlog

from finance_tracker.analytics import (
    budget_progress,
    category_series,
    goals_progress,
    monthly_summary,
    recent_transactions,
)
from finance_tracker.audit import AuditLogger, configure_logging
from finance_tracker.auth import SessionContext
from finance_tracker.config import AppSettings, Settings, get_settings
from finance_tracker.models.auth import Identity
from finance_tracker.models.finance import (
    DashboardView,
    GoalStatus,
    Theme,
    TransactionType,
)
from finance_tracker.services.backend import (
    AuthBackend,
    BackendGateway,
    InMemoryAuth,
    InMemoryBackend,
    SupabaseAuth,
    SupabaseClient,
    SupabaseGateway,
)
from finance_tracker.store import FinanceStore
from finance_tracker.validation import FinanceInputValidator


logger = structlog.get_logger(__name__)

# Sign-in for the in-memory demo backend
DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demo-password"


class FinanceApp:
    """
    The assembled application.

    Holds one of each component for the lifetime of the process.
    """

    def __init__(
        self,
        settings: AppSettings,
        gateway: BackendGateway,
        auth_backend: AuthBackend,
        session: SessionContext,
        store: FinanceStore,
        validator: FinanceInputValidator,
        audit_logger: AuditLogger,
        client: Optional[SupabaseClient] = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.auth_backend = auth_backend
        self.session = session
        self.store = store
        self.validator = validator
        self.audit_logger = audit_logger
        self._client = client

    @property
    def is_demo(self) -> bool:
        return self.settings.backend == "memory"

    async def start(self) -> Optional[Identity]:
        """
        Restore any existing session.

        If one is found, the store loads through its auth subscription
        before this returns. Never raises.
        """
        identity = await self.session.restore_session()
        logger.info(
            "app_started",
            backend=self.settings.backend,
            signed_in=identity is not None,
        )
        return identity

    async def close(self) -> None:
        """Detach the store and release the HTTP connection pool."""
        self.store.close()
        if self._client is not None:
            await self._client.close()

    def dashboard(self, now: Optional[datetime] = None) -> DashboardView:
        """Compute every dashboard view from the current snapshot."""
        now = now or datetime.now()
        snapshot = self.store.snapshot
        return DashboardView(
            summary=monthly_summary(snapshot, now),
            budgets=budget_progress(snapshot, now, limit=self.settings.dashboard_budget_limit),
            goals=goals_progress(
                snapshot, now,
                status=GoalStatus.ACTIVE,
                limit=self.settings.dashboard_goal_limit,
            ),
            expense_series=category_series(snapshot, now, TransactionType.EXPENSE),
            income_series=category_series(snapshot, now, TransactionType.INCOME),
            recent_transactions=recent_transactions(
                snapshot, self.settings.recent_transactions_limit
            ),
        )


def create_app_components(
    settings: Optional[Settings] = None,
) -> FinanceApp:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from. Defaults to get_settings().

    Returns:
        The assembled FinanceApp, not yet started
    """
    settings = settings or get_settings()
    app_settings = settings.app

    configure_logging(app_settings.effective_log_level)
    audit_logger = AuditLogger(buffer_size=app_settings.audit_buffer_size)

    client: Optional[SupabaseClient] = None
    if app_settings.backend == "memory":
        demo_auth = InMemoryAuth()
        demo_auth.register_user(DEMO_EMAIL, DEMO_PASSWORD, full_name="Demo User")
        auth_backend: AuthBackend = demo_auth
    else:
        client = SupabaseClient(settings.supabase)
        auth_backend = SupabaseAuth(client)

    session = SessionContext(
        auth_backend,
        session_file=app_settings.session_file,
        audit_logger=audit_logger,
    )

    if client is None:
        gateway: BackendGateway = InMemoryBackend()
    else:
        gateway = SupabaseGateway(client, token_provider=lambda: session.access_token)

    store = FinanceStore(
        gateway,
        session,
        audit_logger=audit_logger,
        default_currency=app_settings.currency_symbol,
        default_theme=Theme(app_settings.default_theme),
    )

    return FinanceApp(
        settings=app_settings,
        gateway=gateway,
        auth_backend=auth_backend,
        session=session,
        store=store,
        validator=FinanceInputValidator(audit_logger),
        audit_logger=audit_logger,
        client=client,
    )
