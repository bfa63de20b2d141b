"""
Streamlit Frontend for Finance Tracker

The pages a user works with day to day: dashboard, transactions,
accounts, categories, budgets, goals and profile.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every form is validated before anything is sent
3. Every save shows a clear success or failure message
4. Data shown always comes from the store snapshot

The async data layer runs on one long-lived event loop in a background
thread. The HTTP client is bound to that loop, so a fresh loop per call
would break it.
"""

import asyncio
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Coroutine

import streamlit as st

from finance_tracker.analytics import goals_progress, profile_stats
from finance_tracker.config import validate_all_settings
from finance_tracker.models.finance import (
    AccountPatch,
    AccountType,
    BudgetPatch,
    CategoryPatch,
    CategoryType,
    ChartSeries,
    FinanceSnapshot,
    GoalPatch,
    GoalStatus,
    PreferencesPatch,
    Theme,
    TransactionPatch,
    TransactionType,
    to_cents,
)
from finance_tracker.orchestrator import DEMO_EMAIL, DEMO_PASSWORD, FinanceApp, create_app_components
from finance_tracker.services.backend import AuthError, BackendError
from finance_tracker.store import FinanceStoreError
from finance_tracker.validation import ExpressionError, evaluate_amount


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .legend-dot {
        display: inline-block;
        width: 12px;
        height: 12px;
        border-radius: 50%;
        margin-right: 8px;
    }
    .overdue {
        color: #dc3545;
        font-weight: bold;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One event loop for the whole process, running in a daemon thread."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, daemon=True).start()
    return loop


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Helper to run async functions in Streamlit."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


@st.cache_resource
def get_app() -> FinanceApp:
    """Get or create application components (cached)."""
    app = create_app_components()
    run_async(app.start())
    return app


def money(value: Decimal, snapshot: FinanceSnapshot) -> str:
    symbol = snapshot.preferences.currency if snapshot.preferences else get_app().settings.currency_symbol
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def run_mutation(action: str, coro: Coroutine[Any, Any, Any]) -> bool:
    """
    Run a store write and report the outcome.

    Store errors carry a message meant for the user; anything else
    from the backend gets a generic notice.
    """
    try:
        run_async(coro)
    except FinanceStoreError as e:
        st.error(f"❌ {e}")
        return False
    except BackendError:
        st.error(f"❌ Failed to {action}. Please try again.")
        return False
    st.success(f"✅ Done: {action}")
    return True


def show_validation(app: FinanceApp, result) -> None:
    if result.has_errors:
        st.error(app.validator.get_user_friendly_summary(result))
    elif result.warnings:
        st.warning(app.validator.get_user_friendly_summary(result))


def show_fetch_errors(snapshot: FinanceSnapshot) -> None:
    for collection, message in snapshot.errors.items():
        st.warning(f"⚠️ Could not load {collection.value.replace('_', ' ')}; showing saved data. ({message})")


def main():
    """Main application entry point."""
    app = get_app()
    session = app.session

    # Returning from the OAuth provider
    code = st.query_params.get("code")
    if code and session.oauth_in_progress:
        try:
            run_async(session.complete_oauth_sign_in(code))
        except BackendError as e:
            app.audit_logger.log_error("oauth_callback_failed", e.message, details={"code": e.code})
            st.error(f"Sign-in failed: {e.message}")
        st.query_params.clear()

    if not session.is_authenticated:
        render_sign_in_page(app)
        return

    # Sidebar navigation
    st.sidebar.title("💰 Finance Tracker")
    st.sidebar.caption(session.identity.display_name)
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "🏠 Dashboard",
            "💸 Transactions",
            "🏦 Accounts",
            "🏷️ Categories",
            "📊 Budgets",
            "🎯 Goals",
            "👤 Profile",
        ],
        index=0,
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("🔄 Refresh"):
        if not run_async(app.store.refresh_all()):
            st.sidebar.warning("Some data could not be refreshed")

    snapshot = app.store.snapshot
    show_fetch_errors(snapshot)

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard_page(app)
    elif page == "💸 Transactions":
        render_transactions_page(app)
    elif page == "🏦 Accounts":
        render_accounts_page(app)
    elif page == "🏷️ Categories":
        render_categories_page(app)
    elif page == "📊 Budgets":
        render_budgets_page(app)
    elif page == "🎯 Goals":
        render_goals_page(app)
    elif page == "👤 Profile":
        render_profile_page(app)


def render_sign_in_page(app: FinanceApp):
    """Render the sign-in / sign-up screen."""
    st.title("💰 Finance Tracker")
    st.markdown("Track your accounts, spending, budgets and savings goals.")

    if app.is_demo:
        st.info(f"Demo mode: sign in with **{DEMO_EMAIL}** / **{DEMO_PASSWORD}**")

    sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Create account"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", type="primary")
        if submitted:
            try:
                run_async(app.session.sign_in_with_password(email, password))
                st.rerun()
            except AuthError as e:
                st.error(f"❌ {e.message}")
            except BackendError:
                st.error("❌ Could not reach the server. Please try again.")

        if not app.is_demo:
            st.markdown("---")
            if st.button("Continue with Google"):
                url = app.session.sign_in_with_google()
                st.link_button("Open Google sign-in", url)

    with sign_up_tab:
        with st.form("sign_up"):
            full_name = st.text_input("Full name")
            email = st.text_input("Email", key="sign_up_email")
            password = st.text_input("Password", type="password", key="sign_up_password")
            submitted = st.form_submit_button("Create account", type="primary")
        if submitted:
            if len(password) < 6:
                st.error("❌ Password must be at least 6 characters")
            else:
                try:
                    identity = run_async(app.session.sign_up(email, password, full_name or None))
                    if identity is None:
                        st.success("✅ Check your email to confirm your account, then sign in.")
                    else:
                        st.rerun()
                except AuthError as e:
                    st.error(f"❌ {e.message}")
                except BackendError:
                    st.error("❌ Could not reach the server. Please try again.")


def render_series(title: str, series: ChartSeries, snapshot: FinanceSnapshot):
    st.markdown(f"#### {title}")
    if series.is_empty:
        st.caption("No data for this month yet.")
        return
    st.bar_chart(
        {"Category": series.labels, "Amount": [float(v) for v in series.values]},
        x="Category",
        y="Amount",
    )
    for label, value, color in series.points():
        st.markdown(
            f'<span class="legend-dot" style="background:{color}"></span>'
            f"{label}: {money(value, snapshot)}",
            unsafe_allow_html=True,
        )


def render_dashboard_page(app: FinanceApp):
    """Render the dashboard."""
    snapshot = app.store.snapshot
    identity = app.session.identity
    st.title(f"👋 Welcome back, {identity.display_name}")

    if not snapshot.loaded and not snapshot.errors:
        st.info("Loading your data...")

    view = app.dashboard()
    summary = view.summary

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Balance", money(summary.total_balance, snapshot))
    col2.metric("Monthly Income", money(summary.monthly_income, snapshot))
    col3.metric("Monthly Expenses", money(summary.monthly_expenses, snapshot))
    col4.metric("Net Income", money(summary.net_income, snapshot))

    st.markdown("---")
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("📊 Budget Progress")
        if not view.budgets:
            st.caption("No budgets set for this month.")
        for progress in view.budgets:
            st.markdown(f"**{progress.category_name}**")
            st.progress(progress.percentage / 100)
            if progress.is_over_budget:
                st.markdown(
                    f'<span class="overdue">Over by {money(-progress.remaining, snapshot)}</span>',
                    unsafe_allow_html=True,
                )
            else:
                st.caption(
                    f"{money(progress.spent, snapshot)} of "
                    f"{money(progress.budget.limit_amount, snapshot)} · "
                    f"Remaining: {money(progress.remaining, snapshot)}"
                )

    with col2:
        st.subheader("🎯 Goals")
        if not view.goals:
            st.caption("No active goals.")
        for progress in view.goals:
            render_goal_progress(progress, snapshot)

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        render_series("Expenses by category", view.expense_series, snapshot)
    with col2:
        render_series("Income by category", view.income_series, snapshot)

    st.markdown("---")
    st.subheader("🧾 Recent Transactions")
    render_transaction_rows(view.recent_transactions, snapshot)


def render_goal_progress(progress, snapshot: FinanceSnapshot):
    goal = progress.goal
    st.markdown(f"**{goal.name}** · {progress.category_name or 'Unknown Category'}")
    st.progress(progress.display_percentage / 100)
    deadline = (
        f'<span class="overdue">Overdue by {abs(progress.days_left)} days</span>'
        if progress.is_overdue
        else f"{progress.days_left} days left"
    )
    st.markdown(
        f"{money(goal.current_amount, snapshot)} / {money(goal.target_amount, snapshot)} "
        f"({round(progress.percentage)}%) · {deadline}",
        unsafe_allow_html=True,
    )


def render_transaction_rows(transactions, snapshot: FinanceSnapshot):
    if not transactions:
        st.caption("No transactions yet.")
        return
    for transaction in transactions:
        category = snapshot.find_category(transaction.category_id)
        account = snapshot.find_account(transaction.account_id)
        sign = "+" if transaction.type == TransactionType.INCOME else "-"
        st.markdown(
            f"{transaction.transaction_date:%d %b %Y} · "
            f"**{transaction.description or (category.name if category else 'Transaction')}** · "
            f"{account.name if account else 'Unknown account'} · "
            f"{sign}{money(transaction.amount, snapshot)}"
        )


def render_amount_calculator(amount_key: str):
    """Work out an amount from a calculation and drop it into the amount field."""
    with st.popover("🧮 Calculator"):
        expression = st.text_input("Calculation", placeholder="120 + 45.50 * 2", key=f"{amount_key}_calc")
        if not expression:
            return
        try:
            result = to_cents(evaluate_amount(expression))
        except ExpressionError as e:
            st.error(str(e))
            return
        st.markdown(f"= **{result:,.2f}**")
        if st.button("Use as amount", key=f"{amount_key}_use"):
            st.session_state[amount_key] = str(result)
            st.rerun()


def category_choices(snapshot: FinanceSnapshot, kind: TransactionType):
    category_kind = CategoryType.INCOME if kind == TransactionType.INCOME else CategoryType.EXPENSE
    return snapshot.categories_of_type(category_kind)


def index_of(items, item_id) -> int:
    return next((i for i, item in enumerate(items) if item.id == item_id), 0)


def render_transactions_page(app: FinanceApp):
    """Render the transactions page."""
    store = app.store
    snapshot = store.snapshot
    st.title("💸 Transactions")

    if not snapshot.accounts:
        st.info("Add an account first, then record transactions against it.")
    else:
        with st.expander("➕ Add Transaction", expanded=False):
            kind = st.radio(
                "Type",
                list(TransactionType),
                format_func=lambda t: t.value.title(),
                horizontal=True,
            )
            categories = category_choices(snapshot, kind)
            render_amount_calculator("add_transaction_amount")

            with st.form("add_transaction", clear_on_submit=True):
                amount = st.text_input(
                    "Amount *", placeholder="0.00 or 120 + 45.50", key="add_transaction_amount"
                )
                account = st.selectbox("Account *", snapshot.accounts, format_func=lambda a: a.name)
                category = st.selectbox("Category *", categories, format_func=lambda c: c.name)
                col1, col2 = st.columns(2)
                when = col1.date_input("Date *", value=date.today())
                at = col2.time_input("Time", value=datetime.now().time().replace(second=0, microsecond=0))
                description = st.text_input("Description")
                submitted = st.form_submit_button("Save", type="primary")

            if submitted:
                result, draft = app.validator.validate_transaction(
                    snapshot,
                    account_id=account.id if account else None,
                    category_id=category.id if category else None,
                    amount=amount,
                    transaction_type=kind,
                    transaction_date=datetime.combine(when, at).astimezone(),
                    description=description,
                )
                show_validation(app, result)
                if draft is not None and run_mutation("add transaction", store.add_transaction(draft)):
                    st.rerun()

    st.markdown("---")
    for transaction in snapshot.transactions:
        category = snapshot.find_category(transaction.category_id)
        label = (
            f"{transaction.transaction_date.astimezone():%d %b %Y} · "
            f"{transaction.description or (category.name if category else 'Transaction')} · "
            f"{transaction.type.value} {money(transaction.amount, snapshot)}"
        )
        with st.expander(label):
            render_transaction_editor(app, transaction)


def render_transaction_editor(app: FinanceApp, transaction):
    """Edit every field of one transaction, re-validated like a new one."""
    store = app.store
    snapshot = store.snapshot
    key = transaction.id

    kind = st.radio(
        "Type",
        list(TransactionType),
        index=list(TransactionType).index(transaction.type),
        format_func=lambda t: t.value.title(),
        horizontal=True,
        key=f"edit_type_{key}",
    )
    categories = category_choices(snapshot, kind)
    amount_key = f"edit_amount_{key}"
    st.session_state.setdefault(amount_key, str(transaction.amount))
    render_amount_calculator(amount_key)

    local_time = transaction.transaction_date.astimezone()
    with st.form(f"edit_transaction_{key}"):
        account = st.selectbox(
            "Account",
            snapshot.accounts,
            index=index_of(snapshot.accounts, transaction.account_id),
            format_func=lambda a: a.name,
        )
        category = st.selectbox(
            "Category",
            categories,
            index=index_of(categories, transaction.category_id),
            format_func=lambda c: c.name,
        )
        amount = st.text_input("Amount", key=amount_key)
        col1, col2 = st.columns(2)
        when = col1.date_input("Date", value=local_time.date())
        at = col2.time_input("Time", value=local_time.time().replace(second=0, microsecond=0))
        description = st.text_input("Description", value=transaction.description or "")
        saved = st.form_submit_button("Update")

    if saved:
        result, draft = app.validator.validate_transaction(
            snapshot,
            account_id=account.id if account else None,
            category_id=category.id if category else None,
            amount=amount,
            transaction_type=kind,
            transaction_date=datetime.combine(when, at).astimezone(),
            description=description,
        )
        show_validation(app, result)
        if draft is not None:
            patch = TransactionPatch(
                account_id=draft.account_id,
                category_id=draft.category_id,
                amount=draft.amount,
                type=draft.type,
                description=draft.description,
                transaction_date=draft.transaction_date,
            )
            if run_mutation("update transaction", store.update_transaction(transaction.id, patch)):
                st.session_state.pop(amount_key, None)
                st.rerun()
    if st.button("🗑️ Delete", key=f"delete_transaction_{key}"):
        if run_mutation("delete transaction", store.delete_transaction(transaction.id)):
            st.rerun()


def render_accounts_page(app: FinanceApp):
    """Render the accounts page."""
    store = app.store
    snapshot = store.snapshot
    st.title("🏦 Accounts")

    with st.expander("➕ Add Account"):
        with st.form("add_account", clear_on_submit=True):
            name = st.text_input("Account name *", placeholder="Main Wallet")
            account_type = st.selectbox(
                "Type",
                list(AccountType),
                format_func=lambda t: t.value.replace("_", " ").title(),
            )
            color = st.color_picker("Color", value="#3B82F6")
            submitted = st.form_submit_button("Save", type="primary")
        if submitted:
            result, draft = app.validator.validate_account(
                name=name,
                account_type=account_type.value,
                color=color,
                snapshot=snapshot,
            )
            show_validation(app, result)
            if draft is not None and run_mutation("add account", store.add_account(draft)):
                st.rerun()

    st.markdown("---")
    if not snapshot.accounts:
        st.caption("No accounts yet.")
    for account in snapshot.accounts:
        with st.expander(
            f"{account.name} · {account.type.value.replace('_', ' ')} · {money(account.balance, snapshot)}"
        ):
            with st.form(f"edit_account_{account.id}"):
                name = st.text_input("Name", value=account.name)
                color = st.color_picker("Color", value=account.color)
                saved = st.form_submit_button("Update")
            if saved:
                patch = AccountPatch(name=name.strip() or account.name, color=color)
                if run_mutation("update account", store.update_account(account.id, patch)):
                    st.rerun()
            if st.button("🗑️ Delete", key=f"delete_account_{account.id}"):
                if run_mutation("delete account", store.delete_account(account.id)):
                    st.rerun()


def render_categories_page(app: FinanceApp):
    """Render the categories page."""
    store = app.store
    snapshot = store.snapshot
    st.title("🏷️ Categories")

    with st.expander("➕ Add Category"):
        with st.form("add_category", clear_on_submit=True):
            name = st.text_input("Category name *", placeholder="Food & Dining")
            category_type = st.selectbox("Type", list(CategoryType), format_func=lambda t: t.value.title())
            color = st.color_picker("Color", value="#EF4444")
            submitted = st.form_submit_button("Save", type="primary")
        if submitted:
            result, draft = app.validator.validate_category(
                name=name,
                category_type=category_type.value,
                color=color,
                snapshot=snapshot,
            )
            show_validation(app, result)
            if draft is not None and run_mutation("add category", store.add_category(draft)):
                st.rerun()

    for kind in CategoryType:
        st.subheader(f"{kind.value.title()} categories")
        for category in snapshot.categories_of_type(kind):
            badge = " · Default" if category.is_default else ""
            with st.expander(f"{category.name}{badge}"):
                if category.is_protected:
                    st.caption("Default categories cannot be edited or deleted.")
                    continue
                with st.form(f"edit_category_{category.id}"):
                    name = st.text_input("Name", value=category.name)
                    color = st.color_picker("Color", value=category.color)
                    saved = st.form_submit_button("Update")
                if saved:
                    patch = CategoryPatch(name=name.strip() or category.name, color=color)
                    if run_mutation("update category", store.update_category(category.id, patch)):
                        st.rerun()
                if st.button("🗑️ Delete", key=f"delete_category_{category.id}"):
                    if run_mutation("delete category", store.delete_category(category.id)):
                        st.rerun()


def render_budgets_page(app: FinanceApp):
    """Render the budgets page."""
    store = app.store
    snapshot = store.snapshot
    st.title("📊 Budgets")

    expense_categories = snapshot.categories_of_type(CategoryType.EXPENSE)
    with st.expander("➕ Add Budget"):
        with st.form("add_budget", clear_on_submit=True):
            category = st.selectbox("Category *", expense_categories, format_func=lambda c: c.name)
            limit_amount = st.text_input("Monthly limit *", placeholder="0.00")
            month = st.text_input("Month *", value=date.today().strftime("%Y-%m"), help="YYYY-MM")
            submitted = st.form_submit_button("Save", type="primary")
        if submitted:
            result, draft = app.validator.validate_budget(
                snapshot,
                category_id=category.id if category else None,
                limit_amount=limit_amount,
                month=month,
            )
            show_validation(app, result)
            if draft is not None and run_mutation("add budget", store.add_budget(draft)):
                st.rerun()

    st.markdown("---")
    if not snapshot.budgets:
        st.caption("No budgets yet.")
    for budget in snapshot.budgets:
        category = snapshot.find_category(budget.category_id)
        with st.expander(
            f"{budget.month:%B %Y} · {category.name if category else 'Unknown'} · "
            f"{money(budget.limit_amount, snapshot)}"
        ):
            with st.form(f"edit_budget_{budget.id}"):
                limit_amount = st.text_input("Limit", value=str(budget.limit_amount))
                saved = st.form_submit_button("Update")
            if saved:
                result, draft = app.validator.validate_budget(
                    snapshot,
                    category_id=budget.category_id,
                    limit_amount=limit_amount,
                    month=budget.month,
                    budget_id=budget.id,
                )
                show_validation(app, result)
                if draft is not None:
                    patch = BudgetPatch(limit_amount=draft.limit_amount)
                    if run_mutation("update budget", store.update_budget(budget.id, patch)):
                        st.rerun()
            if st.button("🗑️ Delete", key=f"delete_budget_{budget.id}"):
                if run_mutation("delete budget", store.delete_budget(budget.id)):
                    st.rerun()


def render_goals_page(app: FinanceApp):
    """Render the goals page."""
    store = app.store
    snapshot = store.snapshot
    st.title("🎯 Goals")

    with st.expander("➕ Add Goal"):
        with st.form("add_goal", clear_on_submit=True):
            name = st.text_input("Goal name *", placeholder="Emergency fund")
            category = st.selectbox(
                "Category",
                [None, *snapshot.categories],
                format_func=lambda c: "None" if c is None else c.name,
            )
            target_amount = st.text_input("Target amount *", placeholder="0.00")
            current_amount = st.text_input("Already saved", value="0")
            target_date = st.date_input("Target date *", value=date.today())
            description = st.text_area("Description")
            submitted = st.form_submit_button("Save", type="primary")
        if submitted:
            result, draft = app.validator.validate_goal(
                name=name,
                target_amount=target_amount,
                target_date=target_date,
                current_amount=current_amount,
                category_id=category.id if category else None,
                description=description,
                snapshot=snapshot,
            )
            show_validation(app, result)
            if draft is not None and run_mutation("add goal", store.add_goal(draft)):
                st.rerun()

    st.markdown("---")
    if not snapshot.goals:
        st.caption("No goals yet.")
    for progress in goals_progress(snapshot, datetime.now()):
        goal = progress.goal
        with st.expander(f"{goal.name} · {goal.status.value}"):
            render_goal_progress(progress, snapshot)

            col1, col2 = st.columns(2)
            amount = col1.text_input("Amount", key=f"fund_amount_{goal.id}", placeholder="0.00")
            withdraw = col2.checkbox("Withdraw", key=f"fund_withdraw_{goal.id}")
            if st.button("💰 Apply", key=f"fund_{goal.id}"):
                result, parsed = app.validator.validate_funding(goal, amount, withdrawal=withdraw)
                show_validation(app, result)
                if parsed is not None:
                    action = store.withdraw_from_goal if withdraw else store.fund_goal
                    if run_mutation(
                        "withdraw from goal" if withdraw else "add funds to goal",
                        action(goal.id, parsed),
                    ):
                        st.rerun()

            status = st.selectbox(
                "Status",
                list(GoalStatus),
                index=list(GoalStatus).index(goal.status),
                key=f"goal_status_{goal.id}",
                format_func=lambda s: s.value.title(),
            )
            if status != goal.status and st.button("Update status", key=f"goal_status_save_{goal.id}"):
                if run_mutation("update goal", store.update_goal(goal.id, GoalPatch(status=status))):
                    st.rerun()

            if st.button("🗑️ Delete", key=f"delete_goal_{goal.id}"):
                if run_mutation("delete goal", store.delete_goal(goal.id)):
                    st.rerun()


def render_profile_page(app: FinanceApp):
    """Render the profile page."""
    store = app.store
    snapshot = store.snapshot
    identity = app.session.identity
    st.title("👤 Profile")

    st.markdown(f"**{identity.display_name}**")
    if identity.email:
        st.caption(identity.email)
    if identity.created_at:
        st.caption(f"Member since {identity.created_at:%B %Y}")

    stats = profile_stats(snapshot)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Accounts", stats.account_count)
    col2.metric("Transactions", stats.transaction_count)
    col3.metric("Goals", stats.goal_count)
    col4.metric("Categories", stats.category_count)

    st.markdown("---")
    st.markdown("### Preferences")
    preferences = snapshot.preferences
    with st.form("preferences"):
        theme = st.selectbox(
            "Theme",
            list(Theme),
            index=list(Theme).index(preferences.theme) if preferences else 0,
            format_func=lambda t: t.value.title(),
        )
        currency = st.text_input(
            "Currency symbol",
            value=preferences.currency if preferences else app.settings.currency_symbol,
            max_chars=5,
        )
        saved = st.form_submit_button("Save preferences")
    if saved:
        changes = {"theme": theme}
        if currency.strip():
            changes["currency"] = currency.strip()
        patch = PreferencesPatch(**changes)
        if run_mutation("update preferences", store.update_preferences(patch)):
            st.rerun()

    st.markdown("---")
    st.markdown("### Connection Status")
    if app.is_demo:
        st.info("🧪 Demo mode - data is kept in memory and lost on restart")
    else:
        status = validate_all_settings()
        if status.get("supabase", False):
            st.success("✅ Supabase - Configured")
        else:
            st.error(f"❌ Supabase - {status.get('supabase_error', 'Not configured')}")

    st.markdown("---")
    st.markdown("### Recent Activity")
    events = [e for e in app.audit_logger.recent_events(limit=50) if e.is_user_action][:15]
    if not events:
        st.caption("No activity yet.")
    for event in events:
        icon = "❌" if event.error_message else "•"
        st.markdown(f"{icon} {event.timestamp:%d %b %H:%M} · {event.description}")

    st.markdown("---")
    if st.button("🚪 Sign out"):
        try:
            run_async(app.session.sign_out())
            st.rerun()
        except BackendError:
            st.error("❌ Failed to sign out. Please try again.")


if __name__ == "__main__":
    main()
