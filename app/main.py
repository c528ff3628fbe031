"""
Streamlit Frontend for the EMI Tracker

The user interface for keeping track of installment loans.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything is saved
3. Clear error messages in simple language
4. Balances shown everywhere, always recomputed

The settle page only offers periods that are still open, and the
running total is shown before the user saves.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from emi_tracker.audit import create_correlation_id
from emi_tracker.config import get_settings, validate_all_settings
from emi_tracker.models.ledger import AccountCategory, EntryKind, Frequency
from emi_tracker.orchestrator import (
    InstallmentFlow,
    LedgerFlow,
    create_app_components,
)
from emi_tracker.planning import PlanningError
from emi_tracker.queries import LedgerQueryExecutor
from emi_tracker.services.storage import StorageError


# Page configuration
st.set_page_config(
    page_title="EMI Tracker",
    page_icon="💳",
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
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def money(amount) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol}{Decimal(amount):,.2f}"


def main():
    """Main application entry point."""
    installment_flow, ledger_flow, query_executor, sheets_client = get_components()

    st.sidebar.title("💳 EMI Tracker")
    if sheets_client is None:
        st.sidebar.warning("Google Sheets not configured. Data lasts for this session only.")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "🏦 Accounts", "💰 Cash In", "✅ Settle Installments", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Create an EMI account
        2. Record the amount you received
        3. Tick the periods as you pay them
        """
    )

    if page == "📊 Dashboard":
        render_dashboard_page(query_executor)
    elif page == "🏦 Accounts":
        render_accounts_page(ledger_flow, query_executor)
    elif page == "💰 Cash In":
        render_cash_in_page(installment_flow, ledger_flow)
    elif page == "✅ Settle Installments":
        render_settle_page(installment_flow, ledger_flow)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_dashboard_page(query_executor: LedgerQueryExecutor):
    """Render totals across all accounts."""
    st.title("📊 Dashboard")

    overview = run_async(query_executor.overall_summary())

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total In", money(overview.total_in))
    col2.metric("Total Out", money(overview.total_out))
    col3.metric("Balance", money(overview.balance))
    col4.metric("EMI Outstanding", money(overview.installment_outstanding))

    st.markdown("---")
    if not overview.accounts:
        st.info("No accounts yet. Create one on the Accounts page.")
        return

    st.dataframe(
        [
            {
                "Account": s.account,
                "Type": s.category.value.title(),
                "EMI": "Yes" if s.is_installment else "No",
                "In": float(s.total_in),
                "Out": float(s.total_out),
                "Balance": float(s.balance),
                "Entries": s.entry_count,
            }
            for s in overview.accounts
        ],
        use_container_width=True,
    )


def render_accounts_page(ledger_flow: LedgerFlow, query_executor: LedgerQueryExecutor):
    """Render account list, creation, rename and delete."""
    st.title("🏦 Accounts")

    with st.expander("➕ Create New Account"):
        name = st.text_input("Account name")
        category = st.selectbox(
            "Type",
            options=list(AccountCategory),
            format_func=lambda x: x.value.title(),
        )
        is_installment = st.checkbox("EMI Account")
        if st.button("Create", type="primary"):
            if not name.strip():
                st.error("Please enter an account name")
            else:
                try:
                    run_async(ledger_flow.create_account(name, category, is_installment))
                    st.success(f"Created '{name.strip()}'")
                    st.rerun()
                except StorageError as e:
                    st.error(f"Could not create account: {e}")

    summaries = run_async(query_executor.account_summaries())
    if not summaries:
        st.info("No accounts created yet. Create your first account to get started.")
        return

    accounts = {a.name: a for a in run_async(ledger_flow.list_accounts())}

    for summary in summaries:
        account = accounts.get(summary.account)
        if account is None:
            continue
        label = f"{summary.account} · {money(summary.balance)}"
        with st.expander(label):
            st.markdown(
                f"**Type:** {summary.category.value.title()} "
                f"{'(EMI)' if summary.is_installment else ''}"
            )
            col1, col2, col3 = st.columns(3)
            col1.metric("In", money(summary.total_in))
            col2.metric("Out", money(summary.total_out))
            col3.metric("Balance", money(summary.balance))

            s1, s2, s3, s4 = st.columns([3, 2, 2, 1])
            term = s1.text_input("Search", key=f"search-{account.id}")
            kind = s2.selectbox(
                "Type", ["All", "Cash in", "Cash out"], key=f"kind-{account.id}"
            )
            sort_by = s3.selectbox(
                "Sort by", ["date", "amount", "description"], key=f"sort-{account.id}"
            )
            descending = s4.checkbox("Desc", value=True, key=f"desc-{account.id}")

            entries = run_async(query_executor.search_entries(
                account=account.name,
                term=term,
                kind={"Cash in": EntryKind.CASH_IN, "Cash out": EntryKind.CASH_OUT}.get(kind),
                sort_by=sort_by,
                descending=descending,
            ))
            if not entries:
                st.caption("No matching entries.")
            for entry in entries:
                c1, c2, c3, c4 = st.columns([2, 4, 2, 1])
                c1.write(entry.date.strftime("%d %b %Y"))
                c2.write(entry.description or entry.category)
                c3.write(("+" if entry.signed_amount < 0 else "-") + money(entry.amount))
                if c4.button("🗑️", key=f"del-entry-{entry.id}"):
                    run_async(ledger_flow.delete_entry(entry.id))
                    st.rerun()

            new_name = st.text_input("Rename to", key=f"rename-{account.id}")
            if st.button("Rename", key=f"rename-btn-{account.id}") and new_name.strip():
                try:
                    run_async(ledger_flow.rename_account(account.id, new_name))
                    st.rerun()
                except StorageError as e:
                    st.error(f"Could not rename: {e}")

            if st.button("Delete account", key=f"del-acct-{account.id}"):
                try:
                    run_async(ledger_flow.delete_account(account.id))
                    st.rerun()
                except PlanningError as e:
                    st.error(str(e))


def render_cash_in_page(installment_flow: InstallmentFlow, ledger_flow: LedgerFlow):
    """Render the lump-sum cash in form."""
    st.title("💰 Cash In")
    st.markdown("Record money received, e.g. a loan repaid in installments.")

    accounts = run_async(ledger_flow.list_accounts())
    if not accounts:
        st.info("Create an account first.")
        return

    account = st.selectbox("Account", options=accounts, format_func=lambda a: a.name)
    total = st.number_input("Total amount", min_value=0.0, step=100.0, format="%.2f")
    on = st.date_input("Date", value=date.today())
    description = st.text_input("Description (optional)")

    period_count = None
    frequency = get_settings().app.default_frequency
    if account.is_installment:
        col1, col2 = st.columns(2)
        period_count = col1.number_input("Number of EMIs", min_value=1, value=12, step=1)
        frequency = col2.selectbox(
            "Frequency",
            options=list(Frequency),
            index=list(Frequency).index(frequency),
            format_func=lambda f: f.value.title(),
        )
        if total > 0:
            st.caption(f"Each installment: {money(Decimal(str(total)) / int(period_count))}")

    if st.button("💾 Save", type="primary"):
        try:
            entry = run_async(installment_flow.record_cash_in(
                account.name,
                Decimal(str(total)),
                int(period_count) if period_count is not None else None,
                description,
                frequency=frequency,
                on=on,
                correlation_id=create_correlation_id(),
            ))
            st.success(f"Saved: {entry.description or money(entry.amount)}")
        except PlanningError as e:
            st.error(str(e))
        except StorageError as e:
            st.error(f"Failed to save: {e}")


def render_settle_page(installment_flow: InstallmentFlow, ledger_flow: LedgerFlow):
    """Render the installment settlement page."""
    st.title("✅ Settle Installments")

    accounts = [a for a in run_async(ledger_flow.list_accounts()) if a.is_installment]
    if not accounts:
        st.info("No EMI accounts yet. Tick 'EMI Account' when creating one.")
        return

    account = st.selectbox("EMI account", options=accounts, format_func=lambda a: a.name)
    plan = run_async(installment_flow.get_plan(account.name))

    col1, col2 = st.columns(2)
    col1.metric("Outstanding", money(plan.outstanding))
    col2.metric("Frequency", plan.frequency.value.title())

    if plan.needs_manual_amount:
        st.markdown(
            '<div class="warning-box">The installment amount could not be '
            'worked out from the last cash in. Please enter it.</div>',
            unsafe_allow_html=True,
        )
        default_amount = 0.0
    else:
        default_amount = float(plan.per_period_amount)
    per_period = st.number_input(
        "Amount per installment",
        min_value=0.0,
        value=default_amount,
        step=100.0,
        format="%.2f",
    )

    if plan.settled_dates:
        st.caption(
            "Already paid: "
            + ", ".join(d.strftime("%d %b %Y") for d in plan.settled_dates)
        )

    st.markdown("### Select periods being paid")
    selected = [
        slot for slot in plan.open_slots
        if st.checkbox(slot.label, key=f"slot-{account.id}-{slot.due_date}")
    ]

    total = Decimal(str(per_period)) * len(selected)
    st.markdown(f"**Total:** {money(total)} for {len(selected)} installment(s)")

    if st.button("💾 Save Payments", type="primary"):
        try:
            saved = run_async(installment_flow.settle_periods(
                account.name,
                selected,
                per_period_amount=Decimal(str(per_period)),
                correlation_id=create_correlation_id(),
            ))
            st.success(f"Saved {len(saved)} installment(s)")
            st.rerun()
        except PlanningError as e:
            st.error(str(e))
        except StorageError as e:
            st.error(f"Nothing was saved: {e}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    app = get_settings().app
    st.markdown("---")
    st.markdown("### Defaults")
    st.markdown(f"- **Currency:** {app.currency_symbol}")
    st.markdown(f"- **Schedule length:** {app.default_schedule_count} periods")
    st.markdown(f"- **Frequency:** {app.default_frequency.value}")
    st.markdown(
        "To change them, set the matching variables in a `.env` file "
        "(e.g. `CURRENCY_SYMBOL`, `DEFAULT_SCHEDULE_COUNT`)."
    )


if __name__ == "__main__":
    main()
