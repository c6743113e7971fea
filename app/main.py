"""
Streamlit Frontend for Chama Ledger

This is the interface the group's treasurer and officials use at and
between meetings.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Forms are validated before anything is saved
3. Clear error messages in simple language
4. Saves happen in the background; failures show up as toasts
5. The assistant only drafts; the treasurer confirms

The UI enforces the human-in-the-loop principle:
- A parsed SMS pre-fills the transaction form
- The treasurer checks and edits it
- Nothing is recorded without an explicit "Save" action
"""

import asyncio
from datetime import date

import pandas as pd
import streamlit as st

from src.agents import AIError
from src.audit import set_log_level
from src.config import get_settings, validate_all_settings
from src.ledger import month_key
from src.ledger import reports
from src.models.group import (
    MemberStatus,
    PayoutStatus,
    PremiumStatus,
    TransactionCategory,
    TransactionType,
)
from src.orchestrator import AppComponents, create_app_components
from src.services.storage import StorageError
from src.validation import CsvValidationError, FormValidationError


# Page configuration
st.set_page_config(
    page_title="Chama Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_shared_components() -> AppComponents:
    """Storage connections shared by every browser session (cached)."""
    set_log_level(get_settings().app.log_level)
    return create_app_components(use_storage=True)


def get_components() -> AppComponents:
    """
    This session's components over the shared storage.

    The rotation schedule, notifications and pending writes belong to
    one browser session.
    """
    if "components" not in st.session_state:
        shared = get_shared_components()
        group = get_settings().group
        st.session_state.components = AppComponents(
            shared.storage,
            shared.audit_storage,
            contribution_amount=group.contribution_amount,
            currency=group.currency,
            sheets_client=shared.sheets_client,
        )
    return st.session_state.components


def run_async(components: AppComponents, coro):
    """
    Run a flow call in Streamlit.

    Background writes are drained before the loop closes, and any
    write failures are shown as toasts.
    """
    async def run():
        try:
            return await coro
        finally:
            await components.writer.drain()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(run())
    finally:
        loop.close()
        for notification in components.notifications.drain():
            icon = "❌" if notification.level == "error" else "✅"
            st.toast(notification.message, icon=icon)


def show_form_error(error: Exception) -> None:
    """Show a validation or storage error beside the form."""
    if isinstance(error, (FormValidationError, CsvValidationError)):
        st.error("❌ Please fix the following:\n\n" + "\n".join(
            f"- {message}" for message in error.result.error_messages()
        ))
        for warning in error.result.warnings:
            st.warning(warning)
    else:
        st.error(f"Error: {error}")


def money(amount) -> str:
    return f"{get_settings().group.currency} {amount:,.2f}"


def main():
    """Main application entry point."""
    components = get_components()
    group = get_settings().group

    st.sidebar.title(f"💰 {group.name}")
    st.sidebar.markdown("---")

    pages = {
        "📊 Dashboard": render_dashboard_page,
        "👥 Members": render_members_page,
        "🧾 Transactions": render_transactions_page,
        "🏦 Loans": render_loans_page,
        "🩺 Insurance": render_insurance_page,
        "🔄 Merry-go-round": render_schedule_page,
        "🤖 Assistant": render_assistant_page,
        "⚙️ Settings": render_settings_page,
    }
    page = st.sidebar.radio("Navigate to:", list(pages), index=0)

    if components.sheets_client is None:
        st.sidebar.warning("Google Sheets is not configured. Data is kept in memory only.")

    pages[page](components)


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(components: AppComponents):
    st.title("📊 Dashboard")

    transactions = run_async(components, components.transactions.list_transactions())
    loans = run_async(components, components.loans.list_loans())
    summary = reports.overview(transactions)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total balance", money(summary.total_balance))
    col2.metric(f"Income ({summary.period_days} days)", money(summary.income))
    col3.metric(f"Expenses ({summary.period_days} days)", money(summary.expenses))
    col4.metric("Net change", money(summary.net_change))

    st.metric("Outstanding loans", money(reports.outstanding_loans(loans)))

    series = reports.monthly_series(transactions)
    if series:
        st.markdown("### Income and expenses by month")
        chart = pd.DataFrame(
            [{"month": r.month_key, "Income": float(r.income), "Expenses": float(r.expenses)} for r in series]
        ).set_index("month")
        st.bar_chart(chart)

    st.markdown("### Recent transactions")
    render_transaction_table(transactions[:10])


# =============================================================================
# MEMBERS
# =============================================================================

def render_members_page(components: AppComponents):
    st.title("👥 Members")

    with st.expander("➕ Add member"):
        with st.form("add_member", clear_on_submit=True):
            name = st.text_input("Name *")
            phone = st.text_input("Phone *", placeholder="+254 712 345 678")
            if st.form_submit_button("Save", type="primary"):
                try:
                    member = run_async(components, components.members.add_member(name, phone))
                    st.success(f"✅ {member.name} added")
                except FormValidationError as e:
                    show_form_error(e)

    with st.expander("📥 Import / export CSV"):
        st.download_button(
            "Download template",
            components.members.template_csv(),
            file_name="members_template.csv",
            mime="text/csv",
        )
        uploaded = st.file_uploader("Members CSV", type=["csv"], key="members_csv")
        if uploaded and st.button("Import members"):
            if uploaded.size > get_settings().app.max_csv_upload_size_bytes:
                st.error("That file is too large.")
            else:
                try:
                    imported = run_async(components, components.members.import_csv(uploaded.getvalue()))
                    st.success(f"✅ Imported {len(imported)} members")
                except CsvValidationError as e:
                    show_form_error(e)
        st.download_button(
            "Export members",
            run_async(components, components.members.export_csv()),
            file_name="members.csv",
            mime="text/csv",
        )

    search = st.text_input("🔍 Search by name")
    members = run_async(components, components.members.list_members(search))
    if not members:
        st.info("No members yet.")
        return

    st.dataframe(
        pd.DataFrame([
            {"Name": m.name, "Phone": m.phone, "Joined": m.join_date, "Status": m.status.value}
            for m in members
        ]),
        hide_index=True,
        use_container_width=True,
    )

    st.markdown("### Edit member")
    selected = st.selectbox("Member", members, format_func=lambda m: m.name)
    with st.form("edit_member"):
        name = st.text_input("Name", value=selected.name)
        phone = st.text_input("Phone", value=selected.phone)
        statuses = [s.value for s in MemberStatus]
        status = st.selectbox("Status", statuses, index=statuses.index(selected.status.value))
        col1, col2 = st.columns(2)
        save = col1.form_submit_button("Save changes", type="primary")
        delete = col2.form_submit_button("🗑️ Delete member")

    if save:
        try:
            run_async(components, components.members.edit_member(selected.id, name, phone, status))
            st.rerun()
        except (FormValidationError, StorageError) as e:
            show_form_error(e)
    if delete:
        run_async(components, components.members.delete_member(selected.id))
        st.rerun()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def render_transaction_table(transactions):
    if not transactions:
        st.info("No transactions yet.")
        return
    st.dataframe(
        pd.DataFrame([
            {
                "Date": t.date,
                "Description": t.description,
                "Member": t.member_name or "",
                "Category": t.category.value,
                "Type": t.type.value,
                "Amount": float(t.amount),
            }
            for t in transactions
        ]),
        hide_index=True,
        use_container_width=True,
    )


def render_transactions_page(components: AppComponents):
    st.title("🧾 Transactions")
    members = run_async(components, components.members.active_members())

    tab_record, tab_sms, tab_payouts, tab_csv = st.tabs(
        ["Record", "From M-Pesa SMS", "Payouts", "CSV"]
    )

    with tab_sms:
        sms_text = st.text_area("Paste the M-Pesa SMS")
        if st.button("✨ Parse SMS"):
            with st.spinner("Reading the message..."):
                try:
                    st.session_state.sms_draft = run_async(
                        components, components.transactions.parse_sms(sms_text)
                    )
                    st.success("Draft ready. Check it on the Record tab, then save.")
                except (FormValidationError, AIError) as e:
                    show_form_error(e)

    with tab_record:
        draft = st.session_state.get("sms_draft")
        types = [t.value for t in TransactionType]
        categories = [c.value for c in TransactionCategory]
        member_options = [None] + members
        member_index = 0
        if draft and draft.member_id:
            member_index = next(
                (i for i, m in enumerate(member_options) if m and m.id == draft.member_id), 0
            )

        with st.form("record_transaction"):
            transaction_date = st.date_input("Date *", value=draft.date if draft else date.today())
            description = st.text_input("Description *", value=draft.description if draft else "")
            amount = st.text_input("Amount *", value=str(draft.amount) if draft else "")
            transaction_type = st.selectbox(
                "Type *", types, index=types.index(draft.type.value) if draft else 0
            )
            category = st.selectbox(
                "Category *", categories, index=categories.index(draft.category.value) if draft else 0
            )
            member = st.selectbox(
                "Member (optional)",
                member_options,
                index=member_index,
                format_func=lambda m: "—" if m is None else m.name,
            )
            if draft and draft.transaction_cost:
                st.caption(f"M-Pesa charged {money(draft.transaction_cost)} for this transaction.")
            submitted = st.form_submit_button("Save", type="primary")

        if submitted:
            try:
                run_async(components, components.transactions.record_transaction(
                    transaction_date,
                    description,
                    amount,
                    transaction_type,
                    category,
                    member_id=member.id if member else None,
                ))
                st.session_state.sms_draft = None
                st.success("✅ Transaction saved")
            except FormValidationError as e:
                show_form_error(e)

        search = st.text_input("🔍 Search description, member or category")
        render_transaction_table(
            run_async(components, components.transactions.list_transactions(search))
        )

    with tab_payouts:
        with st.form("record_payout"):
            member = st.selectbox("Member *", members, format_func=lambda m: m.name)
            amount = st.text_input("Amount *")
            payout_date = st.date_input("Date", value=date.today())
            if st.form_submit_button("Record payout", type="primary") and member:
                try:
                    run_async(components, components.transactions.record_payout(
                        member.id, amount, payout_date
                    ))
                    st.success("✅ Payout recorded")
                except (FormValidationError, StorageError) as e:
                    show_form_error(e)
        render_transaction_table(run_async(components, components.transactions.list_payouts()))

    with tab_csv:
        st.markdown(
            "Columns: `date` (YYYY-MM-DD), `description`, `amount`, `type`, "
            "`category` and an optional `memberName`."
        )
        uploaded = st.file_uploader("Transactions CSV", type=["csv"], key="transactions_csv")
        if uploaded and st.button("Import transactions"):
            try:
                imported = run_async(
                    components, components.transactions.import_csv(uploaded.getvalue())
                )
                st.success(f"✅ Imported {len(imported)} transactions")
            except CsvValidationError as e:
                show_form_error(e)
        st.download_button(
            "Export transactions",
            run_async(components, components.transactions.export_csv()),
            file_name="transactions.csv",
            mime="text/csv",
        )


# =============================================================================
# LOANS
# =============================================================================

def render_loans_page(components: AppComponents):
    st.title("🏦 Loans")
    members = run_async(components, components.members.active_members())

    with st.expander("➕ Issue loan"):
        with st.form("issue_loan", clear_on_submit=True):
            member = st.selectbox("Member *", members, format_func=lambda m: m.name)
            principal = st.text_input("Principal *")
            interest_rate = st.text_input("Interest rate (%)", value="0")
            reason = st.text_area("Reason *")
            if st.form_submit_button("Issue loan", type="primary"):
                try:
                    loan = run_async(components, components.loans.issue_loan(
                        member.id if member else None, principal, interest_rate, reason
                    ))
                    st.success(f"✅ Loan issued. Amount due: {money(loan.balance)}")
                except FormValidationError as e:
                    show_form_error(e)

    search = st.text_input("🔍 Search by member")
    loans = run_async(components, components.loans.list_loans(search))
    if not loans:
        st.info("No loans yet.")
        return

    st.dataframe(
        pd.DataFrame([
            {
                "Member": loan.member_name,
                "Issued": loan.issue_date,
                "Principal": float(loan.principal),
                "Interest %": float(loan.interest_rate),
                "Balance": float(loan.balance),
                "Status": loan.status.value,
                "Reason": loan.reason,
            }
            for loan in loans
        ]),
        hide_index=True,
        use_container_width=True,
    )

    st.markdown("### Record repayment")
    with st.form("repayment", clear_on_submit=True):
        loan = st.selectbox(
            "Loan",
            loans,
            format_func=lambda l: f"{l.member_name} · {l.issue_date} · {money(l.balance)}",
        )
        amount = st.text_input("Amount *")
        if st.form_submit_button("Record repayment", type="primary"):
            try:
                updated = run_async(components, components.loans.record_repayment(loan.id, amount))
                st.success(f"✅ Repayment recorded. Balance: {money(updated.balance)}")
            except FormValidationError as e:
                show_form_error(e)


# =============================================================================
# INSURANCE
# =============================================================================

def render_insurance_page(components: AppComponents):
    st.title("🩺 Insurance")

    policies = run_async(components, components.insurance.ensure_default_policies())
    with st.expander("➕ New policy"):
        with st.form("new_policy", clear_on_submit=True):
            name = st.text_input("Policy name *")
            premium = st.text_input("Monthly premium *")
            if st.form_submit_button("Create", type="primary"):
                try:
                    run_async(components, components.insurance.create_policy(name, premium))
                    st.rerun()
                except FormValidationError as e:
                    show_form_error(e)

    policy = st.selectbox(
        "Policy", policies, format_func=lambda p: f"{p.name} ({money(p.monthly_premium)}/month)"
    )
    today = date.today()
    col1, col2 = st.columns(2)
    year = col1.number_input("Year", min_value=2000, max_value=2100, value=today.year, step=1)
    month = col2.selectbox("Month", list(range(1, 13)), index=today.month - 1)
    key = month_key(int(year), int(month))

    stats = run_async(components, components.insurance.monthly_stats(policy.id, int(year), int(month)))
    col1, col2, col3 = st.columns(3)
    col1.metric("Total possible", money(stats.total_possible))
    col2.metric("Collected", money(stats.collected), f"{stats.paid_members}/{stats.active_members} paid")
    col3.metric("Outstanding", money(stats.outstanding))

    if st.button(f"✅ Mark {key} as paid for everyone"):
        writes = run_async(components, components.insurance.mark_month_paid(policy.id, key))
        st.success(f"Marked {len(writes)} members as paid. Waived months were left alone.")
        st.rerun()

    rows = run_async(components, components.insurance.annual_table(policy.id, int(year)))
    if not rows:
        st.info("Add active members to track premiums.")
        return

    st.markdown(f"### {int(year)} overview")
    symbols = {PremiumStatus.PAID: "✅", PremiumStatus.UNPAID: "❌", PremiumStatus.WAIVED: "➖", None: ""}
    st.dataframe(
        pd.DataFrame([
            {
                "Member": row.member.name,
                **{k[-2:]: symbols[status] for k, status in row.months.items()},
                "Progress": row.progress.display,
            }
            for row in rows
        ]),
        hide_index=True,
        use_container_width=True,
    )

    st.markdown(f"### {key}")
    for row in rows:
        current = row.months[key]
        checked = st.checkbox(
            row.member.name,
            value=current == PremiumStatus.PAID,
            disabled=current == PremiumStatus.WAIVED,
            key=f"premium-{policy.id}-{row.member.id}-{key}",
        )
        if checked != (current == PremiumStatus.PAID) and current != PremiumStatus.WAIVED:
            run_async(components, components.insurance.toggle_payment(
                policy.id, row.member.id, key, checked
            ))


# =============================================================================
# MERRY-GO-ROUND
# =============================================================================

def render_schedule_page(components: AppComponents):
    st.title("🔄 Merry-go-round")
    st.markdown(
        f"Each active member contributes {money(get_settings().group.contribution_amount)} a month; "
        "one member takes the whole pot each month."
    )

    if st.button("🎲 Generate new schedule", type="primary"):
        run_async(components, components.schedule.generate())

    items = components.schedule.items
    if not items:
        st.info("No schedule yet. Generate one to draw the payout order.")
        return

    statuses = [s.value for s in PayoutStatus]
    for item in items:
        col1, col2, col3, col4 = st.columns([2, 3, 2, 2])
        col1.markdown(f"**{item.month_label}**")
        col2.markdown(item.member.name)
        col3.markdown(money(item.payout_amount))
        chosen = col4.selectbox(
            "Status",
            statuses,
            index=statuses.index(item.status.value),
            key=f"payout-{item.payout_date}",
            label_visibility="collapsed",
        )
        if chosen != item.status.value:
            run_async(components, components.schedule.set_status(item.payout_date, PayoutStatus(chosen)))


# =============================================================================
# ASSISTANT
# =============================================================================

def render_assistant_page(components: AppComponents):
    st.title("🤖 Assistant")
    st.markdown("The assistant drafts; check everything before you rely on it.")

    tab_constitution, tab_report, tab_summary, tab_calendar = st.tabs(
        ["Constitution", "Member report", "Financial summary", "Calendar"]
    )

    with tab_constitution:
        constitution = st.text_area("Paste the group constitution", height=200)
        question = st.text_input("Your question", placeholder="e.g. What is the fine for lateness?")
        if st.button("Ask", key="ask_constitution"):
            with st.spinner("Reading the constitution..."):
                try:
                    answer = run_async(
                        components, components.assistant.ask_constitution(constitution, question)
                    )
                    st.info(answer.answer)
                except (FormValidationError, AIError) as e:
                    show_form_error(e)

    with tab_report:
        members = run_async(components, components.members.list_members())
        member = st.selectbox("Member", members, format_func=lambda m: m.name, key="report_member")
        if member and st.button("Generate report card"):
            with st.spinner("Writing the report..."):
                try:
                    report = run_async(components, components.assistant.member_report(member.id))
                    st.markdown(report.report)
                except (AIError, StorageError) as e:
                    show_form_error(e)

    with tab_summary:
        if st.button("Summarise the books"):
            with st.spinner("Summarising..."):
                try:
                    summary = run_async(components, components.assistant.financial_summary())
                    st.markdown(summary.summary)
                except AIError as e:
                    show_form_error(e)

    with tab_calendar:
        prompt_text = st.text_input(
            "Describe the event", placeholder="e.g. Monthly meeting every first Saturday"
        )
        if st.button("Draft event"):
            try:
                event = run_async(components, components.assistant.event_from_text(prompt_text))
                st.markdown(f"**{event.title}** on {event.date:%d %B %Y}")
                if event.description:
                    st.markdown(event.description)
                if event.recurrence:
                    st.caption(event.recurrence.describe())
            except AIError as e:
                show_form_error(e)


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Group", "group"),
        ("Application", "app"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    group = get_settings().group
    st.markdown("---")
    st.markdown("### Group")
    st.markdown(f"**Name:** {group.name}")
    st.markdown(f"**Group ID:** `{components.group_id}`")
    st.markdown(f"**Monthly contribution:** {money(group.contribution_amount)}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
