import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import logging
from datetime import date

import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from planner.api import ApiClient
from planner.budget import progress_width, status_level
from planner.config import load_settings
from planner.domain import ROLES
from planner.errors import PlannerError
from planner.events import Event
from planner.guard import (
    ALLOW, LOADING, LOGIN_PATH, REGISTER_PATH, HOME_PATH,
    route, visible_pages,
)
from planner.services import (
    AdminService, ApiKeysService, AuthService, BudgetsService,
    CategoriesService, ReportsService, TransactionsService,
)
from planner.session import SessionManager
from planner.storage import FileTokenStore, new_client_id

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("budget-planner-ui")

st.set_page_config(page_title="Budget Planner", layout="wide")

LANGUAGES = ["en", "pl"]
CURRENCIES = ["USD", "EUR", "PLN", "GBP"]
LEVEL_ICONS = {"ok": "🟢", "warning": "🟠", "over": "🔴"}


def run(coro):
    return asyncio.run(coro)


def on_session_event(event: Event, payload: dict) -> None:
    st.session_state["last_session_event"] = event.name


def token_store(settings) -> FileTokenStore:
    """Token file of this browser, named by the client id in the URL.

    The id survives a reload; two browsers never share a token file.
    """
    client_id = st.query_params.get("client")
    try:
        return FileTokenStore.for_client(settings.token_dir, client_id)
    except ValueError:
        client_id = new_client_id()
        st.query_params["client"] = client_id
        return FileTokenStore.for_client(settings.token_dir, client_id)


def get_session() -> SessionManager:
    """One SessionManager per browser session, created on first render."""
    if "session" not in st.session_state:
        settings = load_settings()
        store = token_store(settings)
        api = ApiClient(settings.api_url, store, settings.timeout)
        session = SessionManager(AuthService(api), store)
        session.subscribe(on_session_event)
        st.session_state.api = api
        st.session_state.session = session
        st.session_state.path = HOME_PATH
    return st.session_state.session


def navigate(path: str) -> None:
    st.session_state.path = path
    st.rerun()


def show_error(action: str, e: PlannerError) -> None:
    logger.warning("%s failed: %s", action, e)
    st.error(f"❌ {action} failed: {getattr(e, 'message', e)}")


def money(value, currency: str) -> str:
    return f"{float(value):,.2f} {currency}"


# ---------------- Public pages ----------------
def login_page(session: SessionManager) -> None:
    st.title("💸 Budget Planner")
    st.caption("Sign in to your account")
    with st.form("login_form"):
        email = st.text_input("Email", placeholder="demo@budget-planner.com")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        try:
            user = run(session.login(email, password))
        except PlannerError as e:
            show_error("Sign in", e)
        else:
            st.success(f"Welcome back, {user.name or user.email}!")
            navigate(HOME_PATH)
    if st.button("Create an account"):
        navigate(REGISTER_PATH)


def register_page(session: SessionManager) -> None:
    st.title("💸 Budget Planner")
    st.caption("Create an account")
    with st.form("register_form"):
        name = st.text_input("Name (optional)")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Register")
    if submitted:
        try:
            run(session.register(email, password, name or None))
        except PlannerError as e:
            show_error("Registration", e)
        else:
            navigate(HOME_PATH)
    if st.button("I already have an account"):
        navigate(LOGIN_PATH)


# ---------------- Protected pages ----------------
def budget_rows(statuses, currency: str) -> pd.DataFrame:
    rows = []
    for s in statuses:
        level = status_level(s)
        rows.append({
            "Category": s.category.name if s.category else "-",
            "Budget": money(s.budget_amount, currency),
            "Spent": money(s.spent_amount, currency),
            "Remaining": money(s.remaining, currency),
            "Used": f"{LEVEL_ICONS[level]} {s.percentage}%",
        })
    return pd.DataFrame(rows)


def dashboard_page(session: SessionManager) -> None:
    api = st.session_state.api
    currency = session.user.currency_code
    today = date.today()
    st.title("🏠 Dashboard")

    try:
        balance = run(TransactionsService(api).get_balance()) or {}
        statuses = run(BudgetsService(api).get_status(today.month, today.year))
        recent = run(TransactionsService(api).get_recent())
    except PlannerError as e:
        show_error("Loading the dashboard", e)
        return

    k1, k2, k3 = st.columns(3)
    with k1:
        st.metric("Income", money(balance.get("totalIncome", 0), currency))
    with k2:
        st.metric("Expenses", money(balance.get("totalExpense", 0), currency))
    with k3:
        st.metric("Balance", money(balance.get("balance", 0), currency))

    if statuses:
        names = [s.category.name if s.category else "-" for s in statuses]
        fig = go.Figure()
        fig.add_trace(go.Bar(x=names, y=[float(s.budget_amount) for s in statuses], name="Budget"))
        fig.add_trace(go.Bar(x=names, y=[float(s.spent_amount) for s in statuses], name="Spent"))
        fig.update_layout(barmode="group", title="Budgets this month", margin=dict(t=40, b=10, l=10, r=10))
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No budgets for this month.")

    st.subheader("🧾 Recent transactions")
    if recent:
        df = pd.DataFrame(recent)
        cols = [c for c in ("date", "type", "amount", "currency", "description") if c in df.columns]
        st.dataframe(df[cols], use_container_width=True)
    else:
        st.info("No transactions yet.")


def edit_transaction(service: TransactionsService, categories, ids) -> None:
    st.subheader("✏️ Edit transaction")
    tx_id = st.selectbox("Transaction", ids)
    try:
        tx = run(service.get_one(tx_id)) or {}
    except PlannerError as e:
        show_error("Loading the transaction", e)
        return

    by_id = {c.id: c for c in categories}
    options = list(by_id)
    current = tx.get("categoryId")
    with st.form(f"edit_tx_{tx_id}"):
        category_id = st.selectbox(
            "Category", options,
            index=options.index(current) if current in options else 0,
            format_func=lambda cid: by_id[cid].name,
        )
        amount = st.number_input("Amount", min_value=0.0, value=float(tx.get("amount", 0)), step=1.0, format="%.2f")
        description = st.text_input("Description", value=tx.get("description") or "")
        save = st.form_submit_button("Save changes")
        delete = st.form_submit_button("Delete")
    if save:
        try:
            run(service.update(tx_id, categoryId=category_id, amount=amount, description=description))
        except PlannerError as e:
            show_error("Updating the transaction", e)
        else:
            st.rerun()
    elif delete:
        try:
            run(service.delete(tx_id))
        except PlannerError as e:
            show_error("Deleting the transaction", e)
        else:
            st.rerun()


def transactions_page(session: SessionManager) -> None:
    api = st.session_state.api
    service = TransactionsService(api)
    st.title("🧾 Transactions")

    col1, col2 = st.columns(2)
    with col1:
        type_filter = st.selectbox("Show", ["All", "EXPENSE", "INCOME"])
    with col2:
        page = st.number_input("Page", min_value=1, value=1, step=1)
    params = {"page": str(page), "limit": "10"}
    if type_filter != "All":
        params["type"] = type_filter
    try:
        result = run(service.get_all(**params)) or {}
        categories = run(CategoriesService(api).get_all())
    except PlannerError as e:
        show_error("Loading transactions", e)
        return

    rows = result.get("data", [])
    meta = result.get("meta", {})
    if rows:
        df = pd.DataFrame(rows)
        cols = [c for c in ("id", "date", "type", "amount", "currency", "description") if c in df.columns]
        st.dataframe(df[cols], use_container_width=True)
        st.caption(f"Page {meta.get('page', page)} of {meta.get('totalPages', 1)} ({meta.get('total', len(rows))} total)")
        edit_transaction(service, categories, [r["id"] for r in rows])
    else:
        st.info("No transactions to display.")

    st.subheader("➕ Add transaction")
    with st.form("transaction_form", clear_on_submit=True):
        tx_type = st.selectbox("Type", ["EXPENSE", "INCOME"])
        matching = [c for c in categories if c.type == tx_type] or categories
        category = st.selectbox("Category", matching, format_func=lambda c: c.name)
        amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
        description = st.text_input("Description (optional)")
        tx_date = st.date_input("Date", value=date.today())
        submitted = st.form_submit_button("Add")
    if submitted and category is not None:
        try:
            run(service.create(
                category_id=category.id,
                type=tx_type,
                amount=amount,
                currency=session.user.currency_code,
                description=description or None,
                date=tx_date.isoformat(),
            ))
        except PlannerError as e:
            show_error("Adding the transaction", e)
        else:
            st.success("✅ Transaction added")
            st.rerun()


def categories_page(session: SessionManager) -> None:
    service = CategoriesService(st.session_state.api)
    st.title("🗂 Categories")
    try:
        categories = run(service.get_all())
    except PlannerError as e:
        show_error("Loading categories", e)
        return

    for c in categories:
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(f"{c.icon} **{c.name}** · {c.type.lower()}")
        with col2:
            if not c.is_default and st.button("Delete", key=f"del_cat_{c.id}"):
                try:
                    run(service.delete(c.id))
                except PlannerError as e:
                    show_error("Deleting the category", e)
                else:
                    st.rerun()
        # default categories belong to the admin
        if c.is_default:
            continue
        with st.expander(f"Edit {c.name}"):
            with st.form(f"edit_cat_{c.id}"):
                new_name = st.text_input("Name", value=c.name)
                new_icon = st.text_input("Icon", value=c.icon)
                new_color = st.color_picker("Color", c.color or "#6366F1")
                saved = st.form_submit_button("Save")
            if saved and new_name:
                try:
                    run(service.update(c.id, name=new_name, icon=new_icon, color=new_color))
                except PlannerError as e:
                    show_error("Updating the category", e)
                else:
                    st.rerun()

    with st.form("category_form", clear_on_submit=True):
        name = st.text_input("Name")
        cat_type = st.selectbox("Type", ["EXPENSE", "INCOME"])
        color = st.color_picker("Color", "#6366F1")
        submitted = st.form_submit_button("Add category")
    if submitted and name:
        try:
            run(service.create(name=name, type=cat_type, color=color))
        except PlannerError as e:
            show_error("Adding the category", e)
        else:
            st.rerun()


def budgets_page(session: SessionManager) -> None:
    api = st.session_state.api
    service = BudgetsService(api)
    currency = session.user.currency_code
    today = date.today()
    st.title("💰 Budgets")

    col1, col2 = st.columns(2)
    with col1:
        month = st.selectbox("Month", list(range(1, 13)), index=today.month - 1)
    with col2:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=today.year, step=1)

    try:
        statuses = run(service.get_status(month, int(year)))
        budgets = run(service.get_all(month=month, year=int(year)))
        categories = run(CategoriesService(api).get_all())
    except PlannerError as e:
        show_error("Loading budgets", e)
        return

    if statuses:
        for s in statuses:
            name = s.category.name if s.category else "-"
            st.metric(
                f"{LEVEL_ICONS[status_level(s)]} {name}",
                f"{money(s.spent_amount, currency)} / {money(s.budget_amount, currency)}",
                f"{money(s.remaining, currency)} remaining" if not s.is_over_budget
                else f"{money(-s.remaining, currency)} over budget",
                delta_color="normal" if not s.is_over_budget else "inverse",
            )
            st.progress(progress_width(s.percentage) / 100)
            if st.button("Delete", key=f"del_budget_{s.id}"):
                try:
                    run(service.delete(s.id))
                except PlannerError as e:
                    show_error("Deleting the budget", e)
                else:
                    st.rerun()
        st.dataframe(budget_rows(statuses, currency), use_container_width=True)
    else:
        st.info("No budgets defined")

    if budgets:
        st.subheader("✏️ Change amount")
        names = {c.id: c.name for c in categories}
        with st.form("budget_amount_form"):
            budget = st.selectbox(
                "Budget", budgets,
                format_func=lambda b: names.get(b.get("categoryId"), b["id"]),
            )
            new_amount = st.number_input("New amount", min_value=0.0, step=10.0, format="%.2f")
            changed = st.form_submit_button("Update")
        if changed and budget is not None:
            try:
                run(service.update(budget["id"], new_amount))
            except PlannerError as e:
                show_error("Updating the budget", e)
            else:
                st.rerun()

    st.subheader("➕ New budget")
    expense_categories = [c for c in categories if c.type == "EXPENSE"]
    with st.form("budget_form", clear_on_submit=True):
        category = st.selectbox("Category", expense_categories, format_func=lambda c: c.name)
        amount = st.number_input("Amount", min_value=0.0, step=10.0, format="%.2f")
        submitted = st.form_submit_button("Save")
    if submitted and category is not None:
        try:
            run(service.create(category.id, amount, month, int(year)))
        except PlannerError as e:
            show_error("Saving the budget", e)
        else:
            st.rerun()


def reports_page(session: SessionManager) -> None:
    service = ReportsService(st.session_state.api)
    today = date.today()
    st.title("📑 Reports")

    col1, col2 = st.columns(2)
    with col1:
        month = st.selectbox("Month", list(range(1, 13)), index=today.month - 1)
    with col2:
        year = int(st.number_input("Year", min_value=2000, max_value=2100, value=today.year, step=1))

    try:
        monthly = run(service.get_monthly(month, year)) or {}
        trend = run(service.get_yearly_trend(year)) or {}
    except PlannerError as e:
        show_error("Loading reports", e)
        return

    by_category = monthly.get("expensesByCategory", [])
    if by_category:
        df_cat = pd.DataFrame(
            {"Category": item["category"]["name"], "Total": item["total"]} for item in by_category
        )
        fig_cat = px.pie(df_cat, values="Total", names="Category", title="Expenses by category")
        st.plotly_chart(fig_cat, use_container_width=True)

    months = trend.get("months", [])
    if months:
        df_trend = pd.DataFrame(months)
        fig_ts = go.Figure()
        fig_ts.add_trace(go.Scatter(x=df_trend["month"], y=df_trend["income"], mode="lines+markers", name="Income"))
        fig_ts.add_trace(go.Scatter(x=df_trend["month"], y=df_trend["expense"], mode="lines+markers", name="Expense"))
        fig_ts.update_layout(title=f"Trend {year}", margin=dict(t=40, b=10, l=10, r=10))
        st.plotly_chart(fig_ts, use_container_width=True)
    if not by_category and not months:
        st.info("Nothing to report for this period.")


def api_keys_page(session: SessionManager) -> None:
    service = ApiKeysService(st.session_state.api)
    st.title("🔑 API Keys")
    try:
        keys = run(service.get_all())
    except PlannerError as e:
        show_error("Loading API keys", e)
        return

    for k in keys:
        col1, col2, col3 = st.columns([3, 1, 1])
        with col1:
            status = "active" if k.get("isActive") else "revoked"
            st.markdown(f"**{k['name']}** · `{k['key']}` · {status} · {k.get('requestsCount', 0)} requests")
        with col2:
            if k.get("isActive") and st.button("Revoke", key=f"revoke_{k['id']}"):
                try:
                    run(service.revoke(k["id"]))
                except PlannerError as e:
                    show_error("Revoking the key", e)
                else:
                    st.rerun()
        with col3:
            if st.button("Delete", key=f"del_key_{k['id']}"):
                try:
                    run(service.delete(k["id"]))
                except PlannerError as e:
                    show_error("Deleting the key", e)
                else:
                    st.rerun()

    with st.form("api_key_form", clear_on_submit=True):
        name = st.text_input("Key name")
        submitted = st.form_submit_button("Create key")
    if submitted and name:
        try:
            created = run(service.create(name))
        except PlannerError as e:
            show_error("Creating the key", e)
        else:
            st.success(f"Key created: `{created['key']}`")


def settings_page(session: SessionManager) -> None:
    user = session.user
    st.title("⚙️ Settings")
    with st.form("settings_form"):
        name = st.text_input("Name", value=user.name)
        language = st.selectbox(
            "Language", LANGUAGES,
            index=LANGUAGES.index(user.language) if user.language in LANGUAGES else 0,
        )
        currency = st.selectbox(
            "Currency", CURRENCIES,
            index=CURRENCIES.index(user.currency_code) if user.currency_code in CURRENCIES else 0,
        )
        submitted = st.form_submit_button("Save")
    if submitted:
        try:
            run(session.save_profile(name=name, language=language, currency_code=currency))
        except PlannerError as e:
            show_error("Updating the profile", e)
        else:
            st.success("✅ Profile saved")


def admin_action(action: str, coro) -> None:
    try:
        run(coro)
    except PlannerError as e:
        show_error(action, e)
    else:
        st.rerun()


def admin_statistics(service: AdminService) -> None:
    stats = run(service.get_statistics()) or {}
    col1, col2, col3 = st.columns(3)
    col1.metric("Users", stats.get("usersCount", 0))
    col2.metric("Transactions", stats.get("transactionsCount", 0))
    col3.metric("Active API keys", stats.get("activeApiKeys", 0))

    recent = stats.get("recentUsers") or []
    if recent:
        st.subheader("Recent users")
        df = pd.DataFrame(recent)
        cols = [c for c in ("email", "name", "role", "createdAt") if c in df.columns]
        st.dataframe(df[cols], use_container_width=True)


def admin_users(service: AdminService, session: SessionManager) -> None:
    page = st.number_input("Page", min_value=1, value=1, step=1, key="admin_users_page")
    users = run(service.get_users(page=int(page))) or {}
    for u in users.get("data", []):
        col1, col2, col3 = st.columns([4, 1, 1])
        blocked = u.get("isBlocked", False)
        with col1:
            st.markdown(f"**{u['email']}** · {u.get('role', '')}{' · blocked' if blocked else ''}")
        # an admin cannot lock themselves out
        if u["id"] == session.user.id:
            continue
        with col2:
            label = "Unblock" if blocked else "Block"
            if st.button(label, key=f"block_{u['id']}"):
                admin_action(f"{label} user", service.unblock_user(u["id"]) if blocked else service.block_user(u["id"]))
        with col3:
            if st.button("Delete", key=f"del_user_{u['id']}"):
                admin_action("Deleting the user", service.delete_user(u["id"]))

    st.subheader("➕ Create user")
    with st.form("admin_user_form", clear_on_submit=True):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        name = st.text_input("Name (optional)")
        role = st.selectbox("Role", ROLES)
        submitted = st.form_submit_button("Create")
    if submitted and email and password:
        admin_action("Creating the user", service.create_user(email, password, name=name, role=role))


def admin_categories(service: AdminService) -> None:
    for c in run(service.get_default_categories()):
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(f"{c.icon} **{c.name}** · {c.type.lower()}")
        with col2:
            if st.button("Delete", key=f"del_default_{c.id}"):
                admin_action("Deleting the category", service.delete_category(c.id))
        with st.expander(f"Edit {c.name}"):
            with st.form(f"edit_default_{c.id}"):
                new_name = st.text_input("Name", value=c.name)
                new_icon = st.text_input("Icon", value=c.icon)
                new_color = st.color_picker("Color", c.color or "#787774")
                saved = st.form_submit_button("Save")
            if saved and new_name:
                admin_action("Updating the category", service.update_category(c.id, name=new_name, icon=new_icon, color=new_color))

    st.subheader("➕ New default category")
    with st.form("admin_category_form", clear_on_submit=True):
        name = st.text_input("Name")
        cat_type = st.selectbox("Type", ["EXPENSE", "INCOME"])
        icon = st.text_input("Icon", value="📦")
        color = st.color_picker("Color", "#787774")
        submitted = st.form_submit_button("Add")
    if submitted and name:
        admin_action("Adding the category", service.create_category(name, cat_type, icon=icon, color=color))


def admin_currencies(service: AdminService) -> None:
    for c in run(service.get_currencies()):
        col1, col2 = st.columns([4, 1])
        active = c.get("isActive", False)
        with col1:
            st.markdown(f"`{c.get('code')}` {c.get('name', '')} {c.get('symbol', '')}{'' if active else ' · inactive'}")
        with col2:
            label = "Deactivate" if active else "Activate"
            if st.button(label, key=f"currency_{c['id']}"):
                admin_action(f"{label} currency", service.update_currency(c["id"], isActive=not active))


def admin_settings(service: AdminService) -> None:
    settings = run(service.get_settings())
    if not settings:
        st.info("No settings defined")
        return
    with st.form("admin_settings_form"):
        values = {key: st.text_input(key, value=str(value)) for key, value in settings.items()}
        submitted = st.form_submit_button("Save settings")
    if submitted:
        admin_action("Saving settings", service.update_settings(values))


def admin_page(session: SessionManager) -> None:
    service = AdminService(st.session_state.api)
    st.title("🛡 Admin")
    tabs = st.tabs(["📊 Statistics", "👥 Users", "🗂 Categories", "💱 Currencies", "⚙️ Settings"])
    sections = [
        ("Loading statistics", lambda: admin_statistics(service)),
        ("Loading users", lambda: admin_users(service, session)),
        ("Loading default categories", lambda: admin_categories(service)),
        ("Loading currencies", lambda: admin_currencies(service)),
        ("Loading settings", lambda: admin_settings(service)),
    ]
    for tab, (action, render) in zip(tabs, sections):
        with tab:
            try:
                render()
            except PlannerError as e:
                show_error(action, e)


PAGE_VIEWS = {
    "/": dashboard_page,
    "/transactions": transactions_page,
    "/categories": categories_page,
    "/budgets": budgets_page,
    "/reports": reports_page,
    "/api-keys": api_keys_page,
    "/settings": settings_page,
    "/admin": admin_page,
}


def sidebar(session: SessionManager) -> None:
    user = session.user
    st.sidebar.markdown(f"### 👤 {user.name or user.email}")
    pages = visible_pages(user)
    paths = [p for p, _ in pages]
    labels = dict(pages)
    current = st.session_state.path if st.session_state.path in paths else HOME_PATH
    choice = st.sidebar.radio("Menu", paths, index=paths.index(current), format_func=labels.get)
    if choice != st.session_state.path:
        navigate(choice)
    if st.sidebar.button("Log out"):
        run(session.logout())
        navigate(LOGIN_PATH)


def main() -> None:
    session = get_session()
    if session.is_loading:
        with st.spinner("Loading..."):
            run(session.bootstrap())
    else:
        run(session.bootstrap())

    decision = route(st.session_state.path, session)
    if decision.kind == LOADING:
        with st.spinner("Loading..."):
            st.stop()
    if decision.kind != ALLOW:
        st.session_state.path = decision.target
        if decision.target != LOGIN_PATH:
            st.rerun()

    path = st.session_state.path
    if path == LOGIN_PATH:
        login_page(session)
    elif path == REGISTER_PATH:
        register_page(session)
    else:
        sidebar(session)
        PAGE_VIEWS[path](session)


main()
