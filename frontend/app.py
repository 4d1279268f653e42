# frontend/app.py
# LifeVault - asset, nominee and vault dashboard
#
# Run from repo root: streamlit run frontend/app.py
# Or from frontend folder: streamlit run app.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# Import environment config (robust fallback for different run contexts)
try:
    from frontend.config import DEMO_OTP_HINT, ENABLE_DEBUG_UI, ENV, MAX_BATCH_FILES, MAX_UPLOAD_MB, get_api_base_url
except ModuleNotFoundError:
    from config import DEMO_OTP_HINT, ENABLE_DEBUG_UI, ENV, MAX_BATCH_FILES, MAX_UPLOAD_MB, get_api_base_url

try:
    from frontend.auth import (
        clear_auth, get_current_user, get_role, init_auth_state, is_admin,
        is_authenticated, require_auth, reset_login_flow, set_auth, start_pin_step,
    )
except ModuleNotFoundError:
    from auth import (
        clear_auth, get_current_user, get_role, init_auth_state, is_admin,
        is_authenticated, require_auth, reset_login_flow, set_auth, start_pin_step,
    )

try:
    from frontend.api_client import api_request, error_detail
except ModuleNotFoundError:
    from api_client import api_request, error_detail

try:
    from frontend.ui_helpers import (
        allocation_frame, clean_payload, default_page, format_date, format_money, format_pct,
        pages_for_role, records_frame, remaining_allocation, review_options, risk_level, status_badge,
    )
except ModuleNotFoundError:
    from ui_helpers import (
        allocation_frame, clean_payload, default_page, format_date, format_money, format_pct,
        pages_for_role, records_frame, remaining_allocation, review_options, risk_level, status_badge,
    )

# Mirrors of the backend enums (lifevault/models.py)
ASSET_CATEGORIES = ["Bank", "LIC", "PF", "Property", "Stocks", "Crypto", "Mutual Fund", "Fixed Deposit",
                    "Insurance", "Other"]
ASSET_STATUSES = ["Active", "Inactive", "Matured", "Closed"]
NOMINEE_RELATIONS = ["Spouse", "Child", "Parent", "Sibling", "Other"]
TRADING_STATUSES = ["Active", "Inactive", "Suspended", "Closed"]
VAULT_STATUSES = ["pending", "under_review", "verified", "rejected"]
DOCUMENT_TYPES = ["aadhaar", "pan", "death_certificate", "bank_statement"]
AUDIT_RESOURCES = ["USER", "ASSET", "NOMINEE", "VAULT_REQUEST", "DOCUMENT", "TRADING_ACCOUNT", "AUTH"]
AUDIT_ACTIONS = ["CREATE", "READ", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "PIN_VERIFY", "OTP_SEND",
                 "OTP_VERIFY", "VAULT_REQUEST", "VAULT_APPROVE", "VAULT_REJECT", "FILE_UPLOAD", "FILE_DOWNLOAD"]

st.set_page_config(page_title="LifeVault", page_icon="🔐", layout="wide")


def init_state() -> None:
    ss = st.session_state

    # Auth keys first so every page sees them
    init_auth_state()

    # Set in main() from auth state
    ss.setdefault("nav_page", None)

    ss.setdefault("login_requires_pin", True)
    ss.setdefault("last_validation", None)
    ss.setdefault("_backend_status", "unknown")
    ss.setdefault("_backend_last_ping_time", 0.0)


init_state()

ss = st.session_state


def go_to(page: str) -> None:
    """Single navigation entry point: set nav_page and rerun."""
    st.session_state["nav_page"] = page
    st.rerun()


# --------------------------------------------------------------------
# API helpers
# --------------------------------------------------------------------


def handle_api_error(resp: Optional[requests.Response], operation: str = "operation") -> None:
    """Show a friendly message for a failed call. None means api_request already reported it."""
    if resp is None:
        return
    if resp.status_code == 403:
        st.error(f"🔒 **Permission denied:** {error_detail(resp, 'Insufficient permissions')}")
    elif resp.status_code == 404:
        st.error(f"Not found: {error_detail(resp, operation)}")
    elif resp.status_code == 409:
        st.warning(f"⚠️ {error_detail(resp, 'Conflict')}")
    elif resp.status_code in (400, 413, 415, 422):
        st.error(f"❌ {error_detail(resp, 'Invalid request')}")
    else:
        st.error(f"Backend error {resp.status_code} on {operation}")


def fetch_json(path: str, params: Optional[Dict[str, Any]] = None, operation: str = "") -> Optional[Any]:
    resp = api_request("GET", path, params=params)
    if resp is None:
        return None
    if resp.status_code != 200:
        handle_api_error(resp, operation or path)
        return None
    return resp.json()


def fetch_items(path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    data = fetch_json(path, params=params)
    if not data:
        return []
    return data.get("items", [])


def upload_file(uploaded) -> Optional[Dict[str, Any]]:
    """POST a Streamlit UploadedFile to /api/upload."""
    resp = api_request(
        "POST",
        "/api/upload",
        files=[("file", (uploaded.name, uploaded.getvalue(), uploaded.type or "application/octet-stream"))],
        timeout=60,
    )
    if resp is None:
        return None
    if resp.status_code != 200:
        handle_api_error(resp, "upload")
        return None
    return resp.json()


def validate_file(uploaded, document_type: Optional[str]) -> Optional[Dict[str, Any]]:
    resp = api_request(
        "POST",
        "/api/documents/validate",
        files=[("document", (uploaded.name, uploaded.getvalue(), uploaded.type or "application/octet-stream"))],
        data={"documentType": document_type} if document_type else None,
        timeout=90,
    )
    if resp is None:
        return None
    if resp.status_code != 200:
        handle_api_error(resp, "document validation")
        return None
    return resp.json()


def check_backend() -> None:
    resp = api_request("GET", "/api/health", timeout=5)
    if resp is not None and resp.status_code == 200 and resp.json().get("status") == "OK":
        ss["_backend_status"] = "ok"
    else:
        ss["_backend_status"] = "unreachable"


# --------------------------------------------------------------------
# Layout
# --------------------------------------------------------------------


def render_sidebar() -> None:
    with st.sidebar:
        st.markdown("## 🔐 LifeVault")

        if ss.get("_backend_status") == "unreachable":
            st.error("⚠️ Backend unreachable")
            if st.button("🔄 Retry Connection", use_container_width=True, key="retry_connection_btn"):
                check_backend()
                st.rerun()
        elif ss.get("_backend_status") == "ok":
            st.success("✅ Connected")

        user = get_current_user()
        if user:
            st.info(f"Logged in as: **{user.get('name', 'User')}** ({user.get('role', '').replace('_', ' ').title()})")
        else:
            st.caption("Not logged in")

        st.markdown("---")
        pages = pages_for_role(get_role()) if is_authenticated() else ["Login", "Register"]
        current = ss.get("nav_page")
        selected = st.radio(
            "Navigate",
            pages,
            index=pages.index(current) if current in pages else 0,
        )
        if selected != current:
            go_to(selected)

        if is_authenticated():
            st.markdown("---")
            if st.button("Logout", use_container_width=True, key="logout_btn"):
                logout()

        if ENABLE_DEBUG_UI:
            st.markdown("---")
            try:
                st.caption(f"**API:** {get_api_base_url()}")
            except (RuntimeError, ValueError) as e:
                st.error(f"⚠️ API config error: {str(e)[:60]}")
            st.caption(f"**Environment:** {ENV}")
            st.caption(f"Auth token present: {'Yes' if ss.get('auth_token') else 'No'}")


def logout() -> None:
    if ss.get("session_id"):
        api_request("POST", "/api/auth/logout",
                    json={"sessionId": ss["session_id"], "refreshToken": ss.get("refresh_token")}, timeout=10)
    clear_auth()
    print("[AUTH] Logged out")
    go_to("Login")


def _finish_login(data: Dict[str, Any]) -> None:
    set_auth(data)
    role = (data.get("user") or {}).get("role")
    print(f"[ROUTING] login complete role={role}")
    go_to(default_page(role))


# --------------------------------------------------------------------
# Public pages
# --------------------------------------------------------------------


def render_login() -> None:
    st.header("Login")
    step = ss.get("login_step", "phone")

    if step == "phone":
        with st.form("login_phone_form"):
            phone = st.text_input("Mobile number", value=ss.get("login_phone", ""), placeholder="+91 98765 43210")
            submitted = st.form_submit_button("Send OTP", type="primary")

        if submitted:
            if not phone.strip():
                st.error("Please enter your mobile number.")
                return
            resp = api_request("POST", "/api/auth/send-otp", json={"phone": phone}, timeout=10)
            if resp is None:
                return
            if resp.status_code != 200:
                handle_api_error(resp, "send OTP")
                return
            body = resp.json()
            ss["login_phone"] = phone
            ss["login_user_id"] = body.get("userId")
            ss["login_requires_pin"] = body.get("requiresPin", True)
            ss["login_step"] = "otp"
            st.rerun()

        st.caption("New to LifeVault?")
        if st.button("Create an account"):
            go_to("Register")
        return

    if step == "otp":
        st.caption(f"OTP sent to **{ss.get('login_phone')}**")
        if DEMO_OTP_HINT:
            st.info(f"Demo mode: OTP {DEMO_OTP_HINT} is accepted.")
        with st.form("login_otp_form"):
            otp = st.text_input("OTP", max_chars=6)
            submitted = st.form_submit_button("Verify OTP", type="primary")

        if submitted:
            resp = api_request("POST", "/api/auth/verify-otp",
                               json={"phone": ss.get("login_phone"), "otp": otp.strip()}, timeout=10)
            if resp is None:
                return
            if resp.status_code != 200:
                handle_api_error(resp, "verify OTP")
                return
            body = resp.json()
            if body.get("token"):
                # Nominees are logged in after the OTP
                _finish_login(body)
            else:
                start_pin_step(body, ss.get("login_phone", ""))
                st.rerun()

        if st.button("Use a different number"):
            reset_login_flow()
            st.rerun()
        return

    # step == "pin"
    with st.form("login_pin_form"):
        pin = st.text_input("PIN", type="password", max_chars=4)
        submitted = st.form_submit_button("Login", type="primary")

    if submitted:
        resp = api_request(
            "POST",
            "/api/auth/verify-pin",
            json={"userId": ss.get("login_user_id"), "pin": pin, "otpToken": ss.get("otp_token")},
            timeout=10,
        )
        if resp is None:
            return
        if resp.status_code == 401:
            st.error("PIN step expired. Please request a new OTP.")
            reset_login_flow()
            return
        if resp.status_code != 200:
            handle_api_error(resp, "verify PIN")
            return
        _finish_login(resp.json())

    if st.button("Start over"):
        reset_login_flow()
        st.rerun()


def render_register() -> None:
    st.header("Create your LifeVault account")

    role = st.radio("I am registering as", ["owner", "nominee"],
                    format_func=lambda r: "Asset owner" if r == "owner" else "Nominee", horizontal=True)
    if role == "nominee":
        st.caption("Use the mobile number or email the owner saved for you.")

    with st.form("register_form"):
        name = st.text_input("Full name")
        phone = st.text_input("Mobile number")
        email = st.text_input("Email")
        address = st.text_area("Address (optional)")
        pin = st.text_input("4-digit PIN", type="password", max_chars=4) if role == "owner" else ""
        submitted = st.form_submit_button("Register", type="primary")

    if not submitted:
        return
    if not name or not phone or not email:
        st.error("Please fill in name, mobile number and email.")
        return
    if role == "owner" and not pin:
        st.error("Owners must set a PIN.")
        return

    payload = clean_payload({"name": name, "phone": phone, "email": email, "address": address,
                             "pin": pin, "role": role})
    resp = api_request("POST", "/api/auth/register", json=payload, timeout=10)
    if resp is None:
        return
    if resp.status_code != 201:
        handle_api_error(resp, "register")
        return
    st.success("Registration successful!")
    _finish_login(resp.json())


# --------------------------------------------------------------------
# Dashboard
# --------------------------------------------------------------------


def render_recent_activity(activity: List[Dict[str, Any]]) -> None:
    st.markdown("### Recent activity")
    if not activity:
        st.caption("No activity yet.")
        return
    df = records_frame(activity, {"createdAt": "When", "action": "Action", "resource": "Resource",
                                  "description": "Description"})
    df["When"] = df["When"].map(format_date)
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_dashboard() -> None:
    if not require_auth():
        return

    st.markdown("## 📊 Dashboard")
    stats = fetch_json("/api/dashboard/stats", operation="dashboard")
    if stats is None:
        return

    role = stats.get("role")
    if role == "owner":
        render_owner_dashboard(stats)
    elif role == "nominee":
        render_nominee_dashboard(stats)
    else:
        render_admin_dashboard(stats)

    render_recent_activity(stats.get("recentActivity", []))


def render_owner_dashboard(stats: Dict[str, Any]) -> None:
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Net worth", format_money(stats.get("netWorth")))
    col2.metric("Assets", stats.get("totalAssets", 0), help=format_money(stats.get("totalValue")))
    col3.metric("Trading accounts", stats.get("totalTradingAccounts", 0),
                help=format_money(stats.get("tradingValue")))
    col4.metric("Nominees", stats.get("totalNominees", 0), help=f"{format_pct(stats.get('totalAllocation'))} allocated")

    allocation = stats.get("assetAllocation", [])
    left, right = st.columns(2)
    with left:
        st.markdown("### Asset allocation")
        if allocation:
            st.bar_chart(allocation_frame(allocation)["amount"])
        else:
            st.info("No assets yet. Add your first asset on the Assets page.")
    with right:
        st.markdown("### Nominee distribution")
        distribution = stats.get("nomineeDistribution", [])
        if distribution:
            df = records_frame(distribution, {"name": "Nominee", "allocation": "Share %", "amount": "Amount"})
            df["Amount"] = df["Amount"].map(format_money)
            st.dataframe(df, use_container_width=True, hide_index=True)
        else:
            st.info("No nominees yet.")

    if stats.get("totalAllocation", 0) < 100 and stats.get("totalNominees"):
        st.warning(f"Only {format_pct(stats.get('totalAllocation'))} of your estate is allocated to nominees.")


def render_nominee_dashboard(stats: Dict[str, Any]) -> None:
    requests_summary = stats.get("vaultRequests", {})
    col1, col2, col3 = st.columns(3)
    col1.metric("Linked owners", stats.get("linkedOwners", 0))
    col2.metric("Vault requests", requests_summary.get("total", 0))
    col3.metric("Accessible value", format_money(stats.get("accessibleValue")),
                help=f"{stats.get('accessibleAssets', 0)} holdings")

    st.markdown("### Your nominations")
    nominations = stats.get("nominations", [])
    if not nominations:
        st.info("No owner has named you as a nominee with this phone number or email.")
    else:
        df = records_frame(nominations, {"ownerName": "Owner", "relation": "Relation",
                                         "allocationPercentage": "Share %"})
        st.dataframe(df, use_container_width=True, hide_index=True)

    st.markdown("### Request status")
    cols = st.columns(4)
    for col, (key, status) in zip(cols, [("pending", "pending"), ("underReview", "under_review"),
                                         ("verified", "verified"), ("rejected", "rejected")]):
        col.metric(status_badge(status), requests_summary.get(key, 0))


def render_admin_dashboard(stats: Dict[str, Any]) -> None:
    admin_stats = stats.get("adminStats", {})
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Requests", admin_stats.get("totalRequests", 0))
    col2.metric("Pending", admin_stats.get("pendingRequests", 0))
    col3.metric("Under review", admin_stats.get("underReviewRequests", 0))
    col4.metric("Approved", admin_stats.get("approvedRequests", 0))

    left, right = st.columns(2)
    with left:
        st.markdown("### Users by role")
        users = stats.get("users", {})
        if users:
            st.bar_chart(pd.Series(users, name="users"))
    with right:
        st.markdown("### Documents")
        docs = stats.get("documents", {})
        st.metric("Validated", docs.get("total", 0))
        st.caption(f"Valid: {docs.get('valid', 0)} | Invalid: {docs.get('invalid', 0)}")


# --------------------------------------------------------------------
# Owner records
# --------------------------------------------------------------------


def render_assets() -> None:
    if not require_auth():
        return

    st.markdown("## 📦 Assets")

    col1, col2 = st.columns(2)
    category = col1.selectbox("Category", ["All"] + ASSET_CATEGORIES, key="asset_filter_category")
    search = col2.text_input("Search institution or notes", key="asset_filter_q")
    params = clean_payload({"category": None if category == "All" else category, "q": search.strip()})

    data = fetch_json("/api/assets", params=params, operation="assets")
    if data is None:
        return
    assets = data.get("items", [])

    st.markdown(f"### Your assets ({data.get('total', 0)})")
    if not assets:
        st.info("No assets yet. Add one below.")
    else:
        df = records_frame(assets, {"category": "Category", "institution": "Institution",
                                    "accountNumber": "Account", "currentValue": "Value", "status": "Status",
                                    "nominee": "Nominee", "maturityDate": "Maturity"})
        df["Value"] = df["Value"].map(format_money)
        st.dataframe(df, use_container_width=True, hide_index=True)

    with st.expander("➕ Add asset", expanded=not assets):
        with st.form("asset_create_form", clear_on_submit=True):
            c1, c2 = st.columns(2)
            new_category = c1.selectbox("Category", ASSET_CATEGORIES)
            institution = c2.text_input("Institution")
            account_number = c1.text_input("Account / policy number")
            value = c2.number_input("Current value (₹)", min_value=0.0, step=1000.0)
            status = c1.selectbox("Status", ASSET_STATUSES)
            maturity = c2.date_input("Maturity date", value=None)
            nominee = c1.text_input("Nominee (as registered with the institution)")
            notes = st.text_area("Notes")
            submitted = st.form_submit_button("Create asset", type="primary")

        if submitted:
            payload = clean_payload({
                "category": new_category,
                "institution": institution,
                "accountNumber": account_number,
                "currentValue": value,
                "status": status,
                "maturityDate": maturity.isoformat() if maturity else None,
                "nominee": nominee,
                "notes": notes,
            })
            resp = api_request("POST", "/api/assets", json=payload)
            if resp is not None and resp.status_code == 201:
                st.success("Asset created.")
                st.rerun()
            handle_api_error(resp, "create asset")

    if not assets:
        return

    st.markdown("### Manage asset")
    by_id = {a["id"]: a for a in assets}
    selected_id = st.selectbox(
        "Select asset",
        options=[None] + list(by_id),
        format_func=lambda x: "-- Select --" if x is None else f"{by_id[x]['institution']} ({by_id[x]['category']})",
        key="asset_selected_id",
    )
    if not selected_id:
        return

    asset = by_id[selected_id]
    with st.form(f"asset_edit_{selected_id}"):
        c1, c2 = st.columns(2)
        value = c1.number_input("Current value (₹)", min_value=0.0, step=1000.0,
                                value=float(asset.get("currentValue") or 0))
        status = c2.selectbox("Status", ASSET_STATUSES, index=ASSET_STATUSES.index(asset["status"])
                              if asset.get("status") in ASSET_STATUSES else 0)
        notes = st.text_area("Notes", value=asset.get("notes") or "")
        save = st.form_submit_button("Save changes")

    if save:
        resp = api_request("PUT", f"/api/assets/{selected_id}",
                           json={"currentValue": value, "status": status, "notes": notes})
        if resp is not None and resp.status_code == 200:
            st.success("Asset updated.")
            st.rerun()
        handle_api_error(resp, "update asset")

    if st.button("🗑️ Delete asset", key=f"asset_delete_{selected_id}"):
        resp = api_request("DELETE", f"/api/assets/{selected_id}")
        if resp is not None and resp.status_code == 204:
            st.success("Asset deleted.")
            st.rerun()
        handle_api_error(resp, "delete asset")


def render_nominees() -> None:
    if not require_auth():
        return

    st.markdown("## 👪 Nominees")

    summary = fetch_json("/api/nominees/summary", operation="nominee summary")
    nominees = fetch_items("/api/nominees", params={"limit": 200})
    if summary:
        col1, col2, col3 = st.columns(3)
        col1.metric("Nominees", summary.get("totalNominees", 0))
        col2.metric("Allocated", format_pct(summary.get("totalAllocation")))
        col3.metric("Unallocated", format_pct(summary.get("unallocated")))

    if nominees:
        df = records_frame(nominees, {"name": "Name", "relation": "Relation", "phone": "Phone",
                                      "email": "Email", "allocationPercentage": "Share %",
                                      "isExecutor": "Executor", "isBackup": "Backup"})
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.info("No nominees yet. Add the people who should inherit your assets.")

    available = remaining_allocation(nominees)
    with st.expander("➕ Add nominee", expanded=not nominees):
        if available <= 0:
            st.warning("All 100% is already allocated. Reduce an existing share first.")
        with st.form("nominee_create_form", clear_on_submit=True):
            c1, c2 = st.columns(2)
            name = c1.text_input("Name")
            relation = c2.selectbox("Relation", NOMINEE_RELATIONS)
            phone = c1.text_input("Mobile number")
            email = c2.text_input("Email")
            allocation = c1.number_input("Share %", min_value=0.0, max_value=100.0, value=min(available, 100.0))
            id_proof_type = c2.selectbox("ID proof", ["", "Aadhaar", "PAN", "Passport"])
            id_proof_number = c1.text_input("ID proof number")
            is_executor = c2.checkbox("Executor")
            is_backup = c2.checkbox("Backup nominee")
            address = st.text_area("Address")
            submitted = st.form_submit_button("Add nominee", type="primary")

        if submitted:
            payload = clean_payload({
                "name": name,
                "relation": relation,
                "phone": phone,
                "email": email,
                "allocationPercentage": allocation,
                "isExecutor": is_executor,
                "isBackup": is_backup,
                "address": address,
                "idProofType": id_proof_type,
                "idProofNumber": id_proof_number,
            })
            resp = api_request("POST", "/api/nominees", json=payload)
            if resp is not None and resp.status_code == 201:
                st.success("Nominee added.")
                st.rerun()
            handle_api_error(resp, "add nominee")

    if not nominees:
        return

    st.markdown("### Manage nominee")
    by_id = {n["id"]: n for n in nominees}
    selected_id = st.selectbox(
        "Select nominee",
        options=[None] + list(by_id),
        format_func=lambda x: "-- Select --" if x is None else f"{by_id[x]['name']} ({by_id[x]['relation']})",
        key="nominee_selected_id",
    )
    if not selected_id:
        return

    nominee = by_id[selected_id]
    limit = remaining_allocation(nominees, exclude_id=selected_id)
    with st.form(f"nominee_edit_{selected_id}"):
        allocation = st.number_input(f"Share % (up to {limit:g})", min_value=0.0, max_value=100.0,
                                     value=float(nominee.get("allocationPercentage") or 0))
        phone = st.text_input("Mobile number", value=nominee.get("phone", ""))
        email = st.text_input("Email", value=nominee.get("email", ""))
        save = st.form_submit_button("Save changes")

    if save:
        resp = api_request("PUT", f"/api/nominees/{selected_id}",
                           json={"allocationPercentage": allocation, "phone": phone, "email": email})
        if resp is not None and resp.status_code == 200:
            st.success("Nominee updated.")
            st.rerun()
        handle_api_error(resp, "update nominee")

    if st.button("🗑️ Remove nominee", key=f"nominee_delete_{selected_id}"):
        resp = api_request("DELETE", f"/api/nominees/{selected_id}")
        if resp is not None and resp.status_code == 204:
            st.success("Nominee removed.")
            st.rerun()
        handle_api_error(resp, "remove nominee")


def render_trading_accounts() -> None:
    if not require_auth():
        return

    st.markdown("## 📈 Trading Accounts")

    accounts = fetch_items("/api/trading-accounts")
    nominees = fetch_items("/api/nominees", params={"limit": 200})
    nominee_names = {n["id"]: f"{n['name']} ({n['relation']})" for n in nominees}

    if accounts:
        df = records_frame(accounts, {"brokerName": "Broker", "accountNumber": "Client ID",
                                      "dematAccountNumber": "Demat", "currentValue": "Value",
                                      "status": "Status", "nominee": "Nominee", "openedDate": "Opened"})
        df["Value"] = df["Value"].map(format_money)
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.info("No trading accounts yet.")

    with st.expander("➕ Add trading account", expanded=not accounts):
        with st.form("trading_create_form", clear_on_submit=True):
            c1, c2 = st.columns(2)
            broker = c1.text_input("Broker")
            account_number = c2.text_input("Client ID")
            demat = c1.text_input("Demat account number")
            value = c2.number_input("Current value (₹)", min_value=0.0, step=1000.0)
            nominee_id = c1.selectbox("Nominee", [None] + list(nominee_names),
                                      format_func=lambda x: "None" if x is None else nominee_names[x])
            opened = c2.date_input("Opened on", value=None)
            notes = st.text_area("Notes")
            submitted = st.form_submit_button("Create account", type="primary")

        if submitted:
            payload = clean_payload({
                "brokerName": broker,
                "accountNumber": account_number,
                "dematAccountNumber": demat,
                "currentValue": value,
                "nomineeId": nominee_id,
                "openedDate": opened.isoformat() if opened else None,
                "notes": notes,
            })
            resp = api_request("POST", "/api/trading-accounts", json=payload)
            if resp is not None and resp.status_code == 201:
                st.success("Trading account created.")
                st.rerun()
            handle_api_error(resp, "create trading account")

    if not accounts:
        return

    st.markdown("### Manage account")
    by_id = {a["id"]: a for a in accounts}
    selected_id = st.selectbox(
        "Select account",
        options=[None] + list(by_id),
        format_func=lambda x: "-- Select --" if x is None else f"{by_id[x]['brokerName']} ({by_id[x]['accountNumber']})",
        key="trading_selected_id",
    )
    if not selected_id:
        return

    account = by_id[selected_id]
    options = [None] + list(nominee_names)
    with st.form(f"trading_edit_{selected_id}"):
        value = st.number_input("Current value (₹)", min_value=0.0, step=1000.0,
                                value=float(account.get("currentValue") or 0))
        status = st.selectbox("Status", TRADING_STATUSES, index=TRADING_STATUSES.index(account["status"])
                              if account.get("status") in TRADING_STATUSES else 0)
        nominee_id = st.selectbox("Nominee", options,
                                  index=options.index(account.get("nomineeId")) if account.get("nomineeId") in options else 0,
                                  format_func=lambda x: "None" if x is None else nominee_names[x])
        save = st.form_submit_button("Save changes")

    if save:
        resp = api_request("PUT", f"/api/trading-accounts/{selected_id}",
                           json={"currentValue": value, "status": status, "nomineeId": nominee_id})
        if resp is not None and resp.status_code == 200:
            st.success("Trading account updated.")
            st.rerun()
        handle_api_error(resp, "update trading account")

    if st.button("🗑️ Delete account", key=f"trading_delete_{selected_id}"):
        resp = api_request("DELETE", f"/api/trading-accounts/{selected_id}")
        if resp is not None and resp.status_code == 204:
            st.success("Trading account deleted.")
            st.rerun()
        handle_api_error(resp, "delete trading account")


# --------------------------------------------------------------------
# Vault
# --------------------------------------------------------------------


def render_vault_table(items: List[Dict[str, Any]]) -> None:
    df = records_frame(items, {"createdAt": "Filed", "ownerName": "Owner", "nomineeName": "Claimant",
                               "relationToDeceased": "Relation", "status": "Status", "adminNotes": "Notes"})
    df["Filed"] = df["Filed"].map(format_date)
    df["Status"] = df["Status"].map(status_badge)
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_vault() -> None:
    if not require_auth():
        return

    st.markdown("## 🗝️ Vault Requests")
    role = get_role()
    if role == "nominee":
        render_nominee_vault()
    elif is_admin():
        render_admin_vault()
    else:
        st.caption("Claims filed by your nominees. An administrator reviews each one.")
        items = fetch_items("/api/vault/requests")
        if items:
            render_vault_table(items)
        else:
            st.info("No vault requests have been filed against your account.")


def render_nominee_vault() -> None:
    items = fetch_items("/api/vault/requests")
    if items:
        render_vault_table(items)

    stats = fetch_json("/api/dashboard/stats") or {}
    nominations = {n["nomineeId"]: n for n in stats.get("nominations", [])}

    with st.expander("📝 File a vault request", expanded=not items):
        if not nominations:
            st.info("No owner has named you as a nominee with this phone number or email.")
        else:
            user = get_current_user() or {}
            with st.form("vault_create_form", clear_on_submit=True):
                nominee_id = st.selectbox(
                    "Nomination",
                    list(nominations),
                    format_func=lambda x: f"{nominations[x]['ownerName']} ({nominations[x]['relation']}, "
                                          f"{nominations[x]['allocationPercentage']:g}%)",
                )
                relation = st.text_input("Your relation to the deceased")
                phone = st.text_input("Contact number", value=user.get("phone", ""))
                email = st.text_input("Contact email", value=user.get("email", ""))
                certificate = st.file_uploader("Death certificate (PDF, JPG or PNG)", type=["pdf", "jpg", "jpeg", "png"])
                submitted = st.form_submit_button("Submit request", type="primary")

            if submitted:
                payload = {"nomineeId": nominee_id, "relationToDeceased": relation, "phoneNumber": phone,
                           "email": email}
                if certificate is not None:
                    uploaded = upload_file(certificate)
                    if uploaded is None:
                        return
                    payload["deathCertificateUrl"] = uploaded["url"]
                    validation = validate_file(certificate, "death_certificate")
                    if validation:
                        payload["documentValidationId"] = validation["documentId"]
                        if not validation["validation"]["isValid"]:
                            st.warning("The certificate did not pass automatic checks. An admin will review it.")
                resp = api_request("POST", "/api/vault/requests", json=payload)
                if resp is not None and resp.status_code == 201:
                    st.success("Request submitted. You will be notified once it is reviewed.")
                    st.rerun()
                handle_api_error(resp, "submit vault request")

    for item in items:
        if item["status"] == "pending":
            if st.button(f"Withdraw request for {item.get('ownerName') or 'owner'}", key=f"withdraw_{item['id']}"):
                resp = api_request("DELETE", f"/api/vault/requests/{item['id']}")
                if resp is not None and resp.status_code == 204:
                    st.success("Request withdrawn.")
                    st.rerun()
                handle_api_error(resp, "withdraw request")
        elif item["status"] == "verified":
            with st.expander(f"🔓 Vault of {item.get('ownerName') or 'owner'}"):
                render_vault_contents(item["id"])


def render_vault_contents(request_id: str) -> None:
    contents = fetch_json(f"/api/vault/requests/{request_id}/contents", operation="vault contents")
    if not contents:
        return
    col1, col2, col3 = st.columns(3)
    col1.metric("Estate value", format_money(contents.get("netWorth")))
    col2.metric("Your share", format_pct(contents.get("allocationPercentage")))
    col3.metric("Your amount", format_money(contents.get("allocatedAmount")))

    assets = contents.get("assets", [])
    if assets:
        st.markdown("**Assets**")
        df = records_frame(assets, {"category": "Category", "institution": "Institution",
                                    "accountNumber": "Account", "currentValue": "Value"})
        df["Value"] = df["Value"].map(format_money)
        st.dataframe(df, use_container_width=True, hide_index=True)
    trading = contents.get("tradingAccounts", [])
    if trading:
        st.markdown("**Trading accounts**")
        df = records_frame(trading, {"brokerName": "Broker", "accountNumber": "Client ID",
                                     "dematAccountNumber": "Demat", "currentValue": "Value"})
        df["Value"] = df["Value"].map(format_money)
        st.dataframe(df, use_container_width=True, hide_index=True)


def render_admin_vault() -> None:
    status_filter = st.selectbox("Status", ["All"] + VAULT_STATUSES, format_func=lambda s: s if s == "All" else status_badge(s),
                                 key="vault_status_filter")
    params = {} if status_filter == "All" else {"status": status_filter}
    items = fetch_items("/api/vault/requests", params=params)
    if not items:
        st.info("No vault requests.")
        return
    render_vault_table(items)

    reviewable = {i["id"]: i for i in items if review_options(i["status"])}
    if not reviewable:
        return

    st.markdown("### Review request")
    selected_id = st.selectbox(
        "Select request",
        options=list(reviewable),
        format_func=lambda x: f"{reviewable[x]['nomineeName']} → {reviewable[x].get('ownerName') or 'owner'} "
                              f"({status_badge(reviewable[x]['status'])})",
        key="vault_review_id",
    )
    item = reviewable[selected_id]
    st.caption(f"Contact: {item['phoneNumber']} | {item['email']}")
    if item.get("deathCertificateUrl"):
        st.caption(f"Death certificate: {item['deathCertificateUrl']}")

    with st.form(f"vault_review_{selected_id}"):
        new_status = st.selectbox("New status", review_options(item["status"]), format_func=status_badge)
        notes = st.text_area("Admin notes (required to reject)")
        submitted = st.form_submit_button("Apply", type="primary")

    if submitted:
        resp = api_request("PUT", f"/api/vault/requests/{selected_id}",
                           json=clean_payload({"status": new_status, "adminNotes": notes}))
        if resp is not None and resp.status_code == 200:
            st.success(f"Request marked {status_badge(new_status)}.")
            st.rerun()
        handle_api_error(resp, "review request")


# --------------------------------------------------------------------
# Documents
# --------------------------------------------------------------------


def render_validation(validation: Dict[str, Any]) -> None:
    if validation.get("isValid"):
        st.success(f"✅ Valid {validation.get('documentType') or 'document'} "
                   f"(confidence {validation.get('confidence', 0):.0%})")
    else:
        st.error(f"❌ {validation.get('status', 'invalid').title()}")

    fraud = validation.get("fraudDetection", {})
    col1, col2, col3 = st.columns(3)
    col1.metric("Type", validation.get("documentType") or "unknown")
    col2.metric("Fraud risk", f"{fraud.get('riskScore', 0)} ({risk_level(fraud.get('riskScore'))})")
    col3.metric("Duplicate", "Yes" if validation.get("duplicateDetection", {}).get("isDuplicate") else "No")

    for error in validation.get("errors", []):
        st.error(error)
    for warning in validation.get("warnings", []):
        st.warning(warning)
    for reason in fraud.get("reasons", []):
        st.caption(f"⚠️ {reason}")
    for tip in validation.get("recommendations", []):
        st.caption(f"💡 {tip}")


def render_documents() -> None:
    if not require_auth():
        return

    st.markdown("## 📄 Documents")
    tab_validate, tab_batch, tab_history = st.tabs(["Validate", "Batch", "History"])

    with tab_validate:
        st.caption(f"PDF, JPG or PNG up to {MAX_UPLOAD_MB} MB.")
        with st.form("document_validate_form"):
            document_type = st.selectbox("Expected type", [None] + DOCUMENT_TYPES,
                                         format_func=lambda t: "Detect automatically" if t is None else t)
            uploaded = st.file_uploader("Document", type=["pdf", "jpg", "jpeg", "png"])
            submitted = st.form_submit_button("Validate", type="primary")
        if submitted:
            if uploaded is None:
                st.error("Choose a file first.")
            else:
                with st.spinner("Validating..."):
                    result = validate_file(uploaded, document_type)
                if result:
                    ss["last_validation"] = result["validation"]
        if ss.get("last_validation"):
            render_validation(ss["last_validation"])

    with tab_batch:
        with st.form("document_batch_form"):
            files = st.file_uploader(f"Up to {MAX_BATCH_FILES} documents", type=["pdf", "jpg", "jpeg", "png"],
                                     accept_multiple_files=True)
            submitted = st.form_submit_button("Validate all")
        if submitted and files:
            resp = api_request(
                "POST",
                "/api/documents/validate-batch",
                files=[("documents", (f.name, f.getvalue(), f.type or "application/octet-stream")) for f in files],
                timeout=180,
            )
            if resp is not None and resp.status_code == 200:
                body = resp.json()
                summary = body.get("summary", {})
                st.info(f"{summary.get('validDocuments', 0)} of {summary.get('totalDocuments', 0)} documents valid")
                rows = [{"File": r["fileName"], "Valid": r["validation"].get("isValid"),
                         "Type": r["validation"].get("documentType"),
                         "Risk": r["validation"].get("fraudDetection", {}).get("riskScore")}
                        for r in body.get("results", [])]
                st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
            else:
                handle_api_error(resp, "batch validation")

    with tab_history:
        params = {"all": "true"} if is_admin() else None
        stats = (fetch_json("/api/documents/stats", params=params) or {}).get("stats", {})
        if stats:
            col1, col2, col3 = st.columns(3)
            col1.metric("Documents", stats.get("totalDocuments", 0))
            col2.metric("Valid", stats.get("validDocuments", 0))
            col3.metric("Invalid", stats.get("invalidDocuments", 0))
            risk = stats.get("fraudRiskDistribution", {})
            if any(risk.values()):
                st.bar_chart(pd.Series(risk, name="documents"))

        history = (fetch_json("/api/documents/history", params=params) or {}).get("validations", [])
        if history:
            df = records_frame(history, {"createdAt": "When", "fileName": "File", "documentType": "Type",
                                         "validationStatus": "Status", "confidenceScore": "Confidence",
                                         "fraudRiskScore": "Risk", "isDuplicate": "Duplicate"})
            df["When"] = df["When"].map(format_date)
            st.dataframe(df, use_container_width=True, hide_index=True)
        else:
            st.caption("No documents validated yet.")


# --------------------------------------------------------------------
# Admin
# --------------------------------------------------------------------


def render_admin() -> None:
    if not require_auth():
        return
    if not is_admin():
        st.warning("⚠️ Administrators only.")
        return

    st.markdown("## 🛡️ Administration")
    tab_users, tab_audit = st.tabs(["Users", "Audit log"])

    with tab_users:
        role_filter = st.selectbox("Role", ["All", "owner", "nominee", "admin", "super_admin"], key="admin_role_filter")
        params = {} if role_filter == "All" else {"role": role_filter}
        data = fetch_json("/api/admin/users", params=params, operation="users")
        users = data.get("items", []) if data else []
        if users:
            df = records_frame(users, {"name": "Name", "phone": "Phone", "email": "Email", "role": "Role",
                                       "isActive": "Active", "lastLoginAt": "Last login"})
            df["Last login"] = df["Last login"].map(format_date)
            st.dataframe(df, use_container_width=True, hide_index=True)

            me = (get_current_user() or {}).get("id")
            others = {u["id"]: u for u in users if u["id"] != me}
            if others:
                selected_id = st.selectbox("Change status of", list(others),
                                           format_func=lambda x: f"{others[x]['name']} ({others[x]['role']})",
                                           key="admin_status_user")
                target = others[selected_id]
                label = "Deactivate" if target.get("isActive") else "Activate"
                if st.button(label, key=f"admin_toggle_{selected_id}"):
                    resp = api_request("PUT", f"/api/admin/users/{selected_id}/status",
                                       json={"isActive": not target.get("isActive")})
                    if resp is not None and resp.status_code == 200:
                        st.success(f"{target['name']} updated.")
                        st.rerun()
                    handle_api_error(resp, "update user status")

        if get_role() == "super_admin":
            with st.expander("➕ Create admin"):
                with st.form("admin_create_form", clear_on_submit=True):
                    name = st.text_input("Name")
                    phone = st.text_input("Mobile number")
                    email = st.text_input("Email")
                    pin = st.text_input("PIN", type="password", max_chars=4)
                    submitted = st.form_submit_button("Create admin", type="primary")
                if submitted:
                    resp = api_request("POST", "/api/admin/create",
                                       json={"name": name, "phone": phone, "email": email, "pin": pin})
                    if resp is not None and resp.status_code == 201:
                        st.success("Admin created.")
                        st.rerun()
                    handle_api_error(resp, "create admin")

    with tab_audit:
        col1, col2 = st.columns(2)
        resource = col1.selectbox("Resource", ["All"] + AUDIT_RESOURCES, key="audit_resource")
        action = col2.selectbox("Action", ["All"] + AUDIT_ACTIONS, key="audit_action")
        params = clean_payload({"resource": None if resource == "All" else resource,
                                "action": None if action == "All" else action, "limit": 100})
        data = fetch_json("/api/admin/audit-logs", params=params, operation="audit logs")
        logs = data.get("logs", []) if data else []
        if logs:
            st.caption(f"Showing {len(logs)} of {data.get('total', 0)}")
            df = records_frame(logs, {"createdAt": "When", "userName": "User", "action": "Action",
                                      "resource": "Resource", "description": "Description",
                                      "ipAddress": "IP"})
            st.dataframe(df, use_container_width=True, hide_index=True)
        else:
            st.caption("No audit entries.")


# --------------------------------------------------------------------
# Profile
# --------------------------------------------------------------------


def render_profile() -> None:
    if not require_auth():
        return

    st.markdown("## 👤 Profile")
    me = fetch_json("/api/auth/me", operation="profile")
    if not me:
        return

    st.caption(f"{me['phone']} | {me['role'].replace('_', ' ').title()} | member since {format_date(me.get('createdAt'))}")
    with st.form("profile_form"):
        name = st.text_input("Name", value=me.get("name", ""))
        email = st.text_input("Email", value=me.get("email", ""))
        address = st.text_area("Address", value=me.get("address") or "")
        pin = st.text_input("New PIN (leave blank to keep)", type="password", max_chars=4) if me["role"] != "nominee" else ""
        submitted = st.form_submit_button("Save", type="primary")

    if submitted:
        resp = api_request("PUT", "/api/auth/me",
                           json=clean_payload({"name": name, "email": email, "address": address, "pin": pin}))
        if resp is not None and resp.status_code == 200:
            ss["current_user"] = resp.json()
            st.success("Profile updated.")
            st.rerun()
        handle_api_error(resp, "update profile")


PAGE_RENDERERS = {
    "Login": render_login,
    "Register": render_register,
    "Dashboard": render_dashboard,
    "Assets": render_assets,
    "Nominees": render_nominees,
    "Trading Accounts": render_trading_accounts,
    "Vault": render_vault,
    "Documents": render_documents,
    "Admin": render_admin,
    "Profile": render_profile,
}


def main() -> None:
    init_auth_state()

    # Logged-out users always land on Login
    if not ss.get("nav_page"):
        ss["nav_page"] = default_page(get_role()) if is_authenticated() else "Login"

    if ss.get("_backend_status") == "unknown":
        check_backend()

    page = ss.get("nav_page", "Login")
    allowed = pages_for_role(get_role()) if is_authenticated() else ["Login", "Register"]
    if page not in allowed:
        page = allowed[0]
        ss["nav_page"] = page

    # No tokens or PII
    print(f"[ROUTING] page={page} | token_present={is_authenticated()} | role={get_role()}")

    render_sidebar()
    PAGE_RENDERERS[page]()


if __name__ == "__main__":
    main()
