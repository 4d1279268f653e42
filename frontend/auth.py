"""
frontend/auth.py
Session-state authentication helpers for the LifeVault dashboard.

Streamlit reruns the script on every interaction, so every auth key must
exist before any page reads it. init_auth_state() runs at the top of each
rerun and the other helpers are the only writers of these keys.

Helpers take an optional ``ss`` mapping (defaults to st.session_state) so
the state transitions can be exercised with a plain dict.
"""

from typing import Any, Dict, MutableMapping, Optional

import streamlit as st

ADMIN_ROLES = ("admin", "super_admin")

AUTH_KEYS = ("auth_token", "refresh_token", "session_id", "current_user")

# Login flow: phone -> otp -> pin (nominees stop after otp)
LOGIN_STEPS = ("phone", "otp", "pin")


def _state(ss: Optional[MutableMapping[str, Any]] = None) -> MutableMapping[str, Any]:
    return st.session_state if ss is None else ss


def init_auth_state(ss: Optional[MutableMapping[str, Any]] = None) -> None:
    """Ensure auth keys exist. Idempotent."""
    ss = _state(ss)

    for key in AUTH_KEYS:
        ss.setdefault(key, None)
    ss.setdefault("is_authenticated", False)

    ss.setdefault("login_step", "phone")
    ss.setdefault("login_phone", "")
    ss.setdefault("login_user_id", None)
    ss.setdefault("otp_token", None)

    # Keep the flag in sync with the token
    ss["is_authenticated"] = bool(ss["auth_token"])


def set_auth(data: Dict[str, Any], ss: Optional[MutableMapping[str, Any]] = None) -> None:
    """
    Store a successful login, registration or refresh response.

    ``data`` is the backend body: {token, refreshToken, sessionId, user}.
    A refresh response may omit sessionId, in which case the current one is kept.
    """
    ss = _state(ss)

    ss["auth_token"] = data["token"]
    if data.get("refreshToken"):
        ss["refresh_token"] = data["refreshToken"]
    if data.get("sessionId"):
        ss["session_id"] = data["sessionId"]
    if data.get("user"):
        ss["current_user"] = data["user"]
    ss["is_authenticated"] = True
    reset_login_flow(ss)


def clear_auth(ss: Optional[MutableMapping[str, Any]] = None) -> None:
    """Wipe auth state on logout or session expiry. Safe to call repeatedly."""
    ss = _state(ss)
    for key in AUTH_KEYS:
        ss[key] = None
    ss["is_authenticated"] = False
    reset_login_flow(ss)


def start_pin_step(challenge: Dict[str, Any], phone: str, ss: Optional[MutableMapping[str, Any]] = None) -> None:
    """Remember the OTP challenge so the PIN form can finish the login."""
    ss = _state(ss)
    ss["login_step"] = "pin"
    ss["login_phone"] = phone
    ss["login_user_id"] = challenge["userId"]
    ss["otp_token"] = challenge["otpToken"]


def reset_login_flow(ss: Optional[MutableMapping[str, Any]] = None) -> None:
    ss = _state(ss)
    ss["login_step"] = "phone"
    ss["login_user_id"] = None
    ss["otp_token"] = None


def is_authenticated(ss: Optional[MutableMapping[str, Any]] = None) -> bool:
    return bool(_state(ss).get("auth_token"))


def get_current_user(ss: Optional[MutableMapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
    return _state(ss).get("current_user")


def get_role(ss: Optional[MutableMapping[str, Any]] = None) -> Optional[str]:
    user = get_current_user(ss)
    if user and isinstance(user, dict):
        return user.get("role")
    return None


def is_admin(ss: Optional[MutableMapping[str, Any]] = None) -> bool:
    return get_role(ss) in ADMIN_ROLES


def get_auth_header(ss: Optional[MutableMapping[str, Any]] = None) -> Dict[str, str]:
    """{"Authorization": "Bearer <token>"} when logged in, {} otherwise."""
    token = _state(ss).get("auth_token")
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


def require_auth() -> bool:
    """
    Guard for protected pages.

    Usage:
        if not require_auth():
            return
    """
    if not is_authenticated():
        st.warning("⚠️ You must be logged in to access this page.")
        if st.button("Go to Login", type="primary"):
            st.session_state["nav_page"] = "Login"
            st.rerun()
        return False
    return True
