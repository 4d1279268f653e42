"""
frontend/api_client.py
Centralized API client for all LifeVault backend requests.

This module ensures:
1. Protected calls always carry the Authorization header
2. A 401 triggers one refresh-token rotation and one retry
3. The backend base URL comes from frontend.config only
"""

import time
from typing import Any, Dict, List, Literal, Optional, Tuple

import requests
import streamlit as st

# Import config (robust fallback for different run contexts)
try:
    from frontend.config import IS_DEV, get_api_base_url
except ModuleNotFoundError:
    from config import IS_DEV, get_api_base_url

try:
    from frontend.auth import clear_auth, get_auth_header, set_auth
except ModuleNotFoundError:
    from auth import clear_auth, get_auth_header, set_auth


__all__ = ["api_request", "get_api_base_url", "is_public_endpoint", "error_detail"]

PUBLIC_PATHS = (
    "/api/health",
    "/api/auth/register",
    "/api/auth/send-otp",
    "/api/auth/verify-otp",
    "/api/auth/verify-pin",
    "/api/auth/refresh",
)

# (field name, (filename, bytes, content type))
UploadFiles = List[Tuple[str, Tuple[str, bytes, str]]]


def is_public_endpoint(path: str) -> bool:
    """True for endpoints that must be called without a bearer token."""
    return path.split("?", 1)[0] in PUBLIC_PATHS


def error_detail(resp: Optional[requests.Response], default: str = "Request failed") -> str:
    """Pull the FastAPI ``detail`` out of an error response."""
    if resp is None:
        return default
    try:
        body = resp.json()
    except ValueError:
        return f"{default} (HTTP {resp.status_code})"

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list) and detail:
        # Validation errors: [{"loc": [...], "msg": "..."}]
        first = detail[0]
        if isinstance(first, dict):
            loc = ".".join(str(p) for p in first.get("loc", [])[1:])
            msg = first.get("msg", default)
            return f"{loc}: {msg}" if loc else msg
    return f"{default} (HTTP {resp.status_code})"


def api_request(
    method: Literal["GET", "POST", "PUT", "DELETE"],
    path: str,
    json: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    files: Optional[UploadFiles] = None,
    data: Optional[Dict[str, Any]] = None,
    timeout: int = 20,
    _retry: bool = True,
) -> Optional[requests.Response]:
    """
    Make an API request with auth header attachment and error handling.

    This is the ONLY function that should make backend API calls.

    Args:
        method: HTTP method
        path: API path, e.g. "/api/assets"
        json: JSON body for POST/PUT
        params: query parameters
        files: multipart files for uploads (sent with ``data`` as form fields)
        timeout: seconds
        _retry: internal guard so a refreshed request is retried once only

    Returns:
        The response (any status), or None when the backend could not be reached.
        Does not raise.
    """
    try:
        base_url = get_api_base_url()
    except (RuntimeError, ValueError) as e:
        st.error(f"⚙️ Configuration error: {str(e)}")
        return None

    url = f"{base_url}{path}"
    headers = {"Accept": "application/json"}

    if not is_public_endpoint(path):
        auth_headers = get_auth_header()
        if not auth_headers:
            st.error("🔒 Authentication required. Please log in.")
            return None
        headers.update(auth_headers)

    try:
        if files is not None:
            resp = requests.request(method, url, headers=headers, params=params, files=files, data=data,
                                    timeout=timeout)
        else:
            resp = requests.request(method, url, headers=headers, params=params, json=json, timeout=timeout)

        if resp.status_code == 401 and _retry and not is_public_endpoint(path):
            if IS_DEV:
                print(f"[API] 401 on {path}, attempting token refresh...")
            if _try_refresh_token():
                return api_request(method, path, json=json, params=params, files=files, data=data,
                                   timeout=timeout, _retry=False)
            _handle_session_expired()
            return None

        if resp.status_code == 403 and IS_DEV:
            print(f"[API] 403 Forbidden on {path}")

        _update_backend_status("ok")
        return resp

    except requests.exceptions.Timeout:
        if IS_DEV:
            print(f"[API] Timeout on {method} {path}")
        st.error(f"⏱️ Request timed out after {timeout}s. Please try again.")
        _update_backend_status("timeout")
        return None

    except requests.exceptions.ConnectionError:
        if IS_DEV:
            print(f"[API] Connection error on {method} {path}")
        st.error(f"🔌 Cannot connect to backend at {base_url}. Please check your connection.")
        _update_backend_status("connection_error")
        return None

    except requests.exceptions.RequestException as e:
        error_msg = str(e)
        if "bearer" in error_msg.lower() or "authorization" in error_msg.lower():
            error_msg = "Authentication error (details hidden)"
        if IS_DEV:
            print(f"[API] Unexpected error on {method} {path}: {error_msg}")
        st.error(f"❌ Unexpected error: {error_msg[:100]}")
        _update_backend_status("error")
        return None


def _try_refresh_token() -> bool:
    """Rotate the refresh token. Never logs token values."""
    ss = st.session_state
    session_id = ss.get("session_id")
    refresh_token = ss.get("refresh_token")

    if not session_id or not refresh_token:
        if IS_DEV:
            print("[API] Cannot refresh: missing session_id or refresh_token")
        return False

    try:
        resp = requests.post(
            f"{get_api_base_url()}/api/auth/refresh",
            json={"sessionId": session_id, "refreshToken": refresh_token},
            timeout=10,
        )
    except (requests.exceptions.RequestException, RuntimeError, ValueError) as e:
        if IS_DEV:
            print(f"[API] Token refresh error: {type(e).__name__}")
        return False

    if resp.status_code != 200:
        if IS_DEV:
            print(f"[API] Token refresh failed: HTTP {resp.status_code}")
        return False

    body = resp.json()
    if not body.get("token"):
        if IS_DEV:
            print("[API] Token refresh response missing token")
        return False

    set_auth(body)
    if IS_DEV:
        print("[API] Token refresh successful")
    return True


def _handle_session_expired() -> None:
    st.warning("🔒 Your session has expired. Please log in again.")
    clear_auth()
    st.session_state["nav_page"] = "Login"
    st.rerun()


def _update_backend_status(status: str) -> None:
    ss = st.session_state
    ss["_backend_status"] = status
    ss["_backend_last_ping_time"] = time.time()
