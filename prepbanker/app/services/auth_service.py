from __future__ import annotations

import hmac
import logging
from functools import wraps
from urllib.parse import quote

import httpx
from flask import current_app, redirect, request, session, url_for
from supabase import AuthError
from werkzeug.security import check_password_hash

from ..errors import AuthenticationError, BackendError
from .db_service import get_db

logger = logging.getLogger(__name__)


def get_current_user() -> dict | None:
    user = session.get("user")
    if not isinstance(user, dict) or not user.get("id"):
        return None
    return user


def get_current_user_id() -> str | None:
    user = get_current_user()
    return str(user["id"]) if user else None


def is_admin() -> bool:
    return bool(session.get("admin_auth"))


def get_safe_next_url(default_endpoint: str = "public.home") -> str:
    next_url = (request.args.get("next") or request.form.get("next") or "").strip()
    if next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return url_for(default_endpoint)


def redirect_with_query(url: str, key: str, value: str) -> str:
    sep = "&" if ("?" in url) else "?"
    return f"{url}{sep}{key}={quote(value)}"


def redirect_with_toast(url: str, message: str, kind: str = "success"):
    return redirect(redirect_with_query(url, "error" if kind == "error" else "success", message))


def login_required(message: str = "Please login to continue", return_endpoint: str | None = None):
    """Send anonymous users to the login page.

    GET requests come back to the same URL after login. POST-only views cannot be
    replayed as a GET, so they return to ``return_endpoint`` instead.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if get_current_user() is None:
                target = url_for("auth.login")
                if request.method == "GET":
                    target = redirect_with_query(target, "next", request.full_path.rstrip("?"))
                elif return_endpoint:
                    target = redirect_with_query(target, "next", url_for(return_endpoint))
                return redirect_with_toast(target, message, "error")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def admin_login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_admin():
            return redirect(url_for("auth.admin_login"))
        return fn(*args, **kwargs)

    return wrapper


def _auth_call(action: str, call):
    try:
        return call()
    except AuthError as exc:
        logger.info("Auth backend rejected %s: %s", action, exc.message)
        raise AuthenticationError(exc.message) from exc
    except httpx.HTTPError as exc:
        logger.error("Auth backend unreachable during %s: %s", action, exc)
        raise BackendError(f"Backend unreachable during {action}") from exc


def _user_payload(user) -> dict:
    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": metadata.get("full_name") or "",
    }


def sign_in(email: str, password: str) -> dict:
    db = get_db()
    res = _auth_call("sign in", lambda: db.auth.sign_in_with_password({"email": email, "password": password}))
    if res.user is None or res.session is None:
        raise AuthenticationError("Invalid login credentials")
    return {
        "user": _user_payload(res.user),
        "access_token": res.session.access_token,
        "refresh_token": res.session.refresh_token,
    }


def sign_up(email: str, password: str, full_name: str, mobile_number: str, exam_type: str) -> dict | None:
    db = get_db()
    res = _auth_call(
        "sign up",
        lambda: db.auth.sign_up(
            {
                "email": email,
                "password": password,
                "options": {
                    "data": {
                        "full_name": full_name,
                        "mobile_number": mobile_number,
                        "exam_type": exam_type,
                    }
                },
            }
        ),
    )
    return _user_payload(res.user) if res.user is not None else None


def sign_out() -> None:
    db = get_db()
    try:
        if session.get("access_token") and session.get("refresh_token"):
            db.auth.set_session(session["access_token"], session["refresh_token"])
        db.auth.sign_out()
    except (AuthError, httpx.HTTPError) as exc:
        logger.warning("Sign out did not reach the backend: %s", exc)
    finally:
        session.pop("user", None)
        session.pop("access_token", None)
        session.pop("refresh_token", None)


def start_session(auth: dict) -> None:
    session["user"] = auth["user"]
    session["access_token"] = auth["access_token"]
    session["refresh_token"] = auth["refresh_token"]


def send_password_reset(email: str, redirect_to: str) -> None:
    db = get_db()
    _auth_call("password reset", lambda: db.auth.reset_password_for_email(email, {"redirect_to": redirect_to}))


def update_password(password: str, token_hash: str | None = None) -> None:
    db = get_db()
    if token_hash:
        _auth_call("recovery", lambda: db.auth.verify_otp({"type": "recovery", "token_hash": token_hash}))
    elif session.get("access_token") and session.get("refresh_token"):
        _auth_call("session restore", lambda: db.auth.set_session(session["access_token"], session["refresh_token"]))
    else:
        raise AuthenticationError("Password reset link is invalid or has expired")
    _auth_call("password update", lambda: db.auth.update_user({"password": password}))


def check_admin_credentials(username: str, password: str) -> bool:
    cfg = current_app.config
    expected_user = cfg.get("ADMIN_USERNAME") or ""
    password_hash = cfg.get("ADMIN_PASSWORD_HASH") or ""
    plain_password = cfg.get("ADMIN_PASSWORD") or ""
    if not expected_user or not (password_hash or plain_password):
        return False
    if not hmac.compare_digest(username.encode(), expected_user.encode()):
        return False
    if password_hash:
        return check_password_hash(password_hash, password)
    return hmac.compare_digest(password.encode(), plain_password.encode())
