from __future__ import annotations

import logging

from flask import Blueprint, redirect, render_template, request, session, url_for

from ..errors import AuthenticationError, BackendError
from ..services import user_service
from ..services.auth_service import (
    check_admin_credentials,
    get_current_user,
    get_safe_next_url,
    is_admin,
    redirect_with_toast,
    send_password_reset,
    sign_in,
    sign_out,
    sign_up,
    start_session,
    update_password,
)

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)


@bp.app_context_processor
def inject_user():
    return {"user": get_current_user(), "is_admin": is_admin()}


@bp.get("/login")
def login():
    if get_current_user() is not None:
        return redirect(url_for("public.home"))
    return render_template("login.html", error=None, form={})


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip()
    password = request.form.get("password") or ""
    form = {"email": email}
    if not email or not password:
        return render_template("login.html", error="Please fill in email and password", form=form)

    try:
        auth = sign_in(email, password)
    except AuthenticationError as exc:
        return render_template("login.html", error=f"Problem during login: {exc.message}", form=form)
    except BackendError:
        return render_template("login.html", error="Login error", form=form)

    start_session(auth)
    try:
        blocked = user_service.is_blocked(email)
    except BackendError:
        sign_out()
        return render_template(
            "login.html",
            error="Error checking user status. Please try again later.",
            form=form,
        )

    if blocked:
        logger.info("Blocked user %s attempted to log in", email)
        sign_out()
        return redirect(url_for("auth.blocked"))

    return redirect_with_toast(get_safe_next_url("public.home"), "Successfully logged in!")


@bp.get("/signup")
def signup():
    if get_current_user() is not None:
        return redirect(url_for("public.home"))
    return render_template("signup.html", error=None, form={}, exam_choices=user_service.EXAM_CHOICES)


@bp.post("/signup")
def signup_post():
    form = {k: (request.form.get(k) or "").strip() for k in ("full_name", "email", "mobile_number", "exam_type")}
    password = request.form.get("password") or ""
    confirm_password = request.form.get("confirm_password") or ""
    agree_to_terms = request.form.get("agree_to_terms") in ("on", "true", "1")
    exam_type = form["exam_type"] or user_service.EXAM_CHOICES[0]

    def _fail(message: str):
        return render_template("signup.html", error=message, form=form, exam_choices=user_service.EXAM_CHOICES)

    if not form["full_name"] or not form["email"] or not form["mobile_number"] or not password or not confirm_password:
        return _fail("Please fill all fields")
    if password != confirm_password:
        return _fail("Password does not match")
    if not agree_to_terms:
        return _fail("Please accept the terms and conditions")
    if exam_type not in user_service.EXAM_CHOICES:
        return _fail("Please select the exam you are preparing for")

    try:
        auth_user = sign_up(form["email"], password, form["full_name"], form["mobile_number"], exam_type)
    except AuthenticationError as exc:
        return _fail(f"Problem during signup: {exc.message}")
    except BackendError:
        return _fail("Signup error")

    try:
        user_service.create_profile(
            auth_user["id"] if auth_user else None,
            form["full_name"],
            form["email"],
            form["mobile_number"],
            exam_type,
        )
    except BackendError:
        logger.exception("Auth account created for %s but profile insert failed", form["email"])
        return redirect_with_toast(url_for("public.home"), "Account created but error saving profile data", "error")

    return redirect_with_toast(
        url_for("public.home"),
        "Account created! Please check your email for verification (also check spam folder)",
    )


@bp.get("/logout")
def logout():
    sign_out()
    return redirect_with_toast(url_for("public.home"), "Successfully logged out")


@bp.get("/blocked")
def blocked():
    return render_template("blocked.html", page_title="Account blocked")


@bp.route("/forgot-password", methods=["GET", "POST"])
def forgot_password():
    if request.method == "GET":
        return render_template("forgot_password.html", error=None, email="")

    email = (request.form.get("email") or "").strip()
    if not email:
        return render_template("forgot_password.html", error="Please enter your email address", email=email)
    try:
        send_password_reset(email, url_for("auth.reset_password", _external=True))
    except (AuthenticationError, BackendError) as exc:
        return render_template("forgot_password.html", error=f"Error: {exc.message}", email=email)
    return redirect_with_toast(url_for("public.home"), "Password reset link sent to your email!")


@bp.route("/reset-password", methods=["GET", "POST"])
def reset_password():
    token_hash = (request.values.get("token_hash") or "").strip()
    if request.method == "GET":
        return render_template("reset_password.html", error=None, token_hash=token_hash)

    password = request.form.get("password") or ""
    confirm_password = request.form.get("confirm_password") or ""
    if not password:
        return render_template("reset_password.html", error="Please enter a new password", token_hash=token_hash)
    if password != confirm_password:
        return render_template("reset_password.html", error="Password does not match", token_hash=token_hash)

    try:
        update_password(password, token_hash or None)
    except AuthenticationError as exc:
        return render_template("reset_password.html", error=exc.message, token_hash=token_hash)
    except BackendError:
        return render_template("reset_password.html", error="Error updating password", token_hash=token_hash)
    return redirect_with_toast(url_for("public.home"), "Password updated successfully!")


@bp.get("/admin/login")
def admin_login():
    if is_admin():
        return redirect(url_for("admin.dashboard"))
    return render_template("admin/login.html", error=None)


@bp.post("/admin/login")
def admin_login_post():
    username = (request.form.get("username") or "").strip()
    password = request.form.get("password") or ""
    if not username or not password:
        return render_template("admin/login.html", error="Please enter username and password.")
    if not check_admin_credentials(username, password):
        logger.warning("Failed admin login for %r", username)
        return render_template("admin/login.html", error="Invalid username or password")

    session["admin_auth"] = True
    return redirect_with_toast(url_for("admin.dashboard"), "Successfully logged in!")


@bp.get("/admin/logout")
def admin_logout():
    session.pop("admin_auth", None)
    return redirect_with_toast(url_for("public.home"), "Successfully logged out")
