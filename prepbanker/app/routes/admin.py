from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, Response, redirect, render_template, request, url_for

from ..errors import BackendError, FormError, NotFoundError
from ..services import calendar_service, content_service, request_service, user_service
from ..services.auth_service import admin_login_required, redirect_with_toast
from ..services.db_service import get_admin_db

logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/admin")


def _back(endpoint: str, message: str, kind: str = "success", **values):
    return redirect_with_toast(url_for(endpoint, **values), message, kind)


@bp.get("/")
@admin_login_required
def dashboard():
    error = None
    try:
        counts = content_service.dashboard_counts()
    except BackendError:
        counts = {}
        error = "Failed to load dashboard statistics"
    return render_template(
        "admin/dashboard.html",
        page_title="Admin Dashboard",
        page_subtitle="Manage content, requests and users",
        active_page="admin",
        counts=counts,
        error=error,
    )


# PDFs


@bp.get("/pdfs")
@admin_login_required
def pdfs():
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        items = content_service.list_all_pdfs()
    except BackendError:
        items = []
        error = "Failed to load PDFs"
    return render_template(
        "admin/pdfs.html",
        page_title="PDF Management",
        active_page="admin_pdfs",
        pdfs=content_service.search_admin_pdfs(items, q),
        stats=content_service.pdf_stats(items),
        q=q,
        error=error,
    )


def _render_pdf_form(pdf: dict, error: str | None = None, pdf_id: str | None = None):
    return render_template(
        "admin/pdf_form.html",
        page_title="Edit PDF" if pdf_id else "Add PDF",
        active_page="admin_pdfs",
        pdf=pdf,
        pdf_id=pdf_id,
        topics=content_service.PDF_TOPICS,
        error=error,
    )


@bp.route("/pdfs/new", methods=["GET", "POST"])
@admin_login_required
def pdf_new():
    if request.method == "GET":
        return _render_pdf_form({"is_active": True})
    try:
        data = content_service.validate_pdf_form(request.form)
        content_service.save_pdf(data)
    except (FormError, BackendError) as exc:
        return _render_pdf_form(request.form.to_dict(), exc.message)
    return _back("admin.pdfs", "PDF added successfully")


@bp.route("/pdfs/<pdf_id>/edit", methods=["GET", "POST"])
@admin_login_required
def pdf_edit(pdf_id: str):
    if request.method == "GET":
        return _render_pdf_form(content_service.get_pdf(pdf_id, active_only=False), pdf_id=pdf_id)
    try:
        data = content_service.validate_pdf_form(request.form)
        content_service.save_pdf(data, pdf_id)
    except (FormError, BackendError) as exc:
        return _render_pdf_form(request.form.to_dict(), exc.message, pdf_id)
    return _back("admin.pdfs", "PDF updated successfully")


@bp.post("/pdfs/<pdf_id>/delete")
@admin_login_required
def pdf_delete(pdf_id: str):
    try:
        content_service.delete_pdf(pdf_id)
    except BackendError as exc:
        return _back("admin.pdfs", exc.message, "error")
    return _back("admin.pdfs", "PDF deleted successfully")


@bp.post("/pdfs/<pdf_id>/toggle")
@admin_login_required
def pdf_toggle(pdf_id: str):
    try:
        active = content_service.toggle_pdf(content_service.get_pdf(pdf_id, active_only=False))
    except (BackendError, NotFoundError) as exc:
        return _back("admin.pdfs", exc.message, "error")
    return _back("admin.pdfs", f"PDF {'activated' if active else 'deactivated'} successfully")


# Magazines


@bp.get("/magazines")
@admin_login_required
def magazines():
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        items = content_service.list_all_magazines()
    except BackendError:
        items = []
        error = "Failed to load magazines"
    return render_template(
        "admin/magazines.html",
        page_title="Magazine Management",
        active_page="admin_magazines",
        magazines=content_service.search_admin_magazines(items, q),
        stats=content_service.magazine_stats(items),
        q=q,
        error=error,
    )


def _render_magazine_form(magazine: dict, error: str | None = None, magazine_id: str | None = None):
    return render_template(
        "admin/magazine_form.html",
        page_title="Edit Magazine" if magazine_id else "Add Magazine",
        active_page="admin_magazines",
        magazine=magazine,
        magazine_id=magazine_id,
        months=content_service.MONTHS,
        languages=content_service.LANGUAGES,
        error=error,
    )


@bp.route("/magazines/new", methods=["GET", "POST"])
@admin_login_required
def magazine_new():
    if request.method == "GET":
        today = date.today()
        return _render_magazine_form(
            {"month": content_service.MONTHS[today.month - 1], "year": str(today.year), "language": "English", "is_active": True}
        )
    try:
        data = content_service.validate_magazine_form(request.form)
        content_service.save_magazine(data)
    except (FormError, BackendError) as exc:
        return _render_magazine_form(request.form.to_dict(), exc.message)
    return _back("admin.magazines", "Magazine added successfully")


@bp.route("/magazines/<magazine_id>/edit", methods=["GET", "POST"])
@admin_login_required
def magazine_edit(magazine_id: str):
    if request.method == "GET":
        return _render_magazine_form(
            content_service.get_magazine(magazine_id, active_only=False), magazine_id=magazine_id
        )
    try:
        data = content_service.validate_magazine_form(request.form)
        content_service.save_magazine(data, magazine_id)
    except (FormError, BackendError) as exc:
        return _render_magazine_form(request.form.to_dict(), exc.message, magazine_id)
    return _back("admin.magazines", "Magazine updated successfully")


@bp.post("/magazines/<magazine_id>/delete")
@admin_login_required
def magazine_delete(magazine_id: str):
    try:
        content_service.delete_magazine(magazine_id)
    except BackendError as exc:
        return _back("admin.magazines", exc.message, "error")
    return _back("admin.magazines", "Magazine deleted successfully")


@bp.post("/magazines/<magazine_id>/toggle")
@admin_login_required
def magazine_toggle(magazine_id: str):
    try:
        active = content_service.toggle_magazine(content_service.get_magazine(magazine_id, active_only=False))
    except (BackendError, NotFoundError) as exc:
        return _back("admin.magazines", exc.message, "error")
    return _back("admin.magazines", f"Magazine {'activated' if active else 'deactivated'} successfully")


@bp.post("/magazines/<magazine_id>/download")
@admin_login_required
def magazine_download(magazine_id: str):
    try:
        mag = content_service.get_magazine(magazine_id, active_only=False)
    except NotFoundError as exc:
        return _back("admin.magazines", exc.message, "error")
    content_service.record_magazine_download(mag, None, db=get_admin_db())
    return redirect(mag["google_drive_link"])


# Exam calendar


@bp.get("/calendar")
@admin_login_required
def calendar():
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        events = calendar_service.list_all_events()
    except BackendError:
        events = []
        error = "Failed to load exam calendar"
    return render_template(
        "admin/calendar.html",
        page_title="Exam Calendar Management",
        active_page="admin_calendar",
        events=[calendar_service.decorate_event(e) for e in calendar_service.filter_events(events, q)],
        stats=calendar_service.event_stats(events),
        q=q,
        error=error,
    )


def _editable_dates(value) -> list[str]:
    try:
        return calendar_service.parse_date_list(value or [])
    except (ValueError, TypeError):
        logger.warning("Ignoring unreadable exam dates %r", value)
        return []


def _render_event_form(event: dict, error: str | None = None, event_id: str | None = None):
    return render_template(
        "admin/calendar_form.html",
        page_title="Edit Exam Event" if event_id else "Publish Exam Event",
        active_page="admin_calendar",
        event=event,
        event_id=event_id,
        prelims_dates=_editable_dates(event.get("prelims_exam_date")),
        mains_dates=_editable_dates(event.get("mains_exam_date")),
        error=error,
    )


def _posted_event() -> dict:
    out = request.form.to_dict()
    out["prelims_exam_date"] = [d for d in request.form.getlist("prelims_exam_dates") if d.strip()]
    out["mains_exam_date"] = [d for d in request.form.getlist("mains_exam_dates") if d.strip()]
    return out


@bp.route("/calendar/new", methods=["GET", "POST"])
@admin_login_required
def event_new():
    if request.method == "GET":
        return _render_event_form({"is_active": True})
    try:
        data = calendar_service.validate_event_form(request.form)
        calendar_service.save_event(data)
    except (FormError, BackendError) as exc:
        return _render_event_form(_posted_event(), exc.message)
    return _back("admin.calendar", "Event published successfully")


@bp.route("/calendar/<event_id>/edit", methods=["GET", "POST"])
@admin_login_required
def event_edit(event_id: str):
    if request.method == "GET":
        event = calendar_service.get_event(event_id)
        if event is None:
            return _back("admin.calendar", "Event not found", "error")
        return _render_event_form(event, event_id=event_id)
    try:
        data = calendar_service.validate_event_form(request.form)
        calendar_service.save_event(data, event_id)
    except (FormError, BackendError) as exc:
        return _render_event_form(_posted_event(), exc.message, event_id)
    return _back("admin.calendar", "Event updated successfully")


@bp.post("/calendar/<event_id>/delete")
@admin_login_required
def event_delete(event_id: str):
    try:
        calendar_service.delete_event(event_id)
    except BackendError as exc:
        return _back("admin.calendar", exc.message, "error")
    return _back("admin.calendar", "Event deleted successfully")


@bp.post("/calendar/<event_id>/toggle")
@admin_login_required
def event_toggle(event_id: str):
    event = calendar_service.get_event(event_id)
    if event is None:
        return _back("admin.calendar", "Event not found", "error")
    try:
        active = calendar_service.toggle_event(event)
    except BackendError as exc:
        return _back("admin.calendar", exc.message, "error")
    return _back("admin.calendar", f"Event {'activated' if active else 'deactivated'} successfully")


# Requests


@bp.get("/requests")
@admin_login_required
def requests():
    status = (request.args.get("status") or "all").strip()
    if status != "all" and status not in request_service.STATUSES:
        status = "all"
    error = None
    try:
        everything = request_service.list_requests("all")
    except BackendError:
        everything = []
        error = "Failed to load requests"
    shown = everything if status == "all" else [r for r in everything if r.get("status") == status]
    return render_template(
        "admin/requests.html",
        page_title="Request Review",
        active_page="admin_requests",
        requests=shown,
        counts=request_service.status_counts(everything),
        status=status,
        statuses=request_service.STATUSES,
        type_label=request_service.request_type_label,
        error=error,
    )


@bp.post("/requests/<request_pk>/approve")
@admin_login_required
def request_approve(request_pk: str):
    status = request.args.get("status") or "all"
    try:
        request_service.approve_request(request_pk)
    except (FormError, NotFoundError, BackendError) as exc:
        return _back("admin.requests", exc.message, "error", status=status)
    return _back("admin.requests", "Request approved successfully", status=status)


@bp.post("/requests/<request_pk>/respond")
@admin_login_required
def request_respond(request_pk: str):
    status = request.args.get("status") or "all"
    try:
        request_service.respond_to_request(request_pk, request.form.get("admin_response") or "")
    except (FormError, NotFoundError, BackendError) as exc:
        return _back("admin.requests", exc.message, "error", status=status)
    return _back("admin.requests", "Request completed successfully", status=status)


# Users


def _load_users(status: str, q: str) -> list[dict]:
    return user_service.filter_users(user_service.list_users(status), q)


@bp.get("/users")
@admin_login_required
def users():
    status = (request.args.get("status") or "all").strip()
    if status not in ("all", "active", "blocked"):
        status = "all"
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        everyone = user_service.list_users()
    except BackendError:
        everyone = []
        error = "Failed to load users"
    return render_template(
        "admin/users.html",
        page_title="User Management",
        active_page="admin_users",
        users=user_service.filter_users(user_service.with_status(everyone, status), q),
        stats=user_service.user_stats(everyone),
        status=status,
        q=q,
        error=error,
    )


def _toggle_and_report(toggle, key: str):
    try:
        blocked = toggle(key)
    except (FormError, NotFoundError, BackendError) as exc:
        return _back("admin.users", exc.message, "error")
    return _back("admin.users", f"User {'blocked' if blocked else 'unblocked'} successfully")


@bp.post("/users/block")
@admin_login_required
def users_block():
    return _toggle_and_report(user_service.toggle_block, request.form.get("email") or "")


@bp.post("/users/<user_pk>/toggle")
@admin_login_required
def user_toggle(user_pk: str):
    return _toggle_and_report(user_service.toggle_block_by_id, user_pk)


@bp.get("/users/export")
@admin_login_required
def users_export():
    status = (request.args.get("status") or "all").strip()
    q = (request.args.get("q") or "").strip()
    try:
        rows = _load_users(status, q)
    except (FormError, BackendError) as exc:
        return _back("admin.users", exc.message, "error")
    if not rows:
        return _back("admin.users", "No users to export", "error")

    filename = f"users_export_{date.today().isoformat()}.csv"
    logger.info("Successfully exported %d users to CSV", len(rows))
    return Response(
        user_service.users_to_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# Blogs


@bp.get("/blogs")
@admin_login_required
def blogs():
    error = None
    try:
        items = content_service.list_all_blogs()
    except BackendError:
        items = []
        error = "Failed to load blogs"
    return render_template(
        "admin/blogs.html",
        page_title="Blog Management",
        active_page="admin_blogs",
        blogs=items,
        error=error,
    )


def _render_blog_form(blog: dict, error: str | None = None, blog_id: str | None = None):
    tags = blog.get("tags")
    return render_template(
        "admin/blog_form.html",
        page_title="Edit Blog" if blog_id else "New Blog",
        active_page="admin_blogs",
        blog=blog,
        blog_id=blog_id,
        tags_text=", ".join(content_service.split_tags(tags)),
        error=error,
    )


@bp.route("/blogs/new", methods=["GET", "POST"])
@admin_login_required
def blog_new():
    if request.method == "GET":
        return _render_blog_form({"read_time": 5, "is_published": False})
    try:
        data = content_service.validate_blog_form(request.form)
        content_service.save_blog(data)
    except (FormError, BackendError) as exc:
        return _render_blog_form(request.form.to_dict(), exc.message)
    return _back("admin.blogs", "Blog created successfully")


@bp.route("/blogs/<blog_id>/edit", methods=["GET", "POST"])
@admin_login_required
def blog_edit(blog_id: str):
    if request.method == "GET":
        return _render_blog_form(content_service.get_blog(blog_id), blog_id=blog_id)
    try:
        data = content_service.validate_blog_form(request.form)
        content_service.save_blog(data, blog_id)
    except (FormError, BackendError) as exc:
        return _render_blog_form(request.form.to_dict(), exc.message, blog_id)
    return _back("admin.blogs", "Blog updated successfully")


@bp.post("/blogs/<blog_id>/delete")
@admin_login_required
def blog_delete(blog_id: str):
    try:
        content_service.delete_blog(blog_id)
    except BackendError as exc:
        return _back("admin.blogs", exc.message, "error")
    return _back("admin.blogs", "Blog deleted successfully")
