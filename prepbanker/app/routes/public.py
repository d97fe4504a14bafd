from __future__ import annotations

import logging

from flask import Blueprint, redirect, render_template, request, url_for

from ..errors import BackendError, FormError, NotFoundError
from ..services import calendar_service, content_service, request_service
from ..services.auth_service import (
    get_current_user,
    get_current_user_id,
    login_required,
    redirect_with_toast,
)

logger = logging.getLogger(__name__)

bp = Blueprint("public", __name__)

HOME_CARDS = [
    ("public.pdfs", "Download PDFs", "Free banking exam study materials", "blue"),
    ("public.magazine", "Current Affairs Magazines", "Monthly current affairs updates", "green"),
    ("public.calendar", "Exam Calendars", "Important exam dates and notifications", "purple"),
    ("public.request_form", "Request Form", "Request materials and give suggestions", "orange"),
]


@bp.get("/")
def home():
    return render_template(
        "home.html",
        page_title="Banking Exam Preparation",
        page_subtitle="Free PDFs, current affairs magazines and exam dates in one place",
        active_page="home",
        cards=HOME_CARDS,
    )


@bp.get("/pdfs")
def pdfs():
    topic = (request.args.get("topic") or "All").strip()
    q = (request.args.get("q") or "").strip()
    if topic != "All" and topic not in content_service.PDF_TOPICS:
        topic = "All"

    error = None
    try:
        items = content_service.list_active_pdfs()
    except BackendError:
        items = []
        error = "Failed to load PDFs"

    return render_template(
        "pdfs.html",
        page_title="Study PDFs",
        page_subtitle="Free banking exam study materials",
        active_page="pdfs",
        pdfs=content_service.filter_pdfs(items, topic, q),
        topics=["All", *content_service.PDF_TOPICS],
        selected_topic=topic,
        q=q,
        topic_image=content_service.topic_image_path,
        error=error,
    )


@bp.get("/pdfs/<pdf_id>/preview")
@login_required("Please login to preview PDFs")
def pdf_preview(pdf_id: str):
    pdf = content_service.get_pdf(pdf_id)
    return render_template(
        "pdf_preview.html",
        page_title=pdf.get("title") or "PDF preview",
        active_page="pdfs",
        pdf=pdf,
        preview_url=pdf.get("preview_link") or pdf.get("google_drive_link"),
    )


@bp.post("/pdfs/<pdf_id>/download")
@login_required("Please login to download PDFs", return_endpoint="public.pdfs")
def pdf_download(pdf_id: str):
    try:
        pdf = content_service.get_pdf(pdf_id)
    except NotFoundError as exc:
        return redirect_with_toast(url_for("public.pdfs"), exc.message, "error")
    content_service.record_pdf_download(pdf, get_current_user_id(), request.headers.get("User-Agent", ""))
    logger.info("PDF %s downloaded by %s", pdf_id, get_current_user_id())
    return redirect(pdf["google_drive_link"])


@bp.get("/magazine")
def magazine():
    month = (request.args.get("month") or "").strip()
    error = None
    try:
        items = content_service.list_active_magazines()
    except BackendError:
        items = []
        error = "Failed to load magazines"

    months = content_service.available_months(items)
    if month and month not in months:
        month = ""
    groups = content_service.group_editions(content_service.magazines_for_month(items, month))
    return render_template(
        "magazine.html",
        page_title="Current Affairs Magazines",
        page_subtitle="Monthly current affairs in English and Hindi",
        active_page="magazine",
        months=months,
        selected_month=month or (months[0] if months else ""),
        groups=groups,
        languages=content_service.LANGUAGES,
        error=error,
    )


@bp.get("/magazine/<magazine_id>/preview")
@login_required("Please login to preview magazines")
def magazine_preview(magazine_id: str):
    mag = content_service.get_magazine(magazine_id)
    return render_template(
        "magazine_preview.html",
        page_title=mag.get("title") or "Magazine preview",
        active_page="magazine",
        magazine=mag,
        preview_url=mag.get("preview_link") or mag.get("google_drive_link"),
    )


@bp.post("/magazine/<magazine_id>/download")
@login_required("Please login to download magazines", return_endpoint="public.magazine")
def magazine_download(magazine_id: str):
    try:
        mag = content_service.get_magazine(magazine_id)
    except NotFoundError as exc:
        return redirect_with_toast(url_for("public.magazine"), exc.message, "error")
    content_service.record_magazine_download(mag, get_current_user_id())
    return redirect(mag["google_drive_link"])


@bp.get("/calendar")
def calendar():
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        events = calendar_service.list_active_events()
    except BackendError:
        events = []
        error = "Failed to load exam calendar"

    return render_template(
        "calendar.html",
        page_title="Exam Calendar",
        page_subtitle="Form deadlines and exam dates",
        active_page="calendar",
        events=[calendar_service.decorate_event(e) for e in calendar_service.filter_events(events, q)],
        summary=calendar_service.deadline_summary(events),
        q=q,
        error=error,
    )


def _render_request_form(form: dict, error: str | None = None, status: int = 200):
    return (
        render_template(
            "request.html",
            page_title="Request & Feedback",
            page_subtitle="Ask for study material or tell us how to improve",
            active_page="request",
            form=form,
            request_types=request_service.REQUEST_TYPES,
            exam_types=request_service.EXAM_TYPES,
            error=error,
        ),
        status,
    )


@bp.get("/request")
def request_form():
    user = get_current_user() or {}
    form = {
        "name": user.get("full_name") or "",
        "email": user.get("email") or "",
        "request_type": "pdf_request",
        "exam_type": "SBI PO",
    }
    return _render_request_form(form)


@bp.post("/request")
def request_submit():
    try:
        data = request_service.validate_request_form(request.form)
    except FormError as exc:
        return _render_request_form(request.form.to_dict(), exc.message, 400)

    try:
        request_id = request_service.submit_request(data, get_current_user_id())
    except BackendError:
        return _render_request_form(request.form.to_dict(), "Failed to submit request. Please try again.", 503)

    return redirect_with_toast(
        url_for("public.request_status", request_id=request_id, email=data["email"]),
        f"Request submitted successfully! We will get back to you soon. Your tracking ID is {request_id}",
    )


@bp.get("/request/status")
def request_status():
    request_id = (request.args.get("request_id") or "").strip()
    email = (request.args.get("email") or "").strip()
    found = None
    error = None
    if request_id and email:
        try:
            found = request_service.lookup_request(request_id, email)
        except NotFoundError as exc:
            error = exc.message
        except BackendError:
            error = "Failed to look up request"
    elif request_id or email:
        error = "Please enter both tracking ID and email"

    return render_template(
        "request_status.html",
        page_title="Track your request",
        active_page="request",
        request_id=request_id,
        email=email,
        found=found,
        type_label=request_service.request_type_label,
        error=error,
    )


@bp.get("/blogs")
def blogs():
    q = (request.args.get("q") or "").strip()
    error = None
    try:
        items = content_service.list_published_blogs()
    except BackendError:
        items = []
        error = "Failed to load blogs"
    return render_template(
        "blogs.html",
        page_title="Blog",
        page_subtitle="Exam strategy, notifications and preparation tips",
        active_page="blogs",
        blogs=content_service.filter_blogs(items, q),
        q=q,
        error=error,
    )


@bp.get("/blogs/<slug>")
def blog_post(slug: str):
    post = content_service.get_published_blog(slug)
    return render_template(
        "blog_post.html",
        page_title=post.get("meta_title") or post.get("title"),
        meta_description=post.get("meta_description") or post.get("excerpt") or "",
        active_page="blogs",
        post=post,
        tags=content_service.split_tags(post.get("tags")),
    )


@bp.get("/terms")
@bp.get("/termandconditions", endpoint="terms_alias")
def terms():
    return render_template("terms.html", page_title="Terms and Conditions", active_page="terms")
