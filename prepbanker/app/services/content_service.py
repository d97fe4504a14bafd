from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from html import unescape

from ..errors import BackendError, FormError, NotFoundError
from .db_service import get_admin_db, get_db, run

logger = logging.getLogger(__name__)

PDF_TABLE = "pdf_resources"
MAGAZINE_TABLE = "magazines"
BLOG_TABLE = "blogs"

PDF_TOPICS = {
    "Quants": "quants",
    "English": "english",
    "Reasoning": "reasoning",
    "General Awareness": "general_awareness",
    "Prelims": "prelims",
    "Mains": "mains",
    "PO": "po",
    "Clerk": "clerk",
    "Insurance": "insurance",
    "Other": "other",
}

MONTHS = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

LANGUAGES = ["English", "Hindi"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _optional(form, key: str) -> str | None:
    return (form.get(key) or "").strip() or None


def _checkbox(form, key: str) -> bool:
    return form.get(key) in ("on", "true", "1")


def _get_one(db, table: str, row_id: str, label: str) -> dict:
    rows = run(db.table(table).select("*").eq("id", row_id).limit(1), f"loading {label.lower()}").data
    if not rows:
        raise NotFoundError(f"{label} not found")
    return rows[0]


# PDFs


def topic_image_path(topic: str) -> str:
    return f"assets/topics/{topic}.png"


def list_active_pdfs() -> list[dict]:
    query = get_db().table(PDF_TABLE).select("*").eq("is_active", True).order("created_at", desc=True)
    return run(query, "loading PDFs").data or []


def filter_pdfs(pdfs: list[dict], topic_label: str = "All", search: str = "") -> list[dict]:
    filtered = list(pdfs)
    if topic_label and topic_label != "All":
        slug = PDF_TOPICS.get(topic_label)
        filtered = [p for p in filtered if p.get("topic") == slug]
    q = (search or "").strip().lower()
    if q:
        filtered = [p for p in filtered if q in (p.get("title") or "").lower()]
    return filtered


def get_pdf(pdf_id: str, active_only: bool = True) -> dict:
    pdf = _get_one(get_db() if active_only else get_admin_db(), PDF_TABLE, pdf_id, "PDF")
    if active_only and not pdf.get("is_active"):
        raise NotFoundError("PDF not found")
    return pdf


def record_pdf_download(pdf: dict, user_id: str | None, user_agent: str = "") -> None:
    """Best-effort analytics; the download itself never depends on it."""
    db = get_db()
    try:
        run(
            db.table("download_analytics").insert({"pdf_id": pdf["id"], "user_id": user_id, "user_agent": user_agent}),
            "tracking PDF download",
        )
        run(db.rpc("increment_pdf_downloads", {"pdf_uuid": pdf["id"]}), "incrementing PDF downloads")
    except BackendError as exc:
        logger.warning("Download tracking failed for PDF %s: %s", pdf.get("id"), exc.message)


def list_all_pdfs() -> list[dict]:
    query = get_admin_db().table(PDF_TABLE).select("*").order("created_at", desc=True)
    return run(query, "loading PDFs").data or []


def _created_on(row: dict) -> date | None:
    value = row.get("upload_date") or row.get("created_at")
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def pdf_stats(pdfs: list[dict], today: date | None = None) -> dict[str, int]:
    current = today or date.today()
    this_month = 0
    for p in pdfs:
        created = _created_on(p)
        if created and (created.year, created.month) == (current.year, current.month):
            this_month += 1
    return {
        "total": len(pdfs),
        "active": sum(1 for p in pdfs if p.get("is_active")),
        "downloads": sum(int(p.get("download_count") or 0) for p in pdfs),
        "this_month": this_month,
    }


def search_admin_pdfs(pdfs: list[dict], search: str) -> list[dict]:
    q = (search or "").strip().lower()
    if not q:
        return list(pdfs)
    return [
        p
        for p in pdfs
        if q in (p.get("title") or "").lower()
        or q in (p.get("description") or "").lower()
        or q in (p.get("topic") or "").lower()
    ]


def validate_pdf_form(form) -> dict:
    title = (form.get("title") or "").strip()
    if not title:
        raise FormError("Title is required", "title")
    topic = (form.get("topic") or "").strip()
    if not topic:
        raise FormError("Topic is required", "topic")
    if topic not in PDF_TOPICS.values():
        raise FormError("Please choose a valid topic", "topic")
    link = (form.get("google_drive_link") or "").strip()
    if not link:
        raise FormError("Google Drive link is required", "google_drive_link")
    return {
        "title": title,
        "description": (form.get("description") or "").strip(),
        "topic": topic,
        "google_drive_link": link,
        "preview_link": _optional(form, "preview_link"),
        "file_size": _optional(form, "file_size"),
        "is_active": _checkbox(form, "is_active"),
    }


def save_pdf(data: dict, pdf_id: str | None = None, created_by: str | None = None) -> None:
    db = get_admin_db()
    if pdf_id:
        run(db.table(PDF_TABLE).update(data).eq("id", pdf_id), "updating PDF")
        logger.info("Updated PDF %s", pdf_id)
    else:
        run(db.table(PDF_TABLE).insert(dict(data, created_by=created_by)), "adding PDF")
        logger.info("Added PDF %r", data["title"])


def delete_pdf(pdf_id: str) -> None:
    run(get_admin_db().table(PDF_TABLE).delete().eq("id", pdf_id), "deleting PDF")


def toggle_pdf(pdf: dict) -> bool:
    new_state = not bool(pdf.get("is_active"))
    run(get_admin_db().table(PDF_TABLE).update({"is_active": new_state}).eq("id", pdf["id"]), "updating PDF status")
    return new_state


# Magazines


def cover_image_path(month: str, year: str, language: str) -> str:
    return f"assets/magazines/{month.lower()}{year}{language.lower()}.png"


def month_key(magazine: dict) -> str:
    return f"{magazine.get('month')} {magazine.get('year')}"


def list_active_magazines() -> list[dict]:
    query = get_db().table(MAGAZINE_TABLE).select("*").eq("is_active", True).order("created_at", desc=True)
    return run(query, "loading magazines").data or []


def available_months(magazines: list[dict]) -> list[str]:
    seen: list[str] = []
    for m in magazines:
        key = month_key(m)
        if key not in seen:
            seen.append(key)
    return seen


def magazines_for_month(magazines: list[dict], month: str = "") -> list[dict]:
    """Editions for ``"Month Year"``; with no month, the latest month's editions."""
    if not month:
        months = available_months(magazines)
        if not months:
            return []
        month = months[0]
    return [m for m in magazines if month_key(m) == month]


def group_editions(magazines: list[dict]) -> list[dict]:
    """Pairs each month's English and Hindi editions; a missing language is ``None``."""
    groups: list[dict] = []
    for key in available_months(magazines):
        editions = [m for m in magazines if month_key(m) == key]
        groups.append(
            {
                "month": key,
                "english": next((m for m in editions if m.get("language") == "English"), None),
                "hindi": next((m for m in editions if m.get("language") == "Hindi"), None),
            }
        )
    return groups


def get_magazine(magazine_id: str, active_only: bool = True) -> dict:
    mag = _get_one(get_db() if active_only else get_admin_db(), MAGAZINE_TABLE, magazine_id, "Magazine")
    if active_only and not mag.get("is_active"):
        raise NotFoundError("Magazine not found")
    return mag


def record_magazine_download(magazine: dict, user_id: str | None, db=None) -> None:
    db = db or get_db()
    try:
        run(
            db.table("magazine_downloads").insert({"magazine_id": magazine["id"], "user_id": user_id}),
            "tracking magazine download",
        )
        run(db.rpc("increment_magazine_downloads", {"magazine_id": magazine["id"]}), "incrementing magazine downloads")
    except BackendError as exc:
        logger.warning("Download tracking failed for magazine %s: %s", magazine.get("id"), exc.message)


def list_all_magazines() -> list[dict]:
    query = get_admin_db().table(MAGAZINE_TABLE).select("*").order("created_at", desc=True)
    return run(query, "loading magazines").data or []


def magazine_stats(magazines: list[dict], today: date | None = None) -> dict[str, int]:
    year = str((today or date.today()).year)
    return {
        "total": len(magazines),
        "active": sum(1 for m in magazines if m.get("is_active")),
        "downloads": sum(int(m.get("download_count") or 0) for m in magazines),
        "this_year": sum(1 for m in magazines if str(m.get("year") or "") == year),
    }


def search_admin_magazines(magazines: list[dict], search: str) -> list[dict]:
    q = (search or "").strip().lower()
    if not q:
        return list(magazines)
    return [
        m
        for m in magazines
        if q in (m.get("title") or "").lower()
        or q in (m.get("month") or "").lower()
        or q in str(m.get("year") or "")
        or q in (m.get("language") or "").lower()
    ]


def validate_magazine_form(form) -> dict:
    title = (form.get("title") or "").strip()
    if not title:
        raise FormError("Title is required", "title")
    month = (form.get("month") or "").strip()
    if not month:
        raise FormError("Month is required", "month")
    if month not in MONTHS:
        raise FormError("Please choose a valid month", "month")
    year = (form.get("year") or "").strip()
    if not year:
        raise FormError("Year is required", "year")
    if not re.fullmatch(r"\d{4}", year):
        raise FormError("Year must be four digits", "year")
    language = (form.get("language") or "").strip()
    if not language:
        raise FormError("Language is required", "language")
    if language not in LANGUAGES:
        raise FormError("Please choose a valid language", "language")
    link = (form.get("google_drive_link") or "").strip()
    if not link:
        raise FormError("Google Drive link is required", "google_drive_link")
    return {
        "title": title,
        "description": (form.get("description") or "").strip(),
        "month": month,
        "year": year,
        "language": language,
        "google_drive_link": link,
        "preview_link": _optional(form, "preview_link"),
        "file_size": _optional(form, "file_size"),
        "is_active": _checkbox(form, "is_active"),
        "cover_image": cover_image_path(month, year, language),
    }


def save_magazine(data: dict, magazine_id: str | None = None, created_by: str | None = None) -> None:
    db = get_admin_db()
    if magazine_id:
        run(db.table(MAGAZINE_TABLE).update(data).eq("id", magazine_id), "updating magazine")
        logger.info("Updated magazine %s", magazine_id)
    else:
        run(db.table(MAGAZINE_TABLE).insert(dict(data, created_by=created_by)), "adding magazine")
        logger.info("Added magazine %r", data["title"])


def delete_magazine(magazine_id: str) -> None:
    run(get_admin_db().table(MAGAZINE_TABLE).delete().eq("id", magazine_id), "deleting magazine")


def toggle_magazine(magazine: dict) -> bool:
    new_state = not bool(magazine.get("is_active"))
    run(
        get_admin_db().table(MAGAZINE_TABLE).update({"is_active": new_state}).eq("id", magazine["id"]),
        "updating magazine status",
    )
    return new_state


# Blogs


def generate_slug(title: str) -> str:
    slug = (title or "").lower()
    slug = re.sub(r"[^a-z0-9 -]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def split_tags(text) -> list[str]:
    if isinstance(text, list):
        return [str(t).strip() for t in text if str(t).strip()]
    return [t.strip() for t in (text or "").split(",") if t.strip()]


_URL_ATTR = re.compile(r"""(\s(?:href|src)\s*=\s*)("[^"]*"|'[^']*'|[^\s>]+)""", re.I)
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")


def _unsafe_url(value: str) -> bool:
    # Browsers ignore entities, whitespace and control characters inside the scheme.
    url = re.sub(r"[\x00-\x20]+", "", unescape(value)).lower()
    return url.startswith(_UNSAFE_SCHEMES)


def _neutralise_url(match: re.Match) -> str:
    raw = match.group(2)
    value = raw[1:-1] if raw[:1] in ("'", '"') else raw
    if _unsafe_url(value):
        return f'{match.group(1)}"#"'
    return match.group(0)


def sanitize_blog_html(html: str) -> str:
    if not html:
        return ""

    cleaned = re.sub(r"<(script|style|iframe|object|embed)[^>]*>.*?</\1>", "", html, flags=re.I | re.S)
    cleaned = re.sub(r"\son\w+\s*=\s*\"[^\"]*\"", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\son\w+\s*=\s*'[^']*'", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\son\w+\s*=\s*[^\s>]+", "", cleaned, flags=re.I)

    allowed = {
        "b",
        "strong",
        "i",
        "em",
        "u",
        "s",
        "del",
        "code",
        "pre",
        "br",
        "p",
        "ul",
        "ol",
        "li",
        "a",
        "span",
        "div",
        "h2",
        "h3",
        "h4",
        "blockquote",
        "img",
        "figure",
        "figcaption",
        "table",
        "thead",
        "tbody",
        "tr",
        "th",
        "td",
    }

    def _filter_tag(match: re.Match) -> str:
        tag = match.group(0)
        n = (match.group(1) or "").strip().lower()
        if n not in allowed:
            return ""
        tag = re.sub(r"""\son\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", "", tag, flags=re.I)
        return _URL_ATTR.sub(_neutralise_url, tag)

    return re.sub(r"</?\s*([a-zA-Z0-9]+)([^>]*)>", _filter_tag, cleaned)


def list_published_blogs() -> list[dict]:
    query = get_db().table(BLOG_TABLE).select("*").eq("is_published", True).order("created_at", desc=True)
    return run(query, "loading blogs").data or []


def filter_blogs(blogs: list[dict], search: str) -> list[dict]:
    q = (search or "").strip().lower()
    if not q:
        return list(blogs)
    return [b for b in blogs if q in (b.get("title") or "").lower() or q in (b.get("excerpt") or "").lower()]


def get_published_blog(slug: str) -> dict:
    rows = run(
        get_db().table(BLOG_TABLE).select("*").eq("slug", slug).eq("is_published", True).limit(1),
        "loading blog",
    ).data
    if not rows:
        raise NotFoundError("Blog not found")
    return rows[0]


def list_all_blogs() -> list[dict]:
    return run(get_admin_db().table(BLOG_TABLE).select("*").order("created_at", desc=True), "loading blogs").data or []


def get_blog(blog_id: str) -> dict:
    return _get_one(get_admin_db(), BLOG_TABLE, blog_id, "Blog")


def validate_blog_form(form) -> dict:
    title = (form.get("title") or "").strip()
    if not title:
        raise FormError("Title is required", "title")
    content = (form.get("content") or "").strip()
    if not content:
        raise FormError("Content is required", "content")
    try:
        read_time = int((form.get("read_time") or "5").strip())
    except ValueError:
        raise FormError("Read time must be a number", "read_time")
    slug = generate_slug((form.get("slug") or "").strip()) or generate_slug(title)
    if not slug:
        raise FormError("Slug could not be generated from the title", "slug")
    return {
        "title": title,
        "slug": slug,
        "content": sanitize_blog_html(content),
        "excerpt": (form.get("excerpt") or "").strip(),
        "cover_image_url": _optional(form, "cover_image_url"),
        "tags": split_tags(form.get("tags")),
        "meta_title": _optional(form, "meta_title"),
        "meta_description": _optional(form, "meta_description"),
        "is_published": _checkbox(form, "is_published"),
        "read_time": max(read_time, 1),
        "updated_at": _now_iso(),
    }


def save_blog(data: dict, blog_id: str | None = None) -> None:
    db = get_admin_db()
    if blog_id:
        run(db.table(BLOG_TABLE).update(data).eq("id", blog_id), "updating blog")
        logger.info("Updated blog %s", blog_id)
    else:
        run(db.table(BLOG_TABLE).insert(data), "creating blog")
        logger.info("Created blog %r", data["slug"])


def delete_blog(blog_id: str) -> None:
    run(get_admin_db().table(BLOG_TABLE).delete().eq("id", blog_id), "deleting blog")


# Dashboard


def dashboard_counts() -> dict[str, int]:
    db = get_admin_db()

    def _count(table: str, **filters) -> int:
        query = db.table(table).select("id", count="exact")
        for column, value in filters.items():
            query = query.eq(column, value)
        res = run(query, f"counting {table}")
        return int(res.count if res.count is not None else len(res.data or []))

    return {
        "pdfs": _count(PDF_TABLE),
        "magazines": _count(MAGAZINE_TABLE),
        "events": _count("calendar_events"),
        "requests_in_review": _count("user_requests", status="review"),
        "users": _count("users"),
        "blogs": _count(BLOG_TABLE),
    }
