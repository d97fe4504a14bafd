"""
Exam calendar: countdown badges, date-list formatting and calendar_events CRUD.

``prelims_exam_date`` and ``mains_exam_date`` hold lists of ISO dates. Older
rows store them as a JSON-encoded string, so every reader accepts both.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import NamedTuple

from ..errors import FormError
from .db_service import get_admin_db, get_db, run

logger = logging.getLogger(__name__)

TABLE = "calendar_events"


class Countdown(NamedTuple):
    text: str
    tone: str  # red / orange / yellow / green


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def days_remaining(date_value, today: date | None = None) -> Countdown:
    current = today or date.today()
    diff_days = (_to_date(date_value) - current).days
    if diff_days < 0:
        return Countdown("Expired", "red")
    if diff_days == 0:
        return Countdown("Today", "orange")
    if diff_days == 1:
        return Countdown("Tomorrow", "yellow")
    if diff_days <= 7:
        return Countdown(f"{diff_days} days", "red")
    if diff_days <= 30:
        return Countdown(f"{diff_days} days", "orange")
    return Countdown(f"{diff_days} days", "green")


def format_display_date(date_value) -> str:
    d = _to_date(date_value)
    return f"{d.day} {d.strftime('%b %Y')}"


def parse_date_list(value) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if isinstance(value, str):
        parsed = json.loads(value)
        if not isinstance(parsed, list):
            raise ValueError("date list must be a JSON array")
        return [str(v) for v in parsed]
    raise ValueError("unsupported date list")


def format_multiple_dates(value) -> str:
    try:
        return ", ".join(format_display_date(d) for d in parse_date_list(value))
    except (ValueError, TypeError):
        return "N/A"


def first_date(value) -> str | None:
    try:
        dates = parse_date_list(value)
    except (ValueError, TypeError):
        return None
    return dates[0] if dates else None


def event_status_tone(event: dict, today: date | None = None) -> str:
    if not event.get("is_active"):
        return "gray"
    try:
        last_date = _to_date(event.get("form_fill_last_date"))
    except (ValueError, TypeError):
        return "gray"
    return "red" if last_date < (today or date.today()) else "green"


def decorate_event(event: dict, today: date | None = None) -> dict:
    """Adds the display fields the calendar templates render."""
    out = dict(event)
    try:
        out["form_fill_countdown"] = days_remaining(event["form_fill_last_date"], today)
        out["form_fill_display"] = format_display_date(event["form_fill_last_date"])
    except (KeyError, ValueError, TypeError):
        out["form_fill_countdown"] = None
        out["form_fill_display"] = "N/A"
    prelims_first = first_date(event.get("prelims_exam_date"))
    out["prelims_display"] = format_multiple_dates(event.get("prelims_exam_date"))
    out["mains_display"] = format_multiple_dates(event.get("mains_exam_date"))
    try:
        out["prelims_countdown"] = days_remaining(prelims_first, today) if prelims_first else None
    except (ValueError, TypeError):
        out["prelims_countdown"] = None
    out["status_tone"] = event_status_tone(event, today)
    return out


def _form_fill_days(event: dict, today: date) -> int | None:
    try:
        return (_to_date(event.get("form_fill_last_date")) - today).days
    except (ValueError, TypeError):
        return None


def deadline_summary(events: list[dict], today: date | None = None) -> dict[str, int]:
    """Counts form deadlines that have passed, fall within a week, or are further out."""
    current = today or date.today()
    out = {"expired": 0, "urgent": 0, "upcoming": 0}
    for e in events:
        days = _form_fill_days(e, current)
        if days is None:
            continue
        if days < 0:
            out["expired"] += 1
        elif days <= 7:
            out["urgent"] += 1
        else:
            out["upcoming"] += 1
    return out


def event_stats(events: list[dict], today: date | None = None) -> dict[str, int]:
    current = today or date.today()
    upcoming = 0
    for e in events:
        days = _form_fill_days(e, current)
        if e.get("is_active") and days is not None and days >= 0:
            upcoming += 1
    return {
        "total": len(events),
        "active": sum(1 for e in events if e.get("is_active")),
        "upcoming": upcoming,
        "with_notification": sum(1 for e in events if e.get("notification_url")),
    }


def filter_events(events: list[dict], search: str) -> list[dict]:
    q = (search or "").strip().lower()
    if not q:
        return list(events)
    return [
        e
        for e in events
        if q in (e.get("exam_name") or "").lower() or q in (e.get("description") or "").lower()
    ]


def list_active_events() -> list[dict]:
    query = get_db().table(TABLE).select("*").eq("is_active", True).order("form_fill_last_date")
    return run(query, "loading calendar events").data or []


def list_all_events() -> list[dict]:
    query = get_admin_db().table(TABLE).select("*").order("form_fill_last_date")
    return run(query, "loading calendar events").data or []


def get_event(event_id: str) -> dict | None:
    rows = run(get_admin_db().table(TABLE).select("*").eq("id", event_id).limit(1), "loading calendar event").data
    return rows[0] if rows else None


def validate_event_form(form) -> dict:
    exam_name = (form.get("exam_name") or "").strip()
    if not exam_name:
        raise FormError("Exam name is required", "exam_name")
    form_fill_last_date = (form.get("form_fill_last_date") or "").strip()
    if not form_fill_last_date:
        raise FormError("Form fill last date is required", "form_fill_last_date")

    prelims = [d.strip() for d in form.getlist("prelims_exam_dates") if d.strip()]
    if not prelims:
        raise FormError("At least one prelims exam date is required", "prelims_exam_dates")
    mains = [d.strip() for d in form.getlist("mains_exam_dates") if d.strip()]
    if not mains:
        raise FormError("At least one mains exam date is required", "mains_exam_dates")

    return {
        "exam_name": exam_name,
        "description": (form.get("description") or "").strip() or None,
        "form_fill_last_date": form_fill_last_date,
        "prelims_exam_date": prelims,
        "mains_exam_date": mains,
        "notification_url": (form.get("notification_url") or "").strip() or None,
        "is_active": form.get("is_active") in ("on", "true", "1"),
    }


def save_event(data: dict, event_id: str | None = None) -> None:
    db = get_admin_db()
    if event_id:
        run(db.table(TABLE).update(data).eq("id", event_id), "updating calendar event")
        logger.info("Updated calendar event %s", event_id)
    else:
        run(db.table(TABLE).insert(data), "publishing calendar event")
        logger.info("Published calendar event %r", data["exam_name"])


def delete_event(event_id: str) -> None:
    run(get_admin_db().table(TABLE).delete().eq("id", event_id), "deleting calendar event")


def toggle_event(event: dict) -> bool:
    new_state = not bool(event.get("is_active"))
    run(get_admin_db().table(TABLE).update({"is_active": new_state}).eq("id", event["id"]), "updating event status")
    return new_state
