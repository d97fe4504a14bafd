"""
User requests and the admin review workflow.

A submitted request starts in ``review``. An admin either approves it
(``review -> approved``) or answers it directly; answering stores the
``admin_response`` and closes the request (``review|approved -> completed``).
Completed requests are final.
"""

from __future__ import annotations

import logging
import random

from ..errors import BackendError, FormError, NotFoundError
from .db_service import get_admin_db, get_db, run

logger = logging.getLogger(__name__)

TABLE = "user_requests"

REQUEST_TYPES = [
    ("pdf_request", "Request PDF/Study Material"),
    ("feedback", "Website Feedback"),
    ("suggestion", "Suggestions"),
    ("bug_report", "Report Bug/Issue"),
    ("other", "Other"),
]

EXAM_TYPES = [
    "SBI PO",
    "SBI Clerk",
    "IBPS PO",
    "IBPS Clerk",
    "RRB PO",
    "RRB Clerk",
    "Insurance",
    "RBI Grade B",
    "NABARD",
    "Other",
]

STATUSES = ("review", "approved", "completed")

TRANSITIONS = {
    "review": {"approved", "completed"},
    "approved": {"completed"},
    "completed": set(),
}

MAX_ID_ATTEMPTS = 10


def generate_request_id(rng: random.Random | None = None) -> str:
    return str((rng or random).randint(10000, 99999))


def allocate_request_id(db=None, rng: random.Random | None = None) -> str:
    db = db or get_db()
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = generate_request_id(rng)
        existing = run(
            db.table(TABLE).select("request_id").eq("request_id", candidate).limit(1),
            "checking request id",
        ).data
        if not existing:
            return candidate
        logger.debug("Request id %s already taken, retrying", candidate)
    raise BackendError("Could not generate unique request ID")


def request_type_label(value: str) -> str:
    return dict(REQUEST_TYPES).get(value, (value or "").replace("_", " ").title())


def validate_request_form(form) -> dict:
    data = {
        "name": (form.get("name") or "").strip(),
        "email": (form.get("email") or "").strip(),
        "request_type": (form.get("request_type") or "pdf_request").strip(),
        "subject": (form.get("subject") or "").strip(),
        "message": (form.get("message") or "").strip(),
        "exam_type": (form.get("exam_type") or "SBI PO").strip(),
    }
    if not data["name"] or not data["email"] or not data["subject"] or not data["message"]:
        raise FormError("Please fill all required fields")
    if data["request_type"] not in dict(REQUEST_TYPES):
        raise FormError("Please choose a valid request type", "request_type")
    if data["exam_type"] not in EXAM_TYPES:
        raise FormError("Please choose a valid exam", "exam_type")
    return data


def submit_request(data: dict, user_id: str | None = None) -> str:
    db = get_db()
    request_id = allocate_request_id(db)
    payload = dict(data, user_id=user_id, request_id=request_id, status="review")
    run(db.table(TABLE).insert(payload), "submitting request")
    logger.info("Request %s submitted (%s)", request_id, data["request_type"])
    return request_id


def lookup_request(request_id: str, email: str) -> dict:
    rows = run(
        get_db().table(TABLE).select("*").eq("request_id", request_id.strip()).limit(1),
        "looking up request",
    ).data
    if not rows or (rows[0].get("email") or "").strip().lower() != email.strip().lower():
        raise NotFoundError("No request found for this tracking ID and email")
    return rows[0]


def list_requests(status: str = "all") -> list[dict]:
    query = get_admin_db().table(TABLE).select("*").order("created_at", desc=True)
    if status != "all":
        if status not in STATUSES:
            raise FormError("Unknown status filter", "status")
        query = query.eq("status", status)
    return run(query, "loading requests").data or []


def status_counts(requests: list[dict]) -> dict[str, int]:
    counts = {s: 0 for s in STATUSES}
    for r in requests:
        if r.get("status") in counts:
            counts[r["status"]] += 1
    counts["all"] = len(requests)
    return counts


def get_request(request_pk: str) -> dict:
    rows = run(get_admin_db().table(TABLE).select("*").eq("id", request_pk).limit(1), "loading request").data
    if not rows:
        raise NotFoundError("Request not found")
    return rows[0]


def update_request_status(request_pk: str, new_status: str, admin_response: str | None = None) -> dict:
    if new_status not in STATUSES:
        raise FormError(f"Unknown status: {new_status}", "status")
    current = get_request(request_pk)
    current_status = current.get("status") or "review"
    if new_status not in TRANSITIONS.get(current_status, set()):
        raise FormError(f"Cannot move a request from {current_status} to {new_status}", "status")

    update = {"status": new_status}
    if admin_response:
        update["admin_response"] = admin_response
    run(get_admin_db().table(TABLE).update(update).eq("id", request_pk), "updating request")
    logger.info("Request %s moved %s -> %s", current.get("request_id") or request_pk, current_status, new_status)
    return dict(current, **update)


def approve_request(request_pk: str) -> dict:
    return update_request_status(request_pk, "approved")


def respond_to_request(request_pk: str, response: str) -> dict:
    text = (response or "").strip()
    if not text:
        raise FormError("Please enter a response", "response")
    return update_request_status(request_pk, "completed", text)
