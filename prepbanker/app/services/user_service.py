from __future__ import annotations

import csv
import io
import logging
import random
from datetime import datetime

from ..errors import BackendError, FormError, NotFoundError
from .db_service import get_admin_db, get_db, run

logger = logging.getLogger(__name__)

TABLE = "users"

EXAM_CHOICES = [
    "PO (SBI, IBPS, RRB)",
    "Clerk (SBI, IBPS, RRB)",
    "Insurance",
    "Other",
]

CSV_HEADERS = [
    "ID",
    "Full Name",
    "Email",
    "Mobile Number",
    "Exam Preparing For",
    "Registration Date",
    "Status",
    "Email Verified",
    "Last Sign In",
]

MAX_ID_ATTEMPTS = 10


def generate_user_id(rng: random.Random | None = None, length: int = 9) -> str:
    r = rng or random
    return "".join(str(r.randint(0, 9)) for _ in range(length))


def allocate_user_id(db=None, rng: random.Random | None = None) -> str:
    db = db or get_admin_db()
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = generate_user_id(rng)
        existing = run(
            db.table(TABLE).select("user_id").eq("user_id", candidate).limit(1),
            "checking user id",
        ).data
        if not existing:
            return candidate
        logger.debug("User id %s exists, trying again", candidate)
    raise BackendError("Could not generate unique user ID")


def create_profile(auth_id: str | None, full_name: str, email: str, mobile_number: str, exam_type: str) -> str:
    db = get_admin_db()
    user_id = allocate_user_id(db)
    run(
        db.table(TABLE).insert(
            {
                "user_id": user_id,
                "auth_id": auth_id,
                "full_name": full_name,
                "email": email.strip().lower(),
                "mobile_number": mobile_number,
                "exam_preparing_for": exam_type,
                "is_blocked": False,
            }
        ),
        "saving profile",
    )
    logger.info("Created profile %s for %s", user_id, email)
    return user_id


def is_blocked(email: str) -> bool:
    rows = run(
        get_db().table(TABLE).select("is_blocked").eq("email", email.strip().lower()).limit(1),
        "checking user status",
    ).data
    return bool(rows and rows[0].get("is_blocked"))


def list_users(status: str = "all") -> list[dict]:
    query = get_admin_db().table(TABLE).select("*").order("created_at", desc=True)
    if status == "blocked":
        query = query.eq("is_blocked", True)
    elif status == "active":
        query = query.eq("is_blocked", False)
    elif status != "all":
        raise FormError("Unknown status filter", "status")
    return run(query, "loading users").data or []


def filter_users(users: list[dict], search: str) -> list[dict]:
    q = (search or "").strip().lower()
    if not q:
        return list(users)
    out = []
    for u in users:
        if (
            q in (u.get("full_name") or "").lower()
            or q in (u.get("email") or "").lower()
            or q in (u.get("mobile_number") or "")
            or q in (u.get("exam_preparing_for") or "").lower()
        ):
            out.append(u)
    return out


def _flip_block(column: str, value: str, missing: str) -> bool:
    db = get_admin_db()
    rows = run(
        db.table(TABLE).select("id, email, is_blocked").eq(column, value).limit(1),
        "looking up user",
    ).data
    if not rows:
        raise NotFoundError(missing)
    new_state = not bool(rows[0].get("is_blocked"))
    run(db.table(TABLE).update({"is_blocked": new_state}).eq(column, value), "updating user status")
    logger.info("User %s %s", rows[0].get("email") or value, "blocked" if new_state else "unblocked")
    return new_state


def toggle_block(email: str) -> bool:
    """Flips ``is_blocked`` for the user with this email and returns the new state."""
    address = (email or "").strip().lower()
    if not address:
        raise FormError("Please enter an email address", "email")
    return _flip_block("email", address, "User not found with this email address")


def toggle_block_by_id(user_pk: str) -> bool:
    return _flip_block("id", user_pk, "User not found")


def with_status(users: list[dict], status: str = "all") -> list[dict]:
    if status == "blocked":
        return [u for u in users if u.get("is_blocked")]
    if status == "active":
        return [u for u in users if not u.get("is_blocked")]
    return list(users)


def user_stats(users: list[dict]) -> dict[str, int]:
    blocked = sum(1 for u in users if u.get("is_blocked"))
    return {"total": len(users), "active": len(users) - blocked, "blocked": blocked}


def _csv_date(value) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%d/%m/%Y")
    except ValueError:
        return str(value)


def users_to_csv(users: list[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for u in users:
        writer.writerow(
            [
                u.get("id"),
                u.get("full_name") or "",
                u.get("email") or "",
                u.get("mobile_number") or "",
                u.get("exam_preparing_for") or "",
                _csv_date(u.get("created_at")),
                "Blocked" if u.get("is_blocked") else "Active",
                "Yes" if u.get("email_confirmed_at") else "No",
                _csv_date(u.get("last_sign_in_at")) if u.get("last_sign_in_at") else "Never",
            ]
        )
    return buf.getvalue()
