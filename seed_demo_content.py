import argparse
import logging
from datetime import date, timedelta

from supabase import Client, create_client

from prepbanker.app import config
from prepbanker.app.extensions import setup_logging
from prepbanker.app.services.calendar_service import TABLE as CALENDAR_TABLE
from prepbanker.app.services.content_service import (
    BLOG_TABLE,
    MAGAZINE_TABLE,
    MONTHS,
    PDF_TABLE,
    cover_image_path,
    generate_slug,
)
from prepbanker.app.services.db_service import run

logger = logging.getLogger("seed_demo_content")

DRIVE_LINK = "https://drive.google.com/file/d/demo-{n}/view"


def _count(db: Client, table: str) -> int:
    res = run(db.table(table).select("id", count="exact"), f"counting {table}")
    return int(res.count if res.count is not None else len(res.data or []))


def _ensure_rows(db: Client, table: str, rows: list[dict], min_rows: int = 4) -> int:
    existing = _count(db, table)
    if existing >= min_rows:
        return 0
    needed = rows[: min_rows - existing]
    if needed:
        run(db.table(table).insert(needed), f"seeding {table}")
    logger.info("Seeded %d row(s) into %s", len(needed), table)
    return len(needed)


def _pdf_rows() -> list[dict]:
    topics = [
        ("Quant Practice Set - Simplification", "quants", "1.2 MB"),
        ("Reading Comprehension Drill", "english", "850 KB"),
        ("Puzzles & Seating Arrangement", "reasoning", "2.1 MB"),
        ("Banking Awareness One-Liners", "general_awareness", "640 KB"),
        ("SBI PO Prelims Mock Paper", "prelims", "3.4 MB"),
        ("IBPS Clerk Mains Memory Based Paper", "mains", "2.8 MB"),
    ]
    return [
        {
            "title": title,
            "description": f"Demo {topic.replace('_', ' ')} material.",
            "topic": topic,
            "google_drive_link": DRIVE_LINK.format(n=f"pdf-{i}"),
            "file_size": size,
            "is_active": True,
            "download_count": 0,
        }
        for i, (title, topic, size) in enumerate(topics, start=1)
    ]


def _magazine_rows(today: date) -> list[dict]:
    rows = []
    first_of_month = today.replace(day=1)
    for back in range(2):
        d = (first_of_month - timedelta(days=1)).replace(day=1) if back else first_of_month
        month, year = MONTHS[d.month - 1], str(d.year)
        for language in ("English", "Hindi"):
            rows.append(
                {
                    "title": f"Current Affairs {month} {year} ({language})",
                    "description": "Monthly current affairs digest.",
                    "month": month,
                    "year": year,
                    "language": language,
                    "cover_image": cover_image_path(month, year, language),
                    "google_drive_link": DRIVE_LINK.format(n=f"mag-{month.lower()}-{year}-{language.lower()}"),
                    "is_active": True,
                    "download_count": 0,
                }
            )
    return rows


def _calendar_rows(today: date) -> list[dict]:
    exams = ["SBI PO 2026", "IBPS Clerk 2026", "RBI Grade B 2026", "LIC AAO 2026"]
    rows = []
    for i, name in enumerate(exams):
        deadline = today + timedelta(days=5 + i * 12)
        rows.append(
            {
                "exam_name": name,
                "description": f"Official notification for {name}.",
                "form_fill_last_date": deadline.isoformat(),
                "prelims_exam_date": [(deadline + timedelta(days=30)).isoformat()],
                "mains_exam_date": [(deadline + timedelta(days=75)).isoformat()],
                "is_active": True,
            }
        )
    return rows


def _blog_rows() -> list[dict]:
    titles = [
        "How to Plan Your SBI PO Preparation",
        "Top 10 Banking Awareness Topics",
        "Quant Shortcuts for Prelims",
        "Interview Tips for Bank PO Candidates",
    ]
    return [
        {
            "title": title,
            "slug": generate_slug(title),
            "excerpt": f"{title} in five minutes.",
            "content": f"<p>{title}.</p><ul><li>Start early</li><li>Revise weekly</li></ul>",
            "tags": ["strategy", "banking"],
            "is_published": True,
            "read_time": 5,
        }
        for title in titles
    ]


def seed(db: Client, min_rows: int = 4, today: date | None = None) -> dict[str, int]:
    today = today or date.today()
    return {
        PDF_TABLE: _ensure_rows(db, PDF_TABLE, _pdf_rows(), min_rows),
        MAGAZINE_TABLE: _ensure_rows(db, MAGAZINE_TABLE, _magazine_rows(today), min_rows),
        CALENDAR_TABLE: _ensure_rows(db, CALENDAR_TABLE, _calendar_rows(today), min_rows),
        BLOG_TABLE: _ensure_rows(db, BLOG_TABLE, _blog_rows(), min_rows),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Top up the Supabase content tables with demo rows")
    parser.add_argument(
        "--min-rows",
        type=int,
        default=4,
        help="Insert demo rows until each table has at least this many (default: 4)",
    )
    args = parser.parse_args()

    setup_logging(config.LOG_LEVEL)
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
        raise SystemExit("Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY before seeding.")

    db = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
    inserted = seed(db, args.min_rows)
    for table, n in inserted.items():
        print(f"- {table}: {n} row(s) inserted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
