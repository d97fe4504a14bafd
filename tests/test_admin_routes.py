import csv
import io
from datetime import date

import pytest


@pytest.mark.parametrize(
    "path",
    ["/admin/", "/admin/pdfs", "/admin/magazines", "/admin/calendar", "/admin/requests", "/admin/users", "/admin/blogs", "/admin/users/export"],
)
def test_admin_pages_require_login(client, path, location):
    resp = client.get(path)
    assert resp.status_code == 302
    assert location(resp) == "/admin/login"


def test_user_session_is_not_admin(user_client, location):
    assert location(user_client.get("/admin/")) == "/admin/login"


def test_dashboard_counts(admin_client, fake):
    fake.seed("pdf_resources", {"title": "a"}, {"title": "b"}, {"title": "c"})
    fake.seed("user_requests", {"status": "review"})
    resp = admin_client.get("/admin/")
    assert resp.status_code == 200
    assert b"Requests in review" in resp.data
    assert b">3<" in resp.data


def test_pdf_create_edit_toggle_delete(admin_client, fake, location):
    resp = admin_client.post(
        "/admin/pdfs/new",
        data={"title": "Puzzle Pack", "topic": "reasoning", "google_drive_link": "https://d/pp", "is_active": "on"},
    )
    assert "PDF added successfully" in location(resp)
    (pdf,) = fake.tables["pdf_resources"]
    assert pdf["is_active"] is True

    resp = admin_client.get(f"/admin/pdfs/{pdf['id']}/edit")
    assert b'value="Puzzle Pack"' in resp.data

    resp = admin_client.post(
        f"/admin/pdfs/{pdf['id']}/edit",
        data={"title": "Puzzle Pack v2", "topic": "reasoning", "google_drive_link": "https://d/pp2"},
    )
    assert "PDF updated successfully" in location(resp)
    assert fake.tables["pdf_resources"][0]["title"] == "Puzzle Pack v2"
    assert fake.tables["pdf_resources"][0]["is_active"] is False

    resp = admin_client.post(f"/admin/pdfs/{pdf['id']}/toggle")
    assert "PDF activated successfully" in location(resp)

    resp = admin_client.post(f"/admin/pdfs/{pdf['id']}/delete")
    assert "PDF deleted successfully" in location(resp)
    assert fake.tables["pdf_resources"] == []


def test_pdf_form_errors_rerender(admin_client, fake):
    resp = admin_client.post("/admin/pdfs/new", data={"title": "", "topic": "quants", "google_drive_link": "x"})
    assert resp.status_code == 200
    assert b"Title is required" in resp.data
    assert fake.tables["pdf_resources"] == []


def test_admin_pdf_search(admin_client, fake):
    fake.seed("pdf_resources", {"title": "Quant Booster", "topic": "quants"}, {"title": "Grammar", "topic": "english"})
    resp = admin_client.get("/admin/pdfs?q=english")
    assert b"Grammar" in resp.data and b"Quant Booster" not in resp.data


def test_magazine_create_and_admin_download(admin_client, fake, location):
    resp = admin_client.post(
        "/admin/magazines/new",
        data={
            "title": "CA Oct",
            "month": "October",
            "year": "2025",
            "language": "English",
            "google_drive_link": "https://d/ca",
            "is_active": "on",
        },
    )
    assert "Magazine added successfully" in location(resp)
    (mag,) = fake.tables["magazines"]
    assert mag["cover_image"] == "assets/magazines/october2025english.png"

    resp = admin_client.post(f"/admin/magazines/{mag['id']}/download")
    assert resp.headers["Location"] == "https://d/ca"
    assert fake.rpc_calls == [("increment_magazine_downloads", {"magazine_id": mag["id"]})]


def test_calendar_publish_and_update(admin_client, fake, location):
    resp = admin_client.post(
        "/admin/calendar/new",
        data={
            "exam_name": "IBPS PO",
            "form_fill_last_date": "2030-08-01",
            "prelims_exam_dates": ["2030-10-05", "2030-10-06"],
            "mains_exam_dates": ["2030-11-30"],
            "is_active": "on",
        },
    )
    assert "Event published successfully" in location(resp)
    (event,) = fake.tables["calendar_events"]
    assert event["prelims_exam_date"] == ["2030-10-05", "2030-10-06"]

    resp = admin_client.get(f"/admin/calendar/{event['id']}/edit")
    assert b'value="2030-10-06"' in resp.data

    resp = admin_client.post(
        f"/admin/calendar/{event['id']}/edit",
        data={
            "exam_name": "IBPS PO 2030",
            "form_fill_last_date": "2030-08-02",
            "prelims_exam_dates": ["2030-10-05"],
            "mains_exam_dates": ["2030-11-30"],
        },
    )
    assert "Event updated successfully" in location(resp)
    assert fake.tables["calendar_events"][0]["exam_name"] == "IBPS PO 2030"
    assert fake.tables["calendar_events"][0]["is_active"] is False


def test_calendar_form_error_keeps_dates(admin_client):
    resp = admin_client.post(
        "/admin/calendar/new",
        data={"exam_name": "RBI", "form_fill_last_date": "2030-01-01", "prelims_exam_dates": ["2030-02-02"]},
    )
    assert b"At least one mains exam date is required" in resp.data
    assert b'value="2030-02-02"' in resp.data


def test_request_review_flow(admin_client, fake, location):
    (req,) = fake.seed(
        "user_requests",
        {"request_id": "12345", "name": "Ravi", "email": "r@x.com", "subject": "Need PDF", "message": "m", "status": "review", "request_type": "pdf_request"},
    )
    resp = admin_client.get("/admin/requests?status=review")
    assert b"Need PDF" in resp.data
    assert b"Review (1)" in resp.data

    resp = admin_client.post(f"/admin/requests/{req['id']}/approve?status=review")
    assert location(resp) == "/admin/requests?status=review&success=Request approved successfully"

    resp = admin_client.post(f"/admin/requests/{req['id']}/respond", data={"admin_response": ""})
    assert "Please enter a response" in location(resp)

    resp = admin_client.post(f"/admin/requests/{req['id']}/respond", data={"admin_response": "Uploaded"})
    assert "Request completed successfully" in location(resp)
    assert fake.tables["user_requests"][0]["status"] == "completed"

    resp = admin_client.post(f"/admin/requests/{req['id']}/approve")
    assert "error=Cannot move a request from completed to approved" in location(resp)


def test_user_block_by_email(admin_client, fake, location):
    fake.seed("users", {"full_name": "Asha", "email": "asha@x.com", "is_blocked": False})

    resp = admin_client.post("/admin/users/block", data={"email": "ghost@x.com"})
    assert "error=User not found with this email address" in location(resp)

    resp = admin_client.post("/admin/users/block", data={"email": "ASHA@x.com"})
    assert "User blocked successfully" in location(resp)
    assert fake.tables["users"][0]["is_blocked"] is True

    user_id = fake.tables["users"][0]["id"]
    resp = admin_client.post(f"/admin/users/{user_id}/toggle")
    assert "User unblocked successfully" in location(resp)
    assert fake.tables["users"][0]["is_blocked"] is False


def test_user_toggle_uses_row_id(admin_client, fake, location):
    asha, vikram = fake.seed(
        "users",
        {"full_name": "Asha", "email": "asha@x.com", "is_blocked": False},
        {"full_name": "Vikram", "email": "vik@x.com", "is_blocked": False},
    )
    resp = admin_client.post(f"/admin/users/{vikram['id']}/toggle", data={"email": "asha@x.com"})
    assert "User blocked successfully" in location(resp)
    assert [u["is_blocked"] for u in fake.tables["users"]] == [False, True]

    resp = admin_client.post("/admin/users/missing/toggle")
    assert "error=User not found" in location(resp)


def test_user_filters(admin_client, fake):
    fake.seed(
        "users",
        {"full_name": "Asha", "email": "asha@x.com", "is_blocked": True},
        {"full_name": "Vikram", "email": "vik@x.com", "is_blocked": False},
    )
    resp = admin_client.get("/admin/users?status=blocked")
    assert b"asha@x.com" in resp.data and b"vik@x.com" not in resp.data
    resp = admin_client.get("/admin/users?q=vik")
    assert b"vik@x.com" in resp.data and b"asha@x.com" not in resp.data


def test_users_csv_export(admin_client, fake):
    fake.seed(
        "users",
        {"full_name": "Asha", "email": "asha@x.com", "mobile_number": "98", "is_blocked": False, "created_at": "2025-02-01T00:00:00Z"},
    )
    resp = admin_client.get("/admin/users/export")
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "attachment; filename=users_export_" in resp.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == "ID"
    assert rows[1][1:3] == ["Asha", "asha@x.com"]
    assert rows[1][5] == "01/02/2025"


def test_users_csv_export_empty(admin_client, location):
    assert "error=No users to export" in location(admin_client.get("/admin/users/export"))


def test_blog_crud(admin_client, fake, location):
    resp = admin_client.post(
        "/admin/blogs/new",
        data={"title": "Mains Tips", "content": "<p>Go</p><script>x()</script>", "tags": "mains, tips", "is_published": "on"},
    )
    assert "Blog created successfully" in location(resp)
    (blog,) = fake.tables["blogs"]
    assert blog["slug"] == "mains-tips"
    assert "<script" not in blog["content"]

    resp = admin_client.get(f"/admin/blogs/{blog['id']}/edit")
    assert b'value="mains, tips"' in resp.data

    resp = admin_client.post(f"/admin/blogs/{blog['id']}/delete")
    assert "Blog deleted successfully" in location(resp)
    assert fake.tables["blogs"] == []


def test_admin_list_backend_failure(admin_client, fake):
    fake.fail("blogs")
    resp = admin_client.get("/admin/blogs")
    assert b"Failed to load blogs" in resp.data


def test_user_stats_ignore_filters(admin_client, fake):
    fake.seed(
        "users",
        {"full_name": "Asha", "email": "asha@x.com", "is_blocked": True},
        {"full_name": "Vikram", "email": "vik@x.com", "is_blocked": False},
        {"full_name": "Meera", "email": "meera@x.com", "is_blocked": False},
    )
    resp = admin_client.get("/admin/users?status=blocked")
    page = resp.get_data(as_text=True)
    assert '<span class="stat-value">3</span><span class="muted">Total users</span>' in page
    assert '<span class="stat-value">2</span><span class="muted">Active users</span>' in page
    assert '<span class="stat-value">1</span><span class="muted">Blocked users</span>' in page


def test_pdf_and_magazine_stats_panels(admin_client, fake):
    this_month = date.today().isoformat()
    fake.seed(
        "pdf_resources",
        {"title": "a", "is_active": True, "download_count": 5, "created_at": this_month},
        {"title": "b", "is_active": False, "download_count": 7, "created_at": "2020-01-01T00:00:00Z"},
    )
    page = admin_client.get("/admin/pdfs?q=zzz").get_data(as_text=True)
    assert '<span class="stat-value">2</span><span class="muted">Total PDFs</span>' in page
    assert '<span class="stat-value">12</span><span class="muted">Total downloads</span>' in page
    assert '<span class="stat-value">1</span><span class="muted">Added this month</span>' in page

    fake.seed("magazines", {"title": "m", "year": str(date.today().year), "is_active": True, "download_count": 3})
    page = admin_client.get("/admin/magazines").get_data(as_text=True)
    assert '<span class="stat-value">3</span><span class="muted">Total downloads</span>' in page
    assert '<span class="stat-value">1</span><span class="muted">This year</span>' in page


def test_calendar_stats_and_legacy_dates(admin_client, fake):
    (event,) = fake.seed(
        "calendar_events",
        {
            "exam_name": "RRB Clerk",
            "form_fill_last_date": "2099-01-01",
            "prelims_exam_date": "not json",
            "mains_exam_date": '["2099-03-01"]',
            "notification_url": "https://example.com/rrb",
            "is_active": True,
        },
    )
    page = admin_client.get("/admin/calendar").get_data(as_text=True)
    assert '<span class="stat-value">1</span><span class="muted">Upcoming exams</span>' in page
    assert '<span class="stat-value">1</span><span class="muted">With notification</span>' in page

    resp = admin_client.get(f"/admin/calendar/{event['id']}/edit")
    assert resp.status_code == 200
    assert b'value="2099-03-01"' in resp.data
