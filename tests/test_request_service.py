import random

import pytest
from werkzeug.datastructures import MultiDict

from prepbanker.app.errors import BackendError, FormError, NotFoundError
from prepbanker.app.services import request_service


def _form(**overrides):
    data = {
        "name": "Ravi",
        "email": "ravi@example.com",
        "request_type": "pdf_request",
        "subject": "Need puzzles PDF",
        "message": "Please upload high level puzzles.",
        "exam_type": "IBPS PO",
    }
    data.update(overrides)
    return MultiDict(data)


def test_generate_request_id_is_five_digits():
    rng = random.Random(7)
    for _ in range(200):
        rid = request_service.generate_request_id(rng)
        assert len(rid) == 5 and rid.isdigit()
        assert 10000 <= int(rid) <= 99999


@pytest.mark.parametrize("missing", ["name", "email", "subject", "message"])
def test_validate_request_form_requires_fields(missing):
    with pytest.raises(FormError) as exc:
        request_service.validate_request_form(_form(**{missing: "  "}))
    assert exc.value.message == "Please fill all required fields"


def test_validate_request_form_rejects_unknown_type():
    with pytest.raises(FormError):
        request_service.validate_request_form(_form(request_type="spam"))


def test_request_type_label():
    assert request_service.request_type_label("bug_report") == "Report Bug/Issue"
    assert request_service.request_type_label("something_new") == "Something New"


def test_submit_request_starts_in_review(fake, ctx):
    data = request_service.validate_request_form(_form())
    rid = request_service.submit_request(data, "user-1")
    (row,) = fake.tables["user_requests"]
    assert row["request_id"] == rid
    assert row["status"] == "review"
    assert row["user_id"] == "user-1"


def test_allocate_request_id_retries_on_collision(fake, ctx):
    taken = request_service.generate_request_id(random.Random(1))
    fake.seed("user_requests", {"request_id": taken})
    rid = request_service.allocate_request_id(rng=random.Random(1))
    assert rid != taken


def test_allocate_request_id_gives_up(fake, ctx, monkeypatch):
    monkeypatch.setattr(request_service, "generate_request_id", lambda rng=None: "12345")
    fake.seed("user_requests", {"request_id": "12345"})
    with pytest.raises(BackendError):
        request_service.allocate_request_id()


def test_lookup_request_checks_email(fake, ctx):
    fake.seed("user_requests", {"request_id": "54321", "email": "Ravi@Example.com", "status": "review"})
    assert request_service.lookup_request("54321", "ravi@example.com")["request_id"] == "54321"
    with pytest.raises(NotFoundError):
        request_service.lookup_request("54321", "someone@else.com")
    with pytest.raises(NotFoundError):
        request_service.lookup_request("11111", "ravi@example.com")


def test_status_counts():
    rows = [{"status": "review"}, {"status": "review"}, {"status": "completed"}]
    assert request_service.status_counts(rows) == {"review": 2, "approved": 0, "completed": 1, "all": 3}


def test_workflow_transitions(fake, ctx):
    (row,) = fake.seed("user_requests", {"request_id": "22222", "status": "review"})
    request_service.approve_request(row["id"])
    assert fake.tables["user_requests"][0]["status"] == "approved"

    with pytest.raises(FormError):
        request_service.approve_request(row["id"])

    request_service.respond_to_request(row["id"], "Uploaded in PDFs section")
    stored = fake.tables["user_requests"][0]
    assert stored["status"] == "completed"
    assert stored["admin_response"] == "Uploaded in PDFs section"

    with pytest.raises(FormError):
        request_service.respond_to_request(row["id"], "again")


def test_respond_requires_text(fake, ctx):
    (row,) = fake.seed("user_requests", {"request_id": "33333", "status": "review"})
    with pytest.raises(FormError) as exc:
        request_service.respond_to_request(row["id"], "   ")
    assert exc.value.message == "Please enter a response"
    assert fake.tables["user_requests"][0]["status"] == "review"


def test_unknown_status_is_rejected(fake, ctx):
    (row,) = fake.seed("user_requests", {"request_id": "44444", "status": "review"})
    with pytest.raises(FormError):
        request_service.update_request_status(row["id"], "pending")
