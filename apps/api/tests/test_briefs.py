"""Brief compilation and storage."""

from datetime import datetime, timezone
from decimal import Decimal

from app.db.enums import BriefStatus, MessageRole
from app.services import brief_service, storage_service, task_service

GENERATED = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _body(document: str) -> str:
    """Everything except the trailing Generated line."""
    return document.rsplit("\nGenerated:", 1)[0]


def test_brief_sections(db, org, client_user, make_task):
    task = make_task(
        client_user,
        org,
        title="Spring campaign",
        product_name="Sunrise Tea",
        deadline=datetime(2024, 4, 1, tzinfo=timezone.utc),
        estimated_price=Decimal("1500"),
    )
    task_service.append_message(
        db, task, MessageRole.USER, "See https://example.com/ref. and https://example.com/ref"
    )
    task_service.append_message(db, task, MessageRole.ASSISTANT, "Thanks!")
    db.refresh(task)

    document = brief_service.compile_task_brief(db, task, GENERATED)

    assert document.startswith("PROJECT BRIEF\n=============\n")
    assert "Title: Spring campaign" in document
    assert "Description: Not provided" in document
    # Falls back to the owning account
    assert f"Email: {client_user.email}" in document
    assert "Deadline: Monday, April 01, 2024" in document
    assert "Estimated Price: EUR 1,500.00" in document
    assert "Final Price: Not set" in document
    assert "LINKS\n-----\n- https://example.com/ref\n" in document
    assert "ASSETS" not in document
    assert "[1] CLIENT (" in document
    assert "[2] AI ASSISTANT (" in document
    assert document.endswith("Generated: 2024-03-10 12:00 UTC")


def test_brief_without_messages(db, org, client_user, make_task):
    task = make_task(client_user, org)
    document = brief_service.compile_task_brief(db, task, GENERATED)

    assert "No messages yet" in document
    assert "LINKS" not in document


def test_brief_is_deterministic_apart_from_timestamp(db, org, client_user, make_task):
    task = make_task(client_user, org, product_name="Sunrise Tea")
    task_service.append_message(db, task, MessageRole.USER, "Hello")
    db.refresh(task)

    first = brief_service.compile_task_brief(db, task, GENERATED)
    second = brief_service.compile_task_brief(db, task, datetime(2025, 1, 1, tzinfo=timezone.utc))

    assert first != second
    assert _body(first) == _body(second)


def test_extract_links_dedupes_in_order():
    links = brief_service.extract_links(
        ["http://b.example (and http://a.example)", "again http://b.example!"]
    )
    assert links == ["http://b.example", "http://a.example"]


def test_generate_and_store_writes_local_file(db, org, client_user, make_task):
    task = make_task(client_user, org, product_name="Sunrise Tea")

    stored = brief_service.generate_and_store(db, task.id)

    assert stored.brief_status == BriefStatus.SUCCEEDED.value
    assert stored.brief_url == f"/files/{task.id}/brief-{task.id}.txt"
    content = storage_service.read_local_url(stored.brief_url).decode("utf-8")
    assert "Product/Service: Sunrise Tea" in content


async def test_brief_endpoint_returns_text(org, client_user, make_task, client_factory):
    task = make_task(client_user, org)
    response = await client_factory(client_user).get(f"/tasks/{task.id}/brief")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text.startswith("PROJECT BRIEF")


async def test_brief_regeneration_is_queued(db, org, client_user, make_task, client_factory):
    task = make_task(client_user, org)
    response = await client_factory(client_user).post(f"/tasks/{task.id}/brief")

    assert response.status_code == 202
    assert response.json()["brief_status"] == BriefStatus.PENDING.value

    job = await client_factory(client_user).get(f"/jobs/{response.json()['job_id']}")
    assert job.status_code == 200
    assert job.json()["job_type"] == "generate_brief"


async def test_job_hidden_from_other_clients(db, org, client_user, make_user, make_task, client_factory):
    task = make_task(client_user, org)
    job = brief_service.queue_brief_generation(db, task)

    stranger = make_user()
    response = await client_factory(stranger).get(f"/jobs/{job.id}")
    assert response.status_code == 404
