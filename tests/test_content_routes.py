import uuid

import pytest

from content_backend.api.content_models import ContentItem, PipelineEvent, PipelineTask, SocialPost
from content_backend.api.integrations import getlate
from content_backend.api.routers import content_routes
from content_backend.api.routers.content_routes import coerce_patch_fields
from content_backend.api.task_queue import enqueue_task


def _create_client(api_client):
    response = api_client.post(
        "/api/clients",
        json={
            "business_name": "Clearview Auto Glass",
            "city": "Boise",
            "state": "ID",
            "social_platforms": ["Facebook", "instagram"],
            "social_account_ids": {"Facebook": "fb-1"},
        },
    )
    assert response.status_code == 201
    return response.json()


def _create_item(api_client, client_id):
    response = api_client.post(
        "/api/content",
        json={"client_id": client_id, "paa_question": "  Can a chipped windshield be repaired?  "},
    )
    assert response.status_code == 201
    return response.json()


def test_create_and_list_content(api_client):
    client = _create_client(api_client)
    item = _create_item(api_client, client["id"])

    assert client["social_platforms"] == ["facebook", "instagram"]
    assert client["social_account_ids"] == {"facebook": "fb-1"}
    assert item["status"] == "DRAFT"
    assert item["paa_question"] == "Can a chipped windshield be repaired?"
    assert item["flags"]["blog_generated"] is False

    listed = api_client.get("/api/content", params={"client_id": client["id"]}).json()
    assert [row["id"] for row in listed] == [item["id"]]


def test_create_content_for_unknown_client(api_client):
    response = api_client.post(
        "/api/content", json={"client_id": str(uuid.uuid4()), "paa_question": "Is this a real client?"}
    )

    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "Client not found."}


def test_patch_applies_allow_listed_fields(api_client, db):
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.patch(
        f"/api/content/{item['id']}",
        json={"blog_approved": True, "notes": "Looks good", "images_total_count": 2, "not_a_column": "x"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["flags"]["blog_approved"] is True
    assert body["notes"] == "Looks good"
    assert body["counts"]["images_total_count"] == 2


def test_patch_rejects_wrong_types(api_client):
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.patch(f"/api/content/{item['id']}", json={"blog_approved": "yes"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "blog_approved must be a boolean."}


def test_patch_status_goes_through_state_machine(api_client, db):
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.patch(f"/api/content/{item['id']}", json={"status": "review"})
    assert response.status_code == 200
    assert response.json()["status"] == "REVIEW"
    event = db.query(PipelineEvent).filter(PipelineEvent.event_type == "state_changed").one()
    assert event.payload["event"] == "ManualOverride"

    rejected = api_client.patch(f"/api/content/{item['id']}", json={"status": "ARCHIVED"})
    assert rejected.status_code == 409


def test_generate_conflicts_while_generating(api_client, db):
    item = _create_item(api_client, _create_client(api_client)["id"])
    row = db.query(ContentItem).filter(ContentItem.id == uuid.UUID(item["id"])).one()
    row.status = "GENERATING"
    db.commit()

    response = api_client.post(f"/api/content/{item['id']}/generate", json={"generate_blog": True})

    assert response.status_code == 409
    assert response.json()["ok"] is False


def test_publish_prerequisite_is_bad_request(api_client):
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.post(f"/api/content/{item['id']}/publish", json={})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Blog must be generated before publishing"}


def test_publish_approval_is_conflict(api_client, monkeypatch):
    monkeypatch.delenv("PUBLISH_REQUIRE_APPROVAL", raising=False)
    item = _create_item(api_client, _create_client(api_client)["id"])
    api_client.patch(f"/api/content/{item['id']}", json={"blog_generated": True})

    response = api_client.post(
        f"/api/content/{item['id']}/publish",
        json={"publish_wrhq_blog": False, "schedule_social": False, "schedule_wrhq_social": False},
    )

    assert response.status_code == 409
    assert response.json()["error"] == "Blog must be approved before publishing"


def test_generate_accepts_camel_case_options(api_client, monkeypatch):
    seen = []

    def _run(db, content_item_id, options):
        seen.append(options)
        return {"success": True, "results": {"blog": {"success": True}}}

    monkeypatch.setattr(content_routes, "run_generation", _run)
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.post(
        f"/api/content/{item['id']}/generate", json={"generateBlog": True, "generateShortVideo": True}
    )

    assert response.status_code == 200
    assert seen[0].generate_blog is True
    assert seen[0].generate_short_video is True
    assert seen[0].generate_images is False


def test_generate_rejects_unknown_options(api_client, monkeypatch):
    monkeypatch.setattr(content_routes, "run_generation", lambda *args: pytest.fail("should not run"))
    item = _create_item(api_client, _create_client(api_client)["id"])

    response = api_client.post(f"/api/content/{item['id']}/generate", json={"generateBlogPost": True})

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_publish_accepts_camel_case_options(api_client, monkeypatch):
    monkeypatch.delenv("PUBLISH_REQUIRE_APPROVAL", raising=False)
    item = _create_item(api_client, _create_client(api_client)["id"])
    api_client.patch(f"/api/content/{item['id']}", json={"blog_generated": True})

    response = api_client.post(
        f"/api/content/{item['id']}/publish",
        json={"publishWrhqBlog": False, "scheduleSocial": False, "scheduleWrhqSocial": False},
    )

    assert response.status_code == 409
    assert response.json()["error"] == "Blog must be approved before publishing"


def test_social_status_route_reports_resolved_posts(api_client, db, monkeypatch):
    monkeypatch.setattr(
        getlate,
        "get_post_status",
        lambda post_id, *, config: {"post_id": post_id, "status": "failed", "platform_post_url": None, "error": None},
    )
    client = _create_client(api_client)
    item = _create_item(api_client, client["id"])
    db.add(
        SocialPost(
            content_item_id=uuid.UUID(item["id"]),
            client_id=uuid.UUID(client["id"]),
            platform="facebook",
            caption="caption",
            status="PROCESSING",
            late_post_id="late-1",
        )
    )
    db.commit()

    response = api_client.get(f"/api/content/{item['id']}/social-status")

    assert response.status_code == 200
    body = response.json()
    assert (body["updated"], body["failed"], body["still_processing"]) == (0, 1, 0)
    assert body["posts"][0]["platform"] == "facebook"
    assert body["posts"][0]["status"] == "FAILED"
    assert db.query(SocialPost).one().error_message == "Post failed"


def test_social_status_route_unknown_item(api_client):
    response = api_client.get(f"/api/content/{uuid.uuid4()}/social-status")

    assert response.status_code == 404


def test_delete_cancels_pending_tasks(api_client, db):
    item = _create_item(api_client, _create_client(api_client)["id"])
    item_id = uuid.UUID(item["id"])
    enqueue_task(db, content_item_id=item_id, task_type="embed_all_media")
    db.commit()

    response = api_client.delete(f"/api/content/{item['id']}")

    assert response.status_code == 200
    assert response.json()["data"] == {"canceled_tasks": 1}
    assert db.query(ContentItem).count() == 0
    assert db.query(PipelineTask).one().status == "canceled"
    assert api_client.get(f"/api/content/{item['id']}").status_code == 404


def test_events_are_listed_in_order(api_client):
    item = _create_item(api_client, _create_client(api_client)["id"])
    api_client.patch(f"/api/content/{item['id']}", json={"status": "REVIEW"})
    api_client.patch(f"/api/content/{item['id']}", json={"status": "DRAFT"})

    events = api_client.get(f"/api/content/{item['id']}/events").json()

    assert [(event["payload"]["from"], event["payload"]["to"]) for event in events] == [
        ("DRAFT", "REVIEW"),
        ("REVIEW", "DRAFT"),
    ]


def test_validation_errors_use_envelope(api_client):
    response = api_client.post("/api/content", json={"paa_question": "Missing a client id"})

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_coerce_patch_fields_parses_dates():
    updates = coerce_patch_fields(
        {"scheduled_date": "2030-02-01", "client_blog_published_at": "2030-02-01T10:00:00Z", "priority": 3.0}
    )

    assert updates["scheduled_date"].isoformat() == "2030-02-01"
    assert updates["client_blog_published_at"].utcoffset().total_seconds() == 0
    assert updates["priority"] == 3
    with pytest.raises(ValueError):
        coerce_patch_fields({"paa_question": "   "})
