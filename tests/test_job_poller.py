import uuid
from datetime import datetime, timedelta, timezone

import pytest

from content_backend.api import generation, job_poller
from content_backend.api.content_models import BlogPost, PipelineEvent, PipelineTask, Podcast, SocialPost, Video
from content_backend.api.content_schemas import GenerateRequest
from content_backend.api.integrations import autocontent, creatify, getlate
from content_backend.api.integrations.http import IntegrationError


def _add_podcast(db, item, **overrides):
    values = {
        "content_item_id": item.id,
        "client_id": item.client_id,
        "script": "<p>script</p>",
        "autocontent_job_id": "pod-1",
        "status": "PROCESSING",
    }
    values.update(overrides)
    db.add(Podcast(**values))
    db.commit()


def _add_video(db, item, **overrides):
    values = {
        "content_item_id": item.id,
        "client_id": item.client_id,
        "video_type": "SHORT",
        "provider_job_id": "vid-1",
        "status": "PROCESSING",
    }
    values.update(overrides)
    db.add(Video(**values))
    db.commit()


def _completed_video(job_id, *, config):
    return {
        "status": "completed",
        "video_url": "https://cdn.test/short.mp4",
        "thumbnail_url": "https://cdn.test/short.jpg",
        "duration": 28,
        "error": None,
    }


def test_continuation_is_enqueued_once(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(creatify, "check_video_status", _completed_video)
    item = make_item(make_client(), status="SCHEDULED")
    _add_podcast(db, item, status="READY", audio_url="https://cdn.test/ep.mp3")
    _add_video(db, item)

    first = job_poller.check_video_status(db, item.id, config=config)
    second = job_poller.check_video_status(db, item.id, config=config)
    podcast = job_poller.check_podcast_status(db, item.id, config=config)

    assert first["status"] == "ready"
    assert first["continuation_enqueued"] is True
    assert second["continuation_enqueued"] is False
    assert podcast["status"] == "ready"
    tasks = db.query(PipelineTask).all()
    assert len(tasks) == 1
    assert tasks[0].dedupe_key == f"complete_media_pipeline:{item.id}:vid-1"
    assert tasks[0].payload["video_url"] == "https://cdn.test/short.mp4"
    assert db.query(PipelineEvent).filter(PipelineEvent.event_type == "task_enqueued").count() == 1
    assert item.short_video_generated is True


def test_failed_video_waits_for_processing_podcast(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(
        creatify,
        "check_video_status",
        lambda job_id, *, config: {"status": "failed", "video_url": None, "error": "render failed"},
    )
    item = make_item(make_client(), status="SCHEDULED")
    _add_podcast(db, item)
    _add_video(db, item)

    result = job_poller.check_video_status(db, item.id, config=config)

    assert result["status"] == "failed"
    assert result["message"] == job_poller.WAITING_FOR_PODCAST
    assert db.query(PipelineTask).count() == 0


def test_podcast_completion_triggers_continuation_after_failed_video(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(
        autocontent,
        "check_podcast_status",
        lambda job_id, *, config: {"status": "completed", "audio_url": "https://cdn.test/ep.mp3", "duration": 312},
    )
    item = make_item(make_client(), status="SCHEDULED")
    _add_podcast(db, item)
    _add_video(db, item, status="FAILED")

    result = job_poller.check_podcast_status(db, item.id, config=config)

    assert result["status"] == "ready"
    assert result["continuation_enqueued"] is True
    task = db.query(PipelineTask).one()
    assert task.payload["video_url"] is None
    assert item.podcast_generated is True
    assert item.podcast_url == "https://cdn.test/ep.mp3"


def test_podcast_without_video_does_not_enqueue(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(
        autocontent,
        "check_podcast_status",
        lambda job_id, *, config: {"status": "completed", "audio_url": "https://cdn.test/ep.mp3", "duration": 10},
    )
    item = make_item(make_client())
    _add_podcast(db, item)

    result = job_poller.check_podcast_status(db, item.id, config=config)

    assert result["status"] == "ready"
    assert "continuation_enqueued" not in result
    assert db.query(PipelineTask).count() == 0


def test_schema_already_generated_skips_continuation(db, config, make_client, make_item):
    item = make_item(make_client(), schema_generated=True)
    _add_video(db, item, status="READY", video_url="https://cdn.test/short.mp4")

    result = job_poller.check_video_status(db, item.id, config=config)

    assert result == {
        "status": "ready",
        "video_url": "https://cdn.test/short.mp4",
        "thumbnail_url": None,
        "duration": None,
    }
    assert db.query(PipelineTask).count() == 0


def test_missing_rows_report_not_found(db, config, make_client, make_item):
    item = make_item(make_client())

    assert job_poller.check_podcast_status(db, item.id, config=config) == {"status": "not_found"}
    assert job_poller.check_video_status(db, item.id, config=config) == {"status": "not_found"}


def test_regenerated_short_video_queues_a_new_continuation(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(creatify, "check_video_status", _completed_video)
    monkeypatch.setattr(creatify, "create_short_video", lambda **kwargs: "vid-2")
    item = make_item(make_client(), status="PUBLISHED")
    db.add(
        BlogPost(
            content_item_id=item.id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content="<p>Body.</p>",
            excerpt="About an hour.",
        )
    )
    _add_podcast(db, item, status="READY", audio_url="https://cdn.test/ep.mp3")
    _add_video(db, item)

    first = job_poller.check_video_status(db, item.id, config=config)
    task = db.query(PipelineTask).one()
    task.status = "succeeded"
    item.schema_generated = True
    db.commit()

    result = generation.run_generation(db, item.id, GenerateRequest(generate_short_video=True), config=config)
    second = job_poller.check_video_status(db, item.id, config=config)

    assert first["continuation_enqueued"] is True
    assert result["success"] is True
    assert second["status"] == "ready"
    assert second["continuation_enqueued"] is True
    keys = sorted(row.dedupe_key for row in db.query(PipelineTask).all())
    assert keys == [f"complete_media_pipeline:{item.id}:vid-1", f"complete_media_pipeline:{item.id}:vid-2"]


def _add_social(db, item, platform, **overrides):
    values = {
        "content_item_id": item.id,
        "client_id": item.client_id,
        "platform": platform,
        "caption": f"{platform} caption",
        "status": "SCHEDULED",
        "late_post_id": f"late-{platform}",
    }
    values.update(overrides)
    db.add(SocialPost(**values))
    db.commit()


def test_social_status_updates_resolved_posts(db, config, make_client, make_item, monkeypatch):
    checked = []

    def _status(post_id, *, config):
        checked.append(post_id)
        if post_id == "late-linkedin":
            raise IntegrationError("HTTP 503 from getlate")
        status = {"late-facebook": "published", "late-instagram": "processing"}[post_id]
        return {"post_id": post_id, "status": status, "platform_post_url": "https://fb.test/p/1", "error": None}

    monkeypatch.setattr(getlate, "get_post_status", _status)
    item = make_item(make_client(), status="SCHEDULED")
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    _add_social(db, item, "facebook", scheduled_time=past)
    _add_social(db, item, "instagram", status="PROCESSING")
    _add_social(db, item, "linkedin", scheduled_time=past)
    _add_social(db, item, "gbp", scheduled_time=datetime.now(timezone.utc) + timedelta(days=2))
    _add_social(db, item, "twitter", status="DRAFT")

    result = job_poller.check_social_status(db, item.id, config=config)

    assert sorted(checked) == ["late-facebook", "late-instagram", "late-linkedin"]
    assert result["updated"] == 1
    assert result["failed"] == 0
    assert result["still_processing"] == 3
    assert [(post["platform"], post["status"]) for post in result["posts"]] == [("facebook", "PUBLISHED")]
    rows = {row.platform: row for row in db.query(SocialPost).all()}
    assert rows["facebook"].status == "PUBLISHED"
    assert rows["facebook"].published_url == "https://fb.test/p/1"
    assert rows["facebook"].published_at is not None
    assert rows["instagram"].status == "PROCESSING"
    assert rows["linkedin"].status == "SCHEDULED"
    assert rows["gbp"].status == "SCHEDULED"


def test_social_status_for_missing_item(db, config):
    with pytest.raises(LookupError):
        job_poller.check_social_status(db, uuid.uuid4(), config=config)
