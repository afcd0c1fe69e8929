import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from content_backend.api import task_queue
from content_backend.api.content_models import (
    ContentItem,
    PipelineEvent,
    PipelineTask,
    SocialPost,
    WRHQSocialPost,
    utcnow,
)
from content_backend.api.integrations import getlate
from content_backend.api.task_queue import (
    PipelineTaskWorker,
    cancel_tasks_for_item,
    continuation_key,
    enqueue_task,
)


def _enqueue(db, item_id, **kwargs):
    return enqueue_task(
        db,
        content_item_id=item_id,
        task_type="complete_media_pipeline",
        dedupe_key=continuation_key(item_id),
        **kwargs,
    )


def _task(db, task_id):
    db.expire_all()
    return db.query(PipelineTask).filter(PipelineTask.id == task_id).one()


def test_enqueue_dedupes_open_tasks(db, make_client, make_item):
    item_id = make_item(make_client()).id

    first, created = _enqueue(db, item_id, payload={"video_url": "https://cdn.test/a.mp4"})
    second, created_again = _enqueue(db, item_id)
    db.commit()

    assert created is True
    assert created_again is False
    assert second.id == first.id
    assert db.query(PipelineTask).count() == 1
    assert db.query(PipelineEvent).filter(PipelineEvent.event_type == "task_enqueued").count() == 1


def test_failed_and_canceled_tasks_do_not_block(db, make_client, make_item):
    item_id = make_item(make_client()).id
    task, _ = _enqueue(db, item_id)
    task.status = "failed"
    db.commit()

    retry, created = _enqueue(db, item_id)
    db.commit()

    assert created is True
    assert retry.id != task.id


def test_open_dedupe_index_rejects_duplicates(db):
    key = f"complete_media_pipeline:{uuid.uuid4()}"
    item_id = uuid.uuid4()
    db.add(PipelineTask(content_item_id=item_id, task_type="complete_media_pipeline", dedupe_key=key, status="failed"))
    db.add(PipelineTask(content_item_id=item_id, task_type="complete_media_pipeline", dedupe_key=key, status="failed"))
    db.add(PipelineTask(content_item_id=item_id, task_type="complete_media_pipeline", dedupe_key=key, status="queued"))
    db.commit()

    db.add(PipelineTask(content_item_id=item_id, task_type="complete_media_pipeline", dedupe_key=key, status="queued"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_unknown_task_type_is_rejected(db):
    with pytest.raises(ValueError):
        enqueue_task(db, content_item_id=uuid.uuid4(), task_type="send_email")


def test_cancel_only_touches_pending_tasks(db, make_client, make_item):
    item_id = make_item(make_client()).id
    queued, _ = _enqueue(db, item_id)
    done, _ = enqueue_task(db, content_item_id=item_id, task_type="embed_all_media")
    done.status = "succeeded"
    db.commit()

    assert cancel_tasks_for_item(db, item_id) == 1
    db.commit()
    statuses = {task.task_type: task.status for task in db.query(PipelineTask).all()}
    assert statuses == {"complete_media_pipeline": "canceled", "embed_all_media": "succeeded"}


def test_worker_runs_handler_and_blocks_reenqueue(db, session_factory, make_client, make_item):
    item_id = make_item(make_client()).id
    task, _ = _enqueue(db, item_id, payload={"video_url": "https://cdn.test/a.mp4"})
    task_id = task.id
    db.commit()
    seen = []

    def _handler(session, content_item_id, payload, config):
        seen.append((content_item_id, payload["video_url"]))
        return {"success": True, "steps": {}}

    worker = PipelineTaskWorker(session_factory, handlers={"complete_media_pipeline": _handler})

    assert worker.process_next_task() is True
    assert worker.process_next_task() is False
    assert seen == [(item_id, "https://cdn.test/a.mp4")]
    finished = _task(db, task_id)
    assert finished.status == "succeeded"
    assert finished.attempt_count == 1
    _, created = _enqueue(db, item_id)
    assert created is False


def test_worker_retries_until_max_attempts(db, session_factory, make_client, make_item, monkeypatch):
    monkeypatch.setenv("PIPELINE_TASK_MAX_ATTEMPTS", "2")
    item_id = make_item(make_client()).id
    task, _ = _enqueue(db, item_id)
    task_id = task.id
    db.commit()

    def _handler(session, content_item_id, payload, config):
        raise RuntimeError("wordpress unavailable")

    worker = PipelineTaskWorker(session_factory, handlers={"complete_media_pipeline": _handler})

    assert worker.process_next_task() is True
    assert _task(db, task_id).status == "retrying"
    db.commit()
    assert worker.process_next_task() is True
    failed = _task(db, task_id)
    assert failed.status == "failed"
    assert failed.attempt_count == 2
    assert failed.last_error == "wordpress unavailable"
    db.commit()
    assert worker.process_next_task() is False


def test_worker_cancels_tasks_for_deleted_items(db, session_factory):
    task, _ = _enqueue(db, uuid.uuid4())
    task_id = task.id
    db.commit()

    worker = PipelineTaskWorker(session_factory, handlers={"complete_media_pipeline": lambda *args: {}})

    assert worker.process_next_task() is True
    skipped = _task(db, task_id)
    assert skipped.status == "canceled"
    assert skipped.last_error == "Content item no longer exists."


def test_worker_fails_items_stuck_in_generation(db, session_factory, make_client, make_item, monkeypatch):
    monkeypatch.setenv("PIPELINE_GENERATION_TIMEOUT_MINUTES", "120")
    client = make_client()
    stuck = make_item(client, status="GENERATING", pipeline_step="images")
    fresh = make_item(client, status="GENERATING", pipeline_step="blog")
    stuck.updated_at = utcnow() - timedelta(hours=3)
    stuck_id, fresh_id = stuck.id, fresh.id
    db.commit()

    worker = PipelineTaskWorker(session_factory)

    assert worker.fail_stuck_generation() == 1
    db.expire_all()
    failed = db.get(ContentItem, stuck_id)
    assert failed.status == "FAILED"
    assert failed.pipeline_step == "failed"
    assert failed.last_error == "Generation made no progress for 120 minutes (step images)."
    assert db.get(ContentItem, fresh_id).status == "GENERATING"
    event = db.query(PipelineEvent).filter(PipelineEvent.event_type == "state_changed").one()
    assert event.payload["event"] == "Crashed"
    db.commit()
    assert worker.fail_stuck_generation() == 0


def test_sweep_resolves_open_social_posts(db, session_factory, config, make_client, make_item, monkeypatch):
    statuses = {
        "late-1": {
            "post_id": "late-1",
            "status": "published",
            "platform_post_url": "https://fb.test/p/1",
            "error": None,
        },
        "late-2": {"post_id": "late-2", "status": "failed", "platform_post_url": None, "error": "token expired"},
    }
    monkeypatch.setattr(getlate, "get_post_status", lambda post_id, *, config: statuses[post_id])
    monkeypatch.setattr(task_queue, "get_runtime_config", lambda: config)
    item = make_item(make_client(), status="SCHEDULED")
    db.add(
        SocialPost(
            content_item_id=item.id,
            client_id=item.client_id,
            platform="facebook",
            caption="caption",
            status="PROCESSING",
            late_post_id="late-1",
        )
    )
    db.add(
        WRHQSocialPost(
            content_item_id=item.id,
            platform="youtube",
            caption="caption",
            media_type="video",
            status="SCHEDULED",
            late_post_id="late-2",
        )
    )
    db.commit()

    worker = PipelineTaskWorker(session_factory)

    assert worker.sweep_processing_media() == 1
    db.expire_all()
    social = db.query(SocialPost).one()
    assert social.status == "PUBLISHED"
    assert social.published_url == "https://fb.test/p/1"
    wrhq = db.query(WRHQSocialPost).one()
    assert wrhq.status == "FAILED"
    assert wrhq.error_message == "token expired"
