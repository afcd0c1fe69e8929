import json

import pytest

from content_backend.api.content_models import PipelineEvent
from content_backend.api.pipeline_state import (
    Crashed,
    Failed,
    GenerationFinished,
    GenerationStarted,
    InvalidTransition,
    ManualOverride,
    MediaPipelineCompleted,
    PublishFinished,
    PublishStarted,
    Review,
    StepStarted,
    transition,
)


def _state_events(db, item):
    return (
        db.query(PipelineEvent)
        .filter(PipelineEvent.content_item_id == item.id, PipelineEvent.event_type == "state_changed")
        .all()
    )


def test_initial_generation_moves_to_review(db, make_client, make_item):
    item = make_item(make_client())

    transition(db, item, GenerationStarted(initial=True))
    assert item.status == "GENERATING"
    transition(db, item, StepStarted("blog"))
    assert item.pipeline_step == "blog"
    state = transition(db, item, GenerationFinished(results={"blog": {"success": True}}, initial=True))
    db.commit()

    assert state == Review()
    assert item.status == "REVIEW"
    assert item.pipeline_step == "complete"
    assert item.last_error is None
    assert len(_state_events(db, item)) == 3


def test_initial_generation_failure_records_results(db, make_client, make_item):
    item = make_item(make_client())
    results = {"blog": {"success": True}, "images": {"success": False, "error": "boom"}}

    transition(db, item, GenerationStarted(initial=True))
    state = transition(db, item, GenerationFinished(results=results, initial=True))

    assert isinstance(state, Failed)
    assert item.status == "FAILED"
    assert json.loads(item.last_error)["images"]["success"] is False


def test_partial_generation_keeps_status(db, make_client, make_item):
    item = make_item(make_client(), status="REVIEW")

    transition(db, item, GenerationStarted(initial=False))
    transition(db, item, GenerationFinished(results={"social": {"success": False, "error": "x"}}, initial=False))

    assert item.status == "REVIEW"
    assert item.pipeline_step == "failed"
    assert item.needs_attention is True
    assert "social" in item.last_error


def test_generation_cannot_start_twice(db, make_client, make_item):
    item = make_item(make_client(), status="GENERATING")

    with pytest.raises(InvalidTransition):
        transition(db, item, GenerationStarted(initial=True))


def test_publish_is_blocked_while_generating(db, make_client, make_item):
    item = make_item(make_client(), status="GENERATING")

    with pytest.raises(InvalidTransition):
        transition(db, item, PublishStarted())


def test_publish_finished_schedules_or_fails(db, make_client, make_item):
    item = make_item(make_client(), status="REVIEW")

    transition(db, item, PublishStarted())
    assert item.status == "REVIEW"
    assert item.pipeline_step == "publishing"
    transition(db, item, PublishFinished(results={"client_blog": {"success": True}}))
    assert item.status == "SCHEDULED"

    transition(db, item, PublishFinished(results={"social": {"success": False, "error": "late"}}))
    assert item.status == "FAILED"


def test_media_pipeline_completion_publishes(db, make_client, make_item):
    item = make_item(make_client(), status="SCHEDULED", pipeline_step="media_pipeline")

    transition(db, item, MediaPipelineCompleted())

    assert item.status == "PUBLISHED"
    assert item.pipeline_step is None


def test_crash_and_manual_override(db, make_client, make_item):
    item = make_item(make_client(), status="GENERATING")

    transition(db, item, Crashed("worker died"))
    assert (item.status, item.pipeline_step, item.last_error) == ("FAILED", "failed", "worker died")

    transition(db, item, ManualOverride({"status": "draft", "last_error": None}))
    assert item.status == "DRAFT"
    assert item.last_error is None
    assert item.pipeline_step == "failed"

    with pytest.raises(InvalidTransition):
        transition(db, item, ManualOverride({"status": "ARCHIVED"}))


def test_unchanged_state_writes_no_event(db, make_client, make_item):
    item = make_item(make_client(), status="REVIEW", pipeline_step="publishing")

    transition(db, item, PublishStarted())
    db.commit()

    assert _state_events(db, item) == []
