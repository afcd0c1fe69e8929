"""Content item lifecycle.

``ContentItem.status``, ``pipeline_step`` and ``last_error`` are only ever
written through :func:`transition`. Every write that changes one of them
appends a ``state_changed`` row to ``pipeline_events``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from .content_models import ContentItem, PipelineEvent, utcnow

logger = logging.getLogger("content_backend.pipeline")

STATUSES = ("DRAFT", "GENERATING", "REVIEW", "SCHEDULED", "PUBLISHED", "FAILED")


class InvalidTransition(ValueError):
    pass


@dataclass(frozen=True)
class Draft:
    status = "DRAFT"


@dataclass(frozen=True)
class Generating:
    step: Optional[str] = None
    status = "GENERATING"


@dataclass(frozen=True)
class Review:
    status = "REVIEW"


@dataclass(frozen=True)
class Scheduled:
    status = "SCHEDULED"


@dataclass(frozen=True)
class Published:
    status = "PUBLISHED"


@dataclass(frozen=True)
class Failed:
    reason: Optional[str] = None
    status = "FAILED"


State = Union[Draft, Generating, Review, Scheduled, Published, Failed]


@dataclass(frozen=True)
class GenerationStarted:
    initial: bool


@dataclass(frozen=True)
class StepStarted:
    step: str


@dataclass(frozen=True)
class GenerationFinished:
    results: Dict[str, Any]
    initial: bool


@dataclass(frozen=True)
class PublishStarted:
    pass


@dataclass(frozen=True)
class PublishFinished:
    results: Dict[str, Any]


@dataclass(frozen=True)
class MediaPipelineStarted:
    pass


@dataclass(frozen=True)
class MediaPipelineCompleted:
    pass


@dataclass(frozen=True)
class Crashed:
    error: str


@dataclass(frozen=True)
class ManualOverride:
    fields: Dict[str, Any] = field(default_factory=dict)


Event = Union[
    GenerationStarted,
    StepStarted,
    GenerationFinished,
    PublishStarted,
    PublishFinished,
    MediaPipelineStarted,
    MediaPipelineCompleted,
    Crashed,
    ManualOverride,
]


def state_of(item: ContentItem) -> State:
    status = (item.status or "DRAFT").upper()
    if status == "GENERATING":
        return Generating(item.pipeline_step)
    if status == "REVIEW":
        return Review()
    if status == "SCHEDULED":
        return Scheduled()
    if status == "PUBLISHED":
        return Published()
    if status == "FAILED":
        return Failed(item.last_error)
    return Draft()


def all_succeeded(results: Dict[str, Any]) -> bool:
    return all(bool(result.get("success")) for result in results.values() if isinstance(result, dict))


def results_json(results: Dict[str, Any]) -> str:
    return json.dumps(results, default=str)


def _apply(
    item: ContentItem,
    *,
    status: Optional[str] = None,
    step: Any = ...,
    last_error: Any = ...,
) -> None:
    if status is not None:
        item.status = status
    if step is not ...:
        item.pipeline_step = step
    if last_error is not ...:
        item.last_error = last_error


def transition(db: Session, item: ContentItem, event: Event) -> State:
    """Apply ``event`` to ``item`` and return the resulting state.

    Raises :class:`InvalidTransition` for moves that are not allowed from the
    current state. The caller owns the commit.
    """
    before = state_of(item)
    snapshot = (item.status, item.pipeline_step, item.last_error)

    if isinstance(event, GenerationStarted):
        if isinstance(before, Generating):
            raise InvalidTransition("Content generation is already running.")
        if event.initial:
            _apply(item, status="GENERATING", step="starting")
        else:
            _apply(item, step="starting")

    elif isinstance(event, StepStarted):
        _apply(item, step=event.step)

    elif isinstance(event, GenerationFinished):
        success = all_succeeded(event.results)
        if event.initial:
            if not isinstance(before, Generating):
                raise InvalidTransition(f"Cannot finish generation from {before.status}.")
            _apply(
                item,
                status="REVIEW" if success else "FAILED",
                step="complete" if success else "failed",
                last_error=None if success else results_json(event.results),
            )
        else:
            _apply(
                item,
                step="complete" if success else "failed",
                last_error=None if success else results_json(event.results),
            )
            if not success:
                item.needs_attention = True

    elif isinstance(event, PublishStarted):
        if isinstance(before, Generating):
            raise InvalidTransition("Cannot publish while content generation is running.")
        _apply(item, step="publishing")

    elif isinstance(event, PublishFinished):
        success = all(
            result.get("success") is not False for result in event.results.values() if isinstance(result, dict)
        )
        _apply(
            item,
            status="SCHEDULED" if success else "FAILED",
            step="scheduled" if success else "failed",
            last_error=None if success else results_json(event.results),
        )

    elif isinstance(event, MediaPipelineStarted):
        _apply(item, step="media_pipeline")

    elif isinstance(event, MediaPipelineCompleted):
        _apply(item, status="PUBLISHED", step=None)

    elif isinstance(event, Crashed):
        _apply(item, status="FAILED", step="failed", last_error=event.error)

    elif isinstance(event, ManualOverride):
        status = event.fields.get("status")
        if status is not None:
            status = str(status).upper()
            if status not in STATUSES:
                raise InvalidTransition(f"Unknown status {status}.")
        _apply(
            item,
            status=status,
            step=event.fields.get("pipeline_step", ...),
            last_error=event.fields.get("last_error", ...),
        )

    else:
        raise InvalidTransition(f"Unknown event {type(event).__name__}.")

    after = state_of(item)
    if (item.status, item.pipeline_step, item.last_error) != snapshot:
        item.updated_at = utcnow()
        db.add(item)
        db.add(
            PipelineEvent(
                content_item_id=item.id,
                event_type="state_changed",
                step=item.pipeline_step,
                payload={
                    "event": type(event).__name__,
                    "from": snapshot[0],
                    "to": item.status,
                    "pipeline_step": item.pipeline_step,
                },
            )
        )
        logger.info(
            "pipeline.state.changed content_id=%s event=%s from=%s to=%s step=%s",
            item.id,
            type(event).__name__,
            snapshot[0],
            item.status,
            item.pipeline_step,
        )
    return after
