"""Status checks for long-running external jobs and scheduled social posts.

The checks are safe to call repeatedly, from the HTTP endpoints or from the
worker sweep. Once the short video and the podcast have both resolved, the
remaining media pipeline is queued as a ``complete_media_pipeline`` task. Its
dedupe key carries the short-video job id, so each rendered video gets one run
and a regenerated video gets a fresh one.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .content_models import ContentItem, Podcast, SocialPost, Video, WRHQSocialPost, utcnow
from .integrations import autocontent, creatify, getlate
from .integrations.http import IntegrationError
from .settings import get_runtime_config
from .task_queue import continuation_key, enqueue_task

logger = logging.getLogger("content_backend.poller")

PODCAST_DONE_STATUSES = {"READY", "PUBLISHED", "FAILED"}
WAITING_FOR_PODCAST = "Waiting for podcast to complete before running schema..."


def _load_podcast(db: Session, content_item_id: UUID) -> Optional[Podcast]:
    return db.query(Podcast).filter(Podcast.content_item_id == content_item_id).first()


def _load_short_video(db: Session, content_item_id: UUID) -> Optional[Video]:
    return (
        db.query(Video)
        .filter(Video.content_item_id == content_item_id, Video.video_type == "SHORT")
        .first()
    )


def podcast_done(item: ContentItem, podcast: Optional[Podcast]) -> bool:
    return podcast is None or podcast.status in PODCAST_DONE_STATUSES or bool(item.podcast_generated)


def schedule_continuation(db: Session, item: ContentItem, video: Optional[Video]) -> bool:
    """Queue the remaining media pipeline for ``item``. True when a new task was created."""
    ready = video is not None and video.status == "READY" and video.video_url
    _, created = enqueue_task(
        db,
        content_item_id=item.id,
        task_type="complete_media_pipeline",
        dedupe_key=continuation_key(item.id, video.provider_job_id if video is not None else None),
        payload={
            "video_url": video.video_url if ready else None,
            "thumbnail_url": video.thumbnail_url if ready else None,
            "duration": video.duration if ready else None,
        },
    )
    if created:
        logger.info("poller.continuation.enqueued content_id=%s", item.id)
    return created


def _media(video: Video) -> Dict[str, Any]:
    return {"video_url": video.video_url, "thumbnail_url": video.thumbnail_url, "duration": video.duration}


def check_podcast_status(
    db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    podcast = _load_podcast(db, content_item_id)
    if not podcast:
        return {"status": "not_found"}

    if podcast.status == "READY" and podcast.audio_url:
        return {"status": "ready", "audio_url": podcast.audio_url, "duration": podcast.duration}

    if podcast.status != "PROCESSING" or not podcast.autocontent_job_id:
        return {"status": (podcast.status or "unknown").lower()}

    run_config = config or get_runtime_config()
    try:
        result = autocontent.check_podcast_status(podcast.autocontent_job_id, config=run_config)
    except IntegrationError as exc:
        logger.warning("poller.podcast.check_failed content_id=%s error=%s", content_item_id, str(exc))
        return {"status": "processing", "error": str(exc)}

    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if result["status"] == "completed" and result["audio_url"]:
        podcast.audio_url = result["audio_url"]
        podcast.duration = result["duration"]
        podcast.status = "READY"
        podcast.updated_at = utcnow()
        db.add(podcast)
        response: Dict[str, Any] = {
            "status": "ready",
            "audio_url": result["audio_url"],
            "duration": result["duration"],
        }
        if item:
            item.podcast_generated = True
            item.podcast_status = "ready"
            item.podcast_url = result["audio_url"]
            item.updated_at = utcnow()
            db.add(item)
        logger.info("poller.podcast.ready content_id=%s", content_item_id)
    elif result["status"] == "failed":
        podcast.status = "FAILED"
        podcast.updated_at = utcnow()
        db.add(podcast)
        if item:
            item.podcast_status = "failed"
            item.updated_at = utcnow()
            db.add(item)
        response = {"status": "failed", "error": result.get("error")}
        logger.warning("poller.podcast.failed content_id=%s error=%s", content_item_id, result.get("error"))
    else:
        return {"status": "processing"}

    if item and not item.schema_generated:
        video = _load_short_video(db, content_item_id)
        if video is not None and video.status in {"READY", "FAILED"}:
            response["continuation_enqueued"] = schedule_continuation(db, item, video)
    db.commit()
    return response


def check_video_status(
    db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    video = _load_short_video(db, content_item_id)
    if not video:
        return {"status": "not_found"}

    if video.status == "PUBLISHED" and video.video_url:
        return {"status": "published", **_media(video)}

    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if item is None:
        return {"status": "not_found"}

    if video.status in {"READY", "FAILED"}:
        response: Dict[str, Any] = {"status": video.status.lower()}
        if video.status == "READY":
            response.update(_media(video))
        if item.schema_generated:
            return response
        if not podcast_done(item, _load_podcast(db, content_item_id)):
            response["message"] = WAITING_FOR_PODCAST
            return response
        response["continuation_enqueued"] = schedule_continuation(db, item, video)
        response["message"] = "Completing remaining pipeline steps..."
        db.commit()
        return response

    if video.status != "PROCESSING" or not video.provider_job_id:
        return {"status": (video.status or "unknown").lower()}

    run_config = config or get_runtime_config()
    try:
        result = creatify.check_video_status(video.provider_job_id, config=run_config)
    except IntegrationError as exc:
        logger.warning("poller.video.check_failed content_id=%s error=%s", content_item_id, str(exc))
        return {"status": "processing", "error": str(exc)}

    if result["status"] == "completed" and result["video_url"]:
        video.video_url = result["video_url"]
        video.thumbnail_url = result["thumbnail_url"]
        video.duration = result["duration"]
        video.status = "READY"
        video.updated_at = utcnow()
        item.short_video_generated = True
        item.short_video_status = "ready"
        response = {"status": "ready", **_media(video)}
        logger.info("poller.video.ready content_id=%s", content_item_id)
    elif result["status"] == "failed":
        video.status = "FAILED"
        video.updated_at = utcnow()
        item.short_video_status = "failed"
        response = {"status": "failed", "error": result.get("error")}
        logger.warning("poller.video.failed content_id=%s error=%s", content_item_id, result.get("error"))
    else:
        return {"status": "processing"}

    item.updated_at = utcnow()
    db.add(video)
    db.add(item)
    if podcast_done(item, _load_podcast(db, content_item_id)):
        response["continuation_enqueued"] = schedule_continuation(db, item, video)
    else:
        response["message"] = WAITING_FOR_PODCAST
    db.commit()
    return response


SOCIAL_OPEN_STATUSES = ("SCHEDULED", "PROCESSING")


def _social_due(row: Any, now: datetime) -> bool:
    when = row.scheduled_time
    if row.status != "SCHEDULED" or when is None:
        return True
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when <= now


def open_social_rows(db: Session, content_item_id: UUID) -> List[Any]:
    rows: List[Any] = []
    for model in (SocialPost, WRHQSocialPost):
        rows.extend(
            db.query(model)
            .filter(
                model.content_item_id == content_item_id,
                model.status.in_(SOCIAL_OPEN_STATUSES),
                model.late_post_id.isnot(None),
            )
            .all()
        )
    return rows


def check_social_status(
    db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Ask GetLate about every scheduled or processing social post of the item.

    Rows that GetLate reports as published or failed are updated; the rest are
    left alone and counted as still processing.
    """
    if db.query(ContentItem.id).filter(ContentItem.id == content_item_id).first() is None:
        raise LookupError("Content item not found.")
    rows = open_social_rows(db, content_item_id)
    summary: Dict[str, Any] = {"updated": 0, "still_processing": 0, "failed": 0, "posts": []}
    if not rows:
        return summary

    run_config = config or get_runtime_config()
    now = datetime.now(timezone.utc)
    for row in rows:
        if not _social_due(row, now):
            summary["still_processing"] += 1
            continue
        try:
            result = getlate.get_post_status(str(row.late_post_id), config=run_config)
        except IntegrationError as exc:
            logger.warning(
                "poller.social.check_failed content_id=%s platform=%s error=%s", content_item_id, row.platform, exc
            )
            summary["still_processing"] += 1
            continue

        if result["status"] == "published":
            row.status = "PUBLISHED"
            row.published_at = utcnow()
            row.published_url = result.get("platform_post_url") or row.published_url
            row.error_message = None
            summary["updated"] += 1
        elif result["status"] == "failed":
            row.status = "FAILED"
            row.error_message = str(result.get("error") or "Post failed")[:500]
            summary["failed"] += 1
        else:
            summary["still_processing"] += 1
            continue
        row.updated_at = utcnow()
        db.add(row)
        summary["posts"].append(
            {"id": str(row.id), "platform": row.platform, "status": row.status, "published_url": row.published_url}
        )
        logger.info(
            "poller.social.resolved content_id=%s platform=%s status=%s", content_item_id, row.platform, row.status
        )
    db.commit()
    return summary
