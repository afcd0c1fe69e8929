from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .content_models import ContentItem, PipelineEvent, PipelineTask, Podcast, SocialPost, Video, WRHQSocialPost, utcnow
from .pipeline_state import Crashed, transition
from .settings import ConfigError, get_runtime_config, read_int_env

logger = logging.getLogger("content_backend.worker")

TASK_TYPES = {"complete_media_pipeline", "embed_all_media"}
OPEN_STATUSES = ("queued", "processing", "retrying", "succeeded")
PENDING_STATUSES = ("queued", "retrying")

TaskHandler = Callable[[Session, UUID, Dict[str, Any], Dict[str, Any]], Dict[str, Any]]


def continuation_key(content_item_id: UUID, job_id: Optional[str] = None) -> str:
    """Dedupe key for the media continuation; one run per short-video job."""
    if job_id:
        return f"complete_media_pipeline:{content_item_id}:{job_id}"
    return f"complete_media_pipeline:{content_item_id}"


def find_open_task(db: Session, dedupe_key: str) -> Optional[PipelineTask]:
    return (
        db.query(PipelineTask)
        .filter(PipelineTask.dedupe_key == dedupe_key, PipelineTask.status.in_(OPEN_STATUSES))
        .order_by(PipelineTask.created_at.asc())
        .first()
    )


def enqueue_task(
    db: Session,
    *,
    content_item_id: UUID,
    task_type: str,
    payload: Optional[Dict[str, Any]] = None,
    dedupe_key: Optional[str] = None,
) -> Tuple[PipelineTask, bool]:
    """Queue a task unless an open task with the same ``dedupe_key`` exists.

    Returns ``(task, created)``. Failed and canceled tasks do not block a new
    one. The partial unique index on ``dedupe_key`` settles concurrent callers.
    The caller owns the commit.
    """
    if task_type not in TASK_TYPES:
        raise ValueError(f"Unknown task type {task_type}.")
    key = dedupe_key or f"{task_type}:{content_item_id}"
    existing = find_open_task(db, key)
    if existing:
        return existing, False

    task = PipelineTask(
        content_item_id=content_item_id,
        task_type=task_type,
        dedupe_key=key,
        payload=payload or {},
        status="queued",
    )
    try:
        with db.begin_nested():
            db.add(task)
            db.flush()
    except IntegrityError:
        existing = find_open_task(db, key)
        if existing:
            return existing, False
        raise

    db.add(
        PipelineEvent(
            content_item_id=content_item_id,
            event_type="task_enqueued",
            step=task_type,
            payload={"task_id": str(task.id), "dedupe_key": key},
        )
    )
    logger.info("worker.task.enqueued content_id=%s task_type=%s task_id=%s", content_item_id, task_type, task.id)
    return task, True


def cancel_tasks_for_item(db: Session, content_item_id: UUID) -> int:
    tasks = (
        db.query(PipelineTask)
        .filter(PipelineTask.content_item_id == content_item_id, PipelineTask.status.in_(PENDING_STATUSES))
        .all()
    )
    for task in tasks:
        task.status = "canceled"
        task.updated_at = utcnow()
        db.add(task)
    if tasks:
        logger.info("worker.task.canceled content_id=%s count=%s", content_item_id, len(tasks))
    return len(tasks)


def _run_complete_media_pipeline(
    db: Session, content_item_id: UUID, payload: Dict[str, Any], config: Dict[str, Any]
) -> Dict[str, Any]:
    from .media_embedding import complete_media_pipeline

    return complete_media_pipeline(
        db,
        content_item_id,
        video_url=payload.get("video_url"),
        thumbnail_url=payload.get("thumbnail_url"),
        duration=payload.get("duration"),
        config=config,
    )


def _run_embed_all_media(
    db: Session, content_item_id: UUID, payload: Dict[str, Any], config: Dict[str, Any]
) -> Dict[str, Any]:
    from .media_embedding import embed_all_media

    result = embed_all_media(db, content_item_id, config=config)
    if not result["success"]:
        raise RuntimeError(result.get("error") or "Embedding media failed.")
    return result


DEFAULT_HANDLERS: Dict[str, TaskHandler] = {
    "complete_media_pipeline": _run_complete_media_pipeline,
    "embed_all_media": _run_embed_all_media,
}


class PipelineTaskWorker:
    def __init__(
        self,
        db_sessionmaker: sessionmaker,
        *,
        handlers: Optional[Dict[str, TaskHandler]] = None,
    ):
        self._sessionmaker = db_sessionmaker
        self._handlers = dict(handlers or DEFAULT_HANDLERS)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_sweep = 0.0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        logger.info("worker.start")
        self._thread = threading.Thread(target=self._run, name="pipeline-task-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info("worker.stop")

    def _run(self) -> None:
        poll_interval = read_int_env("PIPELINE_WORKER_POLL_SECONDS", 2)
        sweep_interval = read_int_env("PIPELINE_SWEEP_SECONDS", 60)
        while not self._stop_event.is_set():
            try:
                processed = self.process_next_task()
                if not processed and time.monotonic() - self._last_sweep >= sweep_interval:
                    self._last_sweep = time.monotonic()
                    self.fail_stuck_generation()
                    self.sweep_processing_media()
            except Exception:
                logger.exception("worker.loop_error")
                processed = False
            if not processed:
                self._stop_event.wait(poll_interval)

    def process_next_task(self) -> bool:
        with self._sessionmaker() as session:
            task = (
                session.query(PipelineTask)
                .filter(PipelineTask.status.in_(PENDING_STATUSES))
                .order_by(PipelineTask.created_at.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if not task:
                session.rollback()
                return False

            task.status = "processing"
            task.attempt_count = int(task.attempt_count or 0) + 1
            task.updated_at = utcnow()
            session.add(task)
            session.commit()
            task_id = task.id
            logger.info("worker.task.claimed task_id=%s attempt=%s", task_id, task.attempt_count)

        self._process_claimed_task(task_id)
        return True

    def _process_claimed_task(self, task_id: UUID) -> None:
        max_attempts = read_int_env("PIPELINE_TASK_MAX_ATTEMPTS", 3)
        try:
            config = get_runtime_config()
        except ConfigError as exc:
            logger.warning("worker.task.config_error task_id=%s error=%s", task_id, str(exc))
            self._mark_failed_or_retry(task_id, max_attempts=max_attempts, error_message=str(exc))
            return

        with self._sessionmaker() as session:
            task = session.query(PipelineTask).filter(PipelineTask.id == task_id).first()
            if not task:
                return
            handler = self._handlers.get(task.task_type)
            item_exists = (
                session.query(ContentItem.id).filter(ContentItem.id == task.content_item_id).first() is not None
            )
            if not item_exists or handler is None:
                task.status = "canceled"
                task.last_error = "Content item no longer exists." if not item_exists else "No handler."
                task.updated_at = utcnow()
                session.add(task)
                session.commit()
                logger.info("worker.task.skipped task_id=%s reason=%s", task_id, task.last_error)
                return
            content_item_id = task.content_item_id
            payload = dict(task.payload or {})
            task_type = task.task_type

            try:
                result = handler(session, content_item_id, payload, config)
            except Exception as exc:
                session.rollback()
                if isinstance(exc, RuntimeError):
                    logger.warning("worker.task.failed task_id=%s task_type=%s error=%s", task_id, task_type, exc)
                    message = str(exc)
                else:
                    logger.exception("worker.task.unexpected_error task_id=%s task_type=%s", task_id, task_type)
                    message = f"Unexpected error ({exc.__class__.__name__}): {exc}"
                self._mark_failed_or_retry(task_id, max_attempts=max_attempts, error_message=message)
                return

            task = session.query(PipelineTask).filter(PipelineTask.id == task_id).first()
            if task:
                task.status = "succeeded"
                task.last_error = None
                task.updated_at = utcnow()
                session.add(task)
            session.add(
                PipelineEvent(
                    content_item_id=content_item_id,
                    event_type="succeeded",
                    step=task_type,
                    payload={"task_id": str(task_id), "result": _summarize(result)},
                )
            )
            session.commit()
            logger.info("worker.task.succeeded task_id=%s task_type=%s", task_id, task_type)

    def _mark_failed_or_retry(self, task_id: UUID, *, max_attempts: int, error_message: str) -> None:
        with self._sessionmaker() as session:
            task = session.query(PipelineTask).filter(PipelineTask.id == task_id).first()
            if not task:
                return

            attempts = int(task.attempt_count or 0)
            should_retry = attempts < max_attempts
            task.status = "retrying" if should_retry else "failed"
            task.last_error = error_message[:2000]
            task.updated_at = utcnow()
            session.add(task)
            session.add(
                PipelineEvent(
                    content_item_id=task.content_item_id,
                    event_type="failed",
                    step=task.task_type,
                    payload={
                        "task_id": str(task_id),
                        "error": error_message[:2000],
                        "attempt": attempts,
                        "max_attempts": max_attempts,
                        "will_retry": should_retry,
                    },
                )
            )
            session.commit()
            logger.warning(
                "worker.task.marked task_id=%s status=%s attempt=%s max_attempts=%s",
                task_id,
                task.status,
                attempts,
                max_attempts,
            )

    def sweep_processing_media(self) -> int:
        """Poll every PROCESSING podcast and short video, and every open social post, once."""
        from .job_poller import SOCIAL_OPEN_STATUSES, check_podcast_status, check_social_status, check_video_status

        try:
            config = get_runtime_config()
        except ConfigError as exc:
            logger.warning("worker.sweep.config_error error=%s", str(exc))
            return 0

        with self._sessionmaker() as session:
            podcast_items = [
                row.content_item_id
                for row in session.query(Podcast.content_item_id)
                .filter(Podcast.status == "PROCESSING", Podcast.autocontent_job_id.isnot(None))
                .all()
            ]
            video_items = [
                row.content_item_id
                for row in session.query(Video.content_item_id)
                .filter(
                    Video.video_type == "SHORT",
                    Video.status == "PROCESSING",
                    Video.provider_job_id.isnot(None),
                )
                .all()
            ]
            social_items = set()
            for model in (SocialPost, WRHQSocialPost):
                social_items.update(
                    row.content_item_id
                    for row in session.query(model.content_item_id)
                    .filter(model.status.in_(SOCIAL_OPEN_STATUSES), model.late_post_id.isnot(None))
                    .distinct()
                    .all()
                )

        checked = 0
        for content_item_id in podcast_items:
            with self._sessionmaker() as session:
                check_podcast_status(session, content_item_id, config=config)
            checked += 1
        for content_item_id in video_items:
            with self._sessionmaker() as session:
                check_video_status(session, content_item_id, config=config)
            checked += 1
        for content_item_id in sorted(social_items, key=str):
            with self._sessionmaker() as session:
                check_social_status(session, content_item_id, config=config)
            checked += 1
        if checked:
            logger.info("worker.sweep.done checked=%s", checked)
        return checked

    def fail_stuck_generation(self) -> int:
        """Move items left in GENERATING past the timeout to FAILED."""
        timeout_minutes = read_int_env("PIPELINE_GENERATION_TIMEOUT_MINUTES", 120)
        cutoff = utcnow() - timedelta(minutes=timeout_minutes)
        with self._sessionmaker() as session:
            items = (
                session.query(ContentItem)
                .filter(ContentItem.status == "GENERATING", ContentItem.updated_at < cutoff)
                .all()
            )
            for item in items:
                step = item.pipeline_step
                message = f"Generation made no progress for {timeout_minutes} minutes (step {step})."
                transition(session, item, Crashed(message))
                logger.warning("worker.generation.timed_out content_id=%s step=%s", item.id, step)
            session.commit()
        return len(items)


def _summarize(result: Any) -> Dict[str, Any]:
    if not isinstance(result, dict):
        return {}
    return {key: value for key, value in result.items() if isinstance(value, (str, int, float, bool, list, dict))}
