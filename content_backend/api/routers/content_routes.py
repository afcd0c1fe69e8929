from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..content_models import (
    BlogPost,
    Client,
    ContentItem,
    Image,
    PipelineEvent,
    Podcast,
    SocialPost,
    User,
    Video,
    WRHQBlogPost,
    WRHQSocialPost,
    utcnow,
)
from ..content_schemas import (
    PATCH_BOOLEAN_FIELDS,
    PATCH_DATE_FIELDS,
    PATCH_NUMBER_FIELDS,
    PATCH_STATE_FIELDS,
    PATCH_STRING_FIELDS,
    ActionOut,
    BlogPostOut,
    ContentItemCreate,
    ContentItemDetailOut,
    ContentItemOut,
    ContentItemUpdate,
    EmbedAllMediaOut,
    GenerateRequest,
    ImageOut,
    MediaStatusOut,
    PipelineEventOut,
    PodcastOut,
    PublishRequest,
    SocialPostOut,
    SocialStatusOut,
    StepRunOut,
    VideoOut,
)
from ..db import get_db
from ..generation import run_generation
from ..integrations.http import IntegrationError
from ..integrations.llm import LLMError
from ..job_poller import check_podcast_status, check_social_status, check_video_status
from ..media_embedding import PrerequisiteError, embed_all_media, republish_blog
from ..pipeline_state import InvalidTransition, ManualOverride, transition
from ..publishing import ApprovalRequired, publish_podcast, run_publish
from ..settings import ConfigError
from ..task_queue import cancel_tasks_for_item

router = APIRouter(prefix="/api/content", tags=["content"])
logger = logging.getLogger("content_backend.pipeline")

FLAG_FIELDS = tuple(sorted(PATCH_BOOLEAN_FIELDS - {"needs_attention"}))
COUNT_FIELDS = tuple(sorted(PATCH_NUMBER_FIELDS - {"priority"}))
CHILD_MODELS = (BlogPost, WRHQBlogPost, Image, Podcast, Video, SocialPost, WRHQSocialPost)


@contextmanager
def _pipeline_errors(action: str) -> Iterator[None]:
    try:
        yield
    except HTTPException:
        raise
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ApprovalRequired, InvalidTransition) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PrerequisiteError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except (IntegrationError, LLMError) as exc:
        logger.warning("pipeline.route.integration_error action=%s error=%s", action, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("pipeline.route.failed action=%s", action)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}."
        ) from exc


def _get_item_or_404(db: Session, content_item_id: UUID) -> ContentItem:
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content item not found.")
    return item


def item_to_out(item: ContentItem) -> ContentItemOut:
    return ContentItemOut(**_item_fields(item))


def _item_fields(item: ContentItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "client_id": item.client_id,
        "paa_question": item.paa_question,
        "topic": item.topic,
        "scheduled_date": item.scheduled_date,
        "scheduled_time": item.scheduled_time,
        "priority": int(item.priority or 0),
        "notes": item.notes,
        "status": item.status,
        "pipeline_step": item.pipeline_step,
        "last_error": item.last_error,
        "needs_attention": bool(item.needs_attention),
        "flags": {name: bool(getattr(item, name)) for name in FLAG_FIELDS},
        "client_blog_url": item.client_blog_url,
        "wrhq_blog_url": item.wrhq_blog_url,
        "podcast_status": item.podcast_status,
        "podcast_url": item.podcast_url,
        "short_video_status": item.short_video_status,
        "short_video_description": item.short_video_description,
        "longform_video_url": item.longform_video_url,
        "counts": {name: int(getattr(item, name) or 0) for name in COUNT_FIELDS},
        "schema_last_updated": item.schema_last_updated,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


def _blog_to_out(post: Any) -> BlogPostOut:
    return BlogPostOut(
        id=post.id,
        title=post.title,
        slug=post.slug,
        content=post.content,
        excerpt=post.excerpt,
        meta_title=post.meta_title,
        meta_description=post.meta_description,
        focus_keyword=post.focus_keyword,
        word_count=int(post.word_count or 0),
        wordpress_post_id=post.wordpress_post_id,
        wordpress_url=post.wordpress_url,
        published_at=post.published_at,
    )


def _social_to_out(post: Any) -> SocialPostOut:
    return SocialPostOut(
        id=post.id,
        platform=post.platform,
        caption=post.caption,
        hashtags=list(post.hashtags or []),
        first_comment=post.first_comment,
        media_type=post.media_type,
        media_urls=list(post.media_urls or []),
        approved=bool(post.approved),
        status=post.status,
        late_post_id=post.late_post_id,
        published_url=post.published_url,
        error_message=post.error_message,
    )


def item_to_detail(db: Session, item: ContentItem) -> ContentItemDetailOut:
    blog = db.query(BlogPost).filter(BlogPost.content_item_id == item.id).first()
    wrhq_blog = db.query(WRHQBlogPost).filter(WRHQBlogPost.content_item_id == item.id).first()
    podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
    images = db.query(Image).filter(Image.content_item_id == item.id).order_by(Image.image_type.asc()).all()
    videos = db.query(Video).filter(Video.content_item_id == item.id).order_by(Video.created_at.asc()).all()
    social = db.query(SocialPost).filter(SocialPost.content_item_id == item.id).order_by(SocialPost.platform.asc()).all()
    wrhq_social = (
        db.query(WRHQSocialPost)
        .filter(WRHQSocialPost.content_item_id == item.id)
        .order_by(WRHQSocialPost.media_type.asc(), WRHQSocialPost.platform.asc())
        .all()
    )
    return ContentItemDetailOut(
        **_item_fields(item),
        blog_post=_blog_to_out(blog) if blog else None,
        wrhq_blog_post=_blog_to_out(wrhq_blog) if wrhq_blog else None,
        images=[
            ImageOut(
                id=image.id,
                image_type=image.image_type,
                file_name=image.file_name,
                gcs_url=image.gcs_url,
                width=image.width,
                height=image.height,
                alt_text=image.alt_text,
                approved=bool(image.approved),
            )
            for image in images
        ],
        podcast=(
            PodcastOut(
                id=podcast.id,
                status=podcast.status,
                autocontent_job_id=podcast.autocontent_job_id,
                audio_url=podcast.audio_url,
                duration=podcast.duration,
                podbean_episode_id=podcast.podbean_episode_id,
                podbean_url=podcast.podbean_url,
                podbean_player_url=podcast.podbean_player_url,
            )
            if podcast
            else None
        ),
        videos=[
            VideoOut(
                id=video.id,
                video_type=video.video_type,
                provider=video.provider,
                provider_job_id=video.provider_job_id,
                status=video.status,
                video_url=video.video_url,
                thumbnail_url=video.thumbnail_url,
                duration=video.duration,
            )
            for video in videos
        ],
        social_posts=[_social_to_out(post) for post in social],
        wrhq_social_posts=[_social_to_out(post) for post in wrhq_social],
    )


def _parse_datetime(value: str) -> datetime:
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    return datetime.fromisoformat(raw)


def coerce_patch_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the allow-listed keys of a PATCH body, checking each value's type.

    Unknown keys are dropped. A value of the wrong type raises ``ValueError``.
    """
    updates: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in PATCH_BOOLEAN_FIELDS:
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean.")
            updates[key] = value
        elif key in PATCH_STRING_FIELDS:
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{key} must be a string.")
            updates[key] = value
        elif key in PATCH_NUMBER_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number.")
            updates[key] = int(value)
        elif key in PATCH_DATE_FIELDS:
            if value is None:
                updates[key] = None
                continue
            if not isinstance(value, str):
                raise ValueError(f"{key} must be an ISO date string.")
            try:
                updates[key] = date.fromisoformat(value[:10]) if key == "scheduled_date" else _parse_datetime(value)
            except ValueError as exc:
                raise ValueError(f"{key} must be an ISO date string.") from exc
    if updates.get("paa_question") is not None and not updates["paa_question"].strip():
        raise ValueError("paa_question must not be empty.")
    return updates


@router.post("", response_model=ContentItemOut, status_code=status.HTTP_201_CREATED)
def create_content_item(
    payload: ContentItemCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ContentItemOut:
    if not db.query(Client.id).filter(Client.id == payload.client_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")
    item = ContentItem(
        client_id=payload.client_id,
        paa_question=payload.paa_question,
        topic=payload.topic,
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time,
        priority=payload.priority,
        notes=payload.notes,
        status="DRAFT",
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item_to_out(item)


@router.get("", response_model=List[ContentItemOut])
def list_content_items(
    client_id: Optional[UUID] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> List[ContentItemOut]:
    query = db.query(ContentItem)
    if client_id:
        query = query.filter(ContentItem.client_id == client_id)
    if status_filter:
        query = query.filter(ContentItem.status == status_filter.strip().upper())
    items = (
        query.order_by(ContentItem.scheduled_date.asc(), ContentItem.priority.desc(), ContentItem.created_at.asc())
        .limit(limit)
        .all()
    )
    return [item_to_out(item) for item in items]


@router.get("/{content_item_id}", response_model=ContentItemDetailOut)
def get_content_item(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ContentItemDetailOut:
    return item_to_detail(db, _get_item_or_404(db, content_item_id))


@router.put("/{content_item_id}", response_model=ContentItemOut)
def update_content_item(
    content_item_id: UUID,
    payload: ContentItemUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ContentItemOut:
    item = _get_item_or_404(db, content_item_id)
    for field in ("paa_question", "topic", "scheduled_date", "priority", "notes"):
        if field in payload.__fields_set__:
            value = getattr(payload, field)
            if value is None and field in {"paa_question", "priority"}:
                continue
            setattr(item, field, value)
    with _pipeline_errors("update content item"):
        if payload.status is not None:
            transition(db, item, ManualOverride({"status": payload.status}))
    item.updated_at = utcnow()
    db.add(item)
    db.commit()
    db.refresh(item)
    return item_to_out(item)


@router.patch("/{content_item_id}", response_model=ContentItemOut)
def patch_content_item(
    content_item_id: UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ContentItemOut:
    item = _get_item_or_404(db, content_item_id)
    try:
        updates = coerce_patch_fields(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    state_fields = {key: updates.pop(key) for key in list(updates) if key in PATCH_STATE_FIELDS}
    for key, value in updates.items():
        setattr(item, key, value)
    with _pipeline_errors("update content item"):
        if state_fields:
            transition(db, item, ManualOverride(state_fields))
    item.updated_at = utcnow()
    db.add(item)
    db.commit()
    db.refresh(item)
    return item_to_out(item)


@router.delete("/{content_item_id}", response_model=ActionOut)
def delete_content_item(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ActionOut:
    item = _get_item_or_404(db, content_item_id)
    canceled = cancel_tasks_for_item(db, item.id)
    for model in CHILD_MODELS:
        db.query(model).filter(model.content_item_id == item.id).delete(synchronize_session=False)
    db.delete(item)
    db.commit()
    logger.info("pipeline.item.deleted content_id=%s canceled_tasks=%s", content_item_id, canceled)
    return ActionOut(message="Content item deleted.", data={"canceled_tasks": canceled})


@router.post("/{content_item_id}/generate", response_model=StepRunOut)
def generate_content(
    content_item_id: UUID,
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> StepRunOut:
    with _pipeline_errors("generate content"):
        result = run_generation(db, content_item_id, payload)
    return StepRunOut(**result)


@router.get("/{content_item_id}/podcast-status", response_model=MediaStatusOut)
def podcast_status(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> MediaStatusOut:
    with _pipeline_errors("check podcast status"):
        result = check_podcast_status(db, content_item_id)
    return MediaStatusOut(**result)


@router.get("/{content_item_id}/video-status", response_model=MediaStatusOut)
def video_status(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> MediaStatusOut:
    with _pipeline_errors("check video status"):
        result = check_video_status(db, content_item_id)
    return MediaStatusOut(**result)


@router.get("/{content_item_id}/social-status", response_model=SocialStatusOut)
def social_status(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> SocialStatusOut:
    with _pipeline_errors("check social status"):
        result = check_social_status(db, content_item_id)
    return SocialStatusOut(**result)


@router.post("/{content_item_id}/publish", response_model=StepRunOut)
def publish_content(
    content_item_id: UUID,
    payload: PublishRequest,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> StepRunOut:
    with _pipeline_errors("publish content"):
        result = run_publish(db, content_item_id, payload)
    return StepRunOut(**result)


@router.post("/{content_item_id}/publish-podcast", response_model=ActionOut)
def publish_podcast_route(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ActionOut:
    with _pipeline_errors("publish podcast"):
        result = publish_podcast(db, content_item_id)
    return ActionOut(message="Podcast published.", data=result)


@router.post("/{content_item_id}/republish-blog", response_model=ActionOut)
def republish_blog_route(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ActionOut:
    with _pipeline_errors("republish blog"):
        result = republish_blog(db, content_item_id)
    return ActionOut(message=result["message"], data=result)


@router.post("/{content_item_id}/embed-all-media", response_model=EmbedAllMediaOut)
def embed_all_media_route(
    content_item_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> EmbedAllMediaOut:
    with _pipeline_errors("embed media"):
        result = embed_all_media(db, content_item_id)
    return EmbedAllMediaOut(**result)


@router.get("/{content_item_id}/events", response_model=List[PipelineEventOut])
def list_pipeline_events(
    content_item_id: UUID,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> List[PipelineEventOut]:
    _get_item_or_404(db, content_item_id)
    events = (
        db.query(PipelineEvent)
        .filter(PipelineEvent.content_item_id == content_item_id)
        .order_by(PipelineEvent.created_at.asc())
        .limit(limit)
        .all()
    )
    return [
        PipelineEventOut(
            id=event.id,
            event_type=event.event_type,
            step=event.step,
            payload=dict(event.payload or {}),
            created_at=event.created_at,
        )
        for event in events
    ]
