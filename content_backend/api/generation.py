from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, time as dt_time, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .content_models import (
    BlogPost,
    Client,
    ContentItem,
    Image,
    PipelineEvent,
    Podcast,
    SocialPost,
    Video,
    WRHQBlogPost,
    WRHQSocialPost,
    utcnow,
)
from .content_schemas import GenerateRequest
from .integrations import autocontent, content_writer, creatify, imagen, storage
from .pipeline_state import Crashed, GenerationFinished, GenerationStarted, StepStarted, all_succeeded, transition
from .settings import DEFAULT_SOCIAL_PLATFORMS, WRHQ_VIDEO_PLATFORMS, get_runtime_config, get_wrhq_config

logger = logging.getLogger("content_backend.pipeline")

SOCIAL_CAPTION_WORKERS = 5
WRHQ_IMAGE_PLATFORMS = ("facebook", "instagram", "linkedin", "twitter", "tiktok")
WRHQ_HASHTAGS = ["WRHQ", "AutoGlassPartner", "IndustryExpert"]
WRHQ_FIRST_COMMENT = "Check out the full article!"


class StepFailed(RuntimeError):
    pass


def tenant_context(client: Client, item: ContentItem) -> Dict[str, Any]:
    return {
        "business_name": client.business_name,
        "city": client.city,
        "state": client.state,
        "paa_question": item.paa_question,
        "service_areas": list(client.service_areas or []),
        "has_adas": bool(client.has_adas_calibration),
        "brand_voice": client.brand_voice or content_writer.DEFAULT_BRAND_VOICE,
        "cta_text": client.cta_text or "Get a Free Quote",
        "cta_url": client.cta_url or client.website,
        "website": client.website,
        "phone": client.phone,
        "client_blog_url": item.client_blog_url,
    }


def scheduled_datetime(item: ContentItem) -> Optional[datetime]:
    if not item.scheduled_date:
        return None
    at = dt_time(9, 0)
    if item.scheduled_time:
        try:
            hours, minutes = item.scheduled_time.strip().split(":")[:2]
            at = dt_time(int(hours), int(minutes))
        except ValueError:
            logger.warning("pipeline.schedule.bad_time content_id=%s value=%s", item.id, item.scheduled_time)
    return datetime.combine(item.scheduled_date, at, tzinfo=timezone.utc)


def _step_event(db: Session, item_id: UUID, event_type: str, step: str, payload: Dict[str, Any]) -> None:
    db.add(PipelineEvent(content_item_id=item_id, event_type=event_type, step=step, payload=payload))


class GenerationRun:
    """One pass of the generation steps requested for a content item."""

    def __init__(self, db: Session, item: ContentItem, client: Client, options: GenerateRequest, config: Dict[str, Any]):
        self.db = db
        self.item_id = item.id
        self.client_id = client.id
        self.options = options
        self.config = config
        self.results: Dict[str, Dict[str, Any]] = {}
        self.fresh_blog: Optional[Dict[str, Any]] = None

    @property
    def item(self) -> ContentItem:
        return self.db.query(ContentItem).filter(ContentItem.id == self.item_id).one()

    @property
    def client(self) -> Client:
        return self.db.query(Client).filter(Client.id == self.client_id).one()

    def stored_blog(self) -> Optional[BlogPost]:
        return self.db.query(BlogPost).filter(BlogPost.content_item_id == self.item_id).first()

    def run_step(self, name: str, step: Callable[[], Dict[str, Any]]) -> None:
        transition(self.db, self.item, StepStarted(name))
        _step_event(self.db, self.item_id, "started", name, {})
        self.db.commit()
        try:
            summary = step()
        except Exception as exc:
            self.db.rollback()
            logger.warning("pipeline.step.failed content_id=%s step=%s error=%s", self.item_id, name, exc)
            self.results[name] = {"success": False, "error": str(exc)}
            _step_event(self.db, self.item_id, "failed", name, {"error": str(exc)[:2000]})
        else:
            self.results[name] = {"success": True, **summary}
            _step_event(self.db, self.item_id, "succeeded", name, summary)
            logger.info("pipeline.step.succeeded content_id=%s step=%s", self.item_id, name)
        self.db.commit()

    def blog(self) -> Dict[str, Any]:
        generated = content_writer.generate_blog_post(tenant_context(self.client, self.item), self.config)
        row = self.stored_blog() or BlogPost(content_item_id=self.item_id, client_id=self.client_id)
        for key in ("title", "slug", "content", "excerpt", "meta_title", "meta_description", "focus_keyword", "word_count"):
            setattr(row, key, generated[key])
        row.updated_at = utcnow()
        self.db.add(row)
        item = self.item
        item.blog_generated = True
        self.db.add(item)
        self.fresh_blog = generated
        return {"title": generated["title"]}

    def podcast(self) -> Dict[str, Any]:
        if self.fresh_blog:
            title, script = self.fresh_blog["title"], self.fresh_blog["content"]
        else:
            stored = self.stored_blog()
            if stored is None:
                raise StepFailed("Blog must be generated before podcast")
            title, script = stored.title, stored.content
        job_id = autocontent.create_podcast(title=title, script=script, config=self.config)
        row = self.db.query(Podcast).filter(Podcast.content_item_id == self.item_id).first()
        if row is None:
            row = Podcast(content_item_id=self.item_id, client_id=self.client_id)
        row.script = script
        row.autocontent_job_id = job_id
        row.status = "PROCESSING"
        row.audio_url = None
        row.updated_at = utcnow()
        self.db.add(row)
        item = self.item
        item.podcast_generated = False
        item.podcast_status = "processing"
        self.db.add(item)
        return {"status": "processing", "jobId": job_id}

    def images(self) -> Dict[str, Any]:
        item, client = self.item, self.client
        blog = self.stored_blog()
        prompt = imagen.build_image_prompt(
            paa_question=item.paa_question,
            business_name=client.business_name,
            city=client.city,
            state=client.state,
        )
        file_stem = (blog.slug if blog else None) or f"content-{item.id}"
        alt_text = f"{blog.title if blog else item.paa_question} | {client.business_name}"
        generated = imagen.generate_both_images(prompt, file_stem=file_stem, alt_text=alt_text, config=self.config)
        stored: List[Dict[str, Any]] = []
        for image in generated:
            url = image["url"]
            if url.startswith("data:"):
                url = storage.upload_data_url(url, f"images/{client.id}/{image['file_name']}", config=self.config)
            stored.append({**image, "url": url})

        self.db.query(Image).filter(Image.content_item_id == item.id).delete(synchronize_session=False)
        for image in stored:
            self.db.add(
                Image(
                    content_item_id=item.id,
                    client_id=client.id,
                    image_type=image["image_type"],
                    file_name=image["file_name"],
                    gcs_url=image["url"],
                    width=image["width"],
                    height=image["height"],
                    alt_text=image["alt_text"],
                )
            )
        item.images_generated = len(stored) > 0
        item.images_total_count = len(stored)
        item.images_approved_count = 0
        self.db.add(item)
        return {"count": len(stored)}

    def social(self) -> Dict[str, Any]:
        item, client = self.item, self.client
        blog = self.stored_blog()
        platforms = [platform.lower() for platform in (client.social_platforms or [])] or list(DEFAULT_SOCIAL_PLATFORMS)
        blog_title = blog.title if blog else item.paa_question
        blog_excerpt = (blog.excerpt if blog else None) or item.paa_question
        blog_url = item.client_blog_url or client.wordpress_url or ""
        business_name = client.business_name
        paa_question = item.paa_question

        def caption_for(platform: str) -> Dict[str, Any]:
            try:
                caption = content_writer.generate_social_caption(
                    platform=platform,
                    business_name=business_name,
                    blog_title=blog_title,
                    blog_excerpt=blog_excerpt,
                    blog_url=blog_url,
                    config=self.config,
                )
            except Exception as exc:
                logger.warning(
                    "pipeline.social.caption_failed content_id=%s platform=%s error=%s", self.item_id, platform, exc
                )
                return {
                    "platform": platform,
                    "outcome": {"success": False, "error": str(exc), "fallback": True},
                    **content_writer.fallback_social_caption(paa_question),
                }
            return {"platform": platform, "outcome": {"success": True}, **caption}

        with ThreadPoolExecutor(max_workers=min(SOCIAL_CAPTION_WORKERS, len(platforms))) as pool:
            captions = list(pool.map(caption_for, platforms))

        self.db.query(SocialPost).filter(SocialPost.content_item_id == item.id).delete(synchronize_session=False)
        scheduled = scheduled_datetime(item)
        for caption in captions:
            self.db.add(
                SocialPost(
                    content_item_id=item.id,
                    client_id=client.id,
                    platform=caption["platform"],
                    caption=caption["caption"],
                    hashtags=caption["hashtags"],
                    first_comment=caption["first_comment"],
                    media_urls=[],
                    scheduled_time=scheduled,
                )
            )
        item.social_generated = True
        item.social_total_count = len(captions)
        item.social_approved_count = 0
        self.db.add(item)
        return {"count": len(captions), "platforms": {caption["platform"]: caption["outcome"] for caption in captions}}

    def wrhq_blog(self) -> Dict[str, Any]:
        if not get_wrhq_config()["enabled"]:
            return {"skipped": True, "reason": "WRHQ is disabled"}
        item = self.item
        generated = content_writer.generate_wrhq_blog_post(tenant_context(self.client, item), self.config)
        featured = (
            self.db.query(Image)
            .filter(Image.content_item_id == item.id, Image.image_type == "BLOG_FEATURED")
            .first()
        )
        row = self.db.query(WRHQBlogPost).filter(WRHQBlogPost.content_item_id == item.id).first()
        if row is None:
            row = WRHQBlogPost(content_item_id=item.id)
        for key in ("title", "slug", "content", "excerpt", "meta_title", "meta_description", "focus_keyword", "word_count"):
            setattr(row, key, generated[key])
        row.featured_image_url = featured.gcs_url if featured else None
        row.updated_at = utcnow()
        self.db.add(row)
        item.wrhq_blog_generated = True
        self.db.add(item)
        return {"title": generated["title"]}

    def wrhq_social(self) -> Dict[str, Any]:
        wrhq = get_wrhq_config()
        if not wrhq["enabled"]:
            return {"skipped": True, "reason": "WRHQ is disabled"}
        item, client = self.item, self.client
        platforms = [platform for platform in WRHQ_IMAGE_PLATFORMS if wrhq["late_account_ids"].get(platform)]
        self.db.query(WRHQSocialPost).filter(
            WRHQSocialPost.content_item_id == item.id,
            WRHQSocialPost.media_type == "image",
        ).delete(synchronize_session=False)
        scheduled = scheduled_datetime(item)
        caption = content_writer.wrhq_spotlight_caption(client.business_name, item.paa_question)
        for platform in platforms:
            self.db.add(
                WRHQSocialPost(
                    content_item_id=item.id,
                    platform=platform,
                    caption=caption,
                    hashtags=list(WRHQ_HASHTAGS),
                    first_comment=WRHQ_FIRST_COMMENT,
                    media_type="image",
                    media_urls=[],
                    scheduled_time=scheduled,
                )
            )
        if platforms:
            item.wrhq_social_generated = True
            item.wrhq_social_total_count = len(platforms)
            item.wrhq_social_approved_count = 0
            self.db.add(item)
        return {"count": len(platforms)}

    def short_video(self) -> Dict[str, Any]:
        if self.fresh_blog:
            script = self.fresh_blog["excerpt"] or self.fresh_blog["title"]
        else:
            stored = self.stored_blog()
            if stored is None:
                raise StepFailed("Blog must be generated before short video")
            script = stored.excerpt or stored.title
        item = self.item
        featured = (
            self.db.query(Image)
            .filter(Image.content_item_id == item.id, Image.image_type == "BLOG_FEATURED")
            .first()
        )
        job_id = creatify.create_short_video(
            script=script,
            config=self.config,
            b_roll_media=[featured.gcs_url] if featured else None,
        )
        row = (
            self.db.query(Video)
            .filter(Video.content_item_id == item.id, Video.video_type == "SHORT")
            .first()
        )
        if row is None:
            row = Video(content_item_id=item.id, client_id=self.client_id, video_type="SHORT")
        row.provider = "CREATIFY"
        row.provider_job_id = job_id
        row.aspect_ratio = "9:16"
        row.status = "PROCESSING"
        row.video_url = None
        row.thumbnail_url = None
        row.duration = None
        row.updated_at = utcnow()
        self.db.add(row)
        item.short_video_generated = False
        item.short_video_status = "processing"
        self.db.add(item)
        return {"status": "processing", "jobId": job_id}

    def video_description(self) -> Dict[str, Any]:
        item, client = self.item, self.client
        blog = self.stored_blog()
        podcast = self.db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
        item.short_video_description = content_writer.build_video_description(
            paa_question=item.paa_question,
            business_name=client.business_name,
            city=client.city,
            state=client.state,
            client_blog_url=item.client_blog_url or (blog.wordpress_url if blog else None),
            wrhq_blog_url=item.wrhq_blog_url,
            podcast_url=podcast.podbean_url if podcast else None,
        )
        self.db.add(item)
        return {}

    def video_social(self) -> Dict[str, Any]:
        item, client = self.item, self.client
        blog = self.stored_blog()
        caption = content_writer.video_caption(
            title=blog.title if blog else item.paa_question,
            business_name=client.business_name,
            city=client.city,
            state=client.state,
            paa_question=item.paa_question,
        )
        drafted = 0
        for platform in WRHQ_VIDEO_PLATFORMS:
            row = (
                self.db.query(WRHQSocialPost)
                .filter(
                    WRHQSocialPost.content_item_id == item.id,
                    WRHQSocialPost.platform == platform,
                    WRHQSocialPost.media_type == "video",
                )
                .first()
            )
            if row is not None and row.status != "DRAFT":
                continue
            if row is None:
                row = WRHQSocialPost(content_item_id=item.id, platform=platform, media_type="video", media_urls=[])
            row.caption = caption
            row.hashtags = []
            row.updated_at = utcnow()
            self.db.add(row)
            drafted += 1
        return {"count": drafted}


STEP_ORDER = (
    ("blog", "generate_blog"),
    ("podcast", "generate_podcast"),
    ("images", "generate_images"),
    ("social", "generate_social"),
    ("wrhq_blog", "generate_wrhq_blog"),
    ("wrhq_social", "generate_wrhq_social"),
    ("short_video", "generate_short_video"),
    ("video_description", "regen_video_description"),
    ("video_social", "generate_video_social"),
)


def run_generation(
    db: Session,
    content_item_id: UUID,
    options: GenerateRequest,
    *,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run the requested generation steps and return ``{success, results}``.

    Requesting both the blog and the images counts as the initial generation
    and moves the item through GENERATING to REVIEW or FAILED. Any other
    combination leaves ``status`` alone and reports failures through
    ``last_error`` and ``needs_attention``.
    """
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise LookupError("Content item not found.")
    client = db.query(Client).filter(Client.id == item.client_id).first()
    if not client:
        raise LookupError("Client not found.")
    run_config = config or get_runtime_config()
    initial = bool(options.generate_blog and options.generate_images)

    transition(db, item, GenerationStarted(initial=initial))
    db.commit()
    logger.info("pipeline.generation.started content_id=%s initial=%s", content_item_id, initial)

    run = GenerationRun(db, item, client, options, run_config)
    try:
        for name, flag in STEP_ORDER:
            if getattr(options, flag):
                run.run_step(name, getattr(run, name))
        transition(db, run.item, GenerationFinished(results=run.results, initial=initial))
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("pipeline.generation.crashed content_id=%s", content_item_id)
        crashed = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
        if crashed is not None:
            transition(db, crashed, Crashed(str(exc)))
            db.commit()
        raise

    success = all_succeeded(run.results)
    logger.info("pipeline.generation.finished content_id=%s success=%s", content_item_id, success)
    return {"success": success, "results": run.results}
