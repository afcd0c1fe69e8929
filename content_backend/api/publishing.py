"""Publishing of generated content to WordPress, GetLate and Podbean.

``run_publish`` pushes the client blog, the WRHQ blog and both sets of social
posts, then the podcast when its audio is ready. Each destination is its own
step. A failing step is recorded in the results and the others still run.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .content_models import BlogPost, Client, ContentItem, Image, Podcast, SocialPost, WRHQBlogPost, WRHQSocialPost, utcnow
from .content_schemas import PublishRequest
from .generation import scheduled_datetime
from .integrations import getlate, podbean, wordpress
from .integrations.http import IntegrationError, download_binary_file
from .media_embedding import (
    PrerequisiteError,
    maps_snippet,
    published_post_content,
    rebuild_post_content,
    republish_blog,
    wp_credentials,
)
from .pipeline_state import Crashed, PublishFinished, PublishStarted, all_succeeded, transition
from .settings import get_runtime_config, get_wrhq_config, publish_requires_approval

logger = logging.getLogger("content_backend.publish")

SCHEDULABLE_STATUSES = ("DRAFT", "FAILED")


class ApprovalRequired(ValueError):
    pass


def check_publish_prerequisites(item: ContentItem, options: PublishRequest) -> None:
    checks = (
        ("publish_client_blog", "blog_generated", "Blog must be generated before publishing"),
        ("publish_wrhq_blog", "wrhq_blog_generated", "WRHQ Blog must be generated before publishing"),
        ("schedule_social", "social_generated", "Social posts must be generated before scheduling"),
        ("schedule_wrhq_social", "wrhq_social_generated", "WRHQ Social posts must be generated before scheduling"),
    )
    for option, flag, message in checks:
        if getattr(options, option) and not getattr(item, flag):
            raise PrerequisiteError(message)

    if not publish_requires_approval():
        return
    approvals = (
        ("publish_client_blog", "blog_approved", "Blog must be approved before publishing"),
        ("publish_wrhq_blog", "wrhq_blog_approved", "WRHQ Blog must be approved before publishing"),
        ("schedule_social", "social_approved", "Social posts must be approved before scheduling"),
        ("schedule_wrhq_social", "wrhq_social_approved", "WRHQ Social posts must be approved before scheduling"),
    )
    for option, flag, message in approvals:
        if getattr(options, option) and not getattr(item, flag):
            raise ApprovalRequired(message)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _future_or_none(value: Optional[datetime]) -> Optional[datetime]:
    when = _as_utc(value)
    if when is None or when <= datetime.now(timezone.utc):
        return None
    return when


def _image(db: Session, item_id: UUID, image_type: str) -> Optional[Image]:
    return (
        db.query(Image)
        .filter(Image.content_item_id == item_id, Image.image_type == image_type)
        .order_by(Image.created_at.desc())
        .first()
    )


def _image_for_platform(db: Session, item_id: UUID, platform: str) -> Optional[Image]:
    if platform == "instagram":
        square = _image(db, item_id, "INSTAGRAM_FEED")
        if square is not None:
            return square
    return _image(db, item_id, "BLOG_FEATURED")


def _upload_featured_media(
    credentials: Dict[str, str], image: Optional[Image], title: str, config: Dict[str, Any]
) -> Optional[int]:
    if image is None or not image.gcs_url:
        return None
    data, file_name, content_type = download_binary_file(image.gcs_url, config["upload_timeout_seconds"])
    media = wordpress.wp_create_media_item(
        **credentials,
        data=data,
        file_name=image.file_name or file_name,
        content_type=content_type,
        title=title,
        alt_text=image.alt_text or title,
        timeout_seconds=config["timeout_seconds"],
    )
    return int(media["id"])


def _push_post(
    credentials: Dict[str, str],
    post: Any,
    content: str,
    *,
    featured_media_id: Optional[int],
    scheduled: Optional[datetime],
    config: Dict[str, Any],
    category_ids: Optional[List[int]] = None,
) -> Dict[str, Any]:
    """Create the WordPress post, or update it when ``post`` already has one."""
    post_status = "future" if scheduled else "publish"
    date_gmt = scheduled.strftime("%Y-%m-%dT%H:%M:%S") if scheduled else None
    if post.wordpress_post_id:
        fields: Dict[str, Any] = {
            "title": post.title,
            "content": content,
            "excerpt": post.excerpt or "",
            "slug": post.slug,
            "status": post_status,
        }
        if featured_media_id:
            fields["featured_media"] = featured_media_id
        if date_gmt:
            fields["date_gmt"] = date_gmt
        return wordpress.wp_update_post(
            **credentials,
            post_id=int(post.wordpress_post_id),
            fields=fields,
            timeout_seconds=config["timeout_seconds"],
        )
    return wordpress.wp_create_post(
        **credentials,
        title=post.title,
        content=content,
        excerpt=post.excerpt or "",
        slug=post.slug,
        post_status=post_status,
        timeout_seconds=config["timeout_seconds"],
        featured_media_id=featured_media_id,
        category_ids=category_ids,
        date_gmt=date_gmt,
    )


def _record_post(post: Any, created: Dict[str, Any], scheduled: Optional[datetime]) -> str:
    post.wordpress_post_id = int(created.get("id") or post.wordpress_post_id)
    post.wordpress_url = created.get("link") or post.wordpress_url
    post.published_at = scheduled or utcnow()
    post.updated_at = utcnow()
    return post.wordpress_url or ""


class PublishRun:
    def __init__(self, db: Session, item: ContentItem, client: Client, config: Dict[str, Any]):
        self.db = db
        self.item_id = item.id
        self.client_id = client.id
        self.config = config
        self.results: Dict[str, Dict[str, Any]] = {}

    @property
    def item(self) -> ContentItem:
        return self.db.query(ContentItem).filter(ContentItem.id == self.item_id).one()

    @property
    def client(self) -> Client:
        return self.db.query(Client).filter(Client.id == self.client_id).one()

    def run_step(self, name: str, step) -> None:
        try:
            summary = step()
        except Exception as exc:
            self.db.rollback()
            logger.warning("publish.step.failed content_id=%s step=%s error=%s", self.item_id, name, exc)
            self.results[name] = {"success": False, "error": str(exc)}
        else:
            self.results[name] = {"success": True, **summary}
            logger.info("publish.step.succeeded content_id=%s step=%s", self.item_id, name)
        self.db.commit()

    def client_blog(self) -> Dict[str, Any]:
        item, client = self.item, self.client
        blog = self.db.query(BlogPost).filter(BlogPost.content_item_id == item.id).first()
        if blog is None:
            raise PrerequisiteError("Blog must be generated before publishing")
        if not client.wordpress_url:
            raise PrerequisiteError("WordPress not configured for client")
        credentials = wp_credentials(client)
        media_id = _upload_featured_media(credentials, _image(self.db, item.id, "BLOG_FEATURED"), blog.title, self.config)
        if blog.wordpress_post_id:
            content, _ = published_post_content(self.db, item, client, blog)
        else:
            content, _ = rebuild_post_content(
                blog.content,
                schema_json=blog.schema_json if item.schema_generated else None,
                maps=maps_snippet(client),
            )
        scheduled = _future_or_none(scheduled_datetime(item))
        created = _push_post(
            credentials, blog, content, featured_media_id=media_id, scheduled=scheduled, config=self.config
        )
        url = _record_post(blog, created, scheduled)
        self.db.add(blog)
        item.client_blog_published = True
        item.client_blog_published_at = utcnow()
        item.client_blog_url = url
        self.db.add(item)
        return {"url": url}

    def wrhq_blog(self) -> Dict[str, Any]:
        wrhq = get_wrhq_config()
        if not (wrhq["wordpress_url"] and wrhq["wordpress_username"] and wrhq["wordpress_app_password"]):
            raise PrerequisiteError("WRHQ WordPress credentials not configured")
        item = self.item
        post = self.db.query(WRHQBlogPost).filter(WRHQBlogPost.content_item_id == item.id).first()
        if post is None:
            raise PrerequisiteError("WRHQ Blog must be generated before publishing")
        credentials = {
            "site_url": wrhq["wordpress_url"],
            "wp_username": wrhq["wordpress_username"],
            "wp_app_password": wrhq["wordpress_app_password"],
        }
        category_id = wordpress.wp_find_category_id(
            **credentials, slug=wrhq["blog_category"], timeout_seconds=self.config["timeout_seconds"]
        )
        media_id = _upload_featured_media(credentials, _image(self.db, item.id, "BLOG_FEATURED"), post.title, self.config)
        scheduled = _future_or_none(scheduled_datetime(item))
        created = _push_post(
            credentials,
            post,
            post.content,
            featured_media_id=media_id,
            scheduled=scheduled,
            config=self.config,
            category_ids=[category_id] if category_id else None,
        )
        url = _record_post(post, created, scheduled)
        self.db.add(post)
        item.wrhq_blog_published = True
        item.wrhq_blog_published_at = utcnow()
        item.wrhq_blog_url = url
        self.db.add(item)
        return {"url": url}

    def _schedule_rows(self, rows: List[Any], account_ids: Dict[str, str], cta_url: Optional[str]) -> Dict[str, Any]:
        scheduled_count = 0
        skipped: List[str] = []
        failed: Dict[str, str] = {}
        for row in rows:
            if row.status not in SCHEDULABLE_STATUSES:
                continue
            account_id = account_ids.get(row.platform)
            if not account_id:
                skipped.append(row.platform)
                continue
            image = _image_for_platform(self.db, self.item_id, row.platform)
            media_urls = [image.gcs_url] if image is not None and image.gcs_url else []
            when = _future_or_none(row.scheduled_time)
            try:
                result = getlate.schedule_post(
                    platform=row.platform,
                    account_id=account_id,
                    caption=row.caption,
                    hashtags=list(row.hashtags or []),
                    config=self.config,
                    media_urls=media_urls,
                    media_type="image",
                    scheduled_time=when,
                    first_comment=row.first_comment,
                    cta_url=cta_url,
                )
            except IntegrationError as exc:
                logger.warning(
                    "publish.social.failed content_id=%s platform=%s error=%s", self.item_id, row.platform, exc
                )
                row.status = "FAILED"
                row.error_message = str(exc)[:500]
                failed[row.platform] = str(exc)
            else:
                row.late_post_id = str(result["post_id"])
                row.media_urls = media_urls
                row.status = "PUBLISHED" if result["status"] == "published" else "SCHEDULED"
                row.published_url = result.get("platform_post_url")
                row.error_message = None
                if row.status == "PUBLISHED":
                    row.published_at = utcnow()
                scheduled_count += 1
            row.updated_at = utcnow()
            self.db.add(row)
        summary: Dict[str, Any] = {"count": scheduled_count, "skipped": skipped}
        if failed:
            summary["success"] = False
            summary["error"] = "; ".join(f"{platform}: {error}" for platform, error in sorted(failed.items()))
        return summary

    def social(self) -> Dict[str, Any]:
        client = self.client
        rows = self.db.query(SocialPost).filter(SocialPost.content_item_id == self.item_id).all()
        account_ids = {key.lower(): value for key, value in (client.social_account_ids or {}).items() if value}
        summary = self._schedule_rows(rows, account_ids, client.cta_url or client.website)
        if summary["count"]:
            item = self.item
            item.social_published = True
            item.social_published_at = utcnow()
            self.db.add(item)
        return summary

    def wrhq_social(self) -> Dict[str, Any]:
        rows = (
            self.db.query(WRHQSocialPost)
            .filter(WRHQSocialPost.content_item_id == self.item_id, WRHQSocialPost.media_type == "image")
            .all()
        )
        return self._schedule_rows(rows, get_wrhq_config()["late_account_ids"], None)

    def podcast(self) -> Dict[str, Any]:
        return _publish_episode(self.db, self.item_id, self.config)


def _publish_episode(db: Session, content_item_id: UUID, config: Dict[str, Any]) -> Dict[str, Any]:
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).one()
    podcast = db.query(Podcast).filter(Podcast.content_item_id == content_item_id).one()
    blog = db.query(BlogPost).filter(BlogPost.content_item_id == content_item_id).first()
    title = blog.title if blog else item.paa_question
    episode = podbean.publish_episode(
        title=title,
        description=podcast.description or item.podcast_description or "",
        audio_url=podcast.audio_url,
        config=config,
    )
    podcast.podbean_episode_id = episode["episode_id"]
    podcast.podbean_url = episode["url"]
    podcast.podbean_player_url = episode["player_url"]
    podcast.status = "PUBLISHED"
    podcast.updated_at = utcnow()
    db.add(podcast)
    item.podcast_generated = True
    item.podcast_status = "published"
    item.podcast_url = episode["url"]
    item.updated_at = utcnow()
    db.add(item)
    db.commit()
    logger.info("publish.podcast.published content_id=%s url=%s", content_item_id, episode["url"])

    result: Dict[str, Any] = {"url": episode["url"], "playerUrl": episode["player_url"], "embedded": False}
    if blog is None or not blog.wordpress_post_id or not episode["player_url"]:
        return result
    # Committed by republish_blog only after WordPress accepts the update.
    item.podcast_added_to_post = True
    item.podcast_added_at = utcnow()
    db.add(item)
    try:
        republish_blog(db, content_item_id, config=config)
    except IntegrationError as exc:
        db.rollback()
        logger.warning("publish.podcast.embed_failed content_id=%s error=%s", content_item_id, exc)
        result["embedError"] = str(exc)
    else:
        result["embedded"] = True
    return result


def publish_podcast(db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise LookupError("Content item not found.")
    podcast = db.query(Podcast).filter(Podcast.content_item_id == content_item_id).first()
    if podcast is None or not podcast.audio_url:
        raise PrerequisiteError("No podcast audio available")
    if podcast.status != "READY":
        raise PrerequisiteError("Podcast is not ready for publishing")
    result = _publish_episode(db, content_item_id, config or get_runtime_config())
    return {"success": True, **result}


def run_publish(
    db: Session,
    content_item_id: UUID,
    options: PublishRequest,
    *,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise LookupError("Content item not found.")
    client = db.query(Client).filter(Client.id == item.client_id).first()
    if not client:
        raise LookupError("Client not found.")
    check_publish_prerequisites(item, options)
    run_config = config or get_runtime_config()

    transition(db, item, PublishStarted())
    db.commit()
    logger.info("publish.started content_id=%s", content_item_id)

    run = PublishRun(db, item, client, run_config)
    try:
        if options.publish_client_blog:
            run.run_step("client_blog", run.client_blog)
        if options.publish_wrhq_blog:
            run.run_step("wrhq_blog", run.wrhq_blog)
        if options.schedule_social:
            run.run_step("social", run.social)
        if options.schedule_wrhq_social:
            run.run_step("wrhq_social", run.wrhq_social)
        podcast = db.query(Podcast).filter(Podcast.content_item_id == content_item_id).first()
        if podcast is not None and podcast.audio_url and podcast.status == "READY":
            run.run_step("podcast", run.podcast)
        transition(db, run.item, PublishFinished(results=run.results))
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("publish.crashed content_id=%s", content_item_id)
        crashed = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
        if crashed is not None:
            transition(db, crashed, Crashed(str(exc)))
            db.commit()
        raise

    success = all_succeeded(run.results)
    logger.info("publish.finished content_id=%s success=%s", content_item_id, success)
    return {"success": success, "results": run.results}
