from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from . import content_splicer as splicer
from . import embeds
from .content_models import BlogPost, Client, ContentItem, Image, Podcast, Video, WRHQSocialPost, utcnow
from .integrations import getlate, storage, wordpress, youtube
from .integrations.content_writer import build_video_description, video_caption
from .integrations.http import IntegrationError
from .pipeline_state import MediaPipelineCompleted, MediaPipelineStarted, transition
from .schema_markup import generate_schema_graph
from .settings import get_runtime_config, get_wrhq_config

logger = logging.getLogger("content_backend.pipeline")

CONTINUATION_VIDEO_PLATFORMS = ("tiktok", "instagram")


class PrerequisiteError(ValueError):
    pass


def rebuild_post_content(
    content: Optional[str],
    *,
    schema_json: Optional[str] = None,
    short_video_url: Optional[str] = None,
    podcast: Optional[str] = None,
    maps: Optional[str] = None,
    longform: Optional[str] = None,
    featured_image: Optional[str] = None,
    featured_image_at: splicer.InsertStrategy = splicer.after_heading(3),
    longform_at: splicer.InsertStrategy = splicer.before_embed("maps"),
) -> Tuple[str, List[str]]:
    """Strip every embed from ``content`` and lay the given ones back in.

    Returns the new HTML and the embed kinds that were inserted. Running the
    output through again with the same arguments yields the same HTML.
    """
    document = splicer.ContentDocument(content)
    document.strip_embeds()
    embedded: List[str] = []

    if schema_json:
        document.insert(embeds.schema_embed(schema_json), splicer.PREPEND)
        embedded.append("schema")
    if featured_image:
        document.insert(featured_image, featured_image_at)
        embedded.append("featured_image")
    if short_video_url:
        snippet = embeds.short_video_embed(short_video_url)
        if snippet:
            document.insert(snippet, splicer.before_first_heading())
            embedded.append("short_video")
    if longform:
        document.insert(longform, longform_at)
        embedded.append("longform_video")
    if podcast:
        document.insert(podcast, splicer.APPEND)
        embedded.append("podcast")
    if maps:
        document.insert(maps, splicer.APPEND)
        embedded.append("maps")
    return document.serialize(), embedded


def maps_snippet(client: Client) -> Optional[str]:
    if not (client.street_address and client.city and client.state):
        return None
    return embeds.google_maps_embed(
        client.business_name, client.street_address, client.city, client.state, client.postal_code
    )


def _podcast_snippet(title: str, podcast: Optional[Podcast]) -> Optional[str]:
    if podcast is None or not podcast.podbean_player_url:
        return None
    return embeds.podcast_embed(title, podcast.podbean_player_url)


def _longform_snippet(item: ContentItem) -> Optional[str]:
    if not item.longform_video_url:
        return None
    return embeds.longform_video_embed(item.longform_video_url, item.longform_video_desc)


def _featured_image(db: Session, item: ContentItem) -> Optional[Image]:
    return (
        db.query(Image)
        .filter(Image.content_item_id == item.id, Image.image_type == "BLOG_FEATURED")
        .order_by(Image.created_at.desc())
        .first()
    )


def _featured_snippet(image: Optional[Image], blog: BlogPost, client: Client) -> Optional[str]:
    if image is None or not image.gcs_url:
        return None
    return embeds.featured_image_embed(image.gcs_url, f"{blog.title} | {client.business_name}")


def _youtube_post(db: Session, item_id: UUID) -> Optional[WRHQSocialPost]:
    return (
        db.query(WRHQSocialPost)
        .filter(
            WRHQSocialPost.content_item_id == item_id,
            WRHQSocialPost.platform == "youtube",
            WRHQSocialPost.media_type == "video",
        )
        .first()
    )


def wp_credentials(client: Client) -> Dict[str, str]:
    return {
        "site_url": client.wordpress_url or "",
        "wp_username": client.wordpress_username or "",
        "wp_app_password": client.wordpress_app_password or "",
    }


def _load_published_blog(db: Session, content_item_id: UUID) -> Tuple[ContentItem, Client, BlogPost]:
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise LookupError("Content item not found.")
    blog = db.query(BlogPost).filter(BlogPost.content_item_id == item.id).first()
    if not blog:
        raise PrerequisiteError("No blog post found")
    if not blog.wordpress_post_id:
        raise PrerequisiteError("Blog has not been published yet")
    client = db.query(Client).filter(Client.id == item.client_id).first()
    if not client or not client.wordpress_url:
        raise PrerequisiteError("WordPress not configured for client")
    return item, client, blog


def _mark_embedded(item: ContentItem, embedded: List[str]) -> None:
    now = utcnow()
    if "podcast" in embedded:
        item.podcast_added_to_post = True
        item.podcast_added_at = now
    if "short_video" in embedded:
        item.short_video_added_to_post = True
        item.short_video_added_at = now
    if "longform_video" in embedded:
        item.long_video_added_to_post = True
        item.long_video_added_at = now
    item.updated_at = now


def _schema_for(
    db: Session,
    item: ContentItem,
    client: Client,
    blog: BlogPost,
    *,
    video_url: Optional[str] = None,
    thumbnail_url: Optional[str] = None,
    duration: Optional[int] = None,
) -> str:
    podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
    image = _featured_image(db, item)
    return generate_schema_graph(
        client=client,
        blog_post=blog,
        paa_question=item.paa_question,
        podcast_audio_url=podcast.audio_url if podcast else None,
        podcast_duration=podcast.duration if podcast else None,
        video_url=video_url,
        video_thumbnail_url=thumbnail_url,
        video_duration=duration,
        featured_image_url=image.gcs_url if image else None,
    )


def _copy_video_to_storage(
    db: Session, item: ContentItem, video: Optional[Video], video_url: str, config: Dict[str, Any]
) -> str:
    if storage.is_gcs_url(video_url):
        return video_url
    object_name = f"videos/{item.client_id}/short-{item.id}-{int(time.time() * 1000)}.mp4"
    gcs_url = storage.upload_from_url(video_url, object_name, config=config)
    if video is not None:
        video.video_url = gcs_url
        video.status = "READY"
        video.updated_at = utcnow()
        db.add(video)
    logger.info("pipeline.media.video_stored content_id=%s url=%s", item.id, gcs_url)
    return gcs_url


def _upload_to_youtube(
    db: Session,
    item: ContentItem,
    client: Client,
    blog: Optional[BlogPost],
    video: Optional[Video],
    media_url: str,
    config: Dict[str, Any],
) -> Optional[str]:
    existing = _youtube_post(db, item.id)
    if existing is not None and existing.published_url:
        return existing.published_url
    if not (youtube.is_youtube_configured(config) and get_wrhq_config()["youtube_enabled"]):
        logger.info("pipeline.media.youtube_skipped content_id=%s reason=not_configured", item.id)
        return None

    podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
    title = blog.title if blog else item.paa_question
    description = item.short_video_description or build_video_description(
        paa_question=item.paa_question,
        business_name=client.business_name,
        city=client.city,
        state=client.state,
        client_blog_url=blog.wordpress_url if blog else None,
        wrhq_blog_url=item.wrhq_blog_url,
        podcast_url=podcast.podbean_url if podcast else None,
    )
    result = youtube.upload_video_from_url(
        media_url,
        title=title,
        description=description,
        tags=[client.business_name, client.city, "auto glass", "windshield repair", "windshield replacement"],
        config=config,
    )
    now = utcnow()
    post = existing or WRHQSocialPost(content_item_id=item.id, platform="youtube", media_type="video", hashtags=[])
    post.caption = post.caption or title
    post.media_urls = [media_url]
    post.scheduled_time = now
    post.published_url = result["video_url"]
    post.published_at = now
    post.status = "PUBLISHED"
    post.updated_at = now
    db.add(post)
    if video is not None:
        video.status = "PUBLISHED"
        video.updated_at = now
        db.add(video)
    logger.info("pipeline.media.youtube_uploaded content_id=%s url=%s", item.id, result["video_url"])
    return result["video_url"]


def _post_video_to_wrhq(
    db: Session,
    item: ContentItem,
    client: Client,
    blog: Optional[BlogPost],
    media_url: str,
    config: Dict[str, Any],
) -> Dict[str, Any]:
    account_ids = get_wrhq_config()["late_account_ids"]
    title = blog.title if blog else item.paa_question
    default_caption = video_caption(
        title=title,
        business_name=client.business_name,
        city=client.city,
        state=client.state,
        paa_question=item.paa_question,
    )
    default_hashtags = ["AutoGlass", "WindshieldRepair", "".join(client.city.split()), "CarCare"]
    outcome: Dict[str, Any] = {}
    for platform in CONTINUATION_VIDEO_PLATFORMS:
        row = (
            db.query(WRHQSocialPost)
            .filter(
                WRHQSocialPost.content_item_id == item.id,
                WRHQSocialPost.platform == platform,
                WRHQSocialPost.media_type == "video",
            )
            .first()
        )
        if row is not None and row.status != "DRAFT":
            outcome[platform] = "already_posted"
            continue
        account_id = account_ids.get(platform)
        if not account_id:
            outcome[platform] = "not_configured"
            continue
        if row is None:
            row = WRHQSocialPost(
                content_item_id=item.id,
                platform=platform,
                media_type="video",
                caption=default_caption,
                hashtags=default_hashtags,
            )
        row.media_urls = [media_url]
        row.scheduled_time = utcnow()
        try:
            # Captions already carry their hashtags.
            result = getlate.post_now_and_check_status(
                platform=platform,
                account_id=account_id,
                caption=row.caption,
                hashtags=[] if row.caption == default_caption else list(row.hashtags or []),
                media_urls=[media_url],
                media_type="video",
                config=config,
            )
        except IntegrationError as exc:
            logger.warning("pipeline.media.video_post_failed content_id=%s platform=%s error=%s", item.id, platform, exc)
            row.status = "FAILED"
            row.error_message = str(exc)[:500]
            outcome[platform] = "failed"
        else:
            row.late_post_id = str(result["post_id"])
            row.published_url = result.get("platform_post_url")
            if result["status"] == "published":
                row.status = "PUBLISHED"
                row.published_at = utcnow()
            elif result["status"] == "failed":
                row.status = "FAILED"
                row.error_message = (result.get("error") or "")[:500] or None
            else:
                row.status = "PROCESSING"
            outcome[platform] = result["status"]
        row.updated_at = utcnow()
        db.add(row)
    return outcome


def complete_media_pipeline(
    db: Session,
    content_item_id: UUID,
    *,
    video_url: Optional[str] = None,
    thumbnail_url: Optional[str] = None,
    duration: Optional[int] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Finish an item once its short video and podcast have resolved.

    Copies the video to storage, uploads it to YouTube, posts it to the WRHQ
    video accounts, regenerates the schema, and rebuilds the WordPress post
    with every embed. Each of these is isolated, and the item always ends in
    PUBLISHED.
    """
    run_config = config or get_runtime_config()
    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    if not item:
        raise LookupError("Content item not found.")
    client = db.query(Client).filter(Client.id == item.client_id).first()
    if not client:
        raise LookupError("Client not found.")
    blog = db.query(BlogPost).filter(BlogPost.content_item_id == item.id).first()
    video = (
        db.query(Video)
        .filter(Video.content_item_id == item.id, Video.video_type == "SHORT")
        .first()
    )
    transition(db, item, MediaPipelineStarted())
    db.commit()

    steps: Dict[str, Dict[str, Any]] = {}
    youtube_url: Optional[str] = None
    media_url = video_url

    if video_url:
        try:
            media_url = _copy_video_to_storage(db, item, video, video_url, run_config)
            steps["storage"] = {"success": True, "url": media_url}
        except Exception as exc:
            logger.warning("pipeline.media.storage_failed content_id=%s error=%s", item.id, exc)
            steps["storage"] = {"success": False, "error": str(exc)}
            media_url = video_url
        db.commit()

        try:
            youtube_url = _upload_to_youtube(db, item, client, blog, video, media_url, run_config)
            steps["youtube"] = {"success": True, "url": youtube_url}
        except Exception as exc:
            db.rollback()
            logger.warning("pipeline.media.youtube_failed content_id=%s error=%s", item.id, exc)
            steps["youtube"] = {"success": False, "error": str(exc)}
        db.commit()

        try:
            steps["wrhq_video_social"] = {
                "success": True,
                "platforms": _post_video_to_wrhq(db, item, client, blog, media_url, run_config),
            }
        except Exception as exc:
            db.rollback()
            logger.warning("pipeline.media.wrhq_video_failed content_id=%s error=%s", item.id, exc)
            steps["wrhq_video_social"] = {"success": False, "error": str(exc)}
        db.commit()
    else:
        existing = _youtube_post(db, item.id)
        youtube_url = existing.published_url if existing else None

    if blog and blog.wordpress_post_id and client.wordpress_url:
        try:
            schema_json = _schema_for(
                db,
                item,
                client,
                blog,
                video_url=media_url,
                thumbnail_url=thumbnail_url,
                duration=duration,
            )
            blog.schema_json = schema_json
            blog.updated_at = utcnow()
            db.add(blog)

            credentials = wp_credentials(client)
            current = wordpress.wp_get_post(
                **credentials, post_id=int(blog.wordpress_post_id), timeout_seconds=run_config["timeout_seconds"]
            )
            existing_kinds = splicer.ContentDocument(current["content"]).embed_kinds()
            podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
            featured = None
            if "featured_image" in existing_kinds:
                featured = _featured_snippet(_featured_image(db, item), blog, client)
            content, embedded = rebuild_post_content(
                current["content"],
                schema_json=schema_json,
                short_video_url=youtube_url,
                podcast=_podcast_snippet(blog.title, podcast),
                maps=maps_snippet(client),
                longform=_longform_snippet(item) if item.long_video_added_to_post else None,
                featured_image=featured,
            )
            wordpress.wp_update_post(
                **credentials,
                post_id=int(blog.wordpress_post_id),
                fields={"content": content},
                timeout_seconds=run_config["timeout_seconds"],
            )
            _mark_embedded(item, embedded)
            item.schema_generated = True
            item.schema_last_updated = utcnow()
            item.schema_update_count = int(item.schema_update_count or 0) + 1
            db.add(item)
            steps["schema"] = {"success": True, "embedded": embedded}
            logger.info("pipeline.media.embedded content_id=%s embedded=%s", item.id, ",".join(embedded))
        except Exception as exc:
            db.rollback()
            logger.warning("pipeline.media.schema_failed content_id=%s error=%s", item.id, exc)
            steps["schema"] = {"success": False, "error": str(exc)}
        db.commit()
    else:
        steps["schema"] = {"success": False, "skipped": True, "error": "Blog is not published to WordPress."}
        logger.info("pipeline.media.schema_skipped content_id=%s", item.id)

    item = db.query(ContentItem).filter(ContentItem.id == content_item_id).first()
    transition(db, item, MediaPipelineCompleted())
    db.commit()
    return {"success": all(step.get("success") for step in steps.values()), "steps": steps}


def embed_all_media(
    db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    run_config = config or get_runtime_config()
    item, client, blog = _load_published_blog(db, content_item_id)
    podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
    youtube_post = _youtube_post(db, item.id)
    short_video_url = youtube_post.published_url if youtube_post else None

    skipped: Dict[str, Optional[str]] = {"shortVideo": None, "podcast": None}
    if not short_video_url or not embeds.youtube_video_id(short_video_url):
        skipped["shortVideo"] = "No YouTube video URL found"
        short_video_url = None
    podcast_snippet = _podcast_snippet(blog.title, podcast)
    if not podcast_snippet:
        skipped["podcast"] = "Podcast not published to Podbean"

    content, embedded = rebuild_post_content(
        blog.content,
        schema_json=blog.schema_json,
        short_video_url=short_video_url,
        podcast=podcast_snippet,
        maps=maps_snippet(client),
        longform=_longform_snippet(item),
        featured_image=_featured_snippet(_featured_image(db, item), blog, client),
        featured_image_at=splicer.after_first_paragraph(),
    )
    try:
        wordpress.wp_update_post(
            **wp_credentials(client),
            post_id=int(blog.wordpress_post_id),
            fields={"content": content},
            timeout_seconds=run_config["timeout_seconds"],
        )
    except IntegrationError as exc:
        logger.warning("pipeline.media.embed_all_failed content_id=%s error=%s", item.id, exc)
        return {"success": False, "embedded": [], "skipped": skipped, "error": str(exc)}

    _mark_embedded(item, embedded)
    db.add(item)
    db.commit()
    logger.info("pipeline.media.embed_all content_id=%s embedded=%s", item.id, ",".join(embedded))
    return {"success": True, "embedded": embedded, "skipped": skipped, "error": None}


def published_post_content(db: Session, item: ContentItem, client: Client, blog: BlogPost) -> Tuple[str, List[str]]:
    """Rebuild ``blog`` with every embed already recorded as added to the live post."""
    podcast = db.query(Podcast).filter(Podcast.content_item_id == item.id).first()
    youtube_post = _youtube_post(db, item.id)
    return rebuild_post_content(
        blog.content,
        schema_json=blog.schema_json if item.schema_generated else None,
        short_video_url=(
            youtube_post.published_url if youtube_post and item.short_video_added_to_post else None
        ),
        podcast=_podcast_snippet(blog.title, podcast) if item.podcast_added_to_post else None,
        maps=maps_snippet(client),
        longform=_longform_snippet(item) if item.long_video_added_to_post else None,
        featured_image=_featured_snippet(_featured_image(db, item), blog, client),
        featured_image_at=splicer.after_heading(3),
        longform_at=splicer.after_first_paragraph(),
    )


def republish_blog(db: Session, content_item_id: UUID, *, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Push the stored blog back to WordPress with its embeds rebuilt."""
    run_config = config or get_runtime_config()
    item, client, blog = _load_published_blog(db, content_item_id)
    content, embedded = published_post_content(db, item, client, blog)
    wordpress.wp_update_post(
        **wp_credentials(client),
        post_id=int(blog.wordpress_post_id),
        fields={"content": content},
        timeout_seconds=run_config["timeout_seconds"],
    )
    item.updated_at = utcnow()
    db.add(item)
    db.commit()
    logger.info("pipeline.media.republished content_id=%s embedded=%s", item.id, ",".join(embedded))
    return {
        "success": True,
        "message": "Blog re-published with all embeds",
        "embedded": embedded,
        "wordpress_url": blog.wordpress_url,
    }
