from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (
        CheckConstraint("status IN ('active','inactive')", name="clients_status_check"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_name = Column(Text, nullable=False)
    city = Column(Text, nullable=False)
    state = Column(Text, nullable=False)
    street_address = Column(Text, nullable=True)
    postal_code = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    website = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    primary_color = Column(Text, nullable=True)
    brand_voice = Column(Text, nullable=True)
    cta_text = Column(Text, nullable=True)
    cta_url = Column(Text, nullable=True)
    service_areas = Column(JSONType, nullable=False, default=list)
    has_adas_calibration = Column(Boolean, nullable=False, default=False)
    offers_mobile_service = Column(Boolean, nullable=False, default=False)
    google_rating = Column(Float, nullable=True)
    google_review_count = Column(Integer, nullable=True)
    wordpress_url = Column(Text, nullable=True)
    wordpress_username = Column(Text, nullable=True)
    wordpress_app_password = Column(Text, nullable=True)
    social_platforms = Column(JSONType, nullable=False, default=list)
    social_account_ids = Column(JSONType, nullable=False, default=dict)
    podbean_enabled = Column(Boolean, nullable=False, default=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin','client')", name="users_role_check"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, nullable=False, unique=True)
    full_name = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="admin")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ContentItem(Base):
    __tablename__ = "content_items"
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT','GENERATING','REVIEW','SCHEDULED','PUBLISHED','FAILED')",
            name="content_items_status_check",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    paa_question = Column(Text, nullable=False)
    topic = Column(Text, nullable=True)
    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="DRAFT")
    pipeline_step = Column(Text, nullable=True)
    last_error = Column(Text, nullable=True)
    needs_attention = Column(Boolean, nullable=False, default=False)

    blog_generated = Column(Boolean, nullable=False, default=False)
    images_generated = Column(Boolean, nullable=False, default=False)
    social_generated = Column(Boolean, nullable=False, default=False)
    wrhq_blog_generated = Column(Boolean, nullable=False, default=False)
    wrhq_social_generated = Column(Boolean, nullable=False, default=False)
    podcast_generated = Column(Boolean, nullable=False, default=False)
    short_video_generated = Column(Boolean, nullable=False, default=False)
    schema_generated = Column(Boolean, nullable=False, default=False)

    blog_approved = Column(Boolean, nullable=False, default=False)
    images_approved = Column(Boolean, nullable=False, default=False)
    social_approved = Column(Boolean, nullable=False, default=False)
    wrhq_blog_approved = Column(Boolean, nullable=False, default=False)
    wrhq_social_approved = Column(Boolean, nullable=False, default=False)
    podcast_desc_approved = Column(Boolean, nullable=False, default=False)
    video_desc_approved = Column(Boolean, nullable=False, default=False)
    longform_video_approved = Column(Boolean, nullable=False, default=False)

    client_blog_published = Column(Boolean, nullable=False, default=False)
    client_blog_published_at = Column(DateTime(timezone=True), nullable=True)
    client_blog_url = Column(Text, nullable=True)
    wrhq_blog_published = Column(Boolean, nullable=False, default=False)
    wrhq_blog_published_at = Column(DateTime(timezone=True), nullable=True)
    wrhq_blog_url = Column(Text, nullable=True)
    social_published = Column(Boolean, nullable=False, default=False)
    social_published_at = Column(DateTime(timezone=True), nullable=True)

    podcast_status = Column(Text, nullable=True)
    podcast_url = Column(Text, nullable=True)
    podcast_description = Column(Text, nullable=True)
    podcast_added_to_post = Column(Boolean, nullable=False, default=False)
    podcast_added_at = Column(DateTime(timezone=True), nullable=True)

    short_video_status = Column(Text, nullable=True)
    short_video_description = Column(Text, nullable=True)
    short_video_added_to_post = Column(Boolean, nullable=False, default=False)
    short_video_added_at = Column(DateTime(timezone=True), nullable=True)

    longform_video_url = Column(Text, nullable=True)
    longform_video_desc = Column(Text, nullable=True)
    long_video_uploaded = Column(Boolean, nullable=False, default=False)
    long_video_added_to_post = Column(Boolean, nullable=False, default=False)
    long_video_added_at = Column(DateTime(timezone=True), nullable=True)

    images_total_count = Column(Integer, nullable=False, default=0)
    images_approved_count = Column(Integer, nullable=False, default=0)
    social_total_count = Column(Integer, nullable=False, default=0)
    social_approved_count = Column(Integer, nullable=False, default=0)
    wrhq_social_total_count = Column(Integer, nullable=False, default=0)
    wrhq_social_approved_count = Column(Integer, nullable=False, default=0)
    schema_update_count = Column(Integer, nullable=False, default=0)
    schema_last_updated = Column(DateTime(timezone=True), nullable=True)
    completion_percent = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    meta_title = Column(Text, nullable=True)
    meta_description = Column(Text, nullable=True)
    focus_keyword = Column(Text, nullable=True)
    word_count = Column(Integer, nullable=False, default=0)
    schema_json = Column(Text, nullable=True)
    wordpress_post_id = Column(BigInteger, nullable=True)
    wordpress_url = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class WRHQBlogPost(Base):
    __tablename__ = "wrhq_blog_posts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    meta_title = Column(Text, nullable=True)
    meta_description = Column(Text, nullable=True)
    focus_keyword = Column(Text, nullable=True)
    word_count = Column(Integer, nullable=False, default=0)
    featured_image_url = Column(Text, nullable=True)
    wordpress_post_id = Column(BigInteger, nullable=True)
    wordpress_url = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Image(Base):
    __tablename__ = "images"
    __table_args__ = (
        CheckConstraint(
            "image_type IN ('BLOG_FEATURED','INSTAGRAM_FEED','FACEBOOK','TWITTER','LINKEDIN','GBP')",
            name="images_image_type_check",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    image_type = Column(Text, nullable=False)
    file_name = Column(Text, nullable=False)
    gcs_url = Column(Text, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    alt_text = Column(Text, nullable=True)
    approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Podcast(Base):
    __tablename__ = "podcasts"
    __table_args__ = (
        CheckConstraint("status IN ('PROCESSING','READY','PUBLISHED','FAILED')", name="podcasts_status_check"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    script = Column(Text, nullable=False)
    autocontent_job_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PROCESSING")
    audio_url = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    podbean_episode_id = Column(Text, nullable=True)
    podbean_url = Column(Text, nullable=True)
    podbean_player_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        CheckConstraint("status IN ('PROCESSING','READY','PUBLISHED','FAILED')", name="videos_status_check"),
        CheckConstraint("video_type IN ('SHORT','LONG')", name="videos_video_type_check"),
        UniqueConstraint("content_item_id", "video_type", name="videos_content_item_type_unique"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    video_type = Column(Text, nullable=False, default="SHORT")
    provider = Column(Text, nullable=False, default="CREATIFY")
    provider_job_id = Column(Text, nullable=True)
    aspect_ratio = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PROCESSING")
    video_url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


SOCIAL_STATUS_CHECK = "status IN ('DRAFT','SCHEDULED','PROCESSING','PUBLISHED','FAILED')"
OPEN_TASK_CONDITION = "status NOT IN ('failed', 'canceled')"


class SocialPost(Base):
    __tablename__ = "social_posts"
    __table_args__ = (
        CheckConstraint(SOCIAL_STATUS_CHECK, name="social_posts_status_check"),
        UniqueConstraint("content_item_id", "platform", name="social_posts_item_platform_unique"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    platform = Column(Text, nullable=False)
    caption = Column(Text, nullable=False)
    hashtags = Column(JSONType, nullable=False, default=list)
    first_comment = Column(Text, nullable=True)
    media_type = Column(Text, nullable=False, default="image")
    media_urls = Column(JSONType, nullable=False, default=list)
    approved = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="DRAFT")
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    late_post_id = Column(Text, nullable=True)
    published_url = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class WRHQSocialPost(Base):
    __tablename__ = "wrhq_social_posts"
    __table_args__ = (
        CheckConstraint(SOCIAL_STATUS_CHECK, name="wrhq_social_posts_status_check"),
        UniqueConstraint(
            "content_item_id", "platform", "media_type", name="wrhq_social_posts_item_platform_media_unique"
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform = Column(Text, nullable=False)
    caption = Column(Text, nullable=False)
    hashtags = Column(JSONType, nullable=False, default=list)
    first_comment = Column(Text, nullable=True)
    media_type = Column(Text, nullable=False, default="image")
    media_urls = Column(JSONType, nullable=False, default=list)
    approved = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="DRAFT")
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    late_post_id = Column(Text, nullable=True)
    published_url = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PipelineTask(Base):
    __tablename__ = "pipeline_tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued','processing','retrying','succeeded','failed','canceled')",
            name="pipeline_tasks_status_check",
        ),
        CheckConstraint(
            "task_type IN ('complete_media_pipeline','embed_all_media')",
            name="pipeline_tasks_task_type_check",
        ),
        Index(
            "pipeline_tasks_open_dedupe_key_unique",
            "dedupe_key",
            unique=True,
            postgresql_where=text(OPEN_TASK_CONDITION),
            sqlite_where=text(OPEN_TASK_CONDITION),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    task_type = Column(Text, nullable=False)
    dedupe_key = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="queued")
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PipelineEvent(Base):
    __tablename__ = "pipeline_events"
    __table_args__ = (
        CheckConstraint(
            "event_type IN ('started','succeeded','failed','state_changed','task_enqueued')",
            name="pipeline_events_event_type_check",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_item_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    step = Column(Text, nullable=True)
    payload = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
