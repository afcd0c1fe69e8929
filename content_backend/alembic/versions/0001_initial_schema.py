"""initial content pipeline schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

SOCIAL_STATUS_CHECK = "status IN ('DRAFT','SCHEDULED','PROCESSING','PUBLISHED','FAILED')"


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _content_item_fk(*, unique: bool = False) -> sa.Column:
    return sa.Column(
        "content_item_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("content_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def _client_fk() -> sa.Column:
    return sa.Column(
        "client_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )


def _flag(name: str) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.text("false"))


def _count(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0"))


def _blog_columns() -> list[sa.Column]:
    return [
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("meta_title", sa.Text(), nullable=True),
        sa.Column("meta_description", sa.Text(), nullable=True),
        sa.Column("focus_keyword", sa.Text(), nullable=True),
        _count("word_count"),
    ]


def _social_columns() -> list[sa.Column]:
    return [
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("caption", sa.Text(), nullable=False),
        sa.Column("hashtags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("first_comment", sa.Text(), nullable=True),
        sa.Column("media_type", sa.Text(), nullable=False, server_default=sa.text("'image'")),
        sa.Column("media_urls", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        _flag("approved"),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("scheduled_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("late_post_id", sa.Text(), nullable=True),
        sa.Column("published_url", sa.Text(), nullable=True),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "clients",
        _id(),
        sa.Column("business_name", sa.Text(), nullable=False),
        sa.Column("city", sa.Text(), nullable=False),
        sa.Column("state", sa.Text(), nullable=False),
        sa.Column("street_address", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("primary_color", sa.Text(), nullable=True),
        sa.Column("brand_voice", sa.Text(), nullable=True),
        sa.Column("cta_text", sa.Text(), nullable=True),
        sa.Column("cta_url", sa.Text(), nullable=True),
        sa.Column("service_areas", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        _flag("has_adas_calibration"),
        _flag("offers_mobile_service"),
        sa.Column("google_rating", sa.Float(), nullable=True),
        sa.Column("google_review_count", sa.Integer(), nullable=True),
        sa.Column("wordpress_url", sa.Text(), nullable=True),
        sa.Column("wordpress_username", sa.Text(), nullable=True),
        sa.Column("wordpress_app_password", sa.Text(), nullable=True),
        sa.Column("social_platforms", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("social_account_ids", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("podbean_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="clients_status_check"),
    )

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'admin'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin','client')", name="users_role_check"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "content_items",
        _id(),
        _client_fk(),
        sa.Column("paa_question", sa.Text(), nullable=False),
        sa.Column("topic", sa.Text(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time", sa.Text(), nullable=True),
        _count("priority"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("pipeline_step", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        _flag("needs_attention"),
        _flag("blog_generated"),
        _flag("images_generated"),
        _flag("social_generated"),
        _flag("wrhq_blog_generated"),
        _flag("wrhq_social_generated"),
        _flag("podcast_generated"),
        _flag("short_video_generated"),
        _flag("schema_generated"),
        _flag("blog_approved"),
        _flag("images_approved"),
        _flag("social_approved"),
        _flag("wrhq_blog_approved"),
        _flag("wrhq_social_approved"),
        _flag("podcast_desc_approved"),
        _flag("video_desc_approved"),
        _flag("longform_video_approved"),
        _flag("client_blog_published"),
        sa.Column("client_blog_published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("client_blog_url", sa.Text(), nullable=True),
        _flag("wrhq_blog_published"),
        sa.Column("wrhq_blog_published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("wrhq_blog_url", sa.Text(), nullable=True),
        _flag("social_published"),
        sa.Column("social_published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("podcast_status", sa.Text(), nullable=True),
        sa.Column("podcast_url", sa.Text(), nullable=True),
        sa.Column("podcast_description", sa.Text(), nullable=True),
        _flag("podcast_added_to_post"),
        sa.Column("podcast_added_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("short_video_status", sa.Text(), nullable=True),
        sa.Column("short_video_description", sa.Text(), nullable=True),
        _flag("short_video_added_to_post"),
        sa.Column("short_video_added_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("longform_video_url", sa.Text(), nullable=True),
        sa.Column("longform_video_desc", sa.Text(), nullable=True),
        _flag("long_video_uploaded"),
        _flag("long_video_added_to_post"),
        sa.Column("long_video_added_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _count("images_total_count"),
        _count("images_approved_count"),
        _count("social_total_count"),
        _count("social_approved_count"),
        _count("wrhq_social_total_count"),
        _count("wrhq_social_approved_count"),
        _count("schema_update_count"),
        sa.Column("schema_last_updated", sa.TIMESTAMP(timezone=True), nullable=True),
        _count("completion_percent"),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('DRAFT','GENERATING','REVIEW','SCHEDULED','PUBLISHED','FAILED')",
            name="content_items_status_check",
        ),
    )
    op.create_index("ix_content_items_client_id", "content_items", ["client_id"])

    op.create_table(
        "blog_posts",
        _id(),
        _content_item_fk(unique=True),
        _client_fk(),
        *_blog_columns(),
        sa.Column("schema_json", sa.Text(), nullable=True),
        sa.Column("wordpress_post_id", sa.BigInteger(), nullable=True),
        sa.Column("wordpress_url", sa.Text(), nullable=True),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "wrhq_blog_posts",
        _id(),
        _content_item_fk(unique=True),
        *_blog_columns(),
        sa.Column("featured_image_url", sa.Text(), nullable=True),
        sa.Column("wordpress_post_id", sa.BigInteger(), nullable=True),
        sa.Column("wordpress_url", sa.Text(), nullable=True),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "images",
        _id(),
        _content_item_fk(),
        _client_fk(),
        sa.Column("image_type", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("gcs_url", sa.Text(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("alt_text", sa.Text(), nullable=True),
        _flag("approved"),
        *_timestamps(),
        sa.CheckConstraint(
            "image_type IN ('BLOG_FEATURED','INSTAGRAM_FEED','FACEBOOK','TWITTER','LINKEDIN','GBP')",
            name="images_image_type_check",
        ),
    )
    op.create_index("ix_images_content_item_id", "images", ["content_item_id"])

    op.create_table(
        "podcasts",
        _id(),
        _content_item_fk(unique=True),
        _client_fk(),
        sa.Column("script", sa.Text(), nullable=False),
        sa.Column("autocontent_job_id", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PROCESSING'")),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("podbean_episode_id", sa.Text(), nullable=True),
        sa.Column("podbean_url", sa.Text(), nullable=True),
        sa.Column("podbean_player_url", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('PROCESSING','READY','PUBLISHED','FAILED')", name="podcasts_status_check"),
    )

    op.create_table(
        "videos",
        _id(),
        _content_item_fk(),
        _client_fk(),
        sa.Column("video_type", sa.Text(), nullable=False, server_default=sa.text("'SHORT'")),
        sa.Column("provider", sa.Text(), nullable=False, server_default=sa.text("'CREATIFY'")),
        sa.Column("provider_job_id", sa.Text(), nullable=True),
        sa.Column("aspect_ratio", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PROCESSING'")),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('PROCESSING','READY','PUBLISHED','FAILED')", name="videos_status_check"),
        sa.CheckConstraint("video_type IN ('SHORT','LONG')", name="videos_video_type_check"),
        sa.UniqueConstraint("content_item_id", "video_type", name="videos_content_item_type_unique"),
    )
    op.create_index("ix_videos_content_item_id", "videos", ["content_item_id"])

    op.create_table(
        "social_posts",
        _id(),
        _content_item_fk(),
        _client_fk(),
        *_social_columns(),
        *_timestamps(),
        sa.CheckConstraint(SOCIAL_STATUS_CHECK, name="social_posts_status_check"),
        sa.UniqueConstraint("content_item_id", "platform", name="social_posts_item_platform_unique"),
    )
    op.create_index("ix_social_posts_content_item_id", "social_posts", ["content_item_id"])

    op.create_table(
        "wrhq_social_posts",
        _id(),
        _content_item_fk(),
        *_social_columns(),
        *_timestamps(),
        sa.CheckConstraint(SOCIAL_STATUS_CHECK, name="wrhq_social_posts_status_check"),
        sa.UniqueConstraint(
            "content_item_id", "platform", "media_type", name="wrhq_social_posts_item_platform_media_unique"
        ),
    )
    op.create_index("ix_wrhq_social_posts_content_item_id", "wrhq_social_posts", ["content_item_id"])

    op.create_table(
        "pipeline_tasks",
        _id(),
        sa.Column("content_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("task_type", sa.Text(), nullable=False),
        sa.Column("dedupe_key", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'queued'")),
        _count("attempt_count"),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('queued','processing','retrying','succeeded','failed','canceled')",
            name="pipeline_tasks_status_check",
        ),
        sa.CheckConstraint(
            "task_type IN ('complete_media_pipeline','embed_all_media')",
            name="pipeline_tasks_task_type_check",
        ),
    )
    op.create_index("ix_pipeline_tasks_content_item_id", "pipeline_tasks", ["content_item_id"])
    op.create_index("ix_pipeline_tasks_status_created_at", "pipeline_tasks", ["status", "created_at"])
    op.create_index(
        "pipeline_tasks_open_dedupe_key_unique",
        "pipeline_tasks",
        ["dedupe_key"],
        unique=True,
        postgresql_where=sa.text("status NOT IN ('failed', 'canceled')"),
    )

    op.create_table(
        "pipeline_events",
        _id(),
        sa.Column("content_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("step", sa.Text(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "event_type IN ('started','succeeded','failed','state_changed','task_enqueued')",
            name="pipeline_events_event_type_check",
        ),
    )
    op.create_index("ix_pipeline_events_content_item_id", "pipeline_events", ["content_item_id"])


def downgrade() -> None:
    op.drop_index("ix_pipeline_events_content_item_id", table_name="pipeline_events")
    op.drop_table("pipeline_events")
    op.drop_index("pipeline_tasks_open_dedupe_key_unique", table_name="pipeline_tasks")
    op.drop_index("ix_pipeline_tasks_status_created_at", table_name="pipeline_tasks")
    op.drop_index("ix_pipeline_tasks_content_item_id", table_name="pipeline_tasks")
    op.drop_table("pipeline_tasks")
    for table in ("wrhq_social_posts", "social_posts", "videos", "images"):
        op.drop_index(f"ix_{table}_content_item_id", table_name=table)
        op.drop_table(table)
    op.drop_table("podcasts")
    op.drop_table("wrhq_blog_posts")
    op.drop_table("blog_posts")
    op.drop_index("ix_content_items_client_id", table_name="content_items")
    op.drop_table("content_items")
    op.drop_table("users")
    op.drop_table("clients")
