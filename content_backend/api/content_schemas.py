from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, validator

from .settings import DEFAULT_SOCIAL_PLATFORMS, WRHQ_SOCIAL_PLATFORMS

CLIENT_STATUSES = {"active", "inactive"}
CONTENT_STATUSES = {"DRAFT", "GENERATING", "REVIEW", "SCHEDULED", "PUBLISHED", "FAILED"}
USER_ROLES = {"admin", "client"}
SOCIAL_PLATFORMS = set(WRHQ_SOCIAL_PLATFORMS)

PATCH_BOOLEAN_FIELDS = {
    "blog_generated",
    "images_generated",
    "social_generated",
    "wrhq_blog_generated",
    "wrhq_social_generated",
    "podcast_generated",
    "short_video_generated",
    "schema_generated",
    "blog_approved",
    "images_approved",
    "social_approved",
    "wrhq_blog_approved",
    "wrhq_social_approved",
    "podcast_desc_approved",
    "video_desc_approved",
    "longform_video_approved",
    "client_blog_published",
    "wrhq_blog_published",
    "social_published",
    "podcast_added_to_post",
    "short_video_added_to_post",
    "long_video_uploaded",
    "long_video_added_to_post",
    "needs_attention",
}
PATCH_STRING_FIELDS = {
    "status",
    "pipeline_step",
    "last_error",
    "notes",
    "topic",
    "paa_question",
    "scheduled_time",
    "client_blog_url",
    "wrhq_blog_url",
    "podcast_status",
    "podcast_url",
    "podcast_description",
    "short_video_status",
    "short_video_description",
    "longform_video_url",
    "longform_video_desc",
}
PATCH_NUMBER_FIELDS = {
    "priority",
    "images_total_count",
    "images_approved_count",
    "social_total_count",
    "social_approved_count",
    "wrhq_social_total_count",
    "wrhq_social_approved_count",
    "schema_update_count",
    "completion_percent",
}
PATCH_DATE_FIELDS = {
    "scheduled_date",
    "client_blog_published_at",
    "wrhq_blog_published_at",
    "social_published_at",
    "podcast_added_at",
    "short_video_added_at",
    "long_video_added_at",
    "schema_last_updated",
}
PATCH_STATE_FIELDS = {"status", "pipeline_step", "last_error"}


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = value.strip()
    return cleaned or None


def _normalize_platforms(value: List[str]) -> List[str]:
    out: List[str] = []
    for platform in value:
        cleaned = platform.strip().lower()
        if cleaned not in SOCIAL_PLATFORMS:
            raise ValueError(f"unsupported social platform {platform}.")
        if cleaned not in out:
            out.append(cleaned)
    return out


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str]
    role: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class AuthLoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)

    @validator("email")
    def normalize_email(cls, value: EmailStr) -> str:
        return str(value).strip().lower()

    @validator("password")
    def non_empty_password(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("password must not be empty.")
        return cleaned


class AuthLoginOut(BaseModel):
    ok: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class AuthLogoutOut(BaseModel):
    ok: bool = True


class ClientCreate(BaseModel):
    business_name: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=120)
    state: str = Field(min_length=1, max_length=60)
    street_address: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    brand_voice: Optional[str] = None
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None
    service_areas: List[str] = Field(default_factory=list)
    has_adas_calibration: bool = False
    offers_mobile_service: bool = False
    google_rating: Optional[float] = Field(default=None, ge=0, le=5)
    google_review_count: Optional[int] = Field(default=None, ge=0)
    wordpress_url: Optional[str] = None
    wordpress_username: Optional[str] = None
    wordpress_app_password: Optional[str] = None
    social_platforms: List[str] = Field(default_factory=lambda: list(DEFAULT_SOCIAL_PLATFORMS))
    social_account_ids: Dict[str, str] = Field(default_factory=dict)
    podbean_enabled: bool = True
    status: str = "active"

    @validator("business_name", "city", "state")
    def required_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be empty.")
        return cleaned

    @validator(
        "street_address",
        "postal_code",
        "phone",
        "website",
        "logo_url",
        "primary_color",
        "brand_voice",
        "cta_text",
        "cta_url",
        "wordpress_url",
        "wordpress_username",
        "wordpress_app_password",
    )
    def optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)

    @validator("service_areas")
    def clean_service_areas(cls, value: List[str]) -> List[str]:
        return [area.strip() for area in value if area and area.strip()]

    @validator("social_platforms")
    def validate_platforms(cls, value: List[str]) -> List[str]:
        return _normalize_platforms(value)

    @validator("social_account_ids")
    def validate_account_ids(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {key.strip().lower(): str(val).strip() for key, val in value.items() if str(val).strip()}

    @validator("status")
    def validate_status(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in CLIENT_STATUSES:
            raise ValueError("status must be active or inactive.")
        return cleaned


class ClientUpdate(BaseModel):
    business_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    street_address: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    brand_voice: Optional[str] = None
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None
    service_areas: Optional[List[str]] = None
    has_adas_calibration: Optional[bool] = None
    offers_mobile_service: Optional[bool] = None
    google_rating: Optional[float] = Field(default=None, ge=0, le=5)
    google_review_count: Optional[int] = Field(default=None, ge=0)
    wordpress_url: Optional[str] = None
    wordpress_username: Optional[str] = None
    wordpress_app_password: Optional[str] = None
    social_platforms: Optional[List[str]] = None
    social_account_ids: Optional[Dict[str, str]] = None
    podbean_enabled: Optional[bool] = None
    status: Optional[str] = None

    @validator("business_name", "city", "state")
    def non_empty_when_set(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be empty.")
        return cleaned

    @validator("social_platforms")
    def validate_platforms(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return _normalize_platforms(value)

    @validator("status")
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip().lower()
        if cleaned not in CLIENT_STATUSES:
            raise ValueError("status must be active or inactive.")
        return cleaned


class ClientOut(BaseModel):
    id: UUID
    business_name: str
    city: str
    state: str
    street_address: Optional[str]
    postal_code: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    website: Optional[str]
    logo_url: Optional[str]
    primary_color: Optional[str]
    brand_voice: Optional[str]
    cta_text: Optional[str]
    cta_url: Optional[str]
    service_areas: List[str]
    has_adas_calibration: bool
    offers_mobile_service: bool
    google_rating: Optional[float]
    google_review_count: Optional[int]
    wordpress_url: Optional[str]
    wordpress_username: Optional[str]
    has_wordpress_credentials: bool
    social_platforms: List[str]
    social_account_ids: Dict[str, str]
    podbean_enabled: bool
    status: str
    created_at: datetime
    updated_at: datetime


class ContentItemCreate(BaseModel):
    client_id: UUID
    paa_question: str = Field(min_length=5, max_length=500)
    topic: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    priority: int = 0
    notes: Optional[str] = None

    @validator("paa_question")
    def clean_question(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("paa_question must not be empty.")
        return cleaned

    @validator("topic", "scheduled_time", "notes")
    def optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)


class ContentItemUpdate(BaseModel):
    paa_question: Optional[str] = None
    topic: Optional[str] = None
    scheduled_date: Optional[date] = None
    priority: Optional[int] = None
    notes: Optional[str] = None
    status: Optional[str] = None

    @validator("paa_question")
    def clean_question(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("paa_question must not be empty.")
        return cleaned

    @validator("status")
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip().upper()
        if cleaned not in CONTENT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(sorted(CONTENT_STATUSES))}.")
        return cleaned


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    generate_blog: bool = Field(default=False, alias="generateBlog")
    generate_podcast: bool = Field(default=False, alias="generatePodcast")
    generate_images: bool = Field(default=False, alias="generateImages")
    generate_social: bool = Field(default=False, alias="generateSocial")
    generate_wrhq_blog: bool = Field(default=False, alias="generateWrhqBlog")
    generate_wrhq_social: bool = Field(default=False, alias="generateWrhqSocial")
    generate_short_video: bool = Field(default=False, alias="generateShortVideo")
    regen_video_description: bool = Field(default=False, alias="regenVideoDescription")
    generate_video_social: bool = Field(default=False, alias="generateVideoSocial")


class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    publish_client_blog: bool = Field(default=True, alias="publishClientBlog")
    publish_wrhq_blog: bool = Field(default=True, alias="publishWrhqBlog")
    schedule_social: bool = Field(default=True, alias="scheduleSocial")
    schedule_wrhq_social: bool = Field(default=True, alias="scheduleWrhqSocial")


class StepRunOut(BaseModel):
    success: bool
    results: Dict[str, Dict[str, Any]]


class MediaStatusOut(BaseModel):
    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    continuation_enqueued: bool = False


class SocialPostStatusOut(BaseModel):
    id: UUID
    platform: str
    status: str
    published_url: Optional[str] = None


class SocialStatusOut(BaseModel):
    updated: int
    still_processing: int
    failed: int
    posts: List[SocialPostStatusOut] = Field(default_factory=list)


class EmbedAllMediaOut(BaseModel):
    success: bool
    embedded: List[str] = Field(default_factory=list)
    skipped: Dict[str, Optional[str]] = Field(default_factory=dict)
    error: Optional[str] = None


class ActionOut(BaseModel):
    ok: bool = True
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class BlogPostOut(BaseModel):
    id: UUID
    title: str
    slug: str
    content: str
    excerpt: Optional[str]
    meta_title: Optional[str]
    meta_description: Optional[str]
    focus_keyword: Optional[str]
    word_count: int
    wordpress_post_id: Optional[int]
    wordpress_url: Optional[str]
    published_at: Optional[datetime]


class ImageOut(BaseModel):
    id: UUID
    image_type: str
    file_name: str
    gcs_url: str
    width: int
    height: int
    alt_text: Optional[str]
    approved: bool


class PodcastOut(BaseModel):
    id: UUID
    status: str
    autocontent_job_id: Optional[str]
    audio_url: Optional[str]
    duration: Optional[int]
    podbean_episode_id: Optional[str]
    podbean_url: Optional[str]
    podbean_player_url: Optional[str]


class VideoOut(BaseModel):
    id: UUID
    video_type: str
    provider: str
    provider_job_id: Optional[str]
    status: str
    video_url: Optional[str]
    thumbnail_url: Optional[str]
    duration: Optional[int]


class SocialPostOut(BaseModel):
    id: UUID
    platform: str
    caption: str
    hashtags: List[str]
    first_comment: Optional[str]
    media_type: str
    media_urls: List[str]
    approved: bool
    status: str
    late_post_id: Optional[str]
    published_url: Optional[str]
    error_message: Optional[str]


class PipelineEventOut(BaseModel):
    id: UUID
    event_type: str
    step: Optional[str]
    payload: Dict[str, Any]
    created_at: datetime


class ContentItemOut(BaseModel):
    id: UUID
    client_id: UUID
    paa_question: str
    topic: Optional[str]
    scheduled_date: Optional[date]
    scheduled_time: Optional[str]
    priority: int
    notes: Optional[str]
    status: str
    pipeline_step: Optional[str]
    last_error: Optional[str]
    needs_attention: bool
    flags: Dict[str, bool]
    client_blog_url: Optional[str]
    wrhq_blog_url: Optional[str]
    podcast_status: Optional[str]
    podcast_url: Optional[str]
    short_video_status: Optional[str]
    short_video_description: Optional[str]
    longform_video_url: Optional[str]
    counts: Dict[str, int]
    schema_last_updated: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class ContentItemDetailOut(ContentItemOut):
    blog_post: Optional[BlogPostOut] = None
    wrhq_blog_post: Optional[BlogPostOut] = None
    images: List[ImageOut] = Field(default_factory=list)
    podcast: Optional[PodcastOut] = None
    videos: List[VideoOut] = Field(default_factory=list)
    social_posts: List[SocialPostOut] = Field(default_factory=list)
    wrhq_social_posts: List[SocialPostOut] = Field(default_factory=list)
