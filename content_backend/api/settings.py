from __future__ import annotations

import os
from typing import Any, Dict

DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_IMAGEN_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_IMAGEN_MODEL = "imagen-3.0-generate-001"
DEFAULT_AUTOCONTENT_BASE_URL = "https://api.autocontent.ai/v1"
DEFAULT_CREATIFY_BASE_URL = "https://api.creatify.ai/api"
DEFAULT_GETLATE_BASE_URL = "https://getlate.dev/api/v1"
DEFAULT_PODBEAN_BASE_URL = "https://api.podbean.com/v1"
DEFAULT_GCS_UPLOAD_BASE_URL = "https://storage.googleapis.com/upload/storage/v1"
DEFAULT_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 300
DEFAULT_LLM_TIMEOUT_SECONDS = 120
DEFAULT_SOCIAL_POLL_ATTEMPTS = 3
DEFAULT_SOCIAL_POLL_INTERVAL_SECONDS = 2

DEFAULT_SOCIAL_PLATFORMS = ("facebook", "instagram", "linkedin", "twitter", "gbp")
WRHQ_SOCIAL_PLATFORMS = ("facebook", "instagram", "linkedin", "twitter", "tiktok", "youtube")
WRHQ_VIDEO_PLATFORMS = ("tiktok", "instagram", "youtube")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    pass


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return default


def get_runtime_config() -> Dict[str, Any]:
    def read_int(name: str, default: int) -> int:
        raw = os.getenv(name, str(default)).strip()
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer, got '{raw}'.") from exc

    return {
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", "").strip(),
        "anthropic_base_url": os.getenv("ANTHROPIC_BASE_URL", DEFAULT_ANTHROPIC_BASE_URL).strip(),
        "anthropic_model": os.getenv("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL).strip(),
        "llm_timeout_seconds": read_int("LLM_TIMEOUT_SECONDS", DEFAULT_LLM_TIMEOUT_SECONDS),
        "imagen_api_key": (os.getenv("GOOGLE_AI_API_KEY") or os.getenv("NANO_BANANA_API_KEY") or "").strip(),
        "imagen_base_url": os.getenv("IMAGEN_BASE_URL", DEFAULT_IMAGEN_BASE_URL).strip(),
        "imagen_model": os.getenv("IMAGEN_MODEL", DEFAULT_IMAGEN_MODEL).strip(),
        "autocontent_api_key": os.getenv("AUTOCONTENT_API_KEY", "").strip(),
        "autocontent_base_url": os.getenv("AUTOCONTENT_BASE_URL", DEFAULT_AUTOCONTENT_BASE_URL).strip(),
        "creatify_api_key": os.getenv("CREATIFY_API_KEY", "").strip(),
        "creatify_base_url": os.getenv("CREATIFY_BASE_URL", DEFAULT_CREATIFY_BASE_URL).strip(),
        "getlate_api_key": os.getenv("GETLATE_API_KEY", "").strip(),
        "getlate_base_url": os.getenv("GETLATE_BASE_URL", DEFAULT_GETLATE_BASE_URL).strip(),
        "podbean_client_id": os.getenv("PODBEAN_CLIENT_ID", "").strip(),
        "podbean_client_secret": os.getenv("PODBEAN_CLIENT_SECRET", "").strip(),
        "podbean_base_url": os.getenv("PODBEAN_BASE_URL", DEFAULT_PODBEAN_BASE_URL).strip(),
        "gcs_bucket": os.getenv("GCS_BUCKET_NAME", "").strip(),
        "gcs_upload_base_url": os.getenv("GCS_UPLOAD_BASE_URL", DEFAULT_GCS_UPLOAD_BASE_URL).strip(),
        "google_service_account_json": os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON", "").strip(),
        "google_service_account_file": os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "").strip(),
        "youtube_client_id": os.getenv("YOUTUBE_CLIENT_ID", "").strip(),
        "youtube_client_secret": os.getenv("YOUTUBE_CLIENT_SECRET", "").strip(),
        "youtube_refresh_token": os.getenv("YOUTUBE_REFRESH_TOKEN", "").strip(),
        "google_token_url": os.getenv("GOOGLE_TOKEN_URL", DEFAULT_GOOGLE_TOKEN_URL).strip(),
        "timeout_seconds": read_int("PIPELINE_REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        "upload_timeout_seconds": read_int("PIPELINE_UPLOAD_TIMEOUT_SECONDS", DEFAULT_UPLOAD_TIMEOUT_SECONDS),
        "social_poll_attempts": read_int("SOCIAL_POLL_ATTEMPTS", DEFAULT_SOCIAL_POLL_ATTEMPTS),
        "social_poll_interval_seconds": read_int(
            "SOCIAL_POLL_INTERVAL_SECONDS",
            DEFAULT_SOCIAL_POLL_INTERVAL_SECONDS,
        ),
    }


def get_wrhq_config() -> Dict[str, Any]:
    account_ids: Dict[str, str] = {}
    for platform in WRHQ_SOCIAL_PLATFORMS:
        value = os.getenv(f"WRHQ_LATE_{platform.upper()}_ACCOUNT_ID", "").strip()
        if value:
            account_ids[platform] = value
    return {
        "enabled": env_flag("WRHQ_ENABLED", False),
        "wordpress_url": os.getenv("WRHQ_WORDPRESS_URL", "").strip(),
        "wordpress_username": os.getenv("WRHQ_WORDPRESS_USERNAME", "").strip(),
        "wordpress_app_password": os.getenv("WRHQ_WORDPRESS_APP_PASSWORD", "").strip(),
        "blog_category": os.getenv("WRHQ_BLOG_CATEGORY", "auto-glass-repair").strip(),
        "late_account_ids": account_ids,
        "youtube_enabled": env_flag("WRHQ_YOUTUBE_ENABLED", True),
    }


def publish_requires_approval() -> bool:
    return env_flag("PUBLISH_REQUIRE_APPROVAL", True)
