from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .content_writer import format_hashtags
from .http import IntegrationError, bearer_headers, first_present, request_json

LATE_PLATFORM_NAMES = {"gbp": "googlebusiness"}


def _require_key(config: Dict[str, Any]) -> str:
    api_key = config["getlate_api_key"]
    if not api_key:
        raise IntegrationError("GETLATE_API_KEY is not set.")
    return api_key


def _normalize_status(raw: Any) -> str:
    value = str(raw or "").strip().lower()
    if value in {"published", "completed", "success"}:
        return "published"
    if value in {"failed", "error"}:
        return "failed"
    if value in {"scheduled", "pending"}:
        return "scheduled"
    return "processing"


def _post_result(payload: Dict[str, Any]) -> Dict[str, Any]:
    post = payload.get("post") if isinstance(payload.get("post"), dict) else payload
    platforms = post.get("platforms") if isinstance(post.get("platforms"), list) else []
    platform_data = platforms[0] if platforms and isinstance(platforms[0], dict) else {}
    return {
        "post_id": first_present(post, "_id", "id", "post_id"),
        "status": _normalize_status(post.get("status")),
        "platform_post_url": first_present(platform_data, "platformPostUrl", "url") or post.get("platformPostUrl"),
        "error": first_present(post, "error", "errorMessage") or first_present(platform_data, "error", "errorMessage"),
    }


def schedule_post(
    *,
    platform: str,
    account_id: str,
    caption: str,
    hashtags: List[str],
    config: Dict[str, Any],
    media_urls: Optional[List[str]] = None,
    media_type: str = "image",
    scheduled_time: Optional[datetime] = None,
    first_comment: Optional[str] = None,
    cta_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a post; ``scheduled_time=None`` publishes immediately."""
    content = caption
    if hashtags:
        content = f"{caption}\n\n{format_hashtags(hashtags)}"
    body: Dict[str, Any] = {
        "content": content,
        "platforms": [{"platform": LATE_PLATFORM_NAMES.get(platform, platform), "accountId": account_id}],
    }
    if media_urls:
        body["mediaItems"] = [{"type": media_type, "url": url} for url in media_urls]
    if scheduled_time is None:
        body["publishNow"] = True
    else:
        body["scheduledFor"] = scheduled_time.astimezone(timezone.utc).isoformat()
    if first_comment:
        body["firstComment"] = first_comment
    if platform == "gbp" and cta_url:
        body["gbpOptions"] = {"callToAction": {"actionType": "LEARN_MORE", "url": cta_url}}

    payload = request_json(
        "POST",
        f"{config['getlate_base_url'].rstrip('/')}/posts",
        headers=bearer_headers(_require_key(config)),
        json_body=body,
        timeout_seconds=config["timeout_seconds"],
    )
    result = _post_result(payload)
    if not result["post_id"]:
        raise IntegrationError("GetLate response did not include a post ID.")
    if not payload.get("status") and not (payload.get("post") or {}).get("status"):
        result["status"] = "published" if scheduled_time is None else "scheduled"
    return result


def get_post_status(post_id: str, *, config: Dict[str, Any]) -> Dict[str, Any]:
    payload = request_json(
        "GET",
        f"{config['getlate_base_url'].rstrip('/')}/posts/{post_id}",
        headers=bearer_headers(_require_key(config)),
        timeout_seconds=config["timeout_seconds"],
    )
    return _post_result(payload)


def post_now_and_check_status(**kwargs: Any) -> Dict[str, Any]:
    config = kwargs["config"]
    result = schedule_post(scheduled_time=None, **kwargs)
    if result["platform_post_url"]:
        return {**result, "status": "published"}
    for _ in range(max(config["social_poll_attempts"], 0)):
        time.sleep(config["social_poll_interval_seconds"])
        try:
            polled = get_post_status(str(result["post_id"]), config=config)
        except IntegrationError:
            continue
        if polled["status"] in {"published", "failed"}:
            return {**result, **{key: value for key, value in polled.items() if value is not None}}
    return {**result, "status": "processing"}
