from __future__ import annotations

from typing import Any, Dict, List, Optional

from .http import IntegrationError, first_present, request_json

_STATUS_MAP = {
    "pending": "pending",
    "queued": "pending",
    "processing": "processing",
    "running": "processing",
    "in_queue": "processing",
    "done": "completed",
    "completed": "completed",
    "failed": "failed",
    "error": "failed",
}


def _headers(config: Dict[str, Any]) -> Dict[str, str]:
    raw_key = config["creatify_api_key"]
    if ":" not in raw_key:
        raise IntegrationError("CREATIFY_API_KEY must be in the form 'api_id:api_key'.")
    api_id, api_key = raw_key.split(":", 1)
    return {"X-API-ID": api_id.strip(), "X-API-KEY": api_key.strip(), "Content-Type": "application/json"}


def create_short_video(*, script: str, config: Dict[str, Any], b_roll_media: Optional[List[str]] = None) -> str:
    payload = request_json(
        "POST",
        f"{config['creatify_base_url'].rstrip('/')}/lipsyncs_v2/",
        headers=_headers(config),
        json_body={
            "script": script,
            "aspect_ratio": "9:16",
            "creator": "maya",
            "style": "video_editing",
            "caption": True,
            "caption_style": "default",
            "b_roll_media": b_roll_media or [],
        },
        timeout_seconds=config["timeout_seconds"],
    )
    job_id = first_present(payload, "id", "task_id")
    if not job_id:
        raise IntegrationError("Creatify response did not include a job ID.")
    return str(job_id)


def check_video_status(job_id: str, *, config: Dict[str, Any]) -> Dict[str, Any]:
    payload = request_json(
        "GET",
        f"{config['creatify_base_url'].rstrip('/')}/lipsyncs_v2/{job_id}/",
        headers=_headers(config),
        timeout_seconds=config["timeout_seconds"],
    )
    raw_status = str(payload.get("status") or "").strip().lower()
    duration = payload.get("duration")
    return {
        "status": _STATUS_MAP.get(raw_status, "processing"),
        "video_url": first_present(payload, "output", "video_url"),
        "thumbnail_url": payload.get("thumbnail_url") or payload.get("video_thumbnail"),
        "duration": int(duration) if isinstance(duration, (int, float)) else None,
        "error": payload.get("failed_reason") or payload.get("error"),
    }
