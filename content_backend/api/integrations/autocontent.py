from __future__ import annotations

from typing import Any, Dict, Optional

from .http import IntegrationError, bearer_headers, first_present, request_json


def _require_key(config: Dict[str, Any]) -> str:
    api_key = config["autocontent_api_key"]
    if not api_key:
        raise IntegrationError("AUTOCONTENT_API_KEY is not set.")
    return api_key


def create_podcast(*, title: str, script: str, config: Dict[str, Any]) -> str:
    payload = request_json(
        "POST",
        f"{config['autocontent_base_url'].rstrip('/')}/podcasts",
        headers=bearer_headers(_require_key(config)),
        json_body={
            "script": script,
            "title": title,
            "length": "short",
            "voice": "default",
            "format": "mp3",
        },
        timeout_seconds=config["timeout_seconds"],
    )
    job_id = first_present(payload, "job_id", "id")
    if not job_id:
        raise IntegrationError("AutoContent response did not include a job ID.")
    return str(job_id)


def check_podcast_status(job_id: str, *, config: Dict[str, Any]) -> Dict[str, Optional[Any]]:
    payload = request_json(
        "GET",
        f"{config['autocontent_base_url'].rstrip('/')}/podcasts/{job_id}",
        headers=bearer_headers(_require_key(config)),
        timeout_seconds=config["timeout_seconds"],
    )
    raw_status = str(payload.get("status") or "").strip().lower()
    if raw_status in {"completed", "complete", "done", "ready"}:
        status = "completed"
    elif raw_status in {"failed", "error"}:
        status = "failed"
    else:
        status = "processing"
    duration = payload.get("duration")
    return {
        "status": status,
        "audio_url": first_present(payload, "audio_url", "audioUrl"),
        "duration": int(duration) if isinstance(duration, (int, float)) else None,
        "error": payload.get("error"),
    }
