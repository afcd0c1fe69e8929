from __future__ import annotations

import io
import logging
from typing import Any, Dict, List

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .google_auth import youtube_credentials
from .http import IntegrationError, download_binary_file

logger = logging.getLogger("content_backend.integrations")

UPLOAD_CHUNK_BYTES = 8 * 1024 * 1024


def is_youtube_configured(config: Dict[str, Any]) -> bool:
    return bool(config["youtube_client_id"] and config["youtube_client_secret"] and config["youtube_refresh_token"])


def upload_video_from_url(
    video_url: str,
    *,
    title: str,
    description: str,
    tags: List[str],
    config: Dict[str, Any],
    privacy_status: str = "public",
) -> Dict[str, str]:
    if not is_youtube_configured(config):
        raise IntegrationError("YouTube is not configured.")
    data, _, content_type = download_binary_file(video_url, config["upload_timeout_seconds"])
    body = {
        "snippet": {"title": title[:100], "description": description, "tags": tags, "categoryId": "22"},
        "status": {"privacyStatus": privacy_status, "selfDeclaredMadeForKids": False},
    }
    media = MediaIoBaseUpload(
        io.BytesIO(data),
        mimetype=content_type if content_type.startswith("video/") else "video/mp4",
        chunksize=UPLOAD_CHUNK_BYTES,
        resumable=True,
    )
    try:
        service = build("youtube", "v3", credentials=youtube_credentials(config), cache_discovery=False)
        request = service.videos().insert(part="snippet,status", body=body, media_body=media)
        response = None
        while response is None:
            progress, response = request.next_chunk()
            if progress is not None:
                logger.debug("integrations.youtube.upload_progress percent=%d", int(progress.progress() * 100))
    except HttpError as exc:
        raise IntegrationError(f"YouTube upload failed, HTTP {exc.resp.status}: {exc}") from exc
    except GoogleAuthError as exc:
        raise IntegrationError(f"YouTube authorization failed: {exc}") from exc

    video_id = (response or {}).get("id")
    if not video_id:
        raise IntegrationError("YouTube upload response did not include a video ID.")
    return {"video_id": str(video_id), "video_url": f"https://www.youtube.com/watch?v={video_id}"}
