from __future__ import annotations

import base64
from typing import Any, Dict

import requests

from .http import IntegrationError, download_binary_file, request_json


def _access_token(config: Dict[str, Any]) -> str:
    client_id = config["podbean_client_id"]
    client_secret = config["podbean_client_secret"]
    if not client_id or not client_secret:
        raise IntegrationError("PODBEAN_CLIENT_ID and PODBEAN_CLIENT_SECRET are required.")
    basic = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
    payload = request_json(
        "POST",
        f"{config['podbean_base_url'].rstrip('/')}/oauth/token",
        headers={
            "Authorization": f"Basic {basic}",
            "Content-Type": "application/x-www-form-urlencoded",
        },
        data={"grant_type": "client_credentials"},
        timeout_seconds=config["timeout_seconds"],
    )
    token = payload.get("access_token")
    if not token:
        raise IntegrationError("Podbean token response did not include access_token.")
    return str(token)


def _upload_audio(audio_url: str, token: str, config: Dict[str, Any]) -> str:
    data, file_name, content_type = download_binary_file(audio_url, config["upload_timeout_seconds"])
    if not file_name.lower().endswith(".mp3"):
        file_name = f"{file_name}.mp3"
    auth = request_json(
        "GET",
        f"{config['podbean_base_url'].rstrip('/')}/files/uploadAuthorize",
        params={
            "access_token": token,
            "filename": file_name,
            "filesize": len(data),
            "content_type": content_type or "audio/mpeg",
        },
        timeout_seconds=config["timeout_seconds"],
    )
    presigned_url = auth.get("presigned_url")
    file_key = auth.get("file_key")
    if not presigned_url or not file_key:
        raise IntegrationError("Podbean upload authorization is missing presigned_url or file_key.")
    try:
        response = requests.put(
            presigned_url,
            data=data,
            headers={"Content-Type": content_type or "audio/mpeg"},
            timeout=config["upload_timeout_seconds"],
        )
    except requests.RequestException as exc:
        raise IntegrationError(f"Podbean audio upload failed: {exc}") from exc
    if response.status_code >= 400:
        raise IntegrationError(f"Podbean audio upload failed, HTTP {response.status_code}.")
    return str(file_key)


def publish_episode(*, title: str, description: str, audio_url: str, config: Dict[str, Any]) -> Dict[str, str]:
    token = _access_token(config)
    media_key = _upload_audio(audio_url, token, config)
    payload = request_json(
        "POST",
        f"{config['podbean_base_url'].rstrip('/')}/episodes",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        data={
            "access_token": token,
            "title": title,
            "content": description,
            "status": "publish",
            "type": "public",
            "media_key": media_key,
        },
        timeout_seconds=config["timeout_seconds"],
    )
    episode = payload.get("episode")
    if not isinstance(episode, dict) or not episode.get("id"):
        raise IntegrationError("Podbean publish response did not include an episode.")
    return {
        "episode_id": str(episode["id"]),
        "url": str(episode.get("permalink_url") or ""),
        "player_url": str(episode.get("player_url") or ""),
    }
