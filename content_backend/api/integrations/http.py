from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests

DEFAULT_TIMEOUT_SECONDS = 60


class IntegrationError(RuntimeError):
    pass


def request_json(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    data: Any = None,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    allow_redirects: bool = True,
) -> Dict[str, Any]:
    try:
        response = requests.request(
            method=method,
            url=url,
            headers=headers,
            json=json_body,
            params=params,
            data=data,
            timeout=timeout_seconds,
            allow_redirects=allow_redirects,
        )
    except requests.RequestException as exc:
        raise IntegrationError(f"Request failed for {url}: {exc}") from exc

    if 300 <= response.status_code < 400:
        location = response.headers.get("Location", "")
        raise IntegrationError(f"Unexpected redirect from {url} to {location}.")

    if response.status_code >= 400:
        body = response.text[:600]
        raise IntegrationError(f"HTTP {response.status_code} from {url}: {body}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise IntegrationError(f"Non-JSON response from {url}.") from exc
    if not isinstance(payload, dict):
        raise IntegrationError(f"Expected JSON object from {url}, got {type(payload).__name__}.")
    return payload


def download_binary_file(url: str, timeout_seconds: int) -> Tuple[bytes, str, str]:
    try:
        response = requests.get(url, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise IntegrationError(f"Failed to download {url}: {exc}") from exc

    if response.status_code >= 400:
        raise IntegrationError(f"Failed to download {url}, HTTP {response.status_code}.")

    content_type = response.headers.get("Content-Type", "application/octet-stream").split(";")[0].strip()
    path_name = Path(urlparse(url).path).name
    file_name = path_name if path_name else f"download{mimetypes.guess_extension(content_type) or '.bin'}"
    return response.content, file_name, content_type


def bearer_headers(api_key: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}


def first_present(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None
