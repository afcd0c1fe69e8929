from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import requests

from .http import IntegrationError, request_json

WP_REST_BASE = "/wp-json/wp/v2"


def _wp_auth_header(username: str, app_password: str) -> str:
    token = base64.b64encode(f"{username}:{app_password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _wp_api_base(site_url: str) -> str:
    return f"{site_url.rstrip('/')}{WP_REST_BASE}"


def _json_headers(username: str, app_password: str) -> Dict[str, str]:
    return {
        "Authorization": _wp_auth_header(username, app_password),
        "Content-Type": "application/json",
    }


def _raw_content(payload: Dict[str, Any]) -> str:
    content = payload.get("content")
    if isinstance(content, dict):
        raw = content.get("raw")
        if isinstance(raw, str):
            return raw
        rendered = content.get("rendered")
        if isinstance(rendered, str):
            return rendered
    if isinstance(content, str):
        return content
    return ""


def wp_get_post(
    *,
    site_url: str,
    wp_username: str,
    wp_app_password: str,
    post_id: int,
    timeout_seconds: int,
) -> Dict[str, Any]:
    """Fetch a post in edit context so the raw (unrendered) body comes back."""
    payload = request_json(
        "GET",
        f"{_wp_api_base(site_url)}/posts/{post_id}",
        headers=_json_headers(wp_username, wp_app_password),
        params={"context": "edit"},
        timeout_seconds=timeout_seconds,
        allow_redirects=False,
    )
    return {
        "id": payload.get("id"),
        "link": payload.get("link"),
        "status": payload.get("status"),
        "content": _raw_content(payload),
    }


def wp_create_post(
    *,
    site_url: str,
    wp_username: str,
    wp_app_password: str,
    title: str,
    content: str,
    excerpt: str,
    slug: str,
    post_status: str,
    timeout_seconds: int,
    featured_media_id: Optional[int] = None,
    category_ids: Optional[List[int]] = None,
    meta: Optional[Dict[str, Any]] = None,
    date_gmt: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": title,
        "content": content,
        "excerpt": excerpt,
        "slug": slug,
        "status": post_status,
        "format": "standard",
    }
    if featured_media_id:
        payload["featured_media"] = featured_media_id
    if category_ids:
        payload["categories"] = category_ids
    if meta:
        payload["meta"] = meta
    if date_gmt:
        payload["date_gmt"] = date_gmt
    return request_json(
        "POST",
        f"{_wp_api_base(site_url)}/posts",
        headers=_json_headers(wp_username, wp_app_password),
        json_body=payload,
        timeout_seconds=timeout_seconds,
        allow_redirects=False,
    )


def wp_update_post(
    *,
    site_url: str,
    wp_username: str,
    wp_app_password: str,
    post_id: int,
    fields: Dict[str, Any],
    timeout_seconds: int,
) -> Dict[str, Any]:
    if not fields:
        raise IntegrationError("wp_update_post called without fields.")
    return request_json(
        "POST",
        f"{_wp_api_base(site_url)}/posts/{post_id}",
        headers=_json_headers(wp_username, wp_app_password),
        json_body=fields,
        timeout_seconds=timeout_seconds,
        allow_redirects=False,
    )


def wp_create_media_item(
    *,
    site_url: str,
    wp_username: str,
    wp_app_password: str,
    data: bytes,
    file_name: str,
    content_type: str,
    title: str,
    alt_text: str,
    timeout_seconds: int,
) -> Dict[str, Any]:
    media_url = f"{_wp_api_base(site_url)}/media"
    headers = {
        "Authorization": _wp_auth_header(wp_username, wp_app_password),
        "Content-Disposition": f'attachment; filename="{file_name}"',
        "Content-Type": content_type or "application/octet-stream",
    }

    try:
        response = requests.post(
            media_url,
            headers=headers,
            data=data,
            timeout=timeout_seconds,
            allow_redirects=False,
        )
    except requests.RequestException as exc:
        raise IntegrationError(f"WordPress media upload failed: {exc}") from exc

    if 300 <= response.status_code < 400:
        location = response.headers.get("Location", "")
        raise IntegrationError(f"WordPress media upload was redirected. redirect={location}")
    if response.status_code >= 400:
        raise IntegrationError(f"WordPress media upload failed, HTTP {response.status_code}: {response.text[:500]}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise IntegrationError("WordPress media upload returned non-JSON response.") from exc
    if not isinstance(payload, dict) or not payload.get("id"):
        raise IntegrationError("WordPress media upload response did not include a media ID.")

    request_json(
        "POST",
        f"{media_url}/{payload['id']}",
        headers=_json_headers(wp_username, wp_app_password),
        json_body={"title": title, "alt_text": alt_text},
        timeout_seconds=timeout_seconds,
        allow_redirects=False,
    )
    return payload


def wp_find_category_id(
    *,
    site_url: str,
    wp_username: str,
    wp_app_password: str,
    slug: str,
    timeout_seconds: int,
) -> Optional[int]:
    url = f"{_wp_api_base(site_url)}/categories"
    try:
        response = requests.get(
            url,
            headers=_json_headers(wp_username, wp_app_password),
            params={"slug": slug},
            timeout=timeout_seconds,
        )
    except requests.RequestException as exc:
        raise IntegrationError(f"Request failed for {url}: {exc}") from exc
    if response.status_code >= 400:
        raise IntegrationError(f"HTTP {response.status_code} from {url}: {response.text[:600]}")
    try:
        rows = response.json()
    except ValueError as exc:
        raise IntegrationError(f"Non-JSON response from {url}.") from exc
    if isinstance(rows, list):
        for row in rows:
            if isinstance(row, dict) and row.get("id"):
                return int(row["id"])
    return None
