from __future__ import annotations

import base64
import binascii
from typing import Any, Dict
from urllib.parse import quote

from .google_auth import STORAGE_SCOPES, access_token, service_account_credentials
from .http import IntegrationError, download_binary_file, request_json

GCS_PUBLIC_HOST = "storage.googleapis.com"


def is_gcs_url(url: str) -> bool:
    return GCS_PUBLIC_HOST in (url or "")


def upload_bytes(data: bytes, object_name: str, content_type: str, *, config: Dict[str, Any]) -> str:
    """Store ``data`` in the configured bucket and return its public URL."""
    bucket = config["gcs_bucket"]
    if not bucket:
        raise IntegrationError("GCS_BUCKET_NAME is required for storage uploads.")
    token = access_token(service_account_credentials(config, STORAGE_SCOPES))
    request_json(
        "POST",
        f"{config['gcs_upload_base_url'].rstrip('/')}/b/{bucket}/o",
        headers={"Authorization": f"Bearer {token}", "Content-Type": content_type or "application/octet-stream"},
        params={"uploadType": "media", "name": object_name},
        data=data,
        timeout_seconds=config["upload_timeout_seconds"],
    )
    return f"https://{GCS_PUBLIC_HOST}/{bucket}/{quote(object_name)}"


def upload_from_url(source_url: str, object_name: str, *, config: Dict[str, Any]) -> str:
    data, _, content_type = download_binary_file(source_url, config["upload_timeout_seconds"])
    return upload_bytes(data, object_name, content_type, config=config)


def upload_data_url(data_url: str, object_name: str, *, config: Dict[str, Any]) -> str:
    header, _, encoded = (data_url or "").partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise IntegrationError("Expected a base64 data URL.")
    content_type = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise IntegrationError("Data URL payload is not valid base64.") from exc
    return upload_bytes(data, object_name, content_type, config=config)
