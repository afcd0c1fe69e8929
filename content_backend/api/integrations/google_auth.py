from __future__ import annotations

import json
from typing import Any, Dict, Sequence

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

from .http import IntegrationError

STORAGE_SCOPES = ["https://www.googleapis.com/auth/devstorage.read_write"]
YOUTUBE_SCOPES = ["https://www.googleapis.com/auth/youtube.upload"]


def service_account_credentials(config: Dict[str, Any], scopes: Sequence[str]) -> service_account.Credentials:
    inline_json = config["google_service_account_json"]
    file_path = config["google_service_account_file"]
    try:
        if inline_json:
            return service_account.Credentials.from_service_account_info(json.loads(inline_json), scopes=scopes)
        if file_path:
            return service_account.Credentials.from_service_account_file(file_path, scopes=scopes)
    except (ValueError, OSError) as exc:
        raise IntegrationError(f"Google service account credentials are invalid: {exc}") from exc
    raise IntegrationError("Either GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_SERVICE_ACCOUNT_FILE must be set.")


def youtube_credentials(config: Dict[str, Any]) -> user_credentials.Credentials:
    """OAuth user credentials for the channel owner, refreshed from the stored refresh token."""
    return user_credentials.Credentials(
        None,
        refresh_token=config["youtube_refresh_token"],
        token_uri=config["google_token_url"],
        client_id=config["youtube_client_id"],
        client_secret=config["youtube_client_secret"],
        scopes=YOUTUBE_SCOPES,
    )


def access_token(credentials: Any) -> str:
    try:
        credentials.refresh(Request())
    except GoogleAuthError as exc:
        raise IntegrationError(f"Google token refresh failed: {exc}") from exc
    if not credentials.token:
        raise IntegrationError("Google token refresh did not return an access token.")
    return str(credentials.token)
