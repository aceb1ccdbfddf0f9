from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from google.auth.credentials import Credentials
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials

from weekly_marketing_agent.errors import ConfigurationError, WeeklyReportError


def _load_service_account_info(
    inline_json: str,
    path_value: str,
    source: str,
) -> dict:
    if inline_json:
        try:
            payload = json.loads(inline_json)
        except json.JSONDecodeError as exc:
            raise WeeklyReportError(
                f"{source}: GOOGLE_SERVICE_ACCOUNT does not contain valid JSON."
            ) from exc
    elif path_value:
        path = Path(path_value)
        if not path.exists():
            raise WeeklyReportError(f"{source}: service account file not found: {path_value}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise WeeklyReportError(
                f"{source}: invalid JSON in service account file: {path_value}"
            ) from exc
    else:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT", source=source)

    if not isinstance(payload, dict) or payload.get("type") != "service_account":
        raise WeeklyReportError(
            f"{source}: expected service-account credentials (JSON with type=service_account)."
        )
    return payload


def service_account_credentials(
    *,
    inline_json: str,
    path_value: str,
    scopes: Sequence[str],
    source: str,
) -> Credentials:
    info = _load_service_account_info(inline_json, path_value, source)
    return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))


def oauth_user_credentials(
    *,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    token_uri: str,
    scopes: Sequence[str],
) -> UserCredentials:
    return UserCredentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=token_uri,
        client_id=client_id,
        client_secret=client_secret,
        scopes=list(scopes),
    )
