from __future__ import annotations

from typing import Any, Mapping

import requests
from requests import Response

from weekly_marketing_agent.errors import UpstreamError


USER_AGENT = "weekly-marketing-agent/0.1"


def response_payload(response: Response) -> object:
    try:
        return response.json()
    except ValueError:
        return None


def response_message(response: Response, payload: object = None) -> str:
    if payload is None:
        payload = response_payload(response)
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            nested_message = error.get("message")
            if isinstance(nested_message, str) and nested_message.strip():
                return nested_message.strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        for key in ("message", "error_description", "developer_message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(item) for item in errors[:3])

    text = response.text.strip()
    if not text:
        return "No response body."
    if len(text) > 400:
        return text[:397] + "..."
    return text


def get_json(
    vendor: str,
    url: str,
    *,
    path: str = "",
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout_sec: int = 30,
) -> dict[str, Any]:
    """GET a vendor endpoint and return its JSON object or raise ``UpstreamError``."""
    request_headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
    request_headers.update(headers or {})
    try:
        response = requests.get(
            url,
            headers=request_headers,
            params=dict(params or {}),
            timeout=timeout_sec,
        )
    except requests.RequestException as exc:
        raise UpstreamError(vendor, f"request failed: {exc}", path=path) from exc

    payload = response_payload(response)
    # Graph-style APIs can report failures inside a 200 body.
    if not response.ok or (isinstance(payload, dict) and isinstance(payload.get("error"), dict)):
        raise UpstreamError(
            vendor,
            response_message(response, payload),
            path=path,
            status=response.status_code,
        )
    if not isinstance(payload, dict):
        raise UpstreamError(
            vendor,
            "response body is not a JSON object",
            path=path,
            status=response.status_code,
        )
    return payload
