from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Sequence

from dotenv import find_dotenv, load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

from weekly_marketing_agent.clients.youtube_client import YouTubeClient


TOKEN_ENV_KEY = "YOUTUBE_OAUTH_REFRESH_TOKEN"


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mint the YouTube Data/Analytics OAuth refresh token for the weekly report"
    )
    parser.add_argument(
        "--client-secret",
        default="",
        help="OAuth client JSON file (default: YOUTUBE_OAUTH_CLIENT_ID/SECRET from the environment)",
    )
    parser.add_argument("--env-file", default=".env", help="Env file updated by --write-env")
    parser.add_argument(
        "--write-env",
        action="store_true",
        help=f"Store the token in the env file as {TOKEN_ENV_KEY}",
    )
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser")
    return parser.parse_args(argv)


def _quote_env(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _upsert_env(env_path: Path, key: str, value: str) -> None:
    """Set ``key`` in a dotenv file, replacing an existing assignment in place."""
    entry = f"{key}={_quote_env(value)}"
    lines = env_path.read_text(encoding="utf-8").splitlines() if env_path.exists() else []

    replaced = False
    for index, line in enumerate(lines):
        if line.startswith(f"{key}="):
            lines[index] = entry
            replaced = True
    if not replaced:
        if lines and lines[-1].strip():
            lines.append("")
        lines.append(entry)

    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _build_flow(client_secret_path: str) -> InstalledAppFlow:
    if client_secret_path:
        path = Path(client_secret_path)
        if not path.exists():
            raise SystemExit(f"Client secret file not found: {client_secret_path}")
        return InstalledAppFlow.from_client_secrets_file(str(path), YouTubeClient.SCOPES)

    client_id = os.getenv("YOUTUBE_OAUTH_CLIENT_ID", "").strip()
    client_secret = os.getenv("YOUTUBE_OAUTH_CLIENT_SECRET", "").strip()
    if not (client_id and client_secret):
        raise SystemExit(
            "Missing OAuth client. Set YOUTUBE_OAUTH_CLIENT_ID + YOUTUBE_OAUTH_CLIENT_SECRET "
            "or pass --client-secret."
        )
    client_config = {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": os.getenv(
                "YOUTUBE_OAUTH_TOKEN_URI", "https://oauth2.googleapis.com/token"
            ).strip(),
            "redirect_uris": ["http://localhost"],
        }
    }
    return InstalledAppFlow.from_client_config(client_config, YouTubeClient.SCOPES)


def main(argv: Sequence[str] | None = None) -> None:
    try:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    except OSError as exc:
        print(f"Skipping .env: {exc}")

    args = _parse_args(argv)
    flow = _build_flow(args.client_secret.strip())
    creds = flow.run_local_server(
        port=0,
        access_type="offline",
        prompt="consent",
        open_browser=not args.no_browser,
    )

    refresh_token = (creds.refresh_token or "").strip()
    if not refresh_token:
        raise SystemExit(
            "No refresh token received. Revoke the app's access to the channel and rerun with consent."
        )

    print(f"{TOKEN_ENV_KEY}={refresh_token}")
    if args.write_env:
        env_path = Path(args.env_file)
        _upsert_env(env_path, TOKEN_ENV_KEY, refresh_token)
        print(f"Token written to: {env_path}")


if __name__ == "__main__":
    main()
