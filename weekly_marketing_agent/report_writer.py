from __future__ import annotations

import json
import os
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from weekly_marketing_agent.errors import PersistenceError, WeeklyReportError
from weekly_marketing_agent.models import CombinedSnapshot


NARRATIVE_FIELDS = (
    "weeklyVerdict",
    "funnelHealth",
    "urgentActions",
    "insights",
    "doNotTouch",
    "watchNextWeek",
)


def _utc_timestamp(now: datetime | None = None) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_artifact(
    narrative: Mapping[str, Any],
    snapshot: CombinedSnapshot,
    *,
    run_date: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Merge the narrative with run metadata; ``rawData`` always comes from the snapshot."""
    week_of = narrative.get("weekOf") or (run_date or date.today()).isoformat()
    artifact: dict[str, Any] = {
        "weekOf": str(week_of),
        "generatedAt": _utc_timestamp(now),
    }
    for field in NARRATIVE_FIELDS:
        artifact[field] = narrative.get(field)
    for key, value in narrative.items():
        if key not in artifact and key != "rawData":
            artifact[key] = value
    artifact["rawData"] = snapshot.as_dict()
    return artifact


def write_artifact(artifact: Mapping[str, Any], output_path: str | Path) -> Path:
    """Replace ``output_path`` atomically: temp file in the same directory, then ``os.replace``."""
    target = Path(output_path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
    except OSError as exc:
        raise PersistenceError(str(target), str(exc)) from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(artifact, handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        os.replace(tmp_name, target)
    except (OSError, TypeError, ValueError) as exc:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(str(target), str(exc)) from exc
    return target


def load_artifact(path: str | Path) -> dict[str, Any]:
    source = Path(path)
    if not source.exists():
        raise WeeklyReportError(f"Report artifact not found: {source}")
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise WeeklyReportError(f"Invalid JSON in report artifact: {source}") from exc
    if not isinstance(payload, dict):
        raise WeeklyReportError(f"Report artifact is not a JSON object: {source}")
    return payload
