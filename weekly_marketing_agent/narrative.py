from __future__ import annotations

import json
import re
from datetime import date
from typing import Any, Mapping

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.output_parsers import StrOutputParser

from weekly_marketing_agent.errors import GenerationParseError, NarrativeRetryExhaustedError
from weekly_marketing_agent.prompts import CORRECTION_PROMPT, build_prompt


MAX_ATTEMPTS = 2

REQUIRED_FIELDS: dict[str, type] = {
    "weeklyVerdict": str,
    "funnelHealth": dict,
    "urgentActions": list,
    "insights": list,
    "doNotTouch": list,
    "watchNextWeek": list,
}


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    text = (raw or "").strip()
    if not text:
        return None
    decoder = json.JSONDecoder()
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    fenced = re.findall(r"```(?:json)?\s*(\{.*?\})\s*```", text, flags=re.DOTALL | re.IGNORECASE)
    for block in fenced:
        try:
            parsed = json.loads(block)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            continue

    for idx, ch in enumerate(text):
        if ch != "{":
            continue
        try:
            parsed, _ = decoder.raw_decode(text[idx:])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            continue
    return None


def parse_narrative(raw: str) -> dict[str, Any]:
    """Parse model output into the narrative document or raise ``GenerationParseError``.

    Markdown fences and prose around the object are tolerated. Only the
    top-level shape is checked; field contents are taken as-is.
    """
    parsed = _parse_json_object(raw)
    if parsed is None:
        raise GenerationParseError("Response does not contain a JSON object.")
    problems = [
        f"{field} must be {expected.__name__}"
        for field, expected in REQUIRED_FIELDS.items()
        if not isinstance(parsed.get(field), expected)
    ]
    if problems:
        raise GenerationParseError("Invalid narrative shape: " + "; ".join(problems))
    return parsed


def generate_narrative(
    snapshot: Mapping[str, Any],
    *,
    llm,
    business_context: str,
    run_date: date | None = None,
) -> dict[str, Any]:
    """Ask the model for the weekly narrative, re-asking once with a correction on bad output."""
    chain = llm | StrOutputParser()
    prompt = build_prompt(snapshot, business_context, run_date)
    messages: list[BaseMessage] = [HumanMessage(content=prompt)]
    errors: list[str] = []

    for attempt in range(1, MAX_ATTEMPTS + 1):
        print(f"Narrative generation: attempt {attempt}/{MAX_ATTEMPTS}")
        raw = chain.invoke(messages)
        try:
            narrative = parse_narrative(raw)
        except GenerationParseError as exc:
            errors.append(str(exc))
            print(f"Narrative output rejected: {exc}")
            messages = [
                HumanMessage(content=prompt),
                AIMessage(content=raw or ""),
                HumanMessage(content=CORRECTION_PROMPT),
            ]
            continue
        if attempt > 1:
            print("Narrative retry succeeded.")
        return narrative

    raise NarrativeRetryExhaustedError(MAX_ATTEMPTS, errors)
