from __future__ import annotations

import json
from datetime import date
from typing import Any, Mapping

from weekly_marketing_agent.models import SOURCE_NAMES, SOURCE_TITLES


REPORT_SCHEMA = """{
  "weekOf": "YYYY-MM-DD",
  "weeklyVerdict": "2-3 sentence executive summary. What was the overall story this week?",
  "funnelHealth": {
    "awareness":     { "status": "green|amber|red", "summary": "one sentence" },
    "consideration": { "status": "green|amber|red", "summary": "one sentence" },
    "conversion":    { "status": "green|amber|red", "summary": "one sentence" },
    "retention":     { "status": "green|amber|red", "summary": "one sentence" }
  },
  "urgentActions": [
    {
      "priority": "high|medium|low",
      "action": "specific action to take",
      "why": "why this matters / what the data shows",
      "howTo": "exact steps to take it",
      "expectedOutcome": "what should happen if we do this",
      "doBy": "today|this week|before next report"
    }
  ],
  "insights": [
    {
      "source": "GA4|GSC|YouTube|Meta|Kit|Unbounce|Vimeo|Cross-channel",
      "observation": "what the data shows",
      "meaning": "what it means for the business",
      "hypothesis": "why this is probably happening",
      "recommendation": "specific next action",
      "confidence": "high|medium|low",
      "effort": "low|medium|high",
      "impact": "low|medium|high"
    }
  ],
  "doNotTouch": [
    {
      "thing": "what is working",
      "reason": "why it's working and why we should leave it alone",
      "metric": "the number that proves it"
    }
  ],
  "watchNextWeek": [
    {
      "metric": "what to watch",
      "because": "why we're watching before acting",
      "threshold": "at what point do we act?"
    }
  ],
  "rawData": {}
}"""

RULES = """Your job is NOT to describe numbers; the team can read numbers. For every insight you surface, answer all three of:
1. WHAT does this mean for our business?
2. WHY is this probably happening?
3. WHAT specifically should we do this week?

Rules:
- Write like a direct marketing director. Short sentences. Strong opinions.
- Never flag a problem without recommending a specific action.
- Always look for cross-channel connections (YouTube video -> GA4 spike, GSC keyword gap -> Meta opportunity, Unbounce problem page + Meta spend = money burning).
- If the data supports a strong conclusion, say it clearly. Don't hedge.
- Rank everything by business impact, not by data source.
- "Do Not Touch" means it's working: flag it so the team doesn't accidentally break it.
- A platform whose data is {"error": ...} was unavailable this week. Say so where it matters; never invent its numbers."""

CORRECTION_PROMPT = (
    "Your response was not valid JSON. Return ONLY the JSON object with no markdown, "
    "no backticks, no commentary. Start your response with { and end with }."
)


def _section(source: str, payload: Any) -> str:
    body = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    return f"## {SOURCE_TITLES.get(source, source)}\n{body}"


def build_prompt(
    snapshot: Mapping[str, Any],
    business_context: str,
    run_date: date | None = None,
) -> str:
    week_of = (run_date or date.today()).isoformat()
    sections = "\n\n".join(
        _section(source, snapshot.get(source, {"error": "Source missing from snapshot."}))
        for source in SOURCE_NAMES
    )
    return (
        "You are a senior marketing strategist briefing the marketing team every Monday morning.\n\n"
        f"{business_context.strip()}\n\n"
        f"{RULES}\n\n"
        "Respond ONLY with valid JSON matching this exact schema. "
        "No preamble, no markdown, just the JSON object:\n\n"
        f"{REPORT_SCHEMA}\n\n"
        f"Use weekOf = {week_of}.\n\n"
        f"Here is this week's data across all {len(SOURCE_NAMES)} platforms:\n\n"
        f"{sections}\n"
    )
