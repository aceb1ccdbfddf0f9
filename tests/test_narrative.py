from __future__ import annotations

import json
from datetime import date

import pytest
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.runnables import RunnableLambda

from weekly_marketing_agent.errors import GenerationParseError, NarrativeRetryExhaustedError
from weekly_marketing_agent.narrative import generate_narrative, parse_narrative
from weekly_marketing_agent.prompts import CORRECTION_PROMPT, build_prompt


VALID = {
    "weekOf": "2024-06-17",
    "weeklyVerdict": "Paid leads got cheaper while organic held steady.",
    "funnelHealth": {
        "awareness": {"status": "green", "summary": "YouTube views up."},
        "consideration": {"status": "amber", "summary": "Flat sessions."},
        "conversion": {"status": "red", "summary": "Landing page dipped."},
        "retention": {"status": "green", "summary": "Open rates steady."},
    },
    "urgentActions": [],
    "insights": [],
    "doNotTouch": [],
    "watchNextWeek": [],
}


def _scripted_llm(responses: list[str], calls: list[list]):
    def respond(messages):
        calls.append(list(messages))
        return AIMessage(content=responses[len(calls) - 1])

    return RunnableLambda(respond)


def test_parse_accepts_fenced_json_and_prose() -> None:
    raw = "Here you go:\n```json\n" + json.dumps(VALID) + "\n```\nThanks!"
    assert parse_narrative(raw)["weeklyVerdict"] == VALID["weeklyVerdict"]

    wrapped = "Sure! " + json.dumps(VALID) + " Let me know."
    assert parse_narrative(wrapped)["funnelHealth"]["conversion"]["status"] == "red"


def test_parse_rejects_non_json_and_wrong_shape() -> None:
    with pytest.raises(GenerationParseError):
        parse_narrative("I could not analyse this week.")
    with pytest.raises(GenerationParseError) as error:
        parse_narrative(json.dumps({**VALID, "insights": "none"}))
    assert "insights must be list" in str(error.value)


def test_invalid_then_valid_uses_retry_with_correction() -> None:
    calls: list[list] = []
    llm = _scripted_llm(["{not json", json.dumps(VALID)], calls)

    narrative = generate_narrative(
        {"ga4": {"error": "down"}},
        llm=llm,
        business_context="We sell courses.",
        run_date=date(2024, 6, 17),
    )

    assert narrative == VALID
    assert len(calls) == 2
    retry_messages = calls[1]
    assert isinstance(retry_messages[0], HumanMessage)
    assert isinstance(retry_messages[1], AIMessage)
    assert retry_messages[1].content == "{not json"
    assert retry_messages[2].content == CORRECTION_PROMPT
    assert retry_messages[0].content == calls[0][0].content


def test_valid_first_answer_needs_one_call() -> None:
    calls: list[list] = []
    llm = _scripted_llm([json.dumps(VALID)], calls)
    generate_narrative({}, llm=llm, business_context="ctx", run_date=date(2024, 6, 17))
    assert len(calls) == 1


def test_two_invalid_answers_exhaust_retries() -> None:
    calls: list[list] = []
    llm = _scripted_llm(["nope", "still nope"], calls)

    with pytest.raises(NarrativeRetryExhaustedError) as error:
        generate_narrative({}, llm=llm, business_context="ctx", run_date=date(2024, 6, 17))

    assert len(calls) == 2
    assert error.value.attempts == 2
    assert len(error.value.errors) == 2


def test_prompt_lists_every_source_in_order() -> None:
    prompt = build_prompt({"kit": {"error": "KIT_API_SECRET env var is missing"}}, "We sell courses.")
    positions = [
        prompt.index(title)
        for title in (
            "## GA4 - Website Analytics",
            "## Google Search Console - Organic Search",
            "## YouTube - Video Analytics",
            "## Kit (ConvertKit) - Email Newsletter",
            "## Meta Ads - Paid Social",
            "## Unbounce - Landing Pages",
            "## Vimeo - Video Sales Letters",
        )
    ]
    assert positions == sorted(positions)
    assert "We sell courses." in prompt
    assert "KIT_API_SECRET env var is missing" in prompt
