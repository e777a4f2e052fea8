from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Sequence

import requests

from pdm_reports.config import InsightsConfig

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "YOUR_GEMINI_API_KEY_HERE"
MAX_INSIGHTS = 3

INSIGHT_PROMPT = """You are an AI expert in industrial temperature monitoring and predictive maintenance systems.

Provide 3 professional insights about temperature monitoring in industrial equipment (each under 20 words):

1. [General insight about temperature monitoring patterns and importance]
2. [Insight about temperature threshold management and alerts]
3. [Recommendation for temperature-based predictive maintenance]

Keep each insight professional, actionable, and under 20 words. Focus on industrial temperature monitoring best practices."""

MISSING_KEY_INSIGHTS = [
    "Insight API key is not configured on the server.",
    "Set PDM_REPORTS_INSIGHTS_API_KEY or insights.api_key in the config file.",
    "Get a free API key from https://aistudio.google.com/apikey",
]
NO_DATA_INSIGHTS = ["No temperature data available for analysis. Please upload a data file."]
UPSTREAM_FAILURE_INSIGHTS = [
    "Error generating AI analysis. Please check your API key.",
    "Verify PDM_REPORTS_INSIGHTS_API_KEY or insights.api_key in the config file.",
    "Get a key from https://aistudio.google.com/apikey",
]

_NUMBERED_LINE_RE = re.compile(r"^\d+\.\s*")


def extract_insights(text: str, limit: int = MAX_INSIGHTS) -> list[str]:
    """Pull numbered lines (``1. ...``) out of generated text; raw text otherwise."""
    insights = [
        _NUMBERED_LINE_RE.sub("", line.strip()).strip()
        for line in text.split("\n")
        if _NUMBERED_LINE_RE.match(line.strip())
    ]
    if insights:
        return insights[:limit]
    return [text]


def _current_values(request_body: Mapping[str, Any] | None) -> Sequence[float]:
    if not isinstance(request_body, Mapping):
        return []
    temperature_data = request_body.get("temperatureData")
    if not isinstance(temperature_data, Mapping):
        return []
    current = temperature_data.get("current")
    return current if isinstance(current, list) else []


def _response_text(payload: Mapping[str, Any]) -> str:
    try:
        return str(payload["candidates"][0]["content"]["parts"][0]["text"] or "")
    except (KeyError, IndexError, TypeError):
        return ""


def generate_insights(
    request_body: Mapping[str, Any] | None,
    config: InsightsConfig,
    *,
    session: requests.Session | None = None,
) -> tuple[dict[str, Any], int]:
    """Forward one insight request upstream; never raises.

    Returns ``(payload, status_code)``. Success payloads carry
    ``{"insights": [...], "success": True}``; failures carry ``error`` plus static
    fallback insights with a 400 (missing key or empty input) or 500 status.
    """
    api_key = config.api_key
    if not api_key or api_key == PLACEHOLDER_API_KEY:
        return {"error": "API key not configured", "insights": list(MISSING_KEY_INSIGHTS)}, 400

    if not _current_values(request_body):
        return {"error": "No data provided", "insights": list(NO_DATA_INSIGHTS)}, 400

    client = session or requests
    try:
        response = client.post(
            config.endpoint,
            params={"key": api_key},
            json={"contents": [{"parts": [{"text": INSIGHT_PROMPT}]}]},
            timeout=config.timeout_seconds,
        )
        if not response.ok:
            try:
                detail = response.json().get("error", {}).get("message")
            except (ValueError, AttributeError):
                detail = None
            raise RuntimeError(f"API Error: {detail or response.reason}")
        text = _response_text(response.json())
    except (requests.RequestException, RuntimeError, ValueError) as exc:
        LOGGER.error("Insight request failed: %s", exc)
        return {"error": str(exc), "insights": list(UPSTREAM_FAILURE_INSIGHTS)}, 500

    return {"insights": extract_insights(text), "success": True}, 200


def insights_for_values(
    values: Sequence[float],
    config: InsightsConfig,
    *,
    session: requests.Session | None = None,
) -> tuple[dict[str, Any], int]:
    return generate_insights(
        {"temperatureData": {"current": [float(value) for value in values]}},
        config,
        session=session,
    )
