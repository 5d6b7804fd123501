from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from groq import AsyncGroq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You help people choose a safe public place to meet someone. "
    "Given the user's request, their location and a list of candidate places "
    "already filtered for safety evidence, re-order them from best to worst fit "
    "and give a short, friendly one-sentence reason for each.\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"recommendations": [{"id": "<candidate_id>", "reason": "<one sentence>"}]}\n'
    "Use only ids from the provided list. Do not invent places. "
    "Order from best fit to worst."
)


def _build_user_message(
    text: str,
    intent_label: str,
    user_location: tuple[float, float],
    candidates: list[dict[str, Any]],
) -> str:
    lat, lon = user_location
    lines = ["## Request"]
    lines.append(f"- Purpose: {intent_label}")
    if text:
        lines.append(f"- User said: {text}")
    lines.append(f"- User location: {lat:.5f}, {lon:.5f}")

    lines.append("\n## Candidate Places")
    lines.append("| ID | Name | Kind | Distance (m) | Cameras nearby | Yes reports | No reports | Notes |")
    lines.append("|---|---|---|---|---|---|---|---|")
    for c in candidates:
        notes = "; ".join(c.get("reasons", []))
        lines.append(
            f"| {c['id']} | {c.get('name') or 'unnamed'} | {c['kind']} "
            f"| {c['distance_m']:.0f} | {c['cameras']} | {c['yes']} | {c['no']} | {notes} |"
        )

    return "\n".join(lines)


def _parse_ranking(content: str) -> tuple[list[str], dict[str, str]]:
    parsed = json.loads(content)
    if not isinstance(parsed, dict) or not isinstance(parsed.get("recommendations"), list):
        raise ValueError("response has no recommendations list")

    order: list[str] = []
    reasons: dict[str, str] = {}
    for item in parsed["recommendations"]:
        if not isinstance(item, dict):
            continue
        rid = str(item.get("id", "")).strip()
        if not rid or rid in order:
            continue
        order.append(rid)
        reason = item.get("reason")
        if isinstance(reason, str) and reason.strip():
            reasons[rid] = reason.strip()
    return order, reasons


async def rank_and_explain(
    text: str,
    intent_label: str,
    user_location: tuple[float, float],
    candidates: list[dict[str, Any]],
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> tuple[list[str], dict[str, str]] | None:
    """
    Ask the Groq LLM for a best-first ordering of ``candidates``.

    Returns ``(order, reasons)`` exactly as the model gave them; the caller
    decides what to trust. Returns None when disabled, on timeout, on API
    errors and on unparseable output.
    """
    if not config.enabled or not config.api_key:
        return None

    if len(candidates) <= 1:
        return None

    try:
        # Attempted once, no SDK retries
        client = AsyncGroq(api_key=config.api_key, timeout=config.timeout, max_retries=0)
        async with client:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=config.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": _build_user_message(text, intent_label, user_location, candidates),
                        },
                    ],
                    max_tokens=config.max_tokens,
                    temperature=0.2,
                    response_format={"type": "json_object"},
                ),
                timeout=config.timeout,
            )

        content = response.choices[0].message.content or ""
        return _parse_ranking(content)

    except asyncio.TimeoutError:
        logger.warning("Groq rerank timed out after %.1fs, keeping heuristic order", config.timeout)
        return None
    except Exception:
        logger.warning("Groq rerank failed, keeping heuristic order", exc_info=True)
        return None
