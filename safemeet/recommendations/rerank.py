"""
Advisory re-ranking.

The language model may only reorder what selection already picked. Its
answer is checked against the input ids: unknown ids are ignored, missing
ids keep their relative order at the end. Any failure leaves the order as
it was.
"""
from __future__ import annotations

import logging

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import rank_and_explain
from .models import RerankResult, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_MAX_RERANK = 25


def merge_order(ids: list[str], proposed: list[str]) -> list[str]:
    """A permutation of ``ids``: known proposed ids first, then the rest in original order."""
    known = set(ids)
    order: list[str] = []
    for rid in proposed:
        if rid in known and rid not in order:
            order.append(rid)
    order.extend(rid for rid in ids if rid not in order)
    return order


def _candidate_row(item: ScoredCandidate) -> dict:
    return {
        "id": item.place.id,
        "name": item.place.name,
        "kind": item.place.kind,
        "distance_m": item.distance_meters,
        "cameras": item.cameras_in_neighborhood,
        "yes": item.report_yes,
        "no": item.report_no,
        "reasons": item.reasons,
    }


async def rerank_candidates(
    items: list[ScoredCandidate],
    text: str,
    intent_label: str,
    user_location: tuple[float, float],
    max_candidates: int = DEFAULT_MAX_RERANK,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> tuple[list[ScoredCandidate], bool]:
    """
    Return ``(items, reranked)``.

    Only the first ``max_candidates`` items are offered to the model; any
    tail keeps its place after them.
    """
    if len(items) <= 1:
        return items, False

    head, tail = items[:max_candidates], items[max_candidates:]
    answer = await rank_and_explain(
        text, intent_label, user_location, [_candidate_row(i) for i in head], config=config,
    )
    if answer is None:
        return items, False

    result = RerankResult(order=answer[0], reasons=answer[1])
    by_id = {i.place.id: i for i in head}
    order = merge_order(list(by_id), result.order)
    if not any(rid in by_id for rid in result.order):
        logger.info("Rerank returned no known ids, keeping heuristic order")
        return items, False

    reordered = [
        by_id[rid].model_copy(update={"rerank_reason": result.reasons.get(rid)})
        if rid in result.reasons
        else by_id[rid]
        for rid in order
    ]
    return reordered + tail, True
