"""Cross-source event deduplication.

Two events are duplicates when their source URLs normalize to the same string,
or when their normalized names are similar enough AND their time slots overlap.
The more complete event of a pair survives.
"""

import logging

from pydantic import BaseModel

from backend.outing.models.event import Event
from backend.outing.orchestration.similarity import (
    completeness_score,
    normalize_text,
    normalize_url,
    similarity_ratio,
    time_slots_overlap,
)

logger = logging.getLogger(__name__)

NAME_SIMILARITY_THRESHOLD = 0.75


class DedupStats(BaseModel):
    """Counts before and after deduplication."""

    original: int
    deduplicated: int
    removed: int


class DedupResult(BaseModel):
    """Merged events plus counts."""

    events: list[Event]
    stats: DedupStats


def _same_url(a: Event, b: Event) -> bool:
    if not a.source_url or not b.source_url:
        return False
    return normalize_url(a.source_url) == normalize_url(b.source_url)


def is_duplicate(a: Event, b: Event, threshold: float = NAME_SIMILARITY_THRESHOLD) -> bool:
    """Whether b duplicates a."""
    if _same_url(a, b):
        return True
    name_similarity = similarity_ratio(normalize_text(a.name), normalize_text(b.name))
    return name_similarity >= threshold and time_slots_overlap(a.time_slot, b.time_slot)


def dedupe(events: list[Event], threshold: float = NAME_SIMILARITY_THRESHOLD) -> DedupResult:
    """Merge near-duplicate events across sources.

    Args:
        events: Events from all sources, in merge order
        threshold: Name similarity ratio at or above which names match

    Returns:
        DedupResult with survivors in first-seen order and counts
    """
    original = len(events)
    if original <= 1:
        return DedupResult(
            events=list(events),
            stats=DedupStats(original=original, deduplicated=original, removed=0),
        )

    merged: set[int] = set()
    survivors: list[Event] = []

    for i, event in enumerate(events):
        if i in merged:
            continue

        best = event
        j = i + 1
        while j < len(events):
            if j in merged or not is_duplicate(best, events[j], threshold):
                j += 1
                continue

            candidate = events[j]
            logger.debug(
                f'Duplicate: "{candidate.name}" ({candidate.source}) ~ "{best.name}" ({best.source})'
            )
            merged.add(j)
            # Ties keep the earlier event
            if completeness_score(candidate) > completeness_score(best):
                best = candidate
                # Events skipped earlier may match the new survivor
                j = i + 1
                continue
            j += 1

        survivors.append(best)

    removed = original - len(survivors)
    logger.info(f"Deduplicated {original} -> {len(survivors)} events ({removed} removed)")
    return DedupResult(
        events=survivors,
        stats=DedupStats(original=original, deduplicated=len(survivors), removed=removed),
    )
