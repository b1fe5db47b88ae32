"""String and event similarity helpers used by dedup and plan matching."""

import re

from backend.outing.models.common import TimeSlot
from backend.outing.models.event import Event

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    value = _NON_ALNUM.sub("", value.lower())
    return _WHITESPACE.sub(" ", value).strip()


def normalize_url(url: str) -> str:
    """Strip query string and trailing slashes, then lowercase."""
    return url.split("?", 1)[0].rstrip("/").lower()


def lcs_length(a: str, b: str) -> int:
    """Longest common subsequence length (two-row DP)."""
    if not a or not b:
        return 0
    prev = [0] * (len(b) + 1)
    for char_a in a:
        curr = [0] * (len(b) + 1)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                curr[j] = prev[j - 1] + 1
            else:
                curr[j] = max(prev[j], curr[j - 1])
        prev = curr
    return prev[-1]


def similarity_ratio(a: str, b: str) -> float:
    """LCS length over the longer length, in [0, 1]."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return lcs_length(a, b) / max(len(a), len(b))


def time_slots_overlap(a: TimeSlot, b: TimeSlot) -> bool:
    """Half-open interval overlap."""
    return a.start < b.end and b.start < a.end


def completeness_score(event: Event) -> int:
    """How much optional data an event carries (higher is more complete)."""
    score = 0
    if event.price is not None:
        score += 2
    if event.rating is not None:
        score += 2
    if event.image_url:
        score += 1
    if event.review_count and event.review_count > 0:
        score += 1
    if len(event.description) > 50:
        score += 1
    return score
