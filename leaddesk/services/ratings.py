"""
Rating utilities — the one place rating order and highlight buckets live.

Every consumer (reconciliation, analytics, API payloads) calls into these
functions so sort order and colouring never drift between surfaces.
"""
import re
from typing import Any, Callable, Dict, Iterable, List, Optional

RATING_ORDER = {'Hot': 3, 'Warm': 2, 'Cold': 1}

# MQL priority scale, highest priority first
MQL_TIERS = ['P0', 'P1', 'P2', 'P3', 'P4', 'P5']

UPGRADED = 'upgraded'
DOWNGRADED = 'downgraded'
UNCHANGED = 'unchanged'
UNKNOWN = 'unknown'

# Bucket order matters: first match wins.
HIGHLIGHT_KEYS = [
    ('strong', ('a', 'a+', 'high', 'premium', 'affluent', 'hot', 'p0')),
    ('medium', ('b', 'medium', 'mid', 'moderate', 'warm', 'p1', 'popular')),
    ('weak', ('c', 'd', 'low', 'cold', 'p2', 'affordable')),
]

HIGHLIGHT_CLASSES = {
    'strong': 'bg-emerald-500/15 text-emerald-700 border-emerald-500/30',
    'medium': 'bg-amber-500/15 text-amber-700 border-amber-500/30',
    'weak': 'bg-red-500/15 text-red-700 border-red-500/30',
    'unknown': 'bg-muted text-muted-foreground border-border',
}


def normalize_rating(rating: Any) -> Optional[str]:
    """'hot ' -> 'Hot'; anything outside Hot/Warm/Cold -> None."""
    if rating is None:
        return None
    text = str(rating).strip().capitalize()
    return text if text in RATING_ORDER else None


def rating_value(rating: Any) -> int:
    """Hot=3, Warm=2, Cold=1, unrated/unknown=0."""
    normalized = normalize_rating(rating)
    return RATING_ORDER[normalized] if normalized else 0


def is_upgraded(manager_rating: Any, ai_rating: Any) -> bool:
    """True iff both ratings are present and the AI rating ranks higher."""
    if not manager_rating or not ai_rating:
        return False
    return rating_value(ai_rating) > rating_value(manager_rating)


def compare_ratings(manager_rating: Any, ai_rating: Any) -> str:
    """upgraded / downgraded / unchanged, or unknown when either side is missing."""
    if not manager_rating or not ai_rating:
        return UNKNOWN
    manager, ai = rating_value(manager_rating), rating_value(ai_rating)
    if ai > manager:
        return UPGRADED
    if ai < manager:
        return DOWNGRADED
    return UNCHANGED


def sort_by_rating(items: Iterable[Any], key: Callable[[Any], Any]) -> List[Any]:
    """Stable sort, Hot first, unrated last."""
    return sorted(items, key=lambda item: rating_value(key(item)), reverse=True)


def mql_priority(rating: Any) -> Optional[int]:
    """'P0' -> 0 ... 'P5' -> 5; None for anything else."""
    if rating is None:
        return None
    text = str(rating).strip().upper()
    return MQL_TIERS.index(text) if text in MQL_TIERS else None


def sort_by_mql_priority(items: Iterable[Any], key: Callable[[Any], Any]) -> List[Any]:
    """Stable sort, P0 first, unrated last."""
    def _rank(item):
        priority = mql_priority(key(item))
        return priority if priority is not None else len(MQL_TIERS)
    return sorted(items, key=_rank)


def highlight_bucket(value: Any) -> str:
    """
    Map any rating-like value (MQL tier, capability, AI rating, grade) to
    strong / medium / weak / unknown by case-insensitive substring match.
    Keys of one or two characters (P1, A+, B) only match a whole token, so
    "Warm" is medium rather than a grade-A strong.
    """
    text = str(value or '').strip().lower()
    if not text:
        return 'unknown'
    tokens = set(re.split(r'[^a-z0-9+]+', text))
    for bucket, keys in HIGHLIGHT_KEYS:
        for k in keys:
            # Letter grades must stand alone, otherwise 'a' would match 'warm'
            if k in tokens if len(k) <= 2 else k in text:
                return bucket
    return 'unknown'


def highlight_class(value: Any) -> str:
    return HIGHLIGHT_CLASSES[highlight_bucket(value)]


def rating_badge(value: Any) -> Dict[str, str]:
    """Value plus its bucket and CSS class, for JSON payloads."""
    bucket = highlight_bucket(value)
    return {'value': '' if value is None else str(value), 'bucket': bucket, 'class': HIGHLIGHT_CLASSES[bucket]}
