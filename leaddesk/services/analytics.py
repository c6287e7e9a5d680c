"""
Analytics — reduce scored leads into totals and per-manager, per-source and
per-concern breakdowns. Pure Python, no DB access; callers load the rows.
"""
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from leaddesk.services.fields import resolve_field, is_empty
from leaddesk.services.ratings import normalize_rating, is_upgraded

UNKNOWN_GROUP = 'Unknown'


@dataclass
class ScoredLead:
    """One lead joined with its latest analysis."""
    lead_id: str
    crm_data: Dict[str, Any]
    ai_rating: Optional[str]
    full_analysis: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GroupStats:
    name: str
    total: int = 0
    hot: int = 0
    warm: int = 0
    cold: int = 0
    upgraded: int = 0
    upgrade_percentage: int = 0


@dataclass
class ConcernStats:
    concern_type: str
    lead_count: int
    percentage: int
    dominant_persona: str
    dominant_profession: str


@dataclass
class Analytics:
    total_leads: int = 0
    analyzed_leads: int = 0
    hot_leads: int = 0
    warm_leads: int = 0
    cold_leads: int = 0
    upgrade_percentage: int = 0
    by_manager: List[GroupStats] = field(default_factory=list)
    by_source: List[GroupStats] = field(default_factory=list)
    by_concern: List[ConcernStats] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percentage(part: int, whole: int) -> int:
    """Integer percent, halves rounded up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def dominant(counter: Counter) -> str:
    """Most common key, ties broken by first insertion."""
    best, best_count = UNKNOWN_GROUP, 0
    for key, count in counter.items():
        if count > best_count:
            best, best_count = key, count
    return best


def _group_key(value: Any) -> str:
    return UNKNOWN_GROUP if is_empty(value) else str(value).strip()


def _tally(stats: GroupStats, ai_rating: Optional[str], upgraded: bool):
    stats.total += 1
    if ai_rating == 'Hot':
        stats.hot += 1
    elif ai_rating == 'Warm':
        stats.warm += 1
    elif ai_rating == 'Cold':
        stats.cold += 1
    if upgraded:
        stats.upgraded += 1


def _finish(groups: Dict[str, GroupStats]) -> List[GroupStats]:
    for stats in groups.values():
        stats.upgrade_percentage = percentage(stats.upgraded, stats.total)
    # sorted() is stable, so equal-sized groups keep first-seen order
    return sorted(groups.values(), key=lambda s: s.total, reverse=True)


def aggregate(scored_leads: List[ScoredLead]) -> Analytics:
    """Reduce scored leads into Analytics."""
    result = Analytics(total_leads=len(scored_leads))
    managers: Dict[str, GroupStats] = {}
    sources: Dict[str, GroupStats] = {}
    concerns: Dict[str, Dict[str, Any]] = {}
    upgraded_total = 0

    for lead in scored_leads:
        crm = lead.crm_data or {}
        analysis = lead.full_analysis or {}
        ai_rating = normalize_rating(lead.ai_rating)
        upgraded = is_upgraded(resolve_field(crm, 'manager_rating'), ai_rating)

        if ai_rating:
            result.analyzed_leads += 1
        if ai_rating == 'Hot':
            result.hot_leads += 1
        elif ai_rating == 'Warm':
            result.warm_leads += 1
        elif ai_rating == 'Cold':
            result.cold_leads += 1
        if upgraded:
            upgraded_total += 1

        manager = _group_key(resolve_field(crm, 'owner'))
        _tally(managers.setdefault(manager, GroupStats(name=manager)), ai_rating, upgraded)

        source = _group_key(resolve_field(crm, 'source'))
        _tally(sources.setdefault(source, GroupStats(name=source)), ai_rating, upgraded)

        concern = analysis.get('primary_concern_category')
        if not is_empty(concern):
            bucket = concerns.setdefault(str(concern), {
                'count': 0, 'personas': Counter(), 'professions': Counter(),
            })
            bucket['count'] += 1
            bucket['personas'][_group_key(analysis.get('persona'))] += 1
            bucket['professions'][_group_key(resolve_field(crm, 'occupation'))] += 1

    result.upgrade_percentage = percentage(upgraded_total, len(scored_leads))
    result.by_manager = _finish(managers)
    result.by_source = _finish(sources)

    with_concern = sum(c['count'] for c in concerns.values())
    result.by_concern = sorted(
        (
            ConcernStats(
                concern_type=name,
                lead_count=c['count'],
                percentage=percentage(c['count'], with_concern),
                dominant_persona=dominant(c['personas']),
                dominant_profession=dominant(c['professions']),
            )
            for name, c in concerns.items()
        ),
        key=lambda c: c.lead_count,
        reverse=True,
    )
    return result


def _analyzed_at(row) -> datetime:
    value = getattr(row, 'analyzed_at', None)
    if value is None:
        return datetime.min
    return value.replace(tzinfo=None)


def scored_leads_from_rows(leads, analyses) -> List[ScoredLead]:
    """
    Join Lead rows with their latest LeadAnalysis (by analyzed_at).
    Only analysed leads are returned, matching the analytics page.
    """
    latest = {}
    for row in analyses:
        key = (row.lead_id, row.project_id)
        if key not in latest or _analyzed_at(row) > _analyzed_at(latest[key]):
            latest[key] = row

    scored = []
    for lead in leads:
        analysis = latest.get((lead.lead_id, lead.project_id))
        if analysis is None:
            continue
        scored.append(ScoredLead(
            lead_id=lead.lead_id,
            crm_data=lead.crm_data or {},
            ai_rating=analysis.rating,
            full_analysis=analysis.full_analysis or {},
        ))
    return scored
