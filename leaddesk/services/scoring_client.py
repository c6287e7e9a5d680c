"""
OpenAI lead scoring — Hot/Warm/Cold rating, persona, concerns, PPS composite.

Malformed model output never escapes this module:
  full prompt → (bad JSON) → simplified prompt on the fallback model
             → (bad JSON) → keyword heuristic, rationale tagged FALLBACK_MARKER
Transport errors (API down, circuit open) do propagate; the orchestrator
records them as per-item failures.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from leaddesk.config import SCORING_MODEL, SCORING_FALLBACK_MODEL, FALLBACK_MARKER
from leaddesk.services.circuit_breaker import get_breaker
from leaddesk.services.ratings import normalize_rating

logger = logging.getLogger('services.scoring')

PPS_COMPONENTS = (
    'financial_capability',
    'intent_engagement',
    'urgency_timeline',
    'product_market_fit',
    'authority_dynamics',
)

CIS_LADDER = ((85, 'Excellent'), (70, 'Good'), (50, 'Average'))


class ScoringError(ValueError):
    """Model output could not be read as the expected JSON object."""


@dataclass
class ScoringResult:
    rating: str
    insights: str
    full_analysis: Dict[str, Any] = field(default_factory=dict)
    fallback: bool = False


SYSTEM_PROMPT = """You are an expert real estate sales analyst for {project}.
Rate the lead as Hot, Warm or Cold and explain why.

Hot: strong buying signals, budget aligned with the project, urgent timeline
Warm: genuine interest, moderate budget fit or flexible timeline
Cold: little information, misaligned budget, or no urgency

Score the Purchase Propensity Score (PPS, 0-100) from five components:
financial_capability (0-30), intent_engagement (0-25), urgency_timeline (0-20),
product_market_fit (0-15), authority_dynamics (0-10).

Respond in JSON:
{{
  "ai_rating": "Hot|Warm|Cold",
  "rating_confidence": "High|Medium|Low",
  "rating_rationale": "2-3 sentences",
  "persona": "short buyer persona label",
  "summary": "2-3 sentence actionable summary",
  "primary_concern_category": "Price|Location|Possession|Config|Trust|Other",
  "key_concerns": ["..."],
  "talking_points": ["..."],
  "next_best_action": "one concrete step for the sales manager",
  "extracted_signals": {{}},
  "pps_score": 0-100,
  "pps_breakdown": {{"financial_capability": 0, "intent_engagement": 0, "urgency_timeline": 0, "product_market_fit": 0, "authority_dynamics": 0}}
}}"""

SIMPLE_PROMPT = """Rate this real estate lead for {project} as Hot, Warm or Cold.
Respond ONLY with JSON: {{"ai_rating": "Hot|Warm|Cold", "rating_rationale": "one sentence", "summary": "one sentence"}}"""

CIS_PROMPT = """Evaluate CRM data quality and return a JSON object with CIS scores.

Compliance Score (50 pts): 5 pts for each of these fields when filled with meaningful data:
customerName, phone, occupation, currentResidence, workLocation,
budgetRange, configPreference, visitComments, managerRating, nextFollowUp

Insight Depth Score (50 pts), from the visit comments:
- Customer motivation/timeline mentioned: 10 pts
- Competitor comparison noted: 10 pts
- Specific objections/concerns captured: 10 pts
- Family/decision-maker info: 5 pts
- Budget constraints detailed: 5 pts
- Property preferences specific: 5 pts
- Negotiation points noted: 5 pts

Return ONLY this JSON:
{
  "compliance_score": 0-50,
  "insight_score": 0-50,
  "cis_total": 0-100,
  "cis_rating": "Excellent|Good|Average|Poor",
  "compliance_flags": {"customerName": true, ...},
  "insight_flags": {"motivation": true, ...}
}"""


# ── Parsing ───────────────────────────────────────────────────────────────────

_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$')


def parse_json_object(content: Optional[str]) -> Dict[str, Any]:
    """Parse a model reply into a dict, tolerating ```json fences."""
    text = _FENCE.sub('', (content or '').strip())
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ScoringError(f"Unparseable model output: {e}")
    if not isinstance(parsed, dict):
        raise ScoringError("Model output is not a JSON object")
    return parsed


def clamp_score(value: Any, low: float = 0, high: float = 100) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(round(min(max(number, low), high)))


def heuristic_rating(text: Optional[str]) -> str:
    """Hot if the text mentions hot, else Cold if it mentions cold, else Warm."""
    lower = (text or '').lower()
    if 'hot' in lower:
        return 'Hot'
    if 'cold' in lower:
        return 'Cold'
    return 'Warm'


def normalize_analysis(parsed: Dict[str, Any]) -> ScoringResult:
    """Validate a parsed scoring reply; raises ScoringError without a usable rating."""
    rating = normalize_rating(parsed.get('ai_rating') or parsed.get('rating'))
    if rating is None:
        raise ScoringError(f"Missing or invalid rating: {parsed.get('ai_rating')!r}")

    analysis = dict(parsed)
    analysis['ai_rating'] = rating
    if 'pps_score' in analysis:
        analysis['pps_score'] = clamp_score(analysis['pps_score'])
    breakdown = analysis.get('pps_breakdown')
    if isinstance(breakdown, dict):
        analysis['pps_breakdown'] = {k: breakdown.get(k) for k in PPS_COMPONENTS}

    insights = analysis.get('summary') or analysis.get('rating_rationale') or ''
    return ScoringResult(rating=rating, insights=str(insights), full_analysis=analysis)


def fallback_result(raw_text: Optional[str], reason: str) -> ScoringResult:
    rating = heuristic_rating(raw_text)
    rationale = f"{FALLBACK_MARKER} {reason}"
    return ScoringResult(
        rating=rating,
        insights=rationale,
        full_analysis={'ai_rating': rating, 'rating_rationale': rationale, 'raw_output': (raw_text or '')[:1000]},
        fallback=True,
    )


def cis_rating(total: Any) -> str:
    """Excellent >= 85, Good >= 70, Average >= 50, else Poor."""
    score = clamp_score(total) or 0
    for threshold, label in CIS_LADDER:
        if score >= threshold:
            return label
    return 'Poor'


# ── Client ────────────────────────────────────────────────────────────────────

class ScoringClient:
    """Wraps the shared OpenAI client. Without OPENAI_API_KEY every lead gets the heuristic."""

    def __init__(self, client=None, model=SCORING_MODEL, fallback_model=SCORING_FALLBACK_MODEL):
        if client is None:
            from leaddesk.extensions import openai_client
            client = openai_client
        self.client = client
        self.model = model
        self.fallback_model = fallback_model

    def _complete(self, model: str, system: str, user: str) -> str:
        response = get_breaker('openai').call(
            self.client.chat.completions.create,
            model=model,
            messages=[
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': user},
            ],
            response_format={'type': 'json_object'},
            temperature=0.2,
        )
        return response.choices[0].message.content

    def score(self, crm_row: Dict[str, Any], profile: Optional[Dict[str, Any]],
              financial: Optional[Dict[str, Any]], project: str) -> ScoringResult:
        """Score one lead. Only transport errors raise."""
        if self.client is None:
            return fallback_result(json.dumps(crm_row, default=str), 'OpenAI not configured')

        context = json.dumps({
            'crm': crm_row,
            'professional_profile': profile or {},
            'financial_summary': financial or {},
        }, default=str)

        content = self._complete(self.model, SYSTEM_PROMPT.format(project=project), context)
        try:
            return normalize_analysis(parse_json_object(content))
        except ScoringError as e:
            logger.warning("Scoring reply unusable (%s), retrying with simplified prompt", e)

        content = self._complete(self.fallback_model, SIMPLE_PROMPT.format(project=project), context)
        try:
            return normalize_analysis(parse_json_object(content))
        except ScoringError as e:
            logger.warning("Simplified scoring reply unusable (%s), using heuristic", e)
            return fallback_result(content, 'Model returned malformed JSON twice')

    def score_cis(self, crm_summary: Dict[str, Any]) -> Dict[str, Any]:
        """Compliance & Insight Score for one CRM summary. Raises ScoringError on bad output."""
        if self.client is None:
            raise ScoringError("OpenAI not configured")
        parsed = parse_json_object(self._complete(self.model, CIS_PROMPT, json.dumps(crm_summary)))

        compliance = clamp_score(parsed.get('compliance_score'), 0, 50)
        insight = clamp_score(parsed.get('insight_score'), 0, 50)
        if compliance is None or insight is None:
            raise ScoringError("CIS reply missing compliance_score or insight_score")
        total = compliance + insight
        return {
            'compliance_score': compliance,
            'insight_score': insight,
            'cis_total': total,
            'cis_rating': cis_rating(total),
            'compliance_flags': parsed.get('compliance_flags') or {},
            'insight_flags': parsed.get('insight_flags') or {},
        }
