"""
CRM + MQL merge with fixed per-field precedence.

  CRM wins:  designation, occupation
  MQL wins:  employer, location, age, gender, locality grade, income
  CRM only:  budget (the provider has no budget signal)

A conflict is recorded whenever both sides are non-empty and differ, whichever
side was selected. The result feeds both the profile API and the scoring prompt.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from leaddesk.services.fields import resolve_field, is_empty, normalize_budget_crores

CRM = 'crm'
MQL = 'mql'
NONE = 'none'


@dataclass
class Conflict:
    field: str
    crm_value: Any
    mql_value: Any
    selected_source: str


@dataclass
class StandardizedLead:
    name: str = ''
    phone: str = ''
    email: str = ''
    age: Optional[int] = None
    gender: Optional[str] = None
    designation: Optional[str] = None
    employer: Optional[str] = None
    occupation: Optional[str] = None
    location: Optional[str] = None
    locality_grade: Optional[str] = None
    income_lacs: Optional[float] = None
    budget_stated: Optional[str] = None
    budget_crores: Optional[float] = None
    sources: Dict[str, str] = field(default_factory=dict)
    conflicts: List[Conflict] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _pick(first, second, first_source, second_source):
    if not is_empty(first):
        return first, first_source
    if not is_empty(second):
        return second, second_source
    return None, NONE


def standardize(crm_data: Dict[str, Any], enrichment: Optional[Dict[str, Any]] = None) -> StandardizedLead:
    """
    Merge a raw CRM row with enrichment columns (an EnrichmentFields dict or
    the matching LeadEnrichment attributes).
    """
    crm = crm_data or {}
    mql = enrichment or {}
    lead = StandardizedLead(
        name=str(resolve_field(crm, 'name') or ''),
        phone=str(resolve_field(crm, 'phone') or ''),
        email=str(resolve_field(crm, 'email') or ''),
    )

    # (field, crm value, mql value, winner)
    rules = [
        ('designation', resolve_field(crm, 'designation'), mql.get('designation'), CRM),
        ('occupation', resolve_field(crm, 'occupation'), None, CRM),
        ('employer', resolve_field(crm, 'company'), mql.get('employer_name'), MQL),
        ('location', resolve_field(crm, 'residence'), mql.get('location'), MQL),
        ('age', None, mql.get('age'), MQL),
        ('gender', None, mql.get('gender'), MQL),
        ('locality_grade', None, mql.get('locality_grade'), MQL),
        ('income_lacs', None, mql.get('final_income_lacs'), MQL),
    ]
    for name, crm_value, mql_value, winner in rules:
        if winner == CRM:
            value, source = _pick(crm_value, mql_value, CRM, MQL)
        else:
            value, source = _pick(mql_value, crm_value, MQL, CRM)
        setattr(lead, name, value)
        lead.sources[name] = source
        if not is_empty(crm_value) and not is_empty(mql_value) and crm_value != mql_value:
            lead.conflicts.append(Conflict(name, crm_value, mql_value, winner))

    budget = resolve_field(crm, 'budget')
    lead.budget_stated = None if budget is None else str(budget)
    lead.budget_crores = normalize_budget_crores(budget)
    return lead
