"""
Professional profile reconciliation — EPFO employment history, LinkedIn,
GST business registry and demography merged into one ProfessionalProfile.

Derived on every read from the stored raw MQL payload; never cached.
"""
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Dict, List, Optional

from leaddesk.services.fields import parse_date

EXIT_PLACEHOLDERS = {'', 'n/a'}
DAYS_PER_YEAR = 365.25

DEFAULT_DESIGNATION = 'Professional'
UNKNOWN_EMPLOYER = 'Unknown'


@dataclass
class PreviousEmployer:
    name: str
    tenure: str


@dataclass
class ProfessionalProfile:
    current_role: str
    employment_type: str
    current_tenure: Optional[str]
    active_business: Optional[str]
    previous_employers: List[PreviousEmployer] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def has_exit_date(record: Dict[str, Any]) -> bool:
    value = record.get('date_of_exit')
    if value is None:
        return False
    return str(value).strip().lower() not in EXIT_PLACEHOLDERS


def tenure_years(start: Any, end: Any = None, now: Optional[date] = None) -> Optional[float]:
    """
    Elapsed years between start and end (or now), to one decimal place.
    Returns None when either date cannot be parsed.
    """
    start_date = parse_date(start)
    if start_date is None:
        return None
    if end is None:
        end_date = now or date.today()
    else:
        end_date = parse_date(end)
        if end_date is None:
            return None
    return round((end_date - start_date).days / DAYS_PER_YEAR, 1)


def format_current_tenure(date_of_joining: Any, now: Optional[date] = None) -> Optional[str]:
    """'Since Aug 2022 (3.5 years)', or None if the joining date is unusable."""
    years = tenure_years(date_of_joining, now=now)
    if years is None:
        return None
    joined = parse_date(date_of_joining)
    return f"Since {joined.strftime('%b %Y')} ({years:.1f} years)"


def format_employer_tenure(joining: Any, exit_date: Any, now: Optional[date] = None) -> str:
    years = tenure_years(joining, exit_date, now=now)
    return f"{years:.1f} years" if years is not None else 'N/A'


def select_current_employment(records: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pick the current employment among records without an exit date.

    Several open records happen when EPFO never received an exit; the one
    with the latest joining date wins. Records with unreadable joining dates
    rank below dated ones, and ties keep array order.
    """
    open_records = [r for r in records if not has_exit_date(r)]
    if not open_records:
        return None

    best, best_joined = open_records[0], parse_date(open_records[0].get('date_of_joining'))
    for record in open_records[1:]:
        joined = parse_date(record.get('date_of_joining'))
        if joined is not None and (best_joined is None or joined > best_joined):
            best, best_joined = record, joined
    return best


def employment_type(demography: Optional[Dict[str, Any]]) -> str:
    designation = str((demography or {}).get('designation') or '')
    lower = designation.lower()
    if 'salaried' in lower:
        return 'Salaried'
    if 'self' in lower or 'business' in lower:
        return 'Self-Employed'
    return designation or 'N/A'


def active_business(businesses: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """
    'Name - Industry - Turnover' for the first active GST registration.
    'Inactive' when registrations exist but none is active; None when there are none.
    """
    if not businesses:
        return None
    for record in businesses:
        if str(record.get('status') or '').strip().lower() == 'active':
            parts = [
                str(record[k]).strip() for k in ('business_name', 'industry', 'turnover_slab')
                if record.get(k) and str(record[k]).strip()
            ]
            return ' - '.join(parts) or 'Active'
    return 'Inactive'


def reconcile(
    employment: Optional[List[Dict[str, Any]]],
    network_profile: Optional[Dict[str, Any]],
    businesses: Optional[List[Dict[str, Any]]],
    demography: Optional[Dict[str, Any]],
    now: Optional[date] = None,
) -> ProfessionalProfile:
    """Merge the professional sections of an MQL lead payload."""
    records = [r for r in (employment or []) if isinstance(r, dict)]
    businesses = [b for b in (businesses or []) if isinstance(b, dict)]

    current = select_current_employment(records)
    employer = (current or {}).get('employer_name') or UNKNOWN_EMPLOYER
    designation = (network_profile or {}).get('current_designation') or DEFAULT_DESIGNATION

    previous = [
        PreviousEmployer(
            name=r.get('employer_name') or UNKNOWN_EMPLOYER,
            tenure=format_employer_tenure(r.get('date_of_joining'), r.get('date_of_exit'), now=now),
        )
        for r in records if has_exit_date(r)
    ]

    return ProfessionalProfile(
        current_role=f"{designation} at {employer}",
        employment_type=employment_type(demography),
        current_tenure=format_current_tenure((current or {}).get('date_of_joining'), now=now),
        active_business=active_business(businesses),
        previous_employers=previous,
    )


def reconcile_payload(lead_data: Dict[str, Any], now: Optional[date] = None) -> ProfessionalProfile:
    """Convenience wrapper over one lead entry of an MQL response."""
    businesses = lead_data.get('business_details')
    if isinstance(businesses, dict):
        businesses = [businesses] if businesses else []
    return reconcile(
        lead_data.get('employment_details'),
        lead_data.get('linkedin_details'),
        businesses,
        lead_data.get('demography'),
        now=now,
    )
