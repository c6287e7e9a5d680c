"""
CRM field mapping — one declarative table from logical lead fields to the
many column spellings CRM exports use.

Rows are resolved once at ingestion into a LeadInput; nothing downstream
guesses column names.
"""
import logging
import math
import os
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger('services.fields')


class IngestError(ValueError):
    """Raised when a CRM row lacks the fields needed to identify a lead."""


EMPTY_MARKERS = {'', 'n/a', 'na', 'unknown', 'null', 'undefined', 'none', '-'}

DATE_FORMATS = (
    '%Y-%m-%d',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M:%S',
    '%d/%m/%Y',
    '%d-%m-%Y',
    '%d-%b-%Y',
    '%d %b %Y',
    '%b %d, %Y',
)

# Budgets at or above this are taken as raw rupees rather than crores.
BUDGET_RAW_THRESHOLD = 100
RUPEES_PER_CRORE = 10_000_000


# ── Field map (YAML with hardcoded fallback) ─────────────────────────────────

_field_map = None


def _default_field_map():
    """Hardcoded fallback if YAML is missing."""
    return {
        'lead_id': ['Opportunity ID', 'Lead ID', 'lead_id', 'id'],
        'name': ['Opportunity Name', 'Customer Name', 'Name', 'name'],
        'phone': ['Mobile', 'Cust Mobile', 'Phone', 'phone'],
        'email': ['Email Id', 'Email', 'email'],
        'owner': ['Name of Closing Manager', 'Lead Owner'],
        'manager_rating': ['Walkin Manual Rating', 'Manager Final Rating', 'Manual Rating'],
        'latest_revisit_date': ['Latest Revisit Date', 'Revisit Date'],
        'walkin_date': ['Walkin Date'],
        'source': ['Sales Walkin Sub Source', 'Sub Source', 'Source'],
        'occupation': ['Occupation', 'Profession'],
        'designation': ['Designation'],
        'company': ['Place of Work (Company Name)'],
        'residence': ['Location of Residence', 'Current Residence', 'Area of Residence'],
        'work_location': ['Location of Work', 'Work Location'],
        'budget': ['Budget'],
        'configuration': ['Config Interested', 'Desired Carpet Area (Post-Walkin)'],
        'visit_comments': ['Visit Comments (Not for Reports)', 'Visit Comment', 'Last Follow Up Comments'],
        'revisit_comments': ['Site Re-Visit Comment', 'Revisit Comments'],
    }


def load_field_map() -> Dict[str, List[str]]:
    """Load the field map from YAML, with in-memory cache and hardcoded fallback."""
    global _field_map
    if _field_map is not None:
        return _field_map

    path = os.path.join(os.path.dirname(__file__), 'field_map.yaml')
    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
        _field_map = config['fields']
        logger.info("Field map loaded from YAML (version=%s)", config.get('version', '?'))
    except Exception as e:
        logger.warning("Field map YAML not loaded (%s), using defaults", e)
        _field_map = _default_field_map()

    return _field_map


# ── Value helpers ────────────────────────────────────────────────────────────

def is_empty(value: Any) -> bool:
    """True for None, NaN and placeholder strings like 'N/A' or 'unknown'."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in EMPTY_MARKERS
    if isinstance(value, float):
        return math.isnan(value)
    return False


def resolve_field(row: Dict[str, Any], name: str) -> Optional[Any]:
    """Return the first non-empty candidate column for a logical field, or None."""
    candidates = load_field_map().get(name)
    if candidates is None:
        raise KeyError(f"Unknown lead field '{name}'")
    for column in candidates:
        value = row.get(column)
        if not is_empty(value):
            return value.strip() if isinstance(value, str) else value
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a CRM/provider date into a date, or None if it cannot be read."""
    if is_empty(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(value: Any) -> Optional[str]:
    """ISO 'YYYY-MM-DD' string for a date-like value, or None."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def to_number(value: Any) -> Optional[float]:
    """Float for numeric-looking values (commas allowed), else None."""
    if is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(',', '').strip())
    except ValueError:
        return None


def normalize_budget_crores(value: Any) -> Optional[float]:
    """
    Budget in crores.

    CRM exports mix crore figures ("2.5") with raw rupee amounts
    ("25000000"). Anything >= 100 is read as rupees and converted. This is a
    magnitude heuristic: a genuine crore budget of 100+ is misread.
    """
    amount = to_number(value)
    if amount is None:
        return None
    if amount >= BUDGET_RAW_THRESHOLD:
        return round(amount / RUPEES_PER_CRORE, 2)
    return amount


# ── Ingestion ────────────────────────────────────────────────────────────────

@dataclass
class LeadInput:
    """A CRM row resolved into the fields the pipeline needs."""
    lead_id: str
    project_id: str
    name: str
    phone: str = ''
    email: str = ''
    owner: Optional[str] = None
    manager_rating: Optional[str] = None
    latest_revisit_date: Optional[str] = None
    crm_data: Dict[str, Any] = field(default_factory=dict)


def lead_from_row(row: Dict[str, Any], project_id: str) -> LeadInput:
    """Resolve a raw CRM row. The row itself is kept untouched in crm_data."""
    lead_id = resolve_field(row, 'lead_id')
    name = resolve_field(row, 'name')
    if lead_id is None:
        raise IngestError("CRM row has no opportunity/lead id")
    if name is None:
        raise IngestError(f"CRM row {lead_id} has no customer name")

    rating = resolve_field(row, 'manager_rating')
    return LeadInput(
        lead_id=str(lead_id),
        project_id=project_id,
        name=str(name),
        phone=str(resolve_field(row, 'phone') or ''),
        email=str(resolve_field(row, 'email') or ''),
        owner=resolve_field(row, 'owner'),
        manager_rating=str(rating).strip().capitalize() if rating else None,
        latest_revisit_date=normalize_date(resolve_field(row, 'latest_revisit_date')),
        crm_data=dict(row),
    )


def leads_from_rows(rows: List[Dict[str, Any]], project_id: str):
    """
    Resolve a batch of rows. Returns (leads, errors); bad rows are reported,
    not raised, so one malformed line never drops the whole import.
    """
    leads, errors = [], []
    for idx, row in enumerate(rows):
        try:
            leads.append(lead_from_row(row, project_id))
        except IngestError as e:
            errors.append(f"row {idx + 1}: {e}")
    if errors:
        logger.warning("%d/%d CRM rows skipped at ingestion", len(errors), len(rows))
    return leads, errors
