"""
MQL enrichment provider client + payload projection.

The provider answers one person per request. Three outcomes reach callers:
  - ('SUCCESS', document)   → person found and rated
  - ('NO_DATA', payload)    → DATA_NOT_FOUND, status FAILED, or rating N/A
  - ProviderError raised    → timeout, HTTP error, unparseable body

parse_payload() is the only place that reads the untyped provider document;
everything past it works on EnrichmentFields.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

import requests

from leaddesk.config import MQL_API_URL, MQL_API_KEY, MQL_SCHEMA, MQL_TIMEOUT
from leaddesk.services.circuit_breaker import get_breaker
from leaddesk.services.fields import is_empty, to_number
from leaddesk.services.financial import (
    is_active_loan, installment_amount, monthly_income, emi_to_income_ratio,
    credit_behavior_signal,
)
from leaddesk.services.professional import select_current_employment

logger = logging.getLogger('services.mql')

SUCCESS = 'SUCCESS'
NO_DATA = 'NO_DATA'
FAILED = 'FAILED'

DATA_NOT_FOUND = 'DATA_NOT_FOUND'


class ProviderError(Exception):
    """Transport-level MQL failure: timeout, HTTP error or unreadable body."""
    def __init__(self, message, http_status=None, body=None):
        self.http_status = http_status
        self.body = body
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        """Shape stored in raw_response for a FAILED enrichment."""
        payload = {'status': FAILED, 'error': str(self)}
        if self.http_status is not None:
            payload['http_status'] = self.http_status
        if self.body:
            payload['raw'] = self.body[:500]
        return payload


def first_lead(document: Any) -> Dict[str, Any]:
    """leads[0] of a provider document, or {}."""
    if not isinstance(document, dict):
        return {}
    leads = document.get('leads')
    if isinstance(leads, list) and leads and isinstance(leads[0], dict):
        return leads[0]
    return {}


class MQLClient:
    """Thin requests wrapper around the MQL batch endpoint, one lead per call."""

    def __init__(self, api_url=None, api_key=None, schema=None, timeout=None, session=None):
        self.api_url = api_url or MQL_API_URL
        self.api_key = api_key if api_key is not None else MQL_API_KEY
        self.schema = schema if schema is not None else MQL_SCHEMA
        self.timeout = timeout or MQL_TIMEOUT
        self.http = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, body):
        headers = {
            'x-schema': self.schema or '',
            'authorization': self.api_key,
            'Content-Type': 'application/json',
        }
        try:
            response = self.http.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise ProviderError(f"MQL API timed out after {self.timeout}s - retry later")
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"MQL request failed: {e}")

        logger.debug("MQL response %d: %s", response.status_code, response.text[:2000])

        if not response.ok:
            try:
                document = response.json()
            except ValueError:
                document = None
            # DATA_NOT_FOUND arrives as an HTTP error but is a valid answer
            if first_lead(document).get('error') == DATA_NOT_FOUND:
                return document
            raise ProviderError(
                f"MQL HTTP {response.status_code}",
                http_status=response.status_code, body=response.text,
            )

        try:
            return response.json()
        except ValueError:
            raise ProviderError("Invalid JSON response", http_status=response.status_code, body=response.text)

    def fetch(self, name: str, phone: str, project_name: str) -> Tuple[str, Dict[str, Any]]:
        """
        Look up one person. Returns (status, payload) for SUCCESS / NO_DATA,
        raises ProviderError (or CircuitOpenError) for anything else.
        """
        if not self.configured:
            raise ProviderError("MQL_API_KEY not configured")

        body = [{'name': name or '', 'phone': phone or '', 'project_id': project_name}]
        logger.info("MQL request: project=%s phone=***%s", project_name, (phone or '')[-4:])

        document = get_breaker('mql').call(self._post, body)
        lead_data = first_lead(document)

        if lead_data.get('error') == DATA_NOT_FOUND:
            return NO_DATA, document
        person = lead_data.get('person_info') or {}
        if lead_data.get('status') == FAILED or person.get('rating') == 'N/A':
            return NO_DATA, lead_data
        return SUCCESS, document


# ── Payload projection ───────────────────────────────────────────────────────

@dataclass
class EnrichmentFields:
    """Typed projection of one MQL lead entry onto the lead_enrichments columns."""
    mql_rating: Optional[str] = None
    mql_capability: Optional[str] = None
    mql_lifestyle: Optional[str] = None
    credit_score: Optional[int] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    location: Optional[str] = None
    locality_grade: Optional[str] = None
    employer_name: Optional[str] = None
    designation: Optional[str] = None
    final_income_lacs: Optional[float] = None
    total_loans: Optional[int] = None
    active_loans: Optional[int] = None
    active_emi_burden: Optional[float] = None
    emi_to_income_ratio: Optional[str] = None
    credit_behavior_signal: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _text(*values) -> Optional[str]:
    for value in values:
        if not is_empty(value):
            return str(value).strip()
    return None


def _int(value) -> Optional[int]:
    n = to_number(value)
    return int(n) if n is not None else None


def _split_designation(demography: Dict[str, Any]):
    """demography.designation is 'Role, Employer' when the provider knows both."""
    text = str(demography.get('designation') or '')
    if ', ' in text:
        role, employer = text.split(', ', 1)
        return role or None, employer or None
    return (text or None), None


def parse_payload(document: Any) -> EnrichmentFields:
    """
    Project a provider document (or a single lead entry) into EnrichmentFields.
    Missing sections yield None fields; this never raises.
    """
    lead_data = first_lead(document) or (document if isinstance(document, dict) else {})
    person = lead_data.get('person_info') or {}
    demography = lead_data.get('demography') or {}
    income = lead_data.get('income') or {}
    summary = lead_data.get('banking_summary') or {}
    loans = lead_data.get('banking_loans')
    loans = [l for l in loans if isinstance(l, dict)] if isinstance(loans, list) else []
    employment = lead_data.get('employment_details')
    employment = [e for e in employment if isinstance(e, dict)] if isinstance(employment, list) else []

    current = select_current_employment(employment) or (employment[0] if employment else {})
    demo_role, demo_employer = _split_designation(demography)

    final_income = to_number(income.get('final_income_lacs'))
    active_emi = sum(installment_amount(l) for l in loans if is_active_loan(l))
    active_loans = _int(summary.get('active_loans'))

    return EnrichmentFields(
        mql_rating=_text(person.get('rating')),
        mql_capability=_text(person.get('capability')),
        mql_lifestyle=_text(person.get('lifestyle')),
        credit_score=_int(lead_data.get('credit_score')),
        age=_int(person.get('age') if not is_empty(person.get('age')) else demography.get('age')),
        gender=_text(person.get('gender'), demography.get('gender')),
        location=_text(person.get('location'), demography.get('location')),
        locality_grade=_text(person.get('locality_grade')),
        employer_name=_text(current.get('employer_name'), current.get('company_name'), demo_employer),
        designation=_text(current.get('designation'), current.get('role'), demo_role),
        final_income_lacs=final_income,
        total_loans=_int(summary.get('total_loans')),
        active_loans=active_loans,
        active_emi_burden=active_emi if active_emi > 0 else None,
        emi_to_income_ratio=emi_to_income_ratio(active_emi, monthly_income(final_income)),
        credit_behavior_signal=credit_behavior_signal(loans, active_loans, lead_data.get('credit_score')),
    )
