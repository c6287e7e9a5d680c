"""
CIS batch — Compliance & Insight Score of the sales manager's CRM notes.

Runs only over leads that already have an analysis; the score is merged into
full_analysis.extracted_signals.crm_compliance_assessment.
"""
import logging
from typing import Any, Dict, List

from leaddesk.pipeline.base import BatchAdapter, BatchItem
from leaddesk.services import store
from leaddesk.services.fields import resolve_field
from leaddesk.services.scoring_client import ScoringClient, ScoringError

logger = logging.getLogger('pipeline.cis')

ASSESSMENT_KEY = 'crm_compliance_assessment'

# summary key -> logical CRM field
SUMMARY_FIELDS = {
    'customerName': 'name',
    'phone': 'phone',
    'occupation': 'occupation',
    'currentResidence': 'residence',
    'workLocation': 'work_location',
    'budgetRange': 'budget',
    'configPreference': 'configuration',
    'managerRating': 'manager_rating',
    'nextFollowUp': 'latest_revisit_date',
}


def crm_summary(crm_data: Dict[str, Any]) -> Dict[str, str]:
    """The ten compliance fields the CIS prompt grades."""
    summary = {key: str(resolve_field(crm_data, name) or '') for key, name in SUMMARY_FIELDS.items()}
    comments = [resolve_field(crm_data, 'visit_comments'), resolve_field(crm_data, 'revisit_comments')]
    summary['visitComments'] = ' '.join(str(c) for c in comments if c)
    return summary


def assessment_of(record: Dict[str, Any]):
    signals = (record.get('full_analysis') or {}).get('extracted_signals') or {}
    return signals.get(ASSESSMENT_KEY)


def merge_assessment(full_analysis: Dict[str, Any], assessment: Dict[str, Any]) -> Dict[str, Any]:
    """New full_analysis with the assessment under extracted_signals; input untouched."""
    analysis = dict(full_analysis or {})
    signals = dict(analysis.get('extracted_signals') or {})
    signals[ASSESSMENT_KEY] = assessment
    analysis['extracted_signals'] = signals
    return analysis


class CisAdapter(BatchAdapter):
    kind = 'cis'
    description = 'OpenAI: CRM compliance and insight depth'

    def __init__(self, project_name: str = None, client: ScoringClient = None):
        self.project_name = project_name
        self.client = client or ScoringClient()

    def _assessed(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        records = {}
        for row in store.get_analyses(lead_ids, project_id):
            record = store.row_to_dict(row)
            if assessment_of(record):
                records[row.lead_id] = record
        return records

    def lookup_cached(self, items: List[BatchItem], project_id: str) -> Dict[str, Dict[str, Any]]:
        return self._assessed([i.lead_id for i in items], project_id)

    def fetch_records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        return self._assessed(lead_ids, project_id)

    def dispatch(self, item: BatchItem, project_id: str) -> None:
        analyses = store.get_analyses([item.lead_id], project_id)
        if not analyses:
            raise ScoringError(f"Lead {item.lead_id} has no analysis to attach a CIS to")

        assessment = self.client.score_cis(crm_summary(item.crm_data))
        logger.info("CIS for %s: %s (%s)", item.lead_id, assessment['cis_total'], assessment['cis_rating'])
        if not store.update_full_analysis(item.lead_id, project_id, merge_assessment(analyses[0].full_analysis, assessment)):
            logger.warning("CIS for %s not persisted", item.lead_id)


ADAPTERS = {
    'cis': CisAdapter,
}
