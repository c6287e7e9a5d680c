"""
Analysis batch — OpenAI scoring persisted to lead_analyses.

A stored analysis is reused only while the lead's latest revisit date still
matches revisit_date_at_analysis. A new site revisit makes it stale.
"""
import logging
from typing import Any, Dict, List, Optional

from leaddesk.pipeline.base import BatchAdapter, BatchItem, is_fallback
from leaddesk.services import store
from leaddesk.services.fields import normalize_date
from leaddesk.services.financial import summarize_payload
from leaddesk.services.mql_client import first_lead, SUCCESS
from leaddesk.services.professional import reconcile_payload
from leaddesk.services.scoring_client import ScoringClient, fallback_result
from leaddesk.services.standardize import standardize

logger = logging.getLogger('pipeline.analysis')


def is_fresh(revisit_at_analysis: Any, current_revisit: Any) -> bool:
    """Same normalized revisit date on both sides (both missing counts as same)."""
    return normalize_date(revisit_at_analysis) == normalize_date(current_revisit)


def build_context(crm_data: Dict[str, Any], enrichment: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Derived views for one lead: standardized CRM/MQL merge, professional
    profile and financial summary. Profile and financial are None unless the
    lead has a SUCCESS enrichment.
    """
    context = {
        'standardized': standardize(crm_data, enrichment).to_dict(),
        'professional_profile': None,
        'financial_summary': None,
    }
    if enrichment and enrichment.get('status') == SUCCESS:
        lead_data = first_lead(enrichment.get('raw_response'))
        context['professional_profile'] = reconcile_payload(lead_data).to_dict()
        context['financial_summary'] = summarize_payload(lead_data).to_dict()
    return context


class AnalysisAdapter(BatchAdapter):
    kind = 'analysis'
    description = 'OpenAI: rating, persona, concerns, PPS'

    def __init__(self, project_name: str = None, client: ScoringClient = None):
        self.project_name = project_name
        self.client = client or ScoringClient()

    def _records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        return {row.lead_id: store.row_to_dict(row) for row in store.get_analyses(lead_ids, project_id)}

    def lookup_cached(self, items: List[BatchItem], project_id: str) -> Dict[str, Dict[str, Any]]:
        records = self._records([i.lead_id for i in items], project_id)
        fresh = {}
        for item in items:
            record = records.get(item.lead_id)
            if record is None:
                continue
            if is_fresh(record.get('revisit_date_at_analysis'), item.latest_revisit_date):
                fresh[item.lead_id] = record
            else:
                logger.info(
                    "Analysis for %s is stale (analyzed at revisit %s, now %s)",
                    item.lead_id, record.get('revisit_date_at_analysis'), item.latest_revisit_date,
                )
        return fresh

    def fetch_records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        return self._records(lead_ids, project_id)

    def dispatch(self, item: BatchItem, project_id: str) -> None:
        enrichments = store.get_enrichments([item.lead_id], project_id)
        enrichment = store.row_to_dict(enrichments[0]) if enrichments else None
        context = build_context(item.crm_data, enrichment)

        profile = dict(context['professional_profile'] or {})
        profile['standardized'] = context['standardized']
        result = self.client.score(
            item.crm_data, profile, context['financial_summary'], self.project_name or project_id,
        )
        logger.info(
            "Analyzed %s: %s (pps=%s%s)", item.lead_id, result.rating,
            result.full_analysis.get('pps_score'), ', fallback' if result.fallback else '',
        )
        saved = store.upsert_analysis(
            item.lead_id, project_id, result.rating, result.insights,
            result.full_analysis, normalize_date(item.latest_revisit_date),
        )
        if not saved:
            # the old row would otherwise be read back as this run's result
            raise store.PersistenceError(f"Analysis for {item.lead_id} could not be saved")

    def record_failure(self, item: BatchItem, project_id: str, error: Exception) -> None:
        result = fallback_result(None, f"Analysis failed: {error}")
        store.upsert_analysis(
            item.lead_id, project_id, result.rating, result.insights,
            result.full_analysis, normalize_date(item.latest_revisit_date),
        )

    def is_failure(self, record: Dict[str, Any]) -> bool:
        return is_fallback(record)

    def clear_records(self, lead_ids: List[str], project_id: str) -> None:
        store.delete_analyses(lead_ids, project_id)


ADAPTERS = {
    'analysis': AnalysisAdapter,
}
