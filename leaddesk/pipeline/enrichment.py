"""
Enrichment batch — MQL lookups persisted to lead_enrichments.

A lead with any enrichment row (SUCCESS, NO_DATA or FAILED) counts as
already enriched and is skipped; clear the project cache to force a redo.
"""
import logging
from typing import Any, Dict, List

from leaddesk.pipeline.base import BatchAdapter, BatchItem
from leaddesk.services import store
from leaddesk.services.mql_client import MQLClient, ProviderError, parse_payload, SUCCESS, FAILED

logger = logging.getLogger('pipeline.enrichment')


class EnrichmentAdapter(BatchAdapter):
    kind = 'enrichment'
    description = 'MQL provider: rating, demography, income, banking'

    def __init__(self, project_name: str = None, client: MQLClient = None):
        self.project_name = project_name
        self.client = client or MQLClient()

    def _records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        return {row.lead_id: store.row_to_dict(row) for row in store.get_enrichments(lead_ids, project_id)}

    def lookup_cached(self, items: List[BatchItem], project_id: str) -> Dict[str, Dict[str, Any]]:
        return self._records([i.lead_id for i in items], project_id)

    def fetch_records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        return self._records(lead_ids, project_id)

    def dispatch(self, item: BatchItem, project_id: str) -> None:
        status, payload = self.client.fetch(item.name, item.phone, self.project_name or project_id)
        if status == SUCCESS:
            fields = parse_payload(payload).to_dict()
            logger.info(
                "Enriched %s: rating=%s emi_ratio=%s", item.lead_id, fields['mql_rating'], fields['emi_to_income_ratio'],
            )
        else:
            fields = {'mql_rating': 'N/A'}
            logger.info("No MQL data for %s", item.lead_id)

        if not store.upsert_enrichment(item.lead_id, project_id, status, fields, payload):
            raise store.PersistenceError(f"Enrichment for {item.lead_id} could not be saved")

    def record_failure(self, item: BatchItem, project_id: str, error: Exception) -> None:
        if isinstance(error, ProviderError):
            payload = error.to_payload()
        else:
            payload = {'status': FAILED, 'error': str(error)}
        store.upsert_enrichment(item.lead_id, project_id, FAILED, {'mql_rating': 'N/A'}, payload)

    def is_failure(self, record: Dict[str, Any]) -> bool:
        return record.get('status') == FAILED


ADAPTERS = {
    'enrichment': EnrichmentAdapter,
}
