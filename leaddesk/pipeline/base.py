"""
Batch adapter contracts.

Every batch kind (enrichment, analysis, CIS) implements BatchAdapter. The
orchestrator only sees this interface: it asks the adapter which items are
already cached, dispatches the rest one at a time, then reads records back.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from leaddesk.config import (
    ENRICHMENT_ITEM_DELAY, ENRICHMENT_POLL_INTERVAL, ENRICHMENT_MAX_POLLS,
    ANALYSIS_ITEM_DELAY, ANALYSIS_POLL_INTERVAL, ANALYSIS_MAX_POLLS,
    CIS_ITEM_DELAY, FALLBACK_MARKER,
)

# Item lifecycle: PENDING → CACHED | DISPATCHED → SUCCEEDED | FAILED
PENDING = 'pending'
CACHED = 'cached'
DISPATCHED = 'dispatched'
SUCCEEDED = 'succeeded'
FAILED = 'failed'


@dataclass
class BatchItem:
    """One lead as handed to an adapter."""
    lead_id: str
    name: str = ''
    phone: str = ''
    latest_revisit_date: Optional[str] = None
    crm_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_lead(cls, lead) -> 'BatchItem':
        return cls(
            lead_id=lead.lead_id,
            name=lead.name or '',
            phone=lead.phone or '',
            latest_revisit_date=lead.latest_revisit_date,
            crm_data=lead.crm_data or {},
        )


@dataclass
class ItemResult:
    """Outcome for one input item. record is the adapter's record dict, if any."""
    lead_id: str
    status: str = PENDING
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    """One ItemResult per input item, in input order, plus counters."""
    results: List[ItemResult]
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchOptions:
    inter_item_delay: float = 0.0
    poll_interval: float = 0.0
    max_poll_attempts: int = 1
    # Dispatch is always one item at a time; kept for reporting.
    chunk_size: int = 1


ENRICHMENT_OPTIONS = BatchOptions(
    inter_item_delay=ENRICHMENT_ITEM_DELAY,
    poll_interval=ENRICHMENT_POLL_INTERVAL,
    max_poll_attempts=ENRICHMENT_MAX_POLLS,
)
ANALYSIS_OPTIONS = BatchOptions(
    inter_item_delay=ANALYSIS_ITEM_DELAY,
    poll_interval=ANALYSIS_POLL_INTERVAL,
    max_poll_attempts=ANALYSIS_MAX_POLLS,
)
CIS_OPTIONS = BatchOptions(
    inter_item_delay=CIS_ITEM_DELAY,
    poll_interval=ENRICHMENT_POLL_INTERVAL,
    max_poll_attempts=ENRICHMENT_MAX_POLLS,
)


class BatchAdapter(ABC):
    """
    Base class for batch adapters.

    dispatch() does the external call for a single item and persists its
    record. It may raise; the orchestrator turns the exception into a FAILED
    item and calls record_failure() so the failure is durable too.
    """
    kind: str = ''
    description: str = ''

    @abstractmethod
    def lookup_cached(self, items: List[BatchItem], project_id: str) -> Dict[str, Dict[str, Any]]:
        """Return {lead_id: record} for items that must not be dispatched again."""
        ...

    @abstractmethod
    def dispatch(self, item: BatchItem, project_id: str) -> None:
        ...

    @abstractmethod
    def fetch_records(self, lead_ids: List[str], project_id: str) -> Dict[str, Dict[str, Any]]:
        """Read back {lead_id: record} for whatever has been persisted so far."""
        ...

    def is_failure(self, record: Dict[str, Any]) -> bool:
        """Whether a persisted record represents a failed item."""
        return False

    def record_failure(self, item: BatchItem, project_id: str, error: Exception) -> None:
        """Persist a terminal failure for item. Default: nothing to persist."""
        return None

    def clear_records(self, lead_ids: List[str], project_id: str) -> None:
        """Drop stored records so these items are dispatched again."""
        return None


def is_fallback(record: Dict[str, Any], marker: str = FALLBACK_MARKER) -> bool:
    """Whether an analysis record's rationale or insights carry the fallback marker."""
    analysis = record.get('full_analysis') or {}
    rationale = f"{analysis.get('rating_rationale') or ''} {record.get('insights') or ''}"
    return marker in rationale


def get_adapter(adapters: Dict[str, Type[BatchAdapter]], kind: str, **kwargs) -> BatchAdapter:
    """Look up and instantiate the adapter for a batch kind."""
    adapter_cls = adapters.get(kind)
    if not adapter_cls:
        raise ValueError(f"No adapter registered for batch kind '{kind}'")
    return adapter_cls(**kwargs)
