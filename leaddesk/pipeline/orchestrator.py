"""
Batch Orchestrator — drives one batch kind over a list of leads.

  1. lookup_cached()   → fresh records are reused, never re-dispatched
  2. dispatch()        → one item at a time, inter_item_delay between calls
  3. poll_until()      → read records back until every dispatched item has one
                         or the attempt budget runs out (partial, not an error)

A failing item is logged, marked FAILED and persisted via record_failure();
its siblings carry on. The result always has one entry per input item.

Background runs go through RQ: launch_batch() enqueues run_batch_job() and
callers poll the store (GET /api/projects/<id>/status).
"""
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from leaddesk.config import FALLBACK_MARKER
from leaddesk.pipeline.base import (
    BatchAdapter, BatchItem, BatchOptions, BatchResult, ItemResult,
    PENDING, CACHED, DISPATCHED, SUCCEEDED, FAILED,
    ENRICHMENT_OPTIONS, ANALYSIS_OPTIONS, CIS_OPTIONS, get_adapter, is_fallback,
)
from leaddesk.pipeline import enrichment as enrichment_mod
from leaddesk.pipeline import analysis as analysis_mod
from leaddesk.pipeline import cis as cis_mod
from leaddesk.services.store import get_leads

logger = logging.getLogger('pipeline.orchestrator')

BATCH_REGISTRY = {
    **enrichment_mod.ADAPTERS,
    **analysis_mod.ADAPTERS,
    **cis_mod.ADAPTERS,
}

BATCH_OPTIONS = {
    'enrichment': ENRICHMENT_OPTIONS,
    'analysis': ANALYSIS_OPTIONS,
    'cis': CIS_OPTIONS,
}


# ── Lazy RQ queue (no Redis connection at import time) ───────────────────────

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from leaddesk.extensions import redis_client
        from rq import Queue
        _queue = Queue(connection=redis_client)
    return _queue


# ── Polling primitive ────────────────────────────────────────────────────────

def poll_until(
    fetch: Callable[[], Any],
    is_done: Callable[[Any], bool],
    on_tick: Optional[Callable[[Any, int], None]] = None,
    interval: float = 0.0,
    max_attempts: int = 1,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[Any, bool]:
    """
    Call fetch() until is_done(result) or max_attempts calls have been made.
    on_tick(result, attempt) sees every intermediate result. Returns
    (last_result, done); running out of attempts is not an error.
    """
    latest = None
    for attempt in range(1, max(1, max_attempts) + 1):
        latest = fetch()
        if on_tick:
            on_tick(latest, attempt)
        if is_done(latest):
            return latest, True
        if attempt < max_attempts:
            sleep(interval)
    return latest, False


# ── State folding ────────────────────────────────────────────────────────────

def apply_results(leads: List[Dict[str, Any]], results: Iterable[ItemResult], slot: str) -> List[Dict[str, Any]]:
    """
    Fold item results into a list of lead dicts under `slot`, returning new
    dicts. Inputs are never mutated; results for unknown leads are ignored.
    """
    by_id = {r.lead_id: r for r in results}
    folded = []
    for lead in leads:
        result = by_id.get(lead.get('lead_id'))
        if result is None:
            folded.append(dict(lead))
            continue
        folded.append({
            **lead,
            slot: {'status': result.status, 'record': result.record, 'error': result.error},
        })
    return folded


# ── Runner ───────────────────────────────────────────────────────────────────

def _summarize(results: List[ItemResult], polls: int, complete: bool) -> Dict[str, Any]:
    counts = {PENDING: 0, CACHED: 0, DISPATCHED: 0, SUCCEEDED: 0, FAILED: 0}
    for r in results:
        counts[r.status] += 1
    return {
        'total': len(results),
        'succeeded': counts[SUCCEEDED],
        'failed': counts[FAILED],
        'cached': counts[CACHED],
        'pending': counts[DISPATCHED] + counts[PENDING],
        'polls': polls,
        'complete': complete,
    }


def run(
    items: List[BatchItem],
    adapter: BatchAdapter,
    project_id: str,
    options: Optional[BatchOptions] = None,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Optional[Callable[[List[ItemResult]], None]] = None,
    use_cache: bool = True,
) -> BatchResult:
    """Run one batch. See module docstring for the protocol. use_cache=False dispatches every item."""
    options = options or BatchOptions()
    state: Dict[str, ItemResult] = {}
    order: List[str] = []
    for item in items:
        order.append(item.lead_id)
        state.setdefault(item.lead_id, ItemResult(lead_id=item.lead_id))

    def snapshot() -> List[ItemResult]:
        return [state[lead_id] for lead_id in order]

    cached = adapter.lookup_cached(items, project_id) if items and use_cache else {}
    for lead_id, record in cached.items():
        if lead_id in state:
            state[lead_id].status = CACHED
            state[lead_id].record = record
    logger.info(
        "[%s] project=%s: %d items, %d cached", adapter.kind, project_id, len(state), len(cached),
    )

    dispatched: List[str] = []
    attempted = 0
    for item in items:
        result = state[item.lead_id]
        if result.status != PENDING:
            continue
        if attempted:
            sleep(options.inter_item_delay)
        attempted += 1
        try:
            adapter.dispatch(item, project_id)
            result.status = DISPATCHED
            dispatched.append(item.lead_id)
        except Exception as e:
            logger.error(
                "[%s] lead %s failed: %s", adapter.kind, item.lead_id, e,
                extra={'project_id': project_id, 'lead_id': item.lead_id, 'batch_kind': adapter.kind},
            )
            result.status = FAILED
            result.error = str(e)
            try:
                adapter.record_failure(item, project_id, e)
            except Exception:
                logger.error("[%s] could not record failure for %s", adapter.kind, item.lead_id, exc_info=True)
        if on_progress:
            on_progress(snapshot())

    def merge(records: Dict[str, Dict[str, Any]], attempt: int):
        for lead_id in dispatched:
            record = records.get(lead_id)
            if record is None or state[lead_id].status != DISPATCHED:
                continue
            state[lead_id].record = record
            state[lead_id].status = FAILED if adapter.is_failure(record) else SUCCEEDED
        if on_progress:
            on_progress(snapshot())

    polls, complete = 0, True
    if dispatched:
        def fetch():
            nonlocal polls
            polls += 1
            return adapter.fetch_records(dispatched, project_id)

        _, complete = poll_until(
            fetch,
            lambda records: all(lead_id in records for lead_id in dispatched),
            on_tick=merge,
            interval=options.poll_interval,
            max_attempts=options.max_poll_attempts,
            sleep=sleep,
        )
        if not complete:
            logger.warning(
                "[%s] project=%s: polling gave up after %d attempts, %d items still pending",
                adapter.kind, project_id, polls,
                sum(1 for lead_id in dispatched if state[lead_id].status == DISPATCHED),
            )

    results = snapshot()
    meta = _summarize(results, polls, complete)
    logger.info("[%s] project=%s done: %s", adapter.kind, project_id, meta)
    return BatchResult(results=results, meta=meta)


# ── Partial re-submission ────────────────────────────────────────────────────

def find_failed(records: Iterable[Dict[str, Any]], marker: str = FALLBACK_MARKER) -> List[str]:
    """lead_ids of analysis records whose rationale carries the fallback marker."""
    return [r['lead_id'] for r in records if is_fallback(r, marker)]


def resubmit_failed(
    items: List[BatchItem],
    adapter: BatchAdapter,
    project_id: str,
    options: Optional[BatchOptions] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """
    Re-run only the items whose stored record is a fallback. Their records
    are cleared and the cache is bypassed, so a fallback row that survives a
    failed delete is still re-dispatched.
    """
    records = adapter.fetch_records([i.lead_id for i in items], project_id)
    failed_ids = set(find_failed(records.values()))
    retry = [i for i in items if i.lead_id in failed_ids]
    logger.info("[%s] project=%s: resubmitting %d failed items", adapter.kind, project_id, len(retry))
    if not retry:
        return BatchResult(results=[], meta=_summarize([], 0, True))
    adapter.clear_records([i.lead_id for i in retry], project_id)
    return run(retry, adapter, project_id, options, sleep=sleep, use_cache=False)


# ── Background jobs (RQ) ─────────────────────────────────────────────────────

def launch_batch(kind: str, project_id: str, lead_ids: Optional[List[str]] = None,
                 project_name: Optional[str] = None, resubmit: bool = False) -> str:
    """Enqueue run_batch_job and return the RQ job id."""
    if kind not in BATCH_REGISTRY:
        raise ValueError(f"Unsupported batch kind: {kind}. Available: {list(BATCH_REGISTRY)}")
    job = _get_queue().enqueue(
        run_batch_job, kind, project_id, lead_ids, project_name, resubmit,
        job_timeout=14400,
    )
    logger.info(
        "Enqueued %s batch for project %s as job %s", kind, project_id, job.id,
        extra={'project_id': project_id, 'batch_kind': kind, 'job_id': job.id},
    )
    return job.id


def run_batch_job(kind: str, project_id: str, lead_ids: Optional[List[str]] = None,
                  project_name: Optional[str] = None, resubmit: bool = False,
                  sleep: Callable[[float], None] = time.sleep) -> Dict[str, Any]:
    """RQ entry point: load leads from the store and run one batch. Returns meta."""
    leads = get_leads(project_id, lead_ids)
    if not leads:
        logger.warning("No leads found for project %s, nothing to %s", project_id, kind)
        return _summarize([], 0, True)

    adapter = get_adapter(BATCH_REGISTRY, kind, project_name=project_name or project_id)
    items = [BatchItem.from_lead(lead) for lead in leads]
    options = BATCH_OPTIONS[kind]
    if resubmit:
        return resubmit_failed(items, adapter, project_id, options, sleep=sleep).meta
    return run(items, adapter, project_id, options, sleep=sleep).meta
