"""
Persistence helpers for leads, enrichments and analyses.

Every write is an upsert by (lead_id, project_id) and is wrapped in
try/except: a DB error is logged and reported as False so one bad row never
aborts a batch. Re-running the same write is always safe.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from leaddesk.database import get_session
from leaddesk.models.lead import Lead
from leaddesk.models.enrichment import LeadEnrichment
from leaddesk.models.analysis import LeadAnalysis

logger = logging.getLogger('services.store')


class PersistenceError(RuntimeError):
    """A batch write that had to land did not."""


def _now():
    return datetime.now(timezone.utc)


def row_to_dict(row) -> Dict[str, Any]:
    """Column values of a model row, datetimes as ISO strings."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.name)
        data[column.name] = value.isoformat() if isinstance(value, datetime) else value
    return data


def _upsert(model, lead_id: str, project_id: str, values: Dict[str, Any], label: str) -> bool:
    session = get_session()
    try:
        row = session.query(model).filter_by(lead_id=lead_id, project_id=project_id).first()
        if row is None:
            row = model(lead_id=lead_id, project_id=project_id)
            session.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.error("Failed to upsert %s %s/%s", label, project_id, lead_id, exc_info=True)
        return False
    finally:
        session.close()


# ── Writes ────────────────────────────────────────────────────────────────────

def upsert_lead(lead) -> bool:
    """
    Insert or refresh a Lead from a LeadInput. crm_data is written on insert
    only; a re-import never rewrites the stored CRM row.
    """
    session = get_session()
    try:
        row = session.query(Lead).filter_by(lead_id=lead.lead_id, project_id=lead.project_id).first()
        if row is None:
            row = Lead(lead_id=lead.lead_id, project_id=lead.project_id, crm_data=lead.crm_data)
            session.add(row)
        row.name = lead.name
        row.phone = lead.phone
        row.email = lead.email
        row.owner = lead.owner
        row.manager_rating = lead.manager_rating
        row.latest_revisit_date = lead.latest_revisit_date
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.error("Failed to upsert lead %s/%s", lead.project_id, lead.lead_id, exc_info=True)
        return False
    finally:
        session.close()


def upsert_enrichment(lead_id: str, project_id: str, status: str,
                      fields: Optional[Dict[str, Any]] = None, raw_response: Any = None) -> bool:
    values = dict(fields or {})
    values.update(status=status, raw_response=raw_response, enriched_at=_now())
    return _upsert(LeadEnrichment, lead_id, project_id, values, 'enrichment')


def upsert_analysis(lead_id: str, project_id: str, rating: str, insights: str,
                    full_analysis: Dict[str, Any], revisit_date: Optional[str]) -> bool:
    values = {
        'rating': rating,
        'insights': insights,
        'full_analysis': full_analysis,
        'revisit_date_at_analysis': revisit_date,
        'analyzed_at': _now(),
    }
    return _upsert(LeadAnalysis, lead_id, project_id, values, 'analysis')


def update_full_analysis(lead_id: str, project_id: str, full_analysis: Dict[str, Any]) -> bool:
    """Replace full_analysis on an existing row without touching analyzed_at."""
    session = get_session()
    try:
        row = session.query(LeadAnalysis).filter_by(lead_id=lead_id, project_id=project_id).first()
        if row is None:
            return False
        row.full_analysis = full_analysis
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.error("Failed to update analysis %s/%s", project_id, lead_id, exc_info=True)
        return False
    finally:
        session.close()


# ── Reads ─────────────────────────────────────────────────────────────────────

def _fetch(model, project_id: str, lead_ids: Optional[Iterable[str]] = None) -> List[Any]:
    session = get_session()
    try:
        query = session.query(model).filter(model.project_id == project_id)
        if lead_ids is not None:
            ids = list(lead_ids)
            if not ids:
                return []
            query = query.filter(model.lead_id.in_(ids))
        rows = query.order_by(model.id).all()
        session.expunge_all()
        return rows
    except Exception:
        logger.error("Failed to read %s for project %s", model.__tablename__, project_id, exc_info=True)
        return []
    finally:
        session.close()


def get_leads(project_id: str, lead_ids: Optional[Iterable[str]] = None) -> List[Lead]:
    return _fetch(Lead, project_id, lead_ids)


def get_enrichments(lead_ids: Optional[Iterable[str]], project_id: str) -> List[LeadEnrichment]:
    return _fetch(LeadEnrichment, project_id, lead_ids)


def get_analyses(lead_ids: Optional[Iterable[str]], project_id: str) -> List[LeadAnalysis]:
    return _fetch(LeadAnalysis, project_id, lead_ids)


def get_lead(project_id: str, lead_id: str) -> Optional[Lead]:
    rows = get_leads(project_id, [lead_id])
    return rows[0] if rows else None


# ── Deletes ───────────────────────────────────────────────────────────────────

def delete_analyses(lead_ids: Iterable[str], project_id: str) -> int:
    """Drop analyses so the next run re-scores these leads. Returns rows deleted."""
    ids = list(lead_ids)
    if not ids:
        return 0
    session = get_session()
    try:
        deleted = (
            session.query(LeadAnalysis)
            .filter(LeadAnalysis.project_id == project_id, LeadAnalysis.lead_id.in_(ids))
            .delete(synchronize_session=False)
        )
        session.commit()
        logger.info("Deleted %d analyses for project %s", deleted, project_id)
        return deleted
    except Exception:
        session.rollback()
        logger.error("Failed to delete analyses for project %s", project_id, exc_info=True)
        return 0
    finally:
        session.close()


def clear_project_cache(project_id: str) -> Dict[str, int]:
    """Delete analyses, enrichments and leads for a project, in that order."""
    session = get_session()
    counts = {}
    try:
        for label, model in (('analyses', LeadAnalysis), ('enrichments', LeadEnrichment), ('leads', Lead)):
            counts[label] = (
                session.query(model)
                .filter(model.project_id == project_id)
                .delete(synchronize_session=False)
            )
        session.commit()
        logger.info("Cleared project %s cache: %s", project_id, counts)
        return counts
    except Exception:
        session.rollback()
        logger.error("Failed to clear cache for project %s", project_id, exc_info=True)
        return {}
    finally:
        session.close()


def project_status(project_id: str) -> Dict[str, int]:
    """Counts the dashboard polls while a background batch runs."""
    leads = get_leads(project_id)
    enrichments = get_enrichments(None, project_id)
    analyses = get_analyses(None, project_id)
    by_status = {}
    for row in enrichments:
        by_status[row.status] = by_status.get(row.status, 0) + 1
    return {
        'leads': len(leads),
        'enriched': len(enrichments),
        'enrichment_status': by_status,
        'analyzed': len(analyses),
    }
