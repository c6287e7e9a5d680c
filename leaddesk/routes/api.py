"""
JSON API — CRM import, batch triggers, polling, lead profile, analytics.

Batch endpoints enqueue an RQ job and return 202 with the job id; the
dashboard then polls /api/projects/<id>/status. Pass "wait": true to run the
batch inline instead (used by scripts and tests).
"""
import logging
from flask import Blueprint, request, jsonify

from leaddesk.pipeline.analysis import build_context
from leaddesk.pipeline.orchestrator import launch_batch, run_batch_job
from leaddesk.services import store
from leaddesk.services.analytics import aggregate, scored_leads_from_rows
from leaddesk.services.circuit_breaker import get_all_breakers
from leaddesk.services.fields import leads_from_rows
from leaddesk.services.mql_client import MQLClient
from leaddesk.services.ratings import (
    compare_ratings, rating_badge, sort_by_rating, sort_by_mql_priority,
)

logger = logging.getLogger('routes.api')

bp = Blueprint('api', __name__)


@bp.route('/health')
def health():
    breakers = [cb.get_health() for cb in get_all_breakers().values()]
    return jsonify({'status': 'healthy', 'breakers': breakers}), 200


# ── Import ───────────────────────────────────────────────────────────────────

@bp.route('/api/leads/import', methods=['POST'])
def import_leads():
    """Body: {project_id, rows: [ {CRM column: value, ...}, ... ]}"""
    data = request.get_json(silent=True) or {}
    project_id = data.get('project_id')
    rows = data.get('rows')
    if not project_id or not isinstance(rows, list):
        return jsonify({'error': 'project_id and rows are required'}), 400

    leads, errors = leads_from_rows([r for r in rows if isinstance(r, dict)], project_id)
    saved = sum(1 for lead in leads if store.upsert_lead(lead))
    logger.info("Imported %d/%d CRM rows into project %s", saved, len(rows), project_id)
    return jsonify({
        'project_id': project_id,
        'imported': saved,
        'skipped': len(rows) - saved,
        'errors': errors,
    }), 200


# ── Batches ──────────────────────────────────────────────────────────────────

def _start_batch(kind, resubmit=False):
    data = request.get_json(silent=True) or {}
    project_id = data.get('project_id')
    if not project_id:
        return jsonify({'error': 'project_id is required'}), 400

    lead_ids = data.get('lead_ids') or None
    project_name = data.get('project_name') or project_id
    try:
        if data.get('wait'):
            meta = run_batch_job(kind, project_id, lead_ids, project_name, resubmit)
            return jsonify({'kind': kind, 'project_id': project_id, 'meta': meta}), 200
        job_id = launch_batch(kind, project_id, lead_ids, project_name, resubmit)
        return jsonify({'kind': kind, 'project_id': project_id, 'job_id': job_id}), 202
    except Exception as e:
        logger.error("Could not start %s batch for %s: %s", kind, project_id, e, exc_info=True)
        return jsonify({'error': str(e)}), 500


@bp.route('/api/enrich', methods=['POST'])
def enrich():
    if not MQLClient().configured:
        return jsonify({'error': 'MQL API key not configured. Set MQL_API_KEY.'}), 500
    return _start_batch('enrichment')


@bp.route('/api/analyze', methods=['POST'])
def analyze():
    return _start_batch('analysis')


@bp.route('/api/analyze/resubmit', methods=['POST'])
def resubmit_analysis():
    """Re-score only leads whose stored analysis fell back to the heuristic."""
    return _start_batch('analysis', resubmit=True)


@bp.route('/api/cis', methods=['POST'])
def cis():
    return _start_batch('cis')


@bp.route('/api/projects/<project_id>/status')
def project_status(project_id):
    return jsonify({'project_id': project_id, **store.project_status(project_id)}), 200


# ── Reads ────────────────────────────────────────────────────────────────────

@bp.route('/api/projects/<project_id>/leads')
def list_leads(project_id):
    """Leads with their ratings. ?sort=rating (AI rating, Hot first) or ?sort=mql (P0 first)."""
    leads = store.get_leads(project_id)
    analyses = {a.lead_id: a for a in store.get_analyses(None, project_id)}
    enrichments = {e.lead_id: e for e in store.get_enrichments(None, project_id)}

    rows = []
    for lead in leads:
        analysis = analyses.get(lead.lead_id)
        enrichment = enrichments.get(lead.lead_id)
        ai_rating = analysis.rating if analysis else None
        rows.append({
            'lead_id': lead.lead_id,
            'name': lead.name,
            'owner': lead.owner,
            'manager_rating': lead.manager_rating,
            'ai_rating': ai_rating,
            'rating_change': compare_ratings(lead.manager_rating, ai_rating),
            'mql_rating': enrichment.mql_rating if enrichment else None,
            'enrichment_status': enrichment.status if enrichment else None,
            'badges': {
                'ai_rating': rating_badge(ai_rating),
                'mql_rating': rating_badge(enrichment.mql_rating if enrichment else None),
            },
        })

    sort = request.args.get('sort')
    if sort == 'rating':
        rows = sort_by_rating(rows, key=lambda r: r['ai_rating'])
    elif sort == 'mql':
        rows = sort_by_mql_priority(rows, key=lambda r: r['mql_rating'])
    return jsonify({'project_id': project_id, 'leads': rows}), 200


@bp.route('/api/leads/<project_id>/<lead_id>/profile')
def lead_profile(project_id, lead_id):
    """Lead, its stored records, and the profiles derived from raw_response."""
    lead = store.get_lead(project_id, lead_id)
    if lead is None:
        return jsonify({'error': 'Lead not found'}), 404

    enrichments = store.get_enrichments([lead_id], project_id)
    analyses = store.get_analyses([lead_id], project_id)
    enrichment = store.row_to_dict(enrichments[0]) if enrichments else None
    analysis = store.row_to_dict(analyses[0]) if analyses else None

    return jsonify({
        'lead': store.row_to_dict(lead),
        'enrichment': enrichment,
        'analysis': analysis,
        'rating_change': compare_ratings(lead.manager_rating, analysis['rating'] if analysis else None),
        **build_context(lead.crm_data or {}, enrichment),
    }), 200


@bp.route('/api/analytics')
def analytics():
    project_id = request.args.get('project_id')
    if not project_id:
        return jsonify({'error': 'project_id is required'}), 400
    scored = scored_leads_from_rows(store.get_leads(project_id), store.get_analyses(None, project_id))
    return jsonify({'project_id': project_id, **aggregate(scored).to_dict()}), 200


@bp.route('/api/cache/clear', methods=['POST'])
def clear_cache():
    data = request.get_json(silent=True) or {}
    project_id = data.get('project_id')
    if not project_id:
        return jsonify({'error': 'project_id is required'}), 400
    counts = store.clear_project_cache(project_id)
    if not counts:
        return jsonify({'error': 'Failed to clear cache'}), 500
    return jsonify({'project_id': project_id, 'deleted': counts}), 200
