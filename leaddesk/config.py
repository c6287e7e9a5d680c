"""
Centralized configuration — all env vars, provider settings, batch timings.
"""
import os

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI (lead scoring) ─────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
SCORING_MODEL = os.getenv('SCORING_MODEL', 'gpt-4o')
SCORING_FALLBACK_MODEL = os.getenv('SCORING_FALLBACK_MODEL', 'gpt-4o-mini')

# ── MQL enrichment provider ───────────────────────────────────────────────────
MQL_API_URL = os.getenv('MQL_API_URL', 'https://api.dev.raisn.ai/api/lead/mql/batch/')
MQL_API_KEY = os.getenv('MQL_API_KEY')
MQL_SCHEMA = os.getenv('MQL_SCHEMA')
MQL_TIMEOUT = int(os.getenv('MQL_TIMEOUT', '140'))

# ── Batch orchestration timings (seconds) ────────────────────────────────────
ENRICHMENT_ITEM_DELAY = 0.2
ENRICHMENT_POLL_INTERVAL = 5
ENRICHMENT_MAX_POLLS = 30

ANALYSIS_ITEM_DELAY = 2
ANALYSIS_POLL_INTERVAL = 3
ANALYSIS_MAX_POLLS = 60

CIS_ITEM_DELAY = 0.2

# Substring written into rating_rationale when scoring fell back to heuristics.
# Records carrying it are treated as failed and can be re-submitted.
FALLBACK_MARKER = '[fallback]'
