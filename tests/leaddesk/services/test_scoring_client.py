"""Tests for leaddesk.services.scoring_client — parsing, retry chain, CIS."""
import json
import pytest
from unittest.mock import MagicMock

from leaddesk.config import FALLBACK_MARKER
from leaddesk.services.circuit_breaker import CircuitOpenError, get_breaker
from leaddesk.services.scoring_client import (
    ScoringClient, ScoringError, parse_json_object, clamp_score, heuristic_rating,
    normalize_analysis, fallback_result, cis_rating,
)

GOOD_ANALYSIS = {
    'ai_rating': 'hot',
    'rating_confidence': 'High',
    'rating_rationale': 'Budget aligned, second visit, wants possession in 6 months.',
    'persona': 'Upgrading IT professional',
    'summary': 'Push the 3 BHK east-facing units.',
    'primary_concern_category': 'Price',
    'key_concerns': ['Price vs Lodha'],
    'talking_points': ['Clubhouse'],
    'pps_score': 112,
    'pps_breakdown': {
        'financial_capability': 26, 'intent_engagement': 20, 'urgency_timeline': 15,
        'product_market_fit': 12, 'authority_dynamics': 8, 'vibes': 99,
    },
}


def _scoring_client(openai_response, *contents):
    client = MagicMock()
    client.chat.completions.create.side_effect = [openai_response(c) for c in contents]
    return ScoringClient(client=client, model='main-model', fallback_model='small-model'), client


class TestParsing:
    def test_plain_json(self):
        assert parse_json_object('{"a": 1}') == {'a': 1}

    def test_fenced_json(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {'a': 1}

    @pytest.mark.parametrize('content', ['', None, 'not json', '{"a": ', '[1, 2]'])
    def test_unusable(self, content):
        with pytest.raises(ScoringError):
            parse_json_object(content)

    def test_clamp(self):
        assert clamp_score(112) == 100
        assert clamp_score(-4) == 0
        assert clamp_score('71.6') == 72
        assert clamp_score('high') is None
        assert clamp_score(70, 0, 50) == 50

    @pytest.mark.parametrize('text,rating', [
        ('This is a HOT lead', 'Hot'),
        ('cold, no budget', 'Cold'),
        ('hot but also cold', 'Hot'),
        ('???', 'Warm'),
        (None, 'Warm'),
    ])
    def test_heuristic(self, text, rating):
        assert heuristic_rating(text) == rating


class TestNormalizeAnalysis:
    def test_normalizes(self):
        result = normalize_analysis(dict(GOOD_ANALYSIS))
        assert result.rating == 'Hot'
        assert result.full_analysis['ai_rating'] == 'Hot'
        assert result.full_analysis['pps_score'] == 100
        assert set(result.full_analysis['pps_breakdown']) == {
            'financial_capability', 'intent_engagement', 'urgency_timeline',
            'product_market_fit', 'authority_dynamics',
        }
        assert result.insights == 'Push the 3 BHK east-facing units.'
        assert result.fallback is False

    def test_rationale_used_when_no_summary(self):
        result = normalize_analysis({'ai_rating': 'Cold', 'rating_rationale': 'No budget.'})
        assert result.insights == 'No budget.'

    def test_invalid_rating_raises(self):
        with pytest.raises(ScoringError):
            normalize_analysis({'ai_rating': 'Lukewarm'})

    def test_fallback_result_is_marked(self):
        result = fallback_result('the lead looks hot', 'reason here')
        assert result.rating == 'Hot'
        assert result.fallback is True
        assert result.full_analysis['rating_rationale'].startswith(FALLBACK_MARKER)
        assert FALLBACK_MARKER in result.insights


class TestScore:
    def test_success_on_first_prompt(self, openai_response, crm_row):
        scoring, client = _scoring_client(openai_response, GOOD_ANALYSIS)
        result = scoring.score(crm_row(), {'current_role': 'SM at Infosys'}, {'credit_score_range': '700-800'}, 'Vista')

        assert result.rating == 'Hot'
        assert client.chat.completions.create.call_count == 1
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'main-model'
        assert kwargs['response_format'] == {'type': 'json_object'}
        assert 'Vista' in kwargs['messages'][0]['content']
        context = json.loads(kwargs['messages'][1]['content'])
        assert context['professional_profile'] == {'current_role': 'SM at Infosys'}
        assert context['crm']['Opportunity ID'] == 'OPP-001'

    def test_malformed_then_simplified_retry(self, openai_response, crm_row):
        scoring, client = _scoring_client(
            openai_response, 'Sure! Here is the analysis: Hot',
            {'ai_rating': 'Warm', 'rating_rationale': 'Interested', 'summary': 'Follow up'},
        )
        result = scoring.score(crm_row(), None, None, 'Vista')
        assert result.rating == 'Warm'
        assert result.fallback is False
        second = client.chat.completions.create.call_args_list[1].kwargs
        assert second['model'] == 'small-model'
        assert 'ONLY with JSON' in second['messages'][0]['content']

    def test_malformed_twice_falls_back_to_heuristic(self, openai_response, crm_row):
        scoring, client = _scoring_client(openai_response, 'garbage', 'definitely a cold lead')
        result = scoring.score(crm_row(), None, None, 'Vista')
        assert result.fallback is True
        assert result.rating == 'Cold'
        assert FALLBACK_MARKER in result.full_analysis['rating_rationale']
        assert client.chat.completions.create.call_count == 2

    def test_missing_rating_counts_as_malformed(self, openai_response, crm_row):
        scoring, _ = _scoring_client(openai_response, {'persona': 'x'}, {'ai_rating': 'Cold'})
        assert scoring.score(crm_row(), None, None, 'Vista').rating == 'Cold'

    def test_no_client_uses_heuristic(self, crm_row):
        scoring = ScoringClient(client=None)
        scoring.client = None
        result = scoring.score(crm_row(), None, None, 'Vista')
        assert result.fallback is True
        assert 'not configured' in result.insights

    def test_transport_error_propagates(self, crm_row):
        client = MagicMock()
        client.chat.completions.create.side_effect = ConnectionError('api down')
        scoring = ScoringClient(client=client)
        with pytest.raises(ConnectionError):
            scoring.score(crm_row(), None, None, 'Vista')
        assert get_breaker('openai').failure_count == 1

    def test_open_breaker_propagates(self, fake_breakers, crm_row):
        breaker = get_breaker('openai')
        fake_breakers.set(breaker._key('state'), 'open')
        fake_breakers.set(breaker._key('last_failure'), '9999999999')
        client = MagicMock()
        with pytest.raises(CircuitOpenError):
            ScoringClient(client=client).score(crm_row(), None, None, 'Vista')
        client.chat.completions.create.assert_not_called()


class TestScoreCis:
    def test_scores_and_rates(self, openai_response):
        scoring, _ = _scoring_client(openai_response, {
            'compliance_score': 40, 'insight_score': 35, 'cis_total': 12,
            'compliance_flags': {'phone': True}, 'insight_flags': {'motivation': True},
        })
        result = scoring.score_cis({'customerName': 'Rohan'})
        assert result == {
            'compliance_score': 40,
            'insight_score': 35,
            'cis_total': 75,
            'cis_rating': 'Good',
            'compliance_flags': {'phone': True},
            'insight_flags': {'motivation': True},
        }

    def test_clamps_components(self, openai_response):
        scoring, _ = _scoring_client(openai_response, {'compliance_score': 80, 'insight_score': 60})
        result = scoring.score_cis({})
        assert result['cis_total'] == 100
        assert result['cis_rating'] == 'Excellent'

    def test_missing_scores_raise(self, openai_response):
        scoring, _ = _scoring_client(openai_response, {'compliance_score': 20})
        with pytest.raises(ScoringError):
            scoring.score_cis({})

    def test_no_client_raises(self):
        scoring = ScoringClient(client=None)
        scoring.client = None
        with pytest.raises(ScoringError):
            scoring.score_cis({})

    @pytest.mark.parametrize('total,rating', [(100, 'Excellent'), (85, 'Excellent'), (84, 'Good'),
                                              (70, 'Good'), (50, 'Average'), (49, 'Poor'), (None, 'Poor')])
    def test_ladder(self, total, rating):
        assert cis_rating(total) == rating
