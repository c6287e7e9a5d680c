"""Shared test fixtures."""
import json
import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leaddesk.database import Base
from leaddesk.services import circuit_breaker


class FakeRedis:
    """Minimal in-memory Redis: strings, hashes, pipelines."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}

    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value):
        self.get_store[key] = str(value)

    def incr(self, key):
        val = int(self.get_store.get(key, 0)) + 1
        self.get_store[key] = str(val)
        return val

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = str(value)

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Queues calls and replays them on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def _queue(*args):
            self._ops.append((name, args))
            return self
        return _queue

    def execute(self):
        results = [getattr(self._redis, name)(*args) for name, args in self._ops]
        self._ops = []
        return results


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import leaddesk.models.lead
    import leaddesk.models.enrichment
    import leaddesk.models.analysis
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Session for assertions. Tests commit whatever they add."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_engine):
    """
    Route get_session() in the store to the in-memory engine.

    store does `from leaddesk.database import get_session`, so the local
    binding is what has to be patched. Each call gets a fresh session so the
    close() in the store's finally blocks is harmless.
    """
    TestSession = sessionmaker(bind=db_engine)
    with patch('leaddesk.services.store.get_session', side_effect=lambda: TestSession()):
        yield TestSession


@pytest.fixture(autouse=True)
def fake_breakers():
    """Fresh in-memory breakers so provider calls never touch a real Redis."""
    redis = FakeRedis()
    circuit_breaker._registry.clear()
    circuit_breaker.init_breakers(redis)
    yield redis
    circuit_breaker._registry.clear()


@pytest.fixture
def mock_redis():
    """Mock Redis client for code that talks to Redis directly."""
    mock = MagicMock()
    mock.get.return_value = None
    with patch('leaddesk.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def app(fake_breakers):
    """Flask test app."""
    from leaddesk import create_app
    with patch('leaddesk.extensions.redis_client', fake_breakers):
        app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def openai_response():
    """Factory: chat.completions response whose content is payload (dict → JSON)."""
    def _make(payload):
        content = payload if isinstance(payload, str) else json.dumps(payload)
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        return response
    return _make


@pytest.fixture
def crm_row():
    """Factory for a Kalpataru-style CRM export row."""
    def _make(**overrides):
        row = {
            'Opportunity ID': 'OPP-001',
            'Opportunity Name': 'Rohan Mehta',
            'Mobile': '9820012345',
            'Email Id': 'rohan@example.com',
            'Name of Closing Manager': 'Priya Nair',
            'Walkin Manual Rating': 'Warm',
            'Latest Revisit Date': '2024-01-01',
            'Sales Walkin Sub Source': 'Digital',
            'Occupation': 'Salaried',
            'Designation': 'Senior Manager',
            'Place of Work (Company Name)': 'Infosys',
            'Location of Residence': 'Thane West',
            'Budget': '2.5',
            'Config Interested': '3 BHK',
            'Visit Comments (Not for Reports)': 'Liked the clubhouse, comparing with Lodha',
        }
        row.update(overrides)
        return row
    return _make


@pytest.fixture
def mql_document():
    """A SUCCESS MQL batch response for one person."""
    return {
        'leads': [{
            'status': 'SUCCESS',
            'person_info': {
                'rating': 'P1',
                'capability': 'High',
                'lifestyle': 'Premium',
                'age': 38,
                'gender': 'Male',
                'location': 'Thane',
                'locality_grade': 'A',
            },
            'demography': {'designation': 'Salaried, Infosys Ltd'},
            'income': {'final_income_lacs': 24, 'pre_tax_income_lacs': 30},
            'credit_score': 782,
            'banking_summary': {'active_loans': 2, 'total_loans': 4},
            'banking_loans': [
                {'loan_type': 'Home Loan', 'is_active': True, 'installment_amount': 20000, 'status': 'active'},
                {'loan_type': 'Auto Loan', 'date_closed': None, 'emi_amount': 5000, 'status': 'active'},
                {'loan_type': 'Personal Loan', 'date_closed': '2021-03-01', 'emi_amount': 8000, 'status': 'closed'},
                {'loan_type': 'Housing Loan', 'is_active': False, 'installment_amount': 15000, 'status': 'closed'},
            ],
            'banking_cards': [
                {'card_type': 'Platinum', 'is_active': True},
                {'card_type': 'Classic', 'is_active': False},
            ],
            'employment_details': [
                {'employer_name': 'TCS', 'date_of_joining': '2012-06-01', 'date_of_exit': '2019-05-31'},
                {'employer_name': 'Infosys Ltd', 'date_of_joining': '2019-07-01', 'date_of_exit': 'N/A',
                 'designation': 'Senior Manager'},
            ],
            'linkedin_details': {'current_designation': 'Senior Manager'},
            'business_details': {},
        }],
    }
