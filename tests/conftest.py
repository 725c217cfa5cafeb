"""Shared test fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadintel.database import Base

# Fixed clock for every engine test
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created, shared across threads."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import leadintel.models.lead
    import leadintel.models.channel_session
    import leadintel.models.message
    import leadintel.models.stage_change
    import leadintel.models.activity
    import leadintel.models.dashboard_user
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    close() is disabled so fetch helpers closing their session in finally
    blocks don't invalidate the shared test session. Fetches run on a single
    worker so the session is never used from two threads at once.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('leadintel.database.get_session', return_value=db_session), \
         patch('leadintel.services.lead_data.get_session', return_value=db_session), \
         patch('leadintel.services.lead_data.FETCH_WORKERS', 1):
        yield db_session
    db_session.close = _real_close


@pytest.fixture
def mock_redis():
    """Mock Redis client; every breaker reads as empty (closed)."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.hgetall.return_value = {}
    mock.hincrby.return_value = 1
    with patch('leadintel.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def app(mock_redis):
    """Flask test app."""
    from leadintel import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


# ── Row factories (plain dicts, as the data layer hands them to the engine) ──

@pytest.fixture
def make_lead():
    """Factory fixture — lead dict with sensible defaults."""
    def _make(**overrides):
        lead = dict(
            id='lead-001',
            customer_name='Priya Shah',
            email=None,
            phone=None,
            unified_context={},
            lead_score=0,
            lead_stage='New',
            sub_stage=None,
            first_touchpoint='web',
            last_touchpoint='web',
            last_interaction_at=NOW - timedelta(hours=2),
            created_at=NOW - timedelta(days=3),
        )
        lead.update(overrides)
        return lead
    return _make


@pytest.fixture
def make_message():
    """Factory fixture — conversation message dict."""
    def _make(sender='customer', content='', minutes_ago=60, **overrides):
        message = dict(
            lead_id='lead-001',
            channel='web',
            sender=sender,
            content=content,
            created_at=NOW - timedelta(minutes=minutes_ago),
            metadata={},
        )
        message.update(overrides)
        return message
    return _make


@pytest.fixture
def make_session_row():
    """Factory fixture — channel session dict."""
    def _make(**overrides):
        row = dict(
            id='sess-001',
            lead_id='lead-001',
            channel='web',
            message_count=1,
            booking_date=None,
            booking_time=None,
            created_at=NOW - timedelta(days=1),
        )
        row.update(overrides)
        return row
    return _make
