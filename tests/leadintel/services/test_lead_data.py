"""Tests for leadintel.services.lead_data — read-only fetches against SQLite."""
from datetime import datetime, timedelta

import pytest
from unittest.mock import patch

from leadintel.models.activity import Activity
from leadintel.models.channel_session import ChannelSession
from leadintel.models.dashboard_user import DashboardUser
from leadintel.models.lead import Lead
from leadintel.models.message import Message
from leadintel.models.stage_change import StageChange
from leadintel.services import lead_data
from leadintel.services.lead_data import (
    fetch_dashboard_inputs, fetch_lead_inputs, get_lead, get_user,
)

T0 = datetime(2025, 6, 15, 12, 0)


@pytest.fixture
def seeded(db_session):
    db_session.add_all([
        Lead(id='lead-001', customer_name='Priya Shah', lead_score=82, lead_stage='Qualified',
             unified_context={'web': {'booking_date': '2025-06-20'}}, created_at=T0 - timedelta(days=2)),
        Lead(id='lead-002', customer_name='Ravi Kumar', lead_score=35, created_at=T0 - timedelta(days=1)),
        ChannelSession(id='s1', lead_id='lead-001', channel='web', message_count=4, created_at=T0),
        ChannelSession(id='s2', lead_id='lead-002', channel='whatsapp', message_count=1, created_at=T0),
        Message(lead_id='lead-001', channel='web', sender='agent', content='Sure, Friday works.',
                metadata_={'response_time_ms': 1800}, created_at=T0 - timedelta(minutes=5)),
        Message(lead_id='lead-001', channel='web', sender='customer', content='Can I book Friday?',
                created_at=T0 - timedelta(minutes=6)),
        Message(lead_id='lead-002', channel='whatsapp', sender='customer', content='Hi',
                created_at=T0 - timedelta(hours=3)),
        Activity(lead_id='lead-001', activity_type='call', note='Left voicemail', created_by='u1',
                 created_at=T0 - timedelta(hours=1)),
        StageChange(lead_id='lead-001', old_stage='New', new_stage='Qualified', score_at_change=82,
                    changed_by='system', changed_at=T0 - timedelta(hours=2)),
        DashboardUser(id='u1', name='Kiran', email='kiran@example.com'),
    ])
    db_session.commit()
    return db_session


# ---------------------------------------------------------------------------
# Single lookups
# ---------------------------------------------------------------------------

class TestLookups:

    def test_get_lead(self, seeded):
        lead = get_lead('lead-001')
        assert lead['customer_name'] == 'Priya Shah'
        assert lead['unified_context'] == {'web': {'booking_date': '2025-06-20'}}

    def test_get_lead_missing(self, seeded):
        assert get_lead('nope') is None

    def test_get_lead_error_propagates(self, db_session):
        with patch.object(db_session, 'get', side_effect=RuntimeError('connection reset')):
            with pytest.raises(RuntimeError):
                get_lead('lead-001')

    def test_get_user(self, seeded):
        assert get_user('u1') == {'id': 'u1', 'name': 'Kiran', 'email': 'kiran@example.com'}
        assert get_user('u2') is None


# ---------------------------------------------------------------------------
# Per-lead inputs
# ---------------------------------------------------------------------------

class TestFetchLeadInputs:

    def test_collections_scoped_to_lead(self, seeded):
        inputs = fetch_lead_inputs('lead-001')
        assert set(inputs) == {'messages', 'sessions', 'activities', 'stage_changes'}
        assert [s['id'] for s in inputs['sessions']] == ['s1']
        assert len(inputs['activities']) == 1
        assert inputs['stage_changes'][0]['changed_by'] == 'system'

    def test_messages_ascending_with_metadata(self, seeded):
        messages = fetch_lead_inputs('lead-001')['messages']
        assert [m['sender'] for m in messages] == ['customer', 'agent']
        assert messages[1]['metadata'] == {'response_time_ms': 1800}
        assert messages[0]['metadata'] == {}

    def test_failed_fetch_yields_empty_list(self, seeded):
        real_scalars = seeded.scalars

        def flaky(stmt, *args, **kwargs):
            if 'FROM activities' in str(stmt):
                raise RuntimeError('statement timeout')
            return real_scalars(stmt, *args, **kwargs)

        with patch.object(seeded, 'scalars', side_effect=flaky):
            inputs = fetch_lead_inputs('lead-001')
        assert inputs['activities'] == []
        assert len(inputs['messages']) == 2
        assert len(inputs['stage_changes']) == 1

    def test_session_construction_failure_isolated(self, seeded):
        """A fetch whose session cannot be opened yields [] without sinking the others."""
        side_effect = [RuntimeError('pool exhausted'), seeded, seeded, seeded]
        with patch('leadintel.services.lead_data.get_session', side_effect=side_effect):
            inputs = fetch_lead_inputs('lead-001')
        assert inputs['messages'] == []
        assert [s['id'] for s in inputs['sessions']] == ['s1']
        assert len(inputs['activities']) == 1


# ---------------------------------------------------------------------------
# Dashboard inputs
# ---------------------------------------------------------------------------

class TestFetchDashboardInputs:

    def test_all_collections(self, seeded):
        inputs = fetch_dashboard_inputs()
        assert [l['id'] for l in inputs['leads']] == ['lead-001', 'lead-002']
        assert len(inputs['sessions']) == 2
        assert len(inputs['messages']) == 3
        assert len(inputs['stage_changes']) == 1

    def test_stage_changes_capped(self, db_session):
        db_session.add_all([
            StageChange(lead_id='lead-001', old_stage='New', new_stage='Engaged',
                        changed_at=T0 - timedelta(minutes=i))
            for i in range(lead_data.DASHBOARD_STAGE_CHANGES + 5)
        ])
        db_session.commit()
        assert len(fetch_dashboard_inputs()['stage_changes']) == lead_data.DASHBOARD_STAGE_CHANGES

    def test_empty_database(self):
        assert fetch_dashboard_inputs() == {'leads': [], 'sessions': [], 'messages': [], 'stage_changes': []}
