"""Tests for leadintel.engine.summary — priority chain, fallback, attribution."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from leadintel.engine.summary import (
    resolve_summary, unavailable_summary, UNAVAILABLE_SUMMARY,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def conversation(make_message):
    return [
        make_message('customer', 'Hi, what does the premium plan cost?', minutes_ago=180),
        make_message('agent', 'It starts at 4,000 a month.', minutes_ago=170),
        make_message('customer', 'Can I book a demo on Friday?', minutes_ago=120, channel='whatsapp'),
    ]


# ---------------------------------------------------------------------------
# Priority chain
# ---------------------------------------------------------------------------

class TestPriorityChain:

    def test_unified_summary_verbatim(self, make_lead, conversation):
        generate = MagicMock(return_value='generated')
        lead = make_lead(unified_context={
            'unified_summary': 'Asked about premium pricing.',
            'web': {'conversation_summary': 'Web chat'},
        })
        result = resolve_summary(lead, conversation, now=NOW, generate=generate)
        assert result['summary'] == 'Asked about premium pricing.'
        assert result['data']['source'] == 'unified'
        generate.assert_not_called()

    def test_channel_summaries_labelled(self, make_lead):
        generate = MagicMock(return_value='generated')
        lead = make_lead(unified_context={
            'web': {'conversation_summary': 'Browsed plans.'},
            'whatsapp': {'conversation_summary': 'Asked for a demo.'},
        })
        result = resolve_summary(lead, [], now=NOW, generate=generate)
        assert result['summary'] == 'Web: Browsed plans.\n\nWhatsApp: Asked for a demo.'
        assert result['data']['source'] == 'channels'
        generate.assert_not_called()

    def test_single_channel_summary(self, make_lead):
        lead = make_lead(unified_context={'whatsapp': {'conversation_summary': 'Asked for a demo.'}})
        assert resolve_summary(lead, [], now=NOW)['summary'] == 'WhatsApp: Asked for a demo.'

    def test_generated_when_no_stored_summary(self, make_lead, conversation):
        generate = MagicMock(return_value='  2 hours ago via whatsapp. Customer asked for a demo.  ')
        result = resolve_summary(make_lead(), conversation, now=NOW, generate=generate)
        assert result['summary'] == '2 hours ago via whatsapp. Customer asked for a demo.'
        assert result['data']['source'] == 'generated'
        prompt = generate.call_args[0][0]
        assert 'Lead: Priya Shah' in prompt
        assert 'Can I book a demo on Friday?' in prompt
        assert 'CRITICAL RULES FOR SUMMARY' in prompt

    def test_generation_failure_falls_back(self, make_lead, conversation):
        generate = MagicMock(side_effect=TimeoutError('timed out'))
        result = resolve_summary(make_lead(), conversation, now=NOW, generate=generate)
        assert result['summary']
        assert result['summary'].startswith('Priya Shah is currently in the New stage.')
        assert result['data']['source'] == 'fallback'

    def test_empty_generation_falls_back(self, make_lead, conversation):
        result = resolve_summary(make_lead(), conversation, now=NOW, generate=lambda prompt: '   ')
        assert result['data']['source'] == 'fallback'
        assert result['summary']

    def test_no_generator_uses_fallback(self, make_lead):
        lead = make_lead(last_interaction_at=NOW - timedelta(days=3))
        result = resolve_summary(lead, [], now=NOW)
        assert result['data']['source'] == 'fallback'
        assert result['summary'] == (
            'Priya Shah is currently in the New stage. '
            'Conversation status: No recent activity. Response rate: 0%.'
        )

    def test_no_messages_recent_interaction_reads_as_active(self, make_lead):
        data = resolve_summary(make_lead(), [], now=NOW)['data']
        assert data['hours_since_last_message'] == 0
        assert data['conversation_status'] == 'Actively chatting'


# ---------------------------------------------------------------------------
# Fallback text
# ---------------------------------------------------------------------------

class TestFallback:

    def test_includes_last_message_and_key_info(self, make_lead, conversation):
        lead = make_lead(
            lead_stage='Qualified',
            sub_stage='Demo requested',
            unified_context={'budget': '5k', 'pain_points': 'slow onboarding'},
        )
        summary = resolve_summary(lead, conversation, now=NOW)['summary']
        assert summary.startswith('Priya Shah is currently in the Qualified stage (Demo requested).')
        assert 'Last message from Customer 2h ago: "Can I book a demo on Friday?...".' in summary
        assert 'Key info: Budget: 5k.' in summary
        assert 'Pain points: slow onboarding.' in summary
        assert 'Interest:' not in summary

    def test_old_message_in_days(self, make_lead, make_message):
        messages = [make_message('agent', 'Following up', minutes_ago=60 * 50)]
        summary = resolve_summary(make_lead(), messages, now=NOW)['summary']
        assert 'Last message from PROXe 2d ago' in summary
        assert 'Waiting on customer (50h ago)' in summary


# ---------------------------------------------------------------------------
# Data block
# ---------------------------------------------------------------------------

class TestSummaryData:

    def test_data_fields(self, make_lead, conversation):
        lead = make_lead(
            last_interaction_at=NOW - timedelta(days=3, hours=1),
            unified_context={'web': {'booking_date': '2025-06-20', 'booking_time': '10:00'},
                             'next_touchpoint': 'Send pricing deck'},
        )
        data = resolve_summary(lead, conversation, now=NOW)['data']
        assert data['lead_name'] == 'Priya Shah'
        assert data['days_inactive'] == 3
        assert data['response_rate'] == 67
        assert data['hours_since_last_message'] == 2
        assert data['conversation_status'] == 'No response (2h ago)'
        assert data['last_message']['channel'] == 'whatsapp'
        assert data['next_touchpoint'] == 'Send pricing deck'
        assert (data['booking_date'], data['booking_time']) == ('2025-06-20', '10:00')

    def test_actively_chatting(self, make_lead, make_message):
        data = resolve_summary(make_lead(), [make_message(minutes_ago=10)], now=NOW)['data']
        assert data['conversation_status'] == 'Actively chatting'

    def test_messages_sorted_before_use(self, make_lead, conversation):
        data = resolve_summary(make_lead(), list(reversed(conversation)), now=NOW)['data']
        assert data['last_message']['content'] == 'Can I book a demo on Friday?'


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------

class TestAttribution:

    def test_stage_change_by_system_is_ai(self, make_lead):
        changes = [{'lead_id': 'lead-001', 'new_stage': 'Qualified', 'changed_by': 'system',
                    'changed_at': NOW - timedelta(hours=3)}]
        result = resolve_summary(make_lead(), [], stage_changes=changes, now=NOW)
        assert result['attribution'] == 'Last updated by PROXe AI 3 hours ago - changed stage to Qualified'

    def test_stage_change_without_actor_is_ai(self, make_lead):
        changes = [{'new_stage': 'Engaged', 'changed_by': None, 'changed_at': NOW - timedelta(minutes=5)}]
        result = resolve_summary(make_lead(), [], stage_changes=changes, now=NOW)
        assert result['attribution'].startswith('Last updated by PROXe AI 5 minutes ago')

    def test_stage_change_by_user(self, make_lead):
        lookup = MagicMock(return_value={'id': 'u1', 'name': 'Kiran', 'email': 'k@example.com'})
        changes = [
            {'new_stage': 'Engaged', 'changed_by': 'system', 'changed_at': NOW - timedelta(days=2)},
            {'new_stage': 'Booking Made', 'changed_by': 'u1', 'changed_at': NOW - timedelta(hours=1)},
        ]
        result = resolve_summary(make_lead(), [], stage_changes=changes, now=NOW, user_lookup=lookup)
        assert result['attribution'] == 'Last updated by Kiran 1 hour ago - changed stage to Booking Made'

    def test_user_email_when_no_name(self, make_lead):
        lookup = MagicMock(return_value={'id': 'u1', 'name': None, 'email': 'k@example.com'})
        activities = [{'activity_type': 'call', 'created_by': 'u1', 'created_at': NOW - timedelta(minutes=1)}]
        result = resolve_summary(make_lead(), [], activities=activities, now=NOW, user_lookup=lookup)
        assert result['attribution'] == 'Last updated by k@example.com 1 minute ago - call'

    def test_activity_when_no_stage_change(self, make_lead, conversation):
        activities = [
            {'activity_type': 'call', 'created_by': 'u1', 'created_at': NOW - timedelta(days=1)},
            {'activity_type': 'note', 'created_by': 'u2', 'created_at': NOW - timedelta(minutes=20)},
        ]
        result = resolve_summary(make_lead(), conversation, activities=activities, now=NOW,
                                 user_lookup=lambda user_id: None)
        assert result['attribution'] == 'Last updated by Team Member 20 minutes ago - note'

    def test_lookup_failure_treated_as_unknown(self, make_lead):
        lookup = MagicMock(side_effect=ConnectionError('db down'))
        activities = [{'activity_type': 'call', 'created_by': 'u1', 'created_at': NOW - timedelta(hours=2)}]
        result = resolve_summary(make_lead(), [], activities=activities, now=NOW, user_lookup=lookup)
        assert result['attribution'] == 'Last updated by Team Member 2 hours ago - call'

    def test_lookup_memoized(self, make_lead):
        lookup = MagicMock(return_value={'name': 'Kiran'})
        activities = [{'activity_type': 'note', 'created_by': 'u1', 'created_at': NOW - timedelta(hours=h)}
                      for h in (3, 2, 1)]
        generate = MagicMock(return_value='Generated text')
        resolve_summary(make_lead(), [], activities=activities, now=NOW,
                        user_lookup=lookup, generate=generate)
        lookup.assert_called_once_with('u1')

    def test_last_message_when_nothing_else(self, make_lead, conversation):
        result = resolve_summary(make_lead(), conversation, now=NOW)
        assert result['attribution'] == 'Last updated by Customer 2 hours ago - message sent'

    def test_agent_message_uses_display_name(self, make_lead, make_message):
        result = resolve_summary(make_lead(), [make_message('agent', 'Hello', minutes_ago=1)], now=NOW)
        assert result['attribution'] == 'Last updated by PROXe 1 minute ago - message sent'

    def test_empty_when_no_history(self, make_lead):
        assert resolve_summary(make_lead(), [], now=NOW)['attribution'] == ''


# ---------------------------------------------------------------------------
# Unavailable
# ---------------------------------------------------------------------------

class TestUnavailableSummary:

    def test_shape(self):
        assert unavailable_summary(RuntimeError('db down')) == {
            'summary': UNAVAILABLE_SUMMARY,
            'attribution': '',
            'data': {'days_inactive': 0, 'response_rate': 0},
        }
