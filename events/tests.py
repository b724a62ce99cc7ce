"""
Tests for Event Models and the Event Stream Consumer

Tests cover:
- Event ordering
- Event idempotency
- Event replay correctness
- WebSocket authentication, handshake and get_latest requests
"""

import json

from asgiref.sync import async_to_sync
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase, TransactionTestCase, override_settings
from events.consumers import EventConsumer
from events.models import Event, events_after


def make_event(event_id, aggregate_id='acct_001', event_type=Event.PURCHASE_COMPLETED, data=None):
    return Event.create_event(
        event_id=event_id,
        event_type=event_type,
        aggregate_id=aggregate_id,
        aggregate_type='Account',
        event_data=data if data is not None else {}
    )


class EventModelTests(TestCase):
    """Test event models."""

    def test_event_sequence_numbers_are_monotonic(self):
        """Test that event sequence numbers are monotonically increasing."""
        event1 = make_event('event_001')
        event2 = make_event('event_002', event_type=Event.BALANCE_ADDED)
        event3 = make_event('event_003', aggregate_id='acct_002')

        self.assertLess(event1.sequence_number, event2.sequence_number)
        self.assertLess(event2.sequence_number, event3.sequence_number)

    def test_event_idempotency(self):
        """Test that duplicate event_ids return existing event."""
        event1 = make_event('idempotent_event_001', data={'test': 'data1'})
        event2 = make_event('idempotent_event_001', data={'test': 'data2'})

        self.assertEqual(event1.sequence_number, event2.sequence_number)
        self.assertEqual(Event.objects.filter(event_id='idempotent_event_001').count(), 1)
        self.assertEqual(Event.objects.get(event_id='idempotent_event_001').event_data, {'test': 'data1'})

    def test_event_immutability(self):
        """Test that events cannot be updated or deleted."""
        event = make_event('immutable_event_001')

        with self.assertRaises(ValueError):
            event.event_data = {'modified': True}
            event.save()

        with self.assertRaises(ValueError):
            event.delete()

    def test_event_replay(self):
        """Test that events can be replayed in order."""
        for i in range(5):
            make_event(f'replay_event_{i}', aggregate_id=f'acct_{i}', data={'index': i})

        replayed = events_after(0)

        self.assertEqual(len(replayed), 5)
        for i, event in enumerate(replayed):
            self.assertEqual(event['event_data']['index'], i)

    def test_events_after_filters_by_sequence_and_aggregate(self):
        first = make_event('filter_001', aggregate_id='acct_a')
        make_event('filter_002', aggregate_id='acct_b')
        make_event('filter_003', aggregate_id='acct_a')

        after_first = events_after(first.sequence_number)
        self.assertEqual([e['event_id'] for e in after_first], ['filter_002', 'filter_003'])

        only_a = events_after(0, aggregate_id='acct_a')
        self.assertEqual([e['event_id'] for e in only_a], ['filter_001', 'filter_003'])

        self.assertEqual(len(events_after(0, limit=2)), 2)


@override_settings(CHANNEL_LAYERS={'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}})
class EventConsumerTests(TransactionTestCase):
    """Test the WebSocket consumer end to end."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='watcher', password='secret-pass')

    def exchange(self, message=None, user=None):
        async def scenario():
            communicator = WebsocketCommunicator(EventConsumer.as_asgi(), '/ws/events/')
            communicator.scope['user'] = user if user is not None else self.user
            connected, _ = await communicator.connect()
            greeting = reply = None
            if connected:
                greeting = await communicator.receive_json_from()
                if message is not None:
                    await communicator.send_to(text_data=message)
                    reply = await communicator.receive_json_from()
            await communicator.disconnect()
            return connected, greeting, reply

        return async_to_sync(scenario)()

    def test_connection_is_acknowledged(self):
        connected, greeting, _ = self.exchange()

        self.assertTrue(connected)
        self.assertEqual(greeting['type'], 'connection_established')

    def test_anonymous_connection_is_refused(self):
        connected, greeting, _ = self.exchange(user=AnonymousUser())

        self.assertFalse(connected)
        self.assertIsNone(greeting)

    def test_invalid_json_is_reported(self):
        _, _, reply = self.exchange('not json')

        self.assertEqual(reply, {'type': 'error', 'message': 'Invalid JSON'})

    def test_unsupported_message_type_is_reported(self):
        _, _, reply = self.exchange('{"type": "subscribe"}')

        self.assertEqual(reply['type'], 'error')

    def test_get_latest_returns_events_after_sequence(self):
        first = make_event('stream_001', aggregate_id='acct_a', data={'n': 1})
        make_event('stream_002', aggregate_id='acct_b', data={'n': 2})
        make_event('stream_003', aggregate_id='acct_a', data={'n': 3})

        _, _, reply = self.exchange(json.dumps({
            'type': 'get_latest',
            'sequence_number': first.sequence_number,
        }))

        self.assertEqual(reply['type'], 'events')
        self.assertEqual([e['event_id'] for e in reply['events']], ['stream_002', 'stream_003'])
        self.assertEqual(reply['events'][1]['event_data'], {'n': 3})

    def test_get_latest_filters_by_aggregate(self):
        make_event('stream_001', aggregate_id='acct_a')
        make_event('stream_002', aggregate_id='acct_b')
        make_event('stream_003', aggregate_id='acct_a')

        _, _, reply = self.exchange(json.dumps({
            'type': 'get_latest',
            'sequence_number': 0,
            'aggregate_id': 'acct_a',
        }))

        self.assertEqual([e['event_id'] for e in reply['events']], ['stream_001', 'stream_003'])
        self.assertTrue(all(e['aggregate_id'] == 'acct_a' for e in reply['events']))
