"""
WebSocket Consumers for Real-Time Event Streaming

Clients poll for ledger events after a sequence number they have already
seen. WebSocket delivery is NOT a source of truth - authoritative state
resides in the database.
"""

import json
import logging
from channels.generic.websocket import AsyncWebsocketConsumer
from channels.db import database_sync_to_async
from events.models import events_after

logger = logging.getLogger(__name__)


class EventConsumer(AsyncWebsocketConsumer):
    """WebSocket consumer for streaming ledger events to clients."""

    async def connect(self):
        """Handle WebSocket connection; anonymous clients are refused."""
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            logger.info("Refusing unauthenticated event stream connection")
            await self.close()
            return

        await self.accept()

        await self.send(text_data=json.dumps({
            'type': 'connection_established',
            'message': 'Connected to event stream. Send get_latest to fetch events.'
        }))

    async def receive(self, text_data=None, bytes_data=None):
        """Handle messages from client."""
        try:
            data = json.loads(text_data or '')
        except json.JSONDecodeError:
            await self.send(text_data=json.dumps({
                'type': 'error',
                'message': 'Invalid JSON'
            }))
            return

        message_type = data.get('type')

        if message_type == 'get_latest':
            sequence_number = data.get('sequence_number', 0)
            aggregate_id = data.get('aggregate_id')
            events = await self.get_events_after(sequence_number, aggregate_id)
            await self.send(text_data=json.dumps({
                'type': 'events',
                'events': events
            }))
        else:
            logger.debug("Ignoring unsupported message type %r", message_type)
            await self.send(text_data=json.dumps({
                'type': 'error',
                'message': f'Unsupported message type: {message_type}'
            }))

    @database_sync_to_async
    def get_events_after(self, sequence_number, aggregate_id=None):
        """Get events after a given sequence number."""
        return events_after(sequence_number, aggregate_id=aggregate_id)
