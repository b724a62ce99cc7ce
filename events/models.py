"""
Event Stream Models

An ordered, idempotent audit stream of committed ledger changes. Events are
written inside the same atomic unit as the change they describe, so an event
exists if and only if its change was committed.
"""

from django.db import models
from django.db.models import Q, CheckConstraint


class Event(models.Model):
    """
    Represents an immutable event in the system.
    Events are append-only; sequence numbers give a total order for replay.
    """
    PURCHASE_COMPLETED = 'PURCHASE_COMPLETED'
    BALANCE_ADDED = 'BALANCE_ADDED'
    EVENT_TYPES = [
        (PURCHASE_COMPLETED, 'Purchase Completed'),
        (BALANCE_ADDED, 'Balance Added'),
    ]

    sequence_number = models.BigAutoField(
        primary_key=True,
        help_text="Monotonically increasing sequence number for ordering"
    )
    event_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Unique identifier for idempotency"
    )
    event_type = models.CharField(max_length=100, choices=EVENT_TYPES, db_index=True)
    aggregate_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="ID of the aggregate root (e.g., an account id)"
    )
    aggregate_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Type of aggregate (e.g., Account)"
    )
    event_data = models.JSONField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'events'
        indexes = [
            models.Index(fields=['event_type', 'created_at'], name='events_type_created_idx'),
            models.Index(fields=['aggregate_type', 'aggregate_id', 'sequence_number'], name='events_aggregate_seq_idx'),
        ]
        constraints = [
            CheckConstraint(
                condition=~Q(event_id=''),
                name='event_id_not_empty'
            ),
        ]
        ordering = ['sequence_number']

    def __str__(self):
        return f"{self.event_type} - {self.aggregate_id} (#{self.sequence_number})"

    def save(self, *args, **kwargs):
        """Override save to prevent updates to existing events."""
        if self.pk and Event.objects.filter(pk=self.pk).exists():
            raise ValueError("Events are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Override delete to prevent deletion of events."""
        raise ValueError("Events are immutable and cannot be deleted")

    @classmethod
    def create_event(cls, event_id, event_type, aggregate_id, aggregate_type, event_data, metadata=None):
        """
        Create an event, or return the existing one with the same event_id.
        """
        from django.db import transaction

        with transaction.atomic():
            existing = cls.objects.filter(event_id=event_id).first()
            if existing is not None:
                return existing

            return cls.objects.create(
                event_id=event_id,
                event_type=event_type,
                aggregate_id=aggregate_id,
                aggregate_type=aggregate_type,
                event_data=event_data,
                metadata=metadata or {},
            )


def events_after(sequence_number, aggregate_id=None, limit=100):
    """Serialize up to `limit` events with a sequence number above the given one."""
    events = Event.objects.filter(sequence_number__gt=sequence_number)
    if aggregate_id:
        events = events.filter(aggregate_id=aggregate_id)

    return [
        {
            'event_id': event.event_id,
            'event_type': event.event_type,
            'aggregate_id': event.aggregate_id,
            'aggregate_type': event.aggregate_type,
            'event_data': event.event_data,
            'sequence_number': event.sequence_number,
            'created_at': event.created_at.isoformat(),
        }
        for event in events.order_by('sequence_number')[:limit]
    ]
