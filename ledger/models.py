"""
Referral Ledger Models

Accounts hold a balance and an optional sponsor reference. Every balance
movement is recorded as an immutable Transaction, and every referral payout
as an immutable Commission pointing at the Transaction that produced it.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q, CheckConstraint, UniqueConstraint
from django.core.validators import MinValueValidator, MaxValueValidator
from decimal import Decimal
import uuid


class Account(models.Model):
    """
    A balance holder that may be sponsored by another account.

    Sponsor references form a parent-pointer forest. Acyclicity is not
    enforced, and the reference carries no database constraint so that
    partially migrated referral graphs can point at missing accounts.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='referral_account',
    )
    name = models.CharField(max_length=200, blank=True)
    balance = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    sponsor = models.ForeignKey(
        'self',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name='referrals',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ledger_accounts'
        indexes = [
            models.Index(fields=['sponsor'], name='ledger_account_sponsor_idx'),
        ]
        constraints = [
            CheckConstraint(
                condition=Q(balance__gte=0),
                name='account_balance_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.name or self.id}: {self.balance}"

    @classmethod
    def id_for_user(cls, user):
        """Return the id of the account owned by an authenticated user, or None."""
        if user.pk is None:
            return None
        return cls.objects.filter(user_id=user.pk).values_list('id', flat=True).first()


class ImmutableRecord(models.Model):
    """Base for ledger rows that may be inserted once and never changed."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Override save to prevent updates to existing rows."""
        if self.pk and type(self).objects.filter(pk=self.pk).exists():
            raise ValueError(f"{type(self).__name__} records are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Override delete to prevent deletion of ledger rows."""
        raise ValueError(f"{type(self).__name__} records are immutable and cannot be deleted")


class Transaction(ImmutableRecord):
    """
    A signed balance movement for one account.

    Purchases are recorded with a negative amount (money leaving the buyer),
    deposits with a positive one.
    """
    KIND_BUY = 'buy'
    KIND_DEPOSIT = 'deposit'
    KIND_CHOICES = [
        (KIND_BUY, 'Buy'),
        (KIND_DEPOSIT, 'Deposit'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    receiver = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='transactions',
        db_index=True
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    amount = models.DecimalField(max_digits=19, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'ledger_transactions'
        indexes = [
            models.Index(fields=['receiver', '-created_at'], name='ledger_txn_receiver_idx'),
        ]
        constraints = [
            CheckConstraint(
                condition=~Q(amount=0),
                name='transaction_amount_non_zero'
            ),
        ]

    def __str__(self):
        return f"{self.kind} {self.amount} ({self.receiver_id})"


class Commission(ImmutableRecord):
    """
    A referral payout credited to an up-line account.

    `level` is the distance from the buyer along the sponsor chain, starting
    at 1 for the direct sponsor.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sender = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='commissions_sent',
    )
    receiver = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='commissions_received',
    )
    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.PROTECT,
        related_name='commissions',
    )
    level = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(10)]
    )
    amount = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'ledger_commissions'
        indexes = [
            models.Index(fields=['receiver', '-created_at'], name='ledger_comm_receiver_idx'),
            models.Index(fields=['transaction', 'level'], name='ledger_comm_txn_level_idx'),
        ]
        constraints = [
            CheckConstraint(
                condition=Q(amount__gt=0),
                name='commission_amount_positive'
            ),
            CheckConstraint(
                condition=Q(level__gte=1) & Q(level__lte=10),
                name='commission_level_in_range'
            ),
            UniqueConstraint(
                fields=['transaction', 'level'],
                name='commission_level_unique_per_transaction'
            ),
        ]

    def __str__(self):
        return f"L{self.level} {self.amount} to {self.receiver_id}"
