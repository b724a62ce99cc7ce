"""
Tests for Ledger Models and Services

Tests cover:
- Immutability guarantees
- Account store and ledger writer contracts
- History projections
- Balance top-ups
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import transaction, IntegrityError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from events.models import Event
from ledger.exceptions import AccountNotFound, InvalidAmount
from ledger.history import HistoryReader
from ledger.models import Account, Transaction, Commission
from ledger.money import parse_amount, round_down
from ledger.services import LedgerService
from ledger.store import AccountStore
from ledger.writer import LedgerWriter


class LedgerModelTests(TestCase):
    """Test ledger models."""

    def setUp(self):
        self.sponsor = Account.objects.create(name='sponsor')
        self.buyer = Account.objects.create(
            name='buyer',
            balance=Decimal('100.00'),
            sponsor=self.sponsor
        )

    def test_transaction_immutability(self):
        """Test that transactions cannot be updated or deleted."""
        trans = Transaction.objects.create(
            receiver=self.buyer,
            kind=Transaction.KIND_BUY,
            amount=Decimal('-10.00')
        )

        with self.assertRaises(ValueError):
            trans.amount = Decimal('-20.00')
            trans.save()

        with self.assertRaises(ValueError):
            trans.delete()

    def test_commission_immutability(self):
        """Test that commissions cannot be updated or deleted."""
        trans = Transaction.objects.create(
            receiver=self.buyer,
            kind=Transaction.KIND_BUY,
            amount=Decimal('-10.00')
        )
        commission = Commission.objects.create(
            sender=self.buyer,
            receiver=self.sponsor,
            transaction=trans,
            level=1,
            amount=Decimal('0.30')
        )

        with self.assertRaises(ValueError):
            commission.level = 2
            commission.save()

        with self.assertRaises(ValueError):
            commission.delete()

    def test_account_balance_cannot_go_negative(self):
        """Test that the database rejects a negative balance."""
        self.buyer.balance = Decimal('-0.01')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.buyer.save()

    def test_commission_level_unique_per_transaction(self):
        """Test that a transaction cannot pay the same level twice."""
        trans = Transaction.objects.create(
            receiver=self.buyer,
            kind=Transaction.KIND_BUY,
            amount=Decimal('-10.00')
        )
        Commission.objects.create(
            sender=self.buyer, receiver=self.sponsor, transaction=trans,
            level=1, amount=Decimal('0.30')
        )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Commission.objects.create(
                    sender=self.buyer, receiver=self.sponsor, transaction=trans,
                    level=1, amount=Decimal('0.30')
                )

    def test_sponsor_reference_may_dangle(self):
        """Test that a sponsor id without an account can be stored."""
        orphan = Account.objects.create(name='orphan', sponsor_id=uuid.uuid4())
        orphan.refresh_from_db()
        self.assertIsNotNone(orphan.sponsor_id)
        self.assertFalse(Account.objects.filter(pk=orphan.sponsor_id).exists())


class MoneyTests(TestCase):
    """Test amount parsing and rounding."""

    def test_parse_amount_accepts_numbers_and_strings(self):
        self.assertEqual(parse_amount('100'), Decimal('100'))
        self.assertEqual(parse_amount(25), Decimal('25'))
        self.assertEqual(parse_amount('10.50'), Decimal('10.50'))
        self.assertEqual(parse_amount(10.5), Decimal('10.5'))

    def test_parse_amount_rejects_invalid_values(self):
        for value in [None, '', 'abc', 0, '0', -10, '-10.00', 'NaN', 'Infinity', True, '1.001', '1E+30']:
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmount):
                    parse_amount(value)

    def test_round_down_truncates(self):
        self.assertEqual(round_down(Decimal('0.006')), Decimal('0.00'))
        self.assertEqual(round_down(Decimal('2.999')), Decimal('2.99'))


class AccountStoreTests(TestCase):
    """Test the account store."""

    def setUp(self):
        self.store = AccountStore()
        self.account = Account.objects.create(name='holder', balance=Decimal('10.00'))

    def test_get_for_update_returns_account(self):
        with self.store.atomic():
            account = self.store.get_for_update(self.account.id)
        self.assertEqual(account.pk, self.account.pk)

    def test_get_for_update_returns_none_for_unknown_ids(self):
        with self.store.atomic():
            self.assertIsNone(self.store.get_for_update(uuid.uuid4()))
            self.assertIsNone(self.store.get_for_update('not-a-uuid'))
            self.assertIsNone(self.store.get_for_update(None))

    def test_save_balance_rolls_back_with_unit(self):
        """Test that a balance write is discarded when its unit aborts."""
        with self.assertRaises(RuntimeError):
            with self.store.atomic():
                account = self.store.get_for_update(self.account.id)
                account.balance = Decimal('99.00')
                self.store.save_balance(account)
                raise RuntimeError('abort')

        self.account.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal('10.00'))


class LedgerWriterTests(TestCase):
    """Test the ledger writer."""

    def setUp(self):
        self.writer = LedgerWriter()
        self.sponsor = Account.objects.create(name='sponsor')
        self.buyer = Account.objects.create(name='buyer', sponsor=self.sponsor)

    def test_record_transaction(self):
        trans = self.writer.record_transaction(self.buyer, Transaction.KIND_BUY, Decimal('-5.00'))
        self.assertEqual(Transaction.objects.get(pk=trans.pk).amount, Decimal('-5.00'))

    def test_record_commissions_batch(self):
        trans = self.writer.record_transaction(self.buyer, Transaction.KIND_BUY, Decimal('-5.00'))
        rows = self.writer.record_commissions([
            Commission(sender=self.buyer, receiver=self.sponsor, transaction=trans,
                       level=1, amount=Decimal('0.15')),
        ])
        self.assertEqual(len(rows), 1)
        self.assertEqual(trans.commissions.count(), 1)

    def test_record_commissions_empty(self):
        self.assertEqual(self.writer.record_commissions([]), [])
        self.assertEqual(Commission.objects.count(), 0)


class HistoryReaderTests(TestCase):
    """Test recent-history projections."""

    def setUp(self):
        self.account = Account.objects.create(name='buyer', balance=Decimal('100.00'))
        self.other = Account.objects.create(name='other')
        now = timezone.now()
        self.transactions = []
        for i in range(6):
            trans = Transaction.objects.create(
                receiver=self.account,
                kind=Transaction.KIND_BUY,
                amount=Decimal(f'-{i + 1}.00')
            )
            # Distinct, increasing timestamps
            Transaction.objects.filter(pk=trans.pk).update(created_at=now - timedelta(minutes=10 - i))
            self.transactions.append(trans)
        Transaction.objects.create(receiver=self.other, kind=Transaction.KIND_BUY, amount=Decimal('-9.00'))

    def test_returns_four_newest_first(self):
        rows = HistoryReader().recent_transactions(self.account.id)

        self.assertEqual(len(rows), 4)
        self.assertEqual(
            [row['amount'] for row in rows],
            [Decimal('-6.00'), Decimal('-5.00'), Decimal('-4.00'), Decimal('-3.00')]
        )
        created = [row['created_at'] for row in rows]
        self.assertEqual(created, sorted(created, reverse=True))

    def test_projects_only_type_amount_created_at(self):
        rows = HistoryReader().recent_transactions(self.account.id)
        for row in rows:
            self.assertEqual(set(row), {'type', 'amount', 'created_at'})
            self.assertEqual(row['type'], 'buy')

    def test_unknown_account_has_no_history(self):
        self.assertEqual(HistoryReader().recent_transactions(uuid.uuid4()), [])
        self.assertEqual(HistoryReader().recent_transactions(None), [])

    def test_recent_commissions(self):
        sponsor = Account.objects.create(name='sponsor')
        Commission.objects.create(
            sender=self.account, receiver=sponsor, transaction=self.transactions[0],
            level=1, amount=Decimal('0.03')
        )
        rows = HistoryReader().recent_commissions(sponsor.id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['level'], 1)
        self.assertEqual(rows[0]['sender'], self.account.id)


class LedgerServiceTests(TestCase):
    """Test ledger services."""

    def setUp(self):
        self.account = Account.objects.create(name='holder', balance=Decimal('10.00'))

    def test_add_balance_credits_and_records_deposit(self):
        account, deposit = LedgerService.add_balance(self.account.id, '15.50')

        self.assertEqual(account.balance, Decimal('25.50'))
        self.assertEqual(LedgerService.get_account_balance(self.account.id), Decimal('25.50'))
        self.assertEqual(deposit.kind, Transaction.KIND_DEPOSIT)
        self.assertEqual(deposit.amount, Decimal('15.50'))

        events = Event.objects.filter(
            aggregate_id=str(self.account.id),
            event_type=Event.BALANCE_ADDED
        )
        self.assertEqual(events.count(), 1)
        self.assertEqual(events.get().event_data['transaction_id'], str(deposit.id))

    def test_add_balance_rejects_invalid_amount(self):
        with self.assertRaises(InvalidAmount):
            LedgerService.add_balance(self.account.id, '-5')
        self.assertEqual(Transaction.objects.count(), 0)

    def test_add_balance_unknown_account(self):
        with self.assertRaises(AccountNotFound):
            LedgerService.add_balance(uuid.uuid4(), '5.00')
        self.assertEqual(Transaction.objects.count(), 0)
        self.assertEqual(Event.objects.count(), 0)

    def test_get_account_balance_unknown_account(self):
        with self.assertRaises(AccountNotFound):
            LedgerService.get_account_balance(uuid.uuid4())


class LedgerApiTests(TestCase):
    """Test ledger API endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='holder', password='secret-pass')
        self.account = Account.objects.create(user=self.user, name='holder', balance=Decimal('1.00'))
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_add_balance(self):
        response = self.client.post('/api/add-balance/', {'amount': '9.00'}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['balance'], '10.00')
        self.assertEqual(response.data['transaction']['type'], 'deposit')

    def test_add_balance_invalid_amount(self):
        response = self.client.post('/api/add-balance/', {'amount': 'lots'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['message'], 'Please provide a valid transaction amount.')

    def test_add_balance_rejects_non_object_body(self):
        response = self.client.post('/api/add-balance/', ['9.00'], format='json')

        self.assertEqual(response.status_code, 400)
        self.account.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal('1.00'))

    def test_requires_authentication(self):
        response = APIClient().post('/api/add-balance/', {'amount': '9.00'}, format='json')
        self.assertIn(response.status_code, (401, 403))

    def test_recent_commissions(self):
        buyer = Account.objects.create(name='buyer', balance=Decimal('50.00'), sponsor=self.account)
        trans = Transaction.objects.create(receiver=buyer, kind=Transaction.KIND_BUY, amount=Decimal('-10.00'))
        Commission.objects.create(
            sender=buyer, receiver=self.account, transaction=trans,
            level=1, amount=Decimal('0.30')
        )

        response = self.client.get('/api/commissions/recent/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['amount'], '0.30')
        self.assertEqual(response.data[0]['sender'], str(buyer.id))
        self.assertIn('createdAt', response.data[0])


class InitAccountsCommandTests(TestCase):
    """Test the init_accounts management command."""

    def test_creates_buyer_with_sponsor_chain(self):
        out = StringIO()
        call_command('init_accounts', depth=3, balance='250.00', prefix='t', stdout=out)

        buyer = Account.objects.get(name='t-buyer')
        self.assertEqual(buyer.balance, Decimal('250.00'))

        names = []
        current = buyer.sponsor
        while current is not None:
            names.append(current.name)
            current = current.sponsor
        self.assertEqual(names, ['t-sponsor-1', 't-sponsor-2', 't-sponsor-3'])
        self.assertIn('Created buyer', out.getvalue())
