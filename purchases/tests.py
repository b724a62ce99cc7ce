"""
Tests for Purchases and Commission Distribution

Tests cover:
- Commission tier math
- Referral chain walking (bounded, cycle-tolerant, dangling references)
- Conservation and all-or-nothing purchases
- API and task behaviour
- Concurrent purchases crediting a shared sponsor
"""

import threading
import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import connections, DatabaseError
from django.test import TestCase, TransactionTestCase
from django.db.models import Sum
from rest_framework.test import APIClient

from events.models import Event
from ledger.exceptions import (
    AccountNotFound, InsufficientBalance, InvalidAmount, StoreFailure,
)
from ledger.models import Account, Transaction, Commission
from ledger.store import AccountStore
from ledger.writer import LedgerWriter
from purchases.chain import walk_upline
from purchases.services import PurchaseCoordinator
from purchases.tasks import execute_purchase_task
from purchases.tiers import CommissionTable, commission_pool, POOL_RATE


def build_chain(depth, buyer_balance=Decimal('1000.00'), user=None):
    """Create a buyer with `depth` sponsors above it; sponsors[0] is level 1."""
    sponsors = []
    sponsor = None
    for level in range(depth, 0, -1):
        sponsor = Account.objects.create(name=f'S{level}', sponsor=sponsor)
        sponsors.insert(0, sponsor)
    buyer = Account.objects.create(
        name='B1',
        user=user,
        balance=buyer_balance,
        sponsor=sponsor
    )
    return buyer, sponsors


def balance_of(account):
    account.refresh_from_db()
    return account.balance


class CommissionTableTests(TestCase):
    """Test the commission tier table."""

    def setUp(self):
        self.table = CommissionTable()

    def test_percentages_by_band(self):
        expected = {
            1: Decimal('0.15'), 2: Decimal('0.15'), 3: Decimal('0.15'),
            4: Decimal('0.10'), 5: Decimal('0.10'), 6: Decimal('0.10'), 7: Decimal('0.10'),
            8: Decimal('0.03'), 9: Decimal('0.03'), 10: Decimal('0.03'),
        }
        for level, share in expected.items():
            with self.subTest(level=level):
                self.assertEqual(self.table.percentage(level), share)

    def test_levels_outside_table_have_no_percentage(self):
        self.assertIsNone(self.table.percentage(0))
        self.assertIsNone(self.table.percentage(11))
        self.assertEqual(self.table.amount_for(0, Decimal('20.00')), Decimal('0'))
        self.assertEqual(self.table.amount_for(11, Decimal('20.00')), Decimal('0'))

    def test_max_level(self):
        self.assertEqual(self.table.max_level, 10)

    def test_pool_is_twenty_percent(self):
        self.assertEqual(POOL_RATE, Decimal('0.20'))
        self.assertEqual(commission_pool(Decimal('100')), Decimal('20'))

    def test_amounts_round_down(self):
        pool = commission_pool(Decimal('1.00'))
        self.assertEqual(self.table.amount_for(1, pool), Decimal('0.03'))
        self.assertEqual(self.table.amount_for(8, pool), Decimal('0.00'))

    def test_full_table_never_exceeds_pool(self):
        for amount in ['100', '33.33', '0.07', '12345.67']:
            pool = commission_pool(Decimal(amount))
            total = sum(self.table.amount_for(level, pool) for level in range(1, 11))
            with self.subTest(amount=amount):
                self.assertLessEqual(total, pool)

    def test_custom_tiers(self):
        table = CommissionTable(tiers=[(1, 2, Decimal('0.50'))])
        self.assertEqual(table.max_level, 2)
        self.assertEqual(table.amount_for(2, Decimal('10.00')), Decimal('5.00'))
        self.assertIsNone(table.percentage(3))


class FakeStore:
    """Dict-backed store exposing only what the chain walk reads."""

    def __init__(self, accounts):
        self.accounts = {account.pk: account for account in accounts}
        self.reads = []

    def get_for_update(self, account_id):
        self.reads.append(account_id)
        return self.accounts.get(account_id)


def node(pk, sponsor_id=None):
    return SimpleNamespace(pk=pk, sponsor_id=sponsor_id)


class WalkUplineTests(TestCase):
    """Test the referral chain walk in isolation from the database."""

    def test_no_sponsor_yields_nothing(self):
        store = FakeStore([node('b')])
        self.assertEqual(list(walk_upline(store, store.accounts['b'])), [])
        self.assertEqual(store.reads, [])

    def test_levels_follow_the_chain(self):
        store = FakeStore([node('b', 's1'), node('s1', 's2'), node('s2')])
        pairs = [(level, account.pk) for level, account in walk_upline(store, store.accounts['b'])]
        self.assertEqual(pairs, [(1, 's1'), (2, 's2')])

    def test_stops_at_max_depth(self):
        accounts = [node(f'n{i}', f'n{i + 1}') for i in range(15)] + [node('n15')]
        store = FakeStore(accounts)
        pairs = list(walk_upline(store, store.accounts['n0']))
        self.assertEqual(len(pairs), 10)
        self.assertEqual(pairs[-1][0], 10)
        self.assertEqual(pairs[-1][1].pk, 'n10')

    def test_dangling_sponsor_ends_walk(self):
        store = FakeStore([node('b', 's1'), node('s1', 'missing')])
        with self.assertLogs('purchases.chain', level='WARNING'):
            pairs = list(walk_upline(store, store.accounts['b']))
        self.assertEqual([account.pk for _, account in pairs], ['s1'])

    def test_cycle_is_walked_up_to_the_cap(self):
        store = FakeStore([node('a', 'b'), node('b', 'a')])
        pairs = [(level, account.pk) for level, account in walk_upline(store, store.accounts['a'])]
        self.assertEqual(len(pairs), 10)
        self.assertEqual([pk for _, pk in pairs[:4]], ['b', 'a', 'b', 'a'])

    def test_walk_is_lazy(self):
        store = FakeStore([node('b', 's1'), node('s1', 's2'), node('s2')])
        walk = walk_upline(store, store.accounts['b'])
        self.assertEqual(store.reads, [])
        next(walk)
        self.assertEqual(store.reads, ['s1'])


class FailingStore(AccountStore):
    """Account store whose Nth balance write fails like a lost connection."""

    def __init__(self, fail_on_write):
        self.fail_on_write = fail_on_write
        self.writes = 0

    def save_balance(self, account):
        self.writes += 1
        if self.writes == self.fail_on_write:
            raise DatabaseError('simulated write failure')
        super().save_balance(account)


class FailingLedger(LedgerWriter):

    def record_commissions(self, commissions):
        raise DatabaseError('simulated batch insert failure')


class UntouchableStore:

    def atomic(self):
        raise AssertionError('store must not be touched')

    def get_for_update(self, account_id):
        raise AssertionError('store must not be touched')


class PurchaseCoordinatorTests(TestCase):
    """Test purchase execution against the database."""

    def setUp(self):
        self.coordinator = PurchaseCoordinator()

    def assertNothingPersisted(self):
        self.assertEqual(Transaction.objects.count(), 0)
        self.assertEqual(Commission.objects.count(), 0)
        self.assertEqual(Event.objects.count(), 0)

    def test_five_level_chain_pays_tiered_commissions(self):
        buyer, sponsors = build_chain(5, buyer_balance=Decimal('500.00'))

        result = self.coordinator.execute(buyer.id, 100)

        self.assertEqual(
            [balance_of(s) for s in sponsors],
            [Decimal('3.00'), Decimal('3.00'), Decimal('3.00'), Decimal('2.00'), Decimal('2.00')]
        )
        self.assertEqual(result.commissions_created, 5)
        self.assertEqual(result.buyer_balance, Decimal('400.00'))
        self.assertEqual(balance_of(buyer), Decimal('400.00'))

        total = Commission.objects.filter(transaction=result.transaction).aggregate(total=Sum('amount'))['total']
        self.assertEqual(total, Decimal('13.00'))
        self.assertEqual(
            list(Commission.objects.filter(transaction=result.transaction)
                 .order_by('level').values_list('level', 'receiver_id')),
            [(i + 1, s.id) for i, s in enumerate(sponsors)]
        )

    def test_purchase_records_signed_transaction(self):
        buyer, _ = build_chain(1)

        result = self.coordinator.execute(buyer.id, '25.00')

        trans = Transaction.objects.get()
        self.assertEqual(trans.pk, result.transaction.pk)
        self.assertEqual(trans.receiver_id, buyer.id)
        self.assertEqual(trans.kind, Transaction.KIND_BUY)
        self.assertEqual(trans.amount, Decimal('-25.00'))
        for commission in Commission.objects.all():
            self.assertEqual(commission.sender_id, buyer.id)
            self.assertEqual(commission.transaction_id, trans.pk)

    def test_buyer_balance_decreases_by_exactly_the_amount(self):
        for amount in ['0.01', '19.99', '100', '333.33']:
            with self.subTest(amount=amount):
                buyer, _ = build_chain(3)
                before = balance_of(buyer)
                self.coordinator.execute(buyer.id, amount)
                self.assertEqual(before - balance_of(buyer), Decimal(amount))

    def test_full_chain_stays_within_pool(self):
        buyer, sponsors = build_chain(12)

        result = self.coordinator.execute(buyer.id, '100.00')

        self.assertEqual(result.commissions_created, 10)
        total = Commission.objects.aggregate(total=Sum('amount'))['total']
        self.assertLessEqual(total, Decimal('0.20') * Decimal('100.00'))
        # 3 x 15% + 4 x 10% + 3 x 3% of the pool
        self.assertEqual(total, Decimal('18.80'))
        self.assertEqual(balance_of(sponsors[9]), Decimal('0.60'))
        self.assertEqual(balance_of(sponsors[10]), Decimal('0.00'))
        self.assertEqual(balance_of(sponsors[11]), Decimal('0.00'))

    def test_no_sponsor_creates_no_commissions(self):
        buyer, _ = build_chain(0, buyer_balance=Decimal('10.00'))

        result = self.coordinator.execute(buyer.id, '10.00')

        self.assertEqual(result.commissions_created, 0)
        self.assertEqual(result.buyer_balance, Decimal('0.00'))
        self.assertEqual(Transaction.objects.count(), 1)
        self.assertEqual(Commission.objects.count(), 0)

    def test_insufficient_balance_changes_nothing(self):
        buyer, sponsors = build_chain(2, buyer_balance=Decimal('50.00'))

        with self.assertRaises(InsufficientBalance):
            self.coordinator.execute(buyer.id, 100)

        self.assertEqual(balance_of(buyer), Decimal('50.00'))
        self.assertEqual(balance_of(sponsors[0]), Decimal('0.00'))
        self.assertNothingPersisted()

    def test_invalid_amount_fails_before_touching_store(self):
        coordinator = PurchaseCoordinator(store=UntouchableStore())
        for amount in [0, -10, '0', 'ten', None]:
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmount):
                    coordinator.execute(uuid.uuid4(), amount)

    def test_unknown_buyer(self):
        with self.assertRaises(AccountNotFound):
            self.coordinator.execute(uuid.uuid4(), '10.00')
        self.assertNothingPersisted()

    def test_store_failure_mid_chain_rolls_back_everything(self):
        buyer, sponsors = build_chain(5, buyer_balance=Decimal('500.00'))
        # Write 1 is the debit, write 2 the level-1 credit, write 3 fails
        coordinator = PurchaseCoordinator(store=FailingStore(fail_on_write=3))

        with self.assertRaises(StoreFailure):
            coordinator.execute(buyer.id, 100)

        self.assertEqual(balance_of(buyer), Decimal('500.00'))
        for sponsor in sponsors:
            self.assertEqual(balance_of(sponsor), Decimal('0.00'))
        self.assertNothingPersisted()

    def test_commission_batch_failure_rolls_back_everything(self):
        buyer, sponsors = build_chain(3, buyer_balance=Decimal('500.00'))
        coordinator = PurchaseCoordinator(ledger=FailingLedger())

        with self.assertRaises(StoreFailure):
            coordinator.execute(buyer.id, 100)

        self.assertEqual(balance_of(buyer), Decimal('500.00'))
        self.assertEqual(balance_of(sponsors[0]), Decimal('0.00'))
        self.assertNothingPersisted()

    def test_missing_intermediate_sponsor_truncates_chain(self):
        buyer, sponsors = build_chain(2, buyer_balance=Decimal('100.00'))
        Account.objects.filter(pk=sponsors[1].pk).update(sponsor_id=uuid.uuid4())

        result = self.coordinator.execute(buyer.id, 100)

        self.assertEqual(result.commissions_created, 2)
        self.assertEqual(balance_of(sponsors[0]), Decimal('3.00'))
        self.assertEqual(balance_of(sponsors[1]), Decimal('3.00'))

    def test_cyclic_chain_credits_accounts_repeatedly(self):
        a = Account.objects.create(name='A', balance=Decimal('100.00'))
        b = Account.objects.create(name='B', sponsor=a)
        Account.objects.filter(pk=a.pk).update(sponsor=b)

        result = self.coordinator.execute(a.id, 100)

        self.assertEqual(result.commissions_created, 10)
        self.assertEqual(result.buyer_balance, Decimal('0.00'))
        # B is paid at odd levels, A at even levels
        self.assertEqual(balance_of(b), Decimal('10.60'))
        self.assertEqual(balance_of(a), Decimal('8.20'))
        self.assertEqual(
            sorted(Commission.objects.values_list('level', flat=True)),
            list(range(1, 11))
        )

    def test_commissions_rounding_to_zero_are_skipped(self):
        buyer, _ = build_chain(10)

        result = self.coordinator.execute(buyer.id, '0.01')

        self.assertEqual(result.commissions_created, 0)
        self.assertEqual(Commission.objects.count(), 0)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_purchase_emits_event(self):
        buyer, sponsors = build_chain(2)

        result = self.coordinator.execute(buyer.id, '100.00')

        event = Event.objects.get(event_type=Event.PURCHASE_COMPLETED)
        self.assertEqual(event.aggregate_id, str(buyer.id))
        self.assertEqual(event.event_data['transaction_id'], str(result.transaction.id))
        self.assertEqual(
            [c['receiver_id'] for c in event.event_data['commissions']],
            [str(s.id) for s in sponsors]
        )


class PurchaseApiTests(TestCase):
    """Test purchase API endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='buyer', password='secret-pass')
        self.buyer, self.sponsors = build_chain(5, buyer_balance=Decimal('150.00'), user=self.user)
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_buy(self):
        response = self.client.post('/api/transactions/buy/', {'amount': 100}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['buyerBalance'], '50.00')
        self.assertEqual(response.data['commissionsCreated'], 5)
        self.assertEqual(response.data['transaction']['type'], 'buy')
        self.assertEqual(response.data['transaction']['amount'], '-100.00')
        self.assertIn('createdAt', response.data['transaction'])

    def test_buy_rejects_non_object_body(self):
        response = self.client.post('/api/transactions/buy/', [1], format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['message'], 'Please provide a valid transaction amount.')
        self.assertEqual(balance_of(self.buyer), Decimal('150.00'))

    def test_buy_unexpected_error_returns_message(self):
        with mock.patch.object(PurchaseCoordinator, 'execute', side_effect=RuntimeError('boom')):
            response = self.client.post('/api/transactions/buy/', {'amount': '10.00'}, format='json')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {'message': 'Server error'})

    def test_buy_invalid_amount(self):
        for amount in [0, -10, 'abc']:
            with self.subTest(amount=amount):
                response = self.client.post('/api/transactions/buy/', {'amount': amount}, format='json')
                self.assertEqual(response.status_code, 400)
        self.assertEqual(Transaction.objects.count(), 0)

    def test_buy_missing_amount(self):
        response = self.client.post('/api/transactions/buy/', {}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_buy_insufficient_balance(self):
        response = self.client.post('/api/transactions/buy/', {'amount': '200.00'}, format='json')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data['message'], 'Insufficient balance to complete the transaction.')
        self.assertEqual(balance_of(self.buyer), Decimal('150.00'))

    def test_buy_without_account(self):
        other = get_user_model().objects.create_user(username='nobody', password='secret-pass')
        client = APIClient()
        client.force_authenticate(user=other)

        response = client.post('/api/transactions/buy/', {'amount': '10.00'}, format='json')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data['message'], 'Buyer not found.')

    def test_recent_transactions(self):
        for _ in range(5):
            self.client.post('/api/transactions/buy/', {'amount': '10.00'}, format='json')

        response = self.client.get('/api/transactions/recent/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 4)
        for row in response.data:
            self.assertEqual(set(row), {'type', 'amount', 'createdAt'})
            self.assertEqual(row['amount'], '-10.00')


class PurchaseTaskTests(TestCase):
    """Test purchase task behavior."""

    def test_task_executes_purchase(self):
        buyer, _ = build_chain(1, buyer_balance=Decimal('20.00'))

        result = execute_purchase_task(str(buyer.id), '20.00')

        self.assertEqual(result['buyer_balance'], '0.00')
        self.assertEqual(result['commissions_created'], 1)
        self.assertTrue(Transaction.objects.filter(pk=result['transaction_id']).exists())

    def test_task_does_not_retry_rejected_purchase(self):
        buyer, _ = build_chain(1, buyer_balance=Decimal('5.00'))

        result = execute_purchase_task(str(buyer.id), '20.00')

        self.assertEqual(result, {'error': 'Insufficient balance to complete the transaction.'})

    def test_task_retries_store_failure(self):
        buyer, _ = build_chain(1)
        with mock.patch.object(PurchaseCoordinator, 'execute', side_effect=StoreFailure('deadlock detected')):
            # Called directly, retry() re-raises the original exception
            with self.assertRaises(StoreFailure):
                execute_purchase_task(str(buyer.id), '20.00')


class PurchaseConcurrencyTests(TransactionTestCase):
    """Test concurrent purchases sharing an up-line sponsor."""

    def test_shared_sponsor_receives_every_credit(self):
        sponsor = Account.objects.create(name='shared')
        buyers = [
            Account.objects.create(name=f'buyer-{i}', balance=Decimal('100.00'), sponsor=sponsor)
            for i in range(2)
        ]
        errors = []
        start = threading.Barrier(10)

        def purchase(buyer_id):
            try:
                start.wait()
                PurchaseCoordinator().execute(buyer_id, '10.00')
            except Exception as e:
                errors.append(f'{type(e).__name__}: {e}')
            finally:
                connections.close_all()

        threads = [
            threading.Thread(target=purchase, args=(buyers[i % 2].id,))
            for i in range(10)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        # Each purchase credits 15% of a 2.00 pool
        self.assertEqual(balance_of(sponsor), Decimal('3.00'))
        for buyer in buyers:
            self.assertEqual(balance_of(buyer), Decimal('50.00'))
        self.assertEqual(Commission.objects.count(), 10)
