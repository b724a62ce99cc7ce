"""
Management command to create a buyer with a sponsor chain above it.
"""
from decimal import Decimal, InvalidOperation

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from ledger.models import Account


class Command(BaseCommand):
    help = 'Create a funded buyer account sponsored by a chain of up-line accounts'

    def add_arguments(self, parser):
        parser.add_argument('--depth', type=int, default=10,
                            help='Number of sponsor levels above the buyer')
        parser.add_argument('--balance', default='1000.00',
                            help='Starting balance of the buyer')
        parser.add_argument('--prefix', default='demo',
                            help='Name prefix for created accounts')

    def handle(self, *args, **options):
        """Create the sponsors from the top down, then the buyer at the bottom."""
        depth = options['depth']
        if depth < 0:
            raise CommandError('--depth must not be negative')
        prefix = options['prefix']
        try:
            balance = Decimal(options['balance'])
        except InvalidOperation:
            raise CommandError(f"Invalid --balance: {options['balance']}")

        with transaction.atomic():
            sponsor = None
            for level in range(depth, 0, -1):
                sponsor = Account.objects.create(
                    name=f'{prefix}-sponsor-{level}',
                    sponsor=sponsor,
                )
                self.stdout.write(f'Created sponsor level {level}: {sponsor.id}')

            buyer = Account.objects.create(
                name=f'{prefix}-buyer',
                balance=balance,
                sponsor=sponsor,
            )

        self.stdout.write(
            self.style.SUCCESS(
                f'\nCreated buyer {buyer.id} with balance {buyer.balance} '
                f'and {depth} sponsor level(s).'
            )
        )
