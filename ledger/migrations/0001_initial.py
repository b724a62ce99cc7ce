import decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Account',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(blank=True, max_length=200)),
                ('balance', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=19, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.00'))])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('sponsor', models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name='referrals', to='ledger.account')),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='referral_account', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ledger_accounts',
                'indexes': [models.Index(fields=['sponsor'], name='ledger_account_sponsor_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('balance__gte', 0)), name='account_balance_non_negative')],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(choices=[('buy', 'Buy'), ('deposit', 'Deposit')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=19)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='ledger.account')),
            ],
            options={
                'db_table': 'ledger_transactions',
                'indexes': [models.Index(fields=['receiver', '-created_at'], name='ledger_txn_receiver_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('amount', 0), _negated=True), name='transaction_amount_non_zero')],
            },
        ),
        migrations.CreateModel(
            name='Commission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('level', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(10)])),
                ('amount', models.DecimalField(decimal_places=2, max_digits=19, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.01'))])),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='commissions_received', to='ledger.account')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='commissions_sent', to='ledger.account')),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='commissions', to='ledger.transaction')),
            ],
            options={
                'db_table': 'ledger_commissions',
                'indexes': [
                    models.Index(fields=['receiver', '-created_at'], name='ledger_comm_receiver_idx'),
                    models.Index(fields=['transaction', 'level'], name='ledger_comm_txn_level_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='commission_amount_positive'),
                    models.CheckConstraint(condition=models.Q(('level__gte', 1), ('level__lte', 10)), name='commission_level_in_range'),
                    models.UniqueConstraint(fields=('transaction', 'level'), name='commission_level_unique_per_transaction'),
                ],
            },
        ),
    ]
