from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Event',
            fields=[
                ('sequence_number', models.BigAutoField(help_text='Monotonically increasing sequence number for ordering', primary_key=True, serialize=False)),
                ('event_id', models.CharField(db_index=True, help_text='Unique identifier for idempotency', max_length=255, unique=True)),
                ('event_type', models.CharField(choices=[('PURCHASE_COMPLETED', 'Purchase Completed'), ('BALANCE_ADDED', 'Balance Added')], db_index=True, max_length=100)),
                ('aggregate_id', models.CharField(db_index=True, help_text='ID of the aggregate root (e.g., an account id)', max_length=255)),
                ('aggregate_type', models.CharField(db_index=True, help_text='Type of aggregate (e.g., Account)', max_length=100)),
                ('event_data', models.JSONField()),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                'db_table': 'events',
                'ordering': ['sequence_number'],
                'indexes': [
                    models.Index(fields=['event_type', 'created_at'], name='events_type_created_idx'),
                    models.Index(fields=['aggregate_type', 'aggregate_id', 'sequence_number'], name='events_aggregate_seq_idx'),
                ],
                'constraints': [models.CheckConstraint(condition=models.Q(('event_id', ''), _negated=True), name='event_id_not_empty')],
            },
        ),
    ]
