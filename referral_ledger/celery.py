"""Celery application for background purchase processing."""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'referral_ledger.settings')

app = Celery('referral_ledger')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
