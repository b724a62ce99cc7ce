"""WSGI config for referral_ledger project."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'referral_ledger.settings')

application = get_wsgi_application()
