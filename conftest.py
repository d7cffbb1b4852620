"""
Pytest configuration for the entire test suite.

Forces an in-memory SQLite test database unless BILLING_TEST_USE_CONFIGURED_DB
is set (used to run the PostgreSQL-only concurrency tests).
"""
import os

from django.conf import settings
from django.db import connections


def pytest_configure():
    """Configure Django settings for tests."""
    if os.environ.get('BILLING_TEST_USE_CONFIGURED_DB') == '1':
        return

    # Force SQLite for tests (faster, no Docker dependency)
    settings.DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',  # In-memory database for speed
        }
    }

    # pytest-django runs django.setup() before this hook, which already built
    # the connection handler from the configured DATABASES; rebuild it.
    for conn in connections.all(initialized_only=True):
        conn.close()
    connections.__dict__.pop('settings', None)
    connections._settings = None
    connections._connections = type(connections._connections)(connections.thread_critical)

    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'billing-ledger-tests',
        }
    }
