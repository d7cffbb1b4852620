"""Billing app configuration."""
from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for billing ledger app."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.billing'
    verbose_name = 'Billing Ledger'
