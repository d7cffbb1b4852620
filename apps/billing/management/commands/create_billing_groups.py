"""
Management command to create billing RBAC groups.

Usage:
    python manage.py create_billing_groups

Creates (idempotently):
- Cashier: open bills, take payments, print receipts
- BillingAdmin: cashier rights plus voids
"""
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.billing.permissions import BILLING_ADMIN_GROUP, CASHIER_GROUP


class Command(BaseCommand):
    help = 'Create billing RBAC groups (Cashier, BillingAdmin)'

    def handle(self, *args, **options):
        groups = [
            (CASHIER_GROUP, 'Cashiers - bills, payments, receipts'),
            (BILLING_ADMIN_GROUP, 'Billing administrators - cashier rights plus voids'),
        ]

        created_count = 0
        existing_count = 0

        for group_name, description in groups:
            group, created = Group.objects.get_or_create(name=group_name)

            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'Created group: {group_name}'))
            else:
                existing_count += 1
                self.stdout.write(self.style.WARNING(f'Group already exists: {group_name}'))

        self.stdout.write(
            self.style.SUCCESS(f'\nSummary: {created_count} created, {existing_count} existing')
        )
