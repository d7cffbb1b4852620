"""
Management command to re-derive cached bill statuses from current sums.

Usage:
    python manage.py recompute_bill_statuses [--dry-run]
"""
from django.core.management.base import BaseCommand

from apps.billing.domain import derive_status
from apps.billing.exceptions import LedgerError
from apps.billing.models import Bill
from apps.billing.services import refresh_bill_state
from apps.billing.store import compute_totals, invalidate_patient_bills, lock_bill, unit_of_work


class Command(BaseCommand):
    help = 'Recompute Bill.status from active line items and payments.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report drifted bills without writing'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        bills = Bill.objects.active().only('pk', 'status')
        total = bills.count()
        drifted = 0
        failed = 0

        for bill in bills.iterator():
            totals = compute_totals(bill.pk)
            expected = derive_status(totals.total, totals.paid)
            if bill.status == expected:
                continue
            drifted += 1
            self.stdout.write(self.style.WARNING(
                f'Bill {bill.pk}: {bill.status} -> {expected}'
            ))
            if dry_run:
                continue
            try:
                with unit_of_work('recompute_bill_statuses'):
                    locked = lock_bill(bill.pk)
                    refresh_bill_state(locked)
                    invalidate_patient_bills(locked.patient_id)
            except LedgerError as e:
                failed += 1
                self.stderr.write(self.style.ERROR(f'Bill {bill.pk}: {e}'))

        self.stdout.write(self.style.SUCCESS(
            f'Processed: {total}, drifted: {drifted}, failed: {failed}'
            + (' (dry run)' if dry_run else '')
        ))
