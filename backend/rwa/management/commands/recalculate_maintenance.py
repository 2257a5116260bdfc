"""
Re-walk a resident's payments from a month onwards with the current base
maintenance, e.g. after correcting monthly_maintenance in the admin.
Usage: python manage.py recalculate_maintenance <resident_id> <YYYY-MM> [--dry-run]
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from rwa.models import Resident
from rwa.months import is_valid_month, previous_month
from rwa.recalculation import RecalculationEngine, format_currency


class DryRunRollback(Exception):
    pass


class Command(BaseCommand):
    help = "Recalculate a resident's payments from a month with the current base maintenance"

    def add_arguments(self, parser):
        parser.add_argument('resident_id', type=int)
        parser.add_argument('from_month', help='First month to recalculate (YYYY-MM)')
        parser.add_argument('--dry-run', action='store_true',
                            help='Show the changes without saving them')

    def handle(self, *args, **options):
        from_month = options['from_month']
        if not is_valid_month(from_month):
            raise CommandError(f'Invalid month "{from_month}". Use YYYY-MM.')
        try:
            resident = Resident.objects.get(pk=options['resident_id'])
        except Resident.DoesNotExist:
            raise CommandError(f'Resident {options["resident_id"]} does not exist.')

        before = {
            p.payment_month: (p.amount_due, p.status)
            for p in resident.payments.filter(payment_month__gte=from_month)
        }
        if not before:
            self.stdout.write(f'No payments for {resident.flat_label} from {from_month}.')
            return

        engine = RecalculationEngine()
        base = resident.monthly_maintenance
        try:
            with transaction.atomic():
                updated = engine.forward_walk(resident.pk, previous_month(from_month), base)
                if options['dry_run']:
                    raise DryRunRollback
        except DryRunRollback:
            self.stdout.write(self.style.WARNING('DRY RUN — changes rolled back'))

        self.stdout.write(f'{resident.flat_label} ({resident.owner_name}), '
                          f'base {format_currency(base)}')
        self.stdout.write(f'  {"Month":<8} {"Old due":>14} {"New due":>14}  Status')
        for payment in updated:
            old_due, old_status = before[payment.payment_month]
            marker = '' if old_due == payment.amount_due else '  *'
            self.stdout.write(
                f'  {payment.payment_month:<8} {format_currency(old_due):>14} '
                f'{format_currency(payment.amount_due):>14}  {old_status} → {payment.status}{marker}'
            )
        self.stdout.write(self.style.SUCCESS(f'Recalculated {len(updated)} month(s)'))
