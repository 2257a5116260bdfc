"""
Create every active resident's payment for a month, including carry-forward.
Usage: python manage.py generate_monthly_payments [YYYY-MM] [--force] [--dry-run]
"""
from django.core.management.base import BaseCommand, CommandError

from rwa.months import current_month, is_valid_month
from rwa.recalculation import format_currency
from rwa.services import generate_monthly_payments


class Command(BaseCommand):
    help = 'Generate monthly maintenance payments with carry-forward'

    def add_arguments(self, parser):
        parser.add_argument('month', nargs='?', help='Month in YYYY-MM format (default: current month)')
        parser.add_argument('--force', action='store_true',
                            help='Refresh amount_due and remarks of existing payments')
        parser.add_argument('--dry-run', action='store_true',
                            help='Show what would be generated without saving')

    def handle(self, *args, **options):
        month = options['month'] or current_month()
        if not is_valid_month(month):
            raise CommandError(f'Invalid month "{month}". Use YYYY-MM.')

        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN — nothing will be saved'))

        stats = generate_monthly_payments(month, force=options['force'], dry_run=dry_run)

        for row in stats['rows']:
            line = f'  {row["resident"]:<12} {row["owner_name"]:<25} {format_currency(row["amount_due"])}'
            if row['carry_forward'] > 0:
                line += f'  (carry-forward {format_currency(row["carry_forward"])})'
            self.stdout.write(line)

        self.stdout.write(self.style.SUCCESS(
            f'{month}: created={stats["created"]} updated={stats["updated"]} '
            f'skipped={stats["skipped"]}'
        ))
        self.stdout.write(f'Total carry-forward: {format_currency(stats["total_carry_forward"])}')
        self.stdout.write(f'Total amount due: {format_currency(stats["total_amount_due"])}')
