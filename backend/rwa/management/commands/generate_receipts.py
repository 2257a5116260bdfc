"""
Backfill receipts for paid payments that have none.
Usage: python manage.py generate_receipts
"""
from django.core.management.base import BaseCommand

from rwa.receipts import generate_missing_receipts


class Command(BaseCommand):
    help = 'Generate receipts for all paid payments without one'

    def handle(self, *args, **options):
        result = generate_missing_receipts()
        for number in result['generated']:
            self.stdout.write(f'  ✓ {number}')
        if result['errors']:
            self.stdout.write(self.style.ERROR(
                f'{result["errors"]} receipt(s) failed: payments {result["failed"]}'
            ))
        self.stdout.write(self.style.SUCCESS(f'Generated {result["total"]} receipt(s)'))
