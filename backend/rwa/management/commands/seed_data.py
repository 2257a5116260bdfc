"""
RWA — Seed Demo Data
Creates committee users, a handful of residents and two months of payments.
Usage: python manage.py seed_data
"""
from decimal import Decimal

from django.core.management.base import BaseCommand

from rwa.models import User, Resident
from rwa.months import current_month, shift_month
from rwa.services import generate_monthly_payments


class Command(BaseCommand):
    help = 'Seed database with RWA demo data'

    def handle(self, *args, **options):
        self.stdout.write('🌱 Seeding RWA demo data...\n')

        # ── Committee users ──────────────────────
        users_data = [
            ('admin@rwa.local', 'RWA Administrator', User.ROLE_ADMIN, 'Admin123'),
            ('treasurer@rwa.local', 'RWA Treasurer', User.ROLE_TREASURER, 'Treasurer123'),
            ('viewer@rwa.local', 'RWA Viewer', User.ROLE_VIEWER, 'Viewer123'),
        ]
        for email, name, role, password in users_data:
            user, created = User.objects.get_or_create(
                email=email,
                defaults={
                    'name': name,
                    'role': role,
                    'is_staff': role == User.ROLE_ADMIN,
                    'is_superuser': role == User.ROLE_ADMIN,
                }
            )
            if created:
                user.set_password(password)
                user.save()
                self.stdout.write(self.style.SUCCESS(f'  ✓ {name} created'))
            else:
                self.stdout.write(f'  · {name} already exists')

        # ── Residents ────────────────────────────
        residents_data = [
            {'house_number': 'A-101', 'floor': '1', 'owner_name': 'Rajesh Kumar',
             'contact_number': '9876543210', 'monthly_maintenance': Decimal('2500')},
            {'house_number': 'A-102', 'floor': '1', 'owner_name': 'Priya Sharma',
             'contact_number': '9876543211', 'monthly_maintenance': Decimal('2500')},
            {'house_number': 'B-201', 'floor': '2', 'owner_name': 'Amit Patel',
             'contact_number': '9876543212', 'monthly_maintenance': Decimal('3000')},
            {'house_number': 'B-202', 'floor': '2', 'owner_name': 'Sunita Reddy',
             'contact_number': '9876543213', 'monthly_maintenance': Decimal('3000'),
             'current_state': Resident.STATE_VACANT},
        ]
        created_count = 0
        for data in residents_data:
            _, created = Resident.objects.get_or_create(
                house_number=data['house_number'], floor=data['floor'],
                defaults=data,
            )
            created_count += int(created)
        self.stdout.write(self.style.SUCCESS(f'  ✓ {created_count} residents created'))

        # ── Payments ─────────────────────────────
        this_month = current_month()
        for month in (shift_month(this_month, -1), this_month):
            stats = generate_monthly_payments(month)
            self.stdout.write(self.style.SUCCESS(
                f'  ✓ {month}: {stats["created"]} payments created, {stats["skipped"]} skipped'
            ))

        self.stdout.write(self.style.SUCCESS('\n✅ Demo data ready.'))
