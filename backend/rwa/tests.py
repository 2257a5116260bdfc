"""
RWA — API Tests
Endpoints, permissions and the payment edit flow over HTTP.
"""
import io
from datetime import date
from decimal import Decimal

from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from rwa.models import User, Resident, Payment, MaintenanceChangeLog


class BaseTestCase(TestCase):
    """Committee users, two residents and a short payment history."""

    def setUp(self):
        self.client = APIClient()

        self.admin_user = User.objects.create_user(
            email='admin@rwa.local', name='RWA Administrator', password='Admin123',
            role=User.ROLE_ADMIN,
        )
        self.treasurer = User.objects.create_user(
            email='treasurer@rwa.local', name='RWA Treasurer', password='Treasurer123',
            role=User.ROLE_TREASURER,
        )
        self.viewer = User.objects.create_user(
            email='viewer@rwa.local', name='RWA Viewer', password='Viewer123',
        )

        self.resident1 = Resident.objects.create(
            house_number='A-101', floor='1', owner_name='Rajesh Kumar',
            contact_number='9876543210', monthly_maintenance=Decimal('3000'),
        )
        self.resident2 = Resident.objects.create(
            house_number='A-102', floor='1', owner_name='Priya Sharma',
            contact_number='9876543211', monthly_maintenance=Decimal('2500'),
        )

        self.jan = Payment.objects.create(
            resident=self.resident1, payment_month='2025-01',
            amount_due=Decimal('3000'), amount_paid=Decimal('3000'),
            status=Payment.STATUS_PAID, payment_date=date(2025, 1, 10), payment_method='UPI',
        )
        self.feb = Payment.objects.create(
            resident=self.resident1, payment_month='2025-02',
            amount_due=Decimal('3000'), amount_paid=Decimal('0'),
            status=Payment.STATUS_PENDING,
        )

    def login_as(self, email, password):
        """Helper to login and set auth token."""
        response = self.client.post('/api/auth/login/',
                                    {'email': email, 'password': password}, format='json')
        if response.status_code == 200:
            token = response.data['access']
            self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return response


# ═══════════════════════════════════════════════════════════
#  AUTH TESTS
# ═══════════════════════════════════════════════════════════

class AuthTests(BaseTestCase):

    def test_admin_login(self):
        resp = self.login_as('admin@rwa.local', 'Admin123')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['role'], 'admin')
        self.assertIn('access', resp.data)

    def test_invalid_password(self):
        resp = self.login_as('admin@rwa.local', 'wrong')
        self.assertEqual(resp.status_code, 400)

    def test_inactive_user_rejected(self):
        self.viewer.is_active = False
        self.viewer.save()
        resp = self.login_as('viewer@rwa.local', 'Viewer123')
        self.assertEqual(resp.status_code, 400)

    def test_me(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.get('/api/auth/me/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['role'], 'treasurer')

    def test_requires_authentication(self):
        resp = self.client.get('/api/payments/')
        self.assertEqual(resp.status_code, 401)


# ═══════════════════════════════════════════════════════════
#  RESIDENT TESTS
# ═══════════════════════════════════════════════════════════

class ResidentTests(BaseTestCase):

    def test_list_residents(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/residents/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data['results']), 2)

    def test_search_residents(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/residents/', {'search': 'Priya'})
        self.assertEqual(len(resp.data['results']), 1)
        self.assertEqual(resp.data['results'][0]['flat_label'], 'A-102/1')

    def test_create_resident(self):
        self.login_as('admin@rwa.local', 'Admin123')
        resp = self.client.post('/api/residents/', {
            'house_number': 'B-201',
            'floor': '2',
            'owner_name': 'Amit Patel',
            'monthly_maintenance': '3500.00',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(Resident.objects.count(), 3)

    def test_viewer_cannot_create_resident(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.post('/api/residents/', {
            'house_number': 'B-201', 'owner_name': 'Amit Patel',
        }, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_cannot_delete_resident_with_payments(self):
        self.login_as('admin@rwa.local', 'Admin123')
        resp = self.client.delete(f'/api/residents/{self.resident1.id}/')
        self.assertEqual(resp.status_code, 400)
        resp = self.client.delete(f'/api/residents/{self.resident2.id}/')
        self.assertEqual(resp.status_code, 204)

    def test_resident_payments(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get(f'/api/residents/{self.resident1.id}/payments/')
        self.assertEqual(resp.status_code, 200)
        months = [p['payment_month'] for p in resp.data['results']]
        self.assertEqual(months, ['2025-02', '2025-01'])


# ═══════════════════════════════════════════════════════════
#  PAYMENT TESTS
# ═══════════════════════════════════════════════════════════

class PaymentTests(BaseTestCase):

    def test_list_filtered_by_month(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/', {'month': '2025-02'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data['results']), 1)
        self.assertEqual(resp.data['results'][0]['balance_due'], '3000.00')

    def test_create_payment_derives_status(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/payments/', {
            'resident': self.resident2.id,
            'payment_month': '2025-01',
            'amount_due': '2500.00',
            'amount_paid': '1000.00',
            'payment_method': 'Cash',
        }, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['status'], 'Partial')
        self.assertIsNotNone(resp.data['payment_date'])

    def test_create_rejects_bad_month(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/payments/', {
            'resident': self.resident2.id,
            'payment_month': '2025-13',
            'amount_due': '2500.00',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_create_rejects_duplicate_month(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/payments/', {
            'resident': self.resident1.id,
            'payment_month': '2025-01',
            'amount_due': '3000.00',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_edit_recalculates_following_month(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.patch(f'/api/payments/{self.jan.id}/',
                                 {'amount_paid': '1000.00'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['status'], 'Partial')
        self.assertEqual(resp.data['cascaded_months'], ['2025-02'])
        self.assertFalse(resp.data['maintenance_updated'])

        self.feb.refresh_from_db()
        self.assertEqual(self.feb.amount_due, Decimal('5000'))
        self.assertEqual(self.feb.status, Payment.STATUS_PENDING)

    def test_edit_with_new_maintenance(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.patch(f'/api/payments/{self.jan.id}/', {
            'amount_due': '3500.00', 'amount_paid': '3500.00',
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['maintenance_updated'])
        self.assertEqual(resp.data['new_maintenance'], '3500.00')

        self.resident1.refresh_from_db()
        self.assertEqual(self.resident1.monthly_maintenance, Decimal('3500'))
        self.feb.refresh_from_db()
        self.assertEqual(self.feb.amount_due, Decimal('3500'))
        log = MaintenanceChangeLog.objects.get(resident=self.resident1)
        self.assertEqual(log.changed_by, self.treasurer)

    def test_edit_rejects_overpayment(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.patch(f'/api/payments/{self.feb.id}/',
                                 {'amount_paid': '3500.00'}, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_edit_rejects_negative_amount(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.patch(f'/api/payments/{self.feb.id}/',
                                 {'amount_due': '-1'}, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_edit_without_amounts_keeps_stored_figures(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        Payment.objects.filter(pk=self.feb.pk).update(amount_paid=Decimal('1000'),
                                                      status=Payment.STATUS_PARTIAL)
        resp = self.client.patch(f'/api/payments/{self.feb.id}/',
                                 {'remarks': 'Called owner'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['amount_paid'], '1000.00')
        self.assertEqual(resp.data['status'], 'Partial')
        self.assertEqual(resp.data['cascaded_months'], [])

    def test_viewer_cannot_edit(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.patch(f'/api/payments/{self.feb.id}/',
                                 {'amount_paid': '1000.00'}, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_partial_payment_endpoint(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post(f'/api/payments/{self.feb.id}/partial-payment/', {
            'amount': '1200.00', 'payment_method': 'Cash', 'remarks': 'Part payment',
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['status'], 'Partial')
        self.assertEqual(resp.data['amount_paid'], '1200.00')

    def test_partial_payment_overpayment_rejected(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post(f'/api/payments/{self.feb.id}/partial-payment/',
                                {'amount': '5000.00'}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['detail'].code, 'payment_rule')

    def test_carry_forward_breakdown(self):
        self.jan.amount_paid = Decimal('1000')
        self.jan.status = Payment.STATUS_PARTIAL
        self.jan.save()
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get(f'/api/payments/{self.feb.id}/carry-forward/')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['has_carryforward'])
        self.assertEqual(resp.data['total_carryforward'], '2000.00')
        self.assertEqual(resp.data['calculated_total_due'], '5000.00')
        self.assertEqual(resp.data['breakdown'][0]['month'], '2025-01')

    def test_refresh_status_marks_overdue(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post(f'/api/payments/{self.feb.id}/refresh-status/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['status'], 'Overdue')
        self.assertTrue(resp.data['changed'])

    def test_generate_monthly(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/payments/generate-monthly/',
                                {'month': '2025-03'}, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['created'], 2)
        mar = Payment.objects.get(resident=self.resident1, payment_month='2025-03')
        self.assertEqual(mar.amount_due, Decimal('6000'))

    def test_update_overdue(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/payments/update-overdue/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['updated_count'], 1)

    def test_statistics(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/statistics/', {'month': '2025-01'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['collection_percentage'], 100.0)
        self.assertEqual(resp.data['payment_counts']['paid'], 1)
        self.assertEqual(resp.data['residents_without_payment'], 1)

    def test_statistics_rejects_bad_month(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/statistics/', {'month': 'March'})
        self.assertEqual(resp.status_code, 400)

    def test_unpaid(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/unpaid/', {'month': '2025-02'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['count'], 1)
        self.assertEqual(resp.data['total_outstanding'], '3000.00')

    def test_defaulters(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/defaulters/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data), 1)
        self.assertEqual(resp.data[0]['resident']['owner_name'], 'Rajesh Kumar')

    def test_trends(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/trends/', {'start': '2025-01', 'end': '2025-02'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([t['month'] for t in resp.data], ['2025-01', '2025-02'])
        self.assertEqual(resp.data[1]['collection_rate'], 0)

    def test_export_csv(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/payments/export/', {'month': '2025-01'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp['Content-Type'], 'text/csv')
        lines = resp.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith('Flat Number,Resident Name'))
        self.assertEqual(len(lines), 2)
        self.assertIn('A-101/1', lines[1])


# ═══════════════════════════════════════════════════════════
#  RECEIPT / DASHBOARD TESTS
# ═══════════════════════════════════════════════════════════

class ReceiptApiTests(BaseTestCase):

    def test_generate_missing_and_list(self):
        self.login_as('treasurer@rwa.local', 'Treasurer123')
        resp = self.client.post('/api/receipts/generate-missing/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['total'], 1)

        resp = self.client.get('/api/receipts/')
        self.assertEqual(len(resp.data['results']), 1)
        self.assertEqual(resp.data['results'][0]['payment_month'], '2025-01')

    def test_viewer_cannot_generate(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.post('/api/receipts/generate-missing/')
        self.assertEqual(resp.status_code, 403)


class DashboardTests(BaseTestCase):

    def test_dashboard(self):
        self.login_as('viewer@rwa.local', 'Viewer123')
        resp = self.client.get('/api/dashboard/', {'month': '2025-02'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['total_residents'], 2)
        self.assertEqual(resp.data['payment_counts']['pending'], 1)


# ═══════════════════════════════════════════════════════════
#  MANAGEMENT COMMANDS
# ═══════════════════════════════════════════════════════════

class CommandTests(BaseTestCase):

    def test_generate_monthly_payments_command(self):
        out = io.StringIO()
        call_command('generate_monthly_payments', '2025-03', stdout=out)
        self.assertIn('created=2', out.getvalue())
        self.assertEqual(Payment.objects.filter(payment_month='2025-03').count(), 2)

    def test_recalculate_maintenance_command(self):
        self.resident1.monthly_maintenance = Decimal('3200')
        self.resident1.save()
        out = io.StringIO()
        call_command('recalculate_maintenance', str(self.resident1.id), '2025-02', stdout=out)
        self.feb.refresh_from_db()
        self.assertEqual(self.feb.amount_due, Decimal('3200'))
        self.assertIn('Recalculated 1 month(s)', out.getvalue())

    def test_recalculate_maintenance_dry_run(self):
        self.resident1.monthly_maintenance = Decimal('3200')
        self.resident1.save()
        call_command('recalculate_maintenance', str(self.resident1.id), '2025-02',
                     '--dry-run', stdout=io.StringIO())
        self.feb.refresh_from_db()
        self.assertEqual(self.feb.amount_due, Decimal('3000'))

    def test_seed_data(self):
        call_command('seed_data', stdout=io.StringIO())
        self.assertTrue(User.objects.filter(email='admin@rwa.local').exists())
        self.assertEqual(Resident.objects.count(), 4)
