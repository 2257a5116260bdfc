"""
RWA — Carry-forward engine tests
Status classification, carry-forward, cascade, maintenance-change
propagation and the services built on them.
"""
from datetime import date
from decimal import Decimal

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from rwa.exceptions import PaymentRuleError, RecalculationError
from rwa.models import User, Resident, Payment, Receipt, MaintenanceChangeLog
from rwa.months import due_date, is_valid_month, months_between, previous_month, shift_month
from rwa.recalculation import (
    MAINTENANCE_CHANGE_THRESHOLD, PaymentEditor, PaymentRepository, RecalculationEngine,
    classify_status, classify_status_by_date, format_currency, payment_remarks,
)
from rwa.receipts import generate_missing_receipts, next_receipt_number
from rwa.signals import emit_status_changed, payment_status_changed
from rwa import services


class EngineTestCase(TestCase):
    """A resident plus an engine whose notifications are recorded."""

    def setUp(self):
        self.treasurer = User.objects.create_user(
            email='treasurer@rwa.local', name='Treasurer', password='Treasurer123',
            role=User.ROLE_TREASURER,
        )
        self.resident = Resident.objects.create(
            house_number='A-101', floor='1', owner_name='Rajesh Kumar',
            monthly_maintenance=Decimal('3000'),
        )
        self.notifications = []
        self.audits = []
        self.engine = RecalculationEngine(
            notify=lambda payment, previous: self.notifications.append(
                (payment.payment_month, previous, payment.status)),
            audit=self.audits.append,
        )
        self.editor = PaymentEditor(self.engine)

    def pay(self, month, due, paid='0', status=None, resident=None):
        due, paid = Decimal(due), Decimal(paid)
        return Payment.objects.create(
            resident=resident or self.resident, payment_month=month,
            amount_due=due, amount_paid=paid,
            status=status or classify_status(due, paid),
        )

    def fetch(self, month, resident=None):
        return Payment.objects.get(resident=resident or self.resident, payment_month=month)


# ═══════════════════════════════════════════════════════════
#  MONTH HELPERS
# ═══════════════════════════════════════════════════════════

class MonthHelperTests(TestCase):

    def test_previous_month_wraps_year(self):
        self.assertEqual(previous_month('2025-01'), '2024-12')
        self.assertEqual(shift_month('2024-11', 3), '2025-02')

    def test_month_validation(self):
        self.assertTrue(is_valid_month('2025-12'))
        self.assertFalse(is_valid_month('2025-13'))
        self.assertFalse(is_valid_month('2025-1'))
        self.assertFalse(is_valid_month(None))

    def test_due_date_is_last_day(self):
        self.assertEqual(due_date('2024-02'), date(2024, 2, 29))
        self.assertEqual(due_date('2025-04'), date(2025, 4, 30))

    def test_months_between_inclusive(self):
        self.assertEqual(months_between('2024-11', '2025-02'),
                         ['2024-11', '2024-12', '2025-01', '2025-02'])
        self.assertEqual(months_between('2025-03', '2025-01'), [])


# ═══════════════════════════════════════════════════════════
#  STATUS CLASSIFIER
# ═══════════════════════════════════════════════════════════

class ClassifierTests(TestCase):

    def test_paid_when_paid_covers_due(self):
        for due, paid in [('3000', '3000'), ('3000', '3500'), ('0', '0')]:
            self.assertEqual(classify_status(Decimal(due), Decimal(paid)), Payment.STATUS_PAID)

    def test_partial_between_zero_and_due(self):
        for paid in ['0.01', '1', '2999.99']:
            self.assertEqual(classify_status(Decimal('3000'), Decimal(paid)), Payment.STATUS_PARTIAL)

    def test_pending_when_nothing_paid(self):
        self.assertEqual(classify_status(Decimal('3000'), Decimal('0')), Payment.STATUS_PENDING)

    def test_simple_variant_never_overdue(self):
        self.assertNotEqual(classify_status(Decimal('3000'), 0), Payment.STATUS_OVERDUE)

    def test_date_aware_variant(self):
        self.assertEqual(classify_status_by_date(Decimal('3000'), 0, False), Payment.STATUS_PENDING)
        self.assertEqual(classify_status_by_date(Decimal('3000'), 0, True), Payment.STATUS_OVERDUE)
        self.assertEqual(classify_status_by_date(Decimal('3000'), Decimal('10'), True),
                         Payment.STATUS_PARTIAL)
        self.assertEqual(classify_status_by_date(Decimal('3000'), Decimal('3000'), True),
                         Payment.STATUS_PAID)


# ═══════════════════════════════════════════════════════════
#  REMARKS
# ═══════════════════════════════════════════════════════════

class RemarksTests(TestCase):

    def test_format_currency(self):
        self.assertEqual(format_currency(Decimal('1234.5')), '₹1,234.50')
        self.assertEqual(format_currency(Decimal('250000')), '₹250,000.00')

    def test_remarks_with_carry_forward(self):
        self.assertEqual(
            payment_remarks(Decimal('3000'), Decimal('2000')),
            'Includes carry-forward of ₹2,000.00 from previous month. Base maintenance: ₹3,000.00',
        )

    def test_remarks_without_carry_forward(self):
        self.assertEqual(payment_remarks(Decimal('3000'), Decimal('0')),
                         'Base maintenance: ₹3,000.00')


# ═══════════════════════════════════════════════════════════
#  CARRY-FORWARD
# ═══════════════════════════════════════════════════════════

class CarryForwardTests(EngineTestCase):

    def test_first_month_has_no_carry_forward(self):
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-01'), Decimal('0'))

    def test_unpaid_balance_of_previous_month(self):
        self.pay('2025-01', '3000', '1000')
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-02'), Decimal('2000'))

    def test_never_negative(self):
        self.pay('2025-01', '3000', '3500')
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-02'), Decimal('0'))

    def test_only_immediately_preceding_month(self):
        self.pay('2024-11', '3000', '0')
        # 2024-12 missing: the November arrears are not reached
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-01'), Decimal('0'))

    def test_across_year_boundary(self):
        self.pay('2024-12', '3000', '500')
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-01'), Decimal('2500'))


# ═══════════════════════════════════════════════════════════
#  CASCADE
# ═══════════════════════════════════════════════════════════

class CascadeTests(EngineTestCase):

    def test_cascade_updates_later_months_in_order(self):
        self.pay('2025-01', '3000', '1000')
        self.pay('2025-02', '3000', '0')
        self.pay('2025-03', '3000', '0')

        updated = self.engine.cascade(self.resident.pk, '2025-01')

        self.assertEqual([p.payment_month for p in updated], ['2025-02', '2025-03'])
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('5000'))
        self.assertEqual(self.fetch('2025-03').amount_due, Decimal('8000'))

    def test_cascade_ignores_earlier_months(self):
        self.pay('2024-12', '1', '0')
        self.pay('2025-01', '3000', '3000')
        self.engine.cascade(self.resident.pk, '2025-01')
        self.assertEqual(self.fetch('2024-12').amount_due, Decimal('1'))

    def test_cascade_is_idempotent(self):
        self.pay('2025-01', '3000', '500')
        self.pay('2025-02', '3000', '0')
        self.pay('2025-03', '3000', '3000')
        self.engine.cascade(self.resident.pk, '2025-01')
        self.assertEqual(self.engine.cascade(self.resident.pk, '2025-01'), [])

    def test_cascade_never_creates_rows(self):
        self.pay('2025-01', '3000', '0')
        self.assertEqual(self.engine.cascade(self.resident.pk, '2025-01'), [])
        self.assertEqual(Payment.objects.count(), 1)

    def test_cascade_rederives_status_and_notifies(self):
        self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '5000', '3000', status=Payment.STATUS_PARTIAL)

        self.engine.cascade(self.resident.pk, '2025-01')

        feb = self.fetch('2025-02')
        self.assertEqual(feb.amount_due, Decimal('3000'))
        self.assertEqual(feb.status, Payment.STATUS_PAID)
        self.assertEqual(feb.remarks, 'Base maintenance: ₹3,000.00')
        self.assertEqual(self.notifications,
                         [('2025-02', Payment.STATUS_PARTIAL, Payment.STATUS_PAID)])


# ═══════════════════════════════════════════════════════════
#  PAYMENT EDITS
# ═══════════════════════════════════════════════════════════

class PaymentEditTests(EngineTestCase):

    def test_scenario_lower_paid_amount_carries_forward(self):
        jan = self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '3000', '0')

        result = self.editor.update_payment(jan, amount_paid=Decimal('1000'), actor=self.treasurer)

        jan = self.fetch('2025-01')
        feb = self.fetch('2025-02')
        self.assertEqual(jan.status, Payment.STATUS_PARTIAL)
        self.assertEqual(self.engine.carry_forward(self.resident.pk, '2025-02'), Decimal('2000'))
        self.assertEqual(feb.amount_due, Decimal('5000'))
        self.assertEqual(feb.status, Payment.STATUS_PENDING)
        self.assertEqual(
            feb.remarks,
            'Includes carry-forward of ₹2,000.00 from previous month. Base maintenance: ₹3,000.00',
        )
        self.assertEqual([p.payment_month for p in result.cascaded], ['2025-02'])
        self.assertIsNone(result.maintenance_change)
        self.assertEqual(self.notifications,
                         [('2025-01', Payment.STATUS_PAID, Payment.STATUS_PARTIAL)])

    def test_scenario_base_maintenance_change(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        mar = self.pay('2025-03', '2500', '0')
        self.pay('2025-04', '2500', '1000')
        self.pay('2025-05', '2500', '0')

        result = self.editor.update_payment(
            mar, amount_due=Decimal('3000'), amount_paid=Decimal('3000'), actor=self.treasurer,
        )

        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('3000'))
        apr = self.fetch('2025-04')
        may = self.fetch('2025-05')
        self.assertEqual(apr.amount_due, Decimal('3000'))
        self.assertEqual(apr.status, Payment.STATUS_PARTIAL)
        self.assertEqual(apr.remarks, 'Base maintenance: ₹3,000.00')
        self.assertEqual(may.amount_due, Decimal('5000'))
        self.assertEqual(may.status, Payment.STATUS_PENDING)
        self.assertEqual(
            may.remarks,
            'Includes carry-forward of ₹2,000.00 from previous month. Base maintenance: ₹3,000.00',
        )

        change = result.maintenance_change
        self.assertIsNotNone(change)
        self.assertEqual(change.old_maintenance, Decimal('2500'))
        self.assertEqual(change.new_maintenance, Decimal('3000'))
        self.assertEqual(change.payment_month, '2025-03')
        self.assertIs(change.actor, self.treasurer)
        self.assertEqual([p.payment_month for p in change.updated_payments], ['2025-04', '2025-05'])
        self.assertEqual(self.audits, [change])

    def test_scenario_small_due_change_only_cascades(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        jan = self.pay('2025-01', '2500', '0')
        self.pay('2025-02', '5000', '0')

        result = self.editor.update_payment(jan, amount_due=Decimal('2505'))

        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('2500'))
        self.assertIsNone(result.maintenance_change)
        self.assertEqual(self.audits, [])
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('5005'))

    def test_threshold_is_inclusive(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        jan = self.pay('2025-01', '2500', '0')

        result = self.editor.update_payment(jan, amount_due=Decimal('2500') + MAINTENANCE_CHANGE_THRESHOLD)

        self.assertIsNotNone(result.maintenance_change)
        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('2510'))

    def test_non_positive_base_is_not_a_maintenance_change(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        self.pay('2025-01', '2500', '0')
        feb = self.pay('2025-02', '5000', '0')

        result = self.editor.update_payment(feb, amount_due=Decimal('2000'))

        self.assertIsNone(result.maintenance_change)
        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('2500'))

    def test_unchanged_amounts_skip_recalculation(self):
        jan = self.pay('2025-01', '3000', '0')
        self.pay('2025-02', '1', '0')

        result = self.editor.update_payment(jan, remarks='Reminder sent')

        self.assertEqual(result.cascaded, [])
        self.assertEqual(self.fetch('2025-01').remarks, 'Reminder sent')
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('1'))

    def test_paid_edit_sets_payment_date(self):
        jan = self.pay('2025-01', '3000', '0')
        self.editor.update_payment(jan, amount_paid=Decimal('3000'))
        self.assertEqual(self.fetch('2025-01').payment_date, date.today())

    def test_unknown_field_rejected(self):
        jan = self.pay('2025-01', '3000', '0')
        with self.assertRaises(TypeError):
            self.editor.update_payment(jan, status=Payment.STATUS_PAID)

    def test_paying_every_month_converges(self):
        self.resident.monthly_maintenance = Decimal('1000')
        self.resident.save()
        months = ['2025-01', '2025-02', '2025-03', '2025-04']
        for i, month in enumerate(months, start=1):
            self.pay(month, str(1000 * i), '0')

        for month in months:
            payment = self.fetch(month)
            self.editor.update_payment(payment, amount_paid=payment.amount_due)

        for month in months:
            payment = self.fetch(month)
            self.assertEqual(payment.amount_due, Decimal('1000'))
            self.assertEqual(payment.status, Payment.STATUS_PAID)
            self.assertEqual(self.engine.carry_forward(self.resident.pk, month), Decimal('0'))

    def test_edit_reads_stored_row_not_callers_copy(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        self.pay('2025-01', '2500', '0')
        stale = self.fetch('2025-01')
        self.editor.update_payment(self.fetch('2025-01'), amount_due=Decimal('3000'),
                                   remarks='Revised rate')

        result = self.editor.update_payment(stale, amount_due=Decimal('3000'), payment_method='Cash')

        self.assertIsNone(result.maintenance_change)
        self.assertEqual(result.cascaded, [])
        self.assertEqual(len(self.audits), 1)
        jan = self.fetch('2025-01')
        self.assertEqual(jan.remarks, 'Revised rate')
        self.assertEqual(jan.payment_method, 'Cash')
        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('3000'))

    def test_edit_rejects_paid_above_stored_due(self):
        jan = self.pay('2025-01', '3000', '0')
        with self.assertRaises(PaymentRuleError):
            self.editor.update_payment(jan, amount_paid=Decimal('3500'))
        self.assertEqual(self.fetch('2025-01').amount_paid, Decimal('0'))

    def test_cascade_then_walk_reports_net_transition_only(self):
        jan = self.pay('2025-01', '3000', '2000')
        self.pay('2025-02', '4000', '3200')

        self.editor.update_payment(jan, amount_due=Decimal('3500'), amount_paid=Decimal('3500'))

        feb = self.fetch('2025-02')
        self.assertEqual(feb.amount_due, Decimal('3500'))
        self.assertEqual(feb.status, Payment.STATUS_PARTIAL)
        self.assertEqual(self.notifications,
                         [('2025-01', Payment.STATUS_PARTIAL, Payment.STATUS_PAID)])


class ForwardWalkTests(EngineTestCase):

    def test_walk_never_downgrades_to_pending(self):
        self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '3000', '0', status=Payment.STATUS_PARTIAL)

        self.engine.forward_walk(self.resident.pk, '2025-01', Decimal('3500'))

        feb = self.fetch('2025-02')
        self.assertEqual(feb.amount_due, Decimal('3500'))
        self.assertEqual(feb.status, Payment.STATUS_PARTIAL)

    def test_walk_promotes_to_paid(self):
        self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '3000', '2500', status=Payment.STATUS_PARTIAL)

        self.engine.forward_walk(self.resident.pk, '2025-01', Decimal('2500'))

        self.assertEqual(self.fetch('2025-02').status, Payment.STATUS_PAID)
        self.assertEqual(self.notifications,
                         [('2025-02', Payment.STATUS_PARTIAL, Payment.STATUS_PAID)])


# ═══════════════════════════════════════════════════════════
#  AUDIT / FAILURES
# ═══════════════════════════════════════════════════════════

class FailingRepository(PaymentRepository):
    """Fails when writing any month after `fail_after`."""

    def __init__(self, fail_after):
        self.fail_after = fail_after

    def save_payment(self, payment, fields=None):
        if payment.payment_month > self.fail_after:
            raise DatabaseError('disk full')
        super().save_payment(payment, fields)


class AuditAndFailureTests(EngineTestCase):

    def test_default_audit_sink_writes_log_row(self):
        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        jan = self.pay('2025-01', '2500', '0')

        PaymentEditor().update_payment(jan, amount_due=Decimal('3000'), actor=self.treasurer)

        log = MaintenanceChangeLog.objects.get(resident=self.resident)
        self.assertEqual(log.old_maintenance, Decimal('2500'))
        self.assertEqual(log.new_maintenance, Decimal('3000'))
        self.assertEqual(log.payment_month, '2025-01')
        self.assertEqual(log.changed_by, self.treasurer)

    def test_audit_failure_does_not_abort_edit(self):
        def broken_audit(change):
            raise RuntimeError('audit store offline')

        self.resident.monthly_maintenance = Decimal('2500')
        self.resident.save()
        jan = self.pay('2025-01', '2500', '0')
        self.pay('2025-02', '5000', '0')
        editor = PaymentEditor(RecalculationEngine(notify=lambda *a: None, audit=broken_audit))

        result = editor.update_payment(jan, amount_due=Decimal('3000'))

        self.assertIsNotNone(result.maintenance_change)
        self.resident.refresh_from_db()
        self.assertEqual(self.resident.monthly_maintenance, Decimal('3000'))
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('6000'))

    def test_persistence_failure_rolls_back_whole_edit(self):
        jan = self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '3000', '0')
        engine = RecalculationEngine(repository=FailingRepository('2025-01'),
                                     notify=lambda *a: None)

        with self.assertRaises(RecalculationError):
            PaymentEditor(engine).update_payment(jan, amount_paid=Decimal('1000'))

        self.assertEqual(self.fetch('2025-01').amount_paid, Decimal('3000'))
        self.assertEqual(self.fetch('2025-01').status, Payment.STATUS_PAID)
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('3000'))


# ═══════════════════════════════════════════════════════════
#  PARTIAL PAYMENTS
# ═══════════════════════════════════════════════════════════

class PartialPaymentTests(EngineTestCase):

    def test_records_instalment(self):
        jan = self.pay('2025-01', '3000', '0')
        self.pay('2025-02', '3000', '0')

        self.editor.record_partial_payment(jan, Decimal('1000'), payment_method='UPI',
                                           transaction_id='UTR123', remarks='First instalment')

        jan = self.fetch('2025-01')
        self.assertEqual(jan.amount_paid, Decimal('1000'))
        self.assertEqual(jan.status, Payment.STATUS_PARTIAL)
        self.assertEqual(jan.payment_method, 'UPI')
        self.assertEqual(jan.remarks, 'First instalment')
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('5000'))

    def test_remarks_are_appended(self):
        jan = self.pay('2025-01', '3000', '1000')
        jan.remarks = 'First instalment'
        jan.save()

        self.editor.record_partial_payment(jan, Decimal('2000'), remarks='Balance cleared')

        jan = self.fetch('2025-01')
        self.assertEqual(jan.remarks, 'First instalment | Balance cleared')
        self.assertEqual(jan.status, Payment.STATUS_PAID)

    def test_rejects_overpayment(self):
        jan = self.pay('2025-01', '3000', '2500')
        with self.assertRaises(PaymentRuleError):
            self.editor.record_partial_payment(jan, Decimal('600'))

    def test_rejects_non_positive_amount(self):
        jan = self.pay('2025-01', '3000', '0')
        with self.assertRaises(PaymentRuleError):
            self.editor.record_partial_payment(jan, Decimal('0'))

    def test_instalment_checked_against_stored_total(self):
        self.pay('2025-01', '3000', '0')
        stale = self.fetch('2025-01')
        self.editor.record_partial_payment(self.fetch('2025-01'), Decimal('2500'))

        with self.assertRaises(PaymentRuleError):
            self.editor.record_partial_payment(stale, Decimal('1000'))

        self.assertEqual(self.fetch('2025-01').amount_paid, Decimal('2500'))


# ═══════════════════════════════════════════════════════════
#  OVERDUE
# ═══════════════════════════════════════════════════════════

class OverdueTests(EngineTestCase):

    def test_refresh_status_uses_due_date(self):
        jan = self.pay('2025-01', '3000', '0')
        self.assertFalse(self.engine.refresh_status(jan, today=date(2025, 1, 31)))
        self.assertTrue(self.engine.refresh_status(jan, today=date(2025, 2, 1)))
        self.assertEqual(self.fetch('2025-01').status, Payment.STATUS_OVERDUE)
        self.assertEqual(self.notifications,
                         [('2025-01', Payment.STATUS_PENDING, Payment.STATUS_OVERDUE)])

    def test_update_overdue_payments(self):
        self.pay('2025-01', '3000', '0')
        self.pay('2025-02', '6000', '1000')
        self.pay('2025-03', '3000', '0')

        result = services.update_overdue_payments(today=date(2025, 3, 5), engine=self.engine)

        self.assertEqual(result, {'updated_count': 1})
        self.assertEqual(self.fetch('2025-01').status, Payment.STATUS_OVERDUE)
        self.assertEqual(self.fetch('2025-02').status, Payment.STATUS_PARTIAL)
        self.assertEqual(self.fetch('2025-03').status, Payment.STATUS_PENDING)


# ═══════════════════════════════════════════════════════════
#  MONTHLY GENERATION
# ═══════════════════════════════════════════════════════════

class MonthlyGenerationTests(EngineTestCase):

    def setUp(self):
        super().setUp()
        self.other = Resident.objects.create(
            house_number='A-102', floor='1', owner_name='Priya Sharma',
            monthly_maintenance=Decimal('2500'),
        )
        Resident.objects.create(
            house_number='A-103', floor='1', owner_name='Moved Out',
            monthly_maintenance=Decimal('2500'), status=Resident.STATUS_INACTIVE,
        )

    def test_generates_with_carry_forward(self):
        self.pay('2025-01', '3000', '1000')

        stats = services.generate_monthly_payments('2025-02', engine=self.engine)

        self.assertEqual(stats['created'], 2)
        self.assertEqual(stats['total_carry_forward'], Decimal('2000'))
        self.assertEqual(stats['total_amount_due'], Decimal('7500'))
        feb = self.fetch('2025-02')
        self.assertEqual(feb.amount_due, Decimal('5000'))
        self.assertEqual(feb.status, Payment.STATUS_PENDING)
        self.assertEqual(
            feb.remarks,
            'Includes carry-forward of ₹2,000.00 from previous month. Base maintenance: ₹3,000.00',
        )
        self.assertEqual(self.fetch('2025-02', self.other).amount_due, Decimal('2500'))

    def test_existing_rows_skipped_unless_forced(self):
        services.generate_monthly_payments('2025-02', engine=self.engine)
        self.resident.monthly_maintenance = Decimal('3200')
        self.resident.save()

        stats = services.generate_monthly_payments('2025-02', engine=self.engine)
        self.assertEqual((stats['created'], stats['skipped']), (0, 2))
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('3000'))

        stats = services.generate_monthly_payments('2025-02', force=True, engine=self.engine)
        self.assertEqual(stats['updated'], 2)
        self.assertEqual(self.fetch('2025-02').amount_due, Decimal('3200'))

    def test_zero_due_month_is_generated_paid(self):
        free = Resident.objects.create(
            house_number='A-104', floor='1', owner_name='Society Office',
            monthly_maintenance=Decimal('0'),
        )

        services.generate_monthly_payments('2025-02', engine=self.engine)

        payment = self.fetch('2025-02', free)
        self.assertEqual(payment.amount_due, Decimal('0'))
        self.assertEqual(payment.status, Payment.STATUS_PAID)
        self.assertEqual(self.fetch('2025-02').status, Payment.STATUS_PENDING)
        self.assertIn(('2025-02', Payment.STATUS_PENDING, Payment.STATUS_PAID), self.notifications)

    def test_dry_run_writes_nothing(self):
        stats = services.generate_monthly_payments('2025-02', dry_run=True, engine=self.engine)
        self.assertEqual(len(stats['rows']), 2)
        self.assertEqual(stats['created'], 0)
        self.assertFalse(Payment.objects.exists())


# ═══════════════════════════════════════════════════════════
#  RECEIPTS
# ═══════════════════════════════════════════════════════════

class ReceiptTests(EngineTestCase):

    def test_receipt_issued_when_payment_becomes_paid(self):
        jan = self.pay('2025-01', '3000', '0')

        with self.captureOnCommitCallbacks(execute=True):
            PaymentEditor().update_payment(jan, amount_paid=Decimal('3000'), payment_method='Cash')

        receipt = Receipt.objects.get(payment=jan)
        self.assertEqual(receipt.amount, Decimal('3000'))
        self.assertEqual(receipt.notes, 'Payment for 2025-01')
        self.assertTrue(receipt.receipt_number.startswith(f'RWA{timezone.localdate():%Y%m%d}'))

    def test_no_receipt_for_partial(self):
        jan = self.pay('2025-01', '3000', '0')
        with self.captureOnCommitCallbacks(execute=True):
            PaymentEditor().update_payment(jan, amount_paid=Decimal('1000'))
        self.assertFalse(Receipt.objects.exists())

    def test_no_receipt_when_walk_undoes_cascade_paid(self):
        delivered = []

        def listener(sender, payment, previous_status, **kwargs):
            stored = Payment.objects.get(pk=payment.pk).status
            delivered.append((payment.payment_month, previous_status, payment.status, stored))

        payment_status_changed.connect(listener, weak=False)
        self.addCleanup(payment_status_changed.disconnect, listener)
        jan = self.pay('2025-01', '3000', '2000')
        feb = self.pay('2025-02', '4000', '3200')

        with self.captureOnCommitCallbacks(execute=True):
            PaymentEditor().update_payment(jan, amount_due=Decimal('3500'), amount_paid=Decimal('3500'))

        feb.refresh_from_db()
        self.assertEqual((feb.amount_due, feb.status), (Decimal('3500'), Payment.STATUS_PARTIAL))
        self.assertFalse(Receipt.objects.filter(payment=feb).exists())
        self.assertTrue(Receipt.objects.filter(payment=jan).exists())
        self.assertEqual(delivered, [
            ('2025-01', Payment.STATUS_PARTIAL, Payment.STATUS_PAID, Payment.STATUS_PAID),
        ])

    def test_dispatch_uses_committed_status(self):
        jan = self.pay('2025-01', '3000', '1000')
        jan.status = Payment.STATUS_PAID

        with self.captureOnCommitCallbacks(execute=True):
            emit_status_changed(jan, Payment.STATUS_PARTIAL)

        self.assertFalse(Receipt.objects.exists())

    def test_receipt_numbers_are_sequential_per_day(self):
        today = date(2025, 3, 7)
        self.assertEqual(next_receipt_number(today), 'RWA20250307001')
        jan = self.pay('2025-01', '3000', '3000')
        Receipt.objects.create(payment=jan, receipt_number='RWA20250307001', receipt_date=today,
                               amount=jan.amount_paid, total_amount=jan.amount_paid)
        self.assertEqual(next_receipt_number(today), 'RWA20250307002')
        self.assertEqual(next_receipt_number(date(2025, 3, 8)), 'RWA20250308001')

    def test_generate_missing_receipts(self):
        self.pay('2025-01', '3000', '3000')
        self.pay('2025-02', '3000', '3000')
        self.pay('2025-03', '3000', '0')

        result = generate_missing_receipts()

        self.assertEqual(result['total'], 2)
        self.assertEqual(result['errors'], 0)
        self.assertEqual(Receipt.objects.count(), 2)
        self.assertEqual(generate_missing_receipts()['total'], 0)


# ═══════════════════════════════════════════════════════════
#  REPORTING
# ═══════════════════════════════════════════════════════════

class ReportingTests(EngineTestCase):

    def setUp(self):
        super().setUp()
        self.other = Resident.objects.create(
            house_number='A-102', floor='1', owner_name='Priya Sharma',
            monthly_maintenance=Decimal('2500'),
        )

    def test_payment_statistics(self):
        paid = self.pay('2025-01', '2500', '2500')
        paid.payment_method = 'UPI'
        paid.save()
        partial = self.pay('2025-01', '2500', '500', resident=self.other)
        partial.payment_method = 'Cash'
        partial.save()

        stats = services.payment_statistics('2025-01')

        self.assertEqual(stats['total_amount_due'], Decimal('5000'))
        self.assertEqual(stats['total_amount_paid'], Decimal('3000'))
        self.assertEqual(stats['total_balance_due'], Decimal('2000'))
        self.assertEqual(stats['collection_percentage'], 60.0)
        self.assertEqual(stats['payment_counts']['paid'], 1)
        self.assertEqual(stats['payment_counts']['partial'], 1)
        self.assertEqual(stats['payment_methods']['upi'], Decimal('2500'))
        self.assertEqual(stats['payment_methods']['cash'], Decimal('500'))
        self.assertEqual(stats['residents_without_payment'], 0)

    def test_defaulters(self):
        self.pay('2025-01', '2500', '0')
        self.pay('2025-02', '5000', '1000')
        self.pay('2025-05', '9000', '0')
        self.pay('2025-01', '2500', '2500', resident=self.other)

        rows = services.defaulters(months_back=3, today=date(2025, 6, 15))

        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row['resident'], self.resident)
        self.assertEqual(row['total_due'], Decimal('7500'))
        self.assertEqual(row['total_paid'], Decimal('1000'))
        self.assertEqual(row['total_balance'], Decimal('6500'))
        self.assertEqual(row['overdue_months'], 2)
        self.assertEqual((row['oldest_due_month'], row['latest_due_month']), ('2025-01', '2025-02'))

    def test_monthly_trends_skip_empty_months(self):
        self.pay('2025-01', '2500', '2500')
        self.pay('2025-03', '2500', '1250')

        trends = services.monthly_trends('2025-01', '2025-03')

        self.assertEqual([t['month'] for t in trends], ['2025-01', '2025-03'])
        self.assertEqual(trends[0]['month_name'], 'Jan 2025')
        self.assertEqual(trends[1]['collection_rate'], 50.0)

    def test_unpaid_payments_and_outstanding(self):
        self.pay('2025-01', '3000', '1000')
        self.pay('2025-01', '2500', '2500', resident=self.other)

        unpaid = list(services.unpaid_payments('2025-01'))

        self.assertEqual([p.resident for p in unpaid], [self.resident])
        self.assertEqual(services.total_outstanding('2025-01'), Decimal('2000'))
