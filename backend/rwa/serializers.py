"""
RWA — REST API Serializers
"""
from decimal import Decimal
from rest_framework import serializers
from .models import User, Resident, Payment, Receipt, MaintenanceChangeLog
from .months import is_valid_month


def validate_month(value):
    if not is_valid_month(value):
        raise serializers.ValidationError('Payment month must be in YYYY-MM format (month 01-12).')
    return value


# ═══════════════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════════════

class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        try:
            user = User.objects.get(email=data['email'].lower())
        except User.DoesNotExist:
            raise serializers.ValidationError('Invalid credentials.')

        if not user.check_password(data['password']):
            raise serializers.ValidationError('Invalid credentials.')

        if not user.is_active:
            raise serializers.ValidationError('Account disabled.')

        data['user'] = user
        return data


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'role', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']


# ═══════════════════════════════════════════════════════════
#  RESIDENT
# ═══════════════════════════════════════════════════════════

class ResidentSerializer(serializers.ModelSerializer):
    flat_label = serializers.ReadOnlyField()
    latest_payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Resident
        fields = ['id', 'house_number', 'floor', 'flat_label', 'owner_name',
                  'contact_number', 'email', 'address', 'status', 'current_state',
                  'monthly_maintenance', 'move_in_date', 'emergency_contact',
                  'emergency_phone', 'latest_payment_status', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_latest_payment_status(self, obj):
        latest = obj.payments.order_by('-payment_month').values_list('status', flat=True).first()
        return latest or 'no_payment'


# ═══════════════════════════════════════════════════════════
#  PAYMENTS
# ═══════════════════════════════════════════════════════════

class PaymentSerializer(serializers.ModelSerializer):
    flat_label = serializers.CharField(source='resident.flat_label', read_only=True)
    owner_name = serializers.CharField(source='resident.owner_name', read_only=True)
    balance_due = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    due_date = serializers.DateField(read_only=True)
    receipt_number = serializers.CharField(source='receipt.receipt_number', read_only=True,
                                           default=None)

    class Meta:
        model = Payment
        fields = ['id', 'resident', 'flat_label', 'owner_name', 'payment_month',
                  'amount_due', 'amount_paid', 'balance_due', 'status', 'due_date',
                  'payment_date', 'payment_method', 'transaction_id', 'remarks',
                  'receipt_number', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class PaymentCreateSerializer(serializers.ModelSerializer):
    """Input for a single new payment row; status defaults from the amounts."""
    status = serializers.ChoiceField(choices=Payment.STATUS_CHOICES, required=False)

    class Meta:
        model = Payment
        fields = ['resident', 'payment_month', 'amount_due', 'amount_paid', 'status',
                  'payment_date', 'payment_method', 'transaction_id', 'remarks']
        extra_kwargs = {'amount_due': {'required': True}}

    def validate_payment_month(self, value):
        return validate_month(value)

    def validate_resident(self, value):
        if value.status != Resident.STATUS_ACTIVE:
            raise serializers.ValidationError('Payments can only be created for active residents.')
        return value

    def validate(self, data):
        if data.get('amount_paid', Decimal('0')) > data['amount_due']:
            raise serializers.ValidationError({'amount_paid': 'Amount paid cannot exceed amount due.'})
        if Payment.objects.filter(resident=data['resident'], payment_month=data['payment_month']).exists():
            raise serializers.ValidationError(
                {'payment_month': 'A payment for this resident and month already exists.'})
        return data


class PaymentUpdateSerializer(serializers.Serializer):
    """Input for the payment edit boundary; omitted amounts keep their stored value."""
    amount_due = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'),
                                          required=False)
    amount_paid = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'),
                                           required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, max_length=500)
    payment_method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, required=False,
                                             allow_blank=True)
    transaction_id = serializers.CharField(required=False, allow_blank=True, max_length=255)
    payment_date = serializers.DateField(required=False, allow_null=True)

    def validate(self, data):
        payment = self.context.get('payment')
        amount_due = data.get('amount_due', getattr(payment, 'amount_due', None))
        amount_paid = data.get('amount_paid', getattr(payment, 'amount_paid', None))
        if None not in (amount_due, amount_paid) and amount_paid > amount_due:
            raise serializers.ValidationError({'amount_paid': 'Amount paid cannot exceed amount due.'})
        return data


class PartialPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    payment_date = serializers.DateField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, required=False,
                                             allow_blank=True, default='')
    transaction_id = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class GenerateMonthlySerializer(serializers.Serializer):
    month = serializers.CharField(max_length=7, validators=[validate_month])
    force = serializers.BooleanField(required=False, default=False)
    dry_run = serializers.BooleanField(required=False, default=False)


class CarryForwardBreakdownSerializer(serializers.Serializer):
    """Read-only carry-forward explanation for one payment."""
    payment_month = serializers.CharField()
    resident_name = serializers.CharField()
    base_maintenance = serializers.DecimalField(max_digits=10, decimal_places=2)
    total_carryforward = serializers.DecimalField(max_digits=10, decimal_places=2)
    calculated_total_due = serializers.DecimalField(max_digits=10, decimal_places=2)
    current_amount_due = serializers.DecimalField(max_digits=10, decimal_places=2)
    has_carryforward = serializers.BooleanField()
    breakdown = serializers.ListField()


# ═══════════════════════════════════════════════════════════
#  RECEIPTS / AUDIT
# ═══════════════════════════════════════════════════════════

class ReceiptSerializer(serializers.ModelSerializer):
    payment_month = serializers.CharField(source='payment.payment_month', read_only=True)
    owner_name = serializers.CharField(source='payment.resident.owner_name', read_only=True)

    class Meta:
        model = Receipt
        fields = ['id', 'payment', 'payment_month', 'owner_name', 'receipt_number',
                  'receipt_date', 'amount', 'tax_amount', 'total_amount', 'notes', 'created_at']
        read_only_fields = fields


class MaintenanceChangeLogSerializer(serializers.ModelSerializer):
    changed_by_name = serializers.CharField(source='changed_by.name', read_only=True, default=None)

    class Meta:
        model = MaintenanceChangeLog
        fields = ['id', 'resident', 'old_maintenance', 'new_maintenance', 'payment_month',
                  'changed_by', 'changed_by_name', 'created_at']
        read_only_fields = fields


# ═══════════════════════════════════════════════════════════
#  DASHBOARD / REPORTS
# ═══════════════════════════════════════════════════════════

class DashboardSerializer(serializers.Serializer):
    """Read-only serializer for dashboard data."""
    month = serializers.CharField()
    total_residents = serializers.IntegerField()
    total_payments = serializers.IntegerField()
    total_amount_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_balance_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    collection_percentage = serializers.FloatField()
    payment_counts = serializers.DictField(child=serializers.IntegerField())
    payment_methods = serializers.DictField(
        child=serializers.DecimalField(max_digits=14, decimal_places=2))
    residents_without_payment = serializers.IntegerField()


class DefaulterSerializer(serializers.Serializer):
    resident = ResidentSerializer()
    total_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    overdue_months = serializers.IntegerField()
    oldest_due_month = serializers.CharField()
    latest_due_month = serializers.CharField()
