"""
RWA — API Views
All endpoints for the residents' welfare association backend.
"""
import io
from datetime import date

from django.conf import settings
from django.db.models import Q
from django.http import HttpResponse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .models import Resident, Payment, Receipt, MaintenanceChangeLog
from .months import current_month, is_valid_month, previous_month, shift_month
from .permissions import IsRWAAdmin, IsAdminOrTreasurer
from .recalculation import PaymentEditor, RecalculationEngine
from .receipts import generate_missing_receipts
from .serializers import (
    LoginSerializer, UserSerializer, ResidentSerializer,
    PaymentSerializer, PaymentCreateSerializer, PaymentUpdateSerializer,
    PartialPaymentSerializer, GenerateMonthlySerializer, CarryForwardBreakdownSerializer,
    ReceiptSerializer, MaintenanceChangeLogSerializer,
    DashboardSerializer, DefaulterSerializer,
)
from . import services


def _month_param(request, name='month', default=None):
    month = request.query_params.get(name) or default
    if month and not is_valid_month(month):
        return None
    return month


def _invalid_month(name='month'):
    return Response({'detail': f'Invalid {name}. Use YYYY-MM.'},
                    status=status.HTTP_400_BAD_REQUEST)


# ═══════════════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════════════

class LoginView(APIView):
    """POST /api/auth/login/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data['user']
        refresh = RefreshToken.for_user(user)
        refresh['role'] = user.role

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': UserSerializer(user).data,
            'role': user.role,
            'association': settings.RWA_NAME,
        })


class MeView(APIView):
    """GET /api/auth/me/"""

    def get(self, request):
        return Response(UserSerializer(request.user).data)


# ═══════════════════════════════════════════════════════════
#  RESIDENTS
# ═══════════════════════════════════════════════════════════

class ResidentViewSet(viewsets.ModelViewSet):
    """CRUD /api/residents/"""
    queryset = Resident.objects.all()
    serializer_class = ResidentSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'current_state']
    search_fields = ['house_number', 'owner_name', 'contact_number']
    ordering_fields = ['house_number', 'owner_name', 'monthly_maintenance', 'created_at']

    def get_permissions(self):
        if self.request.method in permissions.SAFE_METHODS:
            return [permissions.IsAuthenticated()]
        return [IsRWAAdmin()]

    def destroy(self, request, *args, **kwargs):
        resident = self.get_object()
        if resident.payments.exists():
            return Response(
                {'detail': 'Resident has payment records; mark them inactive instead.'},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().destroy(request, *args, **kwargs)

    @action(detail=True, methods=['get'])
    def payments(self, request, pk=None):
        """GET /api/residents/{id}/payments/"""
        resident = self.get_object()
        qs = resident.payments.select_related('resident', 'receipt').order_by('-payment_month')
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(PaymentSerializer(page, many=True).data)
        return Response(PaymentSerializer(qs, many=True).data)

    @action(detail=True, methods=['get'], url_path='maintenance-history')
    def maintenance_history(self, request, pk=None):
        """GET /api/residents/{id}/maintenance-history/"""
        resident = self.get_object()
        logs = resident.maintenance_changes.select_related('changed_by')
        return Response(MaintenanceChangeLogSerializer(logs, many=True).data)


# ═══════════════════════════════════════════════════════════
#  PAYMENTS
# ═══════════════════════════════════════════════════════════

class PaymentViewSet(viewsets.ModelViewSet):
    """
    CRUD /api/payments/
    Edits (PUT/PATCH) go through PaymentEditor so later months are
    recalculated in the same transaction.
    """
    serializer_class = PaymentSerializer
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['payment_month', 'amount_due', 'amount_paid', 'status', 'created_at']

    def get_permissions(self):
        if self.request.method in permissions.SAFE_METHODS:
            return [permissions.IsAuthenticated()]
        if self.action == 'destroy':
            return [IsRWAAdmin()]
        return [IsAdminOrTreasurer()]

    def get_queryset(self):
        qs = Payment.objects.select_related('resident', 'receipt')

        month = self.request.query_params.get('month')
        if month:
            qs = qs.filter(payment_month=month)

        status_param = self.request.query_params.get('status')
        if status_param:
            qs = qs.filter(status=status_param)

        resident_id = self.request.query_params.get('resident')
        if resident_id:
            qs = qs.filter(resident_id=resident_id)

        search = self.request.query_params.get('search')
        if search:
            qs = qs.filter(
                Q(resident__house_number__icontains=search)
                | Q(resident__owner_name__icontains=search)
                | Q(transaction_id__icontains=search)
            )
        return qs

    def create(self, request, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = services.create_payment(**serializer.validated_data)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """PUT/PATCH /api/payments/{id}/"""
        payment = self.get_object()
        serializer = PaymentUpdateSerializer(data=request.data, context={'payment': payment})
        serializer.is_valid(raise_exception=True)

        # Omitted amounts stay None so the editor keeps the stored values.
        result = PaymentEditor().update_payment(
            payment, actor=request.user, **serializer.validated_data,
        )
        payload = PaymentSerializer(result.payment).data
        payload['cascaded_months'] = [p.payment_month for p in result.cascaded]
        change = result.maintenance_change
        payload['maintenance_updated'] = change is not None
        if change is not None:
            payload['new_maintenance'] = str(change.new_maintenance)
            payload['propagated_months'] = [p.payment_month for p in change.updated_payments]
        return Response(payload)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    @action(detail=True, methods=['post'], url_path='partial-payment')
    def partial_payment(self, request, pk=None):
        """POST /api/payments/{id}/partial-payment/"""
        payment = self.get_object()
        serializer = PartialPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PaymentEditor().record_partial_payment(
            payment, actor=request.user, **serializer.validated_data,
        )
        return Response(PaymentSerializer(result.payment).data)

    @action(detail=True, methods=['get'], url_path='carry-forward')
    def carry_forward(self, request, pk=None):
        """GET /api/payments/{id}/carry-forward/ — how amount_due is made up"""
        payment = self.get_object()
        engine = RecalculationEngine()
        carry = engine.carry_forward(payment.resident_id, payment.payment_month)
        base = payment.resident.monthly_maintenance

        breakdown = []
        if carry > 0:
            prev = engine.repository.get_payment(payment.resident_id,
                                                 previous_month(payment.payment_month))
            breakdown.append({
                'month': prev.payment_month,
                'amount_due': str(prev.amount_due),
                'amount_paid': str(prev.amount_paid),
                'balance': str(carry),
                'status': prev.status,
            })

        data = {
            'payment_month': payment.payment_month,
            'resident_name': payment.resident.owner_name,
            'base_maintenance': base,
            'total_carryforward': carry,
            'calculated_total_due': base + carry,
            'current_amount_due': payment.amount_due,
            'has_carryforward': carry > 0,
            'breakdown': breakdown,
        }
        return Response(CarryForwardBreakdownSerializer(data).data)

    @action(detail=True, methods=['post'], url_path='refresh-status')
    def refresh_status(self, request, pk=None):
        """POST /api/payments/{id}/refresh-status/ — re-check against the due date"""
        payment = self.get_object()
        changed = RecalculationEngine().refresh_status(payment)
        payload = PaymentSerializer(payment).data
        payload['changed'] = changed
        return Response(payload)

    @action(detail=False, methods=['post'], url_path='generate-monthly')
    def generate_monthly(self, request):
        """POST /api/payments/generate-monthly/ {month, force, dry_run}"""
        serializer = GenerateMonthlySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        stats = services.generate_monthly_payments(**serializer.validated_data)
        stats['rows'] = [
            {k: str(v) for k, v in row.items()} for row in stats['rows']
        ]
        stats['total_carry_forward'] = str(stats['total_carry_forward'])
        stats['total_amount_due'] = str(stats['total_amount_due'])
        return Response(stats, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'], url_path='update-overdue')
    def update_overdue(self, request):
        """POST /api/payments/update-overdue/"""
        return Response(services.update_overdue_payments())

    @action(detail=False, methods=['get'])
    def unpaid(self, request):
        """GET /api/payments/unpaid/?month=YYYY-MM"""
        month = _month_param(request, default=current_month())
        if month is None:
            return _invalid_month()
        qs = services.unpaid_payments(month)
        return Response({
            'month': month,
            'count': qs.count(),
            'total_outstanding': f'{services.total_outstanding(month):.2f}',
            'payments': PaymentSerializer(qs, many=True).data,
        })

    @action(detail=False, methods=['get'])
    def defaulters(self, request):
        """GET /api/payments/defaulters/?months_back=3"""
        try:
            months_back = int(request.query_params.get('months_back', services.DEFAULTER_MONTHS_BACK))
        except ValueError:
            return Response({'detail': 'months_back must be an integer.'},
                            status=status.HTTP_400_BAD_REQUEST)
        rows = services.defaulters(months_back=months_back)
        return Response(DefaulterSerializer(rows, many=True).data)

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        """GET /api/payments/statistics/?month=YYYY-MM"""
        month = _month_param(request, default=current_month())
        if month is None:
            return _invalid_month()
        return Response(DashboardSerializer(services.payment_statistics(month)).data)

    @action(detail=False, methods=['get'])
    def trends(self, request):
        """GET /api/payments/trends/?start=YYYY-MM&end=YYYY-MM"""
        end = _month_param(request, 'end', default=current_month())
        if end is None:
            return _invalid_month('end')
        start = _month_param(request, 'start', default=shift_month(end, -11))
        if start is None:
            return _invalid_month('start')
        if start > end:
            return Response({'detail': 'start must not be after end.'},
                            status=status.HTTP_400_BAD_REQUEST)
        trends = services.monthly_trends(start, end)
        for row in trends:
            row['total_due'] = str(row['total_due'])
            row['total_paid'] = str(row['total_paid'])
        return Response(trends)

    @action(detail=False, methods=['get'])
    def export(self, request):
        """GET /api/payments/export/?month=YYYY-MM[&status=Paid] — CSV download"""
        month = _month_param(request, default=current_month())
        if month is None:
            return _invalid_month()
        qs = (
            Payment.objects.select_related('resident')
            .filter(payment_month=month)
            .order_by('resident__house_number', 'resident__floor')
        )
        status_param = request.query_params.get('status')
        if status_param:
            qs = qs.filter(status=status_param)

        buffer = services.write_payments_csv(io.StringIO(), qs)
        response = HttpResponse(buffer.getvalue(), content_type='text/csv')
        response['Content-Disposition'] = (
            f'attachment; filename="payments_{month}_{date.today():%Y%m%d}.csv"'
        )
        return response


# ═══════════════════════════════════════════════════════════
#  RECEIPTS
# ═══════════════════════════════════════════════════════════

class ReceiptViewSet(viewsets.ReadOnlyModelViewSet):
    """GET /api/receipts/"""
    serializer_class = ReceiptSerializer
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['receipt_number', 'payment__resident__owner_name']
    ordering_fields = ['receipt_date', 'receipt_number']

    def get_queryset(self):
        qs = Receipt.objects.select_related('payment__resident')
        month = self.request.query_params.get('month')
        if month:
            qs = qs.filter(payment__payment_month=month)
        return qs

    @action(detail=False, methods=['post'], url_path='generate-missing',
            permission_classes=[IsAdminOrTreasurer])
    def generate_missing(self, request):
        """POST /api/receipts/generate-missing/"""
        return Response(generate_missing_receipts())


# ═══════════════════════════════════════════════════════════
#  AUDIT LOG
# ═══════════════════════════════════════════════════════════

class MaintenanceChangeLogViewSet(viewsets.ReadOnlyModelViewSet):
    """GET /api/maintenance-changes/"""
    serializer_class = MaintenanceChangeLogSerializer
    permission_classes = [IsRWAAdmin]

    def get_queryset(self):
        qs = MaintenanceChangeLog.objects.select_related('changed_by')
        resident_id = self.request.query_params.get('resident')
        if resident_id:
            qs = qs.filter(resident_id=resident_id)
        return qs


# ═══════════════════════════════════════════════════════════
#  DASHBOARD
# ═══════════════════════════════════════════════════════════

class DashboardView(APIView):
    """GET /api/dashboard/?month=YYYY-MM"""

    def get(self, request):
        month = _month_param(request, default=current_month())
        if month is None:
            return _invalid_month()
        return Response(DashboardSerializer(services.payment_statistics(month)).data)
