from django.contrib import admin
from .models import User, Resident, Payment, Receipt, MaintenanceChangeLog

@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['email', 'name', 'role', 'is_active', 'created_at']
    search_fields = ['email', 'name']
    list_filter = ['role', 'is_active']

@admin.register(Resident)
class ResidentAdmin(admin.ModelAdmin):
    list_display = ['house_number', 'floor', 'owner_name', 'monthly_maintenance', 'status', 'current_state']
    list_filter = ['status', 'current_state']
    search_fields = ['house_number', 'owner_name', 'contact_number']

@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['resident', 'payment_month', 'amount_due', 'amount_paid', 'status', 'payment_date']
    list_filter = ['status', 'payment_month', 'payment_method']
    search_fields = ['resident__house_number', 'resident__owner_name', 'transaction_id']
    # Amounts are edited through the API so later months are recalculated.
    readonly_fields = ['amount_due', 'amount_paid', 'status']

@admin.register(Receipt)
class ReceiptAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'payment', 'receipt_date', 'total_amount']
    search_fields = ['receipt_number']

@admin.register(MaintenanceChangeLog)
class MaintenanceChangeLogAdmin(admin.ModelAdmin):
    list_display = ['resident', 'old_maintenance', 'new_maintenance', 'payment_month', 'changed_by', 'created_at']
    list_filter = ['payment_month']
