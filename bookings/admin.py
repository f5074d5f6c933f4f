# ==================== BOOKINGS/ADMIN.PY ====================
from django.contrib import admin
from .models import Booking, SpotHold

@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'driver', 'parking_space', 'spot_label', 'status', 'payment_status', 'start_datetime', 'total_price', 'created_at']
    list_filter = ['status', 'payment_status', 'created_at']
    search_fields = ['driver__username', 'parking_space__title', 'spot_label', 'checkout_request_id', 'mpesa_receipt_number']
    # Status moves go through the state machine, not the admin form
    readonly_fields = [
        'status', 'payment_status', 'checkout_request_id', 'merchant_request_id',
        'mpesa_receipt_number', 'payment_error', 'created_at', 'updated_at'
    ]


@admin.register(SpotHold)
class SpotHoldAdmin(admin.ModelAdmin):
    list_display = ['id', 'parking_space', 'spot_label', 'driver', 'status', 'expires_at', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['id', 'parking_space__title', 'spot_label', 'driver__username', 'session_key']
    readonly_fields = ['created_at', 'updated_at']
