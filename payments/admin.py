# ==================== PAYMENTS/ADMIN.PY ====================
from django.contrib import admin
from django.utils.html import format_html

from .models import Payment


class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        'checkout_request_id', 'booking_link', 'amount', 'phone_number',
        'status_badge', 'mpesa_receipt_number', 'created_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['checkout_request_id', 'mpesa_receipt_number', 'phone_number', 'booking__id']
    readonly_fields = [
        'booking', 'amount', 'phone_number', 'checkout_request_id', 'merchant_request_id',
        'result_code', 'result_desc', 'mpesa_receipt_number', 'transaction_date',
        'callback_payload', 'created_at', 'updated_at'
    ]

    def booking_link(self, obj):
        return f"Booking #{obj.booking_id}"
    booking_link.short_description = 'Booking'

    def status_badge(self, obj):
        colors = {
            'initiated': '#FFA500',
            'completed': '#28A745',
            'failed': '#DC3545',
        }
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; border-radius: 3px;">{}</span>',
            colors.get(obj.status, '#6C757D'),
            obj.get_status_display()
        )
    status_badge.short_description = 'Status'


admin.site.register(Payment, PaymentAdmin)
