# ==================== PAYMENTS/SERIALIZERS.PY ====================
from rest_framework import serializers
from phonenumber_field.serializerfields import PhoneNumberField

from bookings.models import Booking
from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(source='booking.id', read_only=True)
    parking_space = serializers.CharField(source='booking.parking_space.title', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'booking_id', 'parking_space', 'amount', 'phone_number', 'status',
            'checkout_request_id', 'merchant_request_id', 'result_code', 'result_desc',
            'mpesa_receipt_number', 'transaction_date', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class PaymentInitiateSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    # Defaults to the driver's registered number
    phone_number = PhoneNumberField(required=False, region='KE')


class BookingPaymentStatusSerializer(serializers.ModelSerializer):
    """What a polling client needs to know about its checkout"""
    attempts = PaymentSerializer(source='payments', many=True, read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'status', 'payment_status', 'total_price', 'checkout_request_id',
            'mpesa_receipt_number', 'payment_error', 'attempts'
        ]
        read_only_fields = fields
