# ==================== BOOKINGS/SERIALIZERS.PY ====================
from datetime import timedelta

from rest_framework import serializers
from .models import Booking, SpotHold
from .services import BookingService, HoldService
from parking.serializers import ParkingSpaceListSerializer


class SpotHoldSerializer(serializers.ModelSerializer):
    parking_space_title = serializers.CharField(source='parking_space.title', read_only=True)

    class Meta:
        model = SpotHold
        fields = ['id', 'parking_space', 'parking_space_title', 'spot_label', 'status',
                  'expires_at', 'booking', 'created_at']
        read_only_fields = fields


class HoldCreateSerializer(serializers.Serializer):
    parking_space = serializers.IntegerField()
    spot_label = serializers.CharField(max_length=50)
    # Defaults to HOLD_TTL_MINUTES
    ttl_minutes = serializers.IntegerField(required=False, min_value=1, max_value=60)

    def create(self, validated_data):
        request = self.context['request']
        ttl = None
        if validated_data.get('ttl_minutes'):
            ttl = timedelta(minutes=validated_data['ttl_minutes'])
        return HoldService.place_hold(
            validated_data['parking_space'],
            validated_data['spot_label'],
            ttl=ttl,
            driver=request.user,
            session_key=self.context.get('session_key', '')
        )


class BookingCreateSerializer(serializers.Serializer):
    parking_space = serializers.IntegerField()
    spot_label = serializers.CharField(max_length=50)
    start_datetime = serializers.DateTimeField()
    end_datetime = serializers.DateTimeField()
    # {"plate": ..., "make": ..., "model": ..., "color": ...}
    car_details = serializers.JSONField(required=False)
    hold_id = serializers.UUIDField(required=False)

    def validate(self, data):
        if data['end_datetime'] <= data['start_datetime']:
            raise serializers.ValidationError("End time must be after start time")
        return data

    def create(self, validated_data):
        request = self.context['request']
        return BookingService.create_booking(
            validated_data['parking_space'],
            validated_data['spot_label'],
            request.user,
            validated_data['start_datetime'],
            validated_data['end_datetime'],
            car_details=validated_data.get('car_details'),
            hold_id=validated_data.get('hold_id'),
            session_key=self.context.get('session_key', '')
        )


class BookingListSerializer(serializers.ModelSerializer):
    parking_space_title = serializers.CharField(source='parking_space.title', read_only=True)
    owner_name = serializers.CharField(source='host.get_full_name', read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'parking_space', 'parking_space_title', 'spot_label', 'start_datetime',
                  'end_datetime', 'status', 'payment_status', 'total_price', 'owner_name', 'created_at']
        read_only_fields = fields


class BookingDetailSerializer(serializers.ModelSerializer):
    parking_space = ParkingSpaceListSerializer(read_only=True)
    driver_name = serializers.CharField(source='driver.get_full_name', read_only=True)
    driver_phone = serializers.CharField(source='driver.contact', read_only=True)
    payment_deadline = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = ['id', 'parking_space', 'spot_label', 'driver', 'driver_name', 'driver_phone', 'host',
                  'start_datetime', 'end_datetime', 'total_price', 'status', 'payment_status',
                  'checkout_request_id', 'mpesa_receipt_number', 'payment_error', 'car_details',
                  'cancellation_reason', 'payment_deadline', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_payment_deadline(self, obj):
        if obj.status != 'pending':
            return None
        return obj.payment_deadline()


class BookingStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
