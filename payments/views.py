# ==================== PAYMENTS/VIEWS.PY ====================
from rest_framework import viewsets, status, permissions
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
import logging

from bookings.services import BookingService
from .serializers import BookingPaymentStatusSerializer, PaymentInitiateSerializer
from .services import PaymentReconciliationService

logger = logging.getLogger(__name__)


class PaymentViewSet(viewsets.ViewSet):
    """Start M-Pesa payments and poll their outcome"""
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=['post'])
    def initiate_payment(self, request):
        """Send an STK push for a pending booking

        Body: {
            "booking_id": 1,
            "phone_number": "0712345678"  (optional)
        }
        """
        serializer = PaymentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        phone = serializer.validated_data.get('phone_number')
        checkout_request_id = PaymentReconciliationService.initiate(
            serializer.validated_data['booking_id'],
            str(phone) if phone else None,
            actor=request.user
        )
        logger.info(f"User {request.user.id} started payment {checkout_request_id}")
        return Response({
            'booking_id': serializer.validated_data['booking_id'],
            'checkout_request_id': checkout_request_id,
            'message': 'Check your phone to complete the M-Pesa payment.'
        }, status=status.HTTP_202_ACCEPTED)

    @action(detail=False, methods=['get'])
    def payment_status(self, request):
        """Get payment status for a booking"""
        booking_id = request.query_params.get('booking_id')
        if not booking_id:
            raise ValidationError({'booking_id': 'This query parameter is required.'})

        booking = BookingService.get_booking(booking_id)
        if request.user not in (booking.driver, booking.host):
            raise PermissionDenied()
        return Response(BookingPaymentStatusSerializer(booking).data)
