# ============================= BOOKINGS VIEWS =============================
from rest_framework import viewsets, mixins, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend

from bookings.models import Booking
from bookings.serializers import (
    BookingCreateSerializer,
    BookingListSerializer,
    BookingDetailSerializer,
    BookingStatusUpdateSerializer,
    HoldCreateSerializer,
    SpotHoldSerializer
)
from bookings.services import BookingService, HoldService
from bookings.sweeper import run_sweep
from utils.permissions import IsOwnerOrDriver

SESSION_KEY_HEADER = 'X-Session-Key'


def session_key_from(request):
    return request.headers.get(SESSION_KEY_HEADER, '')


class HoldViewSet(viewsets.ViewSet):
    """The driver's cart: short-lived holds on spots.

    Anonymous visitors identify themselves with the ``X-Session-Key`` header.
    """
    permission_classes = [permissions.AllowAny]

    def list(self, request):
        holds = HoldService.active_holds(driver=request.user, session_key=session_key_from(request))
        return Response(SpotHoldSerializer(holds, many=True).data)

    def create(self, request):
        """Hold a spot

        Body: { "parking_space": 1, "spot_label": "A1", "ttl_minutes": 15 }
        """
        serializer = HoldCreateSerializer(
            data=request.data,
            context={'request': request, 'session_key': session_key_from(request)}
        )
        serializer.is_valid(raise_exception=True)
        hold = serializer.save()
        return Response(SpotHoldSerializer(hold).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        hold = HoldService.release_hold(pk, driver=request.user, session_key=session_key_from(request))
        return Response(SpotHoldSerializer(hold).data)


class BookingViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Booking creation and lifecycle"""

    permission_classes = [permissions.IsAuthenticated, IsOwnerOrDriver]
    filter_backends = [
        DjangoFilterBackend,
        filters.SearchFilter,
        filters.OrderingFilter
    ]
    filterset_fields = ['status', 'payment_status', 'parking_space']
    search_fields = ['parking_space__title', 'parking_space__address', 'spot_label']
    ordering_fields = ['created_at', 'start_datetime', 'total_price']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action == 'create':
            return BookingCreateSerializer
        elif self.action == 'list':
            return BookingListSerializer
        return BookingDetailSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['session_key'] = session_key_from(self.request)
        return context

    def get_queryset(self):
        user = self.request.user
        # Drivers see their own bookings, hosts the bookings on their spaces
        return Booking.objects.filter(
            Q(driver=user) | Q(host=user)
        ).select_related('parking_space', 'parking_space__owner', 'driver', 'host')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        return Response(BookingDetailSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Update booking status

        Body: { "status": "cancelled|active|completed", "reason": "optional" }
        """
        booking = self.get_object()
        serializer = BookingStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.update_status(
            booking.id,
            serializer.validated_data['status'],
            actor=request.user,
            reason=serializer.validated_data.get('reason', '')
        )
        return Response(BookingDetailSerializer(booking).data)

    @action(detail=True, methods=['post'])
    def cancel_booking(self, request, pk=None):
        """Cancel a booking (driver) or decline it (host)"""
        booking = self.get_object()
        booking = BookingService.update_status(
            booking.id,
            'cancelled',
            actor=request.user,
            reason=request.data.get('reason', '')
        )
        return Response({
            'message': 'Booking cancelled successfully',
            'booking': BookingDetailSerializer(booking).data
        })

    @action(detail=False, methods=['post'])
    def sweep(self, request):
        """Client-side nudge to resolve expired holds and bookings; rate-limited"""
        report = run_sweep()
        if report is None:
            return Response({'swept': False}, status=status.HTTP_202_ACCEPTED)
        return Response({'swept': True, 'report': report.as_dict()})
