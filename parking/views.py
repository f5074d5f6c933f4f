# ============================= PARKINGSPACE VIEWS =============================
from rest_framework import viewsets, mixins, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from utils.permissions import IsHost
from .ledger import SpotLedger
from .models import ParkingSpace
from .serializers import (
    AvailableSpotsQuerySerializer,
    ParkingSpaceCreateSerializer,
    ParkingSpaceDetailSerializer,
    ParkingSpaceListSerializer,
    ParkingSpotSerializer
)
from .filters import ParkingSpaceFilter


class ParkingSpaceViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Parking space listing and per-spot occupancy"""

    queryset = ParkingSpace.objects.select_related('owner')
    filter_backends = [
        DjangoFilterBackend,
        filters.SearchFilter,
        filters.OrderingFilter
    ]
    filterset_class = ParkingSpaceFilter
    search_fields = ['title', 'address', 'city', 'description']
    ordering_fields = ['created_at', 'price_per_hour']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action == 'list':
            return ParkingSpaceListSerializer
        elif self.action == 'create':
            return ParkingSpaceCreateSerializer
        return ParkingSpaceDetailSerializer

    def get_permissions(self):
        if self.action == 'create':
            permission_classes = [IsHost]
        elif self.action == 'my_spaces':
            permission_classes = [permissions.IsAuthenticated]
        else:
            permission_classes = [permissions.AllowAny]
        return [permission() for permission in permission_classes]

    @action(detail=True, methods=['get'])
    def spots(self, request, pk=None):
        """Every spot of the space with its current state

        Example: /api/v1/parking-spaces/1/spots/
        """
        spots = SpotLedger.query(pk)
        return Response(ParkingSpotSerializer(spots, many=True).data)

    @action(detail=True, methods=['get'])
    def available_spots(self, request, pk=None):
        """Spots free for a window
        Query params: start, end (ISO 8601)

        Example: /api/v1/parking-spaces/1/available_spots/?start=2025-10-27T09:00:00Z&end=2025-10-27T12:00:00Z
        """
        query = AvailableSpotsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        spots = SpotLedger.available_spots(pk, query.validated_data['start'], query.validated_data['end'])
        return Response(ParkingSpotSerializer(spots, many=True).data)

    @action(detail=False, methods=['get'])
    def my_spaces(self, request):
        """Get all parking spaces owned by current user"""
        spaces = self.get_queryset().filter(owner=request.user)
        serializer = ParkingSpaceListSerializer(spaces, many=True)
        return Response(serializer.data)
