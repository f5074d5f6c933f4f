# ==================== PARKING/SERIALIZERS.PY ====================
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from .models import ParkingSpace, ParkingSpot
from users.serializers import UserProfileSerializer


class ParkingSpotSerializer(serializers.ModelSerializer):
    # Set by SpotLedger.query: elapsed claims count as free
    available_as_of = serializers.SerializerMethodField()

    class Meta:
        model = ParkingSpot
        fields = ['label', 'position', 'state', 'held_until', 'available_as_of']

    def get_available_as_of(self, obj):
        return getattr(obj, 'available_as_of', obj.is_available)


class ParkingSpaceListSerializer(serializers.ModelSerializer):
    """Simplified serializer for listing parking spaces"""
    owner_name = serializers.CharField(source='owner.get_full_name', read_only=True)
    total_spots = serializers.IntegerField(read_only=True)

    class Meta:
        model = ParkingSpace
        fields = ['id', 'title', 'address', 'city', 'price_per_hour', 'availability',
                  'total_spots', 'owner_name']


class ParkingSpaceDetailSerializer(serializers.ModelSerializer):
    """Detailed serializer for parking space with all info"""
    owner = UserProfileSerializer(read_only=True)
    spots = ParkingSpotSerializer(many=True, read_only=True)

    class Meta:
        model = ParkingSpace
        fields = ['id', 'owner', 'title', 'description', 'address', 'city', 'price_per_hour',
                  'availability', 'spots', 'created_at', 'updated_at']


class ParkingSpaceCreateSerializer(serializers.ModelSerializer):
    """Hosts list a space together with its spot labels"""
    spot_labels = serializers.ListField(
        child=serializers.CharField(max_length=50),
        write_only=True,
        allow_empty=False
    )

    class Meta:
        model = ParkingSpace
        fields = ['id', 'title', 'description', 'address', 'city', 'price_per_hour', 'spot_labels']

    def create(self, validated_data):
        labels = validated_data.pop('spot_labels')
        try:
            return ParkingSpace.objects.create_with_spots(self.context['request'].user, labels, **validated_data)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'spot_labels': e.messages})


class AvailableSpotsQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()

    def validate(self, data):
        if data['end'] <= data['start']:
            raise serializers.ValidationError("End time must be after start time")
        return data
