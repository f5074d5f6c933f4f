# ============================= PARKING/FILTERS.PY =============================
import django_filters
from .models import ParkingSpace


class ParkingSpaceFilter(django_filters.FilterSet):
    """Filtering for the space listing"""

    price_min = django_filters.NumberFilter(
        field_name='price_per_hour',
        lookup_expr='gte',
        label='Minimum Price Per Hour'
    )
    price_max = django_filters.NumberFilter(
        field_name='price_per_hour',
        lookup_expr='lte',
        label='Maximum Price Per Hour'
    )

    availability = django_filters.ChoiceFilter(
        choices=ParkingSpace.AVAILABILITY_CHOICES
    )

    class Meta:
        model = ParkingSpace
        fields = {
            'city': ['exact', 'icontains'],
            'owner': ['exact'],
            'created_at': ['gte', 'lte'],
        }
