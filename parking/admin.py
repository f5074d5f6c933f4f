# ==================== PARKING/ADMIN.PY ====================
from django.contrib import admin
from .models import ParkingSpace, ParkingSpot

class ParkingSpotInline(admin.TabularInline):
    model = ParkingSpot
    extra = 1
    fields = ['label', 'position', 'state', 'hold_reference', 'booking', 'held_until', 'version']
    # Occupancy is owned by the ledger
    readonly_fields = ['state', 'hold_reference', 'booking', 'held_until', 'version']

@admin.register(ParkingSpace)
class ParkingSpaceAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'city', 'availability', 'total_spots', 'price_per_hour', 'created_at']
    list_filter = ['availability', 'city', 'created_at']
    search_fields = ['title', 'address', 'owner__username']
    readonly_fields = ['availability', 'created_at', 'updated_at']
    inlines = [ParkingSpotInline]
    fieldsets = (
        ('Basic Info', {'fields': ('owner', 'title', 'description', 'address', 'city')}),
        ('Pricing', {'fields': ('price_per_hour',)}),
        ('Availability', {'fields': ('availability',)}),
        ('Timestamps', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )
