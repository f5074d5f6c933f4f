# ==================== BOOKINGS/SIGNALS.PY ====================
from django.dispatch import Signal

# Sent inside the writing transaction after a booking is created or changes
# status or payment status.
# kwargs: booking, previous_status, previous_payment_status
booking_changed = Signal()

# Sent when the sweeper expires an unconverted hold.
# kwargs: hold
hold_expired = Signal()
