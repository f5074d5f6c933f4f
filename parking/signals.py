# ==================== PARKING/SIGNALS.PY ====================
from django.dispatch import Signal

# Sent after every ledger mutation, inside the mutating transaction.
# kwargs: space_id, spot_label, state, held_until, availability
spot_changed = Signal()
