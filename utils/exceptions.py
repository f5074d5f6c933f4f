# ==================== UTILS/EXCEPTIONS.PY ====================
from rest_framework.exceptions import APIException
from rest_framework import status


class SpotConflict(APIException):
    """Spot is already held or booked by someone else"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This spot was just taken, choose another.'
    default_code = 'spot_conflict'


class SpotUnavailable(SpotConflict):
    default_detail = 'This spot is not available for the selected time, choose another.'
    default_code = 'spot_unavailable'


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Requested space, spot or booking was not found.'
    default_code = 'not_found'


class InvalidTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Booking cannot move to the requested status.'
    default_code = 'invalid_transition'


class GatewayUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Payment not received, try again.'
    default_code = 'gateway_unavailable'


class StaleCallback(Exception):
    """Duplicate or unknown payment callback. Logged and acknowledged, never surfaced."""

    def __init__(self, correlation_id, reason):
        self.correlation_id = correlation_id
        self.reason = reason
        super().__init__(f"Stale callback {correlation_id}: {reason}")
