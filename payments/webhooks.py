# ==================== PAYMENTS/WEBHOOKS.PY ====================
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
import json
import logging

from utils.exceptions import StaleCallback
from .services import PaymentReconciliationService

logger = logging.getLogger(__name__)

ACCEPTED = {'ResultCode': 0, 'ResultDesc': 'Accepted'}


@csrf_exempt
@require_POST
def mpesa_callback(request):
    """Handle M-Pesa STK push result callbacks.

    Daraja retries anything but an acceptance, so every well-formed delivery
    is acknowledged, including unknown and duplicate ones.
    """
    try:
        body = json.loads(request.body)
    except ValueError:
        logger.warning("M-Pesa callback with malformed JSON")
        return JsonResponse({'ResultCode': 1, 'ResultDesc': 'Malformed payload'}, status=400)

    try:
        result = PaymentReconciliationService.parse_callback(body)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"M-Pesa callback without stkCallback envelope: {str(e)}")
        return JsonResponse(ACCEPTED)

    try:
        booking = PaymentReconciliationService.on_callback(payload=body, **result)
    except StaleCallback as e:
        logger.warning(f"Ignoring M-Pesa callback: {e}")
        return JsonResponse(ACCEPTED)

    logger.info(
        f"M-Pesa callback {result['correlation_id']} applied to booking {booking.id}: "
        f"{booking.status}/{booking.payment_status}"
    )
    return JsonResponse(ACCEPTED)
