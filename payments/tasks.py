# ==================== PAYMENTS/TASKS.PY (CELERY TASKS) ====================
from celery import shared_task
from django.conf import settings
from django.utils import timezone
from datetime import timedelta
import logging

logger = logging.getLogger(__name__)

RECONCILE_BATCH_SIZE = 50


@shared_task
def reconcile_pending_payments():
    """Ask Daraja about STK pushes whose callback never arrived"""
    from utils.exceptions import GatewayUnavailable, StaleCallback
    from .models import Payment
    from .services import MpesaService, PaymentReconciliationService

    cutoff = timezone.now() - timedelta(seconds=settings.MPESA_QUERY_AFTER_SECONDS)
    overdue = Payment.objects.filter(status='initiated', created_at__lte=cutoff).order_by('created_at')
    mpesa = MpesaService()
    applied = 0

    for payment in overdue[:RECONCILE_BATCH_SIZE]:
        try:
            result = mpesa.stk_query(payment.checkout_request_id)
        except GatewayUnavailable:
            # Daraja answers with an error while the payer is still being prompted
            logger.info(f"No definitive result yet for {payment.checkout_request_id}")
            continue

        result_code = result.get('ResultCode')
        if result_code is None or str(result_code) == '':
            continue

        try:
            PaymentReconciliationService.on_callback(
                payment.checkout_request_id,
                int(result_code),
                result.get('ResultDesc', ''),
                payload=result
            )
            applied += 1
        except StaleCallback as e:
            logger.info(f"Query result already applied: {e}")

    logger.info(f"Reconciled {applied} pending M-Pesa payments")
    return applied
