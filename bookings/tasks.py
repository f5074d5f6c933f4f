# ==================== BOOKINGS/TASKS.PY (CELERY TASKS) ====================
from celery import shared_task
from django.db import DatabaseError
import logging

from .sweeper import run_sweep

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=3,
    soft_time_limit=50,
)
def sweep_expired_reservations(self):
    """Periodic expiry sweep: expire holds, cancel unpaid bookings, advance started and ended ones"""
    # A retry must not be swallowed by the lock its own failed attempt took
    report = run_sweep(force=self.request.retries > 0)
    if report is None:
        return None
    logger.info(f"Expiry sweep finished: {report}")
    return report.as_dict()
