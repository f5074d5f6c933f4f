# ==================== PARKSHARE_BACKEND/CELERY.PY ====================
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'parkshare_backend.settings')

app = Celery('parkshare_backend')

# CELERY_* settings from Django settings, e.g. CELERY_BEAT_SCHEDULE
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
