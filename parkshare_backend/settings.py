# ==================== PARKSHARE_BACKEND/SETTINGS.PY ====================
import os
from pathlib import Path
from datetime import timedelta
from decouple import config

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config('SECRET_KEY', default='your-secret-key-change-in-production')
DEBUG = config('DEBUG', default=True, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party apps
    'rest_framework',
    'rest_framework_simplejwt',
    'corsheaders',
    'django_filters',
    'django_celery_beat',
    'phonenumber_field',

    # Local apps
    'users',
    'parking',
    'bookings',
    'payments',
    'notifications.apps.NotificationsConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'parkshare_backend.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'parkshare_backend.wsgi.application'

# Database
DATABASES = {
    'default': {
        'ENGINE': config('DB_ENGINE', default='django.db.backends.postgresql'),
        'NAME': config('DB_NAME', default='parkshare_db'),
        'USER': config('DB_USER', default='postgres'),
        'PASSWORD': config('DB_PASSWORD', default='password'),
        'HOST': config('DB_HOST', default='localhost'),
        'PORT': config('DB_PORT', default='5432'),
    }
}

# Cache (sweep lock, M-Pesa access token, throttling)
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': config('REDIS_CACHE_URL', default='redis://localhost:6379/1'),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
# Daraja timestamps are Nairobi local time
TIME_ZONE = 'Africa/Nairobi'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Custom User Model
AUTH_USER_MODEL = 'users.CustomUser'

PHONENUMBER_DEFAULT_REGION = 'KE'

# REST Framework Configuration
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticatedOrReadOnly',
    ),
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
        'rest_framework.filters.SearchFilter',
        'rest_framework.filters.OrderingFilter'
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_THROTTLE_CLASSES': [
        'rest_framework.throttling.AnonRateThrottle',
        'rest_framework.throttling.UserRateThrottle'
    ],
    'DEFAULT_THROTTLE_RATES': {
        'anon': '100/hour',
        'user': '1000/hour'
    }
}

# JWT Configuration
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=1),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'ROTATE_REFRESH_TOKENS': True,
    'BLACKLIST_AFTER_ROTATION': False,
    'UPDATE_LAST_LOGIN': True,
    'ALGORITHM': 'HS256',
    'SIGNING_KEY': SECRET_KEY,
}

# CORS Configuration
CORS_ALLOWED_ORIGINS = config('CORS_ALLOWED_ORIGINS',
                              default='http://localhost:8000,http://localhost:3000').split(',')
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_HEADERS = [
    'accept',
    'authorization',
    'content-type',
    'origin',
    'x-csrftoken',
    'x-requested-with',
    'x-session-key',
]

# Reservation lifecycle
HOLD_TTL_MINUTES = config('HOLD_TTL_MINUTES', default=15, cast=int)
PAYMENT_GRACE_PERIOD_MINUTES = config('PAYMENT_GRACE_PERIOD_MINUTES', default=30, cast=int)
SWEEP_INTERVAL_SECONDS = config('SWEEP_INTERVAL_SECONDS', default=60, cast=int)
# Minimum spacing between two sweeps, however they are triggered
SWEEP_LOCK_SECONDS = config('SWEEP_LOCK_SECONDS', default=30, cast=int)
# Change-stream rows older than this are pruned hourly
CHANGE_EVENT_RETENTION_HOURS = config('CHANGE_EVENT_RETENTION_HOURS', default=24, cast=int)

# M-Pesa (Safaricom Daraja) Configuration
MPESA_ENVIRONMENT = config('MPESA_ENVIRONMENT', default='sandbox')
MPESA_BASE_URL = config('MPESA_BASE_URL', default='')
MPESA_CONSUMER_KEY = config('MPESA_CONSUMER_KEY', default='')
MPESA_CONSUMER_SECRET = config('MPESA_CONSUMER_SECRET', default='')
MPESA_SHORTCODE = config('MPESA_SHORTCODE', default='174379')
MPESA_PASSKEY = config('MPESA_PASSKEY', default='')
MPESA_CALLBACK_URL = config('MPESA_CALLBACK_URL', default='http://localhost:8000/webhooks/mpesa/callback/')
MPESA_TIMEOUT = config('MPESA_TIMEOUT', default=30, cast=int)
MPESA_QUERY_AFTER_SECONDS = config('MPESA_QUERY_AFTER_SECONDS', default=120, cast=int)

# Email Configuration (for notifications)
EMAIL_BACKEND = config('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = config('EMAIL_HOST', default='smtp.gmail.com')
EMAIL_PORT = config('EMAIL_PORT', default=587, cast=int)
EMAIL_USE_TLS = config('EMAIL_USE_TLS', default=True, cast=bool)
EMAIL_HOST_USER = config('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = config('EMAIL_HOST_PASSWORD', default='')
DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='noreply@parkshare.co.ke')

LOG_DIR = BASE_DIR / 'logs'
os.makedirs(LOG_DIR, exist_ok=True)
# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose'
        },
        'file': {
            'class': 'logging.FileHandler',
            'filename': os.path.join(LOG_DIR, 'debug.log'),
            'formatter': 'verbose'
        },
    },
    'root': {
        'handlers': ['console', 'file'],
        'level': 'INFO',
    },
}

# Celery Configuration
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE

CELERY_BEAT_SCHEDULE = {
    'sweep-expired-reservations': {
        'task': 'bookings.tasks.sweep_expired_reservations',
        'schedule': timedelta(seconds=SWEEP_INTERVAL_SECONDS),
    },
    'reconcile-mpesa-payments': {
        'task': 'payments.tasks.reconcile_pending_payments',
        'schedule': crontab(minute='*/2'),  # Every 2 minutes
    },
    'prune-change-events': {
        'task': 'notifications.tasks.prune_change_events',
        'schedule': crontab(minute=0),  # Hourly
    },
}


# ==================== MANAGE.PY COMMANDS ====================
"""
Run these commands to set up the project:

1. Create virtual environment:
   python -m venv venv
   source venv/bin/activate  # On Windows: venv\\Scripts\\activate

2. Install the project:
   pip install -e .[test]

3. Create .env file with the settings read above (SECRET_KEY, DB_*, MPESA_*, ...)

4. Create and run migrations:
   python manage.py makemigrations users parking bookings payments notifications
   python manage.py migrate

5. Create superuser:
   python manage.py createsuperuser

6. Run development server, worker and beat:
   python manage.py runserver
   celery -A parkshare_backend worker -l info
   celery -A parkshare_backend beat -l info --scheduler django_celery_beat.schedulers:DatabaseScheduler

7. API endpoints will be available at:
   http://localhost:8000/api/v1/
"""


# ==================== API ENDPOINTS SUMMARY ====================
"""
AUTHENTICATION ENDPOINTS:
POST   /api/v1/auth/register/                    - Register new user
POST   /api/v1/auth/login/                       - User login
GET    /api/v1/auth/profile/                     - Get user profile
PUT    /api/v1/auth/profile/                     - Update user profile
POST   /api/v1/auth/token/                       - Get JWT token
POST   /api/v1/auth/token/refresh/               - Refresh JWT token

PARKING SPACES:
GET    /api/v1/parking-spaces/                   - List parking spaces
POST   /api/v1/parking-spaces/                   - Create parking space with spot labels (host)
GET    /api/v1/parking-spaces/{id}/              - Get space details
GET    /api/v1/parking-spaces/my_spaces/         - Get host's spaces
GET    /api/v1/parking-spaces/{id}/spots/        - Spot states
GET    /api/v1/parking-spaces/{id}/available_spots/?start=&end=  - Spots free for a window

HOLDS (CART, X-Session-Key header for anonymous visitors):
POST   /api/v1/holds/                            - Hold a spot
GET    /api/v1/holds/                            - My active holds
DELETE /api/v1/holds/{id}/                       - Release a hold

BOOKINGS:
POST   /api/v1/bookings/                         - Create booking (pending payment)
GET    /api/v1/bookings/                         - List bookings
GET    /api/v1/bookings/{id}/                    - Get booking details
POST   /api/v1/bookings/{id}/update_status/     - Update booking status
POST   /api/v1/bookings/{id}/cancel_booking/    - Cancel booking
POST   /api/v1/bookings/sweep/                   - Trigger expiry sweep (rate-limited)

PAYMENTS:
POST   /api/v1/payments/initiate/               - Send M-Pesa STK push
GET    /api/v1/payments/status/?booking_id=X    - Get payment status
POST   /webhooks/mpesa/callback/                - Daraja STK callback

NOTIFICATIONS:
GET    /api/v1/notifications/                   - List notifications
POST   /api/v1/notifications/{id}/mark_read/    - Mark one read
POST   /api/v1/notifications/mark_all_read/     - Mark all read
GET    /api/v1/notifications/unread_count/      - Unread count
GET    /api/v1/changes/?after=X&space=Y         - Change stream


REQUEST/RESPONSE EXAMPLES:

1. CREATE PARKING SPACE:
POST /api/v1/parking-spaces/
{
    "title": "Westlands Secure Parking",
    "description": "Covered parking with guard",
    "address": "Waiyaki Way",
    "city": "Nairobi",
    "price_per_hour": 150,
    "spot_labels": ["A1", "A2", "B1"]
}

2. HOLD A SPOT:
POST /api/v1/holds/
{
    "parking_space": 1,
    "spot_label": "A1"
}

3. CREATE BOOKING:
POST /api/v1/bookings/
{
    "parking_space": 1,
    "spot_label": "A1",
    "hold_id": "5b1f...",
    "start_datetime": "2025-10-27T10:00:00+03:00",
    "end_datetime": "2025-10-27T13:00:00+03:00",
    "car_details": {"plate": "KDA 123A", "make": "Toyota", "color": "Silver"}
}

4. INITIATE PAYMENT:
POST /api/v1/payments/initiate/
{
    "booking_id": 1,
    "phone_number": "0712345678"
}
"""
