# ==================== PAYMENTS/SERVICES.PY ====================
import base64
import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from bookings.models import Booking
from bookings.services import BookingService
from bookings.signals import booking_changed
from utils.exceptions import GatewayUnavailable, InvalidTransition, StaleCallback
from .models import Payment

logger = logging.getLogger(__name__)


class MpesaService:
    """Safaricom Daraja (M-Pesa Express) integration"""

    BASE_URLS = {
        'sandbox': 'https://sandbox.safaricom.co.ke',
        'production': 'https://api.safaricom.co.ke',
    }
    TOKEN_CACHE_KEY = 'payments:mpesa:access-token'

    def __init__(self):
        self.base_url = settings.MPESA_BASE_URL or self.BASE_URLS[settings.MPESA_ENVIRONMENT]
        self.shortcode = str(settings.MPESA_SHORTCODE)
        self.timeout = settings.MPESA_TIMEOUT

    @staticmethod
    def normalize_phone(phone_number):
        """Daraja wants 2547XXXXXXXX: strip spaces, drop a leading + or 0"""
        phone = str(phone_number).replace(' ', '')
        if phone.startswith('+'):
            phone = phone[1:]
        if phone.startswith('0'):
            phone = '254' + phone[1:]
        elif not phone.startswith('254'):
            phone = '254' + phone
        if not phone.isdigit():
            raise ValidationError(f"Invalid M-Pesa phone number: {phone_number}")
        return phone

    @staticmethod
    def timestamp(now=None):
        return timezone.localtime(now or timezone.now()).strftime('%Y%m%d%H%M%S')

    def password(self, timestamp):
        raw = f"{self.shortcode}{settings.MPESA_PASSKEY}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    def get_access_token(self):
        token = cache.get(self.TOKEN_CACHE_KEY)
        if token:
            return token

        try:
            response = requests.get(
                f"{self.base_url}/oauth/v1/generate",
                params={'grant_type': 'client_credentials'},
                auth=(settings.MPESA_CONSUMER_KEY, settings.MPESA_CONSUMER_SECRET),
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
            token = data['access_token']
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.error(f"M-Pesa token request failed: {str(e)}")
            raise GatewayUnavailable()

        # Refresh a minute before Daraja expires it
        expires_in = int(data.get('expires_in', 3599))
        cache.set(self.TOKEN_CACHE_KEY, token, max(expires_in - 60, 60))
        return token

    def _post(self, path, payload):
        token = self.get_access_token()
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={'Authorization': f'Bearer {token}'},
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"M-Pesa request to {path} failed: {str(e)}")
            raise GatewayUnavailable()

    def stk_push(self, phone_number, amount, account_reference, description):
        """Prompt the payer's phone for ``amount`` (whole shillings)"""
        phone = self.normalize_phone(phone_number)
        timestamp = self.timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'TransactionType': 'CustomerPayBillOnline',
            'Amount': str(int(Decimal(amount).quantize(Decimal('1'), rounding=ROUND_HALF_UP))),
            'PartyA': phone,
            'PartyB': self.shortcode,
            'PhoneNumber': phone,
            'CallBackURL': settings.MPESA_CALLBACK_URL,
            'AccountReference': account_reference[:12],
            'TransactionDesc': description[:13],
        }
        data = self._post('/mpesa/stkpush/v1/processrequest', payload)
        if str(data.get('ResponseCode')) != '0' or not data.get('CheckoutRequestID'):
            logger.error(f"M-Pesa rejected STK push for {account_reference}: {data}")
            raise GatewayUnavailable()

        logger.info(f"STK push sent for {account_reference}: {data['CheckoutRequestID']}")
        return data

    def stk_query(self, checkout_request_id):
        timestamp = self.timestamp()
        return self._post('/mpesa/stkpushquery/v1/query', {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'CheckoutRequestID': checkout_request_id,
        })


class PaymentReconciliationService:
    """Correlates STK pushes with bookings and applies gateway results"""

    @staticmethod
    def initiate(booking_id, payer_contact=None, *, actor=None):
        """Send an STK push for a pending booking and return its correlation id"""
        booking = BookingService.get_booking(booking_id)
        if actor is not None and actor != booking.driver:
            raise PermissionDenied("Only the booking's driver can pay for it")
        if booking.status != 'pending' or booking.payment_status not in ('pending', 'failed'):
            raise InvalidTransition(
                f"Cannot pay for booking {booking.id} ({booking.status}/{booking.payment_status})"
            )

        phone = payer_contact or booking.driver.contact
        if not phone:
            raise ValidationError("A phone number is required for M-Pesa payment")

        response = MpesaService().stk_push(
            phone,
            booking.total_price,
            account_reference=f"PS{booking.id}",
            description='ParkShare'
        )
        checkout_request_id = response['CheckoutRequestID']
        merchant_request_id = response.get('MerchantRequestID', '')

        with transaction.atomic():
            Payment.objects.create(
                booking=booking,
                amount=booking.total_price,
                phone_number=MpesaService.normalize_phone(phone),
                checkout_request_id=checkout_request_id,
                merchant_request_id=merchant_request_id,
            )
            # The attempt is recorded even if the booking moved on meanwhile,
            # so a late success is still matched to it.
            updated = Booking.objects.filter(pk=booking.pk, status='pending').exclude(payment_status='paid').update(
                checkout_request_id=checkout_request_id,
                merchant_request_id=merchant_request_id,
                payment_status='pending',
                payment_error='',
                updated_at=timezone.now()
            )

        if not updated:
            logger.warning(f"Booking {booking.id} left pending while STK push {checkout_request_id} was sent")
        else:
            logger.info(f"Payment initiated for booking {booking.id}: {checkout_request_id}")
        return checkout_request_id

    @classmethod
    def on_callback(cls, correlation_id, result_code, result_desc='', metadata=None, payload=None):
        """Apply a gateway result. Unknown or already-applied results raise ``StaleCallback``."""
        metadata = metadata or {}
        now = timezone.now()
        success = int(result_code) == 0

        payment = Payment.objects.select_related('booking').filter(checkout_request_id=correlation_id).first()
        if payment is None:
            raise StaleCallback(correlation_id, 'unknown checkout request')

        with transaction.atomic():
            settled = Payment.objects.filter(pk=payment.pk, status='initiated').update(
                status='completed' if success else 'failed',
                result_code=int(result_code),
                result_desc=(result_desc or '')[:255],
                mpesa_receipt_number=str(metadata.get('MpesaReceiptNumber', '')),
                transaction_date=str(metadata.get('TransactionDate', '')),
                callback_payload=payload,
                updated_at=now
            )
            if not settled:
                raise StaleCallback(correlation_id, f'already {payment.status}')

            if success:
                booking = cls._apply_success(payment.booking, str(metadata.get('MpesaReceiptNumber', '')), now)
            else:
                booking = cls._apply_failure(payment.booking, correlation_id, result_desc, now)

        return booking

    @classmethod
    def _apply_success(cls, booking, receipt, now):
        previous_payment_status = booking.payment_status
        updated = Booking.objects.filter(pk=booking.pk).exclude(payment_status='paid').update(
            payment_status='paid',
            mpesa_receipt_number=receipt,
            payment_error='',
            updated_at=now
        )
        if not updated:
            logger.warning(f"Booking {booking.id} already paid, extra payment {receipt} needs refund")
            return booking

        booking.refresh_from_db()
        logger.info(f"Payment {receipt} received for booking {booking.id}")
        if booking.status == 'pending':
            try:
                return BookingService.update_status(booking.id, 'confirmed', now=now)
            except InvalidTransition:
                booking.refresh_from_db()

        # Paid but no longer pending (cancelled by the sweeper or a party)
        booking_changed.send(
            sender=cls,
            booking=booking,
            previous_status=booking.status,
            previous_payment_status=previous_payment_status,
        )
        return booking

    @classmethod
    def _apply_failure(cls, booking, correlation_id, result_desc, now):
        updated = Booking.objects.filter(
            pk=booking.pk,
            status='pending',
            payment_status='pending',
            checkout_request_id=correlation_id
        ).update(payment_status='failed', payment_error=(result_desc or 'payment failed')[:255], updated_at=now)
        if not updated:
            logger.info(f"Failed attempt {correlation_id} no longer current for booking {booking.id}")
            return booking

        booking.refresh_from_db()
        logger.warning(f"Payment failed for booking {booking.id}: {result_desc}")
        booking_changed.send(sender=cls, booking=booking, previous_status=booking.status, previous_payment_status='pending')
        return booking

    @staticmethod
    def parse_callback(body):
        """Unpack a Daraja ``Body.stkCallback`` envelope"""
        callback = body['Body']['stkCallback']
        items = callback.get('CallbackMetadata', {}).get('Item', [])
        metadata = {item['Name']: item.get('Value') for item in items if 'Name' in item}
        return {
            'correlation_id': callback['CheckoutRequestID'],
            'result_code': int(callback['ResultCode']),
            'result_desc': callback.get('ResultDesc', ''),
            'metadata': metadata,
        }
