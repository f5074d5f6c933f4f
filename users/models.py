from django.db import models
from django.contrib.auth.models import AbstractUser
from phonenumber_field.modelfields import PhoneNumberField


class CustomUser(AbstractUser):
    USER_TYPE_CHOICES = (
        ('owner', 'Parking Space Host'),
        ('driver', 'Driver'),
        ('both', 'Both'),
    )

    user_type = models.CharField(max_length=10, choices=USER_TYPE_CHOICES, default='driver')
    # M-Pesa STK push is sent to this number unless the driver gives another at checkout
    phone_number = PhoneNumberField(unique=True, blank=False)
    bio = models.TextField(blank=True)

    is_verified = models.BooleanField(default=False)
    phone_verified = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.username} ({self.get_user_type_display()})"

    @property
    def is_host(self):
        return self.user_type in ('owner', 'both')

    @property
    def is_driver(self):
        return self.user_type in ('driver', 'both')

    @property
    def contact(self):
        """Payer contact in E.164 form, or empty string"""
        return str(self.phone_number) if self.phone_number else ''
