"""
marketplace.models.profile

Marketplace-side facts about an authenticated user.

The identity provider (django.contrib.auth) owns credentials and sessions.
This row only carries what the order flow needs from it: the role and whether
the email address has been verified. Email verification is a hard
precondition for purchasing.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models


class ProfileRole(models.TextChoices):
    BUYER = "buyer", "Buyer"
    VENDOR = "vendor", "Vendor"
    ADMIN = "admin", "Admin"


class Profile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="marketplace_profile",
    )
    role = models.CharField(
        max_length=16,
        choices=ProfileRole.choices,
        default=ProfileRole.BUYER,
    )
    email_verified_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set by the identity provider callback once the email link is confirmed.",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Profile<{self.user_id}> ({self.role})"

    @property
    def email_verified(self) -> bool:
        return self.email_verified_at is not None
