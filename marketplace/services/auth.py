"""
marketplace.services.auth

Principal resolution. django.contrib.auth owns sessions and credentials; the
core only asks "who is calling, and is their email verified".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from django.http import HttpRequest

from marketplace.models import Profile, ProfileRole


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    email_verified: bool
    role: str = ProfileRole.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN


def principal_for_user(user) -> Optional[Principal]:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    profile = Profile.objects.filter(user_id=user.pk).first()
    return Principal(
        id=user.pk,
        email=getattr(user, "email", "") or "",
        email_verified=bool(profile and profile.email_verified),
        role=profile.role if profile else ProfileRole.BUYER,
    )


def current_principal(request: HttpRequest) -> Optional[Principal]:
    return principal_for_user(getattr(request, "user", None))
