"""Admin/encoder accounts, encoder invitations and the system actor."""
from __future__ import annotations

import datetime
import logging
import secrets
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from records.exceptions import (
    ConflictError,
    NotFoundError,
    PrerequisiteBlockedError,
    ValidationMismatchError,
)
from records.models import AccountProfile, Grade, Invitation
from records.services import audit

logger = logging.getLogger(__name__)

User = get_user_model()


def system_actor() -> User:
    """Return the configured system account, creating it on first use."""

    user, created = User.objects.get_or_create(
        username=settings.SIS_SYSTEM_ACTOR,
        defaults={"first_name": "System", "is_active": False},
    )
    if created:
        user.set_unusable_password()
        user.save(update_fields=["password"])
        AccountProfile.objects.update_or_create(user=user, defaults={"role": AccountProfile.ROLE_ADMIN})
        logger.info("Provisioned system actor %s", user.username)
    return user


def resolve_encoder(encoder: Optional[User]) -> User:
    if encoder is not None and encoder.pk:
        return encoder
    return system_actor()


def role_of(user) -> Optional[str]:
    if not getattr(user, "is_authenticated", False):
        return None
    account = getattr(user, "account", None)
    if account is not None:
        return account.role
    return AccountProfile.ROLE_ADMIN if user.is_superuser else None


def create_account(email: str, password: Optional[str], role: str, **extra) -> User:
    email = email.strip().lower()
    if User.objects.filter(Q(username__iexact=email) | Q(email__iexact=email)).exists():
        raise ConflictError("User with this email already exists")
    user = User.objects.create_user(username=email, email=email, password=password, **extra)
    AccountProfile.objects.update_or_create(user=user, defaults={"role": role})
    return user


def _invitation_url(token: str) -> str:
    return f"{settings.SIS_FRONTEND_URL.rstrip('/')}/verify-invite?token={token}"


def invite_encoder(email: str, actor=None) -> Invitation:
    email = email.strip().lower()
    if User.objects.filter(Q(username__iexact=email) | Q(email__iexact=email)).exists():
        raise ConflictError("User with this email already exists")

    with transaction.atomic():
        Invitation.objects.filter(email__iexact=email).delete()
        invitation = Invitation.objects.create(
            email=email,
            token=secrets.token_urlsafe(32),
            role=AccountProfile.ROLE_ENCODER,
            expires_at=timezone.now() + datetime.timedelta(hours=settings.SIS_INVITATION_TTL_HOURS),
        )
        send_mail(
            subject="Invitation to Join SIS as Encoder",
            message=(
                "You have been invited to join the Student Information System as a grade encoder.\n\n"
                f"Open the link below to verify your email and set your password:\n{_invitation_url(invitation.token)}\n\n"
                f"This link will expire in {settings.SIS_INVITATION_TTL_HOURS} hours."
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
        )

    audit.record(actor, "INVITE_ENCODER", "Invitation", invitation.pk, {"email": email})
    return invitation


def verify_invitation(token: str) -> Invitation:
    try:
        invitation = Invitation.objects.get(token=token)
    except Invitation.DoesNotExist:
        raise NotFoundError("Invalid invitation token")
    if invitation.is_expired(timezone.now()):
        raise ValidationMismatchError("Invitation has expired")
    return invitation


def accept_invitation(token: str, password: str, first_name: str = "", last_name: str = "") -> User:
    invitation = verify_invitation(token)
    try:
        validate_password(password, User(username=invitation.email, email=invitation.email))
    except ValidationError as exc:
        raise ValidationMismatchError(" ".join(exc.messages), details={"password": exc.messages})

    with transaction.atomic():
        user = create_account(
            invitation.email,
            password,
            invitation.role,
            first_name=first_name,
            last_name=last_name,
        )
        invitation.delete()

    audit.record(user, "ACCEPT_INVITATION", "User", user.pk, {"email": user.email, "role": invitation.role})
    return user


def list_encoders():
    return (
        User.objects.filter(account__role=AccountProfile.ROLE_ENCODER)
        .select_related("account")
        .annotate(grade_count=Count("encoded_grades"))
        .order_by("-date_joined")
    )


def list_invitations():
    return Invitation.objects.filter(role=AccountProfile.ROLE_ENCODER)


def revoke_invitation(invitation_id, actor=None) -> None:
    try:
        invitation = Invitation.objects.get(pk=invitation_id)
    except Invitation.DoesNotExist:
        raise NotFoundError("Invitation not found")
    email = invitation.email
    invitation.delete()
    audit.record(actor, "REVOKE_INVITATION", "Invitation", invitation_id, {"email": email})


def _get_user(user_id) -> User:
    try:
        return User.objects.select_related("account").get(pk=user_id)
    except (User.DoesNotExist, ValueError):
        raise NotFoundError("User not found")


def set_user_active(user_id, is_active: bool, actor=None) -> User:
    user = _get_user(user_id)
    user.is_active = bool(is_active)
    user.save(update_fields=["is_active"])
    audit.record(
        actor,
        "ACTIVATE_USER" if user.is_active else "DEACTIVATE_USER",
        "User",
        user.pk,
        {"email": user.email},
    )
    return user


def delete_encoder(user_id, actor=None) -> None:
    user = _get_user(user_id)
    if role_of(user) != AccountProfile.ROLE_ENCODER:
        raise NotFoundError("Encoder not found")
    if Grade.objects.filter(encoded_by=user).exists():
        raise PrerequisiteBlockedError(
            "Cannot delete encoder. They have associated grade records. Deactivate them instead.",
            blocking_code=user.email,
        )
    email = user.email
    user.delete()
    audit.record(actor, "DELETE_ENCODER", "User", user_id, {"email": email})


def change_password(user, current_password: str, new_password: str) -> None:
    if not user.check_password(current_password):
        raise ValidationMismatchError("Current password is incorrect")
    try:
        validate_password(new_password, user)
    except ValidationError as exc:
        raise ValidationMismatchError(" ".join(exc.messages), details={"password": exc.messages})
    user.set_password(new_password)
    user.save(update_fields=["password"])
    AccountProfile.objects.filter(user=user).update(must_change_password=False)
    audit.record(user, "CHANGE_PASSWORD", "User", user.pk)
