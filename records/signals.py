"""Signals to provision account profiles and the system actor."""
from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db.models.signals import post_migrate, post_save
from django.dispatch import receiver

from records.models import AccountProfile

logger = logging.getLogger(__name__)

User = get_user_model()


@receiver(post_save, sender=User)
def ensure_account_profile(sender, instance: User, created: bool, **kwargs):
    if not created:
        return
    role = AccountProfile.ROLE_ADMIN if instance.is_superuser else AccountProfile.ROLE_ENCODER
    AccountProfile.objects.get_or_create(user=instance, defaults={"role": role})


@receiver(post_migrate)
def ensure_system_actor(sender, **kwargs):
    if getattr(sender, "name", None) != "records":
        return
    from records.services.accounts import system_actor

    actor = system_actor()
    logger.debug("System actor available as %s (id=%s)", actor.username, actor.pk)
