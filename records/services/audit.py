"""Append-only audit trail of mutating operations."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from django.db import transaction

from records.exceptions import NotFoundError
from records.models import AuditLog

logger = logging.getLogger(__name__)


def record(user, action: str, entity: str, entity_id, details: Optional[dict[str, Any]] = None) -> Optional[AuditLog]:
    """Write an audit entry; failures are logged and never propagate to the caller."""
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=user if getattr(user, "pk", None) else None,
                action=action,
                entity=entity,
                entity_id=str(entity_id),
                details=details,
            )
    except Exception:
        logger.exception("Failed to write audit log %s for %s#%s", action, entity, entity_id)
        return None


def recent_logs(limit: int = 50):
    return AuditLog.objects.select_related("user__account")[: max(limit, 0)]


def logs_for_entity(entity_id):
    return AuditLog.objects.filter(entity_id=str(entity_id)).select_related("user__account")


def delete_log(log_id) -> None:
    deleted, _ = AuditLog.objects.filter(pk=log_id).delete()
    if not deleted:
        raise NotFoundError("Audit log not found")


def delete_logs(ids: Iterable) -> int:
    deleted, _ = AuditLog.objects.filter(pk__in=list(ids)).delete()
    return deleted
