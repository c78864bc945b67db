# dashboard/services/activity.py
from __future__ import annotations

import logging
from typing import Any, Optional

from django.utils import timezone

from accounts.models import Company
from dashboard.models import ActivityLog

logger = logging.getLogger(__name__)

FEED_MAX_LIMIT = 100


def log_activity(company: Company, type: str, description: str, **metadata: Any) -> ActivityLog:
    entry = ActivityLog.objects.create(
        company=company,
        type=type,
        description=description[:500],
        metadata=metadata,
        timestamp=timezone.now(),
    )
    logger.info("activity company=%s type=%s id=%s", company.pk, type, entry.pk)
    return entry


def recent_activity(company: Company, *, limit: int = 20, types: Optional[list[str]] = None):
    limit = max(1, min(int(limit), FEED_MAX_LIMIT))
    qs = ActivityLog.objects.filter(company=company)
    if types:
        qs = qs.filter(type__in=types)
    return list(qs.order_by("-timestamp", "-id")[:limit])


def serialize_activity(entry: ActivityLog) -> dict:
    return {
        "id": entry.id,
        "type": entry.type,
        "description": entry.description,
        "metadata": entry.metadata,
        "timestamp": entry.timestamp.isoformat(),
    }
