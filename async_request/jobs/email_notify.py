"""Notification e-mail job, sent out of band from the request that asked for it."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from async_request.jobs.base import BackgroundJob
from async_request.utils import get_logger

logger = get_logger(__name__)

# Delivered notifications (process-local, visible to tests and the health view)
SENT_NOTIFICATIONS: list[dict[str, Any]] = []


class EmailNotifyJob(BackgroundJob):
    job_name = "email_notify"

    async def execute(self, payload: Any) -> None:
        if not isinstance(payload, dict) or not payload.get("to"):
            logger.warning("Notification skipped: no recipient", payload_type=type(payload).__name__)
            return

        record = {
            "to": payload["to"],
            "subject": payload.get("subject") or "(no subject)",
            "body": payload.get("body") or "",
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        SENT_NOTIFICATIONS.append(record)
        logger.info("Notification sent", to=record["to"], subject=record["subject"])


__all__ = ["EmailNotifyJob", "SENT_NOTIFICATIONS"]
