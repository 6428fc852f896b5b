"""Append-only audit trail and carrier activity log."""

from datetime import datetime, timezone
from typing import Any

from aws_lambda_powertools import Logger

from shared.database import get_supabase_client

logger = Logger(service="audit")


class AuditRepository:
    def __init__(self, db=None):
        self.db = db or get_supabase_client()

    def log_action(
        self,
        action: str,
        resource: str,
        details: dict[str, Any],
        user_id: str | None = None,
        resource_id: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        """Appends one audit entry. Entries are never updated."""
        self.db.table("audit_logs").insert({
            "user_id": user_id,
            "action": action,
            "resource": resource,
            "resource_id": resource_id,
            "details": details,
            "ip_address": ip_address or "unknown",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }).execute()

    def log_carrier_activity(
        self,
        carrier: str,
        action: str,
        tracking_number: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Carrier activity is best-effort: a failed write is logged, not raised."""
        try:
            self.db.table("carrier_logs").insert({
                "carrier": carrier,
                "action": action,
                "tracking_number": tracking_number,
                "details": details or {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }).execute()
        except Exception:
            logger.exception("Failed to log carrier activity", extra={"carrier": carrier, "action": action})
