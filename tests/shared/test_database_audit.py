from unittest.mock import MagicMock, patch

import pytest

from shared.audit import AuditRepository
from shared.database import ClientHolder


class TestClientHolder:
    """Lazy Supabase client built from SUPABASE_URL / SUPABASE_KEY."""

    def test_missing_settings_raise(self) -> None:
        with pytest.raises(ValueError):
            ClientHolder().get()

    @patch("shared.database.create_client")
    def test_client_cached(self, mock_create, monkeypatch) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "service-key")
        holder = ClientHolder()

        first = holder.get()
        second = holder.get()

        assert first is second is mock_create.return_value
        mock_create.assert_called_once_with("https://test.supabase.co", "service-key")


class TestAuditRepository:
    def test_log_action(self) -> None:
        db = MagicMock()

        AuditRepository(db).log_action(
            "rate_request", "rates", {"rates_found": 3}, user_id="u-1", resource_id="r-1"
        )

        db.table.assert_called_once_with("audit_logs")
        row = db.table.return_value.insert.call_args[0][0]
        assert row["action"] == "rate_request"
        assert row["details"] == {"rates_found": 3}
        assert row["ip_address"] == "unknown"
        assert row["resource_id"] == "r-1"

    def test_log_action_propagates_failures(self) -> None:
        db = MagicMock()
        db.table.return_value.insert.return_value.execute.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            AuditRepository(db).log_action("track_shipment", "carriers", {})

    def test_carrier_activity(self) -> None:
        db = MagicMock()

        AuditRepository(db).log_carrier_activity("ups", "tracking_request", "1Z1", {"events_found": 2})

        db.table.assert_called_once_with("carrier_logs")
        row = db.table.return_value.insert.call_args[0][0]
        assert row["carrier"] == "ups"
        assert row["tracking_number"] == "1Z1"

    def test_carrier_activity_failure_is_swallowed(self) -> None:
        db = MagicMock()
        db.table.return_value.insert.return_value.execute.side_effect = RuntimeError("db down")

        AuditRepository(db).log_carrier_activity("ups", "tracking_request")
