"""
Carrier adapters: the tracking contract plus FedEx, UPS and DHL HTTP clients.

Contract for every adapter's track_shipment:
- an unknown tracking number yields an empty list, never an error;
- transport, auth and server failures raise UpstreamError.

Expects env per carrier (FEDEX_API_KEY/FEDEX_SECRET_KEY, UPS_API_KEY/UPS_SECRET_KEY,
DHL_API_KEY/DHL_SECRET_KEY); optional CARRIER_SANDBOX (default true).
"""

import base64
import json
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from aws_lambda_powertools import Logger

from shared.errors import UpstreamError
from tracking.schemas import TrackingEvent

logger = Logger(service="tracking")

DEFAULT_TIMEOUT_SEC = 15
USER_AGENT = "FreightPortal/1.0"


class CarrierAdapter(ABC):
    """Capability interface implemented by each carrier integration."""

    carrier_id: str = ""
    name: str = ""

    @abstractmethod
    def track_shipment(self, tracking_number: str, timeout: float = DEFAULT_TIMEOUT_SEC) -> list[TrackingEvent]:
        """Returns the carrier's events for `tracking_number`, newest first when the carrier orders them."""


class CarrierNotFound(Exception):
    """Internal signal for HTTP 404 from a carrier; adapters turn it into an empty result."""

    pass


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    for candidate in (text, text.replace(" ", "T", 1)):
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            continue
    return None


def _join_location(*parts: Any) -> str | None:
    cleaned = [str(p).strip() for p in parts if p and str(p).strip()]
    return ", ".join(cleaned) if cleaned else None


class HttpCarrierClient(CarrierAdapter):
    """Base for JSON-over-HTTPS carrier APIs."""

    production_url = ""
    sandbox_url = ""

    def __init__(self, api_key: str, api_secret: str | None = None, sandbox: bool = True):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = (self.sandbox_url if sandbox else self.production_url).rstrip("/")

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        ...

    def _basic_auth(self) -> str:
        raw = f"{self.api_key}:{self.api_secret or ''}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")

    def request(
        self,
        path: str,
        method: str = "GET",
        body: dict | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> dict:
        """
        Performs one API call and returns the parsed JSON body.

        Raises:
            CarrierNotFound: On HTTP 404.
            UpstreamError: On any other HTTP error, timeout, connection failure or invalid JSON.
        """
        url = f"{self.base_url}{path}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
                **self.auth_headers(),
            },
        )

        try:
            with urllib.request.urlopen(
                req, timeout=timeout, context=ssl.create_default_context()
            ) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace") if e.fp else ""
            if e.code == 404:
                raise CarrierNotFound(raw[:300]) from e
            logger.warning("%s HTTP error %s: %s", self.name, e.code, raw[:500])
            raise UpstreamError(f"{self.name} API returned HTTP {e.code}", carrier=self.carrier_id) from e
        except urllib.error.URLError as e:
            reason = getattr(e, "reason", None)
            if isinstance(reason, TimeoutError) or (reason and "timed out" in str(reason).lower()):
                raise UpstreamError(f"Timeout connecting to {self.name} API", carrier=self.carrier_id) from e
            raise UpstreamError(f"Connection to {self.name} API failed", carrier=self.carrier_id) from e
        except TimeoutError as e:
            raise UpstreamError(f"Timeout connecting to {self.name} API", carrier=self.carrier_id) from e
        except OSError as e:
            raise UpstreamError(f"Connection to {self.name} API failed", carrier=self.carrier_id) from e

        try:
            return json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            raise UpstreamError(f"Invalid response from {self.name} API", carrier=self.carrier_id) from e

    def track_shipment(self, tracking_number: str, timeout: float = DEFAULT_TIMEOUT_SEC) -> list[TrackingEvent]:
        try:
            payload = self.fetch_tracking(tracking_number, timeout)
        except CarrierNotFound:
            return []
        return self.parse_events(payload)

    @abstractmethod
    def fetch_tracking(self, tracking_number: str, timeout: float) -> dict:
        ...

    @abstractmethod
    def parse_events(self, payload: dict) -> list[TrackingEvent]:
        ...

    def _event(self, status: Any, timestamp: datetime | None, **fields) -> TrackingEvent | None:
        if not status or timestamp is None:
            return None
        return TrackingEvent(carrier=self.carrier_id, status=str(status), timestamp=timestamp, **fields)


class FedExClient(HttpCarrierClient):
    carrier_id = "fedex"
    name = "FedEx"
    production_url = "https://apis.fedex.com"
    sandbox_url = "https://apis-sandbox.fedex.com"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "X-locale": "en_US"}

    def fetch_tracking(self, tracking_number: str, timeout: float) -> dict:
        body = {
            "includeDetailedScans": True,
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
        }
        return self.request("/track/v1/trackingnumbers", "POST", body, timeout=timeout)

    def parse_events(self, payload: dict) -> list[TrackingEvent]:
        results = (payload.get("output") or {}).get("completeTrackResults") or []
        if not results:
            return []
        track_results = results[0].get("trackResults") or []
        if not track_results:
            return []
        events = []
        for scan in track_results[0].get("scanEvents") or []:
            loc = scan.get("scanLocation") or {}
            event = self._event(
                scan.get("eventDescription"),
                _parse_timestamp(scan.get("date")),
                location=_join_location(loc.get("city"), loc.get("stateOrProvinceCode")),
                description=scan.get("eventDescription"),
                signed_by=scan.get("signedByName"),
            )
            if event:
                events.append(event)
        return events


class UPSClient(HttpCarrierClient):
    carrier_id = "ups"
    name = "UPS"
    production_url = "https://onlinetools.ups.com/api"
    sandbox_url = "https://wwwcie.ups.com/api"

    def __init__(self, api_key: str, api_secret: str | None = None, sandbox: bool = True, access_key: str = ""):
        super().__init__(api_key, api_secret, sandbox)
        self.access_key = access_key

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": self._basic_auth(), "AccessLicenseNumber": self.access_key}

    def fetch_tracking(self, tracking_number: str, timeout: float) -> dict:
        path = f"/track/v1/details/{urllib.parse.quote(tracking_number, safe='')}"
        return self.request(path, timeout=timeout)

    def parse_events(self, payload: dict) -> list[TrackingEvent]:
        shipments = (payload.get("trackResponse") or {}).get("shipment") or []
        if not shipments:
            return []
        packages = shipments[0].get("package") or []
        if not packages:
            return []
        events = []
        for activity in packages[0].get("activity") or []:
            address = (activity.get("location") or {}).get("address") or {}
            status = (activity.get("status") or {}).get("description")
            stamp = f"{activity.get('date', '')} {activity.get('time', '')}".strip()
            event = self._event(
                status,
                _parse_ups_timestamp(activity.get("date"), activity.get("time")) or _parse_timestamp(stamp),
                location=_join_location(address.get("city"), address.get("stateProvinceCode")),
                description=status,
            )
            if event:
                events.append(event)
        return events


def _parse_ups_timestamp(date_part: Any, time_part: Any) -> datetime | None:
    """UPS sends date as YYYYMMDD and time as HHMMSS."""
    try:
        return datetime.strptime(f"{date_part}{time_part or '000000'}", "%Y%m%d%H%M%S")
    except (TypeError, ValueError):
        return None


class DHLClient(HttpCarrierClient):
    carrier_id = "dhl"
    name = "DHL"
    production_url = "https://express.api.dhl.com/mydhlapi"
    sandbox_url = "https://express.api.dhl.com/mydhlapi/test"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": self._basic_auth()}

    def fetch_tracking(self, tracking_number: str, timeout: float) -> dict:
        query = urllib.parse.urlencode({"trackingNumber": tracking_number})
        return self.request(f"/track/shipments?{query}", timeout=timeout)

    def parse_events(self, payload: dict) -> list[TrackingEvent]:
        shipments = payload.get("shipments") or []
        if not shipments:
            return []
        events = []
        for item in shipments[0].get("events") or []:
            address = (item.get("location") or {}).get("address") or {}
            event = self._event(
                item.get("description"),
                _parse_timestamp(item.get("timestamp")),
                location=address.get("addressLocality"),
                description=item.get("description"),
            )
            if event:
                events.append(event)
        return events


DEFAULT_CARRIER_ORDER = ("fedex", "ups", "dhl")


def _sandbox() -> bool:
    return (os.environ.get("CARRIER_SANDBOX") or "true").strip().lower() != "false"


def _build_adapter(carrier_id: str, sandbox: bool) -> CarrierAdapter | None:
    if carrier_id == "fedex" and os.environ.get("FEDEX_API_KEY") and os.environ.get("FEDEX_SECRET_KEY"):
        return FedExClient(os.environ["FEDEX_API_KEY"], os.environ["FEDEX_SECRET_KEY"], sandbox)
    if carrier_id == "ups" and os.environ.get("UPS_API_KEY") and os.environ.get("UPS_SECRET_KEY"):
        return UPSClient(
            os.environ["UPS_API_KEY"],
            os.environ["UPS_SECRET_KEY"],
            sandbox,
            access_key=os.environ.get("UPS_ACCESS_KEY", ""),
        )
    if carrier_id == "dhl" and os.environ.get("DHL_API_KEY") and os.environ.get("DHL_SECRET_KEY"):
        return DHLClient(os.environ["DHL_API_KEY"], os.environ["DHL_SECRET_KEY"], sandbox)
    return None


def carrier_order_from_env() -> list[str]:
    raw = os.environ.get("TRACKING_CARRIERS") or ",".join(DEFAULT_CARRIER_ORDER)
    order: list[str] = []
    for part in raw.split(","):
        carrier_id = part.strip().lower()
        if carrier_id and carrier_id not in order:
            order.append(carrier_id)
    return order


def build_adapters_from_env() -> list[CarrierAdapter]:
    """Adapters in configured priority order; carriers without credentials are skipped."""
    sandbox = _sandbox()
    adapters = []
    for carrier_id in carrier_order_from_env():
        adapter = _build_adapter(carrier_id, sandbox)
        if adapter is None:
            logger.info("Carrier not configured, skipping", extra={"carrier": carrier_id})
            continue
        adapters.append(adapter)
    return adapters
