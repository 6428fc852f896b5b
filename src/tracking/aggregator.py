"""
Multi-carrier tracking aggregator.

A lookup either queries the carrier already bound to the tracking number, or
discovers the owner by trying the configured adapters in priority order. The
first adapter that returns events wins; the newest event is normalized into a
CanonicalStatus and the full event list is captured in a TrackingHistoryRecord.

A carrier that is already bound is trusted: when it fails, discovery is NOT
attempted on the other carriers.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from aws_lambda_powertools import Logger

from shared.errors import NotFoundError, UpstreamError
from tracking.carriers import DEFAULT_TIMEOUT_SEC, CarrierAdapter
from tracking.schemas import CanonicalStatus, TrackingEvent, TrackingHistoryRecord
from tracking.status import STATUS_KEYWORDS, advance_status, map_status

logger = Logger(service="tracking")


@dataclass(frozen=True)
class AdapterResult:
    """Outcome of one adapter call: events, an error message, or a timeout."""

    carrier: str
    events: tuple[TrackingEvent, ...] = ()
    error: str | None = None
    timed_out: bool = False

    @property
    def found(self) -> bool:
        return self.error is None and not self.timed_out and len(self.events) > 0


@dataclass(frozen=True)
class TrackingResult:
    tracking_number: str
    carrier: str
    events: tuple[TrackingEvent, ...]
    latest_event: TrackingEvent
    status: CanonicalStatus | None
    record: TrackingHistoryRecord
    discovered: bool
    attempts: tuple[AdapterResult, ...] = field(default=())


def latest_event(events: tuple[TrackingEvent, ...] | list[TrackingEvent]) -> TrackingEvent:
    """Newest event by timestamp; on ties the one listed first wins."""
    newest = events[0]
    for event in events[1:]:
        if event.timestamp > newest.timestamp:
            newest = event
    return newest


class TrackingAggregator:
    def __init__(
        self,
        adapters: list[CarrierAdapter],
        timeout: float = DEFAULT_TIMEOUT_SEC,
        parallel_discovery: bool = False,
        status_keywords: list[tuple[str, CanonicalStatus]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        ids = [a.carrier_id for a in adapters]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate carrier adapters: {ids}")
        self.adapters = list(adapters)
        self.timeout = timeout
        self.parallel_discovery = parallel_discovery
        self.status_keywords = status_keywords or STATUS_KEYWORDS
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_adapter(self, carrier_id: str) -> CarrierAdapter | None:
        wanted = carrier_id.strip().lower()
        return next((a for a in self.adapters if a.carrier_id == wanted), None)

    def track(
        self,
        tracking_number: str,
        carrier: str | None = None,
        current_status: CanonicalStatus | None = None,
    ) -> TrackingResult:
        """
        Resolves the carrier, fetches events and builds the history record.

        Args:
            tracking_number: Carrier tracking number.
            carrier: Carrier already bound to this number (stored or caller supplied).
            current_status: Stored canonical status; kept when the newest event maps to nothing.

        Raises:
            NotFoundError: No configured carrier knows the number, the bound carrier
                returned nothing or timed out, or the bound carrier is not configured.
            UpstreamError: The bound carrier failed.
        """
        if carrier:
            adapter = self.get_adapter(carrier)
            if adapter is None:
                raise NotFoundError(f"Carrier {carrier} not available")
            resolved = self._query_carrier(adapter, tracking_number)
            attempts = (resolved,)
            discovered = False
        else:
            resolved, attempts = self._discover(tracking_number)
            discovered = True

        latest = latest_event(resolved.events)
        observed = map_status(latest.status, self.status_keywords)
        status = advance_status(current_status, observed)
        record = TrackingHistoryRecord(
            tracking_number=tracking_number,
            carrier=resolved.carrier,
            events=resolved.events,
            status=status,
            recorded_at=self._clock(),
        )
        logger.info("Tracking resolved", extra={
            "tracking_number": tracking_number,
            "carrier": resolved.carrier,
            "events": len(resolved.events),
            "status": status.value if status else None,
            "discovered": discovered,
        })
        return TrackingResult(
            tracking_number=tracking_number,
            carrier=resolved.carrier,
            events=resolved.events,
            latest_event=latest,
            status=status,
            record=record,
            discovered=discovered,
            attempts=attempts,
        )

    def _query_carrier(self, adapter: CarrierAdapter, tracking_number: str) -> AdapterResult:
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            result = self._wait(adapter, executor.submit(adapter.track_shipment, tracking_number, self.timeout), self.timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        if result.error is not None:
            raise UpstreamError(result.error, carrier=adapter.carrier_id)
        if not result.found:
            raise NotFoundError(f"No tracking information found for {tracking_number} with {adapter.carrier_id}")
        return result

    def _discover(self, tracking_number: str) -> tuple[AdapterResult, tuple[AdapterResult, ...]]:
        if not self.adapters:
            raise NotFoundError("No carriers configured for tracking")
        if self.parallel_discovery:
            attempts = self._discover_parallel(tracking_number)
        else:
            attempts = self._discover_sequential(tracking_number)
        winner = next((a for a in attempts if a.found), None)
        if winner is None:
            raise NotFoundError(f"Tracking number {tracking_number} not found with any carrier")
        return winner, tuple(attempts)

    def _discover_sequential(self, tracking_number: str) -> list[AdapterResult]:
        attempts: list[AdapterResult] = []
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            for adapter in self.adapters:
                future = executor.submit(adapter.track_shipment, tracking_number, self.timeout)
                result = self._wait(adapter, future, self.timeout)
                attempts.append(result)
                if result.found:
                    break
                if result.timed_out:
                    # A hung call would block the single worker; move on with a fresh one.
                    executor.shutdown(wait=False, cancel_futures=True)
                    executor = ThreadPoolExecutor(max_workers=1)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return attempts

    def _discover_parallel(self, tracking_number: str) -> list[AdapterResult]:
        """Fans out to every adapter; the lowest priority index with events wins."""
        attempts: list[AdapterResult] = []
        executor = ThreadPoolExecutor(max_workers=len(self.adapters))
        deadline = time.monotonic() + self.timeout
        try:
            futures = [
                (adapter, executor.submit(adapter.track_shipment, tracking_number, self.timeout))
                for adapter in self.adapters
            ]
            for index, (adapter, future) in enumerate(futures):
                remaining = max(0.0, deadline - time.monotonic())
                result = self._wait(adapter, future, remaining)
                attempts.append(result)
                if result.found:
                    for _, pending in futures[index + 1:]:
                        pending.cancel()
                    break
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return attempts

    def _wait(self, adapter: CarrierAdapter, future: Future, timeout: float) -> AdapterResult:
        carrier_id = adapter.carrier_id
        try:
            events = future.result(timeout=timeout)
        except TimeoutError:
            future.cancel()
            logger.warning("Carrier timed out", extra={"carrier": carrier_id, "timeout": timeout})
            return AdapterResult(carrier=carrier_id, timed_out=True)
        except Exception as e:
            logger.warning("Carrier lookup failed", extra={"carrier": carrier_id, "error": str(e)})
            return AdapterResult(carrier=carrier_id, error=str(e) or e.__class__.__name__)
        return AdapterResult(carrier=carrier_id, events=tuple(events or ()))
