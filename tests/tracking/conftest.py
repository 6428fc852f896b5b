import threading
from datetime import datetime, timedelta, timezone

import pytest

from tracking.carriers import CarrierAdapter
from tracking.schemas import TrackingEvent

BASE_TIME = datetime(2026, 10, 12, 8, 0, tzinfo=timezone.utc)


class FakeAdapter(CarrierAdapter):
    """In-memory carrier: returns canned events, raises, or blocks until released."""

    def __init__(self, carrier_id, events=None, error=None, block=False):
        self.carrier_id = carrier_id
        self.name = carrier_id.upper()
        # list of events, or a dict of tracking number -> events
        self.events = events if isinstance(events, dict) else list(events or [])
        self.error = error
        self.block = block
        self.release = threading.Event()
        self.calls = []

    def track_shipment(self, tracking_number, timeout=15):
        self.calls.append(tracking_number)
        if self.block:
            self.release.wait(5)
        if self.error is not None:
            raise self.error
        if isinstance(self.events, dict):
            return list(self.events.get(tracking_number, []))
        return list(self.events)


@pytest.fixture
def make_event():
    def factory(carrier="ups", status="In Transit", hours=0, **fields):
        return TrackingEvent(
            carrier=carrier,
            status=status,
            timestamp=BASE_TIME + timedelta(hours=hours),
            **fields,
        )
    return factory


@pytest.fixture
def adapter_factory():
    created = []

    def factory(carrier_id, events=None, error=None, block=False):
        adapter = FakeAdapter(carrier_id, events=events, error=error, block=block)
        created.append(adapter)
        return adapter

    yield factory
    # unblock any worker threads left waiting
    for adapter in created:
        adapter.release.set()
