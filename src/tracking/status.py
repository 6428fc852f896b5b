"""
Normalization of carrier free-text statuses into CanonicalStatus.

STATUS_KEYWORDS is evaluated top to bottom and the first keyword contained in
the lower-cased status wins, so specific phrases must precede general ones.
"""

from tracking.schemas import CanonicalStatus

STATUS_KEYWORDS: list[tuple[str, CanonicalStatus]] = [
    ("return to sender", CanonicalStatus.RETURNED),
    ("returned", CanonicalStatus.RETURNED),
    ("exception", CanonicalStatus.EXCEPTION),
    ("delivery attempted", CanonicalStatus.EXCEPTION),
    # Negated delivery phrases contain "delivered" and must win over it.
    ("not delivered", CanonicalStatus.EXCEPTION),
    ("not be delivered", CanonicalStatus.EXCEPTION),
    ("undeliver", CanonicalStatus.EXCEPTION),
    ("unable to deliver", CanonicalStatus.EXCEPTION),
    ("delivery failed", CanonicalStatus.EXCEPTION),
    ("out for delivery", CanonicalStatus.OUT_FOR_DELIVERY),
    ("delivered", CanonicalStatus.DELIVERED),
    ("in transit", CanonicalStatus.IN_TRANSIT),
    ("departed", CanonicalStatus.IN_TRANSIT),
    ("arrived at", CanonicalStatus.IN_TRANSIT),
    ("picked up", CanonicalStatus.PICKED_UP),
    ("label created", CanonicalStatus.PENDING),
    ("shipment information received", CanonicalStatus.PENDING),
]

# Forward order for the normal lifecycle.
LIFECYCLE_RANK = {
    CanonicalStatus.PENDING: 0,
    CanonicalStatus.PICKED_UP: 1,
    CanonicalStatus.IN_TRANSIT: 2,
    CanonicalStatus.OUT_FOR_DELIVERY: 3,
    CanonicalStatus.DELIVERED: 4,
}

ABSORBING = frozenset({CanonicalStatus.EXCEPTION, CanonicalStatus.RETURNED})


def map_status(
    text: str | None,
    keywords: list[tuple[str, CanonicalStatus]] | None = None,
) -> CanonicalStatus | None:
    """Returns the canonical status for a carrier status string, or None when nothing matches."""
    if not text:
        return None
    lowered = text.lower()
    for keyword, status in keywords or STATUS_KEYWORDS:
        if keyword in lowered:
            return status
    return None


def advance_status(
    current: CanonicalStatus | None,
    observed: CanonicalStatus | None,
) -> CanonicalStatus | None:
    """
    Next stored status given the current one and a newly observed one.

    No observation keeps the current status. EXCEPTION and RETURNED can be
    entered from any state and are never left. Otherwise the status only
    moves forward.
    """
    if observed is None:
        return current
    if current is None:
        return observed
    if current in ABSORBING:
        return current
    if observed in ABSORBING:
        return observed
    if LIFECYCLE_RANK[observed] >= LIFECYCLE_RANK[current]:
        return observed
    return current


def coerce_status(value) -> CanonicalStatus | None:
    """Parses a stored status value; unknown values read as None."""
    if value is None or isinstance(value, CanonicalStatus):
        return value
    try:
        return CanonicalStatus(str(value).upper())
    except ValueError:
        return None
