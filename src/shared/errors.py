"""Error taxonomy shared by the rates and tracking services."""


class ShipmentValidationError(ValueError):
    """Malformed or out-of-range input. Caller's fault, never retried."""

    def __init__(self, errors: list[str] | str):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(LookupError):
    """Tracking number unknown to every carrier, or an unknown carrier/service was referenced."""

    pass


class UpstreamError(Exception):
    """Raised when a carrier API returns an error or is unreachable."""

    def __init__(self, message: str, carrier: str | None = None):
        self.carrier = carrier
        super().__init__(message)


class BatchItemError(Exception):
    """One bulk-tracking item failed; rendered into that item's result slot."""

    def __init__(self, tracking_number: str, cause: Exception):
        self.tracking_number = tracking_number
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)

    def to_result(self) -> dict:
        return {
            "tracking_number": self.tracking_number,
            "error": str(self),
            "success": False,
        }


class RateLimitExceeded(Exception):
    """Caller exhausted its request budget."""

    def __init__(self, identity: str, retry_after: int, limit: int | None = None, remaining: int = 0):
        self.identity = identity
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        super().__init__(f"Rate limit exceeded. Retry in {retry_after}s.")
