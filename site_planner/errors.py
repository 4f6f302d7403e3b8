"""Exception types raised by the site geometry and terrain engine.

Validation failures are not exceptions: they are returned as
ZoneValidationResult values. Only faults that the caller cannot treat as an
ordinary outcome are raised.
"""


class SitePlannerError(Exception):
    """Base class for all site planner errors."""


class GeometryError(SitePlannerError):
    """Degenerate or self-intersecting ring, or an impossible geometric operation.

    Not retryable. The message names the operation and the shape that failed.

    Attributes:
        operation: Operation that failed (e.g. "buffer", "normalize_ring")
        shape_id: ID of the offending shape, if known
        detail: Human-readable description of the failure
    """

    def __init__(self, operation: str, detail: str, shape_id: str | None = None) -> None:
        self.operation = operation
        self.shape_id = shape_id
        self.detail = detail
        target = f" on shape {shape_id}" if shape_id else ""
        super().__init__(f"{operation} failed{target}: {detail}")


class ElevationServiceError(SitePlannerError):
    """Elevation sampling request failed (network, quota, bad response).

    Attributes:
        retryable: Whether the request may succeed if repeated
    """

    def __init__(self, detail: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(detail)


class AnalysisCancelled(SitePlannerError):
    """A grid computation was superseded before it finished."""
