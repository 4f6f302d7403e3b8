"""Elevation sampling capability consumed by the grid analyzer.

Provides:
- ElevationSample: one sampled point (elevation None when unavailable)
- ElevationSampler: protocol implemented by DEMService and HTTPElevationSampler
- HTTPElevationSampler: batch lookups against an Open-Elevation style API
- RetryPolicy / sample_with_retry: bounded exponential backoff with a total-wait cap

Samplers may return partial results. Points without an elevation are marked
missing, never fabricated.
"""

import logging
import time
from dataclasses import dataclass
from math import isfinite
from typing import Callable, Optional, Protocol, Sequence

import requests

from site_planner.constants import ElevationConfig
from site_planner.errors import ElevationServiceError
from site_planner.model.geo_point import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ElevationSample:
    """Elevation at a point, or None if the service had no value for it."""

    point: GeoPoint
    elevation_m: Optional[float]

    @property
    def is_missing(self) -> bool:
        return self.elevation_m is None


class ElevationSampler(Protocol):
    """Anything that can sample elevations for a batch of points."""

    def sample_elevations(self, points: Sequence[GeoPoint]) -> list[ElevationSample]:
        """Sample a batch of points.

        Raises:
            ElevationServiceError: If the whole request failed.
        """
        ...


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for retryable sampling failures.

    Attributes:
        max_attempts: Total attempts including the first
        backoff_base_s: Delay before the second attempt
        backoff_factor: Multiplier applied per further attempt
        max_total_wait_s: Cap on the summed delays; no retry is started past it
    """

    max_attempts: int = ElevationConfig.MAX_ATTEMPTS
    backoff_base_s: float = ElevationConfig.BACKOFF_BASE_S
    backoff_factor: float = ElevationConfig.BACKOFF_FACTOR
    max_total_wait_s: float = ElevationConfig.MAX_TOTAL_WAIT_S

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_s(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.backoff_base_s * self.backoff_factor ** (attempt - 1)


def sample_with_retry(
    sampler: ElevationSampler,
    points: Sequence[GeoPoint],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> list[ElevationSample]:
    """Sample points, retrying retryable failures with exponential backoff.

    Args:
        sampler: Elevation sampler to call
        points: Points to sample
        policy: Attempt count, backoff and total-wait cap
        sleep: Sleep function (injectable for tests)

    Returns:
        Samples from the first successful attempt.

    Raises:
        ElevationServiceError: The last error once attempts or wait budget are
            exhausted, or immediately for non-retryable errors.
    """
    waited_s = 0.0
    attempt = 1
    while True:
        try:
            return sampler.sample_elevations(points)
        except ElevationServiceError as e:
            if not e.retryable:
                logger.error(f"Elevation sampling failed (not retryable): {e}")
                raise

            delay = policy.delay_s(attempt=attempt)
            if attempt >= policy.max_attempts or waited_s + delay > policy.max_total_wait_s:
                logger.error(f"Elevation sampling failed after {attempt} attempt(s), waited {waited_s:.1f}s: {e}")
                raise

            logger.warning(
                f"Elevation sampling attempt {attempt}/{policy.max_attempts} failed: {e}. Retrying in {delay:.2f}s"
            )
            sleep(delay)
            waited_s += delay
            attempt += 1


class HTTPElevationSampler:
    """Elevation lookups against an Open-Elevation compatible HTTP API.

    Request body: {"locations": [{"latitude": .., "longitude": ..}, ...]}
    Response body: {"results": [{"latitude": .., "longitude": .., "elevation": ..}, ...]}
    Results are matched to the request by position.

    Example:
        sampler = HTTPElevationSampler()
        samples = sampler.sample_elevations([GeoPoint(lat=46.98, lng=10.29)])
    """

    def __init__(
        self,
        url: str = ElevationConfig.OPEN_ELEVATION_URL,
        timeout_s: float = ElevationConfig.HTTP_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def sample_elevations(self, points: Sequence[GeoPoint]) -> list[ElevationSample]:
        if not points:
            return []

        payload = {"locations": [{"latitude": p.lat, "longitude": p.lng} for p in points]}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ElevationServiceError(f"Elevation request to {self.url} failed: {e}", retryable=True) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise ElevationServiceError(
                f"Elevation service returned HTTP {response.status_code}", retryable=True
            )
        if response.status_code >= 400:
            raise ElevationServiceError(
                f"Elevation service rejected request with HTTP {response.status_code}", retryable=False
            )

        try:
            results = response.json()["results"]
        except (ValueError, KeyError, TypeError) as e:
            raise ElevationServiceError(f"Malformed elevation response: {e}", retryable=False) from e
        if not isinstance(results, list):
            raise ElevationServiceError(
                f"Malformed elevation response: results is {type(results).__name__}, not a list", retryable=False
            )

        samples = [
            ElevationSample(point=point, elevation_m=_parse_elevation(results[i]) if i < len(results) else None)
            for i, point in enumerate(points)
        ]

        missing = sum(1 for s in samples if s.is_missing)
        if missing:
            logger.warning(f"Elevation service returned no value for {missing}/{len(points)} point(s)")
        return samples


def _parse_elevation(entry: object) -> Optional[float]:
    """Elevation of one result entry, or None if the entry is null or unusable."""
    if not isinstance(entry, dict):
        if entry is not None:
            logger.warning(f"Ignoring malformed elevation result {entry!r}")
        return None
    raw = entry.get("elevation")
    if raw is None:
        return None
    try:
        elevation = float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric elevation {raw!r}")
        return None
    if not isfinite(elevation):
        logger.warning(f"Ignoring non-finite elevation {raw!r}")
        return None
    return elevation
