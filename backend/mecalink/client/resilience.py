"""Client-side fallbacks so the UI keeps rendering when the API is unreachable.

Every read goes through :class:`ClientResilienceCache`, which answers with a
tagged result: :class:`Real` for a live answer, :class:`Degraded` for stale
cache hits or synthetic placeholders. Only ``UnavailableError`` is absorbed;
authorization, validation and state errors always reach the caller.
"""

import logging
import math
import random
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, ClassVar, Dict, Hashable, List, Literal, Optional, Union

from mecalink.client.api_client import DEFAULT_RADIUS_KM, MecaLinkClient
from mecalink.models import Position, Provider, RequestLocation, ServiceRequest, VehicleInfo
from mecalink.services import geo_matcher
from mecalink.services.errors import InputValidationError, UnavailableError

logger = logging.getLogger(__name__)

CONNECTIVITY_WARNING = "Unable to reach the server. Offline data is displayed instead."
SYNTHETIC_SERVICES = ["Breakdown assistance", "Towing", "Repair"]


@dataclass(frozen=True)
class Real:
    data: Any
    fetched_at: float
    degraded: ClassVar[bool] = False


@dataclass(frozen=True)
class Degraded:
    data: Any
    source: Literal["stale", "synthetic"]
    reason: str
    fetched_at: Optional[float] = None
    degraded: ClassVar[bool] = True

    @property
    def warning(self) -> str:
        return CONNECTIVITY_WARNING


QueryResult = Union[Real, Degraded]


def nearby_key(position: Position, radius_km: float) -> tuple:
    return ("nearby", round(position.latitude, 5), round(position.longitude, 5), round(float(radius_km), 3))


def request_key(identity: Optional[str], request_id: str) -> tuple:
    return ("request", identity, request_id)


def request_list_key(identity: Optional[str], role: str) -> tuple:
    return ("requests", identity, role)


def synthesize_providers(
    origin: Position,
    radius_km: float,
    count: int = 5,
    rng: Optional[random.Random] = None,
) -> List[Provider]:
    """Placeholder garages scattered inside ``radius_km`` of ``origin``, nearest first."""
    if geo_matcher.coordinates_of(origin) is None or not radius_km > 0 or count <= 0:
        return []
    rng = rng or random.Random()
    placeholders: List[Provider] = []
    for index in range(count):
        # sqrt spreads the points uniformly over the disc.
        km = radius_km * math.sqrt(rng.random()) * 0.99
        point = geo_matcher.destination(origin, rng.uniform(0.0, 360.0), km)
        if point is None:
            continue
        placeholders.append(
            Provider(
                id=f"synthetic-{index + 1}",
                name=f"Garage {index + 1}",
                address="Address unavailable offline",
                position=Position(latitude=point[0], longitude=point[1]),
                services=list(SYNTHETIC_SERVICES),
                description="Placeholder garage shown while the server is unreachable.",
                opening_hours="8h-18h",
                is_open=True,
                rating=round(3 + rng.random() * 2, 1),
                synthetic=True,
            )
        )
    return [
        provider.model_copy(update={"distance_km": km})
        for provider, km in geo_matcher.nearby(origin, placeholders, radius_km)
    ]


class ClientResilienceCache:
    """Last-known-good results keyed by an explicit query signature.

    Only real results are stored. Synthetic placeholders are handed back to the
    caller and never cached, so the next successful query replaces whatever the
    UI was showing.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[Hashable, Real] = {}

    def get(self, key: Hashable, max_age_seconds: Optional[float] = None) -> Optional[Real]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if max_age_seconds is not None and self._clock() - entry.fetched_at > max_age_seconds:
            return None
        return entry

    def put(self, key: Hashable, data: Any) -> Real:
        entry = Real(data=data, fetched_at=self._clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def query(
        self,
        key: Hashable,
        fetch: Callable[[], Any],
        fallback: Optional[Callable[[], Any]] = None,
        max_age_seconds: Optional[float] = None,
    ) -> QueryResult:
        try:
            data = fetch()
        except UnavailableError as exc:
            cached = self.get(key, max_age_seconds=max_age_seconds)
            if cached is not None:
                logger.warning("Serving stale result for %s: %s", key, exc)
                return Degraded(data=cached.data, source="stale", reason=str(exc), fetched_at=cached.fetched_at)
            if fallback is None:
                raise
            logger.warning("Serving synthetic result for %s: %s", key, exc)
            return Degraded(data=fallback(), source="synthetic", reason=str(exc))
        return self.put(key, data)


class ResilientMecaLinkClient:
    """UI-facing wrapper: reads go through the cache, writes go straight to the API."""

    def __init__(
        self,
        client: MecaLinkClient,
        cache: Optional[ClientResilienceCache] = None,
        synthetic_count: int = 5,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.cache = cache if cache is not None else ClientResilienceCache()
        self._synthetic_count = synthetic_count
        self._rng = rng

    def nearby_providers(
        self,
        position: Position,
        radius_km: float = DEFAULT_RADIUS_KM,
        max_age_seconds: Optional[float] = None,
    ) -> QueryResult:
        return self.cache.query(
            nearby_key(position, radius_km),
            lambda: self.client.nearby_providers(position, radius_km),
            fallback=lambda: synthesize_providers(position, radius_km, self._synthetic_count, self._rng),
            max_age_seconds=max_age_seconds,
        )

    def get_request(self, request_id: str, max_age_seconds: Optional[float] = None) -> QueryResult:
        return self.cache.query(
            request_key(self.client.identity, request_id),
            lambda: self.client.get_request(request_id),
            max_age_seconds=max_age_seconds,
        )

    def list_requests(self, role: str, max_age_seconds: Optional[float] = None) -> QueryResult:
        return self.cache.query(
            request_list_key(self.client.identity, role),
            lambda: self.client.list_requests(role),
            max_age_seconds=max_age_seconds,
        )

    def create_request(
        self,
        provider: Provider,
        description: str,
        location: RequestLocation,
        vehicle_info: Optional[VehicleInfo] = None,
        urgency: str = "medium",
    ) -> ServiceRequest:
        if provider.synthetic:
            raise InputValidationError("provider_id: placeholder garages cannot receive requests")
        created = self.client.create_request(provider.id, description, location, vehicle_info, urgency)
        self.cache.put(request_key(self.client.identity, created.id), created)
        return created

    def transition_request(self, request_id: str, status: str) -> ServiceRequest:
        # An UnavailableError here means the outcome is unknown; re-read before retrying.
        updated = self.client.transition_request(request_id, status)
        self.cache.put(request_key(self.client.identity, request_id), updated)
        return updated
