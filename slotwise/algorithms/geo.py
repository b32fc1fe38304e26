"""
Geospatial Helpers

Great-circle distance and the distance-to-score conversion shared by the
eligibility evaluator (radius zones) and the recommendation scorer.
"""

import math
from typing import Iterable, Optional

from slotwise.constants import thresholds
from slotwise.schemas.domain import Coordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(origin: Coordinates, target: Coordinates) -> float:
    """
    Haversine distance between two points, rounded for scoring.

    Rounding happens before any score is derived, so two candidates whose
    raw distances differ only past the first decimal tie on distance.
    """
    raw = haversine_km(origin.latitude, origin.longitude, target.latitude, target.longitude)
    return round(raw, thresholds.DISTANCE_ROUNDING_DECIMALS)


def distance_score(distance: float, max_distance_km: float = thresholds.DEFAULT_MAX_DISTANCE_KM) -> float:
    """
    Convert a distance into a [0, 1] score (closer is better).

    Example:
        >>> distance_score(10.0, 50.0)
        0.8
        >>> distance_score(80.0, 50.0)
        0.0
    """
    return max(0.0, min(1.0, 1.0 - distance / max_distance_km))


def mean_distance_km(origin: Coordinates, targets: Iterable[Coordinates]) -> Optional[float]:
    """Mean rounded distance from origin to each target, or None if there are none."""
    distances = [distance_km(origin, target) for target in targets]
    if not distances:
        return None
    return sum(distances) / len(distances)
