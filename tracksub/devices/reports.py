"""
Trip summaries computed from a device's position history.

Traccar reports speed in knots; everything here is converted to km/h.
Distances use the haversine formula on a spherical Earth, which is well
within GPS error for vehicle trips.

A leg between two consecutive fixes counts as moving time when the later
fix reports more than MOVING_SPEED_KMH.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from itertools import pairwise
from typing import Any

from django.utils.dateparse import parse_datetime

EARTH_RADIUS_KM = 6371.0
KNOTS_TO_KMH = 1.852
MOVING_SPEED_KMH = 5.0

# Positions fetched for one report, and how many are echoed back.
REPORT_POSITION_LIMIT = 1000
REPORT_POSITIONS_RETURNED = 500


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class TripSummary:
    total_distance_km: float = 0.0
    max_speed_kmh: float = 0.0
    average_speed_kmh: float = 0.0
    total_minutes: int = 0
    moving_minutes: int = 0
    stopped_minutes: int = 0
    position_count: int = 0


def _speed_kmh(position: dict[str, Any]) -> float:
    return float(position.get("speed") or 0) * KNOTS_TO_KMH


def _fixed_at(position: dict[str, Any]):
    value = position.get("fixTime") or position.get("deviceTime")
    return parse_datetime(value) if value else None


def summarize_trip(positions: list[dict[str, Any]]) -> TripSummary:
    """
    Distance, speeds and time split for positions in chronological order.

    Fixes without coordinates add no distance, and legs with a missing
    timestamp add no time.
    """
    distance = 0.0
    total = timedelta()
    moving = timedelta()
    max_speed = max((_speed_kmh(p) for p in positions), default=0.0)

    for previous, current in pairwise(positions):
        if None not in (
            previous.get("latitude"),
            previous.get("longitude"),
            current.get("latitude"),
            current.get("longitude"),
        ):
            distance += haversine_km(
                float(previous["latitude"]),
                float(previous["longitude"]),
                float(current["latitude"]),
                float(current["longitude"]),
            )

        started, ended = _fixed_at(previous), _fixed_at(current)
        if started is None or ended is None or ended < started:
            continue
        elapsed = ended - started
        total += elapsed
        if _speed_kmh(current) > MOVING_SPEED_KMH:
            moving += elapsed

    hours = total.total_seconds() / 3600
    return TripSummary(
        total_distance_km=round(distance, 2),
        max_speed_kmh=round(max_speed, 2),
        average_speed_kmh=round(distance / hours, 2) if hours else 0.0,
        total_minutes=round(total.total_seconds() / 60),
        moving_minutes=round(moving.total_seconds() / 60),
        stopped_minutes=round((total - moving).total_seconds() / 60),
        position_count=len(positions),
    )
