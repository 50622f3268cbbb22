"""Great-circle distance helpers shared by SQL filters and Python scoring."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	phi1 = math.radians(lat1)
	phi2 = math.radians(lat2)
	dphi = math.radians(lat2 - lat1)
	dlambda = math.radians(lon2 - lon1)
	a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def haversine_sql(lat_col: str, lon_col: str, lat_param: str, lon_param: str) -> str:
	"""SQL expression for the distance in km between a row and a bound point."""
	return (
		f"(2 * {EARTH_RADIUS_KM} * asin(least(1.0, sqrt("
		f"power(sin(radians({lat_col} - {lat_param}) / 2), 2) + "
		f"cos(radians({lat_param})) * cos(radians({lat_col})) * "
		f"power(sin(radians({lon_col} - {lon_param}) / 2), 2)"
		f"))))"
	)
