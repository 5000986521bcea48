from __future__ import annotations

import re
from collections.abc import Callable


_DEGMIN_HEM_PAIR_RE = re.compile(
    r"(?P<lat_deg>\d{1,2})[- ](?P<lat_min>\d{1,2}(?:\.\d+)?)\s*(?P<lat_hem>[NS])\s*[, ]\s*"
    r"(?P<lon_deg>\d{1,3})[- ](?P<lon_min>\d{1,2}(?:\.\d+)?)\s*(?P<lon_hem>[EW])",
    flags=re.IGNORECASE,
)
_DECIMAL_HEM_PAIR_RE = re.compile(
    r"(?P<lat>\d{1,2}(?:\.\d+)?)\s*(?P<lat_hem>[NS])\s*[, ]\s*"
    r"(?P<lon>\d{1,3}(?:\.\d+)?)\s*(?P<lon_hem>[EW])",
    flags=re.IGNORECASE,
)
_DECIMAL_PAIR_RE = re.compile(r"(?P<lat>-?\d{1,2}\.\d+)\s*,\s*(?P<lon>-?\d{1,3}\.\d+)")

# Rough open-ocean boxes as (min_lat, max_lat, min_lon, max_lon).
OCEAN_BOXES: tuple[tuple[float, float, float, float], ...] = (
    (-40.0, 30.0, -30.0, 60.0),
    (-40.0, 30.0, 60.0, 180.0),
    (-40.0, 30.0, -180.0, -30.0),
)


def _signed(value: float, hemisphere: str, negative: str) -> float:
    return -value if hemisphere.casefold() == negative else value


def _from_degmin(m: re.Match[str]) -> tuple[float, float]:
    lat = float(m.group("lat_deg")) + float(m.group("lat_min")) / 60.0
    lon = float(m.group("lon_deg")) + float(m.group("lon_min")) / 60.0
    return (_signed(lat, m.group("lat_hem"), "s"), _signed(lon, m.group("lon_hem"), "w"))


def _from_decimal_hem(m: re.Match[str]) -> tuple[float, float]:
    return (
        _signed(float(m.group("lat")), m.group("lat_hem"), "s"),
        _signed(float(m.group("lon")), m.group("lon_hem"), "w"),
    )


def _from_decimal(m: re.Match[str]) -> tuple[float, float]:
    return (float(m.group("lat")), float(m.group("lon")))


_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], tuple[float, float]]]] = [
    (_DEGMIN_HEM_PAIR_RE, _from_degmin),
    (_DECIMAL_HEM_PAIR_RE, _from_decimal_hem),
    (_DECIMAL_PAIR_RE, _from_decimal),
]


def extract_coords(text: str) -> list[tuple[float, float]]:
    """Coordinate pairs written in free text, in range, without repeats."""
    found: list[tuple[float, float]] = []
    for pattern, convert in _PATTERNS:
        for match in pattern.finditer(text or ""):
            coords = convert(match)
            if valid_coordinates(*coords) and coords not in found:
                found.append(coords)
    return found


def extract_coords_centroid(text: str) -> tuple[float, float] | None:
    coords = extract_coords(text)
    if not coords:
        return None
    lat = sum(c[0] for c in coords) / len(coords)
    lon = sum(c[1] for c in coords) / len(coords)
    return (lat, lon)


def valid_coordinates(lat: float, lon: float) -> bool:
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def likely_in_ocean(
    lat: float,
    lon: float,
    boxes: tuple[tuple[float, float, float, float], ...] = OCEAN_BOXES,
) -> bool:
    if abs(lat) >= 60:
        return False
    for min_lat, max_lat, min_lon, max_lon in boxes:
        if min_lat < lat < max_lat and min_lon < lon < max_lon:
            return True
    return False


def plausible_coordinates(lat: float, lon: float, *, sanity_check: bool = False) -> bool:
    if not valid_coordinates(lat, lon):
        return False
    if sanity_check and likely_in_ocean(lat, lon):
        return False
    return True
