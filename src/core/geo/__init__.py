# src/core/geo/__init__.py
"""
Geo-модуль.
Расстояния между точками и геокодирование адресов.
"""

from src.core.geo.client import GeolocationClient, Location
from src.core.geo.distance import haversine_km

__all__ = [
    "GeolocationClient",
    "Location",
    "haversine_km",
]
