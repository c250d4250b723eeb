"""
Upstream integrations built on the acquisition pipeline.
"""

from cosmofy.datasource.constellations import ConstellationSource
from cosmofy.datasource.geolocation import GeolocationSource
from cosmofy.datasource.iss import IssSource
from cosmofy.datasource.nasa import NasaSource
from cosmofy.datasource.panchang import PanchangSource
from cosmofy.datasource.space_news import SpaceNewsSource

__all__ = [
    "ConstellationSource",
    "GeolocationSource",
    "IssSource",
    "NasaSource",
    "PanchangSource",
    "SpaceNewsSource",
]
