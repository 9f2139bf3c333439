"""
External Services Package.

aiohttp clients of the services the pipeline talks to:
- analysis: archive analysis, record and sentiment queries
- notifications: push notifications
- geocoding: reverse geocoding
"""

from external.analysis import AnalysisClient, AnalysisRecord
from external.geocoding import GeocodingClient
from external.notifications import NotificationClient

__all__ = [
    "AnalysisClient",
    "AnalysisRecord",
    "GeocodingClient",
    "NotificationClient",
]
