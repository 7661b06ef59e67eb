# ride_dispatch/shared/events/__init__.py
"""
Доменные события, передаваемые через шину.
"""

from ride_dispatch.shared.events.base import DomainEvent, EventMetadata
from ride_dispatch.shared.events.request_events import (
    LocationUpdated,
    PresenceChanged,
    RequestAccepted,
    RequestCancelled,
    RequestCreated,
    RequestUnavailable,
    StatusChanged,
)

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "RequestCreated",
    "RequestAccepted",
    "RequestUnavailable",
    "StatusChanged",
    "LocationUpdated",
    "RequestCancelled",
    "PresenceChanged",
]
