from ride_dispatch.core.presence.registry import PresenceRecord, PresenceRegistry

__all__ = ["PresenceRecord", "PresenceRegistry"]
