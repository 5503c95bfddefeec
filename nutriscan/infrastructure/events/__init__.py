"""Event bus implementations."""

from nutriscan.infrastructure.events.in_memory_bus import InMemoryScanEventBus

__all__ = [
    "InMemoryScanEventBus",
]
