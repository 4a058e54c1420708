"""Foundry VTT integration."""

from diehard.integrations.foundry.foundry_bridge import (
    FoundryBridge,
    FoundryEvent,
    FoundryEventType,
)

__all__ = [
    "FoundryBridge",
    "FoundryEvent",
    "FoundryEventType",
]
