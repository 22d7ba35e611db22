"""Gear catalogue: browsing, filtering and popularity."""

from gearflow.modules.gears.service import GearService

__all__ = [
    "GearService",
]
