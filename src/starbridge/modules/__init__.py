"""Pluggable domain modules: ship, crew, inventory, mission and registry."""

from .base import GameModule, clamp
from .crew import CrewModule
from .federation_db import RegistryModule
from .inventory import InventoryModule
from .mission import MissionModule
from .registry import ModuleRegistry, create_default_registry
from .ship import ShipModule

__all__ = [
    "GameModule",
    "clamp",
    "CrewModule",
    "InventoryModule",
    "MissionModule",
    "ModuleRegistry",
    "RegistryModule",
    "ShipModule",
    "create_default_registry",
]
