"""
Module registry for starbridge.

One registry holds one instance of each module. It is built once at
startup (``create_default_registry``) and handed to sessions, so tests
can build a fresh one per case.

An episode opts in to the modules it needs through ``requiredModules``;
modules it does not list stay uninitialized and absent from its
``moduleStates``.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Iterable

from .base import GameModule
from .crew import CrewModule
from .federation_db import RegistryModule
from .inventory import InventoryModule
from .mission import MissionModule
from .ship import ShipModule

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """Lookup table of module instances keyed by module id."""

    def __init__(self, modules: Iterable[GameModule] = ()):
        self._modules: dict[str, GameModule] = {}
        for module in modules:
            self.register(module)

    def register(self, module: GameModule) -> None:
        if module.id in self._modules:
            logger.warning("Replacing registered module %s", module.id)
        self._modules[module.id] = module

    def __contains__(self, module_id: str) -> bool:
        return module_id in self._modules

    def get_available_modules(self) -> dict[str, GameModule]:
        return dict(self._modules)

    def get_module(self, module_id: str) -> GameModule | None:
        return self._modules.get(module_id)

    def initialize_modules(
        self,
        required_modules: Iterable[str] | None = None,
        module_config: dict[str, Any] | None = None,
    ) -> dict[str, dict]:
        """
        Initialize each required module with its config entry.

        Re-initializing a module resets it. Unknown ids are skipped.
        Returns the fresh states keyed by module id.
        """
        module_config = module_config or {}
        states: dict[str, dict] = {}
        for module_id in required_modules or []:
            module = self._modules.get(module_id)
            if module is None:
                logger.debug("Skipping unknown module %s", module_id)
                continue
            states[module_id] = module.initialize(module_config.get(module_id) or {})
        return states

    def restore_modules(self, module_states: dict[str, dict]) -> None:
        """Push persisted states back into their modules (session resume)."""
        for module_id, state in module_states.items():
            module = self._modules.get(module_id)
            if module is not None and state is not None:
                module.set_state(state)

    def live_modules(self, module_ids: Iterable[str]) -> dict[str, GameModule]:
        """The subset of modules active for an episode."""
        return {
            module_id: self._modules[module_id]
            for module_id in module_ids
            if module_id in self._modules
        }


def create_default_registry(rng: random.Random | None = None) -> ModuleRegistry:
    """Registry with ship, crew, inventory, mission and registry modules."""
    rng = rng or random.Random()
    return ModuleRegistry([
        ShipModule(rng=rng),
        CrewModule(rng=rng),
        InventoryModule(),
        MissionModule(),
        RegistryModule(),
    ])
