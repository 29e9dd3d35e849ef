"""
starbridge: a branching starship narrative engine.

Episodes are scene graphs authored as JSON. Choices set flags and
variables and send actions to pluggable modules (ship, crew, inventory,
mission, registry) whose reactions can cascade into each other.
Campaigns chain episodes, picking the next one from the state the last
one left behind.
"""

__version__ = "0.1.0"

from .content import ContentLibrary, lint_campaign, lint_episode
from .engine import CampaignSession, SceneGraphWalker, get_next_episode
from .errors import StarbridgeError
from .modules import ModuleRegistry, create_default_registry
from .state import Campaign, Episode, GameState, JsonProgressStore, MemoryProgressStore

__all__ = [
    "Campaign",
    "CampaignSession",
    "ContentLibrary",
    "Episode",
    "GameState",
    "JsonProgressStore",
    "MemoryProgressStore",
    "ModuleRegistry",
    "SceneGraphWalker",
    "StarbridgeError",
    "create_default_registry",
    "get_next_episode",
    "lint_campaign",
    "lint_episode",
]
