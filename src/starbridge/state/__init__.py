"""Content schema, game state and persistence for starbridge."""

from .schema import (
    Alert,
    AlertType,
    Campaign,
    CampaignEpisode,
    CampaignProgress,
    Choice,
    Condition,
    ConditionRange,
    CrossModuleEffect,
    Episode,
    EpisodeCondition,
    GameState,
    ModuleAction,
    ModuleActionResult,
    ModuleCondition,
    PartialGameState,
    SavedState,
    Scene,
)
from .store import ProgressStore, JsonProgressStore, MemoryProgressStore
from .event_bus import (
    EventBus,
    EventType,
    EngineEvent,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    "Alert",
    "AlertType",
    "Campaign",
    "CampaignEpisode",
    "CampaignProgress",
    "Choice",
    "Condition",
    "ConditionRange",
    "CrossModuleEffect",
    "Episode",
    "EpisodeCondition",
    "GameState",
    "ModuleAction",
    "ModuleActionResult",
    "ModuleCondition",
    "PartialGameState",
    "SavedState",
    "Scene",
    "ProgressStore",
    "JsonProgressStore",
    "MemoryProgressStore",
    "EventBus",
    "EventType",
    "EngineEvent",
    "get_event_bus",
    "reset_event_bus",
]
