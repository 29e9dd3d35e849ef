"""
Pydantic models for starbridge content and game state.

Episodes and campaigns are authored as JSON with camelCase field names
(nextScene, setFlags, moduleStates...). Models use snake_case attributes
and map to the wire names through an alias generator, so a model dumped
with ``by_alias=True`` round-trips existing episode files unchanged.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
)
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds."""
    return int(time.time() * 1000)


class WireModel(BaseModel):
    """Base for every model that is read from or written to JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        """Dump using wire (camelCase) names, dropping unset optionals."""
        kwargs.setdefault("exclude_none", True)
        kwargs.setdefault("mode", "json")
        return self.model_dump(by_alias=True, **kwargs)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class AlertType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    SUCCESS = "success"


# -----------------------------------------------------------------------------
# Conditions
# -----------------------------------------------------------------------------

class ConditionRange(WireModel):
    """Numeric comparators; every one present must hold. Unknown keys are rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", strict=True)

    gt: StrictInt | StrictFloat | None = None
    lt: StrictInt | StrictFloat | None = None
    gte: StrictInt | StrictFloat | None = None
    lte: StrictInt | StrictFloat | None = None
    eq: StrictInt | StrictFloat | None = None
    neq: StrictInt | StrictFloat | None = None


Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
VariableConstraint = Union[ConditionRange, StrictBool, StrictInt, StrictFloat, StrictStr]


class ModuleCondition(WireModel):
    module: str
    condition: str
    params: Any = None


class Condition(WireModel):
    """Gate on a choice. Absent clauses never exclude anything."""
    flags: dict[str, StrictBool] | None = None
    variables: dict[str, VariableConstraint] | None = None
    module_conditions: list[ModuleCondition] | None = None


class EpisodeCondition(WireModel):
    """Gate on a campaign episode: which episode came before, plus state checks."""
    previous_episode_id: str | None = None
    flags: dict[str, StrictBool] | None = None
    variables: dict[str, VariableConstraint] | None = None


# -----------------------------------------------------------------------------
# Module dispatch
# -----------------------------------------------------------------------------

class ModuleAction(WireModel):
    """
    An instruction for one module.

    Authored content writes ``module``; effects emitted by modules
    historically used ``moduleId``. Both are accepted on input.
    """
    module: str = Field(validation_alias=AliasChoices("module", "moduleId"))
    action: str
    payload: Any = None


# Same shape, different provenance: produced by a dispatch rather than authored.
CrossModuleEffect = ModuleAction


class Alert(WireModel):
    type: AlertType = AlertType.INFO
    message: str


class ModuleActionResult(WireModel):
    """
    Outcome of one handled action.

    ``state`` of None means "unchanged"; callers keep the previous state.
    """
    state: dict[str, Any] | None = None
    alert: Alert | None = None
    cross_module_effects: list[ModuleAction] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Episodes
# -----------------------------------------------------------------------------

class Choice(WireModel):
    text: str
    next_scene: str
    set_flags: dict[str, StrictBool] | None = None
    set_variables: dict[str, Scalar] | None = None
    module_actions: list[ModuleAction] | None = None
    condition: Condition | None = None


class Scene(WireModel):
    id: str
    title: str = ""
    text: list[str] = Field(default_factory=list)
    choices: list[Choice] = Field(default_factory=list)

    @property
    def is_ending(self) -> bool:
        """An ending is authored with zero choices."""
        return len(self.choices) == 0


class Episode(WireModel):
    id: str
    title: str
    author: str
    description: str
    stardate: str
    ship_name: str
    scenes: dict[str, Scene]
    required_modules: list[str] | None = None
    module_config: dict[str, dict[str, Any]] | None = None

    def get_scene(self, scene_id: str) -> Scene | None:
        return self.scenes.get(scene_id)


# -----------------------------------------------------------------------------
# Game state
# -----------------------------------------------------------------------------

class GameState(WireModel):
    """
    Full mutable progress snapshot for one episode session.

    Module states are kept as plain dicts: each module owns the typed
    record for its own state and validates it on the way in.
    """
    flags: dict[str, bool] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    module_states: dict[str, dict[str, Any]] = Field(default_factory=dict)


class PartialGameState(WireModel):
    """Overlay applied when entering a campaign episode."""
    flags: dict[str, bool] | None = None
    variables: dict[str, Any] | None = None
    module_states: dict[str, dict[str, Any]] | None = None


# -----------------------------------------------------------------------------
# Campaigns
# -----------------------------------------------------------------------------

class CampaignEpisode(WireModel):
    episode_id: str
    title: str
    description: str | None = None
    order: int
    condition: EpisodeCondition | None = None
    initial_state: PartialGameState | None = None


class Campaign(WireModel):
    id: str
    title: str
    author: str
    description: str
    version: str | None = None
    episodes: list[CampaignEpisode]

    def get_entry(self, episode_id: str) -> CampaignEpisode | None:
        for entry in self.episodes:
            if entry.episode_id == episode_id:
                return entry
        return None


class CampaignProgress(WireModel):
    campaign_id: str
    current_episode_id: str | None = None
    completed_episodes: list[str] = Field(default_factory=list)
    game_state: GameState = Field(default_factory=GameState)
    timestamp: int = Field(default_factory=now_ms)


class SavedState(WireModel):
    episode_id: str
    scene_id: str
    game_state: GameState = Field(default_factory=GameState)
    timestamp: int = Field(default_factory=now_ms)
