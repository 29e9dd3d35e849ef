"""Scene walking, choice gating, effect propagation and campaign sequencing."""

from .campaign import CampaignSession, get_next_episode, prepare_episode_initial_state
from .conditions import is_choice_available, matches_flags, matches_variables
from .propagation import (
    MAX_PROPAGATION_DEPTH,
    EffectPropagator,
    ModuleInteraction,
    PropagationResult,
)
from .walker import ChoiceOutcome, SceneGraphWalker

__all__ = [
    "CampaignSession",
    "ChoiceOutcome",
    "EffectPropagator",
    "MAX_PROPAGATION_DEPTH",
    "ModuleInteraction",
    "PropagationResult",
    "SceneGraphWalker",
    "get_next_episode",
    "is_choice_available",
    "matches_flags",
    "matches_variables",
    "prepare_episode_initial_state",
]
