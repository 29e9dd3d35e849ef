"""
Campaign sequencing.

A campaign is a list of episodes grouped by ``order``. The first episode
is the one at order 1; after that, the next episode is the lowest-order
entry whose condition names the episode just finished and whose flag and
variable checks hold for the carried-over game state.

Progress is saved twice on every completion: once with no current
episode (the finished one is recorded), then again with the next episode
and its prepared state. A crash between the two leaves a resumable
record either way.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import EpisodeNotFoundError, StarbridgeError
from ..modules.registry import ModuleRegistry
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import Campaign, CampaignProgress, Choice, GameState, now_ms
from ..state.store import ProgressStore
from .conditions import matches_flags, matches_variables
from .propagation import MAX_PROPAGATION_DEPTH
from .walker import ChoiceOutcome, SceneGraphWalker, persist_quietly

if TYPE_CHECKING:
    from ..content.library import ContentSource

logger = logging.getLogger(__name__)


def get_next_episode(
    campaign: Campaign,
    current_episode_id: str | None,
    game_state: GameState,
) -> str | None:
    """
    Pick the episode that follows ``current_episode_id``.

    None as the current episode asks for the entry point (order 1).
    Returns None when nothing matches, which means the campaign is over
    (or, for the entry point, that the campaign is malformed).
    """
    if current_episode_id is None:
        entry = next((e for e in campaign.episodes if e.order == 1), None)
        return entry.episode_id if entry else None

    candidates = [
        entry for entry in campaign.episodes
        if entry.condition is not None
        and entry.condition.previous_episode_id == current_episode_id
        and matches_flags(entry.condition.flags, game_state.flags)
        and matches_variables(entry.condition.variables, game_state.variables)
    ]
    # Stable: same-order siblings keep authored order
    candidates.sort(key=lambda e: e.order)
    return candidates[0].episode_id if candidates else None


def prepare_episode_initial_state(
    campaign: Campaign,
    episode_id: str,
    base_game_state: GameState,
) -> GameState:
    """
    Overlay an entry's ``initialState`` on the carried-over state.

    Flags and variables merge key by key. Module states merge one level
    deeper: each module's overlay is merged over that module's existing
    state rather than replacing it.
    """
    entry = campaign.get_entry(episode_id)
    if entry is None or entry.initial_state is None:
        return base_game_state

    overlay = entry.initial_state
    prepared = base_game_state.model_copy(deep=True)
    prepared.flags.update(overlay.flags or {})
    prepared.variables.update(overlay.variables or {})
    for module_id, module_overlay in (overlay.module_states or {}).items():
        merged = dict(prepared.module_states.get(module_id) or {})
        merged.update(module_overlay)
        prepared.module_states[module_id] = merged
    return prepared


class CampaignSession:
    """
    Plays a campaign episode by episode on top of a SceneGraphWalker.

    Usage:
        session = CampaignSession(campaign, library, registry, store)
        walker = session.start()
        outcome = session.select_choice(choice)
        if outcome.is_ending and not session.is_complete:
            walker = session.advance()
    """

    def __init__(
        self,
        campaign: Campaign,
        content: "ContentSource",
        registry: ModuleRegistry,
        store: ProgressStore,
        event_bus: EventBus | None = None,
        max_propagation_depth: int = MAX_PROPAGATION_DEPTH,
    ):
        self.campaign = campaign
        self.content = content
        self.registry = registry
        self.store = store
        self._bus = event_bus or get_event_bus()
        self._max_depth = max_propagation_depth

        self.progress: CampaignProgress | None = None
        self.walker: SceneGraphWalker | None = None

    @property
    def is_complete(self) -> bool:
        """Progress exists and has no episode left to play."""
        return self.progress is not None and self.progress.current_episode_id is None

    # ─── Lifecycle ───────────────────────────────────────────

    def start(self, reset: bool = False) -> SceneGraphWalker | None:
        """
        Start or resume the campaign.

        Returns the walker for the current episode, or None when the
        saved progress says the campaign is already finished.
        """
        if reset:
            self.reset_progress()

        progress = self.store.get_campaign_progress(self.campaign.id)
        if progress is None:
            first = get_next_episode(self.campaign, None, GameState())
            if first is None:
                raise StarbridgeError(f"Campaign '{self.campaign.id}' has no starting episode (order 1)")
            state = prepare_episode_initial_state(self.campaign, first, GameState())
            progress = CampaignProgress(
                campaign_id=self.campaign.id,
                current_episode_id=first,
                game_state=state,
            )
            self._save(progress)
            logger.info("Starting campaign %s at %s", self.campaign.id, first)

        self.progress = progress
        if progress.current_episode_id is None:
            return None
        return self._enter(progress.current_episode_id, resume=True)

    def _enter(self, episode_id: str, resume: bool = False) -> SceneGraphWalker:
        episode = self.content.get_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)

        walker = SceneGraphWalker(
            episode,
            self.registry,
            store=self.store,
            event_bus=self._bus,
            max_propagation_depth=self._max_depth,
        )

        # A save newer than the campaign record means we stopped mid-episode
        saved = self.store.get_saved_state(episode_id) if resume else None
        if saved is not None and self.progress is not None and saved.timestamp >= self.progress.timestamp:
            walker.start(game_state=saved.game_state, scene_id=saved.scene_id)
        else:
            walker.start(game_state=self.progress.game_state if self.progress else None)

        self.walker = walker
        return walker

    def select_choice(self, choice: Choice | int) -> ChoiceOutcome:
        """Take a choice; reaching an ending records the episode as complete."""
        if self.walker is None:
            raise StarbridgeError("No episode in progress")
        outcome = self.walker.select_choice(choice)
        if outcome.is_ending:
            self.complete_episode()
        return outcome

    def complete_episode(self) -> str | None:
        """
        Record the current episode as finished and pick the next one.

        Returns the next episode id, or None when the campaign is over.
        The next episode is not entered until ``advance()``.
        """
        if self.walker is None or self.progress is None:
            raise StarbridgeError("No episode in progress")

        finished = self.walker.episode.id
        state = self.walker.game_state.model_copy(deep=True)
        completed = list(self.progress.completed_episodes)
        if finished not in completed:
            completed.append(finished)

        self.progress = CampaignProgress(
            campaign_id=self.campaign.id,
            current_episode_id=None,
            completed_episodes=completed,
            game_state=state,
        )
        self._save(self.progress)
        self._bus.emit(EventType.EPISODE_COMPLETED, episode_id=finished, campaign_id=self.campaign.id)

        next_id = get_next_episode(self.campaign, finished, state)
        if next_id is None:
            logger.info("Campaign %s complete", self.campaign.id)
            self._bus.emit(
                EventType.CAMPAIGN_COMPLETED,
                episode_id=finished,
                campaign_id=self.campaign.id,
                completed=completed,
            )
            return None

        self.progress = CampaignProgress(
            campaign_id=self.campaign.id,
            current_episode_id=next_id,
            completed_episodes=completed,
            game_state=prepare_episode_initial_state(self.campaign, next_id, state),
            timestamp=now_ms(),
        )
        self._save(self.progress)
        self._bus.emit(
            EventType.CAMPAIGN_ADVANCED,
            episode_id=next_id,
            campaign_id=self.campaign.id,
            previous=finished,
        )
        return next_id

    def advance(self) -> SceneGraphWalker | None:
        """Enter the episode the progress record points at, if any."""
        if self.progress is None or self.progress.current_episode_id is None:
            return None
        return self._enter(self.progress.current_episode_id)

    def exit(self) -> None:
        """Save where we are and leave the campaign."""
        if self.walker is not None:
            self.walker.save()
        self.walker = None

    def reset_progress(self) -> None:
        """Forget campaign progress. Older episode saves are ignored on resume."""
        self.store.delete_campaign_progress(self.campaign.id)
        self.progress = None
        self.walker = None

    def summary(self) -> dict[str, Any]:
        """Plain view of progress for display."""
        progress = self.progress
        return {
            "campaign": self.campaign.title,
            "current": progress.current_episode_id if progress else None,
            "completed": list(progress.completed_episodes) if progress else [],
            "total": len({e.episode_id for e in self.campaign.episodes}),
        }

    def _save(self, progress: CampaignProgress) -> bool:
        return persist_quietly(
            self._bus,
            progress.current_episode_id or "",
            "campaign progress",
            lambda: self.store.save_campaign_progress(
                progress.campaign_id,
                progress.current_episode_id,
                progress.completed_episodes,
                progress.game_state,
            ),
        )
