"""
Scene graph walker.

Owns the game state for one episode session: which scene is showing,
the flags and variables set so far, and the module states. Choosing a
choice applies its flags, variables and module actions, moves to the
next scene and saves, in that order.

Saving never blocks a transition: a failed write is logged and published
on the event bus, and the in-memory state stays authoritative.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from ..errors import InvalidChoiceError, SceneNotFoundError
from ..modules.base import GameModule
from ..modules.registry import ModuleRegistry
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import Alert, Choice, Episode, GameState, ModuleAction, Scene
from ..state.store import ProgressStore
from .conditions import is_choice_available
from .propagation import MAX_PROPAGATION_DEPTH, EffectPropagator, PropagationResult

logger = logging.getLogger(__name__)

START_SCENE = "start"


def persist_quietly(bus: EventBus, episode_id: str, what: str, write: Callable[[], Any]) -> bool:
    """Run a store write; failures are logged and published, never raised."""
    try:
        write()
    except Exception as e:
        logger.error("Failed to save %s for %s", what, episode_id, exc_info=True)
        bus.emit(EventType.PERSISTENCE_FAILED, episode_id=episode_id, what=what, error=str(e))
        return False
    bus.emit(EventType.GAME_SAVED, episode_id=episode_id, what=what)
    return True


@dataclass
class ChoiceOutcome:
    """What happened when a choice was taken."""
    scene: Scene
    propagation: PropagationResult = field(default_factory=PropagationResult)
    is_ending: bool = False
    saved: bool = False

    @property
    def alerts(self) -> list[Alert]:
        return self.propagation.alerts

    @property
    def alert(self) -> Alert | None:
        """The alert to display: the last one raised."""
        return self.propagation.last_alert


class SceneGraphWalker:
    """
    Plays one episode.

    Usage:
        walker = SceneGraphWalker(episode, registry, store)
        walker.start()
        for choice in walker.get_available_choices():
            ...
        outcome = walker.select_choice(choice)
    """

    def __init__(
        self,
        episode: Episode,
        registry: ModuleRegistry,
        store: ProgressStore | None = None,
        event_bus: EventBus | None = None,
        max_propagation_depth: int = MAX_PROPAGATION_DEPTH,
    ):
        self.episode = episode
        self.registry = registry
        self.store = store
        self._bus = event_bus or get_event_bus()
        self.propagator = EffectPropagator(
            max_depth=max_propagation_depth,
            event_bus=self._bus,
            episode_id=episode.id,
        )

        self.current_scene_id: str = START_SCENE
        self.game_state = GameState()
        self.live_modules: dict[str, GameModule] = {}
        self.last_alert: Alert | None = None

    # ─── Session ─────────────────────────────────────────────

    def start(
        self,
        game_state: GameState | None = None,
        scene_id: str | None = None,
        resume: bool = False,
    ) -> Scene:
        """
        Enter the episode.

        State comes from, in priority order: ``game_state`` if given, the
        saved game when ``resume`` is set and a save exists, or a fresh
        state. Required modules found in the state are restored; the rest
        are initialized from the episode's module config.
        """
        saved = None
        if game_state is None and resume and self.store is not None:
            saved = self.store.get_saved_state(self.episode.id)

        if game_state is not None:
            self.game_state = game_state.model_copy(deep=True)
        elif saved is not None:
            self.game_state = saved.game_state
            scene_id = scene_id or saved.scene_id
            logger.info("Resuming %s at scene %s", self.episode.id, saved.scene_id)
        else:
            self.game_state = GameState()

        scene_id = scene_id or START_SCENE
        if self.episode.get_scene(scene_id) is None:
            raise SceneNotFoundError(self.episode.id, scene_id)

        self._activate_modules()
        self.current_scene_id = scene_id
        self.last_alert = None
        self._bus.emit(EventType.SCENE_CHANGED, episode_id=self.episode.id, scene_id=scene_id)
        return self.current_scene

    def _activate_modules(self) -> None:
        required = self.episode.required_modules or []
        config = self.episode.module_config or {}
        states = self.game_state.module_states

        restore = {m: states[m] for m in required if m in states}
        fresh = [m for m in required if m not in states]
        self.registry.restore_modules(restore)
        states.update(self.registry.initialize_modules(fresh, config))
        self.live_modules = self.registry.live_modules(required)

        # Restored modules round-trip through their own models
        for module_id in restore:
            module = self.live_modules.get(module_id)
            if module is not None:
                states[module_id] = module.get_state()

    @property
    def current_scene(self) -> Scene:
        scene = self.episode.get_scene(self.current_scene_id)
        if scene is None:
            raise SceneNotFoundError(self.episode.id, self.current_scene_id)
        return scene

    def get_available_choices(self) -> list[Choice]:
        """Choices on the current scene whose conditions hold right now."""
        return [
            choice for choice in self.current_scene.choices
            if is_choice_available(choice, self.game_state, self.live_modules)
        ]

    def is_ending(self) -> bool:
        """True when the current scene was authored with no choices at all."""
        return self.current_scene.is_ending

    # ─── Transitions ─────────────────────────────────────────

    def select_choice(self, choice: Choice | int) -> ChoiceOutcome:
        """
        Take a choice from the current scene.

        An int selects from ``get_available_choices()`` by position.
        Raises InvalidChoiceError for choices that are not on offer and
        SceneNotFoundError for a dangling ``nextScene``; in both cases
        nothing has been changed. If a module action raises, flags,
        variables and module states are rolled back before it propagates.
        """
        available = self.get_available_choices()
        if isinstance(choice, int):
            if not 0 <= choice < len(available):
                raise InvalidChoiceError(f"No available choice at position {choice}")
            choice = available[choice]
        elif not any(choice is c or choice == c for c in available):
            raise InvalidChoiceError(f"Choice '{choice.text}' is not available in scene '{self.current_scene_id}'")

        next_scene = self.episode.get_scene(choice.next_scene)
        if next_scene is None:
            raise SceneNotFoundError(self.episode.id, choice.next_scene)

        self._bus.emit(
            EventType.CHOICE_SELECTED,
            episode_id=self.episode.id,
            scene_id=self.current_scene_id,
            text=choice.text,
        )

        with self._rollback_on_error():
            if choice.set_flags:
                self.game_state.flags.update(choice.set_flags)
            if choice.set_variables:
                self.game_state.variables.update(choice.set_variables)
            propagation = self._run_actions(choice.module_actions or [])

        self.current_scene_id = next_scene.id
        self._bus.emit(EventType.SCENE_CHANGED, episode_id=self.episode.id, scene_id=next_scene.id)
        saved = self.save()

        return ChoiceOutcome(
            scene=next_scene,
            propagation=propagation,
            is_ending=next_scene.is_ending,
            saved=saved,
        )

    def dispatch_module_action(self, module_id: str, action: str, payload: Any = None) -> PropagationResult:
        """Run one module action outside a choice (e.g. from a module panel)."""
        with self._rollback_on_error():
            result = self._run_actions([ModuleAction(module=module_id, action=action, payload=payload)])
        self.save()
        return result

    def _run_actions(self, actions: list[ModuleAction]) -> PropagationResult:
        """
        Dispatch actions in order, then propagate everything they emitted.

        Effects are collected across all actions first and propagated as
        one batch afterwards.
        """
        result = PropagationResult()
        states = self.game_state.module_states
        collected: list[ModuleAction] = []

        for action in actions:
            outcome = self.propagator.dispatch(action, states, self.live_modules, result, depth=0)
            if outcome is not None:
                collected.extend(outcome.cross_module_effects)

        if collected:
            result.merge(self.propagator.propagate(collected, states, self.live_modules))

        if result.last_alert is not None:
            self.last_alert = result.last_alert
        return result

    @contextmanager
    def _rollback_on_error(self) -> Iterator[None]:
        """Restore game and module state if the block raises."""
        before = self.game_state.model_copy(deep=True)
        try:
            yield
        except Exception:
            logger.error("Rolling back %s after a failed module action", self.episode.id)
            self.game_state = before
            self.registry.restore_modules({
                module_id: state
                for module_id, state in before.module_states.items()
                if module_id in self.live_modules
            })
            raise

    # ─── Persistence ─────────────────────────────────────────

    def save(self) -> bool:
        """Write the current scene and state. Returns False if the write failed."""
        if self.store is None:
            return False
        store = self.store
        snapshot = self.game_state.model_copy(deep=True)
        scene_id = self.current_scene_id
        return persist_quietly(
            self._bus,
            self.episode.id,
            "game state",
            lambda: store.save_game_state(self.episode.id, scene_id, snapshot),
        )
