"""
Cross-module effect propagation.

A module action can emit effects aimed at other modules (a hull breach
sends crew to emergency stations, which logs to the mission). The
propagator runs those effects depth-first: a chain reaction resolves
completely before the next sibling effect runs, and every state write is
visible to whatever runs after it.

Design invariants:
- Effects run in the order given
- Unknown module ids are skipped silently
- A result without state leaves the previous state in place
- MAX_PROPAGATION_DEPTH bounds nesting; an effect identical to one of
  its own ancestors is treated as a feedback loop
- A guard trip aborts the rest of that root effect only; writes that
  already happened are kept
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..modules.base import GameModule
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import Alert, AlertType, ModuleAction, ModuleActionResult

logger = logging.getLogger(__name__)


# ─── Configuration ───────────────────────────────────────────

MAX_PROPAGATION_DEPTH = 8


# ─── Data Structures ────────────────────────────────────────

class PropagationLimitError(Exception):
    """Raised inside the propagator when an effect chain runs away."""

    def __init__(self, effect: ModuleAction, depth: int, reason: str):
        self.effect = effect
        self.depth = depth
        self.reason = reason
        super().__init__(f"{effect.module}.{effect.action} at depth {depth}: {reason}")


@dataclass
class ModuleInteraction:
    """One dispatch, recorded for the interaction log."""
    module: str
    action: str
    payload: Any = None
    depth: int = 0
    handled: bool = False
    alert: Alert | None = None


@dataclass
class PropagationResult:
    """
    Outcome of running a batch of effects.

    ``alerts`` keeps every alert in the order raised; the last one is the
    one to display. ``aborted`` lists root effects cut short by the guard.
    """
    updated_module_states: dict[str, dict] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)
    interaction_log: list[ModuleInteraction] = field(default_factory=list)
    aborted: list[ModuleAction] = field(default_factory=list)

    @property
    def last_alert(self) -> Alert | None:
        return self.alerts[-1] if self.alerts else None

    def merge(self, other: "PropagationResult") -> None:
        self.updated_module_states.update(other.updated_module_states)
        self.alerts.extend(other.alerts)
        self.interaction_log.extend(other.interaction_log)
        self.aborted.extend(other.aborted)


def effect_signature(effect: ModuleAction) -> str:
    """Stable identity of an effect: target, action and payload."""
    payload = json.dumps(effect.payload, sort_keys=True, default=str)
    return f"{effect.module}:{effect.action}:{payload}"


# ─── Propagator ─────────────────────────────────────────────

class EffectPropagator:
    """
    Runs module actions and the effects they emit.

    Depth and ancestry are passed down explicitly on every call; the
    propagator holds no per-run state, so one instance can serve a whole
    session.
    """

    def __init__(
        self,
        max_depth: int = MAX_PROPAGATION_DEPTH,
        event_bus: EventBus | None = None,
        episode_id: str = "",
    ):
        self.max_depth = max_depth
        self.episode_id = episode_id
        self._bus = event_bus or get_event_bus()

    def dispatch(
        self,
        action: ModuleAction,
        module_states: dict[str, dict],
        live_modules: Mapping[str, GameModule],
        result: PropagationResult,
        depth: int = 0,
    ) -> ModuleActionResult | None:
        """
        Run a single action and record its state and alert.

        Nested effects are returned on the result, not followed.
        """
        module = live_modules.get(action.module)
        if module is None:
            logger.debug("Skipping %s.%s: module not active", action.module, action.action)
            return None

        outcome = module.handle_action(action.action, action.payload)
        result.interaction_log.append(ModuleInteraction(
            module=action.module,
            action=action.action,
            payload=action.payload,
            depth=depth,
            handled=outcome is not None,
            alert=outcome.alert if outcome else None,
        ))
        self._bus.emit(
            EventType.MODULE_ACTION,
            episode_id=self.episode_id,
            module=action.module,
            action=action.action,
            handled=outcome is not None,
            depth=depth,
        )
        if outcome is None:
            return None

        if outcome.state is not None:
            module_states[action.module] = outcome.state
            result.updated_module_states[action.module] = outcome.state
        if outcome.alert is not None:
            result.alerts.append(outcome.alert)
            self._bus.emit(
                EventType.MODULE_ALERT,
                episode_id=self.episode_id,
                module=action.module,
                type=outcome.alert.type.value,
                message=outcome.alert.message,
            )
        return outcome

    def propagate(
        self,
        effects: Iterable[ModuleAction],
        module_states: dict[str, dict],
        live_modules: Mapping[str, GameModule],
        depth: int = 1,
    ) -> PropagationResult:
        """
        Run each effect and everything it triggers, in order.

        ``module_states`` is updated in place so later effects see earlier
        writes. Each effect in ``effects`` is a root for the guard: a trip
        abandons the rest of that root's chain and moves on to the next.
        """
        result = PropagationResult()
        for effect in effects:
            try:
                self._run(effect, module_states, live_modules, result, depth, ())
            except PropagationLimitError as e:
                self._abort(effect, e, result)
        return result

    def _run(
        self,
        effect: ModuleAction,
        module_states: dict[str, dict],
        live_modules: Mapping[str, GameModule],
        result: PropagationResult,
        depth: int,
        ancestors: tuple[str, ...],
    ) -> None:
        if depth > self.max_depth:
            raise PropagationLimitError(effect, depth, f"exceeded maximum depth {self.max_depth}")

        signature = effect_signature(effect)
        if signature in ancestors:
            raise PropagationLimitError(effect, depth, "effect re-triggered itself")

        outcome = self.dispatch(effect, module_states, live_modules, result, depth)
        if outcome is None:
            return

        # Children resolve fully before the next sibling
        lineage = ancestors + (signature,)
        for child in outcome.cross_module_effects:
            self._run(child, module_states, live_modules, result, depth + 1, lineage)

    def _abort(self, root: ModuleAction, error: PropagationLimitError, result: PropagationResult) -> None:
        logger.warning("Propagation aborted for %s.%s: %s", root.module, root.action, error)
        result.aborted.append(root)
        result.alerts.append(Alert(
            type=AlertType.DANGER,
            message=f"Chain reaction halted: {error.effect.module}.{error.effect.action} ({error.reason})",
        ))
        self._bus.emit(
            EventType.PROPAGATION_ABORTED,
            episode_id=self.episode_id,
            module=root.module,
            action=root.action,
            depth=error.depth,
            reason=error.reason,
        )
