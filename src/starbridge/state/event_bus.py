"""
Engine notifications.

The walker, propagator and campaign session publish what happened here;
the CLI prints failed saves and aborted effect chains, and tests inspect
the history. Publishers never know who is listening.

Usage:
    bus = get_event_bus()
    bus.on(EventType.MODULE_ALERT, lambda event: print(event.data["message"]))
    bus.emit(EventType.MODULE_ALERT, episode_id="first-contact", type="danger", message="Hull breach")
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Everything the engine announces."""

    SCENE_CHANGED = "scene.changed"
    CHOICE_SELECTED = "choice.selected"

    MODULE_ACTION = "module.action"
    MODULE_ALERT = "module.alert"
    PROPAGATION_ABORTED = "propagation.aborted"

    GAME_SAVED = "game.saved"
    PERSISTENCE_FAILED = "persistence.failed"

    EPISODE_COMPLETED = "episode.completed"
    CAMPAIGN_ADVANCED = "campaign.advanced"
    CAMPAIGN_COMPLETED = "campaign.completed"


@dataclass
class EngineEvent:
    """One published event. ``episode_id`` is empty for engine-wide events."""

    type: EventType
    data: dict = field(default_factory=dict)
    episode_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe.

    Handlers run inside emit(), in subscription order. A handler that
    raises is logged and the rest still run. The last ``history_limit``
    events are kept for inspection.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self._history: deque[EngineEvent] = deque(maxlen=history_limit)

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe. Subscribing the same handler twice is a no-op."""
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: EventType, episode_id: str = "", **data) -> EngineEvent:
        """Publish an event and return it."""
        event = EngineEvent(type=event_type, data=data, episode_id=episode_id)
        self._history.append(event)

        # Copy: a handler may unsubscribe itself
        for handler in tuple(self._listeners.get(event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed on %s", handler, event_type.value)
        return event

    def clear(self) -> None:
        """Drop listeners and history."""
        self._listeners.clear()
        self._history.clear()

    def get_history(
        self,
        event_type: EventType | None = None,
        episode_id: str | None = None,
    ) -> list[EngineEvent]:
        """Recent events, oldest first, optionally filtered by type and episode."""
        return [
            event for event in self._history
            if (event_type is None or event.type == event_type)
            and (episode_id is None or event.episode_id == episode_id)
        ]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, ()))


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide bus, used by sessions that are not handed one."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Forget the process-wide bus (tests)."""
    global _event_bus
    _event_bus = None
