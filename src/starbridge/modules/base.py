"""
The module contract and the helpers the five modules share.

A module is a small state machine with an opaque state blob. Everything
outside a module (registry, propagator, condition evaluator) only ever
sees plain dicts; the module validates them into its own typed record.

There is no base class: modules satisfy ``GameModule``
structurally and reuse the free functions below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

from ..state.schema import Alert, AlertType, ModuleAction, ModuleActionResult


@runtime_checkable
class GameModule(Protocol):
    """Uniform contract shared by ship, crew, inventory, mission and registry."""

    id: str
    name: str
    description: str

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        """Build defaults, shallow-merge config over them, store and return."""
        ...

    def get_state(self) -> dict[str, Any] | None:
        """Current state, or None before initialize()."""
        ...

    def set_state(self, state: dict[str, Any]) -> None:
        """Replace the live state wholesale (restore from persistence)."""
        ...

    def handle_action(self, action: str, payload: Any = None) -> ModuleActionResult | None:
        """Run one named action. None means the action is not handled."""
        ...

    def check_condition(self, condition: str, params: Any = None) -> bool:
        """Pure predicate over current state. Unknown names are False."""
        ...


# ─── Numeric helpers ────────────────────────────────────────

PERCENT_MIN = 0
PERCENT_MAX = 100


def clamp(value: float, low: float = PERCENT_MIN, high: float = PERCENT_MAX) -> float:
    """Clamp a percentage-like value into [low, high]."""
    return min(high, max(low, value))


def floor_count(value: int) -> int:
    """Resource counts never go below zero."""
    return max(0, value)


def number(value: Any, default: float = 0) -> float:
    """Read a numeric payload field, ignoring bools and junk."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def as_params(payload: Any) -> dict[str, Any]:
    """Payloads are usually dicts; anything else reads as empty params."""
    return payload if isinstance(payload, dict) else {}


def key(value: Any) -> str | None:
    """Read an id payload field. Only strings name things."""
    return value if isinstance(value, str) else None


# ─── Dispatch plumbing ──────────────────────────────────────

@dataclass
class ActionContext:
    """Collects the alert and outgoing effects while a handler runs."""
    alert: Alert | None = None
    effects: list[ModuleAction] = field(default_factory=list)

    def notify(self, alert_type: AlertType, message: str) -> None:
        # One alert per result; the last one set wins.
        self.alert = Alert(type=alert_type, message=message)

    def info(self, message: str) -> None:
        self.notify(AlertType.INFO, message)

    def success(self, message: str) -> None:
        self.notify(AlertType.SUCCESS, message)

    def warning(self, message: str) -> None:
        self.notify(AlertType.WARNING, message)

    def danger(self, message: str) -> None:
        self.notify(AlertType.DANGER, message)

    def emit(self, module: str, action: str, payload: Any = None) -> None:
        self.effects.append(ModuleAction(module=module, action=action, payload=payload))


StateT = TypeVar("StateT", bound=BaseModel)
ActionHandler = Callable[[Any, Any, ActionContext], None]
ConditionCheck = Callable[[Any, dict[str, Any]], bool]


def merge_config(model: type[StateT], config: dict | None) -> StateT:
    """
    Shallow-merge caller config over the model defaults.

    Top-level keys in config replace the default value for that key
    wholesale; nested models fill missing fields from their own defaults.
    """
    merged = model().model_dump(by_alias=True)
    merged.update(config or {})
    return model.model_validate(merged)


def run_action(state: StateT, handler: ActionHandler, payload: Any) -> tuple[StateT, ModuleActionResult]:
    """
    Run a handler against a deep copy of state.

    Returns the new state and a result carrying a freshly dumped state
    dict, so nothing the caller holds aliases the module's live record.
    """
    working = state.model_copy(deep=True)
    ctx = ActionContext()
    handler(working, payload, ctx)
    result = ModuleActionResult(
        state=working.model_dump(by_alias=True, mode="json"),
        alert=ctx.alert,
        cross_module_effects=ctx.effects,
    )
    return working, result


def run_check(state: BaseModel | None, checks: dict[str, ConditionCheck], condition: str, params: Any) -> bool:
    """Look up and run a named condition; unknown names fail closed."""
    check = checks.get(condition)
    if state is None or check is None:
        return False
    return bool(check(state, as_params(params)))


def dump_state(state: BaseModel | None) -> dict[str, Any] | None:
    if state is None:
        return None
    return state.model_dump(by_alias=True, mode="json")
