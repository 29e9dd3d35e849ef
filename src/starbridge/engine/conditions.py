"""
Choice gating.

A condition is an AND across every clause that is present: flags,
variables and module conditions. Absent clauses never exclude anything.
Comparisons are strict: no coercion between booleans, numbers and
strings, and a flag that was never set matches neither true nor false.

The flag and variable matchers are shared with the campaign sequencer,
which gates branches on the same rules.
"""

from __future__ import annotations

import logging
import operator
from typing import Any, Mapping

from ..modules.base import GameModule
from ..state.schema import Choice, Condition, ConditionRange, GameState

logger = logging.getLogger(__name__)

_MISSING = object()

RANGE_COMPARATORS = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
    "eq": operator.eq,
    "neq": operator.ne,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(current: Any, expected: Any) -> bool:
    """Equality without type coercion; ints and floats are both numbers."""
    if isinstance(expected, bool) or isinstance(current, bool):
        return isinstance(current, bool) and isinstance(expected, bool) and current == expected
    if _is_number(expected):
        return _is_number(current) and current == expected
    return type(current) is type(expected) and current == expected


def matches_range(current: Any, constraint: ConditionRange) -> bool:
    """Every comparator present must hold; the value must be a real number."""
    if not _is_number(current):
        return False
    for name, compare in RANGE_COMPARATORS.items():
        bound = getattr(constraint, name)
        if bound is not None and not compare(current, bound):
            return False
    return True


def matches_flags(expected: Mapping[str, bool] | None, flags: Mapping[str, bool]) -> bool:
    if not expected:
        return True
    for flag, value in expected.items():
        current = flags.get(flag, _MISSING)
        if current is _MISSING or not strict_equals(current, value):
            return False
    return True


def matches_variables(expected: Mapping[str, Any] | None, variables: Mapping[str, Any]) -> bool:
    if not expected:
        return True
    for name, constraint in expected.items():
        current = variables.get(name, _MISSING)
        if current is _MISSING:
            return False
        if isinstance(constraint, ConditionRange):
            if not matches_range(current, constraint):
                return False
        elif not strict_equals(current, constraint):
            return False
    return True


def matches_modules(condition: Condition, live_modules: Mapping[str, GameModule]) -> bool:
    """Module conditions fail closed when the module is not active."""
    for check in condition.module_conditions or []:
        module = live_modules.get(check.module)
        if module is None:
            logger.debug("Condition %s on inactive module %s", check.condition, check.module)
            return False
        if not module.check_condition(check.condition, check.params):
            return False
    return True


def is_condition_met(
    condition: Condition | None,
    game_state: GameState,
    live_modules: Mapping[str, GameModule],
) -> bool:
    if condition is None:
        return True
    return (
        matches_flags(condition.flags, game_state.flags)
        and matches_variables(condition.variables, game_state.variables)
        and matches_modules(condition, live_modules)
    )


def is_choice_available(
    choice: Choice,
    game_state: GameState,
    live_modules: Mapping[str, GameModule],
) -> bool:
    return is_condition_met(choice.condition, game_state, live_modules)
