"""Mission objectives, progress and the mission log."""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Callable

from pydantic import Field, ValidationError

from ..state.schema import WireModel, now_ms
from .base import (
    ActionContext,
    as_params,
    dump_state,
    merge_config,
    number,
    run_action,
    run_check,
)

logger = logging.getLogger(__name__)


class MissionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Objective(WireModel):
    id: str
    description: str = ""
    completed: bool = False
    optional: bool = False
    hidden: bool = False


class Mission(WireModel):
    id: str
    title: str = ""
    description: str = ""
    status: MissionStatus = MissionStatus.ACTIVE
    objectives: list[Objective] = Field(default_factory=list)
    progress: int = 0

    def objective(self, objective_id: str) -> Objective | None:
        return next((o for o in self.objectives if o.id == objective_id), None)

    def recalculate(self) -> None:
        required = [o for o in self.objectives if not o.optional]
        if not required:
            self.progress = 100
        else:
            done = sum(1 for o in required if o.completed)
            self.progress = math.floor(done / len(required) * 100)


class LogEntry(WireModel):
    timestamp: int = Field(default_factory=now_ms)
    text: str


class MissionState(WireModel):
    current_mission: Mission | None = None
    secondary_missions: list[Mission] = Field(default_factory=list)
    mission_log: list[LogEntry] = Field(default_factory=list)

    def missions(self) -> list[tuple[Mission, bool]]:
        """Every mission, primary first, tagged with whether it is secondary."""
        found = [(self.current_mission, False)] if self.current_mission else []
        return found + [(m, True) for m in self.secondary_missions]

    def find_mission(self, mission_id: str | None) -> Mission | None:
        return next((m for m, _ in self.missions() if m.id == mission_id), None)

    def log(self, text: str) -> None:
        self.mission_log.append(LogEntry(text=text))


# ─── Conditions ─────────────────────────────────────────────

def _mission_active(state: MissionState, params: dict) -> bool:
    mission = state.find_mission(params.get("missionId"))
    return mission is not None and mission.status == MissionStatus.ACTIVE


def _mission_completed(state: MissionState, params: dict) -> bool:
    mission = state.find_mission(params.get("missionId"))
    return mission is not None and mission.status == MissionStatus.COMPLETED


def _objective_completed(state: MissionState, params: dict) -> bool:
    for mission, _ in state.missions():
        objective = mission.objective(params.get("objectiveId"))
        if objective is not None:
            return objective.completed
    return False


def _mission_progress_above(state: MissionState, params: dict) -> bool:
    mission = state.find_mission(params.get("missionId"))
    threshold = number(params.get("threshold"), None)
    return mission is not None and threshold is not None and mission.progress >= threshold


CONDITIONS = {
    "MISSION_ACTIVE": _mission_active,
    "MISSION_COMPLETED": _mission_completed,
    "OBJECTIVE_COMPLETED": _objective_completed,
    "MISSION_PROGRESS_ABOVE": _mission_progress_above,
}


# ─── Module ─────────────────────────────────────────────────

class MissionModule:
    """Primary and secondary missions plus a timestamped log."""

    id = "mission"
    name = "Mission System"
    description = "Manages mission objectives, progress, and logs"

    def __init__(self):
        self._state: MissionState | None = None
        self._actions: dict[str, Callable[[MissionState, Any, ActionContext], None]] = {
            "START_MISSION": self._start_mission,
            "START_SECONDARY_MISSION": self._start_secondary_mission,
            "COMPLETE_OBJECTIVE": self._complete_objective,
            "FAIL_MISSION": self._fail_mission,
            "REVEAL_OBJECTIVE": self._reveal_objective,
            "ADD_LOG_ENTRY": self._add_log_entry,
        }

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        self._state = merge_config(MissionState, config)
        return dump_state(self._state)

    def get_state(self) -> dict[str, Any] | None:
        return dump_state(self._state)

    def set_state(self, state: dict[str, Any]) -> None:
        self._state = MissionState.model_validate(state)

    def handle_action(self, action: str, payload: Any = None):
        handler = self._actions.get(action)
        if self._state is None or handler is None:
            return None
        self._state, result = run_action(self._state, handler, payload)
        return result

    def check_condition(self, condition: str, params: Any = None) -> bool:
        return run_check(self._state, CONDITIONS, condition, params)

    # ─── Handlers ───────────────────────────────────────────

    @staticmethod
    def _read_mission(payload: Any, ctx: ActionContext) -> Mission | None:
        data = as_params(payload).get("mission")
        if not isinstance(data, dict):
            return None
        try:
            mission = Mission.model_validate({**data, "status": MissionStatus.ACTIVE, "progress": 0})
        except ValidationError as e:
            logger.debug("Rejected mission definition: %s", e)
            ctx.warning("Mission briefing could not be read.")
            return None
        return mission

    def _start_mission(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        mission = self._read_mission(payload, ctx)
        if mission is None:
            return
        state.current_mission = mission
        state.log(f"Mission started: {mission.title}")
        ctx.info(f"New mission: {mission.title}")

    def _start_secondary_mission(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        mission = self._read_mission(payload, ctx)
        if mission is None:
            return
        state.secondary_missions.append(mission)
        state.log(f"Secondary mission started: {mission.title}")
        ctx.info(f"New secondary mission: {mission.title}")

    def _complete_objective(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        objective_id = as_params(payload).get("objectiveId")
        for mission, secondary in state.missions():
            objective = mission.objective(objective_id)
            if objective is None:
                continue

            objective.completed = True
            mission.recalculate()
            prefix = "Secondary mission" if secondary else "Mission"
            if all(o.optional or o.completed for o in mission.objectives):
                mission.status = MissionStatus.COMPLETED
                state.log(f"{prefix} completed: {mission.title}")
                ctx.success(f"{prefix} completed: {mission.title}")
            else:
                ctx.success(f"Objective completed: {objective.description}")
            state.log(f"Objective completed: {objective.description}")
            return

    def _fail_mission(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        mission_id = as_params(payload).get("missionId")
        for mission, secondary in state.missions():
            if mission.id != mission_id:
                continue
            mission.status = MissionStatus.FAILED
            prefix = "Secondary mission" if secondary else "Mission"
            state.log(f"{prefix} failed: {mission.title}")
            ctx.danger(f"{prefix} failed: {mission.title}")
            return

    def _reveal_objective(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        objective_id = as_params(payload).get("objectiveId")
        for mission, secondary in state.missions():
            objective = mission.objective(objective_id)
            if objective is None:
                continue
            objective.hidden = False
            label = "New secondary objective" if secondary else "New objective"
            state.log(f"{label}: {objective.description}")
            ctx.info(f"{label}: {objective.description}")
            return

    def _add_log_entry(self, state: MissionState, payload: Any, ctx: ActionContext) -> None:
        text = as_params(payload).get("text")
        if text:
            state.log(str(text))
