"""
Crew management module.

Senior officers and regular crew each carry skills, morale, fatigue,
location, status and a task list. Departments carry aggregate
efficiency/staffing/morale. Emergencies pull the right department's
people to a location until resolved.

Crew status moves between active, injured, critical, away and deceased;
only the actions here change it.
"""

from __future__ import annotations

import logging
import math
import random
from enum import Enum
from typing import Any, Callable, Iterator
from uuid import uuid4

from pydantic import Field

from ..state.schema import WireModel
from .base import (
    ActionContext,
    as_params,
    clamp,
    dump_state,
    key,
    merge_config,
    number,
    run_action,
    run_check,
)

logger = logging.getLogger(__name__)


# ─── State ──────────────────────────────────────────────────

class CrewStatus(str, Enum):
    ACTIVE = "active"
    INJURED = "injured"
    CRITICAL = "critical"
    DECEASED = "deceased"
    AWAY = "away"


class Shift(str, Enum):
    ALPHA = "alpha"
    BETA = "beta"
    GAMMA = "gamma"


class Task(WireModel):
    id: str = Field(default_factory=lambda: f"task-{uuid4().hex[:8]}")
    name: str
    priority: str = "medium"
    progress: float = 0
    time_remaining: int = 60  # minutes


class LogEntry(WireModel):
    stardate: str
    entry: str


class CrewMember(WireModel):
    id: str
    name: str
    rank: str
    department: str
    species: str
    skills: dict[str, float] = Field(default_factory=dict)
    status: CrewStatus = CrewStatus.ACTIVE
    morale: float = 80
    fatigue: float = 0
    location: str = "bridge"
    tasks: list[Task] = Field(default_factory=list)
    specialties: list[str] | None = None
    biography: str | None = None
    personal_log: list[LogEntry] | None = None


class DepartmentStatus(WireModel):
    efficiency: float = 100
    staffing: float = 100
    morale: float = 100


class Shifts(WireModel):
    current: Shift = Shift.ALPHA
    schedule: dict[str, Shift] = Field(default_factory=dict)


class Emergency(WireModel):
    id: str
    type: str
    location: str
    severity: str = "major"
    resolved: bool = False
    assigned_crew: list[str] = Field(default_factory=list)


def default_officers() -> list[CrewMember]:
    return [
        CrewMember(
            id="picard", name="Jean-Luc Picard", rank="Captain", department="command", species="Human",
            skills={"leadership": 95, "diplomacy": 90, "tactics": 85, "archaeology": 80,
                    "administration": 88, "literature": 85},
            morale=90, fatigue=10, location="bridge",
            specialties=["Diplomacy", "Ancient Civilizations", "Shakespeare"],
            biography="Born in La Barre, France. Former captain of the USS Stargazer.",
        ),
        CrewMember(
            id="riker", name="William Riker", rank="Commander", department="command", species="Human",
            skills={"leadership": 85, "tactics": 80, "piloting": 75, "diplomacy": 70,
                    "poker": 95, "trombone": 80},
            morale=85, fatigue=15, location="bridge",
            specialties=["Tactical Operations", "Away Team Command", "Jazz Music"],
            biography="Born in Alaska. Served on the USS Potemkin before becoming First Officer.",
        ),
        CrewMember(
            id="data", name="Data", rank="Lieutenant Commander", department="operations", species="Android",
            skills={"computing": 100, "science": 95, "engineering": 90, "tactics": 85,
                    "strength": 100, "violin": 90, "painting": 85},
            morale=100, fatigue=0, location="bridge",
            specialties=["Cybernetics", "Multiple Scientific Disciplines", "Creative Arts"],
            biography="Created by Dr. Noonian Soong. Possesses a positronic brain.",
        ),
        CrewMember(
            id="laforge", name="Geordi La Forge", rank="Lieutenant Commander", department="engineering",
            species="Human",
            skills={"engineering": 95, "warpTheory": 90, "problemSolving": 85, "sensors": 90,
                    "computerSystems": 88, "holodeck": 75},
            morale=85, fatigue=20, location="engineering",
            specialties=["Warp Propulsion Systems", "VISOR Technology", "Starship Design"],
            biography="Born blind, uses a VISOR to see. Former helmsman, now Chief Engineer.",
        ),
        CrewMember(
            id="worf", name="Worf", rank="Lieutenant", department="security", species="Klingon",
            skills={"combat": 95, "tactics": 90, "security": 95, "strengthAndEndurance": 90,
                    "klingonCulture": 100, "martialArts": 95},
            morale=80, fatigue=10, location="bridge",
            specialties=["Hand-to-hand Combat", "Klingon Culture", "Security Protocols"],
            biography="Orphaned Klingon raised by humans. Son of Mogh.",
        ),
        CrewMember(
            id="crusher", name="Beverly Crusher", rank="Commander", department="medical", species="Human",
            skills={"medicine": 95, "biology": 90, "research": 85, "leadership": 80,
                    "dance": 85, "emergency": 92},
            morale=85, fatigue=25, location="sickbay",
            specialties=["Surgery", "Virology", "Dance"],
            biography="Chief Medical Officer. Briefly left to head Starfleet Medical.",
        ),
        CrewMember(
            id="troi", name="Deanna Troi", rank="Commander", department="medical", species="Betazoid/Human",
            skills={"counseling": 95, "empathy": 95, "diplomacy": 85, "psychology": 90,
                    "culturalStudies": 80, "piloting": 40},
            morale=90, fatigue=15, location="bridge",
            specialties=["Empathic Abilities", "Psychology", "Diplomatic Relations"],
            biography="Half-Betazoid, half-Human ship's counselor.",
        ),
    ]


def default_departments() -> dict[str, DepartmentStatus]:
    return {
        "command": DepartmentStatus(efficiency=90, staffing=100, morale=85),
        "engineering": DepartmentStatus(efficiency=95, staffing=90, morale=80),
        "science": DepartmentStatus(efficiency=95, staffing=85, morale=90),
        "medical": DepartmentStatus(efficiency=90, staffing=85, morale=85),
        "security": DepartmentStatus(efficiency=95, staffing=90, morale=80),
        "operations": DepartmentStatus(efficiency=100, staffing=95, morale=90),
    }


class CrewState(WireModel):
    captain: str = "picard"
    officers: list[CrewMember] = Field(default_factory=default_officers)
    crew: list[CrewMember] = Field(default_factory=list)
    away_team: list[str] = Field(default_factory=list)
    shifts: Shifts = Field(default_factory=lambda: Shifts(
        schedule={officer.id: Shift.ALPHA for officer in default_officers()},
    ))
    department_status: dict[str, DepartmentStatus] = Field(default_factory=default_departments)
    emergencies: list[Emergency] = Field(default_factory=list)

    def everyone(self) -> Iterator[CrewMember]:
        yield from self.officers
        yield from self.crew

    def find(self, crew_id: str | None) -> CrewMember | None:
        return next((c for c in self.everyone() if c.id == crew_id), None)

    def in_department(self, department: str, status: CrewStatus | None = None) -> list[CrewMember]:
        return [
            c for c in self.everyone()
            if c.department == department and (status is None or c.status == status)
        ]


# Where each department reports for battle stations / after an emergency
BATTLE_STATIONS = {
    "command": "bridge",
    "engineering": "engineering",
    "medical": "sickbay",
}
HOME_STATIONS = {
    "command": "bridge",
    "engineering": "engineering",
    "medical": "sickbay",
    "security": "security",
}
EMERGENCY_DEPARTMENTS = {
    "hull breach": "engineering",
    "structural": "engineering",
    "medical": "medical",
    "security": "security",
    "intruder": "security",
}
MAX_EMERGENCY_RESPONDERS = 3


def _names(members: list[CrewMember]) -> str:
    return ", ".join(m.name for m in members)


def _adjust_morale(member: CrewMember, delta: float) -> None:
    member.morale = clamp(member.morale + delta)


def _adjust_fatigue(member: CrewMember, delta: float) -> None:
    member.fatigue = clamp(member.fatigue + delta)


# ─── Conditions ─────────────────────────────────────────────

def _crew_available(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    return member is not None and member.status == CrewStatus.ACTIVE


def _crew_injured(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    return member is not None and member.status in (CrewStatus.INJURED, CrewStatus.CRITICAL)


def _on_away_mission(state: CrewState, params: dict) -> bool:
    return params.get("crewId") in state.away_team


def _has_skill(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    if member is None or key(params.get("skill")) not in member.skills:
        return False
    return member.skills[params["skill"]] >= number(params.get("level"), 0)


def _morale_above(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    level = number(params.get("level"), None)
    return member is not None and level is not None and member.morale >= level


def _department_efficiency_above(state: CrewState, params: dict) -> bool:
    department = state.department_status.get(key(params.get("department")))
    level = number(params.get("level"), None)
    return department is not None and level is not None and department.efficiency >= level


def _in_location(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    return member is not None and member.location == params.get("location")


def _department_available(state: CrewState, params: dict) -> bool:
    if not params.get("department"):
        return False
    active = state.in_department(params["department"], CrewStatus.ACTIVE)
    return len(active) >= number(params.get("count"), 1)


def _has_emergency(state: CrewState, params: dict) -> bool:
    kind = params.get("type")
    return any(not e.resolved and (not kind or e.type == kind) for e in state.emergencies)


def _fatigue_below(state: CrewState, params: dict) -> bool:
    member = state.find(params.get("crewId"))
    level = number(params.get("level"), None)
    return member is not None and level is not None and member.fatigue < level


CONDITIONS = {
    "CREW_AVAILABLE": _crew_available,
    "CREW_INJURED": _crew_injured,
    "ON_AWAY_MISSION": _on_away_mission,
    "HAS_SKILL": _has_skill,
    "MORALE_ABOVE": _morale_above,
    "DEPARTMENT_EFFICIENCY_ABOVE": _department_efficiency_above,
    "IN_LOCATION": _in_location,
    "DEPARTMENT_AVAILABLE": _department_available,
    "HAS_EMERGENCY": _has_emergency,
    "FATIGUE_BELOW": _fatigue_below,
}


# ─── Module ─────────────────────────────────────────────────

class CrewModule:
    """Crew roster, departments, away teams and emergencies."""

    id = "crew"
    name = "Crew Management"
    description = "Manages crew members, skills, status, and away teams"

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._state: CrewState | None = None
        self._actions: dict[str, Callable[[CrewState, Any, ActionContext], None]] = {
            "FORM_AWAY_TEAM": self._form_away_team,
            "RETURN_AWAY_TEAM": self._return_away_team,
            "INJURE_CREW": self._injure_crew,
            "HEAL_CREW": self._heal_crew,
            "BOOST_MORALE": self._boost_morale,
            "RELOCATE_CREW": self._relocate_crew,
            "ASSIGN_TASK": self._assign_task,
            "COMPLETE_TASK": self._complete_task,
            "CHANGE_SHIFT": self._change_shift,
            "BATTLE_STATIONS": self._battle_stations,
            "EMERGENCY_STATIONS": self._emergency_stations,
            "RESOLVE_EMERGENCY": self._resolve_emergency,
            "REST_CREW": self._rest_crew,
        }

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        self._state = merge_config(CrewState, config)
        return dump_state(self._state)

    def get_state(self) -> dict[str, Any] | None:
        return dump_state(self._state)

    def set_state(self, state: dict[str, Any]) -> None:
        self._state = CrewState.model_validate(state)

    def handle_action(self, action: str, payload: Any = None):
        handler = self._actions.get(action)
        if self._state is None or handler is None:
            return None
        self._state, result = run_action(self._state, handler, payload)
        return result

    def check_condition(self, condition: str, params: Any = None) -> bool:
        return run_check(self._state, CONDITIONS, condition, params)

    # ─── Away teams ─────────────────────────────────────────

    def _form_away_team(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        crew_ids = as_params(payload).get("crewIds")
        if not isinstance(crew_ids, list):
            return

        members = [c for c in state.everyone() if c.id in crew_ids]
        for member in members:
            member.status = CrewStatus.AWAY
            member.location = "away mission"
        state.away_team = [c.id for c in members]

        names = _names(members)
        ctx.info(f"Away team formed: {names}")
        ctx.emit("mission", "ADD_LOG_ENTRY", {"text": f"Away team deployed: {names}"})

    def _return_away_team(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        location = as_params(payload).get("location") or "bridge"
        returning = [c for c in state.everyone() if c.id in state.away_team]

        for member in returning:
            # Anyone hurt while away stays hurt
            if member.status == CrewStatus.AWAY:
                member.status = CrewStatus.ACTIVE
            member.location = location
            _adjust_fatigue(member, 15)

        injured = [m for m in returning if m.status in (CrewStatus.INJURED, CrewStatus.CRITICAL)]
        if injured:
            text = f"Away team returned with injuries: {_names(injured)}"
            ctx.warning(text)
        else:
            text = "Away team returned safely"
            ctx.success(text)
        ctx.emit("mission", "ADD_LOG_ENTRY", {"text": text})
        state.away_team = []

    # ─── Health and morale ──────────────────────────────────

    def _injure_crew(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        if not params:
            return

        severity = params.get("severity") or "minor"
        new_status = CrewStatus.CRITICAL if severity == "critical" else CrewStatus.INJURED
        injured: list[CrewMember] = []

        if params.get("crewId"):
            member = state.find(params["crewId"])
            if member is not None:
                injured.append(member)
        elif params.get("department"):
            limit = params.get("count")
            chance = number(params.get("percentage"), 0.3)
            for member in state.in_department(params["department"], CrewStatus.ACTIVE):
                if limit:
                    hit = len(injured) < number(limit, 0)
                else:
                    hit = self._rng.random() < chance
                if hit:
                    injured.append(member)

        for member in injured:
            member.status = new_status
            _adjust_morale(member, -20)

        department = state.department_status.get(key(params.get("department")))
        if department is not None:
            department.efficiency = clamp(max(50, department.efficiency - 15))

        if not injured:
            return
        if severity == "critical":
            state.emergencies.append(Emergency(
                id=f"medical-{uuid4().hex[:8]}",
                type="medical",
                location=params.get("location") or "unknown",
                severity="critical",
            ))
            text = f"Medical emergency: {len(injured)} crew with critical injuries"
            ctx.emit("mission", "ADD_LOG_ENTRY", {"text": text})
            ctx.danger(text)
        else:
            ctx.warning(f"{len(injured)} crew member(s) injured")

    def _heal_crew(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)

        if params.get("crewId"):
            member = state.find(params["crewId"])
            if member is None or member.status == CrewStatus.DECEASED:
                return
            member.status = CrewStatus.ACTIVE
            _adjust_morale(member, 10)
            ctx.success(f"{member.name} has been treated and returned to active duty")
        elif params.get("department"):
            department = params["department"]
            treated = [
                c for c in state.in_department(department)
                if c.status in (CrewStatus.INJURED, CrewStatus.CRITICAL)
            ]
            for member in treated:
                member.status = CrewStatus.ACTIVE
                _adjust_morale(member, 10)
            if treated:
                ctx.success(f"{len(treated)} crew members from {department} department have been treated")
                status = state.department_status.get(department)
                if status is not None:
                    status.efficiency = clamp(status.efficiency + 10)

    def _boost_morale(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        amount = number(params.get("amount"), 0) or 10
        reason = f" ({params['reason']})" if params.get("reason") else ""

        if params.get("crewId"):
            affected = [c for c in state.everyone() if c.id == params["crewId"]]
            departments = []
        elif params.get("department"):
            affected = state.in_department(params["department"])
            departments = [params["department"]]
        else:
            affected = list(state.everyone())
            departments = list(state.department_status)

        for member in affected:
            _adjust_morale(member, amount)
        for name in departments:
            status = state.department_status.get(name)
            if status is not None:
                status.morale = clamp(status.morale + math.floor(amount / 2))

        if affected:
            direction = "increased" if amount >= 0 else "decreased"
            message = f"Crew morale {direction} for {len(affected)} crew members{reason}"
            if amount >= 0:
                ctx.success(message)
            else:
                ctx.warning(message)

    def _rest_crew(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)

        if params.get("crewId"):
            member = state.find(params["crewId"])
            if member is None:
                return
            _adjust_fatigue(member, -30)
            _adjust_morale(member, 5)
            ctx.info(f"{member.name} has rested and recovered.")
        elif params.get("department"):
            department = params["department"]
            for member in state.in_department(department):
                _adjust_fatigue(member, -20)
                _adjust_morale(member, 3)
            status = state.department_status.get(department)
            if status is not None:
                status.efficiency = clamp(status.efficiency + 5)
            ctx.success(f"{department} department crew have been given rest rotation.")

    # ─── Duty ───────────────────────────────────────────────

    def _relocate_crew(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        member = state.find(params.get("crewId"))
        if member is None or not params.get("location"):
            return
        member.location = params["location"]
        ctx.info(f"{member.name} relocated to {member.location}")

    def _assign_task(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        if not params.get("task"):
            return

        task = Task(
            name=params["task"],
            priority=params.get("priority") or "medium",
            time_remaining=int(number(params.get("timeRemaining"), 0) or 60),
        )

        if params.get("crewId"):
            member = state.find(params["crewId"])
            if member is None:
                return
            member.tasks.append(task)
            ctx.info(f'Task "{task.name}" assigned to {member.name}')
        elif params.get("department"):
            department = params["department"]
            candidates = state.in_department(department, CrewStatus.ACTIVE)
            if not candidates:
                ctx.warning(f"No available crew in {department} to assign task")
                return
            # Least loaded first; ties keep roster order
            member = min(candidates, key=lambda c: len(c.tasks))
            member.tasks.append(task)
            ctx.info(f'Task "{task.name}" assigned to {member.name} in {department}')

    def _complete_task(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        member = state.find(params.get("crewId"))
        if member is None or not params.get("taskId"):
            return

        task = next((t for t in member.tasks if t.id == params["taskId"]), None)
        member.tasks = [t for t in member.tasks if t.id != params["taskId"]]
        _adjust_fatigue(member, -5)
        _adjust_morale(member, 5)
        ctx.success(f'{member.name} completed "{task.name if task else "task"}"')

    def _change_shift(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        try:
            shift = Shift(as_params(payload).get("shift"))
        except ValueError:
            return

        previous = state.shifts.current
        state.shifts.current = shift
        for member in state.everyone():
            scheduled = state.shifts.schedule.get(member.id)
            if scheduled == shift:
                _adjust_fatigue(member, -10)
            elif scheduled == previous:
                _adjust_fatigue(member, 15)
        ctx.info(f"Shift changed from {previous.value} to {shift.value}")

    # ─── Alerts and emergencies ─────────────────────────────

    def _battle_stations(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        for member in state.everyone():
            if member.status == CrewStatus.AWAY:
                continue
            if member.department == "security":
                member.location = "bridge" if member.location == "bridge" else "security"
            else:
                member.location = BATTLE_STATIONS.get(member.department, member.location)
            _adjust_fatigue(member, 10)

        security = state.department_status.get("security")
        if security is not None:
            security.efficiency = clamp(security.efficiency + 10)
        ctx.danger("All hands to battle stations!")

    def _emergency_stations(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        kind = key(params.get("emergency"))
        if not kind:
            return

        location = params.get("location") or "unknown"
        department = EMERGENCY_DEPARTMENTS.get(kind, "operations")
        responders = [
            c for c in state.in_department(department, CrewStatus.ACTIVE)
            if c.location != "away mission"
        ][:MAX_EMERGENCY_RESPONDERS]

        for member in responders:
            member.location = location
            _adjust_fatigue(member, 15)

        state.emergencies.append(Emergency(
            id=f"emergency-{uuid4().hex[:8]}",
            type=kind,
            location=location,
            severity=params.get("severity") or "major",
            assigned_crew=[c.id for c in responders],
        ))

        if responders:
            ctx.danger(f"Emergency: {kind} in {location}. {_names(responders)} responding.")
        else:
            ctx.danger(f"Emergency: {kind} in {location}. No available crew to respond!")

    def _resolve_emergency(self, state: CrewState, payload: Any, ctx: ActionContext) -> None:
        emergency_id = as_params(payload).get("emergencyId")
        emergency = next((e for e in state.emergencies if e.id == emergency_id), None)
        if emergency is None:
            return

        emergency.resolved = True
        for member in state.everyone():
            if member.id in emergency.assigned_crew:
                member.location = HOME_STATIONS.get(member.department, "main deck")
                _adjust_morale(member, 5)
        ctx.success(f"Emergency resolved: {emergency.type}")
