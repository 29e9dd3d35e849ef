"""
Ship systems module.

Tracks warp, impulse, shields, weapons, life support, sensors,
transporters and the computer core, along with the power grid that feeds
them, per-system structural integrity, position and alert condition.

Power model: ``power.total`` is split across ``power.allocated``;
``power.available`` is whatever is left, never negative. Any action that
touches an allocation recomputes ``available`` afterwards.
"""

from __future__ import annotations

import logging
import math
import random
from enum import Enum
from typing import Any

from pydantic import Field

from ..state.schema import WireModel, now_ms
from .base import (
    ActionContext,
    as_params,
    clamp,
    dump_state,
    floor_count,
    key,
    merge_config,
    number,
    run_action,
    run_check,
)

logger = logging.getLogger(__name__)


# ─── State ──────────────────────────────────────────────────

class SystemStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    DAMAGED = "damaged"


class CoreStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    EJECTED = "ejected"
    BREACH = "breach"


class AlertCondition(str, Enum):
    NONE = "none"
    YELLOW = "yellow"
    RED = "red"
    BLUE = "blue"


class WarpDrive(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    max_warp: float = 9
    current_warp: float = 0
    efficiency: float = 100


class Impulse(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    power: float = 100


class Shields(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    strength: float = 100
    modulation: float = 147.28
    harmonics: str = "Alpha"


class Phasers(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    power: float = 100
    frequency: float = 1.02
    banks: int = 10


class TorpedoStock(WireModel):
    name: str
    count: int


class Torpedoes(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    count: int = 250
    types: list[TorpedoStock] = Field(default_factory=lambda: [
        TorpedoStock(name="Photon", count=200),
        TorpedoStock(name="Quantum", count=50),
    ])


class Weapons(WireModel):
    phasers: Phasers = Field(default_factory=Phasers)
    torpedoes: Torpedoes = Field(default_factory=Torpedoes)


class LifeSupport(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    efficiency: float = 100


class SensorModes(WireModel):
    standard: bool = True
    long_range: bool = True
    tactical: bool = True
    scientific: bool = True


class Sensors(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    range: float = 100
    resolution: float = 100
    modes: SensorModes = Field(default_factory=SensorModes)


class Transporters(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    range: float = 40000  # km
    buffer_capacity: int = 8


class ComputerCore(WireModel):
    status: SystemStatus = SystemStatus.ONLINE
    processing_power: float = 100
    data_storage: float = 100


class ShipSystems(WireModel):
    warp_drive: WarpDrive = Field(default_factory=WarpDrive)
    impulse: Impulse = Field(default_factory=Impulse)
    shields: Shields = Field(default_factory=Shields)
    weapons: Weapons = Field(default_factory=Weapons)
    life_support_systems: LifeSupport = Field(default_factory=LifeSupport)
    sensors: Sensors = Field(default_factory=Sensors)
    transporters: Transporters = Field(default_factory=Transporters)
    computer_core: ComputerCore = Field(default_factory=ComputerCore)


class DilithiumCrystals(WireModel):
    integrity: float = 100
    alignment: float = 100


class WarpCore(WireModel):
    status: CoreStatus = CoreStatus.ONLINE
    efficiency: float = 100
    temperature: float = 3.2  # millions of kelvin
    dilithium_crystals: DilithiumCrystals = Field(default_factory=DilithiumCrystals)


DEFAULT_ALLOCATION = {
    "warpDrive": 30,
    "impulse": 10,
    "shields": 20,
    "weapons": 10,
    "lifeSupportSystems": 5,
    "sensors": 3,
    "transporters": 2,
    "computerCore": 0,
}

DAMAGEABLE_SYSTEMS = (
    "hull",
    "warpDrive",
    "impulse",
    "shields",
    "phasers",
    "torpedoes",
    "lifeSupportSystems",
    "sensors",
    "transporters",
    "computerCore",
)


class PowerGrid(WireModel):
    total: float = 100
    available: float = 20
    allocated: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ALLOCATION))
    emergency_reserves: float = 100
    warp_core: WarpCore = Field(default_factory=WarpCore)


class Heading(WireModel):
    yaw: float = 0
    pitch: float = 0


class Speed(WireModel):
    impulse: float = 0
    warp: float = 0


class Position(WireModel):
    sector: str = "Alpha Quadrant"
    coordinates: list[float] = Field(default_factory=lambda: [0, 0, 0])
    heading: Heading = Field(default_factory=Heading)
    speed: Speed = Field(default_factory=Speed)


class Atmosphere(WireModel):
    oxygen: float = 21
    nitrogen: float = 78
    carbon_dioxide: float = 0.04
    other: float = 0.96


class Environment(WireModel):
    internal_temperature: float = 21
    external_temperature: float = -270.45
    radiation: float = 0.1
    gravity: float = 1
    pressure: float = 1
    atmosphere: Atmosphere = Field(default_factory=Atmosphere)


class AlertRecord(WireModel):
    type: AlertCondition
    timestamp: int = Field(default_factory=now_ms)
    reason: str


class AlertLog(WireModel):
    current: AlertCondition = AlertCondition.NONE
    history: list[AlertRecord] = Field(default_factory=list)


class ShipState(WireModel):
    name: str = "USS Enterprise"
    registry: str = "NCC-1701-D"
    ship_class: str = Field("Galaxy", alias="class")
    systems: ShipSystems = Field(default_factory=ShipSystems)
    power: PowerGrid = Field(default_factory=PowerGrid)
    damage: dict[str, float] = Field(default_factory=lambda: {s: 100 for s in DAMAGEABLE_SYSTEMS})
    position: Position = Field(default_factory=Position)
    environment: Environment = Field(default_factory=Environment)
    alerts: AlertLog = Field(default_factory=AlertLog)


# ─── Power helpers ──────────────────────────────────────────

# Non-warp systems warp drive may borrow from, in order, after weapons and shields.
WARP_DONOR_SYSTEMS = ("impulse", "sensors", "transporters", "computerCore")

MAX_WARP_POWER = 80


def recalculate_available(state: ShipState) -> None:
    """available = total - sum(allocated), clamped at 0."""
    allocated = sum(state.power.allocated.values())
    state.power.available = max(0, state.power.total - allocated)


def draw_power(state: ShipState, systems: tuple[str, ...], amount: float) -> dict[str, float]:
    """
    Take up to ``amount`` from the given allocations, in order.

    No allocation goes below zero. Returns what was taken from each
    system (only systems that gave something).
    """
    taken: dict[str, float] = {}
    remaining = amount
    for system in systems:
        if remaining <= 0:
            break
        current = state.power.allocated.get(system, 0)
        share = min(current, remaining)
        if share > 0:
            state.power.allocated[system] = clamp(current - share)
            taken[system] = share
            remaining -= share
    return taken


def _label(system: str) -> str:
    return system[:1].upper() + system[1:]


def _fmt(value: float) -> str:
    return f"{value:g}"


# ─── Conditions ─────────────────────────────────────────────

def _warp_available(state: ShipState, params: dict) -> bool:
    return state.systems.warp_drive.status == SystemStatus.ONLINE


def _shields_up(state: ShipState, params: dict) -> bool:
    return state.systems.shields.status == SystemStatus.ONLINE


def _system_damaged(state: ShipState, params: dict) -> bool:
    integrity = state.damage.get(key(params.get("system")))
    return integrity is not None and integrity < number(params.get("threshold"), 70)


def _system_critical(state: ShipState, params: dict) -> bool:
    integrity = state.damage.get(key(params.get("system")))
    return integrity is not None and integrity < 30


def _has_torpedoes(state: ShipState, params: dict) -> bool:
    torpedoes = state.systems.weapons.torpedoes
    if params.get("type"):
        stock = next((t for t in torpedoes.types if t.name == params["type"]), None)
        return stock is not None and stock.count > 0
    return torpedoes.count > 0


def _in_sector(state: ShipState, params: dict) -> bool:
    return "sector" in params and state.position.sector == params["sector"]


def _at_warp(state: ShipState, params: dict) -> bool:
    return state.systems.warp_drive.current_warp > 0


def _power_available(state: ShipState, params: dict) -> bool:
    amount = number(params.get("amount"), None)
    return amount is not None and state.power.available >= amount


def _alert_status(state: ShipState, params: dict) -> bool:
    return "status" in params and state.alerts.current == params["status"]


def _hull_integrity_above(state: ShipState, params: dict) -> bool:
    threshold = number(params.get("threshold"), None)
    return threshold is not None and state.damage.get("hull", 0) >= threshold


CONDITIONS = {
    "WARP_AVAILABLE": _warp_available,
    "SHIELDS_UP": _shields_up,
    "SYSTEM_DAMAGED": _system_damaged,
    "SYSTEM_CRITICAL": _system_critical,
    "HAS_TORPEDOES": _has_torpedoes,
    "IN_SECTOR": _in_sector,
    "AT_WARP": _at_warp,
    "POWER_AVAILABLE": _power_available,
    "ALERT_STATUS": _alert_status,
    "HULL_INTEGRITY_ABOVE": _hull_integrity_above,
}


# ─── Module ─────────────────────────────────────────────────

class ShipModule:
    """Ship systems, power, damage and navigation."""

    id = "ship"
    name = "Ship Systems"
    description = "Manages ship systems, power, damage, and navigation"

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._state: ShipState | None = None
        self._actions = {
            "SET_WARP": self._set_warp,
            "RAISE_SHIELDS": self._raise_shields,
            "LOWER_SHIELDS": self._lower_shields,
            "FIRE_PHASERS": self._fire_phasers,
            "FIRE_TORPEDOES": self._fire_torpedoes,
            "TAKE_DAMAGE": self._take_damage,
            "REPAIR_SYSTEM": self._repair_system,
            "ALLOCATE_POWER": self._allocate_power,
            "SET_ALERT_STATUS": self._set_alert_status,
            "SET_POSITION": self._set_position,
            "MODULATE_SHIELDS": self._modulate_shields,
            "EJECT_WARP_CORE": self._eject_warp_core,
        }

    # ─── Contract ───────────────────────────────────────────

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        config = dict(config or {})
        # Shorthand keys accepted in episode moduleConfig
        position_overrides = {k: config.pop(k) for k in ("sector", "coordinates") if k in config}

        state = merge_config(ShipState, config)
        if position_overrides:
            state.position = state.position.model_copy(update=position_overrides)
        recalculate_available(state)
        self._state = state
        return dump_state(state)

    def get_state(self) -> dict[str, Any] | None:
        return dump_state(self._state)

    def set_state(self, state: dict[str, Any]) -> None:
        self._state = ShipState.model_validate(state)
        recalculate_available(self._state)

    def handle_action(self, action: str, payload: Any = None):
        handler = self._actions.get(action)
        if self._state is None or handler is None:
            return None
        self._state, result = run_action(self._state, handler, payload)
        return result

    def check_condition(self, condition: str, params: Any = None) -> bool:
        return run_check(self._state, CONDITIONS, condition, params)

    # ─── Navigation ─────────────────────────────────────────

    def _eta_hours(self, warp: float) -> str:
        if warp <= 0:
            return "N/A"
        distance = self._rng.randint(1, 10)  # light years
        speed = warp ** (10 / 3)
        return f"{distance / speed * 24:.1f}"

    def _set_warp(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        warp = number(payload.get("warp") if isinstance(payload, dict) else payload, -1)
        drive = state.systems.warp_drive

        if warp < 0 or warp > drive.max_warp:
            ctx.warning(f"Warp {_fmt(warp)} is outside engine limits (maximum warp {_fmt(drive.max_warp)}).")
            return
        if warp > 0 and drive.status != SystemStatus.ONLINE:
            ctx.danger("Warp drive is not online. Unable to go to warp.")
            return

        previous = drive.current_warp
        drive.current_warp = warp
        state.position.speed.warp = warp
        allocated = state.power.allocated

        if warp > 0:
            needed = min(30 + warp ** 3, MAX_WARP_POWER)
            budget = state.power.available + allocated.get("warpDrive", 0)

            if budget < needed:
                shortage = needed - budget
                taken = draw_power(state, ("weapons",), shortage)
                shortage -= sum(taken.values())

                if shortage > 0:
                    from_shields = draw_power(state, ("shields",), shortage)
                    if from_shields:
                        taken.update(from_shields)
                        shortage -= from_shields["shields"]
                        shields = state.systems.shields
                        shields.strength = clamp(max(50, shields.strength - 20))
                        ctx.emit("crew", "BOOST_MORALE", {"amount": -5, "reason": "Power systems strained"})

                if shortage > 0:
                    others = draw_power(state, WARP_DONOR_SYSTEMS, shortage)
                    taken.update(others)
                    shortage -= sum(others.values())

                # Whatever could not be found is simply not delivered.
                needed -= max(0, shortage)
                sources = " and ".join(taken) or "reserves"
                message = f"Power diverted from {sources} to warp drive."
                if "shields" in taken:
                    message += f" Shield strength reduced to {_fmt(state.systems.shields.strength)}%."
                elif "weapons" in taken:
                    message += " Weapon efficiency reduced."
                ctx.warning(message)

            allocated["warpDrive"] = clamp(needed)
            recalculate_available(state)

            if previous == 0 and ctx.alert is None:
                ctx.info(f"Warp {_fmt(warp)} engaged. Estimated arrival time: {self._eta_hours(warp)} hours.")
        elif previous > 0:
            allocated["warpDrive"] = 10
            recalculate_available(state)
            ctx.info("Dropping out of warp. Returning to impulse power.")

        # Engine stress above warp 8: 15% per warp factor
        if warp > 8:
            stress_chance = (warp - 8) * 15
            if self._rng.random() * 100 < stress_chance:
                state.damage["warpDrive"] = clamp(state.damage["warpDrive"] - self._rng.randint(1, 5))
                if state.damage["warpDrive"] < 70:
                    drive.status = SystemStatus.DAMAGED
                    ctx.danger("Warning: Warp drive showing signs of stress. Recommend reducing speed.")
                    ctx.emit("crew", "ASSIGN_TASK", {
                        "task": "Warp Drive Maintenance",
                        "department": "engineering",
                        "priority": "high",
                    })

    def _set_position(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        position = state.position
        if params.get("sector"):
            position.sector = params["sector"]
        if isinstance(params.get("coordinates"), list):
            position.coordinates = list(params["coordinates"])
        if isinstance(params.get("heading"), dict):
            position.heading = position.heading.model_copy(update={
                k: v for k, v in params["heading"].items() if k in ("yaw", "pitch")
            })
        ctx.info(f"Position updated. Current sector: {position.sector}.")

    # ─── Shields ────────────────────────────────────────────

    def _raise_shields(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        shields = state.systems.shields
        if shields.status == SystemStatus.ONLINE:
            return

        shields.status = SystemStatus.ONLINE
        allocated = state.power.allocated
        needed = 20 - allocated.get("shields", 0)

        if needed > 0:
            from_reserve = min(state.power.available, needed)
            shortage = needed - from_reserve
            gained = from_reserve
            if shortage > 0:
                # Sensors give first; weapons make up the rest
                donor = "sensors" if allocated.get("sensors", 0) >= shortage else "weapons"
                taken = draw_power(state, (donor,), shortage)
                gained += sum(taken.values())
                if donor == "sensors":
                    ctx.warning("Power diverted from sensors to shields. Sensor range reduced.")
                else:
                    ctx.warning("Power diverted from weapons to shields. Weapon efficiency reduced.")
            allocated["shields"] = clamp(allocated.get("shields", 0) + gained)
            recalculate_available(state)

        state.alerts.history.append(AlertRecord(type=state.alerts.current, reason="Shields raised"))
        if ctx.alert is None:
            ctx.info(f"Shields raised. Shield strength at {_fmt(shields.strength)}%.")

    def _lower_shields(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        shields = state.systems.shields
        if shields.status != SystemStatus.ONLINE:
            return

        shields.status = SystemStatus.OFFLINE
        # Keep a trickle for quick reactivation
        state.power.allocated["shields"] = 5
        recalculate_available(state)
        state.alerts.history.append(AlertRecord(type=state.alerts.current, reason="Shields lowered"))
        ctx.info("Shields lowered. Power redistributed to available reserves.")

    def _modulate_shields(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        frequency = number(params.get("frequency"), 0)
        if not frequency:
            return

        shields = state.systems.shields
        shields.modulation = frequency
        harmonics = params.get("harmonics")
        if harmonics:
            shields.harmonics = str(harmonics)
            ctx.info(f"Shield frequency modulated to {_fmt(frequency)} with {harmonics} harmonics.")
        else:
            ctx.info(f"Shield frequency modulated to {_fmt(frequency)}.")

    # ─── Weapons ────────────────────────────────────────────

    def _fire_phasers(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        phasers = state.systems.weapons.phasers
        if phasers.status != SystemStatus.ONLINE:
            ctx.danger("Unable to fire phasers. Phaser banks are offline.")
            return
        if state.power.allocated.get("weapons", 0) < 10:
            ctx.danger("Insufficient power to weapons systems. Unable to fire phasers.")
            return

        target = as_params(payload).get("target")
        target_info = f" at {target}" if target else ""
        ctx.info(f"Firing phasers{target_info}. Frequency: {_fmt(phasers.frequency)} TeraHz.")

        # 5% chance of a bank overheating
        if self._rng.random() * 100 < 5:
            state.damage["phasers"] = clamp(state.damage["phasers"] - self._rng.randint(1, 5))
            if state.damage["phasers"] < 70:
                ctx.warning("Phaser bank 3 overheating. Recommend reducing fire rate.")

        phasers.power = clamp(max(80, phasers.power - 5))

    def _fire_torpedoes(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        torpedoes = state.systems.weapons.torpedoes
        if torpedoes.status != SystemStatus.ONLINE:
            ctx.danger("Torpedo launchers offline. Unable to fire.")
            return
        if torpedoes.count <= 0:
            ctx.danger("No torpedoes remaining. Unable to fire.")
            return

        params = as_params(payload)
        kind = params.get("type") or "Photon"
        stock = next((t for t in torpedoes.types if t.name == kind), None)
        if stock is None or stock.count <= 0:
            ctx.danger(f"No {kind} torpedoes remaining. Unable to fire.")
            return

        torpedoes.count = floor_count(torpedoes.count - 1)
        stock.count = floor_count(stock.count - 1)

        target = params.get("target")
        target_info = f" at {target}" if target else ""
        ctx.info(f"{kind} torpedo fired{target_info}. {stock.count} {kind} torpedoes remaining.")

    # ─── Damage and repair ──────────────────────────────────

    def _take_damage(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        system = key(params.get("system"))
        if system not in state.damage:
            return

        amount = number(params.get("amount"), 0) or self._rng.randint(10, 29)
        state.damage[system] = clamp(state.damage[system] - amount)
        integrity = state.damage[system]
        systems = state.systems

        if integrity < 30:
            if system == "warpDrive":
                systems.warp_drive.status = SystemStatus.DAMAGED
                if systems.warp_drive.current_warp > 0:
                    # Forced drop to impulse
                    systems.warp_drive.current_warp = 0
                    state.position.speed.warp = 0
                    ctx.danger("Warp drive critically damaged! Dropping to impulse power.")
                    ctx.emit("crew", "INJURE_CREW", {
                        "department": "engineering",
                        "severity": "minor",
                        "count": self._rng.randint(1, 3),
                    })
            elif system == "impulse":
                systems.impulse.status = SystemStatus.DAMAGED
                systems.impulse.power = clamp(max(30, systems.impulse.power - 30))
            elif system == "shields":
                systems.shields.status = SystemStatus.DAMAGED
                systems.shields.strength = clamp(max(20, systems.shields.strength - 40))
                ctx.danger(f"Shields critically damaged! Shield strength at {_fmt(systems.shields.strength)}%.")
            elif system == "phasers":
                systems.weapons.phasers.status = SystemStatus.DAMAGED
                systems.weapons.phasers.power = clamp(max(30, systems.weapons.phasers.power - 40))
            elif system == "torpedoes":
                systems.weapons.torpedoes.status = SystemStatus.DAMAGED
            elif system == "lifeSupportSystems":
                life_support = systems.life_support_systems
                life_support.status = SystemStatus.DAMAGED
                life_support.efficiency = clamp(max(50, life_support.efficiency - 30))
                ctx.emit("crew", "BOOST_MORALE", {"amount": -15, "reason": "Life support systems damaged"})
                ctx.danger(f"Life support systems damaged! Efficiency at {_fmt(life_support.efficiency)}%.")
        elif integrity < 70:
            if system == "shields":
                systems.shields.strength = clamp(max(60, systems.shields.strength - 20))
                ctx.warning(f"Shields damaged. Shield strength at {_fmt(systems.shields.strength)}%.")
            elif system == "warpDrive":
                systems.warp_drive.efficiency = clamp(max(70, systems.warp_drive.efficiency - 15))
                ctx.warning(f"Warp drive damaged. Efficiency at {_fmt(systems.warp_drive.efficiency)}%.")

        if system == "hull" and integrity < 40:
            ctx.danger("Warning: Hull integrity compromised. Possible hull breach detected.")
            ctx.emit("crew", "EMERGENCY_STATIONS", {
                "emergency": "hull breach",
                "location": params.get("location") or "unknown",
            })

        if ctx.alert is None:
            ctx.warning(f"{_label(system)} hit. Integrity at {_fmt(integrity)}%.")

    def _repair_system(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        system = key(params.get("system"))
        if system not in state.damage:
            return

        amount = number(params.get("amount"), 0) or 10
        state.damage[system] = clamp(state.damage[system] + amount)
        integrity = state.damage[system]
        systems = state.systems

        if integrity < 70:
            ctx.info(f"{_label(system)} partially repaired. Integrity at {_fmt(integrity)}%.")
            return

        if system == "warpDrive":
            systems.warp_drive.status = SystemStatus.ONLINE
            systems.warp_drive.efficiency = clamp(systems.warp_drive.efficiency + 15)
            ctx.success("Warp drive repaired and back online.")
        elif system == "impulse":
            systems.impulse.status = SystemStatus.ONLINE
            ctx.success("Impulse engines repaired and back online.")
        elif system == "shields":
            systems.shields.status = SystemStatus.ONLINE
            systems.shields.strength = clamp(systems.shields.strength + 20)
            ctx.success(f"Shields repaired. Shield strength at {_fmt(systems.shields.strength)}%.")
        elif system == "phasers":
            systems.weapons.phasers.status = SystemStatus.ONLINE
            ctx.success("Phaser banks repaired and back online.")
        elif system == "torpedoes":
            systems.weapons.torpedoes.status = SystemStatus.ONLINE
            ctx.success("Torpedo launchers repaired and back online.")
        elif system == "lifeSupportSystems":
            systems.life_support_systems.status = SystemStatus.ONLINE
            systems.life_support_systems.efficiency = 100
            ctx.success("Life support systems fully repaired.")
            ctx.emit("crew", "BOOST_MORALE", {"amount": 10, "reason": "Life support systems restored"})
        else:
            ctx.success(f"{_label(system)} repaired. Integrity at {_fmt(integrity)}%.")

    # ─── Power ──────────────────────────────────────────────

    def _allocate_power(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        system = key(params.get("system"))
        amount = number(params.get("amount"), -1)
        allocated = state.power.allocated
        if system not in allocated or amount < 0:
            return

        amount = clamp(amount)
        change = amount - allocated[system]
        shields = state.systems.shields

        if change > 0:
            if state.power.available < change:
                ctx.warning(f"Insufficient power available. Cannot allocate requested power to {system}.")
                return
            allocated[system] = amount
            ctx.info(f"Power allocation to {system} increased to {_fmt(amount)}%.")
            if system == "shields" and shields.status == SystemStatus.ONLINE:
                shields.strength = clamp(shields.strength + math.floor(change / 2))
            elif system == "sensors":
                state.systems.sensors.range = clamp(70 + math.floor(amount / 3))
        elif change < 0:
            allocated[system] = amount
            ctx.info(f"Power allocation to {system} reduced to {_fmt(amount)}%.")
            if system == "shields" and shields.status == SystemStatus.ONLINE:
                shields.strength = clamp(max(50, shields.strength + math.floor(change / 2)))
            elif system == "lifeSupportSystems" and amount < 5:
                ctx.danger("Warning: Life support systems at critical power levels.")
                ctx.emit("crew", "BOOST_MORALE", {"amount": -10, "reason": "Life support power critically low"})

        recalculate_available(state)

    def _set_alert_status(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        try:
            status = AlertCondition(params.get("status"))
        except ValueError:
            return

        previous = state.alerts.current
        state.alerts.current = status
        state.alerts.history.append(AlertRecord(
            type=status,
            reason=params.get("reason") or f"Alert status changed to {status.value}",
        ))

        if status == AlertCondition.RED and previous != AlertCondition.RED:
            allocated = state.power.allocated
            shields = state.systems.shields
            if shields.status != SystemStatus.ONLINE:
                shields.status = SystemStatus.ONLINE
                needed = 20 - allocated.get("shields", 0)
                if needed > 0:
                    allocated["shields"] = clamp(allocated.get("shields", 0) + min(state.power.available, needed))
                    recalculate_available(state)

            weapons_needed = 15 - allocated.get("weapons", 0)
            if weapons_needed > 0 and state.power.available >= weapons_needed:
                allocated["weapons"] = 15
                recalculate_available(state)

            ctx.emit("crew", "BATTLE_STATIONS", {"reason": params.get("reason")})

        if status == AlertCondition.RED:
            ctx.danger("RED ALERT. All hands to battle stations.")
        elif status == AlertCondition.YELLOW:
            ctx.warning("YELLOW ALERT. All hands to alert stations.")
        elif status == AlertCondition.BLUE:
            ctx.info("BLUE ALERT. All hands to alert stations.")
        else:
            ctx.info("Alert condition cancelled. Resume normal stations.")

    def _eject_warp_core(self, state: ShipState, payload: Any, ctx: ActionContext) -> None:
        core = state.power.warp_core
        if core.status == CoreStatus.EJECTED:
            ctx.warning("Warp core has already been ejected.")
            return

        core.status = CoreStatus.EJECTED
        drive = state.systems.warp_drive
        drive.status = SystemStatus.OFFLINE
        drive.current_warp = 0
        state.position.speed.warp = 0

        allocated = state.power.allocated
        warp_power = allocated.get("warpDrive", 0)
        state.power.total = max(0, state.power.total - 70)
        allocated["warpDrive"] = 0

        # Essential systems get up to 10 each out of what warp was using
        for system in ("lifeSupportSystems", "impulse", "shields"):
            current = allocated.get(system, 0)
            if current < 10:
                allocated[system] = clamp(current + min(10 - current, warp_power / 3))
        recalculate_available(state)

        ctx.emit("crew", "EMERGENCY_EVACUATION", {"area": "Engineering", "reason": "Warp core ejection"})
        ctx.emit("mission", "ADD_LOG_ENTRY", {
            "text": "EMERGENCY: Warp core ejected. Ship operating on emergency power.",
        })
        ctx.danger("EMERGENCY: Warp core ejected! Ship operating on emergency power systems.")
        logger.info("Warp core ejected; total power now %s", _fmt(state.power.total))
