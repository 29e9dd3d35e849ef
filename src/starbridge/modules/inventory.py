"""
Inventory module: equipment, storage locations and the replicator.

An item id names a kind of equipment. The same id can appear as several
stacks when part of a stack has been moved elsewhere or assigned to a
crew member; lookups pick the unassigned stack first.

``totalItems`` and ``totalWeight`` are derived from the stacks and
recomputed after every action. Location ``currentItems`` counters never
drop below zero.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

from pydantic import Field, ValidationError

from ..state.schema import WireModel
from .base import (
    ActionContext,
    as_params,
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

class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    UNIQUE = "unique"


class SecurityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Durability(WireModel):
    current: float = 100
    max: float = 100


class ItemEffect(WireModel):
    type: str
    target: str
    value: float | str | bool
    duration: int | None = None


class InventoryItem(WireModel):
    id: str
    name: str
    description: str = ""
    type: str = "misc"
    quantity: int = 1
    properties: dict[str, Any] | None = None
    location: str | None = None
    assigned_to: str | None = None
    rarity: Rarity = Rarity.COMMON
    weight: float = 0
    size: str | None = None
    usable: bool = False
    consumable: bool = False
    durability: Durability | None = None
    effects: list[ItemEffect] | None = None


class StorageLocation(WireModel):
    name: str
    capacity: int
    current_items: int = 0
    security_level: SecurityLevel = SecurityLevel.LOW
    accessible_to: list[str] | None = None

    @property
    def free(self) -> int:
        return self.capacity - self.current_items


def default_items() -> list[InventoryItem]:
    return [
        InventoryItem(
            id="phaser-type2", name="Type-2 Phaser",
            description="Standard Starfleet hand phaser with multiple settings from stun to kill.",
            type="weapon", quantity=25, location="weapons locker", weight=0.3, size="small",
            properties={"settings": ["stun", "kill", "heat", "disintegrate"], "powerLevel": 100,
                        "maxRange": 50, "accuracy": 95},
            usable=True, durability=Durability(),
            effects=[
                ItemEffect(type="damage", target="organic", value=50),
                ItemEffect(type="stun", target="organic", value=30, duration=10),
            ],
        ),
        InventoryItem(
            id="tricorder", name="Tricorder",
            description="Multipurpose scientific analysis and scanning device.",
            type="tool", quantity=15, location="science lab", weight=0.5, size="small",
            properties={"scanRange": 100, "accuracy": 95,
                        "modes": ["biological", "geological", "meteorological", "physical"]},
            usable=True, durability=Durability(),
        ),
        InventoryItem(
            id="medical-kit", name="Medical Kit",
            description="Standard medical field kit with basic supplies and diagnostic tools.",
            type="medical", quantity=10, location="sickbay", weight=2.0, size="medium",
            properties={"treatments": ["wounds", "burns", "infections", "basic surgery"], "charges": 20},
            usable=True, consumable=True,
            effects=[ItemEffect(type="heal", target="organic", value=30)],
        ),
        InventoryItem(
            id="communicator", name="Communicator Badge",
            description="Standard Starfleet communicator for ship-to-person and person-to-person communication.",
            type="communication", quantity=50, location="quartermaster", weight=0.05, size="tiny",
            properties={"range": "planetary", "encryption": "standard", "tracking": True},
            usable=True,
        ),
        InventoryItem(
            id="pattern-enhancer", name="Transporter Pattern Enhancer",
            description="Device that improves transporter signal in difficult environments.",
            type="tool", quantity=9, location="transporter room", weight=1.5, size="medium",
            properties={"range": 500, "reliability": 90},
            rarity=Rarity.UNCOMMON, usable=True,
        ),
        InventoryItem(
            id="dilithium-crystal", name="Dilithium Crystal",
            description="Rare mineral used to regulate matter/antimatter reactions in warp cores.",
            type="resource", quantity=3, location="engineering secure storage", weight=5.0, size="small",
            properties={"purity": 98.7, "stability": 99.2, "halfLife": 1.5},
            rarity=Rarity.RARE,
        ),
        InventoryItem(
            id="emergency-ration", name="Emergency Ration Pack",
            description="Concentrated food supplies for emergency situations.",
            type="resource", quantity=100, location="cargo bay", weight=0.5, size="small",
            properties={"calories": 3000, "servings": 1, "shelfLife": 10},
            usable=True, consumable=True,
            effects=[ItemEffect(type="nutrition", target="organic", value=100)],
        ),
        InventoryItem(
            id="class-3-probe", name="Class 3 Probe",
            description="Standard long-range sensor probe for scientific and tactical reconnaissance.",
            type="tool", quantity=12, location="shuttle bay", weight=150, size="large",
            properties={"range": 5000000, "sensors": ["subspace", "graviton", "electromagnetic"],
                        "transmissionPower": 95},
            rarity=Rarity.UNCOMMON, usable=True, consumable=True,
        ),
    ]


def default_locations() -> dict[str, StorageLocation]:
    high, medium, low = SecurityLevel.HIGH, SecurityLevel.MEDIUM, SecurityLevel.LOW
    return {
        "weapons locker": StorageLocation(
            name="Weapons Locker", capacity=100, current_items=25,
            security_level=high, accessible_to=["security", "command"]),
        "science lab": StorageLocation(
            name="Science Lab", capacity=200, current_items=15,
            security_level=medium, accessible_to=["science", "command"]),
        "sickbay": StorageLocation(
            name="Sickbay", capacity=150, current_items=10,
            security_level=medium, accessible_to=["medical", "command"]),
        "quartermaster": StorageLocation(
            name="Quartermaster's Office", capacity=300, current_items=50,
            security_level=low, accessible_to=["operations", "command"]),
        "transporter room": StorageLocation(
            name="Transporter Room", capacity=50, current_items=9,
            security_level=medium, accessible_to=["operations", "engineering", "command"]),
        "engineering secure storage": StorageLocation(
            name="Engineering Secure Storage", capacity=100, current_items=3,
            security_level=high, accessible_to=["engineering", "command"]),
        "cargo bay": StorageLocation(
            name="Main Cargo Bay", capacity=5000, current_items=100, security_level=low),
        "shuttle bay": StorageLocation(
            name="Shuttle Bay", capacity=1000, current_items=12,
            security_level=medium, accessible_to=["operations", "command"]),
        "personal equipment": StorageLocation(
            name="Personal Equipment", capacity=500, security_level=low),
    }


class InventoryState(WireModel):
    items: list[InventoryItem] = Field(default_factory=default_items)
    capacity: int = 1000
    total_items: int = 0
    total_weight: float = 0
    locations: dict[str, StorageLocation] = Field(default_factory=default_locations)
    replicator_templates: list[str] = Field(default_factory=lambda: [
        "emergency-ration", "communicator", "uniform", "water", "basic-tools",
    ])
    replicator_energy: float = 100

    def find(self, item_id: str | None, assigned_to: str | None = None) -> InventoryItem | None:
        stacks = [i for i in self.items if i.id == item_id]
        if assigned_to is not None:
            stacks = [i for i in stacks if i.assigned_to == assigned_to]
        # Unassigned stock before anything already handed out
        stacks.sort(key=lambda i: i.assigned_to is not None)
        return stacks[0] if stacks else None


REPLICATION_COST = {Rarity.RARE: 30, Rarity.UNCOMMON: 15}
DEFAULT_REPLICATION_COST = 10
MIN_REPLICATOR_ENERGY = 10
CAPACITY_WARNING_RATIO = 0.9
PERSONAL_EQUIPMENT = "personal equipment"


def retotal(state: InventoryState) -> None:
    state.total_items = sum(i.quantity for i in state.items)
    state.total_weight = round(sum(i.weight * i.quantity for i in state.items), 3)


def _shift_location(state: InventoryState, location: str | None, delta: int) -> None:
    slot = state.locations.get(location) if location else None
    if slot is not None:
        slot.current_items = floor_count(slot.current_items + delta)


def _add_stock(state: InventoryState, item: InventoryItem) -> InventoryItem:
    """Merge into a matching unassigned stack, or append a new one."""
    existing = next(
        (i for i in state.items
         if i.id == item.id and i.assigned_to is None
         and (item.location is None or i.location == item.location)),
        None,
    )
    if existing is not None:
        existing.quantity += item.quantity
        _shift_location(state, existing.location, item.quantity)
        return existing
    state.items.append(item)
    _shift_location(state, item.location, item.quantity)
    return item


def _take_stock(state: InventoryState, item: InventoryItem, quantity: int) -> None:
    item.quantity -= quantity
    _shift_location(state, item.location, -quantity)
    if item.quantity <= 0:
        state.items.remove(item)


# ─── Conditions ─────────────────────────────────────────────

def _has_item(state: InventoryState, params: dict) -> bool:
    wanted = number(params.get("quantity"), 0) or 1
    held = sum(i.quantity for i in state.items if i.id == params.get("itemId"))
    return held >= wanted


def _item_assigned(state: InventoryState, params: dict) -> bool:
    return any(
        i.id == params.get("itemId") and i.assigned_to == params.get("crewId") and i.assigned_to
        for i in state.items
    )


def _item_in_location(state: InventoryState, params: dict) -> bool:
    return any(
        i.id == params.get("itemId") and i.location == params.get("location")
        for i in state.items
    )


def _item_usable(state: InventoryState, params: dict) -> bool:
    item = state.find(params.get("itemId"))
    if item is None:
        return False
    props = item.properties or {}
    if params.get("checkCharges") and props.get("charges") is not None:
        return number(props.get("charges")) > 0
    if params.get("checkPower") and props.get("powerLevel") is not None:
        return number(props.get("powerLevel")) > number(params.get("minPower"), 0)
    if params.get("checkDurability") and item.durability is not None:
        return item.durability.current > number(params.get("minDurability"), 0)
    return item.usable


def _can_replicate(state: InventoryState, params: dict) -> bool:
    cost = number(params.get("energyCost"), 0) or MIN_REPLICATOR_ENERGY
    return params.get("itemId") in state.replicator_templates and state.replicator_energy >= cost


def _location_has_space(state: InventoryState, params: dict) -> bool:
    slot = state.locations.get(key(params.get("location")))
    if slot is None:
        return False
    return slot.free >= (number(params.get("quantity"), 0) or 1)


def _has_access_to_location(state: InventoryState, params: dict) -> bool:
    slot = state.locations.get(key(params.get("location")))
    if slot is None or not params.get("department"):
        return False
    if slot.security_level == SecurityLevel.LOW:
        return True
    if not slot.accessible_to:
        return False
    return params["department"] in slot.accessible_to or params.get("crewId") in slot.accessible_to


CONDITIONS = {
    "HAS_ITEM": _has_item,
    "ITEM_ASSIGNED": _item_assigned,
    "ITEM_IN_LOCATION": _item_in_location,
    "ITEM_USABLE": _item_usable,
    "CAN_REPLICATE": _can_replicate,
    "LOCATION_HAS_SPACE": _location_has_space,
    "HAS_ACCESS_TO_LOCATION": _has_access_to_location,
}


# ─── Module ─────────────────────────────────────────────────

class InventoryModule:
    """Ship stores, personal equipment and replication."""

    id = "inventory"
    name = "Inventory Management"
    description = "Manages ship inventory, equipment, and resources"

    def __init__(self):
        self._state: InventoryState | None = None
        self._actions: dict[str, Callable[[InventoryState, Any, ActionContext], None]] = {
            "ADD_ITEM": self._add_item,
            "REMOVE_ITEM": self._remove_item,
            "ASSIGN_ITEM": self._assign_item,
            "UNASSIGN_ITEM": self._unassign_item,
            "MOVE_ITEM": self._move_item,
            "USE_ITEM": self._use_item,
            "REPAIR_ITEM": self._repair_item,
            "RECHARGE_ITEM": self._recharge_item,
            "REPLICATE_ITEM": self._replicate_item,
            "CREATE_LOCATION": self._create_location,
            "ANALYZE_ITEM": self._analyze_item,
        }

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        state = merge_config(InventoryState, config)
        retotal(state)
        self._state = state
        return dump_state(state)

    def get_state(self) -> dict[str, Any] | None:
        return dump_state(self._state)

    def set_state(self, state: dict[str, Any]) -> None:
        self._state = InventoryState.model_validate(state)

    def handle_action(self, action: str, payload: Any = None):
        handler = self._actions.get(action)
        if self._state is None or handler is None:
            return None

        def apply(state: InventoryState, data: Any, ctx: ActionContext) -> None:
            handler(state, data, ctx)
            retotal(state)

        self._state, result = run_action(self._state, apply, payload)
        return result

    def check_condition(self, condition: str, params: Any = None) -> bool:
        return run_check(self._state, CONDITIONS, condition, params)

    # ─── Stock ──────────────────────────────────────────────

    def _add_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        data = as_params(payload).get("item")
        if not isinstance(data, dict) or not data.get("id"):
            return

        quantity = int(number(data.get("quantity"), 0)) or 1
        if quantity < 0:
            ctx.warning("Cannot add a negative quantity.")
            return

        known = state.find(data["id"])
        if known is not None and known.assigned_to is None:
            _add_stock(state, InventoryItem.model_validate(
                {**known.model_dump(by_alias=True), "quantity": quantity,
                 "location": data.get("location", known.location)}
            ))
            ctx.success(f"Added {quantity} {known.name}(s) to inventory.")
        else:
            try:
                item = InventoryItem.model_validate({"name": data["id"], **data, "quantity": quantity})
            except ValidationError as e:
                logger.debug("Rejected item %s: %s", data["id"], e)
                ctx.warning(f"Item {data['id']} has an invalid definition.")
                return
            _add_stock(state, item)
            ctx.success(f"Added new item: {item.name} to inventory.")

        total = sum(i.quantity for i in state.items)
        if total > state.capacity * CAPACITY_WARNING_RATIO:
            ctx.warning(f"Inventory at {round(total / state.capacity * 100)}% capacity.")

    def _remove_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = state.find(params.get("itemId"))
        if item is None:
            return

        quantity = int(number(params.get("quantity"), 0)) or 1
        if quantity < 0:
            return
        if quantity > item.quantity:
            ctx.warning(f"Cannot remove {quantity} {item.name}(s); only {item.quantity} in stock.")
            return

        _take_stock(state, item, quantity)
        if item.quantity == 0:
            ctx.info(f"Removed all {item.name}(s) from inventory.")
        else:
            ctx.info(f"Removed {quantity} {item.name}(s) from inventory.")

    def _assign_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        crew_id = params.get("crewId")
        item = state.find(params.get("itemId"))
        if item is None or not crew_id:
            return

        quantity = min(int(number(params.get("quantity"), 0)) or 1, item.quantity)
        if quantity <= 0:
            return

        if quantity == item.quantity:
            _shift_location(state, item.location, -quantity)
            item.assigned_to = crew_id
            item.location = PERSONAL_EQUIPMENT
            _shift_location(state, PERSONAL_EQUIPMENT, quantity)
        else:
            _take_stock(state, item, quantity)
            state.items.append(item.model_copy(update={
                "quantity": quantity,
                "assigned_to": crew_id,
                "location": PERSONAL_EQUIPMENT,
            }, deep=True))
            _shift_location(state, PERSONAL_EQUIPMENT, quantity)

        ctx.emit("crew", "NOTIFY_EQUIPMENT_ASSIGNMENT", {
            "crewId": crew_id, "itemId": item.id, "itemName": item.name,
        })
        ctx.success(f"{item.name} assigned to crew member.")

    def _unassign_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = next(
            (i for i in state.items
             if i.id == params.get("itemId") and i.assigned_to
             and (not params.get("crewId") or i.assigned_to == params["crewId"])),
            None,
        )
        if item is None:
            return

        crew_id = item.assigned_to
        location = params.get("location") or "quartermaster"
        _shift_location(state, item.location, -item.quantity)
        item.assigned_to = None
        item.location = location
        _shift_location(state, location, item.quantity)

        ctx.emit("crew", "NOTIFY_EQUIPMENT_REMOVAL", {
            "crewId": crew_id, "itemId": item.id, "itemName": item.name,
        })
        ctx.info(f"{item.name} returned to {location}.")

    def _move_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = state.find(params.get("itemId"))
        destination = params.get("location")
        if item is None or not destination:
            return

        slot = state.locations.get(destination)
        if slot is None:
            ctx.warning(f"Location {destination} does not exist.")
            return

        quantity = min(int(number(params.get("quantity"), 0)) or item.quantity, item.quantity)
        if quantity > slot.free:
            ctx.warning(f"Not enough space in {destination}. Only {slot.free} slots available.")
            return

        if (
            params.get("crewId")
            and slot.security_level == SecurityLevel.HIGH
            and slot.accessible_to
            and params.get("department") not in slot.accessible_to
        ):
            ctx.emit("mission", "ADD_LOG_ENTRY", {
                "text": f"Security alert: Unauthorized access attempt to {destination} "
                        f"by crew ID {params['crewId']}.",
            })
            ctx.danger(f"Access denied to {destination}. Security clearance required.")
            return

        if quantity < item.quantity:
            _take_stock(state, item, quantity)
            _add_stock(state, item.model_copy(
                update={"quantity": quantity, "location": destination}, deep=True,
            ))
        else:
            _shift_location(state, item.location, -quantity)
            item.location = destination
            _shift_location(state, destination, quantity)

        ctx.success(f"Moved {quantity} {item.name}(s) to {destination}.")

    # ─── Use and upkeep ─────────────────────────────────────

    def _use_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = state.find(params.get("itemId"))
        if item is None:
            return
        if not item.usable:
            ctx.warning(f"{item.name} cannot be used directly.")
            return

        if params.get("consume") or item.consumable:
            _take_stock(state, item, 1)
        consumed = item.quantity == 0

        if item.durability is not None and not consumed:
            loss = number(params.get("durabilityLoss"), 0) or 5
            item.durability.current = max(0, item.durability.current - loss)
            if item.durability.current == 0:
                ctx.warning(f"{item.name} is now broken and needs repair.")

        props = item.properties
        if params.get("useCharge") and props and not consumed:
            if props.get("charges"):
                props["charges"] = max(0, number(props["charges"]) - 1)
                if props["charges"] == 0:
                    ctx.warning(f"{item.name} is depleted and needs recharging.")
            elif props.get("powerLevel"):
                drain = number(params.get("powerAmount"), 0) or 10
                props["powerLevel"] = max(0, number(props["powerLevel"]) - drain)
                if props["powerLevel"] == 0:
                    ctx.warning(f"{item.name} is out of power and needs recharging.")

        if item.effects and params.get("target"):
            for effect in item.effects:
                if effect.target != params.get("targetType"):
                    continue
                if effect.type == "heal" and params.get("crewId"):
                    ctx.emit("crew", "HEAL_CREW", {"crewId": params["crewId"], "amount": effect.value})
                elif effect.type == "damage" and params.get("targetId"):
                    ctx.emit("ship", "TAKE_DAMAGE", {"system": params["targetId"], "amount": effect.value})
                elif effect.type == "boost" and params.get("crewId"):
                    ctx.emit("crew", "BOOST_MORALE", {"crewId": params["crewId"], "amount": effect.value})

        if item.id == "tricorder" and params.get("scanTarget"):
            results = params.get("scanResults") or "No anomalies detected."
            ctx.emit("mission", "ADD_LOG_ENTRY", {
                "text": f"Tricorder scan of {params['scanTarget']}: {results}",
            })
            if params.get("discoveryId"):
                ctx.emit("registry", "DISCOVER_ENTRY", {"entryId": params["discoveryId"]})
        elif item.id == "class-3-probe" and params.get("launchCoordinates"):
            ctx.emit("mission", "ADD_LOG_ENTRY", {
                "text": f"Class 3 probe launched to coordinates {params['launchCoordinates']}.",
            })
            if params.get("objectiveId"):
                ctx.emit("mission", "COMPLETE_OBJECTIVE", {"objectiveId": params["objectiveId"]})

        if ctx.alert is None:
            ctx.success(f"Used {item.name} successfully.")

    def _repair_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = state.find(params.get("itemId"))
        if item is None:
            return
        if item.durability is None:
            ctx.warning(f"{item.name} does not have durability to repair.")
            return

        durability = item.durability
        amount = number(params.get("amount"), 0) or durability.max * 0.5
        durability.current = min(durability.max, durability.current + amount)
        if durability.current == durability.max:
            ctx.success(f"{item.name} fully repaired.")
        else:
            ctx.info(f"{item.name} partially repaired ({round(durability.current / durability.max * 100)}%).")

    def _recharge_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item = state.find(params.get("itemId"))
        if item is None:
            return

        props = item.properties or {}
        if "charges" in props:
            max_charges = number(params.get("maxCharges"), 0) or 20
            props["charges"] = max_charges
            ctx.success(f"{item.name} recharged to {max_charges:g} charges.")
        elif "powerLevel" in props:
            props["powerLevel"] = 100
            ctx.success(f"{item.name} power level restored to 100%.")
        else:
            ctx.warning(f"{item.name} cannot be recharged.")

    def _replicate_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        item_id = params.get("itemId")
        if not item_id:
            return

        if state.replicator_energy < MIN_REPLICATOR_ENERGY:
            ctx.warning("Insufficient replicator energy. Please wait for recharge.")
            return
        if item_id not in state.replicator_templates:
            ctx.warning("Item template not found in replicator database.")
            return

        template = state.find(item_id)
        if template is None:
            ctx.warning("Item template exists but no reference item found.")
            return

        quantity = int(number(params.get("quantity"), 0)) or 1
        if quantity < 0:
            return
        cost = quantity * REPLICATION_COST.get(template.rarity, DEFAULT_REPLICATION_COST)
        if state.replicator_energy < cost:
            ctx.warning(
                f"Insufficient replicator energy. Required: {cost}, "
                f"Available: {state.replicator_energy:g}."
            )
            return

        _add_stock(state, template.model_copy(update={
            "quantity": quantity,
            "location": params.get("location") or "replicator output",
            "assigned_to": None,
        }, deep=True))
        state.replicator_energy -= cost
        ctx.success(f"Successfully replicated {quantity} {template.name}(s).")

    def _create_location(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        location_id, name = key(params.get("locationId")), params.get("name")
        capacity = int(number(params.get("capacity"), 0))
        if not location_id or not name or capacity <= 0:
            return

        if location_id in state.locations:
            ctx.warning(f"Location {name} already exists.")
            return

        try:
            level = SecurityLevel(params.get("securityLevel") or SecurityLevel.LOW)
        except ValueError:
            level = SecurityLevel.LOW
        access = params.get("accessibleTo")
        state.locations[location_id] = StorageLocation(
            name=name,
            capacity=capacity,
            security_level=level,
            accessible_to=[str(a) for a in access] if isinstance(access, list) else None,
        )
        ctx.success(f"Created new storage location: {name}.")

    def _analyze_item(self, state: InventoryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        if not params.get("itemId"):
            return
        item = state.find(params["itemId"])
        if item is None:
            ctx.warning("Item not found in inventory.")
            return

        results = params.get("analysisResults") or "Standard Starfleet issue."
        ctx.emit("mission", "ADD_LOG_ENTRY", {"text": f"Item analysis of {item.name}: {results}"})
        if params.get("discoveryId"):
            ctx.emit("registry", "DISCOVER_ENTRY", {"entryId": params["discoveryId"]})
        ctx.info(f"Analysis of {item.name} complete.")
