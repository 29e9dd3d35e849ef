"""Federation database: species, starships, technology and other lore entries."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

from pydantic import Field, ValidationError

from ..state.schema import WireModel
from .base import ActionContext, as_params, dump_state, merge_config, run_action, run_check

logger = logging.getLogger(__name__)


class EntryCategory(str, Enum):
    SPECIES = "species"
    STARSHIP = "starship"
    PLANET = "planet"
    TECHNOLOGY = "technology"
    ARTIFACT = "artifact"
    PERSON = "person"
    EVENT = "event"


class RegistryEntry(WireModel):
    id: str
    name: str
    category: EntryCategory
    description: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    image_url: str | None = None
    discovered: bool = False
    classified: bool = False


def default_entries() -> list[RegistryEntry]:
    species = EntryCategory.SPECIES
    return [
        RegistryEntry(
            id="human", name="Human", category=species, discovered=True,
            description="Native to Earth, humans are founding members of the United Federation of Planets.",
            details={"homeworld": "Earth", "quadrant": "Alpha", "biology": "Carbon-based humanoid",
                     "lifespan": "120 years", "government": "United Earth Government"},
        ),
        RegistryEntry(
            id="vulcan", name="Vulcan", category=species, discovered=True,
            description="Founding members of the Federation known for their logical thinking "
                        "and suppression of emotions.",
            details={"homeworld": "Vulcan", "quadrant": "Alpha",
                     "biology": "Carbon-based humanoid with copper-based blood",
                     "lifespan": "200+ years", "government": "Vulcan High Command"},
        ),
        RegistryEntry(
            id="klingon", name="Klingon", category=species, discovered=True,
            description="Warrior species with a strong sense of honor and tradition.",
            details={"homeworld": "Qo'noS", "quadrant": "Beta",
                     "biology": "Carbon-based humanoid with redundant organ systems",
                     "lifespan": "150 years", "government": "Klingon High Council"},
        ),
        RegistryEntry(
            id="romulan", name="Romulan", category=species, discovered=True,
            description="Secretive and cunning species that split from Vulcan society "
                        "thousands of years ago.",
            details={"homeworld": "Romulus", "quadrant": "Beta",
                     "biology": "Carbon-based humanoid with copper-based blood",
                     "lifespan": "200+ years", "government": "Romulan Star Empire"},
        ),
        RegistryEntry(
            id="enterprise-d", name="USS Enterprise NCC-1701-D", category=EntryCategory.STARSHIP,
            discovered=True,
            description="Galaxy-class starship and flagship of the Federation.",
            details={"class": "Galaxy", "registry": "NCC-1701-D", "crew": "1,014",
                     "launched": "2363", "status": "Active", "captain": "Jean-Luc Picard"},
        ),
        RegistryEntry(
            id="warp-drive", name="Warp Drive", category=EntryCategory.TECHNOLOGY, discovered=True,
            description="Propulsion system that allows faster-than-light travel.",
            details={"inventor": "Zefram Cochrane", "year": "2063",
                     "principle": "Creates a subspace bubble that distorts spacetime",
                     "maxSpeed": "Warp 9.975 (Federation standard)"},
        ),
    ]


class RegistryState(WireModel):
    entries: list[RegistryEntry] = Field(default_factory=default_entries)
    last_accessed: str | None = None

    def find(self, entry_id: str | None) -> RegistryEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)


# ─── Conditions ─────────────────────────────────────────────

def _entry_discovered(state: RegistryState, params: dict) -> bool:
    entry = state.find(params.get("entryId"))
    return entry is not None and entry.discovered


def _entry_exists(state: RegistryState, params: dict) -> bool:
    return state.find(params.get("entryId")) is not None


def _entry_classified(state: RegistryState, params: dict) -> bool:
    entry = state.find(params.get("entryId"))
    return entry is not None and entry.classified


def _has_entries_in_category(state: RegistryState, params: dict) -> bool:
    category = params.get("category")
    return bool(category) and any(e.category == category and e.discovered for e in state.entries)


CONDITIONS = {
    "ENTRY_DISCOVERED": _entry_discovered,
    "ENTRY_EXISTS": _entry_exists,
    "ENTRY_CLASSIFIED": _entry_classified,
    "HAS_ENTRIES_IN_CATEGORY": _has_entries_in_category,
}


# ─── Module ─────────────────────────────────────────────────

class RegistryModule:
    id = "registry"
    name = "Federation Database"
    description = "Access to the Federation database of species, technology, and more"

    def __init__(self):
        self._state: RegistryState | None = None
        self._actions: dict[str, Callable[[RegistryState, Any, ActionContext], None]] = {
            "ADD_ENTRY": self._add_entry,
            "DISCOVER_ENTRY": self._discover_entry,
            "ACCESS_ENTRY": self._access_entry,
            "UPDATE_ENTRY": self._update_entry,
            "DECLASSIFY_ENTRY": self._declassify_entry,
        }

    def initialize(self, config: dict | None = None) -> dict[str, Any]:
        self._state = merge_config(RegistryState, config)
        return dump_state(self._state)

    def get_state(self) -> dict[str, Any] | None:
        return dump_state(self._state)

    def set_state(self, state: dict[str, Any]) -> None:
        self._state = RegistryState.model_validate(state)

    def handle_action(self, action: str, payload: Any = None):
        handler = self._actions.get(action)
        if self._state is None or handler is None:
            return None
        self._state, result = run_action(self._state, handler, payload)
        return result

    def check_condition(self, condition: str, params: Any = None) -> bool:
        return run_check(self._state, CONDITIONS, condition, params)

    @staticmethod
    def _merge(state: RegistryState, entry_id: str, fields: dict, ctx: ActionContext) -> RegistryEntry | None:
        """Overlay fields on an entry (or create it); None if the result is invalid."""
        existing = state.find(entry_id)
        base = existing.model_dump(by_alias=True) if existing else {}
        try:
            merged = RegistryEntry.model_validate({**base, **fields, "id": entry_id})
        except ValidationError as e:
            logger.debug("Rejected registry entry %s: %s", entry_id, e)
            ctx.warning(f"Database entry {entry_id} could not be recorded.")
            return None
        if existing is None:
            state.entries.append(merged)
        else:
            state.entries[state.entries.index(existing)] = merged
        return merged

    def _add_entry(self, state: RegistryState, payload: Any, ctx: ActionContext) -> None:
        data = as_params(payload).get("entry")
        if not isinstance(data, dict) or not data.get("id"):
            return
        is_new = state.find(data["id"]) is None
        entry = self._merge(state, data["id"], data, ctx)
        if entry is not None:
            ctx.info(f"{'New' if is_new else 'Updated'} database entry: {entry.name}")

    def _discover_entry(self, state: RegistryState, payload: Any, ctx: ActionContext) -> None:
        entry = state.find(as_params(payload).get("entryId"))
        if entry is None or entry.discovered:
            return
        entry.discovered = True
        ctx.success(f"Federation database updated: {entry.name}")

    def _access_entry(self, state: RegistryState, payload: Any, ctx: ActionContext) -> None:
        entry_id = as_params(payload).get("entryId")
        if entry_id:
            state.last_accessed = entry_id

    def _update_entry(self, state: RegistryState, payload: Any, ctx: ActionContext) -> None:
        params = as_params(payload)
        updates = params.get("updates")
        if state.find(params.get("entryId")) is None or not isinstance(updates, dict):
            return
        self._merge(state, params["entryId"], updates, ctx)

    def _declassify_entry(self, state: RegistryState, payload: Any, ctx: ActionContext) -> None:
        entry = state.find(as_params(payload).get("entryId"))
        if entry is None or not entry.classified:
            return
        entry.classified = False
        ctx.info(f"{entry.name} has been declassified")
