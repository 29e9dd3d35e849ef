"""Tests for the Federation database module."""

import pytest

from starbridge.modules import RegistryModule
from starbridge.state import AlertType


@pytest.fixture
def database():
    module = RegistryModule()
    module.initialize()
    return module


class TestEntries:
    """Test adding, discovering and updating entries."""

    def test_defaults(self, database):
        """Six well-known entries ship with the database."""
        state = database.get_state()
        assert [e["id"] for e in state["entries"]] == [
            "human", "vulcan", "klingon", "romulan", "enterprise-d", "warp-drive",
        ]
        assert database.check_condition("HAS_ENTRIES_IN_CATEGORY", {"category": "species"})
        assert not database.check_condition("HAS_ENTRIES_IN_CATEGORY", {"category": "artifact"})

    def test_add_entry(self, database):
        """New entries are announced."""
        result = database.handle_action("ADD_ENTRY", {"entry": {
            "id": "uss-hera", "name": "USS Hera", "category": "starship",
        }})
        assert result.alert.type == AlertType.INFO
        assert result.alert.message == "New database entry: USS Hera"
        assert database.check_condition("ENTRY_EXISTS", {"entryId": "uss-hera"})
        assert not database.check_condition("ENTRY_DISCOVERED", {"entryId": "uss-hera"})

    def test_add_invalid_entry(self, database):
        """Entries with an unknown category are rejected."""
        result = database.handle_action("ADD_ENTRY", {"entry": {
            "id": "tribble", "name": "Tribble", "category": "pest",
        }})
        assert result.alert.type == AlertType.WARNING
        assert not database.check_condition("ENTRY_EXISTS", {"entryId": "tribble"})

    def test_discover_only_once(self, database):
        """Discovering is announced the first time only."""
        database.handle_action("ADD_ENTRY", {"entry": {
            "id": "borg", "name": "Borg", "category": "species",
        }})
        first = database.handle_action("DISCOVER_ENTRY", {"entryId": "borg"})
        assert first.alert.type == AlertType.SUCCESS
        second = database.handle_action("DISCOVER_ENTRY", {"entryId": "borg"})
        assert second.alert is None

    def test_access_entry(self, database):
        """Access records the last entry read."""
        result = database.handle_action("ACCESS_ENTRY", {"entryId": "vulcan"})
        assert result.state["lastAccessed"] == "vulcan"

    def test_update_entry(self, database):
        """Updates overlay fields on an existing entry."""
        result = database.handle_action("UPDATE_ENTRY", {
            "entryId": "romulan", "updates": {"classified": True, "details": {"homeworld": "Romulus"}},
        })
        romulan = next(e for e in result.state["entries"] if e["id"] == "romulan")
        assert romulan["classified"] is True
        assert romulan["details"] == {"homeworld": "Romulus"}
        assert database.check_condition("ENTRY_CLASSIFIED", {"entryId": "romulan"})

    def test_update_missing_entry(self, database):
        """Updating an unknown entry does not create it."""
        database.handle_action("UPDATE_ENTRY", {"entryId": "gorn", "updates": {"name": "Gorn"}})
        assert not database.check_condition("ENTRY_EXISTS", {"entryId": "gorn"})

    def test_declassify(self, database):
        """Declassifying clears the flag."""
        database.handle_action("UPDATE_ENTRY", {"entryId": "warp-drive", "updates": {"classified": True}})
        result = database.handle_action("DECLASSIFY_ENTRY", {"entryId": "warp-drive"})
        assert result.alert.message == "Warp Drive has been declassified"
        assert not database.check_condition("ENTRY_CLASSIFIED", {"entryId": "warp-drive"})
