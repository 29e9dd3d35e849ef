"""Tests for the inventory module."""

import pytest

from starbridge.modules import InventoryModule
from starbridge.state import AlertType


@pytest.fixture
def inventory():
    module = InventoryModule()
    module.initialize()
    return module


def stacks(state: dict, item_id: str) -> list[dict]:
    return [i for i in state["items"] if i["id"] == item_id]


class TestInitialize:
    """Test default stock and derived totals."""

    def test_default_totals(self, inventory):
        """Totals are computed from the default stacks."""
        state = inventory.get_state()
        assert len(state["items"]) == 8
        assert state["totalItems"] == 224
        assert state["totalWeight"] == 1916.0
        assert state["capacity"] == 1000
        assert len(state["locations"]) == 9
        assert state["replicatorEnergy"] == 100

    def test_config_items_are_retotalled(self):
        """Totals follow configured items, not the defaults."""
        module = InventoryModule()
        state = module.initialize({"items": [
            {"id": "isolinear-chip", "name": "Isolinear Chip", "quantity": 4, "weight": 0.25},
        ]})
        assert state["totalItems"] == 4
        assert state["totalWeight"] == 1.0


class TestStock:
    """Test adding and removing stock."""

    def test_add_known_item_merges(self, inventory):
        """Adding more of a known item grows its stack."""
        result = inventory.handle_action("ADD_ITEM", {"item": {"id": "tricorder", "quantity": 5}})
        assert [s["quantity"] for s in stacks(result.state, "tricorder")] == [20]
        assert result.state["totalItems"] == 229
        assert result.state["locations"]["science lab"]["currentItems"] == 20
        assert result.alert.type == AlertType.SUCCESS

    def test_add_new_item(self, inventory):
        """Unknown ids become new stacks."""
        result = inventory.handle_action("ADD_ITEM", {"item": {
            "id": "hypospray", "name": "Hypospray", "quantity": 2, "location": "sickbay",
        }})
        assert stacks(result.state, "hypospray")[0]["quantity"] == 2
        assert result.state["locations"]["sickbay"]["currentItems"] == 12
        assert result.alert.message == "Added new item: Hypospray to inventory."

    def test_add_negative_quantity_is_refused(self, inventory):
        """Negative additions change nothing."""
        result = inventory.handle_action("ADD_ITEM", {"item": {"id": "tricorder", "quantity": -3}})
        assert result.alert.type == AlertType.WARNING
        assert result.state["totalItems"] == 224

    def test_remove_item(self, inventory):
        """Removing stock lowers the stack and its location count."""
        result = inventory.handle_action("REMOVE_ITEM", {"itemId": "class-3-probe", "quantity": 1})
        assert stacks(result.state, "class-3-probe")[0]["quantity"] == 11
        assert result.state["locations"]["shuttle bay"]["currentItems"] == 11
        assert result.state["totalWeight"] == 1766.0

    def test_remove_more_than_held(self, inventory):
        """Over-removal warns and leaves stock alone."""
        result = inventory.handle_action("REMOVE_ITEM", {"itemId": "dilithium-crystal", "quantity": 4})
        assert result.alert.type == AlertType.WARNING
        assert stacks(result.state, "dilithium-crystal")[0]["quantity"] == 3

    def test_remove_everything_drops_the_stack(self, inventory):
        """An emptied stack disappears."""
        result = inventory.handle_action("REMOVE_ITEM", {"itemId": "dilithium-crystal", "quantity": 3})
        assert stacks(result.state, "dilithium-crystal") == []
        assert not inventory.check_condition("HAS_ITEM", {"itemId": "dilithium-crystal"})


class TestAssignment:
    """Test handing equipment to crew."""

    def test_assign_splits_stack(self, inventory):
        """Part of a stack moves to personal equipment."""
        result = inventory.handle_action("ASSIGN_ITEM", {"itemId": "medical-kit", "crewId": "crusher", "quantity": 1})
        kits = stacks(result.state, "medical-kit")
        assert [(k["quantity"], k.get("assignedTo")) for k in kits] == [(9, None), (1, "crusher")]
        assert kits[1]["location"] == "personal equipment"
        assert result.state["locations"]["sickbay"]["currentItems"] == 9
        assert result.state["locations"]["personal equipment"]["currentItems"] == 1
        effect = result.cross_module_effects[0]
        assert (effect.module, effect.action) == ("crew", "NOTIFY_EQUIPMENT_ASSIGNMENT")
        assert inventory.check_condition("ITEM_ASSIGNED", {"itemId": "medical-kit", "crewId": "crusher"})

    def test_has_item_counts_every_stack(self, inventory):
        """HAS_ITEM sums assigned and unassigned stock."""
        inventory.handle_action("ASSIGN_ITEM", {"itemId": "medical-kit", "crewId": "crusher", "quantity": 4})
        assert inventory.check_condition("HAS_ITEM", {"itemId": "medical-kit", "quantity": 10})
        assert not inventory.check_condition("HAS_ITEM", {"itemId": "medical-kit", "quantity": 11})

    def test_unassign(self, inventory):
        """Returned equipment goes to the quartermaster by default."""
        inventory.handle_action("ASSIGN_ITEM", {"itemId": "tricorder", "crewId": "data", "quantity": 2})
        result = inventory.handle_action("UNASSIGN_ITEM", {"itemId": "tricorder", "crewId": "data"})
        returned = [s for s in stacks(result.state, "tricorder") if s["location"] == "quartermaster"]
        assert returned[0]["quantity"] == 2
        assert result.state["locations"]["personal equipment"]["currentItems"] == 0
        assert not inventory.check_condition("ITEM_ASSIGNED", {"itemId": "tricorder", "crewId": "data"})


class TestMovement:
    """Test moving stock between locations."""

    def test_move_part_of_stack(self, inventory):
        """Moving some units leaves the rest behind."""
        result = inventory.handle_action("MOVE_ITEM", {"itemId": "tricorder", "location": "shuttle bay", "quantity": 5})
        by_location = {s["location"]: s["quantity"] for s in stacks(result.state, "tricorder")}
        assert by_location == {"science lab": 10, "shuttle bay": 5}
        assert inventory.check_condition("ITEM_IN_LOCATION", {"itemId": "tricorder", "location": "shuttle bay"})

    def test_move_to_full_location(self, inventory):
        """A location without room refuses the move."""
        result = inventory.handle_action("MOVE_ITEM", {"itemId": "communicator", "location": "transporter room"})
        assert result.alert.type == AlertType.WARNING
        assert "Only 41 slots available" in result.alert.message

    def test_move_to_unknown_location(self, inventory):
        """Unknown destinations are refused."""
        result = inventory.handle_action("MOVE_ITEM", {"itemId": "tricorder", "location": "holodeck 3"})
        assert result.alert.type == AlertType.WARNING

    def test_secure_location_blocks_unauthorized_crew(self, inventory):
        """High-security storage rejects other departments."""
        result = inventory.handle_action("MOVE_ITEM", {
            "itemId": "tricorder", "location": "weapons locker", "quantity": 1,
            "crewId": "troi", "department": "medical",
        })
        assert result.alert.type == AlertType.DANGER
        assert [(e.module, e.action) for e in result.cross_module_effects] == [("mission", "ADD_LOG_ENTRY")]


class TestUse:
    """Test using, repairing and recharging equipment."""

    def test_use_consumable(self, inventory):
        """Consumables are used up."""
        result = inventory.handle_action("USE_ITEM", {"itemId": "emergency-ration"})
        assert stacks(result.state, "emergency-ration")[0]["quantity"] == 99
        assert result.alert.type == AlertType.SUCCESS

    def test_use_wears_durability(self, inventory):
        """Durable items lose 5 per use."""
        result = inventory.handle_action("USE_ITEM", {"itemId": "tricorder"})
        assert stacks(result.state, "tricorder")[0]["durability"]["current"] == 95

    def test_unusable_item(self, inventory):
        """Dilithium cannot be used directly."""
        result = inventory.handle_action("USE_ITEM", {"itemId": "dilithium-crystal"})
        assert result.alert.type == AlertType.WARNING

    def test_tricorder_scan_logs_and_discovers(self, inventory):
        """A tricorder scan reports to the mission log and the registry."""
        result = inventory.handle_action("USE_ITEM", {
            "itemId": "tricorder", "scanTarget": "escape pod", "discoveryId": "romulan",
        })
        assert [(e.module, e.action) for e in result.cross_module_effects] == [
            ("mission", "ADD_LOG_ENTRY"),
            ("registry", "DISCOVER_ENTRY"),
        ]

    def test_phaser_power_and_recharge(self, inventory):
        """Charge use drains power; recharge restores it."""
        used = inventory.handle_action("USE_ITEM", {"itemId": "phaser-type2", "useCharge": True, "powerAmount": 30})
        assert stacks(used.state, "phaser-type2")[0]["properties"]["powerLevel"] == 70
        assert not inventory.check_condition("ITEM_USABLE", {"itemId": "phaser-type2", "checkPower": True, "minPower": 80})

        recharged = inventory.handle_action("RECHARGE_ITEM", {"itemId": "phaser-type2"})
        assert stacks(recharged.state, "phaser-type2")[0]["properties"]["powerLevel"] == 100

    def test_repair(self, inventory):
        """Repair restores durability up to the max."""
        inventory.handle_action("USE_ITEM", {"itemId": "tricorder", "durabilityLoss": 60})
        result = inventory.handle_action("REPAIR_ITEM", {"itemId": "tricorder", "amount": 20})
        assert stacks(result.state, "tricorder")[0]["durability"]["current"] == 60
        assert result.alert.type == AlertType.INFO

        result = inventory.handle_action("REPAIR_ITEM", {"itemId": "tricorder"})
        assert stacks(result.state, "tricorder")[0]["durability"]["current"] == 100
        assert result.alert.type == AlertType.SUCCESS


class TestReplicator:
    """Test replication and its energy cost."""

    def test_replicate(self, inventory):
        """Replicated items land in replicator output and cost energy."""
        result = inventory.handle_action("REPLICATE_ITEM", {"itemId": "emergency-ration", "quantity": 3})
        output = [s for s in stacks(result.state, "emergency-ration") if s["location"] == "replicator output"]
        assert output[0]["quantity"] == 3
        assert result.state["replicatorEnergy"] == 70
        assert result.state["totalItems"] == 227

    def test_uncommon_items_cost_more(self):
        """Uncommon templates cost 15 each."""
        module = InventoryModule()
        module.initialize({"replicatorTemplates": ["class-3-probe"]})
        result = module.handle_action("REPLICATE_ITEM", {"itemId": "class-3-probe", "quantity": 2})
        assert result.state["replicatorEnergy"] == 70

    def test_not_enough_energy(self, inventory):
        """Replication beyond the energy budget is refused."""
        result = inventory.handle_action("REPLICATE_ITEM", {"itemId": "communicator", "quantity": 11})
        assert result.alert.type == AlertType.WARNING
        assert result.state["replicatorEnergy"] == 100

    def test_unknown_template(self, inventory):
        """Only templated items can be replicated."""
        assert not inventory.check_condition("CAN_REPLICATE", {"itemId": "dilithium-crystal"})
        result = inventory.handle_action("REPLICATE_ITEM", {"itemId": "dilithium-crystal"})
        assert result.alert.type == AlertType.WARNING
        assert inventory.check_condition("CAN_REPLICATE", {"itemId": "water"})


class TestLocations:
    """Test storage locations and access."""

    def test_create_location(self, inventory):
        """New locations start empty."""
        result = inventory.handle_action("CREATE_LOCATION", {
            "locationId": "cargo bay 2", "name": "Cargo Bay 2", "capacity": 400, "securityLevel": "medium",
            "accessibleTo": ["operations"],
        })
        assert result.state["locations"]["cargo bay 2"]["currentItems"] == 0
        assert inventory.check_condition("LOCATION_HAS_SPACE", {"location": "cargo bay 2", "quantity": 400})
        assert not inventory.check_condition("HAS_ACCESS_TO_LOCATION", {"location": "cargo bay 2", "department": "medical"})

    def test_duplicate_location(self, inventory):
        """Existing ids are refused."""
        result = inventory.handle_action("CREATE_LOCATION", {"locationId": "sickbay", "name": "Sickbay", "capacity": 5})
        assert result.alert.type == AlertType.WARNING

    def test_access(self, inventory):
        """Low security is open; high security checks the list."""
        assert inventory.check_condition("HAS_ACCESS_TO_LOCATION", {"location": "cargo bay", "department": "medical"})
        assert inventory.check_condition("HAS_ACCESS_TO_LOCATION", {"location": "weapons locker", "department": "security"})
        assert not inventory.check_condition("HAS_ACCESS_TO_LOCATION", {"location": "weapons locker", "department": "medical"})

    def test_analyze(self, inventory):
        """Analysis writes a log entry."""
        result = inventory.handle_action("ANALYZE_ITEM", {"itemId": "dilithium-crystal"})
        assert result.cross_module_effects[0].payload["text"].startswith("Item analysis of Dilithium Crystal")
        assert result.alert.type == AlertType.INFO

    def test_non_string_location_ids(self, inventory):
        """List ids are not locations, so nothing is created and nothing matches."""
        before = inventory.get_state()
        result = inventory.handle_action("CREATE_LOCATION", {"locationId": ["cargo"], "name": "Cargo", "capacity": 5})
        assert result.state == before
        assert not inventory.check_condition("LOCATION_HAS_SPACE", {"location": ["cargo bay"]})
        assert not inventory.check_condition("HAS_ACCESS_TO_LOCATION", {"location": {"id": "cargo bay"}, "department": "medical"})
