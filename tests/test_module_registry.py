"""Tests for the module registry."""

from starbridge.modules.registry import ModuleRegistry, create_default_registry
from starbridge.modules.ship import ShipModule


class TestRegistry:
    """Test registering and initializing modules."""

    def test_default_modules(self, registry):
        """The default registry carries all five modules."""
        assert set(registry.get_available_modules()) == {"ship", "crew", "inventory", "mission", "registry"}
        assert "ship" in registry
        assert "holodeck" not in registry

    def test_available_modules_is_a_copy(self, registry):
        """Mutating the returned mapping leaves the registry alone."""
        modules = registry.get_available_modules()
        modules.pop("ship")
        assert registry.get_module("ship") is not None

    def test_initialize_only_requested(self, registry):
        """Only the listed modules are initialized and returned."""
        states = registry.initialize_modules(["crew"])
        assert list(states) == ["crew"]
        assert registry.get_module("ship").get_state() is None

        states = registry.initialize_modules(["crew", "ship"])
        assert set(states) == {"crew", "ship"}

    def test_initialize_applies_config(self, registry):
        """Each module gets its own config entry."""
        states = registry.initialize_modules(
            ["ship"],
            {"ship": {"name": "USS Defiant", "class": "Defiant"}, "crew": {"ignored": True}},
        )
        assert states["ship"]["name"] == "USS Defiant"
        assert states["ship"]["class"] == "Defiant"

    def test_reinitialize_resets(self, registry):
        """Initializing again discards earlier changes."""
        registry.initialize_modules(["ship"])
        registry.get_module("ship").handle_action("SET_WARP", {"warp": 5})
        assert registry.get_module("ship").get_state()["systems"]["warpDrive"]["currentWarp"] == 5

        states = registry.initialize_modules(["ship"])
        assert states["ship"]["systems"]["warpDrive"]["currentWarp"] == 0

    def test_unknown_ids_skipped(self, registry):
        """Unknown module ids do not raise."""
        assert registry.initialize_modules(["holodeck", "mission"]).keys() == {"mission"}
        assert registry.initialize_modules(None) == {}

    def test_restore(self, registry):
        """Persisted states are pushed back into their modules."""
        state = registry.initialize_modules(["ship"])["ship"]
        state["name"] = "USS Voyager"
        registry.restore_modules({"ship": state, "holodeck": {"program": 3}, "crew": None})
        assert registry.get_module("ship").get_state()["name"] == "USS Voyager"
        assert registry.get_module("crew").get_state() is None

    def test_live_modules(self, registry):
        """live_modules returns the listed modules that exist."""
        live = registry.live_modules(["ship", "holodeck", "crew"])
        assert list(live) == ["ship", "crew"]
        assert live["ship"] is registry.get_module("ship")

    def test_register_replaces(self, rng):
        """Registering the same id twice keeps the latest module."""
        first, second = ShipModule(rng=rng), ShipModule(rng=rng)
        registry = ModuleRegistry([first])
        registry.register(second)
        assert registry.get_module("ship") is second

    def test_registries_are_independent(self):
        """Each default registry builds its own module instances."""
        a, b = create_default_registry(), create_default_registry()
        a.initialize_modules(["mission"])
        assert b.get_module("mission").get_state() is None
