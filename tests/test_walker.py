"""Tests for the scene graph walker."""

import pytest

from conftest import RecordingModule, choice, make_episode, scene
from starbridge.engine.walker import SceneGraphWalker
from starbridge.errors import InvalidChoiceError, SceneNotFoundError
from starbridge.modules import ModuleRegistry
from starbridge.state import AlertType, EventType, GameState


class ExplodingModule(RecordingModule):
    """Recording module whose EXPLODE action raises."""

    def handle_action(self, action, payload=None):
        if action == "EXPLODE":
            raise RuntimeError("warp core breach")
        return super().handle_action(action, payload)


class FailingStore:
    """Store whose writes always fail."""

    def save_game_state(self, episode_id, scene_id, game_state):
        raise OSError("disk full")

    def get_saved_state(self, episode_id):
        return None


@pytest.fixture
def walker(linear_episode, registry, memory_store, bus):
    w = SceneGraphWalker(linear_episode, registry, memory_store, event_bus=bus)
    w.start()
    return w


@pytest.fixture
def module_walker(module_episode, registry, memory_store, bus):
    w = SceneGraphWalker(module_episode, registry, memory_store, event_bus=bus)
    w.start()
    return w


class TestStart:
    """Test entering an episode."""

    def test_starts_at_start(self, walker):
        """A fresh session shows the start scene with empty state."""
        assert walker.current_scene_id == "start"
        assert walker.game_state == GameState()
        assert not walker.is_ending()

    def test_start_at_named_scene(self, linear_episode, registry):
        """A scene id can be given explicitly."""
        w = SceneGraphWalker(linear_episode, registry)
        assert w.start(scene_id="middle").id == "middle"

    def test_start_at_missing_scene(self, linear_episode, registry):
        """Starting at a scene that does not exist raises."""
        w = SceneGraphWalker(linear_episode, registry)
        with pytest.raises(SceneNotFoundError):
            w.start(scene_id="bridge")

    def test_required_modules_only(self, module_walker):
        """Only the modules the episode lists are live and stored."""
        assert set(module_walker.live_modules) == {"ship", "mission"}
        assert set(module_walker.game_state.module_states) == {"ship", "mission"}
        assert module_walker.game_state.module_states["ship"]["name"] == "USS Testing"
        mission = module_walker.game_state.module_states["mission"]["currentMission"]
        assert mission["id"] == "survey"

    def test_given_state_is_copied(self, linear_episode, registry):
        """The caller's GameState is not shared with the session."""
        state = GameState(flags={"visited": True})
        w = SceneGraphWalker(linear_episode, registry)
        w.start(game_state=state)
        w.select_choice(0)
        assert state.flags == {"visited": True}
        assert w.game_state.flags == {"visited": True, "leftStart": True}

    def test_given_module_state_is_restored(self, module_episode, registry):
        """Module states in the given state win over module config."""
        first = SceneGraphWalker(module_episode, registry)
        first.start()
        first.dispatch_module_action("ship", "TAKE_DAMAGE", {"system": "hull", "amount": 10})
        carried = first.game_state

        second = SceneGraphWalker(module_episode, registry)
        second.start(game_state=carried)
        assert second.game_state.module_states["ship"]["damage"]["hull"] == 90
        assert registry.get_module("ship").get_state()["damage"]["hull"] == 90


class TestChoices:
    """Test selecting choices."""

    def test_flags_are_merged(self, walker):
        """setFlags adds to existing flags."""
        walker.game_state.flags["earlier"] = False
        outcome = walker.select_choice(walker.get_available_choices()[0])
        assert outcome.scene.id == "middle"
        assert walker.game_state.flags == {"earlier": False, "leftStart": True}

    def test_select_by_index(self, walker):
        """An int picks from the available choices."""
        walker.select_choice(0)
        outcome = walker.select_choice(0)
        assert outcome.is_ending
        assert walker.is_ending()
        assert walker.game_state.variables == {"score": 3}
        assert walker.get_available_choices() == []

    def test_index_out_of_range(self, walker):
        """A position past the available choices is invalid."""
        with pytest.raises(InvalidChoiceError):
            walker.select_choice(1)

    def test_choice_from_another_scene(self, walker, linear_episode):
        """Choices that are not on the current scene are refused."""
        elsewhere = linear_episode.scenes["middle"].choices[0]
        with pytest.raises(InvalidChoiceError):
            walker.select_choice(elsewhere)
        assert walker.current_scene_id == "start"

    def test_dangling_next_scene_changes_nothing(self, registry, memory_store, bus):
        """A choice pointing nowhere raises before any state changes."""
        episode = make_episode({
            "start": scene("start", choice("Into the void", "nowhere", setFlags={"jumped": True})),
        })
        w = SceneGraphWalker(episode, registry, memory_store, event_bus=bus)
        w.start()
        with pytest.raises(SceneNotFoundError) as excinfo:
            w.select_choice(0)
        assert excinfo.value.scene_id == "nowhere"
        assert w.current_scene_id == "start"
        assert w.game_state.flags == {}
        assert memory_store.get_saved_state(episode.id) is None

    def test_events(self, walker, bus):
        """Choosing publishes the choice and the new scene."""
        walker.select_choice(0)
        assert bus.get_history(EventType.CHOICE_SELECTED)[0].data["text"] == "Go on"
        scenes = [e.data["scene_id"] for e in bus.get_history(EventType.SCENE_CHANGED)]
        assert scenes == ["start", "middle"]

    def test_all_choices_gated_off_is_not_an_ending(self, registry, bus):
        """A scene whose every choice is hidden offers nothing but is still not an ending."""
        episode = make_episode({
            "start": scene(
                "start",
                choice("Open the vault", "end", condition={"flags": {"hasKey": True}}),
                choice("Bribe the guard", "end", condition={"variables": {"latinum": {"gte": 5}}}),
            ),
            "end": scene("end"),
        })
        w = SceneGraphWalker(episode, registry, event_bus=bus)
        w.start()
        assert w.get_available_choices() == []
        assert not w.is_ending()
        with pytest.raises(InvalidChoiceError):
            w.select_choice(0)


class TestModules:
    """Test module actions and gating through the walker."""

    def test_gated_choice_hidden_until_condition_holds(self, module_walker):
        """A module condition controls whether a choice is offered."""
        assert [c.text for c in module_walker.get_available_choices()] == ["Red alert", "Scan"]

        result = module_walker.dispatch_module_action("ship", "SET_ALERT_STATUS", {"status": "red"})
        assert result.last_alert.type == AlertType.DANGER
        assert [c.text for c in module_walker.get_available_choices()] == ["Red alert", "Scan", "Only at red alert"]

    def test_gated_choice_cannot_be_forced(self, module_walker, module_episode):
        """Selecting a gated-off choice directly is refused."""
        gated = module_episode.scenes["start"].choices[2]
        with pytest.raises(InvalidChoiceError):
            module_walker.select_choice(gated)

    def test_module_action_updates_state(self, module_walker):
        """Choice actions write through to the stored module state."""
        outcome = module_walker.select_choice(1)
        mission = module_walker.game_state.module_states["mission"]["currentMission"]
        assert mission["progress"] == 50
        assert outcome.alert.type == AlertType.SUCCESS
        assert outcome.alert.message == "Objective completed: Scan the anomaly"
        assert module_walker.last_alert == outcome.alert

    def test_effects_for_inactive_modules_are_skipped(self, module_walker):
        """Red alert asks for battle stations, but crew is not active here."""
        outcome = module_walker.select_choice(0)
        assert outcome.scene.id == "battle"
        assert module_walker.game_state.module_states["ship"]["alerts"]["current"] == "red"
        assert "crew" not in module_walker.game_state.module_states
        assert [i.module for i in outcome.propagation.interaction_log] == ["ship"]

    def test_effects_run_after_all_choice_actions(self, bus):
        """Emitted effects are batched until every choice action has run."""
        calls = []
        registry = ModuleRegistry([
            RecordingModule("a", calls, {"FIRST": [{"module": "b", "action": "CHILD"}]}),
            RecordingModule("b", calls),
            RecordingModule("c", calls),
        ])
        episode = make_episode(
            {
                "start": scene("start", choice("Go", "end", moduleActions=[
                    {"module": "a", "action": "FIRST"},
                    {"module": "c", "action": "SECOND"},
                ])),
                "end": scene("end"),
            },
            requiredModules=["a", "b", "c"],
        )
        w = SceneGraphWalker(episode, registry, event_bus=bus)
        w.start()
        outcome = w.select_choice(0)
        assert calls == ["a.FIRST", "c.SECOND", "b.CHILD"]
        assert outcome.alert.message == "b CHILD"
        assert w.game_state.module_states == {"a": {"count": 1}, "b": {"count": 1}, "c": {"count": 1}}

    def test_non_string_system_id_is_harmless(self, registry, memory_store, bus):
        """A damage action naming a list instead of a system changes no module state."""
        episode = make_episode(
            {
                "start": scene("start", choice("Brace", "end", setFlags={"hit": True}, moduleActions=[
                    {"module": "ship", "action": "TAKE_DAMAGE", "payload": {"system": ["hull"], "amount": 40}},
                ])),
                "end": scene("end"),
            },
            requiredModules=["ship"],
        )
        w = SceneGraphWalker(episode, registry, memory_store, event_bus=bus)
        w.start()
        before = w.game_state.module_states["ship"]

        outcome = w.select_choice(0)
        assert outcome.scene.id == "end"
        assert outcome.alert is None
        assert w.game_state.module_states["ship"] == before

    def test_failed_action_rolls_back_the_choice(self, memory_store, bus):
        """If a module action raises, flags, variables and module states are as they were."""
        calls = []
        module = ExplodingModule("a", calls)
        registry = ModuleRegistry([module])
        episode = make_episode(
            {
                "start": scene("start", choice(
                    "Push the engines", "end",
                    setFlags={"hit": True},
                    setVariables={"speed": 9},
                    moduleActions=[{"module": "a", "action": "FIRST"}, {"module": "a", "action": "EXPLODE"}],
                )),
                "end": scene("end"),
            },
            requiredModules=["a"],
        )
        w = SceneGraphWalker(episode, registry, memory_store, event_bus=bus)
        w.start()

        with pytest.raises(RuntimeError):
            w.select_choice(0)
        assert calls == ["a.FIRST"]
        assert w.current_scene_id == "start"
        assert w.game_state.flags == {}
        assert w.game_state.variables == {}
        assert w.game_state.module_states == {"a": {"count": 0}}
        assert module.get_state() == {"count": 0}
        assert memory_store.get_saved_state(episode.id) is None

    def test_failed_dispatch_rolls_back(self, bus):
        """A direct module action that raises leaves the module state alone."""
        calls = []
        module = ExplodingModule("a", calls)
        episode = make_episode({"start": scene("start")}, requiredModules=["a"])
        w = SceneGraphWalker(episode, ModuleRegistry([module]), event_bus=bus)
        w.start()
        w.dispatch_module_action("a", "FIRST")

        with pytest.raises(RuntimeError):
            w.dispatch_module_action("a", "EXPLODE")
        assert w.game_state.module_states == {"a": {"count": 1}}
        assert module.get_state() == {"count": 1}


class TestPersistence:
    """Test saving and resuming."""

    def test_saves_after_each_choice(self, walker, memory_store):
        """The store always holds the latest scene."""
        outcome = walker.select_choice(0)
        assert outcome.saved is True
        saved = memory_store.get_saved_state("test-episode")
        assert saved.scene_id == "middle"
        assert saved.game_state.flags == {"leftStart": True}

    def test_no_store(self, linear_episode, registry):
        """Without a store nothing is saved and play continues."""
        w = SceneGraphWalker(linear_episode, registry)
        w.start()
        assert w.select_choice(0).saved is False

    def test_failed_save_does_not_block(self, linear_episode, registry, bus):
        """A broken store is reported but the transition stands."""
        w = SceneGraphWalker(linear_episode, registry, FailingStore(), event_bus=bus)
        w.start()
        outcome = w.select_choice(0)
        assert outcome.saved is False
        assert w.current_scene_id == "middle"
        failure = bus.get_history(EventType.PERSISTENCE_FAILED)[0]
        assert failure.data["error"] == "disk full"

    def test_resume(self, module_episode, registry, memory_store, bus):
        """A new session picks up where the save left off."""
        first = SceneGraphWalker(module_episode, registry, memory_store, event_bus=bus)
        first.start()
        first.select_choice(1)

        registry.initialize_modules(["ship", "mission"])
        second = SceneGraphWalker(module_episode, registry, memory_store, event_bus=bus)
        second.start(resume=True)
        assert second.current_scene_id == "scanned"
        assert second.game_state.module_states["mission"]["currentMission"]["progress"] == 50
        assert registry.get_module("mission").check_condition("OBJECTIVE_COMPLETED", {"objectiveId": "scan"})

    def test_resume_without_save_starts_fresh(self, linear_episode, registry, bus):
        """Resuming with nothing saved is a normal start."""
        w = SceneGraphWalker(linear_episode, registry, event_bus=bus)
        assert w.start(resume=True).id == "start"


class TestPlaythrough:
    """Test whole episodes."""

    def test_first_contact_peaceful_path(self, registry, memory_store, bus):
        """The built-in episode can be played to its peaceful ending."""
        from starbridge.content import ContentLibrary

        episode = ContentLibrary(user_dir=None, store=memory_store).get_episode("first-contact")
        w = SceneGraphWalker(episode, registry, memory_store, event_bus=bus)
        w.start()

        w.select_choice(0)  # warp six
        assert w.game_state.module_states["ship"]["systems"]["warpDrive"]["currentWarp"] == 6
        w.select_choice(0)  # research the Hera
        assert registry.get_module("registry").check_condition("ENTRY_EXISTS", {"entryId": "uss-hera"})
        w.select_choice(0)  # continue to the source
        assert w.current_scene_id == "arrival"
        assert len(w.get_available_choices()) == 2

        outcome = w.select_choice(0)
        assert outcome.is_ending
        assert w.game_state.flags["peacefulResolution"] is True
        mission = w.game_state.module_states["mission"]["currentMission"]
        assert mission["status"] == "completed"
        assert outcome.alert.type == AlertType.SUCCESS
