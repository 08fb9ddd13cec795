"""Tests for commit_turn and resume_act."""

import pytest

from void_echoes.models import NPC, PLACEHOLDER_NAME, ActTransition, Item, PlayerStats, Survivor
from void_echoes.pipeline.reducer import (
    DEFAULT_GAME_OVER_TEXT,
    commit_turn,
    resume_act,
)
from void_echoes.proposals import TurnProposal


def _proposal(**fields) -> TurnProposal:
    fields.setdefault("scene_description", "The corridor stretches on.")
    return TurnProposal.model_validate(fields)


# ---------------------------------------------------------------------------
# History, turn count, purity
# ---------------------------------------------------------------------------

class TestBasics:
    def test_action_and_scene_appended_to_history(self, state) -> None:
        commit = commit_turn(state, _proposal(), "I step out")
        assert commit.state.story_history[-2:] == ["> I step out", "The corridor stretches on."]

    def test_input_state_not_mutated(self, state) -> None:
        before = state.model_dump()
        commit_turn(state, _proposal(new_rules=["Never speak after midnight"]), "x")
        assert state.model_dump() == before

    def test_turn_count_increments(self, state) -> None:
        commit = commit_turn(state, _proposal(), "x")
        assert commit.state.turn_count == 1
        assert commit.outcome == "continue"

    def test_scene_replaced(self, state) -> None:
        commit = commit_turn(state, _proposal(choices=["Run", "Hide"], hallucination="Eyes"), "x")
        assert commit.state.scene.choices == ["Run", "Hide"]
        assert commit.state.scene.hallucination == "Eyes"

    def test_interactable_npcs_carried_over_when_absent(self, state) -> None:
        commit = commit_turn(state, _proposal(), "x")
        assert commit.state.scene.interactable_npc_ids == ["npc_1"]


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class TestInventory:
    def test_item_add_is_idempotent(self, state) -> None:
        key = {"name": "Rusted Key", "description": "Cold to the touch"}
        first = commit_turn(state, _proposal(new_item=key), "search the desk")
        assert [i.name for i in first.state.inventory] == ["Rusted Key"]
        assert "Found item: Rusted Key." in first.key_events

        second = commit_turn(first.state, _proposal(new_item=key), "search again")
        assert len(second.state.inventory) == 1
        assert not any("Rusted Key" in e for e in second.key_events)

    def test_used_and_broken_items_removed(self, state) -> None:
        state.inventory = [Item(name="Lantern"), Item(name="Rusted Key")]
        commit = commit_turn(
            state, _proposal(items_used=["Rusted Key"], items_broken=["Lantern"]), "x"
        )
        assert commit.state.inventory == []
        assert "Used item: Rusted Key." in commit.key_events
        assert "Broke item: Lantern." in commit.key_events

    def test_removing_absent_item_is_silent(self, state) -> None:
        commit = commit_turn(state, _proposal(items_used=["Ghost"]), "x")
        assert commit.key_events == []


# ---------------------------------------------------------------------------
# Rules, stats, lore, world state, quests
# ---------------------------------------------------------------------------

class TestRulesAndStats:
    def test_rules_are_append_only(self, state) -> None:
        seq = [
            ["Never speak after midnight"],
            [],
            ["Never run in the corridors", "Always answer the nurse's bell"],
            ["Never speak after midnight"],
        ]
        current = state
        seen: list[str] = list(state.known_rules)
        for rules in seq:
            current = commit_turn(current, _proposal(new_rules=rules), "x").state
            assert len(current.known_rules) >= len(seen)
            assert all(r in current.known_rules for r in seen)
            seen = list(current.known_rules)
        assert len(set(current.known_rules)) == len(current.known_rules) == 3

    def test_pollution_clamped(self, state) -> None:
        state.stats = PlayerStats(stamina=8, stealth=10, mental_pollution=95)
        commit = commit_turn(state, _proposal(stat_changes={"mental_pollution": 20}), "x")
        assert commit.state.stats.mental_pollution == 100

    def test_pollution_stays_in_range(self, state) -> None:
        current = state
        for delta in (50, 80, -500, 7, -3, 1000):
            current = commit_turn(
                current, _proposal(stat_changes={"mental_pollution": delta}), "x"
            ).state
            assert 0 <= current.stats.mental_pollution <= 100

    def test_lore(self, state) -> None:
        commit = commit_turn(
            state,
            _proposal(new_lore_snippet="The fire began in room 12",
                      new_lore_entries=["Room 12 was sealed"]),
            "x",
        )
        assert commit.state.discovered_lore == ["The fire began in room 12"]
        assert commit.state.lore_entries == ["Room 12 was sealed"]

    def test_world_state_merge(self, state) -> None:
        commit = commit_turn(
            state, _proposal(world_state_changes=[{"key": "power_on", "value": "false"},
                                                  {"key": "alarm", "value": "ringing"}]),
            "x",
        )
        assert commit.state.world_state == {"power_on": False, "floor": 7, "alarm": "ringing"}

    def test_quests(self, state) -> None:
        state.side_quests = ["Find the key"]
        commit = commit_turn(
            state,
            _proposal(main_quest_update="Reach the roof", new_side_quests=["Help Lan"],
                      completed_quests=["Find the key"], new_clues=["The crane is red"]),
            "x",
        )
        assert commit.state.main_quest == "Reach the roof"
        assert commit.state.side_quests == ["Help Lan"]
        assert commit.state.known_clues == ["The crane is red"]
        assert len(commit.key_events) == 4


# ---------------------------------------------------------------------------
# Survivors and NPCs
# ---------------------------------------------------------------------------

class TestSurvivors:
    def test_death_recorded_once(self, state) -> None:
        update = {"name": "Minh", "new_status": "Dead", "reason": "thực thể"}
        first = commit_turn(state, _proposal(survivor_updates=[update]), "x")
        deaths = [e for e in first.key_events if "Minh" in e and "died" in e]
        assert len(deaths) == 1
        assert first.state.find_survivor("Minh").status == "Dead"

        second = commit_turn(first.state, _proposal(survivor_updates=[update]), "x")
        assert not any("died" in e for e in second.key_events)

    def test_dead_is_absorbing(self, state) -> None:
        state.survivors = [Survivor(name="Minh", status="Dead")]
        commit = commit_turn(
            state, _proposal(survivor_updates=[{"name": "Minh", "new_status": "Alive"}]), "x"
        )
        assert commit.state.find_survivor("Minh").status == "Dead"

    def test_other_statuses_change_freely(self, state) -> None:
        commit = commit_turn(
            state, _proposal(survivor_updates=[{"name": "Lan", "new_status": "Panicked"}]), "x"
        )
        assert commit.state.find_survivor("Lan").status == "Panicked"
        commit = commit_turn(
            commit.state, _proposal(survivor_updates=[{"name": "Lan", "new_status": "Alive"}]), "x"
        )
        assert commit.state.find_survivor("Lan").status == "Alive"


class TestNPCs:
    def test_introduction_concealed_and_tracked(self, state) -> None:
        new = {"id": "npc_3", "name": "Thu", "goal": "Escape", "personality": "Bold"}
        commit = commit_turn(state, _proposal(new_npcs=[new]), "x")
        npc = commit.state.find_npc("npc_3")
        assert npc.name == PLACEHOLDER_NAME
        assert any(t.id == "npc_3" and t.name == "Thu" for t in commit.state.npc_truths)
        assert commit.state.find_survivor("Thu") is not None
        assert "Met a mysterious stranger." in commit.key_events

    def test_duplicate_introduction_ignored(self, state) -> None:
        commit = commit_turn(state, _proposal(new_npcs=[{"id": "npc_1", "name": "Minh"}]), "x")
        assert len(commit.state.npcs) == 1

    def test_name_reveal_is_one_way(self, state) -> None:
        reveal = {"id": "npc_1", "name": "Minh"}
        first = commit_turn(state, _proposal(npc_updates=[reveal]), "x")
        assert first.state.find_npc("npc_1").name == "Minh"
        assert "Learned the stranger's name: Minh." in first.key_events

        second = commit_turn(first.state, _proposal(npc_updates=[reveal]), "x")
        assert not any("name" in e for e in second.key_events)

        renamed = commit_turn(
            second.state, _proposal(npc_updates=[{"id": "npc_1", "name": "Someone"}]), "x"
        )
        assert renamed.state.find_npc("npc_1").name == "Minh"

    def test_overlay_collects_touched_ids(self, state) -> None:
        state.npcs.append(NPC(id="npc_2", name=PLACEHOLDER_NAME))
        commit = commit_turn(
            state,
            _proposal(npc_updates=[
                {"id": "npc_1", "state": "Hostile", "trust": 10},
                {"id": "npc_2", "current_status": "Watching"},
                {"id": "ghost", "state": "Friendly"},
            ]),
            "x",
        )
        assert commit.touched_npc_ids == ["npc_1", "npc_2"]
        npc = commit.state.find_npc("npc_1")
        assert (npc.state, npc.trust) == ("Hostile", 10)
        assert any("attitude changed to Hostile" in e for e in commit.key_events)


# ---------------------------------------------------------------------------
# Terminal and act outcomes
# ---------------------------------------------------------------------------

class TestOutcomes:
    def test_defeat(self, state) -> None:
        commit = commit_turn(
            state,
            _proposal(is_game_over=True, game_over_text="You spoke.",
                      broken_rule="Never speak after midnight"),
            "I whisper",
        )
        assert commit.outcome == "defeat"
        assert commit.broken_rule == "Never speak after midnight"
        assert commit.state.story_history[-1] == "You spoke."
        assert commit.state.turn_count == state.turn_count

    def test_defeat_default_text(self, state) -> None:
        commit = commit_turn(state, _proposal(is_game_over=True), "x")
        assert commit.terminal_text == DEFAULT_GAME_OVER_TEXT

    def test_victory_wins_over_game_over(self, state) -> None:
        commit = commit_turn(
            state, _proposal(is_victory=True, victory_text="Dawn.", is_game_over=True), "x"
        )
        assert commit.outcome == "victory"
        assert commit.terminal_text == "Dawn."

    def test_act_transition_is_exclusive(self, state) -> None:
        act = {"title": "The Basement", "narrative": "The lift falls.",
               "opening_scene": "Water to your knees.", "new_rules": ["Never look down"]}
        commit = commit_turn(
            state,
            _proposal(act_transition=act, stat_changes={"stamina": -5},
                      new_rules=["Never speak after midnight"]),
            "x",
        )
        assert commit.outcome == "act_break"
        assert commit.state.stats == state.stats
        assert commit.state.known_rules == state.known_rules
        assert commit.state.pending_act.title == "The Basement"
        assert commit.state.story_history[-1] == "The lift falls."
        assert commit.state.turn_count == state.turn_count
        assert commit.key_events == []


class TestChronicleCadence:
    def test_due_on_fifth_turn_with_events(self, state) -> None:
        state.turn_count = 4
        state.key_events = ["Something happened."]
        assert commit_turn(state, _proposal(), "x").chronicle_due

    def test_not_due_without_events(self, state) -> None:
        state.turn_count = 4
        assert not commit_turn(state, _proposal(), "x").chronicle_due

    def test_not_due_off_cadence(self, state) -> None:
        state.turn_count = 5
        state.key_events = ["Something happened."]
        assert not commit_turn(state, _proposal(), "x").chronicle_due


class TestResumeAct:
    def test_applies_act_deltas(self, state) -> None:
        state.pending_act = ActTransition(
            title="The Basement", opening_scene="Water to your knees.",
            choices=["Wade", "Climb"], new_main_quest="Drain the flood",
            new_rules=["Never look down", "Never run in the corridors"],
        )
        commit = resume_act(state)
        nxt = commit.state
        assert nxt.pending_act is None
        assert nxt.act == 2
        assert nxt.main_quest == "Drain the flood"
        assert nxt.known_rules == ["Never run in the corridors", "Never look down"]
        assert nxt.scene.scene_description == "Water to your knees."
        assert nxt.story_history[-1] == "Water to your knees."
        assert commit.key_events[0] == "Act 2 begins: The Basement"

    def test_nothing_pending(self, state) -> None:
        with pytest.raises(ValueError):
            resume_act(state)
