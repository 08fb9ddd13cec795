"""Turn commit: merge one Turn Proposal into the game state.

`commit_turn` is synchronous and pure with respect to its inputs: it
deep-copies the state it is given, applies the proposal field by field and
returns the next state together with the human-readable key events the
commit produced. The order of the steps matters, later steps read
collections that earlier steps already updated:

   1. Act transition short-circuit (stash payload, discard everything else)
   2. Survivor status updates (Dead is absorbing)
   3. Stat deltas (clamped)
   4. Newly revealed rules (append-only, deduplicated)
   5. Inventory (idempotent add, removal by exact name)
   6. Lore (ephemeral snippet, permanent entries)
   7. World state (shallow merge)
   8. Quests and clues
   9. NPC introductions (concealed, also added to the survivor roster)
  10. NPC field overlay (collects the ids for the mind-update pass)
  11. Narrative / terminal resolution
  12. Turn count and chronicle cadence

The mind-update pass over the touched NPCs and the chronicle request are
not run here; the orchestrator owns both.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from void_echoes.models import GameState, Item, Scene, Survivor, conceal_npc
from void_echoes.proposals import NpcUpdate, SurvivorUpdate, TurnProposal

logger = logging.getLogger(__name__)

CHRONICLE_CADENCE = 5  # request a chronicle summary every N turns
CHRONICLE_WINDOW = 10  # over the most recent N key events

DEFAULT_VICTORY_TEXT = "The nightmare is over."
DEFAULT_GAME_OVER_TEXT = "The dark closes over you."

TurnOutcome = Literal["continue", "act_break", "victory", "defeat"]


class TurnCommit(BaseModel):
    """Result of committing one proposal."""

    state: GameState
    key_events: list[str] = Field(default_factory=list)
    touched_npc_ids: list[str] = Field(default_factory=list)
    outcome: TurnOutcome = "continue"
    terminal_text: str | None = None
    broken_rule: str | None = None
    chronicle_due: bool = False


def _quoted(items: list[str]) -> str:
    return ", ".join(f'"{item}"' for item in items)


def _unseen(candidates: list[str] | None, existing: list[str]) -> list[str]:
    """Candidates not already in `existing`, in order, without repeats."""
    result: list[str] = []
    for item in candidates or []:
        if item not in existing and item not in result:
            result.append(item)
    return result


# ---------------------------------------------------------------------------
# Per-field steps
# ---------------------------------------------------------------------------

def _apply_survivors(
    state: GameState, updates: list[SurvivorUpdate] | None, events: list[str]
) -> None:
    for update in updates or []:
        survivor = state.find_survivor(update.name)
        if survivor is None:
            logger.debug("Survivor update for unknown name %r ignored", update.name)
            continue
        if survivor.status == "Dead":
            continue
        if update.new_status == "Dead":
            if update.reason:
                events.append(f"{survivor.name} died: {update.reason}")
            else:
                events.append(f"{survivor.name} died.")
        survivor.status = update.new_status


def learn_rules(state: GameState, rules: list[str] | None, events: list[str]) -> None:
    fresh = _unseen(rules, state.known_rules)
    if fresh:
        state.known_rules.extend(fresh)
        events.append(f"Discovered new rules: {_quoted(fresh)}")


def _update_inventory(
    state: GameState, proposal: TurnProposal, events: list[str]
) -> None:
    item = proposal.new_item
    if item is not None and not any(i.name == item.name for i in state.inventory):
        state.inventory.append(Item(name=item.name, description=item.description))
        events.append(f"Found item: {item.name}.")

    for names, verb in ((proposal.items_used, "Used"), (proposal.items_broken, "Broke")):
        for name in names or []:
            kept = [i for i in state.inventory if i.name != name]
            if len(kept) != len(state.inventory):
                state.inventory = kept
                events.append(f"{verb} item: {name}.")


def _record_lore(state: GameState, proposal: TurnProposal, events: list[str]) -> None:
    if proposal.new_lore_snippet:
        state.discovered_lore.append(proposal.new_lore_snippet)
        events.append(f'Uncovered a secret: "{proposal.new_lore_snippet}"')

    fresh = _unseen(proposal.new_lore_entries, state.lore_entries)
    if fresh:
        state.lore_entries.extend(fresh)
        events.append("Recorded new knowledge in the journal.")


def _update_quests(state: GameState, proposal: TurnProposal, events: list[str]) -> None:
    if proposal.main_quest_update and proposal.main_quest_update != state.main_quest:
        state.main_quest = proposal.main_quest_update
        events.append(f'Main quest updated: "{proposal.main_quest_update}"')

    fresh = _unseen(proposal.new_side_quests, state.side_quests)
    if fresh:
        state.side_quests.extend(fresh)
        events.append(f"New side quests: {_quoted(fresh)}")

    completed = [q for q in proposal.completed_quests or [] if q in state.side_quests]
    if completed:
        state.side_quests = [q for q in state.side_quests if q not in completed]
        events.append(f"Completed side quests: {_quoted(completed)}")

    fresh = _unseen(proposal.new_clues, state.known_clues)
    if fresh:
        state.known_clues.extend(fresh)
        events.append(f"Found new clues: {_quoted(fresh)}")


def _introduce_npcs(state: GameState, proposal: TurnProposal, events: list[str]) -> None:
    for npc in proposal.new_npcs or []:
        if state.find_npc(npc.id) is not None:
            logger.debug("NPC %s already introduced, ignoring duplicate", npc.id)
            continue
        if not any(t.id == npc.id for t in state.npc_truths):
            state.npc_truths.append(npc.model_copy(deep=True))
        state.npcs.append(conceal_npc(npc))
        if npc.name and state.find_survivor(npc.name) is None:
            state.survivors.append(Survivor(name=npc.name))
        events.append("Met a mysterious stranger.")


def _overlay_npcs(
    state: GameState, updates: list[NpcUpdate] | None, events: list[str]
) -> list[str]:
    touched: list[str] = []
    for update in updates or []:
        index = next((i for i, n in enumerate(state.npcs) if n.id == update.id), None)
        if index is None:
            logger.debug("NPC update for unknown id %r ignored", update.id)
            continue
        old = state.npcs[index]
        fields = update.provided_fields()

        if "name" in fields:
            if old.name_known or not fields["name"].strip():
                del fields["name"]
            elif fields["name"] != old.name:
                events.append(f"Learned the stranger's name: {fields['name']}.")

        new = old.model_copy(update=fields)
        state.npcs[index] = new
        if update.state is not None and update.state != old.state:
            events.append(f"{new.name}'s attitude changed to {new.state}.")
        if update.id not in touched:
            touched.append(update.id)
    return touched


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def commit_turn(state: GameState, proposal: TurnProposal, action: str) -> TurnCommit:
    """Apply `proposal` for the player's `action` and return the next state."""
    nxt = state.model_copy(deep=True)
    events: list[str] = []
    nxt.story_history.append(f"> {action}")

    # 1. Act transition: hard phase boundary
    if proposal.act_transition is not None:
        act = proposal.act_transition
        narrative = act.narrative or proposal.scene_description
        if narrative:
            nxt.story_history.append(narrative)
        nxt.pending_act = act.model_copy(deep=True)
        return TurnCommit(state=nxt, outcome="act_break")

    # 2-10
    _apply_survivors(nxt, proposal.survivor_updates, events)
    if proposal.stat_changes is not None:
        nxt.stats = nxt.stats.apply(proposal.stat_changes)
    learn_rules(nxt, proposal.new_rules, events)
    _update_inventory(nxt, proposal, events)
    _record_lore(nxt, proposal, events)
    if proposal.world_state_changes:
        nxt.world_state.update(proposal.world_state_changes)
    _update_quests(nxt, proposal, events)
    _introduce_npcs(nxt, proposal, events)
    touched = _overlay_npcs(nxt, proposal.npc_updates, events)

    nxt.key_events.extend(events)

    # 11. Narrative / terminal resolution
    if proposal.is_victory:
        text = proposal.victory_text or DEFAULT_VICTORY_TEXT
        nxt.story_history.append(text)
        return TurnCommit(
            state=nxt, key_events=events, touched_npc_ids=touched,
            outcome="victory", terminal_text=text,
        )
    if proposal.is_game_over:
        text = proposal.game_over_text or DEFAULT_GAME_OVER_TEXT
        nxt.story_history.append(text)
        return TurnCommit(
            state=nxt, key_events=events, touched_npc_ids=touched,
            outcome="defeat", terminal_text=text,
            broken_rule=proposal.broken_rule or None,
        )

    previous = state.scene
    nxt.scene = Scene(
        scene_description=proposal.scene_description,
        choices=list(proposal.choices or []),
        interactable_npc_ids=(
            list(proposal.interactable_npc_ids)
            if proposal.interactable_npc_ids is not None
            else list(previous.interactable_npc_ids if previous else [])
        ),
        hallucination=proposal.hallucination,
    )
    if proposal.scene_description:
        nxt.story_history.append(proposal.scene_description)

    # 12. Turn count and chronicle cadence
    nxt.turn_count += 1
    chronicle_due = nxt.turn_count % CHRONICLE_CADENCE == 0 and bool(nxt.key_events)
    return TurnCommit(
        state=nxt, key_events=events, touched_npc_ids=touched,
        chronicle_due=chronicle_due,
    )


def resume_act(state: GameState) -> TurnCommit:
    """Apply a stashed act transition's own deltas and open the next act."""
    act = state.pending_act
    if act is None:
        raise ValueError("No act transition is pending")

    nxt = state.model_copy(deep=True)
    events: list[str] = []
    nxt.pending_act = None
    nxt.act += 1
    if act.title:
        events.append(f"Act {nxt.act} begins: {act.title}")
    else:
        events.append(f"Act {nxt.act} begins.")

    if act.new_main_quest and act.new_main_quest != nxt.main_quest:
        nxt.main_quest = act.new_main_quest
        events.append(f'Main quest updated: "{act.new_main_quest}"')
    learn_rules(nxt, act.new_rules, events)

    if act.opening_scene:
        previous = state.scene
        nxt.scene = Scene(
            scene_description=act.opening_scene,
            choices=list(act.choices),
            interactable_npc_ids=list(previous.interactable_npc_ids if previous else []),
        )
        nxt.story_history.append(act.opening_scene)

    nxt.key_events.extend(events)
    return TurnCommit(state=nxt, key_events=events)
