"""Handlebars prompt rendering for the oracle stages.

Each oracle operation has a default template below and a context builder
that flattens the game state into the short Handlebars paths the template
uses. Free text goes through triple-stash (`{{{...}}}`) so quotes in player
input reach the model unescaped.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from void_echoes.models import (
    DIFFICULTY_LABELS,
    NPC,
    Difficulty,
    GameState,
    PlayerProfile,
)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

GRACE_PERIOD_TURNS = 5


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Difficulty directives ────────────────────────────────

_WORLD_DIFFICULTY: dict[str, str] = {
    "easy": (
        "Make the scenario less punishing. Reveal 2-3 starting rules. Starting "
        "NPCs lean friendly or neutral. The opening threat is indirect."
    ),
    "normal": (
        "Reveal 1-2 starting rules. The scenario is demanding but fair."
    ),
    "hard": (
        "Reveal at most 1 starting rule, or none if the story allows it. Rules "
        "are cryptic. NPCs may start unstable or hostile. The opening is dangerous."
    ),
}

_TURN_DIFFICULTY: dict[str, str] = {
    "easy": (
        "You are a storyteller who wants the player to uncover the mystery. Be "
        "forgiving, hint at hidden rules, keep stamina penalties small (-1 to -2). "
        "Choices rarely lead to instant death unless a rule is clearly broken."
    ),
    "normal": (
        "You are a classic horror game master: challenging but fair. Stat penalties "
        "are moderate (-2 to -4). Danger is real but avoidable by careful thought."
    ),
    "hard": (
        "You are merciless. The world hates the player. Sow doubt between them "
        "and the NPCs, hide important information, make the entity hunt actively. "
        "Stat penalties are heavy (-4 to -7)."
    ),
}


# ── Templates ────────────────────────────────────────────

WORLD_PROMPT = """\
You are a master horror director and novelist. Create a richly detailed \
opening scenario for a horror RPG. Write all prose in {{language}}.

## Difficulty: {{difficulty.label}}
{{difficulty.directive}}

{{#if echoes}}
## Echoes
Past victims left warnings behind. Choose ONE of these echoes and weave it \
subtly into the world (a scrawl on a wall, a note on a corpse, a line of \
lore). Never say it is a warning from a previous game.
{{#each echoes}}
- "{{{this}}}"
{{/each}}

{{/if}}
## Player
- Name: {{{player.name}}}
- Bio: {{{player.bio}}}
- Archetype: "{{{player.archetype}}}"
{{#if player.vow}}
- Vow: {{{player.vow}}}
{{/if}}

The player is no stranger here. Weave their name, bio and archetype into \
the core of the tragedy: the protagonist of the tragedy acted like \
"{{{player.archetype}}}", and the curse recognises them.

{{#if answers}}
## The Player's Vision
Build the world around these answers.
{{#each answers}}
- {{{question}}} {{{answer}}}
{{/each}}

{{/if}}
## Requirements
1. 1-2 NPCs with full psychological profiles (personality, background, \
goal, current_status, state, trust 0-100, optional skill).
2. A survivor roster of 5-12 people that includes every NPC by name.
3. An initial world state as key/value string pairs.
4. A fixed rule set (all_rules, 5-7 rules) and 1-3 of them revealed up front (rules).
5. The first scene, listing in introduced_npc_ids every NPC that appears in it.

Reply with one JSON object only:
{
  "situation_description": "...",
  "world_lore": {"what_it_was": "...", "what_happened": "...", "entity_name": "...",
                 "entity_description": "...", "entity_motivation": "...",
                 "rules_origin": "...", "main_symbol": "..."},
  "rules_source": "...",
  "rules": ["..."],
  "all_rules": ["..."],
  "main_quest": "...",
  "npcs": [{"id": "npc_1", "name": "...", "personality": "...", "description": "...",
            "background": "...", "goal": "...", "current_status": "...",
            "state": "Friendly|Neutral|Afraid|Hostile|Unstable", "knowledge": [],
            "last_interaction_summary": "", "trust": 50,
            "skill": {"name": "...", "description": "..."}}],
  "survivors": [{"name": "...", "status": "Alive"}],
  "world_state": [{"key": "power_on", "value": "true"}],
  "first_scene": {"scene_description": "...", "choices": ["...", "...", "..."],
                  "introduced_npc_ids": ["npc_1"]}
}\
"""

TURN_PROMPT = """\
You are the director and game master of a merciless interactive horror \
film. Write all prose in {{language}}.

## Difficulty: {{difficulty.label}}
{{difficulty.directive}}

{{#if grace.active}}
## Grace Period (turn {{grace.turn}}/{{grace.limit}})
Breaking a rule the player does NOT know yet is game over. Breaking a rule \
the player already knows is NOT game over this early: apply a very heavy \
penalty instead and describe the near-death escape.

{{/if}}
## Absolute Laws
- Rules are absolute and bind the player and the entity alike.
- Humans cannot physically harm each other. Hostile NPCs manipulate the \
player into breaking rules instead of attacking.
- Mental pollution rises (+1 to +5) on extreme fear, despair or witnessing \
the supernatural. Above 25 the entity becomes aggressive toward the player.

## World
- Entity: {{{lore.entity_name}}} ({{{lore.entity_description}}}). It wants: {{{lore.entity_motivation}}}
- Main symbol: "{{{lore.main_symbol}}}"
- World state: {{{world_state}}}

## NPC Ground Truth (secret)
{{#each truths}}
- {{{name}}} (ID: {{id}}): personality {{{personality}}}; background {{{background}}}; goal {{{goal}}}
{{/each}}

## Player
- {{{player.name}}}, "{{{player.archetype}}}": {{{player.bio}}}
- Stamina {{stats.stamina}}, Stealth {{stats.stealth}}, Mental pollution {{stats.mental_pollution}}
{{#if inventory}}
- Inventory:
{{#each inventory}}
  - {{{name}}}: {{{description}}}
{{/each}}
{{/if}}

## NPCs as the Player Knows Them
{{#each npcs}}
- {{{name}}} (ID: {{id}}), {{state}}, trust {{trust}}: {{{current_status}}}. Last: {{{last_interaction_summary}}}
{{else}}
No one else is here.
{{/each}}

{{#if survivors}}
## Survivors
{{#each survivors}}
- {{{name}}}: {{status}}
{{/each}}

{{/if}}
## Quests
- Main: {{{main_quest}}}
{{#each side_quests}}
- Side: {{{this}}}
{{/each}}
{{#each known_clues}}
- Clue: {{{this}}}
{{/each}}

{{#if lore_summaries}}
## Chronicle
{{#each lore_summaries}}
- {{{this}}}
{{/each}}

{{/if}}
{{#if lore_entries}}
## Known Lore
{{#each lore_entries}}
- {{{this}}}
{{/each}}

{{/if}}
## All Rules (ground truth)
{{#each all_rules}}
- {{{this}}}
{{/each}}

## Rules the Player Knows
{{#each known_rules}}
- {{{this}}}
{{else}}
None yet.
{{/each}}

{{#if key_events}}
## Key Events
{{#each key_events}}
- {{{this}}}
{{/each}}

{{/if}}
## Recent History
{{#last history 3}}
{{{this}}}
{{/last}}

## Player Action
"{{{action}}}"

Narrate what happens. Check the action against ALL rules: a violation sets \
is_game_over with game_over_text and broken_rule. If the player tricks the \
entity into breaking a rule, set is_victory with victory_text. Reveal NPC \
names only when they introduce themselves. Use act_transition only to close \
a chapter. Omit every field that does not change.

Reply with one JSON object only:
{
  "scene_description": "...", "choices": ["...", "...", "..."],
  "is_game_over": false, "game_over_text": "...", "broken_rule": "...",
  "is_victory": false, "victory_text": "...",
  "stat_changes": {"stamina": 0, "stealth": 0, "mental_pollution": 0},
  "new_rules": [], "new_item": {"name": "...", "description": "..."},
  "items_used": [], "items_broken": [],
  "new_lore_snippet": "...", "new_lore_entries": [],
  "world_state_changes": [{"key": "...", "value": "..."}],
  "main_quest_update": "...", "new_side_quests": [], "completed_quests": [], "new_clues": [],
  "new_npcs": [], "npc_updates": [{"id": "npc_1", "name": "...", "state": "...",
    "description": "...", "background": "...", "goal": "...", "current_status": "...", "trust": 50}],
  "survivor_updates": [{"name": "...", "new_status": "Alive|Injured|Panicked|Dead", "reason": "..."}],
  "act_transition": {"title": "...", "narrative": "...", "opening_scene": "...",
    "choices": [], "new_main_quest": "...", "new_rules": []},
  "hallucination": "...", "interactable_npc_ids": []
}\
"""

NPC_MIND_PROMPT = """\
You are the inner mind of a character called {{{npc.name}}}. Do not narrate; \
feel and decide. Write in {{language}}.

## Your Profile
- Personality: {{{npc.personality}}}
- Background: {{{npc.background}}}
- Attitude toward the player: {{npc.state}}
- Goal: {{{npc.goal}}}
- Doing / feeling: {{{npc.current_status}}}
- You know:
{{#each npc.knowledge}}
  - "{{{this}}}"
{{else}}
  - Not much yet.
{{/each}}
- Last interaction: {{{npc.last_interaction_summary}}}

## What Just Happened
- Scene: {{{scene}}}
- The player did: "{{{action}}}"

Update your inner state. You cannot harm the player with violence; if you \
want them gone, you must trick them into breaking a rule. Omit anything \
that does not change.

Reply with one JSON object only:
{"state": "Friendly|Neutral|Afraid|Hostile|Unstable", "goal": "...",
 "current_status": "...", "knowledge": {"add": [], "remove": []},
 "last_interaction_summary": "..."}\
"""

SUMMARY_PROMPT = """\
You keep the chronicle of a horror story. Summarise these key events in \
2-3 narrative sentences, like a chapter in a diary. Write in {{language}}.

{{#each events}}
- {{{this}}}
{{/each}}

Reply with one JSON object only: {"summary": "..."}\
"""


# ── Context builders ─────────────────────────────────────


def _difficulty(tier: Difficulty, directives: dict[str, str]) -> dict[str, str]:
    return {
        "tier": tier,
        "label": DIFFICULTY_LABELS[tier],
        "directive": directives[tier],
    }


def world_context(
    player: PlayerProfile,
    difficulty: Difficulty,
    echoes: list[str],
    answers: list[dict[str, str]] | None = None,
    language: str = "English",
) -> dict[str, Any]:
    """Template variables for initial world generation."""
    return {
        "language": language,
        "difficulty": _difficulty(difficulty, _WORLD_DIFFICULTY),
        "echoes": list(echoes),
        "player": player.model_dump(),
        "answers": list(answers or []),
    }


def turn_context(state: GameState, action: str, language: str = "English") -> dict[str, Any]:
    """Template variables for next-turn generation.

    The grace period is pure prompt policy: it is derived from the turn
    count here and never stored in the game state.
    """
    visible_ids = {npc.id for npc in state.npcs}
    world_state = ", ".join(f"{k}={v}" for k, v in state.world_state.items())
    return {
        "language": language,
        "difficulty": _difficulty(state.difficulty, _TURN_DIFFICULTY),
        "grace": {
            "active": state.turn_count <= GRACE_PERIOD_TURNS,
            "turn": state.turn_count,
            "limit": GRACE_PERIOD_TURNS,
        },
        "lore": state.situation.world_lore.model_dump(),
        "world_state": world_state or "(nothing notable)",
        "truths": [t.model_dump() for t in state.npc_truths if t.id in visible_ids],
        "player": state.player.model_dump(),
        "stats": state.stats.model_dump(),
        "inventory": [i.model_dump() for i in state.inventory],
        "npcs": [n.model_dump() for n in state.npcs],
        "survivors": [s.model_dump() for s in state.survivors],
        "main_quest": state.main_quest,
        "side_quests": list(state.side_quests),
        "known_clues": list(state.known_clues),
        "lore_summaries": list(state.lore_summaries),
        "lore_entries": list(state.lore_entries),
        "all_rules": list(state.situation.all_rules),
        "known_rules": list(state.known_rules),
        "key_events": list(state.key_events),
        "history": list(state.story_history),
        "action": action,
    }


def npc_mind_context(
    scene: str, action: str, npc: NPC, language: str = "English"
) -> dict[str, Any]:
    return {
        "language": language,
        "scene": scene,
        "action": action,
        "npc": npc.model_dump(),
    }


def summary_context(events: list[str], language: str = "English") -> dict[str, Any]:
    return {"language": language, "events": list(events)}
