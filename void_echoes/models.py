"""Core domain models.

Every stage of the turn pipeline, the oracle boundary and storage operate on
these types. Pydantic is used for validation and serialisation at every data
boundary; the whole game is one `GameState` value that round-trips through
`model_dump_json()` / `model_validate_json()` for save and load.
"""

from __future__ import annotations

import math
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

Difficulty = Literal["easy", "normal", "hard"]

DIFFICULTY_LABELS: dict[str, str] = {
    "easy": "Flickering Nightmare",
    "normal": "Echo of the Void",
    "hard": "Shattered Reality",
}

NPCState = Literal["Friendly", "Neutral", "Afraid", "Hostile", "Unstable"]

SurvivorStatus = Literal["Alive", "Injured", "Panicked", "Dead"]

WorldValue = bool | int | float | str

MENTAL_POLLUTION_MAX = 100
TRUST_MAX = 100

# Identity-concealing defaults overlaid on newly met NPCs
PLACEHOLDER_NAME = "Unknown stranger"
UNKNOWN_BACKGROUND = "You know nothing of this person's past."
UNKNOWN_GOAL = "You cannot tell what they want."
NEVER_INTERACTED = "You have never spoken."

DEFAULT_MAIN_QUEST = "Survive, and find out what is happening here."


def coerce_world_value(raw: str) -> WorldValue:
    """Coerce a string-encoded world-state value on ingestion.

    "true"/"false" (any case) become booleans, numeric strings become int or
    float, anything else stays a string.
    """
    text = raw.strip()
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if not text or "_" in text:
        return raw
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return raw
    if not math.isfinite(number):
        return raw
    return number


def ingest_world_state(raw: Any) -> dict[str, WorldValue] | None:
    """Normalise an oracle world-state payload into a typed mapping.

    Accepts a list of {"key": ..., "value": ...} pairs or a flat mapping;
    string values go through `coerce_world_value`.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        pairs = raw.items()
    elif isinstance(raw, list):
        pairs = []
        for entry in raw:
            if not isinstance(entry, dict) or "key" not in entry:
                raise ValueError(f"World-state entry must be a key/value object, got {entry!r}")
            pairs.append((entry["key"], entry.get("value", "")))
    else:
        raise ValueError(f"World state must be a list or mapping, got {type(raw).__name__}")

    result: dict[str, WorldValue] = {}
    for key, value in pairs:
        result[str(key)] = coerce_world_value(value) if isinstance(value, str) else value
    return result


def clamp_trust(value: int) -> int:
    return min(TRUST_MAX, max(0, value))


class PlayerStats(BaseModel):
    stamina: int = 0
    stealth: int = 0
    mental_pollution: int = 0  # 0-100

    def apply(self, delta: StatDelta) -> PlayerStats:
        """Return new stats with `delta` added and every field clamped."""
        return PlayerStats(
            stamina=max(0, self.stamina + (delta.stamina or 0)),
            stealth=max(0, self.stealth + (delta.stealth or 0)),
            mental_pollution=min(
                MENTAL_POLLUTION_MAX,
                max(0, self.mental_pollution + (delta.mental_pollution or 0)),
            ),
        )


class StatDelta(BaseModel):
    """Signed per-stat changes. A missing stat means no change."""

    stamina: int | None = None
    stealth: int | None = None
    mental_pollution: int | None = None


class Item(BaseModel):
    name: str
    description: str = ""


class Skill(BaseModel):
    name: str
    description: str = ""


class NPC(BaseModel):
    """A non-player character. Identity is `id`, assigned by the oracle."""

    id: str
    name: str
    personality: str = ""  # immutable once set
    description: str = ""
    background: str = ""
    goal: str = ""
    current_status: str = ""
    state: NPCState = "Neutral"
    knowledge: list[str] = Field(default_factory=list)
    last_interaction_summary: str = ""
    trust: int = 50  # 0-100
    skill: Skill | None = None

    @field_validator("trust")
    @classmethod
    def _clamp_trust(cls, value: int) -> int:
        return clamp_trust(value)

    @property
    def name_known(self) -> bool:
        return self.name != PLACEHOLDER_NAME


class Survivor(BaseModel):
    name: str  # identity key
    status: SurvivorStatus = "Alive"


class WorldLore(BaseModel):
    what_it_was: str = ""
    what_happened: str = ""
    entity_name: str = ""
    entity_description: str = ""
    entity_motivation: str = ""
    rules_origin: str = ""
    main_symbol: str = ""


class FirstScene(BaseModel):
    scene_description: str
    choices: list[str] = Field(default_factory=list)
    introduced_npc_ids: list[str] = Field(default_factory=list)


class InitialSituation(BaseModel):
    """The world as generated at game start. Never mutated afterwards."""

    situation_description: str
    world_lore: WorldLore = Field(default_factory=WorldLore)
    rules_source: str = ""
    rules: list[str] = Field(default_factory=list)  # initially known subset
    all_rules: list[str] = Field(default_factory=list)  # fixed ground truth
    main_quest: str = ""
    npcs: list[NPC] = Field(default_factory=list)
    survivors: list[Survivor] = Field(default_factory=list)
    world_state: dict[str, WorldValue] = Field(default_factory=dict)
    first_scene: FirstScene

    @field_validator("world_state", mode="before")
    @classmethod
    def _ingest_world_state(cls, value: Any) -> Any:
        return ingest_world_state(value) or {}


class Scene(BaseModel):
    """The scene the player is currently acting in."""

    scene_description: str
    choices: list[str] = Field(default_factory=list)
    interactable_npc_ids: list[str] = Field(default_factory=list)
    hallucination: str | None = None


class ActTransition(BaseModel):
    """Chapter-break payload, stashed until the player resumes."""

    title: str = ""
    narrative: str = ""
    opening_scene: str = ""
    choices: list[str] = Field(default_factory=list)
    new_main_quest: str | None = None
    new_rules: list[str] = Field(default_factory=list)


class PlayerProfile(BaseModel):
    name: str
    bio: str = ""
    archetype: str = ""
    vow: str = ""


class GameState(BaseModel):
    """The full session bundle; also the persisted save-game record."""

    game_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    situation: InitialSituation
    player: PlayerProfile
    stats: PlayerStats
    difficulty: Difficulty = "normal"
    scene: Scene | None = None
    story_history: list[str] = Field(default_factory=list)
    known_rules: list[str] = Field(default_factory=list)
    inventory: list[Item] = Field(default_factory=list)
    discovered_lore: list[str] = Field(default_factory=list)
    lore_entries: list[str] = Field(default_factory=list)
    lore_summaries: list[str] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    npc_truths: list[NPC] = Field(default_factory=list)
    survivors: list[Survivor] = Field(default_factory=list)
    world_state: dict[str, WorldValue] = Field(default_factory=dict)
    key_events: list[str] = Field(default_factory=list)
    main_quest: str = DEFAULT_MAIN_QUEST
    side_quests: list[str] = Field(default_factory=list)
    known_clues: list[str] = Field(default_factory=list)
    turn_count: int = 0
    act: int = 1
    pending_act: ActTransition | None = None

    def find_npc(self, npc_id: str) -> NPC | None:
        for npc in self.npcs:
            if npc.id == npc_id:
                return npc
        return None

    def find_survivor(self, name: str) -> Survivor | None:
        for survivor in self.survivors:
            if survivor.name == name:
                return survivor
        return None


def conceal_npc(npc: NPC, *, first_meeting: bool = False) -> NPC:
    """Overlay identity-concealing defaults onto an oracle-provided NPC."""
    fields: dict = {
        "name": PLACEHOLDER_NAME,
        "background": UNKNOWN_BACKGROUND,
        "goal": UNKNOWN_GOAL,
    }
    if first_meeting:
        fields["knowledge"] = []
        fields["last_interaction_summary"] = NEVER_INTERACTED
    return npc.model_copy(update=fields, deep=True)


def start_game(
    situation: InitialSituation,
    player: PlayerProfile,
    stats: PlayerStats,
    difficulty: Difficulty = "normal",
) -> GameState:
    """Build the opening state bundle from a freshly generated world."""
    first = situation.first_scene
    introduced = set(first.introduced_npc_ids)
    visible = [
        conceal_npc(npc, first_meeting=True)
        for npc in situation.npcs
        if npc.id in introduced
    ]

    survivors: list[Survivor] = []
    seen: set[str] = set()
    for survivor in situation.survivors:
        if survivor.name not in seen:
            survivors.append(survivor.model_copy())
            seen.add(survivor.name)
    for npc in situation.npcs:
        if npc.id in introduced and npc.name not in seen:
            survivors.append(Survivor(name=npc.name))
            seen.add(npc.name)

    known_rules: list[str] = []
    for rule in situation.rules:
        if rule not in known_rules:
            known_rules.append(rule)

    return GameState(
        situation=situation,
        player=player,
        stats=stats,
        difficulty=difficulty,
        scene=Scene(
            scene_description=first.scene_description,
            choices=list(first.choices),
            interactable_npc_ids=list(first.introduced_npc_ids),
        ),
        story_history=[situation.situation_description, first.scene_description],
        known_rules=known_rules,
        npcs=visible,
        npc_truths=[npc.model_copy(deep=True) for npc in situation.npcs],
        survivors=survivors,
        world_state=dict(situation.world_state),
    )
