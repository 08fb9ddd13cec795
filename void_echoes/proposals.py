"""Oracle answer envelopes: the Turn Proposal and the NPC Mind Delta.

Both envelopes are sparse. Every field defaults to None, which means "no
instruction given"; an empty list or empty string that the oracle actually
sent is kept as-is so the reducer can tell the two apart.

World-state values arrive string-encoded, either as a list of
``{"key": ..., "value": ...}`` pairs or as a flat mapping. They are coerced
once, on validation, by `ingest_world_state`; nothing downstream re-coerces them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator

from void_echoes.models import (
    NPC,
    ActTransition,
    Item,
    NPCState,
    StatDelta,
    SurvivorStatus,
    WorldValue,
    clamp_trust,
    ingest_world_state,
)


def _as_name_list(value: Any) -> Any:
    """Accept a single item name where a list of names is expected."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    return value


class NpcUpdate(BaseModel):
    """Partial overlay for one existing NPC, keyed by id."""

    id: str
    name: str | None = None
    state: NPCState | None = None
    description: str | None = None
    background: str | None = None
    goal: str | None = None
    current_status: str | None = None
    trust: int | None = None

    @field_validator("trust")
    @classmethod
    def _clamp_trust(cls, value: int | None) -> int | None:
        return None if value is None else clamp_trust(value)

    def provided_fields(self) -> dict[str, Any]:
        """Fields the oracle actually set, excluding the id."""
        return self.model_dump(exclude={"id"}, exclude_none=True)


class SurvivorUpdate(BaseModel):
    name: str
    new_status: SurvivorStatus
    reason: str = ""


class TurnProposal(BaseModel):
    """What the oracle says happened as a result of one player action."""

    scene_description: str = ""
    choices: list[str] | None = None  # 0-3 suggestions

    is_game_over: bool = False
    game_over_text: str | None = None
    broken_rule: str | None = None
    is_victory: bool = False
    victory_text: str | None = None

    stat_changes: StatDelta | None = None
    new_rules: list[str] | None = None
    new_item: Item | None = None
    items_used: list[str] | None = None
    items_broken: list[str] | None = None

    new_lore_snippet: str | None = None
    new_lore_entries: list[str] | None = None

    world_state_changes: dict[str, WorldValue] | None = None

    main_quest_update: str | None = None
    new_side_quests: list[str] | None = None
    completed_quests: list[str] | None = None
    new_clues: list[str] | None = None

    new_npcs: list[NPC] | None = None
    npc_updates: list[NpcUpdate] | None = None
    survivor_updates: list[SurvivorUpdate] | None = None

    act_transition: ActTransition | None = None
    hallucination: str | None = None
    interactable_npc_ids: list[str] | None = None

    @field_validator("world_state_changes", mode="before")
    @classmethod
    def _ingest_world_state(cls, value: Any) -> Any:
        return ingest_world_state(value)

    @field_validator("items_used", "items_broken", mode="before")
    @classmethod
    def _name_lists(cls, value: Any) -> Any:
        return _as_name_list(value)

    @field_validator("choices")
    @classmethod
    def _at_most_three_choices(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else value[:3]


class KnowledgeDelta(BaseModel):
    add: list[str] | None = None
    remove: list[str] | None = None


class MindDelta(BaseModel):
    """Psychological refinement for a single NPC."""

    state: NPCState | None = None
    goal: str | None = None
    current_status: str | None = None
    knowledge: KnowledgeDelta | None = None
    last_interaction_summary: str | None = None
