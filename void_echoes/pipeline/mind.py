"""NPC mind updates: the second, per-NPC pass after a turn commit.

Every NPC touched by the commit gets its own refinement request. Requests
run concurrently and are all awaited before the roster is finalised. When
one fails, that NPC keeps the record the commit left it with and the others
still apply.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from void_echoes.models import NPC
from void_echoes.proposals import MindDelta

logger = logging.getLogger(__name__)

MindProposer = Callable[[NPC], Awaitable[MindDelta]]


def apply_mind_delta(npc: NPC, delta: MindDelta) -> NPC:
    """Merge a psychological refinement into one NPC record.

    Scalar fields overwrite when present. Knowledge is a set: removals are
    applied before additions and the result carries no duplicates.
    """
    fields: dict = {}
    if delta.state is not None:
        fields["state"] = delta.state
    if delta.goal:
        fields["goal"] = delta.goal
    if delta.current_status:
        fields["current_status"] = delta.current_status
    if delta.last_interaction_summary:
        fields["last_interaction_summary"] = delta.last_interaction_summary

    if delta.knowledge is not None:
        removed = set(delta.knowledge.remove or [])
        knowledge: list[str] = []
        for fact in npc.knowledge:
            if fact not in removed and fact not in knowledge:
                knowledge.append(fact)
        for fact in delta.knowledge.add or []:
            if fact not in knowledge:
                knowledge.append(fact)
        fields["knowledge"] = knowledge

    return npc.model_copy(update=fields, deep=True)


async def refine_npcs(
    npcs: list[NPC], npc_ids: Iterable[str], propose: MindProposer
) -> list[NPC]:
    """Fan out one refinement per touched NPC, fan in, return the new roster."""
    positions = {npc.id: i for i, npc in enumerate(npcs)}
    targets = [npcs[positions[i]] for i in dict.fromkeys(npc_ids) if i in positions]
    if not targets:
        return list(npcs)

    async def _refine(npc: NPC) -> NPC:
        try:
            delta = await propose(npc)
        except Exception:
            logger.warning(
                "Mind update failed for NPC %s, keeping its current state",
                npc.id, exc_info=True,
            )
            return npc
        return apply_mind_delta(npc, delta)

    results = await asyncio.gather(*(_refine(npc) for npc in targets))

    roster = list(npcs)
    for npc in results:
        roster[positions[npc.id]] = npc
    return roster
