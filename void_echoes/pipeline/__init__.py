"""Turn pipeline.

Executes one player turn:
  1. reducer:       commit_turn merges a Turn Proposal into the game state
                     and reports the touched NPCs; resume_act opens a new act.
  2. mind:          refine_npcs fans out one mind update per touched NPC.
  3. orchestrator:  TurnController sequences oracle call, commit, mind pass,
                     terminal transition and chronicle summaries.
"""

from void_echoes.pipeline.mind import apply_mind_delta, refine_npcs
from void_echoes.pipeline.orchestrator import TurnController
from void_echoes.pipeline.reducer import TurnCommit, commit_turn, resume_act

__all__ = [
    "TurnCommit",
    "TurnController",
    "apply_mind_delta",
    "commit_turn",
    "refine_npcs",
    "resume_act",
]
