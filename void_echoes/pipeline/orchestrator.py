"""Turn controller: owns one game session and runs each player turn end-to-end.

Turn flow:
  1. Reject empty input and any action while a turn is already resolving.
  2. Ask the oracle for a Turn Proposal against the pre-turn state.
  3. Commit the proposal (pipeline.reducer.commit_turn).
  4. Fan out one mind update per touched NPC and fan in (pipeline.mind).
  5. Evaluate the outcome:
       continue  → back to awaiting_action; maybe request a chronicle summary
       act_break → act_transition_pending until resume_act()
       victory / defeat → stay resolving for `terminal_delay` seconds, then
                          enter the terminal phase and delete the saved game

Any failure of the oracle call in step 2 leaves the state untouched and raises
TurnFailed carrying a retry bound to the same action and the same pre-turn
state (plus any chronicle summaries that landed in between).

Chronicle summaries run as detached tasks. Their results are posted back to
the controller and folded into the state only when no turn is resolving, so
a summary can never be overwritten by a turn that started before it landed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Literal

from void_echoes.errors import ActionRejected, NoActiveGame, TurnFailed
from void_echoes.llm import LLMError, MissingCredentialError
from void_echoes.models import Difficulty, GameState, PlayerProfile, PlayerStats, start_game
from void_echoes.oracle import Oracle, OracleError
from void_echoes.pipeline.mind import refine_npcs
from void_echoes.pipeline.reducer import CHRONICLE_WINDOW, TurnCommit, commit_turn, resume_act
from void_echoes.prompts import PromptError
from void_echoes.storage import Storage

logger = logging.getLogger(__name__)

Phase = Literal[
    "idle",
    "awaiting_action",
    "resolving",
    "act_transition_pending",
    "defeated",
    "victorious",
]

DEFAULT_TERMINAL_DELAY = 3.0

FAILURE_MESSAGE = "The connection to the other side was lost. Try again."
CREDENTIAL_MESSAGE = "An API key is required before the story can continue."

_ORACLE_ERRORS = (LLMError, OracleError, PromptError)


class TurnController:
    """Exclusive owner of the game-state bundle for one session.

    Args:
        oracle:         The narrative oracle. May be swapped between turns
                        (e.g. after the player supplies an API key).
        storage:        Save-game, echo log and config persistence.
        terminal_delay: Seconds between a terminal commit and the terminal phase.
    """

    def __init__(
        self,
        oracle: Oracle,
        storage: Storage,
        terminal_delay: float = DEFAULT_TERMINAL_DELAY,
    ) -> None:
        self.oracle = oracle
        self._storage = storage
        self._terminal_delay = terminal_delay
        self.state: GameState | None = None
        self.phase: Phase = "idle"
        self.terminal_text: str | None = None
        self.broken_rule: str | None = None
        self._tasks: set[asyncio.Task] = set()
        self._chronicle_inbox: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _enter(self, state: GameState) -> None:
        self.state = state
        self.phase = "act_transition_pending" if state.pending_act else "awaiting_action"
        self.terminal_text = None
        self.broken_rule = None
        self._chronicle_inbox.clear()

    def _leave(self) -> None:
        self.state = None
        self.phase = "idle"
        self.terminal_text = None
        self.broken_rule = None
        self._chronicle_inbox.clear()

    async def new_game(
        self,
        player: PlayerProfile,
        stats: PlayerStats,
        difficulty: Difficulty = "normal",
        answers: list[dict[str, str]] | None = None,
    ) -> GameState:
        """Generate a world and start a fresh session. Discards any saved game."""
        if self.phase == "resolving":
            raise ActionRejected("A turn is still resolving")

        previous = self.phase
        self.phase = "resolving"
        try:
            situation = await self.oracle.generate_initial_world(
                player, difficulty, self._storage.get_echoes(), answers
            )
        except Exception as e:
            self.phase = previous
            raise self._failure(
                e, lambda: self.new_game(player, stats, difficulty, answers)
            ) from e

        self._storage.delete_saved_game()
        state = start_game(situation, player, stats, difficulty)
        self._enter(state)
        logger.info("New game %s started (difficulty=%s)", state.game_id, difficulty)
        return state

    def continue_game(self) -> GameState:
        """Restore the saved game. CorruptSaveError propagates after the discard."""
        if self.phase == "resolving":
            raise ActionRejected("A turn is still resolving")
        state = self._storage.load_game()
        if state is None:
            raise NoActiveGame("There is no saved game to continue")
        self._enter(state)
        logger.info("Continued game %s at turn %d", state.game_id, state.turn_count)
        return state

    def save_and_exit(self) -> None:
        if self.state is None:
            raise NoActiveGame("There is no game in progress")
        if self.phase not in ("awaiting_action", "act_transition_pending"):
            raise ActionRejected(f"Cannot save while {self.phase}")
        self._storage.save_game(self.state)
        self._leave()

    def restart(self) -> list[str]:
        """Leave a finished game. Records the broken rule, if any, as an echo."""
        if self.phase not in ("defeated", "victorious"):
            raise ActionRejected(f"Cannot restart while {self.phase}")
        echoes = self._storage.get_echoes()
        if self.broken_rule:
            echoes = self._storage.add_echo(self.broken_rule)
        self._storage.delete_saved_game()
        self._leave()
        return echoes

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def apply_player_action(self, action: str) -> GameState:
        """Resolve one player action and return the new state."""
        if self.state is None:
            raise NoActiveGame("There is no game in progress")
        text = action.strip()
        if not text:
            raise ActionRejected("Action must not be empty")
        if self.phase != "awaiting_action":
            raise ActionRejected(f"Cannot act while {self.phase}")
        return await self._resolve(self.state, text)

    async def _retry_turn(self, before: GameState, action: str) -> GameState:
        current = self.state
        if (
            self.phase != "awaiting_action"
            or current is None
            or current.game_id != before.game_id
            or current.turn_count != before.turn_count
            or current.act != before.act
        ):
            raise ActionRejected("The failed turn can no longer be retried")
        # Only chronicle summaries can have landed since the failure
        return await self._resolve(current, action)

    async def _resolve(self, before: GameState, action: str) -> GameState:
        self.phase = "resolving"
        try:
            proposal = await self.oracle.propose_next_turn(before, action)
        except Exception as e:
            self.phase = "awaiting_action"
            raise self._failure(e, lambda: self._retry_turn(before, action)) from e

        commit = commit_turn(before, proposal, action)
        state = commit.state

        if commit.touched_npc_ids:
            scene_text = proposal.scene_description or commit.terminal_text or ""

            async def propose(npc):
                return await self.oracle.propose_npc_update(scene_text, action, npc)

            state.npcs = await refine_npcs(state.npcs, commit.touched_npc_ids, propose)

        self.state = state
        logger.info(
            "Turn %d committed for game %s (outcome=%s, events=%d)",
            state.turn_count, state.game_id, commit.outcome, len(commit.key_events),
        )

        if commit.outcome == "act_break":
            self.phase = "act_transition_pending"
            logger.info("Act %d closed for game %s", state.act, state.game_id)
        elif commit.outcome in ("victory", "defeat"):
            self._schedule_terminal(commit)
        else:
            self.phase = "awaiting_action"
            if commit.chronicle_due:
                self._request_chronicle(state)

        self._drain_chronicle()
        return self.state

    def resume_act(self) -> GameState:
        if self.phase != "act_transition_pending" or self.state is None:
            raise ActionRejected("No act transition is pending")
        commit = resume_act(self.state)
        self.state = commit.state
        self.phase = "awaiting_action"
        logger.info("Act %d began for game %s", self.state.act, self.state.game_id)
        self._drain_chronicle()
        return self.state

    def _failure(self, error: Exception, retry) -> TurnFailed:
        if isinstance(error, MissingCredentialError):
            logger.info("Oracle needs a credential: %s", error)
            return TurnFailed(CREDENTIAL_MESSAGE, retry, credential_required=True)
        if isinstance(error, _ORACLE_ERRORS):
            logger.error("Oracle call failed: %s", error)
        else:
            logger.exception("Oracle call failed unexpectedly")
        return TurnFailed(FAILURE_MESSAGE, retry)

    # ------------------------------------------------------------------
    # Terminal transition
    # ------------------------------------------------------------------

    def _schedule_terminal(self, commit: TurnCommit) -> None:
        self.terminal_text = commit.terminal_text
        self.broken_rule = commit.broken_rule
        phase: Phase = "victorious" if commit.outcome == "victory" else "defeated"
        if self._terminal_delay <= 0:
            self._finish(phase)
            return
        self._spawn(self._finish_later(phase))

    async def _finish_later(self, phase: Phase) -> None:
        await asyncio.sleep(self._terminal_delay)
        self._finish(phase)

    def _finish(self, phase: Phase) -> None:
        self.phase = phase
        self._storage.delete_saved_game()
        logger.info(
            "Game %s ended: %s", self.state.game_id if self.state else "?", phase
        )
        self._drain_chronicle()

    # ------------------------------------------------------------------
    # Chronicle
    # ------------------------------------------------------------------

    def _request_chronicle(self, state: GameState) -> None:
        events = list(state.key_events[-CHRONICLE_WINDOW:])
        if events:
            self._spawn(self._chronicle(state.game_id, events))

    async def _chronicle(self, game_id: str, events: list[str]) -> None:
        try:
            summary = await self.oracle.propose_summary(events)
        except Exception:
            logger.warning("Chronicle summary failed for game %s", game_id, exc_info=True)
            return
        if summary.strip():
            self._chronicle_inbox.append((game_id, summary.strip()))
            self._drain_chronicle()

    def _drain_chronicle(self) -> None:
        if self.phase == "resolving" or self.state is None:
            return
        for game_id, summary in self._chronicle_inbox:
            if game_id != self.state.game_id:
                logger.info("Dropping chronicle summary for inactive game %s", game_id)
                continue
            self.state = self.state.model_copy(
                update={"lore_summaries": [*self.state.lore_summaries, summary]}
            )
        self._chronicle_inbox.clear()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Await every pending background task (chronicle, terminal delay)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
