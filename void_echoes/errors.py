"""Session-level errors raised by the turn controller."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from void_echoes.models import GameState


class SessionError(Exception):
    """Base for controller misuse."""


class ActionRejected(SessionError):
    """The action was refused without touching the state (empty, concurrent, wrong phase)."""


class NoActiveGame(SessionError):
    """There is no game in progress to act on."""


class TurnFailed(Exception):
    """The oracle failed while resolving a turn; nothing was applied.

    `retry()` re-submits the same action against the same pre-turn state.
    When `credential_required` is set, the caller should collect an API key
    before retrying.
    """

    def __init__(
        self,
        message: str,
        retry: Callable[[], Awaitable[GameState]],
        credential_required: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.credential_required = credential_required
        self._retry = retry

    async def retry(self) -> GameState:
        return await self._retry()
