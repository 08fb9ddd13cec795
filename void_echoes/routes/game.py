"""Game session endpoints: character options, turns, save/continue, echoes."""

from fastapi import APIRouter, HTTPException, Request

from void_echoes.characters import ARCHETYPES, VOWS, WORLD_BUILDING_QUESTIONS, build_answers, new_player
from void_echoes.errors import ActionRejected, TurnFailed
from void_echoes.models import DIFFICULTY_LABELS
from void_echoes.pipeline.orchestrator import TurnController

from .models import ActionBody, NewGameBody

router = APIRouter()


def _session(request: Request) -> TurnController:
    return request.app.state.session


def _snapshot(request: Request) -> dict:
    session = _session(request)
    return {
        "phase": session.phase,
        "state": session.state.model_dump() if session.state else None,
        "terminal_text": session.terminal_text,
        "broken_rule": session.broken_rule,
        "has_saved_game": request.app.state.storage.has_saved_game(),
    }


async def _attempt(request: Request, call) -> dict:
    """Run a session call, remembering the retry of a failed oracle request."""
    try:
        await call()
    except TurnFailed as e:
        request.app.state.pending_retry = e
        raise
    request.app.state.pending_retry = None
    return _snapshot(request)


@router.get("/options")
async def get_options():
    """Archetypes, vows, difficulty tiers and world-building questions."""
    return {
        "archetypes": [a.model_dump() for a in ARCHETYPES.values()],
        "vows": VOWS,
        "difficulties": DIFFICULTY_LABELS,
        "questions": WORLD_BUILDING_QUESTIONS,
    }


@router.post("/game")
async def create_game(request: Request, body: NewGameBody):
    """Create a character and generate a new world."""
    try:
        profile, stats = new_player(body.name, body.bio, body.archetype, body.vow)
    except ValueError as e:
        raise HTTPException(422, str(e))
    answers = build_answers(body.answers) if body.answers is not None else None
    session = _session(request)
    return await _attempt(
        request, lambda: session.new_game(profile, stats, body.difficulty, answers)
    )


@router.get("/game")
async def get_game(request: Request):
    """Current session phase and state."""
    return _snapshot(request)


@router.post("/game/action")
async def game_action(request: Request, body: ActionBody):
    """Submit a free-text or suggested action."""
    session = _session(request)
    return await _attempt(request, lambda: session.apply_player_action(body.action))


@router.post("/game/retry")
async def retry_failed(request: Request):
    """Retry the last failed oracle request with its original input."""
    failed: TurnFailed | None = request.app.state.pending_retry
    if failed is None:
        raise ActionRejected("There is nothing to retry")
    return await _attempt(request, failed.retry)


@router.post("/game/act/resume")
async def resume_act(request: Request):
    """Leave the act-transition screen and start the next act."""
    _session(request).resume_act()
    return _snapshot(request)


@router.post("/game/save")
async def save_and_exit(request: Request):
    """Save the current game and return to the entry state."""
    _session(request).save_and_exit()
    return _snapshot(request)


@router.post("/game/continue")
async def continue_game(request: Request):
    """Restore the saved game."""
    _session(request).continue_game()
    return _snapshot(request)


@router.post("/game/restart")
async def restart_game(request: Request):
    """Leave a finished game, recording its broken rule as an echo."""
    echoes = _session(request).restart()
    request.app.state.pending_retry = None
    return {**_snapshot(request), "echoes": echoes}


@router.get("/echoes")
async def get_echoes(request: Request):
    """Broken rules from past runs, newest first."""
    return request.app.state.storage.get_echoes()
