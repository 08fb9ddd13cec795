"""FastAPI API endpoints under /api.

Endpoint groups: game session (new game, state, action, retry, act resume,
save, continue, restart), options for character creation, the echo log,
and settings. The session itself lives on `app.state.session`.
"""

from fastapi import APIRouter

from .game import router as game_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)
