import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from void_echoes.errors import ActionRejected, NoActiveGame, TurnFailed
from void_echoes.llm import LLM, from_config
from void_echoes.oracle import Oracle
from void_echoes.pipeline.orchestrator import DEFAULT_TERMINAL_DELAY, TurnController
from void_echoes.routes import router
from void_echoes.storage import CorruptSaveError, Storage

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(
    data_dir: Path | None = None,
    llm: LLM | None = None,
    terminal_delay: float | None = None,
) -> FastAPI:
    """Build the API app. A given `llm` is used as-is and survives settings changes."""
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    if terminal_delay is None:
        terminal_delay = float(os.getenv("VOID_ECHOES_TERMINAL_DELAY", DEFAULT_TERMINAL_DELAY))
    storage = Storage(resolved)

    def build_oracle() -> Oracle:
        config = storage.get_config()
        return Oracle(llm or from_config(config["llm"]), language=config["language"])

    app = FastAPI(title="Void Echoes")
    app.state.storage = storage
    app.state.session = TurnController(build_oracle(), storage, terminal_delay=terminal_delay)
    app.state.pending_retry = None

    def refresh_oracle() -> None:
        app.state.session.oracle = build_oracle()

    app.state.refresh_oracle = refresh_oracle
    app.include_router(router, prefix="/api")

    @app.exception_handler(ActionRejected)
    async def action_rejected(request: Request, exc: ActionRejected):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NoActiveGame)
    async def no_active_game(request: Request, exc: NoActiveGame):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(CorruptSaveError)
    async def corrupt_save(request: Request, exc: CorruptSaveError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(TurnFailed)
    async def turn_failed(request: Request, exc: TurnFailed):
        if exc.credential_required:
            return JSONResponse(
                status_code=401,
                content={"detail": exc.message, "credential_required": True},
            )
        return JSONResponse(status_code=502, content={"detail": exc.message, "retryable": True})

    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
