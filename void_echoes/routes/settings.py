"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

from .models import UpdateSettings

router = APIRouter()


def _public(config: dict) -> dict:
    """Config as shown to the client: the API key itself never leaves."""
    llm = dict(config["llm"])
    llm["has_api_key"] = bool(llm.pop("api_key", ""))
    return {**config, "llm": llm}


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (LLM connection, narration language)."""
    return _public(request.app.state.storage.get_config())


@router.patch("/settings")
async def update_settings(request: Request, body: UpdateSettings):
    """Update app settings (partial merge) and reconnect the oracle."""
    fields = body.model_dump(exclude_none=True)
    config = request.app.state.storage.update_config(fields)
    request.app.state.refresh_oracle()
    return _public(config)
