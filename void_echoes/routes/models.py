"""Pydantic request bodies for API endpoints."""

from pydantic import BaseModel

from void_echoes.llm import ProviderFormat
from void_echoes.models import Difficulty


class NewGameBody(BaseModel):
    name: str
    bio: str = ""
    archetype: str
    vow: str | None = None
    difficulty: Difficulty = "normal"
    answers: list[str] | None = None  # world-building mode when set


class ActionBody(BaseModel):
    action: str


class LLMSettings(BaseModel):
    provider_url: str | None = None
    provider_format: ProviderFormat | None = None
    model: str | None = None
    api_key: str | None = None
    timeout: float | None = None


class UpdateSettings(BaseModel):
    llm: LLMSettings | None = None
    language: str | None = None
