"""Narrative oracle: prompt in, validated envelope out.

The Oracle renders a Handlebars prompt for one stage, sends it through the
injected LLM callable, strips markdown fences from the answer and validates
the JSON against the matching pydantic model. Nothing that leaves this
module is unvalidated.

Transport errors (`LLMError`, `MissingCredentialError`) propagate untouched
so the caller can tell a missing key apart from everything else. A reply
that is not JSON or does not fit the envelope raises `OracleError`.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ValidationError

from void_echoes import prompts
from void_echoes.llm import LLM
from void_echoes.models import NPC, Difficulty, GameState, InitialSituation, PlayerProfile
from void_echoes.proposals import MindDelta, TurnProposal

logger = logging.getLogger(__name__)

LANGUAGES: dict[str, str] = {
    "en": "English",
    "vi": "Vietnamese",
}


class OracleError(RuntimeError):
    """Raised when the oracle's answer cannot be turned into an envelope."""


class _Summary(BaseModel):
    summary: str


def _parse_json_output(stage: str, text: str) -> dict:
    """Parse JSON from LLM output, stripping markdown fences."""
    if not isinstance(text, str):
        raise OracleError(f"The {stage} answer was not text")
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Oracle %s output is not valid JSON: %s", stage, e)
        raise OracleError(f"The {stage} answer was not valid JSON") from e
    if not isinstance(data, dict):
        logger.warning("Oracle %s output is a %s, not an object", stage, type(data).__name__)
        raise OracleError(f"The {stage} answer was not a JSON object")
    return data


class Oracle:
    """Typed front for the four oracle operations.

    Args:
        llm:       Any callable matching the `LLM` protocol.
        language:  Language code the narration is requested in.
        templates: Optional per-stage template overrides, keyed by stage name.
    """

    def __init__(
        self,
        llm: LLM,
        language: str = "en",
        templates: dict[str, str] | None = None,
    ) -> None:
        self._llm = llm
        self.language = LANGUAGES.get(language, language)
        self._templates = {
            "world": prompts.WORLD_PROMPT,
            "turn": prompts.TURN_PROMPT,
            "npc_mind": prompts.NPC_MIND_PROMPT,
            "summary": prompts.SUMMARY_PROMPT,
            **(templates or {}),
        }

    async def _ask(self, stage: str, context: dict, model: type[BaseModel]):
        prompt = prompts.render_prompt(self._templates[stage], context)
        text = await self._llm(stage, prompt)
        data = _parse_json_output(stage, text)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Oracle %s output failed validation: %s", stage, e)
            raise OracleError(f"The {stage} answer did not match the expected shape") from e

    async def generate_initial_world(
        self,
        player: PlayerProfile,
        difficulty: Difficulty,
        echoes: list[str],
        answers: list[dict[str, str]] | None = None,
    ) -> InitialSituation:
        context = prompts.world_context(player, difficulty, echoes, answers, self.language)
        return await self._ask("world", context, InitialSituation)

    async def propose_next_turn(self, state: GameState, action: str) -> TurnProposal:
        context = prompts.turn_context(state, action, self.language)
        return await self._ask("turn", context, TurnProposal)

    async def propose_npc_update(self, scene: str, action: str, npc: NPC) -> MindDelta:
        context = prompts.npc_mind_context(scene, action, npc, self.language)
        return await self._ask("npc_mind", context, MindDelta)

    async def propose_summary(self, events: list[str]) -> str:
        context = prompts.summary_context(events, self.language)
        result = await self._ask("summary", context, _Summary)
        return result.summary
