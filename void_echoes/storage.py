"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database; the saved game is written and read wholesale, never
patched in place.

Directory layout:

    {base}/
      config.json     ← app configuration (defaults merged on read)
      savegame.json   ← the single saved GameState bundle
      echoes.json     ← last broken rules, newest first, at most 5
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from void_echoes.models import GameState

logger = logging.getLogger(__name__)

MAX_ECHOES = 5

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "https://generativelanguage.googleapis.com",
        "provider_format": "gemini",
        "model": "gemini-2.5-flash",
        "api_key": "",
        "timeout": 120,
    },
    "language": "en",
}


class CorruptSaveError(RuntimeError):
    """The saved game could not be read and has been discarded."""


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    @property
    def _save_file(self) -> Path:
        return self._base / "savegame.json"

    @property
    def _echo_file(self) -> Path:
        return self._base / "echoes.json"

    @property
    def _config_file(self) -> Path:
        return self._base / "config.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False))

    # ------------------------------------------------------------------
    # Saved game
    # ------------------------------------------------------------------

    def has_saved_game(self) -> bool:
        return self._save_file.is_file()

    def save_game(self, state: GameState) -> None:
        """Replace the saved game with a full snapshot of `state`."""
        tmp = self._save_file.with_suffix(".tmp")
        tmp.write_text(state.model_dump_json(indent=2))
        tmp.replace(self._save_file)
        logger.info("Saved game %s at turn %d", state.game_id, state.turn_count)

    def load_game(self) -> GameState | None:
        """Read the saved game, or None when there is none.

        An unreadable save is deleted and CorruptSaveError is raised.
        """
        path = self._save_file
        if not path.is_file():
            return None
        try:
            state = GameState.model_validate_json(path.read_text())
        except (ValidationError, ValueError, OSError) as e:
            logger.warning("Discarding unreadable saved game: %s", e)
            path.unlink(missing_ok=True)
            raise CorruptSaveError("The saved game was damaged and has been discarded") from e
        logger.info("Loaded game %s at turn %d", state.game_id, state.turn_count)
        return state

    def delete_saved_game(self) -> None:
        self._save_file.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Echo log
    # ------------------------------------------------------------------

    def get_echoes(self) -> list[str]:
        path = self._echo_file
        if not path.is_file():
            return []
        try:
            data = self._read_json(path)
        except json.JSONDecodeError:
            logger.warning("Echo log is not valid JSON, starting a fresh one")
            return []
        if not isinstance(data, list):
            return []
        return [e for e in data if isinstance(e, str)][:MAX_ECHOES]

    def add_echo(self, rule: str) -> list[str]:
        """Push a broken rule to the front of the echo log. Returns the new log."""
        rule = rule.strip()
        echoes = self.get_echoes()
        if rule:
            echoes = [rule] + [e for e in echoes if e != rule]
            echoes = echoes[:MAX_ECHOES]
            self._write_json(self._echo_file, echoes)
        return echoes

    def clear_echoes(self) -> None:
        self._echo_file.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self) -> dict[str, Any]:
        """Read config, returning defaults merged with stored values.

        An empty `llm.api_key` falls back to the VOID_ECHOES_API_KEY
        environment variable.
        """
        config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
        path = self._config_file
        if path.is_file():
            stored = self._read_json(path)
            if isinstance(stored.get("llm"), dict):
                config["llm"].update(stored["llm"])
            if "language" in stored:
                config["language"] = stored["language"]
        if not config["llm"]["api_key"]:
            config["llm"]["api_key"] = os.getenv("VOID_ECHOES_API_KEY", "")
        return config

    def update_config(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into config and persist. Returns full config."""
        config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
        if self._config_file.is_file():
            stored = self._read_json(self._config_file)
            config["llm"].update(stored.get("llm", {}))
            config["language"] = stored.get("language", config["language"])
        if isinstance(fields.get("llm"), dict):
            config["llm"].update(fields["llm"])
        if "language" in fields:
            config["language"] = fields["language"]
        self._write_json(self._config_file, config)
        return self.get_config()
