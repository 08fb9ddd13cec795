"""Character creation: archetypes, vows and world-building questions.

Archetypes fix the starting stats (mental pollution always starts at 0):

  cautious_investigator  stamina  8 / stealth 10
  desperate_survivor     stamina 10 / stealth 12
  reluctant_fighter      stamina 12 / stealth  8

The archetype label, not its key, is what the oracle sees.
"""

from __future__ import annotations

from pydantic import BaseModel

from void_echoes.models import PlayerProfile, PlayerStats


class Archetype(BaseModel):
    key: str
    label: str
    description: str
    stamina: int
    stealth: int


ARCHETYPES: dict[str, Archetype] = {
    a.key: a
    for a in (
        Archetype(
            key="cautious_investigator",
            label="Cautious Investigator",
            description="Observant and careful. Notices what others miss.",
            stamina=8,
            stealth=10,
        ),
        Archetype(
            key="desperate_survivor",
            label="Desperate Survivor",
            description="Quick and quiet. Will do anything to live.",
            stamina=10,
            stealth=12,
        ),
        Archetype(
            key="reluctant_fighter",
            label="Reluctant Fighter",
            description="Tough and stubborn. Hates violence, endures it anyway.",
            stamina=12,
            stealth=8,
        ),
    )
}

VOWS: dict[str, str] = {
    "find_lost": "Find someone who went missing here.",
    "solve_mystery": "Uncover the truth behind what happened here.",
    "seek_artifact": "Recover an object that must not be left behind.",
}

WORLD_BUILDING_QUESTIONS: list[str] = [
    "Where does your story take place?",
    "What does the horror you face feel like?",
    "What do you fear losing most?",
]


def build_answers(answers: list[str]) -> list[dict[str, str]]:
    """Pair world-building answers with their questions, dropping blanks."""
    return [
        {"question": question, "answer": answer.strip()}
        for question, answer in zip(WORLD_BUILDING_QUESTIONS, answers)
        if answer and answer.strip()
    ]


def new_player(
    name: str, bio: str, archetype: str, vow: str | None = None
) -> tuple[PlayerProfile, PlayerStats]:
    """Build the profile and starting stats for a new player.

    Raises ValueError for an unknown archetype or vow key, or an empty name.
    """
    if not name.strip():
        raise ValueError("Player name must not be empty")
    chosen = ARCHETYPES.get(archetype)
    if chosen is None:
        raise ValueError(f"Unknown archetype: {archetype}")
    if vow is not None and vow not in VOWS:
        raise ValueError(f"Unknown vow: {vow}")

    profile = PlayerProfile(
        name=name.strip(),
        bio=bio.strip(),
        archetype=chosen.label,
        vow=VOWS[vow] if vow else "",
    )
    stats = PlayerStats(stamina=chosen.stamina, stealth=chosen.stealth, mental_pollution=0)
    return profile, stats
