import pytest

from void_echoes.models import (
    NPC,
    FirstScene,
    InitialSituation,
    PlayerProfile,
    PlayerStats,
    Survivor,
    WorldLore,
    start_game,
)
from void_echoes.storage import Storage


@pytest.fixture
def storage(tmp_path):
    """A fresh Storage rooted in a per-test temp dir."""
    return Storage(tmp_path / "data")


@pytest.fixture(autouse=True)
def no_env_api_key(monkeypatch):
    """Keep a developer's real key out of config tests."""
    monkeypatch.delenv("VOID_ECHOES_API_KEY", raising=False)


@pytest.fixture
def situation() -> InitialSituation:
    return InitialSituation(
        situation_description="The night shift at Ward 7 never ended.",
        world_lore=WorldLore(
            what_it_was="A children's hospital",
            what_happened="A fire on the top floor",
            entity_name="The Night Nurse",
            entity_description="A tall figure in a stained uniform",
            entity_motivation="She wants every bed filled",
            rules_origin="The hospital's old visiting rules",
            main_symbol="A red paper crane",
        ),
        rules_source="A laminated sign by the lift",
        rules=["Never run in the corridors"],
        all_rules=[
            "Never run in the corridors",
            "Never speak after midnight",
            "Always answer the nurse's bell",
        ],
        main_quest="Find a way off Ward 7",
        npcs=[
            NPC(
                id="npc_1", name="Minh", personality="Anxious, loyal",
                description="A porter in a torn jacket", background="Worked nights for ten years",
                goal="Find his sister", current_status="Hiding behind the desk",
                state="Afraid", trust=40,
            ),
            NPC(
                id="npc_2", name="Dr. Vance", personality="Cold, calculating",
                description="A surgeon who will not meet your eyes",
                background="Signed the fire inspection", goal="Keep the secret",
                current_status="Washing her hands", state="Neutral", trust=50,
            ),
        ],
        survivors=[Survivor(name="Minh"), Survivor(name="Lan"), Survivor(name="Dr. Vance")],
        world_state={"power_on": True, "floor": 7},
        first_scene=FirstScene(
            scene_description="The lift doors open on a dark corridor.",
            choices=["Step out", "Press the button again", "Call out"],
            introduced_npc_ids=["npc_1"],
        ),
    )


@pytest.fixture
def player() -> tuple[PlayerProfile, PlayerStats]:
    profile = PlayerProfile(name="An", bio="A night-shift nurse", archetype="Cautious Investigator")
    return profile, PlayerStats(stamina=8, stealth=10, mental_pollution=0)


@pytest.fixture
def state(situation, player):
    """A freshly started game with one visible NPC (npc_1, concealed)."""
    profile, stats = player
    return start_game(situation, profile, stats, "normal")
