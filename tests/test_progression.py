import json

from neon_spinner.config.settings import DEFAULT_UNLOCKED_SKINS
from neon_spinner.models.entities import LeaderboardEntry, Session, Skin
from neon_spinner.services.persistence import GatewayError, PersistenceGateway
from neon_spinner.services.progression_service import (
    ProgressionService,
    build_skin_set,
    level_for_xp,
    level_progress,
    merge_unlocked_skins,
    parse_equipped_skin,
    parse_unlocked_skins,
    rank_bonus_symbols,
    resolve_equipped_skin,
    rewards_up_to,
    xp_for_level,
)


class _FailingGateway(PersistenceGateway):
    def get_session(self):
        raise GatewayError("network")

    def save_records(self, *args, **kwargs):
        raise GatewayError("network")

    def unlock_skin(self, skin_type):
        raise GatewayError("network")


def test_level_of_each_threshold_is_exact():
    for level in range(1, 80):
        assert level_for_xp(xp_for_level(level)) == level
        if level > 1:
            assert level_for_xp(xp_for_level(level) - 1) == level - 1


def test_level_is_non_decreasing():
    levels = [level_for_xp(xp) for xp in range(0, 20000, 7)]
    assert levels == sorted(levels)
    assert level_for_xp(0) == 1
    assert level_for_xp(-5) == 1


def test_level_each_step_costs_fifty_more():
    for level in range(2, 30):
        step = xp_for_level(level) - xp_for_level(level - 1)
        assert step == 50 * (level - 1)


def test_sixty_xp_is_level_two():
    assert level_for_xp(60) == 2
    assert level_progress(60) == (2, 10, 100)


def test_rewards_up_to_is_cumulative():
    track = {1: "a", 3: "b", 7: "c"}
    assert rewards_up_to(3, track) == [(1, "a"), (3, "b")]
    assert rewards_up_to(0, track) == []


def _board():
    return [
        LeaderboardEntry("luis", recordEvasion=100, recordDestruction=5),
        LeaderboardEntry("ana", recordEvasion=50, recordDestruction=90),
        LeaderboardEntry("mario", recordEvasion=10, recordDestruction=20),
        LeaderboardEntry("juan", recordEvasion=1, recordDestruction=1),
    ]


def test_rank_bonus_union_is_deduplicated():
    symbols = rank_bonus_symbols(_board(), "ana")
    assert sorted(symbols) == sorted(["#", "⚵", "💥"])
    assert len(symbols) == 3


def test_rank_bonus_third_place_only_gets_hash():
    assert rank_bonus_symbols(_board(), "mario") == ["#"]
    assert rank_bonus_symbols(_board(), "juan") == []


def test_rank_bonus_merge_is_idempotent():
    csv = ",".join(DEFAULT_UNLOCKED_SKINS)
    symbols = rank_bonus_symbols(_board(), "ana")
    once = merge_unlocked_skins(csv, symbols)
    twice = merge_unlocked_skins(once, rank_bonus_symbols(_board(), "ana"))
    assert once == twice
    assert len(parse_unlocked_skins(twice)) == len(DEFAULT_UNLOCKED_SKINS) + 3


def test_parse_unlocked_skins_strips_blanks_and_duplicates():
    assert parse_unlocked_skins(" X, ,●,X,,") == ["X", "●"]
    assert parse_unlocked_skins(None) == []
    assert parse_unlocked_skins("") == []


def test_parse_equipped_skin_rejects_garbage():
    assert parse_equipped_skin("{oops") is None
    assert parse_equipped_skin('{"color": "red"}') is None
    assert parse_equipped_skin("[1, 2]") is None
    assert parse_equipped_skin("") is None
    assert parse_equipped_skin('{"type": "★", "color": "red"}') == Skin("★", "red")


def test_build_skin_set_falls_back_to_defaults(rng):
    assert [s.type for s in build_skin_set([], rng)] == DEFAULT_UNLOCKED_SKINS
    assert [s.type for s in build_skin_set(["nope"], rng)] == DEFAULT_UNLOCKED_SKINS
    assert [s.type for s in build_skin_set(["Y", "X"], rng)] == ["X", "Y"]


def test_resolve_equipped_skin_requires_membership():
    skins = [Skin("X", "red"), Skin("●", "blue")]
    assert resolve_equipped_skin(skins, Skin("●", "")) == Skin("●", "blue")
    assert resolve_equipped_skin(skins, Skin("●", "green")) == Skin("●", "green")
    assert resolve_equipped_skin(skins, Skin("🗿", "green")) == Skin("X", "red")
    assert resolve_equipped_skin(skins, None) == Skin("X", "red")


def test_load_session_claims_level_one_reward(session, gateway, store, rng):
    service = ProgressionService(session, gateway, rng)
    profile = service.load_session()

    assert profile.loggedIn
    assert session.username == "ana"
    assert session.current_skin.type == "X"
    owned = parse_unlocked_skins(store.get_profile("ana").unlockedSkinsCsv)
    assert "Y" in owned
    assert "🥒" not in owned


def test_sixty_point_run_unlocks_levels_one_and_two(session, gateway, store, rng):
    service = ProgressionService(session, gateway, rng)
    service.load_session()

    assert service.record_run(60, 12) == 60
    assert session.xp == 60
    owned = parse_unlocked_skins(store.get_profile("ana").unlockedSkinsCsv)
    assert "Y" in owned and "🥒" in owned
    assert "I" not in owned
    assert {"Y", "🥒"} <= {s.type for s in session.player_skins}


def test_premium_track_needs_entitlement(session, gateway, store, rng):
    store.set_premium("ana")
    service = ProgressionService(session, gateway, rng)
    service.load_session()

    assert session.has_premium
    assert "𖣘" in parse_unlocked_skins(store.get_profile("ana").unlockedSkinsCsv)


def test_claim_is_idempotent(session, gateway, rng):
    service = ProgressionService(session, gateway, rng)
    service.load_session()
    session.xp = 500

    first = service.check_and_claim_rewards()
    second = service.check_and_claim_rewards()
    assert first
    assert second == []


def test_failing_gateway_degrades_to_guest(session, rng):
    service = ProgressionService(session, _FailingGateway(), rng)
    profile = service.load_session()

    assert not profile.loggedIn
    assert session.username is None
    assert session.loaded
    assert [s.type for s in session.player_skins] == DEFAULT_UNLOCKED_SKINS
    assert session.current_skin in session.player_skins


def test_failing_save_keeps_local_state(session, rng):
    service = ProgressionService(session, _FailingGateway(), rng)
    session.username = "ana"
    session.xp = 10

    assert service.record_run(40, 5) is None
    assert session.xp == 10
    assert service.check_and_claim_rewards() == []


def test_malformed_equipped_skin_falls_back(session, gateway, store, rng):
    store._users["ana"].equippedSkin = "{oops"
    service = ProgressionService(session, gateway, rng)
    service.load_session()
    assert session.current_skin.type == session.player_skins[0].type


def test_equipped_skin_not_owned_falls_back(session, gateway, store, rng):
    store._users["ana"].equippedSkin = json.dumps({"type": "🗿", "color": "red"})
    service = ProgressionService(session, gateway, rng)
    service.load_session()
    assert session.current_skin.type == "X"


def test_equip_skin_persists_owned_skin(session, gateway, store, rng):
    service = ProgressionService(session, gateway, rng)
    service.load_session()

    service.equip_skin("★", "hsl(60,100%,50%)")
    stored = parse_equipped_skin(store.get_profile("ana").equippedSkinJson)
    assert stored == Skin("★", "hsl(60,100%,50%)")


def test_equip_skin_rejects_locked_skin(session, gateway, rng):
    service = ProgressionService(session, gateway, rng)
    service.load_session()
    try:
        service.equip_skin("🗿")
    except ValueError:
        pass
    else:
        raise AssertionError("locked skin was equipped")


def test_guest_gets_default_skins(rng):
    session = Session()
    from neon_spinner.services.persistence import LocalGateway
    from neon_spinner.services.user_store import UserStore

    service = ProgressionService(session, LocalGateway(UserStore()), rng)
    service.load_session()
    assert session.username is None
    assert session.current_skin.type in DEFAULT_UNLOCKED_SKINS
