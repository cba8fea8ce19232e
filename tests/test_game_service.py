import asyncio
import json
import threading

import pytest

from neon_spinner.config.settings import GAME_HEIGHT, GAME_WIDTH, INITIAL_SPEED, SPAWN_TIME
from neon_spinner.models.entities import GameMode, GamePhase, PowerUpKind, Projectile
from neon_spinner.services.game_service import AuthenticationRequired, GameService
from neon_spinner.services.persistence import GatewayError, LocalGateway, PersistenceGateway
from neon_spinner.services.progression_service import parse_unlocked_skins
from neon_spinner.services.timer_registry import TimerRegistry
from neon_spinner.services.user_store import UserStore


class _BrokenGateway(PersistenceGateway):
    def get_session(self):
        raise GatewayError("offline")

    def save_records(self, *args, **kwargs):
        raise GatewayError("offline")


@pytest.fixture
def game(store, timers, rng):
    return GameService(gateway=LocalGateway(store, "ana"), timers=timers, rng=rng)


def _hit_player(game):
    player = game.session.player
    game.session.projectiles.append(
        Projectile(x=player.x, y=player.y, vx=0, vy=0, r=14, color="red")
    )


def test_guest_cannot_start_when_login_required(timers, rng):
    game = GameService(
        gateway=LocalGateway(UserStore()), timers=timers, rng=rng, require_login=True
    )
    with pytest.raises(AuthenticationRequired):
        game.start_game(GameMode.EVASION)
    assert game.session.phase is GamePhase.MENU
    assert timers.pending == 0


def test_guest_can_play_without_login(timers, rng):
    game = GameService(
        gateway=LocalGateway(UserStore()), timers=timers, rng=rng, require_login=False
    )
    game.start_game("evasion")
    assert game.session.playing


def test_start_game_resets_run_state(game):
    session = game.session
    session.score = 99
    session.projectile_speed = 30
    session.spawn_time = 120

    game.start_game(GameMode.EVASION)

    assert session.phase is GamePhase.PLAYING
    assert session.playing
    assert session.score == 0
    assert session.projectile_speed == INITIAL_SPEED
    assert session.spawn_time == SPAWN_TIME
    assert (session.player.x, session.player.y) == (GAME_WIDTH / 2, GAME_HEIGHT / 2)
    assert session.run_id == 1
    assert len(session.projectiles) == 1
    assert not any(p.show or p.active for p in session.power_ups.values())


def test_unknown_mode_is_rejected(game):
    with pytest.raises(ValueError):
        game.start_game("pacifist")


def test_countdown_ends_destruction_run_once(game, timers, store, monkeypatch):
    saves = []
    monkeypatch.setattr(game.progression, "save_run", lambda run: saves.append(run.score))
    game.start_game(GameMode.DESTRUCTION)

    for _ in range(310):
        timers.advance(100)
        assert game.session.destruction_time_left >= 0

    assert game.session.destruction_time_left == 0
    assert game.session.phase is GamePhase.GAME_OVER
    assert not game.session.playing
    assert timers.pending == 0

    timers.advance(5000)
    assert saves == [0]


def test_countdown_reaches_zero_after_thirty_seconds(game, timers):
    game.start_game(GameMode.DESTRUCTION)
    timers.advance(29900)
    assert game.session.phase is GamePhase.PLAYING
    assert game.session.destruction_time_left == pytest.approx(0.1)
    timers.advance(100)
    assert game.session.phase is GamePhase.GAME_OVER


def test_god_mode_outlives_the_countdown(game, timers):
    game.set_dev_mode(True)
    game.dev_command("god_mode")
    game.start_game(GameMode.DESTRUCTION)

    timers.advance(31000)

    assert game.session.phase is GamePhase.PLAYING
    assert game.session.destruction_time_left == 0

    game.dev_command("add_time")
    assert game.session.destruction_time_left == 10
    timers.advance(1000)
    assert game.session.destruction_time_left == pytest.approx(9)


def test_evasion_hit_ends_run_and_saves(game, timers, store):
    game.start_game(GameMode.EVASION)
    game.session.score = 7
    run_id = game.session.run_id
    _hit_player(game)

    events = game.update()

    assert {"type": "game_over", "score": 7} in events
    assert game.session.phase is GamePhase.GAME_OVER
    assert timers.pending == 0
    assert store.get_profile("ana").xp == 7

    # A spawn callback that slipped through does nothing
    assert game.spawner.spawn_projectile(run_id) is None
    assert game.update() == []
    assert game.session.score == 7


def test_sixty_point_run_unlocks_battle_pass_rewards(game, store):
    game.start_game(GameMode.DESTRUCTION)
    game.session.score = 60
    assert game.end_game()

    assert game.session.xp == 60
    owned = parse_unlocked_skins(store.get_profile("ana").unlockedSkinsCsv)
    assert {"Y", "🥒"} <= set(owned)
    assert store.get_profile("ana").recordDestruction == 0


def test_end_game_only_from_playing(game):
    assert not game.end_game()
    game.start_game(GameMode.EVASION)
    assert game.end_game()
    assert not game.end_game()


def test_failed_save_does_not_break_game_over(timers, rng):
    game = GameService(
        gateway=_BrokenGateway(), timers=timers, rng=rng, require_login=False
    )
    game.start_game(GameMode.EVASION)
    game.session.score = 3
    assert game.end_game()
    assert game.session.phase is GamePhase.GAME_OVER


def test_retry_only_from_game_over(game):
    game.start_game(GameMode.DESTRUCTION)
    assert not game.retry()

    game.end_game()
    assert game.retry()
    assert game.session.phase is GamePhase.PLAYING
    assert game.session.mode is GameMode.DESTRUCTION
    assert game.session.run_id == 2


def test_back_to_menu_tears_down_and_reloads(game, timers):
    game.start_game(GameMode.EVASION)
    game.back_to_menu()

    assert game.session.phase is GamePhase.MENU
    assert not game.session.playing
    assert timers.pending == 0
    assert game.session.projectiles == []
    assert game.session.loaded
    assert game.session.username == "ana"


def test_restart_cancels_previous_run_timers(game, timers):
    game.start_game(GameMode.DESTRUCTION)
    game.end_game()
    game.start_game(GameMode.EVASION)

    timers.advance(31000)
    assert game.session.destruction_time_left == 30


def test_pointer_move_is_clamped(game):
    game.pointer_move(10, 10)
    assert game.session.player.x == 0

    game.start_game(GameMode.EVASION)
    game.pointer_move(-40, 5000)
    assert (game.session.player.x, game.session.player.y) == (0, GAME_HEIGHT)
    game.pointer_move(300, 200)
    assert (game.session.player.x, game.session.player.y) == (300, 200)


def test_dev_commands_need_dev_mode(game):
    game.start_game(GameMode.EVASION)
    assert not game.dev_command("god_mode")
    assert not game.session.god_mode

    game.set_dev_mode(True)
    assert game.dev_command("shield")
    assert game.session.effect_active(PowerUpKind.SHIELD)
    assert game.dev_command("shield")
    assert not game.session.effect_active(PowerUpKind.SHIELD)
    assert not game.dev_command("fly")

    game.dev_command("god_mode")
    game.set_dev_mode(False)
    assert not game.session.god_mode


def test_equip_skin_goes_through_progression(game, store):
    game.load_session()
    skin = game.equip_skin("●")
    assert game.session.current_skin == skin
    assert json.loads(store.get_profile("ana").equippedSkinJson)["type"] == "●"


def test_snapshot_is_json_ready(game):
    game.start_game(GameMode.DESTRUCTION)
    game.update()
    snapshot = game.snapshot()

    assert snapshot["phase"] == "playing"
    assert snapshot["mode"] == "destruction"
    assert snapshot["level"] == 1
    assert snapshot["timeLeft"] == 30
    assert len(snapshot["powerUps"]) == 3
    json.dumps(snapshot)


def test_game_over_save_runs_off_the_loop(store, rng):
    async def scenario():
        game = GameService(
            gateway=LocalGateway(store, "ana"), timers=TimerRegistry(), rng=rng
        )
        game.start_game(GameMode.EVASION)
        game.session.score = 12
        game.end_game()
        assert game._background
        await asyncio.gather(*list(game._background))
        return game

    game = asyncio.run(scenario())
    assert game.session.xp == 12
    assert store.get_profile("ana").xp == 12


def test_session_record_follows_mode(session):
    session.record_evasion = 4
    session.record_destruction = 9
    assert session.record == 4
    session.mode = GameMode.DESTRUCTION
    assert session.record == 9


def test_reset_run_clears_power_ups(session):
    session.power_ups[PowerUpKind.SHIELD].active = True
    session.destruction_bonus_counter = 7
    session.reset_run(GAME_WIDTH, GAME_HEIGHT)
    assert not session.effect_active(PowerUpKind.SHIELD)
    assert session.destruction_bonus_counter == 0
    assert session.destruction_time_left == 30


class _SlowGateway(LocalGateway):
    """Holds the run save until the session has been reloaded."""

    def __init__(self, store, username):
        super().__init__(store, username)
        self.hold = False
        self.reloaded = threading.Event()

    def get_session(self):
        if self.hold:
            self.reloaded.set()
        return super().get_session()

    def save_records(self, *args, **kwargs):
        if self.hold:
            self.reloaded.wait(2)
        return super().save_records(*args, **kwargs)


def test_slow_save_is_applied_on_the_loop_after_menu_reload(store, rng):
    async def scenario():
        gateway = _SlowGateway(store, "ana")
        game = GameService(gateway=gateway, timers=TimerRegistry(), rng=rng)
        game.start_game(GameMode.EVASION)

        applied_on = []
        apply_run = game.progression.apply_run

        def spy(run, result):
            applied_on.append(threading.get_ident())
            return apply_run(run, result)

        game.progression.apply_run = spy
        gateway.hold = True
        game.session.score = 60
        game.end_game()

        await asyncio.sleep(0.05)
        game.back_to_menu()
        await asyncio.gather(*list(game._background))
        return game, applied_on, threading.get_ident()

    game, applied_on, loop_thread = asyncio.run(scenario())
    assert applied_on == [loop_thread]
    assert game.session.xp == 60
    assert store.get_profile("ana").xp == 60
    assert {"Y", "🥒"} <= {s.type for s in game.session.player_skins}


def test_save_run_leaves_session_alone(game, store):
    game.start_game(GameMode.DESTRUCTION)
    game.session.score = 60
    run = game.progression.prepare_run(60, 5)

    new_xp, granted = game.progression.save_run(run)

    assert new_xp == 60
    assert "🥒" in granted
    assert game.session.xp == 0
    assert "🥒" not in {s.type for s in game.session.player_skins}


def test_guest_run_is_not_saved(timers, rng):
    game = GameService(
        gateway=LocalGateway(UserStore()), timers=timers, rng=rng, require_login=False
    )
    game.start_game(GameMode.EVASION)
    assert game.progression.prepare_run(5, 1) is None
    assert game.end_game()


def test_dev_toggle_retires_a_shown_power_up(game, timers):
    game.start_game(GameMode.EVASION)
    multiplier = game.session.power_ups[PowerUpKind.MULTIPLIER]
    assert game.spawner.spawn_power_up(PowerUpKind.MULTIPLIER)

    game.set_dev_mode(True)
    game.dev_command("multiplier")

    assert multiplier.active
    assert not multiplier.show
    assert multiplier.visibility_timer is None

    timers.advance(4500)
    assert multiplier.active and not multiplier.show
    timers.advance(500)
    assert not multiplier.active


def test_broken_record_is_saved_before_the_run_ends(game, store):
    game.start_game(GameMode.EVASION)
    game.session.projectiles.append(
        Projectile(x=-60, y=100, vx=0, vy=0, r=14, color="red")
    )

    events = game.update()
    assert any(e["type"] == "record" for e in events)

    game.shutdown()
    profile = store.get_profile("ana")
    assert profile.recordEvasion == 1
    assert profile.xp == 0
