# neon_spinner/services/game_service.py
"""Core game logic and state management."""

import asyncio
import logging
import random
import time
from dataclasses import asdict
from typing import List, Optional, Union

from neon_spinner.config.settings import *
from neon_spinner.models.entities import (
    GameMode,
    GamePhase,
    PowerUpKind,
    Session,
    SessionProfile,
    Skin,
)
from neon_spinner.services.collision_service import CollisionService
from neon_spinner.services.persistence import LocalGateway, PersistenceGateway
from neon_spinner.services.progression_service import ProgressionService, level_progress
from neon_spinner.services.spawn_service import SpawnService
from neon_spinner.services.timer_registry import TimerRegistry
from neon_spinner.services.user_store import UserStore
from neon_spinner.utils.helpers import clamp

logger = logging.getLogger(__name__)


class AuthenticationRequired(Exception):
    """Raised when a run is started without a logged-in user."""


class GameService:
    """Main game service: owns the session and drives the mode state machine."""

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        timers=None,
        rng=random,
        width: float = GAME_WIDTH,
        height: float = GAME_HEIGHT,
        require_login: bool = REQUIRE_LOGIN,
        session: Optional[Session] = None,
    ):
        self.session = session or Session()
        self.gateway = gateway or LocalGateway(UserStore())
        self.timers = timers or TimerRegistry()
        self.rng = rng
        self.width = width
        self.height = height
        self.require_login = require_login

        self.spawner = SpawnService(self.session, self.timers, rng, width, height)
        self.collisions = CollisionService(
            self.session, self.timers, self.end_game, rng, width, height
        )
        self.progression = ProgressionService(self.session, self.gateway, rng)

        self._countdown = None
        self._background = set()

    # Session
    def load_session(self) -> SessionProfile:
        """Load the stored profile; failures degrade to a guest session."""
        return self.progression.load_session()

    def equip_skin(self, skin_type: str, color: Optional[str] = None) -> Skin:
        return self.progression.equip_skin(skin_type, color)

    # State machine
    def start_game(self, mode: Union[GameMode, str]):
        """Reset the run state and start playing mode."""
        mode = GameMode(mode)
        session = self.session
        if not session.loaded:
            self.load_session()
        if self.require_login and not session.username:
            raise AuthenticationRequired("log in to play")

        self.timers.cancel_all()
        self._countdown = None

        session.mode = mode
        session.reset_run(self.width, self.height)
        session.run_id += 1
        session.playing = True
        session.phase = GamePhase.PLAYING
        session.run_started_at = time.monotonic()

        self.spawner.start()
        if mode is GameMode.DESTRUCTION:
            self._start_countdown()

        logger.info(
            "Run %d started: %s mode for %s",
            session.run_id,
            mode.value,
            session.username or "guest",
        )

    def retry(self) -> bool:
        """Start a new run in the same mode straight from game over."""
        if self.session.phase is not GamePhase.GAME_OVER:
            return False
        self.start_game(self.session.mode)
        return True

    def back_to_menu(self):
        """Tear the run down and reload the stored profile."""
        session = self.session
        self.timers.cancel_all()
        self._countdown = None
        session.playing = False
        session.phase = GamePhase.MENU
        session.reset_run(self.width, self.height)
        session.loaded = False
        self.load_session()

    def end_game(self) -> bool:
        """Move Playing to GameOver; return False if the run keeps going."""
        session = self.session
        if session.phase is not GamePhase.PLAYING:
            return False

        self.timers.cancel(self._countdown)
        self._countdown = None

        if session.god_mode:
            logger.debug("God mode: ignoring game over")
            return False

        session.playing = False
        session.phase = GamePhase.GAME_OVER
        self.timers.cancel_all()

        elapsed = 0
        if session.run_started_at is not None:
            elapsed = max(0, int(time.monotonic() - session.run_started_at))
            session.run_started_at = None

        logger.info(
            "Run %d over: %s scored %d in %ds",
            session.run_id,
            session.username or "guest",
            session.score,
            elapsed,
        )
        run = self.progression.prepare_run(session.score, elapsed)
        if run is not None:
            self._run_in_background(
                self.progression.save_run,
                run,
                on_done=lambda result: self.progression.apply_run(run, result),
            )
        return True

    def shutdown(self):
        """Cancel everything; used when the player disconnects."""
        self.timers.cancel_all()
        self._countdown = None
        self.session.playing = False

    # Destruction countdown
    def _start_countdown(self):
        self.session.destruction_time_left = DESTRUCTION_TOTAL_TIME
        self.timers.cancel(self._countdown)
        self._countdown = self.timers.schedule_repeating(
            self._tick_countdown, COUNTDOWN_INTERVAL
        )

    def _tick_countdown(self):
        session = self.session
        if not session.playing:
            return

        session.destruction_time_left = round(
            session.destruction_time_left - COUNTDOWN_STEP, 1
        )
        if session.destruction_time_left <= 0:
            session.destruction_time_left = 0
            self.timers.cancel(self._countdown)
            self._countdown = None
            self.end_game()

    # Per-frame
    def pointer_move(self, x: float, y: float):
        """Move the player to the pointer while a run is in progress."""
        if not self.session.playing:
            return
        self.session.player.x = clamp(float(x), 0, self.width)
        self.session.player.y = clamp(float(y), 0, self.height)

    def update(self) -> List[dict]:
        """Advance the simulation by one tick."""
        if not self.session.playing:
            return []
        events = self.collisions.step()
        if any(event["type"] == "record" for event in events):
            self._save_records()
        return events

    def _save_records(self):
        """Store a record as soon as it is broken."""
        session = self.session
        if not session.username:
            return
        self._run_in_background(
            self.progression.save_best_records,
            session.record_evasion,
            session.record_destruction,
        )

    # Debug
    def set_dev_mode(self, enabled: bool):
        self.session.dev_mode = bool(enabled)
        if not enabled:
            self.session.god_mode = False
        logger.info("Dev mode %s", "on" if enabled else "off")

    def dev_command(self, command: str) -> bool:
        """Apply a debug toggle; ignored unless dev mode is on."""
        session = self.session
        if not session.dev_mode:
            return False

        if command == "god_mode":
            session.god_mode = not session.god_mode
        elif command in ("multiplier", "shield"):
            kind = PowerUpKind(command)
            if session.effect_active(kind):
                self.collisions.deactivate(kind)
            elif session.playing:
                self.collisions.activate(kind)
        elif command == "add_time":
            session.destruction_time_left += TIME_BONUS_SECONDS
            if (
                session.playing
                and session.mode is GameMode.DESTRUCTION
                and self._countdown is None
            ):
                self._countdown = self.timers.schedule_repeating(
                    self._tick_countdown, COUNTDOWN_INTERVAL
                )
        else:
            return False
        return True

    # Background persistence
    def _run_in_background(self, fn, *args, on_done=None):
        """Run a blocking gateway call without stalling the frame loop.

        fn must not touch the session. on_done receives its result on the
        loop thread, which is where session updates belong.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            result = fn(*args)
            if on_done is not None:
                on_done(result)
            return result

        task = loop.create_task(self._call_off_loop(fn, args, on_done))
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    @staticmethod
    async def _call_off_loop(fn, args, on_done):
        result = await asyncio.to_thread(fn, *args)
        if on_done is not None:
            on_done(result)
        return result

    def _background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error("Background save failed", exc_info=task.exception())

    # Projection
    def snapshot(self) -> dict:
        """JSON-ready view of the session for clients."""
        session = self.session
        level, into_level, level_span = level_progress(session.xp)
        return {
            "phase": session.phase.value,
            "mode": session.mode.value,
            "playing": session.playing,
            "username": session.username,
            "score": session.score,
            "record": session.record,
            "recordEvasion": session.record_evasion,
            "recordDestruction": session.record_destruction,
            "xp": session.xp,
            "level": level,
            "levelProgress": [into_level, level_span],
            "hasPremium": session.has_premium,
            "timeLeft": session.destruction_time_left,
            "player": asdict(session.player),
            "projectiles": [asdict(p) for p in session.projectiles],
            "particles": [asdict(p) for p in session.particles],
            "powerUps": [p.to_dict() for p in session.power_ups.values()],
            "skins": [asdict(s) for s in session.player_skins],
            "currentSkin": asdict(session.current_skin) if session.current_skin else None,
            "godMode": session.god_mode,
        }
