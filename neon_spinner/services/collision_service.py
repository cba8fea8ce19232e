# neon_spinner/services/collision_service.py
"""Per-tick movement, collision and scoring."""

import logging
import random
from typing import Callable, Dict, List

from neon_spinner.config.settings import *
from neon_spinner.models.entities import (
    GameMode,
    Particle,
    PowerUp,
    PowerUpKind,
    Session,
)
from neon_spinner.services.spawn_service import POWER_UP_RULES
from neon_spinner.utils.helpers import is_collision, is_out_of_bounds, random_neon_color

logger = logging.getLogger(__name__)


class CollisionService:
    """Advances entities and applies the scoring rules of each mode.

    A tick always moves a projectile before testing it, and finishes the
    projectile pass before testing power-ups.
    """

    def __init__(
        self,
        session: Session,
        timers,
        on_game_over: Callable[[], bool],
        rng=random,
        width: float = GAME_WIDTH,
        height: float = GAME_HEIGHT,
    ):
        self.session = session
        self.timers = timers
        self.on_game_over = on_game_over
        self.rng = rng
        self.width = width
        self.height = height
        self._on_collect: Dict[PowerUpKind, Callable[[List[dict]], None]] = {
            PowerUpKind.TIME_BONUS: self._add_time_bonus,
        }

    def step(self) -> List[dict]:
        """Run one simulation tick and return the events it produced."""
        events: List[dict] = []
        self._advance_player()
        self._update_projectiles(events)
        self._update_particles()
        if self.session.playing:
            self._check_power_ups(events)
        return events

    def _advance_player(self):
        session = self.session
        if session.effect_active(PowerUpKind.MULTIPLIER):
            session.player.angle += PLAYER_SPIN_MULTIPLIED
        else:
            session.player.angle += PLAYER_SPIN

    def _points(self) -> int:
        return 2 if self.session.effect_active(PowerUpKind.MULTIPLIER) else 1

    # Projectiles
    def _update_projectiles(self, events: List[dict]):
        session = self.session
        player = session.player

        for i in range(len(session.projectiles) - 1, -1, -1):
            if not session.playing:
                break

            proj = session.projectiles[i]
            proj.x += proj.vx
            proj.y += proj.vy

            if is_collision(proj.x, proj.y, proj.r, player.x, player.y, player.r):
                self.spawn_particles(proj.x, proj.y)
                del session.projectiles[i]

                if session.mode is GameMode.DESTRUCTION:
                    self._score_destruction_hit(events)
                elif session.effect_active(PowerUpKind.SHIELD):
                    self._consume_shield(events)
                else:
                    events.append({"type": "hit"})
                    if self.on_game_over():
                        events.append({"type": "game_over", "score": session.score})
                continue

            if is_out_of_bounds(
                proj.x, proj.y, self.width, self.height, OUT_OF_BOUNDS_MARGIN
            ):
                self.spawn_particles(proj.x, proj.y)
                del session.projectiles[i]
                if session.mode is GameMode.EVASION:
                    self._score_evasion_escape(events)

    def _score_destruction_hit(self, events: List[dict]):
        session = self.session
        points = self._points()
        self._add_score(points, events)

        session.destruction_bonus_counter += points
        while session.destruction_bonus_counter >= POINTS_FOR_TIME_BONUS:
            session.destruction_bonus_counter -= POINTS_FOR_TIME_BONUS
            session.destruction_time_left += BONUS_SECONDS
            events.append({"type": "time_bonus", "seconds": BONUS_SECONDS})

        session.projectile_speed = min(
            DESTRUCTION_SPEED_CAP,
            session.projectile_speed + DESTRUCTION_SPEED_STEP * points,
        )
        session.spawn_time = max(
            MIN_SPAWN_TIME, session.spawn_time - SPAWN_TIME_STEP * points
        )

    def _score_evasion_escape(self, events: List[dict]):
        session = self.session
        points = self._points()
        self._add_score(points, events)
        session.projectile_speed = min(
            EVASION_SPEED_CAP, session.projectile_speed + EVASION_SPEED_STEP
        )
        session.spawn_time = max(
            MIN_SPAWN_TIME, session.spawn_time - SPAWN_TIME_STEP * points
        )

    def _add_score(self, points: int, events: List[dict]):
        session = self.session
        session.score += points
        events.append({"type": "score", "points": points, "score": session.score})

        if session.score > session.record:
            if session.mode is GameMode.DESTRUCTION:
                session.record_destruction = session.score
            else:
                session.record_evasion = session.score
            events.append(
                {"type": "record", "mode": session.mode.value, "record": session.score}
            )

    def _consume_shield(self, events: List[dict]):
        shield = self.session.power_ups[PowerUpKind.SHIELD]
        shield.active = False
        self.timers.cancel(shield.effect_timer)
        shield.effect_timer = None
        events.append({"type": "shield_consumed"})

    # Particles
    def spawn_particles(self, x: float, y: float):
        """Burst of particles where a projectile was retired."""
        rng = self.rng
        for _ in range(PARTICLE_COUNT):
            self.session.particles.append(
                Particle(
                    x=x,
                    y=y,
                    vx=(rng.random() - 0.5) * PARTICLE_SPEED,
                    vy=(rng.random() - 0.5) * PARTICLE_SPEED,
                    r=rng.random() * (PARTICLE_MAX_RADIUS - PARTICLE_MIN_RADIUS)
                    + PARTICLE_MIN_RADIUS,
                    color=random_neon_color(rng),
                    life=PARTICLE_LIFE,
                )
            )

    def _update_particles(self):
        particles = self.session.particles
        for i in range(len(particles) - 1, -1, -1):
            p = particles[i]
            p.x += p.vx
            p.y += p.vy
            p.life -= 1
            if p.life <= 0:
                del particles[i]

    # Power-ups
    def _check_power_ups(self, events: List[dict]):
        player = self.session.player
        for kind, power_up in self.session.power_ups.items():
            if power_up.show and is_collision(
                player.x, player.y, player.r, power_up.x, power_up.y, power_up.r
            ):
                self.collect(kind, events)

    def collect(self, kind: PowerUpKind, events: List[dict] = None):
        """Turn a shown power-up into an active effect."""
        if events is None:
            events = []
        self.activate(kind)
        events.append({"type": "power_up_collected", "kind": kind.value})

        handler = self._on_collect.get(kind)
        if handler:
            handler(events)
        return events

    def activate(self, kind: PowerUpKind):
        """Start (or refresh) the effect of kind, retiring a shown pickup."""
        rule = POWER_UP_RULES[kind]
        power_up = self.session.power_ups[kind]
        power_up.show = False
        self.timers.cancel(power_up.visibility_timer)
        power_up.visibility_timer = None
        power_up.active = True

        self.timers.cancel(power_up.effect_timer)
        power_up.effect_timer = None
        if rule.effect_ms is not None:
            power_up.effect_timer = self.timers.schedule(
                lambda: self._expire(power_up), rule.effect_ms
            )

    def deactivate(self, kind: PowerUpKind):
        power_up = self.session.power_ups[kind]
        self.timers.cancel(power_up.effect_timer)
        self._expire(power_up)

    @staticmethod
    def _expire(power_up: PowerUp):
        power_up.active = False
        power_up.effect_timer = None

    def _add_time_bonus(self, events: List[dict]):
        self.session.destruction_time_left += TIME_BONUS_SECONDS
        events.append({"type": "time_bonus", "seconds": TIME_BONUS_SECONDS})
