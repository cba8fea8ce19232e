# neon_spinner/services/spawn_service.py
"""Self-rescheduling spawners for projectiles and power-ups."""

import math
import random
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from neon_spinner.config.settings import *
from neon_spinner.models.entities import (
    GameMode,
    PowerUp,
    PowerUpKind,
    Projectile,
    Session,
)
from neon_spinner.utils.helpers import random_neon_color

BOTH_MODES = frozenset(GameMode)


@dataclass(frozen=True)
class PowerUpRule:
    """Spawn and effect parameters of one power-up kind."""

    kind: PowerUpKind
    interval: Tuple[float, float]  # ms between spawn attempts
    visible_ms: float
    effect_ms: Optional[float]  # None: lasts until consumed
    modes: FrozenSet[GameMode]


POWER_UP_RULES: Dict[PowerUpKind, PowerUpRule] = {
    PowerUpKind.MULTIPLIER: PowerUpRule(
        PowerUpKind.MULTIPLIER,
        MULTIPLIER_INTERVAL,
        MULTIPLIER_VISIBLE,
        MULTIPLIER_EFFECT,
        BOTH_MODES,
    ),
    PowerUpKind.SHIELD: PowerUpRule(
        PowerUpKind.SHIELD,
        SHIELD_INTERVAL,
        SHIELD_VISIBLE,
        SHIELD_EFFECT,
        frozenset({GameMode.EVASION}),
    ),
    PowerUpKind.TIME_BONUS: PowerUpRule(
        PowerUpKind.TIME_BONUS,
        TIME_BONUS_INTERVAL,
        TIME_BONUS_VISIBLE,
        TIME_BONUS_EFFECT,
        frozenset({GameMode.DESTRUCTION}),
    ),
}


class SpawnService:
    """Keeps the session populated with projectiles and power-ups.

    Every chain carries the run id it was started for and stops as soon as
    the session is no longer playing that run.
    """

    def __init__(
        self,
        session: Session,
        timers,
        rng=random,
        width: float = GAME_WIDTH,
        height: float = GAME_HEIGHT,
    ):
        self.session = session
        self.timers = timers
        self.rng = rng
        self.width = width
        self.height = height

    def is_live(self, run_id: int) -> bool:
        """Check that run_id is the run currently being played."""
        return self.session.playing and self.session.run_id == run_id

    def start(self):
        """Start the projectile chain and the power-up loops for this mode."""
        run_id = self.session.run_id
        self.spawn_projectile(run_id)
        for rule in POWER_UP_RULES.values():
            if self.session.mode in rule.modes:
                self.schedule_power_up(rule.kind, run_id)

    def spawn_projectile(self, run_id: Optional[int] = None) -> Optional[Projectile]:
        """Spawn one projectile at a random edge aimed at the player."""
        if run_id is None:
            run_id = self.session.run_id
        if not self.is_live(run_id):
            return None

        session = self.session
        x, y = self._edge_position(self.rng.randrange(4))

        angle = math.atan2(session.player.y - y, session.player.x - x)
        if session.mode is GameMode.DESTRUCTION:
            angle += self.rng.uniform(DESTRUCTION_AIM_MIN, DESTRUCTION_AIM_MAX)
            base_radius = DESTRUCTION_RADIUS
            speed = session.projectile_speed * DESTRUCTION_SPEED_FACTOR
        else:
            base_radius = EVASION_RADIUS
            speed = session.projectile_speed

        projectile = Projectile(
            x=x,
            y=y,
            vx=math.cos(angle) * speed,
            vy=math.sin(angle) * speed,
            r=self.rng.random() * RADIUS_JITTER + base_radius,
            color=random_neon_color(self.rng),
        )
        session.projectiles.append(projectile)

        delay = self.rng.uniform(session.spawn_time, 2 * session.spawn_time)
        if self.is_live(run_id):
            self.timers.schedule(lambda: self.spawn_projectile(run_id), delay)
        return projectile

    def _edge_position(self, side: int) -> Tuple[float, float]:
        """Random point just outside the given edge (0 top, 1 right, 2 bottom, 3 left)."""
        if side == 0:
            return self.rng.random() * self.width, -SPAWN_OFFSET
        if side == 1:
            return self.width + SPAWN_OFFSET, self.rng.random() * self.height
        if side == 2:
            return self.rng.random() * self.width, self.height + SPAWN_OFFSET
        return -SPAWN_OFFSET, self.rng.random() * self.height

    def spawn_power_up(self, kind: PowerUpKind) -> bool:
        """Show a power-up if its slot is free and the mode allows it."""
        rule = POWER_UP_RULES[kind]
        power_up = self.session.power_ups[kind]
        if (
            not self.session.playing
            or self.session.mode not in rule.modes
            or power_up.show
            or power_up.active
        ):
            return False

        usable_w = self.width - 2 * POWER_UP_MARGIN
        usable_h = self.height - 2 * POWER_UP_MARGIN
        power_up.x = self.rng.random() * usable_w + POWER_UP_MARGIN
        power_up.y = self.rng.random() * usable_h + POWER_UP_MARGIN
        power_up.show = True

        self.timers.cancel(power_up.visibility_timer)
        power_up.visibility_timer = self.timers.schedule(
            lambda: self._hide(power_up), rule.visible_ms
        )
        return True

    @staticmethod
    def _hide(power_up: PowerUp):
        power_up.show = False
        power_up.visibility_timer = None

    def schedule_power_up(self, kind: PowerUpKind, run_id: Optional[int] = None):
        """Arm the next spawn attempt for kind; the loop reschedules itself."""
        if run_id is None:
            run_id = self.session.run_id
        if not self.is_live(run_id):
            return None

        def attempt():
            if not self.is_live(run_id):
                return
            self.spawn_power_up(kind)
            self.schedule_power_up(kind, run_id)

        low, high = POWER_UP_RULES[kind].interval
        return self.timers.schedule(attempt, self.rng.uniform(low, high))
