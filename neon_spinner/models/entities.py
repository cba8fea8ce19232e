# neon_spinner/models/entities.py
"""Game entity models and data classes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from neon_spinner.config.settings import (
    DESTRUCTION_TOTAL_TIME,
    INITIAL_SPEED,
    PLAYER_RADIUS,
    POWER_UP_RADIUS,
    SPAWN_TIME,
)


class GameMode(str, Enum):
    """Scoring mode of a run."""

    EVASION = "evasion"
    DESTRUCTION = "destruction"


class GamePhase(str, Enum):
    """Top-level state of the game-mode state machine."""

    MENU = "menu"
    PLAYING = "playing"
    GAME_OVER = "game_over"


class PowerUpKind(str, Enum):
    """The three single-slot power-ups."""

    MULTIPLIER = "multiplier"
    SHIELD = "shield"
    TIME_BONUS = "time_bonus"


@dataclass
class Player:
    """Represents the player-controlled avatar."""

    x: float = 0.0
    y: float = 0.0
    r: float = PLAYER_RADIUS
    angle: float = 0.0


@dataclass
class Projectile:
    """Represents an incoming projectile."""

    x: float
    y: float
    vx: float
    vy: float
    r: float
    color: str


@dataclass
class Particle:
    """Represents a short-lived particle from a projectile burst."""

    x: float
    y: float
    vx: float
    vy: float
    r: float
    color: str
    life: int


@dataclass
class PowerUp:
    """A single-slot power-up; `show` and `active` are never both true."""

    kind: PowerUpKind
    x: float = 0.0
    y: float = 0.0
    r: float = POWER_UP_RADIUS
    show: bool = False
    active: bool = False
    visibility_timer: Optional[Any] = None
    effect_timer: Optional[Any] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "r": self.r,
            "show": self.show,
            "active": self.active,
        }


@dataclass
class Skin:
    """A cosmetic skin: a symbol and a colour."""

    type: str
    color: str


@dataclass
class LeaderboardEntry:
    """Represents one row of the public leaderboard."""

    username: str
    recordEvasion: int = 0
    recordDestruction: int = 0


@dataclass
class SessionProfile:
    """Payload returned by the persistence gateway's getSession."""

    loggedIn: bool
    username: Optional[str] = None
    recordEvasion: int = 0
    recordDestruction: int = 0
    xp: int = 0
    hasPremium: bool = False
    unlockedSkinsCsv: Optional[str] = None
    equippedSkinJson: Optional[str] = None


@dataclass
class UserRecord:
    """Stored row for a registered user."""

    username: str
    pass_hash: str
    recordEvasion: Optional[int] = 0
    recordDestruction: Optional[int] = 0
    xp: int = 0
    hasPremium: bool = False
    totalPlayTime: int = 0
    unlockedSkins: Optional[str] = None
    equippedSkin: Optional[str] = None


def _new_power_ups() -> Dict[PowerUpKind, PowerUp]:
    return {kind: PowerUp(kind=kind) for kind in PowerUpKind}


@dataclass
class Session:
    """Process-wide game state, owned by one GameService."""

    mode: GameMode = GameMode.EVASION
    phase: GamePhase = GamePhase.MENU
    playing: bool = False
    loaded: bool = False

    # Account
    username: Optional[str] = None
    score: int = 0
    record_evasion: int = 0
    record_destruction: int = 0
    xp: int = 0
    has_premium: bool = False

    # Difficulty ramp
    projectile_speed: float = INITIAL_SPEED
    spawn_time: float = SPAWN_TIME

    # Destruction countdown
    destruction_time_left: float = DESTRUCTION_TOTAL_TIME
    destruction_bonus_counter: int = 0

    # Entities
    player: Player = field(default_factory=Player)
    projectiles: List[Projectile] = field(default_factory=list)
    particles: List[Particle] = field(default_factory=list)
    power_ups: Dict[PowerUpKind, PowerUp] = field(default_factory=_new_power_ups)

    # Skins
    player_skins: List[Skin] = field(default_factory=list)
    current_skin: Optional[Skin] = None

    # Debug toggles
    dev_mode: bool = False
    god_mode: bool = False

    # Run bookkeeping
    run_id: int = 0
    run_started_at: Optional[float] = None

    @property
    def record(self) -> int:
        """High score of the current mode."""
        if self.mode is GameMode.DESTRUCTION:
            return self.record_destruction
        return self.record_evasion

    def effect_active(self, kind: PowerUpKind) -> bool:
        return self.power_ups[kind].active

    def reset_run(self, width: float, height: float):
        """Reset every per-run value to its default."""
        self.score = 0
        self.projectile_speed = INITIAL_SPEED
        self.spawn_time = SPAWN_TIME
        self.destruction_time_left = DESTRUCTION_TOTAL_TIME
        self.destruction_bonus_counter = 0
        self.projectiles = []
        self.particles = []
        self.power_ups = _new_power_ups()
        self.player = Player(x=width / 2, y=height / 2)
