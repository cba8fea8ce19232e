# neon_spinner/config/settings.py
"""Game configuration constants and settings."""

import os

# Playfield settings
GAME_WIDTH = 1912
GAME_HEIGHT = 954
SPAWN_OFFSET = 30  # projectiles appear this far outside the edge
OUT_OF_BOUNDS_MARGIN = 50
POWER_UP_MARGIN = 50

# Player settings
PLAYER_RADIUS = 25
PLAYER_SPIN = 0.1
PLAYER_SPIN_MULTIPLIED = 0.3

# Projectile settings
INITIAL_SPEED = 15
SPAWN_TIME = 300  # ms
MIN_SPAWN_TIME = 100  # ms
EVASION_RADIUS = 14
DESTRUCTION_RADIUS = 18
RADIUS_JITTER = 11
DESTRUCTION_SPEED_FACTOR = 0.85
DESTRUCTION_AIM_MIN = 0.1  # rad
DESTRUCTION_AIM_MAX = 0.65  # rad

# Scoring ramps
EVASION_SPEED_CAP = 30
EVASION_SPEED_STEP = 0.075
DESTRUCTION_SPEED_CAP = 35
DESTRUCTION_SPEED_STEP = 0.1  # per point
SPAWN_TIME_STEP = 0.5  # ms per point

# Destruction countdown
DESTRUCTION_TOTAL_TIME = 30  # seconds
COUNTDOWN_INTERVAL = 100  # ms
COUNTDOWN_STEP = 0.1  # seconds
POINTS_FOR_TIME_BONUS = 10
BONUS_SECONDS = 3
TIME_BONUS_SECONDS = 10

# Particle settings
PARTICLE_COUNT = 20
PARTICLE_LIFE = 50  # ticks
PARTICLE_SPEED = 8
PARTICLE_MIN_RADIUS = 1
PARTICLE_MAX_RADIUS = 5

# Power-up settings (ms)
POWER_UP_RADIUS = 28
MULTIPLIER_INTERVAL = (20000, 35000)
MULTIPLIER_VISIBLE = 4000
MULTIPLIER_EFFECT = 5000
SHIELD_INTERVAL = (25000, 45000)
SHIELD_VISIBLE = 6000
SHIELD_EFFECT = None  # lasts until a projectile consumes it
TIME_BONUS_INTERVAL = (17500, 35000)
TIME_BONUS_VISIBLE = 4000
TIME_BONUS_EFFECT = 500

# Skins
SKIN_TYPES = [
    "X", "Y", "I", "+",
    "67", "69", "π", "∞",
    "●", "◐", "△", "⟁",
    "◆", "♠", "♣", "♥",
    "★", "✧", "✦", "✹", "✵", "𖣘", "⟐", "⌖",
    "⛥", "✟", "✠", "ψ", "Ω", "☯", "☬", "🧿",
    "☢", "☣", "⌬",
    "☄", "🌚", "🌝",
    "ᛉ", "ᛟ",
    "⚙", "🗿",
    "💣", "📛", "🎀", "🎲", "💋",
    "⚽", "🏀", "🥎", "⚾️", "🏐", "🏈",
    "🍄", "🥘", "🥚", "🫒", "🥒",
    "🦊",
    "🎄", "❄️", "🎁",
    "🎃", "💀", "🕸️", "🕷️",
    "#", "⚵", "💥",
]
DEFAULT_UNLOCKED_SKINS = ["X", "●", "♠", "★", "ᛉ", "⚙", "67", "⚽", "💣"]
DEFAULT_EQUIPPED_SKIN = {"type": "X", "color": "hsl(0,100%,50%)"}

# Leaderboard rank bonus, indexed by the best position that grants it
RANK_TOP3_SKIN = "#"
RANK_TOP2_SKIN = "⚵"
RANK_TOP1_SKIN = "💥"
RANK_TOP_N = 3

# Battle pass: level -> skin type
BATTLE_PASS_LEVELS = 25
BATTLE_PASS_FREE = {
    1: "Y", 2: "🥒", 3: "I", 5: "π", 7: "♥", 9: "☣", 10: "◆", 11: "✠",
    13: "⟁", 15: "♣", 17: "◐", 19: "✧", 21: "☯", 23: "✹", 24: "✵", 25: "🗿",
}
BATTLE_PASS_PREMIUM = {
    1: "𖣘", 2: "✟", 3: "⛥", 4: "ψ", 5: "Ω", 6: "✦", 7: "☬", 8: "☢",
    9: "△", 10: "☄", 11: "∞", 12: "ᛉ", 13: "ᛟ", 14: "⚙", 15: "⌬", 16: "🏀",
    17: "🥚", 18: "⚾️", 19: "🏐", 20: "🏈", 21: "🧿", 22: "📛", 23: "🎀",
    24: "🍄", 25: "🎲",
}

# Server settings
FRAME_RATE = 60  # simulation ticks per second
HOST = os.environ.get("NEON_SPINNER_HOST", "0.0.0.0")
PORT = int(os.environ.get("NEON_SPINNER_PORT", "8000"))
REQUIRE_LOGIN = os.environ.get("NEON_SPINNER_REQUIRE_LOGIN", "1") != "0"
LOG_LEVEL = os.environ.get("NEON_SPINNER_LOG_LEVEL", "INFO")
ALLOW_DEV_MODE = os.environ.get("NEON_SPINNER_DEV", "0") == "1"


def get_game_config():
    """Get the complete game configuration as a dictionary."""
    return {
        "width": GAME_WIDTH,
        "height": GAME_HEIGHT,
        "playerRadius": PLAYER_RADIUS,
        "initialSpeed": INITIAL_SPEED,
        "spawnTime": SPAWN_TIME,
        "minSpawnTime": MIN_SPAWN_TIME,
        "destructionTotalTime": DESTRUCTION_TOTAL_TIME,
        "pointsForTimeBonus": POINTS_FOR_TIME_BONUS,
        "bonusSeconds": BONUS_SECONDS,
        "timeBonusSeconds": TIME_BONUS_SECONDS,
        "powerUpRadius": POWER_UP_RADIUS,
        "frameRate": FRAME_RATE,
        "skinTypes": SKIN_TYPES,
        "defaultUnlockedSkins": DEFAULT_UNLOCKED_SKINS,
        "battlePass": {
            "levels": BATTLE_PASS_LEVELS,
            "free": BATTLE_PASS_FREE,
            "premium": BATTLE_PASS_PREMIUM,
        },
    }
