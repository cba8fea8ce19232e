# neon_spinner/services/user_store.py
"""In-memory user records behind the persistence routes."""

import hashlib
import hmac
import json
import logging
import os
import secrets
import threading
from dataclasses import asdict
from typing import Dict, List, Optional

from neon_spinner.config.settings import DEFAULT_EQUIPPED_SKIN, DEFAULT_UNLOCKED_SKINS
from neon_spinner.models.entities import (
    LeaderboardEntry,
    SessionProfile,
    Skin,
    UserRecord,
)
from neon_spinner.services.persistence import GatewayError
from neon_spinner.services.progression_service import (
    merge_unlocked_skins,
    parse_unlocked_skins,
    rank_bonus_symbols,
    serialize_unlocked_skins,
)

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 4
HASH_ITERATIONS = 100_000


class UserStoreError(GatewayError):
    """A rejected store operation, with an error code and HTTP status."""

    def __init__(self, error: str, status: int = 400):
        super().__init__(error)
        self.error = error
        self.status = status


def hash_password(password: str, salt: bytes = None) -> str:
    """Salted PBKDF2 hash as 'salt$digest' hex."""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, HASH_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        salt_hex, _ = stored.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored)


class UserStore:
    """Thread-safe store of users, login tokens and progression data."""

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._tokens: Dict[str, str] = {}
        self._lock = threading.RLock()

    def _get(self, username: str) -> UserRecord:
        user = self._users.get(username)
        if user is None:
            raise UserStoreError("unknown_user", 404)
        return user

    # Accounts
    def register(self, username: str, password: str) -> str:
        username = (username or "").strip()
        password = password or ""
        if len(username) < MIN_USERNAME_LENGTH or len(password) < MIN_PASSWORD_LENGTH:
            raise UserStoreError("invalid_input")

        with self._lock:
            if username in self._users:
                raise UserStoreError("user_exists")
            self._users[username] = UserRecord(
                username=username,
                pass_hash=hash_password(password),
                unlockedSkins=serialize_unlocked_skins(DEFAULT_UNLOCKED_SKINS),
                equippedSkin=json.dumps(DEFAULT_EQUIPPED_SKIN),
            )
        logger.info("Registered user %s", username)
        return username

    def authenticate(self, username: str, password: str) -> str:
        """Check credentials and return a new bearer token."""
        username = (username or "").strip()
        with self._lock:
            user = self._users.get(username)
            if user is None or not verify_password(password or "", user.pass_hash):
                raise UserStoreError("invalid_credentials", 401)
            token = secrets.token_urlsafe(24)
            self._tokens[token] = username
        return token

    def logout(self, token: str):
        with self._lock:
            self._tokens.pop(token, None)

    def username_for_token(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        with self._lock:
            return self._tokens.get(token)

    def set_premium(self, username: str, has_premium: bool = True):
        with self._lock:
            self._get(username).hasPremium = has_premium

    # Profile
    def get_profile(self, username: str) -> SessionProfile:
        """Return the profile with defaults filled in and rank skins merged."""
        with self._lock:
            user = self._get(username)

            if not user.unlockedSkins or not user.unlockedSkins.strip():
                user.unlockedSkins = serialize_unlocked_skins(DEFAULT_UNLOCKED_SKINS)
            if not user.equippedSkin or not user.equippedSkin.strip():
                user.equippedSkin = json.dumps(DEFAULT_EQUIPPED_SKIN)
            if user.recordEvasion is None:
                user.recordEvasion = 0
            if user.recordDestruction is None:
                user.recordDestruction = 0

            ranking = [self._entry(u) for u in self._users.values()]
            unlocked = merge_unlocked_skins(
                user.unlockedSkins, rank_bonus_symbols(ranking, username)
            )

            return SessionProfile(
                loggedIn=True,
                username=user.username,
                recordEvasion=user.recordEvasion,
                recordDestruction=user.recordDestruction,
                xp=user.xp,
                hasPremium=user.hasPremium,
                unlockedSkinsCsv=unlocked,
                equippedSkinJson=user.equippedSkin,
            )

    def save_records(
        self,
        username: str,
        record_evasion: int,
        record_destruction: int,
        play_time_seconds: int = 0,
        session_score: int = 0,
    ) -> int:
        """Keep the best record per mode and add the run score to xp."""
        with self._lock:
            user = self._get(username)
            user.recordEvasion = max(user.recordEvasion or 0, int(record_evasion or 0))
            user.recordDestruction = max(
                user.recordDestruction or 0, int(record_destruction or 0)
            )
            user.totalPlayTime += max(0, int(play_time_seconds or 0))
            user.xp += max(0, int(session_score or 0))
            return user.xp

    def unlock_skin(self, username: str, skin_type: str) -> bool:
        """Add skin_type to the user's skins; return True if already owned."""
        skin_type = (skin_type or "").strip()
        if not skin_type:
            raise UserStoreError("no_skin_type")

        with self._lock:
            user = self._get(username)
            current = parse_unlocked_skins(user.unlockedSkins)
            if skin_type in current:
                return True
            user.unlockedSkins = serialize_unlocked_skins(current + [skin_type])
            return False

    def save_equipped_skin(self, username: str, skin: Skin):
        if not skin or not skin.type:
            raise UserStoreError("missing_skin")
        with self._lock:
            self._get(username).equippedSkin = json.dumps(asdict(skin))

    # Leaderboard
    @staticmethod
    def _entry(user: UserRecord) -> LeaderboardEntry:
        return LeaderboardEntry(
            username=user.username,
            recordEvasion=user.recordEvasion or 0,
            recordDestruction=user.recordDestruction or 0,
        )

    def leaderboard(self) -> List[LeaderboardEntry]:
        """Users that have scored in at least one mode."""
        with self._lock:
            entries = [self._entry(u) for u in self._users.values()]
        return [e for e in entries if e.recordEvasion > 0 or e.recordDestruction > 0]
