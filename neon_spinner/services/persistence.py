# neon_spinner/services/persistence.py
"""Persistence gateway: the engine's only route to stored user data."""

from dataclasses import asdict, fields
from typing import List, Optional

import requests

from neon_spinner.models.entities import LeaderboardEntry, SessionProfile, Skin


class GatewayError(Exception):
    """Raised when a gateway call could not be completed."""


class PersistenceGateway:
    """Request/response operations against the user store."""

    def get_session(self) -> SessionProfile:
        raise NotImplementedError

    def save_records(
        self,
        record_evasion: int,
        record_destruction: int,
        play_time_seconds: int = 0,
        session_score: int = 0,
    ) -> int:
        """Store records (max per field) and add session_score to xp; return new xp."""
        raise NotImplementedError

    def save_equipped_skin(self, skin: Skin) -> None:
        raise NotImplementedError

    def unlock_skin(self, skin_type: str) -> bool:
        """Unlock skin_type; return True if it was already unlocked."""
        raise NotImplementedError

    def fetch_leaderboard(self) -> List[LeaderboardEntry]:
        raise NotImplementedError


def profile_from_dict(data: dict) -> SessionProfile:
    """Build a SessionProfile from a JSON payload, ignoring unknown keys."""
    known = {f.name for f in fields(SessionProfile)}
    return SessionProfile(**{k: v for k, v in data.items() if k in known})


class LocalGateway(PersistenceGateway):
    """Gateway bound to an in-process UserStore for one user.

    The store raises UserStoreError, a GatewayError, so its failures pass
    through unchanged.
    """

    def __init__(self, store, username: Optional[str] = None):
        self.store = store
        self.username = username

    def _require_user(self) -> str:
        if not self.username:
            raise GatewayError("not_logged")
        return self.username

    def get_session(self) -> SessionProfile:
        if not self.username:
            return SessionProfile(loggedIn=False)
        return self.store.get_profile(self.username)

    def save_records(
        self,
        record_evasion: int,
        record_destruction: int,
        play_time_seconds: int = 0,
        session_score: int = 0,
    ) -> int:
        return self.store.save_records(
            self._require_user(),
            record_evasion,
            record_destruction,
            play_time_seconds,
            session_score,
        )

    def save_equipped_skin(self, skin: Skin) -> None:
        self.store.save_equipped_skin(self._require_user(), skin)

    def unlock_skin(self, skin_type: str) -> bool:
        return self.store.unlock_skin(self._require_user(), skin_type)

    def fetch_leaderboard(self) -> List[LeaderboardEntry]:
        return self.store.leaderboard()


class HttpGateway(PersistenceGateway):
    """Gateway talking to the HTTP routes of a remote neon_spinner server."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 5.0,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method: str, path: str, json: dict = None):
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"network error on {path}: {e}") from e

        if not response.ok:
            raise GatewayError(f"{path} returned {response.status_code}: {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"{path} returned invalid JSON") from e

    def login(self, username: str, password: str) -> str:
        """Authenticate and keep the issued token for later calls."""
        data = self._request(
            "POST", "/api/login", {"username": username, "password": password}
        )
        self.token = data["token"]
        return self.token

    def get_session(self) -> SessionProfile:
        data = self._request("GET", "/api/session")
        if not data or not data.get("loggedIn"):
            return SessionProfile(loggedIn=False)
        return profile_from_dict(data)

    def save_records(
        self,
        record_evasion: int,
        record_destruction: int,
        play_time_seconds: int = 0,
        session_score: int = 0,
    ) -> int:
        data = self._request(
            "POST",
            "/api/records",
            {
                "recordEvasion": record_evasion,
                "recordDestruction": record_destruction,
                "playTimeSeconds": play_time_seconds,
                "sessionScore": session_score,
            },
        )
        return int(data["newXp"])

    def save_equipped_skin(self, skin: Skin) -> None:
        self._request("POST", "/api/skin", asdict(skin))

    def unlock_skin(self, skin_type: str) -> bool:
        data = self._request("POST", "/api/skins/unlock", {"type": skin_type})
        return bool(data.get("alreadyUnlocked"))

    def fetch_leaderboard(self) -> List[LeaderboardEntry]:
        data = self._request("GET", "/api/leaderboard")
        return [
            LeaderboardEntry(
                username=row["username"],
                recordEvasion=int(row.get("recordEvasion") or 0),
                recordDestruction=int(row.get("recordDestruction") or 0),
            )
            for row in data
        ]
