# neon_spinner/api/routes.py
"""API routes for the game server."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from neon_spinner.config.settings import get_game_config
from neon_spinner.models.entities import Skin
from neon_spinner.services.user_store import UserStore, UserStoreError


class Credentials(BaseModel):
    username: str
    password: str


class RecordsBody(BaseModel):
    recordEvasion: int = 0
    recordDestruction: int = 0
    playTimeSeconds: int = 0
    sessionScore: int = 0


class SkinBody(BaseModel):
    type: str
    color: str = ""


class UnlockBody(BaseModel):
    type: str


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: Bearer ...' header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class GameAPI:
    """API routes for accounts, progression and the game configuration."""

    def __init__(self, store: UserStore):
        self.store = store
        self.router = APIRouter()
        self._setup_routes()

    def _current_user(self, authorization: Optional[str]) -> str:
        username = self.store.username_for_token(bearer_token(authorization))
        if not username:
            raise HTTPException(status_code=401, detail="not_logged")
        return username

    def _setup_routes(self):
        """Set up all API routes."""

        @self.router.get("/")
        async def root():
            """Root endpoint."""
            return {"message": "Neon Spinner Server Running"}

        @self.router.get("/api/game/config")
        async def get_game_config_endpoint():
            """Get game configuration: playfield, timings, skins and battle pass."""
            return get_game_config()

        @self.router.post("/api/register")
        def register(body: Credentials):
            """Create an account with the default skins."""
            try:
                username = self.store.register(body.username, body.password)
            except UserStoreError as e:
                raise HTTPException(status_code=e.status, detail=e.error)
            return {"ok": True, "username": username}

        @self.router.post("/api/login")
        def login(body: Credentials):
            """Check credentials and issue a bearer token."""
            try:
                token = self.store.authenticate(body.username, body.password)
            except UserStoreError as e:
                raise HTTPException(status_code=e.status, detail=e.error)
            return {"ok": True, "username": body.username.strip(), "token": token}

        @self.router.post("/api/logout")
        async def logout(authorization: Optional[str] = Header(None)):
            token = bearer_token(authorization)
            if token:
                self.store.logout(token)
            return {"ok": True}

        @self.router.get("/api/session")
        def get_session(authorization: Optional[str] = Header(None)):
            """Profile of the logged-in user, rank skins included."""
            username = self.store.username_for_token(bearer_token(authorization))
            if not username:
                return {"loggedIn": False}
            try:
                return asdict(self.store.get_profile(username))
            except UserStoreError:
                return {"loggedIn": False}

        @self.router.post("/api/records")
        def save_records(body: RecordsBody, authorization: Optional[str] = Header(None)):
            """Keep the best records and add the run score to xp."""
            username = self._current_user(authorization)
            try:
                new_xp = self.store.save_records(
                    username,
                    body.recordEvasion,
                    body.recordDestruction,
                    body.playTimeSeconds,
                    body.sessionScore,
                )
            except UserStoreError as e:
                raise HTTPException(status_code=e.status, detail=e.error)
            return {"ok": True, "newXp": new_xp}

        @self.router.post("/api/skin")
        def save_skin(body: SkinBody, authorization: Optional[str] = Header(None)):
            """Store the equipped skin."""
            username = self._current_user(authorization)
            try:
                self.store.save_equipped_skin(username, Skin(body.type, body.color))
            except UserStoreError as e:
                raise HTTPException(status_code=e.status, detail=e.error)
            return {"ok": True}

        @self.router.post("/api/skins/unlock")
        def unlock_skin(body: UnlockBody, authorization: Optional[str] = Header(None)):
            """Unlock a skin; repeating the call is harmless."""
            username = self._current_user(authorization)
            try:
                already = self.store.unlock_skin(username, body.type)
            except UserStoreError as e:
                raise HTTPException(status_code=e.status, detail=e.error)
            return {"ok": True, "alreadyUnlocked": already, "type": body.type.strip()}

        @self.router.get("/api/leaderboard")
        def get_leaderboard():
            """Every player with a record in at least one mode."""
            return [asdict(entry) for entry in self.store.leaderboard()]
