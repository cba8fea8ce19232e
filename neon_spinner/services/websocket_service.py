# neon_spinner/services/websocket_service.py
"""WebSocket connection management and message handling."""

import asyncio
import logging
from typing import Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from neon_spinner.config.settings import (
    ALLOW_DEV_MODE,
    FRAME_RATE,
    REQUIRE_LOGIN,
    get_game_config,
)
from neon_spinner.models.entities import GameMode
from neon_spinner.services.game_service import AuthenticationRequired, GameService
from neon_spinner.services.persistence import LocalGateway
from neon_spinner.services.user_store import UserStore

logger = logging.getLogger(__name__)


class WebSocketService:
    """Runs one single-player game per WebSocket connection."""

    def __init__(
        self,
        store: UserStore,
        require_login: bool = REQUIRE_LOGIN,
        allow_dev_mode: bool = ALLOW_DEV_MODE,
    ):
        self.store = store
        self.require_login = require_login
        self.allow_dev_mode = allow_dev_mode
        self.games: Dict[WebSocket, GameService] = {}

    def create_game(self, token: Optional[str]) -> GameService:
        """Build a game bound to the user owning token (or a guest)."""
        username = self.store.username_for_token(token)
        gateway = LocalGateway(self.store, username)
        game = GameService(gateway=gateway, require_login=self.require_login)
        game.load_session()
        return game

    async def handle_connection(self, websocket: WebSocket):
        """Handle a new WebSocket connection."""
        await websocket.accept()
        game = self.create_game(websocket.query_params.get("token"))
        self.games[websocket] = game
        logger.info(
            "Connection from %s as %s", websocket.client, game.session.username or "guest"
        )

        frame_task = asyncio.create_task(self._frame_loop(websocket, game))
        try:
            await websocket.send_json(
                {"type": "init", "config": get_game_config(), "state": game.snapshot()}
            )
            await self._handle_client_messages(websocket, game)
        except WebSocketDisconnect:
            logger.info("Connection %s closed", websocket.client)
        except Exception:
            logger.exception("WebSocket error for %s", websocket.client)
        finally:
            frame_task.cancel()
            self._handle_disconnect(websocket, game)

    async def _frame_loop(self, websocket: WebSocket, game: GameService):
        """Tick the simulation and push a frame to the client."""
        while True:
            await asyncio.sleep(1 / FRAME_RATE)
            if not game.session.playing:
                continue

            try:
                frame = {"type": "frame", "events": game.update(), "state": game.snapshot()}
            except Exception:
                logger.exception("Frame update failed for %s", websocket.client)
                continue

            try:
                await websocket.send_json(frame)
            except Exception:
                logger.debug("Frame not delivered to %s", websocket.client)
                return

    async def _handle_client_messages(self, websocket: WebSocket, game: GameService):
        """Handle incoming messages from a client."""
        while True:
            data = await websocket.receive_json()
            reply = self.process_message(game, data)
            if reply is not None:
                await websocket.send_json(reply)

    def process_message(self, game: GameService, data: dict) -> Optional[dict]:
        """Apply one client message to the game and build the reply."""
        try:
            return self._dispatch(game, data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Bad message %r: %s", data, e)
            return {"type": "error", "error": "bad_message"}

    def _dispatch(self, game: GameService, data: dict) -> Optional[dict]:
        message_type = data.get("type")

        if message_type == "pointer_move":
            game.pointer_move(data["x"], data["y"])
            return None

        if message_type == "select_mode":
            try:
                game.start_game(GameMode(data.get("mode")))
            except ValueError:
                return {"type": "error", "error": "invalid_mode"}
            except AuthenticationRequired:
                return {"type": "login_required", "message": "Log in to play"}
            return {"type": "state", "state": game.snapshot()}

        if message_type == "retry":
            game.retry()
            return {"type": "state", "state": game.snapshot()}

        if message_type == "back_to_menu":
            game.back_to_menu()
            return {"type": "state", "state": game.snapshot()}

        if message_type == "equip_skin":
            try:
                game.equip_skin(data["skin"], data.get("color"))
            except ValueError:
                return {"type": "error", "error": "skin_locked"}
            return {"type": "state", "state": game.snapshot()}

        if message_type == "dev_command":
            if data.get("command") == "dev_mode":
                if not self.allow_dev_mode:
                    return {"type": "error", "error": "dev_mode_disabled"}
                game.set_dev_mode(not game.session.dev_mode)
                return {"type": "state", "state": game.snapshot()}
            game.dev_command(data.get("command", ""))
            return {"type": "state", "state": game.snapshot()}

        if message_type == "state":
            return {"type": "state", "state": game.snapshot()}

        return {"type": "error", "error": "unknown_message"}

    def _handle_disconnect(self, websocket: WebSocket, game: GameService):
        """Handle client disconnection."""
        game.shutdown()
        self.games.pop(websocket, None)
