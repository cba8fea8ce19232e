# neon_spinner/main.py
"""FastAPI application: persistence routes plus the WebSocket play channel."""

import logging

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from neon_spinner.api.routes import GameAPI
from neon_spinner.config.settings import HOST, LOG_LEVEL, PORT
from neon_spinner.services.user_store import UserStore
from neon_spinner.services.websocket_service import WebSocketService


def create_app(store: UserStore = None) -> FastAPI:
    """Build the application around a user store."""
    store = store or UserStore()
    app = FastAPI()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify your client URL
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.websocket_service = WebSocketService(store)
    app.include_router(GameAPI(store).router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await app.state.websocket_service.handle_connection(websocket)

    return app


app = create_app()


def main():
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
