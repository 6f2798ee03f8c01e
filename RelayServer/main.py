import asyncio, os
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from core.context import RelayContext, RelaySettings

from . import config
from .files import router as files_router
from .logutil import get_logger
from .websocket_agent import router as agent_ws_router

logger = get_logger("RelayServer.main", file_basename="server")
# every core.* module logger hangs off this one
get_logger("core", file_basename="core")

async def _sweep_forever(relay: RelayContext) -> None:
    s = relay.settings
    while True:
        await asyncio.sleep(s.sweep_interval)
        try:
            relay.store.sweep(s.staged_max_age)
        except OSError:
            logger.exception("staging.sweep.error", extra={"upload_dir": str(s.upload_dir)})

def create_app(settings: RelaySettings | None = None, public_dir: str | None = None) -> FastAPI:
    relay = RelayContext.create(settings or config.load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if relay.settings.sweep_interval > 0:
            sweeper = asyncio.create_task(_sweep_forever(relay))
        logger.info("relay.startup", extra={"upload_dir": str(relay.settings.upload_dir)})
        try:
            yield
        finally:
            if sweeper:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            relay.store.sweep(relay.settings.staged_max_age)
            logger.info("relay.shutdown")

    app = FastAPI(title="Agent Filesystem Relay", version="1.0", lifespan=lifespan)
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(files_router, tags=["files"])
    app.include_router(agent_ws_router, tags=["websocket"])

    # Admin page; mounted last so it never shadows the API or the agent socket
    public_dir = public_dir or config.PUBLIC_DIR
    if os.path.isdir(public_dir):
        app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")
    return app

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT, ws_max_size=config.WS_MAX_SIZE)
