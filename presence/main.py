from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from .config import settings
from .logger import logger
from .players import PresenceSystem
from .routers import players


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up the presence system...")
    presence = PresenceSystem.from_settings(settings)
    api_app.state.presence = presence
    await presence.start()
    logger.info("Startup complete.")
    try:
        yield
    finally:
        logger.info("Shutting down the presence system...")
        await presence.stop()
        logger.info("Shutdown complete.")


api_app = FastAPI(root_path="/api")

api_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_app.include_router(players.router)

app = FastAPI(lifespan=lifespan, title="MC Presence")
app.mount("/api", api_app)
