# backend/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from config import Settings
from database import Database
from errors import register_error_handlers
from routes.auth_routes import router as auth_router
from routes.entities import artists_router, live_events_router, memories_router
from routes.sync_routes import router as sync_router

logger = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    db = db or Database(settings.database_url)
    logging.basicConfig(level=settings.log_level, format="%(levelname)s:     %(name)s %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up and creating database tables...")
        await db.create_db_and_tables()
        logger.info("Startup complete.")
        yield
        await db.dispose()

    app = FastAPI(title="livememo", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware, allow_origins=settings.cors_origins, allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"], allow_headers=["*"],
    )
    register_error_handlers(app, expose_internal=settings.log_level == "DEBUG")

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    for router in (auth_router, artists_router, live_events_router, memories_router, sync_router):
        app.include_router(router)
    return app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
