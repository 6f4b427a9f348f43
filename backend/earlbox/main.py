"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from earlbox.config import Settings, settings as default_settings
from earlbox.database import build_engine, build_session_factory
from earlbox.models import Base
from earlbox.services.file_storage import FileStorageService
from earlbox.services.reconciler import reconcile_orphan_blobs

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app. Shared handles are created once in the lifespan and kept on app.state."""
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Check the storage root, create tables, sweep orphan blobs."""
        blob_store = FileStorageService(settings.FILE_STORAGE_PATH)
        # unwritable storage root is fatal
        blob_store.ensure_root()

        engine = build_engine(settings.DATABASE_URL)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = build_session_factory(engine)

        app.state.settings = settings
        app.state.blob_store = blob_store
        app.state.engine = engine
        app.state.session_factory = session_factory

        if settings.ORPHAN_SWEEP_ON_STARTUP:
            await reconcile_orphan_blobs(blob_store, session_factory, settings.ORPHAN_GRACE_MINUTES)

        logger.info(f"Earl Box ready, storing files under {blob_store.base_path}")
        yield

        await engine.dispose()

    app = FastAPI(
        title="Earl Box API",
        version="1.0.0",
        description="Upload files over RPC and serve them back by id.",
        lifespan=lifespan,
    )

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "Content-Length"],
    )

    @app.get("/api/health")
    async def health_check():
        """Verify API and database connectivity."""
        try:
            async with app.state.session_factory() as db:
                await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    # Register routers
    from earlbox.routes.files import router as files_router
    from earlbox.routes.rpc import router as rpc_router
    app.include_router(files_router)
    app.include_router(rpc_router)

    return app


app = create_app()
