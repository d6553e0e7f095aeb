from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth.routes import router as auth_router
from statements.statement_route import router as statements_router
from statements.statement_service import ArqStatementQueue
from db.postgres import init_postgres, close_postgres
import logging
from settings.config import settings
from settings.logging_config import configure_logging
from storage.s3_client import S3Client
from workers.statement_worker import get_redis_settings

logger = logging.getLogger(__name__)


def get_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting statement ingest API")
    app = FastAPI(title="Statement Ingest API")

    # CORS: enable permissive defaults for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Initializing database")
        await init_postgres()
        try:
            app.state.storage = S3Client.from_settings(settings)
        except RuntimeError as e:
            # File uploads answer 500 until storage is configured; URL registration still works
            logger.warning(f"Storage disabled: {e}")
            app.state.storage = None
        app.state.statement_queue = ArqStatementQueue(get_redis_settings())

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Closing queue and database")
        await app.state.statement_queue.close()
        await close_postgres()

    # Routers
    app.include_router(auth_router)
    app.include_router(statements_router)
    logger.info("Routers initialized successfully")

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        logger.info("Health check")
        return {"status": "ok"}

    logger.info("API started")
    return app


# ASGI app instance
app = get_app()
