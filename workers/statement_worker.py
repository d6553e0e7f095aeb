from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from arq.connections import RedisSettings

from db.postgres import close_postgres, get_session_factory
from extraction.text_extractor import TextExtractor
from extraction.vision_client import VisionClient
from settings.config import settings
from settings.logging_config import configure_logging
from statements.pipeline import StatementPipeline
from storage.s3_client import S3Client

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    return RedisSettings.from_dsn(settings.REDIS_URL or "redis://localhost:6379")


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging(settings.LOG_LEVEL)
    storage = S3Client.from_settings()
    # One OCR client per worker process, shared by every job
    extractor = TextExtractor(VisionClient(), storage=storage)
    ctx["pipeline"] = StatementPipeline(get_session_factory(), extractor)
    logger.info("Statement worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    await close_postgres()
    logger.info("Statement worker stopped")


async def process_statement(
    ctx: dict[str, Any], statement_id: str, file_type: Optional[str] = None, reprocess: bool = False
) -> str:
    pipeline: StatementPipeline = ctx["pipeline"]
    result = await pipeline.run(uuid.UUID(statement_id), file_type=file_type, reprocess=reprocess)
    return result.value



class WorkerSettings:
    functions = [process_statement]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    max_jobs = settings.WORKER_MAX_JOBS
    job_timeout = settings.STATEMENT_JOB_TIMEOUT_SECONDS
    # A failed statement is re-submitted by the client, never retried here
    max_tries = 1
