"""Application entry-point – creates the FastAPI app and runs the processing workers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docrag.api.routes import router
from docrag.config import Settings
from docrag.ingestion.config import IngestSettings
from docrag.services.container import Services, build_services
from docrag.services.task_queue import ProcessingQueue

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app; tests pass pre-wired *services*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services(Settings(), IngestSettings())
        queue = ProcessingQueue(svc.processor.process_document, workers=svc.settings.worker_count)
        app.state.services = svc
        app.state.queue = queue
        released = svc.store.release_stale_claims()
        if released:
            logger.warning("Released %d interrupted processing claims.", released)
        queue.start()
        logger.info("=== Startup complete (%d documents) ===", svc.store.count_documents())
        yield
        await queue.stop()
        logger.info("=== Shutdown complete ===")

    app = FastAPI(
        title="Document Q&A Assistant",
        description=(
            "Uploads documents, extracts and chunks their text, embeds the chunks and "
            "answers questions grounded in the most relevant ones."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(router, prefix="/api")
    return app


app = create_app()
