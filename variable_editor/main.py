# variable_editor/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import logging
import os

import aiohttp

from variable_editor.config.settings import settings
from variable_editor.config.database import AsyncSessionLocal, init_db
from variable_editor.delivery.api.render import router
from variable_editor.domain.batch import BatchRenderer
from variable_editor.domain.compositor import Compositor
from variable_editor.domain.render_service import RenderService
from variable_editor.infrastructure.browser.rasterizer import PlaywrightRasterizer
from variable_editor.infrastructure.database.template_store import SqlTemplateStore
from variable_editor.infrastructure.storage.document_store import DocumentStore

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    max_workers = min(4, os.cpu_count() or 1)  # Conservative limit
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    app.state.http_session = aiohttp.ClientSession()
    logger.info(f"Service '{settings.PROJECT_NAME}' starting (mode: {settings.ENVIRONMENT}).")

    await init_db()
    documents = DocumentStore(session=app.state.http_session, executor=app.state.executor)
    app.state.template_store = SqlTemplateStore(AsyncSessionLocal)
    app.state.render_service = RenderService(app.state.template_store, Compositor(documents))

    app.state.rasterizer = PlaywrightRasterizer()
    await app.state.rasterizer.start()
    app.state.batch_renderer = BatchRenderer(app.state.rasterizer, documents)
    logger.info(f"Batch renderer ready with {app.state.batch_renderer.concurrency} workers.")
    yield
    logger.info("Shutting down browser, HTTP session and executor...")
    await app.state.rasterizer.close()
    await app.state.http_session.close()
    app.state.executor.shutdown(wait=True)
    logger.info("Service stopped.")

app = FastAPI(
    title="Variable Editor Render Service",
    description="Composes parameterized SVG templates and renders them to images, one at a time or in bulk from CSV",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Variable Editor Render Service", "version": "1.0.0", "status": "ok"}

@app.get("/health")
async def health_check():
    rasterizer = getattr(app.state, "rasterizer", None)
    return {"status": "ok", "service": settings.PROJECT_NAME, "browser_ready": rasterizer is not None}
