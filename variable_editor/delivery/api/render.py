# variable_editor/delivery/api/render.py
from fastapi import APIRouter, Request, Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.responses import HTMLResponse, JSONResponse, Response
from variable_editor.config.settings import settings
from variable_editor.delivery.schemas.body import BatchRequest, BatchResponse
from variable_editor.domain.exceptions import (
    DocumentLoadError,
    MalformedDocumentError,
    RenderError,
    RenderTimeoutError,
    TemplateNotFoundError,
    VariableEditorError,
)
from variable_editor.domain.models import ExportSchema
from variable_editor.infrastructure.storage.csv_source import CsvRowSource
import csv
import secrets
import logging
import traceback

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

ERROR_STATUS = [
    (TemplateNotFoundError, status.HTTP_404_NOT_FOUND),
    (MalformedDocumentError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DocumentLoadError, status.HTTP_502_BAD_GATEWAY),
    (RenderTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (RenderError, status.HTTP_502_BAD_GATEWAY),
]

def to_http_error(error: VariableEditorError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))

def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        logger.error(f"{name} not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service

def _render_target(request: Request) -> str:
    query = request.url.query
    return f"{settings.RENDER_BASE_URL.rstrip('/')}/generate" + (f"?{query}" if query else "")


@router.get("/generate", response_class=HTMLResponse)
async def generate(request: Request):
    """Composed template as an HTML page; this is what the rasterizer screenshots."""
    service = _state(request, "render_service")
    try:
        page = await service.render_page(dict(request.query_params))
    except VariableEditorError as e:
        logger.warning(f"Generate failed for {request.url.query}: {e}")
        raise to_http_error(e)
    return HTMLResponse(content=page)


@router.get("/generate.svg")
async def generate_svg(request: Request):
    service = _state(request, "render_service")
    try:
        document = await service.render_document(dict(request.query_params))
    except VariableEditorError as e:
        logger.warning(f"Generate failed for {request.url.query}: {e}")
        raise to_http_error(e)
    return Response(content=document, media_type="image/svg+xml")


@router.get("/render", dependencies=[Depends(verify_basic_auth)])
async def render(request: Request):
    rasterizer = _state(request, "rasterizer")
    target_url = _render_target(request)
    logger.info(f"=== RENDER START for {target_url} ===")
    try:
        image = await rasterizer.render(target_url, settings.READY_SELECTOR, settings.RENDER_TIMEOUT_MS)
    except VariableEditorError as e:
        logger.error(f"=== RENDER ERROR for {target_url}: {e} ===")
        raise to_http_error(e)
    except Exception as e:
        logger.error(f"=== RENDER ERROR for {target_url}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error generating image")
    logger.info(f"=== RENDER SUCCESS for {target_url} ===")
    return Response(content=image, media_type="image/png")


@router.post("/batch", dependencies=[Depends(verify_basic_auth)], response_model=BatchResponse)
async def batch(request: Request, body: BatchRequest):
    renderer = _state(request, "batch_renderer")
    url_template = body.url_template or _render_target(request)
    try:
        report = await renderer.run_batch(CsvRowSource(body.csv, delimiter=body.delimiter), url_template)
    except csv.Error as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid CSV: {e}")
    except Exception as e:
        logger.error(f"=== BATCH ERROR: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error generating images")
    response = BatchResponse(image_urls=report.urls, errors=report.failures)
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))


@router.get("/templates/{project_id}")
async def get_template(request: Request, project_id: str):
    store = _state(request, "template_store")
    template = await store.get(project_id)
    if template is None:
        raise to_http_error(TemplateNotFoundError(project_id))
    return JSONResponse(status_code=200, content=template.to_document())


@router.put("/templates/{project_id}", dependencies=[Depends(verify_basic_auth)])
async def put_template(request: Request, project_id: str, template: ExportSchema):
    store = _state(request, "template_store")
    await store.save(project_id, template)
    return {"status": "ok", "projectId": project_id}
