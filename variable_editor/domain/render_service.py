# variable_editor/domain/render_service.py
import html
import logging
import time
from typing import Mapping, Optional, Protocol

from variable_editor.domain.compositor import Compositor
from variable_editor.domain.exceptions import TemplateNotFoundError
from variable_editor.domain.models import ExportSchema
from variable_editor.domain.resolver import overrides_from_params, resolve

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

READY_MARKER_ID = "finalGraphic"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="margin: 0">
<div id="{marker}" style="background: #fff; margin: 0 auto; display: inline-block; overflow: hidden">{svg}</div>
</body>
</html>
"""


class TemplateStore(Protocol):
    async def get(self, project_id: str) -> Optional[ExportSchema]: ...


class RenderService:
    """
    Server side of the render URL protocol.

    ``projectId`` selects the stored template, ``graphicUrl`` or ``graphicName``
    replaces the base graphic, and every other query parameter is an override.
    """

    def __init__(self, templates: TemplateStore, compositor: Compositor):
        self.templates = templates
        self.compositor = compositor

    async def load_template(self, project_id: Optional[str]) -> ExportSchema:
        template = await self.templates.get(project_id) if project_id else None
        if template is None:
            raise TemplateNotFoundError(project_id or "")
        return template

    async def render_document(self, params: Mapping[str, str]) -> str:
        project_id = params.get("projectId")
        start_time = time.perf_counter()
        template = await self.load_template(project_id)

        graphic_reference = params.get("graphicUrl") or params.get("graphicName")
        if graphic_reference:
            graphic = template.graphic.model_copy(update={"file_name": graphic_reference})
            template = template.model_copy(update={"graphic": graphic})

        resolved = resolve(template, overrides_from_params(params))
        document = await self.compositor.compose(resolved)
        logger.info(f"Rendered document for projectId={project_id} in {time.perf_counter() - start_time:.2f}s")
        return document

    async def render_page(self, params: Mapping[str, str]) -> str:
        svg = await self.render_document(params)
        return PAGE_TEMPLATE.format(title=html.escape(params.get("projectId", "")), marker=READY_MARKER_ID, svg=svg)
