"""
Shared fixtures: sample SVG documents, in-memory stores and fake rasterizers.

Async code is driven with asyncio.run inside plain test functions.
"""

from __future__ import annotations

import asyncio
import io
from typing import Callable, Dict, List, Optional

import pytest
from lxml import etree
from PIL import Image

from variable_editor.domain.exceptions import DocumentLoadError
from variable_editor.domain.models import ExportSchema

SVG_NS = {"svg": "http://www.w3.org/2000/svg"}

BASE_SVG = b"""<svg xmlns="http://www.w3.org/2000/svg" width="400" height="300" viewBox="0 0 400 300">
  <rect x="0" y="0" width="400" height="300" fill="#ffffff"/>
  <text x="20" y="40">Hello <tspan font-weight="bold">World</tspan></text>
  <circle cx="300" cy="200" r="20" style="fill:#fff;stroke:red"/>
  <text x="20" y="250">Footer</text>
  <path d="M100 100 L140 100 L140 140 L100 140" fill="#00ff00"/>
</svg>"""

# No element carries a fill attribute, so color tags fall back to the shapes
STYLED_SVG = b"""<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100">
  <circle cx="25" cy="25" r="10" style="fill:#fff;stroke:red"/>
  <rect x="50" y="50" width="20" height="20" style="stroke:blue"/>
</svg>"""


def layer_svg(marker: str, view_box: str = "0 0 200 100", size_attrs: str = "") -> bytes:
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="{view_box}" {size_attrs}>'
        f'<rect id="{marker}" width="200" height="100" fill="blue"/>'
        f"</svg>"
    ).encode()


def run(coro):
    return asyncio.run(coro)


def parse(document: str):
    return etree.fromstring(document.encode("utf-8"))


def texts(root) -> List[str]:
    return ["".join(el.itertext()) for el in root.iterfind(".//svg:text", SVG_NS)]


class MemoryDocumentStore:
    def __init__(self, documents: Optional[Dict[str, bytes]] = None):
        self.documents = dict(documents or {})
        self.requested: List[str] = []
        self.uploads: Dict[str, bytes] = {}

    async def get(self, reference: str) -> bytes:
        self.requested.append(reference)
        if reference not in self.documents:
            raise DocumentLoadError(reference, "not found")
        return self.documents[reference]

    async def put(self, name: str, data: bytes) -> str:
        self.uploads[name] = data
        return f"memory://{name}"


class MemoryTemplateStore:
    def __init__(self, templates: Optional[Dict[str, ExportSchema]] = None):
        self.templates = dict(templates or {})

    async def get(self, project_id: str) -> Optional[ExportSchema]:
        return self.templates.get(project_id)

    async def save(self, project_id: str, template: ExportSchema) -> None:
        self.templates[project_id] = template


class FakeRasterizer:
    """Returns a tiny PNG; `fail` decides per call whether to raise instead."""

    def __init__(self, fail: Optional[Callable[[str, int], Optional[Exception]]] = None, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def render(self, target_url: str, ready_selector: str, timeout_ms: int) -> bytes:
        self.calls.append(target_url)
        attempt = self.calls.count(target_url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail is not None:
                error = self.fail(target_url, attempt)
                if error is not None:
                    raise error
            return make_png()
        finally:
            self.active -= 1


def make_png(size=(4, 4), color=(255, 0, 0, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def documents() -> MemoryDocumentStore:
    return MemoryDocumentStore({
        "images/base.svg": BASE_SVG,
        "images/styled.svg": STYLED_SVG,
        "images/layer0.svg": layer_svg("layer0"),
        "images/layer1.svg": layer_svg("layer1"),
        "images/layer2.svg": layer_svg("layer2"),
        "images/broken.svg": b"<svg><rect></svg>",
    })


@pytest.fixture
def template() -> ExportSchema:
    return ExportSchema.model_validate({
        "graphic": {"fileName": "images/base.svg", "order": 0},
        "tags": [
            {"id": "t1", "type": "text", "index": 0, "value": "title", "variableName": "title"},
            {"id": "c1", "type": "color", "index": 1, "value": "#00ff00", "variableName": "accent"},
        ],
        "images": [
            {"id": "l1", "fileName": "images/layer1.svg", "variableName": "logo", "x": 10, "y": 20,
             "width": 100, "height": 50, "order": 1},
        ],
    })


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()
