# variable_editor/domain/compositor.py
import asyncio
import copy
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from lxml import etree

from variable_editor.domain.exceptions import MalformedDocumentError
from variable_editor.domain.models import ExportSchema, Layer, TaggedVariable
from variable_editor.domain.svg_geometry import format_number, intrinsic_size

logger = logging.getLogger(__name__)

ADDITIONAL_IMAGES_ID = "additionalImages"

_FILL_DECLARATION = re.compile(r"(?<![\w-])fill\s*:\s*[^;]+")


class DocumentSource(Protocol):
    async def get(self, reference: str) -> bytes: ...


def parse_document(data: bytes, reference: str = "<memory>"):
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(data, parser=parser)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise MalformedDocumentError(reference, str(e)) from e
    if root is None:
        raise MalformedDocumentError(reference, "empty document")
    return root


def serialize_document(root) -> str:
    return etree.tostring(root, encoding="unicode")


def _qualified(root, name: str) -> str:
    namespace = etree.QName(root).namespace
    return f"{{{namespace}}}{name}" if namespace else name


# --- Tags ---

def replace_text(element, value: Optional[str]) -> None:
    for child in list(element):
        element.remove(child)
    element.text = value or ""


def apply_fill(element, color: Optional[str]) -> None:
    color = color or ""
    if element.get("fill") is not None:
        element.set("fill", color)
        return

    style = element.get("style")
    if not style:
        element.set("fill", color)
        return

    if _FILL_DECLARATION.search(style):
        style = _FILL_DECLARATION.sub(lambda _: f"fill: {color}", style, count=1)
    elif style.rstrip().endswith(";"):
        style = f"{style} fill: {color};"
    else:
        style = f"{style}; fill: {color};"
    element.set("style", style)


def apply_tags(root, template: ExportSchema) -> int:
    """
    Substitute text and color tags in place; returns how many were applied.

    Every locator is resolved before anything is modified so that indices keep
    pointing at the untouched base structure.
    """
    targets: List[Tuple[TaggedVariable, object]] = []
    for tag in template.tags:
        locator = template.locator_for(tag)
        if locator is None:
            logger.debug(f"Tag {tag.id} has neither index nor anchor, skipped")
            continue
        element = locator.locate(root, tag.type)
        if element is None:
            logger.debug(f"Tag {tag.id} ({tag.type}) matched no element via {locator}, skipped")
            continue
        targets.append((tag, element))

    for tag, element in targets:
        if tag.type == "text":
            replace_text(element, tag.value)
        else:
            apply_fill(element, tag.value)
    return len(targets)


def apply_graphic_size(root, graphic: Layer) -> None:
    if graphic.width and graphic.height:
        root.set("width", format_number(graphic.width))
        root.set("height", format_number(graphic.height))


# --- Layers ---

@dataclass(frozen=True)
class LayerTransform:
    scale_x: float = 1.0
    scale_y: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0

    def to_svg(self) -> str:
        return (
            f"translate({format_number(self.translate_x)}, {format_number(self.translate_y)}) "
            f"scale({format_number(self.scale_x)}, {format_number(self.scale_y)})"
        )


def layer_transform(layer: Layer, child_root) -> LayerTransform:
    scale_x = scale_y = 1.0
    origin_x = origin_y = 0.0
    if layer.width and layer.height:
        size = intrinsic_size(child_root)
        if size is not None:
            scale_x = layer.width / size.width
            scale_y = layer.height / size.height
            if size.from_view_box:
                origin_x, origin_y = size.origin_x, size.origin_y

    return LayerTransform(
        scale_x=scale_x,
        scale_y=scale_y,
        translate_x=(layer.x or 0) - origin_x * scale_x,
        translate_y=(layer.y or 0) - origin_y * scale_y,
    )


def composite_layers(root, placed: Sequence[Tuple[Layer, object]]) -> None:
    """Append one group per layer, in the given order, inside a single outer group."""
    if not placed:
        return
    group_tag = _qualified(root, "g")
    outer = etree.SubElement(root, group_tag)
    outer.set("id", ADDITIONAL_IMAGES_ID)
    for layer, child_root in placed:
        group = etree.SubElement(outer, group_tag)
        group.set("transform", layer_transform(layer, child_root).to_svg())
        for child in child_root:
            group.append(copy.deepcopy(child))


class Compositor:
    def __init__(self, documents: DocumentSource):
        self.documents = documents

    async def load(self, reference: str):
        data = await self.documents.get(reference)
        return parse_document(data, reference)

    async def compose(self, template: ExportSchema) -> str:
        root = await self.load(template.graphic.file_name)
        apply_graphic_size(root, template.graphic)
        applied = apply_tags(root, template)

        layers = template.ordered_images()
        children = await asyncio.gather(*(self.load(layer.file_name) for layer in layers))
        composite_layers(root, list(zip(layers, children)))

        logger.info(
            f"Composed '{template.graphic.file_name}': {applied}/{len(template.tags)} tags applied, "
            f"{len(layers)} layers"
        )
        return serialize_document(root)
