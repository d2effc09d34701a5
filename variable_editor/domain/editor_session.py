# variable_editor/domain/editor_session.py
"""
Editor state as plain data.

The editor's selection and tagging state lives in an ``EditorSession`` value.
Every operation below takes a session and returns a new one, so a session can
be serialized between requests and replayed without hidden component state.
Tag indices are assigned here, against the untouched base document, and stay
valid for rendering as long as that document is not restructured.
"""
from typing import List, Literal, Optional
from urllib.parse import urlencode
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from variable_editor.domain.models import ByAnchor, ByIndex, ExportSchema, Layer, TaggedVariable, candidates_for
from variable_editor.domain.svg_geometry import local_name


class EditorSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    graphic: Optional[Layer] = None
    images: List[Layer] = Field(default_factory=list)
    tags: List[TaggedVariable] = Field(default_factory=list)
    addressing: Literal["index", "anchor"] = "index"


def set_graphic(session: EditorSession, layer: Layer) -> EditorSession:
    # a graphic is never also an overlay
    images = [image for image in session.images if image.id is None or image.id != layer.id]
    return session.model_copy(update={"graphic": layer, "images": images})


def add_image(session: EditorSession, layer: Layer) -> EditorSession:
    update = {}
    if layer.id is None:
        update["id"] = uuid4().hex
    if "order" not in layer.model_fields_set:
        update["order"] = len(session.images)
    return session.model_copy(update={"images": [*session.images, layer.model_copy(update=update)]})


def set_image_variable(session: EditorSession, layer_id: str, variable_name: str) -> EditorSession:
    name = variable_name.strip() or None
    images = [
        image.model_copy(update={"variable_name": name}) if image.id == layer_id else image
        for image in session.images
    ]
    if not any(image.id == layer_id for image in session.images):
        raise KeyError(layer_id)
    return session.model_copy(update={"images": images})


def _current_value(element, tag_type: str) -> str:
    if tag_type == "text":
        return "".join(element.itertext())
    fill = element.get("fill")
    if fill is not None:
        return fill
    for declaration in (element.get("style") or "").split(";"):
        prop, _, value = declaration.partition(":")
        if prop.strip() == "fill":
            return value.strip()
    return ""


def _add_tag(session: EditorSession, document, tag_type: str, locator, variable_name: Optional[str]) -> EditorSession:
    element = locator.locate(document, tag_type)
    if element is None:
        raise IndexError(f"No {tag_type} element at {locator}")

    tag = TaggedVariable(
        type=tag_type,
        value=_current_value(element, tag_type),
        variable_name=(variable_name or "").strip() or None,
        index=locator.index if isinstance(locator, ByIndex) else None,
        x=locator.x if isinstance(locator, ByAnchor) else None,
        y=locator.y if isinstance(locator, ByAnchor) else None,
    )
    for existing in session.tags:
        if existing.type == tag.type and existing.index == tag.index and existing.x == tag.x and existing.y == tag.y:
            # already tagged
            return session
    return session.model_copy(update={"tags": [*session.tags, tag]})


def tag_text(session: EditorSession, document, index: int, variable_name: Optional[str] = None) -> EditorSession:
    return _add_tag(session, document, "text", ByIndex(index=index), variable_name)


def tag_color(
    session: EditorSession,
    document,
    index: Optional[int] = None,
    point: Optional[tuple] = None,
    variable_name: Optional[str] = None,
) -> EditorSession:
    if index is not None:
        locator = ByIndex(index=index)
    elif point is not None:
        locator = ByAnchor(x=point[0], y=point[1])
    else:
        raise ValueError("tag_color needs an index or a point")
    return _add_tag(session, document, "color", locator, variable_name)


def rename_tag(session: EditorSession, tag_id: str, variable_name: str) -> EditorSession:
    name = variable_name.strip() or None
    tags = [tag.model_copy(update={"variable_name": name}) if tag.id == tag_id else tag for tag in session.tags]
    if not any(tag.id == tag_id for tag in session.tags):
        raise KeyError(tag_id)
    return session.model_copy(update={"tags": tags})


def element_index(document, element) -> Optional[int]:
    """Ordinal of an element among the candidates of its kind, for tagging a clicked element."""
    tag_type = "text" if local_name(element) == "text" else "color"
    for i, candidate in enumerate(candidates_for(document, tag_type)):
        if candidate is element:
            return i
    return None


def to_schema(session: EditorSession) -> ExportSchema:
    if session.graphic is None:
        raise ValueError("No graphic has been chosen for this session")
    return ExportSchema(
        graphic=session.graphic,
        tags=list(session.tags),
        images=list(session.images),
        addressing=session.addressing,
    )


def build_export_url(session: EditorSession, base_url: str) -> str:
    """Render URL template with one ``{{name}}`` placeholder per named variable."""
    params = [("projectId", session.project_id)]
    seen = set()
    for name in [tag.variable_name for tag in session.tags] + [image.variable_name for image in session.images]:
        if name and name not in seen:
            seen.add(name)
            params.append((name, f"{{{{{name}}}}}"))
    return f"{base_url}?{urlencode(params)}"
