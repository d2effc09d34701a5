# variable_editor/domain/models.py
"""
Template model.

An ``ExportSchema`` is what the editor stores per project: the base graphic,
the tags bound to runtime variables, and the overlay image layers. Field
names on the wire are camelCase, as the editor writes them.
"""
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from variable_editor.domain.svg_geometry import SHAPE_TAGS, iter_local, nearest_element

TagType = Literal["text", "color"]


def candidates_for(document, tag_type: TagType) -> list:
    """
    Elements a tag of the given type can address, in document order.

    Text tags address <text> elements. Color tags address every element that
    carries a fill attribute, or the basic shapes when none does.
    """
    if tag_type == "text":
        return list(iter_local(document, ("text",)))
    filled = [el for el in document.iter() if isinstance(el.tag, str) and el.get("fill") is not None]
    if filled:
        return filled
    return list(iter_local(document, SHAPE_TAGS))


class ByIndex(BaseModel):
    kind: Literal["index"] = "index"
    index: int

    def locate(self, document, tag_type: TagType):
        candidates = candidates_for(document, tag_type)
        if 0 <= self.index < len(candidates):
            return candidates[self.index]
        return None


class ByAnchor(BaseModel):
    """Legacy addressing: the element nearest to a point picked on the canvas."""

    model_config = ConfigDict(allow_inf_nan=False)

    kind: Literal["anchor"] = "anchor"
    x: float
    y: float

    def locate(self, document, tag_type: TagType):
        return nearest_element(candidates_for(document, tag_type), self.x, self.y)


Locator = Annotated[Union[ByIndex, ByAnchor], Field(discriminator="kind")]


class Layer(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    id: Optional[str] = None
    file_name: str = Field(alias="fileName")
    variable_name: Optional[str] = Field(default=None, alias="variableName")
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    order: int = 0


class TaggedVariable(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    id: str = Field(default_factory=lambda: uuid4().hex)
    fabric_id: Optional[str] = Field(default=None, alias="fabricId")
    type: TagType
    x: Optional[float] = None
    y: Optional[float] = None
    index: Optional[int] = None
    value: Optional[str] = None
    variable_name: Optional[str] = Field(default=None, alias="variableName")

    def locator(self, prefer: str = "index") -> Optional[Locator]:
        by_index = ByIndex(index=self.index) if self.index is not None else None
        by_anchor = ByAnchor(x=self.x, y=self.y) if self.x is not None and self.y is not None else None
        if by_index and by_anchor:
            return by_anchor if prefer == "anchor" else by_index
        return by_index or by_anchor


class ExportSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    graphic: Layer
    tags: List[TaggedVariable] = Field(default_factory=list)
    images: List[Layer] = Field(default_factory=list)
    # Picks the locator for tags that carry both an index and an anchor point
    addressing: Literal["index", "anchor"] = "index"

    def locator_for(self, tag: TaggedVariable) -> Optional[Locator]:
        return tag.locator(prefer=self.addressing)

    def ordered_images(self) -> List[Layer]:
        return sorted(self.images, key=lambda layer: layer.order)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
