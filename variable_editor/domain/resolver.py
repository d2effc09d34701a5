# variable_editor/domain/resolver.py
import logging
from typing import Dict, Mapping, Optional, Set

from variable_editor.domain.models import ExportSchema, Layer, TaggedVariable

logger = logging.getLogger(__name__)


def _match(candidates, overrides: Mapping[str, str], used: Set[str]) -> Optional[str]:
    for key in candidates:
        if key is not None and key in overrides:
            used.add(key)
            return overrides[key]
    return None


def _resolve_tag(tag: TaggedVariable, overrides: Mapping[str, str], used: Set[str]) -> TaggedVariable:
    value = _match((tag.variable_name, tag.value), overrides, used)
    if value is None:
        return tag.model_copy()
    return tag.model_copy(update={"value": value})


def _resolve_layer(layer: Layer, overrides: Mapping[str, str], used: Set[str]) -> Layer:
    reference = _match((layer.variable_name, layer.file_name), overrides, used)
    if reference is None:
        return layer.model_copy()
    return layer.model_copy(update={"file_name": reference})


def resolve(template: ExportSchema, overrides: Mapping[str, str]) -> ExportSchema:
    """
    Apply runtime parameter values to a template.

    A tag takes the override named by its variableName, or by its stored value
    (the editor stores the placeholder name there). A layer, the base graphic
    included, swaps its document reference the same way via variableName or
    fileName. The input template is left untouched; override keys that match
    nothing are ignored.
    """
    used: Set[str] = set()
    resolved = ExportSchema(
        graphic=_resolve_layer(template.graphic, overrides, used),
        tags=[_resolve_tag(tag, overrides, used) for tag in template.tags],
        images=[_resolve_layer(layer, overrides, used) for layer in template.images],
        addressing=template.addressing,
    )

    unmatched = sorted(set(overrides) - used)
    if unmatched:
        logger.debug(f"Override keys without a matching tag or layer: {unmatched}")
    return resolved


def overrides_from_params(params: Mapping[str, str], reserved=("projectId", "graphicName", "graphicUrl")) -> Dict[str, str]:
    return {k: v for k, v in params.items() if k not in reserved}
