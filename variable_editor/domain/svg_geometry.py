# variable_editor/domain/svg_geometry.py
"""
Attribute-derived SVG geometry.

There is no layout engine on the server, so element positions are estimated
from their attributes only: rect/circle/ellipse/line/text coordinates, polygon
points and path-data endpoints.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
SHAPE_TAGS = ("path", "rect", "circle", "polygon", "polyline")

_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_PATH_TOKEN = re.compile(r"([MmZzLlHhVvCcSsQqTtAa])|([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_PATH_ARITY = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7}

Point = Tuple[float, float]


def local_name(element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        # comments and processing instructions
        return ""
    return tag.rsplit("}", 1)[-1]


def parse_length(value: Optional[str]) -> Optional[float]:
    """Leading numeric part of an attribute ("100px" -> 100.0), None when absent."""
    if not value:
        return None
    match = _LEADING_NUMBER.match(value)
    if not match:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def parse_view_box(value: Optional[str]) -> Optional[Tuple[float, float, float, float]]:
    if not value:
        return None
    parts = [p for p in re.split(r"[\s,]+", value.strip()) if p]
    if len(parts) != 4:
        return None
    try:
        min_x, min_y, width, height = (float(p) for p in parts)
    except ValueError:
        return None
    if not all(math.isfinite(n) for n in (min_x, min_y, width, height)):
        return None
    return min_x, min_y, width, height


@dataclass(frozen=True)
class IntrinsicSize:
    width: float
    height: float
    origin_x: float = 0.0
    origin_y: float = 0.0
    from_view_box: bool = False


def intrinsic_size(root) -> Optional[IntrinsicSize]:
    """
    Original size of a document root.

    Explicit width/height attributes win when both are present and positive,
    otherwise the viewBox extents (and origin) are used. Returns None when
    neither source gives a positive size.
    """
    width = parse_length(root.get("width"))
    height = parse_length(root.get("height"))
    if width and height and width > 0 and height > 0:
        return IntrinsicSize(width, height)

    view_box = parse_view_box(root.get("viewBox"))
    if view_box:
        min_x, min_y, vb_width, vb_height = view_box
        if vb_width > 0 and vb_height > 0:
            return IntrinsicSize(vb_width, vb_height, min_x, min_y, from_view_box=True)
    return None


def points_center(points: str) -> Optional[Point]:
    coords = [float(n) for n in _NUMBER.findall(points)]
    if len(coords) < 2:
        return None
    pairs = np.array(coords[: len(coords) // 2 * 2]).reshape(-1, 2)
    cx, cy = pairs.mean(axis=0)
    return float(cx), float(cy)


def _path_tokens(d: str) -> List[str]:
    return [command or number for command, number in _PATH_TOKEN.findall(d)]


def _split_arc_flags(tokens: List[str], start: int) -> None:
    # arc flags are single digits and may be written without separators ("a1 1 0 00 10 10")
    for offset in (3, 4):
        i = start + offset
        if i < len(tokens) and len(tokens[i]) > 1 and tokens[i][0] in "01" and not tokens[i].isalpha():
            tokens[i:i + 1] = [tokens[i][0], tokens[i][1:]]


def path_endpoints(d: str) -> List[complex]:
    """
    Absolute endpoint of every path-data command, in drawing order.

    Each moveto, lineto, curve and arc contributes its end point, implicit
    repeats included. Closepath contributes nothing; it only moves the
    current point back to the subpath start. Parsing stops at the first
    malformed command and keeps what was read so far.
    """
    tokens = _path_tokens(d)
    points: List[complex] = []
    current = start = 0j
    command = None
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.isalpha():
            i += 1
            if token in "Zz":
                current = start
                command = None
            else:
                command = token
            continue
        if command is None:
            logger.debug(f"Path data '{d[:40]}' has coordinates without a command")
            break

        kind = command.upper()
        relative = command.islower()
        if kind == "A":
            _split_arc_flags(tokens, i)
        args = tokens[i:i + _PATH_ARITY[kind]]
        if len(args) < _PATH_ARITY[kind] or any(arg.isalpha() for arg in args):
            logger.debug(f"Path data '{d[:40]}' ends with an incomplete '{command}' command")
            break
        values = [float(arg) for arg in args]
        i += len(args)

        if kind == "H":
            end = complex(values[0] + (current.real if relative else 0), current.imag)
        elif kind == "V":
            end = complex(current.real, values[0] + (current.imag if relative else 0))
        else:
            end = complex(values[-2], values[-1]) + (current if relative else 0)
        points.append(end)
        current = end
        if kind == "M":
            start = end
            # further coordinate pairs after a moveto are linetos
            command = "l" if relative else "L"
    return points


def path_center(d: str) -> Point:
    points = path_endpoints(d)
    if not points:
        return 0.0, 0.0
    arr = np.array(points, dtype=complex)
    return float(arr.real.mean()), float(arr.imag.mean())


def _num(element, name: str) -> float:
    return parse_length(element.get(name)) or 0.0


def element_center(element) -> Optional[Point]:
    name = local_name(element)
    if name == "rect":
        return _num(element, "x") + _num(element, "width") / 2, _num(element, "y") + _num(element, "height") / 2
    if name in ("circle", "ellipse"):
        return _num(element, "cx"), _num(element, "cy")
    if name in ("polygon", "polyline"):
        points = element.get("points")
        return points_center(points) if points else None
    if name == "path":
        d = element.get("d")
        return path_center(d) if d else None
    if name == "line":
        return (
            (_num(element, "x1") + _num(element, "x2")) / 2,
            (_num(element, "y1") + _num(element, "y2")) / 2,
        )
    if name == "text":
        return _num(element, "x"), _num(element, "y")
    return None


def nearest_element(candidates: Iterable, x: float, y: float):
    """Candidate whose center is closest to (x, y); the first one wins ties."""
    located = []
    centers = []
    for element in candidates:
        center = element_center(element)
        if center is None:
            continue
        located.append(element)
        centers.append(center)
    if not located:
        return None

    arr = np.array(centers)
    distances = np.hypot(arr[:, 0] - x, arr[:, 1] - y)
    return located[int(np.argmin(distances))]


def iter_local(root, names: Sequence[str]):
    """Elements under root (root included) whose local name is in names, in document order."""
    for element in root.iter():
        if local_name(element) in names:
            yield element


def format_number(value: float) -> str:
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(float(value))
