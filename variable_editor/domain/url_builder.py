# variable_editor/domain/url_builder.py
import re
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

RESERVED_KEYS = ("graphicUrl",)
RESOLVED_PATH_PREFIX = "images/"

_PLACEHOLDER = re.compile(r"^\{\{\s*(.+?)\s*\}\}$")


def _unwrap(placeholder: str) -> str:
    match = _PLACEHOLDER.match(placeholder)
    return match.group(1) if match else placeholder


def _lookup(row: Mapping[str, Optional[str]], key: str) -> Optional[str]:
    if key in row and row[key] is not None:
        return row[key]
    return None


def substitute(key: str, placeholder: str, row: Mapping[str, Optional[str]]) -> str:
    if key in RESERVED_KEYS or placeholder.startswith(RESOLVED_PATH_PREFIX):
        return placeholder

    value = _lookup(row, _unwrap(placeholder))
    if value is None:
        value = _lookup(row, key)
    return placeholder if value is None else value


def build_row_url(url_template: str, row: Mapping[str, Optional[str]]) -> str:
    """
    Fill a render URL's query parameters from one input row.

    Each parameter value names the row column that supplies it (``text=title``
    or ``text={{title}}``); when that column is missing, a column named like
    the parameter itself is used, and otherwise the value is kept. ``graphicUrl``
    and values already pointing into storage (``images/...``) are never replaced.
    """
    parts = urlsplit(url_template)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    query = urlencode([(key, substitute(key, placeholder, row)) for key, placeholder in pairs])
    return urlunsplit(parts._replace(query=query))
