"""Per-row render URL construction."""

from urllib.parse import parse_qsl, urlsplit

from variable_editor.domain.url_builder import build_row_url


def query(url):
    return parse_qsl(urlsplit(url).query, keep_blank_values=True)


def test_placeholder_names_the_column():
    assert build_row_url("https://example.com/render?text=title", {"title": "Hi"}) == "https://example.com/render?text=Hi"


def test_falls_back_to_column_named_like_the_key():
    url = build_row_url("https://example.com/render?name=unknown", {"name": "Bob"})
    assert query(url) == [("name", "Bob")]


def test_unmatched_parameter_keeps_its_value():
    url = build_row_url("https://example.com/render?projectId=p1&text=title", {"other": "x"})
    assert query(url) == [("projectId", "p1"), ("text", "title")]


def test_braced_placeholders_are_unwrapped():
    url = build_row_url("https://example.com/render?title=%7B%7Btitle%7D%7D", {"title": "Big Sale"})
    assert query(url) == [("title", "Big Sale")]
    assert "Big+Sale" in url


def test_graphic_url_is_never_substituted():
    url = build_row_url("https://example.com/render?graphicUrl=logo", {"logo": "images/x.svg", "graphicUrl": "y"})
    assert query(url) == [("graphicUrl", "logo")]


def test_resolved_storage_paths_are_protected():
    url = build_row_url("https://example.com/render?avatar=images/a.svg", {"avatar": "images/b.svg"})
    assert query(url) == [("avatar", "images/a.svg")]


def test_path_and_fragment_survive():
    url = build_row_url("http://localhost:8000/api/v1/generate?text=title#top", {"title": "Hi"})
    parts = urlsplit(url)
    assert (parts.netloc, parts.path, parts.fragment) == ("localhost:8000", "/api/v1/generate", "top")
