"""Compositor: text/color substitution, layer transforms and ordering."""

import pytest
from lxml import etree
from pydantic import ValidationError

from conftest import BASE_SVG, SVG_NS, STYLED_SVG, layer_svg, parse, run, texts
from variable_editor.domain.compositor import (
    Compositor,
    LayerTransform,
    apply_fill,
    apply_tags,
    layer_transform,
    parse_document,
)
from variable_editor.domain.exceptions import DocumentLoadError, MalformedDocumentError
from variable_editor.domain.models import ExportSchema, Layer


def schema(**kwargs) -> ExportSchema:
    data = {"graphic": {"fileName": "images/base.svg"}}
    data.update(kwargs)
    return ExportSchema.model_validate(data)


class TestTextSubstitution:

    def test_replaces_children_of_indexed_text(self):
        root = parse_document(BASE_SVG)
        apply_tags(root, schema(tags=[{"type": "text", "index": 0, "value": "Hi"}]))
        first = root.find(".//svg:text", SVG_NS)
        assert "".join(first.itertext()) == "Hi"
        assert len(first) == 0

    def test_second_text_by_document_order(self):
        root = parse_document(BASE_SVG)
        apply_tags(root, schema(tags=[{"type": "text", "index": 1, "value": "Bye"}]))
        assert texts(root) == ["Hello World", "Bye"]

    def test_missing_value_clears_text(self):
        root = parse_document(BASE_SVG)
        apply_tags(root, schema(tags=[{"type": "text", "index": 1}]))
        assert texts(root)[1] == ""

    @pytest.mark.parametrize("index", [-1, 2, 99])
    def test_out_of_range_index_is_ignored(self, index):
        root = parse_document(BASE_SVG)
        applied = apply_tags(root, schema(tags=[{"type": "text", "index": index, "value": "X"}]))
        assert applied == 0
        assert texts(root) == ["Hello World", "Footer"]

    def test_legacy_anchor_picks_nearest_text(self):
        root = parse_document(BASE_SVG)
        apply_tags(root, schema(tags=[{"type": "text", "x": 25, "y": 240, "value": "Anchored"}]))
        assert texts(root) == ["Hello World", "Anchored"]


class TestColorSubstitution:

    def test_index_addresses_fill_candidates(self):
        root = parse_document(BASE_SVG)
        apply_tags(root, schema(tags=[{"type": "color", "index": 1, "value": "#123456"}]))
        path = root.find(".//svg:path", SVG_NS)
        rect = root.find(".//svg:rect", SVG_NS)
        assert path.get("fill") == "#123456"
        assert rect.get("fill") == "#ffffff"

    def test_anchor_picks_nearest_path_center(self):
        root = parse_document(BASE_SVG)
        # path endpoints average to (120, 120); the rect center is (200, 150)
        apply_tags(root, schema(tags=[{"type": "color", "x": 118, "y": 121, "value": "red"}]))
        assert root.find(".//svg:path", SVG_NS).get("fill") == "red"
        assert root.find(".//svg:rect", SVG_NS).get("fill") == "#ffffff"

    def test_style_fill_is_rewritten_in_place(self):
        root = parse_document(STYLED_SVG)
        apply_tags(root, schema(tags=[{"type": "color", "index": 0, "value": "#000"}]))
        circle = root.find(".//svg:circle", SVG_NS)
        assert circle.get("style") == "fill: #000;stroke:red"
        assert circle.get("fill") is None

    def test_style_without_fill_gets_one_appended(self):
        root = parse_document(STYLED_SVG)
        apply_tags(root, schema(tags=[{"type": "color", "x": 60, "y": 60, "value": "green"}]))
        rect = root.find(".//svg:rect", SVG_NS)
        assert rect.get("style") == "stroke:blue; fill: green;"

    def test_element_without_fill_or_style_gets_attribute(self):
        element = etree.Element("rect")
        apply_fill(element, "#abc")
        assert element.get("fill") == "#abc"

    def test_fill_opacity_is_not_mistaken_for_fill(self):
        element = etree.Element("rect", style="fill-opacity:0.5;fill:#fff")
        apply_fill(element, "#000")
        assert element.get("style") == "fill-opacity:0.5;fill: #000"

    def test_indices_refer_to_untouched_document(self):
        doc = b"""<svg xmlns="http://www.w3.org/2000/svg">
          <text x="0" y="0">A <tspan fill="red">B</tspan></text>
          <rect fill="blue"/>
        </svg>"""
        root = parse_document(doc)
        apply_tags(root, schema(tags=[
            {"type": "text", "index": 0, "value": "plain"},
            {"type": "color", "index": 1, "value": "green"},
        ]))
        # the tspan was candidate 0 before the text tag removed it
        assert root.find(".//svg:rect", SVG_NS).get("fill") == "green"


class TestLayerTransform:

    def test_view_box_sized_layer(self):
        child = parse_document(layer_svg("a"))
        transform = layer_transform(Layer(file_name="a", x=10, y=20, width=100, height=50), child)
        assert transform == LayerTransform(0.5, 0.5, 10, 20)
        assert transform.to_svg() == "translate(10, 20) scale(0.5, 0.5)"

    def test_view_box_origin_is_compensated(self):
        child = parse_document(layer_svg("a", view_box="10 20 200 100"))
        transform = layer_transform(Layer(file_name="a", width=100, height=50), child)
        assert transform.to_svg() == "translate(-5, -10) scale(0.5, 0.5)"

    def test_explicit_size_wins_over_view_box(self):
        child = parse_document(layer_svg("a", view_box="10 20 50 50", size_attrs='width="400px" height="200"'))
        transform = layer_transform(Layer(file_name="a", x=1, y=2, width=100, height=50), child)
        assert transform.to_svg() == "translate(1, 2) scale(0.25, 0.25)"

    def test_unknown_size_keeps_identity_scale(self):
        child = parse_document(b'<svg xmlns="http://www.w3.org/2000/svg"><rect/></svg>')
        transform = layer_transform(Layer(file_name="a", x=5, y=6, width=100, height=50), child)
        assert transform.to_svg() == "translate(5, 6) scale(1, 1)"

    def test_layer_without_target_size(self):
        child = parse_document(layer_svg("a", view_box="10 20 200 100"))
        assert layer_transform(Layer(file_name="a", x=3), child).to_svg() == "translate(3, 0) scale(1, 1)"

    def test_non_finite_sizes_are_rejected(self):
        with pytest.raises(ValidationError):
            Layer(file_name="a", width=float("inf"), height=50)
        child = parse_document(layer_svg("a", view_box="0 0 1e400 100"))
        assert layer_transform(Layer(file_name="a", width=100, height=50), child).to_svg() == "translate(0, 0) scale(1, 1)"


class TestCompose:

    def test_full_composition(self, documents, template):
        root = parse(run(Compositor(documents).compose(template)))
        assert texts(root)[0] == "title"
        outer = root[-1]
        assert outer.get("id") == "additionalImages"
        assert outer[0].get("transform") == "translate(10, 20) scale(0.5, 0.5)"
        assert outer[0][0].get("id") == "layer1"

    def test_layers_are_stacked_by_order(self, documents):
        images = [
            {"fileName": f"images/layer{order}.svg", "order": order, "width": 100, "height": 50}
            for order in (2, 0, 1)
        ]
        root = parse(run(Compositor(documents).compose(schema(images=images))))
        groups = root.find(".//svg:g[@id='additionalImages']", SVG_NS)
        assert [g[0].get("id") for g in groups] == ["layer0", "layer1", "layer2"]

    def test_no_layers_means_no_outer_group(self, documents):
        root = parse(run(Compositor(documents).compose(schema())))
        assert root.find(".//svg:g[@id='additionalImages']", SVG_NS) is None

    def test_graphic_size_overrides_root_attributes(self, documents):
        root = parse(run(Compositor(documents).compose(
            schema(graphic={"fileName": "images/base.svg", "width": 800, "height": 600.5})
        )))
        assert root.get("width") == "800"
        assert root.get("height") == "600.5"
        assert root.get("viewBox") == "0 0 400 300"

    def test_compose_is_deterministic(self, documents, template):
        compositor = Compositor(documents)
        assert run(compositor.compose(template)) == run(compositor.compose(template))

    def test_missing_layer_document_fails(self, documents):
        with pytest.raises(DocumentLoadError):
            run(Compositor(documents).compose(schema(images=[{"fileName": "images/nope.svg"}])))

    def test_malformed_base_document_fails(self, documents):
        with pytest.raises(MalformedDocumentError):
            run(Compositor(documents).compose(schema(graphic={"fileName": "images/broken.svg"})))
