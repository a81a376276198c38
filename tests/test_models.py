"""Tests for result types, merging and the overlay payload."""

import json

from invocr.services.ocr.models import (
    Box,
    Group,
    ImageMeta,
    ModelSpec,
    OcrResult,
    Token,
    empty_pipeline_output,
    merge_results,
)


def _group(group_id, texts, confidence, box=None):
    tokens = [Token(text, confidence) for text in texts]
    return Group(group_id, tokens, confidence, box if box is not None else [0, 0, 10, 10])


class TestBox:
    def test_geometry(self):
        box = Box(10, 20, 40, 30)
        assert (box.width, box.height) == (30, 10)
        assert box.is_valid
        assert not Box(5, 5, 5, 9).is_valid

    def test_offset_keeps_score(self):
        moved = Box(1, 2, 3, 4, 0.7).offset(10, 20)
        assert moved.to_list() == [11, 22, 13, 24]
        assert moved.score == 0.7


class TestModelSpec:
    def test_required_assets(self):
        assert ModelSpec("r.onnx", "d.txt").required_assets() == ["r.onnx", "d.txt"]
        full = ModelSpec("r.onnx", "d.txt", det_model="det.onnx", cls_model="cls.onnx")
        assert full.required_assets() == ["r.onnx", "d.txt", "det.onnx", "cls.onnx"]


class TestMergeResults:
    def test_higher_confidence_wins(self):
        local = OcrResult([_group("a", ["SKU"], 0.6)])
        other = OcrResult([_group("b", ["SKU"], 0.9)])
        merged = merge_results(local, other)
        assert [(g.id, g.confidence) for g in merged.groups] == [("b", 0.9)]

    def test_earlier_group_wins_ties(self):
        local = OcrResult([_group("a", ["x"], 0.5)])
        other = OcrResult([_group("b", ["x"], 0.5)])
        assert merge_results(local, other).groups[0].id == "a"

    def test_order_of_first_appearance(self):
        local = OcrResult([_group("1", ["one"], 0.5), _group("2", ["two"], 0.5)])
        other = OcrResult([_group("3", ["three"], 0.5), _group("4", ["one"], 0.9)])
        merged = merge_results(local, other)
        assert [g.id for g in merged.groups] == ["4", "2", "3"]

    def test_key_uses_all_token_texts(self):
        local = OcrResult([_group("a", ["12", "3"], 0.5)])
        other = OcrResult([_group("b", ["1", "23"], 0.5)])
        assert len(merge_results(local, other).groups) == 2

    def test_blank_ids_are_replaced(self):
        merged = merge_results(OcrResult([_group("  ", ["x"], 0.5)]), OcrResult([]))
        assert merged.groups[0].id.strip()

    def test_empty(self):
        assert merge_results(OcrResult(), OcrResult()).groups == []


class TestOverlayPayload:
    def test_items_follow_groups(self):
        result = OcrResult([_group("a", ["Lot", " 7"], 0.8, [1, 2, 3, 4])])
        payload = result.to_overlay_payload(ImageMeta(100, 50))

        assert payload.image == ImageMeta(100, 50)
        item = payload.items[0]
        assert (item.id, item.text, item.confidence) == ("a", "Lot 7", 0.8)
        assert (item.box.left, item.box.top, item.box.right, item.box.bottom) == (1, 2, 3, 4)
        assert item.box.normalized is False

    def test_malformed_box_placed_at_origin(self):
        result = OcrResult([_group("a", ["x"], 0.8, [1, 2])])
        box = result.to_overlay_payload(ImageMeta(10, 10), normalized=True).items[0].box
        assert (box.left, box.top, box.right, box.bottom) == (0.0, 0.0, 0.0, 0.0)
        assert box.normalized is True


class TestPipelineOutput:
    def test_empty_output(self):
        output = empty_pipeline_output()
        assert output.is_empty
        assert output.table is None
        assert (output.image.width, output.image.height) == (0, 0)

    def test_to_dict_is_json_ready(self):
        data = empty_pipeline_output().to_dict()
        assert json.loads(json.dumps(data)) == {
            "scene": "ItemPhoto",
            "layout": "TextLabel",
            "image": {"width": 0, "height": 0},
            "result": {"groups": []},
            "table": None,
        }
