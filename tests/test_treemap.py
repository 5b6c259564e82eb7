import math
import random
from decimal import Decimal
from fractions import Fraction

import pandas as pd
import pytest

from heatdash.treemap import (
    NEGATIVE, NEUTRAL, POSITIVE, STRONG_NEGATIVE, STRONG_POSITIVE,
    ClassifiedChange, PlacedRectangle, SortedItems, Tile,
    assemble, build_heatmap, classify, layout, normalize, resolve_changes, size_class,
)

CAPS = [500, 433, 310, 250, 190, 120, 60, 35, 20, 8, 3, 1]


def _tiles(weights):
    return [Tile(symbol=f"S{i}", weight=w) for i, w in enumerate(weights)]


def _overlap(a: PlacedRectangle, b: PlacedRectangle, eps=1e-9) -> bool:
    dx = min(a.x + a.w, b.x + b.w) - max(a.x, b.x)
    dy = min(a.y + a.h, b.y + b.h) - max(a.y, b.y)
    return dx > eps and dy > eps


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------

def test_normalize_drops_invalid_weights():
    tiles = [
        Tile("NONE"), Tile("ZERO", 0), Tile("NEG", -5), Tile("NAN", float("nan")),
        Tile("INF", float("inf")), Tile("BOOL", True), Tile("STR", "10"),
        Tile("FIVE", 5), Tile("SEVEN", 7.5),
    ]
    items = normalize(tiles)
    assert isinstance(items, SortedItems)
    assert [t.symbol for t in items] == ["SEVEN", "FIVE"]


def test_normalize_accepts_any_real_weight():
    weights = [Decimal("2.5"), Fraction(7, 2), pd.Series([5]).iloc[0], Decimal("NaN")]
    tiles = [Tile(f"S{i}", w) for i, w in enumerate(weights)]
    items = normalize(tiles)
    assert [t.symbol for t in items] == ["S2", "S1", "S0"]
    assert all(type(t.weight) is float for t in items)
    assert math.isclose(sum(r.area for r in layout(items)), 1.0)


def test_normalize_is_stable_for_ties():
    items = normalize([Tile("A", 5), Tile("B", 5), Tile("C", 9), Tile("D", 5)])
    assert [t.symbol for t in items] == ["C", "A", "B", "D"]


def test_normalize_empty():
    assert normalize([]) == ()
    assert layout(normalize([])) == []


def test_sorted_items_rejects_unsorted_and_invalid():
    with pytest.raises(ValueError):
        SortedItems([Tile("A", 1), Tile("B", 2)])
    with pytest.raises(ValueError):
        SortedItems([Tile("A", 0)])


def test_layout_requires_sorted_items():
    with pytest.raises(TypeError):
        layout([Tile("A", 2), Tile("B", 1)])


# ---------------------------------------------------------------------------
# layout
# ---------------------------------------------------------------------------

def test_single_item_fills_canvas():
    (rect,) = layout(normalize([Tile("A", 3)]), 0.1, 0.2, 0.5, 0.4)
    assert (rect.x, rect.y, rect.w, rect.h) == (0.1, 0.2, 0.5, 0.4)


def test_degenerate_canvas_is_empty():
    assert layout(normalize(_tiles([3, 2])), 0, 0, 0, 1) == []


@pytest.mark.parametrize("canvas", [(0, 0, 1, 1), (0, 0, 16, 9), (2, 3, 1, 5)])
def test_area_conservation_and_bounds(canvas):
    x0, y0, w0, h0 = canvas
    rects = layout(normalize(_tiles(CAPS)), *canvas)
    assert len(rects) == len(CAPS)
    assert math.isclose(sum(r.area for r in rects), w0 * h0, rel_tol=1e-9)
    for r in rects:
        assert r.x >= x0 - 1e-9 and r.y >= y0 - 1e-9
        assert r.x + r.w <= x0 + w0 + 1e-9
        assert r.y + r.h <= y0 + h0 + 1e-9


def test_no_overlap():
    rects = layout(normalize(_tiles(CAPS)))
    for i, a in enumerate(rects):
        for b in rects[i + 1:]:
            assert not _overlap(a, b), (a.tile.symbol, b.tile.symbol)


def test_areas_proportional_to_weights():
    rects = {r.tile.symbol: r for r in layout(normalize(_tiles(CAPS)))}
    base = rects["S0"]
    for r in rects.values():
        assert math.isclose(r.area / base.area, r.tile.weight / base.tile.weight, rel_tol=1e-9)


def test_layout_is_deterministic():
    items = normalize(_tiles(CAPS))
    assert layout(items) == layout(items)


def test_shuffled_input_gives_same_sizes():
    tiles = _tiles(CAPS)
    shuffled = tiles[:]
    random.Random(7).shuffle(shuffled)
    a = {r.tile.symbol: (r.w, r.h) for r in layout(normalize(tiles))}
    b = {r.tile.symbol: (r.w, r.h) for r in layout(normalize(shuffled))}
    assert a == b


def test_largest_item_anchored_at_origin():
    rects = layout(normalize(_tiles([20, 70, 10])), 0.5, 0.25, 2, 1)
    first = rects[0]
    assert first.tile.weight == 70
    assert (first.x, first.y) == (0.5, 0.25)
    # wide canvas: first strip is a full-height column
    assert math.isclose(first.h, 1.0)
    assert math.isclose(first.w, 1.4)


def test_equal_weights_stay_close_to_square():
    rects = layout(normalize(_tiles([1] * 20)))
    assert max(r.aspect_ratio for r in rects) < 3


def test_zero_total_weight_is_empty():
    assert layout(normalize(_tiles([0, 0, None]))) == []


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("primary, secondary, value, bucket", [
    (3.0, None, 3.0, POSITIVE),
    (3.0001, None, 3.0001, STRONG_POSITIVE),
    (0.5, None, 0.5, NEUTRAL),
    (0.51, None, 0.51, POSITIVE),
    (-0.5, None, -0.5, NEUTRAL),
    (-0.50001, None, -0.50001, NEGATIVE),
    (-3.0, None, -3.0, NEGATIVE),
    (-3.2, None, -3.2, STRONG_NEGATIVE),
    (None, None, None, NEUTRAL),
    (None, 2.0, 2.0, POSITIVE),
    (float("nan"), -4.0, -4.0, STRONG_NEGATIVE),
    (float("nan"), float("nan"), None, NEUTRAL),
    (0, 5.0, 0.0, NEUTRAL),
])
def test_classify(primary, secondary, value, bucket):
    assert classify(primary, secondary) == ClassifiedChange(value, bucket)


def test_resolve_changes_follows_timeframe():
    t = Tile("A", 1, change_1d=1.0, change_1w=-2.0)
    assert resolve_changes(t, "1D") == (1.0, -2.0)
    assert resolve_changes(t, "1W") == (-2.0, 1.0)


def test_size_class_thresholds():
    assert size_class(0.04) == "size-large"
    assert size_class(0.039) == "size-medium"
    assert size_class(0.015) == "size-medium"
    assert size_class(0.0149) == "size-small"


# ---------------------------------------------------------------------------
# assemble / build_heatmap
# ---------------------------------------------------------------------------

def test_assemble_joins_by_symbol_not_position():
    placed = layout(normalize(_tiles([5, 3, 2])))
    classified = {
        "S0": ClassifiedChange(4.0, STRONG_POSITIVE),
        "S1": ClassifiedChange(-1.0, NEGATIVE),
        "S2": ClassifiedChange(None, NEUTRAL),
    }
    tiles = assemble(list(reversed(placed)), classified)
    by_symbol = {t.symbol: t for t in tiles}
    assert by_symbol["S0"].bucket == STRONG_POSITIVE
    assert by_symbol["S1"].display_value == -1.0
    assert by_symbol["S2"].display_text == "--"
    rect = {p.tile.symbol: p for p in placed}["S1"]
    assert (by_symbol["S1"].x, by_symbol["S1"].w) == (rect.x, rect.w)


def test_end_to_end_scenario():
    tiles = [
        Tile("A", 70, change_1d=4),
        Tile("B", 20, change_1d=-4),
        Tile("C", 10, change_1d=0.2),
    ]
    out = {t.symbol: t for t in build_heatmap(tiles, "1D")}
    areas = {s: t.w * t.h for s, t in out.items()}
    assert max(areas, key=areas.get) == "A"
    assert math.isclose(sum(areas.values()), 1.0, rel_tol=1e-9)
    assert out["A"].bucket == STRONG_POSITIVE
    assert out["B"].bucket == STRONG_NEGATIVE
    assert out["C"].bucket == NEUTRAL
    assert out["A"].display_text == "+4.00%"
    ratio = lambda t: max(t.w, t.h) / min(t.w, t.h)
    assert ratio(out["A"]) < ratio(out["B"])


def test_weekly_timeframe_falls_back_to_daily():
    tiles = [Tile("A", 2, change_1d=1.0, change_1w=None), Tile("B", 1, change_1d=0.0, change_1w=-5)]
    out = {t.symbol: t for t in build_heatmap(tiles, "1W")}
    assert out["A"].display_value == 1.0 and out["A"].bucket == POSITIVE
    assert out["B"].bucket == STRONG_NEGATIVE


def test_all_invalid_weights_render_nothing():
    assert build_heatmap([Tile("A"), Tile("B", weight=-1)], "1D") == []


def test_unknown_timeframe_rejected():
    with pytest.raises(ValueError):
        build_heatmap([Tile("A", 1)], "3M")


def test_render_tile_to_dict():
    (tile,) = build_heatmap([Tile("BTC", 10, change_1d=-1.234, label="Bitcoin")], "1D")
    d = tile.to_dict()
    assert d["display_text"] == "-1.23%"
    assert d["label"] == "Bitcoin"
    assert d["size"] == "size-large"
    assert (d["x"], d["y"], d["w"], d["h"]) == (0.0, 0.0, 1.0, 1.0)
