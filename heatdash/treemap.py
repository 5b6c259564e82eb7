"""
heatdash.treemap
~~~~~~~~~~~~~~~~
Squarified treemap layout + percentage-change classification.

Pure functions only - no I/O, no shared state.  The pipeline is

    normalize(tiles)      -> SortedItems   (valid weights, largest first)
    layout(items, ...)    -> [PlacedRectangle]
    classify(p, s)        -> ClassifiedChange
    assemble(placed, cc)  -> [RenderTile]

and build_heatmap() runs all four for one timeframe.
"""
from __future__ import annotations

import math
import numbers
from decimal import Decimal
from dataclasses import asdict, dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

TIMEFRAME_1D = "1D"
TIMEFRAME_1W = "1W"
TIMEFRAMES   = (TIMEFRAME_1D, TIMEFRAME_1W)

STRONG_POSITIVE = "strong-positive"
POSITIVE        = "positive"
NEUTRAL         = "neutral"
NEGATIVE        = "negative"
STRONG_NEGATIVE = "strong-negative"
BUCKETS = (STRONG_POSITIVE, POSITIVE, NEUTRAL, NEGATIVE, STRONG_NEGATIVE)

# Bucket thresholds (percent).  Strictly beyond the value moves to the stronger bucket.
STRONG_THRESHOLD = 3.0
WEAK_THRESHOLD   = 0.5

# Size-class thresholds on share of total laid-out weight
LARGE_SHARE  = 0.04
MEDIUM_SHARE = 0.015


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Tile:
    """One visualizable entity: a stock, a sector ETF or a coin."""
    symbol:    str
    weight:    Optional[float] = None
    change_1d: Optional[float] = None
    change_1w: Optional[float] = None
    label:     Optional[str]   = None
    image:     Optional[str]   = None


@dataclass(frozen=True)
class PlacedRectangle:
    tile: Tile
    x: float
    y: float
    w: float
    h: float

    @property
    def area(self) -> float:
        return self.w * self.h

    @property
    def aspect_ratio(self) -> float:
        """Long side over short side; 1.0 is a perfect square."""
        lo, hi = sorted((self.w, self.h))
        return hi / lo if lo > 0 else math.inf


@dataclass(frozen=True)
class ClassifiedChange:
    display_value: Optional[float]
    bucket: str


@dataclass(frozen=True)
class RenderTile:
    symbol:        str
    label:         Optional[str]
    image:         Optional[str]
    weight:        float
    x:             float
    y:             float
    w:             float
    h:             float
    display_value: Optional[float]
    bucket:        str
    size:          str

    @property
    def display_text(self) -> str:
        if self.display_value is None:
            return "--"
        return f"{self.display_value:+.2f}%"

    def to_dict(self) -> dict:
        d = asdict(self)
        d["display_text"] = self.display_text
        return d


class SortedItems(tuple):
    """
    A tuple of tiles with positive weights in descending weight order.

    layout() only accepts this type.  Placement stability across refreshes
    depends on the order being fixed once, upfront, so the check lives in the
    constructor rather than in a caller convention.
    """

    def __new__(cls, items: Iterable[Tile] = ()):
        checked = []
        prev = math.inf
        for item in items:
            if not _is_finite_number(item.weight) or item.weight <= 0:
                raise ValueError(f"{item.symbol}: weight must be a positive number, got {item.weight!r}")
            if type(item.weight) is not float:
                item = replace(item, weight=float(item.weight))
            if item.weight > prev:
                raise ValueError(f"items are not in descending weight order at {item.symbol}")
            prev = item.weight
            checked.append(item)
        return super().__new__(cls, checked)

    @property
    def total_weight(self) -> float:
        return sum(item.weight for item in self)


# ---------------------------------------------------------------------------
# Weight normalizer
# ---------------------------------------------------------------------------

def _is_finite_number(v) -> bool:
    # numpy scalars and Fractions register as numbers.Real; Decimal does not
    if isinstance(v, bool) or not isinstance(v, (numbers.Real, Decimal)):
        return False
    return v.is_finite() if isinstance(v, Decimal) else math.isfinite(v)


def normalize(tiles: Iterable[Tile]) -> SortedItems:
    """Drop tiles without a finite positive weight; sort the rest largest first (stable)."""
    valid = [replace(t, weight=float(t.weight)) for t in tiles
             if _is_finite_number(t.weight) and t.weight > 0]
    valid.sort(key=lambda t: t.weight, reverse=True)
    return SortedItems(valid)


# ---------------------------------------------------------------------------
# Squarified layout
# ---------------------------------------------------------------------------

def _worst_ratio(areas: Sequence[float], side: float) -> float:
    """Worst aspect ratio of a row of *areas* laid along a side of length *side*."""
    if not areas or side <= 0:
        return math.inf
    s = sum(areas)
    side2 = side * side
    if s <= 0 or min(areas) <= 0:
        return math.inf
    return max(side2 * max(areas) / (s * s), (s * s) / (side2 * min(areas)))


def _place_row(row: List[Tile], row_sum: float, fraction: float,
               x: float, y: float, w: float, h: float,
               out: List[PlacedRectangle]) -> Tuple[float, float, float, float]:
    """
    Lay *row* out as one strip of the (x, y, w, h) rectangle.

    The strip runs along the short side; its thickness is *fraction* of the
    long side.  Returns the rectangle that remains.
    """
    if w >= h:
        # wide: vertical strip on the left, items stacked top to bottom
        thick = w * fraction
        cy = y
        for item in row:
            ih = h * item.weight / (row_sum or 1)
            out.append(PlacedRectangle(item, x, cy, thick, ih))
            cy += ih
        return x + thick, y, w - thick, h

    # tall: horizontal strip on top, items left to right
    thick = h * fraction
    cx = x
    for item in row:
        iw = w * item.weight / (row_sum or 1)
        out.append(PlacedRectangle(item, cx, y, iw, thick))
        cx += iw
    return x, y + thick, w, h - thick


def layout(items: SortedItems, x: float = 0.0, y: float = 0.0,
           w: float = 1.0, h: float = 1.0) -> List[PlacedRectangle]:
    """
    Squarified treemap of *items* inside the (x, y, w, h) rectangle.

    Rows are grown greedily in input order while the row's worst aspect ratio
    does not get worse; the largest item therefore lands at (x, y).  Output
    order follows placement, so callers re-associate by tile, not position.
    """
    if not isinstance(items, SortedItems):
        raise TypeError("layout() expects SortedItems; build them with normalize()")
    if not items:
        return []

    total = items.total_weight
    if total <= 0 or w <= 0 or h <= 0:
        return []
    if len(items) == 1:
        return [PlacedRectangle(items[0], x, y, w, h)]

    scale     = (w * h) / total      # weight -> area
    remaining = total
    placed: List[PlacedRectangle] = []
    row: List[Tile] = []
    row_sum = 0.0

    for item in items:
        if row:
            side    = min(w, h)
            current = [t.weight * scale for t in row]
            if _worst_ratio(current + [item.weight * scale], side) > _worst_ratio(current, side):
                x, y, w, h = _place_row(row, row_sum, row_sum / (remaining or 1),
                                        x, y, w, h, placed)
                remaining -= row_sum
                row, row_sum = [], 0.0
        row.append(item)
        row_sum += item.weight

    # last row takes whatever is left
    _place_row(row, row_sum, 1.0, x, y, w, h, placed)
    return placed


# ---------------------------------------------------------------------------
# Change classifier
# ---------------------------------------------------------------------------

def classify(primary: Optional[float], secondary: Optional[float] = None) -> ClassifiedChange:
    """Pick the value to show (primary, else secondary) and bucket it."""
    if _is_finite_number(primary):
        value: Optional[float] = float(primary)
    elif _is_finite_number(secondary):
        value = float(secondary)
    else:
        return ClassifiedChange(None, NEUTRAL)

    if value > STRONG_THRESHOLD:
        bucket = STRONG_POSITIVE
    elif value > WEAK_THRESHOLD:
        bucket = POSITIVE
    elif value < -STRONG_THRESHOLD:
        bucket = STRONG_NEGATIVE
    elif value < -WEAK_THRESHOLD:
        bucket = NEGATIVE
    else:
        bucket = NEUTRAL
    return ClassifiedChange(value, bucket)


def resolve_changes(tile: Tile, timeframe: str) -> Tuple[Optional[float], Optional[float]]:
    """Return (primary, secondary) change for *timeframe*."""
    if timeframe == TIMEFRAME_1W:
        return tile.change_1w, tile.change_1d
    return tile.change_1d, tile.change_1w


def size_class(share: float) -> str:
    if share >= LARGE_SHARE:
        return "size-large"
    if share >= MEDIUM_SHARE:
        return "size-medium"
    return "size-small"


# ---------------------------------------------------------------------------
# Assembler + pipeline
# ---------------------------------------------------------------------------

def assemble(placed: Sequence[PlacedRectangle],
             classified: Dict[str, ClassifiedChange]) -> List[RenderTile]:
    """Join rectangles with their classification by tile symbol."""
    total = sum(p.tile.weight for p in placed) or 1
    out: List[RenderTile] = []
    for p in placed:
        cc = classified.get(p.tile.symbol, ClassifiedChange(None, NEUTRAL))
        out.append(RenderTile(
            symbol=p.tile.symbol,
            label=p.tile.label,
            image=p.tile.image,
            weight=p.tile.weight,
            x=p.x, y=p.y, w=p.w, h=p.h,
            display_value=cc.display_value,
            bucket=cc.bucket,
            size=size_class(p.tile.weight / total),
        ))
    return out


def build_heatmap(tiles: Iterable[Tile], timeframe: str = TIMEFRAME_1D,
                  x: float = 0.0, y: float = 0.0,
                  w: float = 1.0, h: float = 1.0) -> List[RenderTile]:
    """Lay out and classify *tiles* for one timeframe."""
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe {timeframe!r}; expected one of {TIMEFRAMES}")
    items  = normalize(tiles)
    placed = layout(items, x, y, w, h)
    classified = {t.symbol: classify(*resolve_changes(t, timeframe)) for t in items}
    return assemble(placed, classified)
