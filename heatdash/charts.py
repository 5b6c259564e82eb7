"""
heatdash.charts
~~~~~~~~~~~~~~~
Server-side heatmap rendering.  Each function returns a base-64-encoded PNG
string that can be embedded directly in HTML as <img src="data:image/png;base64,...">

Geometry comes from heatdash.treemap; this module only paints it.
"""
from __future__ import annotations

import base64
import io
from typing import Dict, List

import matplotlib
matplotlib.use("Agg")  # non-interactive backend - required for server use
import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle
import seaborn as sns

from heatdash.treemap import BUCKETS, RenderTile

sns.set_theme(style="white")
plt.rcParams["figure.dpi"] = 110

# strong-positive .. strong-negative, green to red through a dark neutral
BUCKET_COLORS: Dict[str, str] = dict(zip(
    BUCKETS,
    reversed(sns.diverging_palette(12, 135, s=75, l=45, n=5, center="dark").as_hex()),
))

_FONT_SIZES = {"size-large": 13, "size-medium": 9, "size-small": 7}

# Layout canvas (width, height) in chart units; same proportions as the figure
CANVAS  = (16.0, 9.0)
FIGSIZE = (12, 6.75)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _fig_to_b64(fig: plt.Figure) -> str:
    """Render *fig* to a PNG and return it as a base-64 string."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    buf.seek(0)
    return base64.b64encode(buf.read()).decode("utf-8")


def _tile_text(tile: RenderTile, canvas_area: float) -> str:
    if tile.size == "size-small" and tile.w * tile.h < 0.004 * canvas_area:
        return tile.symbol
    return f"{tile.symbol}\n{tile.display_text}"


# ---------------------------------------------------------------------------
# Public chart functions
# ---------------------------------------------------------------------------

def heatmap_figure(title: str, tiles: List[RenderTile], canvas=CANVAS,
                   figsize=FIGSIZE) -> plt.Figure:
    """
    Figure with *tiles* drawn in *canvas* units.  Both axes share one scale,
    so a tile's on-screen proportions are the ones the layout produced.
    """
    cw, ch = canvas
    fig, ax = plt.subplots(figsize=figsize)
    fig.patch.set_facecolor("#111318")
    ax.set_xlim(0, cw)
    ax.set_ylim(ch, 0)          # origin top-left, like the layout
    ax.set_aspect("equal")
    ax.axis("off")

    for t in tiles:
        ax.add_patch(Rectangle((t.x, t.y), t.w, t.h,
                               facecolor=BUCKET_COLORS[t.bucket],
                               edgecolor="#111318", linewidth=1.2))
        ax.text(t.x + t.w / 2, t.y + t.h / 2, _tile_text(t, cw * ch),
                ha="center", va="center", color="white",
                fontsize=_FONT_SIZES.get(t.size, 7), fontweight="bold")

    ax.set_title(title, fontsize=13, fontweight="bold", color="white", loc="left")
    return fig


def chart_heatmap(title: str, tiles: List[RenderTile], canvas=CANVAS,
                  figsize=FIGSIZE) -> str:
    """
    Treemap PNG of *tiles*, laid out on *canvas* (see build_heatmap).
    Returns "" when there is nothing to draw.
    """
    if not tiles:
        return ""
    return _fig_to_b64(heatmap_figure(title, tiles, canvas, figsize))
