"""
heatdash.routes
~~~~~~~~~~~~~~~
Flask URL routes (views).

GET /                         - redirects to the S&P 500 heatmap
GET /heatmap/<view>           - sp500 | sectors | crypto treemap page
GET /api/heatmap/<view>       - laid-out, classified tiles as JSON
GET /earnings                 - weekly earnings calendar
GET /api/earnings             - same, as JSON
GET /refresh/<domain>         - drop one domain's cache, redirect back
GET /api/cache-age            - last update per domain
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from flask import (Blueprint, abort, current_app, flash, jsonify, make_response,
                   redirect, render_template, request, url_for)

from heatdash import charts
from heatdash.earnings import SESSION_LABELS, SESSIONS, WEEKDAYS
from heatdash.timeutil import is_older_than, last_updated_line, parse_iso, utc_now
from heatdash.treemap import TIMEFRAME_1D, TIMEFRAME_1W, TIMEFRAMES, build_heatmap

bp = Blueprint("main", __name__)
log = logging.getLogger(__name__)

VIEWS = {
    "sp500":   "S&P 500",
    "sectors": "Sectors",
    "crypto":  "Crypto",
}
_TF_COOKIE   = "heatdash_tf_{}"
_COOKIE_AGE  = 365 * 24 * 3600


def _services():
    return current_app.extensions["heatdash"]


def _requested_timeframe(view: str) -> str:
    """?timeframe= wins, then the per-view cookie, then 1D."""
    tf = request.args.get("timeframe") or request.cookies.get(_TF_COOKIE.format(view)) or TIMEFRAME_1D
    return tf.upper()


def _heatmap_payload(view: str, timeframe: str, w: float = 1.0, h: float = 1.0) -> dict:
    """Laid-out tiles on a w x h canvas; the JSON API uses the unit square."""
    data  = _services().heatmaps()[view].get_data(timeframe)
    tiles = build_heatmap(data["tiles"], timeframe, 0.0, 0.0, w, h)
    return {
        "view":              view,
        "timeframe":         timeframe,
        "tiles":             tiles,
        "last_updated":      data["last_updated"],
        "last_updated_line": last_updated_line(data["last_updated"], timeframe, data["error"]),
        "status":            data["status"],
        "error":             data["error"],
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@bp.route("/")
def index():
    return redirect(url_for("main.heatmap", view="sp500"))


@bp.route("/heatmap/<view>")
def heatmap(view: str):
    if view not in VIEWS:
        abort(404)
    timeframe = _requested_timeframe(view)
    if timeframe not in TIMEFRAMES:
        flash(f"Unknown timeframe {timeframe} - showing {TIMEFRAME_1D}.")
        timeframe = TIMEFRAME_1D

    # lay out in chart units so tiles keep their proportions once drawn
    payload = _heatmap_payload(view, timeframe, *charts.CANVAS)
    image   = charts.chart_heatmap(f"{VIEWS[view]} - {timeframe}", payload["tiles"])
    resp = make_response(render_template(
        "heatmap.html",
        views=VIEWS,
        timeframes=TIMEFRAMES,
        image=image,
        **payload,
    ))
    resp.set_cookie(_TF_COOKIE.format(view), timeframe, max_age=_COOKIE_AGE, samesite="Lax")
    return resp


@bp.route("/api/heatmap/<view>")
def api_heatmap(view: str):
    if view not in VIEWS:
        return jsonify({"error": f"Unknown view '{view}'. Use one of: {', '.join(VIEWS)}."}), 404
    timeframe = request.args.get("timeframe", TIMEFRAME_1D).upper()
    if timeframe not in TIMEFRAMES:
        return jsonify({"error": f"Invalid timeframe '{timeframe}'. Use 1D or 1W."}), 400

    payload = _heatmap_payload(view, timeframe)
    payload["tiles"] = [t.to_dict() for t in payload["tiles"]]
    payload["count"] = len(payload["tiles"])
    return jsonify(payload)


@bp.route("/earnings")
def earnings():
    data = _services().earnings.get_week()
    return render_template(
        "earnings.html",
        views=VIEWS,
        days=data["days"],
        weekdays=WEEKDAYS,
        sessions=SESSIONS,
        session_labels=SESSION_LABELS,
        week=data["week"],
        last_updated_line=last_updated_line(data["last_updated"], TIMEFRAME_1W, data["error"]),
    )


@bp.route("/api/earnings")
def api_earnings():
    data = _services().earnings.get_week()
    data["last_updated_line"] = last_updated_line(data["last_updated"], TIMEFRAME_1W, data["error"])
    return jsonify(data)


@bp.route("/refresh/<domain>")
def refresh(domain: str):
    services = _services()
    targets  = {**services.heatmaps(), "earnings": services.earnings}
    if domain not in targets:
        abort(404)
    targets[domain].reset()
    flash(f"{domain} cache cleared - fresh data is being fetched.")
    if domain == "earnings":
        return redirect(url_for("main.earnings"))
    return redirect(url_for("main.heatmap", view=domain))


@bp.route("/api/cache-age")
def api_cache_age():
    """Last update (ET) and age in minutes for each domain."""
    services = _services()
    targets  = {**services.heatmaps(), "earnings": services.earnings}
    now = utc_now()
    out = {}
    for name, svc in targets.items():
        ts = svc.last_updated()
        then = parse_iso(ts)
        out[name] = {
            "last_updated": ts,
            "age_minutes":  round((now - then).total_seconds() / 60, 1) if then else None,
            "stale_10m":    is_older_than(ts, 10, now=now),
        }
    return jsonify(out)


# ---------------------------------------------------------------------------
# Background warmer
# ---------------------------------------------------------------------------

def warm_once(services) -> None:
    """One pass over every domain; each service decides what is stale."""
    for name, svc in services.heatmaps().items():
        try:
            # 1W refreshes quotes and weekly changes in one go
            svc.get_data(TIMEFRAME_1W)
        except Exception:
            log.exception("Unhandled error while warming %s", name)
    try:
        services.earnings.get_week()
    except Exception:
        log.exception("Unhandled error while warming earnings")


def _background_loop(services, interval: int) -> None:
    while True:
        t0 = time.perf_counter()
        warm_once(services)
        log.info("Cache warm pass done in %.1fs - next in %ds", time.perf_counter() - t0, interval)
        time.sleep(interval)


def start_background_thread(services, interval: Optional[int] = 300) -> None:
    t = threading.Thread(target=_background_loop, args=(services, interval or 300),
                         daemon=True, name="cache-warmer")
    t.start()
    log.info("Cache warmer started (every %ds)", interval or 300)
