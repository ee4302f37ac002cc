"""HTTP routes: feed snapshots, defence controls, history and place search."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dronewatch.models import DetectionEvent, FeedRole, LatLng
from dronewatch.pipeline import Pipeline
from dronewatch.processing.geo import to_number
from dronewatch.web.serializers import (
    entry_dict,
    geofence_dict,
    intruder_dict,
    marker_dict,
    point_dict,
    snapshot_dict,
    target_dict,
)


def _role(value: str) -> Optional[FeedRole]:
    try:
        return FeedRole(value)
    except ValueError:
        return None


def _unknown_role(value: str) -> JSONResponse:
    return JSONResponse({"error": f"Unknown feed: {value}"}, 404)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value)


def create_router(pipeline: Pipeline) -> APIRouter:
    router = APIRouter()

    @router.get("/api/stats")
    async def api_stats():
        return JSONResponse(pipeline.stats)

    @router.get("/api/feeds")
    async def api_feeds():
        return JSONResponse([
            {"role": role.value, "label": pipeline.feed(role).profile.label,
             **pipeline.stats[role.value]}
            for role in FeedRole
        ])

    @router.get("/api/feeds/{role}")
    async def api_feed(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        return JSONResponse(snapshot_dict(pipeline.snapshot(feed_role)))

    @router.get("/api/feeds/{role}/objects")
    async def api_objects(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        snapshot = pipeline.snapshot(feed_role)
        return JSONResponse([entry_dict(e) for e in snapshot.latest])

    @router.get("/api/feeds/{role}/markers")
    async def api_markers(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        snapshot = pipeline.snapshot(feed_role)
        return JSONResponse({
            "zoom": snapshot.zoom,
            "markers": [marker_dict(m) for m in snapshot.markers],
            "targets": [target_dict(t) for t in snapshot.targets],
        })

    @router.get("/api/feeds/{role}/intruders")
    async def api_intruders(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        snapshot = pipeline.snapshot(feed_role)
        return JSONResponse({
            "defended_point": point_dict(snapshot.defended_point),
            "radius": snapshot.radius,
            "intruders": [intruder_dict(i) for i in snapshot.intruders],
        })

    @router.get("/api/feeds/{role}/geofence")
    async def api_geofence(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        return JSONResponse(geofence_dict(pipeline.snapshot(feed_role)))

    @router.get("/api/feeds/{role}/history")
    async def api_history(role: str, start: Optional[str] = None,
                          end: Optional[str] = None):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        try:
            events = pipeline.history(feed_role, _parse_date(start), _parse_date(end))
        except ValueError:
            return JSONResponse({"error": "Dates must be YYYY-MM-DD"}, 400)
        return JSONResponse([e.to_dict() for e in events])

    @router.delete("/api/feeds/{role}/history")
    async def api_clear_history(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        ok = await pipeline.clear_history(feed_role)
        notice = pipeline.notices.get(f"clear:{feed_role.value}")
        message = notice.message if notice is not None else None
        if not ok:
            return JSONResponse({"status": "error", "message": message}, 502)
        return JSONResponse({"status": "ok", "message": message})

    @router.post("/api/feeds/{role}/refresh")
    async def api_refresh(role: str):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        await pipeline.refresh_history(feed_role)
        snapshot = pipeline.snapshot(feed_role)
        return JSONResponse({"status": "ok" if snapshot.error is None else "error",
                             "events": len(snapshot.events),
                             "error": snapshot.error})

    @router.post("/api/feeds/{role}/events")
    async def api_push_event(role: str, request: Request):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        body = await _json_body(request)
        try:
            event = DetectionEvent.from_dict(body)
        except (ValueError, TypeError, AttributeError):
            return JSONResponse({"error": "Invalid detection event"}, 400)
        pipeline.push_event(feed_role, event)
        return JSONResponse({"status": "ok", "version": pipeline.feed(feed_role).version})

    @router.post("/api/feeds/{role}/zoom")
    async def api_zoom(role: str, request: Request):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        body = await _json_body(request)
        zoom = to_number(body.get("zoom"))
        if zoom is None:
            return JSONResponse({"error": "zoom must be a number"}, 400)
        pipeline.set_zoom(feed_role, zoom)
        return JSONResponse({"status": "ok", "zoom": zoom})

    @router.post("/api/feeds/{role}/defence")
    async def api_defence(role: str, request: Request):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        body = await _json_body(request)
        lat = to_number(body.get("lat"))
        lng = to_number(body.get("lng"))
        if lat is None or lng is None:
            return JSONResponse({"error": "lat and lng must be numbers"}, 400)
        point = LatLng(lat, lng)
        pipeline.set_defended_point(feed_role, point)
        return JSONResponse({"status": "ok", "defended_point": point.to_dict()})

    @router.post("/api/feeds/{role}/radius")
    async def api_radius(role: str, request: Request):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        body = await _json_body(request)
        accepted = pipeline.set_radius(feed_role, body.get("radius"))
        radius = pipeline.feed(feed_role).radius
        if not accepted:
            return JSONResponse({"error": "radius must be a positive number",
                                 "radius": radius}, 400)
        return JSONResponse({"status": "ok", "radius": radius})

    @router.post("/api/feeds/{role}/select")
    async def api_select(role: str, request: Request):
        feed_role = _role(role)
        if feed_role is None:
            return _unknown_role(role)
        body = await _json_body(request)
        focus = pipeline.select_object(feed_role, str(body.get("obj_id", "")))
        if focus is None:
            return JSONResponse({"error": "Object not found or has no position"}, 404)
        return JSONResponse({"status": "ok", "focus": focus.to_dict()})

    # --- Place search ---

    @router.get("/api/search")
    async def api_search(q: str = ""):
        result = await pipeline.search_place(q)
        notice = pipeline.notices.get("search")
        return JSONResponse({
            "result": result.to_dict() if result is not None else None,
            "message": notice.message if notice is not None else None,
        })

    @router.get("/api/search/suggest")
    async def api_suggest(q: str = ""):
        options = await pipeline.suggest_places(q)
        if options is None:
            return JSONResponse({"superseded": True, "options": []})
        return JSONResponse({"superseded": False,
                             "options": [o.to_dict() for o in options]})

    @router.get("/api/notices")
    async def api_notices():
        return JSONResponse([n.to_dict() for n in pipeline.notices.active()])

    @router.delete("/api/notices/{key}")
    async def api_dismiss_notice(key: str):
        if pipeline.notices.get(key) is None:
            return JSONResponse({"error": f"No active notice: {key}"}, 404)
        pipeline.notices.dismiss(key)
        return JSONResponse({"status": "ok"})

    return router
