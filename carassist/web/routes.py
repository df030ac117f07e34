"""HTTP routes: health, configuration and alert history REST API."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from carassist.web.websocket import SessionManager


def create_router(sessions: SessionManager) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    async def api_health():
        return JSONResponse({"status": "ok"})

    @router.get("/api/config")
    async def api_config():
        policy = sessions.policy
        frame = sessions.config.frame
        return JSONResponse({
            "policy": {
                "proximity_threshold": policy.proximity_threshold,
                "proximity_hold_seconds": policy.proximity_hold_seconds,
                "watched_classes": sorted(policy.watched_classes),
                "proximity_cue": policy.proximity_cue,
                "class_cue": policy.class_cue,
            },
            "frame": {
                "frame_width": frame.frame_width,
                "frame_height": frame.frame_height,
                "rotation": frame.rotation,
                "mirror": frame.mirror,
            },
            "palette": {label: list(color) for label, color in sessions.palette.items()},
            "default_color": list(sessions.default_color),
        })

    @router.get("/api/stats")
    async def api_stats():
        return JSONResponse(sessions.stats)

    @router.get("/api/alerts")
    async def api_alerts(limit: int = 50):
        limit = max(1, min(limit, 1000))
        alerts = sessions.alert_logger.get_recent(limit)
        return JSONResponse([a.to_dict() for a in alerts])

    @router.get("/api/alert-stats")
    async def api_alert_stats():
        return JSONResponse(sessions.alert_logger.get_stats())

    @router.delete("/api/alerts")
    async def api_clear_alerts():
        count = sessions.alert_logger.clear_all()
        return JSONResponse({"status": "ok", "deleted": count})

    return router
