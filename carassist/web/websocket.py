"""WebSocket session endpoint: one pipeline per connected client.

The client is the camera/audio/UI layer. It opens a session with the frame
geometry, streams per-frame observations and feeds playback and hold-timer
signals back; the server answers with render instructions and commands.
"""

from __future__ import annotations

import itertools
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from carassist.config import AppConfig, build_palette, build_policy
from carassist.pipeline import PipelineCoordinator
from carassist.recording.event_logger import AlertLogger
from carassist.recording.models import (
    FrameContext,
    InvalidGeometry,
    RawObservation,
    command_to_dict,
    frame_result_to_dict,
    signal_from_dict,
)

logger = logging.getLogger(__name__)

SIGNAL_TYPES = ("playback_finished", "playback_failed", "visual_hold_elapsed")


class SessionManager:
    """Builds per-connection pipelines from the shared configuration."""

    def __init__(self, config: AppConfig, alert_logger: AlertLogger):
        self.config = config
        self.alert_logger = alert_logger
        # Validated once at startup, never mid-stream
        self.policy = build_policy(config)
        self.palette, self.default_color = build_palette(config)

        self._ids = itertools.count(1)
        self._active: dict[int, PipelineCoordinator] = {}

    @property
    def stats(self) -> dict:
        return {
            "active_sessions": len(self._active),
            "sessions": {sid: c.stats for sid, c in self._active.items()},
        }

    def frame_context_from(self, message: dict) -> FrameContext:
        """Session geometry from a start message, defaulting to the config."""
        cfg = self.config.frame
        try:
            return FrameContext(
                frame_width=float(message.get("frame_width", cfg.frame_width)),
                frame_height=float(message.get("frame_height", cfg.frame_height)),
                rotation=int(message.get("rotation", cfg.rotation)),
                mirror=bool(message.get("mirror", cfg.mirror)),
            )
        except (TypeError, ValueError) as exc:
            if isinstance(exc, InvalidGeometry):
                raise
            raise InvalidGeometry(str(exc)) from exc

    def open(self) -> tuple[int, PipelineCoordinator]:
        session_id = next(self._ids)
        coordinator = PipelineCoordinator(self.policy, self.palette, self.default_color)
        coordinator.add_event_callback(self.alert_logger)
        self._active[session_id] = coordinator
        logger.info("Session %d opened (%d active)", session_id, len(self._active))
        return session_id, coordinator

    def close(self, session_id: int) -> None:
        coordinator = self._active.pop(session_id, None)
        if coordinator is not None:
            coordinator.close()
        logger.info("Session %d closed (%d remaining)", session_id, len(self._active))


def _decode_observations(items) -> list[RawObservation]:
    if not isinstance(items, list):
        if items is not None:
            logger.warning("Ignoring observations that are not a list")
        return []
    observations = []
    for index, item in enumerate(items):
        try:
            observations.append(RawObservation.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Dropping malformed observation #%d: %s", index, exc)
    return observations


def create_ws_router(sessions: SessionManager) -> APIRouter:
    router = APIRouter()

    @router.websocket("/ws/session")
    async def ws_session(ws: WebSocket):
        await ws.accept()

        # The first message must describe the frame geometry
        try:
            start = await ws.receive_json()
        except WebSocketDisconnect:
            return
        except ValueError:
            start = None
        if not isinstance(start, dict) or start.get("type") != "start":
            await ws.send_json({"type": "error",
                                "message": "expected a start message"})
            await ws.close(code=1008)
            return
        try:
            frame_context = sessions.frame_context_from(start)
        except InvalidGeometry as exc:
            logger.warning("Rejected session start: %s", exc)
            await ws.send_json({"type": "error", "message": str(exc)})
            await ws.close(code=1008)
            return

        session_id, coordinator = sessions.open()
        frame_number = 0
        await ws.send_json({"type": "ready", "session_id": session_id})

        try:
            while True:
                try:
                    message = await ws.receive_json()
                except ValueError:
                    await ws.send_json({"type": "error", "message": "invalid JSON"})
                    continue
                kind = message.get("type") if isinstance(message, dict) else None

                if kind == "frame":
                    try:
                        now = float(message["now"])
                        inference_ms = message.get("inference_ms")
                        inference_time = (float(inference_ms) / 1000.0
                                          if inference_ms is not None else None)
                    except (KeyError, TypeError, ValueError):
                        await ws.send_json({"type": "error",
                                            "message": "frame needs a numeric 'now'"})
                        continue
                    observations = _decode_observations(message.get("observations"))
                    # Alert callbacks write to SQLite; keep them off the event loop
                    result = await run_in_threadpool(
                        coordinator.process_frame,
                        observations, frame_context, now, inference_time=inference_time,
                    )
                    frame_number += 1
                    await ws.send_json({"type": "frame_result", "frame": frame_number,
                                        **frame_result_to_dict(result)})

                elif kind in SIGNAL_TYPES:
                    try:
                        signal = signal_from_dict(message)
                    except (KeyError, ValueError) as exc:
                        await ws.send_json({"type": "error", "message": str(exc)})
                        continue
                    commands = coordinator.handle_signal(signal)
                    await ws.send_json({"type": "commands",
                                        "commands": [command_to_dict(c) for c in commands]})

                else:
                    await ws.send_json({"type": "error",
                                        "message": f"unknown message type: {kind!r}"})
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Session %d WebSocket error", session_id)
        finally:
            sessions.close(session_id)

    return router
