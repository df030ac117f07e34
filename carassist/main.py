"""Entry point: CLI argument parsing, web server or offline replay."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from carassist.capture.replay import SimulatedCollaborator, read_frames, replay
from carassist.capture.video import VideoFrames
from carassist.config import (
    AppConfig,
    build_frame_context,
    build_palette,
    build_policy,
    load_config,
)
from carassist.pipeline import PipelineCoordinator
from carassist.processing.overlay import draw_instructions
from carassist.recording.event_logger import AlertLogger
from carassist.recording.models import (
    CarAssistError,
    command_to_dict,
    frame_result_to_dict,
)
from carassist.recording.video_writer import AnnotatedVideoWriter
from carassist.web.app import create_app

logger = logging.getLogger(__name__)


def setup_logging(log_dir: str, verbose: bool = False) -> None:
    """Configure logging to both stderr and file."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # stdout carries replay output, so log records go to stderr
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_path / "carassist.log"),
        ],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Object proximity and traffic-light alerting pipeline"
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to YAML config file (default: $CARASSIST_CONFIG or config/default.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the WebSocket session server")
    serve.add_argument("--host", default=None, help="Web server host (overrides config)")
    serve.add_argument("--port", type=int, default=None,
                       help="Web server port (overrides config)")

    rep = sub.add_parser("replay", help="Replay recorded detections (JSON lines)")
    rep.add_argument("frames", help="Path to the recorded frames file")
    rep.add_argument("--video", default=None,
                     help="Source video to paint the overlay onto")
    rep.add_argument("--output", default=None,
                     help="Annotated MP4 to write")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "serve"
        args.host = None
        args.port = None
    if args.command == "replay" and bool(args.output) != bool(args.video):
        parser.error("--video and --output must be given together")
    return args


def run_serve(config: AppConfig, host: str | None, port: int | None) -> None:
    if host:
        config.web.host = host
    if port:
        config.web.port = port

    alert_logger = AlertLogger(config.recording.db_path)
    app = create_app(config, alert_logger)
    logger.info("Session server: ws://%s:%d/ws/session", config.web.host, config.web.port)

    try:
        uvicorn.run(app, host=config.web.host, port=config.web.port, log_level="info")
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        alert_logger.close()
        logger.info("Shutdown complete")


def run_replay(config: AppConfig, frames_path: str, video: str | None = None,
               output: str | None = None, out=None) -> int:
    """Replay a recording; one JSON line per frame is written to `out`.

    Returns the number of frames processed.
    """
    out = out or sys.stdout
    frame_context = build_frame_context(config)
    palette, default_color = build_palette(config)
    coordinator = PipelineCoordinator(build_policy(config), palette, default_color)
    collaborator = SimulatedCollaborator(
        cue_durations=config.audio.cue_durations,
        default_cue_duration=config.audio.default_cue_duration,
    )

    alert_logger = AlertLogger(config.recording.db_path)
    coordinator.add_event_callback(alert_logger)

    video_frames = VideoFrames(video) if video else None
    writer = None
    count = 0
    try:
        frame_iter = None
        if video_frames is not None:
            video_frames.open()
            frame_iter = iter(video_frames)
            if output:
                writer = AnnotatedVideoWriter(output, fps=video_frames.fps)

        for step in replay(coordinator, frame_context, read_frames(frames_path),
                           collaborator):
            count += 1
            line = {
                "frame": step.record.frame_number,
                "t": step.record.timestamp,
                **frame_result_to_dict(step.result),
                "signal_commands": [command_to_dict(c) for c in step.signal_commands],
                "visual_alert": step.visual_alert,
            }
            out.write(json.dumps(line) + "\n")

            if frame_iter is not None:
                image = next(frame_iter, None)
                if image is None:
                    logger.warning("Video ended before the recording, frame %d",
                                   step.record.frame_number)
                    frame_iter = None
                    continue
                if writer is not None:
                    writer.write(draw_instructions(
                        image, step.result.render,
                        (frame_context.frame_width, frame_context.frame_height),
                        visual_alert=step.visual_alert,
                    ))
    finally:
        if writer is not None:
            writer.close()
        if video_frames is not None:
            video_frames.close()
        alert_logger.close()

    logger.info("Replayed %d frames, %d alerts", count, coordinator.stats["alert_count"])
    return count


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.recording.log_dir, args.verbose)
    logger.info("Starting CarAssist (%s)", args.command)

    try:
        if args.command == "replay":
            run_replay(config, args.frames, video=args.video, output=args.output)
        else:
            run_serve(config, args.host, args.port)
    except CarAssistError as exc:
        logger.error("Configuration rejected: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
