"""Tests for the command line entry point."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from carassist.config import AppConfig
from carassist.main import parse_args, run_replay, setup_logging
from carassist.recording.event_logger import AlertLogger

CAR = {"labels": [{"identifier": "car", "confidence": 0.9}],
       "bounding_box": [0.0, 0.0, 0.5, 0.5]}


class TestParseArgs:
    def test_defaults_to_serve(self):
        """No subcommand means serve."""
        args = parse_args([])
        assert args.command == "serve"
        assert args.port is None

    def test_replay_arguments(self):
        """Replay takes a frames path and global flags."""
        args = parse_args(["-v", "replay", "frames.jsonl"])
        assert args.command == "replay"
        assert args.frames == "frames.jsonl"
        assert args.verbose

    def test_output_needs_video(self):
        """--output without --video is a usage error."""
        with pytest.raises(SystemExit):
            parse_args(["replay", "frames.jsonl", "--output", "out.mp4"])


class TestRunReplay:
    def test_writes_one_line_per_frame(self, tmp_path):
        """Replay writes one JSON line per frame and logs the alert."""
        frames = tmp_path / "frames.jsonl"
        frames.write_text("\n".join(json.dumps({"t": t, "observations": [CAR]})
                                    for t in (0.0, 0.1, 0.2)) + "\n")
        config = AppConfig()
        config.recording.db_path = str(tmp_path / "alerts.db")

        out = io.StringIO()
        assert run_replay(config, str(frames), out=out) == 3

        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        assert [line["frame"] for line in lines] == [0, 1, 2]
        assert lines[0]["commands"][1] == {"type": "play_audio", "cue": "alert"}
        assert lines[1]["commands"] == []
        assert all(line["visual_alert"] for line in lines)

        alert_logger = AlertLogger(config.recording.db_path)
        try:
            assert alert_logger.get_stats()["total"] == 1
        finally:
            alert_logger.close()


class TestSetupLogging:
    def test_stream_handler_keeps_stdout_clean(self, tmp_path, monkeypatch):
        """Records go to stderr and the log file; stdout is left to replay output."""
        captured = {}
        monkeypatch.setattr(logging, "basicConfig",
                            lambda **kwargs: captured.update(kwargs))
        setup_logging(str(tmp_path / "logs"), verbose=True)

        assert captured["level"] == logging.DEBUG
        streams = [h.stream for h in captured["handlers"]
                   if type(h) is logging.StreamHandler]
        assert streams == [sys.stderr]
        files = [h for h in captured["handlers"] if isinstance(h, logging.FileHandler)]
        assert files[0].baseFilename.endswith("carassist.log")
        for handler in captured["handlers"]:
            handler.close()
