"""Alert debouncer: one Idle/Active state machine per alert channel.

Channels are keyed by audio cue id, plus one channel for the visual tint.
While a channel is Active, further events for it are dropped. Audio channels
return to Idle on PlaybackFinished or PlaybackFailed; the visual channel
returns to Idle on VisualHoldElapsed, which the collaborator schedules after
the hold duration carried by ShowVisualAlert. Nothing here runs on a timer.
"""

from __future__ import annotations

import logging

from carassist.config import AlertPolicy
from carassist.recording.models import (
    VISUAL_CHANNEL,
    AlertChannelState,
    AlertEvent,
    ClassAlert,
    Command,
    HideVisualAlert,
    PlayAudio,
    PlaybackFailed,
    PlaybackFinished,
    ProximityAlert,
    ShowVisualAlert,
    Signal,
    VisualHoldElapsed,
)

logger = logging.getLogger(__name__)


class AlertDebouncer:
    """Owns the channel-state map for one pipeline session."""

    def __init__(self, policy: AlertPolicy):
        self._policy = policy
        self._channels: dict[str, AlertChannelState] = {}

    @property
    def policy(self) -> AlertPolicy:
        return self._policy

    def snapshot(self) -> dict[str, AlertChannelState]:
        """Copy of the current channel states."""
        return {
            key: AlertChannelState(active=state.active,
                                   activated_at=state.activated_at)
            for key, state in self._channels.items()
        }

    def is_active(self, channel: str) -> bool:
        state = self._channels.get(channel)
        return state is not None and state.active

    def channels_for(self, event: AlertEvent) -> list[str]:
        """Channels an alert event drives, visual first."""
        if isinstance(event, ProximityAlert):
            return [VISUAL_CHANNEL, self._policy.proximity_cue]
        if isinstance(event, ClassAlert):
            return [self._policy.class_cue]
        raise TypeError(f"unknown alert event: {event!r}")

    def submit(self, event: AlertEvent, now: float) -> list[Command]:
        """Feed one alert event. Returns commands for Idle->Active transitions."""
        commands: list[Command] = []
        for channel in self.channels_for(event):
            if not self._activate(channel, now):
                continue
            if channel == VISUAL_CHANNEL:
                commands.append(
                    ShowVisualAlert(hold_seconds=self._policy.proximity_hold_seconds)
                )
            else:
                commands.append(PlayAudio(cue_id=channel))
        return commands

    def handle(self, signal: Signal) -> list[Command]:
        """Apply an inbound collaborator signal."""
        if (isinstance(signal, (PlaybackFinished, PlaybackFailed))
                and signal.cue_id == VISUAL_CHANNEL):
            # Only VisualHoldElapsed may clear the tint
            logger.warning("Ignoring playback signal for the %r channel", VISUAL_CHANNEL)
            return []
        if isinstance(signal, PlaybackFinished):
            self._release(signal.cue_id, "playback finished")
            return []
        if isinstance(signal, PlaybackFailed):
            if self.is_active(signal.cue_id):
                logger.warning("Playback of cue %r failed: %s",
                               signal.cue_id, signal.reason or "unknown error")
            self._release(signal.cue_id, "playback failed")
            return []
        if isinstance(signal, VisualHoldElapsed):
            if self._release(VISUAL_CHANNEL, "hold elapsed"):
                return [HideVisualAlert()]
            return []
        raise TypeError(f"unknown signal: {signal!r}")

    def reset(self) -> None:
        """Drop all channel state (session teardown)."""
        self._channels.clear()

    def _activate(self, channel: str, now: float) -> bool:
        state = self._channels.setdefault(channel, AlertChannelState())
        if state.active:
            logger.debug("Channel %r active, dropping event", channel)
            return False
        state.active = True
        state.activated_at = now
        logger.debug("Channel %r -> active at %.3f", channel, now)
        return True

    def _release(self, channel: str, reason: str) -> bool:
        state = self._channels.get(channel)
        if state is None or not state.active:
            logger.debug("Channel %r already idle, ignoring %s", channel, reason)
            return False
        state.active = False
        logger.debug("Channel %r -> idle (%s)", channel, reason)
        return True
