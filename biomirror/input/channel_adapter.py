"""Capture channel adapter

Translates platform blend-shape names (ARKit style ``mouthSmileLeft``) into
the engine's canonical snake_case channel names (``mouth_smile_left``) and
turns capture failures into no-face frames. Platform vocabulary stays here;
everything downstream only sees canonical channels.
"""

import logging
import math
import re
from typing import Any, Dict, Mapping, Optional

from biomirror.models.enums import TrackingQuality
from biomirror.models.frames import SignalFrame


logger = logging.getLogger(__name__)


ARKIT_BLEND_SHAPES = (
    "browDownLeft", "browDownRight", "browInnerUp", "browOuterUpLeft", "browOuterUpRight",
    "cheekPuff", "cheekSquintLeft", "cheekSquintRight",
    "eyeBlinkLeft", "eyeBlinkRight", "eyeLookDownLeft", "eyeLookDownRight",
    "eyeLookInLeft", "eyeLookInRight", "eyeLookOutLeft", "eyeLookOutRight",
    "eyeLookUpLeft", "eyeLookUpRight", "eyeSquintLeft", "eyeSquintRight",
    "eyeWideLeft", "eyeWideRight",
    "jawForward", "jawLeft", "jawOpen", "jawRight",
    "mouthClose", "mouthDimpleLeft", "mouthDimpleRight", "mouthFrownLeft", "mouthFrownRight",
    "mouthFunnel", "mouthLeft", "mouthLowerDownLeft", "mouthLowerDownRight",
    "mouthPressLeft", "mouthPressRight", "mouthPucker", "mouthRight",
    "mouthRollLower", "mouthRollUpper", "mouthShrugLower", "mouthShrugUpper",
    "mouthSmileLeft", "mouthSmileRight", "mouthStretchLeft", "mouthStretchRight",
    "mouthUpperUpLeft", "mouthUpperUpRight",
    "noseSneerLeft", "noseSneerRight",
    "tongueOut",
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_channel_name(blend_shape: str) -> str:
    """``mouthSmileLeft`` -> ``mouth_smile_left``"""
    return _CAMEL_BOUNDARY.sub("_", blend_shape).lower()


CHANNEL_NAMES: Dict[str, str] = {name: to_channel_name(name) for name in ARKIT_BLEND_SHAPES}


def quality_from_confidence(confidence: float) -> TrackingQuality:
    """Grade a tracked face's confidence into a tracking quality"""
    if confidence > 0.9:
        return TrackingQuality.EXCELLENT
    if confidence > 0.7:
        return TrackingQuality.GOOD
    if confidence > 0.5:
        return TrackingQuality.FAIR
    return TrackingQuality.POOR


class ChannelAdapter:
    """Builds SignalFrames from raw blend-shape captures.

    Attributes:
        dropped_channels: Count of unknown or unreadable channel values skipped
    """

    def __init__(self):
        self.dropped_channels = 0

    def adapt(
        self,
        timestamp: float,
        blend_shapes: Optional[Mapping[str, Any]],
        tracked: bool = True,
        confidence: float = 1.0,
    ) -> SignalFrame:
        """Translate one capture tick.

        Args:
            timestamp: Capture timestamp
            blend_shapes: Platform blend-shape name -> activation, None when
                capture failed
            tracked: Whether the platform reports a tracked face
            confidence: Platform tracking confidence in [0, 1]

        Returns:
            SignalFrame with canonical channels, or a no-face frame when the
            face is not tracked or capture failed
        """
        if not tracked or not blend_shapes:
            return SignalFrame.no_face(timestamp)

        channels: Dict[str, float] = {}
        for name, raw in blend_shapes.items():
            channel = CHANNEL_NAMES.get(name)
            if channel is None:
                self.dropped_channels += 1
                logger.debug(f"Ignoring unknown blend shape: {name}")
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError):
                self.dropped_channels += 1
                logger.warning(f"Unreadable value for {name}: {raw!r}")
                continue
            if math.isnan(value):
                self.dropped_channels += 1
                continue
            channels[channel] = min(max(value, 0.0), 1.0)

        return SignalFrame(
            timestamp=timestamp,
            channels=channels,
            tracking_quality=quality_from_confidence(confidence),
        )
