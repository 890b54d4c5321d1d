"""Micro-expression Detector

Keeps a short rolling history of frames and flags brief, high-amplitude
activations by comparing each expressive channel of the newest frame with
the frame immediately before it.

Behavior:
    - Nothing is evaluated until the history holds more than ``min_frames``
    - A channel fires when its rise exceeds ``delta_threshold`` and its new
      value exceeds ``intensity_floor`` (both strict)
    - Each firing channel yields one MicroExpression, so several may be
      reported for a single frame transition
    - A frame without a tracked face clears the history
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from biomirror.models.enums import EmotionType
from biomirror.models.frames import SignalFrame
from biomirror.models.results import (
    FacialActionUnit,
    MicroExpression,
    MICRO_EXPRESSION_MAX_DURATION,
    MICRO_EXPRESSION_MIN_DURATION,
)
from biomirror.config.config_loader import config


logger = logging.getLogger(__name__)


# Expressive channel -> candidate emotion
EXPRESSIVE_CHANNELS: Dict[str, EmotionType] = {
    "brow_inner_up": EmotionType.SADNESS,
    "brow_down_left": EmotionType.ANGER,
    "brow_down_right": EmotionType.ANGER,
    "eye_wide_left": EmotionType.FEAR,
    "eye_wide_right": EmotionType.FEAR,
    "eye_squint_left": EmotionType.ANGER,
    "eye_squint_right": EmotionType.ANGER,
    "nose_sneer_left": EmotionType.DISGUST,
    "nose_sneer_right": EmotionType.DISGUST,
    "mouth_smile_left": EmotionType.HAPPINESS,
    "mouth_smile_right": EmotionType.HAPPINESS,
    "mouth_frown_left": EmotionType.SADNESS,
    "mouth_frown_right": EmotionType.SADNESS,
}

# Channel family -> FACS (id, name)
ACTION_UNITS: Dict[str, Tuple[int, str]] = {
    "brow_inner_up": (1, "Inner Brow Raiser"),
    "brow_down": (4, "Brow Lowerer"),
    "brow_outer_up": (2, "Outer Brow Raiser"),
    "eye_blink": (45, "Eye Blink"),
    "eye_squint": (7, "Lid Tightener"),
    "eye_wide": (5, "Upper Lid Raiser"),
    "jaw_open": (26, "Jaw Drop"),
    "mouth_funnel": (22, "Lip Funneler"),
    "mouth_pucker": (18, "Lip Puckerer"),
    "mouth_smile": (12, "Lip Corner Puller"),
    "mouth_frown": (15, "Lip Corner Depressor"),
    "mouth_dimple": (14, "Dimpler"),
    "mouth_stretch": (20, "Lip Stretcher"),
    "mouth_roll_lower": (16, "Lower Lip Depressor"),
    "mouth_roll_upper": (17, "Upper Lip Raiser"),
    "mouth_close": (24, "Lips Closed"),
    "mouth_press": (23, "Lip Presser"),
    "nose_sneer": (9, "Nose Wrinkler"),
    "cheek_puff": (34, "Cheek Puffer"),
    "cheek_squint": (6, "Cheek Raiser"),
}


def channel_family(channel: str) -> str:
    """Strip the side suffix from a channel name"""
    for suffix in ("_left", "_right"):
        if channel.endswith(suffix):
            return channel[:-len(suffix)]
    return channel


def action_unit_for(channel: str, intensity: float) -> FacialActionUnit:
    unit_id, name = ACTION_UNITS.get(channel_family(channel), (0, "Unknown Action"))
    return FacialActionUnit(id=unit_id, name=name, intensity=intensity)


def estimate_duration(interval: float) -> float:
    """Clamp a frame interval to the plausible micro-expression range"""
    return min(max(interval, MICRO_EXPRESSION_MIN_DURATION), MICRO_EXPRESSION_MAX_DURATION)


class MicroExpressionDetector:
    """Detects micro-expressions across consecutive frames.

    Attributes:
        history_size: Capacity of the frame ring buffer
        min_frames: Frames that must be buffered before evaluation starts
            (evaluation needs strictly more than this many)
        delta_threshold: Minimum frame-to-frame rise (exclusive)
        intensity_floor: Minimum activation of the new value (exclusive)
    """

    def __init__(
        self,
        history_size: Optional[int] = None,
        min_frames: Optional[int] = None,
        delta_threshold: Optional[float] = None,
        intensity_floor: Optional[float] = None,
        channels: Optional[Dict[str, EmotionType]] = None,
    ):
        self.history_size = int(history_size if history_size is not None
                                else config.get('micro_expressions.history_size', 10))
        self.min_frames = int(min_frames if min_frames is not None
                              else config.get('micro_expressions.min_frames', 4))
        self.delta_threshold = float(delta_threshold if delta_threshold is not None
                                     else config.get('micro_expressions.delta_threshold', 0.3))
        self.intensity_floor = float(intensity_floor if intensity_floor is not None
                                     else config.get('micro_expressions.intensity_floor', 0.4))
        self.channels = dict(EXPRESSIVE_CHANNELS if channels is None else channels)

        if self.history_size < 2:
            raise ValueError(f"history_size must be at least 2, got {self.history_size}")

        self._history: Deque[SignalFrame] = deque(maxlen=self.history_size)

        logger.info(f"MicroExpressionDetector initialized with history_size={self.history_size}, "
                    f"min_frames={self.min_frames}, delta_threshold={self.delta_threshold}")

    @property
    def buffered(self) -> int:
        return len(self._history)

    def reset(self) -> None:
        self._history.clear()

    def update(self, frame: SignalFrame) -> List[MicroExpression]:
        """Add a frame and report micro-expressions on the newest transition.

        Args:
            frame: Next frame in timestamp order

        Returns:
            MicroExpressions fired by the transition into ``frame``
        """
        if not frame.has_face:
            if self._history:
                logger.debug(f"Tracking lost at {frame.timestamp:.3f}, clearing frame history")
            self.reset()
            return []

        self._history.append(frame)
        if len(self._history) <= self.min_frames:
            return []

        previous = self._history[-2]
        duration = estimate_duration(frame.timestamp - previous.timestamp)

        detected = []
        for channel, emotion in self.channels.items():
            current_value = frame.value(channel)
            rise = current_value - previous.value(channel)
            if rise > self.delta_threshold and current_value > self.intensity_floor:
                detected.append(MicroExpression(
                    timestamp=frame.timestamp,
                    duration=duration,
                    emotion=emotion,
                    intensity=current_value,
                    action_units=(action_unit_for(channel, current_value),),
                ))

        if detected:
            logger.debug(f"{len(detected)} micro-expression(s) at {frame.timestamp:.3f}")
        return detected
