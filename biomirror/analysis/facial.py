"""Facial emotional state building

Combines the scorer ranking, the micro-expression detector output and the
tracking confidence into one immutable EmotionalState per frame. Frames with
no tracked face short-circuit to the neutral no-face state without scoring.
"""

import logging
from typing import Dict, Optional

from biomirror.analysis.micro_expressions import MicroExpressionDetector
from biomirror.analysis.scoring import EmotionScorer
from biomirror.models.enums import TrackingQuality
from biomirror.models.frames import SignalFrame
from biomirror.models.results import EmotionalState


logger = logging.getLogger(__name__)


TRACKING_CONFIDENCE: Dict[TrackingQuality, float] = {
    TrackingQuality.EXCELLENT: 1.0,
    TrackingQuality.GOOD: 0.8,
    TrackingQuality.FAIR: 0.6,
    TrackingQuality.POOR: 0.4,
    TrackingQuality.NO_FACE: 0.0,
}


class EmotionalStateBuilder:
    """Builds EmotionalState records from signal frames.

    Attributes:
        scorer: Stateless emotion scorer
        detector: Stateful micro-expression detector (one per capture stream)
        latest_result: Most recent state built (cached for observers)
    """

    def __init__(
        self,
        scorer: Optional[EmotionScorer] = None,
        detector: Optional[MicroExpressionDetector] = None,
    ):
        self.scorer = scorer or EmotionScorer()
        self.detector = detector or MicroExpressionDetector()
        self.latest_result: Optional[EmotionalState] = None

    def build(self, frame: SignalFrame, confidence: Optional[float] = None) -> EmotionalState:
        """Infer the emotional state shown in one frame.

        Args:
            frame: Signal frame from the capture source
            confidence: Explicit tracking confidence in (0, 1]; derived from
                the frame's tracking quality when omitted

        Returns:
            EmotionalState for the frame
        """
        micro_expressions = self.detector.update(frame)

        if not frame.has_face:
            state = EmotionalState.no_face(frame.timestamp)
            self.latest_result = state
            return state

        ranked = self.scorer.score(frame.channels)
        primary, primary_intensity, secondary = self.scorer.split(ranked)

        state = EmotionalState(
            timestamp=frame.timestamp,
            primary_emotion=primary,
            primary_intensity=primary_intensity,
            secondary_emotions=secondary,
            micro_expressions=tuple(micro_expressions),
            confidence=self._confidence(frame.tracking_quality, confidence),
            tracking_quality=frame.tracking_quality,
        )
        self.latest_result = state

        logger.debug(f"Frame {frame.timestamp:.3f}: {primary.value} ({primary_intensity:.2f}), "
                     f"{len(secondary)} secondary, {len(micro_expressions)} micro")
        return state

    def get_latest_result(self) -> Optional[EmotionalState]:
        return self.latest_result

    def reset(self) -> None:
        self.detector.reset()
        self.latest_result = None

    @staticmethod
    def _confidence(quality: TrackingQuality, explicit: Optional[float]) -> float:
        # A tracked face never reports zero confidence
        if explicit is not None and explicit > 0.0:
            return min(float(explicit), 1.0)
        return TRACKING_CONFIDENCE[quality]
