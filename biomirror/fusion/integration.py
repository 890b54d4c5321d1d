"""Integrated State Builder

This module fuses a facial EmotionalState with the most recent biometric
reading into one IntegratedEmotionalState. The two producers run at
independent cadences, so the builder never waits for matching timestamps: it
treats the latest reading as current when a facial state arrives and ignores
readings that have gone stale.

Behavior:
    - Arousal comes from heart-rate deviation above a rolling personal
      baseline, low heart-rate variability and motion, renormalized over the
      components present; without physiology a facial proxy is used
    - Rolling baselines take in each biometric reading once, when a newer
      reading replaces it, however many facial states shared it
    - Coherence is the agreement of facial and physiological arousal, scaled
      by facial confidence and reading quality
    - Masking is physiological arousal the face does not show
    - Dissociation index is the weighted facial and marker evidence capped at 1
    - Regulation is graded from arousal and its short-term trend
    - A sample is never dropped: missing inputs produce a neutral state with
      quality flags recording the gap
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import (
    DataQuality,
    EmotionType,
    PhysiologicalMarkerType,
    RegulationState,
    TrackingQuality,
)
from biomirror.models.frames import BiometricReading
from biomirror.models.results import EmotionalState, IntegratedEmotionalState, PhysiologicalMarker
from biomirror.config.config_loader import config


logger = logging.getLogger(__name__)


ACTIVATING_EMOTIONS = frozenset({
    EmotionType.HAPPINESS,
    EmotionType.ANGER,
    EmotionType.FEAR,
    EmotionType.SURPRISE,
    EmotionType.HYPERVIGILANCE,
})

AROUSAL_WEIGHTS = {
    'heart_rate': 0.5,
    'hrv': 0.2,
    'motion': 0.3,
}

DEFAULT_MARKER_WEIGHTS = {
    PhysiologicalMarkerType.HEART_RATE_DECREASE: 0.3,
    PhysiologicalMarkerType.RESPIRATION_RATE_DECREASE: 0.2,
    PhysiologicalMarkerType.SKIN_CONDUCTANCE_DECREASE: 0.2,
    PhysiologicalMarkerType.PUPIL_DILATION: 0.1,
    PhysiologicalMarkerType.MOVEMENT_FREEZE: 0.3,
    PhysiologicalMarkerType.BLINK_RATE_DECREASE: 0.1,
    PhysiologicalMarkerType.GAZE_FREEZING: 0.3,
}


def _clip(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


class IntegratedStateBuilder:
    """Fuses facial and physiological evidence into integrated samples.

    One builder serves one session: it keeps the rolling physiological
    baselines and the recent arousal trend.

    Attributes:
        configuration: Session configuration (channel selection)
        resting_heart_rate: Baseline used before any heart-rate history exists
        heart_rate_range: Heart-rate deviation (bpm) that maps to full arousal
        motion_range: Motion magnitude (g) that maps to full arousal
        stillness_level: Motion below this level counts as movement freeze
        max_reading_age: Readings older than this (seconds) are ignored
        regulation_threshold: Arousal below this is always regulated
        facial_dissociation_weight: Weight of facial dissociation/freeze evidence
        marker_weights: Weight of each physiological marker type
        latest_result: Most recent integrated state (cached)
    """

    def __init__(self, configuration: Optional[SessionConfiguration] = None):
        """Initialize the builder with configuration.

        Args:
            configuration: Session configuration, loaded from YAML when omitted
        """
        self.configuration = configuration or SessionConfiguration.from_config()

        self.resting_heart_rate = float(config.get('integration.resting_heart_rate', 70.0))
        self.heart_rate_range = float(config.get('integration.heart_rate_range', 30.0))
        self.motion_range = float(config.get('integration.motion_range', 1.0))
        self.stillness_level = float(config.get('integration.stillness_level', 0.02))
        self.relative_drop_scale = float(config.get('integration.relative_drop_scale', 0.5))
        self.baseline_window = int(config.get('integration.baseline_window', 30))
        self.trend_window = int(config.get('integration.trend_window', 5))
        self.max_reading_age = float(config.get('integration.max_reading_age', 5.0))
        self.regulation_threshold = float(config.get('integration.regulation_threshold', 0.6))
        self.facial_dissociation_weight = float(
            config.get('integration.facial_dissociation_weight', 0.4)
        )

        self.marker_weights: Dict[PhysiologicalMarkerType, float] = dict(DEFAULT_MARKER_WEIGHTS)
        for name, weight in (config.get('integration.marker_weights', {}) or {}).items():
            self.marker_weights[PhysiologicalMarkerType(name)] = float(weight)

        # Rolling state
        self._heart_rates: Deque[float] = deque(maxlen=self.baseline_window)
        self._respiration_rates: Deque[float] = deque(maxlen=self.baseline_window)
        self._skin_conductance: Deque[float] = deque(maxlen=self.baseline_window)
        self._arousal_history: Deque[float] = deque(maxlen=self.trend_window)
        self._held_reading: Optional[BiometricReading] = None
        self.latest_result: Optional[IntegratedEmotionalState] = None

        logger.info(f"IntegratedStateBuilder initialized with baseline_window={self.baseline_window}, "
                    f"trend_window={self.trend_window}, max_reading_age={self.max_reading_age}s")

    def reconfigure(self, configuration: SessionConfiguration) -> None:
        self.configuration = configuration
        logger.info(f"IntegratedStateBuilder reconfigured: "
                    f"tier={configuration.sampling_frequency.value}, mode={configuration.mode.value}")

    def reset(self) -> None:
        self._heart_rates.clear()
        self._respiration_rates.clear()
        self._skin_conductance.clear()
        self._arousal_history.clear()
        self._held_reading = None
        self.latest_result = None

    def get_latest_result(self) -> Optional[IntegratedEmotionalState]:
        return self.latest_result

    def build(
        self,
        facial: EmotionalState,
        reading: Optional[BiometricReading] = None,
    ) -> IntegratedEmotionalState:
        """Fuse one facial state with the latest biometric reading.

        Args:
            facial: Facial inference for the current frame
            reading: Most recent biometric reading, if any

        Returns:
            IntegratedEmotionalState stamped with the facial state's timestamp
        """
        reading = self._usable_reading(facial.timestamp, reading)
        if reading is not None:
            self._advance_baselines(reading)
        has_facial = facial.has_face

        physio_arousal = self._physiological_arousal(reading) if reading is not None else None
        has_physiological = physio_arousal is not None
        facial_arousal = self._facial_arousal(facial)

        arousal = physio_arousal if has_physiological else facial_arousal

        if has_facial and has_physiological:
            # Agreement only counts as far as both signals can be trusted
            agreement = 1.0 - abs(facial_arousal - physio_arousal)
            coherence = _clip(agreement * facial.confidence * reading.quality)
            masking = _clip(physio_arousal - facial_arousal)
        else:
            coherence = 0.0
            masking = 0.0

        markers = self._collect_markers(reading) if reading is not None else []
        dissociation_index = self._dissociation_index(facial, markers)

        regulation = self._regulation(arousal)
        quality = reading.quality if has_physiological else 0.0

        state = IntegratedEmotionalState(
            timestamp=facial.timestamp,
            dominant_emotion=self._dominant_emotion(
                facial, arousal, quality, has_physiological, markers, dissociation_index
            ),
            emotional_intensity=self._emotional_intensity(
                facial, arousal if has_physiological else 0.0, quality
            ),
            arousal_level=_clip(arousal),
            coherence_index=coherence,
            emotional_masking_index=masking,
            dissociation_index=dissociation_index,
            emotional_regulation=regulation,
            data_quality=self._data_quality(facial.tracking_quality, has_physiological, quality),
            has_facial=has_facial,
            has_physiological=has_physiological,
            markers=tuple(markers),
            facial_state=facial,
        )

        self.latest_result = state
        return state

    def _usable_reading(
        self, timestamp: float, reading: Optional[BiometricReading]
    ) -> Optional[BiometricReading]:
        if reading is None or reading.is_empty:
            return None
        age = timestamp - reading.timestamp
        if age > self.max_reading_age:
            logger.debug(f"Ignoring biometric reading {age:.1f}s older than frame {timestamp:.3f}")
            return None
        return reading

    def _baseline_heart_rate(self) -> float:
        if not self._heart_rates:
            return self.resting_heart_rate
        return float(np.mean(self._heart_rates))

    def _physiological_arousal(self, reading: BiometricReading) -> Optional[float]:
        """Weighted arousal over the physiological components present.

        Args:
            reading: Fresh biometric reading

        Returns:
            Arousal in [0, 1], or None if the reading has no arousal component
        """
        components: List[Tuple[float, float]] = []

        if reading.heart_rate is not None:
            deviation = reading.heart_rate - self._baseline_heart_rate()
            components.append((_clip(deviation / self.heart_rate_range), AROUSAL_WEIGHTS['heart_rate']))

        if self.configuration.include_hrv and reading.heart_rate_variability is not None:
            components.append((_clip(1.0 - reading.heart_rate_variability / 100.0), AROUSAL_WEIGHTS['hrv']))

        if self.configuration.include_motion and reading.motion is not None:
            components.append((_clip(reading.motion / self.motion_range), AROUSAL_WEIGHTS['motion']))

        if not components:
            return None

        values, weights = zip(*components)
        return _clip(np.dot(values, weights) / sum(weights))

    @staticmethod
    def _facial_arousal(facial: EmotionalState) -> float:
        if facial.has_face and facial.primary_emotion in ACTIVATING_EMOTIONS:
            return facial.primary_intensity
        return 0.0

    def _relative_drop(self, value: float, history: Deque[float]) -> float:
        """Drop of value below its rolling mean, as a share of the drop scale"""
        if not history:
            return 0.0
        baseline = float(np.mean(history))
        if baseline <= 0:
            return 0.0
        return _clip((baseline - value) / baseline / self.relative_drop_scale)

    def _collect_markers(self, reading: BiometricReading) -> List[PhysiologicalMarker]:
        """Markers reported by the source plus markers derived from baselines.

        A marker type reported by the source takes precedence over the derived
        one. Markers with no evidence are left out.
        """
        markers = {m.marker_type: m for m in reading.markers}
        confidence = reading.quality

        derived: List[Tuple[PhysiologicalMarkerType, float]] = []
        if reading.heart_rate is not None and self._heart_rates:
            drop = (self._baseline_heart_rate() - reading.heart_rate) / self.heart_rate_range
            derived.append((PhysiologicalMarkerType.HEART_RATE_DECREASE, _clip(drop)))

        if self.configuration.include_respiration and reading.respiration_rate is not None:
            derived.append((PhysiologicalMarkerType.RESPIRATION_RATE_DECREASE,
                            self._relative_drop(reading.respiration_rate, self._respiration_rates)))

        if self.configuration.include_eda and reading.skin_conductance is not None:
            derived.append((PhysiologicalMarkerType.SKIN_CONDUCTANCE_DECREASE,
                            self._relative_drop(reading.skin_conductance, self._skin_conductance)))

        if self.configuration.include_motion and reading.motion is not None \
                and reading.motion < self.stillness_level:
            derived.append((PhysiologicalMarkerType.MOVEMENT_FREEZE,
                            _clip(1.0 - reading.motion / self.stillness_level)))

        for marker_type, intensity in derived:
            if marker_type not in markers and intensity > 0.0:
                markers[marker_type] = PhysiologicalMarker(marker_type, intensity, confidence)

        return [m for m in markers.values() if m.evidence > 0.0]

    def _dissociation_index(self, facial: EmotionalState, markers: List[PhysiologicalMarker]) -> float:
        """Facial numbing/freeze evidence plus weighted marker evidence, capped at 1"""
        facial_evidence = 0.0
        if facial.has_face:
            facial_evidence = max(
                facial.intensity_of(EmotionType.DISSOCIATION),
                facial.intensity_of(EmotionType.FREEZE),
            )
        marker_evidence = sum(self.marker_weights.get(m.marker_type, 0.0) * m.evidence for m in markers)
        return min(1.0, _clip(self.facial_dissociation_weight * facial_evidence + marker_evidence))

    def _regulation(self, arousal: float) -> RegulationState:
        """Classify regulation from arousal and its recent trend.

        Regulated when arousal is below the regulation threshold or the slope
        of the recent arousal window is negative; otherwise graded by arousal.
        """
        self._arousal_history.append(arousal)

        if arousal < self.regulation_threshold:
            return RegulationState.REGULATED

        if len(self._arousal_history) >= 2:
            values = np.array(self._arousal_history, dtype=float)
            slope = np.polyfit(np.arange(len(values)), values, 1)[0]
            if slope < 0:
                return RegulationState.REGULATED

        if arousal > 0.8:
            return RegulationState.SEVERE_DYSREGULATION
        if arousal > 0.7:
            return RegulationState.MODERATE_DYSREGULATION
        return RegulationState.MILD_DYSREGULATION

    @staticmethod
    def _dominant_emotion(
        facial: EmotionalState,
        arousal: float,
        physio_quality: float,
        has_physiological: bool,
        markers: List[PhysiologicalMarker],
        dissociation_index: float,
    ) -> EmotionType:
        # A confident, clear face wins
        if facial.confidence > 0.7 and facial.primary_intensity > 0.5:
            return facial.primary_emotion

        # Unreliable face with good physiology: infer from the body
        if facial.confidence < 0.4 and has_physiological and physio_quality > 0.7:
            if arousal > 0.8:
                freeze = max(
                    (m.intensity for m in markers
                     if m.marker_type is PhysiologicalMarkerType.MOVEMENT_FREEZE),
                    default=0.0,
                )
                return EmotionType.FEAR if freeze > 0.7 else EmotionType.ANGER
            if arousal < 0.3:
                return EmotionType.SADNESS

        if dissociation_index > 0.7:
            return EmotionType.DISSOCIATION

        return facial.primary_emotion

    @staticmethod
    def _emotional_intensity(facial: EmotionalState, physio_arousal: float, physio_quality: float) -> float:
        facial_weight = facial.confidence
        total = facial_weight + physio_quality
        if total > 0:
            blended = (facial.primary_intensity * facial_weight + physio_arousal * physio_quality) / total
        else:
            blended = (facial.primary_intensity + physio_arousal) / 2
        return _clip(blended)

    @staticmethod
    def _data_quality(face: TrackingQuality, has_physiological: bool, bio: float) -> DataQuality:
        """Grade the combined input quality of one sample"""
        has_face = face is not TrackingQuality.NO_FACE
        if not has_face and not has_physiological:
            return DataQuality.INVALID
        if not has_face or not has_physiological:
            return DataQuality.POOR
        if bio < 0.2:
            return DataQuality.INVALID

        if (face is TrackingQuality.EXCELLENT and bio > 0.8) or \
                (face is TrackingQuality.GOOD and bio > 0.9):
            return DataQuality.EXCELLENT
        if (face is TrackingQuality.EXCELLENT and bio > 0.6) or \
                (face is TrackingQuality.GOOD and bio > 0.7) or \
                (face is TrackingQuality.FAIR and bio > 0.8):
            return DataQuality.GOOD
        if (face is TrackingQuality.POOR and bio < 0.5) or \
                (face is TrackingQuality.FAIR and bio < 0.4):
            return DataQuality.POOR
        return DataQuality.FAIR

    def _advance_baselines(self, reading: BiometricReading) -> None:
        """Fold the held reading into the baselines once a newer one arrives.

        Baselines never include the reading being evaluated, so a sudden
        change registers, and a reading held across several ticks counts once.
        """
        held = self._held_reading
        if held is not None and reading.timestamp <= held.timestamp:
            return
        if held is not None:
            self._update_baselines(held)
        self._held_reading = reading

    def _update_baselines(self, reading: BiometricReading) -> None:
        if reading.heart_rate is not None:
            self._heart_rates.append(reading.heart_rate)
        if reading.respiration_rate is not None:
            self._respiration_rates.append(reading.respiration_rate)
        if reading.skin_conductance is not None:
            self._skin_conductance.append(reading.skin_conductance)
