"""Data models for inference results"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from biomirror.models.enums import (
    DataQuality,
    EmotionType,
    PhysiologicalMarkerType,
    RegulationState,
    TrackingQuality,
)


MICRO_EXPRESSION_MIN_DURATION = 0.04
MICRO_EXPRESSION_MAX_DURATION = 0.2


@dataclass(frozen=True)
class FacialActionUnit:
    """FACS action unit activation

    Attributes:
        id: FACS action unit number (e.g. 12 for Lip Corner Puller)
        name: FACS name
        intensity: Activation in [0, 1]
    """
    id: int
    name: str
    intensity: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "intensity": self.intensity}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FacialActionUnit":
        return cls(id=int(data["id"]), name=str(data["name"]), intensity=float(data["intensity"]))


@dataclass(frozen=True)
class MicroExpression:
    """Brief, high-amplitude facial activation

    Attributes:
        timestamp: When the activation was observed
        duration: Estimated duration in seconds, within [0.04, 0.2]
        emotion: Candidate emotion for the activation
        intensity: Activation of the firing channel
        action_units: Action units involved (at least one)
    """
    timestamp: float
    duration: float
    emotion: EmotionType
    intensity: float
    action_units: Tuple[FacialActionUnit, ...]

    def __post_init__(self):
        assert MICRO_EXPRESSION_MIN_DURATION <= self.duration <= MICRO_EXPRESSION_MAX_DURATION, \
            "Micro-expression duration must be within [0.04, 0.2] seconds"
        assert 0.0 <= self.intensity <= 1.0, "Intensity must be in [0, 1]"
        assert len(self.action_units) > 0, "Micro-expression needs at least one action unit"
        object.__setattr__(self, "action_units", tuple(self.action_units))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "duration": self.duration,
            "emotion": self.emotion.value,
            "intensity": self.intensity,
            "action_units": [unit.to_dict() for unit in self.action_units],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MicroExpression":
        return cls(
            timestamp=float(data["timestamp"]),
            duration=float(data["duration"]),
            emotion=EmotionType(data["emotion"]),
            intensity=float(data["intensity"]),
            action_units=tuple(FacialActionUnit.from_dict(u) for u in data["action_units"]),
        )


@dataclass(frozen=True)
class EmotionalState:
    """Facial emotion inference for one frame

    Attributes:
        timestamp: Frame timestamp
        primary_emotion: Highest-scoring emotion
        primary_intensity: Score of the primary emotion [0, 1]
        secondary_emotions: Other emotions scoring above the secondary threshold
        micro_expressions: Micro-expressions detected on this frame transition
        confidence: Tracking confidence [0, 1]; 0 only when no face is tracked
        tracking_quality: Face tracking quality
    """
    timestamp: float
    primary_emotion: EmotionType
    primary_intensity: float
    secondary_emotions: Mapping[EmotionType, float] = field(default_factory=dict)
    micro_expressions: Tuple[MicroExpression, ...] = field(default_factory=tuple)
    confidence: float = 1.0
    tracking_quality: TrackingQuality = TrackingQuality.GOOD

    def __post_init__(self):
        """Enforce the no-face and primary/secondary invariants.

        Raises:
            AssertionError: If ranges are violated, the primary emotion is
                repeated among the secondary emotions, or the confidence does
                not agree with the tracking quality
        """
        assert 0.0 <= self.primary_intensity <= 1.0, "Primary intensity must be in [0, 1]"
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"
        assert self.primary_emotion not in self.secondary_emotions, \
            "Secondary emotions must not include the primary emotion"
        no_face = self.tracking_quality is TrackingQuality.NO_FACE
        assert (self.confidence == 0.0) == no_face, \
            "Confidence is zero exactly when no face is detected"
        if no_face:
            assert self.primary_intensity == 0.0, "No-face state must have zero intensity"
            assert not self.micro_expressions, "No-face state cannot report micro-expressions"
        object.__setattr__(self, "secondary_emotions", dict(self.secondary_emotions))
        object.__setattr__(self, "micro_expressions", tuple(self.micro_expressions))

    @property
    def has_face(self) -> bool:
        return self.tracking_quality is not TrackingQuality.NO_FACE

    def intensity_of(self, emotion: EmotionType) -> float:
        """Reported intensity of an emotion, 0.0 if it was not reported"""
        if emotion is self.primary_emotion:
            return self.primary_intensity
        return self.secondary_emotions.get(emotion, 0.0)

    @classmethod
    def no_face(cls, timestamp: float) -> "EmotionalState":
        return cls(
            timestamp=timestamp,
            primary_emotion=EmotionType.NEUTRAL,
            primary_intensity=0.0,
            confidence=0.0,
            tracking_quality=TrackingQuality.NO_FACE,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "primary_emotion": self.primary_emotion.value,
            "primary_intensity": self.primary_intensity,
            "secondary_emotions": {e.value: s for e, s in self.secondary_emotions.items()},
            "micro_expressions": [m.to_dict() for m in self.micro_expressions],
            "confidence": self.confidence,
            "tracking_quality": self.tracking_quality.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmotionalState":
        return cls(
            timestamp=float(data["timestamp"]),
            primary_emotion=EmotionType(data["primary_emotion"]),
            primary_intensity=float(data["primary_intensity"]),
            secondary_emotions={
                EmotionType(name): float(score)
                for name, score in data.get("secondary_emotions", {}).items()
            },
            micro_expressions=tuple(
                MicroExpression.from_dict(m) for m in data.get("micro_expressions", [])
            ),
            confidence=float(data["confidence"]),
            tracking_quality=TrackingQuality(data["tracking_quality"]),
        )


@dataclass(frozen=True)
class PhysiologicalMarker:
    """Physiological sign of dissociation

    Attributes:
        marker_type: Which sign was observed
        intensity: How strongly the marker presents [0, 1]
        confidence: Confidence in the detection [0, 1]
    """
    marker_type: PhysiologicalMarkerType
    intensity: float
    confidence: float

    def __post_init__(self):
        assert 0.0 <= self.intensity <= 1.0, "Marker intensity must be in [0, 1]"
        assert 0.0 <= self.confidence <= 1.0, "Marker confidence must be in [0, 1]"

    @property
    def evidence(self) -> float:
        return self.intensity * self.confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marker_type": self.marker_type.value,
            "intensity": self.intensity,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PhysiologicalMarker":
        return cls(
            marker_type=PhysiologicalMarkerType(data["marker_type"]),
            intensity=float(data["intensity"]),
            confidence=float(data["confidence"]),
        )


@dataclass(frozen=True)
class IntegratedEmotionalState:
    """Facial and physiological evidence fused into one sample

    Attributes:
        timestamp: Sample timestamp (the facial frame's)
        dominant_emotion: Emotion after cross-modal reconciliation
        emotional_intensity: Confidence-weighted facial/physiological intensity
        arousal_level: Autonomic activation [0, 1]
        coherence_index: Agreement of facial and physiological arousal [0, 1]
        emotional_masking_index: Physiological arousal not shown on the face [0, 1]
        dissociation_index: Weighted dissociation evidence [0, 1]
        emotional_regulation: Regulation classification
        data_quality: Combined input quality
        has_facial: A tracked face contributed to this sample
        has_physiological: A biometric reading contributed to this sample
        markers: Dissociation markers that contributed to the index
        facial_state: The facial inference this sample was built from
    """
    timestamp: float
    dominant_emotion: EmotionType
    emotional_intensity: float
    arousal_level: float
    coherence_index: float
    dissociation_index: float
    emotional_regulation: RegulationState
    emotional_masking_index: float = 0.0
    data_quality: DataQuality = DataQuality.FAIR
    has_facial: bool = True
    has_physiological: bool = True
    markers: Tuple[PhysiologicalMarker, ...] = field(default_factory=tuple)
    facial_state: Optional[EmotionalState] = None

    def __post_init__(self):
        assert self.timestamp >= 0, "Timestamp must be non-negative"
        for name in ("emotional_intensity", "arousal_level", "coherence_index",
                     "dissociation_index", "emotional_masking_index"):
            value = getattr(self, name)
            assert 0.0 <= value <= 1.0, f"{name} must be in [0, 1]"
        object.__setattr__(self, "markers", tuple(self.markers))

    @property
    def is_masked(self) -> bool:
        return self.emotional_masking_index > 0.6

    @property
    def is_dissociated(self) -> bool:
        return self.dissociation_index > 0.6

    @property
    def is_regulated(self) -> bool:
        return self.emotional_regulation is RegulationState.REGULATED

    @property
    def is_coherence_measured(self) -> bool:
        """Coherence is only meaningful when both modalities contributed"""
        return self.has_facial and self.has_physiological

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "dominant_emotion": self.dominant_emotion.value,
            "emotional_intensity": self.emotional_intensity,
            "arousal_level": self.arousal_level,
            "coherence_index": self.coherence_index,
            "emotional_masking_index": self.emotional_masking_index,
            "dissociation_index": self.dissociation_index,
            "emotional_regulation": self.emotional_regulation.value,
            "data_quality": self.data_quality.value,
            "has_facial": self.has_facial,
            "has_physiological": self.has_physiological,
            "markers": [m.to_dict() for m in self.markers],
            "facial_state": self.facial_state.to_dict() if self.facial_state else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IntegratedEmotionalState":
        facial = data.get("facial_state")
        return cls(
            timestamp=float(data["timestamp"]),
            dominant_emotion=EmotionType(data["dominant_emotion"]),
            emotional_intensity=float(data["emotional_intensity"]),
            arousal_level=float(data["arousal_level"]),
            coherence_index=float(data["coherence_index"]),
            emotional_masking_index=float(data.get("emotional_masking_index", 0.0)),
            dissociation_index=float(data["dissociation_index"]),
            emotional_regulation=RegulationState(data["emotional_regulation"]),
            data_quality=DataQuality(data.get("data_quality", DataQuality.FAIR.value)),
            has_facial=bool(data.get("has_facial", True)),
            has_physiological=bool(data.get("has_physiological", True)),
            markers=tuple(PhysiologicalMarker.from_dict(m) for m in data.get("markers", [])),
            facial_state=EmotionalState.from_dict(facial) if facial else None,
        )
