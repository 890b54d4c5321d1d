"""Enumerations shared by the inference and session layers"""

from enum import Enum
from typing import Optional


class TrackingQuality(Enum):
    """Face tracking quality reported by the capture source"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    NO_FACE = "no_face"


class EmotionType(Enum):
    """Fixed emotion vocabulary.

    Declaration order is the canonical ordering used to break score ties.
    """
    NEUTRAL = "neutral"
    HAPPINESS = "happiness"
    SADNESS = "sadness"
    ANGER = "anger"
    FEAR = "fear"
    SURPRISE = "surprise"
    DISGUST = "disgust"
    CONTEMPT = "contempt"

    # Trauma-specific states
    DISSOCIATION = "dissociation"
    HYPERVIGILANCE = "hypervigilance"
    FREEZE = "freeze"

    # Complex emotions
    CONFUSION = "confusion"
    INTEREST = "interest"
    SHAME = "shame"
    PRIDE = "pride"

    @property
    def canonical_index(self) -> int:
        return _EMOTION_ORDER[self]


_EMOTION_ORDER = {emotion: index for index, emotion in enumerate(EmotionType)}


class PhysiologicalMarkerType(Enum):
    """Physiological signs that can indicate dissociation"""
    HEART_RATE_DECREASE = "heart_rate_decrease"
    RESPIRATION_RATE_DECREASE = "respiration_rate_decrease"
    SKIN_CONDUCTANCE_DECREASE = "skin_conductance_decrease"
    PUPIL_DILATION = "pupil_dilation"
    MOVEMENT_FREEZE = "movement_freeze"
    BLINK_RATE_DECREASE = "blink_rate_decrease"
    GAZE_FREEZING = "gaze_freezing"


class RegulationState(Enum):
    REGULATED = "regulated"
    MILD_DYSREGULATION = "mild_dysregulation"
    MODERATE_DYSREGULATION = "moderate_dysregulation"
    SEVERE_DYSREGULATION = "severe_dysregulation"


class DataQuality(Enum):
    """Combined quality of the facial and physiological inputs of one sample"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    INVALID = "invalid"


class SessionPhase(Enum):
    """Ordered therapeutic program stages"""
    CONNECTION = 0
    AWARENESS = 1
    INTEGRATION = 2
    REGULATION = 3
    TRANSFER = 4

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]

    @property
    def next_phase(self) -> Optional["SessionPhase"]:
        if self.value + 1 < len(SessionPhase):
            return SessionPhase(self.value + 1)
        return None

    @property
    def previous_phase(self) -> Optional["SessionPhase"]:
        return SessionPhase(self.value - 1) if self.value > 0 else None


_PHASE_LABELS = {
    SessionPhase.CONNECTION: "Connection",
    SessionPhase.AWARENESS: "Emotional Awareness",
    SessionPhase.INTEGRATION: "Emotional Integration",
    SessionPhase.REGULATION: "Emotional Regulation",
    SessionPhase.TRANSFER: "Skill Transfer",
}


class InterventionType(Enum):
    MIRRORING = "mirroring"
    TITRATION = "titration"
    REGULATION = "regulation"
    GROUNDING = "grounding"
    VALIDATION = "validation"
    EXPLORATION = "exploration"
    CELEBRATION = "celebration"
    TRANSITION = "transition"


class InterventionLevel(Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    INTENSIVE = "intensive"


class SamplingFrequency(Enum):
    """Sampling tiers for capture and physiological integration"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def capture_fps(self) -> int:
        return {"low": 10, "medium": 30, "high": 60}[self.value]

    @property
    def integration_hz(self) -> float:
        return {"low": 1.0, "medium": 5.0, "high": 10.0}[self.value]

    @property
    def sample_interval(self) -> float:
        """Expected seconds between integrated samples"""
        return 1.0 / self.integration_hz


class SessionMode(Enum):
    STANDARD = "standard"
    BACKGROUND = "background"
    LOW_POWER = "low_power"
    HIGH_PRECISION = "high_precision"
