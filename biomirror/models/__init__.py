"""Data models"""

from biomirror.models.enums import (
    DataQuality,
    EmotionType,
    InterventionLevel,
    InterventionType,
    PhysiologicalMarkerType,
    RegulationState,
    SamplingFrequency,
    SessionMode,
    SessionPhase,
    TrackingQuality,
)
from biomirror.models.results import (
    EmotionalState,
    FacialActionUnit,
    IntegratedEmotionalState,
    MicroExpression,
    PhysiologicalMarker,
)
from biomirror.models.frames import BiometricReading, SignalFrame
from biomirror.models.session import DissociationEpisode, Intervention, SessionMetrics
from biomirror.models.configuration import SessionConfiguration

__all__ = [
    # Enums
    "DataQuality",
    "EmotionType",
    "InterventionLevel",
    "InterventionType",
    "PhysiologicalMarkerType",
    "RegulationState",
    "SamplingFrequency",
    "SessionMode",
    "SessionPhase",
    "TrackingQuality",
    # Frames
    "BiometricReading",
    "SignalFrame",
    # Results
    "EmotionalState",
    "FacialActionUnit",
    "IntegratedEmotionalState",
    "MicroExpression",
    "PhysiologicalMarker",
    # Session records
    "DissociationEpisode",
    "Intervention",
    "SessionMetrics",
    # Configuration
    "SessionConfiguration",
]
