"""Data models for session-level records

These records are the persistence and sync contract: every field is carried
by ``to_dict``/``from_dict`` and the records are immutable.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from biomirror.models.enums import EmotionType, InterventionLevel, InterventionType
from biomirror.models.results import PhysiologicalMarker


@dataclass(frozen=True)
class DissociationEpisode:
    """Period of sustained dissociation evidence

    Attributes:
        start_time: First sample of the episode
        end_time: Sample at which the evidence dropped for good; None while open
        max_intensity: Highest dissociation index during the episode
        average_intensity: Mean dissociation index during the episode
        markers: Distinct physiological markers that contributed
    """
    start_time: float
    end_time: Optional[float]
    max_intensity: float
    average_intensity: float
    markers: Tuple[PhysiologicalMarker, ...] = field(default_factory=tuple)

    def __post_init__(self):
        assert 0.0 <= self.average_intensity <= self.max_intensity + 1e-9, \
            "Average intensity must not exceed max intensity"
        assert self.max_intensity <= 1.0, "Max intensity must be in [0, 1]"
        if self.end_time is not None:
            assert self.end_time >= self.start_time, "Episode cannot end before it starts"
        object.__setattr__(self, "markers", tuple(self.markers))

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> float:
        """Episode length in seconds, 0.0 while still open"""
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    @property
    def severity(self) -> str:
        """Clinical severity bucket: mild, moderate or severe"""
        if self.duration > 120.0 or self.max_intensity > 0.9:
            return "severe"
        if self.duration > 30.0 or self.max_intensity > 0.8:
            return "moderate"
        return "mild"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "max_intensity": self.max_intensity,
            "average_intensity": self.average_intensity,
            "markers": [m.to_dict() for m in self.markers],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DissociationEpisode":
        end_time = data.get("end_time")
        return cls(
            start_time=float(data["start_time"]),
            end_time=float(end_time) if end_time is not None else None,
            max_intensity=float(data["max_intensity"]),
            average_intensity=float(data["average_intensity"]),
            markers=tuple(PhysiologicalMarker.from_dict(m) for m in data.get("markers", [])),
        )


@dataclass(frozen=True)
class Intervention:
    """Therapeutic response delivered during a session"""
    timestamp: float
    response_type: InterventionType
    level: InterventionLevel = InterventionLevel.MINIMAL
    target_emotion: Optional[EmotionType] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "response_type": self.response_type.value,
            "level": self.level.value,
            "target_emotion": self.target_emotion.value if self.target_emotion else None,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Intervention":
        target = data.get("target_emotion")
        return cls(
            timestamp=float(data["timestamp"]),
            response_type=InterventionType(data["response_type"]),
            level=InterventionLevel(data.get("level", InterventionLevel.MINIMAL.value)),
            target_emotion=EmotionType(target) if target else None,
            duration=float(data.get("duration", 0.0)),
        )


@dataclass(frozen=True)
class SessionMetrics:
    """Rolling or final therapeutic metrics for one session

    Attributes:
        session_duration: Seconds from session start to the latest sample
            (or to the end time once final)
        interventions_delivered: Number of interventions delivered
        average_coherence_index: Mean coherence over samples where both
            modalities were present
        emotional_masking_instances: Times the face started masking arousal
        emotions_expressed: Distinct dominant emotions above the expression floor
        emotional_range_index: Share of the emotion vocabulary expressed
        dissociation_episodes: Recorded dissociation episodes
        total_dissociation_time: Seconds of samples above the dissociation threshold
        percentage_time_in_dissociation: total_dissociation_time / session_duration
        peak_arousal: Highest arousal observed
        time_of_peak_arousal: Timestamp of that sample
        regulation_recovery_time: Shortest peak-to-recovery interval, if any
        phase_progress: Elapsed share of the current phase's allotment
        overall_progress: Elapsed share of the planned session
        regulated_ratio: Share of samples classified as regulated
        regulation_capacity: Regulated share blended with how quickly high
            arousal settles, in [0, 1]
        regulation_improvement: Regulated share of the last third of the
            session minus that of the first third, in [-1, 1]
        sample_count: Integrated samples received
        is_final: True once the session has been finalized
    """
    session_duration: float = 0.0
    interventions_delivered: int = 0
    average_coherence_index: float = 0.0
    emotional_masking_instances: int = 0
    emotions_expressed: FrozenSet[EmotionType] = frozenset()
    emotional_range_index: float = 0.0
    dissociation_episodes: int = 0
    total_dissociation_time: float = 0.0
    percentage_time_in_dissociation: float = 0.0
    peak_arousal: float = 0.0
    time_of_peak_arousal: Optional[float] = None
    regulation_recovery_time: Optional[float] = None
    phase_progress: float = 0.0
    overall_progress: float = 0.0
    regulated_ratio: float = 0.0
    regulation_capacity: float = 0.0
    regulation_improvement: float = 0.0
    sample_count: int = 0
    is_final: bool = False

    def __post_init__(self):
        assert self.session_duration >= 0, "Session duration must be non-negative"
        assert 0.0 <= self.emotional_range_index <= 1.0, "Range index must be in [0, 1]"
        assert 0.0 <= self.regulation_capacity <= 1.0, "Regulation capacity must be in [0, 1]"
        assert -1.0 <= self.regulation_improvement <= 1.0, "Regulation improvement must be in [-1, 1]"
        object.__setattr__(self, "emotions_expressed", frozenset(self.emotions_expressed))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_duration": self.session_duration,
            "interventions_delivered": self.interventions_delivered,
            "average_coherence_index": self.average_coherence_index,
            "emotional_masking_instances": self.emotional_masking_instances,
            "emotions_expressed": [
                e.value for e in sorted(self.emotions_expressed, key=lambda e: e.canonical_index)
            ],
            "emotional_range_index": self.emotional_range_index,
            "dissociation_episodes": self.dissociation_episodes,
            "total_dissociation_time": self.total_dissociation_time,
            "percentage_time_in_dissociation": self.percentage_time_in_dissociation,
            "peak_arousal": self.peak_arousal,
            "time_of_peak_arousal": self.time_of_peak_arousal,
            "regulation_recovery_time": self.regulation_recovery_time,
            "phase_progress": self.phase_progress,
            "overall_progress": self.overall_progress,
            "regulated_ratio": self.regulated_ratio,
            "regulation_capacity": self.regulation_capacity,
            "regulation_improvement": self.regulation_improvement,
            "sample_count": self.sample_count,
            "is_final": self.is_final,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionMetrics":
        peak_time = data.get("time_of_peak_arousal")
        recovery = data.get("regulation_recovery_time")
        return cls(
            session_duration=float(data["session_duration"]),
            interventions_delivered=int(data["interventions_delivered"]),
            average_coherence_index=float(data["average_coherence_index"]),
            emotional_masking_instances=int(data["emotional_masking_instances"]),
            emotions_expressed=frozenset(EmotionType(e) for e in data["emotions_expressed"]),
            emotional_range_index=float(data["emotional_range_index"]),
            dissociation_episodes=int(data["dissociation_episodes"]),
            total_dissociation_time=float(data["total_dissociation_time"]),
            percentage_time_in_dissociation=float(data["percentage_time_in_dissociation"]),
            peak_arousal=float(data["peak_arousal"]),
            time_of_peak_arousal=float(peak_time) if peak_time is not None else None,
            regulation_recovery_time=float(recovery) if recovery is not None else None,
            phase_progress=float(data["phase_progress"]),
            overall_progress=float(data["overall_progress"]),
            regulated_ratio=float(data["regulated_ratio"]),
            regulation_capacity=float(data["regulation_capacity"]),
            regulation_improvement=float(data["regulation_improvement"]),
            sample_count=int(data["sample_count"]),
            is_final=bool(data["is_final"]),
        )
