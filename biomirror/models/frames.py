"""Data models for raw input samples from the capture collaborators"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from biomirror.models.enums import TrackingQuality
from biomirror.models.results import PhysiologicalMarker


@dataclass(frozen=True)
class SignalFrame:
    """Snapshot of named facial channel intensities for one capture tick

    Attributes:
        timestamp: Seconds on the session clock
        channels: Canonical channel name -> activation in [0, 1]
        tracking_quality: Face tracking quality for this tick
    """
    timestamp: float
    channels: Mapping[str, float]
    tracking_quality: TrackingQuality = TrackingQuality.GOOD

    def __post_init__(self):
        """Validate and detach the channel mapping from the caller's dict.

        Raises:
            AssertionError: If the timestamp is negative or any channel value
                falls outside [0, 1]
        """
        assert self.timestamp >= 0, "Timestamp must be non-negative"
        channels: Dict[str, float] = {}
        for name, value in self.channels.items():
            value = float(value)
            assert 0.0 <= value <= 1.0, f"Channel {name} must be in [0, 1]"
            channels[name] = value
        object.__setattr__(self, "channels", channels)

    @property
    def has_face(self) -> bool:
        return self.tracking_quality is not TrackingQuality.NO_FACE

    def value(self, channel: str) -> float:
        """Channel activation, 0.0 for channels the source did not report"""
        return self.channels.get(channel, 0.0)

    @classmethod
    def no_face(cls, timestamp: float) -> "SignalFrame":
        return cls(timestamp=timestamp, channels={}, tracking_quality=TrackingQuality.NO_FACE)


@dataclass(frozen=True)
class BiometricReading:
    """Physiological sample from the wearable source

    Any measurement may be missing (sensor warm-up, disconnection).

    Attributes:
        timestamp: Seconds on the session clock
        heart_rate: Beats per minute
        heart_rate_variability: SDNN in milliseconds
        motion: Acceleration magnitude in g (gravity removed)
        respiration_rate: Breaths per minute
        skin_conductance: Skin conductance level in microsiemens
        markers: Dissociation markers detected by the source itself
        quality: Source-reported signal quality in [0, 1]
    """
    timestamp: float
    heart_rate: Optional[float] = None
    heart_rate_variability: Optional[float] = None
    motion: Optional[float] = None
    respiration_rate: Optional[float] = None
    skin_conductance: Optional[float] = None
    markers: Tuple[PhysiologicalMarker, ...] = field(default_factory=tuple)
    quality: float = 1.0

    def __post_init__(self):
        assert self.timestamp >= 0, "Timestamp must be non-negative"
        assert 0.0 <= self.quality <= 1.0, "Quality must be in [0, 1]"
        object.__setattr__(self, "markers", tuple(self.markers))

    @property
    def is_empty(self) -> bool:
        """True when the reading carries no usable measurement"""
        return (
            self.heart_rate is None
            and self.heart_rate_variability is None
            and self.motion is None
            and self.respiration_rate is None
            and self.skin_conductance is None
            and not self.markers
        )
