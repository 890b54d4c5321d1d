"""Session configuration consumed at session start and on reconfiguration"""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional

from biomirror.config.config_loader import Config, config as default_config
from biomirror.models.enums import SamplingFrequency, SessionMode


@dataclass(frozen=True)
class SessionConfiguration:
    """Sampling tier, channel selection and detection thresholds for a session

    Attributes:
        sampling_frequency: Capture/integration tier
        mode: Session mode requested by the client
        include_hrv: Use heart-rate variability in arousal
        include_motion: Use motion in arousal and freeze detection
        include_respiration: Use respiration for dissociation markers
        include_eda: Use skin conductance for dissociation markers
        planned_duration: Planned session length in seconds (progress metrics)
        dissociation_entry_threshold: Index that opens an episode
        dissociation_exit_threshold: Index below which an episode starts closing
        entry_sustain_samples: Samples above entry threshold before an episode opens
        exit_sustain_samples: Samples below exit threshold before an episode closes
        expression_floor: Minimum intensity for an emotion to count as expressed
        masking_threshold: Masking index above which a sample counts as masked
        recovery_margin: Arousal drop below the peak that counts as recovery
        recovery_peak_floor: Peak arousal needed before recovery is measured
        high_arousal_threshold: Arousal above which a sample must settle
            (regulation capacity)
        calm_arousal_threshold: Arousal below which a high-arousal sample has settled
        recovery_time_scale: Settle time in seconds that maps to half speed
    """
    sampling_frequency: SamplingFrequency = SamplingFrequency.MEDIUM
    mode: SessionMode = SessionMode.STANDARD
    include_hrv: bool = True
    include_motion: bool = True
    include_respiration: bool = True
    include_eda: bool = True
    planned_duration: float = 900.0
    dissociation_entry_threshold: float = 0.6
    dissociation_exit_threshold: float = 0.5
    entry_sustain_samples: int = 4
    exit_sustain_samples: int = 4
    expression_floor: float = 0.3
    masking_threshold: float = 0.6
    recovery_margin: float = 0.2
    recovery_peak_floor: float = 0.5
    high_arousal_threshold: float = 0.7
    calm_arousal_threshold: float = 0.4
    recovery_time_scale: float = 60.0

    def __post_init__(self):
        assert 0.0 <= self.dissociation_exit_threshold <= self.dissociation_entry_threshold <= 1.0, \
            "Dissociation thresholds must satisfy 0 <= exit <= entry <= 1"
        assert self.entry_sustain_samples >= 1, "Entry sustain window must be at least one sample"
        assert self.exit_sustain_samples >= 1, "Exit sustain window must be at least one sample"
        assert self.planned_duration > 0, "Planned duration must be positive"
        assert 0.0 <= self.calm_arousal_threshold <= self.high_arousal_threshold <= 1.0, \
            "Arousal thresholds must satisfy 0 <= calm <= high <= 1"
        assert self.recovery_time_scale > 0, "Recovery time scale must be positive"

    @property
    def sample_interval(self) -> float:
        """Seconds represented by one integrated sample"""
        return self.sampling_frequency.sample_interval

    def with_changes(self, **changes: Any) -> "SessionConfiguration":
        return replace(self, **changes)

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> "SessionConfiguration":
        """Build the configuration from the YAML config

        Args:
            cfg: Loaded configuration, the module-level config by default

        Returns:
            SessionConfiguration with YAML values over the built-in defaults
        """
        cfg = cfg or default_config
        return cls(
            sampling_frequency=SamplingFrequency(cfg.get('session.sampling_frequency', 'medium')),
            mode=SessionMode(cfg.get('session.mode', 'standard')),
            include_hrv=bool(cfg.get('session.include_hrv', True)),
            include_motion=bool(cfg.get('session.include_motion', True)),
            include_respiration=bool(cfg.get('session.include_respiration', True)),
            include_eda=bool(cfg.get('session.include_eda', True)),
            planned_duration=float(cfg.get('session.planned_duration', 900.0)),
            dissociation_entry_threshold=float(cfg.get('dissociation.entry_threshold', 0.6)),
            dissociation_exit_threshold=float(cfg.get('dissociation.exit_threshold', 0.5)),
            entry_sustain_samples=int(cfg.get('dissociation.entry_sustain_samples', 4)),
            exit_sustain_samples=int(cfg.get('dissociation.exit_sustain_samples', 4)),
            expression_floor=float(cfg.get('metrics.expression_floor', 0.3)),
            masking_threshold=float(cfg.get('metrics.masking_threshold', 0.6)),
            recovery_margin=float(cfg.get('metrics.recovery_margin', 0.2)),
            recovery_peak_floor=float(cfg.get('metrics.recovery_peak_floor', 0.5)),
            high_arousal_threshold=float(cfg.get('metrics.high_arousal_threshold', 0.7)),
            calm_arousal_threshold=float(cfg.get('metrics.calm_arousal_threshold', 0.4)),
            recovery_time_scale=float(cfg.get('metrics.recovery_time_scale', 60.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sampling_frequency"] = self.sampling_frequency.value
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionConfiguration":
        values = dict(data)
        if "sampling_frequency" in values:
            values["sampling_frequency"] = SamplingFrequency(values["sampling_frequency"])
        if "mode" in values:
            values["mode"] = SessionMode(values["mode"])
        return cls(**values)
