"""Session Metrics Aggregator

Consumes the ordered stream of integrated samples for one session and keeps
running sums from which rolling SessionMetrics snapshots are produced. The
session is finalized exactly once; after that the aggregator is read-only.

Behavior:
    - Samples must arrive in non-decreasing timestamp order
    - Coherence is averaged over samples where both modalities contributed
    - Masking instances count each time the masking index rises above the
      masking threshold
    - Dissociation time accumulates one sample interval per sample whose
      index exceeds the dissociation entry threshold
    - Recovery time is the shortest interval from a peak-arousal sample to a
      later sample at least ``recovery_margin`` below that peak
    - Regulation capacity blends the regulated share with how quickly
      high-arousal samples settle below the calm threshold
    - Regulation improvement compares the last third of the session with
      the first third
    - Samples before the session start, like out-of-order samples, are
      rejected
    - A second finalize, or any mutation after finalize, fails loudly
"""

import logging
from typing import List, Optional, Set

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import EmotionType, SessionPhase
from biomirror.models.results import IntegratedEmotionalState
from biomirror.models.session import DissociationEpisode, Intervention, SessionMetrics


logger = logging.getLogger(__name__)


# Share of the planned session allotted to each phase
PHASE_SHARES = {
    SessionPhase.CONNECTION: 0.15,
    SessionPhase.AWARENESS: 0.30,
    SessionPhase.INTEGRATION: 0.30,
    SessionPhase.REGULATION: 0.15,
    SessionPhase.TRANSFER: 0.10,
}

VOCABULARY_SIZE = len(EmotionType)

_EPSILON = 1e-9

# Samples needed before regulation capacity and improvement are estimated
MIN_CAPACITY_SAMPLES = 5
MIN_IMPROVEMENT_SAMPLES = 10


class InvariantViolation(RuntimeError):
    """Base class for programmer errors that would silently corrupt metrics"""
    pass


class OrderingError(InvariantViolation):
    """A sample arrived with a timestamp older than the previous one"""
    pass


class MetricsFinalizedError(InvariantViolation):
    """The metrics were already finalized"""
    pass


class SessionMetricsAggregator:
    """Incremental session metrics.

    Attributes:
        configuration: Thresholds and sampling tier
        start_time: Session start; the first sample's timestamp when omitted
        phase: Current session phase (for progress)
        episodes: Dissociation episodes recorded so far
        interventions: Interventions recorded so far
    """

    def __init__(
        self,
        configuration: Optional[SessionConfiguration] = None,
        start_time: Optional[float] = None,
        phase: SessionPhase = SessionPhase.CONNECTION,
    ):
        self.configuration = configuration or SessionConfiguration()
        self.start_time = start_time
        self.phase = phase
        self._phase_start = start_time

        self.episodes: List[DissociationEpisode] = []
        self.interventions: List[Intervention] = []

        self._last_timestamp: Optional[float] = None
        self._sample_count = 0
        self._coherence_sum = 0.0
        self._coherence_count = 0
        self._masked = False
        self._masking_instances = 0
        self._expressed: Set[EmotionType] = set()
        self._dissociation_time = 0.0
        self._regulated_count = 0
        self._regulated_flags: List[bool] = []

        # High-arousal samples still waiting for arousal to settle
        self._pending_high_count = 0
        self._pending_high_time_sum = 0.0
        self._settled_count = 0
        self._settle_time_total = 0.0

        self._peak_arousal = 0.0
        self._peak_time: Optional[float] = None
        self._awaiting_recovery = False
        self._recovery_time: Optional[float] = None

        self._final: Optional[SessionMetrics] = None

        logger.info(f"SessionMetricsAggregator initialized with "
                    f"sample_interval={self.configuration.sample_interval}s, "
                    f"dissociation_threshold={self.configuration.dissociation_entry_threshold}")

    @property
    def is_final(self) -> bool:
        return self._final is not None

    @property
    def last_timestamp(self) -> Optional[float]:
        return self._last_timestamp

    def add_emotional_state(self, state: IntegratedEmotionalState) -> None:
        """Fold one integrated sample into the running metrics.

        Args:
            state: Next sample in timestamp order

        Raises:
            MetricsFinalizedError: If the metrics were already finalized
            OrderingError: If the sample is older than the previous one or
                precedes the session start
        """
        self._ensure_open()
        timestamp = state.timestamp
        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            raise OrderingError(
                f"Sample at {timestamp} is older than the previous sample at {self._last_timestamp}"
            )
        if self.start_time is not None and timestamp < self.start_time:
            raise OrderingError(
                f"Sample at {timestamp} precedes the session start at {self.start_time}"
            )
        if self.start_time is None:
            self.start_time = timestamp
        if self._phase_start is None:
            self._phase_start = self.start_time

        cfg = self.configuration
        self._last_timestamp = timestamp
        self._sample_count += 1

        if state.is_coherence_measured:
            self._coherence_sum += state.coherence_index
            self._coherence_count += 1

        masked = state.emotional_masking_index > cfg.masking_threshold
        if masked and not self._masked:
            self._masking_instances += 1
        self._masked = masked

        if state.emotional_intensity > cfg.expression_floor:
            self._expressed.add(state.dominant_emotion)

        if state.dissociation_index > cfg.dissociation_entry_threshold:
            self._dissociation_time += cfg.sample_interval

        if state.is_regulated:
            self._regulated_count += 1
        self._regulated_flags.append(state.is_regulated)

        self._track_arousal(timestamp, state.arousal_level)
        self._track_settling(timestamp, state.arousal_level)

    def _track_arousal(self, timestamp: float, arousal: float) -> None:
        cfg = self.configuration
        if self._peak_time is None or arousal > self._peak_arousal or \
                (arousal == self._peak_arousal and not self._awaiting_recovery):
            self._peak_arousal = arousal
            self._peak_time = timestamp
            self._awaiting_recovery = arousal > cfg.recovery_peak_floor
            return

        if self._awaiting_recovery and arousal <= self._peak_arousal - cfg.recovery_margin + _EPSILON:
            interval = timestamp - self._peak_time
            if self._recovery_time is None or interval < self._recovery_time:
                self._recovery_time = interval
            self._awaiting_recovery = False
            logger.debug(f"Arousal recovered from {self._peak_arousal:.2f} in {interval:.2f}s")

    def _track_settling(self, timestamp: float, arousal: float) -> None:
        # Every pending high-arousal sample settles at the first calm sample
        cfg = self.configuration
        if arousal < cfg.calm_arousal_threshold:
            if self._pending_high_count:
                self._settle_time_total += \
                    self._pending_high_count * timestamp - self._pending_high_time_sum
                self._settled_count += self._pending_high_count
                self._pending_high_count = 0
                self._pending_high_time_sum = 0.0
        elif arousal > cfg.high_arousal_threshold:
            self._pending_high_count += 1
            self._pending_high_time_sum += timestamp

    def _regulation_capacity(self, regulated_ratio: float) -> float:
        """Regulated share blended with how fast high arousal settles.

        Settling speed maps the mean settle time through
        ``1 / (1 + t / recovery_time_scale)``; both parts default to 0.5 while
        there is too little evidence.
        """
        if self._sample_count <= MIN_CAPACITY_SAMPLES:
            return 0.5
        speed = 0.5
        if self._settled_count:
            average = self._settle_time_total / self._settled_count
            speed = 1.0 / (1.0 + average / self.configuration.recovery_time_scale)
        return (regulated_ratio + speed) / 2.0

    def _regulation_improvement(self) -> float:
        """Regulated share of the last third of samples minus the first third"""
        if self._sample_count <= MIN_IMPROVEMENT_SAMPLES:
            return 0.0
        third = self._sample_count // 3
        first = sum(self._regulated_flags[:third]) / third
        last = sum(self._regulated_flags[-third:]) / third
        return last - first

    def record_episode(self, episode: DissociationEpisode) -> None:
        self._ensure_open()
        self.episodes.append(episode)

    def record_intervention(self, intervention: Intervention) -> None:
        self._ensure_open()
        self.interventions.append(intervention)

    def set_phase(self, phase: SessionPhase, timestamp: Optional[float] = None) -> None:
        """Switch the current phase; its progress clock restarts at ``timestamp``"""
        self._ensure_open()
        self.phase = phase
        self._phase_start = timestamp if timestamp is not None else self._last_timestamp

    def snapshot(self, now: Optional[float] = None) -> SessionMetrics:
        """Rolling metrics, safe to call at any point of the session.

        Args:
            now: Clock used for duration and progress; the latest sample's
                timestamp when omitted

        Returns:
            SessionMetrics (the final one once finalized)
        """
        if self._final is not None:
            return self._final
        if now is None:
            now = self._last_timestamp
        return self._build(now, is_final=False)

    def finalize(self, end_time: float) -> SessionMetrics:
        """Compute the final metrics. Must be called exactly once.

        Args:
            end_time: Session end timestamp

        Returns:
            Final SessionMetrics

        Raises:
            MetricsFinalizedError: If called a second time
            OrderingError: If end_time precedes the last sample or the
                session start
        """
        self._ensure_open()
        if self._last_timestamp is not None and end_time < self._last_timestamp:
            raise OrderingError(
                f"End time {end_time} precedes the last sample at {self._last_timestamp}"
            )
        if self.start_time is not None and end_time < self.start_time:
            raise OrderingError(
                f"End time {end_time} precedes the session start at {self.start_time}"
            )
        if self.start_time is None:
            self.start_time = end_time

        self._final = self._build(end_time, is_final=True)
        logger.info(f"Session metrics finalized: duration={self._final.session_duration:.1f}s, "
                    f"samples={self._sample_count}, episodes={len(self.episodes)}")
        return self._final

    def _build(self, now: Optional[float], is_final: bool) -> SessionMetrics:
        start = self.start_time
        duration = max(0.0, now - start) if now is not None and start is not None else 0.0

        dissociation_percentage = self._dissociation_time / duration if duration > 0 else 0.0
        coherence = self._coherence_sum / self._coherence_count if self._coherence_count else 0.0
        regulated_ratio = self._regulated_count / self._sample_count if self._sample_count else 0.0

        planned = self.configuration.planned_duration
        phase_elapsed = 0.0
        if now is not None and self._phase_start is not None:
            phase_elapsed = max(0.0, now - self._phase_start)
        phase_allotment = planned * PHASE_SHARES[self.phase]

        return SessionMetrics(
            session_duration=duration,
            interventions_delivered=len(self.interventions),
            average_coherence_index=coherence,
            emotional_masking_instances=self._masking_instances,
            emotions_expressed=frozenset(self._expressed),
            emotional_range_index=len(self._expressed) / VOCABULARY_SIZE,
            dissociation_episodes=len(self.episodes),
            total_dissociation_time=self._dissociation_time,
            percentage_time_in_dissociation=min(1.0, dissociation_percentage),
            peak_arousal=self._peak_arousal,
            time_of_peak_arousal=self._peak_time,
            regulation_recovery_time=self._recovery_time,
            phase_progress=min(1.0, phase_elapsed / phase_allotment),
            overall_progress=min(1.0, duration / planned),
            regulated_ratio=regulated_ratio,
            regulation_capacity=self._regulation_capacity(regulated_ratio),
            regulation_improvement=self._regulation_improvement(),
            sample_count=self._sample_count,
            is_final=is_final,
        )

    def _ensure_open(self) -> None:
        if self._final is not None:
            raise MetricsFinalizedError("Session metrics were already finalized")
