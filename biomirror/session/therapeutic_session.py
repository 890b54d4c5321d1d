"""Therapeutic session orchestration

A TherapeuticSession owns the aggregation lifecycle of one session: the
append-only logs of integrated samples, dissociation episodes and
interventions, its own DissociationDetector and SessionMetricsAggregator, and
the observers that receive immutable records as they are produced.
"""

import logging
import time
import uuid
from typing import Callable, List, Optional, Tuple, Union

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import SessionPhase
from biomirror.models.results import IntegratedEmotionalState
from biomirror.models.session import DissociationEpisode, Intervention, SessionMetrics
from biomirror.session.dissociation import DissociationDetector
from biomirror.session.metrics import InvariantViolation, OrderingError, SessionMetricsAggregator


logger = logging.getLogger(__name__)


SessionRecord = Union[IntegratedEmotionalState, DissociationEpisode, SessionMetrics]
Observer = Callable[[SessionRecord], None]


class SessionClosedError(InvariantViolation):
    """The session has already ended"""
    pass


class TherapeuticSession:
    """One therapeutic session and its derived metrics.

    Attributes:
        session_id: Session identity
        start_time: Session start timestamp
        end_time: Session end timestamp, None while running
        phase: Current program phase
        configuration: Active session configuration
    """

    def __init__(
        self,
        session_id: str,
        start_time: float,
        phase: SessionPhase = SessionPhase.CONNECTION,
        configuration: Optional[SessionConfiguration] = None,
        detector: Optional[DissociationDetector] = None,
        aggregator: Optional[SessionMetricsAggregator] = None,
    ):
        self.session_id = session_id
        self.start_time = start_time
        self.end_time: Optional[float] = None
        self.phase = phase
        self.configuration = configuration or SessionConfiguration.from_config()

        self.detector = detector or DissociationDetector.from_configuration(self.configuration)
        self.aggregator = aggregator or SessionMetricsAggregator(
            self.configuration, start_time=start_time, phase=phase
        )

        self._states: List[IntegratedEmotionalState] = []
        self._episodes: List[DissociationEpisode] = []
        self._interventions: List[Intervention] = []
        self._observers: List[Observer] = []
        self._final_metrics: Optional[SessionMetrics] = None

    @classmethod
    def start(
        cls,
        phase: SessionPhase = SessionPhase.CONNECTION,
        start_time: Optional[float] = None,
        session_id: Optional[str] = None,
        configuration: Optional[SessionConfiguration] = None,
    ) -> "TherapeuticSession":
        """Start a new session.

        Args:
            phase: Phase the session opens in
            start_time: Session clock start (wall clock when omitted)
            session_id: Identity (a new UUID when omitted)
            configuration: Session configuration (from YAML when omitted)

        Returns:
            A running TherapeuticSession
        """
        session = cls(
            session_id=session_id or str(uuid.uuid4()),
            start_time=time.time() if start_time is None else start_time,
            phase=phase,
            configuration=configuration,
        )
        logger.info(f"Session {session.session_id} started in phase {phase.label} "
                    f"at {session.start_time:.3f} "
                    f"(tier={session.configuration.sampling_frequency.value})")
        return session

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def emotional_states(self) -> Tuple[IntegratedEmotionalState, ...]:
        return tuple(self._states)

    @property
    def dissociation_episodes(self) -> Tuple[DissociationEpisode, ...]:
        return tuple(self._episodes)

    @property
    def interventions(self) -> Tuple[Intervention, ...]:
        return tuple(self._interventions)

    @property
    def metrics(self) -> SessionMetrics:
        """Rolling metrics while running, final metrics once ended"""
        if self._final_metrics is not None:
            return self._final_metrics
        return self.aggregator.snapshot()

    def current_episode(self) -> Optional[DissociationEpisode]:
        return self.detector.current_episode()

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def add_emotional_state(self, state: IntegratedEmotionalState) -> None:
        """Append an integrated sample and update metrics and episodes.

        Raises:
            SessionClosedError: If the session has ended
            OrderingError: If the sample is older than the previous one
        """
        self._ensure_active()
        # The aggregator validates ordering before anything is logged
        self.aggregator.add_emotional_state(state)
        self._states.append(state)
        self._notify(state)

        episode = self.detector.update(state)
        if episode is not None:
            self._record_episode(episode)

    def record_dissociation_episode(self, episode: DissociationEpisode) -> None:
        """Record an episode closed outside the session's own detector"""
        self._ensure_active()
        self._record_episode(episode)

    def add_intervention(self, intervention: Intervention) -> None:
        self._ensure_active()
        self.aggregator.record_intervention(intervention)
        self._interventions.append(intervention)
        logger.debug(f"Intervention {intervention.response_type.value} "
                     f"({intervention.level.value}) at {intervention.timestamp:.3f}")

    def advance_to_phase(self, phase: SessionPhase, timestamp: Optional[float] = None) -> None:
        self._ensure_active()
        if phase is self.phase:
            return
        previous = self.phase
        self.phase = phase
        self.aggregator.set_phase(phase, timestamp if timestamp is not None else self._clock())
        logger.info(f"Session {self.session_id} moved from {previous.label} to {phase.label}")

    def advance_phase(self, timestamp: Optional[float] = None) -> SessionPhase:
        """Move to the next phase in program order; stays put at the last phase"""
        next_phase = self.phase.next_phase
        if next_phase is not None:
            self.advance_to_phase(next_phase, timestamp)
        return self.phase

    def reconfigure(self, configuration: SessionConfiguration) -> None:
        """Apply a new configuration to the rest of the session.

        Thresholds take effect from the next sample; samples already folded
        into the metrics are not re-evaluated.
        """
        self._ensure_active()
        self.configuration = configuration
        self.aggregator.configuration = configuration
        self.detector.entry_threshold = configuration.dissociation_entry_threshold
        self.detector.exit_threshold = configuration.dissociation_exit_threshold
        self.detector.entry_sustain_samples = configuration.entry_sustain_samples
        self.detector.exit_sustain_samples = configuration.exit_sustain_samples
        logger.info(f"Session {self.session_id} reconfigured: "
                    f"tier={configuration.sampling_frequency.value}, mode={configuration.mode.value}")

    def end_session(self, end_time: Optional[float] = None) -> SessionMetrics:
        """End the session and finalize its metrics.

        Any open dissociation episode is closed at the last available
        timestamp.

        Args:
            end_time: Session end; the last sample's timestamp when omitted

        Returns:
            Final SessionMetrics

        Raises:
            SessionClosedError: If the session already ended
        """
        self._ensure_active()
        last = self._clock()
        if end_time is None:
            end_time = last
        elif end_time < last:
            raise OrderingError(f"End time {end_time} precedes the last sample at {last}")

        episode = self.detector.close(last)
        if episode is not None:
            self._record_episode(episode)

        self._final_metrics = self.aggregator.finalize(end_time)
        self.end_time = end_time
        logger.info(f"Session {self.session_id} ended after {self._final_metrics.session_duration:.1f}s "
                    f"with {len(self._episodes)} dissociation episode(s)")
        self._notify(self._final_metrics)
        return self._final_metrics

    def _record_episode(self, episode: DissociationEpisode) -> None:
        self.aggregator.record_episode(episode)
        self._episodes.append(episode)
        self._notify(episode)

    def _clock(self) -> float:
        last = self.aggregator.last_timestamp
        return last if last is not None else self.start_time

    def _notify(self, record: SessionRecord) -> None:
        for observer in list(self._observers):
            try:
                observer(record)
            except Exception as e:
                logger.error(f"Session observer failed on {type(record).__name__}: {e}", exc_info=True)

    def _ensure_active(self) -> None:
        if self.end_time is not None:
            raise SessionClosedError(f"Session {self.session_id} has already ended")
