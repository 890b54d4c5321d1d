"""Dissociation Detector

Debounced two-threshold state machine that opens and closes
DissociationEpisode records from the stream of integrated samples.

    NONE -> ENTERING -> ACTIVE -> EXITING -> NONE

An episode opens only after the index stays above the entry threshold for
``entry_sustain_samples`` samples, and closes only after it stays below the
lower exit threshold for ``exit_sustain_samples`` samples. A short dip that
recovers while EXITING is folded back into the episode.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import PhysiologicalMarkerType
from biomirror.models.results import IntegratedEmotionalState, PhysiologicalMarker
from biomirror.models.session import DissociationEpisode


logger = logging.getLogger(__name__)


class DissociationPhase(Enum):
    NONE = "none"
    ENTERING = "entering"
    ACTIVE = "active"
    EXITING = "exiting"


class DissociationDetector:
    """Opens and closes dissociation episodes.

    Attributes:
        entry_threshold: Index above which evidence counts toward opening
        exit_threshold: Index below which evidence counts toward closing
        entry_sustain_samples: Consecutive samples above entry needed to open
        exit_sustain_samples: Consecutive samples below exit needed to close
        phase: Current state machine phase
    """

    def __init__(
        self,
        entry_threshold: float = 0.6,
        exit_threshold: float = 0.5,
        entry_sustain_samples: int = 4,
        exit_sustain_samples: int = 4,
    ):
        if not 0.0 <= exit_threshold <= entry_threshold <= 1.0:
            raise ValueError(f"Invalid thresholds: exit={exit_threshold}, entry={entry_threshold}")
        if entry_sustain_samples < 1 or exit_sustain_samples < 1:
            raise ValueError("Sustain windows must be at least one sample")

        self.entry_threshold = entry_threshold
        self.exit_threshold = exit_threshold
        self.entry_sustain_samples = entry_sustain_samples
        self.exit_sustain_samples = exit_sustain_samples

        self.phase = DissociationPhase.NONE
        self._start_time: Optional[float] = None
        self._exit_time: Optional[float] = None
        self._indices: List[float] = []
        self._pending: List[IntegratedEmotionalState] = []
        self._markers: Dict[PhysiologicalMarkerType, PhysiologicalMarker] = {}
        self._count = 0

    @classmethod
    def from_configuration(cls, configuration: SessionConfiguration) -> "DissociationDetector":
        return cls(
            entry_threshold=configuration.dissociation_entry_threshold,
            exit_threshold=configuration.dissociation_exit_threshold,
            entry_sustain_samples=configuration.entry_sustain_samples,
            exit_sustain_samples=configuration.exit_sustain_samples,
        )

    @property
    def is_open(self) -> bool:
        return self.phase in (DissociationPhase.ACTIVE, DissociationPhase.EXITING)

    def update(self, state: IntegratedEmotionalState) -> Optional[DissociationEpisode]:
        """Advance the state machine by one sample.

        Args:
            state: Next integrated sample in timestamp order

        Returns:
            The episode closed by this sample, or None
        """
        index = state.dissociation_index

        if self.phase is DissociationPhase.NONE:
            if index > self.entry_threshold:
                self._begin(state)
                self._count = 1
                self.phase = DissociationPhase.ENTERING
                self._confirm_if_sustained(state.timestamp)

        elif self.phase is DissociationPhase.ENTERING:
            if index > self.entry_threshold:
                self._absorb(state)
                self._count += 1
                self._confirm_if_sustained(state.timestamp)
            else:
                logger.debug(f"Dissociation evidence dropped at {state.timestamp:.3f} "
                             f"before the entry window was sustained")
                self._clear()

        elif self.phase is DissociationPhase.ACTIVE:
            if index >= self.exit_threshold:
                self._absorb(state)
            else:
                self.phase = DissociationPhase.EXITING
                self._exit_time = state.timestamp
                self._pending = [state]
                self._count = 1
                if self._count >= self.exit_sustain_samples:
                    return self._finish(self._exit_time)

        elif self.phase is DissociationPhase.EXITING:
            if index >= self.exit_threshold:
                # Evidence came back: the dip belongs to the episode
                for pending in self._pending:
                    self._absorb(pending)
                self._absorb(state)
                self._pending = []
                self._exit_time = None
                self.phase = DissociationPhase.ACTIVE
            else:
                self._pending.append(state)
                self._count += 1
                if self._count >= self.exit_sustain_samples:
                    return self._finish(self._exit_time)

        return None

    def close(self, timestamp: float) -> Optional[DissociationEpisode]:
        """Force-close an open episode at session end.

        An unconfirmed ENTERING phase is discarded. An EXITING episode ends at
        its first sub-threshold sample; an ACTIVE one ends at ``timestamp``.

        Args:
            timestamp: Last available timestamp of the session

        Returns:
            The closed episode, or None when nothing was open
        """
        if self.phase is DissociationPhase.ACTIVE:
            return self._finish(max(timestamp, self._start_time))
        if self.phase is DissociationPhase.EXITING:
            return self._finish(self._exit_time)
        self._clear()
        return None

    def current_episode(self) -> Optional[DissociationEpisode]:
        """Snapshot of the open episode (end_time None), if any"""
        if not self.is_open:
            return None
        return self._episode(end_time=None)

    def reset(self) -> None:
        self._clear()

    def _begin(self, state: IntegratedEmotionalState) -> None:
        self._start_time = state.timestamp
        self._indices = []
        self._markers = {}
        self._absorb(state)

    def _absorb(self, state: IntegratedEmotionalState) -> None:
        self._indices.append(state.dissociation_index)
        for marker in state.markers:
            known = self._markers.get(marker.marker_type)
            if known is None or marker.evidence > known.evidence:
                self._markers[marker.marker_type] = marker

    def _confirm_if_sustained(self, timestamp: float) -> None:
        if self._count >= self.entry_sustain_samples:
            self.phase = DissociationPhase.ACTIVE
            logger.info(f"Dissociation episode opened at {self._start_time:.3f} "
                        f"(confirmed at {timestamp:.3f})")

    def _episode(self, end_time: Optional[float]) -> DissociationEpisode:
        max_intensity = float(np.max(self._indices))
        average = min(float(np.mean(self._indices)), max_intensity)
        return DissociationEpisode(
            start_time=self._start_time,
            end_time=end_time,
            max_intensity=max_intensity,
            average_intensity=average,
            markers=tuple(self._markers.values()),
        )

    def _finish(self, end_time: float) -> DissociationEpisode:
        episode = self._episode(end_time=end_time)
        logger.info(f"Dissociation episode closed: {episode.start_time:.3f}-{end_time:.3f} "
                    f"({episode.duration:.1f}s, max={episode.max_intensity:.2f}, {episode.severity})")
        self._clear()
        return episode

    def _clear(self) -> None:
        self.phase = DissociationPhase.NONE
        self._start_time = None
        self._exit_time = None
        self._indices = []
        self._pending = []
        self._markers = {}
        self._count = 0
