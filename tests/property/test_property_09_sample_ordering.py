"""Property-based tests for session sample ordering

Feature: biomirror-emotion-engine, Property 9: Out-of-order samples are rejected without side effects
"""

import pytest
from hypothesis import given, strategies as st

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import EmotionType, RegulationState
from biomirror.models.results import IntegratedEmotionalState
from biomirror.session.metrics import OrderingError
from biomirror.session.therapeutic_session import TherapeuticSession


def _sample(timestamp):
    return IntegratedEmotionalState(
        timestamp=timestamp,
        dominant_emotion=EmotionType.NEUTRAL,
        emotional_intensity=0.0,
        arousal_level=0.3,
        coherence_index=1.0,
        dissociation_index=0.0,
        emotional_regulation=RegulationState.REGULATED,
    )


@given(
    timestamps=st.lists(st.floats(min_value=0.0, max_value=1000.0, allow_nan=False),
                        min_size=1, max_size=30),
)
def test_session_accepts_only_non_decreasing_timestamps(timestamps):
    """
    Property 9: A sample older than its predecessor raises OrderingError and
    leaves the sample log and metrics unchanged.
    """
    session = TherapeuticSession.start(start_time=0.0, configuration=SessionConfiguration())
    accepted = []

    for timestamp in timestamps:
        if accepted and timestamp < accepted[-1]:
            with pytest.raises(OrderingError):
                session.add_emotional_state(_sample(timestamp))
        else:
            session.add_emotional_state(_sample(timestamp))
            accepted.append(timestamp)

    assert [s.timestamp for s in session.emotional_states] == accepted
    assert session.metrics.sample_count == len(accepted)
