"""Property-based tests for fusion output ranges

Feature: biomirror-emotion-engine, Property 8: Fused indices stay within [0, 1]
"""

from hypothesis import given, strategies as st

from biomirror.fusion.integration import IntegratedStateBuilder
from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import EmotionType, PhysiologicalMarkerType, TrackingQuality
from biomirror.models.frames import BiometricReading
from biomirror.models.results import EmotionalState, PhysiologicalMarker


unit_floats = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)


def optional(low, high):
    return st.none() | st.floats(min_value=low, max_value=high)


@st.composite
def facial_strategy(draw):
    """Generate random tracked or untracked facial states"""
    if draw(st.booleans()):
        return EmotionalState.no_face(0.0)
    return EmotionalState(
        timestamp=0.0,
        primary_emotion=draw(st.sampled_from(list(EmotionType))),
        primary_intensity=draw(unit_floats),
        confidence=draw(st.floats(min_value=0.01, max_value=1.0)),
        tracking_quality=draw(st.sampled_from([
            TrackingQuality.EXCELLENT, TrackingQuality.GOOD, TrackingQuality.FAIR, TrackingQuality.POOR,
        ])),
    )


@st.composite
def reading_strategy(draw):
    """Generate random, possibly partial, biometric readings"""
    return BiometricReading(
        timestamp=0.0,
        heart_rate=draw(optional(30.0, 220.0)),
        heart_rate_variability=draw(optional(0.0, 250.0)),
        motion=draw(optional(0.0, 5.0)),
        respiration_rate=draw(optional(0.0, 40.0)),
        skin_conductance=draw(optional(0.0, 30.0)),
        markers=tuple(draw(st.lists(st.builds(
            PhysiologicalMarker,
            marker_type=st.sampled_from(list(PhysiologicalMarkerType)),
            intensity=unit_floats,
            confidence=unit_floats,
        ), max_size=7))),
        quality=draw(unit_floats),
    )


@given(facial=facial_strategy(), readings=st.lists(st.none() | reading_strategy(), min_size=1, max_size=5))
def test_fused_indices_are_bounded(facial, readings):
    """
    Property 8: Whatever the inputs, arousal, coherence, masking, intensity
    and dissociation index stay within [0, 1]. Coherence is only measured
    with both modalities present and never exceeds what facial confidence
    and reading quality support.
    """
    builder = IntegratedStateBuilder(SessionConfiguration())

    for reading in readings:
        state = builder.build(facial, reading)

        for value in (state.arousal_level, state.coherence_index, state.emotional_masking_index,
                      state.emotional_intensity, state.dissociation_index):
            assert 0.0 <= value <= 1.0
        if not state.is_coherence_measured:
            assert state.coherence_index == 0.0
        else:
            assert state.coherence_index <= facial.confidence * reading.quality + 1e-9
