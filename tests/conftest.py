"""Pytest configuration and fixtures"""

import pytest
from hypothesis import settings, Verbosity

from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import EmotionType, RegulationState, SamplingFrequency
from biomirror.models.results import IntegratedEmotionalState

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=20, verbosity=Verbosity.normal)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)

# Use CI profile by default
settings.load_profile("ci")


def integrated_state(
    timestamp: float,
    dissociation_index: float = 0.0,
    arousal_level: float = 0.3,
    dominant_emotion: EmotionType = EmotionType.NEUTRAL,
    emotional_intensity: float = 0.0,
    coherence_index: float = 1.0,
    emotional_masking_index: float = 0.0,
    regulation: RegulationState = RegulationState.REGULATED,
    has_facial: bool = True,
    has_physiological: bool = True,
    markers=(),
) -> IntegratedEmotionalState:
    """Integrated sample with neutral defaults for aggregation tests"""
    return IntegratedEmotionalState(
        timestamp=timestamp,
        dominant_emotion=dominant_emotion,
        emotional_intensity=emotional_intensity,
        arousal_level=arousal_level,
        coherence_index=coherence_index,
        dissociation_index=dissociation_index,
        emotional_regulation=regulation,
        emotional_masking_index=emotional_masking_index,
        has_facial=has_facial,
        has_physiological=has_physiological,
        markers=markers,
    )


@pytest.fixture
def make_state():
    return integrated_state


@pytest.fixture
def medium_config():
    """5 Hz integration, default thresholds"""
    return SessionConfiguration(sampling_frequency=SamplingFrequency.MEDIUM)


@pytest.fixture
def low_config():
    """1 Hz integration, default thresholds"""
    return SessionConfiguration(sampling_frequency=SamplingFrequency.LOW)
