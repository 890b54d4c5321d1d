"""Unit tests for data models"""

import pytest

from biomirror.models import (
    BiometricReading,
    DissociationEpisode,
    EmotionalState,
    EmotionType,
    FacialActionUnit,
    IntegratedEmotionalState,
    Intervention,
    InterventionLevel,
    InterventionType,
    MicroExpression,
    PhysiologicalMarker,
    PhysiologicalMarkerType,
    RegulationState,
    SamplingFrequency,
    SessionConfiguration,
    SessionMetrics,
    SessionMode,
    SessionPhase,
    SignalFrame,
    TrackingQuality,
)


class TestSignalFrame:
    """Tests for SignalFrame model"""

    def test_create_valid_frame(self):
        frame = SignalFrame(timestamp=1.5, channels={"jaw_open": 0.4})

        assert frame.timestamp == 1.5
        assert frame.value("jaw_open") == 0.4
        assert frame.value("mouth_smile_left") == 0.0
        assert frame.has_face

    def test_channels_are_detached_from_caller(self):
        channels = {"jaw_open": 0.4}
        frame = SignalFrame(timestamp=0.0, channels=channels)
        channels["jaw_open"] = 0.9

        assert frame.value("jaw_open") == 0.4

    def test_frame_validation(self):
        with pytest.raises(AssertionError):
            SignalFrame(timestamp=-1.0, channels={})

        with pytest.raises(AssertionError):
            SignalFrame(timestamp=0.0, channels={"jaw_open": 1.5})

    def test_no_face_frame(self):
        frame = SignalFrame.no_face(3.0)

        assert not frame.has_face
        assert frame.tracking_quality is TrackingQuality.NO_FACE
        assert frame.channels == {}


class TestBiometricReading:
    """Tests for BiometricReading model"""

    def test_empty_reading(self):
        assert BiometricReading(timestamp=0.0).is_empty
        assert not BiometricReading(timestamp=0.0, heart_rate=72.0).is_empty

    def test_marker_only_reading_is_not_empty(self):
        marker = PhysiologicalMarker(PhysiologicalMarkerType.GAZE_FREEZING, 0.5, 0.5)
        assert not BiometricReading(timestamp=0.0, markers=[marker]).is_empty

    def test_quality_validation(self):
        with pytest.raises(AssertionError):
            BiometricReading(timestamp=0.0, quality=1.2)


class TestEmotionalState:
    """Tests for EmotionalState invariants"""

    def test_secondary_cannot_repeat_primary(self):
        with pytest.raises(AssertionError):
            EmotionalState(
                timestamp=0.0,
                primary_emotion=EmotionType.FEAR,
                primary_intensity=0.7,
                secondary_emotions={EmotionType.FEAR: 0.5},
            )

    def test_zero_confidence_requires_no_face(self):
        with pytest.raises(AssertionError):
            EmotionalState(
                timestamp=0.0,
                primary_emotion=EmotionType.NEUTRAL,
                primary_intensity=0.0,
                confidence=0.0,
                tracking_quality=TrackingQuality.GOOD,
            )

    def test_no_face_requires_zero_intensity(self):
        with pytest.raises(AssertionError):
            EmotionalState(
                timestamp=0.0,
                primary_emotion=EmotionType.NEUTRAL,
                primary_intensity=0.4,
                confidence=0.0,
                tracking_quality=TrackingQuality.NO_FACE,
            )

    def test_no_face_factory(self):
        state = EmotionalState.no_face(2.0)

        assert state.confidence == 0.0
        assert state.primary_intensity == 0.0
        assert state.micro_expressions == ()
        assert not state.has_face

    def test_intensity_of(self):
        state = EmotionalState(
            timestamp=0.0,
            primary_emotion=EmotionType.FEAR,
            primary_intensity=0.7,
            secondary_emotions={EmotionType.SURPRISE: 0.5},
        )

        assert state.intensity_of(EmotionType.FEAR) == 0.7
        assert state.intensity_of(EmotionType.SURPRISE) == 0.5
        assert state.intensity_of(EmotionType.ANGER) == 0.0

    def test_roundtrip_with_micro_expressions(self):
        micro = MicroExpression(
            timestamp=1.0,
            duration=0.1,
            emotion=EmotionType.HAPPINESS,
            intensity=0.8,
            action_units=(FacialActionUnit(12, "Lip Corner Puller", 0.8),),
        )
        state = EmotionalState(
            timestamp=1.0,
            primary_emotion=EmotionType.HAPPINESS,
            primary_intensity=0.8,
            secondary_emotions={EmotionType.PRIDE: 0.4},
            micro_expressions=(micro,),
            confidence=0.8,
        )

        assert EmotionalState.from_dict(state.to_dict()) == state


class TestMicroExpression:
    """Tests for MicroExpression model"""

    def test_duration_bounds(self):
        unit = FacialActionUnit(5, "Upper Lid Raiser", 0.6)
        with pytest.raises(AssertionError):
            MicroExpression(1.0, 0.5, EmotionType.FEAR, 0.6, (unit,))
        with pytest.raises(AssertionError):
            MicroExpression(1.0, 0.01, EmotionType.FEAR, 0.6, (unit,))

    def test_requires_action_unit(self):
        with pytest.raises(AssertionError):
            MicroExpression(1.0, 0.1, EmotionType.FEAR, 0.6, ())


class TestIntegratedEmotionalState:
    """Tests for IntegratedEmotionalState model"""

    def test_range_validation(self):
        with pytest.raises(AssertionError):
            IntegratedEmotionalState(
                timestamp=0.0,
                dominant_emotion=EmotionType.NEUTRAL,
                emotional_intensity=0.0,
                arousal_level=1.2,
                coherence_index=0.5,
                dissociation_index=0.0,
                emotional_regulation=RegulationState.REGULATED,
            )

    def test_derived_flags(self, make_state):
        state = make_state(0.0, dissociation_index=0.7, emotional_masking_index=0.65,
                           has_physiological=False)

        assert state.is_dissociated
        assert state.is_masked
        assert state.is_regulated
        assert not state.is_coherence_measured

    def test_roundtrip(self, make_state):
        marker = PhysiologicalMarker(PhysiologicalMarkerType.MOVEMENT_FREEZE, 0.9, 0.8)
        state = make_state(4.2, dissociation_index=0.65, markers=(marker,))

        assert IntegratedEmotionalState.from_dict(state.to_dict()) == state


class TestDissociationEpisode:
    """Tests for DissociationEpisode model"""

    def test_open_episode(self):
        episode = DissociationEpisode(start_time=10.0, end_time=None,
                                      max_intensity=0.8, average_intensity=0.7)

        assert episode.is_open
        assert episode.duration == 0.0

    def test_duration_and_severity(self):
        mild = DissociationEpisode(0.0, 10.0, 0.7, 0.65)
        moderate = DissociationEpisode(0.0, 45.0, 0.7, 0.65)
        severe = DissociationEpisode(0.0, 10.0, 0.95, 0.7)

        assert mild.duration == 10.0
        assert mild.severity == "mild"
        assert moderate.severity == "moderate"
        assert severe.severity == "severe"

    def test_average_cannot_exceed_max(self):
        with pytest.raises(AssertionError):
            DissociationEpisode(0.0, 1.0, 0.6, 0.7)

    def test_end_before_start(self):
        with pytest.raises(AssertionError):
            DissociationEpisode(5.0, 4.0, 0.7, 0.7)

    def test_roundtrip(self):
        episode = DissociationEpisode(
            start_time=8.0,
            end_time=12.2,
            max_intensity=0.9,
            average_intensity=0.75,
            markers=(PhysiologicalMarker(PhysiologicalMarkerType.HEART_RATE_DECREASE, 0.4, 0.9),),
        )

        restored = DissociationEpisode.from_dict(episode.to_dict())
        assert restored == episode
        assert restored.markers[0].marker_type is PhysiologicalMarkerType.HEART_RATE_DECREASE


class TestIntervention:
    """Tests for Intervention model"""

    def test_roundtrip(self):
        intervention = Intervention(
            timestamp=30.0,
            response_type=InterventionType.GROUNDING,
            level=InterventionLevel.SIGNIFICANT,
            target_emotion=EmotionType.DISSOCIATION,
            duration=20.0,
        )

        assert Intervention.from_dict(intervention.to_dict()) == intervention

    def test_roundtrip_without_target(self):
        intervention = Intervention(timestamp=1.0, response_type=InterventionType.MIRRORING)
        data = intervention.to_dict()

        assert data["target_emotion"] is None
        assert Intervention.from_dict(data) == intervention


class TestSessionMetrics:
    """Tests for SessionMetrics model"""

    def test_defaults(self):
        metrics = SessionMetrics()

        assert metrics.session_duration == 0.0
        assert metrics.emotions_expressed == frozenset()
        assert metrics.regulation_recovery_time is None
        assert not metrics.is_final

    def test_emotions_serialized_in_canonical_order(self):
        metrics = SessionMetrics(
            emotions_expressed=frozenset({EmotionType.PRIDE, EmotionType.HAPPINESS, EmotionType.FEAR}),
            emotional_range_index=3 / 15,
        )

        assert metrics.to_dict()["emotions_expressed"] == ["happiness", "fear", "pride"]

    def test_roundtrip(self):
        metrics = SessionMetrics(
            session_duration=20.0,
            interventions_delivered=2,
            average_coherence_index=0.75,
            emotional_masking_instances=1,
            emotions_expressed=frozenset({EmotionType.SADNESS}),
            emotional_range_index=1 / 15,
            dissociation_episodes=1,
            total_dissociation_time=4.2,
            percentage_time_in_dissociation=0.21,
            peak_arousal=0.9,
            time_of_peak_arousal=4.0,
            regulation_recovery_time=2.0,
            phase_progress=0.5,
            overall_progress=0.1,
            regulated_ratio=0.8,
            regulation_capacity=0.65,
            regulation_improvement=-0.25,
            sample_count=100,
            is_final=True,
        )

        assert SessionMetrics.from_dict(metrics.to_dict()) == metrics

    def test_regulation_bounds(self):
        with pytest.raises(AssertionError):
            SessionMetrics(regulation_capacity=1.2)
        with pytest.raises(AssertionError):
            SessionMetrics(regulation_improvement=-1.5)


class TestEnums:
    """Tests for enum helpers"""

    def test_canonical_order(self):
        assert EmotionType.NEUTRAL.canonical_index == 0
        assert EmotionType.HAPPINESS.canonical_index < EmotionType.SADNESS.canonical_index
        assert EmotionType.PRIDE.canonical_index == len(EmotionType) - 1

    def test_phase_order(self):
        assert SessionPhase.CONNECTION.next_phase is SessionPhase.AWARENESS
        assert SessionPhase.TRANSFER.next_phase is None
        assert SessionPhase.CONNECTION.previous_phase is None
        assert SessionPhase.REGULATION.previous_phase is SessionPhase.INTEGRATION
        assert SessionPhase.AWARENESS.label == "Emotional Awareness"

    def test_sampling_tiers(self):
        assert SamplingFrequency.LOW.capture_fps == 10
        assert SamplingFrequency.HIGH.capture_fps == 60
        assert SamplingFrequency.MEDIUM.integration_hz == 5.0
        assert SamplingFrequency.MEDIUM.sample_interval == pytest.approx(0.2)
        assert SamplingFrequency.LOW.sample_interval == 1.0


class TestSessionConfiguration:
    """Tests for SessionConfiguration model"""

    def test_defaults(self):
        configuration = SessionConfiguration()

        assert configuration.sampling_frequency is SamplingFrequency.MEDIUM
        assert configuration.mode is SessionMode.STANDARD
        assert configuration.dissociation_entry_threshold == 0.6
        assert configuration.dissociation_exit_threshold == 0.5
        assert configuration.sample_interval == pytest.approx(0.2)

    def test_threshold_validation(self):
        with pytest.raises(AssertionError):
            SessionConfiguration(dissociation_entry_threshold=0.4, dissociation_exit_threshold=0.5)
        with pytest.raises(AssertionError):
            SessionConfiguration(entry_sustain_samples=0)

    def test_with_changes(self):
        configuration = SessionConfiguration().with_changes(sampling_frequency=SamplingFrequency.HIGH)

        assert configuration.sampling_frequency is SamplingFrequency.HIGH
        assert configuration.sample_interval == pytest.approx(0.1)

    def test_roundtrip(self):
        configuration = SessionConfiguration(
            sampling_frequency=SamplingFrequency.LOW,
            mode=SessionMode.LOW_POWER,
            include_eda=False,
        )

        assert SessionConfiguration.from_dict(configuration.to_dict()) == configuration
