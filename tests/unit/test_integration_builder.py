"""Unit tests for IntegratedStateBuilder"""

import pytest

from biomirror.fusion.integration import IntegratedStateBuilder
from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import (
    DataQuality,
    EmotionType,
    PhysiologicalMarkerType,
    RegulationState,
    TrackingQuality,
)
from biomirror.models.frames import BiometricReading
from biomirror.models.results import EmotionalState, PhysiologicalMarker


def _face(timestamp=0.0, emotion=EmotionType.NEUTRAL, intensity=0.0, confidence=0.8,
          quality=TrackingQuality.GOOD, secondary=None):
    return EmotionalState(
        timestamp=timestamp,
        primary_emotion=emotion,
        primary_intensity=intensity,
        secondary_emotions=secondary or {},
        confidence=confidence,
        tracking_quality=quality,
    )


@pytest.fixture
def builder():
    return IntegratedStateBuilder(SessionConfiguration())


class TestArousalAndCoherence:
    """Tests for arousal, coherence and masking"""

    def test_heart_rate_above_resting(self, builder):
        state = builder.build(_face(intensity=0.9), BiometricReading(timestamp=0.0, heart_rate=85.0))

        # (85 - 70) / 30 with no heart-rate history yet
        assert state.arousal_level == pytest.approx(0.5)
        # Agreement of 0.5 at facial confidence 0.8
        assert state.coherence_index == pytest.approx(0.4)
        assert state.emotional_masking_index == pytest.approx(0.5)
        assert state.has_facial and state.has_physiological
        assert state.dominant_emotion is EmotionType.NEUTRAL
        assert state.emotional_regulation is RegulationState.REGULATED

    def test_components_are_renormalized(self, builder):
        reading = BiometricReading(timestamp=0.0, heart_rate=100.0, heart_rate_variability=100.0)
        state = builder.build(_face(), reading)

        assert state.arousal_level == pytest.approx(0.5 / 0.7)

    def test_hrv_excluded_by_configuration(self):
        builder = IntegratedStateBuilder(SessionConfiguration(include_hrv=False))
        reading = BiometricReading(timestamp=0.0, heart_rate=100.0, heart_rate_variability=100.0)

        assert builder.build(_face(), reading).arousal_level == pytest.approx(1.0)

    def test_heart_rate_baseline_tracks_history(self, builder):
        builder.build(_face(0.0), BiometricReading(timestamp=0.0, heart_rate=90.0))
        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, heart_rate=90.0))

        # The baseline is now 90 bpm, so 90 bpm is no longer arousing
        assert state.arousal_level == pytest.approx(0.0)

    def test_matching_face_and_body_are_coherent(self, builder):
        face = _face(emotion=EmotionType.FEAR, intensity=1.0, confidence=1.0)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=100.0))

        assert state.coherence_index == pytest.approx(1.0)
        assert state.emotional_masking_index == pytest.approx(0.0)
        assert not state.is_masked

    def test_coherence_scaled_by_signal_trust(self, builder):
        face = _face(emotion=EmotionType.FEAR, intensity=1.0, confidence=0.5)
        reading = BiometricReading(timestamp=0.0, heart_rate=100.0, quality=0.4)

        state = builder.build(face, reading)

        # Full agreement, but neither signal is trustworthy
        assert state.coherence_index == pytest.approx(0.2)
        assert state.emotional_masking_index == pytest.approx(0.0)

    def test_stale_reading_uses_facial_proxy(self, builder):
        face = _face(timestamp=10.0, emotion=EmotionType.HAPPINESS, intensity=0.9)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=100.0))

        assert state.arousal_level == pytest.approx(0.9)
        assert not state.has_physiological
        assert state.coherence_index == 0.0
        assert state.data_quality is DataQuality.POOR

    def test_empty_reading_is_ignored(self, builder):
        state = builder.build(_face(), BiometricReading(timestamp=0.0))

        assert not state.has_physiological
        assert state.markers == ()

    def test_no_inputs_still_produce_a_sample(self, builder):
        state = builder.build(EmotionalState.no_face(3.0))

        assert state.timestamp == 3.0
        assert state.dominant_emotion is EmotionType.NEUTRAL
        assert state.arousal_level == 0.0
        assert state.dissociation_index == 0.0
        assert not state.has_facial
        assert not state.has_physiological
        assert state.data_quality is DataQuality.INVALID


class TestDissociationIndex:
    """Tests for dissociation evidence"""

    def test_facial_and_marker_evidence(self, builder):
        face = _face(emotion=EmotionType.DISSOCIATION, intensity=0.5)
        reading = BiometricReading(
            timestamp=0.0,
            motion=0.0,
            markers=[PhysiologicalMarker(PhysiologicalMarkerType.GAZE_FREEZING, 1.0, 1.0)],
        )

        state = builder.build(face, reading)

        # 0.4 * 0.5 facial + 0.3 gaze + 0.3 movement freeze
        assert state.dissociation_index == pytest.approx(0.8)
        assert state.dominant_emotion is EmotionType.DISSOCIATION
        assert {m.marker_type for m in state.markers} == {
            PhysiologicalMarkerType.GAZE_FREEZING,
            PhysiologicalMarkerType.MOVEMENT_FREEZE,
        }

    def test_secondary_freeze_counts_as_facial_evidence(self, builder):
        face = _face(emotion=EmotionType.FEAR, intensity=0.9, secondary={EmotionType.FREEZE: 0.5})

        assert builder.build(face).dissociation_index == pytest.approx(0.2)

    def test_index_is_capped(self, builder):
        face = _face(emotion=EmotionType.DISSOCIATION, intensity=1.0)
        reading = BiometricReading(
            timestamp=0.0,
            motion=0.0,
            markers=[PhysiologicalMarker(t, 1.0, 1.0) for t in PhysiologicalMarkerType],
        )

        assert builder.build(face, reading).dissociation_index == 1.0

    def test_heart_rate_decrease_marker(self, builder):
        builder.build(_face(0.0), BiometricReading(timestamp=0.0, heart_rate=80.0))
        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, heart_rate=65.0))

        marker = state.markers[0]
        assert marker.marker_type is PhysiologicalMarkerType.HEART_RATE_DECREASE
        assert marker.intensity == pytest.approx(0.5)
        assert state.dissociation_index == pytest.approx(0.15)

    def test_held_reading_does_not_refill_baseline(self, builder):
        """
        Test that a 1 Hz reading fused at 5 Hz enters the heart-rate baseline
        once, so a sustained drop keeps counting as evidence.
        """
        def fuse_second(second, heart_rate):
            reading = BiometricReading(timestamp=float(second), heart_rate=heart_rate)
            return [builder.build(_face(second + tick * 0.2), reading) for tick in range(5)]

        for second in range(30):
            fuse_second(second, 70.0)

        drops = []
        for second in range(30, 36):
            states = fuse_second(second, 50.0)
            intensities = {
                m.intensity for s in states for m in s.markers
                if m.marker_type is PhysiologicalMarkerType.HEART_RATE_DECREASE
            }
            # Every tick of one reading sees the same baseline
            assert len(intensities) == 1
            drops.append(intensities.pop())

        assert drops[0] == pytest.approx(20.0 / 30.0)
        # After six seconds the baseline holds 25 readings of 70 and 5 of 50
        assert drops[-1] == pytest.approx((70.0 - (25 * 70.0 + 5 * 50.0) / 30) / 30.0)
        assert drops[-1] > 0.5

    def test_reset_forgets_folded_reading(self, builder):
        reading = BiometricReading(timestamp=0.0, heart_rate=80.0)
        builder.build(_face(0.0), reading)
        builder.reset()
        builder.build(_face(0.0), reading)

        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, heart_rate=65.0))
        assert state.markers[0].intensity == pytest.approx(0.5)

    def test_source_marker_takes_precedence(self, builder):
        builder.build(_face(0.0), BiometricReading(timestamp=0.0, heart_rate=80.0))
        reported = PhysiologicalMarker(PhysiologicalMarkerType.HEART_RATE_DECREASE, 0.25, 1.0)
        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, heart_rate=65.0,
                                                           markers=[reported]))

        assert state.markers == (reported,)

    def test_respiration_drop(self, builder):
        builder.build(_face(0.0), BiometricReading(timestamp=0.0, respiration_rate=16.0))
        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, respiration_rate=8.0))

        assert state.markers[0].marker_type is PhysiologicalMarkerType.RESPIRATION_RATE_DECREASE
        assert state.markers[0].intensity == pytest.approx(1.0)

    def test_respiration_excluded_by_configuration(self):
        builder = IntegratedStateBuilder(SessionConfiguration(include_respiration=False))
        builder.build(_face(0.0), BiometricReading(timestamp=0.0, respiration_rate=16.0))
        state = builder.build(_face(0.2), BiometricReading(timestamp=0.2, respiration_rate=8.0))

        assert state.markers == ()

    def test_marker_only_reading(self, builder):
        marker = PhysiologicalMarker(PhysiologicalMarkerType.GAZE_FREEZING, 1.0, 0.5)
        state = builder.build(_face(), BiometricReading(timestamp=0.0, markers=[marker]))

        assert not state.has_physiological
        assert state.dissociation_index == pytest.approx(0.15)


class TestDominantEmotion:
    """Tests for cross-modal emotion reconciliation"""

    def test_confident_face_wins(self, builder):
        face = _face(emotion=EmotionType.SADNESS, intensity=0.8)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=100.0))

        assert state.dominant_emotion is EmotionType.SADNESS

    def test_high_arousal_without_face_reads_as_anger(self, builder):
        face = _face(intensity=0.2, confidence=0.3, quality=TrackingQuality.POOR)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=100.0, quality=0.9))

        assert state.dominant_emotion is EmotionType.ANGER

    def test_high_arousal_with_freeze_reads_as_fear(self, builder):
        face = _face(intensity=0.2, confidence=0.3, quality=TrackingQuality.POOR)
        freeze = PhysiologicalMarker(PhysiologicalMarkerType.MOVEMENT_FREEZE, 0.9, 0.9)
        reading = BiometricReading(timestamp=0.0, heart_rate=100.0, markers=[freeze], quality=0.9)

        assert builder.build(face, reading).dominant_emotion is EmotionType.FEAR

    def test_low_arousal_without_face_reads_as_sadness(self, builder):
        face = _face(intensity=0.2, confidence=0.3, quality=TrackingQuality.POOR)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=70.0, quality=0.9))

        assert state.dominant_emotion is EmotionType.SADNESS

    def test_low_quality_physiology_is_not_trusted(self, builder):
        face = _face(intensity=0.2, confidence=0.3, quality=TrackingQuality.POOR)
        state = builder.build(face, BiometricReading(timestamp=0.0, heart_rate=100.0, quality=0.5))

        assert state.dominant_emotion is EmotionType.NEUTRAL


class TestRegulation:
    """Tests for regulation grading"""

    def test_falling_arousal_is_regulated(self, builder):
        results = [
            builder.build(_face(i * 0.2), BiometricReading(timestamp=i * 0.2, motion=motion))
            for i, motion in enumerate([0.95, 0.9, 0.85])
        ]

        assert [s.emotional_regulation for s in results] == [
            RegulationState.SEVERE_DYSREGULATION,
            RegulationState.REGULATED,
            RegulationState.REGULATED,
        ]

    def test_rising_arousal_is_graded(self, builder):
        results = [
            builder.build(_face(i * 0.2), BiometricReading(timestamp=i * 0.2, motion=motion))
            for i, motion in enumerate([0.62, 0.72, 0.82])
        ]

        assert [s.emotional_regulation for s in results] == [
            RegulationState.MILD_DYSREGULATION,
            RegulationState.MODERATE_DYSREGULATION,
            RegulationState.SEVERE_DYSREGULATION,
        ]


class TestDataQuality:
    """Tests for combined data quality"""

    @pytest.mark.parametrize("face,bio,expected", [
        (TrackingQuality.EXCELLENT, 0.9, DataQuality.EXCELLENT),
        (TrackingQuality.GOOD, 0.95, DataQuality.EXCELLENT),
        (TrackingQuality.GOOD, 0.8, DataQuality.GOOD),
        (TrackingQuality.FAIR, 0.85, DataQuality.GOOD),
        (TrackingQuality.FAIR, 0.6, DataQuality.FAIR),
        (TrackingQuality.FAIR, 0.3, DataQuality.POOR),
        (TrackingQuality.POOR, 0.45, DataQuality.POOR),
        (TrackingQuality.GOOD, 0.1, DataQuality.INVALID),
    ])
    def test_grid(self, face, bio, expected):
        assert IntegratedStateBuilder._data_quality(face, True, bio) is expected

    def test_single_modality_is_poor(self):
        assert IntegratedStateBuilder._data_quality(TrackingQuality.EXCELLENT, False, 0.0) \
            is DataQuality.POOR
        assert IntegratedStateBuilder._data_quality(TrackingQuality.NO_FACE, True, 1.0) \
            is DataQuality.POOR


class TestLifecycle:
    """Tests for caching and reset"""

    def test_latest_result_and_reset(self, builder):
        state = builder.build(_face(), BiometricReading(timestamp=0.0, heart_rate=80.0))
        assert builder.get_latest_result() is state

        builder.reset()
        assert builder.get_latest_result() is None

        # Baseline history is gone, so 80 bpm is measured against resting again
        again = builder.build(_face(), BiometricReading(timestamp=0.0, heart_rate=80.0))
        assert again.arousal_level == pytest.approx(10.0 / 30.0)
