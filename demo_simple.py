#!/usr/bin/env python3
"""Simple demo of the emotion pipeline without Redis.

Plays a synthetic 60 second session through the full pipeline: a calm
opening, a smile, a stretch of numb, frozen presentation with gaze freezing
reported by the wearable, and recovery. Prints one line per second and the
final session metrics.
"""

import asyncio
import json
import random

from biomirror.input.channel_adapter import ChannelAdapter
from biomirror.main import EmotionPipeline
from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import PhysiologicalMarkerType, SamplingFrequency, SessionPhase
from biomirror.models.frames import BiometricReading
from biomirror.models.results import IntegratedEmotionalState, PhysiologicalMarker
from biomirror.models.session import DissociationEpisode
from biomirror.session.therapeutic_session import TherapeuticSession


FPS = 30
DURATION = 60

CALM = {"browInnerUp": 0.05, "mouthSmileLeft": 0.1, "mouthSmileRight": 0.1}
SMILE = {
    "mouthSmileLeft": 0.9, "mouthSmileRight": 0.85,
    "cheekSquintLeft": 0.6, "cheekSquintRight": 0.6,
    "mouthDimpleLeft": 0.3, "mouthDimpleRight": 0.3,
}
NUMB = {
    "eyeBlinkLeft": 0.9, "eyeBlinkRight": 0.9, "jawOpen": 0.7,
    "eyeLookDownLeft": 0.8, "eyeLookDownRight": 0.8,
}


def blend_shapes_at(t):
    """Scripted expression for second ``t`` with a little tracking noise"""
    if 10 <= t < 20:
        base = SMILE
    elif 25 <= t < 45:
        base = NUMB
    else:
        base = CALM
    return {name: min(1.0, max(0.0, value + random.gauss(0, 0.02))) for name, value in base.items()}


def reading_at(t):
    """Scripted wearable reading for second ``t``"""
    if 25 <= t < 45:
        return BiometricReading(
            timestamp=t,
            heart_rate=58.0,
            heart_rate_variability=70.0,
            motion=0.005,
            respiration_rate=9.0,
            markers=(PhysiologicalMarker(PhysiologicalMarkerType.GAZE_FREEZING, 0.8, 0.9),),
            quality=0.9,
        )
    heart_rate = 92.0 if 10 <= t < 20 else 72.0
    return BiometricReading(
        timestamp=t,
        heart_rate=heart_rate + random.gauss(0, 1.5),
        heart_rate_variability=45.0,
        motion=0.15,
        respiration_rate=15.0,
        quality=0.95,
    )


def print_record(record):
    if isinstance(record, IntegratedEmotionalState):
        if abs(record.timestamp - round(record.timestamp)) < 1e-6:
            print(f"  t={record.timestamp:5.1f}s  {record.dominant_emotion.value:<14} "
                  f"arousal={record.arousal_level:.2f}  coherence={record.coherence_index:.2f}  "
                  f"dissociation={record.dissociation_index:.2f}  "
                  f"{record.emotional_regulation.value}")
    elif isinstance(record, DissociationEpisode):
        print(f"  >> dissociation episode {record.start_time:.1f}s-{record.end_time:.1f}s "
              f"(max {record.max_intensity:.2f}, {record.severity})")


async def demo_pipeline():
    """Run the synthetic session through the pipeline."""

    print("=" * 60)
    print("BioMirror Emotion Pipeline Demo")
    print("=" * 60)
    print()

    configuration = SessionConfiguration(sampling_frequency=SamplingFrequency.MEDIUM,
                                         planned_duration=float(DURATION))
    session = TherapeuticSession.start(SessionPhase.AWARENESS, start_time=0.0,
                                       configuration=configuration)
    session.subscribe(print_record)

    pipeline = EmotionPipeline(session=session)
    adapter = ChannelAdapter()

    print(f"✓ Session {session.session_id} started in phase {session.phase.label}")
    print(f"✓ Streaming {DURATION}s of synthetic capture at {FPS} fps")
    print("-" * 60)

    pipeline.start()
    for i in range(DURATION * FPS):
        t = i / FPS
        if i % FPS == 0:
            pipeline.submit_reading(reading_at(t))
        pipeline.submit_frame(adapter.adapt(t, blend_shapes_at(t), confidence=0.85))
        if i % FPS == 0:
            # Let the consumer keep pace with the producer
            await asyncio.sleep(0)

    metrics = await pipeline.stop(end_time=float(DURATION))

    print("-" * 60)
    print(f"✓ Session ended, {pipeline.dropped_frames} frame(s) dropped")
    print("Final session metrics:")
    print(json.dumps(metrics.to_dict(), indent=2))
    print("=" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(demo_pipeline())
    except KeyboardInterrupt:
        print("\nDemo interrupted by user")
