#!/usr/bin/env python3
"""Check that a BioMirror install can run a session end to end.

Loads the YAML configuration, pushes a few synthetic capture ticks through
the channel adapter, facial inference, fusion and a therapeutic session, and
optionally pings the Redis server the engine streams from.

Usage:
    python scripts/verify_setup.py [--redis]
"""

import argparse
import asyncio
import sys
import traceback


def check_configuration():
    """Load and validate the YAML configuration"""
    from biomirror.config.config_loader import config
    from biomirror.models.configuration import SessionConfiguration

    config.validate()
    configuration = SessionConfiguration.from_config(config)
    tier = configuration.sampling_frequency

    print(f"  ✓ {config.config_path}")
    print(f"    - Tier: {tier.value} ({tier.capture_fps} fps capture, {tier.integration_hz} Hz samples)")
    print(f"    - Dissociation: enter > {configuration.dissociation_entry_threshold}, "
          f"leave < {configuration.dissociation_exit_threshold}, "
          f"{configuration.entry_sustain_samples}/{configuration.exit_sustain_samples} samples")
    return configuration


def check_inference(configuration):
    """Score one smiling capture tick and fuse it with a resting reading"""
    from biomirror.analysis.facial import EmotionalStateBuilder
    from biomirror.fusion.integration import IntegratedStateBuilder
    from biomirror.input.channel_adapter import ChannelAdapter
    from biomirror.models.enums import EmotionType
    from biomirror.models.frames import BiometricReading

    frame = ChannelAdapter().adapt(0.0, {"mouthSmileLeft": 0.9, "mouthSmileRight": 0.9,
                                         "cheekSquintLeft": 0.6, "cheekSquintRight": 0.6})
    facial = EmotionalStateBuilder().build(frame)
    if facial.primary_emotion is not EmotionType.HAPPINESS:
        raise AssertionError(f"expected a smile to score as happiness, got {facial.primary_emotion.value}")
    print(f"  ✓ Facial: {facial.primary_emotion.value} at {facial.primary_intensity:.2f} "
          f"from {len(frame.channels)} channels")

    reading = BiometricReading(timestamp=0.0, heart_rate=88.0, heart_rate_variability=40.0, motion=0.2)
    state = IntegratedStateBuilder(configuration).build(facial, reading)
    print(f"  ✓ Fused: arousal {state.arousal_level:.2f}, coherence {state.coherence_index:.2f}, "
          f"quality {state.data_quality.value}")


def check_session(configuration):
    """Run a short session with one dissociation episode and finalize it"""
    from biomirror.models.enums import EmotionType, RegulationState
    from biomirror.models.results import IntegratedEmotionalState
    from biomirror.models.session import SessionMetrics
    from biomirror.session.therapeutic_session import TherapeuticSession

    session = TherapeuticSession.start(start_time=0.0, session_id="verify-setup",
                                       configuration=configuration)
    interval = configuration.sample_interval
    for i in range(30):
        dissociated = 8 <= i < 20
        session.add_emotional_state(IntegratedEmotionalState(
            timestamp=i * interval,
            dominant_emotion=EmotionType.DISSOCIATION if dissociated else EmotionType.NEUTRAL,
            emotional_intensity=0.7 if dissociated else 0.1,
            arousal_level=0.2,
            coherence_index=0.8,
            dissociation_index=0.8 if dissociated else 0.1,
            emotional_regulation=RegulationState.REGULATED,
        ))
    metrics = session.end_session()

    if len(session.dissociation_episodes) != 1:
        raise AssertionError(f"expected one episode, got {len(session.dissociation_episodes)}")
    if SessionMetrics.from_dict(metrics.to_dict()) != metrics:
        raise AssertionError("session metrics do not survive serialization")
    print(f"  ✓ {metrics.sample_count} samples over {metrics.session_duration:.1f}s, "
          f"{metrics.percentage_time_in_dissociation:.0%} dissociated")
    print(f"    - Regulation capacity {metrics.regulation_capacity:.2f}, "
          f"range index {metrics.emotional_range_index:.2f}")


async def _ping_redis():
    import redis.asyncio as redis
    from biomirror.config.config_loader import config

    url = config.get('redis.url', 'redis://localhost:6379')
    client = redis.from_url(url)
    try:
        await client.ping()
        lengths = {}
        for key in ('redis.frame_stream', 'redis.reading_stream', 'redis.state_stream'):
            stream = config.get(key)
            lengths[stream] = await client.xlen(stream) if await client.exists(stream) else 0
    finally:
        await client.close()
    print(f"  ✓ {url}")
    for stream, length in lengths.items():
        print(f"    - {stream}: {length} entries")


def check_redis():
    """Ping the configured Redis server and report the stream lengths"""
    asyncio.run(_ping_redis())


def main():
    parser = argparse.ArgumentParser(description="Verify a BioMirror install")
    parser.add_argument("--redis", action="store_true", help="also check the Redis streams")
    args = parser.parse_args()

    print("=" * 60)
    print("BioMirror Setup Verification")
    print("=" * 60)

    failures = []
    configuration = None

    print("\nConfiguration")
    try:
        configuration = check_configuration()
    except Exception as e:
        print(f"  ✗ {e}")
        failures.append("configuration")

    if configuration is not None:
        for title, check in (("Inference", check_inference), ("Session", check_session)):
            print(f"\n{title}")
            try:
                check(configuration)
            except Exception as e:
                print(f"  ✗ {e}")
                traceback.print_exc()
                failures.append(title.lower())

    if args.redis:
        print("\nRedis")
        try:
            check_redis()
        except Exception as e:
            print(f"  ✗ {e}")
            failures.append("redis")

    print("\n" + "=" * 60)
    if failures:
        print(f"✗ Failed: {', '.join(failures)}")
        return 1

    print("✓ BioMirror is ready")
    print("  - Offline demo: python demo_simple.py")
    print("  - Engine: redis-server, then biomirror")
    return 0


if __name__ == "__main__":
    sys.exit(main())
