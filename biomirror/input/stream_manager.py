"""Stream Input Manager for signal frame and biometric reading ingestion

Consumes JSON payloads from Redis Streams, decodes them into SignalFrame and
BiometricReading records and hands them to the pipeline. Integrated states
are published back to an output stream for UI, persistence and sync
collaborators.

Malformed payloads are reported with PayloadDecodeError, logged, counted and
dropped so a partial record never enters the ordered sequence.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

import redis.asyncio as redis

from biomirror.models.enums import TrackingQuality
from biomirror.models.frames import BiometricReading, SignalFrame
from biomirror.models.results import IntegratedEmotionalState, PhysiologicalMarker
from biomirror.config.config_loader import config


logger = logging.getLogger(__name__)


Payload = Union[bytes, str, Mapping[Any, Any]]

PAYLOAD_FIELD = 'payload'


class PayloadDecodeError(ValueError):
    """Exception raised for a malformed transport payload"""
    pass


def _load_json(payload: Payload) -> Dict[str, Any]:
    """Extract the JSON object carried by a stream entry or raw payload"""
    if isinstance(payload, Mapping):
        raw = payload.get(PAYLOAD_FIELD, payload.get(PAYLOAD_FIELD.encode()))
        if raw is None:
            raise PayloadDecodeError(f"Stream entry has no '{PAYLOAD_FIELD}' field")
        payload = raw
    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError as e:
            raise PayloadDecodeError(f"Payload is not UTF-8: {e}") from e
    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as e:
        raise PayloadDecodeError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadDecodeError(f"Payload must be a JSON object, got {type(data).__name__}")
    return data


def _optional_float(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    return None if value is None else float(value)


def decode_signal_frame(payload: Payload) -> SignalFrame:
    """Decode a signal frame payload.

    Expected object: ``{"timestamp": float, "channels": {name: float},
    "tracking_quality": "good"}``. A missing quality means ``good``.

    Raises:
        PayloadDecodeError: If the payload is malformed or out of range
    """
    data = _load_json(payload)
    try:
        channels = data.get("channels") or {}
        if not isinstance(channels, dict):
            raise TypeError("channels must be an object")
        return SignalFrame(
            timestamp=float(data["timestamp"]),
            channels={str(name): float(value) for name, value in channels.items()},
            tracking_quality=TrackingQuality(data.get("tracking_quality", TrackingQuality.GOOD.value)),
        )
    except (KeyError, TypeError, ValueError, AssertionError) as e:
        raise PayloadDecodeError(f"Invalid signal frame: {e}") from e


def decode_biometric_reading(payload: Payload) -> BiometricReading:
    """Decode a biometric reading payload.

    Raises:
        PayloadDecodeError: If the payload is malformed or out of range
    """
    data = _load_json(payload)
    try:
        return BiometricReading(
            timestamp=float(data["timestamp"]),
            heart_rate=_optional_float(data, "heart_rate"),
            heart_rate_variability=_optional_float(data, "heart_rate_variability"),
            motion=_optional_float(data, "motion"),
            respiration_rate=_optional_float(data, "respiration_rate"),
            skin_conductance=_optional_float(data, "skin_conductance"),
            markers=tuple(PhysiologicalMarker.from_dict(m) for m in data.get("markers") or []),
            quality=float(data.get("quality", 1.0)),
        )
    except (KeyError, TypeError, ValueError, AssertionError) as e:
        raise PayloadDecodeError(f"Invalid biometric reading: {e}") from e


def encode_integrated_state(state: IntegratedEmotionalState) -> Dict[str, str]:
    """Stream entry fields for an integrated state"""
    return {PAYLOAD_FIELD: json.dumps(state.to_dict())}


class StreamInputManager:
    """Reads frames and readings from Redis Streams and publishes states.

    Attributes:
        frame_sink: Called with each decoded SignalFrame
        reading_sink: Called with each decoded BiometricReading
        redis_client: Async Redis client
        decode_errors: Number of malformed payloads dropped
        is_streaming: True while the consume loop runs
    """

    def __init__(
        self,
        frame_sink: Callable[[SignalFrame], None],
        reading_sink: Callable[[BiometricReading], None],
        redis_client: Optional[redis.Redis] = None,
    ):
        self.frame_sink = frame_sink
        self.reading_sink = reading_sink
        self.redis_client = redis_client

        self.redis_url = config.get('redis.url', 'redis://localhost:6379')
        self.frame_stream = config.get('redis.frame_stream', 'signal_frames')
        self.reading_stream = config.get('redis.reading_stream', 'biometric_readings')
        self.state_stream = config.get('redis.state_stream', 'integrated_states')
        self.buffer_size = config.get('redis.buffer_size', 1000)

        self.decode_errors = 0
        self.is_streaming = False
        self._last_ids = {self.frame_stream: '0-0', self.reading_stream: '0-0'}

    async def connect(self) -> None:
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.redis_url)
            logger.info(f"Connected to Redis at {self.redis_url}")

    def handle_entry(self, stream: str, data: Payload) -> None:
        """Decode one stream entry and dispatch it; malformed entries are dropped"""
        try:
            if stream == self.frame_stream:
                self.frame_sink(decode_signal_frame(data))
            elif stream == self.reading_stream:
                self.reading_sink(decode_biometric_reading(data))
            else:
                logger.debug(f"Ignoring entry from unexpected stream {stream}")
        except PayloadDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"Dropped malformed payload from {stream}: {e}")

    async def start(self) -> None:
        """Consume both input streams until cancelled"""
        await self.connect()
        self.is_streaming = True
        logger.info(f"Starting to consume from streams: {self.frame_stream}, {self.reading_stream}")

        try:
            while True:
                try:
                    messages = await self.redis_client.xread(
                        dict(self._last_ids),
                        block=100,  # 100ms timeout
                        count=50
                    )

                    for stream_name, message_list in messages or []:
                        stream = stream_name.decode() if isinstance(stream_name, bytes) else stream_name
                        for message_id, data in message_list:
                            self.handle_entry(stream, data)
                            self._last_ids[stream] = message_id

                except asyncio.CancelledError:
                    logger.info("Stream input task cancelled")
                    break
                except Exception as e:
                    logger.error(f"Error reading input streams: {e}", exc_info=True)
                    await asyncio.sleep(0.1)  # Back off on error
        finally:
            self.is_streaming = False

    async def publish_state(self, state: IntegratedEmotionalState) -> None:
        """Publish an integrated state to the output stream"""
        if self.redis_client is None:
            return
        try:
            await self.redis_client.xadd(
                self.state_stream,
                encode_integrated_state(state),
                maxlen=self.buffer_size
            )
            logger.debug(f"Published integrated state at {state.timestamp:.2f}s")
        except Exception as e:
            logger.error(f"Failed to publish integrated state: {e}")

    async def close(self) -> None:
        """Close the Redis connection"""
        self.is_streaming = False
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None
            logger.info("Redis connection closed")
