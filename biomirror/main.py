"""Main Application Entry Point

This module wires the inference pipeline to a therapeutic session: frames
from the capture producer are scored off the producer's thread, fused with the
latest biometric reading and delivered to the session in timestamp order.

Behavior:
    - Frames are queued from any thread and consumed by a single task
    - Every frame is scored (micro-expressions need the full cadence); an
      integrated sample is produced at the configured integration rate
    - Out-of-order frames are logged and dropped before scoring
    - Biometric readings replace a "latest reading" slot; no lockstep
    - Stopping ends the session, closing any open dissociation episode
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Any, Awaitable, Callable, List, Optional

from biomirror.analysis.facial import EmotionalStateBuilder
from biomirror.fusion.integration import IntegratedStateBuilder
from biomirror.input.stream_manager import StreamInputManager
from biomirror.models.configuration import SessionConfiguration
from biomirror.models.enums import SessionPhase
from biomirror.models.frames import BiometricReading, SignalFrame
from biomirror.models.results import IntegratedEmotionalState
from biomirror.models.session import SessionMetrics
from biomirror.session.therapeutic_session import TherapeuticSession
from biomirror.config.config_loader import PROJECT_ROOT, config


logger = logging.getLogger(__name__)


Observer = Callable[[Any], None]
Publisher = Callable[[IntegratedEmotionalState], Awaitable[None]]

_STOP = object()


def configure_logging() -> None:
    """Configure root logging to the log file and stdout"""
    log_file = PROJECT_ROOT / config.get('logging.file', 'logs/biomirror.log')
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


class EmotionPipeline:
    """Orders, scores and fuses frames for one therapeutic session.

    Attributes:
        session: Session receiving the integrated samples
        state_builder: Facial inference (scorer and micro-expression detector)
        integrator: Cross-modal fusion
        publisher: Optional coroutine receiving each integrated state
        dropped_frames: Frames dropped for arriving out of order
    """

    def __init__(
        self,
        session: Optional[TherapeuticSession] = None,
        state_builder: Optional[EmotionalStateBuilder] = None,
        integrator: Optional[IntegratedStateBuilder] = None,
        publisher: Optional[Publisher] = None,
    ):
        self.session = session or TherapeuticSession.start(start_time=0.0)
        self.state_builder = state_builder or EmotionalStateBuilder()
        self.integrator = integrator or IntegratedStateBuilder(self.session.configuration)
        self.publisher = publisher

        self.dropped_frames = 0
        self._observers: List[Observer] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._latest_reading: Optional[BiometricReading] = None
        self._last_frame_time: Optional[float] = None
        self._last_sample_time: Optional[float] = None

        logger.info(f"EmotionPipeline initialized for session {self.session.session_id} "
                    f"at {self.session.configuration.sampling_frequency.integration_hz} Hz")

    @property
    def configuration(self) -> SessionConfiguration:
        return self.session.configuration

    @property
    def latest_reading(self) -> Optional[BiometricReading]:
        return self._latest_reading

    def add_observer(self, observer: Observer) -> None:
        """Receive every EmotionalState and IntegratedEmotionalState, in order"""
        self._observers.append(observer)

    def submit_frame(self, frame: SignalFrame) -> None:
        """Queue a frame for processing; safe to call from the capture thread"""
        self._enqueue(frame)

    def submit_reading(self, reading: BiometricReading) -> None:
        """Replace the latest biometric reading unless it is older"""
        latest = self._latest_reading
        if latest is not None and reading.timestamp < latest.timestamp:
            logger.debug(f"Ignoring stale biometric reading at {reading.timestamp:.3f}")
            return
        self._latest_reading = reading

    def process_frame(self, frame: SignalFrame) -> Optional[IntegratedEmotionalState]:
        """Score one frame and, at the integration rate, deliver a fused sample.

        Args:
            frame: Next frame from the capture producer

        Returns:
            The integrated state delivered to the session, or None when the
            frame was dropped or fell between integration ticks
        """
        if self._last_frame_time is not None and frame.timestamp < self._last_frame_time:
            self.dropped_frames += 1
            logger.warning(f"Dropping out-of-order frame at {frame.timestamp:.3f} "
                           f"(last was {self._last_frame_time:.3f})")
            return None
        self._last_frame_time = frame.timestamp

        facial = self.state_builder.build(frame)
        self._notify(facial)

        interval = self.configuration.sample_interval
        # Tolerate capture jitter of a few milliseconds around the tick
        if self._last_sample_time is not None and \
                frame.timestamp - self._last_sample_time < interval - 1e-3:
            return None
        self._last_sample_time = frame.timestamp

        state = self.integrator.build(facial, self._latest_reading)
        self.session.add_emotional_state(state)
        self._notify(state)
        return state

    async def run(self) -> None:
        """Consume queued frames until stopped or cancelled"""
        self._loop = asyncio.get_running_loop()
        logger.info("Frame consumer started")
        while True:
            try:
                item = await self._queue.get()
                if item is _STOP:
                    break
                state = self.process_frame(item)
                if state is not None and self.publisher is not None:
                    await self.publisher(state)
            except asyncio.CancelledError:
                logger.info("Frame consumer cancelled")
                raise
            except Exception as e:
                logger.error(f"Error processing frame: {e}", exc_info=True)
        logger.info("Frame consumer stopped")

    def start(self) -> asyncio.Task:
        """Start the consumer task on the running loop"""
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self.run(), name="frame_consumer")
        return self._task

    async def stop(self, end_time: Optional[float] = None) -> SessionMetrics:
        """Drain queued frames, stop the consumer and end the session.

        Args:
            end_time: Session end; the last sample's timestamp when omitted

        Returns:
            Final session metrics
        """
        if self._task is not None and not self._task.done():
            self._enqueue(_STOP)
            await self._task
        self._task = None
        return self.session.end_session(end_time)

    def _enqueue(self, item: Any) -> None:
        # Frames and the stop marker share one FIFO of loop callbacks
        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        else:
            self._queue.put_nowait(item)

    def _notify(self, record: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(record)
            except Exception as e:
                logger.error(f"Pipeline observer failed on {type(record).__name__}: {e}", exc_info=True)


def setup_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Set the shutdown event on SIGINT/SIGTERM"""
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main_async() -> None:
    """Run a session fed from the Redis input streams until interrupted"""
    config.validate()
    configuration = SessionConfiguration.from_config()
    session = TherapeuticSession.start(SessionPhase.CONNECTION, start_time=0.0,
                                       configuration=configuration)

    pipeline = EmotionPipeline(session=session)
    stream_manager = StreamInputManager(
        frame_sink=pipeline.submit_frame,
        reading_sink=pipeline.submit_reading,
    )
    pipeline.publisher = stream_manager.publish_state

    shutdown_event = asyncio.Event()
    setup_signal_handlers(shutdown_event)

    logger.info("=" * 60)
    logger.info("Starting BioMirror emotion engine")
    logger.info("=" * 60)

    pipeline.start()
    input_task = asyncio.create_task(stream_manager.start(), name="stream_input")

    try:
        await shutdown_event.wait()
    finally:
        input_task.cancel()
        await asyncio.gather(input_task, return_exceptions=True)
        metrics = await pipeline.stop()
        await stream_manager.close()
        logger.info(f"Final session metrics: {json.dumps(metrics.to_dict())}")
        logger.info(f"Dropped {pipeline.dropped_frames} out-of-order frame(s), "
                    f"{stream_manager.decode_errors} malformed payload(s)")


def main():
    """Main entry point."""
    try:
        configure_logging()
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Application terminated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
