"""
Playback sessions that emit ordered word-timing events.

A PlaybackSession walks a boundary sequence against the event loop clock and
fires `start`, `boundary(word, start_sec, end_sec)` and `end` events whether
or not the engine produced live events itself:

    IDLE -> STARTING -> PLAYING <-> PAUSED -> (STOPPED | ENDED)

Boundary timers are loop.call_later handles, one pending at a time. Pausing
cancels them and freezes the elapsed clock; resuming re-anchors the clock and
continues from the cursor. Stopping cancels everything, after which no event
fires.

The session does not produce sound. An AudioSink can be attached to play the
audio; when the sink's play() returns (or it calls notify_audio_complete())
the audio counts as finished. Without a reporting sink the session's own
duration timer marks completion.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Set, Union

from ttsbridge.core.boundaries import BoundaryMark, total_duration_ms
from ttsbridge.core.errors import ErrorCategory, ErrorSeverity, PlaybackStateError, error_handler

logger = logging.getLogger("ttsbridge.playback")

AudioPayload = Union[bytes, AsyncIterator[bytes], None]


class PlaybackState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    ENDED = "ended"

    @property
    def is_terminal(self) -> bool:
        return self in (PlaybackState.STOPPED, PlaybackState.ENDED)


class PlaybackEvent(Enum):
    START = "start"
    BOUNDARY = "boundary"
    END = "end"


class AudioSink(ABC):
    """
    Destination for synthesized audio.

    play() runs as a task owned by the session. If `reports_completion` is
    True, the audio is considered finished when play() returns.
    """

    reports_completion = True

    @abstractmethod
    async def play(self, session: "PlaybackSession", audio: AudioPayload):
        pass

    def pause(self):
        pass

    def resume(self):
        pass

    def stop(self):
        pass


class NullAudioSink(AudioSink):
    """Consumes the audio without producing sound; the session clock decides completion."""

    reports_completion = False

    def __init__(self):
        self.bytes_consumed = 0

    async def play(self, session: "PlaybackSession", audio: AudioPayload):
        if audio is None:
            return
        if isinstance(audio, (bytes, bytearray)):
            self.bytes_consumed += len(audio)
            return
        async for chunk in audio:
            self.bytes_consumed += len(chunk)


class PlaybackSession:
    """One playback of one synthesis result. Not reusable once terminal."""

    def __init__(
        self,
        boundaries: Sequence[BoundaryMark] = (),
        audio: AudioPayload = None,
        duration_ms: Optional[float] = None,
        sink: Optional[AudioSink] = None,
        completion_grace_ms: float = 0,
    ):
        self.boundaries: List[BoundaryMark] = list(boundaries)
        self.audio = audio
        self.duration_ms = duration_ms if duration_ms is not None else total_duration_ms(self.boundaries)
        self.sink = sink
        self.completion_grace_ms = max(0.0, completion_grace_ms)

        self.state = PlaybackState.IDLE
        self.cursor = 0

        self._listeners: Dict[PlaybackEvent, List[Callable]] = {event: [] for event in PlaybackEvent}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._anchor = 0.0
        self._elapsed_before_anchor = 0.0
        self._boundary_timer: Optional[asyncio.TimerHandle] = None
        self._clock_timer: Optional[asyncio.TimerHandle] = None
        self._sink_task: Optional[asyncio.Task] = None
        self._listener_tasks: Set[asyncio.Task] = set()
        self._audio_complete = False
        self._done: Optional[asyncio.Future] = None

    @classmethod
    def from_result(cls, result, sink: Optional[AudioSink] = None, completion_grace_ms: float = 0) -> "PlaybackSession":
        """Session for a SynthesisResult (bytes or stream)."""
        audio = result.audio_bytes if result.audio_bytes is not None else result.audio_stream
        return cls(result.boundaries, audio, result.duration_ms, sink, completion_grace_ms)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, event: Union[PlaybackEvent, str], callback: Callable):
        """Register a callback. Boundary callbacks receive (word, start_sec, end_sec)."""
        listeners = self._listeners_for(event)
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event: Union[PlaybackEvent, str], callback: Callable) -> bool:
        listeners = self._listeners_for(event)
        if callback in listeners:
            listeners.remove(callback)
            return True
        return False

    def _listeners_for(self, event: Union[PlaybackEvent, str]) -> List[Callable]:
        try:
            return self._listeners[PlaybackEvent(event)]
        except ValueError:
            raise ValueError(f"Unknown playback event: {event!r}") from None

    def _emit(self, event: PlaybackEvent, *args):
        for callback in list(self._listeners[event]):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    task.add_done_callback(
                        lambda t, e=event, c=callback: self._on_listener_done(t, e, c)
                    )
                    self._listener_tasks.add(task)
            except Exception as e:
                self._log_listener_error(e, event, callback)

    def _on_listener_done(self, task: asyncio.Task, event: PlaybackEvent, callback: Callable):
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log_listener_error(error, event, callback)

    def _log_listener_error(self, error: Exception, event: PlaybackEvent, callback: Callable):
        error_handler.log_error(
            error,
            context={"event": event.value, "callback": getattr(callback, "__name__", repr(callback))},
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.PLAYBACK
        )

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    @property
    def elapsed_ms(self) -> float:
        elapsed = self._elapsed_before_anchor
        if self.state == PlaybackState.PLAYING and self._loop is not None:
            elapsed += self._loop.time() - self._anchor
        return elapsed * 1000.0

    @property
    def audio_complete(self) -> bool:
        return self._audio_complete

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self):
        """IDLE -> STARTING -> PLAYING. Must be called from a running event loop."""
        if self.state != PlaybackState.IDLE:
            raise PlaybackStateError(self.state, "start")

        self._loop = asyncio.get_running_loop()
        self.state = PlaybackState.STARTING
        logger.debug(f"Starting playback: {len(self.boundaries)} marks, {self.duration_ms:.0f}ms")

        if self.sink is not None:
            self._sink_task = self._loop.create_task(self.sink.play(self, self.audio))
            self._sink_task.add_done_callback(self._on_sink_done)

        self._anchor = self._loop.time()
        self.state = PlaybackState.PLAYING
        self._emit(PlaybackEvent.START)
        self._schedule()

    def pause(self):
        """PLAYING -> PAUSED."""
        if self.state != PlaybackState.PLAYING:
            raise PlaybackStateError(self.state, "pause")

        self._cancel_timers()
        self._elapsed_before_anchor += self._loop.time() - self._anchor
        self.state = PlaybackState.PAUSED
        if self.sink is not None:
            self.sink.pause()
        logger.debug(f"Paused at {self.elapsed_ms:.0f}ms (cursor {self.cursor}/{len(self.boundaries)})")

    def resume(self):
        """PAUSED -> PLAYING, continuing from the cursor."""
        if self.state != PlaybackState.PAUSED:
            raise PlaybackStateError(self.state, "resume")

        self._anchor = self._loop.time()
        self.state = PlaybackState.PLAYING
        if self.sink is not None:
            self.sink.resume()
        self._schedule()
        # Audio may have reported completion while paused
        self._maybe_end()

    def stop(self) -> bool:
        """
        Any non-terminal state -> STOPPED. No event fires afterwards.

        Returns False (and does nothing) if the session already finished.
        """
        if self.state.is_terminal:
            return False

        if self.state == PlaybackState.PLAYING:
            self._elapsed_before_anchor += self._loop.time() - self._anchor
        self._cancel_timers()
        if self.sink is not None:
            self.sink.stop()
        if self._sink_task is not None and not self._sink_task.done():
            self._sink_task.cancel()
        for task in list(self._listener_tasks):
            task.cancel()
        self._finish(PlaybackState.STOPPED)
        return True

    def notify_audio_complete(self):
        """Signal that the audio itself has finished playing."""
        if self.state.is_terminal or self._audio_complete:
            return
        self._audio_complete = True
        if self._clock_timer is not None:
            self._clock_timer.cancel()
            self._clock_timer = None
        self._maybe_end()

    async def wait(self) -> PlaybackState:
        """Wait for a terminal state and return it."""
        return await asyncio.shield(self._terminal_future())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _uses_own_clock(self) -> bool:
        return self.sink is None or not self.sink.reports_completion

    def _schedule(self):
        elapsed = self.elapsed_ms
        if self.cursor < len(self.boundaries):
            delay = max(0.0, self.boundaries[self.cursor].offset_ms - elapsed) / 1000.0
            self._boundary_timer = self._loop.call_later(delay, self._emit_next)

        if self._uses_own_clock() and not self._audio_complete:
            delay = max(0.0, self.duration_ms + self.completion_grace_ms - elapsed) / 1000.0
            self._clock_timer = self._loop.call_later(delay, self.notify_audio_complete)

    def _emit_next(self):
        self._boundary_timer = None
        if self.state != PlaybackState.PLAYING:
            return

        mark = self.boundaries[self.cursor]
        self.cursor += 1
        self._emit(PlaybackEvent.BOUNDARY, mark.text, mark.start_sec, mark.end_sec)

        # A callback may have paused or stopped the session
        if self.state != PlaybackState.PLAYING:
            return
        if self.cursor < len(self.boundaries):
            delay = max(0.0, self.boundaries[self.cursor].offset_ms - self.elapsed_ms) / 1000.0
            self._boundary_timer = self._loop.call_later(delay, self._emit_next)
        else:
            self._maybe_end()

    def _maybe_end(self):
        if (
            self.state == PlaybackState.PLAYING
            and self._audio_complete
            and self.cursor >= len(self.boundaries)
        ):
            self._emit(PlaybackEvent.END)
            self._cancel_timers()
            self._finish(PlaybackState.ENDED)

    def _on_sink_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            error_handler.log_error(
                error,
                context={"sink": type(self.sink).__name__},
                severity=ErrorSeverity.MEDIUM,
                category=ErrorCategory.PLAYBACK
            )
        if self.sink.reports_completion or error is not None:
            self.notify_audio_complete()

    def _cancel_timers(self):
        for timer in (self._boundary_timer, self._clock_timer):
            if timer is not None:
                timer.cancel()
        self._boundary_timer = None
        self._clock_timer = None

    def _finish(self, state: PlaybackState):
        self.state = state
        for listeners in self._listeners.values():
            listeners.clear()
        if self._done is not None and not self._done.done():
            self._done.set_result(state)
        logger.debug(f"Playback {state.value} after {self.elapsed_ms:.0f}ms")

    def _terminal_future(self) -> asyncio.Future:
        if self._done is None:
            self._done = asyncio.get_running_loop().create_future()
            if self.state.is_terminal:
                self._done.set_result(self.state)
        return self._done

    def __repr__(self) -> str:
        return f"<PlaybackSession state={self.state.value} cursor={self.cursor}/{len(self.boundaries)}>"
