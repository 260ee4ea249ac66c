"""
Unit tests for playback sessions.

Tests:
- Event ordering (start, boundaries in order, end)
- Pause/resume keeps the remaining schedule
- Stop silences the session
- Invalid transitions raise PlaybackStateError
- Sink-driven completion
"""

import asyncio
import unittest

from ttsbridge.core.audio import AudioSink, NullAudioSink, PlaybackEvent, PlaybackSession, PlaybackState
from ttsbridge.core.boundaries import BoundaryMark
from ttsbridge.core.errors import PlaybackStateError

# Timer callbacks may run marginally before the requested delay
SLACK_SEC = 0.015


def marks(*specs):
    return [BoundaryMark(text, offset, duration) for text, offset, duration in specs]


class Recorder:
    """Collects events together with the loop time they fired at."""

    def __init__(self, session: PlaybackSession):
        self.loop = asyncio.get_running_loop()
        self.events = []
        session.on("start", lambda: self.events.append(("start", self.loop.time())))
        session.on(PlaybackEvent.BOUNDARY, self.on_boundary)
        session.on("end", lambda: self.events.append(("end", self.loop.time())))

    def on_boundary(self, word, start_sec, end_sec):
        self.events.append(((word, start_sec, end_sec), self.loop.time()))

    @property
    def names(self):
        return [event for event, _ in self.events]

    def time_of(self, name):
        for event, at in self.events:
            if event == name or (isinstance(event, tuple) and event[0] == name):
                return at
        raise KeyError(name)


class BlockingSink(AudioSink):
    """Finishes playing when released."""

    def __init__(self, fail: bool = False):
        self.release = asyncio.Event()
        self.fail = fail
        self.calls = []

    async def play(self, session, audio):
        await self.release.wait()
        if self.fail:
            raise RuntimeError("device unplugged")

    def pause(self):
        self.calls.append("pause")

    def resume(self):
        self.calls.append("resume")

    def stop(self):
        self.calls.append("stop")


class TestEventOrdering(unittest.IsolatedAsyncioTestCase):

    async def test_events_in_order(self):
        session = PlaybackSession(
            marks(("Mock", 0, 50), ("boundary", 50, 50), ("test.", 100, 50)),
            audio=b"\x00" * 64,
            sink=NullAudioSink(),
        )
        recorder = Recorder(session)

        session.start()
        state = await asyncio.wait_for(session.wait(), 2)

        self.assertEqual(state, PlaybackState.ENDED)
        self.assertEqual(recorder.names, [
            "start",
            ("Mock", 0.0, 0.05),
            ("boundary", 0.05, 0.1),
            ("test.", 0.1, 0.15),
            "end",
        ])
        self.assertEqual(session.sink.bytes_consumed, 64)

    async def test_end_waits_for_duration(self):
        session = PlaybackSession(marks(("only", 0, 10)), duration_ms=120)
        recorder = Recorder(session)

        session.start()
        await asyncio.wait_for(session.wait(), 2)

        self.assertGreaterEqual(recorder.time_of("end") - recorder.time_of("start"), 0.12 - SLACK_SEC)

    async def test_no_boundaries(self):
        session = PlaybackSession(duration_ms=0)
        recorder = Recorder(session)

        session.start()
        await asyncio.wait_for(session.wait(), 2)

        self.assertEqual(recorder.names, ["start", "end"])

    async def test_async_and_failing_callbacks(self):
        seen = []

        async def async_listener(word, start_sec, end_sec):
            seen.append(word)

        def broken_listener(word, start_sec, end_sec):
            raise RuntimeError("listener bug")

        session = PlaybackSession(marks(("hi", 0, 10), ("there", 10, 10)))
        session.on("boundary", broken_listener)
        session.on("boundary", async_listener)

        with self.assertLogs("ttsbridge.errors", level="WARNING"):
            session.start()
            state = await asyncio.wait_for(session.wait(), 2)
            await asyncio.sleep(0)

        self.assertEqual(state, PlaybackState.ENDED)
        self.assertEqual(seen, ["hi", "there"])

    async def test_async_listener_failure_is_logged(self):
        async def failing_listener(word, start_sec, end_sec):
            raise RuntimeError("boom")

        session = PlaybackSession(marks(("hi", 0, 10)))
        session.on("boundary", failing_listener)

        with self.assertLogs("ttsbridge.errors", level="WARNING") as logs:
            session.start()
            await asyncio.wait_for(session.wait(), 2)
            await asyncio.sleep(0.01)

        self.assertTrue(any("boom" in line for line in logs.output))
        self.assertEqual(session._listener_tasks, set())

    async def test_stop_cancels_pending_async_listeners(self):
        release = asyncio.Event()

        async def slow_listener():
            await release.wait()

        session = PlaybackSession(marks(("a", 0, 500)))
        session.on("start", slow_listener)

        session.start()
        await asyncio.sleep(0)
        pending = list(session._listener_tasks)
        session.stop()
        await asyncio.sleep(0.01)

        self.assertEqual(len(pending), 1)
        self.assertTrue(pending[0].cancelled())
        self.assertEqual(session._listener_tasks, set())

    async def test_unknown_event(self):
        session = PlaybackSession()
        with self.assertRaises(ValueError):
            session.on("word", print)

    async def test_off(self):
        session = PlaybackSession()
        callback = lambda: None  # noqa: E731
        session.on("start", callback)

        self.assertTrue(session.off("start", callback))
        self.assertFalse(session.off("start", callback))


class TestPauseResume(unittest.IsolatedAsyncioTestCase):

    async def test_remaining_marks_shift_by_pause(self):
        session = PlaybackSession(
            marks(("one", 0, 100), ("two", 100, 200), ("three", 300, 100)),
            sink=NullAudioSink(),
        )
        recorder = Recorder(session)
        loop = asyncio.get_running_loop()

        session.start()
        await asyncio.sleep(0.15)
        session.pause()
        paused_at = session.elapsed_ms

        self.assertEqual(session.state, PlaybackState.PAUSED)
        self.assertEqual(session.cursor, 2)
        count_at_pause = len(recorder.events)

        await asyncio.sleep(0.2)
        self.assertEqual(len(recorder.events), count_at_pause)
        self.assertEqual(session.elapsed_ms, paused_at)

        resumed_at = loop.time()
        session.resume()
        state = await asyncio.wait_for(session.wait(), 2)

        self.assertEqual(state, PlaybackState.ENDED)
        self.assertEqual([e[0] if isinstance(e, tuple) else e for e in recorder.names],
                         ["start", "one", "two", "three", "end"])
        remaining_sec = (300 - paused_at) / 1000.0
        self.assertGreaterEqual(recorder.time_of("three") - resumed_at, remaining_sec - SLACK_SEC)

    async def test_sink_follows_transitions(self):
        sink = BlockingSink()
        session = PlaybackSession(marks(("a", 0, 10)), sink=sink)

        session.start()
        await asyncio.sleep(0.02)
        session.pause()
        session.resume()
        session.stop()

        self.assertEqual(sink.calls, ["pause", "resume", "stop"])

    async def test_completion_while_paused_ends_on_resume(self):
        sink = BlockingSink()
        session = PlaybackSession(marks(("a", 0, 10)), sink=sink)
        recorder = Recorder(session)

        session.start()
        await asyncio.sleep(0.03)
        session.pause()
        sink.release.set()
        await asyncio.sleep(0.02)

        self.assertTrue(session.audio_complete)
        self.assertEqual(session.state, PlaybackState.PAUSED)

        session.resume()
        self.assertEqual(session.state, PlaybackState.ENDED)
        self.assertEqual(recorder.names[-1], "end")


class TestStop(unittest.IsolatedAsyncioTestCase):

    async def test_no_events_after_stop(self):
        session = PlaybackSession(
            marks(("one", 0, 50), ("two", 100, 50), ("three", 200, 50)),
            audio=b"\x00" * 10,
            sink=NullAudioSink(),
        )
        recorder = Recorder(session)

        session.start()
        await asyncio.sleep(0.05)
        self.assertTrue(session.stop())
        count_at_stop = len(recorder.events)

        await asyncio.sleep(0.4)

        self.assertEqual(len(recorder.events), count_at_stop)
        self.assertNotIn("end", recorder.names)
        self.assertEqual(session.state, PlaybackState.STOPPED)
        self.assertEqual(await session.wait(), PlaybackState.STOPPED)

    async def test_stop_while_paused(self):
        session = PlaybackSession(marks(("one", 0, 50), ("two", 100, 50)))
        session.start()
        session.pause()

        self.assertTrue(session.stop())
        self.assertEqual(session.state, PlaybackState.STOPPED)

    async def test_stop_cancels_sink(self):
        sink = BlockingSink()
        session = PlaybackSession(sink=sink)

        session.start()
        await asyncio.sleep(0)
        session.stop()
        await asyncio.sleep(0.01)

        self.assertTrue(session._sink_task.cancelled())

    async def test_stop_after_end_is_noop(self):
        session = PlaybackSession(duration_ms=0)
        session.start()
        await asyncio.wait_for(session.wait(), 2)

        self.assertFalse(session.stop())
        self.assertEqual(session.state, PlaybackState.ENDED)


class TestTransitions(unittest.IsolatedAsyncioTestCase):

    async def test_invalid_transitions(self):
        session = PlaybackSession(marks(("a", 0, 500)))

        with self.assertRaises(PlaybackStateError):
            session.pause()
        with self.assertRaises(PlaybackStateError):
            session.resume()

        session.start()
        with self.assertRaises(PlaybackStateError) as ctx:
            session.start()
        self.assertEqual(ctx.exception.current_state, PlaybackState.PLAYING)

        with self.assertRaises(PlaybackStateError):
            session.resume()

        session.stop()
        with self.assertRaises(PlaybackStateError):
            session.pause()
        with self.assertRaises(PlaybackStateError):
            session.start()

    async def test_listeners_cleared_when_finished(self):
        session = PlaybackSession(duration_ms=0)
        Recorder(session)

        session.start()
        await asyncio.wait_for(session.wait(), 2)

        for event in PlaybackEvent:
            self.assertEqual(session._listeners[event], [])


class TestSinkCompletion(unittest.IsolatedAsyncioTestCase):

    async def test_reporting_sink_decides_end(self):
        sink = BlockingSink()
        session = PlaybackSession(marks(("quick", 0, 10)), duration_ms=10, sink=sink)

        session.start()
        await asyncio.sleep(0.1)
        # Marks are done and the nominal duration passed, but the audio is still playing
        self.assertEqual(session.state, PlaybackState.PLAYING)

        sink.release.set()
        self.assertEqual(await asyncio.wait_for(session.wait(), 2), PlaybackState.ENDED)

    async def test_sink_failure_counts_as_completion(self):
        sink = BlockingSink(fail=True)
        session = PlaybackSession(sink=sink)

        with self.assertLogs("ttsbridge.errors", level="ERROR"):
            session.start()
            sink.release.set()
            state = await asyncio.wait_for(session.wait(), 2)

        self.assertEqual(state, PlaybackState.ENDED)

    async def test_external_completion_signal(self):
        session = PlaybackSession(duration_ms=5000)
        recorder = Recorder(session)

        session.start()
        session.notify_audio_complete()

        self.assertEqual(session.state, PlaybackState.ENDED)
        self.assertEqual(recorder.names, ["start", "end"])

        session.notify_audio_complete()
        self.assertEqual(await session.wait(), PlaybackState.ENDED)

    async def test_completion_grace(self):
        session = PlaybackSession(duration_ms=20, completion_grace_ms=100)
        recorder = Recorder(session)

        session.start()
        await asyncio.wait_for(session.wait(), 2)

        self.assertGreaterEqual(recorder.time_of("end") - recorder.time_of("start"), 0.12 - SLACK_SEC)


if __name__ == "__main__":
    unittest.main()
