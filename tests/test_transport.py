import asyncio

import pytest

from songwriting.services.transport import ClickRequest, Transport, beat_position


class ManualHandle:
    def __init__(self, scheduler, due, callback):
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for an event loop's call_later."""

    def __init__(self):
        self.now = 0.0
        self.pending: list[ManualHandle] = []

    def call_later(self, delay, callback):
        handle = ManualHandle(self, self.now + delay, callback)
        self.pending.append(handle)
        return handle

    @property
    def active(self):
        return [handle for handle in self.pending if not handle.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = sorted((h for h in self.active if h.due <= target + 1e-9), key=lambda h: h.due)
            if not due:
                break
            handle = due[0]
            self.pending.remove(handle)
            self.now = handle.due
            handle.callback()
        self.now = target


def test_beat_position_tracks_bar_and_downbeat():
    position = beat_position(9, 4)

    assert (position.bar_index, position.beat_in_bar, position.is_downbeat) == (2, 1, False)
    assert beat_position(8, 4).is_downbeat


def test_nine_beats_at_120_bpm_in_four_four():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    beats: list[int] = []

    transport.start(120, 4, beats.append)
    scheduler.advance(4.0)

    assert beats == list(range(9))
    positions = [beat_position(count, 4) for count in beats]
    assert [p.bar_index for p in positions] == [0, 0, 0, 0, 1, 1, 1, 1, 2]
    assert [p.beat_in_bar for p in positions] == [0, 1, 2, 3, 0, 1, 2, 3, 0]


def test_first_beat_is_emitted_synchronously():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    beats: list[int] = []

    transport.start(90, 3, beats.append)

    assert beats == [0]
    assert transport.is_running
    assert transport.beat_duration == pytest.approx(60 / 90)


def test_tempo_is_clamped():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)

    transport.start(500, 4, lambda _beat: None)
    assert transport.state.tempo == 200
    transport.start(10, 4, lambda _beat: None)
    assert transport.state.tempo == 60


def test_stop_fires_complete_then_sentinel_and_cancels_timer():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    events: list[object] = []

    transport.start(120, 4, events.append, lambda: events.append("complete"))
    scheduler.advance(1.0)
    transport.stop()
    scheduler.advance(5.0)

    assert events == [0, 1, 2, "complete", -1]
    assert scheduler.active == []
    assert transport.state.elapsed_beat_count == -1
    assert not transport.is_running


def test_restart_completes_previous_run_before_new_first_beat():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    events: list[str] = []

    transport.start(120, 4, lambda b: events.append(f"first:{b}"), lambda: events.append("first:complete"))
    transport.start(120, 4, lambda b: events.append(f"second:{b}"), lambda: events.append("second:complete"))

    assert events == ["first:0", "first:complete", "first:-1", "second:0"]
    assert len(scheduler.active) == 1

    scheduler.advance(0.5)
    assert events[-1] == "second:1"


def test_stop_inside_beat_callback_prevents_further_beats():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    beats: list[int] = []

    def on_beat(count):
        beats.append(count)
        if count == 2:
            transport.stop()

    transport.start(120, 4, on_beat)
    scheduler.advance(10.0)

    assert beats == [0, 1, 2, -1]


def test_stale_tick_is_ignored():
    scheduler = ManualScheduler()
    transport = Transport(scheduler=scheduler)
    beats: list[int] = []
    transport.start(120, 4, beats.append)
    stale = scheduler.active[0]

    transport.stop()
    stale.callback()

    assert beats == [0, -1]


def test_stop_when_stopped_is_a_no_op():
    transport = Transport(scheduler=ManualScheduler())

    transport.stop()

    assert transport.state.elapsed_beat_count == -1


def test_click_requests_accent_downbeats():
    scheduler = ManualScheduler()
    clicks: list[ClickRequest] = []
    transport = Transport(scheduler=scheduler, click=clicks.append)

    transport.start(120, 3, lambda _beat: None)
    scheduler.advance(1.5)

    assert [c.accent for c in clicks] == [True, False, False, True]
    assert [c.frequency_hz for c in clicks] == [800, 600, 600, 800]
    assert all(c.duration_s == 0.1 for c in clicks)


def test_failing_click_sink_does_not_stop_beats(caplog):
    scheduler = ManualScheduler()
    beats: list[int] = []

    def broken_click(_request):
        raise RuntimeError("audio device gone")

    transport = Transport(scheduler=scheduler, click=broken_click)
    transport.start(120, 4, beats.append)
    scheduler.advance(1.0)

    assert beats == [0, 1, 2]
    assert any(getattr(record, "event", "") == "click_failed" for record in caplog.records)


def test_default_scheduler_is_the_running_event_loop():
    async def scenario():
        transport = Transport()
        beats: list[int] = []
        transport.start(200, 4, beats.append)
        await asyncio.sleep(0.35)
        transport.stop()
        return beats

    beats = asyncio.run(scenario())

    assert beats[0] == 0
    assert beats[-1] == -1
    assert len(beats) >= 3
