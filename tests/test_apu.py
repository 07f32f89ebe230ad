from collections import deque

import pytest

from gbahw.apu import CYCLES_PER_STEP, Apu, render_stream
from gbahw.dma import DmaOccasion
from gbahw.mp2k import Mp2k


class FakeScheduler:
    def __init__(self):
        self.time = 0
        self.events = []

    def now(self):
        return self.time

    def add(self, cycles, callback, *args):
        event = [self.time + cycles, cycles, callback]
        self.events.append(event)
        return event

    def cancel(self, event):
        if event in self.events:
            self.events.remove(event)

    def delays_for(self, callback):
        return [delay for _, delay, cb in self.events if cb == callback]


class FakeDma:
    def __init__(self):
        self.requests = []

    def request(self, occasion):
        self.requests.append(occasion)


class FakeSink:
    def __init__(self):
        self.rates = []
        self.samples = []

    def set_sample_rate(self, rate):
        self.rates.append(rate)

    def write(self, left, right):
        self.samples.append((left, right))


class FakeMp2k:
    def __init__(self, sample):
        self.sample = sample
        self.resets = 0

    def reset(self):
        self.resets += 1

    def is_engaged(self):
        return True

    def read_sample(self):
        return self.sample


@pytest.fixture
def parts():
    scheduler = FakeScheduler()
    dma = FakeDma()
    sink = FakeSink()
    apu = Apu(scheduler, dma, Mp2k(None), sink)
    apu.reset()
    return apu, scheduler, dma, sink


def test_reset_schedules_events_and_sets_rate(parts):
    apu, scheduler, _, sink = parts
    assert sink.rates == [32768]
    assert scheduler.delays_for(apu.step_mixer) == [512]
    assert scheduler.delays_for(apu.step_sequencer) == [CYCLES_PER_STEP]


def test_mixer_silent_when_master_disabled(parts):
    apu, _, _, sink = parts
    apu.bias.write_half(0x3FF)
    apu.step_mixer()
    assert sink.samples == [(0.0, 0.0)]


def test_mixer_default_bias_is_silent(parts):
    apu, _, _, sink = parts
    apu.soundcnt.write(4, 0x80)
    apu.step_mixer()
    assert sink.samples == [(0.0, 0.0)]


def test_fifo_sample_reaches_enabled_side_only(parts):
    apu, _, _, sink = parts
    apu.soundcnt.write(4, 0x80)
    apu.soundcnt.write(2, 0x04)  # FIFO A full volume
    apu.soundcnt.write(3, 0x01)  # FIFO A right side, timer 0
    apu.fifo[0].write_word(0x80)
    apu.on_timer_overflow(0, 1)
    assert apu.latch[0] == -128
    apu.step_mixer()
    left, right = sink.samples[-1]
    assert left == 0.0
    assert right == -1.0


def test_mixer_output_clamped(parts):
    apu, _, _, sink = parts
    apu.soundcnt.write(4, 0x80)
    apu.soundcnt.write(2, 0x04)
    apu.soundcnt.write(3, 0x03)
    apu.bias.write_half(0x3FE)
    apu.fifo[0].write_word(0x7F)
    apu.on_timer_overflow(0, 1)
    apu.step_mixer()
    left, right = sink.samples[-1]
    assert left == right
    assert 0.0 < left < 1.0


def test_pipe_delivers_bytes_in_order(parts):
    apu, _, _, _ = parts
    apu.soundcnt.write(4, 0x80)
    apu.fifo[0].write_word(0x04030201)
    seen = []
    for _ in range(4):
        apu.on_timer_overflow(0, 1)
        seen.append(apu.latch[0])
    assert seen == [1, 2, 3, 4]
    assert len(apu.fifo[0]) == 0


def test_timer_overflow_requests_dma_when_low(parts):
    apu, _, dma, _ = parts
    apu.soundcnt.write(4, 0x80)
    apu.soundcnt.write(3, 0x40)  # FIFO B on timer 1
    apu.on_timer_overflow(0, 1)
    assert dma.requests == [DmaOccasion.FIFO0]
    apu.on_timer_overflow(1, 1)
    assert dma.requests == [DmaOccasion.FIFO0, DmaOccasion.FIFO1]


def test_timer_overflow_ignored_when_master_disabled(parts):
    apu, _, dma, _ = parts
    apu.fifo[0].write_word(0x11)
    apu.on_timer_overflow(0, 1)
    assert dma.requests == []
    assert len(apu.fifo[0]) == 1


def test_mixer_reschedules_aligned_to_interval(parts):
    apu, scheduler, _, _ = parts
    scheduler.events.clear()
    scheduler.time = 100
    apu.step_mixer()
    (delay,) = scheduler.delays_for(apu.step_mixer)
    assert 0 < delay <= 512
    assert (scheduler.time + delay) % 512 == 0


def test_resolution_change_updates_rate(parts):
    apu, scheduler, _, sink = parts
    apu.bias.write(1, 0x42)
    scheduler.events.clear()
    apu.step_mixer()
    assert sink.rates[-1] == apu.bias.sample_rate()
    assert scheduler.delays_for(apu.step_mixer) == [apu.bias.sample_interval()]


def test_mp2k_path_mixes_driver_output():
    scheduler = FakeScheduler()
    sink = FakeSink()
    mp2k = FakeMp2k((0.5, -0.25))
    apu = Apu(scheduler, FakeDma(), mp2k, sink)
    apu.reset()
    assert mp2k.resets == 1
    apu.soundcnt.write(4, 0x80)
    apu.soundcnt.write(2, 0x04)  # FIFO A factor 4 * 0.25 == 1
    apu.soundcnt.write(3, 0x03)
    scheduler.events.clear()
    scheduler.time = 300
    apu.step_mixer()
    assert sink.rates[-1] == 65536
    assert sink.samples[-1] == (0.5, 0.5)
    (delay,) = scheduler.delays_for(apu.step_mixer)
    assert (scheduler.time + delay) % 256 == 0


def test_mp2k_path_silent_without_master():
    sink = FakeSink()
    apu = Apu(FakeScheduler(), FakeDma(), FakeMp2k((0.5, 0.5)), sink)
    apu.reset()
    apu.soundcnt.write(3, 0x33)
    apu.step_mixer()
    assert sink.samples[-1] == (0.0, 0.0)


def test_sequencer_reschedules(parts):
    apu, scheduler, _, _ = parts
    scheduler.events.clear()
    apu.step_sequencer()
    assert scheduler.delays_for(apu.step_sequencer) == [CYCLES_PER_STEP]


def test_render_stream_consumes_when_enough():
    buffer = deque([(0.0, 0.0)] * 5)
    stream = render_stream(buffer, 3, 100)
    assert stream == [0] * 6
    assert len(buffer) == 2


def test_render_stream_repeats_when_short():
    buffer = deque([(0.5, 0.0), (0.0, 0.0)])
    stream = render_stream(buffer, 5, 100)
    assert len(buffer) == 2
    lefts = stream[0::2]
    assert lefts[0] == lefts[2] == lefts[4]
    assert lefts[1] == lefts[3] == 0


def test_render_stream_rounds_half_away_from_zero():
    stream = render_stream(deque([(0.5, -0.5)]), 1, 100)
    assert stream == [16384, -16384]


def test_render_stream_clamps_amplitude_and_volume():
    loud = render_stream(deque([(2.0, -2.0)]), 1, 150)
    edge = render_stream(deque([(0.999, -0.999)]), 1, 100)
    assert loud == edge
    assert loud[0] == -loud[1]


def test_render_stream_zero_volume_is_silent():
    assert render_stream(deque([(0.7, -0.3)]), 1, 0) == [0, 0]


def test_render_stream_empty_buffer_is_silent():
    assert render_stream(deque(), 4, 100) == [0] * 8