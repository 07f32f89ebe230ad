from gbahw.quad_channel import QuadChannel


class _Event:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback


class FakeScheduler:
    def __init__(self):
        self.pending = []

    def add(self, delay, callback):
        event = _Event(delay, callback)
        self.pending.append(event)
        return event

    def cancel(self, event):
        self.pending.remove(event)

    def fire(self):
        event = self.pending.pop(0)
        event.callback()
        return event.delay


def _triggered(duty=0, frequency_low=0, frequency_high=0):
    scheduler = FakeScheduler()
    channel = QuadChannel(scheduler)
    channel.write(2, duty << 6)
    channel.write(3, 0xF0)
    channel.write(4, frequency_low)
    channel.write(5, 0x80 | frequency_high)
    return scheduler, channel


def test_sweep_register_round_trip():
    channel = QuadChannel(FakeScheduler())
    channel.write(0, 0x7F)
    assert channel.read(0) == 0x7F


def test_duty_register_reads_only_duty():
    channel = QuadChannel(FakeScheduler())
    channel.write(2, 0xC5)
    assert channel.read(2) == 0xC5 & 0xC0
    assert channel.length.length == 64 - 5


def test_envelope_register_round_trip():
    channel = QuadChannel(FakeScheduler())
    channel.write(3, 0xF8)
    assert channel.read(3) == 0xF8


def test_length_enable_bit_reads_back():
    channel = QuadChannel(FakeScheduler())
    channel.write(5, 0x40)
    assert channel.read(5) == 0x40
    assert channel.read(4) == 0


def test_trigger_enables_and_schedules():
    scheduler, channel = _triggered()
    assert channel.is_enabled() is True
    assert len(scheduler.pending) == 1


def test_trigger_without_dac_is_ignored():
    scheduler = FakeScheduler()
    channel = QuadChannel(scheduler)
    channel.write(5, 0x80)
    assert channel.is_enabled() is False
    assert scheduler.pending == []


def test_higher_frequency_means_shorter_interval():
    low_sched, _ = _triggered(frequency_low=0x00, frequency_high=0)
    high_sched, _ = _triggered(frequency_low=0xFF, frequency_high=7)
    assert high_sched.pending[0].delay < low_sched.pending[0].delay


def test_highest_frequency_interval():
    scheduler, _ = _triggered(frequency_low=0xFF, frequency_high=7)
    assert scheduler.pending[0].delay == 16


def test_retrigger_does_not_duplicate_events():
    scheduler, channel = _triggered()
    channel.write(5, 0x80)
    assert len(scheduler.pending) == 1


def _samples(duty, count=8):
    scheduler, channel = _triggered(duty=duty)
    result = []
    for _ in range(count):
        scheduler.fire()
        result.append(channel.get_sample())
    return result


def test_duty_patterns():
    for duty, highs in ((0, 1), (1, 2), (2, 4), (3, 6)):
        samples = _samples(duty)
        positives = [s for s in samples if s > 0]
        assert len(positives) == highs
        assert max(samples) == -min(samples)


def test_output_scales_with_envelope_volume():
    samples = _samples(2)
    assert samples[0] == 8 * 15


def test_dac_off_disables_channel():
    scheduler, channel = _triggered()
    channel.write(3, 0x00)
    assert channel.is_enabled() is False
    scheduler.fire()
    assert channel.get_sample() == 0
    assert scheduler.pending == []


def test_reset_clears_state():
    scheduler, channel = _triggered(duty=3)
    channel.reset()
    assert channel.is_enabled() is False
    assert channel.read(2) == 0
    assert channel.get_sample() == 0