from gbahw.noise_channel import NoiseChannel


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


class FakeBias:
    def __init__(self, interval):
        self.interval = interval

    def sample_interval(self):
        return self.interval


def _triggered(mixer_interval=1, control=0x08):
    scheduler = FakeScheduler()
    channel = NoiseChannel(scheduler, FakeBias(mixer_interval))
    channel.write(1, 0xF0)
    channel.write(4, control)
    channel.write(5, 0x80)
    return scheduler, channel


def test_envelope_register_round_trip():
    channel = NoiseChannel(FakeScheduler(), FakeBias(1))
    channel.write(1, 0xF5)
    assert channel.read(1) == 0xF5


def test_frequency_register_round_trip():
    channel = NoiseChannel(FakeScheduler(), FakeBias(1))
    channel.write(4, 0xFF)
    assert channel.read(4) == 0xFF


def test_length_register():
    channel = NoiseChannel(FakeScheduler(), FakeBias(1))
    channel.write(0, 0x3F)
    channel.write(5, 0x40)
    assert channel.length.length == 64 - 0x3F
    assert channel.read(5) == 0x40


def test_trigger_enables_and_schedules():
    scheduler, channel = _triggered()
    assert channel.is_enabled() is True
    assert len(scheduler.pending) == 1


def test_dac_off_disables():
    scheduler, channel = _triggered()
    channel.write(1, 0x00)
    assert channel.is_enabled() is False
    scheduler.fire()
    assert channel.get_sample() == 0
    assert scheduler.pending == []


def test_seven_bit_lfsr_is_periodic():
    scheduler, channel = _triggered(control=0x08)
    samples = []
    for _ in range(254):
        scheduler.fire()
        samples.append(channel.get_sample())
    assert samples[:127] == samples[127:]
    assert len(set(samples)) == 2
    assert max(samples) == -min(samples)


def test_sample_amplitude_follows_envelope():
    scheduler, channel = _triggered()
    scheduler.fire()
    assert abs(channel.get_sample()) == 8 * channel.envelope.current_volume


def test_fast_noise_is_resampled_to_mixer_rate():
    scheduler, channel = _triggered(mixer_interval=512, control=0x00)
    scheduler.fire()
    assert scheduler.pending[0].delay == 512


def test_slow_noise_keeps_its_own_rate():
    scheduler, _ = _triggered(mixer_interval=1, control=0x00)
    first = scheduler.fire()
    second = scheduler.fire()
    assert first == second
    assert first > 1


def test_trigger_without_dac_is_ignored():
    scheduler = FakeScheduler()
    channel = NoiseChannel(scheduler, FakeBias(1))
    channel.write(5, 0x80)
    assert channel.is_enabled() is False
    assert scheduler.pending == []


def test_reset_clears_registers():
    _, channel = _triggered(control=0xFF)
    channel.reset()
    assert channel.read(4) == 0
    assert channel.is_enabled() is False
    assert channel.get_sample() == 0