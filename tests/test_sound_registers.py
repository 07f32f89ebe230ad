import pytest

from gbahw.fifo import Fifo
from gbahw.noise_channel import NoiseChannel
from gbahw.quad_channel import QuadChannel
from gbahw.sound_registers import Bias, Side, SoundControl
from gbahw.wave_channel import WaveChannel


class FakeScheduler:
    def __init__(self):
        self.added = []

    def add(self, cycles, callback, priority=0):
        event = (cycles, callback)
        self.added.append(event)
        return event

    def cancel(self, event):
        pass


@pytest.fixture
def parts():
    scheduler = FakeScheduler()
    bias = Bias()
    fifos = [Fifo(), Fifo()]
    psg1 = QuadChannel(scheduler)
    psg2 = QuadChannel(scheduler)
    psg3 = WaveChannel(scheduler)
    psg4 = NoiseChannel(scheduler, bias)
    soundcnt = SoundControl(fifos, psg1, psg2, psg3, psg4)
    return soundcnt, fifos, psg1, psg3


def test_bias_reset_values():
    bias = Bias()
    bias.write_half(0xFFFF)
    bias.reset()
    assert bias.level == 0x200
    assert bias.resolution == 0
    assert bias.read_half() == 0x200


def test_bias_low_bit_of_level_is_ignored():
    bias = Bias()
    bias.write(0, 0x55)
    assert bias.read(0) == 0x54


def test_bias_half_round_trip():
    bias = Bias()
    bias.write_half(0xC3FE)
    assert bias.read_half() == 0xC3FE
    assert bias.resolution == 3
    assert bias.level == 0x3FE


@pytest.mark.parametrize("resolution", [0, 1, 2, 3])
def test_bias_interval_times_rate_is_cpu_clock(resolution):
    bias = Bias()
    bias.write(1, resolution << 6)
    assert bias.resolution == resolution
    assert bias.sample_interval() * bias.sample_rate() == 16777216


def test_bias_default_rate():
    bias = Bias()
    assert bias.sample_interval() == 512
    assert bias.sample_rate() == 32768


def test_bias_read_out_of_range():
    assert Bias().read(2) == 0


def test_soundcnt_word_round_trip(parts):
    soundcnt, *_ = parts
    soundcnt.write_word(0x770FFF77)
    assert soundcnt.read_word() == 0x770FFF77


def test_soundcnt_fields_decoded(parts):
    soundcnt, *_ = parts
    soundcnt.write(0, 0x53)
    assert soundcnt.psg.master[Side.RIGHT] == 3
    assert soundcnt.psg.master[Side.LEFT] == 5
    soundcnt.write(1, 0x21)
    assert soundcnt.psg.enable[Side.RIGHT] == [True, False, False, False]
    assert soundcnt.psg.enable[Side.LEFT] == [False, True, False, False]
    soundcnt.write(3, 0x44)
    assert soundcnt.dma[0].timer_id == 1
    assert soundcnt.dma[1].timer_id == 1


def test_soundcnt_reset_bits_clear_fifos(parts):
    soundcnt, fifos, *_ = parts
    fifos[0].write_word(1)
    fifos[1].write_word(2)
    soundcnt.write(3, 0x08)
    assert len(fifos[0]) == 0
    assert len(fifos[1]) == 1
    soundcnt.write(3, 0x80)
    assert len(fifos[1]) == 0


def test_soundcnt_reset_bits_not_readable(parts):
    soundcnt, *_ = parts
    soundcnt.write(3, 0x88)
    assert soundcnt.read(3) == 0


def test_soundcnt_reset_clears_everything(parts):
    soundcnt, *_ = parts
    soundcnt.write_word(0x770FFF77)
    soundcnt.reset()
    assert soundcnt.read_word() == 0
    assert soundcnt.master_enable is False


def test_master_enable_reported(parts):
    soundcnt, *_ = parts
    soundcnt.write(4, 0x80)
    assert soundcnt.read(4) & 0x80
    soundcnt.write(4, 0)
    assert soundcnt.read(4) & 0x80 == 0


def test_channel_enable_reported(parts):
    soundcnt, _, psg1, _ = parts
    psg1.write(3, 0xF0)
    psg1.write(5, 0x80)
    assert psg1.is_enabled()
    assert soundcnt.read(4) & 1 == 1
    assert soundcnt.read(4) & 0x0E == 0


def test_master_disable_resets_state(parts):
    soundcnt, fifos, psg1, psg3 = parts
    soundcnt.write(4, 0x80)
    soundcnt.write(0, 0x77)
    soundcnt.write(1, 0xFF)
    psg1.write(3, 0xF0)
    psg1.write(5, 0x80)
    fifos[0].write_word(7)
    psg3.write_sample(0, 0xAB)

    soundcnt.write(4, 0)

    assert soundcnt.read(0) == 0
    assert soundcnt.read(1) == 0
    assert not psg1.is_enabled()
    assert len(fifos[0]) == 0
    assert psg3.read_sample(0) == 0xAB


def test_soundcnt_read_out_of_range(parts):
    soundcnt, *_ = parts
    assert soundcnt.read(7) == 0