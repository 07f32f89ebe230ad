"""Audio processing unit: PSG channels, direct-sound FIFOs and the mixer."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Sequence

from .dma import DmaOccasion
from .fifo import Fifo
from .noise_channel import NoiseChannel
from .quad_channel import QuadChannel
from .sound_registers import Bias, Side, SoundControl
from .wave_channel import WaveChannel

# The frame sequencer runs at 512 Hz on a 16.78 MHz system clock.
CYCLES_PER_STEP = 16777216 // 512

MP2K_SAMPLE_RATE = 65536
MAX_AMPLITUDE = 0.999

_PSG_VOLUME = (1, 2, 4, 0)
_DMA_VOLUME = (2, 4)
_FIFO_OCCASION = (DmaOccasion.FIFO0, DmaOccasion.FIFO1)


@dataclass
class _Pipe:
    """Word taken from a FIFO and the number of bytes still in it."""

    word: int = 0
    size: int = 0


def _to_s8(value: int) -> int:
    value &= 0xFF
    return value - 0x100 if value >= 0x80 else value


def _round_half_away(value: float) -> int:
    magnitude = math.floor(abs(value) + 0.5)
    return -magnitude if value < 0 else magnitude


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def render_stream(
    buffer: deque[tuple[float, float]], samples: int, volume: int
) -> list[int]:
    """Turn buffered stereo samples into interleaved signed 16-bit PCM.

    ``samples`` is the number of stereo frames wanted and ``volume`` a
    percentage, clamped to 0..100. When the buffer holds enough frames they
    are consumed; otherwise the available frames are repeated without
    consuming them. An empty buffer yields silence.
    """
    scale = _clamp(volume, 0, 100) / 100.0
    available = len(buffer)

    if available == 0:
        return [0] * (samples * 2)

    if available >= samples:
        frames = [buffer.popleft() for _ in range(samples)]
    else:
        frames = [buffer[x % available] for x in range(samples)]

    stream: list[int] = []
    for left, right in frames:
        for value in (left, right):
            value = _clamp(value * scale, -MAX_AMPLITUDE, MAX_AMPLITUDE)
            stream.append(_round_half_away(value * 32767.0))
    return stream


class Apu:
    """Sound hardware and its mixer.

    The scheduler must offer ``now()`` and ``add(cycles, callback)``; the
    DMA controller ``request(occasion)``; ``mp2k`` ``reset()``,
    ``is_engaged()`` and ``read_sample()``. Mixed samples go to ``sink``,
    which must offer ``set_sample_rate(rate)`` (the rate the samples are
    produced at) and ``write(left, right)`` with values in -1.0..1.0.
    """

    def __init__(self, scheduler: Any, dma: Any, mp2k: Any, sink: Any) -> None:
        self._scheduler = scheduler
        self._dma = dma
        self.mp2k = mp2k
        self._sink = sink
        self.lock = threading.Lock()

        self.fifo = [Fifo(), Fifo()]
        self.bias = Bias()
        self.psg1 = QuadChannel(scheduler)
        self.psg2 = QuadChannel(scheduler)
        self.psg3 = WaveChannel(scheduler)
        self.psg4 = NoiseChannel(scheduler, self.bias)
        self.soundcnt = SoundControl(
            self.fifo, self.psg1, self.psg2, self.psg3, self.psg4
        )

        self.fifo_pipe = [_Pipe(), _Pipe()]
        self.latch = [0, 0]
        self._resolution_old = 0

    @property
    def _psgs(self) -> tuple[Any, Any, Any, Any]:
        return (self.psg1, self.psg2, self.psg3, self.psg4)

    def reset(self) -> None:
        for fifo in self.fifo:
            fifo.reset()
        self.psg1.reset()
        self.psg2.reset()
        self.psg3.reset(True)
        self.psg4.reset()
        self.soundcnt.reset()
        self.bias.reset()
        self.fifo_pipe = [_Pipe(), _Pipe()]

        self._resolution_old = 0
        self._scheduler.add(self.bias.sample_interval(), self.step_mixer)
        self._scheduler.add(CYCLES_PER_STEP, self.step_sequencer)

        self.mp2k.reset()
        self._sink.set_sample_rate(self.bias.sample_rate())

    def on_timer_overflow(self, timer_id: int, times: int) -> None:
        """Feed the FIFOs clocked by the given timer with their next sample."""
        soundcnt = self.soundcnt
        if not soundcnt.master_enable:
            return

        for fifo_id, (fifo, pipe) in enumerate(zip(self.fifo, self.fifo_pipe)):
            if soundcnt.dma[fifo_id].timer_id != timer_id:
                continue

            if len(fifo) <= 3:
                self._dma.request(_FIFO_OCCASION[fifo_id])

            if pipe.size == 0 and len(fifo) > 0:
                pipe.word = fifo.read_word()
                pipe.size = 4

            sample = _to_s8(pipe.word)

            if pipe.size > 0:
                pipe.word >>= 8
                pipe.size -= 1

            self.latch[fifo_id] = sample

    def _psg_sum(self, side: int) -> int:
        enable = self.soundcnt.psg.enable[side]
        return sum(
            channel.get_sample() for on, channel in zip(enable, self._psgs) if on
        )

    def step_mixer(self) -> None:
        """Mix one output sample and schedule the next one."""
        if self.mp2k.is_engaged():
            self._mix_mp2k()
        else:
            self._mix_hardware()

    def _mix_mp2k(self) -> None:
        psg = self.soundcnt.psg
        dma = self.soundcnt.dma
        psg_volume = _PSG_VOLUME[psg.volume]

        if self._resolution_old != 1:
            self._sink.set_sample_rate(MP2K_SAMPLE_RATE)
            self._resolution_old = 1

        mp2k_sample = self.mp2k.read_sample()
        sample = [0.0, 0.0]

        for side in (Side.LEFT, Side.RIGHT):
            psg_sample = self._psg_sum(side)
            sample[side] += (
                psg_sample * psg_volume * (psg.master[side] + 1) / (32.0 * 0x200)
            )
            # FIFO A is assumed to carry the driver's first output channel.
            for fifo_id in (0, 1):
                if dma[fifo_id].enable[side]:
                    sample[side] += (
                        mp2k_sample[fifo_id] * _DMA_VOLUME[dma[fifo_id].volume] * 0.25
                    )

        if not self.soundcnt.master_enable:
            sample = [0.0, 0.0]

        with self.lock:
            self._sink.write(sample[Side.LEFT], sample[Side.RIGHT])

        self._scheduler.add(256 - (self._scheduler.now() & 255), self.step_mixer)

    def _mix_hardware(self) -> None:
        psg = self.soundcnt.psg
        dma = self.soundcnt.dma
        bias = self.bias
        psg_volume = _PSG_VOLUME[psg.volume]

        if bias.resolution != self._resolution_old:
            self._sink.set_sample_rate(bias.sample_rate())
            self._resolution_old = bias.resolution

        sample = [0, 0]

        for side in (Side.LEFT, Side.RIGHT):
            psg_sample = self._psg_sum(side)
            value = (psg_sample * psg_volume * (psg.master[side] + 1)) >> 5

            for fifo_id in (0, 1):
                if dma[fifo_id].enable[side]:
                    value += self.latch[fifo_id] * _DMA_VOLUME[dma[fifo_id].volume]

            value += bias.level
            value = max(0, min(0x3FF, value))
            sample[side] = value - 0x200

        if not self.soundcnt.master_enable:
            sample = [0, 0]

        with self.lock:
            self._sink.write(sample[Side.LEFT] / 0x200, sample[Side.RIGHT] / 0x200)

        interval = bias.sample_interval()
        cycles = interval - (self._scheduler.now() & (interval - 1))
        self._scheduler.add(cycles, self.step_mixer)

    def step_sequencer(self) -> None:
        """Advance the PSG frame sequencer by one step."""
        for channel in self._psgs:
            channel.tick()
        self._scheduler.add(CYCLES_PER_STEP, self.step_sequencer)