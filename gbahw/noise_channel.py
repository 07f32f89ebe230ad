"""Noise PSG channel (sound channel 4)."""

from __future__ import annotations

from typing import Any

from .psg_units import BaseChannel, EnvelopeDirection

_LFSR_XOR = (0x6000, 0x60)
_LFSR_INIT = (0x4000, 0x0040)


def _synthesis_interval(ratio: int, shift: int) -> int:
    interval = 64 << shift
    if ratio == 0:
        return interval // 2
    return interval * ratio


class NoiseChannel(BaseChannel):
    """Pseudo-random noise from a 15- or 7-bit LFSR.

    The scheduler must offer ``add(cycles, callback) -> event`` and
    ``cancel(event)``; ``bias.sample_interval()`` gives the mixer period.
    """

    def __init__(self, scheduler: Any, bias: Any) -> None:
        super().__init__(True, False)
        self._scheduler = scheduler
        self._bias = bias
        self.reset()

    def reset(self) -> None:
        super().reset()
        self.frequency_shift = 0
        self.frequency_ratio = 0
        self.width = 0
        self.dac_enable = False
        self.lfsr = 0
        self.sample = 0
        self._skip_count = 0
        self._event = None

    def get_sample(self) -> int:
        return self.sample

    def _clock_lfsr(self) -> bool:
        carry = self.lfsr & 1
        self.lfsr >>= 1
        if carry:
            self.lfsr ^= _LFSR_XOR[self.width]
        return bool(carry)

    def generate(self) -> None:
        """Produce the next output level and schedule the following one."""
        if not self.is_enabled():
            self.sample = 0
            self._event = None
            return

        self.sample = (8 if self._clock_lfsr() else -8) * self.envelope.current_volume
        if not self.dac_enable:
            self.sample = 0

        # Advance past outputs the mixer would never sample.
        for _ in range(self._skip_count):
            self._clock_lfsr()

        noise_interval = _synthesis_interval(self.frequency_ratio, self.frequency_shift)
        mixer_interval = self._bias.sample_interval()

        if noise_interval < mixer_interval:
            self._skip_count = mixer_interval // noise_interval - 1
            noise_interval = mixer_interval
        else:
            self._skip_count = 0

        self._event = self._scheduler.add(noise_interval, self.generate)

    def read(self, offset: int) -> int:
        if offset == 1:
            return (
                self.envelope.divider
                | (int(self.envelope.direction) << 3)
                | (self.envelope.initial_volume << 4)
            )
        if offset == 4:
            return self.frequency_ratio | (self.width << 3) | (self.frequency_shift << 4)
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF

        if offset == 0:
            self.length.length = 64 - (value & 63)
        elif offset == 1:
            self.envelope.divider = value & 7
            self.envelope.direction = EnvelopeDirection((value >> 3) & 1)
            self.envelope.initial_volume = value >> 4
            self.dac_enable = (value >> 3) != 0
            if not self.dac_enable:
                self.disable()
        elif offset == 4:
            self.frequency_ratio = value & 7
            self.width = (value >> 3) & 1
            self.frequency_shift = value >> 4
        elif offset == 5:
            self.length.enabled = bool(value & 0x40)

            if self.dac_enable and value & 0x80:
                if not self.is_enabled():
                    self._skip_count = 0
                    if self._event is not None:
                        self._scheduler.cancel(self._event)
                    self._event = self._scheduler.add(
                        _synthesis_interval(self.frequency_ratio, self.frequency_shift),
                        self.generate,
                    )
                self.lfsr = _LFSR_INIT[self.width]
                self.restart()