"""Square-wave PSG channel (sound channels 1 and 2)."""

from __future__ import annotations

from typing import Any

from .psg_units import BaseChannel, EnvelopeDirection, SweepDirection

_PATTERNS = (
    (+8, -8, -8, -8, -8, -8, -8, -8),
    (+8, +8, -8, -8, -8, -8, -8, -8),
    (+8, +8, +8, +8, -8, -8, -8, -8),
    (+8, +8, +8, +8, +8, +8, -8, -8),
)


def _synthesis_interval(frequency: int) -> int:
    # 128 cycles is one period at the highest frequency; the duty pattern
    # can change at eight evenly spaced points in it.
    return 128 * (2048 - frequency) // 8


class QuadChannel(BaseChannel):
    """Square wave with selectable duty, envelope and frequency sweep.

    The scheduler must offer ``add(cycles, callback) -> event`` and
    ``cancel(event)``.
    """

    def __init__(self, scheduler: Any) -> None:
        super().__init__(True, True)
        self._scheduler = scheduler
        self.reset()

    def reset(self) -> None:
        super().reset()
        self.phase = 0
        self.sample = 0
        self.wave_duty = 0
        self.dac_enable = False
        self._event = None

    def get_sample(self) -> int:
        return self.sample

    def generate(self) -> None:
        """Produce the next output level and schedule the following one."""
        if not self.is_enabled():
            self.sample = 0
            self._event = None
            return

        if self.dac_enable:
            self.sample = _PATTERNS[self.wave_duty][self.phase] * self.envelope.current_volume
        else:
            self.sample = 0
        self.phase = (self.phase + 1) % 8

        self._event = self._scheduler.add(
            _synthesis_interval(self.sweep.current_freq), self.generate
        )

    def read(self, offset: int) -> int:
        if offset == 0:
            return self.sweep.shift | (int(self.sweep.direction) << 3) | (self.sweep.divider << 4)
        if offset == 2:
            return self.wave_duty << 6
        if offset == 3:
            return (
                self.envelope.divider
                | (int(self.envelope.direction) << 3)
                | (self.envelope.initial_volume << 4)
            )
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF
        sweep = self.sweep

        if offset == 0:
            sweep.shift = value & 7
            sweep.direction = SweepDirection((value >> 3) & 1)
            sweep.divider = (value >> 4) & 7
        elif offset == 2:
            self.length.length = 64 - (value & 63)
            self.wave_duty = (value >> 6) & 3
        elif offset == 3:
            self.envelope.divider = value & 7
            self.envelope.direction = EnvelopeDirection((value >> 3) & 1)
            self.envelope.initial_volume = value >> 4
            self.dac_enable = (value >> 3) != 0
            if not self.dac_enable:
                self.disable()
        elif offset == 4:
            sweep.initial_freq = (sweep.initial_freq & ~0xFF) | value
            sweep.current_freq = sweep.initial_freq
        elif offset == 5:
            sweep.initial_freq = (sweep.initial_freq & 0xFF) | ((value & 7) << 8)
            sweep.current_freq = sweep.initial_freq
            self.length.enabled = bool(value & 0x40)

            if self.dac_enable and value & 0x80:
                if not self.is_enabled():
                    if self._event is not None:
                        self._scheduler.cancel(self._event)
                    self._event = self._scheduler.add(
                        _synthesis_interval(sweep.current_freq), self.generate
                    )
                self.phase = 0
                self.restart()