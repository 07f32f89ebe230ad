"""Wave-table PSG channel (sound channel 3)."""

from __future__ import annotations

from typing import Any

from .psg_units import BaseChannel

_VOLUME_TABLE = (0, 4, 2, 1)


def _synthesis_interval(frequency: int) -> int:
    # 8 cycles per sample is the highest possible rate.
    return 8 * (2048 - frequency)


class WaveChannel(BaseChannel):
    """Plays 4-bit samples from two 16-byte wave RAM banks.

    The scheduler must offer ``add(cycles, callback) -> event`` and
    ``cancel(event)``.
    """

    def __init__(self, scheduler: Any) -> None:
        super().__init__(False, False, 256)
        self._scheduler = scheduler
        self.wave_ram = [bytearray(16), bytearray(16)]
        self.reset(True)

    def reset(self, reset_wave_ram: bool = True) -> None:
        super().reset()
        self.phase = 0
        self.sample = 0
        self.playing = False
        self.force_volume = False
        self.volume = 0
        self.frequency = 0
        self.dimension = 0
        self.wave_bank = 0
        if reset_wave_ram:
            self.wave_ram = [bytearray(16), bytearray(16)]
        self._event = None

    def is_enabled(self) -> bool:
        return self.playing and super().is_enabled()

    def get_sample(self) -> int:
        return self.sample

    def generate(self) -> None:
        """Produce the next output level and schedule the following one."""
        if not self.is_enabled():
            self.sample = 0
            if BaseChannel.is_enabled(self):
                self._event = self._scheduler.add(
                    _synthesis_interval(self.frequency), self.generate
                )
            else:
                self._event = None
            return

        byte = self.wave_ram[self.wave_bank][self.phase // 2]
        nibble = byte >> 4 if self.phase % 2 == 0 else byte & 15
        scale = 3 if self.force_volume else _VOLUME_TABLE[self.volume]
        self.sample = (nibble - 8) * 4 * scale

        self.phase += 1
        if self.phase == 32:
            self.phase = 0
            if self.dimension:
                self.wave_bank ^= 1

        self._event = self._scheduler.add(_synthesis_interval(self.frequency), self.generate)

    def read(self, offset: int) -> int:
        if offset == 0:
            return (self.dimension << 5) | (self.wave_bank << 6) | (0x80 if self.playing else 0)
        if offset == 3:
            return (self.volume << 5) | (0x80 if self.force_volume else 0)
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF

        if offset == 0:
            self.dimension = (value >> 5) & 1
            self.wave_bank = (value >> 6) & 1
            self.playing = bool(value & 0x80)
        elif offset == 2:
            self.length.length = 256 - value
        elif offset == 3:
            self.volume = (value >> 5) & 3
            self.force_volume = bool(value & 0x80)
        elif offset == 4:
            self.frequency = (self.frequency & ~0xFF) | value
        elif offset == 5:
            self.frequency = (self.frequency & 0xFF) | ((value & 7) << 8)
            self.length.enabled = bool(value & 0x40)

            if self.playing and value & 0x80:
                if not BaseChannel.is_enabled(self):
                    if self._event is not None:
                        self._scheduler.cancel(self._event)
                    self._event = self._scheduler.add(
                        _synthesis_interval(self.frequency), self.generate
                    )
                self.phase = 0
                if self.dimension:
                    self.wave_bank = 0
                self.restart()

    def read_sample(self, offset: int) -> int:
        """Read wave RAM from the bank that is not being played."""
        return self.wave_ram[self.wave_bank ^ 1][offset]

    def write_sample(self, offset: int, value: int) -> None:
        """Write wave RAM in the bank that is not being played."""
        self.wave_ram[self.wave_bank ^ 1][offset] = value & 0xFF