"""Building blocks shared by the programmable sound generator channels."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass

CYCLES_PER_STEP = 16777216 // 512
"""CPU cycles between two steps of the 512 Hz frame sequencer."""


class LengthCounter:
    """Counts down the remaining length of a note."""

    def __init__(self, default_length: int = 64) -> None:
        self.default_length = default_length
        self.reset()

    def reset(self) -> None:
        self.enabled = False
        self.length = 0

    def restart(self) -> None:
        if self.length == 0:
            self.length = self.default_length

    def tick(self) -> bool:
        """Advance the counter; return False once the note has run out."""
        if self.enabled:
            self.length -= 1
            return self.length > 0
        return True


class EnvelopeDirection(enum.IntEnum):
    DECREMENT = 0
    INCREMENT = 1


@dataclass
class Envelope:
    """Volume envelope that steps the volume up or down at a fixed rate."""

    enabled: bool = False
    active: bool = False
    direction: EnvelopeDirection = EnvelopeDirection.DECREMENT
    initial_volume: int = 0
    current_volume: int = 0
    divider: int = 0
    step: int = 0

    def reset(self) -> None:
        self.direction = EnvelopeDirection.DECREMENT
        self.initial_volume = 0
        self.divider = 0
        self.restart()

    def restart(self) -> None:
        self.step = self.divider
        self.current_volume = self.initial_volume
        self.active = self.enabled

    def tick(self) -> None:
        if self.step != 1:
            self.step = (self.step - 1) & 7
            return

        self.step = self.divider

        if not self.active or self.divider == 0:
            return

        if self.direction == EnvelopeDirection.INCREMENT:
            if self.current_volume != 15:
                self.current_volume += 1
            else:
                self.active = False
        elif self.current_volume != 0:
            self.current_volume -= 1
        else:
            self.active = False


class SweepDirection(enum.IntEnum):
    INCREMENT = 0
    DECREMENT = 1


@dataclass
class Sweep:
    """Frequency sweep unit of the first square channel."""

    enabled: bool = False
    active: bool = False
    direction: SweepDirection = SweepDirection.INCREMENT
    initial_freq: int = 0
    current_freq: int = 0
    shadow_freq: int = 0
    divider: int = 0
    shift: int = 0
    step: int = 0

    def reset(self) -> None:
        self.direction = SweepDirection.INCREMENT
        self.initial_freq = 0
        self.divider = 0
        self.shift = 0
        self.restart()

    def restart(self) -> None:
        if self.enabled:
            self.current_freq = self.initial_freq
            self.shadow_freq = self.initial_freq
            self.step = self.divider
            self.active = self.shift != 0 or self.divider != 0

    def tick(self) -> bool:
        """Advance the sweep; return False when the frequency overflows."""
        if not self.active:
            return True

        self.step -= 1
        if self.step != 0:
            return True

        offset = self.shadow_freq >> self.shift
        self.step = self.divider

        if self.direction == SweepDirection.INCREMENT:
            new_freq = self.shadow_freq + offset
        else:
            new_freq = self.shadow_freq - offset

        if new_freq >= 2048:
            return False
        if self.shift != 0:
            self.shadow_freq = new_freq
            self.current_freq = new_freq
        return True


class BaseChannel(abc.ABC):
    """State and frame-sequencer logic common to all PSG channels."""

    def __init__(
        self,
        enable_envelope: bool,
        enable_sweep: bool,
        default_length: int = 64,
    ) -> None:
        self.length = LengthCounter(default_length)
        self.envelope = Envelope(enabled=enable_envelope)
        self.sweep = Sweep(enabled=enable_sweep)
        self._enabled = False
        self.step = 0
        BaseChannel.reset(self)

    def is_enabled(self) -> bool:
        return self._enabled

    @abc.abstractmethod
    def get_sample(self) -> int:
        """Return the channel's current signed 8-bit output sample."""

    def reset(self) -> None:
        self.length.reset()
        self.envelope.reset()
        self.sweep.reset()
        self._enabled = False
        self.step = 0

    def tick(self) -> None:
        """Run one step of the frame sequencer."""
        if self.step & 1 == 0:
            self._enabled = self.length.tick() and self._enabled
        if self.step & 3 == 2:
            self._enabled = self.sweep.tick() and self._enabled
        if self.step == 7:
            self.envelope.tick()
        self.step = (self.step + 1) & 7

    def restart(self) -> None:
        self.length.restart()
        self.sweep.restart()
        self.envelope.restart()
        self._enabled = True
        self.step = 0

    def disable(self) -> None:
        self._enabled = False