"""Keypad input (KEYINPUT) and keypad interrupt control (KEYCNT)."""

from __future__ import annotations

import enum
from typing import Any

from .irq import IrqSource

_KEY_MASK = 0x3FF


class Key(enum.IntEnum):
    """Buttons, valued by their bit in KEYINPUT."""

    A = 0
    B = 1
    SELECT = 2
    START = 3
    RIGHT = 4
    LEFT = 5
    UP = 6
    DOWN = 7
    R = 8
    L = 9


class KeyControlMode(enum.IntEnum):
    LOGICAL_OR = 0
    LOGICAL_AND = 1


class KeyPad:
    """Button state and the keypad interrupt condition.

    KEYINPUT bits are active-low: a pressed key reads as 0.
    ``irq`` must offer ``raise_irq(source)``.
    """

    def __init__(self, irq: Any) -> None:
        self._irq = irq
        self.reset()

    def reset(self) -> None:
        self.input = _KEY_MASK
        self.mask = 0
        self.interrupt = False
        self.mode = KeyControlMode.LOGICAL_OR

    def set_key_status(self, key: Key, pressed: bool) -> None:
        bit = 1 << int(key)
        if pressed:
            self.input &= ~bit
        else:
            self.input |= bit
        self._update_irq()

    def read_input_byte(self, offset: int) -> int:
        if offset == 0:
            return self.input & 0xFF
        if offset == 1:
            return (self.input >> 8) & 0xFF
        raise ValueError(f"KEYINPUT has no byte at offset {offset}")

    def read_control_byte(self, offset: int) -> int:
        if offset == 0:
            return self.mask & 0xFF
        if offset == 1:
            return (
                ((self.mask >> 8) & 3)
                | (64 if self.interrupt else 0)
                | (int(self.mode) << 7)
            )
        raise ValueError(f"KEYCNT has no byte at offset {offset}")

    def write_control_byte(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == 0:
            self.mask = (self.mask & 0xFF00) | value
        elif offset == 1:
            self.mask = (self.mask & 0x00FF) | ((value & 3) << 8)
            self.interrupt = bool(value & 64)
            self.mode = KeyControlMode(value >> 7)
        else:
            raise ValueError(f"KEYCNT has no byte at offset {offset}")
        self._update_irq()

    def write_control_half(self, value: int) -> None:
        value &= 0xFFFF
        self.mask = value & 0x03FF
        self.interrupt = bool(value & 0x4000)
        self.mode = KeyControlMode(value >> 15)
        self._update_irq()

    def _update_irq(self) -> None:
        if not self.interrupt:
            return

        pressed = ~self.input & _KEY_MASK

        if self.mode == KeyControlMode.LOGICAL_AND:
            if self.mask == pressed:
                self._irq.raise_irq(IrqSource.KEYPAD)
        elif self.mask & pressed:
            self._irq.raise_irq(IrqSource.KEYPAD)