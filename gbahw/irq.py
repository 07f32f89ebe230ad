"""Interrupt controller (IE, IF and IME registers)."""

from __future__ import annotations

import enum
from typing import Any, Callable

REG_IE = 0
REG_IF = 2
REG_IME = 4


class IrqSource(enum.Enum):
    VBLANK = enum.auto()
    HBLANK = enum.auto()
    VCOUNT = enum.auto()
    TIMER = enum.auto()
    SERIAL = enum.auto()
    DMA = enum.auto()
    KEYPAD = enum.auto()
    ROM = enum.auto()


_SOURCE_BITS = {
    IrqSource.VBLANK: 1,
    IrqSource.HBLANK: 2,
    IrqSource.VCOUNT: 4,
    IrqSource.TIMER: 8,
    IrqSource.SERIAL: 128,
    IrqSource.DMA: 256,
    IrqSource.KEYPAD: 4096,
    IrqSource.ROM: 8192,
}


class Irq:
    """Interrupt controller with the hardware's delayed register updates.

    Writes and raised interrupts land in pending registers that take effect
    one cycle later; the CPU IRQ line follows two cycles after that.
    The scheduler must offer ``add(cycles, callback, priority)``;
    ``set_irq_line(bool)`` drives the CPU's IRQ input.
    """

    def __init__(self, scheduler: Any, set_irq_line: Callable[[bool], None]) -> None:
        self._scheduler = scheduler
        self._set_irq_line = set_irq_line
        self.reset()

    def reset(self) -> None:
        self._pending_ime = 0
        self._pending_ie = 0
        self._pending_if = 0
        self._reg_ime = 0
        self._reg_ie = 0
        self._reg_if = 0
        self._irq_line = False
        self._set_irq_line(False)
        self._irq_available = False

    def read_byte(self, offset: int) -> int:
        if offset == REG_IE:
            return self._reg_ie & 0xFF
        if offset == REG_IE | 1:
            return self._reg_ie >> 8
        if offset == REG_IF:
            return self._reg_if & 0xFF
        if offset == REG_IF | 1:
            return self._reg_if >> 8
        if offset == REG_IME:
            return 1 if self._reg_ime else 0
        return 0

    def read_half(self, offset: int) -> int:
        if offset == REG_IE:
            return self._reg_ie
        if offset == REG_IF:
            return self._reg_if
        if offset == REG_IME:
            return 1 if self._reg_ime else 0
        return 0

    def write_byte(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == REG_IE:
            self._pending_ie = (self._pending_ie & 0x3F00) | value
        elif offset == REG_IE | 1:
            self._pending_ie = (self._pending_ie & 0x00FF) | ((value << 8) & 0x3F00)
        elif offset == REG_IF:
            self._pending_if &= ~value & 0xFFFF
        elif offset == REG_IF | 1:
            self._pending_if &= ~(value << 8) & 0xFFFF
        elif offset == REG_IME:
            self._pending_ime = value & 1

        self._scheduler.add(1, self._on_write_io, 1)

    def write_half(self, offset: int, value: int) -> None:
        value &= 0xFFFF
        if offset == REG_IE:
            self._pending_ie = value & 0x3FFF
        elif offset == REG_IF:
            self._pending_if &= ~value & 0xFFFF
        elif offset == REG_IME:
            self._pending_ime = value & 1

        self._scheduler.add(1, self._on_write_io, 1)

    def raise_irq(self, source: IrqSource, channel: int = 0) -> None:
        """Request an interrupt; ``channel`` selects the timer or DMA number."""
        bit = _SOURCE_BITS[source]
        if source in (IrqSource.TIMER, IrqSource.DMA):
            bit <<= channel
        self._pending_if = (self._pending_if | bit) & 0xFFFF

        self._scheduler.add(1, self._on_write_io, 0)

    def should_unhalt_cpu(self) -> bool:
        return self._irq_available

    def _on_write_io(self) -> None:
        self._reg_ime = self._pending_ime
        self._reg_ie = self._pending_ie
        self._reg_if = self._pending_if

        available = (self._reg_ie & self._reg_if) != 0
        if self._irq_available != available:
            self._scheduler.add(1, lambda: self._update_available(available), 0)

        line = bool(self._reg_ime) and available
        if self._irq_line != line:
            self._scheduler.add(2, lambda: self._set_irq_line(line), 0)
            self._irq_line = line

    def _update_available(self, available: bool) -> None:
        self._irq_available = available