"""Four-channel DMA controller."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from .irq import IrqSource

log = logging.getLogger(__name__)

REG_DMAXSAD = 0
REG_DMAXDAD = 4
REG_DMAXCNT_L = 8
REG_DMAXCNT_H = 10

_NONE = -1
_WORD_MASK = 0xFFFFFFFF

_SRC_MODIFY = ((2, -2, 0, 0), (4, -4, 0, 0))
_DST_MODIFY = ((2, -2, 0, 2), (4, -4, 0, 4))

_SRC_MASK = (0x07FFFFFF, 0x0FFFFFFF, 0x0FFFFFFF, 0x0FFFFFFF)
_DST_MASK = (0x07FFFFFF, 0x07FFFFFF, 0x07FFFFFF, 0x0FFFFFFF)
_LEN_MASK = (0x3FFF, 0x3FFF, 0x3FFF, 0xFFFF)


class DmaOccasion(enum.Enum):
    HBLANK = enum.auto()
    VBLANK = enum.auto()
    VIDEO = enum.auto()
    FIFO0 = enum.auto()
    FIFO1 = enum.auto()


class BusAccess(enum.Flag):
    """Kind of bus cycle a DMA transfer performs."""

    NONSEQUENTIAL = enum.auto()
    SEQUENTIAL = enum.auto()
    DMA = enum.auto()


class EepromSize(enum.Enum):
    SIZE_4K = enum.auto()
    SIZE_64K = enum.auto()


class AddressControl(enum.IntEnum):
    INCREMENT = 0
    DECREMENT = 1
    FIXED = 2
    RELOAD = 3


class Timing(enum.IntEnum):
    IMMEDIATE = 0
    VBLANK = 1
    HBLANK = 2
    SPECIAL = 3


class TransferSize(enum.IntEnum):
    HALF = 0
    WORD = 1


@dataclass
class _Latch:
    length: int = 0
    dst_addr: int = 0
    src_addr: int = 0
    bus: int = 0  # most recently read (half)word of this channel


@dataclass
class _Channel:
    id: int
    enable: bool = False
    repeat: bool = False
    interrupt: bool = False
    gamepak: bool = False
    length: int = 0
    dst_addr: int = 0
    src_addr: int = 0
    dst_cntl: AddressControl = AddressControl.INCREMENT
    src_cntl: AddressControl = AddressControl.INCREMENT
    time: Timing = Timing.IMMEDIATE
    size: TransferSize = TransferSize.HALF
    latch: _Latch = field(default_factory=_Latch)
    is_fifo_dma: bool = False
    event: Any = None


def _highest_priority(bitset: int) -> int:
    """Lowest channel number in the bitset, or -1 if it is empty."""
    if bitset == 0:
        return _NONE
    return (bitset & -bitset).bit_length() - 1


class Dma:
    """DMA controller with per-channel latches and start-up delay.

    The scheduler must offer ``now()``, ``add(cycles, callback) -> event``
    and ``cancel(event)``. The bus must offer ``step(cycles)``,
    ``read_half``/``read_word(address, access)``,
    ``write_half``/``write_word(address, value, access)`` and
    ``set_eeprom_size_hint(size)``. ``irq`` must offer
    ``raise_irq(source, channel)``.
    """

    def __init__(self, bus: Any, irq: Any, scheduler: Any) -> None:
        self._bus = bus
        self._irq = irq
        self._scheduler = scheduler
        self._latch = 0
        self.reset()

    def reset(self) -> None:
        self._active = _NONE
        self._reenter = False
        self._hblank_set = 0
        self._vblank_set = 0
        self._video_set = 0
        self._runnable_set = 0
        self._channels = [_Channel(id=i) for i in range(4)]

    # Scheduling

    def _schedule(self, bitset: int) -> None:
        while bitset:
            chan_id = _highest_priority(bitset)
            bitset &= ~(1 << chan_id)
            self._channels[chan_id].event = self._scheduler.add(
                2, lambda chan_id=chan_id: self._on_activated(chan_id)
            )

    def _on_activated(self, chan_id: int) -> None:
        self._channels[chan_id].event = None

        if self._runnable_set == 0:
            self._active = chan_id
        elif chan_id < self._active:
            self._active = chan_id
            self._reenter = True

        self._runnable_set |= 1 << chan_id

    def _select_next(self) -> None:
        self._active = _highest_priority(self._runnable_set)

    def request(self, occasion: DmaOccasion) -> None:
        """Start the channels waiting for the given occasion."""
        if occasion == DmaOccasion.HBLANK:
            self._schedule(self._hblank_set)
        elif occasion == DmaOccasion.VBLANK:
            self._schedule(self._vblank_set)
        elif occasion == DmaOccasion.VIDEO:
            self._schedule(self._video_set)
        elif occasion == DmaOccasion.FIFO0:
            channel = self._channels[1]
            if channel.enable and channel.time == Timing.SPECIAL:
                self._schedule(2)
        elif occasion == DmaOccasion.FIFO1:
            channel = self._channels[2]
            if channel.enable and channel.time == Timing.SPECIAL:
                self._schedule(4)

    def stop_video_transfer_dma(self) -> None:
        channel = self._channels[3]
        if channel.enable:
            channel.enable = False
            self._on_channel_written(channel, True)

    def has_video_transfer_dma(self) -> bool:
        channel = self._channels[3]
        return channel.enable and channel.time == Timing.SPECIAL

    def is_running(self) -> bool:
        return self._runnable_set != 0

    def open_bus_value(self) -> int:
        """Most recent value transferred by any channel."""
        return self._latch

    # Transfers

    def run(self) -> int:
        """Run all runnable channels to completion; return cycles spent."""
        timestamp0 = self._scheduler.now()

        self._bus.step(1)
        while True:
            self._run_channel()
            if not self.is_running():
                break
        self._bus.step(1)

        return self._scheduler.now() - timestamp0

    def _run_channel(self) -> None:
        channel = self._channels[self._active]
        latch = channel.latch
        bus = self._bus

        size = channel.size
        if channel.is_fifo_dma:
            size = TransferSize.WORD
            dst_modify = 0
        else:
            dst_modify = _DST_MODIFY[size][channel.dst_cntl]
        src_modify = _SRC_MODIFY[size][channel.src_cntl]

        did_access_rom = False

        while latch.length != 0:
            if self._reenter:
                self._reenter = False
                return

            src_addr = latch.src_addr
            dst_addr = latch.dst_addr

            access_src = BusAccess.SEQUENTIAL | BusAccess.DMA
            access_dst = BusAccess.SEQUENTIAL | BusAccess.DMA

            if not did_access_rom:
                if src_addr >= 0x08000000:
                    access_src = BusAccess.NONSEQUENTIAL | BusAccess.DMA
                    did_access_rom = True
                elif dst_addr >= 0x08000000:
                    access_dst = BusAccess.NONSEQUENTIAL | BusAccess.DMA
                    did_access_rom = True

            if size == TransferSize.HALF:
                if src_addr >= 0x02000000:
                    value = bus.read_half(src_addr, access_src) & 0xFFFF
                    latch.bus = (value << 16) | value
                    self._latch = latch.bus
                else:
                    value = (latch.bus >> 16) if dst_addr & 2 else latch.bus & 0xFFFF
                    bus.step(1)
                bus.write_half(dst_addr, value, access_dst)
            else:
                if src_addr >= 0x02000000:
                    latch.bus = bus.read_word(src_addr, access_src) & _WORD_MASK
                    self._latch = latch.bus
                else:
                    bus.step(1)
                bus.write_word(dst_addr, latch.bus, access_dst)

            latch.src_addr = (src_addr + src_modify) & _WORD_MASK
            latch.dst_addr = (dst_addr + dst_modify) & _WORD_MASK
            latch.length -= 1

        self._runnable_set &= ~(1 << channel.id)

        if channel.interrupt:
            self._irq.raise_irq(IrqSource.DMA, channel.id)

        if channel.repeat and channel.time != Timing.IMMEDIATE:
            if channel.is_fifo_dma:
                latch.length = 4
            else:
                latch.length = self._reload_length(channel)

            if channel.dst_cntl == AddressControl.RELOAD and not channel.is_fifo_dma:
                mask = ~3 if channel.size == TransferSize.WORD else ~1
                latch.dst_addr = channel.dst_addr & mask
        else:
            self._remove_from_sets(channel)
            channel.enable = False

        self._select_next()

    @staticmethod
    def _reload_length(channel: _Channel) -> int:
        length = channel.length & _LEN_MASK[channel.id]
        return length if length else _LEN_MASK[channel.id] + 1

    # Registers

    def read(self, chan_id: int, offset: int) -> int:
        channel = self._channels[chan_id]

        if offset == REG_DMAXCNT_H:
            return ((channel.dst_cntl << 5) | (channel.src_cntl << 7)) & 0xFF
        if offset == REG_DMAXCNT_H | 1:
            return (
                (channel.src_cntl >> 1)
                | (channel.size << 2)
                | (channel.time << 4)
                | (2 if channel.repeat else 0)
                | (8 if channel.gamepak else 0)
                | (64 if channel.interrupt else 0)
                | (128 if channel.enable else 0)
            )
        return 0

    def write(self, chan_id: int, offset: int, value: int) -> None:
        channel = self._channels[chan_id]
        value &= 0xFF

        if REG_DMAXSAD <= offset < REG_DMAXSAD + 4:
            shift = offset * 8
            channel.src_addr &= ~(0xFF << shift) & _WORD_MASK
            channel.src_addr |= (value << shift) & _SRC_MASK[chan_id]
        elif REG_DMAXDAD <= offset < REG_DMAXDAD + 4:
            shift = (offset - REG_DMAXDAD) * 8
            channel.dst_addr &= ~(0xFF << shift) & _WORD_MASK
            channel.dst_addr |= (value << shift) & _DST_MASK[chan_id]
        elif offset == REG_DMAXCNT_L:
            channel.length = (channel.length & 0xFF00) | value
        elif offset == REG_DMAXCNT_L | 1:
            channel.length = (channel.length & 0x00FF) | (value << 8)
        elif offset == REG_DMAXCNT_H:
            channel.dst_cntl = AddressControl((value >> 5) & 3)
            channel.src_cntl = AddressControl((channel.src_cntl & 0b10) | (value >> 7))
        elif offset == REG_DMAXCNT_H | 1:
            enable_old = channel.enable

            channel.src_cntl = AddressControl((channel.src_cntl & 0b01) | ((value & 1) << 1))
            channel.size = TransferSize((value >> 2) & 1)
            channel.time = Timing((value >> 4) & 3)
            channel.repeat = bool(value & 2)
            channel.gamepak = bool(value & 8) and chan_id == 3
            channel.interrupt = bool(value & 64)
            channel.enable = bool(value & 128)

            self._on_channel_written(channel, enable_old)

    def _on_channel_written(self, channel: _Channel, enable_old: bool) -> None:
        self._remove_from_sets(channel)

        if channel.enable:
            if not enable_old:
                self._on_rising_edge(channel)
            elif channel.event is None:
                # The channel is not still starting up: apply the new config
                # to the remaining transfers.
                self._add_to_set(channel)
                if channel.id == self._active:
                    self._reenter = True
            return

        self._runnable_set &= ~(1 << channel.id)

        if channel.event is not None:
            self._scheduler.cancel(channel.event)
            channel.event = None
            log.warning("DMA: disabled DMA%d while it was starting.", channel.id)

        if channel.id == self._active:
            self._reenter = True
            self._select_next()
            log.warning("DMA: DMA%d cleared its own enable bit.", channel.id)

    def _on_rising_edge(self, channel: _Channel) -> None:
        latch = channel.latch
        latch.dst_addr = channel.dst_addr
        latch.src_addr = channel.src_addr

        if channel.time == Timing.SPECIAL and channel.id in (1, 2):
            channel.is_fifo_dma = True
            channel.size = TransferSize.WORD
            latch.length = 4
            latch.src_addr &= ~3
            latch.dst_addr &= ~3
            return

        channel.is_fifo_dma = False

        mask = ~3 if channel.size == TransferSize.WORD else ~1
        latch.src_addr &= mask
        latch.dst_addr &= mask
        latch.length = self._reload_length(channel)

        if channel.time == Timing.IMMEDIATE:
            self._schedule(1 << channel.id)
        else:
            self._add_to_set(channel)

        # The first EEPROM transfer reveals the EEPROM's address width.
        if channel.dst_addr >= 0x0D000000:
            if channel.length in (9, 73):
                self._bus.set_eeprom_size_hint(EepromSize.SIZE_4K)
            if channel.length in (17, 81):
                self._bus.set_eeprom_size_hint(EepromSize.SIZE_64K)

    def _add_to_set(self, channel: _Channel) -> None:
        bit = 1 << channel.id
        if channel.time == Timing.HBLANK:
            self._hblank_set |= bit
        elif channel.time == Timing.VBLANK:
            self._vblank_set |= bit
        elif channel.time == Timing.SPECIAL and channel.id == 3:
            self._video_set |= bit

    def _remove_from_sets(self, channel: _Channel) -> None:
        bit = ~(1 << channel.id)
        self._hblank_set &= bit
        self._vblank_set &= bit
        self._video_set &= bit