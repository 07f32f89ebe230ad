"""Display, background, window, blending and mosaic I/O registers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Optional


def _check_byte_address(address: int) -> None:
    if address not in (0, 1):
        raise ValueError(f"register has no byte at offset {address}")


class DisplayControl:
    """DISPCNT: video mode, frame select and layer enables."""

    def __init__(self) -> None:
        self.hword = 0
        self.mode = 0
        self.cgb_mode = 0
        self.frame = 0
        self.hblank_oam_access = 0
        self.oam_mapping_1d = 0
        self.forced_blank = 0
        self.enable = [0] * 8
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return self.hword & 0xFF
        if address == 1:
            return (self.hword >> 8) & 0xFF
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.hword = (self.hword & 0xFF00) | value
            self.mode = value & 7
            self.cgb_mode = (value >> 3) & 1
            self.frame = (value >> 4) & 1
            self.hblank_oam_access = (value >> 5) & 1
            self.oam_mapping_1d = (value >> 6) & 1
            self.forced_blank = (value >> 7) & 1
        elif address == 1:
            self.hword = (self.hword & 0x00FF) | (value << 8)
            self.enable = [(value >> bit) & 1 for bit in range(8)]

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class DisplayStatus:
    """DISPSTAT: blanking and V-count flags plus their interrupt enables.

    ``on_write`` is called after every write so that the owner can
    re-evaluate the V-count match.
    """

    def __init__(self, on_write: Optional[Callable[[], None]] = None) -> None:
        self._on_write = on_write
        self.vblank_flag = 0
        self.hblank_flag = 0
        self.vcount_flag = 0
        self.vblank_irq_enable = 0
        self.hblank_irq_enable = 0
        self.vcount_irq_enable = 0
        self.vcount_setting = 0
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return (
                int(self.vblank_flag)
                | (int(self.hblank_flag) << 1)
                | (int(self.vcount_flag) << 2)
                | (self.vblank_irq_enable << 3)
                | (self.hblank_irq_enable << 4)
                | (self.vcount_irq_enable << 5)
            )
        if address == 1:
            return self.vcount_setting
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.vblank_irq_enable = (value >> 3) & 1
            self.hblank_irq_enable = (value >> 4) & 1
            self.vcount_irq_enable = (value >> 5) & 1
        elif address == 1:
            self.vcount_setting = value

        if self._on_write is not None:
            self._on_write()

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class BackgroundControl:
    """BGxCNT; the wraparound bit exists only for BG2 and BG3."""

    def __init__(self, id: int) -> None:
        self.id = id
        self.priority = 0
        self.tile_block = 0
        self.unused = 0
        self.mosaic_enable = 0
        self.full_palette = 0
        self.map_block = 0
        self.wraparound = 0
        self.size = 0
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return (
                self.priority
                | (self.tile_block << 2)
                | (self.unused << 4)
                | (self.mosaic_enable << 6)
                | (self.full_palette << 7)
            )
        if address == 1:
            return self.map_block | (self.wraparound << 5) | (self.size << 6)
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.priority = value & 3
            self.tile_block = (value >> 2) & 3
            self.unused = (value >> 4) & 3
            self.mosaic_enable = (value >> 6) & 1
            self.full_palette = value >> 7
        elif address == 1:
            self.map_block = value & 0x1F
            if self.id >= 2:
                self.wraparound = (value >> 5) & 1
            self.size = value >> 6

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


@dataclass
class ReferencePoint:
    """BGxX/BGxY: a signed 28-bit fixed-point affine reference point."""

    initial: int = 0
    current: int = 0
    written: bool = False

    def reset(self) -> None:
        self.initial = 0
        self.current = 0
        self.written = False

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        raw = self.initial & 0xFFFFFFFF
        if address == 0:
            raw = (raw & 0x0FFFFF00) | value
        elif address == 1:
            raw = (raw & 0x0FFF00FF) | (value << 8)
        elif address == 2:
            raw = (raw & 0x0F00FFFF) | (value << 16)
        elif address == 3:
            raw = (raw & 0x00FFFFFF) | (value << 24)

        if raw & (1 << 27):
            raw |= 0xF0000000

        self.initial = raw - (1 << 32) if raw & 0x80000000 else raw
        self.written = True


class BlendEffect(enum.IntEnum):
    NONE = 0
    BLEND = 1
    BRIGHTEN = 2
    DARKEN = 3


@dataclass
class BlendControl:
    """BLDCNT: colour special effect and its first/second target layers."""

    sfx: BlendEffect = BlendEffect.NONE
    targets: list[list[int]] = field(default_factory=lambda: [[0] * 6, [0] * 6])

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            value = sum(bit << i for i, bit in enumerate(self.targets[0]))
            return value | (int(self.sfx) << 6)
        if address == 1:
            return sum(bit << i for i, bit in enumerate(self.targets[1]))
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.targets[0] = [(value >> i) & 1 for i in range(6)]
            self.sfx = BlendEffect(value >> 6)
        elif address == 1:
            self.targets[1] = [(value >> i) & 1 for i in range(6)]

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


@dataclass
class WindowRange:
    """WINxH/WINxV: window start (min) and end (max) coordinates."""

    min: int = 0
    max: int = 0

    def reset(self) -> None:
        self.min = 0
        self.max = 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.max = value
        elif address == 1:
            self.min = value

    def read_half(self) -> int:
        return self.max | (self.min << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


@dataclass
class WindowLayerSelect:
    """WININ/WINOUT: which layers are shown inside each of two windows."""

    enable: list[list[int]] = field(default_factory=lambda: [[0] * 6, [0] * 6])

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, offset: int) -> int:
        _check_byte_address(offset)
        return sum(bit << i for i, bit in enumerate(self.enable[offset]))

    def write(self, offset: int, value: int) -> None:
        _check_byte_address(offset)
        self.enable[offset] = [(value >> i) & 1 for i in range(6)]

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


@dataclass
class MosaicSize:
    size_x: int = 1
    size_y: int = 1
    counter_y: int = 0


@dataclass
class Mosaic:
    """MOSAIC: block sizes for backgrounds and sprites."""

    bg: MosaicSize = field(default_factory=MosaicSize)
    obj: MosaicSize = field(default_factory=MosaicSize)

    def reset(self) -> None:
        self.bg.size_x = 1
        self.bg.size_y = 1
        self.bg.counter_y = 0
        self.obj.size_x = 1
        self.obj.size_y = 1

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.bg.size_x = (value & 15) + 1
            self.bg.size_y = (value >> 4) + 1
        elif address == 1:
            self.obj.size_x = (value & 15) + 1
            self.obj.size_y = (value >> 4) + 1