"""Per-scanline evaluation of the two rectangular windows."""

from __future__ import annotations

from typing import Sequence

from .ppu_registers import WindowRange

LINE_CYCLES = 1024
SCREEN_WIDTH = 240


class WindowUnit:
    """Tracks WIN0/WIN1 coverage one pixel every four cycles.

    ``winh`` and ``winv`` are the horizontal and vertical ranges of both
    windows. The horizontal and vertical flags carry over between lines,
    so a window whose start lies past its end wraps around.
    """

    def __init__(self, winh: Sequence[WindowRange], winv: Sequence[WindowRange]) -> None:
        self.winh = winh
        self.winv = winv
        self.v_flag = [False, False]
        self.h_flag = [False, False]
        self.cycle = 0
        self.buffer = [[False, False] for _ in range(SCREEN_WIDTH)]

    def init_line(self, vcount: int) -> None:
        """Update the vertical flags and restart at the beginning of a line."""
        for i, winv in enumerate(self.winv):
            if vcount == winv.min:
                self.v_flag[i] = True
            if vcount == winv.max:
                self.v_flag[i] = False
        self.cycle = 0

    def draw(self, cycles: int) -> None:
        """Advance the unit by the given number of cycles."""
        if cycles <= 0 or self.cycle >= LINE_CYCLES:
            return

        for _ in range(cycles):
            if self.cycle & 3 == 0:
                x = self.cycle >> 2
                for i, winh in enumerate(self.winh):
                    if x == winh.min:
                        self.h_flag[i] = True
                    if x == winh.max:
                        self.h_flag[i] = False
                    if x < SCREEN_WIDTH:
                        self.buffer[x][i] = self.h_flag[i] and self.v_flag[i]

            self.cycle += 1
            if self.cycle == LINE_CYCLES:
                break

    def inside(self, x: int, window_id: int) -> bool:
        """Whether pixel x of the current line lies inside the window."""
        return self.buffer[x][window_id]