"""Sample FIFO feeding a direct-sound channel."""

from __future__ import annotations

CAPACITY = 7
_WORD_MASK = 0xFFFFFFFF


class Fifo:
    """Ring buffer of 32-bit words; overflowing it clears it."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._data = [0] * CAPACITY
        self._rd = 0
        self._wr = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def write_byte(self, offset: int, value: int) -> None:
        """Push a word made of the pending slot with one byte replaced."""
        shift = offset * 8
        word = (self._data[self._wr] & ~(0xFF << shift)) | ((value & 0xFF) << shift)
        self.write_word(word)

    def write_half(self, offset: int, value: int) -> None:
        """Push a word made of the pending slot with one half-word replaced.

        The data port is byte wide, so only the low eight bits of value land.
        """
        shift = offset * 8
        word = (self._data[self._wr] & ~(0xFFFF << shift)) | ((value & 0xFF) << shift)
        self.write_word(word)

    def write_word(self, value: int) -> None:
        if self._count < CAPACITY:
            self._data[self._wr] = value & _WORD_MASK
            self._wr = (self._wr + 1) % CAPACITY
            self._count += 1
        else:
            self.reset()

    def read_word(self) -> int:
        """Pop the oldest word; on an empty FIFO the stale slot is returned."""
        value = self._data[self._rd]
        if self._count > 0:
            self._rd = (self._rd + 1) % CAPACITY
            self._count -= 1
        return value