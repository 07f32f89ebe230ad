"""Hardware models for a 32-bit handheld console: sound channels and mixer, DMA, interrupts, keypad and display registers."""

__version__ = "0.1.0"