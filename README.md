# gbahw

Models of the hardware blocks inside a 32-bit handheld game console, written
so that an emulator can drive them from its own event scheduler. Pure Python,
no dependencies.

## Modules

| Module | Contents |
| --- | --- |
| `gbahw.psg_units` | `LengthCounter`, `Envelope`, `Sweep` and the abstract `BaseChannel` with the 512 Hz frame-sequencer step (`tick`) |
| `gbahw.quad_channel` | `QuadChannel`, the square-wave channel with duty, envelope and sweep |
| `gbahw.wave_channel` | `WaveChannel`, the wave-table channel with two 16-byte wave RAM banks |
| `gbahw.noise_channel` | `NoiseChannel`, the 15/7-bit LFSR noise channel |
| `gbahw.fifo` | `Fifo`, the seven-word direct-sound sample queue (overflowing it clears it) |
| `gbahw.sound_registers` | `SoundControl` (SOUNDCNT), `Bias` (SOUNDBIAS), `Side` |
| `gbahw.mp2k` | `Mp2k`, a high-quality replacement mixer for the common sound driver, with `SoundInfo`, `SoundChannel`, `WaveInfo` (each readable with `from_bytes`) and `ChannelStatus` |
| `gbahw.apu` | `Apu`, which mixes the PSG channels, FIFOs and `Mp2k` output, and `render_stream`, which turns buffered samples into 16-bit PCM |
| `gbahw.dma` | `Dma`, the four-channel DMA controller, and `DmaOccasion` |
| `gbahw.irq` | `Irq`, the interrupt controller (IE/IF/IME) with delayed updates, and `IrqSource` |
| `gbahw.keypad` | `KeyPad`, `Key`, `KeyControlMode` (KEYINPUT/KEYCNT) |
| `gbahw.ppu_registers` | `DisplayControl`, `DisplayStatus`, `BackgroundControl`, `ReferencePoint`, `BlendControl`, `BlendEffect`, `WindowRange`, `WindowLayerSelect`, `Mosaic` |
| `gbahw.window` | `WindowUnit`, per-scanline coverage of the two rectangular windows |
| `gbahw.color` | `rgb555_to_argb8888`, `blend`, `brighten`, `darken` |

## Installing

```
pip install .
```

and, to run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from gbahw.color import blend, brighten, rgb555_to_argb8888
from gbahw.fifo import Fifo
from gbahw.keypad import Key, KeyPad

fifo = Fifo()
fifo.write_word(0x04030201)
assert len(fifo) == 1
assert fifo.read_word() == 0x04030201

white = brighten(0x0000, 16)            # full brightness lifts black to white
assert rgb555_to_argb8888(white) == 0xFFFFFFFF
assert blend(0x001F, 0x7C00, 8, 8) == 0x4010   # half red, half blue


class RecordingIrq:
    def __init__(self):
        self.raised = []

    def raise_irq(self, source, channel=0):
        self.raised.append(source)


irq = RecordingIrq()
pad = KeyPad(irq)
pad.write_control_half(0x4000 | (1 << Key.A))   # interrupt on A, OR mode
pad.set_key_status(Key.A, True)
assert len(irq.raised) == 1
assert pad.read_input_byte(0) == 0xFE            # pressed keys read as 0
```

## Connecting the parts

The components that act over time take their collaborators from the caller,
as plain objects:

- The sound channels expect a scheduler with `add(cycles, callback) -> event`
  and `cancel(event)`; `NoiseChannel` also takes a `Bias`.
- `Irq` expects a scheduler with `add(cycles, callback, priority)` and a
  `set_irq_line(bool)` callable.
- `Dma` expects a scheduler with `now()`, `add` and `cancel`, a bus with
  `step`, `read_half`, `read_word`, `write_half`, `write_word` and
  `set_eeprom_size_hint`, and an interrupt controller with `raise_irq`.
- `Mp2k` expects a memory object whose `view(address, size)` returns bytes
  or `None` for unbacked ranges.
- `Apu` expects a scheduler with `now()` and `add`, a DMA controller with
  `request(occasion)`, an `Mp2k`-like mixer, and a sink with
  `set_sample_rate(rate)` and `write(left, right)`.

## What the package does not do

It provides no scheduler, CPU, memory bus or cartridge model, and no
background or sprite renderer: the display side covers the I/O registers,
the window unit and the colour effects only. There is no save-state support,
no audio or video output device, and no command-line program; an emulator
built on these classes supplies those itself.