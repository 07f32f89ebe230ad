"""High-level emulation of the MP2K sound driver's software mixer."""

from __future__ import annotations

import copy
import enum
import logging
import struct
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

MAX_SOUND_CHANNELS = 12
SOUND_INFO_MAGIC = 0x68736D54

SAMPLE_RATE = 65536
SAMPLES_PER_FRAME = SAMPLE_RATE // 60 + 1
TOTAL_FRAME_COUNT = 7

_EARLY_COEFFICIENT = 0.0015
_LATE_COEFFICIENTS = ((1.0, 0.1), (0.6, 0.25), (0.35, 0.35))
_NORMALIZE = 1.0 / sum(a + b for a, b in _LATE_COEFFICIENTS)


def _s8_to_float(value: int) -> float:
    value &= 0xFF
    if value >= 0x80:
        value -= 0x100
    return value / 127.0


def _u8_to_float(value: int) -> float:
    return (value & 0xFF) / 256.0


_DIFFERENTIAL_LUT = tuple(
    _s8_to_float(v)
    for v in (
        0x00, 0x01, 0x04, 0x09, 0x10, 0x19, 0x24, 0x31,
        0xC0, 0xCF, 0xDC, 0xE7, 0xF0, 0xF7, 0xFC, 0xFF,
    )
)


class ChannelStatus(enum.IntFlag):
    ENV_RELEASE = 0x00
    ENV_SUSTAIN = 0x01
    ENV_DECAY = 0x02
    ENV_ATTACK = 0x03
    ENV_MASK = 0x03
    ECHO = 0x04
    LOOP = 0x10
    STOP = 0x40
    START = 0x80
    ON = 0x80 | 0x40 | 0x04 | 0x03


_CHANNEL_FORMAT = struct.Struct("<14B18xII24x")
_SOUND_INFO_FORMAT = struct.Struct("<IBBBB8xii56x")


@dataclass
class SoundChannel:
    """One channel of the driver's sound area, as kept in guest memory."""

    status: int = 0
    type: int = 0
    volume_r: int = 0
    volume_l: int = 0
    envelope_attack: int = 0
    envelope_decay: int = 0
    envelope_sustain: int = 0
    envelope_release: int = 0
    envelope_volume: int = 0
    envelope_volume_r: int = 0
    envelope_volume_l: int = 0
    echo_volume: int = 0
    echo_length: int = 0
    frequency: int = 0
    wave_address: int = 0

    SIZE = _CHANNEL_FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> "SoundChannel":
        if len(data) < cls.SIZE:
            raise ValueError(f"sound channel needs {cls.SIZE} bytes, got {len(data)}")
        fields = _CHANNEL_FORMAT.unpack_from(data)
        (status, type_, volume_r, volume_l, attack, decay, sustain, release,
         _unknown, env_volume, env_volume_r, env_volume_l, echo_volume,
         echo_length, frequency, wave_address) = fields
        return cls(
            status=status,
            type=type_,
            volume_r=volume_r,
            volume_l=volume_l,
            envelope_attack=attack,
            envelope_decay=decay,
            envelope_sustain=sustain,
            envelope_release=release,
            envelope_volume=env_volume,
            envelope_volume_r=env_volume_r,
            envelope_volume_l=env_volume_l,
            echo_volume=echo_volume,
            echo_length=echo_length,
            frequency=frequency,
            wave_address=wave_address,
        )


@dataclass
class SoundInfo:
    """The driver's global sound area."""

    magic: int = 0
    pcm_dma_counter: int = 0
    reverb: int = 0
    max_channels: int = 0
    master_volume: int = 0
    pcm_samples_per_vblank: int = 0
    pcm_sample_rate: int = 0
    channels: list[SoundChannel] = field(
        default_factory=lambda: [SoundChannel() for _ in range(MAX_SOUND_CHANNELS)]
    )

    HEADER_SIZE = _SOUND_INFO_FORMAT.size
    SIZE = HEADER_SIZE + MAX_SOUND_CHANNELS * SoundChannel.SIZE

    @classmethod
    def from_bytes(cls, data: bytes) -> "SoundInfo":
        if len(data) < cls.SIZE:
            raise ValueError(f"sound info needs {cls.SIZE} bytes, got {len(data)}")
        (magic, dma_counter, reverb, max_channels, master_volume,
         per_vblank, sample_rate) = _SOUND_INFO_FORMAT.unpack_from(data)
        channels = [
            SoundChannel.from_bytes(
                data[cls.HEADER_SIZE + i * SoundChannel.SIZE:
                     cls.HEADER_SIZE + (i + 1) * SoundChannel.SIZE]
            )
            for i in range(MAX_SOUND_CHANNELS)
        ]
        return cls(
            magic=magic,
            pcm_dma_counter=dma_counter,
            reverb=reverb,
            max_channels=max_channels,
            master_volume=master_volume,
            pcm_samples_per_vblank=per_vblank,
            pcm_sample_rate=sample_rate,
            channels=channels,
        )


_WAVE_INFO_FORMAT = struct.Struct("<HHIII")


@dataclass
class WaveInfo:
    """Header that precedes a sample's wave data."""

    type: int = 0
    status: int = 0
    frequency: int = 0
    loop_position: int = 0
    number_of_samples: int = 0

    SIZE = _WAVE_INFO_FORMAT.size

    @classmethod
    def from_bytes(cls, data: bytes) -> "WaveInfo":
        if len(data) < cls.SIZE:
            raise ValueError(f"wave info needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*_WAVE_INFO_FORMAT.unpack_from(data))


@dataclass
class _Sampler:
    compressed: bool = False
    should_fetch_sample: bool = True
    current_position: int = 0
    resample_phase: float = 0.0
    sample_history: list[float] = field(default_factory=lambda: [0.0] * 4)
    wave_info: WaveInfo = field(default_factory=WaveInfo)
    wave_data: Any = None


@dataclass
class _Envelope:
    volume: float = 0.0
    volume_l: list[float] = field(default_factory=lambda: [0.0, 0.0])
    volume_r: list[float] = field(default_factory=lambda: [0.0, 0.0])


class Mp2k:
    """Replaces the driver's mixer with a higher-quality one.

    ``memory.view(address, size)`` must return the bytes of guest memory in
    that range, or None if the range is not backed by memory.
    """

    def __init__(self, memory: Any) -> None:
        self._memory = memory
        self.use_cubic_filter = False
        self.force_reverb = False
        self._buffer: list[list[float]] | None = None
        self.reset()

    def reset(self) -> None:
        self._engaged = False
        self._current_frame = 0
        self._read_index = 0
        self.sound_info = SoundInfo()
        self._samplers = [_Sampler() for _ in range(MAX_SOUND_CHANNELS)]
        self._envelopes = [_Envelope() for _ in range(MAX_SOUND_CHANNELS)]

    def is_engaged(self) -> bool:
        return self._engaged

    def sound_main_ram(self, sound_info: SoundInfo) -> None:
        """Take over one driver tick: update channel states and envelopes."""
        if sound_info.magic != SOUND_INFO_MAGIC:
            return

        if not self._engaged:
            if sound_info.pcm_samples_per_vblank == 0:
                raise ValueError("MP2K: samples per V-blank must not be zero.")
            self._buffer = [
                [0.0] * (SAMPLES_PER_FRAME * 2) for _ in range(TOTAL_FRAME_COUNT)
            ]
            self._engaged = True

        max_channels = min(sound_info.max_channels, MAX_SOUND_CHANNELS)
        self.sound_info = copy.deepcopy(sound_info)
        master_volume = self.sound_info.master_volume

        for i in range(max_channels):
            channel = self.sound_info.channels[i]
            if channel.status & ChannelStatus.ON == 0:
                continue
            if not self._update_channel(i, channel, master_volume):
                continue

    def _update_channel(self, i: int, channel: SoundChannel, master_volume: int) -> bool:
        envelope_volume = channel.envelope_volume & 0xFF
        envelope_phase = channel.status & ChannelStatus.ENV_MASK
        hq = [self._envelopes[i].volume, 0.0]

        if channel.status & ChannelStatus.START:
            if channel.status & ChannelStatus.STOP:
                channel.status = 0
                return False

            envelope_volume = channel.envelope_attack
            if envelope_volume == 0xFF:
                channel.status = int(ChannelStatus.ENV_DECAY)
            else:
                channel.status = int(ChannelStatus.ENV_ATTACK)
            hq[0] = _u8_to_float(channel.envelope_attack)

            header = self._memory.view(channel.wave_address, WaveInfo.SIZE)
            if header is None:
                log.warning(
                    "MP2K: channel[%d] wave address is invalid: 0x%08X",
                    i, channel.wave_address,
                )
                channel.status = 0
                return False
            sampler = _Sampler(wave_info=WaveInfo.from_bytes(bytes(header)))
            self._samplers[i] = sampler
            if sampler.wave_info.status & 0xC000:
                channel.status |= ChannelStatus.LOOP
        elif channel.status & ChannelStatus.ECHO:
            old_length = channel.echo_length
            channel.echo_length = (old_length - 1) & 0xFF
            if old_length == 0:
                channel.status = 0
                return False
        elif channel.status & ChannelStatus.STOP:
            envelope_volume = (envelope_volume * channel.envelope_release) >> 8
            hq[0] *= _u8_to_float(channel.envelope_release)

            if envelope_volume <= channel.echo_volume:
                if channel.echo_volume == 0:
                    channel.status = 0
                    return False
                channel.status |= ChannelStatus.ECHO
                envelope_volume = channel.echo_volume
                hq[0] = _u8_to_float(channel.echo_volume)
        elif envelope_phase == ChannelStatus.ENV_ATTACK:
            envelope_volume += channel.envelope_attack
            hq[0] = min(1.0, hq[0] + _u8_to_float(channel.envelope_attack))

            if envelope_volume > 0xFE:
                channel.status = (
                    channel.status & ~ChannelStatus.ENV_MASK & 0xFF
                ) | ChannelStatus.ENV_DECAY
                envelope_volume = 0xFF
        elif envelope_phase == ChannelStatus.ENV_DECAY:
            envelope_volume = (envelope_volume * channel.envelope_decay) >> 8
            hq[0] *= _u8_to_float(channel.envelope_decay)

            sustain = channel.envelope_sustain
            if envelope_volume <= sustain:
                if sustain == 0 and channel.echo_volume == 0:
                    channel.status = 0
                    return False
                channel.status = (
                    channel.status & ~ChannelStatus.ENV_MASK & 0xFF
                ) | ChannelStatus.ENV_SUSTAIN
                envelope_volume = sustain
                hq[0] = _u8_to_float(sustain)

        channel.status = int(channel.status) & 0xFF
        channel.envelope_volume = envelope_volume & 0xFF
        envelope_volume = (envelope_volume * (master_volume + 1)) >> 4
        channel.envelope_volume_r = ((envelope_volume * channel.volume_r) >> 8) & 0xFF
        channel.envelope_volume_l = ((envelope_volume * channel.volume_l) >> 8) & 0xFF

        # Predict the envelope at the start of the next frame so that it can
        # be interpolated linearly across this one.
        phase = channel.status & ChannelStatus.ENV_MASK
        if channel.status & ChannelStatus.STOP:
            if ((envelope_volume * channel.envelope_release) >> 8) <= channel.echo_volume:
                hq[1] = _u8_to_float(channel.echo_volume)
            else:
                hq[1] = hq[0] * _u8_to_float(channel.envelope_release)
        elif phase == ChannelStatus.ENV_ATTACK:
            hq[1] = min(1.0, hq[0] + _u8_to_float(channel.envelope_attack))
        elif phase == ChannelStatus.ENV_DECAY:
            if ((envelope_volume * channel.envelope_decay) >> 8) <= channel.envelope_sustain:
                hq[1] = _u8_to_float(channel.envelope_sustain)
            else:
                hq[1] = hq[0] * _u8_to_float(channel.envelope_decay)
        else:
            hq[1] = hq[0]

        hq_master = (master_volume + 1) / 16.0
        hq_volume_r = hq_master * _u8_to_float(channel.volume_r)
        hq_volume_l = hq_master * _u8_to_float(channel.volume_l)

        envelope = self._envelopes[i]
        envelope.volume = hq[0]
        for j in (0, 1):
            envelope.volume_r[j] = hq[j] * hq_volume_r
            envelope.volume_l[j] = hq[j] * hq_volume_l
        return True

    def render_frame(self) -> None:
        """Mix the next frame of audio into the ring of frame buffers."""
        if self._buffer is None:
            raise RuntimeError("MP2K: mixer is not engaged")

        self._current_frame = (self._current_frame + 1) % TOTAL_FRAME_COUNT

        info = self.sound_info
        reverb = max(info.reverb, 48) if self.force_reverb else info.reverb
        max_channels = min(info.max_channels, MAX_SOUND_CHANNELS)
        destination = self._buffer[self._current_frame]

        if reverb > 0:
            self._render_reverb(destination, reverb)
        else:
            destination[:] = [0.0] * len(destination)

        for i in range(max_channels):
            channel = info.channels[i]
            if channel.status & ChannelStatus.ON == 0:
                continue
            self._render_channel(i, channel, destination)

    def _render_channel(self, i: int, channel: SoundChannel, destination: list[float]) -> None:
        sampler = self._samplers[i]
        envelope = self._envelopes[i]
        cubic = self.use_cubic_filter

        if channel.type & 8:
            angular_step = self.sound_info.pcm_sample_rate / SAMPLE_RATE
        else:
            angular_step = channel.frequency / SAMPLE_RATE

        compressed = (channel.type & 32) != 0
        history = sampler.sample_history
        wave_info = sampler.wave_info

        if sampler.compressed != compressed or sampler.wave_data is None:
            wave_size = wave_info.number_of_samples
            if compressed:
                wave_size = (wave_size * 33 + 63) // 64
            begin = (channel.wave_address + WaveInfo.SIZE) & 0xFFFFFFFF
            data = self._memory.view(begin, wave_size)
            if data is None:
                log.warning(
                    "MP2K: channel[%d] sample data has bad memory range 0x%08X - 0x%08X.",
                    i, begin, begin + wave_size,
                )
                channel.status = 0
                return
            sampler.wave_data = bytes(data)
            sampler.compressed = compressed

        wave_data = sampler.wave_data

        for j in range(SAMPLES_PER_FRAME):
            t = j / SAMPLES_PER_FRAME
            volume_l = envelope.volume_l[0] * (1 - t) + envelope.volume_l[1] * t
            volume_r = envelope.volume_r[0] * (1 - t) + envelope.volume_r[1] * t

            if sampler.should_fetch_sample:
                position = sampler.current_position
                if compressed:
                    block_offset = position & 63
                    block_address = (position >> 6) * 33
                    if block_offset == 0:
                        fetched = _s8_to_float(wave_data[block_address])
                    else:
                        fetched = history[0]
                    lut_index = wave_data[block_address + (block_offset >> 1) + 1]
                    lut_index = lut_index & 15 if block_offset & 1 else lut_index >> 4
                    fetched += _DIFFERENTIAL_LUT[lut_index]
                else:
                    fetched = _s8_to_float(wave_data[position])

                if cubic:
                    history[3] = history[2]
                    history[2] = history[1]
                history[1] = history[0]
                history[0] = fetched
                sampler.should_fetch_sample = False

            mu = sampler.resample_phase
            if cubic:
                mu2 = mu * mu
                a0 = history[0] - history[1] - history[3] + history[2]
                a1 = history[3] - history[2] - a0
                a2 = history[1] - history[3]
                a3 = history[2]
                sample = a0 * mu * mu2 + a1 * mu2 + a2 * mu + a3
            else:
                sample = history[0] * mu + history[1] * (1.0 - mu)

            destination[j * 2] += sample * volume_r
            destination[j * 2 + 1] += sample * volume_l

            sampler.resample_phase += angular_step
            if sampler.resample_phase >= 1:
                n = int(sampler.resample_phase)
                sampler.resample_phase -= n
                sampler.current_position += n
                sampler.should_fetch_sample = True

                if sampler.current_position >= wave_info.number_of_samples:
                    if channel.status & ChannelStatus.LOOP:
                        sampler.current_position = wave_info.loop_position + n - 1
                    else:
                        sampler.current_position = wave_info.number_of_samples
                        sampler.should_fetch_sample = False

    def _render_reverb(self, destination: list[float], strength: int) -> None:
        assert self._buffer is not None
        frame = self._current_frame
        early = self._buffer[(frame + TOTAL_FRAME_COUNT - 1) % TOTAL_FRAME_COUNT]
        late_buffers = (
            self._buffer[(frame + 2) % TOTAL_FRAME_COUNT],
            self._buffer[(frame + 1) % TOTAL_FRAME_COUNT],
            destination,
        )
        factor = strength / 128.0

        for left in range(0, SAMPLES_PER_FRAME * 2, 2):
            right = left + 1
            early_l = early[left] * _EARLY_COEFFICIENT
            early_r = early[right] * _EARLY_COEFFICIENT

            late_l = 0.0
            late_r = 0.0
            for late, (direct, cross) in zip(late_buffers, _LATE_COEFFICIENTS):
                sample_l = late[left]
                sample_r = late[right]
                late_l += sample_l * direct + sample_r * cross
                late_r += sample_l * cross + sample_r * direct

            destination[left] = (early_l + late_l * _NORMALIZE) * factor
            destination[right] = (early_r + late_r * _NORMALIZE) * factor

    def read_sample(self) -> tuple[float, float]:
        """Return the next stereo sample as (first FIFO, second FIFO)."""
        if self._buffer is None:
            raise RuntimeError("MP2K: mixer is not engaged")

        if self._read_index == 0:
            self.render_frame()

        base = (self._read_index) * 2
        frame = self._buffer[self._current_frame]
        sample = (frame[base], frame[base + 1])

        self._read_index += 1
        if self._read_index == SAMPLES_PER_FRAME:
            self._read_index = 0
        return sample