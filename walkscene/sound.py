"""Software audio mixing: samples, smoothly ramped parameters and a stereo mixer.

Audio runs at 48kHz. Samples are mono floating point; the mixer produces
blocks of interleaved stereo frames.
"""

from __future__ import annotations

import logging
import math
import os
import threading
import wave
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

logger = logging.getLogger(__name__)

AUDIO_RATE = 48000
MIX_SAMPLES = 1024
RAMP_STEP = MIX_SAMPLES / AUDIO_RATE
DEFAULT_RAMP = 1.0 / 60.0

_PI = 3.1415926


class SoundError(RuntimeError):
    """Raised when audio data cannot be loaded."""


def _copy_value(value: Any) -> Any:
    if np.ndim(value) == 0:
        return float(value)
    return np.array(value, dtype=float)


def _pcm_to_float(raw: bytes, width: int) -> np.ndarray:
    if width == 1:
        return (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0
    if width == 2:
        return np.frombuffer(raw, dtype="<i2").astype(np.float64) / 32768.0
    if width == 3:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        ints = np.where(ints >= 1 << 23, ints - (1 << 24), ints)
        return ints.astype(np.float64) / float(1 << 23)
    if width == 4:
        return np.frombuffer(raw, dtype="<i4").astype(np.float64) / float(1 << 31)
    raise SoundError(f"unsupported sample width of {width} bytes")


def load_wav(filename: str | os.PathLike) -> np.ndarray:
    """Load a PCM WAV file as 48kHz mono float32 samples, converting as needed."""
    filename = os.fspath(filename)
    try:
        with wave.open(filename, "rb") as wav:
            channels = wav.getnchannels()
            width = wav.getsampwidth()
            rate = wav.getframerate()
            raw = wav.readframes(wav.getnframes())
    except (wave.Error, EOFError, OSError) as exc:
        raise SoundError(f"Failed to load WAV file '{filename}'; {exc}") from exc

    samples = _pcm_to_float(raw, width)
    frames = len(samples) // channels
    samples = samples[: frames * channels].reshape(frames, channels)

    if channels != 1 or rate != AUDIO_RATE or width != 4:
        logger.info(
            "WAV file '%s' didn't load as %d Hz, float32, mono; converting.",
            filename, AUDIO_RATE,
        )
    data = samples.mean(axis=1) if channels > 1 else samples[:, 0]

    if rate != AUDIO_RATE and len(data) > 0:
        count = int(round(len(data) * AUDIO_RATE / rate))
        positions = np.arange(count) * (rate / AUDIO_RATE)
        data = np.interp(positions, np.arange(len(data)), data)

    data = np.asarray(data, dtype=np.float32)
    if len(data):
        logger.info("Range: %s, %s", min(0.0, float(data.min())), max(0.0, float(data.max())))
    return data


@dataclass
class Sample:
    """Mono 48kHz floating-point audio."""

    data: np.ndarray

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data, dtype=np.float32).reshape(-1)

    @classmethod
    def from_file(cls, filename: str | os.PathLike) -> "Sample":
        """Load a sample from a '.wav' file."""
        name = os.fspath(filename)
        if name.endswith(".wav"):
            return cls(load_wav(name))
        if name.endswith(".opus"):
            raise SoundError(f"Sample '{name}' is an opus file, which cannot be decoded here.")
        raise SoundError(
            f"Sample '{name}' doesn't end in either \".wav\" or \".opus\" -- unsure how to load."
        )


@dataclass
class Ramp:
    """A value that moves smoothly toward a target over ``ramp`` seconds."""

    value: Any
    target: Any = None
    ramp: float = 0.0

    def __post_init__(self) -> None:
        self.value = _copy_value(self.value)
        self.target = _copy_value(self.value if self.target is None else self.target)

    def set(self, value: Any, ramp: float) -> None:
        """Aim at ``value`` over ``ramp`` seconds; jump immediately if ``ramp <= 0``."""
        if ramp <= 0.0:
            self.value = _copy_value(value)
            self.target = _copy_value(value)
            self.ramp = 0.0
        else:
            self.target = _copy_value(value)
            self.ramp = ramp


class PlayingSample:
    """Book-keeping for a sample that is currently playing.

    A sample plays in 2D mode (``pan`` set, position NaN) or in 3D mode
    (position set, ``pan`` NaN).
    """

    def __init__(
        self,
        sample: Sample,
        volume: float = 1.0,
        *,
        pan: float | None = None,
        position: Sequence[float] | None = None,
        half_volume_radius: float = math.inf,
        loop: bool = False,
        lock: threading.RLock | None = None,
    ) -> None:
        if len(sample.data) == 0:
            raise ValueError("cannot play an empty sample")
        if (pan is None) == (position is None):
            raise ValueError("give exactly one of pan (2D) or position (3D)")
        self.data = sample.data
        self.i = 0
        self.loop = loop
        self.stopping = False
        self.stopped = False
        self._lock = lock if lock is not None else threading.RLock()
        self.volume = Ramp(volume)
        if pan is not None:
            self.pan = Ramp(pan)
            self.position = Ramp(np.full(3, math.nan))
            self.half_volume_radius = Ramp(math.nan)
        else:
            self.pan = Ramp(math.nan)
            self.position = Ramp(np.asarray(position, dtype=float))
            self.half_volume_radius = Ramp(half_volume_radius)

    @property
    def is_3d(self) -> bool:
        return math.isnan(self.pan.value)

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the volume over ``ramp`` seconds (ignored once stopping)."""
        with self._lock:
            if not self.stopping:
                self.volume.set(new_volume, ramp)

    def set_pan(self, new_pan: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the pan of a 2D sample; no effect in 3D mode."""
        if self.is_3d:
            return
        with self._lock:
            self.pan.set(new_pan, ramp)

    def set_position(self, new_position: Sequence[float], ramp: float = DEFAULT_RAMP) -> None:
        """Move a 3D sample; no effect in 2D mode."""
        if not self.is_3d:
            return
        with self._lock:
            self.position.set(np.asarray(new_position, dtype=float), ramp)

    def set_half_volume_radius(self, new_radius: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the half-volume radius of a 3D sample; no effect in 2D mode."""
        if not self.is_3d:
            return
        with self._lock:
            self.half_volume_radius.set(new_radius, ramp)

    def stop(self, ramp: float = DEFAULT_RAMP) -> None:
        """Fade out over ``ramp`` seconds, then stop playing."""
        with self._lock:
            if not (self.stopping or self.stopped):
                self.stopping = True
                self.volume.target = 0.0
                self.volume.ramp = ramp
            else:
                self.volume.ramp = min(self.volume.ramp, ramp)


class Listener:
    """Position and right-pointing unit vector used to pan 3D samples."""

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self.position = Ramp(np.zeros(3))
        self.right = Ramp(np.array([1.0, 0.0, 0.0]))

    def set_position_right(
        self, new_position: Sequence[float], new_right: Sequence[float], ramp: float = DEFAULT_RAMP
    ) -> None:
        """Move the listener; ``new_right`` is normalized (zero means +x)."""
        right = np.asarray(new_right, dtype=float)
        with self._lock:
            self.position.set(np.asarray(new_position, dtype=float), ramp)
            if not np.any(right):
                self.right.set(np.array([1.0, 0.0, 0.0]), ramp)
            else:
                self.right.set(right / np.linalg.norm(right), ramp)


def compute_pan_weights(pan: float) -> tuple[float, float]:
    """Return equal-power (left, right) weights for ``pan`` in [-1, 1]."""
    pan = max(-1.0, min(1.0, pan))
    ang = 0.5 * _PI * (0.5 * (pan + 1.0))
    return math.cos(ang), math.sin(ang)


def compute_pan_from_listener_and_position(
    listener_position, listener_right, source_position, source_half_radius: float
) -> tuple[float, float]:
    """Return (left, right) weights for a source heard by a listener.

    Direction sets the equal-power pan; distance attenuates linearly so that
    the weight halves at ``source_half_radius``.
    """
    to = np.asarray(source_position, dtype=float) - np.asarray(listener_position, dtype=float)
    distance = float(np.linalg.norm(to))
    if distance == 0.0:
        return math.sqrt(2.0), math.sqrt(2.0)
    amt = float(np.dot(np.asarray(listener_right, dtype=float), to)) / distance
    ang = 0.5 * _PI * (0.5 * (amt + 1.0))
    if source_half_radius == 0.0:
        att = 0.0
    else:
        att = 1.0 / (1.0 + distance / source_half_radius)
    return math.cos(ang) * att, math.sin(ang) * att


def _step_value_ramp(ramp: Ramp) -> None:
    if ramp.ramp < RAMP_STEP:
        ramp.value = _copy_value(ramp.target)
        ramp.ramp = 0.0
    else:
        ramp.value += (RAMP_STEP / ramp.ramp) * (ramp.target - ramp.value)
        ramp.ramp -= RAMP_STEP


def _step_position_ramp(ramp: Ramp) -> None:
    if ramp.ramp < RAMP_STEP:
        ramp.value = _copy_value(ramp.target)
        ramp.ramp = 0.0
    else:
        amt = RAMP_STEP / ramp.ramp
        ramp.value = ramp.value * (1.0 - amt) + ramp.target * amt
        ramp.ramp -= RAMP_STEP


def _step_direction_ramp(ramp: Ramp) -> None:
    if ramp.ramp < RAMP_STEP:
        ramp.value = _copy_value(ramp.target)
        ramp.ramp = 0.0
        return
    target = ramp.target
    norm = np.cross(ramp.value, target)
    if not np.any(norm):
        if target[0] <= target[1] and target[0] <= target[2]:
            norm = np.array([1.0, 0.0, 0.0])
        elif target[1] <= target[2]:
            norm = np.array([0.0, 1.0, 0.0])
        else:
            norm = np.array([0.0, 0.0, 1.0])
        norm = norm - target * float(np.dot(target, norm))
    with np.errstate(divide="ignore", invalid="ignore"):
        norm = norm / np.linalg.norm(norm)
    perp = np.cross(norm, target)
    angle = math.acos(max(-1.0, min(1.0, float(np.dot(ramp.value, target)))))
    angle *= (ramp.ramp - RAMP_STEP) / ramp.ramp
    ramp.value = target * math.cos(angle) + perp * math.sin(angle)
    ramp.ramp -= RAMP_STEP


class Mixer:
    """Mixes playing samples into blocks of stereo audio."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._playing: list[PlayingSample] = []
        self.volume = Ramp(1.0)
        self.listener = Listener(self._lock)

    @property
    def playing_samples(self) -> tuple[PlayingSample, ...]:
        with self._lock:
            return tuple(self._playing)

    def _start(self, playing: PlayingSample) -> PlayingSample:
        with self._lock:
            self._playing.append(playing)
        return playing

    def play(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` once in 2D; pan -1 is hard left, 1 hard right."""
        return self._start(PlayingSample(sample, volume, pan=pan, lock=self._lock))

    def play_3d(
        self, sample: Sample, volume: float, position, half_volume_radius: float = math.inf
    ) -> PlayingSample:
        """Play ``sample`` once, panned by the listener's view of ``position``."""
        return self._start(
            PlayingSample(sample, volume, position=position,
                          half_volume_radius=half_volume_radius, lock=self._lock)
        )

    def loop(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` repeatedly in 2D until stopped."""
        return self._start(PlayingSample(sample, volume, pan=pan, loop=True, lock=self._lock))

    def loop_3d(
        self, sample: Sample, volume: float, position, half_volume_radius: float = math.inf
    ) -> PlayingSample:
        """Play ``sample`` repeatedly in 3D until stopped."""
        return self._start(
            PlayingSample(sample, volume, position=position,
                          half_volume_radius=half_volume_radius, loop=True, lock=self._lock)
        )

    def stop_all_samples(self) -> None:
        """Fade out every playing sample."""
        with self._lock:
            for playing in self._playing:
                playing.stop()

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the global volume over ``ramp`` seconds."""
        with self._lock:
            self.volume.set(new_volume, ramp)

    def _weights(self, playing: PlayingSample, position, right) -> tuple[float, float]:
        if playing.is_3d:
            return compute_pan_from_listener_and_position(
                position, right, playing.position.value, playing.half_volume_radius.value
            )
        return compute_pan_weights(playing.pan.value)

    def mix(self) -> np.ndarray:
        """Produce the next ``MIX_SAMPLES`` stereo frames as a (N, 2) float32 array."""
        out = np.zeros((MIX_SAMPLES, 2), dtype=np.float64)
        with self._lock:
            start_volume = self.volume.value
            start_position = np.array(self.listener.position.value)
            start_right = np.array(self.listener.right.value)
            _step_value_ramp(self.volume)
            _step_position_ramp(self.listener.position)
            _step_direction_ramp(self.listener.right)
            end_volume = self.volume.value
            end_position = np.array(self.listener.position.value)
            end_right = np.array(self.listener.right.value)

            still_playing = []
            for playing in self._playing:
                start_l, start_r = self._weights(playing, start_position, start_right)
                if playing.is_3d:
                    _step_position_ramp(playing.position)
                    _step_value_ramp(playing.half_volume_radius)
                else:
                    _step_value_ramp(playing.pan)
                gain = start_volume * playing.volume.value
                start_pan = np.array([start_l * gain, start_r * gain])

                _step_value_ramp(playing.volume)

                end_l, end_r = self._weights(playing, end_position, end_right)
                gain = end_volume * playing.volume.value
                end_pan = np.array([end_l * gain, end_r * gain])

                size = len(playing.data)
                if playing.loop:
                    count = MIX_SAMPLES
                    indices = (playing.i + np.arange(count)) % size
                    playing.i = (playing.i + count) % size
                else:
                    count = min(MIX_SAMPLES, size - playing.i)
                    indices = playing.i + np.arange(count)
                    playing.i += count

                steps = np.arange(count)[:, None]
                pans = start_pan + steps * ((end_pan - start_pan) / MIX_SAMPLES)
                out[:count] += pans * playing.data[indices].astype(np.float64)[:, None]

                if playing.i >= size or (playing.stopping and playing.volume.value == 0.0):
                    playing.stopped = True
                else:
                    still_playing.append(playing)
            self._playing = still_playing
        return out.astype(np.float32)