"""
Whistlenoid - Spectrum analysis
Turns the latest block of microphone samples into a byte-scaled magnitude
spectrum (0-255 per bin), the same shape of data a browser AnalyserNode
hands out from getByteFrequencyData.
"""

from dataclasses import dataclass

import numpy as np
from scipy.signal import get_window

from config import MIN_FFT_SIZE, is_power_of_two


@dataclass(frozen=True)
class SpectrumSnapshot:
    """One tick's worth of per-bin magnitudes."""
    magnitudes: np.ndarray        # uint8, length = transform_size // 2
    bin_frequency_step: float     # sample_rate / transform_size (Hz per bin)

    def __len__(self) -> int:
        return len(self.magnitudes)

    def bin_frequencies(self) -> np.ndarray:
        return np.arange(len(self.magnitudes), dtype=np.float64) * self.bin_frequency_step

    @classmethod
    def silent(cls, bin_count: int, bin_frequency_step: float) -> "SpectrumSnapshot":
        return cls(np.zeros(bin_count, dtype=np.uint8), float(bin_frequency_step))


class SpectrumAnalyser:
    """Windowed FFT with smoothing and dB-to-byte scaling.

    Holds the smoothed magnitude of the previous frame, so one analyser
    belongs to one audio stream.
    """

    def __init__(
        self,
        transform_size: int,
        sample_rate: float,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        if transform_size < MIN_FFT_SIZE or not is_power_of_two(transform_size):
            raise ValueError(f"transform_size must be a power of two >= {MIN_FFT_SIZE}, got {transform_size}")
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if not 0.0 <= smoothing <= 1.0:
            raise ValueError(f"smoothing must be within [0, 1], got {smoothing}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")

        self.transform_size = int(transform_size)
        self.sample_rate = float(sample_rate)
        self.smoothing = float(smoothing)
        self.min_decibels = float(min_decibels)
        self.max_decibels = float(max_decibels)

        self._window = get_window("blackman", self.transform_size).astype(np.float64)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)

    @property
    def bin_count(self) -> int:
        return self.transform_size // 2

    @property
    def bin_frequency_step(self) -> float:
        return self.sample_rate / self.transform_size

    def reset(self) -> None:
        self._smoothed.fill(0.0)

    def analyse(self, samples: np.ndarray) -> SpectrumSnapshot:
        """Analyse the most recent transform_size samples (zero-padded at the front if short)."""
        frame = np.zeros(self.transform_size, dtype=np.float64)
        samples = np.asarray(samples, dtype=np.float64).ravel()
        if samples.size:
            tail = samples[-self.transform_size:]
            frame[self.transform_size - tail.size:] = tail

        spectrum = np.fft.rfft(frame * self._window)[:self.bin_count]
        magnitude = np.abs(spectrum) / self.transform_size

        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        # log10(0) gives -inf which clips to 0
        byte_values = np.clip(np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0), 0, 255)

        return SpectrumSnapshot(byte_values.astype(np.uint8), self.bin_frequency_step)
