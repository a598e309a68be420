from dataclasses import dataclass

import numpy as np

from spectrum import SpectrumSnapshot


@dataclass(frozen=True)
class Peak:
    """Dominant (frequency, amplitude) pair of one spectrum snapshot."""
    frequency: float
    amplitude: float


SILENT_PEAK = Peak(frequency=0.0, amplitude=0.0)


def find_peak(
    spectrum: SpectrumSnapshot | None,
    min_freq: float | None = None,
    max_freq: float | None = None,
) -> Peak:
    """Find the loudest bin whose frequency lies within [min_freq, max_freq].

    Either bound may be None (unbounded). Ties go to the lowest frequency.
    Returns SILENT_PEAK when no bin in the window is above zero.
    """
    if spectrum is None or len(spectrum) == 0:
        return SILENT_PEAK

    frequencies = spectrum.bin_frequencies()
    included = np.ones(len(frequencies), dtype=bool)
    if min_freq is not None:
        included &= frequencies >= min_freq
    if max_freq is not None:
        included &= frequencies <= max_freq

    candidates = np.where(included, spectrum.magnitudes.astype(np.float64), 0.0)
    peak_bin = int(np.argmax(candidates))  # first occurrence wins ties
    amplitude = float(candidates[peak_bin])
    if amplitude <= 0.0:
        return SILENT_PEAK

    return Peak(frequency=float(frequencies[peak_bin]), amplitude=amplitude)
