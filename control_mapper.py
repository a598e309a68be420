from typing import Optional

from calibration import CalibrationResult
from frequency_utils import Peak


def map_to_paddle_x(
    peak: Peak,
    envelope: CalibrationResult,
    canvas_width: float,
    paddle_width: float,
) -> Optional[float]:
    """Map a live peak onto the paddle's left edge.

    Returns None (leave the paddle where it is) when the peak is not louder
    than the envelope threshold or the envelope's band is empty. The result
    is not clamped to the canvas.
    """
    if peak.amplitude <= envelope.amplitude_threshold:
        return None

    band = envelope.max_freq - envelope.min_freq
    if band == 0:
        return None

    normalized = (peak.frequency - envelope.min_freq) / band
    return normalized * (canvas_width - paddle_width)
