import unittest

from calibration import CalibrationResult
from control_mapper import map_to_paddle_x
from frequency_utils import Peak


ENVELOPE = CalibrationResult(
    min_freq=500, max_freq=1500, voice_amplitude=90, noise_amplitude=10, amplitude_threshold=50,
)


class TestControlMapper(unittest.TestCase):
    def test_below_threshold_leaves_paddle_unchanged(self):
        self.assertIsNone(map_to_paddle_x(Peak(1000, 40), ENVELOPE, 300, 75))

    def test_at_threshold_leaves_paddle_unchanged(self):
        self.assertIsNone(map_to_paddle_x(Peak(1000, 50), ENVELOPE, 300, 75))

    def test_maps_band_linearly(self):
        self.assertAlmostEqual(map_to_paddle_x(Peak(1000, 60), ENVELOPE, 300, 75), 112.5)
        self.assertAlmostEqual(map_to_paddle_x(Peak(500, 60), ENVELOPE, 300, 75), 0.0)
        self.assertAlmostEqual(map_to_paddle_x(Peak(1500, 60), ENVELOPE, 300, 75), 225.0)

    def test_out_of_band_is_not_clamped(self):
        self.assertAlmostEqual(map_to_paddle_x(Peak(400, 60), ENVELOPE, 300, 75), -22.5)
        self.assertAlmostEqual(map_to_paddle_x(Peak(2000, 60), ENVELOPE, 300, 75), 337.5)

    def test_degenerate_band_does_not_move(self):
        flat = CalibrationResult(
            min_freq=1000, max_freq=1000, voice_amplitude=90, noise_amplitude=10, amplitude_threshold=50,
        )
        self.assertIsNone(map_to_paddle_x(Peak(1000, 200), flat, 300, 75))


if __name__ == "__main__":
    unittest.main()
