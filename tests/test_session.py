import itertools
import unittest
from dataclasses import replace

import numpy as np

from audio_source import DeviceUnavailable, PermissionDenied
from calibration import CalibrationPhase, CalibrationResult, CalibrationStep
from config import Config
from session import GameSession, SessionMode, SessionStateError
from spectrum import SpectrumSnapshot


class ManualScheduler:
    def __init__(self):
        self._ids = itertools.count()
        self.pending = {}

    def request_frame(self, callback):
        handle = next(self._ids)
        self.pending[handle] = callback
        return handle

    def cancel_frame(self, handle):
        self.pending.pop(handle, None)

    def run_frame(self) -> int:
        due = list(self.pending.values())
        self.pending.clear()
        for callback in due:
            callback()
        return len(due)


class FakeAudio:
    sample_rate = 6400.0
    transform_size = 128

    def __init__(self, acquire_error=None):
        self.acquire_error = acquire_error
        self.acquire_calls = 0
        self.release_calls = 0
        self.snapshot_calls = 0
        self.tone(0, 0)

    def tone(self, frequency: float, amplitude: int) -> None:
        step = self.sample_rate / self.transform_size  # 50Hz per bin
        magnitudes = np.zeros(self.transform_size // 2, dtype=np.uint8)
        magnitudes[int(frequency / step)] = amplitude
        self.snapshot = SpectrumSnapshot(magnitudes, step)

    def acquire(self):
        self.acquire_calls += 1
        if self.acquire_error is not None:
            raise self.acquire_error

    def release(self):
        self.release_calls += 1

    def get_snapshot(self):
        self.snapshot_calls += 1
        return self.snapshot


class FakeClock:
    def __init__(self):
        self.seconds = 0.0

    def __call__(self):
        return self.seconds

    def at_ms(self, ms: float):
        self.seconds = ms / 1000.0


class SessionTestCase(unittest.TestCase):
    def setUp(self):
        self.audio = FakeAudio()
        self.scheduler = ManualScheduler()
        self.clock = FakeClock()
        self.calibration_frames = []
        self.game_frames = []
        self.calibrated = []
        self.game_overs = []
        self.modes = []
        self.session = self.make_session(self.audio)

    def make_session(self, audio):
        return GameSession(
            Config(),
            audio,
            self.scheduler,
            clock=self.clock,
            on_calibration_frame=self.calibration_frames.append,
            on_game_frame=self.game_frames.append,
            on_calibrated=self.calibrated.append,
            on_game_over=self.game_overs.append,
            on_mode_changed=self.modes.append,
        )

    def run_step(self, step, tone, amplitude):
        """Run one calibration step start to finish with a steady tone."""
        self.audio.tone(tone, amplitude)
        self.clock.at_ms(0)
        self.session.start_calibration_step(step)
        for ms in (1000, 6000, 8000, 12000, 15500):
            self.clock.at_ms(ms)
            self.assertEqual(self.scheduler.run_frame(), 1)


class TestAudioAcquisition(SessionTestCase):
    def test_permission_denied_disables_calibration_and_play(self):
        audio = FakeAudio(acquire_error=PermissionDenied("blocked"))
        session = self.make_session(audio)

        self.assertFalse(session.open_audio())
        self.assertIsInstance(session.audio_error, PermissionDenied)
        self.assertFalse(session.can_calibrate)
        self.assertFalse(session.can_start_game)
        self.assertEqual(session.mode, SessionMode.MENU)
        with self.assertRaises(SessionStateError):
            session.start_calibration_step(CalibrationStep.VOICE_AMPLITUDE)
        with self.assertRaises(SessionStateError):
            session.start_game(CalibrationResult(1, 2, 3, 4, 5))
        # no automatic retry
        self.assertEqual(audio.acquire_calls, 1)

    def test_device_unavailable_then_manual_retry(self):
        audio = FakeAudio(acquire_error=DeviceUnavailable("no input"))
        session = self.make_session(audio)
        self.assertFalse(session.open_audio())

        audio.acquire_error = None
        self.assertTrue(session.open_audio())
        self.assertIsNone(session.audio_error)
        self.assertTrue(session.can_calibrate)

    def test_teardown_without_audio_releases_nothing(self):
        audio = FakeAudio(acquire_error=DeviceUnavailable("no input"))
        session = self.make_session(audio)
        session.open_audio()
        session.teardown()
        self.assertEqual(audio.release_calls, 0)
        self.assertEqual(session.mode, SessionMode.CLOSED)


class TestCalibrationSession(SessionTestCase):
    def setUp(self):
        super().setUp()
        self.session.open_audio()

    def test_preview_loop_runs_without_a_step(self):
        self.session.open_calibration()
        self.scheduler.run_frame()

        self.assertEqual(self.session.mode, SessionMode.CALIBRATING)
        self.assertEqual(len(self.calibration_frames), 1)
        self.assertEqual(self.calibration_frames[0].phase, CalibrationPhase.IDLE)

    def test_full_calibration_produces_complete_envelope(self):
        self.run_step(CalibrationStep.VOICE_AMPLITUDE, 1000, 120)
        self.assertEqual(len(self.calibrated), 1)
        self.assertEqual(self.session.calibration.state.voice_amplitudes, [120.0, 120.0, 120.0])

        self.run_step(CalibrationStep.NOISE_AMPLITUDE, 300, 10)
        self.run_step(CalibrationStep.FREQUENCY_RANGE, 1200, 100)

        envelope = self.session.envelope
        self.assertEqual(envelope.voice_amplitude, 120)
        self.assertEqual(envelope.noise_amplitude, 10)
        self.assertEqual(envelope.amplitude_threshold, 65)
        self.assertEqual(envelope.min_freq, 1200)
        self.assertEqual(envelope.max_freq, 1200)
        self.assertTrue(envelope.is_complete)
        self.assertTrue(self.session.can_start_game)
        self.assertEqual(len(self.calibrated), 3)

    def test_frequency_range_uses_last_ticks_threshold(self):
        self.run_step(CalibrationStep.VOICE_AMPLITUDE, 1000, 120)
        self.run_step(CalibrationStep.NOISE_AMPLITUDE, 300, 10)
        # 60 is below the 65 threshold, nothing recorded
        self.run_step(CalibrationStep.FREQUENCY_RANGE, 1200, 60)
        self.assertEqual(self.session.calibration.state.frequencies, [])
        self.assertFalse(self.session.envelope.is_complete)

    def test_one_snapshot_per_tick(self):
        self.session.open_calibration()
        for _ in range(5):
            self.scheduler.run_frame()
        self.assertEqual(self.audio.snapshot_calls, 5)

    def test_frame_carries_countdown_inputs(self):
        self.audio.tone(1000, 90)
        self.clock.at_ms(0)
        self.session.start_calibration_step(CalibrationStep.VOICE_AMPLITUDE)
        self.clock.at_ms(5500)
        self.scheduler.run_frame()

        frame = self.calibration_frames[-1]
        self.assertEqual(frame.phase, CalibrationPhase.SAMPLING)
        self.assertEqual(frame.step, CalibrationStep.VOICE_AMPLITUDE)
        self.assertEqual(frame.elapsed_ms, 5500)
        self.assertEqual(frame.used_value.value, 90.0)


class TestGameSession(SessionTestCase):
    ENVELOPE = CalibrationResult(
        min_freq=500, max_freq=1500, voice_amplitude=120, noise_amplitude=10, amplitude_threshold=65,
    )

    def setUp(self):
        super().setUp()
        self.session.open_audio()

    def test_start_game_without_envelope_raises(self):
        with self.assertRaises(SessionStateError):
            self.session.start_game()

    def test_start_game_discards_calibration_state(self):
        self.run_step(CalibrationStep.VOICE_AMPLITUDE, 1000, 120)
        self.session.start_game(self.ENVELOPE)

        self.assertEqual(self.session.mode, SessionMode.PLAYING)
        self.assertIsNone(self.session.calibration)
        self.assertEqual(len(self.scheduler.pending), 1)

    def test_start_game_cancels_running_step(self):
        self.clock.at_ms(0)
        self.session.start_calibration_step(CalibrationStep.VOICE_AMPLITUDE)
        engine = self.session.calibration
        self.assertTrue(engine.is_running)

        self.session.start_game(self.ENVELOPE)

        self.assertFalse(engine.is_running)
        self.assertEqual(self.calibrated, [])

    def test_teardown_cancels_running_step(self):
        self.clock.at_ms(0)
        self.session.start_calibration_step(CalibrationStep.NOISE_AMPLITUDE)
        engine = self.session.calibration

        self.session.teardown()

        self.assertFalse(engine.is_running)
        self.assertIsNone(self.session.calibration)

    def test_loud_whistle_moves_paddle(self):
        self.session.start_game(self.ENVELOPE)
        self.audio.tone(1500, 200)
        self.scheduler.run_frame()

        self.assertAlmostEqual(self.game_frames[-1].paddle_x, 225.0)

    def test_game_over_stops_loop(self):
        self.session.start_game(self.ENVELOPE)
        state = self.session.game_state
        self.session.game_state = replace(
            state,
            score=4,
            ball=replace(state.ball, x=290, y=296, dy=3),
            paddle=replace(state.paddle, x=0),
        )
        self.scheduler.run_frame()

        self.assertEqual(self.game_overs, [4])
        self.assertEqual(self.session.mode, SessionMode.GAME_OVER)
        self.assertEqual(self.session.last_score, 4)
        self.assertFalse(self.session.loop.running)
        self.assertEqual(self.scheduler.pending, {})
        self.assertEqual(self.scheduler.run_frame(), 0)

    def test_report_game_over_outside_play_raises(self):
        with self.assertRaises(SessionStateError):
            self.session.report_game_over(3)

    def test_play_again_reuses_envelope(self):
        self.session.start_game(self.ENVELOPE)
        self.session.report_game_over(0)
        self.session.start_game()
        self.assertEqual(self.session.envelope, self.ENVELOPE)
        self.assertEqual(self.session.mode, SessionMode.PLAYING)

    def test_teardown_releases_audio_once_and_stops_ticks(self):
        self.session.start_game(self.ENVELOPE)
        self.scheduler.run_frame()
        frames_before = len(self.game_frames)

        self.session.teardown()
        self.session.teardown()

        self.assertEqual(self.audio.release_calls, 1)
        self.assertEqual(self.scheduler.run_frame(), 0)
        self.assertEqual(len(self.game_frames), frames_before)
        self.assertEqual(self.session.mode, SessionMode.CLOSED)
        with self.assertRaises(SessionStateError):
            self.session.open_calibration()


if __name__ == "__main__":
    unittest.main()
