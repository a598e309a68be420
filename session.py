"""
Whistlenoid - Session control
Owns the audio input for the session's lifetime and switches the frame loop
between calibrating and playing.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from audio_source import AudioAcquireError, AudioSource
from calibration import (
    EMPTY_RESULT,
    CalibrationEngine,
    CalibrationPhase,
    CalibrationResult,
    CalibrationStep,
    UsedValue,
)
from config import Config
from game_loop import FrameLoop, FrameScheduler, GameFrame, play_tick
from logging_utils import log_event
from physics import GameGeometry, GameState, new_game
from spectrum import SpectrumSnapshot


class SessionMode(Enum):
    MENU = "menu"
    CALIBRATING = "calibrating"
    PLAYING = "playing"
    GAME_OVER = "game-over"
    CLOSED = "closed"


class SessionStateError(RuntimeError):
    """A control-surface call that the current session mode does not allow."""


@dataclass(frozen=True)
class CalibrationFrame:
    """What the calibration view draws for one tick."""
    snapshot: SpectrumSnapshot
    result: CalibrationResult
    phase: CalibrationPhase
    step: Optional[CalibrationStep] = None
    elapsed_ms: Optional[float] = None
    used_value: Optional[UsedValue] = None


class GameSession:
    def __init__(
        self,
        config: Config,
        audio: AudioSource,
        scheduler: FrameScheduler,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_calibration_frame: Optional[Callable[[CalibrationFrame], None]] = None,
        on_game_frame: Optional[Callable[[GameFrame], None]] = None,
        on_calibrated: Optional[Callable[[CalibrationResult], None]] = None,
        on_game_over: Optional[Callable[[int], None]] = None,
        on_mode_changed: Optional[Callable[["SessionMode"], None]] = None,
    ):
        self.config = config
        self.audio = audio
        self.loop = FrameLoop(scheduler)
        self.geometry = GameGeometry.from_config(config.game)
        self._clock = clock

        self.on_calibration_frame = on_calibration_frame
        self.on_game_frame = on_game_frame
        self.on_calibrated = on_calibrated
        self.on_game_over = on_game_over
        self.on_mode_changed = on_mode_changed

        self.mode = SessionMode.MENU
        self.audio_ready = False
        self.audio_error: Optional[AudioAcquireError] = None

        # Calibration lives only while calibrating; the envelope outlives it
        self.calibration: Optional[CalibrationEngine] = None
        self.last_result: CalibrationResult = EMPTY_RESULT
        self.envelope: Optional[CalibrationResult] = None

        self.game_state: Optional[GameState] = None
        self.last_score: Optional[int] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _set_mode(self, mode: SessionMode) -> None:
        if mode is self.mode:
            return
        self.mode = mode
        if self.on_mode_changed:
            self.on_mode_changed(mode)

    # ---------- Audio ----------
    def open_audio(self) -> bool:
        """Acquire the microphone. Failure leaves calibration and play disabled."""
        if self.mode is SessionMode.CLOSED:
            raise SessionStateError("Session is closed")
        if self.audio_ready:
            return True
        try:
            self.audio.acquire()
        except AudioAcquireError as e:
            self.audio_error = e
            log_event("WARNING", "Session", "Audio unavailable", reason=type(e).__name__, error=e)
            return False
        self.audio_error = None
        self.audio_ready = True
        return True

    @property
    def can_calibrate(self) -> bool:
        return self.audio_ready and self.mode in (
            SessionMode.MENU, SessionMode.CALIBRATING, SessionMode.GAME_OVER
        )

    @property
    def can_start_game(self) -> bool:
        return (
            self.audio_ready
            and self.mode is not SessionMode.CLOSED
            and self.envelope is not None
            and self.envelope.is_complete
        )

    def _require_audio(self) -> None:
        if self.mode is SessionMode.CLOSED:
            raise SessionStateError("Session is closed")
        if not self.audio_ready:
            raise SessionStateError("Audio input is not available")

    # ---------- Calibration ----------
    def open_calibration(self) -> None:
        """Enter calibration with a fresh sample state and start the preview loop."""
        self._require_audio()
        if self.mode is SessionMode.CALIBRATING:
            return
        self.loop.stop()
        self.game_state = None
        self.calibration = CalibrationEngine(self.config.calibration)
        self.last_result = self.calibration.evaluate()
        self._set_mode(SessionMode.CALIBRATING)
        self.loop.start(self._calibration_step)

    def start_calibration_step(self, step: CalibrationStep) -> None:
        self._require_audio()
        if self.mode is not SessionMode.CALIBRATING:
            self.open_calibration()
        self.calibration.start(step, self._now_ms())

    def _calibration_step(self) -> bool:
        snapshot = self.audio.get_snapshot()
        tick = self.calibration.tick(snapshot, self._now_ms(), self.last_result)
        self.last_result = tick.result

        if tick.finished is not None:
            self.envelope = tick.finished
            if self.on_calibrated:
                self.on_calibrated(tick.finished)

        if self.on_calibration_frame:
            self.on_calibration_frame(
                CalibrationFrame(
                    snapshot=snapshot,
                    result=tick.result,
                    phase=tick.phase,
                    step=tick.step,
                    elapsed_ms=tick.elapsed_ms,
                    used_value=tick.used_value,
                )
            )
        return True

    def _discard_calibration(self) -> None:
        if self.calibration is not None:
            self.calibration.cancel()
        self.calibration = None

    # ---------- Game ----------
    def start_game(self, envelope: Optional[CalibrationResult] = None) -> None:
        self._require_audio()
        envelope = envelope or self.envelope
        if envelope is None:
            raise SessionStateError("No calibration envelope to play with")
        if not envelope.is_complete:
            log_event("WARNING", "Session", "Starting with an incomplete envelope",
                      min_freq=envelope.min_freq, max_freq=envelope.max_freq,
                      threshold=envelope.amplitude_threshold)

        self.loop.stop()
        self._discard_calibration()
        self.last_result = EMPTY_RESULT
        self.envelope = envelope
        self.game_state = new_game(self.geometry)
        self.last_score = None
        self._set_mode(SessionMode.PLAYING)
        log_event("INFO", "Session", "Game started",
                  min_freq=f"{envelope.min_freq:.1f}", max_freq=f"{envelope.max_freq:.1f}",
                  threshold=f"{envelope.amplitude_threshold:.1f}")
        self.loop.start(self._play_step)

    def _play_step(self) -> bool:
        snapshot = self.audio.get_snapshot()
        self.game_state, frame = play_tick(self.game_state, snapshot, self.envelope, self.geometry)
        if self.on_game_frame:
            self.on_game_frame(frame)
        if self.game_state.game_over:
            self.report_game_over(self.game_state.score)
            return False
        return True

    def report_game_over(self, score: int) -> None:
        if self.mode is not SessionMode.PLAYING:
            raise SessionStateError(f"No game running (mode={self.mode.value})")
        self.loop.stop()
        self.game_state = None
        self.last_score = score
        self._set_mode(SessionMode.GAME_OVER)
        log_event("INFO", "Session", "Game over", score=score)
        if self.on_game_over:
            self.on_game_over(score)

    # ---------- Shutdown ----------
    def teardown(self) -> None:
        """Stop the loop and release the microphone. Further calls are no-ops."""
        if self.mode is SessionMode.CLOSED:
            return
        self.loop.stop()
        self._discard_calibration()
        self.game_state = None
        if self.audio_ready:
            self.audio_ready = False
            self.audio.release()
        self._set_mode(SessionMode.CLOSED)
        log_event("INFO", "Session", "Closed")
