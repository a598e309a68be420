"""
Whistlenoid - Main Application
Qt window with the calibration spectrum view and the voice-controlled
brick-breaker canvas.
"""

import sys
from typing import Optional

import numpy as np
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QStackedWidget, QMessageBox,
)
from PyQt6.QtCore import Qt, QTimer, QRectF
from PyQt6.QtGui import QColor, QPainter, QBrush, QFont

# PyQtGraph for the live calibration spectrum
import pyqtgraph as pg
pg.setConfigOptions(antialias=False, useOpenGL=False)

from audio_engine import AudioEngine
from audio_source import PermissionDenied
from calibration import CalibrationResult, CalibrationStep, CALIBRATION_STEPS
from calibration_wiring import (
    countdown_text,
    start_game_enabled,
    step_button_states,
    step_message,
)
from config import Config
from config_persistence import save_config
from game_loop import GameFrame
from logging_utils import log_event
from physics import GameGeometry
from session import CalibrationFrame, GameSession, SessionMode


class QtFrameScheduler:
    """One single-shot QTimer per requested frame."""

    def __init__(self, frame_rate: int = 60):
        self.interval_ms = max(1, int(round(1000 / frame_rate)))
        # Timers have no Qt parent, so keep them alive until they fire
        self._timers: set[QTimer] = set()

    def request_frame(self, callback) -> QTimer:
        timer = QTimer()
        timer.setSingleShot(True)
        timer.setTimerType(Qt.TimerType.PreciseTimer)

        def _fire():
            self._timers.discard(timer)
            callback()

        timer.timeout.connect(_fire)
        self._timers.add(timer)
        timer.start(self.interval_ms)
        return timer

    def cancel_frame(self, handle: QTimer) -> None:
        handle.stop()
        self._timers.discard(handle)


class SpectrumView(pg.PlotWidget):
    """Byte spectrum bars with the calibration levels and band drawn over them."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setBackground('#000000')
        self.setMouseEnabled(x=False, y=False)
        self.setMenuEnabled(False)
        self.showGrid(x=False, y=False, alpha=0)
        self.hideAxis('left')
        self.setLabel('bottom', 'Hz')
        self.setYRange(0, 300)

        self.bars = pg.BarGraphItem(x=np.zeros(1), height=np.zeros(1), width=1.0, brush=pg.mkBrush(200, 120, 50))
        self.addItem(self.bars)

        def _hline(color):
            line = pg.InfiniteLine(angle=0, movable=False, pen=pg.mkPen(color, width=1))
            line.hide()
            self.addItem(line)
            return line

        def _vline(color):
            line = pg.InfiniteLine(angle=90, movable=False, pen=pg.mkPen(color, width=1))
            line.hide()
            self.addItem(line)
            return line

        self.voice_line = _hline('#00C000')
        self.noise_line = _hline('#FF3232')
        self.threshold_line = _hline('#FFA500')
        self.min_freq_line = _vline('#3264FF')
        self.max_freq_line = _vline('#3264FF')
        self.used_amplitude_line = _hline('#FFFFFF')
        self.used_frequency_line = _vline('#FFFFFF')

        self.countdown = pg.TextItem("", color='#FFFFFF', anchor=(0, 0))
        self.countdown.setPos(0, 300)
        self.addItem(self.countdown)

    @staticmethod
    def _place(line, value: float) -> None:
        if value > 0:
            line.setValue(value)
            line.show()
        else:
            line.hide()

    def update_frame(self, frame: CalibrationFrame, countdown: Optional[str]) -> None:
        snapshot = frame.snapshot
        freqs = snapshot.bin_frequencies()
        self.bars.setOpts(x=freqs, height=snapshot.magnitudes.astype(np.float32),
                          width=snapshot.bin_frequency_step)
        self.setXRange(0, float(freqs[-1]) if len(freqs) else 1.0, padding=0)

        result = frame.result
        self._place(self.voice_line, result.voice_amplitude)
        self._place(self.noise_line, result.noise_amplitude)
        self._place(self.threshold_line, result.amplitude_threshold)
        self._place(self.min_freq_line, result.min_freq)
        self._place(self.max_freq_line, result.max_freq)

        used = frame.used_value
        self._place(self.used_amplitude_line, used.value if used and used.kind == "amplitude" else 0.0)
        self._place(self.used_frequency_line, used.value if used and used.kind == "frequency" else 0.0)

        self.countdown.setText(countdown or "")


class GameCanvas(QWidget):
    """Draws paddle, ball, bricks and score, scaled to the widget size."""

    def __init__(self, geometry: GameGeometry, parent=None):
        super().__init__(parent)
        self.geometry = geometry
        self.frame: Optional[GameFrame] = None
        self.setMinimumSize(int(geometry.width), int(geometry.height))

    def show_frame(self, frame: GameFrame) -> None:
        self.frame = frame
        self.update()

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.fillRect(self.rect(), QColor(255, 255, 255))

        g = self.geometry
        painter.scale(self.width() / g.width, self.height() / g.height)
        frame = self.frame
        if frame is None:
            painter.end()
            return

        painter.setPen(Qt.PenStyle.NoPen)

        painter.setBrush(QBrush(QColor('#0000FF')))
        painter.drawRect(QRectF(frame.paddle_x, g.paddle_y, g.paddle_width, g.paddle_height))

        painter.setBrush(QBrush(QColor('#FF0000')))
        r = g.ball_radius
        painter.drawEllipse(QRectF(frame.ball.x - r, frame.ball.y - r, 2 * r, 2 * r))

        painter.setBrush(QBrush(QColor('#00FF00')))
        for brick in frame.bricks:
            if brick.alive:
                painter.drawRect(QRectF(brick.x, brick.y, g.brick_width, g.brick_height))

        painter.setPen(QColor('#000000'))
        painter.setFont(QFont('Arial', 12))
        painter.drawText(8, 20, f"Score: {frame.score}")
        painter.end()


class WhistlenoidWindow(QMainWindow):
    def __init__(self, config: Config):
        super().__init__()
        self.config = config
        self.setWindowTitle("Whistlenoid")

        self.audio_engine = AudioEngine(config.audio)
        self.session = GameSession(
            config,
            self.audio_engine,
            QtFrameScheduler(config.frame_rate),
            on_calibration_frame=self._on_calibration_frame,
            on_game_frame=self._on_game_frame,
            on_calibrated=self._on_calibrated,
            on_game_over=self._on_game_over,
            on_mode_changed=self._on_mode_changed,
        )

        self._build_ui()
        self.session.open_audio()
        self._refresh_controls()

    def _build_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout(central)

        menu_row = QHBoxLayout()
        self.calibrate_btn = QPushButton("Calibrate")
        self.calibrate_btn.clicked.connect(self._on_calibrate)
        self.start_btn = QPushButton("Start Game")
        self.start_btn.clicked.connect(self._on_start_game)
        menu_row.addWidget(self.calibrate_btn)
        menu_row.addWidget(self.start_btn)
        layout.addLayout(menu_row)

        self.status_label = QLabel("")
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        step_row = QHBoxLayout()
        self.step_buttons: dict[CalibrationStep, QPushButton] = {}
        for step in CALIBRATION_STEPS:
            btn = QPushButton()
            btn.clicked.connect(lambda _checked=False, s=step: self._on_step(s))
            step_row.addWidget(btn)
            self.step_buttons[step] = btn
        layout.addLayout(step_row)

        self.message_label = QLabel("")
        self.message_label.setWordWrap(True)
        layout.addWidget(self.message_label)

        self.views = QStackedWidget()
        self.menu_view = QLabel("Calibrate, then whistle to steer the paddle.")
        self.menu_view.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.spectrum_view = SpectrumView()
        self.game_canvas = GameCanvas(self.session.geometry)
        self.views.addWidget(self.menu_view)
        self.views.addWidget(self.spectrum_view)
        self.views.addWidget(self.game_canvas)
        layout.addWidget(self.views, stretch=1)

        self.setCentralWidget(central)
        self.resize(640, 720)

    # ---------- Controls ----------
    def _refresh_controls(self) -> None:
        session = self.session
        if session.audio_error is not None:
            if isinstance(session.audio_error, PermissionDenied):
                self.status_label.setText("Microphone access was denied. Allow it and restart to play.")
            else:
                self.status_label.setText(f"No microphone available: {session.audio_error}")
        elif session.mode is SessionMode.GAME_OVER:
            self.status_label.setText(f"Game Over! Final Score: {session.last_score}")
        else:
            self.status_label.setText("")

        self.calibrate_btn.setEnabled(session.can_calibrate and session.mode is not SessionMode.CALIBRATING)
        envelope = session.envelope
        self.start_btn.setEnabled(
            start_game_enabled(session.audio_ready, envelope is not None and envelope.is_complete)
            and session.mode is not SessionMode.PLAYING
        )

        calibrating = session.mode is SessionMode.CALIBRATING and session.calibration is not None
        for btn in self.step_buttons.values():
            btn.setVisible(calibrating)
        self.message_label.setVisible(calibrating)
        if calibrating:
            engine = session.calibration
            for state in step_button_states(engine.state, engine.step):
                btn = self.step_buttons[state.step]
                btn.setText(state.text)
                btn.setEnabled(state.enabled)
            self.message_label.setText(step_message(engine.step))

    def _on_calibrate(self) -> None:
        self.session.open_calibration()
        self._refresh_controls()

    def _on_step(self, step: CalibrationStep) -> None:
        self.session.start_calibration_step(step)
        self._refresh_controls()

    def _on_start_game(self) -> None:
        self.session.start_game()
        self._refresh_controls()

    # ---------- Session callbacks ----------
    def _on_mode_changed(self, mode: SessionMode) -> None:
        if mode is SessionMode.CALIBRATING:
            self.views.setCurrentWidget(self.spectrum_view)
        elif mode is SessionMode.PLAYING:
            self.views.setCurrentWidget(self.game_canvas)
        elif mode is SessionMode.MENU:
            self.views.setCurrentWidget(self.menu_view)

    def _on_calibration_frame(self, frame: CalibrationFrame) -> None:
        self.spectrum_view.update_frame(
            frame, countdown_text(frame.phase, frame.elapsed_ms, self.config.calibration)
        )

    def _on_calibrated(self, result: CalibrationResult) -> None:
        self._refresh_controls()

    def _on_game_frame(self, frame: GameFrame) -> None:
        self.game_canvas.show_frame(frame)

    def _on_game_over(self, score: int) -> None:
        self._refresh_controls()
        QMessageBox.information(self, "Game Over", f"Game Over! Final Score: {score}")

    def closeEvent(self, event):
        """Stop the loop and release the microphone before the window goes away"""
        self.session.teardown()
        save_config(self.config)
        event.accept()


def main():
    """Main entry point - backup if not launched via run.py"""
    from config_persistence import load_config

    app = QApplication(sys.argv)
    app.setStyle('Fusion')
    window = WhistlenoidWindow(load_config())
    log_event("INFO", "Startup", "Initialization complete. Starting GUI...")
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
