"""
Whistlenoid - Game Loop Driver
A frame loop that re-arms itself once per display frame, plus the pure
per-tick step used while playing.
"""

from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol

from calibration import CalibrationResult
from control_mapper import map_to_paddle_x
from frequency_utils import Peak, find_peak
from physics import Ball, Brick, GameGeometry, GameState, advance
from spectrum import SpectrumSnapshot


class FrameScheduler(Protocol):
    """Calls back once on the next frame; the returned handle cancels it."""

    def request_frame(self, callback: Callable[[], None]) -> object: ...

    def cancel_frame(self, handle: object) -> None: ...


class FrameLoop:
    """Runs `step` once per frame until it returns False or stop() is called.

    At most one frame is pending at any time.
    """

    def __init__(self, scheduler: FrameScheduler):
        self.scheduler = scheduler
        self._step: Optional[Callable[[], bool]] = None
        self._pending: Optional[object] = None

    @property
    def running(self) -> bool:
        return self._step is not None

    def start(self, step: Callable[[], bool]) -> bool:
        """Begin looping; returns False when a loop is already running."""
        if self.running:
            return False
        self._step = step
        self._schedule()
        return True

    def stop(self) -> None:
        self._step = None
        if self._pending is not None:
            handle, self._pending = self._pending, None
            self.scheduler.cancel_frame(handle)

    def _schedule(self) -> None:
        self._pending = self.scheduler.request_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._pending = None
        step = self._step
        if step is None:
            return
        keep_going = step()
        # step() may have stopped or replaced the loop itself
        if self._step is not step:
            return
        if keep_going:
            self._schedule()
        else:
            self._step = None


@dataclass(frozen=True)
class GameFrame:
    """What the game canvas draws for one tick."""
    paddle_x: float
    ball: Ball
    bricks: tuple[Brick, ...]
    score: int
    peak: Peak
    game_over: bool = False


def play_tick(
    state: GameState,
    snapshot: SpectrumSnapshot,
    envelope: CalibrationResult,
    geometry: GameGeometry,
) -> tuple[GameState, GameFrame]:
    """Sample -> map -> physics for one tick."""
    peak = find_peak(snapshot, envelope.min_freq, envelope.max_freq)
    paddle_x = map_to_paddle_x(peak, envelope, geometry.width, geometry.paddle_width)
    if paddle_x is not None:
        state = replace(state, paddle=replace(state.paddle, x=paddle_x))

    state = advance(state, geometry)
    frame = GameFrame(
        paddle_x=state.paddle.x,
        ball=state.ball,
        bricks=state.bricks,
        score=state.score,
        peak=peak,
        game_over=state.game_over,
    )
    return state, frame
