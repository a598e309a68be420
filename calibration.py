"""
Whistlenoid - Calibration Engine
Samples the player's voice level, the room's noise level and the whistled
frequency range over timed steps, and reduces the samples into the envelope
that drives the paddle.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional

from config import CalibrationConfig
from frequency_utils import find_peak
from logging_utils import log_event
from spectrum import SpectrumSnapshot


class CalibrationStep(Enum):
    VOICE_AMPLITUDE = "voiceAmplitude"
    NOISE_AMPLITUDE = "noiseAmplitude"
    FREQUENCY_RANGE = "frequencyRange"


CALIBRATION_STEPS: tuple[CalibrationStep, ...] = (
    CalibrationStep.VOICE_AMPLITUDE,
    CalibrationStep.NOISE_AMPLITUDE,
    CalibrationStep.FREQUENCY_RANGE,
)


class CalibrationPhase(Enum):
    IDLE = "idle"
    WARMUP = "warmup"
    SAMPLING = "sampling"
    FINISHED = "finished"


class CalibrationInProgress(RuntimeError):
    """Raised when a step is started while another one is still running."""


@dataclass(frozen=True)
class CalibrationResult:
    min_freq: float = 0.0
    max_freq: float = 0.0
    voice_amplitude: float = 0.0
    noise_amplitude: float = 0.0
    amplitude_threshold: float = 0.0

    @property
    def is_complete(self) -> bool:
        return (
            self.min_freq > 0
            and self.max_freq > 0
            and self.voice_amplitude > 0
            and self.noise_amplitude > 0
            and self.amplitude_threshold > 0
        )


EMPTY_RESULT = CalibrationResult()


@dataclass
class CalibrationState:
    """Raw samples gathered so far, one sequence per step."""
    frequencies: list[float] = field(default_factory=list)
    voice_amplitudes: list[float] = field(default_factory=list)
    noise_amplitudes: list[float] = field(default_factory=list)

    def samples_for(self, step: CalibrationStep) -> list[float]:
        """The sequence a step writes to."""
        if step is CalibrationStep.VOICE_AMPLITUDE:
            return self.voice_amplitudes
        if step is CalibrationStep.NOISE_AMPLITUDE:
            return self.noise_amplitudes
        if step is CalibrationStep.FREQUENCY_RANGE:
            return self.frequencies
        raise ValueError(f"Unknown calibration step: {step!r}")

    def restart(self, step: CalibrationStep) -> None:
        self.samples_for(step).clear()


def is_step_complete(state: CalibrationState, step: CalibrationStep) -> bool:
    return len(state.samples_for(step)) > 0


def _median(values: list[float]) -> float:
    # Element at n // 2 (upper middle for even n), no averaging
    return values[len(values) // 2] if values else 0.0


def _percentile(values: list[float], fraction: float) -> float:
    # Nearest rank by truncation, no interpolation
    return values[int(len(values) * fraction)] if values else 0.0


def evaluate_state(state: CalibrationState) -> CalibrationResult:
    frequencies = sorted(state.frequencies)
    voice = sorted(state.voice_amplitudes)
    noise = sorted(state.noise_amplitudes)

    voice_amplitude = float(_median(voice))
    noise_amplitude = float(_median(noise))
    return CalibrationResult(
        min_freq=float(_percentile(frequencies, 0.1)),
        max_freq=float(_percentile(frequencies, 0.9)),
        voice_amplitude=voice_amplitude,
        noise_amplitude=noise_amplitude,
        amplitude_threshold=(voice_amplitude + noise_amplitude) / 2,
    )


@dataclass(frozen=True)
class UsedValue:
    """The sample recorded on a tick, for display."""
    kind: Literal["amplitude", "frequency"]
    value: float


@dataclass(frozen=True)
class CalibrationTick:
    result: CalibrationResult
    phase: CalibrationPhase
    step: Optional[CalibrationStep] = None
    elapsed_ms: Optional[float] = None
    used_value: Optional[UsedValue] = None
    finished: Optional[CalibrationResult] = None   # Set only on the tick that ends a step


class CalibrationEngine:
    """Timed step machine over a CalibrationState.

    Idle -> start(step) -> warmup -> sampling -> finished (back to idle).
    The caller passes the result of the previous tick into tick(); the
    frequency-range step filters against that result's threshold.
    """

    def __init__(self, config: CalibrationConfig | None = None, state: CalibrationState | None = None):
        self.config = config or CalibrationConfig()
        self.state = state if state is not None else CalibrationState()
        self.step: Optional[CalibrationStep] = None
        self.started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.step is not None

    def start(self, step: CalibrationStep, now_ms: float) -> None:
        if self.is_running:
            raise CalibrationInProgress(f"Calibration step {self.step.value} is still running")
        self.state.restart(step)
        self.step = step
        self.started_at = now_ms
        log_event("INFO", "Calibration", "Step started", step=step.value)

    def cancel(self) -> None:
        """Abandon the running step. Samples it already recorded are kept."""
        if not self.is_running:
            return
        log_event("INFO", "Calibration", "Step cancelled", step=self.step.value,
                  samples=len(self.state.samples_for(self.step)))
        self.step = None
        self.started_at = None

    def evaluate(self) -> CalibrationResult:
        return evaluate_state(self.state)

    def phase_at(self, elapsed_ms: float) -> CalibrationPhase:
        warmup = self.config.warmup_ms
        if elapsed_ms < warmup:
            return CalibrationPhase.WARMUP
        if elapsed_ms <= warmup + self.config.calibration_ms:
            return CalibrationPhase.SAMPLING
        return CalibrationPhase.FINISHED

    def tick(
        self,
        snapshot: SpectrumSnapshot,
        now_ms: float,
        previous_result: CalibrationResult,
    ) -> CalibrationTick:
        if not self.is_running:
            return CalibrationTick(result=self.evaluate(), phase=CalibrationPhase.IDLE)

        step = self.step
        elapsed = now_ms - self.started_at
        phase = self.phase_at(elapsed)

        if phase is CalibrationPhase.WARMUP:
            return CalibrationTick(result=self.evaluate(), phase=phase, step=step, elapsed_ms=elapsed)

        if phase is CalibrationPhase.FINISHED:
            result = self.evaluate()
            self.step = None
            self.started_at = None
            log_event(
                "INFO",
                "Calibration",
                "Step finished",
                step=step.value,
                samples=len(self.state.samples_for(step)),
                min_freq=f"{result.min_freq:.1f}",
                max_freq=f"{result.max_freq:.1f}",
                threshold=f"{result.amplitude_threshold:.1f}",
            )
            return CalibrationTick(
                result=result, phase=phase, step=step, elapsed_ms=elapsed, finished=result
            )

        peak = find_peak(snapshot)
        used_value = None
        if step is CalibrationStep.FREQUENCY_RANGE:
            if (
                peak.amplitude > previous_result.amplitude_threshold
                and peak.frequency > self.config.lowest_freq
            ):
                self.state.frequencies.append(peak.frequency)
                used_value = UsedValue("frequency", peak.frequency)
        else:
            self.state.samples_for(step).append(peak.amplitude)
            used_value = UsedValue("amplitude", peak.amplitude)

        return CalibrationTick(
            result=self.evaluate(), phase=phase, step=step, elapsed_ms=elapsed, used_value=used_value
        )
