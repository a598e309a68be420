import math
from dataclasses import dataclass
from typing import Optional

from calibration import (
    CALIBRATION_STEPS,
    CalibrationPhase,
    CalibrationState,
    CalibrationStep,
    is_step_complete,
)
from config import CalibrationConfig


STEP_BUTTON_NAMES = {
    CalibrationStep.VOICE_AMPLITUDE: "Voice",
    CalibrationStep.NOISE_AMPLITUDE: "Noise",
    CalibrationStep.FREQUENCY_RANGE: "Range",
}

STEP_MESSAGES = {
    CalibrationStep.VOICE_AMPLITUDE: "Finding voice level. Make some noise. Whistling is recommended.",
    CalibrationStep.NOISE_AMPLITUDE: "Finding background noise level. Don't make any noise.",
    CalibrationStep.FREQUENCY_RANGE: "Finding frequency range. Whistle away! Alternate from high to low pitch.",
}

IDLE_MESSAGE = (
    "No calibration in progress but you can test your whistling. "
    "Single sharp spike is good, multiple spikes or wider frequency range is bad."
)


@dataclass(frozen=True)
class StepButtonState:
    step: CalibrationStep
    text: str
    enabled: bool


def step_button_states(
    state: CalibrationState, active_step: Optional[CalibrationStep]
) -> list[StepButtonState]:
    """Buttons unlock in order; none are usable while a step is running."""
    buttons = []
    for idx, step in enumerate(CALIBRATION_STEPS):
        verb = "Recalibrate" if is_step_complete(state, step) else "Calibrate"
        previous_done = idx == 0 or is_step_complete(state, CALIBRATION_STEPS[idx - 1])
        buttons.append(
            StepButtonState(
                step=step,
                text=f"{verb} {STEP_BUTTON_NAMES[step]}",
                enabled=active_step is None and previous_done,
            )
        )
    return buttons


def step_message(active_step: Optional[CalibrationStep]) -> str:
    return IDLE_MESSAGE if active_step is None else STEP_MESSAGES[active_step]


def countdown_text(
    phase: CalibrationPhase, elapsed_ms: Optional[float], config: CalibrationConfig
) -> Optional[str]:
    """Seconds left in the current phase, rounded up."""
    if elapsed_ms is None:
        return None
    if phase is CalibrationPhase.WARMUP:
        left = config.warmup_ms - elapsed_ms
        return f"Get ready! {math.ceil(left / 1000)}"
    if phase is CalibrationPhase.SAMPLING:
        left = config.warmup_ms + config.calibration_ms - elapsed_ms
        return f"Calibrating... {math.ceil(left / 1000)}"
    return None


def start_game_enabled(audio_ready: bool, envelope_complete: bool) -> bool:
    return audio_ready and envelope_complete
