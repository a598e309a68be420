# Whistlenoid Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

# Reference analyser settings (browser AnalyserNode defaults)
DEFAULT_FFT_SIZE = 2048
MIN_FFT_SIZE = 512

@dataclass
class AudioConfig:
    """Microphone capture and spectrum analysis settings"""
    sample_rate: int = 44100
    buffer_size: int = 512            # Frames per sounddevice callback
    channels: int = 1
    # Device index - None means use system default input
    device_index: int | None = None
    fft_size: int = DEFAULT_FFT_SIZE  # Transform size, power of two >= 512
    smoothing: float = 0.8            # Frame-to-frame magnitude smoothing (0.0-1.0)
    min_decibels: float = -100.0      # dB mapped to byte 0
    max_decibels: float = -30.0       # dB mapped to byte 255

@dataclass
class CalibrationConfig:
    """Calibration step timing and filtering"""
    warmup_ms: float = 5000.0         # Time to get ready before sampling starts
    calibration_ms: float = 10000.0   # Sampling window length
    lowest_freq: float = 200.0        # Frequencies at/below this are ignored for range sampling (Hz)

@dataclass
class GameConfig:
    """Playfield geometry. Sizes not listed here are derived from the canvas."""
    canvas_width: float = 300.0
    canvas_height: float = 300.0
    brick_rows: int = 5
    brick_columns: int = 8
    paddle_bottom_gap: float = 10.0   # Space between paddle and canvas bottom
    ball_start_height: float = 30.0   # Ball starts this far above the canvas bottom

@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    audio: AudioConfig = field(default_factory=AudioConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    game: GameConfig = field(default_factory=GameConfig)

    # Global
    frame_rate: int = 60              # Loop cadence (frames per second)
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


# Fields whose default is None and which also accept an int
_NULLABLE_INT_FIELDS = {"device_index"}


def _coerce(current, value):
    """Convert `value` to the type of the default it replaces.
    Raises TypeError/ValueError when it does not fit."""
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise TypeError(f"expected bool, got {type(value).__name__}")
        return value
    if isinstance(current, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise TypeError(f"expected number, got {type(value).__name__}")
        coerced = type(current)(value)
        if coerced != coerced:
            raise ValueError("NaN is not allowed")
        return coerced
    if isinstance(current, str):
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        return value
    raise TypeError(f"unsupported field type {type(current).__name__}")


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored. Values that do not fit the field's type are
    logged and the field keeps its current value."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARNING", "Config", "Section is not an object, keeping defaults", key=key)
            continue

        if key in _NULLABLE_INT_FIELDS:
            if value is None or (isinstance(value, int) and not isinstance(value, bool)):
                setattr(target, key, value)
            else:
                log_event("WARNING", "Config", "Invalid value, keeping default", key=key, value=value)
            continue

        try:
            setattr(target, key, _coerce(current, value))
        except (TypeError, ValueError, OverflowError):
            log_event("WARNING", "Config", "Invalid value, keeping default", key=key, value=value)


def _reset_unless(section, defaults, name: str, valid) -> None:
    if not valid(getattr(section, name)):
        log_event("WARNING", "Config", "Out of range, using default",
                  key=name, value=getattr(section, name))
        setattr(section, name, getattr(defaults, name))


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Replaces out-of-range values with defaults and bumps version.
    Expects the field types already enforced by apply_dict_to_dataclass."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    defaults = Config()

    if version < CURRENT_CONFIG_VERSION:
        log_event("INFO", "Config", "Migrating", from_version=version, to_version=CURRENT_CONFIG_VERSION)

    audio, audio_defaults = config.audio, defaults.audio
    # Transform size must stay a power of two the analyser accepts
    _reset_unless(audio, audio_defaults, 'fft_size',
                  lambda v: v >= MIN_FFT_SIZE and is_power_of_two(v))
    _reset_unless(audio, audio_defaults, 'sample_rate', lambda v: v > 0)
    _reset_unless(audio, audio_defaults, 'buffer_size', lambda v: v > 0)
    _reset_unless(audio, audio_defaults, 'channels', lambda v: v >= 1)
    audio.smoothing = max(0.0, min(1.0, audio.smoothing))
    if audio.min_decibels >= audio.max_decibels:
        audio.min_decibels = audio_defaults.min_decibels
        audio.max_decibels = audio_defaults.max_decibels

    calibration, calibration_defaults = config.calibration, defaults.calibration
    _reset_unless(calibration, calibration_defaults, 'warmup_ms', lambda v: v >= 0)
    _reset_unless(calibration, calibration_defaults, 'calibration_ms', lambda v: v > 0)
    _reset_unless(calibration, calibration_defaults, 'lowest_freq', lambda v: v >= 0)

    game, game_defaults = config.game, defaults.game
    _reset_unless(game, game_defaults, 'canvas_width', lambda v: v > 0)
    _reset_unless(game, game_defaults, 'canvas_height', lambda v: v > 0)
    _reset_unless(game, game_defaults, 'brick_rows', lambda v: v >= 0)
    _reset_unless(game, game_defaults, 'brick_columns', lambda v: v >= 0)
    _reset_unless(game, game_defaults, 'paddle_bottom_gap', lambda v: v >= 0)
    _reset_unless(game, game_defaults, 'ball_start_height', lambda v: 0 <= v <= game.canvas_height)

    config.frame_rate = max(1, min(240, config.frame_rate))
    if config.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "WARN", "ERROR"):
        config.log_level = defaults.log_level

    config.version = CURRENT_CONFIG_VERSION
