#!/usr/bin/env python3
"""
Whistlenoid - whistle-controlled brick breaker

Calibrates to the player's whistle, then steers the paddle by pitch.
"""

import argparse
import cProfile
import sys
import time

from PyQt6.QtWidgets import QApplication

from logging_utils import add_log_file, log_event, set_log_level


def run_app(app_argv: list[str], args: argparse.Namespace) -> int:
    app = QApplication(app_argv)
    app.setStyle("Fusion")

    t_main = time.perf_counter()
    # Import heavy modules (numpy, scipy, pyqtgraph, sounddevice) after the QApplication exists
    from config_persistence import load_config
    from main import WhistlenoidWindow

    log_event("INFO", "Startup", "Loaded main module",
              ms=f"{(time.perf_counter() - t_main) * 1000:.0f}")

    config = load_config()
    if args.device is not None:
        config.audio.device_index = args.device
    if args.fps is not None:
        config.frame_rate = max(1, args.fps)
    set_log_level(args.log_level or config.log_level)
    if args.log_file:
        log_event("INFO", "Startup", "Logging to file", path=add_log_file(args.log_file))

    window = WhistlenoidWindow(config)
    log_event("INFO", "Startup", "Initialization complete. Starting GUI...")
    window.show()

    return app.exec()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Whistlenoid")
    parser.add_argument(
        "--device",
        type=int,
        default=None,
        help="Input device index (see list_audio_devices.py; default: system input)",
    )
    parser.add_argument(
        "--fps",
        type=int,
        default=None,
        help="Frame rate of the calibration/game loop (default: from config, 60)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write log output to this file",
    )
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable cProfile and save stats to --profile-out",
    )
    parser.add_argument(
        "--profile-out",
        default="profile.prof",
        help="Path to save cProfile stats (default: profile.prof)",
    )
    args = parser.parse_args()

    # Keep Qt argument list clean
    app_argv = [sys.argv[0]]

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_app(app_argv, args)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_app(app_argv, args)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
