"""
Whistlenoid - Audio Engine
Captures the microphone with sounddevice and serves byte-scaled spectrum
snapshots on demand. The stream callback only fills a sample ring buffer;
the spectrum is computed on the caller's thread when a snapshot is read.
"""

import threading
import time
from typing import Optional

import numpy as np
import sounddevice as sd

from audio_source import AudioAcquireError, DeviceUnavailable, PermissionDenied
from config import AudioConfig
from logging_utils import log_event
from spectrum import SpectrumAnalyser, SpectrumSnapshot

_PERMISSION_HINTS = ("permission", "denied", "not authorized", "not permitted")


def classify_stream_error(error: Exception) -> AudioAcquireError:
    """Map a PortAudio failure onto the acquisition error the session reports."""
    text = str(error).lower()
    if any(hint in text for hint in _PERMISSION_HINTS):
        return PermissionDenied(str(error))
    return DeviceUnavailable(str(error))


class AudioEngine:
    def __init__(self, config: AudioConfig):
        self.config = config
        self.stream: Optional[sd.InputStream] = None
        self.running = False
        self.analyser: Optional[SpectrumAnalyser] = None
        # Rate reported by the open device; the configured rate until then
        self._device_sample_rate: Optional[float] = None

        # Ring buffer of the latest fft_size mono samples
        self._samples = np.zeros(config.fft_size, dtype=np.float32)
        self._samples_lock = threading.Lock()

        self._reset_session_stats()

    @property
    def sample_rate(self) -> float:
        if self._device_sample_rate is not None:
            return self._device_sample_rate
        return float(self.config.sample_rate)

    @property
    def transform_size(self) -> int:
        return int(self.config.fft_size)

    def _reset_session_stats(self) -> None:
        self._session_started_at = time.time()
        self._session_frame_count = 0
        self._session_peak_min: Optional[int] = None
        self._session_peak_max: Optional[int] = None
        self._session_peak_sum = 0

    def _update_session_stats(self, peak_level: int) -> None:
        self._session_frame_count += 1
        self._session_peak_sum += peak_level
        if self._session_peak_min is None or peak_level < self._session_peak_min:
            self._session_peak_min = peak_level
        if self._session_peak_max is None or peak_level > self._session_peak_max:
            self._session_peak_max = peak_level

    def _log_shutdown_summary(self) -> None:
        if self._session_frame_count <= 0:
            return

        elapsed_s = max(0.0, time.time() - self._session_started_at)
        peak_mean = self._session_peak_sum / float(self._session_frame_count)
        log_event(
            "INFO",
            "Audio",
            "Shutdown levels summary",
            frames=self._session_frame_count,
            seconds=f"{elapsed_s:.1f}",
            peak_min=self._session_peak_min,
            peak_max=self._session_peak_max,
            peak_mean=f"{peak_mean:.1f}",
        )

    def acquire(self) -> None:
        """Open and start the input stream. Raises AudioAcquireError on failure."""
        if self.running:
            return

        device_index = self.config.device_index
        try:
            device_info = sd.query_devices(device_index, kind='input')
        except (ValueError, sd.PortAudioError) as e:
            log_event("ERROR", "Audio", "No usable input device", device=device_index, error=e)
            raise DeviceUnavailable(str(e)) from e

        # Use the device's native rate so bin frequencies are right
        self._device_sample_rate = float(device_info['default_samplerate'])
        log_event("INFO", "Audio", "Using input device", device=device_info['name'],
                  sample_rate=f"{self._device_sample_rate:.0f}")

        analyser = SpectrumAnalyser(
            self.config.fft_size,
            self._device_sample_rate,
            smoothing=self.config.smoothing,
            min_decibels=self.config.min_decibels,
            max_decibels=self.config.max_decibels,
        )
        with self._samples_lock:
            self._samples = np.zeros(self.config.fft_size, dtype=np.float32)

        try:
            stream = sd.InputStream(
                device=device_index,
                channels=self.config.channels,
                samplerate=int(self._device_sample_rate),
                blocksize=self.config.buffer_size,
                dtype='float32',
                callback=self._audio_callback,
            )
        except sd.PortAudioError as e:
            self._device_sample_rate = None
            error = classify_stream_error(e)
            log_event("ERROR", "Audio", "Failed to open input stream", reason=type(error).__name__, error=e)
            raise error from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            self._device_sample_rate = None
            error = classify_stream_error(e)
            log_event("ERROR", "Audio", "Failed to start input stream", reason=type(error).__name__, error=e)
            raise error from e

        self.analyser = analyser
        self.stream = stream
        self.running = True
        self._reset_session_stats()
        log_event("INFO", "Audio", "Input capture started")

    def release(self) -> None:
        """Stop and close the stream. Safe to call more than once."""
        if self.stream is None:
            return
        stream, self.stream = self.stream, None
        self.running = False
        self._log_shutdown_summary()
        try:
            stream.stop()
        finally:
            stream.close()
        log_event("INFO", "Audio", "Stopped")

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            log_event("DEBUG", "Audio", "Stream status", status=status)
        if indata.shape[1] > 1:
            mono = np.mean(indata, axis=1)
        else:
            mono = indata[:, 0]

        with self._samples_lock:
            count = min(len(mono), len(self._samples))
            if count == 0:
                return
            self._samples = np.roll(self._samples, -count)
            self._samples[-count:] = mono[-count:]

    def get_snapshot(self) -> SpectrumSnapshot:
        """Spectrum of the most recent fft_size samples (all zeros before capture starts)."""
        if self.analyser is None:
            return SpectrumSnapshot.silent(self.transform_size // 2, self.sample_rate / self.transform_size)

        with self._samples_lock:
            samples = self._samples.copy()

        snapshot = self.analyser.analyse(samples)
        self._update_session_stats(int(snapshot.magnitudes.max(initial=0)))
        return snapshot


if __name__ == "__main__":
    from config import Config
    from frequency_utils import find_peak

    engine = AudioEngine(Config().audio)
    engine.acquire()
    log_event("INFO", "Audio", "Whistle into the microphone (Ctrl+C to stop)...")
    try:
        while True:
            peak = find_peak(engine.get_snapshot())
            log_event("INFO", "Audio", "Peak", freq_hz=f"{peak.frequency:.0f}", amplitude=f"{peak.amplitude:.0f}")
            time.sleep(0.1)
    except KeyboardInterrupt:
        engine.release()
