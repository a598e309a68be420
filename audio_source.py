from typing import Protocol

from spectrum import SpectrumSnapshot


class AudioAcquireError(Exception):
    """The microphone could not be opened."""


class PermissionDenied(AudioAcquireError):
    pass


class DeviceUnavailable(AudioAcquireError):
    pass


class AudioSource(Protocol):
    """What the session needs from a live audio input."""

    sample_rate: float
    transform_size: int

    def acquire(self) -> None: ...

    def release(self) -> None: ...

    def get_snapshot(self) -> SpectrumSnapshot: ...
