"""Error taxonomy for the voice capture core."""

from __future__ import annotations


class VoiceError(Exception):
    """Base class for capture and transcription failures."""

    kind = "voice"


class PermissionDenied(VoiceError):
    kind = "permission-denied"


class DeviceUnavailable(VoiceError):
    kind = "device-unavailable"


class UnsupportedEnvironment(VoiceError):
    kind = "unsupported-environment"


class AudioUnavailable(UnsupportedEnvironment):
    """Raised when an analyzer is built on top of a missing or closed stream."""

    kind = "audio-unavailable"


class TranscriptionError(VoiceError):
    kind = "transcription"


class SessionAlreadyActive(VoiceError):
    kind = "session-active"


__all__ = [
    "VoiceError",
    "PermissionDenied",
    "DeviceUnavailable",
    "UnsupportedEnvironment",
    "AudioUnavailable",
    "TranscriptionError",
    "SessionAlreadyActive",
]
