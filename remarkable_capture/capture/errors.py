#!/usr/bin/env python3
"""Capture error taxonomy

Every failure carries a machine-readable ``kind`` next to its human-readable
message so callers can tell a bad address from a dead SSH session.
"""

from typing import Optional


class CaptureError(RuntimeError):
    """Base class for all capture failures"""

    kind = "capture"


class ValidationError(CaptureError, ValueError):
    kind = "validation"


class UnreachableError(CaptureError):
    kind = "unreachable"


class DirectoryError(CaptureError):
    kind = "directory"


class SessionConnectionError(CaptureError):
    kind = "connection"

    def __init__(self, message: str, uses_password: bool = False):
        if uses_password:
            message += ". Ensure sshpass is installed and credentials are correct."
        else:
            message += ". Ensure SSH key authentication is set up for the device."
        super().__init__(message)
        self.uses_password = uses_password


class LimiterError(CaptureError):
    kind = "limiter"


class TranscodeError(CaptureError):
    kind = "transcode"

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class CaptureTimeoutError(CaptureError):
    kind = "timeout"


class CaptureCancelledError(CaptureError):
    kind = "cancelled"
