from __future__ import annotations


class SineDriveError(RuntimeError):
    """Base error for the sine-drive app."""


class CriticalDriveError(SineDriveError):
    """A critical error that must stop motor output and exit."""


class NoHardwareFoundError(CriticalDriveError):
    """Raised when bus discovery finds no motor controller."""


class EnableTimeoutError(CriticalDriveError):
    """The axis never reported ready after the enable request."""

    def __init__(self, axis: str, timeout_ms: float | None = None):
        self.axis = axis
        self.timeout_ms = timeout_ms
        msg = f"Axis {axis} failed to enable"
        if timeout_ms is not None:
            msg += f" within {timeout_ms:.0f} ms"
        super().__init__(msg)


class HomingTimeoutError(CriticalDriveError):
    """The axis never reported homed after homing was initiated."""

    def __init__(self, axis: str, timeout_ms: float | None = None):
        self.axis = axis
        self.timeout_ms = timeout_ms
        msg = f"Axis {axis} homing timed out"
        if timeout_ms is not None:
            msg += f" after {timeout_ms:.0f} ms"
        super().__init__(msg)


class HardwareFaultError(CriticalDriveError):
    """Any failure reported by the motor controller layer."""

    def __init__(self, axis: str, code: int, message: str):
        self.axis = axis
        self.code = int(code)
        self.message = message
        super().__init__(f"Axis {axis}: fault code=0x{self.code & 0xFFFFFFFF:08X}: {message}")
