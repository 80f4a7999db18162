from __future__ import annotations

from enum import Enum


class VelocityUnit(str, Enum):
    RPM = "rpm"
    TURNS_PER_S = "turn/s"


class AccelUnit(str, Enum):
    RPM_PER_S = "rpm/s"
    TURNS_PER_S2 = "turn/s^2"


class MotorInterface:
    """Capability set of one controllable axis.

    Implementations:
    - odrive: one ODrive axis (axis0/axis1) via the odrive Python API.
    - sim: in-process simulated axis for dry runs.

    Every method may raise HardwareFaultError.
    """

    label: str = "?"

    def clear_faults(self) -> None:
        raise NotImplementedError

    def clear_motion_stop(self) -> None:
        raise NotImplementedError

    def request_enable(self, enable: bool) -> None:
        raise NotImplementedError

    def is_ready(self) -> bool:
        raise NotImplementedError

    def homing_supported(self) -> bool:
        """Whether a homing sequence is configured for this axis."""

        return False

    def already_homed(self) -> bool:
        return False

    def initiate_homing(self) -> None:
        raise NotImplementedError

    def was_homed(self) -> bool:
        raise NotImplementedError

    def set_velocity_units(self, unit: VelocityUnit) -> None:
        raise NotImplementedError

    def set_accel_units(self, unit: AccelUnit) -> None:
        raise NotImplementedError

    def set_accel_limit(self, value: float) -> None:
        raise NotImplementedError

    def set_velocity_limit(self, value: float) -> None:
        raise NotImplementedError

    def command_velocity(self, value: float) -> None:
        """Fire-and-forget velocity command in the configured unit."""

        raise NotImplementedError


class MotorBus:
    """An opened set of ports, each holding an ordered list of axes.

    open() raises NoHardwareFoundError when discovery comes back empty.
    close() is best-effort: it idles every axis and releases the ports.
    """

    def open(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def ports(self) -> list[str]:
        raise NotImplementedError

    def axes(self, port_index: int) -> list[MotorInterface]:
        raise NotImplementedError

    def __enter__(self):
        try:
            self.open()
        except BaseException:
            # open() may fail after some devices are already held.
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
