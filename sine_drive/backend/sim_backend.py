from __future__ import annotations

import logging

from ..errors import HardwareFaultError, NoHardwareFoundError
from .base import AccelUnit, MotorBus, MotorInterface, VelocityUnit

_LOGGER = logging.getLogger(__name__)


class SimulatedAxis(MotorInterface):
    """Axis that answers like a healthy drive, without any hardware.

    Useful for exercising the full bring-up + run + shutdown sequence from
    the command line (``--backend sim``). Readiness and homing complete after
    a fixed number of polls.
    """

    def __init__(
        self,
        label: str,
        *,
        ready_after_polls: int = 3,
        homing_supported: bool = True,
        homed: bool = False,
        homed_after_polls: int = 5,
    ):
        self.label = label
        self.ready_after_polls = int(ready_after_polls)
        self.homed_after_polls = int(homed_after_polls)
        self._homing_supported = bool(homing_supported)
        self._homed = bool(homed)

        self.enabled = False
        self.faults_cleared = False
        self.homing_in_progress = False
        self.velocity_unit: VelocityUnit | None = None
        self.accel_unit: AccelUnit | None = None
        self.accel_limit: float | None = None
        self.velocity_limit: float | None = None
        self.commands: list[float] = []

        self._ready_polls = 0
        self._homing_polls = 0

    def clear_faults(self) -> None:
        self.faults_cleared = True

    def clear_motion_stop(self) -> None:
        return

    def request_enable(self, enable: bool) -> None:
        self.enabled = bool(enable)
        self._ready_polls = 0

    def is_ready(self) -> bool:
        if not self.enabled:
            return False
        self._ready_polls += 1
        return self._ready_polls > self.ready_after_polls

    def homing_supported(self) -> bool:
        return self._homing_supported

    def already_homed(self) -> bool:
        return self._homed

    def initiate_homing(self) -> None:
        if not self.enabled:
            raise HardwareFaultError(self.label, 1, "homing requested while disabled")
        self.homing_in_progress = True
        self._homing_polls = 0

    def was_homed(self) -> bool:
        if self.homing_in_progress:
            self._homing_polls += 1
            if self._homing_polls > self.homed_after_polls:
                self.homing_in_progress = False
                self._homed = True
        return self._homed

    def set_velocity_units(self, unit: VelocityUnit) -> None:
        self.velocity_unit = VelocityUnit(unit)

    def set_accel_units(self, unit: AccelUnit) -> None:
        self.accel_unit = AccelUnit(unit)

    def set_accel_limit(self, value: float) -> None:
        self.accel_limit = float(value)

    def set_velocity_limit(self, value: float) -> None:
        self.velocity_limit = float(value)

    def command_velocity(self, value: float) -> None:
        if not self.enabled and float(value) != 0.0:
            raise HardwareFaultError(self.label, 2, "velocity commanded while disabled")
        if self.velocity_limit is not None and abs(float(value)) > self.velocity_limit:
            raise HardwareFaultError(self.label, 3, f"velocity {value:.3f} beyond limit {self.velocity_limit:.3f}")
        self.commands.append(float(value))


class SimulatedBus(MotorBus):
    def __init__(self, *, port_count: int = 1, axes_per_port: int = 1, **axis_kwargs):
        self.port_count = int(port_count)
        self.axes_per_port = int(axes_per_port)
        self._axis_kwargs = axis_kwargs
        self._axes: list[list[SimulatedAxis]] = []
        self.is_open = False

    def open(self) -> None:
        if self.port_count <= 0 or self.axes_per_port <= 0:
            raise NoHardwareFoundError("No simulated ports configured")
        self._axes = [
            [SimulatedAxis(f"port{p}/axis{a}", **self._axis_kwargs) for a in range(self.axes_per_port)]
            for p in range(self.port_count)
        ]
        self.is_open = True
        _LOGGER.info("Simulated bus open: %d port(s), %d axis/port", self.port_count, self.axes_per_port)

    def close(self) -> None:
        for port_axes in self._axes:
            for axis in port_axes:
                axis.enabled = False
        self.is_open = False

    def ports(self) -> list[str]:
        return [f"sim{p}" for p in range(len(self._axes))]

    def axes(self, port_index: int) -> list[MotorInterface]:
        return list(self._axes[port_index])
