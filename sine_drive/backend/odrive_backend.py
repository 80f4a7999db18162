from __future__ import annotations

import logging
import sys
from typing import Any, Callable, TypeVar

import odrive
from odrive.enums import (
    AXIS_STATE_CLOSED_LOOP_CONTROL,
    AXIS_STATE_HOMING,
    AXIS_STATE_IDLE,
    CONTROL_MODE_VELOCITY_CONTROL,
    INPUT_MODE_VEL_RAMP,
)
from odrive.utils import dump_errors

from ..errors import HardwareFaultError, NoHardwareFoundError
from .base import AccelUnit, MotorBus, MotorInterface, VelocityUnit

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# ODrive works in turns; convert from whatever unit the caller configured.
_VEL_TO_TURN_S = {VelocityUnit.RPM: 1.0 / 60.0, VelocityUnit.TURNS_PER_S: 1.0}
_ACC_TO_TURN_S2 = {AccelUnit.RPM_PER_S: 1.0 / 60.0, AccelUnit.TURNS_PER_S2: 1.0}


def _windows_usb_troubleshooting_hint() -> str:
    return (
        "Windows USB hint: The ODrive Python API uses libusb. If discovery fails with "
        "'[UsbDiscoverer] Failed to open USB device: -5', bind the ODrive 'Native Interface' "
        "to WinUSB (Zadig) and close the ODrive GUI or other processes using the device."
    )


def _safe_get(obj: Any, attr: str, default: Any = None) -> Any:
    try:
        return getattr(obj, attr)
    except Exception:
        return default


class ODriveMotorAxis(MotorInterface):
    """One ODrive axis exposed through the MotorInterface capability set.

    Every SDK failure is re-raised as HardwareFaultError carrying the axis
    label and the live axis error code.
    """

    def __init__(self, device: Any, axis: Any, label: str):
        self.device = device
        self.axis = axis
        self.label = label
        self._vel_scale = _VEL_TO_TURN_S[VelocityUnit.TURNS_PER_S]
        self._acc_scale = _ACC_TO_TURN_S2[AccelUnit.TURNS_PER_S2]
        self._reenable_requested = False

    def _error_code(self) -> int:
        return int(_safe_get(self.axis, "error", 0) or 0)

    def _guard(self, what: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except HardwareFaultError:
            raise
        except Exception as exc:
            raise HardwareFaultError(self.label, self._error_code(), f"{what} failed: {exc}") from exc

    def _check_axis_error(self, what: str) -> None:
        code = self._error_code()
        if code:
            try:
                dump_errors(self.device)
            except Exception:
                _LOGGER.debug("dump_errors failed for %s", self.label, exc_info=True)
            raise HardwareFaultError(self.label, code, f"{what}: axis reported an error")

    def clear_faults(self) -> None:
        self._guard("clear_errors", self.device.clear_errors)

    def clear_motion_stop(self) -> None:
        # No latched stop on ODrive; drop any pending setpoint instead.
        def _clear() -> None:
            self.axis.controller.input_vel = 0.0

        self._guard("clear motion stop", _clear)

    def request_enable(self, enable: bool) -> None:
        state = AXIS_STATE_CLOSED_LOOP_CONTROL if enable else AXIS_STATE_IDLE

        def _request() -> None:
            self.axis.requested_state = state

        self._guard("enable request" if enable else "disable request", _request)

    def is_ready(self) -> bool:
        st = self._guard("read current_state", lambda: int(self.axis.current_state))
        self._check_axis_error("enable")
        return st == AXIS_STATE_CLOSED_LOOP_CONTROL

    def homing_supported(self) -> bool:
        endstop = _safe_get(self.axis, "min_endstop", None)
        cfg = _safe_get(endstop, "config", None)
        return bool(_safe_get(cfg, "enabled", False))

    def already_homed(self) -> bool:
        return bool(_safe_get(self.axis, "is_homed", False))

    def initiate_homing(self) -> None:
        def _home() -> None:
            self.axis.requested_state = AXIS_STATE_HOMING

        self._reenable_requested = False
        self._guard("initiate homing", _home)

    def was_homed(self) -> bool:
        self._check_axis_error("homing")
        homed = bool(self._guard("read is_homed", lambda: self.axis.is_homed))
        st = self._guard("read current_state", lambda: int(self.axis.current_state))
        if not homed or st == AXIS_STATE_HOMING:
            return False
        if st == AXIS_STATE_CLOSED_LOOP_CONTROL:
            return True
        # The homing sequence ends in IDLE; request closed loop once and keep
        # reporting not-homed until the axis is back in it.
        if not self._reenable_requested:
            self.request_enable(True)
            self._reenable_requested = True
        return False

    def set_velocity_units(self, unit: VelocityUnit) -> None:
        unit = VelocityUnit(unit)
        self._vel_scale = _VEL_TO_TURN_S[unit]

        def _mode() -> None:
            c = self.axis.controller.config
            c.control_mode = CONTROL_MODE_VELOCITY_CONTROL
            c.input_mode = INPUT_MODE_VEL_RAMP

        self._guard("set velocity control mode", _mode)

    def set_accel_units(self, unit: AccelUnit) -> None:
        self._acc_scale = _ACC_TO_TURN_S2[AccelUnit(unit)]

    def set_accel_limit(self, value: float) -> None:
        def _set() -> None:
            self.axis.controller.config.vel_ramp_rate = float(value) * self._acc_scale

        self._guard("set vel_ramp_rate", _set)

    def set_velocity_limit(self, value: float) -> None:
        def _set() -> None:
            self.axis.controller.config.vel_limit = float(value) * self._vel_scale

        self._guard("set vel_limit", _set)

    def command_velocity(self, value: float) -> None:
        def _set() -> None:
            self.axis.controller.input_vel = float(value) * self._vel_scale

        self._guard("set input_vel", _set)
        self._check_axis_error("velocity command")


class ODriveBus(MotorBus):
    """ODrive devices found over USB; each device is one port.

    With no serial numbers the first device found is used.
    """

    def __init__(self, *, serial_numbers: tuple[str, ...] = (), max_ports: int = 10, timeout_s: float = 10.0):
        self.serial_numbers = tuple(serial_numbers)
        self.max_ports = int(max_ports)
        self.timeout_s = float(timeout_s)
        self._devices: list[Any] = []
        self._labels: list[str] = []
        self._axes: list[list[ODriveMotorAxis]] = []

    def _find(self, serial: str | None) -> Any:
        try:
            if serial is None:
                return odrive.find_any(timeout=self.timeout_s)
            return odrive.find_any(serial_number=serial, timeout=self.timeout_s)
        except Exception as exc:
            target = "any ODrive" if serial is None else f"ODrive {serial}"
            msg = f"Failed to find {target} (timeout={self.timeout_s}s): {exc}"
            if sys.platform.startswith("win"):
                msg = msg + "\n" + _windows_usb_troubleshooting_hint()
            raise NoHardwareFoundError(msg) from exc

    def open(self) -> None:
        serials: list[str | None] = list(self.serial_numbers) or [None]
        for serial in serials[: self.max_ports]:
            device = self._find(serial)
            label = str(serial) if serial is not None else f"{int(_safe_get(device, 'serial_number', 0) or 0):X}"
            port_index = len(self._devices)
            axes = []
            for n in (0, 1):
                ax = _safe_get(device, f"axis{n}", None)
                if ax is not None:
                    axes.append(ODriveMotorAxis(device, ax, f"port{port_index}/axis{n}"))
            self._devices.append(device)
            self._labels.append(label)
            self._axes.append(axes)
            _LOGGER.info("ODrive %s: %d axis/axes", label, len(axes))

        if not any(self._axes):
            raise NoHardwareFoundError("ODrive found but it exposes no axes")

    def close(self) -> None:
        for axes in self._axes:
            for ax in axes:
                try:
                    ax.axis.controller.input_vel = 0.0
                    ax.axis.requested_state = AXIS_STATE_IDLE
                except Exception:
                    _LOGGER.exception("Failed to idle %s during bus close", ax.label)
        self._axes = []
        self._devices = []
        self._labels = []

    def ports(self) -> list[str]:
        return list(self._labels)

    def axes(self, port_index: int) -> list[MotorInterface]:
        return list(self._axes[port_index])
