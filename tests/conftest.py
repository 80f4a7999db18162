from __future__ import annotations

from pathlib import Path

import pytest

from sine_drive.backend.base import MotorBus, MotorInterface
from sine_drive.errors import HardwareFaultError, NoHardwareFoundError
from sine_drive.run_log import RunLogger


class FakeClock:
    """Deterministic clock: time only moves on sleep() or per-read ticks."""

    def __init__(self, start_ms: float = 0.0, tick_ms: float = 0.0):
        self.now_ms = float(start_ms)
        self.tick_ms = float(tick_ms)
        self.sleeps: list[float] = []

    def now_millis(self) -> float:
        now = self.now_ms
        self.now_ms += self.tick_ms
        return now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(float(seconds))
        self.now_ms += float(seconds) * 1000.0

    def advance(self, ms: float) -> None:
        self.now_ms += float(ms)


class RecordingMotor(MotorInterface):
    """Scriptable axis that records every call made on it.

    ready_after_polls / homed_after_polls of None means "never".
    fail_on maps a method name to the 1-based call number that raises.
    """

    def __init__(
        self,
        label: str = "port0/axis0",
        *,
        ready_after_polls: int | None = 0,
        homing_supported: bool = False,
        already_homed: bool = False,
        homed_after_polls: int | None = 0,
        fail_on: dict[str, int] | None = None,
        on_command=None,
    ):
        self.label = label
        self.ready_after_polls = ready_after_polls
        self._homing_supported = homing_supported
        self._already_homed = already_homed
        self.homed_after_polls = homed_after_polls
        self.fail_on = dict(fail_on or {})
        self.on_command = on_command
        self.calls: list[tuple[str, tuple]] = []
        self._counts: dict[str, int] = {}
        self.ready_polls = 0
        self.homed_polls = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        n = self._counts.get(name, 0) + 1
        self._counts[name] = n
        if self.fail_on.get(name) == n:
            raise HardwareFaultError(self.label, 0x42, f"injected {name} failure")

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def count(self, name: str, *args) -> int:
        if not args:
            return sum(1 for n, _ in self.calls if n == name)
        return sum(1 for n, a in self.calls if n == name and a == args)

    @property
    def velocity_commands(self) -> list[float]:
        return [a[0] for n, a in self.calls if n == "command_velocity"]

    def clear_faults(self) -> None:
        self._record("clear_faults")

    def clear_motion_stop(self) -> None:
        self._record("clear_motion_stop")

    def request_enable(self, enable: bool) -> None:
        self._record("request_enable", bool(enable))

    def is_ready(self) -> bool:
        self._record("is_ready")
        self.ready_polls += 1
        return self.ready_after_polls is not None and self.ready_polls > self.ready_after_polls

    def homing_supported(self) -> bool:
        self._record("homing_supported")
        return self._homing_supported

    def already_homed(self) -> bool:
        self._record("already_homed")
        return self._already_homed

    def initiate_homing(self) -> None:
        self._record("initiate_homing")

    def was_homed(self) -> bool:
        self._record("was_homed")
        self.homed_polls += 1
        return self.homed_after_polls is not None and self.homed_polls > self.homed_after_polls

    def set_velocity_units(self, unit) -> None:
        self._record("set_velocity_units", unit)

    def set_accel_units(self, unit) -> None:
        self._record("set_accel_units", unit)

    def set_accel_limit(self, value: float) -> None:
        self._record("set_accel_limit", float(value))

    def set_velocity_limit(self, value: float) -> None:
        self._record("set_velocity_limit", float(value))

    def command_velocity(self, value: float) -> None:
        self._record("command_velocity", float(value))
        if self.on_command is not None:
            self.on_command(self, float(value))


class CountingLogger(RunLogger):
    instances: list["CountingLogger"] = []

    def __init__(self, path):
        super().__init__(path)
        self.close_calls = 0
        CountingLogger.instances.append(self)

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class StubBus(MotorBus):
    def __init__(self, ports: list[list[MotorInterface]]):
        self._ports = ports
        self.open_calls = 0
        self.close_calls = 0

    def open(self) -> None:
        self.open_calls += 1
        if not self._ports or not any(self._ports):
            raise NoHardwareFoundError("no stub ports")

    def close(self) -> None:
        self.close_calls += 1

    def ports(self) -> list[str]:
        return [f"stub{i}" for i in range(len(self._ports))]

    def axes(self, port_index: int) -> list[MotorInterface]:
        return list(self._ports[port_index])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counting_logger():
    CountingLogger.instances = []
    yield CountingLogger
    CountingLogger.instances = []


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "velocity_log_port0_axis0.csv"
