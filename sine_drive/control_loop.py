from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .backend.base import MotorInterface
from .clock import Clock
from .config import LoopConfig, TrajectoryParameters
from .errors import HardwareFaultError
from .run_log import RunLogger
from .trajectory import clamp, velocity_at

_LOGGER = logging.getLogger(__name__)


class StopSignal:
    """Process-level stop request.

    Checked on every bring-up poll and once per control cycle.

    install() routes SIGINT/SIGTERM here so a Ctrl-C finishes the current
    cycle and lets the shutdown sequence run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._previous: dict[int, object] = {}

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def _handle(self, signum, frame) -> None:
        _LOGGER.warning("Received signal %d, stopping after this cycle", signum)
        self.set()

    def install(self, signums: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        for signum in signums:
            self._previous[signum] = signal.signal(signum, self._handle)

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()


@dataclass(frozen=True)
class RunSummary:
    axis: str
    cycles: int
    log_path: Path
    last_velocity_rpm: float
    overruns: int
    stopped_by_signal: bool


class ControlLoopDriver:
    """Fixed-cadence velocity command loop for one axis.

    Each cycle: elapsed time -> target velocity -> command -> log row ->
    stop check -> sleep to the next deadline. Overruns shift the deadline
    (jitter) instead of dropping or bunching cycles.

    Whatever ends the loop (stop signal, cycle limit, hardware fault,
    KeyboardInterrupt), the axis gets exactly one zero-velocity command and
    one disable request, and the log is closed afterwards.
    """

    def __init__(
        self,
        motor: MotorInterface,
        *,
        clock: Clock,
        stop: StopSignal,
        trajectory: TrajectoryParameters = TrajectoryParameters(),
        loop: LoopConfig = LoopConfig(),
        log_factory: Callable[[Path], RunLogger] = RunLogger,
    ):
        self.motor = motor
        self.clock = clock
        self.stop = stop
        self.trajectory = trajectory
        self.loop = loop
        self.log_factory = log_factory
        self.last_command: float | None = None

    def run(self, log_path: str | Path) -> RunSummary:
        log_path = Path(log_path)
        with self.log_factory(log_path) as run_log:
            try:
                cycles, overruns = self._cycle(run_log)
            finally:
                shutdown_errors = self._shutdown()
            if shutdown_errors:
                raise shutdown_errors[0]

        _LOGGER.info("Node %s motion stopped and log saved (%d cycles).", self.motor.label, cycles)
        return RunSummary(
            axis=self.motor.label,
            cycles=cycles,
            log_path=log_path,
            last_velocity_rpm=float(self.last_command or 0.0),
            overruns=overruns,
            stopped_by_signal=self.stop.is_set(),
        )

    def _cycle(self, run_log: RunLogger) -> tuple[int, int]:
        lim = float(self.trajectory.vel_limit_rpm)
        period_ms = self.loop.period_s * 1000.0
        max_cycles = self.loop.max_cycles

        if self.stop.is_set():
            _LOGGER.info("%s: stop already requested, no trajectory commands sent", self.motor.label)
            return 0, 0

        start = self.clock.now_millis()
        deadline = start
        cycles = 0
        overruns = 0
        while True:
            t = (self.clock.now_millis() - start) / 1000.0
            v = clamp(velocity_at(t, self.trajectory), -lim, lim)

            self.motor.command_velocity(v)
            self.last_command = v
            run_log.append(t, v)
            cycles += 1

            if self.stop.is_set() or (max_cycles is not None and cycles >= int(max_cycles)):
                return cycles, overruns

            deadline += period_ms
            remaining_ms = deadline - self.clock.now_millis()
            if remaining_ms > 0:
                self.clock.sleep(remaining_ms / 1000.0)
            else:
                overruns += 1
                _LOGGER.debug("%s: cycle %d overran by %.1f ms", self.motor.label, cycles, -remaining_ms)
                deadline = self.clock.now_millis()

    def _shutdown(self) -> list[HardwareFaultError]:
        errors: list[HardwareFaultError] = []
        try:
            try:
                self.motor.command_velocity(0.0)
                self.last_command = 0.0
            except HardwareFaultError as exc:
                _LOGGER.error("Zero-velocity command failed on %s: %s", self.motor.label, exc)
                errors.append(exc)
        finally:
            try:
                self.motor.request_enable(False)
            except HardwareFaultError as exc:
                _LOGGER.error("Disable request failed on %s: %s", self.motor.label, exc)
                errors.append(exc)
        return errors
