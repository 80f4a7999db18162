from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from .backend.base import AccelUnit, MotorInterface, VelocityUnit
from .clock import Clock
from .config import BringupConfig, TrajectoryParameters
from .errors import EnableTimeoutError, HomingTimeoutError

_LOGGER = logging.getLogger(__name__)


class BringupState(Enum):
    FAULT_CLEARING = "fault_clearing"
    ENABLING = "enabling"
    HOMING_CHECK = "homing_check"
    HOMING = "homing"
    READY = "ready"
    ENABLE_TIMED_OUT = "enable_timed_out"
    HOMING_TIMED_OUT = "homing_timed_out"
    ABORTED = "aborted"


class BringupOutcome(Enum):
    READY = "ready"
    # Homing unsupported, disabled, or already done.
    HOMING_SKIPPED = "homing_skipped"
    ENABLE_TIMEOUT = "enable_timeout"
    HOMING_TIMEOUT = "homing_timeout"
    # Stop requested before the axis was ready.
    ABORTED = "aborted"

    @property
    def permits_motion(self) -> bool:
        return self in (BringupOutcome.READY, BringupOutcome.HOMING_SKIPPED)


def wait_until(
    predicate: Callable[[], bool],
    *,
    clock: Clock,
    timeout_ms: float,
    poll_interval_s: float = 0.0,
    abort: Callable[[], bool] | None = None,
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout_ms`` has elapsed.

    The deadline is re-checked against ``clock`` on every iteration, starting
    from the moment of the call. ``abort`` is checked first on every
    iteration and ends the wait early. Returns False on timeout or abort.
    """

    start = clock.now_millis()
    while True:
        if abort is not None and abort():
            return False
        if predicate():
            return True
        if clock.now_millis() - start > float(timeout_ms):
            return False
        clock.sleep(poll_interval_s)


def raise_for_outcome(outcome: BringupOutcome, axis: str, timeout_ms: float | None = None) -> None:
    if outcome is BringupOutcome.ENABLE_TIMEOUT:
        raise EnableTimeoutError(axis, timeout_ms)
    if outcome is BringupOutcome.HOMING_TIMEOUT:
        raise HomingTimeoutError(axis, timeout_ms)


class NodeBringup:
    """Fault clear -> enable -> (optional) home for a single axis.

    run() walks the states once and returns the outcome; ``state`` holds the
    last state reached. Timeouts are terminal, there is no retry. ``abort``
    (usually the process stop signal) cancels any wait and ends in ABORTED
    before motion limits are configured.
    """

    def __init__(
        self,
        motor: MotorInterface,
        *,
        clock: Clock,
        config: BringupConfig = BringupConfig(),
        trajectory: TrajectoryParameters = TrajectoryParameters(),
        abort: Callable[[], bool] | None = None,
    ):
        self.motor = motor
        self.clock = clock
        self.cfg = config
        self.trajectory = trajectory
        self.abort = abort
        self.state = BringupState.FAULT_CLEARING
        self.homed_this_run = False

    def _enter(self, state: BringupState) -> None:
        _LOGGER.debug("%s: %s -> %s", self.motor.label, self.state.value, state.value)
        self.state = state

    def _aborted(self) -> bool:
        return self.abort is not None and bool(self.abort())

    def _wait(self, predicate: Callable[[], bool]) -> bool:
        return wait_until(
            predicate,
            clock=self.clock,
            timeout_ms=self.cfg.timeout_ms,
            poll_interval_s=self.cfg.poll_interval_s,
            abort=self.abort,
        )

    def _abort(self) -> BringupOutcome:
        self._enter(BringupState.ABORTED)
        _LOGGER.warning("Node %s bring-up aborted by stop request.", self.motor.label)
        return BringupOutcome.ABORTED

    def run(self) -> BringupOutcome:
        m = self.motor
        self.homed_this_run = False
        self._enter(BringupState.FAULT_CLEARING)
        m.request_enable(False)
        if self.cfg.settle_ms > 0:
            self.clock.sleep(float(self.cfg.settle_ms) / 1000.0)
        m.clear_faults()
        m.clear_motion_stop()
        m.request_enable(True)

        self._enter(BringupState.ENABLING)
        if not self._wait(m.is_ready):
            if self._aborted():
                return self._abort()
            self._enter(BringupState.ENABLE_TIMED_OUT)
            _LOGGER.error("Node %s failed to enable.", m.label)
            return BringupOutcome.ENABLE_TIMEOUT

        self._enter(BringupState.HOMING_CHECK)
        if self.cfg.homing_enabled and m.homing_supported() and not m.already_homed():
            if self._aborted():
                return self._abort()
            self._enter(BringupState.HOMING)
            m.initiate_homing()
            if not self._wait(m.was_homed):
                if self._aborted():
                    return self._abort()
                self._enter(BringupState.HOMING_TIMED_OUT)
                _LOGGER.error("Node %s homing timed out.", m.label)
                return BringupOutcome.HOMING_TIMEOUT
            self.homed_this_run = True
            _LOGGER.info("Node %s homed successfully.", m.label)

        if self._aborted():
            return self._abort()
        self._configure_motion()
        self._enter(BringupState.READY)
        return BringupOutcome.READY if self.homed_this_run else BringupOutcome.HOMING_SKIPPED

    def _configure_motion(self) -> None:
        m = self.motor
        m.set_velocity_units(VelocityUnit.RPM)
        m.set_accel_units(AccelUnit.RPM_PER_S)
        m.set_accel_limit(float(self.trajectory.acc_limit_rpm_per_s))
        m.set_velocity_limit(float(self.trajectory.vel_limit_rpm))
