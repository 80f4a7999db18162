from __future__ import annotations

import signal

import pytest

from conftest import FakeClock, RecordingMotor
from sine_drive.config import LoopConfig, TrajectoryParameters
from sine_drive.control_loop import ControlLoopDriver, StopSignal
from sine_drive.errors import HardwareFaultError
from sine_drive.run_log import read_log
from sine_drive.trajectory import velocity_at

PARAMS = TrajectoryParameters(vel_limit_rpm=400.0, frequency_hz=0.5)


def _driver(motor, clock, stop=None, *, max_cycles=None, loop_hz=50.0, log_factory=None):
    kwargs = {}
    if log_factory is not None:
        kwargs["log_factory"] = log_factory
    return ControlLoopDriver(
        motor,
        clock=clock,
        stop=stop or StopSignal(),
        trajectory=PARAMS,
        loop=LoopConfig(loop_hz=loop_hz, max_cycles=max_cycles),
        **kwargs,
    )


def _assert_single_shutdown(motor):
    assert motor.count("command_velocity", 0.0) == 1
    assert motor.velocity_commands[-1] == 0.0
    assert motor.count("request_enable", False) == 1
    assert motor.names()[-2:] == ["command_velocity", "request_enable"]


@pytest.mark.parametrize("k", [1, 7, 25])
def test_k_cycles_give_k_rows(clock, log_path, k):
    motor = RecordingMotor()
    summary = _driver(motor, clock, max_cycles=k).run(log_path)

    rows = read_log(log_path)
    assert summary.cycles == k
    assert len(rows) == k
    for i, row in enumerate(rows):
        assert row.elapsed_s == pytest.approx(i / 50.0)
        assert row.velocity_rpm == pytest.approx(velocity_at(row.elapsed_s, PARAMS))
    # K trajectory commands plus the zero on shutdown
    assert len(motor.velocity_commands) == k + 1
    _assert_single_shutdown(motor)


def test_sleeps_hold_cadence(clock, log_path):
    motor = RecordingMotor()
    _driver(motor, clock, max_cycles=5).run(log_path)
    assert clock.sleeps == pytest.approx([0.02] * 4)


def test_commands_stay_within_limit(clock, log_path):
    motor = RecordingMotor()
    _driver(motor, clock, max_cycles=300).run(log_path)
    assert all(abs(v) <= PARAMS.vel_limit_rpm for v in motor.velocity_commands)


def test_normal_stop_shutdown_once(clock, log_path, counting_logger):
    motor = RecordingMotor()
    summary = _driver(motor, clock, max_cycles=10, log_factory=counting_logger).run(log_path)

    _assert_single_shutdown(motor)
    assert summary.last_velocity_rpm == 0.0
    assert not summary.stopped_by_signal
    (logger,) = counting_logger.instances
    assert logger.close_calls == 1
    assert logger.closed


def test_stop_signal_mid_run(clock, log_path, counting_logger):
    stop = StopSignal()

    def stop_after_four(motor, value):
        if len(motor.velocity_commands) == 4:
            stop.set()

    motor = RecordingMotor(on_command=stop_after_four)
    summary = _driver(motor, clock, stop, log_factory=counting_logger).run(log_path)

    assert summary.cycles == 4
    assert summary.stopped_by_signal
    assert len(read_log(log_path)) == 4
    _assert_single_shutdown(motor)
    assert counting_logger.instances[0].close_calls == 1


def test_stop_before_first_cycle_sends_no_trajectory(clock, log_path, counting_logger):
    stop = StopSignal()
    stop.set()
    motor = RecordingMotor()
    summary = _driver(motor, clock, stop, log_factory=counting_logger).run(log_path)

    assert summary.cycles == 0
    assert summary.stopped_by_signal
    assert motor.velocity_commands == [0.0]
    assert read_log(log_path) == []
    _assert_single_shutdown(motor)
    assert counting_logger.instances[0].close_calls == 1


def test_hardware_fault_mid_run(clock, log_path, counting_logger):
    motor = RecordingMotor(fail_on={"command_velocity": 6})

    with pytest.raises(HardwareFaultError):
        _driver(motor, clock, log_factory=counting_logger).run(log_path)

    # 5 good cycles, the failing 6th, then the shutdown zero
    assert len(motor.velocity_commands) == 7
    _assert_single_shutdown(motor)
    (logger,) = counting_logger.instances
    assert logger.close_calls == 1
    assert logger.rows == 5


def test_disable_runs_even_if_zero_command_fails(clock, log_path, counting_logger):
    motor = RecordingMotor(fail_on={"command_velocity": 4})

    with pytest.raises(HardwareFaultError):
        _driver(motor, clock, max_cycles=3, log_factory=counting_logger).run(log_path)

    assert motor.count("request_enable", False) == 1
    assert counting_logger.instances[0].close_calls == 1


def test_overrun_accepts_jitter(log_path):
    # every clock read costs 30 ms: each cycle overruns the 20 ms budget
    clock = FakeClock(tick_ms=30.0)
    motor = RecordingMotor()
    summary = _driver(motor, clock, max_cycles=6).run(log_path)

    assert summary.cycles == 6
    assert summary.overruns == 5
    assert clock.sleeps == []
    rows = read_log(log_path)
    times = [r.elapsed_s for r in rows]
    assert times == sorted(times)
    for row in rows:
        assert row.velocity_rpm == pytest.approx(velocity_at(row.elapsed_s, PARAMS))


def test_stop_signal_install_and_restore():
    stop = StopSignal()
    before = signal.getsignal(signal.SIGTERM)
    stop.install((signal.SIGTERM,))
    try:
        assert signal.getsignal(signal.SIGTERM) == stop._handle
        stop._handle(signal.SIGTERM, None)
        assert stop.is_set()
    finally:
        stop.restore()
    assert signal.getsignal(signal.SIGTERM) == before
