from __future__ import annotations

import argparse
import logging
from enum import IntEnum

from .backend.base import MotorBus, MotorInterface
from .bringup import BringupOutcome, NodeBringup, raise_for_outcome
from .clock import Clock, MonotonicClock
from .config import AppConfig, BringupConfig, LoopConfig, TrajectoryParameters
from .control_loop import ControlLoopDriver, RunSummary, StopSignal
from .errors import (
    CriticalDriveError,
    EnableTimeoutError,
    HardwareFaultError,
    HomingTimeoutError,
    NoHardwareFoundError,
)
from .run_log import log_path_for

_LOGGER = logging.getLogger(__name__)


class ExitCode(IntEnum):
    OK = 0
    NO_HARDWARE = 1
    ENABLE_TIMEOUT = 2
    HOMING_TIMEOUT = 3
    HARDWARE_FAULT = 4
    UNEXPECTED = 5


def _make_bus(cfg: AppConfig) -> MotorBus:
    if cfg.backend == "odrive":
        from .backend.odrive_backend import ODriveBus

        return ODriveBus(
            serial_numbers=cfg.serial_numbers,
            max_ports=cfg.max_ports,
            timeout_s=cfg.discovery_timeout_s,
        )
    if cfg.backend == "sim":
        from .backend.sim_backend import SimulatedBus

        return SimulatedBus()
    raise ValueError(f"Unknown backend: {cfg.backend}")


def drive_axis(
    motor: MotorInterface,
    *,
    port_index: int,
    axis_index: int,
    cfg: AppConfig,
    clock: Clock,
    stop: StopSignal,
) -> RunSummary | None:
    """Bring one axis up, then run the sinusoid on it until stopped.

    Returns None when a stop request cancels bring-up; no motion is commanded.
    """

    bringup = NodeBringup(
        motor,
        clock=clock,
        config=cfg.bringup,
        trajectory=cfg.trajectory,
        abort=stop.is_set,
    )
    outcome = bringup.run()
    if outcome is BringupOutcome.ABORTED:
        return None
    raise_for_outcome(outcome, motor.label, cfg.bringup.timeout_ms)
    _LOGGER.info("Node %s ready (%s)", motor.label, outcome.value)

    driver = ControlLoopDriver(
        motor,
        clock=clock,
        stop=stop,
        trajectory=cfg.trajectory,
        loop=cfg.loop,
    )
    return driver.run(log_path_for(cfg.log_dir, cfg.log_prefix, port_index, axis_index))


def run_all(bus: MotorBus, cfg: AppConfig, *, clock: Clock, stop: StopSignal) -> list[RunSummary]:
    """Drive every axis on every port, one after another.

    The bus is closed on every exit path, which idles any axis still enabled.
    """

    summaries: list[RunSummary] = []
    with bus:
        for port_index, port in enumerate(bus.ports()):
            for axis_index, motor in enumerate(bus.axes(port_index)):
                if stop.is_set():
                    _LOGGER.info("Stop requested; skipping %s and remaining axes", motor.label)
                    return summaries
                _LOGGER.info("Port %s: starting %s", port, motor.label)
                summary = drive_axis(
                    motor,
                    port_index=port_index,
                    axis_index=axis_index,
                    cfg=cfg,
                    clock=clock,
                    stop=stop,
                )
                if summary is not None:
                    summaries.append(summary)
    _LOGGER.info("All ports closed.")
    return summaries


def build_config(argv: list[str] | None = None) -> tuple[AppConfig, argparse.Namespace]:
    ap = argparse.ArgumentParser(description="sine-drive: servo bring-up + sinusoidal velocity run")
    ap.add_argument("--backend", choices=["odrive", "sim"], default="odrive")
    ap.add_argument(
        "--serial",
        action="append",
        default=[],
        help="ODrive serial number (repeat for several devices). Default: first device found.",
    )
    ap.add_argument("--max-ports", type=int, default=10)
    ap.add_argument("--discovery-timeout-s", type=float, default=10.0)

    ap.add_argument("--loop-hz", type=float, default=50.0)
    ap.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds of commanded motion per axis (default: until Ctrl-C)",
    )
    ap.add_argument("--timeout-ms", type=float, default=10000.0, help="Enable/homing wait timeout")
    ap.add_argument("--no-homing", action="store_true", help="Never run a homing sequence")

    ap.add_argument("--vel-limit-rpm", type=float, default=400.0)
    ap.add_argument("--frequency-hz", type=float, default=0.5)
    ap.add_argument("--acc-limit-rpm-s", type=float, default=100000.0)

    ap.add_argument("--log-dir", default=".", help="Directory for per-axis velocity CSV logs")
    ap.add_argument("--log-prefix", default="velocity_log")
    ap.add_argument("-v", "--verbose", action="store_true")

    args = ap.parse_args(argv)

    max_cycles = None
    if args.duration is not None:
        max_cycles = max(1, int(round(float(args.duration) * float(args.loop_hz))))

    cfg = AppConfig(
        trajectory=TrajectoryParameters(
            vel_limit_rpm=float(args.vel_limit_rpm),
            frequency_hz=float(args.frequency_hz),
            acc_limit_rpm_per_s=float(args.acc_limit_rpm_s),
        ),
        bringup=BringupConfig(
            timeout_ms=float(args.timeout_ms),
            homing_enabled=not bool(args.no_homing),
        ),
        loop=LoopConfig(loop_hz=float(args.loop_hz), max_cycles=max_cycles),
        backend=str(args.backend),
        serial_numbers=tuple(str(s) for s in args.serial),
        max_ports=int(args.max_ports),
        discovery_timeout_s=float(args.discovery_timeout_s),
        log_dir=str(args.log_dir),
        log_prefix=str(args.log_prefix),
    )
    return cfg, args


def run(
    argv: list[str] | None = None,
    *,
    bus: MotorBus | None = None,
    clock: Clock | None = None,
    stop: StopSignal | None = None,
) -> int:
    cfg, args = build_config(argv)

    logging.basicConfig(
        level=logging.DEBUG if bool(args.verbose) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    install_signals = stop is None
    stop = stop or StopSignal()
    clock = clock or MonotonicClock()

    print(
        "Starting sinusoidal velocity motion "
        f"(vel_limit={cfg.trajectory.vel_limit_rpm:g} RPM, f={cfg.trajectory.frequency_hz:g} Hz, "
        f"loop={cfg.loop.loop_hz:g} Hz). Ctrl-C to stop."
    )

    if install_signals:
        stop.install()
    try:
        summaries = run_all(bus or _make_bus(cfg), cfg, clock=clock, stop=stop)
    except NoHardwareFoundError as exc:
        print(f"No hardware found: {exc}")
        return ExitCode.NO_HARDWARE
    except EnableTimeoutError as exc:
        print(f"CRITICAL: {exc}")
        return ExitCode.ENABLE_TIMEOUT
    except HomingTimeoutError as exc:
        print(f"CRITICAL: {exc}")
        return ExitCode.HOMING_TIMEOUT
    except HardwareFaultError as exc:
        print(f"Caught hardware fault: axis={exc.axis}, code=0x{exc.code & 0xFFFFFFFF:08X}\n{exc.message}")
        return ExitCode.HARDWARE_FAULT
    except CriticalDriveError as exc:
        print(f"CRITICAL: {exc}")
        return ExitCode.HARDWARE_FAULT
    except Exception as exc:
        _LOGGER.exception("Unexpected error")
        print(f"Unexpected error: {exc}")
        return ExitCode.UNEXPECTED
    finally:
        if install_signals:
            stop.restore()

    for s in summaries:
        print(f"{s.axis}: {s.cycles} cycles, {s.overruns} overrun(s), log={s.log_path}")
    return ExitCode.OK


def main() -> None:
    raise SystemExit(int(run()))


if __name__ == "__main__":
    main()
