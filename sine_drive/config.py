from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TrajectoryParameters:
    """Sinusoidal velocity profile, fixed for the whole run.

    Defaults: 400 RPM peak at 0.5 Hz.
    """

    # Only bounds the displacement conceptually; the velocity profile
    # does not use it.
    amplitude_counts: int = 10000
    vel_limit_rpm: float = 400.0
    frequency_hz: float = 0.5
    acc_limit_rpm_per_s: float = 100000.0

    def __post_init__(self) -> None:
        if not float(self.vel_limit_rpm) > 0.0:
            raise ValueError(f"vel_limit_rpm must be > 0 (got {self.vel_limit_rpm})")
        if not float(self.frequency_hz) > 0.0:
            raise ValueError(f"frequency_hz must be > 0 (got {self.frequency_hz})")
        if not float(self.acc_limit_rpm_per_s) > 0.0:
            raise ValueError(f"acc_limit_rpm_per_s must be > 0 (got {self.acc_limit_rpm_per_s})")


@dataclass(frozen=True)
class BringupConfig:
    """Timeouts for the enable/homing sequence."""

    # Applied separately to the enable wait and to the homing wait.
    timeout_ms: float = 10000.0
    # Disable -> settle -> clear faults, as the drive needs a moment after
    # dropping enable before alerts can be cleared.
    settle_ms: float = 200.0
    # 0 spins; bring-up is short so a tight poll is acceptable.
    poll_interval_s: float = 0.005
    homing_enabled: bool = True


@dataclass(frozen=True)
class LoopConfig:
    loop_hz: float = 50.0
    # None runs until the stop signal fires.
    max_cycles: int | None = None

    def __post_init__(self) -> None:
        if not float(self.loop_hz) > 0.0:
            raise ValueError(f"loop_hz must be > 0 (got {self.loop_hz})")
        if self.max_cycles is not None and int(self.max_cycles) < 1:
            raise ValueError(f"max_cycles must be >= 1 (got {self.max_cycles})")

    @property
    def period_s(self) -> float:
        return 1.0 / float(self.loop_hz)


@dataclass(frozen=True)
class AppConfig:
    trajectory: TrajectoryParameters = field(default_factory=TrajectoryParameters)
    bringup: BringupConfig = field(default_factory=BringupConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)

    backend: str = "odrive"
    # ODrive serial numbers; empty means "whatever is plugged in".
    serial_numbers: tuple[str, ...] = ()
    max_ports: int = 10
    discovery_timeout_s: float = 10.0

    # Velocity logs, one CSV per axis.
    log_dir: str = "."
    log_prefix: str = "velocity_log"
