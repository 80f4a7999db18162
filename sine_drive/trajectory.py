from __future__ import annotations

import math

from .config import TrajectoryParameters


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def velocity_at(t_s: float, params: TrajectoryParameters) -> float:
    """Target velocity (RPM) at ``t_s`` seconds after the loop started.

    ``t_s`` is measured from the absolute loop start each cycle rather than
    accumulated, so the phase does not drift over long runs.
    """

    return float(params.vel_limit_rpm) * math.cos(2.0 * math.pi * float(params.frequency_hz) * float(t_s))


def period_s(params: TrajectoryParameters) -> float:
    return 1.0 / float(params.frequency_hz)
