"""sine-drive - servo bring-up and sinusoidal velocity runner.

Core flow per axis:
- Clear faults, enable, and home the axis when homing is configured.
- Command v(t) = vel_limit * cos(2*pi*f*t) at a fixed loop rate.
- Log every commanded velocity to a per-axis CSV until stopped.

Backends: ODrive (odrive Python API) and an in-process simulator.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
