from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

_LOGGER = logging.getLogger(__name__)

HEADER = ("Time(s)", "Velocity(RPM)")


@dataclass(frozen=True)
class LogRecord:
    elapsed_s: float
    velocity_rpm: float


def log_path_for(log_dir: str | Path, prefix: str, port_index: int, axis_index: int) -> Path:
    """One file per axis so multi-axis runs never share a log."""

    return Path(log_dir) / f"{prefix}_port{int(port_index)}_axis{int(axis_index)}.csv"


class RunLogger:
    """Append-only time/velocity CSV for one run.

    The header is written on open and each row as it is appended. close() is
    idempotent; the file is flushed and closed exactly once.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file)
        self._writer.writerow(HEADER)
        self.rows = 0
        self.closed = False

    def append(self, elapsed_s: float, velocity_rpm: float) -> None:
        if self.closed:
            raise ValueError(f"append to closed run log {self.path}")
        self._writer.writerow([float(elapsed_s), float(velocity_rpm)])
        self.rows += 1

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._file.flush()
        self._file.close()
        _LOGGER.info("Saved %d row(s) to %s", self.rows, self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def read_log(path: str | Path) -> List[LogRecord]:
    with Path(path).open("r", newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None or tuple(header) != HEADER:
            raise ValueError(f"{path}: unexpected header {header!r}")
        return [LogRecord(elapsed_s=float(t), velocity_rpm=float(v)) for t, v in reader]
