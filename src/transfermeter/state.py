from enum import Enum
from datetime import datetime, timedelta
from typing import Optional, Tuple

import copy
import logging
import time

from .latency import LatencyTracker
from .speedcalculator import Transfer, AverageTransfer
from .units import ByteUnit, scale_bytes


class TransferStatus(Enum):
    NOT_STARTED = 0
    STREAMING = 1
    COMPLETED = 2
    FAILED = 3
    CANCELLED = 4

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.COMPLETED, TransferStatus.FAILED, TransferStatus.CANCELLED)


class TransferState:
    """
    Statistics for one in-flight transfer.

    Owned by a single streaming loop and never shared between transfers.
    Wall clock datetimes are kept for display; every elapsed computation uses
    time.monotonic().
    """

    def __init__(self) -> None:
        self.start_time: Optional[datetime] = None
        self.last_check_time: Optional[datetime] = None
        self.stop_time: Optional[datetime] = None

        self._start_monotonic = 0.0
        self._last_check_monotonic = 0.0
        self._stop_monotonic: Optional[float] = None

        self.total_bytes: int = 0
        self.total = Transfer()
        self.chunk = Transfer()
        self.average = AverageTransfer()
        self.maximum = Transfer()
        self.latency: Optional[LatencyTracker] = None
        self.status = TransferStatus.NOT_STARTED

    def __repr__(self) -> str:
        return (
            f"TransferState(status={self.status.name}, transferred={self.total.transferred}, "
            f"total_bytes={self.total_bytes}, raw_speed={self.total.raw_speed:.2f})"
        )

    def start(self, total_bytes: Optional[int] = None):
        """
        Begin a new transfer and enter STREAMING.

        Samples left over from a previous transfer on the same state are discarded.
        """
        now = time.monotonic()
        self._start_monotonic = now
        self._last_check_monotonic = now
        self._stop_monotonic = None
        self.start_time = datetime.now()
        self.last_check_time = self.start_time
        self.stop_time = None

        self.total_bytes = total_bytes or 0
        self.total = Transfer()
        self.chunk = Transfer()
        self.average = AverageTransfer()
        self.maximum = Transfer()
        self.status = TransferStatus.STREAMING

    def stop(self):
        self._stop_monotonic = time.monotonic()
        self.stop_time = datetime.now()

    def finish(self, status: TransferStatus) -> bool:
        """
        Move to a terminal status.

        The first terminal status wins. Returns False, leaving the state untouched,
        when the transfer already finished.
        """
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        if self.status.is_terminal:
            logging.debug(f"Ignoring {status.name}, transfer already {self.status.name}")
            return False
        self.status = status
        return True

    @property
    def duration(self) -> timedelta:
        end = self._stop_monotonic if self._stop_monotonic is not None else time.monotonic()
        return timedelta(seconds=end - self._start_monotonic)

    def update(self, chunk_bytes: int) -> "TransferState":
        """
        Fold the bytes read since the last report into chunk/average/total/maximum.

        Returns self so the result can go straight to a progress sink.
        """
        now = time.monotonic()

        self.chunk.elapsed = timedelta(seconds=now - self._last_check_monotonic)
        self.chunk.transferred = chunk_bytes
        self.chunk.calc_rates()

        self.average.update(self.chunk)

        self.total.elapsed = timedelta(seconds=now - self._start_monotonic)
        self.total.transferred += chunk_bytes
        self.total.calc_rates()

        if self.chunk.raw_speed > self.maximum.raw_speed:
            self.maximum.elapsed = self.chunk.elapsed
            self.maximum.transferred = self.chunk.transferred
            self.maximum.calc_rates()

        self._last_check_monotonic = now
        self.last_check_time = datetime.now()

        return self

    def calc_progress_percentage(self) -> Optional[float]:
        """
        Fraction of total_bytes transferred, None when the size is unknown.

        Not clamped: a server that under-reports its length yields values above 1.
        """
        if self.total_bytes < 1:
            return None
        return self.total.transferred / self.total_bytes

    def calc_remaining_size(self) -> Tuple[float, ByteUnit]:
        if self.total_bytes < 1:
            return 0, ByteUnit.B
        return scale_bytes(self.total_bytes - self.total.transferred)

    def calc_estimated_remaining_time(self) -> Optional[timedelta]:
        if self.total_bytes < 1:
            return None

        elapsed_seconds = self.total.elapsed.total_seconds()
        if self.total.transferred == 0 or elapsed_seconds <= 0:
            return None

        average_rate = self.total.transferred / elapsed_seconds
        return timedelta(seconds=(self.total_bytes - self.total.transferred) / average_rate)

    def snapshot(self) -> "TransferState":
        """Independent copy handed to progress sinks."""
        return copy.deepcopy(self)


__all__ = ["TransferState", "TransferStatus"]
