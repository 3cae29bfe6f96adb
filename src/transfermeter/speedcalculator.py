from dataclasses import dataclass, field
from datetime import timedelta
from typing import Tuple

from .constants import RAW_SPEED_STABILITY_FLOOR
from .units import ByteUnit, BitUnit, scale_bytes, scale_bits


@dataclass
class TransferRate:
    raw_speed: float = 0.0 # bytes/sec
    byte_rate: Tuple[float, ByteUnit] = (0.0, ByteUnit.B)
    bit_rate: Tuple[float, BitUnit] = (0.0, BitUnit.bit)

    def _scale_rates(self):
        self.byte_rate = scale_bytes(self.raw_speed)
        self.bit_rate = scale_bits(self.raw_speed)


@dataclass
class Transfer(TransferRate):
    """
    A single measurement of bytes transferred over an elapsed duration.
    """
    transferred: int = 0
    elapsed: timedelta = field(default_factory=timedelta)

    def calc_raw_speed(self) -> float:
        seconds = self.elapsed.total_seconds()
        if seconds < RAW_SPEED_STABILITY_FLOOR:   # near-zero duration → unstable
            return float(self.transferred)
        return self.transferred / seconds

    def calc_rates(self):
        self.raw_speed = self.calc_raw_speed()
        self._scale_rates()


@dataclass
class AverageTransfer(TransferRate):
    """
    Count-weighted mean of the raw speeds of every sample passed to update().
    """
    count: int = 0
    _running_total: float = field(default=0.0, init=False, repr=False)

    def update(self, rate: TransferRate):
        if rate is None:
            raise ValueError("rate must not be None")

        self.count += 1
        self._running_total += rate.raw_speed
        self.raw_speed = self._running_total / self.count
        self._scale_rates()


__all__ = ["TransferRate", "Transfer", "AverageTransfer"]
