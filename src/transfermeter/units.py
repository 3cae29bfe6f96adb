from enum import Enum
from typing import Tuple, Type, TypeVar

from .constants import UNIT_STEP, BITS_PER_BYTE


class ByteUnit(Enum):
    B = 0
    KiB = 1
    MiB = 2
    GiB = 3
    TiB = 4


class BitUnit(Enum):
    bit = 0
    Kibit = 1
    Mibit = 2
    Gibit = 3
    Tibit = 4


Unit = TypeVar("Unit", ByteUnit, BitUnit)


def scale(value: float, units: Type[Unit]) -> Tuple[float, Unit]:
    """
    Auto-scale a raw value into the largest unit that keeps it at or below 1024.

    Only rescales when the value is strictly greater than UNIT_STEP, so 1024 B
    stays 1024 B. The rank never advances past the last member of `units`.
    """
    ranks = list(units)
    rank = 0
    while value > UNIT_STEP and rank < len(ranks) - 1:
        value /= UNIT_STEP
        rank += 1
    return value, ranks[rank]


def scale_bytes(bytes_per_second: float) -> Tuple[float, ByteUnit]:
    return scale(bytes_per_second, ByteUnit)


def scale_bits(bytes_per_second: float) -> Tuple[float, BitUnit]:
    return scale(bytes_per_second * BITS_PER_BYTE, BitUnit)


def format_scaled(pair: Tuple[float, Enum], precision: int = 2, suffix: str = "") -> str:
    value, unit = pair
    return f"{value:.{precision}f} {unit.name}{suffix}"


__all__ = ["ByteUnit", "BitUnit", "scale", "scale_bytes", "scale_bits", "format_scaled"]
