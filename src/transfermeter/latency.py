from typing import Optional

from .constants import LATENCY_NOISE_FLOOR_NS, LATENCY_MIN_RESET_NS, NANOSECONDS_PER_MILLISECOND


class LatencyTracker:
    """
    Time-to-first-byte and per-packet latency statistics.

    A packet is one buffer-sized read. The first accepted sample is the TTFB and
    is kept out of the streaming min/max/average.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self._current_packet: float = 0.0
        self._packet_min: Optional[float] = None
        self._packet_max: Optional[float] = None
        self._packet_total: float = 0.0
        self._packet_count: int = 0
        self._time_to_first_byte: Optional[float] = None

    def update_packet_latency(self, nanoseconds: float):
        if nanoseconds < LATENCY_NOISE_FLOOR_NS:
            return

        self._current_packet = nanoseconds

        if self._time_to_first_byte is None:
            self._time_to_first_byte = nanoseconds
            return

        if self._packet_min is None or self._packet_min < LATENCY_MIN_RESET_NS or nanoseconds < self._packet_min:
            self._packet_min = nanoseconds
        if self._packet_max is None or nanoseconds > self._packet_max:
            self._packet_max = nanoseconds

        self._packet_total += nanoseconds
        self._packet_count += 1

    @property
    def packet_count(self) -> int:
        return self._packet_count

    @property
    def packet_avg(self) -> float:
        """Average streaming latency in nanoseconds, 0 before any streaming sample."""
        if self._packet_count == 0:
            return 0.0
        return self._packet_total / self._packet_count

    @property
    def packet_avg_ms(self) -> float:
        return self.packet_avg / NANOSECONDS_PER_MILLISECOND

    @property
    def packet_min_ms(self) -> Optional[float]:
        if self._packet_min is None:
            return None
        return self._packet_min / NANOSECONDS_PER_MILLISECOND

    @property
    def packet_max_ms(self) -> Optional[float]:
        if self._packet_max is None:
            return None
        return self._packet_max / NANOSECONDS_PER_MILLISECOND

    @property
    def time_to_first_byte_ms(self) -> Optional[float]:
        if self._time_to_first_byte is None:
            return None
        return self._time_to_first_byte / NANOSECONDS_PER_MILLISECOND

    @property
    def current_packet_ms(self) -> float:
        return self._current_packet / NANOSECONDS_PER_MILLISECOND


class NullLatencyTracker(LatencyTracker):
    """Drop-in tracker used when latency measurement is disabled."""

    def update_packet_latency(self, nanoseconds: float):
        pass


NULL_LATENCY_TRACKER = NullLatencyTracker()

__all__ = ["LatencyTracker", "NullLatencyTracker", "NULL_LATENCY_TRACKER"]
