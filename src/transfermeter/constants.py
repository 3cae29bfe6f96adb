UNIT_STEP = 1024
BITS_PER_BYTE = 8

# Elapsed below this is treated as zero when deriving raw speed
RAW_SPEED_STABILITY_FLOOR = 0.001 # seconds

LATENCY_NOISE_FLOOR_NS = 10
LATENCY_MIN_RESET_NS = 2
NANOSECONDS_PER_MILLISECOND = 1_000_000

DEFAULT_INTERVAL_MS = 100
DEFAULT_BUFFER_SIZE = 512
HIGH_THROUGHPUT_BUFFER_SIZE = 65536
DEFAULT_REQUEST_TIMEOUT = 300

ERROR_BODY_EXCERPT_LENGTH = 512
