from transfermeter.core import TransferClient
from transfermeter.constants import DEFAULT_INTERVAL_MS, DEFAULT_BUFFER_SIZE, DEFAULT_REQUEST_TIMEOUT
from transfermeter.latency import LatencyTracker
from transfermeter.state import TransferState
from transfermeter.units import format_scaled

import asyncio
import logging
import argparse


def log_progress(state: TransferState):
    progress = state.calc_progress_percentage()
    progress_str = "unknown" if progress is None else f"{progress:.2%}"

    remaining_time = state.calc_estimated_remaining_time()
    remaining_str = "unknown" if remaining_time is None else f"{remaining_time.total_seconds():.1f}s"

    line = (
        f"Progress: {progress_str} ({state.total.transferred}/{state.total_bytes} bytes), "
        f"{format_scaled(state.chunk.bit_rate, suffix='/s')} | {format_scaled(state.chunk.byte_rate, suffix='/s')}, "
        f"remaining: {remaining_str}"
    )

    if state.latency is not None and state.latency.packet_count > 0:
        line += (
            f" | Lat: {state.latency.packet_avg_ms:.3f} ms "
            f"({state.latency.packet_min_ms:.3f} ms - {state.latency.packet_max_ms:.3f} ms), "
            f"TTFB: {state.latency.time_to_first_byte_ms:.0f} ms"
        )
    logging.info(line)


async def run(args) -> TransferState:
    latency_tracker = None if args.no_latency else LatencyTracker()

    async with TransferClient(request_timeout=args.timeout) as client:
        if args.command == "download":
            return await client.download_file(
                args.url,
                args.output,
                log_progress,
                interval=args.interval,
                buffer_size=args.buffer_size,
                latency_tracker=latency_tracker
            )
        return await client.upload_file(
            args.url,
            args.file,
            log_progress,
            interval=args.interval,
            buffer_size=args.buffer_size,
            latency_tracker=latency_tracker
        )


def main():
    parser = argparse.ArgumentParser(prog="transfermeter")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--interval", type=int, default=DEFAULT_INTERVAL_MS, help="Progress report interval in milliseconds")
    parser.add_argument("--buffer-size", type=int, default=DEFAULT_BUFFER_SIZE, help="Read buffer size in bytes")
    parser.add_argument("--timeout", type=float, default=DEFAULT_REQUEST_TIMEOUT, help="Total request timeout in seconds")
    parser.add_argument("--no-latency", action="store_true", help="Disable TTFB and packet latency measurement")

    subparsers = parser.add_subparsers(dest="command", required=True)
    download_parser = subparsers.add_parser("download")
    download_parser.add_argument("url")
    download_parser.add_argument("output")
    upload_parser = subparsers.add_parser("upload")
    upload_parser.add_argument("url")
    upload_parser.add_argument("file")

    args = parser.parse_args()

    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s")
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(logging.INFO)

    try:
        state = asyncio.run(run(args))
    except KeyboardInterrupt:
        logging.info("Transfer cancelled")
        return 130

    logging.info(
        f"Done: {state.total.transferred} bytes in {state.duration.total_seconds():.3f}s, "
        f"average {format_scaled(state.average.byte_rate, suffix='/s')}, "
        f"maximum {format_scaled(state.maximum.byte_rate, suffix='/s')}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
