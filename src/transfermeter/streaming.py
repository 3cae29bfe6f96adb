from typing import Any, AsyncIterator, Callable, Optional

import asyncio
import inspect
import logging
import time
import traceback

from .constants import DEFAULT_INTERVAL_MS, DEFAULT_BUFFER_SIZE
from .latency import LatencyTracker, NULL_LATENCY_TRACKER
from .state import TransferState, TransferStatus
from .units import format_scaled

ProgressSink = Callable[[TransferState], Any]


def validate_arguments(interval: int, buffer_size: int, **required):
    for name, value in required.items():
        if value is None:
            raise ValueError(f"{name} must not be None")
    if interval < 0:
        raise ValueError(f"interval must be >= 0, got {interval=}")
    if buffer_size < 1:
        raise ValueError(f"buffer_size must be >= 1, got {buffer_size=}")


async def _iter_source(source, buffer_size: int) -> AsyncIterator[bytes]:
    """
    Yield chunks of at most buffer_size bytes.

    Accepts an aiohttp-style body exposing iter_chunked() or any object with a
    sync or async read(n).
    """
    if hasattr(source, "iter_chunked"):
        async for chunk in source.iter_chunked(buffer_size):
            yield chunk
        return

    while True:
        chunk = source.read(buffer_size)
        if inspect.isawaitable(chunk):
            chunk = await chunk
        if not chunk:
            return
        yield chunk


async def _write(destination, chunk: bytes):
    result = destination.write(chunk)
    if inspect.isawaitable(result):
        await result


def log_completed(state: TransferState, direction: str):
    logging.debug(
        f"{direction} completed: {state.total.transferred} bytes in {state.duration.total_seconds():.3f}s, "
        f"average {format_scaled(state.average.byte_rate, suffix='/s')}, "
        f"maximum {format_scaled(state.maximum.byte_rate, suffix='/s')}"
    )


async def stream_download(
        source,
        destination,
        progress: ProgressSink,
        total_bytes: Optional[int] = None,
        interval: int = DEFAULT_INTERVAL_MS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        latency_tracker: Optional[LatencyTracker] = None,
        request_started_ns: Optional[int] = None,
        state: Optional[TransferState] = None
    ) -> TransferState:
    """
    Copy source to destination, reporting progress on a throttled cadence.

    Loop order per read: latency sample, accumulate, maybe report, write.
    Only the reporting is throttled by `interval` (milliseconds), every read is
    written immediately.

    The progress callback runs synchronously inside the loop, so a slow
    callback slows the transfer. Hand snapshots off to your own queue if that
    matters.

    Args:
        source: Response body (iter_chunked) or any object with read(n).
        destination: Object with a sync or async write(b).
        progress: Called with a TransferState snapshot on every report.
        total_bytes: Expected size, None or 0 when unknown.
        latency_tracker: Receives one sample per read, the first one being TTFB.
        request_started_ns: perf_counter_ns() taken just before the request was
            sent. The first latency sample spans from here to the first read.
        state: Pre-created state, lets the caller inspect the final status on failure.

    Returns:
        TransferState: The final state of the transfer.
    """

    validate_arguments(interval, buffer_size, source=source, destination=destination, progress=progress)

    if state is None:
        state = TransferState()
    tracker = latency_tracker if latency_tracker is not None else NULL_LATENCY_TRACKER

    state.latency = latency_tracker
    state.start(total_bytes)
    logging.debug(f"Download started, {total_bytes=}, {interval=}, {buffer_size=}")

    interval_seconds = interval / 1000
    last_report = time.monotonic()
    last_packet_ns = request_started_ns if request_started_ns is not None else time.perf_counter_ns()
    pending_bytes = 0

    try:
        async for chunk in _iter_source(source, buffer_size):
            now_ns = time.perf_counter_ns()
            tracker.update_packet_latency(now_ns - last_packet_ns)
            last_packet_ns = now_ns

            pending_bytes += len(chunk)

            now = time.monotonic()
            if now - last_report >= interval_seconds:
                last_report = now
                progress(state.update(pending_bytes).snapshot())
                pending_bytes = 0

            await _write(destination, chunk)

        state.stop()
        progress(state.update(pending_bytes).snapshot())
        state.finish(TransferStatus.COMPLETED)
        log_completed(state, "Download")
        return state
    except asyncio.CancelledError:
        logging.debug(f"Download cancelled after {state.total.transferred + pending_bytes} bytes")
        state.finish(TransferStatus.CANCELLED)
        raise
    except Exception as err:
        state.finish(TransferStatus.FAILED)
        logging.error(f"Download failed: {repr(err)}, {err}")
        logging.error(f"Traceback: {traceback.format_exc()}")
        raise


def stream_upload(
        source,
        total_bytes: Optional[int],
        progress: ProgressSink,
        interval: int = DEFAULT_INTERVAL_MS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        latency_tracker: Optional[LatencyTracker] = None,
        state: Optional[TransferState] = None,
        finish_status: bool = True
    ) -> AsyncIterator[bytes]:
    """
    Build a request body that reports upload progress as it is consumed.

    Arguments are validated here, before the HTTP client pulls the first
    chunk. Each yielded chunk is the write to the destination. The first
    latency sample spans from the moment the client starts pulling the body
    to the first read of the source.

    With finish_status=False the state stays STREAMING once the body is sent
    or abandoned, leaving COMPLETED or FAILED to whoever reads the response.
    """

    validate_arguments(interval, buffer_size, source=source, progress=progress)

    if state is None:
        state = TransferState()
    tracker = latency_tracker if latency_tracker is not None else NULL_LATENCY_TRACKER

    return _upload_chunks(source, total_bytes, progress, interval, buffer_size, latency_tracker, tracker, state, finish_status)


async def _upload_chunks(
        source,
        total_bytes: Optional[int],
        progress: ProgressSink,
        interval: int,
        buffer_size: int,
        latency_tracker: Optional[LatencyTracker],
        tracker: LatencyTracker,
        state: TransferState,
        finish_status: bool
    ) -> AsyncIterator[bytes]:

    state.latency = latency_tracker
    state.start(total_bytes)
    logging.debug(f"Upload started, {total_bytes=}, {interval=}, {buffer_size=}")

    interval_seconds = interval / 1000
    last_report = time.monotonic()
    last_packet_ns = time.perf_counter_ns()
    pending_bytes = 0

    try:
        async for chunk in _iter_source(source, buffer_size):
            now_ns = time.perf_counter_ns()
            tracker.update_packet_latency(now_ns - last_packet_ns)
            last_packet_ns = now_ns

            pending_bytes += len(chunk)

            now = time.monotonic()
            if now - last_report >= interval_seconds:
                last_report = now
                progress(state.update(pending_bytes).snapshot())
                pending_bytes = 0

            yield chunk

        state.stop()
        progress(state.update(pending_bytes).snapshot())
        if finish_status:
            state.finish(TransferStatus.COMPLETED)
            log_completed(state, "Upload")
        else:
            logging.debug(f"Upload body sent: {state.total.transferred} bytes")
    except asyncio.CancelledError:
        logging.debug(f"Upload cancelled after {state.total.transferred + pending_bytes} bytes")
        state.finish(TransferStatus.CANCELLED)
        raise
    except GeneratorExit:
        # the consumer stopped pulling the body early
        logging.debug(f"Upload body abandoned after {state.total.transferred + pending_bytes} bytes")
        if finish_status:
            state.finish(TransferStatus.CANCELLED)
        raise
    except Exception as err:
        state.finish(TransferStatus.FAILED)
        logging.error(f"Upload failed: {repr(err)}, {err}")
        logging.error(f"Traceback: {traceback.format_exc()}")
        raise


__all__ = ["stream_download", "stream_upload", "validate_arguments", "ProgressSink"]
