from typing import Dict, Optional

import asyncio
import logging
import os
import time

import aiofiles
import aiohttp

from .constants import DEFAULT_INTERVAL_MS, DEFAULT_BUFFER_SIZE, DEFAULT_REQUEST_TIMEOUT
from .exceptions import TransferStatusError
from .latency import LatencyTracker
from .state import TransferState, TransferStatus
from .streaming import ProgressSink, log_completed, stream_download, stream_upload, validate_arguments


def parse_content_range_length(content_range: Optional[str]) -> Optional[int]:
    """
    Total length from a Content-Range header, e.g. "bytes 0-99/1000" -> 1000.

    Returns None when the header is missing, malformed or the length is "*".
    """
    if not content_range or "/" not in content_range:
        return None
    length = content_range.rsplit("/", 1)[1].strip()
    if not length.isdigit():
        return None
    return int(length)


async def _read_error_body(resp) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError, asyncio.TimeoutError) as err:
        logging.debug(f"Ignoring error while reading error body: {repr(err)}")
        return ""


async def _raise_for_status(resp, url: str):
    if resp.status >= 300 or resp.status < 200:
        body = await _read_error_body(resp)
        raise TransferStatusError(resp.status, reason=resp.reason, body=body, url=url)


class TransferClient:
    """
    Async HTTP transfers with progress and latency reporting, using aiohttp.

    Routing, retries and authentication stay with aiohttp and the caller. One
    client may run any number of concurrent transfers, each owning its own
    TransferState and LatencyTracker.
    """

    def __init__(
            self,
            request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
            default_headers: Optional[Dict[str, str]] = None
        ) -> None:

        self._session: aiohttp.ClientSession = None
        self._request_timeout = request_timeout
        self._default_headers = dict(default_headers or {})

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    def _get_session(self) -> aiohttp.ClientSession:
        if not self._session:
            self._session = aiohttp.ClientSession()
        return self._session

    def _merge_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(self._default_headers)
        if headers:
            merged.update(headers)
        return merged

    async def close(self):
        if self._session is not None:
            try:
                await self._session.close()
            except asyncio.CancelledError:
                pass
            self._session = None

    async def download(
            self,
            url: str,
            destination,
            progress: ProgressSink,
            interval: int = DEFAULT_INTERVAL_MS,
            buffer_size: int = DEFAULT_BUFFER_SIZE,
            latency_tracker: Optional[LatencyTracker] = None,
            headers: Optional[Dict[str, str]] = None,
            state: Optional[TransferState] = None
        ) -> TransferState:
        """
        Download url into destination.

        - Validates the response status, raising TransferStatusError with a body excerpt
        - Takes the expected size from Content-Range, falling back to Content-Length
        - Streams the body through stream_download

        Cancel the surrounding task to abort. Bytes already written stay in destination.
        """

        validate_arguments(interval, buffer_size, destination=destination, progress=progress)

        if state is None:
            state = TransferState()

        session = self._get_session()
        logging.debug(f"GET {url}")

        request_started_ns = time.perf_counter_ns()
        try:
            async with session.get(url, headers=self._merge_headers(headers), timeout=aiohttp.ClientTimeout(total=self._request_timeout)) as resp:
                await _raise_for_status(resp, url)

                total_bytes = parse_content_range_length(resp.headers.get("Content-Range"))
                if total_bytes is None and "Content-Length" in resp.headers:
                    total_bytes = int(resp.headers["Content-Length"])

                return await stream_download(
                    resp.content,
                    destination,
                    progress,
                    total_bytes=total_bytes,
                    interval=interval,
                    buffer_size=buffer_size,
                    latency_tracker=latency_tracker,
                    request_started_ns=request_started_ns,
                    state=state
                )
        except asyncio.CancelledError:
            state.finish(TransferStatus.CANCELLED)
            raise
        except Exception:
            state.finish(TransferStatus.FAILED)
            raise

    async def download_file(
            self,
            url: str,
            output_file: str,
            progress: ProgressSink,
            interval: int = DEFAULT_INTERVAL_MS,
            buffer_size: int = DEFAULT_BUFFER_SIZE,
            latency_tracker: Optional[LatencyTracker] = None,
            headers: Optional[Dict[str, str]] = None,
            state: Optional[TransferState] = None
        ) -> TransferState:
        """
        Download url into output_file. A partial file is left behind on failure or cancellation.
        """

        validate_arguments(interval, buffer_size, progress=progress)

        async with aiofiles.open(output_file, "wb") as f:
            return await self.download(url, f, progress, interval, buffer_size, latency_tracker, headers, state)

    async def upload(
            self,
            url: str,
            source,
            total_bytes: Optional[int],
            progress: ProgressSink,
            interval: int = DEFAULT_INTERVAL_MS,
            buffer_size: int = DEFAULT_BUFFER_SIZE,
            latency_tracker: Optional[LatencyTracker] = None,
            headers: Optional[Dict[str, str]] = None,
            method: str = "POST",
            state: Optional[TransferState] = None
        ) -> TransferState:
        """
        Send source as the raw request body of a `method` request to url.
        """

        if state is None:
            state = TransferState()
        body = stream_upload(source, total_bytes, progress, interval, buffer_size, latency_tracker, state, finish_status=False)

        request_headers = self._merge_headers(headers)
        if total_bytes:
            request_headers["Content-Length"] = str(total_bytes)

        await self._send(method, url, body, request_headers, state)
        return state

    async def upload_file(
            self,
            url: str,
            file_path: str,
            progress: ProgressSink,
            interval: int = DEFAULT_INTERVAL_MS,
            buffer_size: int = DEFAULT_BUFFER_SIZE,
            latency_tracker: Optional[LatencyTracker] = None,
            headers: Optional[Dict[str, str]] = None,
            field_name: str = "file",
            state: Optional[TransferState] = None
        ) -> TransferState:
        """
        Upload file_path as a multipart/form-data field named field_name.
        """

        validate_arguments(interval, buffer_size, progress=progress)
        if state is None:
            state = TransferState()

        total_bytes = os.path.getsize(file_path)
        async with aiofiles.open(file_path, "rb") as f:
            body = stream_upload(f, total_bytes, progress, interval, buffer_size, latency_tracker, state, finish_status=False)

            form = aiohttp.FormData()
            form.add_field(field_name, body, filename=os.path.basename(file_path), content_type="application/octet-stream")

            await self._send("POST", url, form, self._merge_headers(headers), state)
        return state

    async def _send(self, method: str, url: str, data, headers: Dict[str, str], state: TransferState):
        """
        Issue the request and validate the status once the body has been sent.

        The body generator only drives STREAMING. The transfer is COMPLETED once
        the response status checks out, FAILED or CANCELLED otherwise.
        """
        session = self._get_session()
        logging.debug(f"{method} {url}")

        try:
            async with session.request(method, url, data=data, headers=headers, timeout=aiohttp.ClientTimeout(total=self._request_timeout)) as resp:
                await _raise_for_status(resp, url)
                if state.finish(TransferStatus.COMPLETED):
                    log_completed(state, f"{method} upload")
        except asyncio.CancelledError:
            state.finish(TransferStatus.CANCELLED)
            raise
        except Exception:
            state.finish(TransferStatus.FAILED)
            raise


__all__ = ["TransferClient", "parse_content_range_length"]
