import asyncio

from typing import List

from transfermeter.state import TransferState, TransferStatus


class ProgressRecorder:
    """Progress sink that keeps every snapshot it receives."""

    def __init__(self):
        self.snapshots: List[TransferState] = []

    def __call__(self, state: TransferState):
        self.snapshots.append(state)

    @property
    def last(self) -> TransferState:
        return self.snapshots[-1]


class StatusRecordingState(TransferState):
    """TransferState that remembers every status it was given."""

    def __init__(self):
        self.statuses: List[TransferStatus] = []
        super().__init__()

    def __setattr__(self, name, value):
        if name == "status":
            self.statuses.append(value)
        super().__setattr__(name, value)

    @property
    def terminal_statuses(self) -> List[TransferStatus]:
        return [status for status in self.statuses if status.is_terminal]


class MemorySink:
    def __init__(self):
        self.buffer = bytearray()
        self.writes = 0

    async def write(self, chunk: bytes):
        self.buffer.extend(chunk)
        self.writes += 1


class FailingSink:
    def __init__(self, exception: Exception):
        self.exception = exception

    async def write(self, chunk: bytes):
        raise self.exception


class AsyncReader:
    """File-like source with an async read(n), like an aiofiles handle."""

    def __init__(self, data: bytes):
        self.data = data
        self.position = 0

    async def read(self, n: int) -> bytes:
        await asyncio.sleep(0)
        chunk = self.data[self.position:self.position + n]
        self.position += len(chunk)
        return chunk


class StallingReader(AsyncReader):
    """Returns its data once, then blocks until the task is cancelled."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.stalled = asyncio.Event()

    async def read(self, n: int) -> bytes:
        if self.position < len(self.data):
            return await super().read(n)
        self.stalled.set()
        await asyncio.Event().wait()
        return b""


class MockContent:
    """Stand-in for aiohttp's StreamReader."""

    def __init__(self, data: bytes):
        self.data = data
        self.exception = None
        self.fail_after_chunks = None

    async def iter_chunked(self, chunk_size_limit):
        sent_chunks = 0
        for i in range(0, len(self.data), chunk_size_limit):
            if self.exception is not None and self.fail_after_chunks == sent_chunks:
                raise self.exception
            await asyncio.sleep(0)
            yield self.data[i:i + chunk_size_limit]
            sent_chunks += 1

    def set_exception(self, exception: Exception, after_chunks: int = 0):
        self.exception = exception
        self.fail_after_chunks = after_chunks
