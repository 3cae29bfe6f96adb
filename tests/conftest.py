import pytest
import os
import logging

import aiohttp

from tests.helpers import MockContent


class MockResponse:
    def __init__(self, status, headers=None, data: bytes = b"", reason="OK"):
        self.status = status
        self.reason = reason
        self.headers = headers if headers is not None else {}
        self.content = MockContent(data)
        self.text_exception = None
        self.released = False
        self.received_body = b""
        self.body_chunks_read = None   # answer after this many body chunks, like a server rejecting early

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.released = True
        return False

    async def text(self):
        if self.text_exception is not None:
            raise self.text_exception
        return self.content.data.decode()


class MockBodyWriter:
    def __init__(self):
        self.buffer = bytearray()

    async def write(self, chunk):
        self.buffer.extend(chunk)


class MockRequestContext:
    """Consumes the request body on entry, like aiohttp sending it before the response arrives."""

    def __init__(self, response: MockResponse, data):
        self._response = response
        self._data = data

    async def __aenter__(self):
        writer = MockBodyWriter()
        if isinstance(self._data, aiohttp.FormData):
            await self._data().write(writer)
        elif self._data is not None and self._response.body_chunks_read is not None:
            for _ in range(self._response.body_chunks_read):
                await writer.write(await self._data.__anext__())
            await self._data.aclose()
        elif self._data is not None:
            async for chunk in self._data:
                await writer.write(chunk)
        self._response.received_body = bytes(writer.buffer)
        return await self._response.__aenter__()

    async def __aexit__(self, exc_type, exc, tb):
        return await self._response.__aexit__(exc_type, exc, tb)


class MockSession:
    def __init__(self, responses):
        self._responses = responses
        self.requests = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.requests.append(("GET", url, headers))
        return self._responses[url]

    def request(self, method, url, data=None, headers=None, timeout=None):
        self.requests.append((method, url, headers))
        return MockRequestContext(self._responses[url], data)

    async def close(self):
        self.closed = True
        return


@pytest.fixture
def create_mock_response_and_set_mock_session(monkeypatch):

    def factory(return_status, headers, mock_url, data=b"", reason="OK"):
        mock_res = MockResponse(return_status, headers, data, reason)
        mock_session = MockSession({mock_url: mock_res})
        monkeypatch.setattr("aiohttp.ClientSession", lambda: mock_session)
        return mock_res, mock_session

    return factory


@pytest.fixture
def fake_monotonic(monkeypatch):
    """Controllable time.monotonic(). Only use in tests that do not run an event loop."""
    fake_time = [1000.0]

    def monotonic():
        return fake_time[0]

    monkeypatch.setattr("time.monotonic", monotonic)
    return fake_time


@pytest.fixture
def test_file_setup_and_cleanup(request):
    test_file_name = ""

    def setup(file_name):
        nonlocal test_file_name
        test_file_name = file_name
        if os.path.exists(test_file_name):
            os.remove(test_file_name)

    def cleanup():
        if test_file_name != "" and os.path.exists(test_file_name):
            logging.debug(f"Cleaning up {test_file_name=}")
            os.remove(test_file_name)

    request.addfinalizer(cleanup)
    yield setup
