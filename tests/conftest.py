import threading
from http.server import HTTPServer

import pytest

from helpers import FakeStack, RecordingHandler


@pytest.fixture
def http_server():
    """
    A local HTTP server on a free port.

    Set server.responses[path] = code to change the answer for a path
    (default 200). Received requests are in server.requests.
    """
    server = HTTPServer(("127.0.0.1", 0), RecordingHandler)
    server.requests = []
    server.responses = {}
    server.base_url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=2.0)


@pytest.fixture
def fake_stack():
    return FakeStack()
