import socket
import threading

import pytest
from flask import Flask, request
from werkzeug.serving import make_server

from hello_service.downstream import DownstreamError


class FakeClient:
    """Stands in for DownstreamClient; remembers the headers it was sent."""

    def __init__(self, body=b"ok", error=None):
        self.body = body
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, headers=None):
        with self._lock:
            self.calls.append(dict(headers or {}))
        if self.error is not None:
            raise DownstreamError(self.error)
        return self.body


class ServedApp:
    def __init__(self, app):
        self.server = make_server("127.0.0.1", 0, app, threaded=True)
        self.url = f"http://127.0.0.1:{self.server.server_port}"
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def __enter__(self):
        self.thread.start()
        return self

    def __exit__(self, *exc):
        self.server.shutdown()
        self.thread.join(timeout=5)


def _stub_downstream():
    stub = Flask("stub-downstream")

    @stub.route("/")
    def ok():
        return "ok"

    @stub.route("/fail")
    def fail():
        return "boom", 500

    @stub.route("/echo")
    def echo():
        return request.headers.get("traceparent", "")

    @stub.route("/br")
    def br():
        return "a<br>b"

    return stub


@pytest.fixture
def downstream():
    """A live downstream service answering on /, /fail, /echo and /br."""
    with ServedApp(_stub_downstream()) as served:
        yield served.url


@pytest.fixture
def silent_endpoint():
    """A URL whose server accepts connections but never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield f"http://127.0.0.1:{sock.getsockname()[1]}/"
    sock.close()


@pytest.fixture
def closed_endpoint():
    """A URL nothing is listening on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/"


@pytest.fixture
def trickling_endpoint():
    """A URL whose server sends headers, then one body byte every 0.4 s."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    stop = threading.Event()

    def serve():
        try:
            conn, _ = sock.accept()
            with conn:
                conn.recv(65536)
                conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 8\r\n\r\n")
                for _ in range(8):
                    if stop.wait(0.4):
                        return
                    conn.sendall(b"x")
        except OSError:
            # listener closed, or the client gave up
            return

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{sock.getsockname()[1]}/"
    stop.set()
    sock.close()
    thread.join(timeout=5)
