# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Shared fixtures: a throwaway local LLM server speaking both wire protocols.

The server replies deterministically with "processed: " + the prompt it was
given, so tests can tell which profile produced an answer.
"""

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class FakeLLMServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _FakeLLMHandler)
        self.requests = []
        self.requests_lock = threading.Lock()
        self.delay = 0.0
        self.status = 200
        self.error_body = None
        self.fragment_size = 5
        self.models = ["llama3.2:latest", "gemma3:4b"]
        self.version_status = 200
        self.fixed_reply = None
        self.drip_interval = 0.0
        self.stopping = threading.Event()

    @property
    def endpoint(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def record(self, path: str, body):
        with self.requests_lock:
            self.requests.append((path, body))

    def generation_requests(self):
        with self.requests_lock:
            return [r for r in self.requests if r[0] in ("/api/generate", "/v1/chat/completions")]

    def reply_for(self, prompt_text: str) -> str:
        if self.fixed_reply is not None:
            return self.fixed_reply
        return f"processed: {prompt_text}"

    def fragments(self, reply: str):
        size = self.fragment_size
        return [reply[i:i + size] for i in range(0, len(reply), size)]


class _FakeLLMHandler(BaseHTTPRequestHandler):
    server: FakeLLMServer

    def log_message(self, format, *args):
        pass

    def _write(self, data: bytes):
        """Write data, one byte at a time when the server is set to drip."""
        interval = self.server.drip_interval
        if not interval:
            self.wfile.write(data)
            self.wfile.flush()
            return
        try:
            for i in range(len(data)):
                if self.server.stopping.is_set():
                    self.close_connection = True
                    return
                self.wfile.write(data[i:i + 1])
                self.wfile.flush()
                self.server.stopping.wait(interval)
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True

    def _send_json(self, status: int, payload):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self._write(body)

    def do_GET(self):
        self.server.record(self.path, None)
        if self.path == "/api/version":
            self._send_json(self.server.version_status, {"version": "0.5.7"})
        elif self.path == "/api/tags":
            self._send_json(200, {"models": [{"name": m, "size": 1} for m in self.server.models]})
        elif self.path == "/v1/models":
            self._send_json(200, {"object": "list", "data": [{"id": m, "object": "model"} for m in self.server.models]})
        else:
            self._send_json(404, {"error": "404 page not found"})

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length) or b"{}")
        self.server.record(self.path, body)

        if self.server.delay:
            time.sleep(self.server.delay)

        if self.server.status != 200:
            self._send_json(self.server.status, self.server.error_body or {"error": "boom"})
            return

        if self.path == "/api/generate":
            self._ollama(body)
        elif self.path == "/v1/chat/completions":
            self._openai(body)
        else:
            self._send_json(404, {"error": "404 page not found"})

    def _ollama(self, body):
        reply = self.server.reply_for(body["prompt"])
        if not body.get("stream"):
            self._send_json(200, {
                "model": body["model"],
                "created_at": "2026-10-17T10:00:00Z",
                "response": reply,
                "done": True,
            })
            return

        self.send_response(200)
        self.send_header("Content-Type", "application/x-ndjson")
        self.end_headers()
        for fragment in self.server.fragments(reply):
            line = {"model": body["model"], "response": fragment, "done": False}
            self._write((json.dumps(line) + "\n").encode("utf-8"))
        self._write((json.dumps({"model": body["model"], "response": "", "done": True}) + "\n").encode("utf-8"))
        self.close_connection = True

    def _openai(self, body):
        user = body["messages"][-1]["content"]
        reply = self.server.reply_for(user)
        if not body.get("stream"):
            self._send_json(200, {
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": reply}, "finish_reason": "stop"}],
            })
            return

        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.end_headers()
        for fragment in self.server.fragments(reply):
            chunk = {"choices": [{"index": 0, "delta": {"content": fragment}, "finish_reason": None}]}
            self._write(f"data: {json.dumps(chunk)}\n\n".encode("utf-8"))
        final = {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
        self._write(f"data: {json.dumps(final)}\n\n".encode("utf-8"))
        self._write(b"data: [DONE]\n\n")
        self.close_connection = True


@pytest.fixture
def llm_server():
    server = FakeLLMServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.stopping.set()
        server.shutdown()
        server.server_close()


@pytest.fixture
def dead_endpoint():
    """An http:// endpoint on a port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}"
