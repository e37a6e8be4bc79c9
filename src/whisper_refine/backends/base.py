"""
Base backend interface for Local Refine.

Every LLM backend inherits from Backend and supplies the wire-format half
of the contract: building a request body, parsing a whole response, and
parsing one line of a streamed response. The transport half (POST, status
checks, the streaming read loop, error mapping) is shared here, so the
engine sees one call() regardless of protocol.
"""

import concurrent.futures
import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from ..utils import log, truncate, truncate_error
from .prompts import Prompt

# Sampling defaults when a profile does not override them
DEFAULT_TEMPERATURE = 0.3
DEFAULT_TOP_P = 0.9
DEFAULT_MAX_TOKENS = 1000

# Bytes read between deadline checks
READ_CHUNK_SIZE = 64

# Concurrent exchanges per backend, abandoned ones included
CALL_WORKERS = 8

FragmentCallback = Callable[[str], None]


# ─────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────

class BackendError(Exception):
    """Base class for failures while calling an LLM backend."""
    kind = "backend"


class BackendConnectionError(BackendError):
    """The endpoint could not be reached."""
    kind = "connectivity"


class BackendTimeoutError(BackendError):
    """The effective timeout ran out before a complete answer arrived."""
    kind = "timeout"


class ProtocolError(BackendError):
    """Non-success status, undecodable body, or a body missing its result."""
    kind = "protocol"


class ModelNotFoundError(BackendError):
    """The backend does not know the requested model."""
    kind = "model"


# ─────────────────────────────────────────────────────────────────
# Value types
# ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters for a single call."""
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float = DEFAULT_TOP_P
    max_tokens: int = DEFAULT_MAX_TOKENS
    top_p_overridden: bool = False


@dataclass(frozen=True)
class StreamChunk:
    """One parsed element of a streamed response."""
    text: str
    done: bool = False


class Backend(ABC):
    """
    Abstract base class for LLM backends.

    Subclasses describe a wire protocol; this class drives the HTTP exchange.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=CALL_WORKERS, thread_name_prefix=f"{type(self).__name__}-call",
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the backend."""
        pass

    @abstractmethod
    def endpoint_url(self, endpoint: str) -> str:
        """URL of the generation endpoint for a base endpoint."""
        pass

    @abstractmethod
    def health_url(self, endpoint: str) -> str:
        """URL of a cheap endpoint that answers 200 when the service is up."""
        pass

    @abstractmethod
    def models_url(self, endpoint: str) -> str:
        """URL of the model catalog."""
        pass

    @abstractmethod
    def build_request(self, model: str, prompt: Prompt, params: GenerationParams, streaming: bool) -> dict:
        """Build the JSON request body."""
        pass

    @abstractmethod
    def parse_response(self, data) -> str:
        """
        Extract the result text from a complete (non-streamed) response.

        Raises:
            ProtocolError: If the body does not carry a result
            ModelNotFoundError: If the body reports an unknown model
        """
        pass

    @abstractmethod
    def parse_stream_chunk(self, line: str) -> Optional[StreamChunk]:
        """
        Parse one line of a streamed response.

        Returns None for lines that carry nothing (keep-alives, comments).

        Raises:
            ValueError: If the line is malformed (the caller skips it)
            BackendError: If the line reports a backend failure
        """
        pass

    @abstractmethod
    def parse_models(self, data) -> List[str]:
        """Extract model identifiers from a model catalog response."""
        pass

    @property
    def session(self) -> requests.Session:
        """The HTTP session this backend sends through."""
        return self._session

    def close(self) -> None:
        """Clean up resources."""
        self._pool.shutdown(wait=False, cancel_futures=True)
        if not self._owns_session:
            return
        try:
            self._session.close()
        except Exception:
            pass

    # ─────────────────────────────────────────────────────────────────
    # Shared transport
    # ─────────────────────────────────────────────────────────────────

    def call(
        self,
        endpoint: str,
        model: str,
        prompt: Prompt,
        params: GenerationParams,
        streaming: bool,
        timeout: float,
        on_fragment: Optional[FragmentCallback] = None,
    ) -> str:
        """
        Run one generation and return the trimmed result text.

        The exchange runs on the backend's call pool and the caller waits at
        most `timeout` seconds of wall-clock time for it. An exchange still
        running past that point is abandoned: its result is discarded and it
        forwards no further fragments.

        Args:
            endpoint: Base URL of the service
            model: Model name
            prompt: Formatted prompt
            params: Sampling parameters
            streaming: Request a streamed response
            timeout: Seconds before the call is abandoned
            on_fragment: Called with each streamed fragment, in order

        Raises:
            BackendError: One of its subclasses, never anything else
        """
        deadline = time.monotonic() + timeout
        abandoned = threading.Event()

        def forward(fragment: str) -> None:
            if on_fragment is not None and not abandoned.is_set():
                on_fragment(fragment)

        future = self._pool.submit(
            self._exchange, endpoint, model, prompt, params, streaming, timeout, deadline, forward,
        )
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except concurrent.futures.TimeoutError:
            abandoned.set()
            future.cancel()
            raise BackendTimeoutError(f"{self.name} exceeded {timeout}s") from None

    def _exchange(
        self,
        endpoint: str,
        model: str,
        prompt: Prompt,
        params: GenerationParams,
        streaming: bool,
        timeout: float,
        deadline: float,
        on_fragment: FragmentCallback,
    ) -> str:
        url = self.endpoint_url(endpoint)
        payload = self.build_request(model, prompt, params, streaming)

        try:
            r = self._session.post(url, json=payload, timeout=timeout, stream=True)
        except requests.exceptions.Timeout as e:
            raise BackendTimeoutError(f"{self.name} timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise BackendConnectionError(f"{self.name} not responding: {truncate_error(e)}") from e

        try:
            self._check_status(r)
            if streaming:
                text = self._read_stream(r, deadline, timeout, on_fragment)
            else:
                text = self._read_body(r, deadline, timeout)
        finally:
            r.close()

        text = text.strip()
        if not text:
            raise ProtocolError(f"{self.name} returned an empty response")
        return text

    def _check_deadline(self, deadline: float, timeout: float) -> None:
        if time.monotonic() > deadline:
            raise BackendTimeoutError(f"{self.name} exceeded {timeout}s")

    def _check_status(self, r: requests.Response) -> None:
        if r.ok:
            return
        try:
            body = r.text
        except Exception:
            body = ""
        detail = truncate_error(body.strip()) or r.reason or ""
        if r.status_code == 404 and "model" in body.lower():
            raise ModelNotFoundError(f"{self.name}: {detail}")

        # Some servers answer an unknown model with 400 and an error object
        message = _body_error_message(body)
        if message:
            error = model_error_or_protocol(self.name, message)
            if isinstance(error, ModelNotFoundError):
                raise error
        raise ProtocolError(f"{self.name} HTTP {r.status_code}: {detail}")

    def _read_body(self, r: requests.Response, deadline: float, timeout: float) -> str:
        body = bytearray()
        try:
            for chunk in r.iter_content(chunk_size=READ_CHUNK_SIZE):
                self._check_deadline(deadline, timeout)
                body.extend(chunk)
        except requests.exceptions.RequestException as e:
            raise self._read_error(e, deadline, timeout) from e
        self._check_deadline(deadline, timeout)

        try:
            data = json.loads(bytes(body))
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON response from {self.name}: {truncate_error(e)}") from e
        return self.parse_response(data)

    def _read_stream(
        self,
        r: requests.Response,
        deadline: float,
        timeout: float,
        on_fragment: FragmentCallback,
    ) -> str:
        """Fold streamed fragments into one string, stopping at the first done chunk."""
        if r.encoding is None:
            r.encoding = "utf-8"

        fragments: List[str] = []
        try:
            for line in r.iter_lines(chunk_size=READ_CHUNK_SIZE, decode_unicode=True):
                self._check_deadline(deadline, timeout)
                if isinstance(line, bytes):
                    line = line.decode("utf-8", errors="replace")
                if not line or not line.strip():
                    continue

                try:
                    chunk = self.parse_stream_chunk(line)
                except ValueError as e:
                    log(f"{self.name}: skipping malformed stream line ({e}): {truncate(line)}", "WARN")
                    continue

                if chunk is None:
                    continue
                if chunk.text:
                    fragments.append(chunk.text)
                    on_fragment(chunk.text)
                if chunk.done:
                    break
        except requests.exceptions.RequestException as e:
            raise self._read_error(e, deadline, timeout) from e

        return "".join(fragments)

    def _read_error(self, e: requests.exceptions.RequestException, deadline: float, timeout: float) -> BackendError:
        if time.monotonic() > deadline or isinstance(e, requests.exceptions.Timeout):
            return BackendTimeoutError(f"{self.name} exceeded {timeout}s")
        return BackendConnectionError(f"{self.name} response interrupted: {truncate_error(e)}")


def error_message(error) -> str:
    """Flatten an error field that is either text or an {"message", "code"} object."""
    if isinstance(error, dict):
        return " ".join(str(error.get(k, "")) for k in ("message", "code") if error.get(k))
    return str(error)


def _body_error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return ""
    if isinstance(data, dict) and data.get("error"):
        return error_message(data["error"])
    return ""


def model_error_or_protocol(backend_name: str, message) -> BackendError:
    """Classify an error message reported inside a response body."""
    text = str(message)
    lowered = text.lower()
    if "model" in lowered and ("not found" in lowered or "does not exist" in lowered):
        return ModelNotFoundError(f"{backend_name}: {truncate_error(text)}")
    return ProtocolError(f"{backend_name} error: {truncate_error(text)}")
