# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Transcript rewriting engine for Local Refine.

Resolves the profile, works out the effective timeout, streaming and
sampling settings, dispatches to the backend selected by config.api_type,
and falls back to the raw text on any failure. process() never raises.

Usage:
    from whisper_refine.engine import SummarizationEngine

    engine = SummarizationEngine()
    text = engine.process("um hey send me the file", "professional", get_config())
    engine.close()
"""

import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import requests

from .backends import (
    Backend,
    BackendError,
    GenerationParams,
    create_backend,
    format_prompt,
)
from .backends.base import DEFAULT_TEMPERATURE, DEFAULT_TOP_P
from .config import Config
from .profiles import PASSTHROUGH_PROFILE_ID, Profile, ProfileNotFoundError, ProfileStore
from .utils import log, truncate

ProgressCallback = Callable[[str], None]

# Fragments waiting for a slow observer beyond this are dropped
PROGRESS_QUEUE_SIZE = 256


@dataclass
class HistoryRecord:
    """What the history store persists for one transcription."""
    raw_text: str
    processed_text: Optional[str] = None

    @property
    def final_text(self) -> str:
        return self.processed_text if self.processed_text is not None else self.raw_text


class ProgressRelay:
    """
    Hands streamed fragments to an observer on a background thread.

    offer() never waits: when the queue is full the fragment is dropped.
    Observer exceptions are logged once and otherwise ignored.
    """

    def __init__(self, observer: ProgressCallback, maxsize: int = PROGRESS_QUEUE_SIZE):
        self._observer = observer
        self._queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._failed = False
        self.dropped = 0
        self._thread = threading.Thread(target=self._run, daemon=True, name="refine-progress")
        self._thread.start()

    def offer(self, fragment: str) -> None:
        try:
            self._queue.put_nowait(fragment)
        except queue.Full:
            self.dropped += 1

    def close(self) -> None:
        """Stop accepting fragments; queued ones are still delivered."""
        self._closed.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            try:
                fragment = self._queue.get(timeout=0.05)
            except queue.Empty:
                if self._closed.is_set():
                    return
                continue
            if self._failed:
                continue
            try:
                self._observer(fragment)
            except Exception as e:
                self._failed = True
                log(f"Progress observer failed, ignoring further fragments: {type(e).__name__}: {e}", "WARN")


class SummarizationEngine:
    """
    Rewrites raw transcriptions through the configured LLM backend.

    One engine is shared by all callers. Calls are independent of each
    other: nothing is coalesced, de-duplicated or ordered between them.
    """

    def __init__(
        self,
        store: Optional[ProfileStore] = None,
        session: Optional[requests.Session] = None,
        max_workers: int = 4,
    ):
        self._store = store if store is not None else ProfileStore()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._backends: Dict[str, Backend] = {}
        self._backends_lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="refine")

    @property
    def store(self) -> ProfileStore:
        return self._store

    def close(self) -> None:
        """Shut down the worker pools and the shared HTTP session."""
        self._pool.shutdown(wait=False)
        with self._backends_lock:
            backends = list(self._backends.values())
            self._backends.clear()
        for backend in backends:
            backend.close()
        if self._owns_session:
            try:
                self._session.close()
            except Exception:
                pass

    # ─────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────

    def process(
        self,
        raw_text: str,
        profile_id: str,
        config: Config,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Rewrite raw_text with the given profile.

        Args:
            raw_text: The transcription to rewrite
            profile_id: Profile to apply (unknown ids behave as passthrough)
            config: Settings snapshot for this call
            on_progress: Receives each streamed fragment, best-effort

        Returns:
            The rewritten text, or raw_text unchanged if anything failed.
        """
        if not raw_text:
            return raw_text

        profile = self._resolve_profile(profile_id)
        if profile.is_passthrough:
            return raw_text

        text, _ = self._attempt(raw_text, profile, config, on_progress)
        return text

    def refine(
        self,
        raw_text: str,
        config: Config,
        on_progress: Optional[ProgressCallback] = None,
    ) -> HistoryRecord:
        """
        Apply the active profile from config and build the history record.

        processed_text is set only when rewriting is enabled and the active
        profile is not passthrough.
        """
        if not config.enabled or not raw_text:
            return HistoryRecord(raw_text=raw_text)

        profile = self._resolve_profile(config.active_profile_id)
        if profile.is_passthrough:
            return HistoryRecord(raw_text=raw_text)

        text, _ = self._attempt(raw_text, profile, config, on_progress)
        return HistoryRecord(raw_text=raw_text, processed_text=text)

    def submit(
        self,
        raw_text: str,
        profile_id: str,
        config: Config,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "Future[str]":
        """Run process() on the engine's worker pool."""
        return self._pool.submit(self.process, raw_text, profile_id, config, on_progress)

    def delete_profile(self, profile_id: str, config: Config) -> bool:
        """
        Delete a custom profile, resetting config's active selection if needed.

        Returns:
            True if the active selection was reset to passthrough.

        Raises:
            ProtectedProfileError: If the profile is built-in
            ProfileNotFoundError: If the profile does not exist
        """
        reset = self._store.delete(profile_id, config.active_profile_id)
        if reset:
            config.active_profile_id = PASSTHROUGH_PROFILE_ID
            log(f"Active profile '{profile_id}' deleted, switched to passthrough", "INFO")
        return reset

    # ─────────────────────────────────────────────────────────────────
    # Private methods
    # ─────────────────────────────────────────────────────────────────

    def _resolve_profile(self, profile_id: str) -> Profile:
        try:
            return self._store.get(profile_id)
        except ProfileNotFoundError:
            log(f"Profile not found: {profile_id}, using passthrough", "WARN")
            return self._store.passthrough()

    def _backend_for(self, api_type: str) -> Backend:
        with self._backends_lock:
            backend = self._backends.get(api_type)
            if backend is None:
                backend = create_backend(api_type, self._session)
                self._backends[api_type] = backend
            return backend

    def _params(self, profile: Profile, config: Config) -> GenerationParams:
        return GenerationParams(
            temperature=profile.temperature if profile.temperature is not None else DEFAULT_TEMPERATURE,
            top_p=profile.top_p if profile.top_p is not None else DEFAULT_TOP_P,
            max_tokens=config.max_tokens,
            top_p_overridden=profile.top_p is not None,
        )

    def _attempt(
        self,
        raw_text: str,
        profile: Profile,
        config: Config,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[str, Optional[BackendError]]:
        """
        Run one rewrite.

        Returns:
            Tuple of (text, error). On success error is None; on failure
            text is raw_text and error says what went wrong.
        """
        start = time.monotonic()
        relay: Optional[ProgressRelay] = None
        try:
            timeout = profile.timeout_seconds if profile.timeout_seconds is not None else config.timeout_seconds
            streaming = profile.streaming if profile.streaming is not None else False
            params = self._params(profile, config)
            prompt = format_prompt(profile, raw_text)
            backend = self._backend_for(config.api_type)

            if streaming and on_progress is not None:
                relay = ProgressRelay(on_progress)

            log(
                f"{backend.name} {profile.name}: {len(raw_text)} chars "
                f"({'streaming' if streaming else 'single response'}, timeout {timeout}s)",
                "AI",
            )
            result = backend.call(
                config.endpoint,
                config.model,
                prompt,
                params,
                streaming=streaming,
                timeout=timeout,
                on_fragment=relay.offer if relay is not None else None,
            )
        except BackendError as e:
            self._log_fallback(profile, config, start, e.kind, e)
            return raw_text, e
        except Exception as e:
            self._log_fallback(profile, config, start, "unexpected", f"{type(e).__name__}: {e}")
            return raw_text, BackendError(str(e))
        finally:
            if relay is not None:
                relay.close()

        elapsed = time.monotonic() - start
        log(f"{profile.name} complete in {elapsed:.2f}s: {len(raw_text)} -> {len(result)} chars", "OK")
        log(f"  {truncate(result)}", "INFO")
        return result, None

    def _log_fallback(self, profile: Profile, config: Config, start: float, kind: str, error) -> None:
        elapsed = time.monotonic() - start
        log(
            f"Refine failed [{kind}] profile={profile.id} endpoint={config.endpoint} "
            f"after {elapsed:.2f}s: {error} - using raw text",
            "WARN",
        )
