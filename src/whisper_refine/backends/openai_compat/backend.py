# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
OpenAI-compatible backend implementation.

Works with LM Studio, llama.cpp server, vLLM, Mistral-style gateways and any
other server exposing POST {endpoint}/v1/chat/completions. Streamed replies
use server-sent events: "data: {json}" lines carrying choices[0].delta,
terminated by "data: [DONE]" or a non-null finish_reason.
"""

import json
from typing import List, Optional

from ..base import (
    Backend,
    GenerationParams,
    ProtocolError,
    StreamChunk,
    error_message,
    model_error_or_protocol,
)
from ..prompts import Prompt

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class OpenAICompatibleBackend(Backend):
    """Rewrite backend using an OpenAI-compatible chat completions API."""

    @property
    def name(self) -> str:
        return "OpenAI-compatible"

    def endpoint_url(self, endpoint: str) -> str:
        return self._api_base(endpoint) + "/chat/completions"

    def health_url(self, endpoint: str) -> str:
        return self._api_base(endpoint) + "/models"

    def models_url(self, endpoint: str) -> str:
        return self._api_base(endpoint) + "/models"

    def build_request(self, model: str, prompt: Prompt, params: GenerationParams, streaming: bool) -> dict:
        # Build request payload (OpenAI chat format)
        payload = {
            "model": model,
            "messages": prompt.messages(),
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }
        if params.top_p_overridden:
            payload["top_p"] = params.top_p
        if streaming:
            payload["stream"] = True
        return payload

    def parse_response(self, data) -> str:
        if not isinstance(data, dict):
            raise ProtocolError("OpenAI-compatible response is not a JSON object")
        if "error" in data:
            raise model_error_or_protocol(self.name, error_message(data["error"]))

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProtocolError("OpenAI-compatible server returned empty choices array")

        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise ProtocolError("OpenAI-compatible response missing message field")

        content = message.get("content")
        if not isinstance(content, str):
            raise ProtocolError("OpenAI-compatible response missing message content")
        return content

    def parse_stream_chunk(self, line: str) -> Optional[StreamChunk]:
        line = line.strip()
        # Comments, "event:" and "id:" lines carry no content
        if not line.startswith(SSE_DATA_PREFIX):
            return None

        payload = line[len(SSE_DATA_PREFIX):].strip()
        if payload == SSE_DONE:
            return StreamChunk(text="", done=True)

        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        if "error" in data:
            raise model_error_or_protocol(self.name, error_message(data["error"]))

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise ValueError("'choices' missing")
        if not choices:
            # Usage-only chunks have an empty choices list
            return None

        choice = choices[0]
        if not isinstance(choice, dict):
            raise ValueError("choice is not an object")
        delta = choice.get("delta") or {}
        fragment = delta.get("content") or ""
        if not isinstance(fragment, str):
            raise ValueError("delta content is not text")
        return StreamChunk(text=fragment, done=choice.get("finish_reason") is not None)

    def parse_models(self, data) -> List[str]:
        models = data.get("data", []) if isinstance(data, dict) else []
        return [m["id"] for m in models if isinstance(m, dict) and m.get("id")]

    # ─────────────────────────────────────────────────────────────────
    # Private methods
    # ─────────────────────────────────────────────────────────────────

    def _api_base(self, endpoint: str) -> str:
        """Base URL ending in /v1, whether or not the endpoint already has it."""
        base = endpoint.rstrip("/")
        if base.endswith("/v1"):
            return base
        return base + "/v1"

