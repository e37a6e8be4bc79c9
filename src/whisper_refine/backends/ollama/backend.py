"""
Ollama backend implementation.

Talks to POST {endpoint}/api/generate. System and user prompts are folded
into a single prompt string; streamed replies are newline-delimited JSON
objects, each with a "response" fragment and a "done" flag.
"""

import json
from typing import List, Optional

from ..base import (
    Backend,
    GenerationParams,
    ProtocolError,
    StreamChunk,
    model_error_or_protocol,
)
from ..prompts import Prompt


class OllamaBackend(Backend):
    """Rewrite backend using a local Ollama server."""

    @property
    def name(self) -> str:
        return "Ollama"

    def endpoint_url(self, endpoint: str) -> str:
        return endpoint.rstrip("/") + "/api/generate"

    def health_url(self, endpoint: str) -> str:
        return endpoint.rstrip("/") + "/api/version"

    def models_url(self, endpoint: str) -> str:
        return endpoint.rstrip("/") + "/api/tags"

    def build_request(self, model: str, prompt: Prompt, params: GenerationParams, streaming: bool) -> dict:
        return {
            "model": model,
            "prompt": prompt.combined(),
            "stream": streaming,
            "options": {
                "temperature": params.temperature,
                "top_p": params.top_p,
            },
        }

    def parse_response(self, data) -> str:
        if not isinstance(data, dict):
            raise ProtocolError("Ollama response is not a JSON object")
        if "error" in data:
            raise model_error_or_protocol(self.name, data["error"])

        result = data.get("response")
        if not isinstance(result, str):
            raise ProtocolError("Ollama response missing 'response' field")
        return result

    def parse_stream_chunk(self, line: str) -> Optional[StreamChunk]:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        if "error" in data:
            raise model_error_or_protocol(self.name, data["error"])
        if "response" not in data and "done" not in data:
            raise ValueError("neither 'response' nor 'done' present")

        fragment = data.get("response") or ""
        if not isinstance(fragment, str):
            raise ValueError("'response' is not text")
        return StreamChunk(text=fragment, done=bool(data.get("done", False)))

    def parse_models(self, data) -> List[str]:
        models = data.get("models", []) if isinstance(data, dict) else []
        names = []
        for m in models:
            if not isinstance(m, dict):
                continue
            name = m.get("name") or m.get("model")
            if name:
                names.append(name)
        return names
