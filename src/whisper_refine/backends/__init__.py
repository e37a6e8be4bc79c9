"""
LLM backends for Local Refine.

To add a new backend:
1. Create a new folder under backends/ with __init__.py and backend.py
2. Add an entry to BACKEND_REGISTRY below, keyed by its config api_type

Usage:
    from whisper_refine.backends import create_backend

    backend = create_backend("ollama")
    text = backend.call(endpoint, model, prompt, params, streaming=False, timeout=10)
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .base import (
    Backend,
    BackendConnectionError,
    BackendError,
    BackendTimeoutError,
    GenerationParams,
    ModelNotFoundError,
    ProtocolError,
    StreamChunk,
)
from .prompts import Prompt, format_prompt


@dataclass
class BackendInfo:
    """Metadata for a backend."""
    id: str                    # Config identifier (e.g., "ollama")
    name: str                  # Display name (e.g., "Ollama")
    description: str           # Short description for listings
    factory: Callable[[Optional[requests.Session]], Backend]  # Function to create instance


def _create_ollama(session: Optional[requests.Session] = None) -> Backend:
    from .ollama import OllamaBackend
    return OllamaBackend(session)


def _create_openai_compatible(session: Optional[requests.Session] = None) -> Backend:
    from .openai_compat import OpenAICompatibleBackend
    return OpenAICompatibleBackend(session)


# ============================================================================
# BACKEND REGISTRY - Add new backends here
# ============================================================================
BACKEND_REGISTRY: Dict[str, BackendInfo] = {
    "ollama": BackendInfo(
        id="ollama",
        name="Ollama",
        description="Local Ollama server (/api/generate)",
        factory=_create_ollama,
    ),
    "openai": BackendInfo(
        id="openai",
        name="OpenAI-compatible",
        description="LM Studio, llama.cpp, vLLM (/v1/chat/completions)",
        factory=_create_openai_compatible,
    ),
}


def create_backend(api_type: str, session: Optional[requests.Session] = None) -> Backend:
    """
    Factory function to create a backend instance.

    Args:
        api_type: Backend ID from BACKEND_REGISTRY
        session: Shared HTTP session; the backend creates its own if omitted

    Returns:
        An instance of the requested backend.

    Raises:
        ValueError: If api_type is not recognized.
    """
    if api_type not in BACKEND_REGISTRY:
        available = ", ".join(BACKEND_REGISTRY.keys())
        raise ValueError(f"Unknown backend: {api_type}. Available: {available}")

    return BACKEND_REGISTRY[api_type].factory(session)


def get_backend_info(api_type: str) -> Optional[BackendInfo]:
    """Get metadata for a backend type."""
    return BACKEND_REGISTRY.get(api_type)


__all__ = [
    "Backend",
    "BackendConnectionError",
    "BackendError",
    "BackendInfo",
    "BackendTimeoutError",
    "BACKEND_REGISTRY",
    "GenerationParams",
    "ModelNotFoundError",
    "Prompt",
    "ProtocolError",
    "StreamChunk",
    "create_backend",
    "format_prompt",
    "get_backend_info",
]
