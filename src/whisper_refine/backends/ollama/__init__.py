"""
Ollama backend for transcript rewriting.

Uses a local Ollama server's generate API.
"""

from .backend import OllamaBackend

__all__ = ["OllamaBackend"]
