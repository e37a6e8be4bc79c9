# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""OpenAI-compatible backend for transcript rewriting."""

from .backend import OpenAICompatibleBackend

__all__ = ["OpenAICompatibleBackend"]
