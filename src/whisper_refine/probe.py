# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Connectivity checks for the configured LLM service.

Independent of the rewrite path: uses its own short timeout and never
raises. A service with no models is a normal state, reported as [].
"""

from typing import List, Optional

import requests

from .backends import Backend, create_backend
from .config import Config
from .utils import log


class ConnectivityProbe:
    """Health check and model listing for the configured endpoint."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self._config = config
        self._backend: Backend = create_backend(config.api_type, session)

    def close(self) -> None:
        self._backend.close()

    def check_availability(self) -> bool:
        """Check if the LLM service answers its health endpoint."""
        url = self._backend.health_url(self._config.endpoint)
        try:
            r = self._backend.session.get(url, timeout=self._config.probe_timeout_seconds)
        except requests.RequestException as e:
            log(f"LLM service unavailable at {self._config.endpoint}: {type(e).__name__}", "WARN")
            return False

        if r.status_code == 200:
            log(f"LLM service is available at {self._config.endpoint}", "OK")
            return True

        log(f"LLM service returned status {r.status_code}", "WARN")
        return False

    def list_models(self) -> List[str]:
        """Get the names of the models the service offers ([] on any failure)."""
        url = self._backend.models_url(self._config.endpoint)
        try:
            r = self._backend.session.get(url, timeout=self._config.probe_timeout_seconds)
            if r.status_code != 200:
                log(f"Failed to fetch models: HTTP {r.status_code}", "WARN")
                return []
            models = self._backend.parse_models(r.json())
        except (requests.RequestException, ValueError, TypeError) as e:
            log(f"Failed to fetch models: {type(e).__name__}", "WARN")
            return []

        log(f"Found {len(models)} available models", "INFO")
        return models
